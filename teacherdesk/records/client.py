"""Main client for the Teacher Desk record store."""

import asyncio
import json
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from .auth import Credentials, TeacherDeskAuth
from .exceptions import (
	TeacherDeskAPIError,
	TeacherDeskAuthError,
	TeacherDeskConnectionError,
	TeacherDeskDataError,
	TeacherDeskNotFoundError,
	TeacherDeskValidationError,
)
from .models import (
	AttendanceRecord, CalendarEvent, EntityKind, EventCategory, ExamType,
	Homework, Mark, Notice, Presence, Student, TeacherProfile,
)
from .utils import flatten_records, parse_date, parse_datetime, parse_number, parse_optional_datetime

_LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"
API_PREFIX = "/api/teachers"
DEFAULT_TIMEOUT = 30


class TeacherDeskClient:
	"""Client for the teacher-facing record store API."""

	def __init__(
		self,
		session: Optional[aiohttp.ClientSession] = None,
		base_url: str = DEFAULT_BASE_URL,
		credentials: Optional[Credentials] = None,
		request_timeout: float = DEFAULT_TIMEOUT,
	):
		"""Initialise the client.

		Args:
			session: Optional aiohttp session. If None, one is created on enter.
			base_url: Record store root URL
			credentials: Credential object holding the bearer token
			request_timeout: Per-request timeout in seconds
		"""
		self._session = session
		self._own_session = session is None
		self._base_url = base_url.rstrip("/")
		self._timeout = aiohttp.ClientTimeout(total=request_timeout)
		self.credentials = credentials or Credentials()
		self.auth: Optional[TeacherDeskAuth] = None
		if session is not None:
			self.auth = TeacherDeskAuth(session, self._base_url, self.credentials)

	async def __aenter__(self):
		"""Async context manager entry."""
		if self._own_session:
			self._session = aiohttp.ClientSession()
		self.auth = TeacherDeskAuth(self._session, self._base_url, self.credentials)
		return self

	async def __aexit__(self, exc_type, exc_val, exc_tb):
		"""Async context manager exit."""
		if self._own_session and self._session:
			await self._session.close()

	@property
	def authenticated(self) -> bool:
		return self.credentials.is_set

	async def login(self, teacher_id: str, password: str) -> bool:
		"""Log in to the record store.

		Returns:
			True if a token was obtained
		"""
		if not self.auth:
			raise TeacherDeskAPIError("Client not properly initialised")
		await self.auth.login(teacher_id, password)
		return self.authenticated

	async def logout(self) -> None:
		if self.auth:
			await self.auth.logout()

	# Reads

	async def get_profile(self) -> TeacherProfile:
		"""Get the signed-in teacher's profile."""
		data = await self._request("GET", "/profile")
		teacher = data.get("teacher", data) if isinstance(data, dict) else None
		if not isinstance(teacher, dict):
			raise TeacherDeskDataError("Profile response did not contain a teacher")
		try:
			return TeacherProfile(
				record_id=str(teacher.get("_id", "")),
				teacher_id=str(teacher["teacherID"]),
				first_name=teacher.get("firstName", ""),
				last_name=teacher.get("lastName"),
				address=teacher.get("Address"),
				email=teacher.get("email"),
			)
		except KeyError as e:
			raise TeacherDeskDataError(f"Failed to parse profile: missing {e}") from e

	async def list_students(self) -> List[Student]:
		"""Get every student visible to the teacher."""
		data = await self._request("GET", f"/{EntityKind.STUDENT.value}")
		return self._parse_list(data, self._parse_student, "student")

	async def list_attendance(self, student_id: Optional[str] = None) -> List[AttendanceRecord]:
		"""Get attendance records, optionally for a single student."""
		path = f"/{EntityKind.ATTENDANCE.value}"
		if student_id:
			path = f"{path}/{student_id}"
		data = await self._request("GET", path)
		return self._parse_list(data, self._parse_attendance, "attendance record")

	async def list_marks(self, student_id: Optional[str] = None) -> List[Mark]:
		"""Get marks, optionally for a single student.

		Per-student responses may group marks by category; they are flattened.
		"""
		path = f"/{EntityKind.MARK.value}"
		if student_id:
			path = f"{path}/{student_id}"
		data = await self._request("GET", path)
		return self._parse_list(flatten_records(data), self._parse_mark, "mark")

	async def list_homework(self) -> List[Homework]:
		data = await self._request("GET", f"/{EntityKind.HOMEWORK.value}")
		return self._parse_list(data, self._parse_homework, "homework")

	async def list_homework_range(self, from_date: date, to_date: date) -> List[Homework]:
		"""Get homework assigned between two dates (inclusive)."""
		payload = {"fromDate": from_date.isoformat(), "toDate": to_date.isoformat()}
		data = await self._request("POST", f"/{EntityKind.HOMEWORK.value}/range", payload)
		return self._parse_list(data, self._parse_homework, "homework")

	async def list_notices(self) -> List[Notice]:
		data = await self._request("GET", f"/{EntityKind.NOTICE.value}")
		return self._parse_list(data, self._parse_notice, "notice")

	async def list_notices_by_date(self, on_date: date) -> List[Notice]:
		data = await self._request("POST", f"/{EntityKind.NOTICE.value}/date", {"date": on_date.isoformat()})
		return self._parse_list(data, self._parse_notice, "notice")

	async def list_calendar_events(self) -> List[CalendarEvent]:
		data = await self._request("GET", f"/{EntityKind.CALENDAR_EVENT.value}")
		return self._parse_list(data, self._parse_calendar_event, "calendar event")

	async def fetch(self, kind: EntityKind, filters: Optional[Dict[str, Any]] = None) -> List[Any]:
		"""Generic read used by the engine: ``fetch(kind, filter) -> list``."""
		filters = filters or {}
		if kind == EntityKind.STUDENT:
			return await self.list_students()
		if kind == EntityKind.ATTENDANCE:
			return await self.list_attendance(filters.get("student_id"))
		if kind == EntityKind.MARK:
			return await self.list_marks(filters.get("student_id"))
		if kind == EntityKind.HOMEWORK:
			return await self.list_homework()
		if kind == EntityKind.NOTICE:
			if filters.get("date"):
				return await self.list_notices_by_date(filters["date"])
			return await self.list_notices()
		if kind == EntityKind.CALENDAR_EVENT:
			return await self.list_calendar_events()
		raise TeacherDeskAPIError(f"Unsupported entity kind: {kind}")

	# Writes

	async def create_record(self, kind: EntityKind, payload: Dict[str, Any]) -> Optional[Any]:
		"""Create a record.

		Returns:
			The parsed record, or None if the store's reply could not be parsed
			(the write itself succeeded)
		"""
		data = await self._request("POST", f"/{kind.value}", payload)
		return self._parse_written(kind, data)

	async def update_record(self, kind: EntityKind, record_id: str, payload: Dict[str, Any]) -> Optional[Any]:
		"""Patch an existing record by id."""
		if not record_id:
			raise TeacherDeskValidationError(f"Cannot update {kind.value} without a record id")
		data = await self._request("PATCH", f"/{kind.value}/{record_id}", payload)
		return self._parse_written(kind, data)

	async def delete_record(self, kind: EntityKind, record_id: str) -> None:
		if not record_id:
			raise TeacherDeskValidationError(f"Cannot delete {kind.value} without a record id")
		await self._request("DELETE", f"/{kind.value}/{record_id}")

	# Transport

	async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
		"""Issue a request and return the decoded JSON body."""
		if not self._session or not self.auth:
			raise TeacherDeskAPIError("Client not properly initialised")

		url = f"{self._base_url}{API_PREFIX}{path}"
		_LOGGER.debug(f"{method} {url}")

		try:
			async with self._session.request(
				method, url, headers=self.auth.headers(), json=payload, timeout=self._timeout
			) as resp:
				if resp.status == 401:
					self.auth.invalidate()
					raise TeacherDeskAuthError("Unauthorized - please log in")

				content_type = resp.headers.get("content-type", "").lower()
				if resp.status == 204 or (method == "DELETE" and "application/json" not in content_type and resp.status < 300):
					return None

				if "application/json" not in content_type:
					if resp.status >= 300:
						raise self._status_error(resp.status, None, path)
					_LOGGER.error(f"Non-JSON response from {path} (content-type {content_type!r})")
					raise TeacherDeskConnectionError("Backend server not available or returned invalid response.")

				try:
					data = await resp.json()
				except (aiohttp.ContentTypeError, json.JSONDecodeError) as e:
					raise TeacherDeskDataError(f"Invalid JSON response from {path}: {e}") from e

				if resp.status >= 300:
					message = data.get("message") if isinstance(data, dict) else None
					raise self._status_error(resp.status, message, path)

				return data

		except aiohttp.ClientError as e:
			raise TeacherDeskConnectionError(f"Cannot connect to backend at {self._base_url}: {e}") from e
		except asyncio.TimeoutError as e:
			raise TeacherDeskConnectionError(f"Request to {path} timed out") from e

	@staticmethod
	def _status_error(status: int, message: Optional[str], path: str) -> TeacherDeskAPIError:
		message = message or f"HTTP error! status: {status}"
		if status == 404:
			return TeacherDeskNotFoundError(message, status)
		if status in (400, 409, 422):
			return TeacherDeskValidationError(message, status)
		if status >= 500:
			_LOGGER.warning(f"Server error from {path}: HTTP {status}")
		return TeacherDeskAPIError(message, status)

	# Parsing

	def _parse_list(self, data: Any, parser: Callable[[Dict[str, Any]], Any], label: str) -> List[Any]:
		"""Parse a list of records, skipping malformed items."""
		if not isinstance(data, list):
			raise TeacherDeskDataError(f"Expected a list of {label} records, got {type(data).__name__}")

		records = []
		for item in data:
			try:
				records.append(parser(item))
			except (KeyError, TypeError, ValueError) as e:
				_LOGGER.warning(f"Failed to parse {label}: {e}")
				continue
		return records

	def _parse_written(self, kind: EntityKind, data: Any) -> Optional[Any]:
		parsers = {
			EntityKind.STUDENT: self._parse_student,
			EntityKind.ATTENDANCE: self._parse_attendance,
			EntityKind.MARK: self._parse_mark,
			EntityKind.HOMEWORK: self._parse_homework,
			EntityKind.NOTICE: self._parse_notice,
			EntityKind.CALENDAR_EVENT: self._parse_calendar_event,
		}
		record = self._unwrap_record(data)
		if record is None:
			return None
		try:
			return parsers[kind](record)
		except (KeyError, TypeError, ValueError) as e:
			_LOGGER.warning(f"Write to {kind.value} succeeded but reply could not be parsed: {e}")
			return None

	@staticmethod
	def _unwrap_record(data: Any) -> Optional[Dict[str, Any]]:
		"""Find the record in a write reply ({..} or {"message": .., "data": {..}})."""
		if not isinstance(data, dict):
			return None
		if "_id" in data:
			return data
		for value in data.values():
			if isinstance(value, dict) and "_id" in value:
				return value
		return None

	def _parse_student(self, item: Dict[str, Any]) -> Student:
		return Student(
			student_id=str(item["studentID"]),
			first_name=item.get("firstName", ""),
			last_name=item.get("lastName"),
			grade=int(item["grade"]),
			section=item.get("section"),
			email=item.get("email"),
			record_id=item.get("_id"),
			address=item.get("Address"),
			session_expiry=parse_optional_datetime(item.get("sessionExpiry")),
		)

	def _parse_attendance(self, item: Dict[str, Any]) -> AttendanceRecord:
		status = Presence(item["status"])
		if status == Presence.UNMARKED:
			raise ValueError("Stored attendance cannot be Unmarked")
		total_days = int(item.get("totalDays") or 0)
		total_present = int(item.get("totalPresent") or 0)
		if total_present > total_days:
			raise ValueError(f"totalPresent {total_present} exceeds totalDays {total_days}")
		return AttendanceRecord(
			record_id=str(item["_id"]),
			student_id=str(item["studentID"]),
			date=parse_date(item["date"]),
			status=status,
			total_days=total_days,
			total_present=total_present,
		)

	def _parse_mark(self, item: Dict[str, Any]) -> Mark:
		return Mark(
			record_id=str(item["_id"]),
			student_id=str(item["studentID"]),
			subject=item["subject"],
			marks_obtained=float(item["marksObtained"]),
			total_marks=parse_number(item.get("totalMarks")),
			exam_type=ExamType.parse(item["examType"]),
			semester=item["semester"],
			date=parse_optional_datetime(item.get("date")),
		)

	def _parse_homework(self, item: Dict[str, Any]) -> Homework:
		return Homework(
			record_id=str(item["_id"]),
			student_id=str(item.get("studentID", "")),
			title=item["title"],
			description=item.get("description", ""),
			assign_date=parse_datetime(item["assignDate"]),
			due_date=parse_datetime(item["dueDate"]),
			created=parse_optional_datetime(item.get("date") or item.get("createdAt")),
		)

	def _parse_notice(self, item: Dict[str, Any]) -> Notice:
		return Notice(
			record_id=str(item["_id"]),
			title=item["title"],
			date=parse_datetime(item["date"]),
			class_id=item.get("classID"),
			teacher_id=item.get("teacherID"),
			description=item.get("description", ""),
		)

	def _parse_calendar_event(self, item: Dict[str, Any]) -> CalendarEvent:
		try:
			category = EventCategory(item.get("category", "Other"))
		except ValueError:
			_LOGGER.debug(f"Unknown calendar category {item.get('category')!r}, using Other")
			category = EventCategory.OTHER
		return CalendarEvent(
			record_id=str(item["_id"]),
			title=item["title"],
			date=parse_datetime(item["date"]),
			category=category,
			description=item.get("description"),
			created_at=parse_optional_datetime(item.get("createdAt")),
		)
