"""Shared fakes for the Teacher Desk tests."""

import asyncio
import json
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pytest

from teacherdesk.records.exceptions import TeacherDeskConnectionError
from teacherdesk.records.models import (
	AttendanceRecord, EntityKind, ExamType, Mark, Notice, Presence, Student,
)

TODAY = date(2024, 3, 15)
NOW = datetime(2024, 3, 15, 12, 0, 0)


class MockResponse:
	"""Mock aiohttp response usable as an async context manager."""

	def __init__(self, status, json_data=None, content_type="application/json", raise_json_error=False):
		self.status = status
		self._json_data = json_data
		self.headers = {"content-type": content_type}
		self._raise_json_error = raise_json_error

	async def json(self, content_type="application/json"):
		if self._raise_json_error:
			raise json.JSONDecodeError("Invalid JSON", "", 0)
		return self._json_data

	async def text(self):
		return json.dumps(self._json_data)

	async def __aenter__(self):
		return self

	async def __aexit__(self, exc_type, exc_val, exc_tb):
		pass


class FakeRecordClient:
	"""In-memory record store with injectable failures and delays."""

	def __init__(self, students=None, attendance=None, marks=None):
		self.students: List[Student] = list(students or [])
		self.attendance: List[AttendanceRecord] = list(attendance or [])
		self.marks: List[Mark] = list(marks or [])
		self.homework: List[Any] = []
		self.notices: List[Any] = []
		self.events: List[Any] = []

		# method or (method, student_id) -> exception
		self.failures: Dict[Any, Exception] = {}
		# method or (method, student_id) -> seconds
		self.delays: Dict[Any, float] = {}
		self.writes: List[tuple] = []
		self.write_failures: Dict[str, Exception] = {}
		self._next_id = 1000

	async def _maybe_fail(self, method: str, student_id: Optional[str] = None) -> None:
		for key in ((method, student_id), method):
			if key in self.delays:
				await asyncio.sleep(self.delays[key])
				break
		for key in ((method, student_id), method):
			if key in self.failures:
				raise self.failures[key]

	async def list_students(self):
		await self._maybe_fail("list_students")
		return list(self.students)

	async def list_attendance(self, student_id=None):
		await self._maybe_fail("list_attendance", student_id)
		return [r for r in self.attendance if student_id is None or r.student_id == student_id]

	async def list_marks(self, student_id=None):
		await self._maybe_fail("list_marks", student_id)
		return [m for m in self.marks if student_id is None or m.student_id == student_id]

	async def list_homework(self):
		await self._maybe_fail("list_homework")
		return list(self.homework)

	async def list_notices(self):
		await self._maybe_fail("list_notices")
		return list(self.notices)

	async def list_notices_by_date(self, on_date):
		await self._maybe_fail("list_notices_by_date")
		return [n for n in self.notices if n.date.date() == on_date]

	async def list_calendar_events(self):
		await self._maybe_fail("list_calendar_events")
		return list(self.events)

	def _new_id(self) -> str:
		self._next_id += 1
		return f"r{self._next_id}"

	async def create_record(self, kind, payload):
		student_id = payload.get("studentID")
		self.writes.append(("create", kind, student_id, dict(payload)))
		await self._maybe_fail("create_record", student_id)
		if student_id in self.write_failures:
			raise self.write_failures[student_id]

		if kind == EntityKind.ATTENDANCE:
			record = AttendanceRecord(
				record_id=self._new_id(),
				student_id=student_id,
				date=date.fromisoformat(payload["date"]),
				status=Presence(payload["status"]),
				total_days=1,
				total_present=1 if payload["status"] == "Present" else 0,
			)
			self.attendance.append(record)
			return record
		if kind == EntityKind.MARK:
			mark = Mark(
				record_id=self._new_id(),
				student_id=student_id,
				subject=payload["subject"],
				marks_obtained=payload["marksObtained"],
				exam_type=ExamType.parse(payload["examType"]),
				semester=payload["semester"],
				total_marks=payload.get("totalMarks"),
				date=datetime.fromisoformat(payload["date"]) if payload.get("date") else None,
			)
			self.marks.append(mark)
			return mark
		if kind == EntityKind.NOTICE:
			notice = Notice(
				record_id=self._new_id(),
				title=payload["title"],
				date=datetime.fromisoformat(payload["date"]),
				class_id=payload["classID"],
				description=payload["description"],
			)
			self.notices.append(notice)
			return notice
		return None

	async def update_record(self, kind, record_id, payload):
		record = self._find(kind, record_id)
		student_id = record.student_id if record else None
		self.writes.append(("update", kind, record_id, dict(payload)))
		await self._maybe_fail("update_record", student_id)
		if student_id in self.write_failures:
			raise self.write_failures[student_id]

		if kind == EntityKind.ATTENDANCE and record:
			record.status = Presence(payload["status"])
		elif kind == EntityKind.MARK and record and "marksObtained" in payload:
			record.marks_obtained = payload["marksObtained"]
		return record

	async def delete_record(self, kind, record_id):
		self.writes.append(("delete", kind, record_id, None))
		await self._maybe_fail("delete_record")
		if kind == EntityKind.MARK:
			self.marks = [m for m in self.marks if m.record_id != record_id]
		elif kind == EntityKind.NOTICE:
			self.notices = [n for n in self.notices if n.record_id != record_id]

	def _find(self, kind, record_id):
		records = self.attendance if kind == EntityKind.ATTENDANCE else self.marks
		return next((r for r in records if r.record_id == record_id), None)


def make_student(student_id, grade=5, section="A", first_name=None, last_name="Doe"):
	return Student(
		student_id=student_id,
		first_name=first_name or student_id.upper(),
		last_name=last_name,
		grade=grade,
		section=section,
	)


def make_attendance(record_id, student_id, on_date=TODAY, status=Presence.PRESENT, total_days=10, total_present=8):
	return AttendanceRecord(
		record_id=record_id,
		student_id=student_id,
		date=on_date,
		status=status,
		total_days=total_days,
		total_present=total_present,
	)


def make_mark(record_id, student_id, marks_obtained=85, total_marks=100, subject="Math",
		exam_type=ExamType.MIDTERM, semester="Spring 2024", dated=None):
	return Mark(
		record_id=record_id,
		student_id=student_id,
		subject=subject,
		marks_obtained=marks_obtained,
		exam_type=exam_type,
		semester=semester,
		total_marks=total_marks,
		date=dated,
	)


@pytest.fixture
def students():
	return [
		make_student("s1"),
		make_student("s2"),
		make_student("s3"),
		make_student("s4", grade=6),
		make_student("s5", section="B"),
	]


@pytest.fixture
def fake_client(students):
	return FakeRecordClient(students=students)


@pytest.fixture
def unreachable():
	return TeacherDeskConnectionError("Cannot connect to backend")
