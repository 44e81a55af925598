"""Per-student history fan-out and scope matching."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from .records.exceptions import TeacherDeskAuthError, TeacherDeskError
from .records.models import AttendanceRecord, Mark, MarkScope, Presence, Student, StudentView

_LOGGER = logging.getLogger(__name__)

HistoryFetcher = Callable[[str], Awaitable[List[Any]]]


@dataclass
class Reconciliation:
	"""Views produced by one reconciliation pass plus any conflict warnings."""
	views: List[StudentView]
	warnings: List[str] = field(default_factory=list)


def select_attendance(records: Sequence[AttendanceRecord], on_date: date, warnings: Optional[List[str]] = None) -> Optional[AttendanceRecord]:
	"""Pick the record for ``on_date``; None means the student is unmarked."""
	matching = [record for record in records if record.date == on_date]
	if not matching:
		return None
	if len(matching) > 1:
		chosen = max(matching, key=lambda record: record.total_days)
		message = (
			f"{len(matching)} attendance records for {chosen.student_id} on {on_date.isoformat()}; "
			f"using {chosen.record_id}"
		)
		_LOGGER.warning(f"Conflict: {message}")
		if warnings is not None:
			warnings.append(message)
		return chosen
	return matching[0]


def select_mark(marks: Sequence[Mark], scope: MarkScope, warnings: Optional[List[str]] = None) -> Optional[Mark]:
	"""Pick the mark matching subject, exam type and semester.

	If several match, the most recently dated one wins and a warning is logged.
	"""
	matching = [
		mark for mark in marks
		if mark.subject == scope.subject
		and mark.exam_type == scope.exam_type
		and mark.semester == scope.semester
	]
	if not matching:
		return None
	if len(matching) > 1:
		chosen = max(matching, key=lambda mark: mark.date or datetime.min)
		dated = chosen.date.date().isoformat() if chosen.date else "undated"
		message = (
			f"{len(matching)} {scope.subject} {scope.exam_type.value} marks for {chosen.student_id} "
			f"in {scope.semester}; using {chosen.record_id} ({dated})"
		)
		_LOGGER.warning(f"Conflict: {message}")
		if warnings is not None:
			warnings.append(message)
		return chosen
	return matching[0]


class HistoryReconciler:
	"""Fetches each student's history concurrently and folds it into views."""

	def __init__(self, client):
		self._client = client

	async def fetch_histories(self, roster: Sequence[Student], fetcher: HistoryFetcher, label: str) -> Dict[str, Union[List[Any], TeacherDeskError]]:
		"""Run one fetch per student and wait for every one to settle.

		Returns:
			student ID -> history list, or the error that fetch raised

		Raises:
			TeacherDeskAuthError: if any fetch was rejected as unauthorized
		"""
		results = await asyncio.gather(
			*(fetcher(student.student_id) for student in roster),
			return_exceptions=True,
		)

		histories: Dict[str, Union[List[Any], TeacherDeskError]] = {}
		auth_error: Optional[TeacherDeskAuthError] = None
		unexpected: Optional[BaseException] = None

		for student, result in zip(roster, results):
			if isinstance(result, TeacherDeskAuthError):
				auth_error = auth_error or result
			elif isinstance(result, TeacherDeskError):
				_LOGGER.warning(f"Failed to get {label} for student {student.student_id}: {result}")
				histories[student.student_id] = result
			elif isinstance(result, BaseException):
				unexpected = unexpected or result
			else:
				histories[student.student_id] = result

		if unexpected is not None:
			raise unexpected
		if auth_error is not None:
			raise auth_error

		failed = sum(1 for value in histories.values() if isinstance(value, TeacherDeskError))
		_LOGGER.debug(f"Fetched {label} for {len(roster) - failed}/{len(roster)} students")
		return histories

	async def reconcile_attendance(self, roster: Sequence[Student], on_date: date) -> Reconciliation:
		"""Build views with each student's presence on ``on_date``."""
		histories = await self.fetch_histories(roster, self._fetch_attendance, "attendance")
		warnings: List[str] = []
		views = []

		for student in roster:
			history = histories.get(student.student_id, [])
			if isinstance(history, TeacherDeskError):
				views.append(self._unavailable_view(student, history))
				continue

			record = select_attendance(history, on_date, warnings)
			views.append(StudentView(
				student=student,
				presence=record.status if record else Presence.UNMARKED,
				attendance_record=record,
			))

		return Reconciliation(views=views, warnings=warnings)

	async def reconcile_marks(self, roster: Sequence[Student], scope: MarkScope) -> Reconciliation:
		"""Build views with each student's mark for ``scope``."""
		histories = await self.fetch_histories(roster, self._fetch_marks, "marks")
		warnings: List[str] = []
		views = []

		for student in roster:
			history = histories.get(student.student_id, [])
			if isinstance(history, TeacherDeskError):
				views.append(self._unavailable_view(student, history))
				continue

			views.append(StudentView(
				student=student,
				current_mark=select_mark(history, scope, warnings),
			))

		return Reconciliation(views=views, warnings=warnings)

	async def _fetch_attendance(self, student_id: str) -> List[AttendanceRecord]:
		return await self._client.list_attendance(student_id)

	async def _fetch_marks(self, student_id: str) -> List[Mark]:
		return await self._client.list_marks(student_id)

	@staticmethod
	def _unavailable_view(student: Student, error: TeacherDeskError) -> StudentView:
		return StudentView(
			student=student,
			history_available=False,
			history_error=f"History unavailable: {error}",
		)
