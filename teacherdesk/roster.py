"""Roster assembly for a grade/section scope."""

import logging
from typing import Iterable, List

from .records.exceptions import RosterUnavailableError, TeacherDeskAuthError, TeacherDeskError
from .records.models import RosterScope, Student

_LOGGER = logging.getLogger(__name__)


def matches_scope(student: Student, scope: RosterScope) -> bool:
	"""Check a student against the scope; unset filters match everything."""
	if scope.grade is not None and student.grade != int(scope.grade):
		return False
	if scope.section and student.section != scope.section:
		return False
	return True


def filter_students(students: Iterable[Student], scope: RosterScope) -> List[Student]:
	return [student for student in students if matches_scope(student, scope)]


def search_students(students: Iterable[Student], term: str) -> List[Student]:
	"""Case-insensitive match on full name or student ID."""
	students = list(students)
	needle = (term or "").strip().lower()
	if not needle:
		return students
	return [
		student for student in students
		if needle in student.full_name.lower() or needle in student.student_id.lower()
	]


def class_count(students: Iterable[Student]) -> int:
	"""Number of distinct grade-section classes."""
	return len({student.class_key for student in students})


class RosterAssembler:
	"""Builds the student list for a scope from a single remote read."""

	def __init__(self, client):
		self._client = client

	async def assemble(self, scope: RosterScope) -> List[Student]:
		"""Fetch and filter the roster.

		Raises:
			TeacherDeskAuthError: the session needs re-authentication
			RosterUnavailableError: the student list could not be fetched
		"""
		try:
			students = await self._client.list_students()
		except TeacherDeskAuthError:
			raise
		except TeacherDeskError as e:
			_LOGGER.warning(f"Failed to fetch students for {scope}: {e}")
			raise RosterUnavailableError(f"Failed to load students: {e}") from e

		roster = filter_students(students, scope)
		_LOGGER.debug(f"Roster for {scope}: {len(roster)} of {len(students)} students")
		return roster
