"""Turns overlay entries into create/update writes."""

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional, Tuple

from .const import DEFAULT_TOTAL_MARKS
from .overlay import EditOverlay
from .records.exceptions import InvalidCommitWindowError, TeacherDeskError
from .records.models import CommitResult, DirtyEntry, EntityKind, MarkScope
from .validation import validate_attendance, validate_mark, validate_mark_update

_LOGGER = logging.getLogger(__name__)

# entry -> (create payload, update payload)
PayloadBuilder = Callable[[DirtyEntry], Tuple[Dict[str, Any], Dict[str, Any]]]


class CommitResolver:
	"""Commits an overlay as one concurrent batch of writes.

	Each entry with a baseline record becomes an update against that record's
	id; entries without one become creates carrying the full scope. Entries
	whose write succeeded are removed from the overlay, failed ones stay so a
	retry resubmits exactly those.
	"""

	def __init__(self, client):
		self._client = client

	async def commit_attendance(self, overlay: EditOverlay, on_date: date, today: date) -> CommitResult:
		"""Commit staged presence for ``on_date``.

		Raises:
			InvalidCommitWindowError: ``on_date`` is not today; nothing is written
		"""
		if on_date != today:
			raise InvalidCommitWindowError(
				f"Attendance can only be marked for today ({today.isoformat()}), not {on_date.isoformat()}"
			)

		def build(entry: DirtyEntry) -> Tuple[Dict[str, Any], Dict[str, Any]]:
			create = validate_attendance({
				"studentID": entry.student_id,
				"status": entry.value.value,
				"date": on_date.isoformat(),
			})
			return create, {"status": create["status"]}

		return await self._commit(overlay, EntityKind.ATTENDANCE, build)

	async def commit_marks(self, overlay: EditOverlay, scope: MarkScope, now: datetime) -> CommitResult:
		"""Commit staged scores for ``scope``."""

		def build(entry: DirtyEntry) -> Tuple[Dict[str, Any], Dict[str, Any]]:
			if entry.baseline is not None:
				return {}, validate_mark_update({"marksObtained": entry.value})
			create = validate_mark({
				"studentID": entry.student_id,
				"subject": scope.subject,
				"examType": scope.exam_type.value,
				"semester": scope.semester,
				"marksObtained": entry.value,
				"totalMarks": DEFAULT_TOTAL_MARKS,
				"date": now.isoformat(),
			})
			return create, {}

		return await self._commit(overlay, EntityKind.MARK, build)

	async def _commit(self, overlay: EditOverlay, kind: EntityKind, build: PayloadBuilder) -> CommitResult:
		entries = overlay.entries()
		result = CommitResult(submitted=len(entries))
		if not entries:
			_LOGGER.debug(f"No pending {kind.value} changes to commit")
			return result

		_LOGGER.debug(f"Committing {len(entries)} {kind.value} change(s)")
		outcomes = await asyncio.gather(
			*(self._write(kind, entry, build) for entry in entries),
			return_exceptions=True,
		)

		unexpected: Optional[BaseException] = None
		for entry, outcome in zip(entries, outcomes):
			if isinstance(outcome, BaseException):
				if not isinstance(outcome, TeacherDeskError):
					unexpected = unexpected or outcome
				_LOGGER.warning(f"Failed to save {kind.value} for student {entry.student_id}: {outcome}")
				result.failed[entry.student_id] = str(outcome) or type(outcome).__name__
				continue
			overlay.consume(entry)
			result.succeeded.append(entry.student_id)

		if result.failed:
			_LOGGER.error(
				f"{len(result.failed)} of {result.submitted} {kind.value} change(s) failed; "
				f"kept for retry: {sorted(result.failed)}"
			)
		else:
			_LOGGER.info(f"Saved {result.submitted} {kind.value} change(s)")

		if unexpected is not None:
			raise unexpected
		return result

	async def _write(self, kind: EntityKind, entry: DirtyEntry, build: PayloadBuilder) -> Optional[Any]:
		create_payload, update_payload = build(entry)
		if entry.baseline is not None:
			return await self._client.update_record(kind, entry.baseline.record_id, update_payload)
		return await self._client.create_record(kind, create_payload)
