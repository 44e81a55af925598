"""Pending local edits layered over the reconciled baseline.

The overlay holds at most one entry per student; a later edit replaces the
earlier one. Entries reference the baseline record they would replace so the
commit resolver can choose between create and update. Nothing here talks to
the record store.
"""

import logging
import threading
from typing import Any, Collection, Dict, Iterator, List, Optional

from .records.models import DirtyEntry

_LOGGER = logging.getLogger(__name__)


class EditOverlay:
	"""In-memory dirty entries keyed by student ID."""

	def __init__(self, field: str):
		self.field = field
		self._entries: Dict[str, DirtyEntry] = {}
		# Overlay may be touched from a UI thread as well as the event loop
		self._lock = threading.RLock()

	def __len__(self) -> int:
		with self._lock:
			return len(self._entries)

	def __contains__(self, student_id: str) -> bool:
		with self._lock:
			return student_id in self._entries

	def __iter__(self) -> Iterator[DirtyEntry]:
		return iter(self.entries())

	def is_empty(self) -> bool:
		return len(self) == 0

	def stage(self, student_id: str, value: Any, baseline: Optional[Any] = None) -> DirtyEntry:
		"""Stage or replace the edit for one student."""
		entry = DirtyEntry(student_id=student_id, field=self.field, value=value, baseline=baseline)
		with self._lock:
			self._entries[student_id] = entry
		return entry

	def bulk_stage(
		self,
		baselines: Dict[str, Optional[Any]],
		value: Any,
		overwrite: bool = True,
	) -> int:
		"""Stage the same value for many students.

		Args:
			baselines: student ID -> baseline record (or None)
			value: value to stage for every student
			overwrite: if False, students with a pending edit keep it

		Returns:
			Number of entries staged
		"""
		staged = 0
		with self._lock:
			for student_id, baseline in baselines.items():
				if not overwrite and student_id in self._entries:
					continue
				self._entries[student_id] = DirtyEntry(student_id=student_id, field=self.field, value=value, baseline=baseline)
				staged += 1
		return staged

	def unstage(self, student_id: str) -> None:
		with self._lock:
			self._entries.pop(student_id, None)

	def unstage_many(self, student_ids: Collection[str]) -> None:
		with self._lock:
			for student_id in student_ids:
				self._entries.pop(student_id, None)

	def consume(self, entry: DirtyEntry) -> bool:
		"""Remove an entry after its write succeeded.

		The entry is only removed if it is still the staged one; an edit made
		while the write was in flight replaces it and must survive.
		"""
		with self._lock:
			if self._entries.get(entry.student_id) is entry:
				del self._entries[entry.student_id]
				return True
		_LOGGER.debug(f"Kept newer {self.field} edit for {entry.student_id} staged during commit")
		return False

	def get(self, student_id: str) -> Optional[DirtyEntry]:
		with self._lock:
			return self._entries.get(student_id)

	def value_for(self, student_id: str, default: Any = None) -> Any:
		entry = self.get(student_id)
		return entry.value if entry else default

	def entries(self) -> List[DirtyEntry]:
		"""Snapshot of the pending entries."""
		with self._lock:
			return list(self._entries.values())

	def clear(self) -> int:
		"""Drop every pending entry; returns how many were dropped."""
		with self._lock:
			dropped = len(self._entries)
			self._entries.clear()
		return dropped
