"""Roster engine coordinating reads, edits and commits for the UI."""

import asyncio
import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .activity import build_activity_feed, build_upcoming_events
from .const import (
	DEFAULT_TOTAL_MARKS,
	FIELD_MARKS_OBTAINED,
	FIELD_PRESENCE,
	SOURCE_ATTENDANCE,
	SOURCE_CALENDAR,
	SOURCE_HOMEWORK,
	SOURCE_MARKS,
	SOURCE_NOTICES,
	SOURCE_STUDENTS,
)
from .history_guard import evaluate_history_completeness
from .overlay import EditOverlay
from .reconciler import HistoryReconciler
from .resolver import CommitResolver
from .roster import RosterAssembler
from .statistics import (
	attendance_history,
	attendance_summary,
	dashboard_stats,
	notice_statistics,
	overall_grade,
	recent_attendance,
)
from .validation import (
	validate_homework,
	validate_homework_update,
	validate_mark,
	validate_mark_update,
	validate_marks_value,
	validate_notice,
)
from .records.exceptions import (
	TeacherDeskAuthError,
	TeacherDeskError,
	TeacherDeskNotFoundError,
	TeacherDeskValidationError,
)
from .records.models import (
	AttendanceScope, CommitResult, DailyAttendance, DashboardSnapshot, EntityKind,
	Homework, Mark, MarkScope, Notice, NoticeBoard, Presence, RosterScope,
	RosterSnapshot, Student, StudentProfile, StudentView,
)
from .records.utils import newest_first, utcnow

_LOGGER = logging.getLogger(__name__)

STREAM_ROSTER = "roster"
STREAM_ATTENDANCE = "attendance"
STREAM_MARKS = "marks"


class TeacherDeskCoordinator:
	"""Holds the active scopes, the reconciled views and the edit overlays.

	All state changes happen on the event loop between awaits. Every fetch
	records the generation of the scope that started it; a result arriving
	after that scope was replaced is dropped instead of merged.
	"""

	def __init__(
		self,
		client,
		today: Optional[Callable[[], date]] = None,
		now: Optional[Callable[[], datetime]] = None,
	) -> None:
		"""Initialise coordinator.

		Args:
			client: record client (see records.client.TeacherDeskClient)
			today: clock for the attendance commit window
			now: clock for relative times and upcoming events (naive UTC)
		"""
		self.client = client
		self._today = today or date.today
		self._now = now or utcnow

		self.assembler = RosterAssembler(client)
		self.reconciler = HistoryReconciler(client)
		self.resolver = CommitResolver(client)
		self.attendance_overlay = EditOverlay(FIELD_PRESENCE)
		self.marks_overlay = EditOverlay(FIELD_MARKS_OBTAINED)

		self.roster_scope: Optional[RosterScope] = None
		self.attendance_scope: Optional[AttendanceScope] = None
		self.mark_scope: Optional[MarkScope] = None
		self.roster: List[Student] = []
		self.error: Optional[str] = None

		self._attendance_views: List[StudentView] = []
		self._mark_views: List[StudentView] = []
		self._attendance_warnings: List[str] = []
		self._mark_warnings: List[str] = []
		self._generations: Dict[str, int] = {
			STREAM_ROSTER: 0,
			STREAM_ATTENDANCE: 0,
			STREAM_MARKS: 0,
		}

	# Stale-response guard

	def _begin(self, *streams: str) -> Tuple[int, ...]:
		for stream in streams:
			self._generations[stream] += 1
		return tuple(self._generations[stream] for stream in streams)

	def _is_current(self, stream: str, generation: int) -> bool:
		return self._generations[stream] == generation

	# Scope selection and reconciliation

	async def select_roster(self, scope: RosterScope) -> List[Student]:
		"""Switch to a grade/section and reload the roster.

		Views and pending edits for the previous scope are discarded. If an
		attendance date or mark scope is active it is reconciled for the new
		roster.

		Raises:
			RosterUnavailableError: the roster could not be fetched
			TeacherDeskAuthError: the session needs re-authentication
		"""
		generation, _, _ = self._begin(STREAM_ROSTER, STREAM_ATTENDANCE, STREAM_MARKS)
		self._drop_edits("roster change")
		self.roster_scope = scope
		self.roster = []
		self._attendance_views = []
		self._mark_views = []
		self.error = None

		try:
			roster = await self.assembler.assemble(scope)
		except TeacherDeskError as err:
			if self._is_current(STREAM_ROSTER, generation):
				self.error = str(err)
				raise
			_LOGGER.debug(f"Ignoring roster failure for replaced scope {scope}: {err}")
			return []

		if not self._is_current(STREAM_ROSTER, generation):
			_LOGGER.warning(f"Discarding stale roster for {scope}")
			return []

		self.roster = roster
		_LOGGER.info(f"Loaded {len(roster)} students for {scope}")

		refreshes = []
		if self.attendance_scope is not None:
			refreshes.append(self.reconcile_attendance(self.attendance_scope.date))
		if self.mark_scope is not None:
			refreshes.append(self.reconcile_marks(self.mark_scope))
		if refreshes:
			await asyncio.gather(*refreshes)
		return roster

	async def reconcile_attendance(self, on_date: date) -> Optional[List[StudentView]]:
		"""Load every roster student's presence for ``on_date``.

		Returns:
			The new views, or None if the date changed while loading
		"""
		scope = AttendanceScope(on_date)
		if scope != self.attendance_scope:
			self._drop_overlay(self.attendance_overlay, "attendance date change")
		self.attendance_scope = scope
		(generation,) = self._begin(STREAM_ATTENDANCE)

		result = await self.reconciler.reconcile_attendance(list(self.roster), on_date)

		if not self._is_current(STREAM_ATTENDANCE, generation):
			_LOGGER.warning(f"Discarding stale attendance for {on_date.isoformat()}")
			return None

		self._attendance_views = result.views
		self._attendance_warnings = result.warnings
		self._log_completeness(result.views, "attendance")
		return result.views

	async def reconcile_marks(self, scope: MarkScope) -> Optional[List[StudentView]]:
		"""Load every roster student's mark for ``scope``.

		Returns:
			The new views, or None if the scope changed while loading
		"""
		if scope != self.mark_scope:
			self._drop_overlay(self.marks_overlay, "mark scope change")
		self.mark_scope = scope
		(generation,) = self._begin(STREAM_MARKS)

		result = await self.reconciler.reconcile_marks(list(self.roster), scope)

		if not self._is_current(STREAM_MARKS, generation):
			_LOGGER.warning(f"Discarding stale marks for {scope}")
			return None

		self._mark_views = result.views
		self._mark_warnings = result.warnings
		self._log_completeness(result.views, "marks")
		return result.views

	def _log_completeness(self, views: List[StudentView], label: str) -> None:
		complete, unavailable = evaluate_history_completeness(views)
		if complete:
			_LOGGER.debug(f"Reconciled {label} for {len(views)} students")
		else:
			_LOGGER.warning(f"{label.capitalize()} history unavailable for students: {unavailable}")

	def _drop_overlay(self, overlay: EditOverlay, reason: str) -> None:
		dropped = overlay.clear()
		if dropped:
			_LOGGER.warning(f"Discarded {dropped} unsaved {overlay.field} edit(s) on {reason}")

	def _drop_edits(self, reason: str) -> None:
		self._drop_overlay(self.attendance_overlay, reason)
		self._drop_overlay(self.marks_overlay, reason)

	# Editing

	def _editable_view(self, views: List[StudentView], student_id: str) -> StudentView:
		for view in views:
			if view.student_id == student_id:
				if not view.history_available:
					raise TeacherDeskValidationError(
						f"History for student {student_id} is unavailable; reload before editing"
					)
				return view
		raise TeacherDeskValidationError(f"Student {student_id} is not in the current roster")

	def stage_presence(self, student_id: str, presence: Presence) -> None:
		"""Record a pending presence edit.

		Staging the stored value, or Unmarked, removes the pending edit.
		"""
		if self.attendance_scope is None:
			raise TeacherDeskValidationError("Select a date before marking attendance")
		view = self._editable_view(self._attendance_views, student_id)
		presence = Presence(presence)

		if presence == Presence.UNMARKED or presence == view.presence:
			self.attendance_overlay.unstage(student_id)
			return
		self.attendance_overlay.stage(student_id, presence, baseline=view.attendance_record)

	def mark_all(self, presence: Presence) -> int:
		"""Apply one presence to every editable student.

		Unmarked clears every pending presence edit.

		Returns:
			Number of pending attendance edits afterwards
		"""
		if self.attendance_scope is None:
			raise TeacherDeskValidationError("Select a date before marking attendance")
		presence = Presence(presence)
		editable = [view for view in self._attendance_views if view.history_available]

		unchanged = [
			view.student_id for view in editable
			if presence == Presence.UNMARKED or view.presence == presence
		]
		self.attendance_overlay.unstage_many(unchanged)
		if presence != Presence.UNMARKED:
			self.attendance_overlay.bulk_stage(
				{view.student_id: view.attendance_record for view in editable if view.presence != presence},
				presence,
			)
		return len(self.attendance_overlay)

	def clear_all(self) -> int:
		"""Reset every student to the stored presence; returns edits dropped."""
		dropped = self.attendance_overlay.clear()
		_LOGGER.debug(f"Cleared {dropped} pending presence edit(s)")
		return dropped

	def stage_mark(self, student_id: str, marks_obtained: Any) -> None:
		"""Record a pending score edit for the active mark scope.

		Raises:
			TeacherDeskValidationError: the score is outside 0..total marks
		"""
		if self.mark_scope is None:
			raise TeacherDeskValidationError("Select subject, exam type and semester before entering marks")
		view = self._editable_view(self._mark_views, student_id)
		baseline = view.current_mark
		value = validate_marks_value(marks_obtained, baseline.total_marks if baseline else DEFAULT_TOTAL_MARKS)

		if baseline is not None and value == baseline.marks_obtained:
			self.marks_overlay.unstage(student_id)
			return
		self.marks_overlay.stage(student_id, value, baseline=baseline)

	def discard_attendance(self) -> int:
		return self.attendance_overlay.clear()

	def discard_marks(self) -> int:
		return self.marks_overlay.clear()

	@property
	def dirty_count(self) -> int:
		return len(self.attendance_overlay) + len(self.marks_overlay)

	# Commit

	async def commit_attendance(self) -> CommitResult:
		"""Save pending presence edits for the selected date.

		Views are reloaded whenever at least one write succeeded, so edits
		kept after a partial failure point at the stored records.

		Raises:
			InvalidCommitWindowError: the selected date is not today
		"""
		scope = self.attendance_scope
		if scope is None:
			raise TeacherDeskValidationError("No attendance date selected")

		result = await self.resolver.commit_attendance(self.attendance_overlay, scope.date, self._today())
		if result.succeeded and self.attendance_scope == scope:
			result.refreshed = await self.reconcile_attendance(scope.date) is not None
			if result.refreshed:
				self._rebase(
					self.attendance_overlay,
					self._attendance_views,
					lambda view: view.attendance_record,
					lambda view: view.presence,
				)
		return result

	async def commit_marks(self) -> CommitResult:
		"""Save pending score edits for the selected mark scope."""
		scope = self.mark_scope
		if scope is None:
			raise TeacherDeskValidationError("No mark scope selected")

		result = await self.resolver.commit_marks(self.marks_overlay, scope, self._now())
		if result.succeeded and self.mark_scope == scope:
			result.refreshed = await self.reconcile_marks(scope) is not None
			if result.refreshed:
				self._rebase(
					self.marks_overlay,
					self._mark_views,
					lambda view: view.current_mark,
					lambda view: view.current_mark.marks_obtained if view.current_mark else None,
				)
		return result

	def _rebase(
		self,
		overlay: EditOverlay,
		views: List[StudentView],
		baseline_of: Callable[[StudentView], Any],
		value_of: Callable[[StudentView], Any],
	) -> None:
		"""Point edits left in the overlay at the freshly loaded baselines."""
		by_student = {view.student_id: view for view in views}
		for entry in overlay.entries():
			view = by_student.get(entry.student_id)
			if view is None or not view.history_available:
				continue
			if value_of(view) == entry.value:
				overlay.consume(entry)
			elif baseline_of(view) is not entry.baseline:
				overlay.stage(entry.student_id, entry.value, baseline=baseline_of(view))

	# Snapshot

	def snapshot(self) -> RosterSnapshot:
		"""Read-only copy of the current view state with pending edits applied."""
		attendance_views = []
		for view in self._attendance_views:
			entry = self.attendance_overlay.get(view.student_id)
			attendance_views.append(replace(view, presence=entry.value) if entry else replace(view))

		mark_views = []
		for view in self._mark_views:
			entry = self.marks_overlay.get(view.student_id)
			if entry is None:
				mark_views.append(replace(view))
			elif view.current_mark is not None:
				mark_views.append(replace(view, current_mark=replace(view.current_mark, marks_obtained=entry.value)))
			else:
				mark_views.append(replace(view, current_mark=self._provisional_mark(view.student_id, entry.value)))

		return RosterSnapshot(
			roster_scope=self.roster_scope,
			attendance_scope=self.attendance_scope,
			mark_scope=self.mark_scope,
			roster=list(self.roster),
			attendance_views=attendance_views,
			mark_views=mark_views,
			dirty_attendance=len(self.attendance_overlay),
			dirty_marks=len(self.marks_overlay),
			error=self.error,
			warnings=self._attendance_warnings + self._mark_warnings,
		)

	def _provisional_mark(self, student_id: str, value: float) -> Mark:
		scope = self.mark_scope
		return Mark(
			record_id="",
			student_id=student_id,
			subject=scope.subject,
			marks_obtained=value,
			exam_type=scope.exam_type,
			semester=scope.semester,
			total_marks=DEFAULT_TOTAL_MARKS,
		)

	# Dashboard and profiles

	async def load_dashboard(self) -> DashboardSnapshot:
		"""Fetch every source concurrently and derive the dashboard.

		A failed source is logged and treated as empty.
		"""
		sources = {
			SOURCE_STUDENTS: self.client.list_students,
			SOURCE_HOMEWORK: self.client.list_homework,
			SOURCE_MARKS: self.client.list_marks,
			SOURCE_ATTENDANCE: self.client.list_attendance,
			SOURCE_NOTICES: self.client.list_notices,
			SOURCE_CALENDAR: self.client.list_calendar_events,
		}
		data, unavailable = await self._gather_sources(sources)
		now = self._now()

		return DashboardSnapshot(
			stats=dashboard_stats(
				data[SOURCE_STUDENTS], data[SOURCE_HOMEWORK], data[SOURCE_MARKS],
				data[SOURCE_ATTENDANCE], data[SOURCE_NOTICES], now,
			),
			activities=build_activity_feed(
				data[SOURCE_HOMEWORK], data[SOURCE_ATTENDANCE], data[SOURCE_MARKS],
				data[SOURCE_NOTICES], now,
			),
			upcoming=build_upcoming_events(data[SOURCE_HOMEWORK], data[SOURCE_CALENDAR], now),
			unavailable_sources=unavailable,
		)

	async def load_student_profile(self, student_id: str) -> StudentProfile:
		"""Marks and attendance for one student."""
		student = next((s for s in self.roster if s.student_id == student_id), None)
		if student is None:
			students = await self.client.list_students()
			student = next((s for s in students if s.student_id == student_id), None)
		if student is None:
			raise TeacherDeskNotFoundError(f"Student {student_id} not found", 404)

		data, unavailable = await self._gather_sources({
			SOURCE_MARKS: lambda: self.client.list_marks(student_id),
			SOURCE_ATTENDANCE: lambda: self.client.list_attendance(student_id),
		})
		return StudentProfile(
			student=student,
			marks=data[SOURCE_MARKS],
			attendance=attendance_summary(data[SOURCE_ATTENDANCE]),
			recent_attendance=recent_attendance(data[SOURCE_ATTENDANCE]),
			overall=overall_grade(data[SOURCE_MARKS]),
			errors=[f"Failed to load {source}" for source in unavailable],
		)

	async def load_attendance_history(self) -> List[DailyAttendance]:
		"""Per-date class attendance across every stored record."""
		return attendance_history(await self.client.list_attendance())

	async def _gather_sources(self, sources: Dict[str, Callable]) -> Tuple[Dict[str, list], List[str]]:
		names = list(sources)
		results = await asyncio.gather(*(sources[name]() for name in names), return_exceptions=True)

		data: Dict[str, list] = {}
		unavailable: List[str] = []
		for name, result in zip(names, results):
			if isinstance(result, TeacherDeskAuthError):
				raise result
			if isinstance(result, TeacherDeskError):
				_LOGGER.warning(f"Failed to load {name}: {result}")
				data[name] = []
				unavailable.append(name)
			elif isinstance(result, BaseException):
				raise result
			else:
				data[name] = result
		return data, unavailable

	# Record forms

	async def create_mark(self, payload: Dict[str, Any]) -> Optional[Mark]:
		mark = await self.client.create_record(EntityKind.MARK, validate_mark(payload))
		await self._refresh_marks()
		return mark

	async def update_mark(self, record_id: str, payload: Dict[str, Any]) -> Optional[Mark]:
		mark = await self.client.update_record(EntityKind.MARK, record_id, validate_mark_update(payload))
		await self._refresh_marks()
		return mark

	async def delete_mark(self, record_id: str) -> None:
		await self.client.delete_record(EntityKind.MARK, record_id)
		await self._refresh_marks()

	async def _refresh_marks(self) -> None:
		if self.mark_scope is not None and self.roster:
			await self.reconcile_marks(self.mark_scope)

	async def create_homework(self, payload: Dict[str, Any]) -> Optional[Homework]:
		"""Validate and create homework; the due date must follow the assign date."""
		return await self.client.create_record(EntityKind.HOMEWORK, validate_homework(payload))

	async def update_homework(self, record_id: str, payload: Dict[str, Any]) -> Optional[Homework]:
		return await self.client.update_record(EntityKind.HOMEWORK, record_id, validate_homework_update(payload))

	async def delete_homework(self, record_id: str) -> None:
		await self.client.delete_record(EntityKind.HOMEWORK, record_id)

	# Notices

	async def load_notices(self) -> NoticeBoard:
		notices = await self.client.list_notices()
		return NoticeBoard(
			notices=newest_first(notices, lambda item: item.date),
			stats=notice_statistics(notices, self._now()),
		)

	async def load_notices_by_date(self, on_date: date) -> List[Notice]:
		return await self.client.list_notices_by_date(on_date)

	async def create_notice(self, payload: Dict[str, Any]) -> Optional[Notice]:
		"""Validate and create a notice for one class.

		Raises:
			TeacherDeskValidationError: class, title, description or date missing
		"""
		return await self.client.create_record(EntityKind.NOTICE, validate_notice(payload))

	async def delete_notice(self, record_id: str) -> None:
		await self.client.delete_record(EntityKind.NOTICE, record_id)
