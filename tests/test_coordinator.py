"""End-to-end tests for the roster engine against an in-memory store."""

import asyncio
import logging
from datetime import timedelta

import pytest

from conftest import NOW, TODAY, FakeRecordClient, make_attendance, make_mark
from teacherdesk.coordinator import TeacherDeskCoordinator
from teacherdesk.records.exceptions import (
	InvalidCommitWindowError,
	RosterUnavailableError,
	TeacherDeskAPIError,
	TeacherDeskAuthError,
	TeacherDeskNotFoundError,
	TeacherDeskValidationError,
)
from teacherdesk.records.models import (
	CalendarEvent, EntityKind, EventCategory, ExamType, Homework, MarkScope,
	Notice, Presence, RosterScope,
)

YESTERDAY = TODAY - timedelta(days=1)
CLASS_5A = RosterScope(grade=5, section="A")
MATH = MarkScope("Math", ExamType.MIDTERM, "Spring 2024")


@pytest.fixture
def client(students):
	return FakeRecordClient(
		students=students,
		attendance=[
			make_attendance("a1", "s1", status=Presence.PRESENT),
			make_attendance("a0", "s1", on_date=YESTERDAY, status=Presence.ABSENT),
		],
		marks=[make_mark("m1", "s1", marks_obtained=85)],
	)


@pytest.fixture
def coordinator(client):
	return TeacherDeskCoordinator(client, today=lambda: TODAY, now=lambda: NOW)


def run_attendance(coordinator, on_date=TODAY):
	async def scenario():
		await coordinator.select_roster(CLASS_5A)
		await coordinator.reconcile_attendance(on_date)
	asyncio.run(scenario())


def test_select_roster(coordinator):
	roster = asyncio.run(coordinator.select_roster(CLASS_5A))

	assert [s.student_id for s in roster] == ["s1", "s2", "s3"]
	assert coordinator.snapshot().roster_scope == CLASS_5A
	assert coordinator.error is None


def test_roster_failure_leaves_empty_errored_roster(coordinator, client, unreachable):
	asyncio.run(coordinator.select_roster(CLASS_5A))
	client.failures["list_students"] = unreachable

	with pytest.raises(RosterUnavailableError):
		asyncio.run(coordinator.select_roster(RosterScope(grade=6)))

	snapshot = coordinator.snapshot()
	assert snapshot.roster == []
	assert snapshot.attendance_views == []
	assert "Failed to load students" in snapshot.error


def test_roster_change_reconciles_active_scopes(coordinator):
	async def scenario():
		await coordinator.select_roster(CLASS_5A)
		await coordinator.reconcile_attendance(TODAY)
		await coordinator.reconcile_marks(MATH)
		await coordinator.select_roster(RosterScope(grade=6))
	asyncio.run(scenario())

	snapshot = coordinator.snapshot()
	assert [v.student_id for v in snapshot.attendance_views] == ["s4"]
	assert [v.student_id for v in snapshot.mark_views] == ["s4"]


def test_attendance_views_follow_selected_date(coordinator):
	run_attendance(coordinator)
	views = {v.student_id: v for v in coordinator.snapshot().attendance_views}
	assert views["s1"].presence == Presence.PRESENT
	assert views["s2"].presence == Presence.UNMARKED

	asyncio.run(coordinator.reconcile_attendance(YESTERDAY))
	views = {v.student_id: v for v in coordinator.snapshot().attendance_views}
	assert views["s1"].presence == Presence.ABSENT


def test_stale_attendance_response_is_discarded(coordinator, client):
	async def scenario():
		await coordinator.select_roster(CLASS_5A)
		client.delays["list_attendance"] = 0.05
		slow = asyncio.ensure_future(coordinator.reconcile_attendance(YESTERDAY))
		await asyncio.sleep(0.01)
		client.delays.clear()
		fresh = await coordinator.reconcile_attendance(TODAY)
		stale = await slow
		return stale, fresh

	stale, fresh = asyncio.run(scenario())

	assert stale is None
	assert fresh is not None
	snapshot = coordinator.snapshot()
	assert snapshot.attendance_scope.date == TODAY
	views = {v.student_id: v for v in snapshot.attendance_views}
	assert views["s1"].presence == Presence.PRESENT


def test_roster_change_discards_in_flight_marks(coordinator, client):
	async def scenario():
		await coordinator.select_roster(CLASS_5A)
		client.delays["list_marks"] = 0.05
		slow = asyncio.ensure_future(coordinator.reconcile_marks(MATH))
		await asyncio.sleep(0.01)
		client.delays.clear()
		await coordinator.select_roster(RosterScope(grade=6))
		return await slow

	assert asyncio.run(scenario()) is None
	assert [v.student_id for v in coordinator.snapshot().mark_views] == ["s4"]


def test_staging_overlays_baseline_without_writing(coordinator, client):
	run_attendance(coordinator)

	coordinator.stage_presence("s1", Presence.ABSENT)
	coordinator.stage_presence("s2", Presence.PRESENT)
	coordinator.stage_presence("s3", Presence.PRESENT)
	coordinator.stage_presence("s3", Presence.UNMARKED)

	snapshot = coordinator.snapshot()
	views = {v.student_id: v for v in snapshot.attendance_views}
	assert views["s1"].presence == Presence.ABSENT
	assert views["s2"].presence == Presence.PRESENT
	assert views["s3"].presence == Presence.UNMARKED
	assert snapshot.dirty_attendance == 2
	assert snapshot.has_unsaved_changes
	assert client.writes == []

	coordinator.stage_presence("s1", Presence.PRESENT)
	assert coordinator.dirty_count == 1


def test_commit_writes_refreshes_and_is_idempotent(coordinator, client):
	run_attendance(coordinator)
	coordinator.stage_presence("s1", Presence.ABSENT)
	coordinator.stage_presence("s2", Presence.PRESENT)

	result = asyncio.run(coordinator.commit_attendance())

	assert result.success
	assert result.refreshed
	assert coordinator.dirty_count == 0
	actions = sorted((write[0], write[2]) for write in client.writes)
	assert actions == [("create", "s2"), ("update", "a1")]
	views = {v.student_id: v for v in coordinator.snapshot().attendance_views}
	assert views["s1"].presence == Presence.ABSENT
	assert views["s2"].presence == Presence.PRESENT
	assert views["s2"].attendance_record is not None

	client.writes.clear()
	again = asyncio.run(coordinator.commit_attendance())
	assert again.submitted == 0
	assert not again.refreshed
	assert client.writes == []


def test_commit_for_past_date_is_rejected(coordinator, client):
	run_attendance(coordinator, YESTERDAY)
	coordinator.stage_presence("s2", Presence.PRESENT)

	with pytest.raises(InvalidCommitWindowError):
		asyncio.run(coordinator.commit_attendance())

	assert client.writes == []
	assert coordinator.dirty_count == 1


def test_partial_commit_failure_keeps_failed_edits(coordinator, client):
	run_attendance(coordinator)
	coordinator.mark_all(Presence.ABSENT)
	client.write_failures["s2"] = TeacherDeskAPIError("server error", 500)

	result = asyncio.run(coordinator.commit_attendance())

	assert sorted(result.succeeded) == ["s1", "s3"]
	assert list(result.failed) == ["s2"]
	assert result.refreshed
	assert [entry.student_id for entry in coordinator.attendance_overlay] == ["s2"]
	views = {v.student_id: v for v in coordinator.snapshot().attendance_views}
	assert views["s3"].attendance_record is not None
	assert views["s2"].presence == Presence.ABSENT


def test_edit_after_partial_failure_updates_created_record(coordinator, client):
	run_attendance(coordinator)
	coordinator.stage_presence("s2", Presence.PRESENT)
	coordinator.stage_presence("s3", Presence.PRESENT)
	client.write_failures["s3"] = TeacherDeskAPIError("server error", 500)

	first = asyncio.run(coordinator.commit_attendance())

	assert first.succeeded == ["s2"]
	assert first.refreshed
	views = {v.student_id: v for v in coordinator.snapshot().attendance_views}
	assert views["s2"].attendance_record is not None
	assert [entry.student_id for entry in coordinator.attendance_overlay] == ["s3"]

	coordinator.stage_presence("s2", Presence.ABSENT)
	del client.write_failures["s3"]
	client.writes.clear()
	second = asyncio.run(coordinator.commit_attendance())

	assert second.success
	actions = sorted((write[0], write[2]) for write in client.writes)
	assert actions == [("create", "s3"), ("update", views["s2"].attendance_record.record_id)]
	stored = [r for r in client.attendance if r.student_id == "s2" and r.date == TODAY]
	assert len(stored) == 1
	assert stored[0].status == Presence.ABSENT
	assert len([r for r in client.attendance if r.student_id == "s3"]) == 1
	assert coordinator.dirty_count == 0


def test_mark_edit_after_partial_failure_updates_created_record(coordinator, client):
	async def scenario():
		await coordinator.select_roster(CLASS_5A)
		await coordinator.reconcile_marks(MATH)
		coordinator.stage_mark("s2", 60)
		coordinator.stage_mark("s3", 70)
		client.write_failures["s3"] = TeacherDeskAPIError("server error", 500)
		first = await coordinator.commit_marks()
		coordinator.stage_mark("s2", 65)
		del client.write_failures["s3"]
		second = await coordinator.commit_marks()
		return first, second

	first, second = asyncio.run(scenario())

	assert first.refreshed
	assert second.success
	s2_marks = [m for m in client.marks if m.student_id == "s2"]
	assert len(s2_marks) == 1
	assert s2_marks[0].marks_obtained == 65
	assert len([m for m in client.marks if m.student_id == "s3"]) == 1


def test_unavailable_history_blocks_editing(coordinator, client, unreachable, caplog):
	client.failures[("list_attendance", "s2")] = unreachable
	with caplog.at_level(logging.WARNING):
		run_attendance(coordinator)

	assert "unavailable for students: ['s2']" in caplog.text
	with pytest.raises(TeacherDeskValidationError):
		coordinator.stage_presence("s2", Presence.PRESENT)

	# s1 is already present, s2 cannot be edited
	assert coordinator.mark_all(Presence.PRESENT) == 1
	assert "s3" in coordinator.attendance_overlay
	assert "s2" not in coordinator.attendance_overlay


def test_mark_all_unmarked_clears_pending(coordinator):
	run_attendance(coordinator)
	coordinator.mark_all(Presence.ABSENT)
	assert coordinator.dirty_count == 3

	assert coordinator.mark_all(Presence.UNMARKED) == 0


def test_date_change_discards_pending_edits(coordinator):
	run_attendance(coordinator)
	coordinator.stage_presence("s2", Presence.PRESENT)

	asyncio.run(coordinator.reconcile_attendance(YESTERDAY))

	assert coordinator.dirty_count == 0


def test_auth_error_during_reconcile_propagates(coordinator, client):
	asyncio.run(coordinator.select_roster(CLASS_5A))
	client.failures[("list_attendance", "s3")] = TeacherDeskAuthError("expired")

	with pytest.raises(TeacherDeskAuthError):
		asyncio.run(coordinator.reconcile_attendance(TODAY))


def test_stage_mark_validates_range(coordinator):
	asyncio.run(coordinator.select_roster(CLASS_5A))
	asyncio.run(coordinator.reconcile_marks(MATH))

	with pytest.raises(TeacherDeskValidationError) as info:
		coordinator.stage_mark("s2", 101)
	assert "marksObtained" in info.value.errors

	coordinator.stage_mark("s1", "85")
	assert coordinator.dirty_count == 0
	coordinator.stage_mark("s2", "72.5")
	assert coordinator.marks_overlay.value_for("s2") == 72.5


def test_commit_marks_creates_and_updates(coordinator, client):
	async def scenario():
		await coordinator.select_roster(CLASS_5A)
		await coordinator.reconcile_marks(MATH)
		coordinator.stage_mark("s1", 90)
		coordinator.stage_mark("s2", 60)
		snapshot = coordinator.snapshot()
		result = await coordinator.commit_marks()
		return snapshot, result

	snapshot, result = asyncio.run(scenario())

	pending = {v.student_id: v.current_mark for v in snapshot.mark_views}
	assert pending["s1"].marks_obtained == 90
	assert pending["s2"].record_id == ""
	assert pending["s2"].marks_obtained == 60

	assert result.success and result.refreshed
	views = {v.student_id: v.current_mark for v in coordinator.snapshot().mark_views}
	assert views["s1"].record_id == "m1"
	assert views["s1"].marks_obtained == 90
	assert views["s2"].marks_obtained == 60
	assert views["s2"].exam_type == ExamType.MIDTERM
	assert views["s3"] is None


def test_load_dashboard_tolerates_failed_source(coordinator, client, unreachable):
	client.homework = [Homework(
		record_id="h1", student_id="s1", title="Essay",
		assign_date=NOW - timedelta(hours=3), due_date=NOW + timedelta(days=2),
	)]
	client.events = [CalendarEvent(
		record_id="c1", title="Sports day", date=NOW + timedelta(days=1), category=EventCategory.EVENT,
	)]
	client.failures["list_notices"] = unreachable

	dashboard = asyncio.run(coordinator.load_dashboard())

	assert dashboard.unavailable_sources == ["notices"]
	assert dashboard.stats.total_students == 5
	assert dashboard.stats.total_classes == 3
	assert dashboard.stats.assigned_today == 1
	assert dashboard.stats.today_attendance == 100.0
	assert dashboard.stats.average_marks == 85.0
	assert dashboard.stats.recent_notices == 0
	assert [event.record_id for event in dashboard.upcoming] == ["c1", "h1"]
	assert "h1" in [item.record_id for item in dashboard.activities]


def test_load_dashboard_auth_error(coordinator, client):
	client.failures["list_marks"] = TeacherDeskAuthError("expired")

	with pytest.raises(TeacherDeskAuthError):
		asyncio.run(coordinator.load_dashboard())


def test_student_profile(coordinator, client):
	client.marks.append(make_mark("m2", "s1", subject="Science", marks_obtained=30, total_marks=50))

	profile = asyncio.run(coordinator.load_student_profile("s1"))

	assert profile.student.student_id == "s1"
	assert len(profile.marks) == 2
	assert profile.overall.percentage == pytest.approx(115 / 150 * 100)
	assert profile.overall.grade == "B"
	assert profile.attendance.total_days == 10
	assert profile.attendance.percentage == 80.0
	assert [r.record_id for r in profile.recent_attendance] == ["a1", "a0"]
	assert profile.errors == []


def test_student_profile_unknown_student(coordinator):
	with pytest.raises(TeacherDeskNotFoundError):
		asyncio.run(coordinator.load_student_profile("missing"))


def test_homework_validation_blocks_write(coordinator, client):
	with pytest.raises(TeacherDeskValidationError) as info:
		asyncio.run(coordinator.create_homework({
			"studentID": "s1",
			"title": "Essay",
			"description": "Two pages",
			"assignDate": "2024-03-15",
			"dueDate": "2024-03-10",
		}))
	assert "dueDate" in info.value.errors
	assert client.writes == []

	asyncio.run(coordinator.create_homework({
		"studentID": "s1",
		"title": "Essay",
		"description": "Two pages",
		"assignDate": "2024-03-15",
		"dueDate": "2024-03-20",
	}))
	assert client.writes[0][:3] == ("create", EntityKind.HOMEWORK, "s1")


def test_attendance_history(coordinator, client):
	client.attendance.append(make_attendance("a2", "s2", status=Presence.ABSENT))

	history = asyncio.run(coordinator.load_attendance_history())

	assert [day.date for day in history] == [TODAY, YESTERDAY]
	assert (history[0].present, history[0].absent) == (1, 1)
	assert history[0].percentage == 50.0


def test_clear_all_drops_pending_presence(coordinator):
	run_attendance(coordinator)
	coordinator.stage_presence("s2", Presence.PRESENT)
	coordinator.stage_presence("s3", Presence.ABSENT)

	assert coordinator.clear_all() == 2
	views = {v.student_id: v for v in coordinator.snapshot().attendance_views}
	assert views["s1"].presence == Presence.PRESENT
	assert views["s2"].presence == Presence.UNMARKED


def test_notice_board_and_forms(coordinator, client):
	client.notices = [
		Notice(record_id="n1", title="Old", date=NOW - timedelta(days=20), class_id="5A"),
		Notice(record_id="n2", title="Exams", date=NOW - timedelta(days=2), class_id="5A"),
	]

	with pytest.raises(TeacherDeskValidationError) as info:
		asyncio.run(coordinator.create_notice({"classID": "5A", "title": "", "description": "Bring lunch"}))
	assert set(info.value.errors) == {"title", "date"}
	assert client.writes == []

	created = asyncio.run(coordinator.create_notice({
		"classID": "5A",
		"title": "Trip",
		"description": "Bring lunch",
		"date": NOW.isoformat(),
	}))
	assert client.writes[0][:2] == ("create", EntityKind.NOTICE)

	board = asyncio.run(coordinator.load_notices())
	assert [n.record_id for n in board.notices] == [created.record_id, "n2", "n1"]
	assert (board.stats.total, board.stats.today, board.stats.recent) == (3, 1, 2)

	todays = asyncio.run(coordinator.load_notices_by_date(TODAY))
	assert [n.title for n in todays] == ["Trip"]

	asyncio.run(coordinator.delete_notice("n1"))
	assert client.writes[-1] == ("delete", EntityKind.NOTICE, "n1", None)
	assert [n.record_id for n in client.notices] == ["n2", created.record_id]
