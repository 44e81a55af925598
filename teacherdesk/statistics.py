"""Derived numbers for attendance, marks and the dashboard.

Students or records without a usable value are left out of averages and
percentages; they are never counted as zero. Functions return None where a
figure is undefined (for example a class percentage on a date nobody was
marked).
"""

import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from .const import (
	FAILING_GRADE,
	GRADE_THRESHOLDS,
	HOMEWORK_ACTIVE,
	HOMEWORK_DUE_TODAY,
	HOMEWORK_OVERDUE,
	PASS_PERCENTAGE,
	RECENT_ATTENDANCE_LIMIT,
	RECENT_NOTICE_DAYS,
)
from .history_guard import available_views
from .overlay import EditOverlay
from .roster import class_count
from .records.models import (
	AttendanceRecord, AttendanceSummary, DailyAttendance, DashboardStats, Homework,
	Mark, MarkStatistics, Notice, NoticeStats, OverallGrade, Presence, PresenceSummary, Student,
	StudentView,
)

_LOGGER = logging.getLogger(__name__)


# Attendance

def attendance_percentage(total_present: int, total_days: int) -> float:
	"""Percentage of days present; 0 when no days have been recorded."""
	if total_days <= 0:
		return 0.0
	return total_present / total_days * 100


def attendance_summary(records: Sequence[AttendanceRecord]) -> AttendanceSummary:
	"""Cumulative totals taken from the student's most recent record."""
	if not records:
		return AttendanceSummary()
	latest = max(records, key=lambda record: record.date)
	return AttendanceSummary(
		total_days=latest.total_days,
		present_days=latest.total_present,
		absent_days=latest.total_days - latest.total_present,
		percentage=attendance_percentage(latest.total_present, latest.total_days),
	)


def recent_attendance(records: Sequence[AttendanceRecord], limit: int = RECENT_ATTENDANCE_LIMIT) -> List[AttendanceRecord]:
	return sorted(records, key=lambda record: record.date, reverse=True)[:limit]


def class_attendance_percentage(records: Iterable[AttendanceRecord], on_date: date) -> Optional[float]:
	"""Present share among students with a record on ``on_date``.

	Returns None when there are no records for that date.
	"""
	day = [record for record in records if record.date == on_date]
	if not day:
		return None
	present = sum(1 for record in day if record.status == Presence.PRESENT)
	return present / len(day) * 100


def attendance_history(records: Iterable[AttendanceRecord]) -> List[DailyAttendance]:
	"""Per-date class totals, newest date first."""
	by_date: Dict[date, DailyAttendance] = OrderedDict()
	for record in records:
		day = by_date.get(record.date)
		if day is None:
			day = by_date[record.date] = DailyAttendance(date=record.date, total=0, present=0, absent=0)
		day.total += 1
		if record.status == Presence.PRESENT:
			day.present += 1
		else:
			day.absent += 1
	return sorted(by_date.values(), key=lambda day: day.date, reverse=True)


def effective_presence(view: StudentView, overlay: Optional[EditOverlay] = None) -> Presence:
	"""Presence with any pending edit applied."""
	if overlay is not None:
		return overlay.value_for(view.student_id, view.presence)
	return view.presence


def presence_summary(views: Sequence[StudentView], overlay: Optional[EditOverlay] = None) -> PresenceSummary:
	"""Live counts for the marking grid.

	The percentage is over marked students only; students whose history could
	not be loaded count toward the total but not toward any bucket.
	"""
	summary = PresenceSummary(total=len(views))
	for view in available_views(views):
		presence = effective_presence(view, overlay)
		if presence == Presence.PRESENT:
			summary.present += 1
		elif presence == Presence.ABSENT:
			summary.absent += 1
		else:
			summary.unmarked += 1

	marked = summary.present + summary.absent
	if marked:
		summary.percentage = summary.present / marked * 100
	return summary


# Marks

def letter_grade(percentage: float) -> str:
	"""Letter for a percentage; each threshold is an inclusive lower bound."""
	for threshold, grade in GRADE_THRESHOLDS:
		if percentage >= threshold:
			return grade
	return FAILING_GRADE


def mark_percentages(marks: Iterable[Optional[Mark]]) -> List[float]:
	"""Percentages of the marks whose denominator is known."""
	percentages = []
	for mark in marks:
		if mark is None:
			continue
		percentage = mark.percentage
		if percentage is None:
			_LOGGER.debug(f"Leaving out mark {mark.record_id} with no total marks")
			continue
		percentages.append(percentage)
	return percentages


def class_average(views: Sequence[StudentView]) -> Optional[float]:
	"""Mean percentage over students with a resolved mark."""
	percentages = mark_percentages(view.current_mark for view in available_views(views))
	if not percentages:
		return None
	return sum(percentages) / len(percentages)


def average_mark_percentage(marks: Iterable[Mark]) -> Optional[float]:
	percentages = mark_percentages(marks)
	if not percentages:
		return None
	return sum(percentages) / len(percentages)


def mark_statistics(views: Sequence[StudentView]) -> MarkStatistics:
	"""Average, spread and pass count for the marks grid."""
	percentages = mark_percentages(view.current_mark for view in available_views(views))
	if not percentages:
		return MarkStatistics()
	return MarkStatistics(
		total=len(percentages),
		passed=sum(1 for percentage in percentages if percentage >= PASS_PERCENTAGE),
		average=sum(percentages) / len(percentages),
		highest=max(percentages),
		lowest=min(percentages),
	)


def overall_grade(marks: Sequence[Mark]) -> OverallGrade:
	"""Grade over all of a student's marks, weighted by total marks."""
	usable = [mark for mark in marks if mark.total_marks]
	total = sum(mark.total_marks for mark in usable)
	if not total:
		return OverallGrade()
	percentage = sum(mark.marks_obtained for mark in usable) / total * 100
	return OverallGrade(grade=letter_grade(percentage), percentage=percentage)


# Homework

def homework_status(homework: Homework, now: datetime) -> str:
	if homework.due_date.date() == now.date():
		return HOMEWORK_DUE_TODAY
	if homework.due_date < now:
		return HOMEWORK_OVERDUE
	return HOMEWORK_ACTIVE


# Notices

def notice_statistics(notices: Sequence[Notice], now: datetime) -> NoticeStats:
	"""Count all notices, those dated today and those from the last week."""
	today = now.date()
	recent_cutoff = now - timedelta(days=RECENT_NOTICE_DAYS)
	return NoticeStats(
		total=len(notices),
		today=sum(1 for notice in notices if notice.date.date() == today),
		recent=sum(1 for notice in notices if notice.date >= recent_cutoff),
	)


# Dashboard

def dashboard_stats(
	students: Sequence[Student],
	homework: Sequence[Homework],
	marks: Sequence[Mark],
	attendance: Sequence[AttendanceRecord],
	notices: Sequence[Notice],
	now: datetime,
) -> DashboardStats:
	"""Headline numbers for the dashboard."""
	today = now.date()
	return DashboardStats(
		total_students=len(students),
		total_classes=class_count(students),
		assigned_today=sum(1 for item in homework if item.timestamp.date() == today),
		today_attendance=class_attendance_percentage(attendance, today),
		average_marks=average_mark_percentage(marks),
		active_students=sum(1 for student in students if student.session_status(now) == "Active"),
		recent_notices=notice_statistics(notices, now).recent,
	)
