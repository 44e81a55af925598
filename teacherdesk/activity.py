"""Recent-activity and upcoming-event feeds merged from several sources."""

import logging
from datetime import datetime
from typing import Iterable, List, Sequence

from .const import (
	ACTIVITY_ASSIGNMENT,
	ACTIVITY_ATTENDANCE,
	ACTIVITY_LIMIT,
	ACTIVITY_MARKS,
	ACTIVITY_NOTICE,
	ACTIVITY_PER_SOURCE,
	UPCOMING_LIMIT,
)
from .records.models import (
	ActivityItem, AttendanceRecord, CalendarEvent, Homework, Mark, Notice, UpcomingEvent,
)
from .records.utils import newest_first, parse_datetime

_LOGGER = logging.getLogger(__name__)


def relative_time(timestamp: datetime, now: datetime) -> str:
	"""Human-relative age of ``timestamp``."""
	hours = int((now - timestamp).total_seconds() // 3600)
	if hours < 1:
		return "just now"
	if hours < 24:
		return f"{hours} hours ago"

	days = hours // 24
	if days == 1:
		return "yesterday"
	if days < 7:
		return f"{days} days ago"
	return timestamp.strftime("%b %d")


def _attendance_time(record: AttendanceRecord) -> datetime:
	return parse_datetime(record.date)


def build_activity_feed(
	homework: Sequence[Homework],
	attendance: Sequence[AttendanceRecord],
	marks: Sequence[Mark],
	notices: Sequence[Notice],
	now: datetime,
	per_source: int = ACTIVITY_PER_SOURCE,
	limit: int = ACTIVITY_LIMIT,
) -> List[ActivityItem]:
	"""Most recent items from each source, merged newest first.

	Each source contributes at most ``per_source`` items; the merged feed is
	truncated to ``limit`` only after merging.
	"""
	items: List[ActivityItem] = []

	for hw in newest_first(homework, lambda item: item.timestamp)[:per_source]:
		items.append(ActivityItem(
			record_id=hw.record_id,
			kind=ACTIVITY_ASSIGNMENT,
			title="Assignment Created",
			description=hw.title,
			timestamp=hw.timestamp,
			time=relative_time(hw.timestamp, now),
			context=f"Student: {hw.student_id}",
		))

	for record in newest_first(attendance, _attendance_time)[:per_source]:
		timestamp = _attendance_time(record)
		items.append(ActivityItem(
			record_id=record.record_id,
			kind=ACTIVITY_ATTENDANCE,
			title="Attendance Marked",
			description=f"{record.status.value} for student {record.student_id}",
			timestamp=timestamp,
			time=relative_time(timestamp, now),
			context=f"Student: {record.student_id}",
		))

	dated_marks = [mark for mark in marks if mark.date is not None]
	for mark in newest_first(dated_marks, lambda item: item.date)[:per_source]:
		total = f"{mark.total_marks:g}" if mark.total_marks is not None else "?"
		items.append(ActivityItem(
			record_id=mark.record_id,
			kind=ACTIVITY_MARKS,
			title="Marks Entered",
			description=f"{mark.subject}: {mark.marks_obtained:g}/{total}",
			timestamp=mark.date,
			time=relative_time(mark.date, now),
			context=f"Student: {mark.student_id}",
		))

	for notice in newest_first(notices, lambda item: item.date)[:per_source]:
		items.append(ActivityItem(
			record_id=notice.record_id,
			kind=ACTIVITY_NOTICE,
			title="Notice Sent",
			description=notice.title,
			timestamp=notice.date,
			time=relative_time(notice.date, now),
			context=notice.class_id,
		))

	items.sort(key=lambda item: item.timestamp, reverse=True)
	return items[:limit]


def build_upcoming_events(
	homework: Iterable[Homework],
	events: Iterable[CalendarEvent],
	now: datetime,
	limit: int = UPCOMING_LIMIT,
) -> List[UpcomingEvent]:
	"""Homework due dates and calendar events strictly after ``now``, soonest first."""
	upcoming: List[UpcomingEvent] = []

	for hw in homework:
		if hw.due_date > now:
			upcoming.append(UpcomingEvent(
				record_id=hw.record_id,
				title=hw.title,
				kind=ACTIVITY_ASSIGNMENT,
				date=hw.due_date,
				context=f"Student: {hw.student_id}",
				description=hw.description,
			))

	for event in events:
		if event.date > now:
			upcoming.append(UpcomingEvent(
				record_id=event.record_id,
				title=event.title,
				kind=event.category.value.lower(),
				date=event.date,
				description=event.description,
			))

	upcoming.sort(key=lambda item: item.date)
	return upcoming[:limit]
