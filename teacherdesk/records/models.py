"""Data models for Teacher Desk entities and view state."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class EntityKind(str, Enum):
	"""Record collections exposed by the record store."""
	STUDENT = "students"
	ATTENDANCE = "Attendance"
	MARK = "Marks"
	HOMEWORK = "Homework"
	NOTICE = "Notice"
	CALENDAR_EVENT = "Calendar"


class Presence(str, Enum):
	"""Attendance state of a student on one date."""
	PRESENT = "Present"
	ABSENT = "Absent"
	UNMARKED = "Unmarked"


class ExamType(str, Enum):
	MIDTERM = "Midterm"
	FINAL = "Final"
	CLASS_TEST = "Class Test"

	@classmethod
	def parse(cls, value: Any) -> "ExamType":
		"""Accept both the display form and the compact form (ClassTest)."""
		if isinstance(value, cls):
			return value
		text = str(value or "").strip()
		for member in cls:
			if text.replace(" ", "").lower() == member.value.replace(" ", "").lower():
				return member
		raise ValueError(f"Unknown exam type: {value!r}")


class EventCategory(str, Enum):
	HOLIDAY = "Holiday"
	EXAM = "Exam"
	EVENT = "Event"
	REMINDER = "Reminder"
	OTHER = "Other"


@dataclass
class TeacherProfile:
	"""The signed-in teacher."""
	record_id: str
	teacher_id: str
	first_name: str
	last_name: Optional[str] = None
	address: Optional[str] = None
	email: Optional[str] = None

	@property
	def full_name(self) -> str:
		return f"{self.first_name} {self.last_name}" if self.last_name else self.first_name


@dataclass
class Student:
	"""A student as stored in the record store."""
	student_id: str
	first_name: str
	grade: int
	section: Optional[str] = None
	last_name: Optional[str] = None
	email: Optional[str] = None
	record_id: Optional[str] = None
	address: Optional[str] = None
	session_expiry: Optional[datetime] = None

	@property
	def full_name(self) -> str:
		return f"{self.first_name} {self.last_name}" if self.last_name else self.first_name

	@property
	def class_key(self) -> str:
		return f"{self.grade}-{self.section}"

	def session_status(self, now: datetime) -> str:
		"""Get the login session state relative to ``now``."""
		if not self.session_expiry:
			return "Inactive"
		return "Active" if self.session_expiry > now else "Expired"

	def __str__(self) -> str:
		return f"{self.full_name} ({self.student_id}, grade {self.grade}{self.section or ''})"


@dataclass
class AttendanceRecord:
	"""One attendance entry; totals are cumulative as of ``date``."""
	record_id: str
	student_id: str
	date: date
	status: Presence
	total_days: int = 0
	total_present: int = 0

	def __str__(self) -> str:
		return f"{self.student_id} {self.status.value} on {self.date.isoformat()}"


@dataclass
class Mark:
	"""A mark for one (student, subject, exam type, semester) scope."""
	record_id: str
	student_id: str
	subject: str
	marks_obtained: float
	exam_type: ExamType
	semester: str
	total_marks: Optional[float] = None
	date: Optional[datetime] = None

	@property
	def percentage(self) -> Optional[float]:
		"""Percentage score, or None when the denominator is unknown."""
		if not self.total_marks:
			return None
		return self.marks_obtained / self.total_marks * 100

	def __str__(self) -> str:
		total = self.total_marks if self.total_marks is not None else "?"
		return f"{self.subject}: {self.marks_obtained}/{total} ({self.exam_type.value}, {self.semester})"


@dataclass
class Homework:
	"""A homework assignment."""
	record_id: str
	student_id: str
	title: str
	assign_date: datetime
	due_date: datetime
	description: str = ""
	created: Optional[datetime] = None

	@property
	def timestamp(self) -> datetime:
		return self.created or self.assign_date


@dataclass
class Notice:
	"""A notice sent to a class."""
	record_id: str
	title: str
	date: datetime
	class_id: Optional[str] = None
	teacher_id: Optional[str] = None
	description: str = ""


@dataclass
class CalendarEvent:
	"""A calendar entry."""
	record_id: str
	title: str
	date: datetime
	category: EventCategory = EventCategory.OTHER
	description: Optional[str] = None
	created_at: Optional[datetime] = None


@dataclass(frozen=True)
class RosterScope:
	"""Grade/section filter; None means match all."""
	grade: Optional[int] = None
	section: Optional[str] = None


@dataclass(frozen=True)
class MarkScope:
	subject: str
	exam_type: ExamType
	semester: str


@dataclass(frozen=True)
class AttendanceScope:
	date: date


@dataclass
class StudentView:
	"""A student merged with the history selected for the active scope."""
	student: Student
	presence: Presence = Presence.UNMARKED
	current_mark: Optional[Mark] = None
	attendance_record: Optional[AttendanceRecord] = None
	history_available: bool = True
	history_error: Optional[str] = None

	@property
	def student_id(self) -> str:
		return self.student.student_id


@dataclass
class DirtyEntry:
	"""A pending local edit and the baseline record it would replace."""
	student_id: str
	field: str
	value: Any
	baseline: Optional[Any] = None

	@property
	def is_create(self) -> bool:
		return self.baseline is None


@dataclass
class CommitResult:
	"""Outcome of one commit batch."""
	submitted: int = 0
	succeeded: List[str] = field(default_factory=list)
	failed: Dict[str, str] = field(default_factory=dict)
	refreshed: bool = False

	@property
	def success(self) -> bool:
		return not self.failed

	def __str__(self) -> str:
		if not self.submitted:
			return "No pending changes"
		if self.success:
			return f"Saved {len(self.succeeded)} change(s)"
		return f"Saved {len(self.succeeded)} of {self.submitted} change(s); {len(self.failed)} failed"


@dataclass
class RosterSnapshot:
	"""Read-only state handed to the UI."""
	roster_scope: Optional[RosterScope]
	attendance_scope: Optional[AttendanceScope]
	mark_scope: Optional[MarkScope]
	roster: List[Student] = field(default_factory=list)
	attendance_views: List[StudentView] = field(default_factory=list)
	mark_views: List[StudentView] = field(default_factory=list)
	dirty_attendance: int = 0
	dirty_marks: int = 0
	error: Optional[str] = None
	warnings: List[str] = field(default_factory=list)

	@property
	def has_unsaved_changes(self) -> bool:
		return bool(self.dirty_attendance or self.dirty_marks)


@dataclass
class AttendanceSummary:
	total_days: int = 0
	present_days: int = 0
	absent_days: int = 0
	percentage: float = 0.0


@dataclass
class DailyAttendance:
	"""Class attendance totals for one date."""
	date: date
	total: int
	present: int
	absent: int

	@property
	def percentage(self) -> float:
		return self.present / self.total * 100


@dataclass
class PresenceSummary:
	total: int = 0
	present: int = 0
	absent: int = 0
	unmarked: int = 0
	percentage: Optional[float] = None


@dataclass
class MarkStatistics:
	total: int = 0
	passed: int = 0
	average: Optional[float] = None
	highest: Optional[float] = None
	lowest: Optional[float] = None


@dataclass
class OverallGrade:
	grade: Optional[str] = None
	percentage: Optional[float] = None


@dataclass
class ActivityItem:
	"""An entry in the recent activity feed."""
	record_id: str
	kind: str  # "assignment", "attendance", "marks", "notice"
	title: str
	description: str
	timestamp: datetime
	time: str
	context: Optional[str] = None


@dataclass
class UpcomingEvent:
	"""A future homework due date or calendar event."""
	record_id: str
	title: str
	kind: str  # "assignment" or the lower-cased event category
	date: datetime
	context: Optional[str] = None
	description: Optional[str] = None


@dataclass
class DashboardStats:
	total_students: int = 0
	total_classes: int = 0
	assigned_today: int = 0
	today_attendance: Optional[float] = None
	average_marks: Optional[float] = None
	active_students: int = 0
	recent_notices: int = 0


@dataclass
class NoticeStats:
	total: int = 0
	today: int = 0
	recent: int = 0


@dataclass
class NoticeBoard:
	"""Notices newest first with their counts."""
	notices: List[Notice]
	stats: NoticeStats


@dataclass
class DashboardSnapshot:
	stats: DashboardStats
	activities: List[ActivityItem]
	upcoming: List[UpcomingEvent]
	unavailable_sources: List[str] = field(default_factory=list)


@dataclass
class StudentProfile:
	"""A single student's marks and attendance history."""
	student: Student
	marks: List[Mark]
	attendance: AttendanceSummary
	recent_attendance: List[AttendanceRecord]
	overall: OverallGrade
	errors: List[str] = field(default_factory=list)
