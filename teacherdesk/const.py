"""Constants for the Teacher Desk engine."""

# Configuration
CONF_BASE_URL = "base_url"
CONF_TEACHER_ID = "teacher_id"
CONF_PASSWORD = "password"
CONF_TOKEN = "token"
CONF_REQUEST_TIMEOUT = "request_timeout"

ENV_PREFIX = "TEACHERDESK_"

# Default values
DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_REQUEST_TIMEOUT = 30  # seconds
DEFAULT_TOTAL_MARKS = 100  # denominator for marks created from the grid

# Feed sizes
ACTIVITY_PER_SOURCE = 2
ACTIVITY_LIMIT = 8
UPCOMING_LIMIT = 6
RECENT_ATTENDANCE_LIMIT = 5
RECENT_NOTICE_DAYS = 7

# Grading
PASS_PERCENTAGE = 40
GRADE_THRESHOLDS = (
	(90, "A+"),
	(80, "A"),
	(70, "B"),
	(60, "C"),
	(40, "D"),
)
FAILING_GRADE = "F"

# Overlay fields
FIELD_PRESENCE = "presence"
FIELD_MARKS_OBTAINED = "marks_obtained"

# Activity kinds
ACTIVITY_ASSIGNMENT = "assignment"
ACTIVITY_ATTENDANCE = "attendance"
ACTIVITY_MARKS = "marks"
ACTIVITY_NOTICE = "notice"

# Homework status
HOMEWORK_OVERDUE = "overdue"
HOMEWORK_DUE_TODAY = "due-today"
HOMEWORK_ACTIVE = "active"

# Dashboard sources
SOURCE_STUDENTS = "students"
SOURCE_HOMEWORK = "homework"
SOURCE_MARKS = "marks"
SOURCE_ATTENDANCE = "attendance"
SOURCE_NOTICES = "notices"
SOURCE_CALENDAR = "calendar"
