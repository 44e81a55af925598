"""Payload validation run before anything is sent to the record store."""

import logging
from typing import Any, Dict, Optional

import voluptuous as vol

from .const import DEFAULT_TOTAL_MARKS
from .records.exceptions import TeacherDeskValidationError
from .records.models import ExamType, Presence
from .records.utils import parse_datetime

_LOGGER = logging.getLogger(__name__)


def _non_empty(value: Any) -> str:
	if not isinstance(value, str) or not value.strip():
		raise vol.Invalid("is required")
	return value.strip()


def _exam_type(value: Any) -> str:
	try:
		return ExamType.parse(value).value
	except ValueError as e:
		raise vol.Invalid("Exam type is required") from e


def _timestamp(value: Any) -> str:
	try:
		return parse_datetime(value).isoformat()
	except ValueError as e:
		raise vol.Invalid(str(e)) from e


def _marks_within_total(payload: Dict[str, Any]) -> Dict[str, Any]:
	total = payload.get("totalMarks", DEFAULT_TOTAL_MARKS)
	if payload["marksObtained"] > total:
		raise vol.Invalid(f"Marks should be between 0 and {total:g}", path=["marksObtained"])
	return payload


def _due_after_assign(payload: Dict[str, Any]) -> Dict[str, Any]:
	if "assignDate" in payload and "dueDate" in payload:
		if parse_datetime(payload["dueDate"]) <= parse_datetime(payload["assignDate"]):
			raise vol.Invalid("Due date must be after assign date", path=["dueDate"])
	return payload


MARK_SCHEMA = vol.Schema(
	vol.All(
		{
			vol.Required("studentID"): _non_empty,
			vol.Required("subject"): _non_empty,
			vol.Required("examType"): _exam_type,
			vol.Required("semester"): _non_empty,
			vol.Required("marksObtained"): vol.All(vol.Coerce(float), vol.Range(min=0)),
			vol.Optional("totalMarks", default=DEFAULT_TOTAL_MARKS): vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False)),
			vol.Optional("date"): _timestamp,
		},
		_marks_within_total,
	)
)

MARK_UPDATE_SCHEMA = vol.Schema(
	{
		vol.Optional("subject"): _non_empty,
		vol.Optional("examType"): _exam_type,
		vol.Optional("semester"): _non_empty,
		vol.Optional("marksObtained"): vol.All(vol.Coerce(float), vol.Range(min=0)),
		vol.Optional("totalMarks"): vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False)),
		vol.Optional("date"): _timestamp,
	}
)

HOMEWORK_SCHEMA = vol.Schema(
	vol.All(
		{
			vol.Required("studentID"): _non_empty,
			vol.Required("title"): _non_empty,
			vol.Required("description"): _non_empty,
			vol.Required("assignDate"): _timestamp,
			vol.Required("dueDate"): _timestamp,
		},
		_due_after_assign,
	)
)

HOMEWORK_UPDATE_SCHEMA = vol.Schema(
	vol.All(
		{
			vol.Optional("title"): _non_empty,
			vol.Optional("description"): _non_empty,
			vol.Optional("assignDate"): _timestamp,
			vol.Optional("dueDate"): _timestamp,
		},
		_due_after_assign,
	)
)

NOTICE_SCHEMA = vol.Schema(
	{
		vol.Required("classID"): _non_empty,
		vol.Required("title"): _non_empty,
		vol.Required("description"): _non_empty,
		vol.Required("date"): _timestamp,
	}
)

ATTENDANCE_SCHEMA = vol.Schema(
	{
		vol.Required("studentID"): _non_empty,
		vol.Required("status"): vol.In([Presence.PRESENT.value, Presence.ABSENT.value]),
		vol.Optional("date"): str,
	}
)


def _format_errors(error: vol.Invalid) -> Dict[str, str]:
	errors = getattr(error, "errors", [error])
	return {
		".".join(str(part) for part in err.path) or "payload": err.error_message
		for err in errors
	}


def validate(schema: vol.Schema, payload: Dict[str, Any], label: str) -> Dict[str, Any]:
	"""Run a schema and convert failures into TeacherDeskValidationError."""
	try:
		return schema(payload)
	except vol.Invalid as e:
		field_errors = _format_errors(e)
		_LOGGER.debug(f"Rejected {label} payload: {field_errors}")
		error = TeacherDeskValidationError(
			"; ".join(f"{key}: {message}" for key, message in field_errors.items())
		)
		error.errors = field_errors
		raise error from e


def validate_mark(payload: Dict[str, Any]) -> Dict[str, Any]:
	return validate(MARK_SCHEMA, payload, "mark")


def validate_mark_update(payload: Dict[str, Any]) -> Dict[str, Any]:
	return validate(MARK_UPDATE_SCHEMA, payload, "mark update")


def validate_homework(payload: Dict[str, Any]) -> Dict[str, Any]:
	return validate(HOMEWORK_SCHEMA, payload, "homework")


def validate_homework_update(payload: Dict[str, Any]) -> Dict[str, Any]:
	return validate(HOMEWORK_UPDATE_SCHEMA, payload, "homework update")


def validate_notice(payload: Dict[str, Any]) -> Dict[str, Any]:
	return validate(NOTICE_SCHEMA, payload, "notice")


def validate_attendance(payload: Dict[str, Any]) -> Dict[str, Any]:
	return validate(ATTENDANCE_SCHEMA, payload, "attendance")


def validate_marks_value(marks_obtained: Any, total_marks: Optional[float] = None) -> float:
	"""Check a grid entry against its denominator and return it as a float."""
	total = total_marks or DEFAULT_TOTAL_MARKS
	schema = vol.Schema(vol.All(vol.Coerce(float), vol.Range(min=0, max=total, msg=f"Marks should be between 0 and {total:g}")))
	try:
		return schema(marks_obtained)
	except vol.Invalid as e:
		error = TeacherDeskValidationError(f"marksObtained: {e.error_message}")
		error.errors = {"marksObtained": e.error_message}
		raise error from e
