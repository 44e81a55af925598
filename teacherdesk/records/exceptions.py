"""Custom exceptions for the Teacher Desk record store."""


class TeacherDeskError(Exception):
	"""Base exception for Teacher Desk errors."""
	pass


class TeacherDeskAuthError(TeacherDeskError):
	"""Authentication failed or the session is no longer valid."""
	pass


class TeacherDeskAPIError(TeacherDeskError):
	"""API request failed."""

	def __init__(self, message: str, status: int = None):
		super().__init__(message)
		self.status = status


class TeacherDeskNotFoundError(TeacherDeskAPIError):
	"""Requested record does not exist."""
	pass


class TeacherDeskValidationError(TeacherDeskAPIError):
	"""Payload was rejected, either locally or by the record store."""
	pass


class TeacherDeskConnectionError(TeacherDeskError):
	"""Connection to the record store failed."""
	pass


class TeacherDeskDataError(TeacherDeskError):
	"""Data parsing or validation error."""
	pass


class RosterUnavailableError(TeacherDeskConnectionError):
	"""The roster could not be fetched; no partial roster is kept."""
	pass


class InvalidCommitWindowError(TeacherDeskError):
	"""Attendance commit attempted for a date other than today."""
	pass
