"""Authentication handling for the Teacher Desk record store."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .exceptions import TeacherDeskAuthError, TeacherDeskConnectionError

_LOGGER = logging.getLogger(__name__)

LOGIN_PATH = "/api/teachers/login"
LOGOUT_PATH = "/api/teachers/logout"

DEFAULT_HEADERS = {
	"Accept": "application/json",
	"Content-Type": "application/json",
}


@dataclass
class Credentials:
	"""Bearer credential for the signed-in teacher.

	Passed explicitly to the client; nothing else stores or reads the token.
	"""
	teacher_id: Optional[str] = None
	token: Optional[str] = None

	@property
	def is_set(self) -> bool:
		return bool(self.token)

	def clear(self) -> None:
		self.token = None


class TeacherDeskAuth:
	"""Obtains and attaches the bearer token."""

	def __init__(self, session: aiohttp.ClientSession, base_url: str, credentials: Optional[Credentials] = None):
		self._session = session
		self._base_url = base_url.rstrip("/")
		self.credentials = credentials or Credentials()

	@property
	def authenticated(self) -> bool:
		return self.credentials.is_set

	def headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
		"""Build request headers, attaching the bearer token when present."""
		headers = DEFAULT_HEADERS.copy()
		if extra:
			headers.update(extra)
		if self.credentials.token:
			headers["Authorization"] = f"Bearer {self.credentials.token}"
		return headers

	def invalidate(self) -> None:
		"""Forget the token after the store rejected it."""
		if self.credentials.token:
			_LOGGER.warning(f"Session for teacher {self.credentials.teacher_id} rejected; clearing token")
		self.credentials.clear()

	async def login(self, teacher_id: str, password: str) -> Dict[str, Any]:
		"""Log in and store the returned token.

		Args:
			teacher_id: Teacher ID
			password: Password

		Returns:
			The teacher payload returned by the store (may be empty)
		"""
		url = f"{self._base_url}{LOGIN_PATH}"
		_LOGGER.debug(f"Logging in teacher {teacher_id}")

		try:
			async with self._session.post(url, headers=DEFAULT_HEADERS.copy(), json={"teacherID": teacher_id, "password": password}) as resp:
				try:
					data = await resp.json(content_type=None)
				except ValueError:
					data = {}
				if not isinstance(data, dict):
					data = {}

				if resp.status in (400, 401, 403, 404):
					raise TeacherDeskAuthError(data.get("message") or f"Login failed: HTTP {resp.status}")
				if resp.status >= 300:
					raise TeacherDeskConnectionError(f"Login failed: HTTP {resp.status}")

		except aiohttp.ClientError as e:
			raise TeacherDeskConnectionError(f"Connection error during login: {e}") from e

		token = data.get("token")
		if not token:
			raise TeacherDeskAuthError("No token received from server")

		self.credentials.teacher_id = teacher_id
		self.credentials.token = token
		_LOGGER.info(f"Teacher {teacher_id} logged in")
		return data.get("teacher") or {}

	async def logout(self) -> None:
		"""Log out; the local token is cleared even if the request fails."""
		url = f"{self._base_url}{LOGOUT_PATH}"
		try:
			async with self._session.post(url, headers=self.headers()) as resp:
				if resp.status >= 300:
					_LOGGER.warning(f"Logout returned HTTP {resp.status}")
		except aiohttp.ClientError as e:
			_LOGGER.warning(f"Logout request failed: {e}")
		finally:
			self.credentials.clear()
