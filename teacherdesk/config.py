"""Configuration loading for Teacher Desk."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import voluptuous as vol
from dotenv import load_dotenv

from .const import (
	CONF_BASE_URL,
	CONF_PASSWORD,
	CONF_REQUEST_TIMEOUT,
	CONF_TEACHER_ID,
	CONF_TOKEN,
	DEFAULT_BASE_URL,
	DEFAULT_REQUEST_TIMEOUT,
	ENV_PREFIX,
)
from .records.auth import Credentials
from .records.exceptions import TeacherDeskValidationError

_LOGGER = logging.getLogger(__name__)

CONFIG_SCHEMA = vol.Schema(
	{
		vol.Optional(CONF_BASE_URL, default=DEFAULT_BASE_URL): vol.All(str, vol.Length(min=1), vol.Url()),
		vol.Optional(CONF_TEACHER_ID): vol.Any(None, str),
		vol.Optional(CONF_PASSWORD): vol.Any(None, str),
		vol.Optional(CONF_TOKEN): vol.Any(None, str),
		vol.Optional(CONF_REQUEST_TIMEOUT, default=DEFAULT_REQUEST_TIMEOUT): vol.All(
			vol.Coerce(float), vol.Range(min=1)
		),
	}
)


def validate_config(raw: Dict[str, Any]) -> Dict[str, Any]:
	"""Validate settings, dropping empty values first."""
	cleaned = {key: value for key, value in raw.items() if value not in (None, "")}
	try:
		return CONFIG_SCHEMA(cleaned)
	except vol.Invalid as e:
		raise TeacherDeskValidationError(f"Invalid configuration: {e}") from e


def load_config(env_file: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
	"""Load settings from TEACHERDESK_* environment variables.

	A .env file is read first when present; real environment variables win.
	"""
	if env_file is not None:
		load_dotenv(env_file)
	else:
		load_dotenv()

	raw = {}
	for key in (CONF_BASE_URL, CONF_TEACHER_ID, CONF_PASSWORD, CONF_TOKEN, CONF_REQUEST_TIMEOUT):
		value = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
		if value is not None:
			raw[key] = value

	config = validate_config(raw)
	_LOGGER.debug(f"Loaded configuration for {config[CONF_BASE_URL]}")
	return config


def credentials_from_config(config: Dict[str, Any]) -> Credentials:
	return Credentials(teacher_id=config.get(CONF_TEACHER_ID), token=config.get(CONF_TOKEN))
