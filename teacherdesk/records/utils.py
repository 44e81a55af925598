"""Parsing helpers shared by the record client and the engine."""

import logging
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Optional

_LOGGER = logging.getLogger(__name__)

# Formats seen from the record store, tried in order
DATE_FORMATS = [
	"%Y-%m-%dT%H:%M:%S.%fZ",
	"%Y-%m-%dT%H:%M:%SZ",
	"%Y-%m-%dT%H:%M:%S.%f",
	"%Y-%m-%dT%H:%M:%S",
	"%Y-%m-%d %H:%M:%S",
	"%Y-%m-%d",
	"%d/%m/%Y",
	"%d.%m.%Y",
]


def utcnow() -> datetime:
	"""Naive UTC timestamp, comparable with parsed record timestamps."""
	return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> datetime:
	"""Parse a record timestamp into a naive UTC datetime.

	Raises:
		ValueError: if the value is empty or in an unknown format
	"""
	if isinstance(value, datetime):
		if value.tzinfo is not None:
			return value.astimezone(timezone.utc).replace(tzinfo=None)
		return value
	if isinstance(value, date):
		return datetime(value.year, value.month, value.day)
	if not value:
		raise ValueError("Missing date")

	text = str(value).strip()
	for fmt in DATE_FORMATS:
		try:
			return datetime.strptime(text, fmt)
		except ValueError:
			continue

	# Offsets such as +05:30
	try:
		return parse_datetime(datetime.fromisoformat(text))
	except ValueError:
		pass

	raise ValueError(f"Unrecognised date: {value!r}")


def parse_optional_datetime(value: Any) -> Optional[datetime]:
	"""Like parse_datetime but returns None for empty or unparseable values."""
	if not value:
		return None
	try:
		return parse_datetime(value)
	except ValueError:
		_LOGGER.warning(f"Failed to parse date: {value!r}")
		return None


def parse_date(value: Any) -> date:
	"""Parse the calendar date part of a record timestamp."""
	if isinstance(value, date) and not isinstance(value, datetime):
		return value
	return parse_datetime(value).date()


def parse_number(value: Any) -> Optional[float]:
	"""Parse a numeric field; None for missing values."""
	if value is None or value == "":
		return None
	if isinstance(value, bool):
		raise ValueError(f"Not a number: {value!r}")
	return float(value)


def flatten_records(data: Any) -> List[Any]:
	"""Flatten a list or a {category: [records]} mapping into one list."""
	if isinstance(data, list):
		return data
	if isinstance(data, dict):
		items: List[Any] = []
		for value in data.values():
			if isinstance(value, list):
				items.extend(value)
		return items
	return []


def newest_first(items: Iterable[Any], key) -> List[Any]:
	"""Sort items by a timestamp key, most recent first; missing keys sort last."""
	return sorted(items, key=lambda item: key(item) or datetime.min, reverse=True)
