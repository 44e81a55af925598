"""Helpers to evaluate the completeness of a reconciliation pass."""

from typing import List, Sequence, Tuple

from .records.models import StudentView


def evaluate_history_completeness(views: Sequence[StudentView]) -> Tuple[bool, List[str]]:
	"""Return completeness flag together with the students whose history failed."""
	unavailable = [view.student_id for view in views if not view.history_available]
	return not unavailable, unavailable


def available_views(views: Sequence[StudentView]) -> List[StudentView]:
	"""Views that may take part in aggregate statistics."""
	return [view for view in views if view.history_available]
