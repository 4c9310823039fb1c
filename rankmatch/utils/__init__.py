"""Utilities module - transaction scope, time helpers and domain errors."""
from rankmatch.utils.datetime_helpers import ensure_utc, minutes_since
from rankmatch.utils.unit_of_work import unit_of_work

__all__ = ["ensure_utc", "minutes_since", "unit_of_work"]
