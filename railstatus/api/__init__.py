"""Timetable API clients."""

from railstatus.api.rtt import RttClient, format_search_date

__all__ = ["RttClient", "format_search_date"]
