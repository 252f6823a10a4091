from __future__ import annotations


class CarbStoreError(Exception):
    """Base class for failures raised while computing carb effects."""


class NotConfiguredError(CarbStoreError):
    """A schedule or entry source required by the call is missing."""


class InvalidRangeError(CarbStoreError):
    """The requested end instant precedes the start instant."""


class ScheduleCoverageError(CarbStoreError):
    """A requested instant falls outside every schedule segment."""


class IncompleteScheduleError(CarbStoreError):
    """Schedule data needed to resolve carb absorption is partially missing."""


__all__ = [
    "CarbStoreError",
    "NotConfiguredError",
    "InvalidRangeError",
    "ScheduleCoverageError",
    "IncompleteScheduleError",
]
