"""Scheduling exceptions."""


class SchedulerError(Exception):
    """Base class for task store and scheduler errors."""


class InvalidTaskError(SchedulerError):
    """A task record that cannot be scheduled (bad JSON, missing fields)."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class TaskNotFoundError(SchedulerError):
    """No record with the requested task id exists in the store."""


class TaskExistsError(SchedulerError):
    """A record with the requested task id already exists in the store."""
