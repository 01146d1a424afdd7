# post_scheduler/errors.py
"""
Exception classes shared by the scheduling core.

Hierarchy:
    Exception
    +-- SchedulerError
        +-- ValidationError (also a ValueError)  -> 400
        +-- NotFoundError                         -> 404
        +-- ConflictError                         -> 409
        |   +-- InvalidStateError
        +-- DependencyError                       -> 503

A target that is not ready to publish is never an error; it is recorded
in ``ScheduledPost.issues``.
"""


class SchedulerError(Exception):
    pass


class ValidationError(SchedulerError, ValueError):
    """Malformed input such as an empty caption or a past publish time."""

    pass


class NotFoundError(SchedulerError):
    pass


class ConflictError(SchedulerError):
    """The entity changed underneath the caller; retry with fresh data."""

    pass


class InvalidStateError(ConflictError):
    """The requested transition is not allowed from the current status."""

    def __init__(self, current: str, action: str):
        self.current = current
        self.action = action
        super().__init__(f"cannot {action} a post in status '{current}'")


class DependencyError(SchedulerError):
    """The connection registry or the post store could not be reached."""

    pass
