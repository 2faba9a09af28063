"""Errors raised by the session store.

NotFound and InvalidTransition are recoverable caller errors; StorageError
wraps failures of the SQLite engine itself.
"""

from __future__ import annotations


class WorkTimerError(Exception):
    """Base class for all worktimer errors."""


class SessionNotFoundError(WorkTimerError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class InvalidTransitionError(WorkTimerError):
    """The requested action is not legal from the session's current status."""

    def __init__(self, session_id: str, status: str, action: str):
        self.session_id = session_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} session {session_id} with status: {status}")


class StorageError(WorkTimerError):
    """The storage engine failed; the operation in progress was rolled back."""


class InvalidInputError(WorkTimerError, ValueError):
    """A caller-supplied value has the wrong type or is out of range."""
