"""Exceptions raised by the dialogue engine and its content stores.

None of these are fatal: every failure leaves the session resumable, and the
web layer reports them to the caller as user-facing notices.
"""


class DialogueError(Exception):
    """Base class for recoverable dialogue failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class IllegalMoveError(DialogueError):
    """Move not permitted, quota exhausted, duplicate target or empty payload."""


class StaleMoveError(IllegalMoveError):
    """Move made against a dialogue state that is no longer current."""

    def __init__(self, message: str, current_version: int):
        super().__init__(message)
        self.current_version = current_version

    @classmethod
    def for_version(cls, expected_version: int, current_version: int) -> "StaleMoveError":
        return cls(
            f"Move was made against state version {expected_version}, "
            f"but the dialogue is now at version {current_version}.",
            current_version,
        )

    @classmethod
    def out_of_turn(cls, actor: str, current_version: int) -> "StaleMoveError":
        return cls(f"It is no longer {actor}'s turn.", current_version)


class NotFoundError(DialogueError):
    """A store lookup returned nothing."""


class StoreUnavailableError(DialogueError):
    """The content store or persistence sink could not be reached."""


class SessionEndedError(DialogueError):
    """A move was attempted after the dialogue ended."""

    def __init__(self, message: str = "The debate has already ended."):
        super().__init__(message)
