from enum import Enum
from pathlib import Path


class CtkError(Exception):
    """Base class for every error raised by ctk."""


class TemporalErrorReason(str, Enum):
    AMBIGUOUS_FORMAT = "ambiguous format"
    OUT_OF_RANGE = "out of range"
    UNPARSEABLE = "unparseable"


class TemporalParseError(CtkError, ValueError):
    """A time or date string could not be turned into an instant."""

    def __init__(self, text: str, reason: TemporalErrorReason, detail: str = ""):
        self.text = text
        self.reason = reason
        message = f"Could not parse '{text}' ({reason.value})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidSelection(CtkError):
    """A menu answer pointed outside the offered options."""


class EmptyRequiredField(CtkError):
    """A required answer (block name, password) was left blank."""


class SerializationIOError(CtkError):
    """Writing a settings file failed."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Could not write {path}: {reason}")


class ExternalEnumerationError(CtkError):
    """Listing files, folders or installed apps failed."""


class WizardCancelled(CtkError):
    """The suggest session was abandoned before completion."""


class BlockerError(CtkError):
    """Cold Turkey Blocker could not carry out a command."""


class BlockerNotFoundError(BlockerError):
    def __init__(self, path: Path):
        self.path = path
        super().__init__(
            f"Cold Turkey Blocker not found at {path}. Make sure you have it installed "
            "or point `ctk config --blocker` at it."
        )


class BlockerCommandError(BlockerError):
    def __init__(self, args: list[str], returncode: int, stderr: str = ""):
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr
        message = f"`{' '.join(args)}` exited with status {returncode}"
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)
