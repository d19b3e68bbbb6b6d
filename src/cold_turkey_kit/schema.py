from datetime import time
from enum import Enum
from pathlib import PurePath
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _no_blank_edges(value: str) -> str:
    if not value:
        raise ValueError("must not be empty")
    if value != value.strip():
        raise ValueError("must not start or end with whitespace")
    return value


class Weekday(str, Enum):
    SUNDAY = "Sunday"
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"


# Cold Turkey numbers days from Sunday
WEEKDAYS = list(Weekday)

DEFAULT_RANDOM_TEXT_LENGTH = 30


# --- Blockable targets ---


class _Target(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def label(self) -> str:
        return self.value


class _ValueTarget(_Target):
    value: str

    @field_validator("value")
    @classmethod
    def _check_value(cls, value: str) -> str:
        return _no_blank_edges(value)


class Url(_ValueTarget):
    kind: Literal["url"] = "url"


class _PathTarget(_ValueTarget):
    @field_validator("value")
    @classmethod
    def _forward_slashes(cls, value: str) -> str:
        return value.replace("\\", "/")


class ExecutablePath(_PathTarget):
    kind: Literal["executable"] = "executable"


class FolderPath(_PathTarget):
    kind: Literal["folder"] = "folder"


def app_display_name(identifier: str) -> str:
    """Spotify.exe -> Spotify, Microsoft.Msn.News.exe -> Microsoft Msn News"""
    return PurePath(identifier).stem.replace(".", " ")


class PlatformApp(_Target):
    """A Windows Store app, blocked by its executable name."""

    kind: Literal["platformApp"] = "platformApp"
    identifier: str

    @field_validator("identifier")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        return _no_blank_edges(value)

    @property
    def display_name(self) -> str:
        return app_display_name(self.identifier)

    @property
    def label(self) -> str:
        return f"{self.display_name} ({self.identifier})"


class WindowTitle(_ValueTarget):
    kind: Literal["windowTitle"] = "windowTitle"


TargetEntry = Annotated[
    Union[Url, ExecutablePath, FolderPath, PlatformApp, WindowTitle],
    Field(discriminator="kind"),
]

# Cold Turkey keeps urls apart from the "apps" list, which holds the other
# kinds in this order.
TARGET_KINDS = ("url", "executable", "folder", "platformApp", "windowTitle")


def group_targets(entries: list) -> list:
    """Drops repeated entries and groups the rest by kind, keeping their relative order."""
    unique = list(dict.fromkeys(entries))
    return sorted(unique, key=lambda entry: TARGET_KINDS.index(entry.kind))


# --- Lock methods ---


class _Lock(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class NoLock(_Lock):
    method: Literal["none"] = "none"


class RandomText(_Lock):
    """Unlocking requires typing out a string of random characters."""

    method: Literal["randomText"] = "randomText"
    length: int = Field(default=DEFAULT_RANDOM_TEXT_LENGTH, ge=1)


class TimeRange(_Lock):
    """
    A daily window that decides when the block may be stopped.

    With lock_during set the block is locked between start and end; otherwise
    it is locked outside that window and can only be stopped inside it.
    """

    method: Literal["window"] = "window"
    start: time
    end: time
    lock_during: bool = True

    @field_validator("start", "end")
    @classmethod
    def _whole_minutes(cls, value: time) -> time:
        if value.second or value.microsecond:
            raise ValueError("lock times are whole minutes")
        return value

    @model_validator(mode="after")
    def _end_after_start(self) -> "TimeRange":
        if self.end <= self.start:
            raise ValueError(
                f"end ({self.end:%H:%M}) must be after start ({self.start:%H:%M})"
            )
        return self


class Restart(_Lock):
    """Locked until the computer restarts."""

    method: Literal["restart"] = "restart"
    unblock_after_restart: bool = True


class Password(_Lock):
    method: Literal["password"] = "password"
    secret: str = Field(alias="password", min_length=1, repr=False)


LockMethod = Annotated[
    Union[NoLock, RandomText, TimeRange, Restart, Password],
    Field(discriminator="method"),
]

LOCK_OPTIONS = ["No Lock", "Random Text", "Time Range", "Restart", "Password"]


# --- Break methods ---


class _Break(BaseModel):
    model_config = ConfigDict(frozen=True)


class NoBreak(_Break):
    method: Literal["none"] = "none"


class Allowance(_Break):
    """The block can be paused for this many minutes a day."""

    method: Literal["allowance"] = "allowance"
    minutes: int = Field(ge=1)


class Pomodoro(_Break):
    """Alternates block_minutes of blocking with break_minutes of freedom."""

    method: Literal["pomodoro"] = "pomodoro"
    block_minutes: int = Field(ge=1)
    break_minutes: int = Field(ge=1)


BreakMethod = Annotated[
    Union[NoBreak, Allowance, Pomodoro],
    Field(discriminator="method"),
]

BREAK_OPTIONS = ["No Breaks", "Allowance", "Pomodoro"]


# --- Schedules ---


class ScheduleEntry(BaseModel):
    """
    A weekly window during which the block switches itself on.

    Equal start and end times mean the whole day; an end before the start
    means the window runs past midnight.
    """

    model_config = ConfigDict(frozen=True)

    days: frozenset[Weekday] = Field(min_length=1)
    start: time
    end: time
    break_method: BreakMethod = Field(default_factory=NoBreak)

    @field_validator("start", "end")
    @classmethod
    def _whole_minutes(cls, value: time) -> time:
        if value.second or value.microsecond:
            raise ValueError("schedule times are whole minutes")
        return value

    @property
    def ordered_days(self) -> list[Weekday]:
        return [day for day in WEEKDAYS if day in self.days]

    @property
    def spans_full_day(self) -> bool:
        return self.start == self.end

    @property
    def crosses_midnight(self) -> bool:
        return self.end < self.start

    def same_window(self, other: "ScheduleEntry") -> bool:
        return (self.start, self.end, self.break_method) == (
            other.start,
            other.end,
            other.break_method,
        )


def merge_schedule(entries: list[ScheduleEntry]) -> list[ScheduleEntry]:
    """
    Joins neighbouring entries that share times and break method into one.

    Cold Turkey stores one schedule block per day, so a multi-day entry is only
    recoverable from the file in this merged form.
    """
    merged: list[ScheduleEntry] = []
    for entry in entries:
        if merged and merged[-1].same_window(entry):
            last = merged.pop()
            entry = last.model_copy(update={"days": last.days | entry.days})
        merged.append(entry)
    return merged


# --- Blocks ---


class BlockSpecification(BaseModel):
    """One Cold Turkey block: how it locks, what it blocks and when."""

    name: str
    lock: LockMethod = Field(default_factory=NoLock)
    # Cold Turkey's "lockUnblock": the block turns off by itself when its lock ends
    lock_unblock: bool = True
    break_method: BreakMethod = Field(default_factory=NoBreak)
    blacklist: list[TargetEntry] = Field(default_factory=list)
    # Cold Turkey only accepts websites as exceptions
    exceptions: list[Url] = Field(default_factory=list)
    schedule: list[ScheduleEntry] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return _no_blank_edges(value)

    @field_validator("blacklist", "exceptions")
    @classmethod
    def _group(cls, value: list) -> list:
        return group_targets(value)

    @field_validator("schedule")
    @classmethod
    def _merge(cls, value: list) -> list:
        return merge_schedule(value)

    @property
    def scheduled(self) -> bool:
        """Blocks without schedule entries run continuously once started."""
        return bool(self.schedule)

    def _add(self, field: str, entries) -> int:
        current = getattr(self, field)
        updated = group_targets([*current, *entries])
        setattr(self, field, updated)
        return len(updated) - len(current)

    def add_to_blacklist(self, *entries) -> int:
        """Adds entries to the blacklist, returning how many were new."""
        return self._add("blacklist", entries)

    def add_exceptions(self, *entries: Url) -> int:
        """Adds websites to the exceptions list, returning how many were new."""
        return self._add("exceptions", entries)

    def add_schedule(self, entry: ScheduleEntry) -> None:
        self.schedule = merge_schedule([*self.schedule, entry])
