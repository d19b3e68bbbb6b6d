"""
Conversion between BlockSpecifications and Cold Turkey's block list file.

The file is a JSON object keyed by block name; every value is a block in the
form Cold Turkey imports, with flags and numbers written as strings::

    {
        "Focus": {
            "type": "scheduled",
            "lock": "window",
            "lockUnblock": "true",
            "restartUnblock": "true",
            "password": "",
            "randomTextLength": "30",
            "break": "none",
            "window": "lock@9,0@17,0",
            "users": "",
            "web": ["reddit.com"],
            "exceptions": ["file://*"],
            "apps": ["file:C:/Games/steam.exe", "win10:Spotify.exe", "title:YouTube"],
            "schedule": [
                {"id": "0", "startTime": "1,9,0", "endTime": "1,17,0", "break": "none"}
            ],
            "customUsers": []
        }
    }

A schedule entry covering several days becomes one schedule block per day,
numbered across the whole block.
"""

import json
import os
import re
import tempfile
from datetime import time
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from cold_turkey_kit.errors import SerializationIOError
from cold_turkey_kit.schema import (
    DEFAULT_RANDOM_TEXT_LENGTH,
    WEEKDAYS,
    Allowance,
    BlockSpecification,
    ExecutablePath,
    FolderPath,
    NoBreak,
    NoLock,
    Password,
    PlatformApp,
    Pomodoro,
    RandomText,
    Restart,
    ScheduleEntry,
    TimeRange,
    Url,
    WindowTitle,
)

DEFAULT_WINDOW = "lock@9,0@17,0"
# Cold Turkey's own default exception, so local files stay reachable
ALL_FILES = "file://*"

APP_PREFIXES = {
    "executable": "file:",
    "folder": "folder:",
    "platformApp": "win10:",
    "windowTitle": "title:",
}

_BREAK = r"none|\d+|\d+,\d+"
_WINDOW = r"(un)?lock@(\d{1,2}),(\d{1,2})@(\d{1,2}),(\d{1,2})"
_SCHEDULE_TIME = r"([0-6]),(\d{1,2}),(\d{1,2})"

_Flag = Literal["true", "false"]


class ScheduleBlock(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(pattern=r"^\d+$")
    start_time: str = Field(alias="startTime", pattern=f"^{_SCHEDULE_TIME}$")
    end_time: str = Field(alias="endTime", pattern=f"^{_SCHEDULE_TIME}$")
    break_method: str = Field(default="none", alias="break", pattern=f"^(?:{_BREAK})$")


class BlockSettings(BaseModel):
    """One block as Cold Turkey reads it. Unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True)

    sched_type: Literal["continuous", "scheduled"] = Field(default="continuous", alias="type")
    lock: Literal["none", "randomText", "window", "restart", "password"] = "none"
    lock_unblock: _Flag = Field(default="true", alias="lockUnblock")
    restart_unblock: _Flag = Field(default="true", alias="restartUnblock")
    password: str = ""
    random_text_length: str = Field(
        default=str(DEFAULT_RANDOM_TEXT_LENGTH), alias="randomTextLength", pattern=r"^\d+$"
    )
    break_method: str = Field(default="none", alias="break", pattern=f"^(?:{_BREAK})$")
    window: str = Field(default=DEFAULT_WINDOW, pattern=f"^{_WINDOW}$")
    users: str = ""
    web: list[str] = Field(default_factory=list)
    exceptions: list[str] = Field(default_factory=lambda: [ALL_FILES])
    apps: list[str] = Field(default_factory=list)
    schedule: list[ScheduleBlock] = Field(default_factory=list)
    custom_users: list[str] = Field(default_factory=list, alias="customUsers")


# --- Field encodings ---


def _flag(value: bool) -> str:
    return "true" if value else "false"


def format_break(method) -> str:
    if isinstance(method, Allowance):
        return str(method.minutes)
    if isinstance(method, Pomodoro):
        return f"{method.block_minutes},{method.break_minutes}"
    return "none"


def parse_break(text: str):
    if text == "none":
        return NoBreak()
    if "," in text:
        block_minutes, break_minutes = text.split(",")
        return Pomodoro(block_minutes=int(block_minutes), break_minutes=int(break_minutes))
    return Allowance(minutes=int(text))


def format_window(lock) -> str:
    if not isinstance(lock, TimeRange):
        return DEFAULT_WINDOW
    mode = "lock" if lock.lock_during else "unlock"
    return f"{mode}@{lock.start.hour},{lock.start.minute}@{lock.end.hour},{lock.end.minute}"


def parse_window(text: str) -> TimeRange:
    match = re.fullmatch(_WINDOW, text)
    if match is None:
        raise ValueError(f"'{text}' is not a lock window")
    unlock, start_hour, start_minute, end_hour, end_minute = match.groups()
    return TimeRange(
        start=time(int(start_hour), int(start_minute)),
        end=time(int(end_hour), int(end_minute)),
        lock_during=unlock is None,
    )


def _format_app(entry) -> str:
    value = entry.identifier if isinstance(entry, PlatformApp) else entry.value
    return f"{APP_PREFIXES[entry.kind]}{value}"


def _parse_app(text: str):
    prefix, sep, value = text.partition(":")
    if not sep:
        raise ValueError(f"App entry '{text}' has no kind prefix")
    if prefix == "file":
        return ExecutablePath(value=value)
    if prefix == "folder":
        return FolderPath(value=value)
    if prefix == "win10":
        return PlatformApp(identifier=value)
    if prefix == "title":
        return WindowTitle(value=value)
    raise ValueError(f"Unknown app entry kind '{prefix}' in '{text}'")


def _end_day(day: int, entry: ScheduleEntry) -> int:
    # Whole-day and overnight windows end on the following day
    return day if entry.end > entry.start else (day + 1) % len(WEEKDAYS)


def _schedule_blocks(entries: list[ScheduleEntry]) -> list[ScheduleBlock]:
    blocks = []
    for entry in entries:
        break_text = format_break(entry.break_method)
        for weekday in entry.ordered_days:
            day = WEEKDAYS.index(weekday)
            blocks.append(
                ScheduleBlock(
                    id=str(len(blocks)),
                    start_time=f"{day},{entry.start.hour},{entry.start.minute}",
                    end_time=f"{_end_day(day, entry)},{entry.end.hour},{entry.end.minute}",
                    break_method=break_text,
                )
            )
    return blocks


def _parse_schedule_time(text: str) -> tuple[int, time]:
    day, hour, minute = (int(part) for part in text.split(","))
    return day, time(hour, minute)


def _parse_schedule_block(block: ScheduleBlock) -> ScheduleEntry:
    day, start = _parse_schedule_time(block.start_time)
    end_day, end = _parse_schedule_time(block.end_time)
    entry = ScheduleEntry(
        days={WEEKDAYS[day]}, start=start, end=end, break_method=parse_break(block.break_method)
    )
    # Older files end overnight windows on the day they start
    if end_day not in {day, _end_day(day, entry)}:
        raise ValueError(f"Schedule block {block.id} ends on day {end_day}")
    return entry


def _parse_lock(block: BlockSettings):
    if block.lock == "randomText":
        return RandomText(length=int(block.random_text_length))
    if block.lock == "window":
        return parse_window(block.window)
    if block.lock == "restart":
        return Restart(unblock_after_restart=block.restart_unblock == "true")
    if block.lock == "password":
        return Password(secret=block.password)
    return NoLock()


# --- Documents ---


def to_block_settings(spec: BlockSpecification) -> BlockSettings:
    lock = spec.lock
    return BlockSettings(
        sched_type="scheduled" if spec.scheduled else "continuous",
        lock=lock.method,
        lock_unblock=_flag(spec.lock_unblock),
        restart_unblock=_flag(lock.unblock_after_restart if isinstance(lock, Restart) else True),
        password=lock.secret if isinstance(lock, Password) else "",
        random_text_length=str(
            lock.length if isinstance(lock, RandomText) else DEFAULT_RANDOM_TEXT_LENGTH
        ),
        break_method=format_break(spec.break_method),
        window=format_window(lock),
        web=[entry.value for entry in spec.blacklist if isinstance(entry, Url)],
        exceptions=[ALL_FILES, *(entry.value for entry in spec.exceptions)],
        apps=[_format_app(entry) for entry in spec.blacklist if not isinstance(entry, Url)],
        schedule=_schedule_blocks(spec.schedule),
    )


def from_block_settings(name: str, block: BlockSettings) -> BlockSpecification:
    exceptions = block.exceptions
    if exceptions[:1] == [ALL_FILES]:
        exceptions = exceptions[1:]
    return BlockSpecification(
        name=name,
        lock=_parse_lock(block),
        lock_unblock=block.lock_unblock == "true",
        break_method=parse_break(block.break_method),
        blacklist=[
            *(Url(value=url) for url in block.web),
            *(_parse_app(app) for app in block.apps),
        ],
        exceptions=[Url(value=url) for url in exceptions],
        schedule=[_parse_schedule_block(item) for item in block.schedule],
    )


def serialize(specs: list[BlockSpecification]) -> dict:
    """Builds the settings document for a list of blocks."""
    document = {}
    for spec in specs:
        if spec.name in document:
            raise ValueError(f"Block '{spec.name}' appears more than once")
        document[spec.name] = to_block_settings(spec).model_dump(by_alias=True)
    return document


def parse(document: dict) -> list[BlockSpecification]:
    """Rebuilds the blocks of a settings document. Raises ValueError on malformed input."""
    if not isinstance(document, dict):
        raise ValueError("A block list file must contain a JSON object")

    specs = []
    for name, block in document.items():
        try:
            specs.append(from_block_settings(name, BlockSettings.model_validate(block)))
        except ValueError as e:
            raise ValueError(f"Block '{name}' is malformed: {e}") from e
    return specs


def dumps(specs: list[BlockSpecification]) -> str:
    return json.dumps(serialize(specs), indent=4)


def loads(text: str) -> list[BlockSpecification]:
    return parse(json.loads(text))


def write_settings_file(specs: list[BlockSpecification], path: Path) -> Path:
    """
    Writes the blocks to path without ever replacing an existing file.

    The text goes to a temporary file next to path, which is then hard-linked
    into place; the link fails if path already exists. The temporary file is
    removed whatever happens, so an interrupted save leaves nothing behind.
    """
    path = Path(path)
    text = dumps(specs)

    try:
        tmp = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        )
    except OSError as e:
        logger.error(f"Failed to create a temporary file for {path}: {e}")
        raise SerializationIOError(path, e.strerror or str(e)) from e

    try:
        with tmp:
            tmp.write(text)
        os.link(tmp.name, path)
    except FileExistsError:
        raise SerializationIOError(path, "file already exists") from None
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise SerializationIOError(path, e.strerror or str(e)) from e
    finally:
        Path(tmp.name).unlink(missing_ok=True)

    logger.info(f"Saved {len(specs)} block(s) to {path}")
    return path


def read_settings_file(path: Path) -> list[BlockSpecification]:
    with open(path, encoding="utf-8") as f:
        return parse(json.load(f))
