"""
The `ctk suggest` wizard.

The wizard is a finite state machine. Every Stage has one handler that asks
its questions, updates the WizardSession and returns the next Stage; the
engine only accepts moves listed in TRANSITIONS. A session lives for a
single run: interrupting it discards everything and nothing is written.
"""

import random
import shlex
from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator

from loguru import logger
from pydantic import ValidationError
from rich.console import Console

from cold_turkey_kit.errors import (
    EmptyRequiredField,
    ExternalEnumerationError,
    InvalidSelection,
    SerializationIOError,
    TemporalParseError,
    WizardCancelled,
)
from cold_turkey_kit.schema import (
    BREAK_OPTIONS,
    LOCK_OPTIONS,
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
from cold_turkey_kit.serializer import write_settings_file
from cold_turkey_kit.settings import settings
from cold_turkey_kit.utils.apps import PlatformAppCatalog
from cold_turkey_kit.utils.filesystem import FileSystemBrowser, FileSystemEntry
from cold_turkey_kit.utils.prompts import Prompter
from cold_turkey_kit.utils.time import parse_clock_time


class Stage(str, Enum):
    NAME_ENTRY = "NameEntry"
    LOCK_METHOD_SELECT = "LockMethodSelect"
    LOCK_METHOD_CONFIGURE = "LockMethodConfigure"
    BREAK_METHOD_SELECT = "BreakMethodSelect"
    BLACKLIST_COLLECT = "BlacklistCollect"
    EXCEPTIONS_COLLECT = "ExceptionsCollect"
    EXEC_FOLDER_ASK = "ExecFolderAsk"
    EXEC_FOLDER_COLLECT = "ExecFolderCollect"
    APP_SELECT_ASK = "AppSelectAsk"
    APP_SELECT = "AppSelect"
    WINDOW_TITLE_COLLECT = "WindowTitleCollect"
    SCHEDULE_ASK = "ScheduleAsk"
    SCHEDULE_COLLECT = "ScheduleCollect"
    ADD_ANOTHER_BLOCK_ASK = "AddAnotherBlockAsk"
    SAVE_ASK = "SaveAsk"
    FILE_NAME_PROMPT = "FileNamePrompt"
    SERIALIZE_WRITE = "SerializeWrite"
    DONE = "Done"


TRANSITIONS: dict[Stage, set[Stage]] = {
    Stage.NAME_ENTRY: {Stage.LOCK_METHOD_SELECT},
    Stage.LOCK_METHOD_SELECT: {Stage.LOCK_METHOD_CONFIGURE, Stage.BREAK_METHOD_SELECT},
    Stage.LOCK_METHOD_CONFIGURE: {Stage.BREAK_METHOD_SELECT},
    Stage.BREAK_METHOD_SELECT: {Stage.BLACKLIST_COLLECT},
    Stage.BLACKLIST_COLLECT: {Stage.EXCEPTIONS_COLLECT},
    Stage.EXCEPTIONS_COLLECT: {Stage.EXEC_FOLDER_ASK},
    Stage.EXEC_FOLDER_ASK: {Stage.EXEC_FOLDER_COLLECT, Stage.APP_SELECT_ASK},
    # Listing failures fall back to the question that led here
    Stage.EXEC_FOLDER_COLLECT: {Stage.APP_SELECT_ASK, Stage.EXEC_FOLDER_ASK},
    Stage.APP_SELECT_ASK: {Stage.APP_SELECT, Stage.WINDOW_TITLE_COLLECT},
    Stage.APP_SELECT: {Stage.WINDOW_TITLE_COLLECT, Stage.APP_SELECT_ASK},
    Stage.WINDOW_TITLE_COLLECT: {Stage.SCHEDULE_ASK},
    Stage.SCHEDULE_ASK: {Stage.SCHEDULE_COLLECT, Stage.ADD_ANOTHER_BLOCK_ASK},
    Stage.SCHEDULE_COLLECT: {Stage.ADD_ANOTHER_BLOCK_ASK},
    Stage.ADD_ANOTHER_BLOCK_ASK: {Stage.NAME_ENTRY, Stage.SAVE_ASK},
    Stage.SAVE_ASK: {Stage.FILE_NAME_PROMPT, Stage.DONE},
    Stage.FILE_NAME_PROMPT: {Stage.SERIALIZE_WRITE},
    Stage.SERIALIZE_WRITE: {Stage.DONE, Stage.FILE_NAME_PROMPT},
    Stage.DONE: set(),
}

# Positions in LOCK_OPTIONS
NO_LOCK, RANDOM_TEXT, TIME_RANGE, RESTART, PASSWORD = range(len(LOCK_OPTIONS))
NO_BREAK, ALLOWANCE, POMODORO = range(len(BREAK_OPTIONS))

EXIT_COMMANDS = ("done", "quit", "q")
FOLDER_COMMANDS_HELP = "Commands: cd <dir>, ls [dir], search <keyword>, done"


@dataclass
class WizardSession:
    """Everything one suggest run has gathered so far."""

    output_dir: Path
    browse_dir: Path
    stage: Stage = Stage.NAME_ENTRY
    completed: list[BlockSpecification] = field(default_factory=list)
    current: BlockSpecification | None = None
    lock_choice: int | None = None
    pending_path: Path | None = None
    saved_path: Path | None = None
    cancelled: bool = False
    history: list[Stage] = field(default_factory=list)

    @property
    def block_names(self) -> set[str]:
        names = {spec.name for spec in self.completed}
        if self.current is not None:
            names.add(self.current.name)
        return names

    def finish_block(self) -> None:
        if self.current is not None:
            self.completed.append(self.current)
            self.current = None
            self.lock_choice = None

    def discard(self) -> None:
        self.completed.clear()
        self.current = None
        self.lock_choice = None


def _validation_message(error: ValidationError) -> str:
    return error.errors()[0]["msg"].removeprefix("Value error, ")


class SuggestWizard:
    """Builds block specifications from the user's answers and saves them."""

    def __init__(
        self,
        prompter: Prompter,
        file_browser: FileSystemBrowser | None = None,
        app_catalog: PlatformAppCatalog | None = None,
        console: Console | None = None,
        output_dir: Path | None = None,
    ):
        self.prompter = prompter
        self.file_browser = file_browser or FileSystemBrowser(settings.executable_extensions)
        self.app_catalog = app_catalog or PlatformAppCatalog(settings.apps_dir)
        self.console = console or Console()
        self.output_dir = Path(output_dir or settings.output_dir or Path.cwd())
        self.session: WizardSession | None = None

        self._handlers: dict[Stage, Callable[[WizardSession], Stage]] = {
            Stage.NAME_ENTRY: self._name_entry,
            Stage.LOCK_METHOD_SELECT: self._lock_method_select,
            Stage.LOCK_METHOD_CONFIGURE: self._lock_method_configure,
            Stage.BREAK_METHOD_SELECT: self._break_method_select,
            Stage.BLACKLIST_COLLECT: self._blacklist_collect,
            Stage.EXCEPTIONS_COLLECT: self._exceptions_collect,
            Stage.EXEC_FOLDER_ASK: self._exec_folder_ask,
            Stage.EXEC_FOLDER_COLLECT: self._exec_folder_collect,
            Stage.APP_SELECT_ASK: self._app_select_ask,
            Stage.APP_SELECT: self._app_select,
            Stage.WINDOW_TITLE_COLLECT: self._window_title_collect,
            Stage.SCHEDULE_ASK: self._schedule_ask,
            Stage.SCHEDULE_COLLECT: self._schedule_collect,
            Stage.ADD_ANOTHER_BLOCK_ASK: self._add_another_block_ask,
            Stage.SAVE_ASK: self._save_ask,
            Stage.FILE_NAME_PROMPT: self._file_name_prompt,
            Stage.SERIALIZE_WRITE: self._serialize_write,
        }

    # --- Engine ---

    def new_session(self) -> WizardSession:
        return WizardSession(output_dir=self.output_dir, browse_dir=Path.cwd())

    def cancel(self) -> None:
        """Abandons the running session before its next stage."""
        if self.session is not None:
            self.session.cancelled = True

    def run(self, session: WizardSession | None = None) -> WizardSession:
        """
        Drives the session from its current stage to Done.

        Raises WizardCancelled if the session is cancelled or the user
        interrupts a prompt, and SerializationIOError if saving fails and the
        user does not retry.
        """
        session = session or self.new_session()
        self.session = session

        while session.stage is not Stage.DONE:
            if session.cancelled:
                session.discard()
                logger.warning(f"Suggest session abandoned during {session.stage.value}")
                raise WizardCancelled("Suggest session abandoned; nothing was saved.")

            stage = session.stage
            try:
                next_stage = self._handlers[stage](session)
            except (KeyboardInterrupt, EOFError):
                session.cancelled = True
                continue
            self._advance(session, next_stage)

        return session

    def _advance(self, session: WizardSession, next_stage: Stage) -> None:
        if next_stage not in TRANSITIONS[session.stage]:
            raise RuntimeError(
                f"Illegal wizard transition {session.stage.value} -> {next_stage.value}"
            )
        logger.debug(f"Wizard: {session.stage.value} -> {next_stage.value}")
        session.history.append(session.stage)
        session.stage = next_stage

    # --- Prompt helpers ---

    def _warn(self, message) -> None:
        self.console.print(f"[yellow]{message}[/yellow]")

    def _ask(self, prompt: str) -> bool:
        return self.prompter.read_yes_no(prompt)

    def _choose(self, prompt: str, options: list[str]) -> int:
        while True:
            try:
                index = self.prompter.read_single_choice(prompt, options)
                if not 0 <= index < len(options):
                    raise InvalidSelection(f"Choose a number between 1 and {len(options)}")
            except InvalidSelection as e:
                self._warn(e)
                continue
            return index

    def _choose_many(self, prompt: str, options: list[str], required: bool = False) -> list[int]:
        while True:
            try:
                indexes = self.prompter.read_multi_choice(prompt, options)
                if any(not 0 <= i < len(options) for i in indexes):
                    raise InvalidSelection(f"Choose numbers between 1 and {len(options)}")
                if required and not indexes:
                    raise InvalidSelection("Choose at least one option")
            except InvalidSelection as e:
                self._warn(e)
                continue
            return sorted(indexes)

    def _collect_lines(self, prompt: str) -> Iterator[str]:
        """Yields answers until the user enters an empty line."""
        while True:
            line = self.prompter.read_line(prompt, allow_empty=True)
            if not line:
                return
            yield line

    def _read_required(self, prompt: str, what: str) -> str:
        while True:
            try:
                return self.prompter.read_line(prompt)
            except EmptyRequiredField:
                self._warn(f"{what} cannot be empty")

    def _read_clock_time(self, prompt: str) -> time:
        while True:
            try:
                return parse_clock_time(self.prompter.read_line(prompt))
            except (TemporalParseError, EmptyRequiredField) as e:
                self._warn(e)

    def _read_minutes(self, prompt: str) -> int:
        while True:
            try:
                minutes = int(self.prompter.read_line(prompt))
            except (ValueError, EmptyRequiredField):
                minutes = 0
            if minutes >= 1:
                return minutes
            self._warn("Enter a whole number of minutes, at least 1")

    def _read_break_method(self):
        choice = self._choose("Choose a break method", BREAK_OPTIONS)
        if choice == ALLOWANCE:
            return Allowance(minutes=self._read_minutes("Enter allowance minutes"))
        if choice == POMODORO:
            return Pomodoro(
                block_minutes=self._read_minutes("Enter block minutes"),
                break_minutes=self._read_minutes("Enter break minutes"),
            )
        return NoBreak()

    # --- Stages: one block ---

    def _name_entry(self, session: WizardSession) -> Stage:
        while True:
            name = self._read_required("Enter a new Cold Turkey block name", "The block name")
            if name in session.block_names:
                self._warn(f"Block {name} already exists")
                continue
            session.current = BlockSpecification(name=name)
            return Stage.LOCK_METHOD_SELECT

    def _lock_method_select(self, session: WizardSession) -> Stage:
        choice = self._choose("Choose a lock method", LOCK_OPTIONS)
        session.lock_choice = choice
        if choice == NO_LOCK:
            session.current.lock = NoLock()
            return Stage.BREAK_METHOD_SELECT
        return Stage.LOCK_METHOD_CONFIGURE

    def _lock_method_configure(self, session: WizardSession) -> Stage:
        if session.lock_choice == RANDOM_TEXT:
            session.current.lock = self._configure_random_text()
        elif session.lock_choice == TIME_RANGE:
            session.current.lock = self._configure_time_range()
        elif session.lock_choice == RESTART:
            session.current.lock = Restart(
                unblock_after_restart=self._ask(
                    "Do you want the block to be unblocked after a restart?"
                )
            )
        elif session.lock_choice == PASSWORD:
            session.current.lock = self._configure_password()
        else:
            raise RuntimeError(f"Lock option {session.lock_choice} needs no configuration")
        return Stage.BREAK_METHOD_SELECT

    def _configure_random_text(self) -> RandomText:
        default = settings.random_text_length
        while True:
            answer = self.prompter.read_line(
                f"Enter a random string length [{default}]", allow_empty=True
            )
            try:
                return RandomText(length=int(answer) if answer else default)
            except ValueError:
                self._warn("The length must be a whole number of at least 1")

    def _configure_time_range(self) -> TimeRange:
        while True:
            try:
                window = TimeRange(
                    start=self._read_clock_time("Enter start time"),
                    end=self._read_clock_time("Enter end time"),
                )
            except ValidationError as e:
                self._warn(_validation_message(e))
                continue
            lock_during = self._ask("Do you want to lock during that time range?")
            return window.model_copy(update={"lock_during": lock_during})

    def _configure_password(self) -> Password:
        while True:
            try:
                secret = self.prompter.read_password("Enter a password")
                if not secret:
                    raise EmptyRequiredField("The password cannot be empty")
            except EmptyRequiredField as e:
                self._warn(e)
                continue
            return Password(secret=secret)

    def _break_method_select(self, session: WizardSession) -> Stage:
        session.current.break_method = self._read_break_method()
        return Stage.BLACKLIST_COLLECT

    def _blacklist_collect(self, session: WizardSession) -> Stage:
        if self._ask("Do you want to add websites to the blocklist?"):
            for url in self._collect_lines("Add a new website [press empty string to exit]"):
                session.current.add_to_blacklist(Url(value=url))
        return Stage.EXCEPTIONS_COLLECT

    def _exceptions_collect(self, session: WizardSession) -> Stage:
        if self._ask("Do you want to add websites to the exceptions list?"):
            for url in self._collect_lines("Add a new website [press empty string to exit]"):
                session.current.add_exceptions(Url(value=url))
        return Stage.EXEC_FOLDER_ASK

    def _exec_folder_ask(self, session: WizardSession) -> Stage:
        if self._ask("Do you want to add executables or folders to the block?"):
            return Stage.EXEC_FOLDER_COLLECT
        return Stage.APP_SELECT_ASK

    def _exec_folder_collect(self, session: WizardSession) -> Stage:
        self.console.print(f"[dim]{FOLDER_COMMANDS_HELP}[/dim]")
        while True:
            self.console.print(f"[cyan]{session.browse_dir}[/cyan]")
            line = self.prompter.read_line(">", allow_empty=True)
            try:
                words = shlex.split(line)
            except ValueError:
                self._warn("Cannot parse the command - please try again.")
                continue

            if not words or words[0] in EXIT_COMMANDS:
                return Stage.APP_SELECT_ASK

            command, args = words[0], words[1:]
            try:
                if command == "cd" and len(args) <= 1:
                    self._change_directory(session, args)
                elif command == "ls" and len(args) <= 1:
                    directory = self._relative_dir(session, args[0]) if args else session.browse_dir
                    self._offer_entries(session, self.file_browser.list(directory), directory)
                elif command == "search" and len(args) == 1:
                    with self.console.status("Finding possible matches ..."):
                        matches = self.file_browser.search(session.browse_dir, args[0])
                    self._offer_entries(session, matches, session.browse_dir)
                else:
                    self._warn(FOLDER_COMMANDS_HELP)
            except ExternalEnumerationError as e:
                self._warn(e)
                logger.warning(f"Executable picker aborted: {e}")
                return Stage.EXEC_FOLDER_ASK

    def _relative_dir(self, session: WizardSession, arg: str) -> Path:
        return (session.browse_dir / Path(arg).expanduser()).resolve()

    def _change_directory(self, session: WizardSession, args: list[str]) -> None:
        if not args:
            return
        target = self._relative_dir(session, args[0])
        if not target.is_dir():
            self._warn(f"No such directory: {target}")
            return
        session.browse_dir = target

    def _offer_entries(
        self, session: WizardSession, entries: list[FileSystemEntry], directory: Path
    ) -> None:
        if not entries:
            self._warn(f"No executables or folders found in {directory}")
            return

        options = [entry.path.as_posix() for entry in entries]
        picked = self._choose_many("Which executable or folder would you like to add?", options)
        targets = [
            FolderPath(value=options[i])
            if entries[i].kind == "folder"
            else ExecutablePath(value=options[i])
            for i in picked
        ]
        added = session.current.add_to_blacklist(*targets)
        if targets:
            self.console.print(f"[green]Added {added} item(s) to {session.current.name}[/green]")

    def _app_select_ask(self, session: WizardSession) -> Stage:
        if self._ask("Do you want to add Windows 10 applications or not?"):
            return Stage.APP_SELECT
        return Stage.WINDOW_TITLE_COLLECT

    def _app_select(self, session: WizardSession) -> Stage:
        try:
            apps = self.app_catalog.list_installed_apps()
        except ExternalEnumerationError as e:
            self._warn(e)
            logger.warning(f"App selection aborted: {e}")
            return Stage.APP_SELECT_ASK

        if not apps:
            self._warn("No Windows 10 applications found")
            return Stage.WINDOW_TITLE_COLLECT

        picked = self._choose_many(
            "Choose your Windows 10 apps", [app.display_name for app in apps]
        )
        session.current.add_to_blacklist(
            *(PlatformApp(identifier=apps[i].identifier) for i in picked)
        )
        return Stage.WINDOW_TITLE_COLLECT

    def _window_title_collect(self, session: WizardSession) -> Stage:
        if self._ask("Do you want to block windows with certain titles?"):
            for title in self._collect_lines("Add a new window title [press empty string to exit]"):
                session.current.add_to_blacklist(WindowTitle(value=title))
        return Stage.SCHEDULE_ASK

    def _schedule_ask(self, session: WizardSession) -> Stage:
        if self._ask("Do you want to add a schedule to your blocks?"):
            return Stage.SCHEDULE_COLLECT
        return Stage.ADD_ANOTHER_BLOCK_ASK

    def _schedule_collect(self, session: WizardSession) -> Stage:
        while self._ask("Do you want to add new schedule blocks?"):
            picked = self._choose_many(
                "Choose the days of the week applied",
                [day.value for day in WEEKDAYS],
                required=True,
            )
            entry = ScheduleEntry(
                days=frozenset(WEEKDAYS[i] for i in picked),
                start=self._read_clock_time("Enter start time"),
                end=self._read_clock_time("Enter end time"),
                break_method=self._read_break_method(),
            )
            session.current.add_schedule(entry)
            if entry.spans_full_day:
                self.console.print(
                    "[dim]Same start and end time: the block covers the whole day.[/dim]"
                )
        return Stage.ADD_ANOTHER_BLOCK_ASK

    # --- Stages: session ---

    def _add_another_block_ask(self, session: WizardSession) -> Stage:
        if session.current is not None:
            self.console.print(f"[green]Block {session.current.name} added[/green]")
            session.finish_block()
        if self._ask("Do you want to add new blocks?"):
            return Stage.NAME_ENTRY
        return Stage.SAVE_ASK

    def _save_ask(self, session: WizardSession) -> Stage:
        extension = settings.settings_extension
        if self._ask(f"Do you want to save these settings in a {extension} file?"):
            return Stage.FILE_NAME_PROMPT
        session.discard()
        self.console.print("Settings discarded.")
        return Stage.DONE

    def _random_path(self, session: WizardSession) -> Path:
        while True:
            path = session.output_dir / f"ctk_{random.getrandbits(64)}{settings.settings_extension}"
            if not path.exists():
                return path

    def _file_name_prompt(self, session: WizardSession) -> Stage:
        extension = settings.settings_extension
        while True:
            name = self.prompter.read_line(
                "Enter a new file name [empty string to create random name]", allow_empty=True
            )
            if not name:
                session.pending_path = self._random_path(session)
                return Stage.SERIALIZE_WRITE

            file_name = name if name.endswith(extension) else f"{name}{extension}"
            path = session.output_dir / file_name
            if path.exists():
                self._warn(f"{path} already exists; choose another name")
                continue
            session.pending_path = path
            return Stage.SERIALIZE_WRITE

    def _serialize_write(self, session: WizardSession) -> Stage:
        try:
            session.saved_path = write_settings_file(session.completed, session.pending_path)
        except SerializationIOError as e:
            self.console.print(f"[red]Error:[/red] {e}")
            if self._ask("Do you want to try another file name?"):
                return Stage.FILE_NAME_PROMPT
            raise
        self.console.print(f"[green]Successfully saved to[/green] {session.saved_path}")
        return Stage.DONE
