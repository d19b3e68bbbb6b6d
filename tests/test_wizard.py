import re
import pytest
from datetime import time

from conftest import ScriptedPrompter

import cold_turkey_kit.wizard as wizard_module
from cold_turkey_kit.errors import ExternalEnumerationError, SerializationIOError, WizardCancelled
from cold_turkey_kit.schema import (
    Allowance,
    BlockSpecification,
    ExecutablePath,
    FolderPath,
    NoLock,
    Password,
    PlatformApp,
    Pomodoro,
    RandomText,
    Restart,
    ScheduleEntry,
    TimeRange,
    Url,
    Weekday,
    WindowTitle,
)
from cold_turkey_kit.serializer import read_settings_file
from cold_turkey_kit.utils.apps import InstalledApp
from cold_turkey_kit.utils.filesystem import FileSystemBrowser
from cold_turkey_kit.wizard import TRANSITIONS, Stage, SuggestWizard

NO_BREAKS = 0

# Answers after the lock method: no breaks, then no to the blocklist,
# exceptions, executables, apps, window titles and schedule questions
DECLINE_TARGETS = [NO_BREAKS, *[False] * 6]


class BrokenBrowser:
    def list(self, directory):
        raise ExternalEnumerationError(f"Cannot list {directory}: permission denied")

    def search(self, directory, keyword):
        raise ExternalEnumerationError(f"Cannot search {directory}: permission denied")


class FakeCatalog:
    def __init__(self, apps=None, error=None):
        self.apps = apps or []
        self.error = error

    def list_installed_apps(self):
        if self.error:
            raise self.error
        return self.apps


def make_wizard(answers, console, tmp_path, **kwargs):
    prompter = ScriptedPrompter(answers)
    kwargs.setdefault("app_catalog", FakeCatalog())
    wizard = SuggestWizard(prompter, console=console, output_dir=tmp_path, **kwargs)
    return wizard, prompter


def saved_specs(session):
    assert session.saved_path is not None
    return read_settings_file(session.saved_path)


def test_transitions_cover_every_stage():
    assert set(TRANSITIONS) == set(Stage)
    for targets in TRANSITIONS.values():
        assert targets <= set(Stage)


def test_focus_end_to_end(console, tmp_path):
    answers = [
        "Focus",
        0,  # No Lock
        NO_BREAKS,
        True,
        "reddit.com",
        "",
        False,  # exceptions
        False,  # executables
        False,  # apps
        False,  # window titles
        False,  # schedule
        False,  # another block
        True,  # save
        "",  # random file name
    ]
    wizard, prompter = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert not prompter.answers
    assert session.stage is Stage.DONE
    assert re.fullmatch(r"ctk_\d+\.ctbbl", session.saved_path.name)
    assert session.saved_path.parent == tmp_path
    assert saved_specs(session) == [
        BlockSpecification(name="Focus", lock=NoLock(), blacklist=[Url(value="reddit.com")])
    ]


def test_history_follows_the_transition_table(console, tmp_path):
    answers = ["Focus", 0, *DECLINE_TARGETS, False, False]
    wizard, _ = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert session.history == [
        Stage.NAME_ENTRY,
        Stage.LOCK_METHOD_SELECT,
        Stage.BREAK_METHOD_SELECT,
        Stage.BLACKLIST_COLLECT,
        Stage.EXCEPTIONS_COLLECT,
        Stage.EXEC_FOLDER_ASK,
        Stage.APP_SELECT_ASK,
        Stage.WINDOW_TITLE_COLLECT,
        Stage.SCHEDULE_ASK,
        Stage.ADD_ANOTHER_BLOCK_ASK,
        Stage.SAVE_ASK,
    ]
    for stage, next_stage in zip(session.history, [*session.history[1:], session.stage]):
        assert next_stage in TRANSITIONS[stage]


def test_declining_to_save_discards_everything(console, tmp_path):
    answers = ["Focus", 0, *DECLINE_TARGETS, False, False]
    wizard, _ = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert session.completed == []
    assert session.saved_path is None
    assert list(tmp_path.iterdir()) == []


def test_illegal_transition_is_refused(console, tmp_path):
    wizard, _ = make_wizard([], console, tmp_path)
    session = wizard.new_session()

    with pytest.raises(RuntimeError):
        wizard._advance(session, Stage.SAVE_ASK)


def test_collection_loops_stop_on_empty_answer(console, tmp_path):
    answers = [
        "Focus",
        0,
        NO_BREAKS,
        True, "reddit.com", "twitter.com", "reddit.com", "",
        True, "reddit.com/r/python", "",
        False,
        False,
        True, "YouTube", "",
        False,
        False,
        True,
        "focus",
    ]
    wizard, prompter = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert not prompter.answers
    assert session.saved_path == tmp_path / "focus.ctbbl"
    [spec] = saved_specs(session)
    assert spec.blacklist == [
        Url(value="reddit.com"),
        Url(value="twitter.com"),
        WindowTitle(value="YouTube"),
    ]
    assert spec.exceptions == [Url(value="reddit.com/r/python")]


def test_several_blocks_with_unique_names(console, tmp_path, output):
    answers = [
        "Focus", 0, *DECLINE_TARGETS,
        True,
        "Focus",  # taken
        "  ",  # blank
        "Study", 3, True, *DECLINE_TARGETS,
        False,
        True,
        "blocks.ctbbl",
    ]
    wizard, prompter = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert not prompter.answers
    assert "Block Focus already exists" in output()
    assert "cannot be empty" in output()
    assert [spec.name for spec in saved_specs(session)] == ["Focus", "Study"]
    assert saved_specs(session)[1].lock == Restart()
    assert session.saved_path == tmp_path / "blocks.ctbbl"


def test_random_text_lock(console, tmp_path, output):
    answers = ["Focus", 1, "abc", "0", "12", *DECLINE_TARGETS, False, True, "focus"]
    wizard, _ = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert saved_specs(session)[0].lock == RandomText(length=12)
    assert "whole number" in output()


def test_random_text_lock_default_length(console, tmp_path):
    answers = ["Focus", 1, "", *DECLINE_TARGETS, False, True, "focus"]
    wizard, _ = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert saved_specs(session)[0].lock == RandomText(length=30)


def test_time_range_lock(console, tmp_path, output):
    answers = [
        "Focus",
        2,
        # end before start: asked again from the start
        "18:30", "5:00pm",
        # unparseable time
        "half past six",
        "6:30pm", "20:00",
        False,  # unlocked during the window
        *DECLINE_TARGETS, False, True, "focus",
    ]
    wizard, prompter = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert not prompter.answers
    assert saved_specs(session)[0].lock == TimeRange(
        start=time(18, 30), end=time(20, 0), lock_during=False
    )
    assert "Do you want to lock during that time range?" in prompter.prompts()
    assert "must be after" in output()
    assert "unparseable" in output()


def test_restart_lock_can_stay_blocked(console, tmp_path):
    answers = ["Focus", 3, False, *DECLINE_TARGETS, False, True, "focus"]
    wizard, prompter = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert saved_specs(session)[0].lock == Restart(unblock_after_restart=False)
    assert "Do you want the block to be unblocked after a restart?" in prompter.prompts()


@pytest.mark.parametrize(
    "break_answers, expected",
    [
        ([1, "", "x", "0", "20"], Allowance(minutes=20)),
        ([2, "50", "10"], Pomodoro(block_minutes=50, break_minutes=10)),
    ],
)
def test_break_method(console, tmp_path, break_answers, expected):
    answers = ["Focus", 0, *break_answers, *[False] * 6, False, True, "focus"]
    wizard, prompter = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert not prompter.answers
    assert saved_specs(session)[0].break_method == expected


def test_password_lock(console, tmp_path):
    answers = ["Focus", 4, "", "hunter2", *DECLINE_TARGETS, False, True, "focus"]
    wizard, prompter = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert saved_specs(session)[0].lock == Password(secret="hunter2")
    assert [method for method, _ in prompter.asked].count("read_password") == 2


def test_invalid_lock_choice_is_asked_again(console, tmp_path):
    answers = ["Focus", 7, 3, True, *DECLINE_TARGETS, False, False]
    wizard, prompter = make_wizard(answers, console, tmp_path)

    wizard.run()

    assert prompter.prompts().count("Choose a lock method") == 2


def test_schedule_collection(console, tmp_path, output):
    answers = [
        "Focus", 0, NO_BREAKS, False, False, False, False, False,
        True,  # schedule
        True, set(), {1, 5}, "9:00", "25:00", "17:00", 2, "25", "5",
        True, {0, 6}, "10:00", "10:00", 1, "abc", "30",
        False,
        False, True, "focus",
    ]
    wizard, prompter = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert not prompter.answers
    assert saved_specs(session)[0].schedule == [
        ScheduleEntry(
            days={Weekday.MONDAY, Weekday.FRIDAY},
            start=time(9, 0),
            end=time(17, 0),
            break_method=Pomodoro(block_minutes=25, break_minutes=5),
        ),
        ScheduleEntry(
            days={Weekday.SUNDAY, Weekday.SATURDAY},
            start=time(10, 0),
            end=time(10, 0),
            break_method=Allowance(minutes=30),
        ),
    ]
    assert prompter.prompts().count("Choose a break method") == 3
    assert "at least one" in output()
    assert "whole number of minutes" in output()
    assert "whole day" in output()


def test_executables_and_folders(console, tmp_path):
    browse = tmp_path / "browse"
    (browse / "games").mkdir(parents=True)
    (browse / "games" / "steam.exe").write_text("")
    (browse / "notes.txt").write_text("")
    (browse / "tool.exe").write_text("")
    out = tmp_path / "out"
    out.mkdir()

    answers = [
        "Focus", 0, NO_BREAKS, False, False,
        True,  # executables
        "ls", {0, 1},
        "cd nowhere",
        "search steam", {0},
        "done",
        False, False, False, False, True, "focus",
    ]
    wizard, prompter = make_wizard(
        answers, console, out, file_browser=FileSystemBrowser([".exe"])
    )
    session = wizard.new_session()
    session.browse_dir = browse

    wizard.run(session)

    assert not prompter.answers
    assert saved_specs(session)[0].blacklist == [
        ExecutablePath(value=(browse / "tool.exe").as_posix()),
        ExecutablePath(value=(browse / "games" / "steam.exe").as_posix()),
        FolderPath(value=(browse / "games").as_posix()),
    ]


def test_enumeration_failure_returns_to_question(console, tmp_path, output):
    answers = [
        "Focus", 0, NO_BREAKS, False, False,
        True, "ls",  # fails
        False,  # asked again, declined
        True,  # apps
        False,  # asked again after the catalog fails, declined
        False, False, False, False,
    ]
    wizard, prompter = make_wizard(
        answers,
        console,
        tmp_path,
        file_browser=BrokenBrowser(),
        app_catalog=FakeCatalog(error=ExternalEnumerationError("no apps here")),
    )

    session = wizard.run()

    assert not prompter.answers
    assert "permission denied" in output()
    assert "no apps here" in output()
    transitions = list(zip(session.history, session.history[1:]))
    assert (Stage.EXEC_FOLDER_COLLECT, Stage.EXEC_FOLDER_ASK) in transitions
    assert (Stage.APP_SELECT, Stage.APP_SELECT_ASK) in transitions


def test_app_selection(console, tmp_path):
    catalog = FakeCatalog(
        apps=[
            InstalledApp("Calculator.exe", "Calculator"),
            InstalledApp("Spotify.exe", "Spotify"),
        ]
    )
    answers = [
        "Focus", 0, NO_BREAKS, False, False, False, True, {1}, False, False, False, True, "focus"
    ]
    wizard, _ = make_wizard(answers, console, tmp_path, app_catalog=catalog)

    session = wizard.run()

    assert saved_specs(session)[0].blacklist == [
        PlatformApp(identifier="Spotify.exe")
    ]


def test_file_name_collision_asks_again(console, tmp_path, output):
    existing = tmp_path / "focus.ctbbl"
    existing.write_text("keep me")
    answers = ["Focus", 0, *DECLINE_TARGETS, False, True, "focus", "focus2"]
    wizard, _ = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert existing.read_text() == "keep me"
    assert session.saved_path == tmp_path / "focus2.ctbbl"
    assert "already exists" in output()


def test_save_failure_can_be_retried(console, tmp_path, monkeypatch):
    calls = []
    real_write = wizard_module.write_settings_file

    def flaky_write(specs, path):
        calls.append(path)
        if len(calls) == 1:
            raise SerializationIOError(path, "disk full")
        return real_write(specs, path)

    monkeypatch.setattr(wizard_module, "write_settings_file", flaky_write)
    answers = ["Focus", 0, *DECLINE_TARGETS, False, True, "first", True, "second"]
    wizard, _ = make_wizard(answers, console, tmp_path)

    session = wizard.run()

    assert calls == [tmp_path / "first.ctbbl", tmp_path / "second.ctbbl"]
    assert session.saved_path == tmp_path / "second.ctbbl"
    assert saved_specs(session)[0].name == "Focus"


def test_save_failure_without_retry_raises(console, tmp_path):
    answers = ["Focus", 0, *DECLINE_TARGETS, False, True, "focus", False]
    wizard, _ = make_wizard(answers, console, tmp_path / "missing")

    with pytest.raises(SerializationIOError):
        wizard.run()

    assert not (tmp_path / "missing").exists()


@pytest.mark.parametrize("interrupt", [KeyboardInterrupt, EOFError])
def test_interrupt_cancels_without_writing(console, tmp_path, interrupt):
    answers = ["Focus", 0, NO_BREAKS, True, "reddit.com", interrupt]
    wizard, _ = make_wizard(answers, console, tmp_path)
    session = wizard.new_session()

    with pytest.raises(WizardCancelled):
        wizard.run(session)

    assert session.cancelled
    assert session.current is None
    assert session.completed == []
    assert list(tmp_path.iterdir()) == []


def test_cancel_stops_before_next_stage(console, tmp_path):
    wizard, prompter = make_wizard([], console, tmp_path)

    def cancel_after_name(prompt):
        wizard.cancel()
        return "Focus"

    prompter.read_line = cancel_after_name

    with pytest.raises(WizardCancelled):
        wizard.run()

    assert wizard.session.history == [Stage.NAME_ENTRY]
    assert wizard.session.current is None
