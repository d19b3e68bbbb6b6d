import io

import pytest
from loguru import logger
from rich.console import Console

from cold_turkey_kit.errors import EmptyRequiredField
from cold_turkey_kit.settings import settings


class ScriptedPrompter:
    """Answers wizard prompts from a fixed script, in order."""

    def __init__(self, answers):
        self.answers = list(answers)
        self.asked: list[tuple[str, str]] = []

    def _next(self, method: str, prompt: str):
        self.asked.append((method, prompt))
        if not self.answers:
            raise AssertionError(f"Script ran out of answers at {method}({prompt!r})")
        answer = self.answers.pop(0)
        if isinstance(answer, BaseException) or (
            isinstance(answer, type) and issubclass(answer, BaseException)
        ):
            raise answer
        return answer

    def read_line(self, prompt, allow_empty=False):
        answer = self._next("read_line", prompt).strip()
        if not answer and not allow_empty:
            raise EmptyRequiredField("An answer is required")
        return answer

    def read_yes_no(self, prompt):
        return self._next("read_yes_no", prompt)

    def read_single_choice(self, prompt, options):
        return self._next("read_single_choice", prompt)

    def read_multi_choice(self, prompt, options):
        return self._next("read_multi_choice", prompt)

    def read_password(self, prompt):
        return self._next("read_password", prompt)

    def prompts(self) -> list[str]:
        return [prompt for _, prompt in self.asked]


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keeps logs and config out of the real user directories."""
    monkeypatch.setattr(settings, "data_dir", tmp_path / "data")
    monkeypatch.setattr(settings, "log_dir", tmp_path / "logs")
    monkeypatch.setattr(settings, "output_dir", None)
    monkeypatch.setattr(settings, "random_text_length", 30)
    monkeypatch.setattr(settings, "settings_extension", ".ctbbl")
    yield
    logger.remove()


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, soft_wrap=True)


@pytest.fixture
def output(console):
    """Returns everything printed to the test console so far."""
    return lambda: console.file.getvalue()
