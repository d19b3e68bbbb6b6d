import re
from typing import Protocol

from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from cold_turkey_kit.errors import EmptyRequiredField, InvalidSelection


class Prompter(Protocol):
    """Everything the suggest wizard asks of the terminal. Indexes are 0-based."""

    def read_line(self, prompt: str, allow_empty: bool = False) -> str:
        """Reads one stripped line; a blank answer raises EmptyRequiredField unless allowed."""
        ...

    def read_yes_no(self, prompt: str) -> bool: ...

    def read_single_choice(self, prompt: str, options: list[str]) -> int: ...

    def read_multi_choice(self, prompt: str, options: list[str]) -> set[int]: ...

    def read_password(self, prompt: str) -> str: ...


_RANGE = re.compile(r"(\d+)-(\d+)")


def parse_choice_numbers(answer: str, option_count: int) -> set[int]:
    """Parses '1 3, 5-7' into 0-based indexes, rejecting anything outside 1..option_count."""
    indexes: set[int] = set()
    for token in answer.replace(",", " ").split():
        match = _RANGE.fullmatch(token)
        if match:
            first, last = int(match[1]), int(match[2])
        elif token.isdigit():
            first = last = int(token)
        else:
            raise InvalidSelection(f"'{token}' is not a number")
        if first > last or first < 1 or last > option_count:
            raise InvalidSelection(f"'{token}' is outside 1-{option_count}")
        indexes.update(range(first - 1, last))
    return indexes


class RichPrompter:
    """Asks questions on the terminal with rich prompts and numbered tables."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def _show_options(self, title: str, options: list[str]) -> None:
        table = Table(title=title, show_header=False, box=None)
        table.add_column("#", justify="right", style="cyan", no_wrap=True)
        table.add_column("Option", style="magenta")
        for number, option in enumerate(options, 1):
            table.add_row(str(number), option)
        self.console.print(table)

    def read_line(self, prompt: str, allow_empty: bool = False) -> str:
        answer = Prompt.ask(prompt, console=self.console, default="", show_default=False).strip()
        if not answer and not allow_empty:
            raise EmptyRequiredField("An answer is required")
        return answer

    def read_yes_no(self, prompt: str) -> bool:
        # Confirm re-asks until it gets y or n
        return Confirm.ask(prompt, console=self.console)

    def read_single_choice(self, prompt: str, options: list[str]) -> int:
        self._show_options(prompt, options)
        answer = Prompt.ask("Number", console=self.console).strip()
        indexes = parse_choice_numbers(answer, len(options))
        if len(indexes) != 1:
            raise InvalidSelection("Pick exactly one option")
        return indexes.pop()

    def read_multi_choice(self, prompt: str, options: list[str]) -> set[int]:
        self._show_options(prompt, options)
        answer = Prompt.ask(
            "Numbers [dim](e.g. 1 3 5-7, empty for none)[/dim]",
            console=self.console,
            default="",
            show_default=False,
        )
        return parse_choice_numbers(answer, len(options))

    def read_password(self, prompt: str) -> str:
        return Prompt.ask(prompt, console=self.console, password=True)
