from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from cold_turkey_kit.errors import ExternalEnumerationError

# Characters after which a match counts as the start of a word
WORD_SEPARATORS = set("/\\_-. ")

CONSECUTIVE_BONUS = 50
WORD_START_BONUS = 20


@dataclass(frozen=True)
class FileSystemEntry:
    name: str
    path: Path
    kind: str  # "executable" or "folder"


def fuzzy_score(query: str, target: str) -> int | None:
    """
    Scores how well query matches target as a case-insensitive subsequence.

    Returns None when some character of query does not appear (in order) in
    target. Runs of consecutive characters and matches at the start of a word
    score higher.
    """
    query = query.lower()
    target = target.lower()
    if not query:
        return 0

    score = 0
    position = 0
    previous = -2
    for char in query:
        index = target.find(char, position)
        if index == -1:
            return None
        if index == previous + 1:
            score += CONSECUTIVE_BONUS
        if index == 0 or target[index - 1] in WORD_SEPARATORS:
            score += WORD_START_BONUS
        previous = index
        position = index + 1
    return score


class FileSystemBrowser:
    """Lists the executables and folders a block can point at."""

    def __init__(self, executable_extensions: list[str] | None = None):
        extensions = executable_extensions or [".exe"]
        self.executable_extensions = {ext.lower() for ext in extensions}

    def _classify(self, path: Path, is_dir: bool) -> FileSystemEntry | None:
        if is_dir:
            return FileSystemEntry(path.name, path, "folder")
        if path.suffix.lower() in self.executable_extensions:
            return FileSystemEntry(path.name, path, "executable")
        return None

    def list(self, directory: Path) -> list[FileSystemEntry]:
        """Lists the folders and executables directly inside directory, sorted by name."""
        try:
            children = sorted(Path(directory).iterdir(), key=lambda p: p.name.lower())
            entries = [self._classify(child, child.is_dir()) for child in children]
        except OSError as e:
            raise ExternalEnumerationError(f"Cannot list {directory}: {e}") from e
        return [entry for entry in entries if entry is not None]

    def search(self, directory: Path, keyword: str) -> list[FileSystemEntry]:
        """Finds folders and executables below directory whose path fuzzily matches keyword."""
        errors: list[OSError] = []
        scored: list[tuple[int, FileSystemEntry]] = []

        directory = Path(directory)
        for root, dirs, files in os.walk(directory, onerror=errors.append):
            root_path = Path(root)
            for name, is_dir in [(d, True) for d in dirs] + [(f, False) for f in files]:
                entry = self._classify(root_path / name, is_dir)
                if entry is None:
                    continue
                score = fuzzy_score(keyword, str(entry.path.relative_to(directory)))
                if score is not None:
                    scored.append((score, entry))

        if errors and errors[0].filename == str(directory):
            raise ExternalEnumerationError(f"Cannot search {directory}: {errors[0]}")
        for error in errors:
            logger.debug(f"Skipped unreadable directory during search: {error}")

        # Stable sort keeps walk order among equal scores
        scored.sort(key=lambda item: item[0], reverse=True)
        return [entry for _, entry in scored]
