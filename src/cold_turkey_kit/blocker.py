import subprocess
from pathlib import Path

from loguru import logger

from cold_turkey_kit.errors import BlockerCommandError, BlockerNotFoundError
from cold_turkey_kit.settings import settings


class ColdTurkeyBlocker:
    """Drives an installed Cold Turkey Blocker through its command line switches."""

    def __init__(self, executable: Path | None = None):
        self.executable = Path(executable or settings.blocker_path)

    def _run(self, *args: str, secret: str | None = None) -> None:
        cmd = [str(self.executable), *args]
        # Never write a password to the log or an error message
        shown = ["****" if secret is not None and arg == secret else arg for arg in cmd]
        logger.info(f"Running Cold Turkey: {' '.join(shown[1:])}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            raise BlockerNotFoundError(self.executable) from None
        except OSError as e:
            logger.error(f"Failed to run {self.executable}: {e}")
            raise BlockerCommandError(shown, -1, str(e)) from e

        if result.returncode != 0:
            logger.error(f"Cold Turkey exited with {result.returncode}: {result.stderr}")
            raise BlockerCommandError(shown, result.returncode, result.stderr)

    def launch(self) -> None:
        """Opens the Cold Turkey window without waiting for it to close."""
        try:
            subprocess.Popen([str(self.executable)])
        except FileNotFoundError:
            raise BlockerNotFoundError(self.executable) from None

    def start(
        self,
        block_name: str,
        lock_minutes: int | None = None,
        password: str | None = None,
    ) -> None:
        """Starts a block, optionally locking it for some minutes or behind a password."""
        if lock_minutes is not None and password is not None:
            raise ValueError("A block is locked either by time or by password, not both")

        if lock_minutes is not None:
            self._run("-start", block_name, "-lock", str(lock_minutes))
        elif password is not None:
            self._run("-start", block_name, "-password", password, secret=password)
        else:
            self._run("-start", block_name)

    def stop(self, block_name: str) -> None:
        self._run("-stop", block_name)

    def toggle(self, block_name: str) -> None:
        self._run("-toggle", block_name)

    def add_url(self, block_name: str, url: str, exception: bool = False) -> None:
        self._run("-add", block_name, "-exception" if exception else "-web", url)
