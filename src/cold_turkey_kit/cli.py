from datetime import datetime
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from cold_turkey_kit.blocker import ColdTurkeyBlocker
from cold_turkey_kit.errors import (
    BlockerError,
    SerializationIOError,
    WizardCancelled,
)
from cold_turkey_kit.schema import (
    Allowance,
    BlockSpecification,
    PlatformApp,
    Pomodoro,
    Restart,
    TimeRange,
)
from cold_turkey_kit.serializer import dumps, read_settings_file
from cold_turkey_kit.settings import load_settings, settings
from cold_turkey_kit.utils.apps import PlatformAppCatalog
from cold_turkey_kit.utils.filesystem import FileSystemBrowser
from cold_turkey_kit.utils.logging import setup_logging
from cold_turkey_kit.utils.prompts import RichPrompter
from cold_turkey_kit.utils.time import (
    format_duration_minutes,
    lock_minutes_until,
    parse_duration,
    resolve,
)
from cold_turkey_kit.wizard import SuggestWizard


app = typer.Typer(help="ctk - A better CLI interface for Cold Turkey")
console = Console()


def get_blocker() -> ColdTurkeyBlocker:
    return ColdTurkeyBlocker(settings.blocker_path)


def run_blocker(action, *args, **kwargs) -> None:
    """Runs a blocker command, turning failures into a non-zero exit."""
    try:
        action(*args, **kwargs)
    except BlockerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def lock_minutes_from_args(words: list[str], now: datetime) -> int | None:
    """
    Reads the optional `for DURATION` or `until TIME [DATE...]` words after a
    block name into a lock duration in minutes.
    """
    if not words:
        return None

    mode, rest = words[0].lower(), words[1:]
    if mode == "for":
        if len(rest) != 1:
            raise ValueError("Usage: start <block> for <duration>, e.g. 90, 45m or 1h30m")
        return parse_duration(rest[0])
    if mode == "until":
        if not rest:
            raise ValueError("Usage: start <block> until <time> [date], e.g. until 6:30pm")
        time_words = 2 if len(rest) > 1 and rest[1].lower() in ("am", "pm") else 1
        date_str = " ".join(rest[time_words:]) or None
        instant = resolve(" ".join(rest[:time_words]), date_str, now)
        return lock_minutes_until(instant, now)
    raise ValueError(f"Expected 'for' or 'until' after the block name, got '{words[0]}'")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launches Cold Turkey when no command is given."""
    if ctx.invoked_subcommand is not None:
        return
    setup_logging()
    try:
        get_blocker().launch()
    except BlockerError as e:
        console.print(f"[red]Failed to launch Cold Turkey:[/red] {e}")
        raise typer.Exit(1) from None
    console.print("[green]Launched Cold Turkey[/green]")


@app.command()
def start(
    block_name: str = typer.Argument(..., help="The name of the Cold Turkey block"),
    lock: list[str] | None = typer.Argument(
        None,
        help="Optional lock: 'for 90', 'for 1h30m', 'until 6:30pm' or 'until 18:30 7 June 2030'",
    ),
    password: bool = typer.Option(
        False, "--password", "-p", help="Lock the block with a password"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Start a block, optionally locked for a while, until a time or by password."""
    setup_logging(verbose=verbose)

    if password and lock:
        console.print("[red]Error:[/red] Use either --password or for/until, not both.")
        raise typer.Exit(1)

    try:
        minutes = lock_minutes_from_args(lock or [], datetime.now())
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    blocker = get_blocker()
    if password:
        secret = RichPrompter(console).read_password("Please enter your password")
        if not secret:
            console.print("[red]Error:[/red] The password cannot be empty.")
            raise typer.Exit(1)
        run_blocker(blocker.start, block_name, password=secret)
        console.print(f"[green]Started {block_name}[/green], locked with a password.")
    elif minutes is not None:
        run_blocker(blocker.start, block_name, lock_minutes=minutes)
        console.print(
            f"[green]Started {block_name}[/green], locked for "
            f"{format_duration_minutes(minutes)}."
        )
    else:
        run_blocker(blocker.start, block_name)
        console.print(f"[green]Started {block_name}[/green]")


@app.command()
def stop(
    block_name: str = typer.Argument(..., help="The name of the Cold Turkey block"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Stop a block."""
    setup_logging(verbose=verbose)
    run_blocker(get_blocker().stop, block_name)
    console.print(f"[green]Stopped {block_name}[/green]")


@app.command()
def toggle(
    block_name: str = typer.Argument(..., help="The name of the Cold Turkey block"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Turn a block on if it is off, off if it is on."""
    setup_logging(verbose=verbose)
    run_blocker(get_blocker().toggle, block_name)
    console.print(f"[green]Toggled {block_name}[/green]")


@app.command()
def add(
    block_name: str = typer.Argument(..., help="The name of the Cold Turkey block"),
    url: str = typer.Argument(..., help="The url to add in the block"),
    except_: bool = typer.Option(
        False, "--except", "-e", help="Add the url as an exception instead"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Add a website (url) to a block."""
    setup_logging(verbose=verbose)
    run_blocker(get_blocker().add_url, block_name, url, exception=except_)
    list_name = "exceptions" if except_ else "blocklist"
    console.print(f"[green]Added {url} to the {list_name} of {block_name}[/green]")


@app.command()
def suggest(
    output_dir: Path | None = typer.Option(
        None, "--output-dir", "-o", help="Where to save the settings file (default: cwd)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Interactively suggest what blocks you want Cold Turkey to have."""
    setup_logging(verbose=verbose)
    wizard = SuggestWizard(
        RichPrompter(console),
        file_browser=FileSystemBrowser(settings.executable_extensions),
        app_catalog=PlatformAppCatalog(settings.apps_dir),
        console=console,
        output_dir=output_dir,
    )
    try:
        wizard.run()
    except WizardCancelled as e:
        console.print(f"\n[yellow]{e}[/yellow]")
        raise typer.Exit(1) from None
    except SerializationIOError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _describe_lock(spec: BlockSpecification) -> str:
    lock = spec.lock
    if isinstance(lock, TimeRange):
        mode = "locked" if lock.lock_during else "unlocked"
        return f"Time Range ({mode} {lock.start:%H:%M}-{lock.end:%H:%M})"
    if isinstance(lock, Restart):
        after = "unblocked" if lock.unblock_after_restart else "still blocked"
        return f"Restart ({after} after a restart)"
    return {
        "none": "No Lock",
        "randomText": f"Random Text ({getattr(lock, 'length', '')} characters)",
        "password": "Password",
    }[lock.method]


def _describe_break(method) -> str:
    if isinstance(method, Allowance):
        return f"Allowance {method.minutes}m"
    if isinstance(method, Pomodoro):
        return f"Pomodoro {method.block_minutes}m/{method.break_minutes}m"
    return "No Breaks"


def _describe_targets(entries: list) -> str:
    if not entries:
        return "None"
    return "\n".join(
        f"[dim]{'app' if isinstance(e, PlatformApp) else e.kind}:[/dim] {e.label}"
        for e in entries
    )


def _load_blocks(file: Path) -> list[BlockSpecification]:
    try:
        return read_settings_file(file)
    except OSError as e:
        console.print(f"[red]Error:[/red] Could not read {file}: {e}")
        raise typer.Exit(1) from None
    except ValueError as e:
        logger.debug(f"Invalid settings file {file}: {e}")
        console.print(f"[red]Error:[/red] {file} is not a valid settings file: {e}")
        raise typer.Exit(1) from None


@app.command(name="list")
def list_blocks(
    file: Path = typer.Argument(..., help="A .ctbbl settings file"),
    as_json: bool = typer.Option(
        False, "--json", "-j", help="Print every block as Cold Turkey reads it"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """List the blocks of a settings file in alphabetical order."""
    setup_logging(verbose=verbose)
    specs = _load_blocks(file)

    if as_json:
        console.print_json(dumps(specs), indent=4)
        return
    if not specs:
        console.print("[yellow]No blocks found.[/yellow]")
        return
    for name in sorted((spec.name for spec in specs), key=str.lower):
        console.print(name)


@app.command()
def show(
    file: Path = typer.Argument(..., help="A .ctbbl settings file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Show the blocks stored in a settings file."""
    setup_logging(verbose=verbose)
    specs = _load_blocks(file)

    if not specs:
        console.print("[yellow]No blocks found.[/yellow]")
        return

    table = Table(title=f"Blocks in {file.name}")
    table.add_column("Block", style="cyan", no_wrap=True)
    table.add_column("Lock", style="magenta")
    table.add_column("Breaks", style="blue")
    table.add_column("Blocklist", style="white")
    table.add_column("Exceptions", style="green")
    table.add_column("Schedule", style="yellow")

    for spec in specs:
        schedule = "Continuous"
        if spec.scheduled:
            schedule = "\n".join(
                f"{', '.join(day.value[:3] for day in entry.ordered_days)} "
                f"{entry.start:%H:%M}-{entry.end:%H:%M} ({_describe_break(entry.break_method)})"
                for entry in spec.schedule
            )
        table.add_row(
            spec.name,
            _describe_lock(spec),
            _describe_break(spec.break_method),
            _describe_targets(spec.blacklist),
            _describe_targets(spec.exceptions),
            schedule,
        )

    console.print(table)


@app.command()
def config(
    blocker: Path | None = typer.Option(
        None, "--blocker", "-b", help="Path to the Cold Turkey Blocker executable"
    ),
    apps_dir: Path | None = typer.Option(
        None, "--apps-dir", "-a", help="Directory to scan for Windows 10 apps"
    ),
    output_dir: Path | None = typer.Option(
        None, "--output-dir", "-o", help="Default directory for suggested settings files"
    ),
    random_text_length: int | None = typer.Option(
        None, "--random-length", "-r", help="Default length of random-text locks"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure where Cold Turkey lives and how suggest behaves."""
    setup_logging(verbose=verbose)
    current_settings = load_settings()

    if blocker is not None:
        if not blocker.exists():
            console.print(
                f"[yellow]Warning:[/yellow] {blocker} does not exist (yet). Saving anyway."
            )
        current_settings.blocker_path = blocker
    if apps_dir is not None:
        current_settings.apps_dir = apps_dir
    if output_dir is not None:
        current_settings.output_dir = output_dir
    if random_text_length is not None:
        if random_text_length < 1:
            console.print("[red]Error:[/red] The random text length must be at least 1.")
            raise typer.Exit(1)
        current_settings.random_text_length = random_text_length

    current_settings.save()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Cold Turkey Blocker", str(current_settings.blocker_path))
    table.add_row("Apps Directory", str(current_settings.apps_dir or "Built-in list"))
    table.add_row("Output Directory", str(current_settings.output_dir or "Current directory"))
    table.add_row("Random Text Length", str(current_settings.random_text_length))
    table.add_row("Settings Extension", current_settings.settings_extension)
    console.print(table)
    console.print("[green]Configuration saved![/green]")
