from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from adbmirror.config import MirrorConfig, config_path, load_config, save_config
from adbmirror.device import list_devices
from adbmirror.engine import sync_folders
from adbmirror.errors import AdbMirrorError, SyncCancelled
from adbmirror.logging_setup import setup_logging
from adbmirror.models import SyncSummary
from adbmirror.transfer_ui import SyncProgressUI


app = typer.Typer(help="Mirror a local folder onto an Android device over adb.")
console = Console()
T = TypeVar("T")


def _format_bytes(value: int) -> str:
    size = float(value)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024 or unit == "GiB":
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{value} B"


def _render_summary(summary: SyncSummary) -> None:
    title = "Dry run (nothing changed on the device)" if summary.dry_run else "Sync complete"
    table = Table(title=title, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Device", escape(summary.device.display_name))
    table.add_row("Local root", escape(summary.local_root))
    table.add_row("Remote path", escape(summary.remote_path))
    table.add_row("Files synced", str(summary.files_synced))
    table.add_row("Files deleted", str(summary.files_deleted))
    table.add_row("Directories created", str(summary.directories_created))
    table.add_row("Skipped entries", str(summary.skipped_entries))
    table.add_row("Bytes uploaded", _format_bytes(summary.bytes_uploaded))
    console.print(table)


def _render_config(config: MirrorConfig) -> None:
    table = Table(title=f"Config: {config_path()}", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("adb_path", escape(config.adb_path))
    table.add_row("serial", escape(config.serial or "-"))
    table.add_row("command_timeout", f"{config.command_timeout:g}s")
    table.add_row("last_local_path", escape(config.last_local_path or "-"))
    table.add_row("last_device_path", escape(config.last_device_path or "-"))
    console.print(table)


def _run_cancellable(job: Callable[[], T], cancel_event: threading.Event) -> T:
    # Ctrl-C only raises on the main thread; turn it into a cooperative cancel
    # that the worker honours between actions.
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="adbmirror-sync") as executor:
        future = executor.submit(job)
        while True:
            try:
                return future.result(timeout=0.2)
            except FutureTimeout:
                continue
            except KeyboardInterrupt:
                cancel_event.set()
                console.print("[yellow]Cancelling after the current action...[/yellow]")


def _load_config_or_report() -> MirrorConfig | None:
    try:
        return load_config()
    except (OSError, ValueError, TypeError) as exc:
        console.print(f"[red]Cannot read config {config_path()}:[/red] {escape(str(exc))}")
        return None


def _sync(
    local_path: str | None,
    device_path: str | None,
    *,
    dry_run: bool,
    serial: str | None,
    adb_path: str | None,
    timeout: float | None,
    count_hidden: bool,
) -> int:
    config = _load_config_or_report()
    if config is None:
        return 1

    local_path = local_path or config.last_local_path
    device_path = device_path or config.last_device_path
    if not local_path or not device_path:
        console.print("[red]Pass LOCAL and DEVICE_PATH (no previous run to reuse).[/red]")
        return 1

    cancel_event = threading.Event()
    try:
        with SyncProgressUI(console=console) as ui:
            summary = _run_cancellable(
                lambda: sync_folders(
                    local_path,
                    device_path,
                    dry_run,
                    serial=serial or config.serial,
                    adb_path=adb_path or config.adb_path,
                    command_timeout=timeout or config.command_timeout,
                    on_progress=ui,
                    cancel_event=cancel_event,
                    report_hidden=count_hidden,
                ),
                cancel_event,
            )
    except SyncCancelled as exc:
        console.print(f"[yellow]{escape(str(exc))}[/yellow] The device may hold a partial mirror; rerun to finish.")
        return 130
    except AdbMirrorError as exc:
        label = "Dry run failed" if dry_run else "Sync failed"
        console.print(f"[red]{label} ({exc.kind}):[/red] {escape(str(exc))}")
        return 1

    _render_summary(summary)

    config.last_local_path = summary.local_root
    config.last_device_path = summary.remote_path
    try:
        save_config(config)
    except OSError as exc:
        console.print(f"[yellow]Could not remember paths in {config_path()}:[/yellow] {escape(str(exc))}")
    return 0


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every device command and action."),
) -> None:
    setup_logging(verbose, console=console)


@app.command()
def sync(
    local_path: str | None = typer.Argument(
        None,
        help="Local folder to mirror. Defaults to the last one used.",
    ),
    device_path: str | None = typer.Argument(
        None,
        help="Destination folder on the device, e.g. /sdcard/Music. Defaults to the last one used.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Compute and report the plan without changing the device.",
    ),
    serial: str | None = typer.Option(
        None,
        "--serial",
        "-s",
        help="Device serial when more than one device is attached.",
    ),
    adb_path: str | None = typer.Option(None, "--adb", help="Path to the adb executable."),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for a single device command.",
    ),
    count_hidden: bool = typer.Option(
        False,
        "--count-hidden",
        help="Report hidden local entries as skipped instead of ignoring them silently.",
    ),
) -> None:
    """Mirror LOCAL_PATH onto DEVICE_PATH, deleting device files that are not present locally."""
    raise typer.Exit(
        code=_sync(
            local_path,
            device_path,
            dry_run=dry_run,
            serial=serial,
            adb_path=adb_path,
            timeout=timeout,
            count_hidden=count_hidden,
        )
    )


@app.command()
def devices(
    adb_path: str | None = typer.Option(None, "--adb", help="Path to the adb executable."),
) -> None:
    """List attached Android devices and their authorization state."""
    config = _load_config_or_report()
    if config is None:
        raise typer.Exit(code=1)
    try:
        attached = list_devices(adb_path or config.adb_path, timeout=config.command_timeout)
    except AdbMirrorError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    if not attached:
        console.print("[yellow]No Android devices attached.[/yellow]")
        return

    table = Table(title="Attached devices")
    table.add_column("Serial")
    table.add_column("State")
    table.add_column("Model")
    table.add_column("USB")
    for device in attached:
        style = "green" if device.state == "device" else "yellow"
        table.add_row(
            escape(device.serial),
            f"[{style}]{escape(device.state)}[/{style}]",
            escape(device.model or "-"),
            escape(device.usb or "-"),
        )
    console.print(table)


@app.command("config")
def configure(
    serial: str | None = typer.Option(None, "--serial", help="Default device serial."),
    adb_path: str | None = typer.Option(None, "--adb", help="Default adb executable."),
    timeout: float | None = typer.Option(None, "--timeout", help="Default per-command timeout in seconds."),
) -> None:
    """Show or update the stored defaults."""
    config = _load_config_or_report()
    if config is None:
        raise typer.Exit(code=1)

    changed = False
    if serial is not None:
        config.serial = serial or None
        changed = True
    if adb_path is not None:
        config.adb_path = adb_path
        changed = True
    if timeout is not None:
        if timeout <= 0:
            console.print("[red]--timeout must be positive.[/red]")
            raise typer.Exit(code=1)
        config.command_timeout = timeout
        changed = True

    if changed:
        path = save_config(config)
        console.print(f"[green]Saved[/green] {path}")
    _render_config(config)
