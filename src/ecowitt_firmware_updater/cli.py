"""
Ecowitt Firmware Updater CLI

Command-line interface for reading gateway identity and uploading firmware.
"""

import sys
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.progress import Progress, BarColumn, TextColumn
from rich.logging import RichHandler

from ecowitt_firmware_updater import __version__
from ecowitt_firmware_updater.config import (
    DEFAULT_PORT,
    DEFAULT_REPLY_TIMEOUT,
    UpdaterConfig,
)
from ecowitt_firmware_updater.core.parsing import parse_port as _parse_port_core
from ecowitt_firmware_updater.core.results import OperationResult
from ecowitt_firmware_updater.core.actions import run_gateway_session
from ecowitt_firmware_updater.core.messages import (
    WarningItem,
    MessageLevel,
    result_to_warnings,
)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True, console=Console(stderr=True))],
)
logger = logging.getLogger("ecowitt_firmware_updater")

# Setup Rich console
console = Console()

app = typer.Typer(help="📡 Ecowitt Gateway Firmware Updater - read identity and upload firmware")

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_CONNECT_FAILED = 2
EXIT_OPERATION_FAILED = 3


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def print_structured_warning(warning: WarningItem, verbose: bool = False) -> None:
    """Print a structured warning with optional remediation."""
    if warning.level == MessageLevel.ERROR:
        style = "red"
    elif warning.level == MessageLevel.WARN:
        style = "yellow"
    else:
        style = "blue"

    console.print(warning.to_cli_string(verbose=verbose), style=style, markup=False)


def print_warnings_from_result(result: OperationResult, verbose: bool = False) -> None:
    """Print all warnings from an OperationResult using structured format."""
    for warning in result_to_warnings(result):
        print_structured_warning(warning, verbose=verbose)


def parse_port(value: Optional[str]) -> int:
    """
    Parse port value from string.

    CLI wrapper around core.parsing.parse_port that converts
    ValueError to typer.BadParameter for proper CLI error handling.
    """
    try:
        return _parse_port_core(value)
    except ValueError as e:
        raise typer.BadParameter(str(e))


def build_config(
    debug: bool,
    verbose: bool,
    timeout: float,
    strict_checksum: bool,
    accept_timeout: Optional[float],
) -> UpdaterConfig:
    """Build and validate the runtime config from command options."""
    config = UpdaterConfig(
        debug=debug,
        verbose=verbose,
        reply_timeout=timeout,
        strict_checksum=strict_checksum,
        accept_timeout=accept_timeout,
    )
    try:
        config.validate()
    except ValueError as e:
        raise typer.BadParameter(str(e))

    if debug or verbose:
        logger.setLevel(logging.DEBUG)
    return config


def exit_code_for(results: List[OperationResult]) -> int:
    """Map operation outcomes to the process exit code."""
    if any(r.operation == "connect" and not r.ok for r in results):
        return EXIT_CONNECT_FAILED
    if any(not r.ok for r in results):
        return EXIT_OPERATION_FAILED
    return EXIT_OK


def show_results(results: List[OperationResult], verbose: bool = False) -> None:
    """Render results as rich tables plus structured warnings."""
    for result in results:
        if result.operation == "read_info" and result.ok:
            table = Table(title="Gateway Information")
            table.add_column("Property", style="cyan")
            table.add_column("Value", style="green")
            table.add_row("Gateway", result.gateway)
            table.add_row("MAC Address", result.metadata["station_mac"])
            table.add_row("Firmware Version", result.metadata["firmware_version"])
            console.print(table)

        elif result.operation == "update_firmware" and result.ok:
            table = Table(title="Firmware Transfer")
            table.add_column("Property", style="cyan")
            table.add_column("Value", style="green")
            table.add_row(
                "Callback",
                f"{result.metadata['callback_address']}:{result.metadata['callback_port']}",
            )
            table.add_row("Image", result.metadata["image"] or "(none requested)")
            table.add_row("Image Size", f"{result.metadata['image_size']:,} bytes")
            table.add_row("Packets Sent", str(result.metadata["packets_sent"]))
            table.add_row("Bytes Sent", f"{result.bytes_len:,}")
            table.add_row("Completed", "yes" if result.metadata["completed"] else "no")
            console.print(table)

        print_warnings_from_result(result, verbose=verbose)

        if result.ok:
            print_success(f"{result.operation} complete")
        else:
            print_error(f"{result.operation} failed")


def run_and_report(
    host: str,
    port: int,
    firmware1: Optional[Path],
    firmware2: Optional[Path],
    config: UpdaterConfig,
    output_json: bool,
) -> None:
    """Run a gateway session, print its results and exit with the mapped code."""
    if output_json:
        results = run_gateway_session(host, port, firmware1, firmware2, config)
        typer.echo(json.dumps([r.to_dict() for r in results], indent=2))
    elif firmware1 is None:
        console.print(f"Gateway: {host}:{port}")
        with console.status("Talking to gateway..."):
            results = run_gateway_session(host, port, config=config)
        show_results(results, verbose=config.trace)
    else:
        console.print(f"Gateway: {host}:{port}")
        with Progress(
            TextColumn("[{task.description}]"),
            BarColumn(),
            TextColumn("[{task.percentage:.0f}%]"),
            console=console,
        ) as progress:
            # total is unknown until the gateway picks an image
            task = progress.add_task("Sending firmware...", total=None)

            def _progress_cb(sent: int, total: int) -> None:
                progress.update(task, completed=sent, total=total)

            results = run_gateway_session(
                host, port, firmware1, firmware2, config, progress_cb=_progress_cb
            )
        show_results(results, verbose=config.trace)

    sys.exit(exit_code_for(results))


@app.command()
def info(
    host: str = typer.Option(..., "--host", "-h", help="Gateway host name or IPv4 address"),
    port: str = typer.Option(str(DEFAULT_PORT), "--port", "-p", help="Gateway API port (or 'ecowitt')"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Hex-dump replies and trace every step"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol milestones"),
    timeout: float = typer.Option(DEFAULT_REPLY_TIMEOUT, "--timeout", help="Reply timeout in seconds"),
    strict_checksum: bool = typer.Option(False, "--strict-checksum", help="Fail on reply checksum errors"),
    accept_timeout: Optional[float] = typer.Option(None, "--accept-timeout", help="Seconds to wait for the gateway to connect back (update only)"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON for scripting"),
) -> None:
    """Read the gateway's MAC address and firmware version."""
    port_num = parse_port(port)
    config = build_config(debug, verbose, timeout, strict_checksum, accept_timeout)

    if not output_json:
        print_header("Ecowitt Gateway Info")
    run_and_report(host, port_num, None, None, config, output_json)


@app.command()
def update(
    image1: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Firmware image (user1.bin)"
    ),
    image2: Optional[Path] = typer.Argument(
        None, exists=True, dir_okay=False, readable=True, help="Second image for dual-image gateways (user2.bin)"
    ),
    host: str = typer.Option(..., "--host", "-h", help="Gateway host name or IPv4 address"),
    port: str = typer.Option(str(DEFAULT_PORT), "--port", "-p", help="Gateway API port (or 'ecowitt')"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Hex-dump replies and trace every step"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol milestones"),
    timeout: float = typer.Option(DEFAULT_REPLY_TIMEOUT, "--timeout", help="Reply timeout in seconds"),
    strict_checksum: bool = typer.Option(False, "--strict-checksum", help="Fail on reply checksum errors"),
    accept_timeout: Optional[float] = typer.Option(
        None, "--accept-timeout", help="Seconds to wait for the gateway to connect back (default: forever)"
    ),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON for scripting"),
) -> None:
    """Read gateway identity, then upload new firmware to it."""
    port_num = parse_port(port)
    config = build_config(debug, verbose, timeout, strict_checksum, accept_timeout)

    if not output_json:
        print_header("Ecowitt Gateway Firmware Update")
        console.print(f"Image 1: {image1}")
        if image2 is not None:
            console.print(f"Image 2: {image2}")
        if accept_timeout is None:
            print_warning("No --accept-timeout given; waiting for the gateway to connect back indefinitely")
    run_and_report(host, port_num, image1, image2, config, output_json)


@app.command()
def version() -> None:
    """Show the updater version."""
    console.print(f"ecowitt-fw-updater {__version__}")


def main() -> None:
    """Main entry point."""
    try:
        app(standalone_mode=False)
    except (KeyboardInterrupt, typer.Abort):
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        # Parameter errors come from whichever click build typer ships,
        # so match the ClickException interface rather than a class.
        if hasattr(e, "show") and hasattr(e, "exit_code"):
            e.show()
            sys.exit(EXIT_USAGE)
        console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(EXIT_OPERATION_FAILED)


if __name__ == "__main__":
    main()
