"""
CLI interface for server setup
"""

import os
import sys
import logging
import argparse
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text
from rich.markup import escape
from rich import box

from . import __version__
from .factory import InterfaceProberFactory
from .orchestrator import Orchestrator, ProgressEvent, ProgressPhase, RunPlan, RunSummary, TaskState
from .session import Session
from .settings import Settings, get_config_paths, init_config, load_settings
from .tasks import TaskKind, TaskRegistry, build_registry, parse_task_ids

LOG_FORMAT = '[%(asctime)s] %(levelname)s: %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

CONSOLE_HANDLER = "server-setup-console"
FILE_HANDLER = "server-setup-file"


def setup_logging(
    verbose: bool = False,
    log_file: Optional[Path] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Configure console logging and, optionally, a private log file.

    Console records go through the rich console so they print above a live
    progress bar. The file always receives DEBUG detail (command output
    included). Calling again replaces the handlers installed earlier.
    """
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() in (CONSOLE_HANDLER, FILE_HANDLER):
            root.removeHandler(existing)
            existing.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        log_time_format=f"[{LOG_DATEFMT}]",
    )
    console_handler.set_name(CONSOLE_HANDLER)
    console_handler.setLevel(level)
    root.addHandler(console_handler)
    root.setLevel(level)

    if log_file is None:
        return

    logger = logging.getLogger(__name__)
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        log_file.touch(mode=0o600, exist_ok=True)
        os.chmod(log_file, 0o600)
        handler = logging.FileHandler(log_file)
    except OSError as e:
        logger.warning(f"[!] Cannot open log file {log_file}: {e}")
        return

    handler.set_name(FILE_HANDLER)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    logger.info(f"Log: {log_file}")


def default_log_file(settings: Settings) -> Path:
    return Path(settings.log_dir) / f"setup-{datetime.now():%Y-%m-%d-%H%M%S}.log"


def create_parser(settings: Settings) -> argparse.ArgumentParser:
    """Create CLI argument parser with defaults from settings."""
    task_ids = ", ".join(kind.value for kind in TaskKind)
    parser = argparse.ArgumentParser(
        description="Apply idempotent host setup tasks in a fixed, safe order",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Tasks (run order): {task_ids}

Examples:
  # Dry-run (safe, no changes)
  %(prog)s --all --dry-run

  # Harden SSH and enable the firewall
  sudo %(prog)s --task ssh --task firewall

  # Take over a USB Ethernet adapter as preferred uplink
  sudo %(prog)s --enable-usbeth --usb-name usbeth0 --usb-metric 10

  # Pick tasks interactively
  sudo %(prog)s --interactive
        """
    )

    # Config management
    parser.add_argument("--profile", metavar="NAME", help="Use named profile from config file")
    parser.add_argument("--show-config", action="store_true",
                        help="Show current configuration and available profiles")
    parser.add_argument("--init-config", action="store_true",
                        help="Initialize user config file with defaults")
    parser.add_argument("--list-tasks", action="store_true", help="List tasks in run order")
    parser.add_argument("--detect", action="store_true",
                        help="Show network interfaces and their USB attribution")
    parser.add_argument("--show-plan", action="store_true",
                        help="Show what would run and exit")

    # Selection
    parser.add_argument("--task", dest="tasks", action="append", metavar="ID",
                        help="Enable a task (repeatable)")
    parser.add_argument("--all", action="store_true", help="Enable every task")
    parser.add_argument("-i", "--interactive", action="store_true",
                        help="Toggle tasks from an interactive menu")

    # USB Ethernet
    usb = parser.add_argument_group("USB Ethernet")
    usb.add_argument("--enable-usbeth", action="store_true",
                     help="Enable USB Ethernet setup (auto-detect USB NIC)")
    usb.add_argument("--usb-iface", metavar="IFACE",
                     help="Force a specific interface (ex: enx..., enp...)")
    usb.add_argument("--usb-name", metavar="NAME",
                     help=f"Name assigned via udev (default: {settings.usb_rename_target})")
    usb.add_argument("--usb-metric", type=int, metavar="N",
                     help=f"RouteMetric for the USB link (default: {settings.usb_metric})")
    usb.add_argument("--wifi-glob", metavar="GLOB",
                     help=f"WiFi match glob (default: {settings.wifi_glob})")
    usb.add_argument("--wifi-metric", type=int, metavar="N",
                     help=f"RouteMetric for WiFi (default: {settings.wifi_metric})")
    usb.add_argument("--keep-cloud-init", action="store_true",
                     help="Do not disable cloud-init network configuration")

    # Behavior (defaults from settings)
    parser.add_argument("--dry-run", action="store_true", default=settings.dry_run,
                        help="Show what would be done without making changes")
    parser.add_argument("-y", "--yes", action="store_true", default=settings.skip_confirmation,
                        help="Skip the confirmation prompt")
    parser.add_argument("--log-file", type=Path, metavar="PATH",
                        help=f"Log file (default: {settings.log_dir}/setup-<timestamp>.log)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--version", action="version", version=f"server-setup {__version__}")

    return parser


def apply_arguments(args: argparse.Namespace, settings: Settings) -> None:
    """Fold CLI overrides into settings (highest precedence)."""
    if args.usb_iface is not None:
        settings.usb_interface = args.usb_iface
    if args.usb_name is not None:
        settings.usb_rename_target = args.usb_name
    if args.usb_metric is not None:
        settings.usb_metric = args.usb_metric
    if args.wifi_glob is not None:
        settings.wifi_glob = args.wifi_glob
    if args.wifi_metric is not None:
        settings.wifi_metric = args.wifi_metric
    if args.keep_cloud_init:
        settings.suppress_provisioning = False
    settings.dry_run = args.dry_run


def select_tasks(args: argparse.Namespace, registry: TaskRegistry) -> None:
    """
    Apply --task/--all/--enable-usbeth on top of the configured selection.

    Raises:
        ValueError: If a task identifier is unknown
    """
    if args.all:
        registry.enable_all()
    elif args.tasks:
        registry.enable_only(parse_task_ids(args.tasks))
    if args.enable_usbeth:
        registry.set_enabled(TaskKind.USB_ETHERNET, True)


def show_config(settings: Settings, console: Console) -> None:
    """Display current configuration and available profiles."""
    console.print("[bold cyan]Configuration Sources[/bold cyan]")
    if settings.config_sources:
        for source in settings.config_sources:
            console.print(f"  [green][OK][/green] {source}")
    else:
        console.print("  [dim]No config files found (using built-in defaults)[/dim]")

    console.print()
    console.print("[bold cyan]Config Search Paths[/bold cyan]")
    for path in get_config_paths():
        exists = "[green][OK][/green]" if path.exists() else "[dim]--[/dim]"
        console.print(f"  {exists} {path}")

    console.print()
    console.print("[bold cyan]Current Settings[/bold cyan]")
    settings_table = Table(box=box.SIMPLE)
    settings_table.add_column("Setting", style="cyan")
    settings_table.add_column("Value", style="white")

    settings_table.add_row("tasks", ", ".join(settings.tasks) or "(none)")
    settings_table.add_row("timezone", settings.timezone)
    settings_table.add_row("log_dir", settings.log_dir)
    settings_table.add_row("dry_run", str(settings.dry_run))
    settings_table.add_row("usb.interface", settings.usb_interface or "auto")
    settings_table.add_row("usb.rename_target", settings.usb_rename_target)
    settings_table.add_row("usb.usb_metric", str(settings.usb_metric))
    settings_table.add_row("usb.wifi_glob", settings.wifi_glob)
    settings_table.add_row("usb.wifi_metric", str(settings.wifi_metric))
    settings_table.add_row("usb.suppress_provisioning", str(settings.suppress_provisioning))
    for directive, value in settings.ssh_directives.items():
        settings_table.add_row(f"ssh.{directive}", value)
    if settings.default_profile:
        settings_table.add_row("default_profile", settings.default_profile)
    console.print(settings_table)

    if settings.profiles:
        console.print()
        console.print("[bold cyan]Available Profiles[/bold cyan]")
        profiles_table = Table(box=box.SIMPLE)
        profiles_table.add_column("Profile", style="cyan")
        profiles_table.add_column("Tasks", style="white")
        profiles_table.add_column("Description", style="dim")

        for name, profile in settings.profiles.items():
            default_marker = " [yellow]*[/yellow]" if name == settings.default_profile else ""
            profiles_table.add_row(f"{name}{default_marker}", ", ".join(profile.tasks),
                                   profile.description)

        console.print(profiles_table)
        console.print("[dim]* = default profile[/dim]")


def render_tasks(registry: TaskRegistry, title: str = "Tasks") -> Table:
    table = Table(title=title, box=box.SIMPLE)
    table.add_column("#", style="dim", justify="right")
    table.add_column("On")
    table.add_column("ID", style="cyan")
    table.add_column("Task")
    for number, task in enumerate(registry, start=1):
        mark = "[green]\\[x][/green]" if task.enabled else "[ ]"
        table.add_row(str(number), mark, task.id, task.label)
    return table


def show_detect(session: Session, console: Console) -> int:
    """Print every interface with its bus attribution, MAC and link state."""
    try:
        prober = session.get_prober()
    except NotImplementedError as e:
        console.print(f"[red][FAIL][/red] {e}")
        return 3

    table = Table(title="Detected Interfaces", box=box.SIMPLE)
    table.add_column("Interface", style="cyan")
    table.add_column("Bus")
    table.add_column("Detected by", style="dim")
    table.add_column("MAC")
    table.add_column("Link")

    for iface in prober.snapshot():
        bus = "[green]usb[/green]" if iface.is_usb else f"[dim]{iface.bus.value}[/dim]"
        link = "[green]up[/green]" if prober.has_carrier(iface.name) else "[dim]down[/dim]"
        table.add_row(iface.name, bus, iface.detected_by or "", prober.read_mac(iface.name) or "", link)

    console.print(table)
    return 0


def render_plan(plan: RunPlan, session: Session) -> Panel:
    return Panel(Text("\n".join(plan.describe(session))), title="Plan", border_style="cyan")


def render_summary(summary: RunSummary) -> Table:
    """Final outcome table for every selected task"""
    title = "Summary (dry-run)" if summary.dry_run else "Summary"
    table = Table(title=title, box=box.SIMPLE)
    table.add_column("Task", style="cyan")
    table.add_column("Result")
    table.add_column("Time", justify="right", style="dim")
    table.add_column("Detail", style="red")

    if summary.is_empty:
        table.add_row("[dim]No tasks selected[/dim]", "", "", "")
    for outcome in summary.outcomes:
        result = ("[green]OK[/green]" if outcome.state is TaskState.SUCCEEDED
                  else "[red]FAILED[/red]")
        table.add_row(escape(outcome.label), result, f"{outcome.elapsed:.1f}s", escape(outcome.detail or ""))
    return table


class ProgressRenderer:
    """Progress sink drawing a rich progress bar."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self.bar = progress.add_task("Working...", total=100)

    def __call__(self, event: ProgressEvent) -> None:
        match event.phase:
            case ProgressPhase.STARTED:
                description = f"Running: {event.label}"
            case ProgressPhase.FINISHED:
                description = f"Finished: {event.label}"
            case _:
                description = event.label
        self.progress.update(self.bar, completed=event.fraction * 100, description=description)


def interactive_menu(registry: TaskRegistry, session: Session, console: Console) -> bool:
    """
    Toggle tasks until the operator applies or quits.

    Returns:
        True if the operator chose to apply
    """
    while True:
        console.print(render_tasks(registry, title="Configure tasks"))
        mode = "[yellow]ON[/yellow]" if session.dry_run else "off"
        console.print(f"Dry-run: {mode}")
        choice = Prompt.ask(
            "Number to toggle, [cyan]d[/cyan] dry-run, [cyan]p[/cyan] plan, "
            "[cyan]a[/cyan] apply, [cyan]q[/cyan] quit",
            console=console,
        ).strip().lower()

        if choice == "q":
            return False
        if choice == "a":
            return True
        if choice == "d":
            session.dry_run = not session.dry_run
        elif choice == "p":
            console.print(render_plan(Orchestrator(registry, session).plan(), session))
        elif choice.isdigit() and 1 <= int(choice) <= len(registry):
            task = list(registry)[int(choice) - 1]
            task.toggle()
        else:
            console.print("[yellow]Unknown choice[/yellow]")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    console = Console()
    argv = list(sys.argv[1:] if argv is None else argv)

    # Profile must be known before settings-based defaults are built
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--profile")
    profile_arg = pre.parse_known_args(argv)[0].profile

    settings = load_settings(profile=profile_arg)
    parser = create_parser(settings)
    args = parser.parse_args(argv)

    if args.init_config:
        config_path = init_config()
        if config_path:
            console.print(f"[green][OK][/green] Config file created: {config_path}")
        else:
            console.print("[yellow]Config file already exists.[/yellow]")
            console.print("Use --show-config to view current settings.")
        return 0

    if args.profile and args.profile not in settings.profiles:
        console.print(f"[yellow]Warning: Profile '{args.profile}' not found[/yellow]")
        console.print("Available profiles:", ", ".join(settings.list_profiles()) or "(none)")

    try:
        apply_arguments(args, settings)
        settings.usb_options()
        registry = build_registry(settings)
        select_tasks(args, registry)
    except ValueError as e:
        setup_logging(args.verbose, None, console)
        logging.getLogger(__name__).error(f"[FAIL] Configuration error: {e}")
        return 2

    if args.show_config:
        show_config(settings, console)
        return 0

    session = Session.from_settings(settings)

    if args.list_tasks:
        console.print(render_tasks(registry))
        return 0

    if args.detect:
        setup_logging(args.verbose, None, console)
        return show_detect(session, console)

    if args.interactive:
        try:
            if not interactive_menu(registry, session, console):
                return 0
        except (KeyboardInterrupt, EOFError):
            console.print("\n[yellow][!] Cancelled by user[/yellow]")
            return 130

    orchestrator = Orchestrator(registry, session)
    plan = orchestrator.plan()

    if args.show_plan:
        console.print(render_plan(plan, session))
        return 0

    logger = logging.getLogger(__name__)
    real_run = not session.dry_run and not plan.is_empty

    if real_run and os.geteuid() != 0:
        setup_logging(args.verbose, None, console)
        logger.error("[FAIL] Please run as root: sudo server-setup ... (or use --dry-run)")
        return 1

    log_file = args.log_file
    if log_file is None and real_run:
        log_file = default_log_file(settings)
    setup_logging(args.verbose, log_file, console)

    usb_selected = any(task.kind is TaskKind.USB_ETHERNET for task in plan.tasks)
    if usb_selected and not session.dry_run and not InterfaceProberFactory.is_supported():
        logger.error("[FAIL] USB Ethernet setup requires Linux")
        return 3

    def confirm(plan: RunPlan) -> bool:
        console.print(render_plan(plan, session))
        if args.yes or plan.is_empty:
            return True
        return Confirm.ask("Apply these changes?", default=False, console=console)

    if not confirm(plan):
        logger.info("Configuration cancelled by user")
        return 0

    try:
        with Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            orchestrator.progress = ProgressRenderer(progress)
            summary = orchestrator.apply()
    except KeyboardInterrupt:
        logger.info("\n[!] Setup cancelled by user")
        return 130

    console.print(render_summary(summary))
    if log_file is not None:
        console.print(f"Log: {log_file}")
    if summary.dry_run:
        console.print("[yellow][DRY-RUN MODE] No changes were made[/yellow]")
    elif any(o.kind is TaskKind.USB_ETHERNET for o in summary.succeeded):
        console.print("[cyan]\\[i] Reboot recommended for the USB rename to apply.[/cyan]")

    return 0 if summary.ok else 1


if __name__ == "__main__":
    sys.exit(main())
