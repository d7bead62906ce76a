"""
Tests for the command line entry point
"""

import io
import logging
import os

import pytest
from unittest.mock import patch
from rich.console import Console
from rich.logging import RichHandler
from server_setup import cli
from server_setup.session import Session
from server_setup.settings import Settings
from server_setup.tasks import TaskKind, build_registry

from conftest import FakeProber, commands, completed

configure_logging = cli.setup_logging


@pytest.fixture(autouse=True)
def quiet(tmp_path, monkeypatch):
    """Isolate config discovery and keep logging configuration out of the tests"""
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in [n for n in os.environ if n.startswith("SERVER_SETUP_")]:
        monkeypatch.delenv(name)
    with patch("server_setup.cli.setup_logging") as mock_logging:
        yield mock_logging


class TestMain:
    """Test exit codes and modes"""

    def test_list_tasks(self, capsys):
        assert cli.main(["--list-tasks"]) == 0
        assert "wait-online" in capsys.readouterr().out

    def test_unknown_task(self):
        assert cli.main(["--task", "reboot", "--dry-run"]) == 2

    def test_invalid_metric(self):
        assert cli.main(["--usb-metric", "0", "--dry-run"]) == 2

    def test_invalid_rename_target(self):
        assert cli.main(["--usb-name", "this-name-is-too-long", "--dry-run"]) == 2

    def test_show_plan(self, capsys):
        assert cli.main(["--task", "lid", "--task", "update", "--show-plan", "--dry-run"]) == 0
        out = capsys.readouterr().out
        assert out.index("Update/Upgrade packages") < out.index("Ignore lid close")
        assert "DRY-RUN" in out

    def test_dry_run(self, mock_subprocess, capsys):
        """Test a dry run executes nothing and reports success"""
        assert cli.main(["--task", "sleep", "--task", "firewall", "--dry-run", "--yes"]) == 0
        mock_subprocess.assert_not_called()
        assert "No changes were made" in capsys.readouterr().out

    def test_empty_selection(self, mock_subprocess):
        assert cli.main(["--dry-run"]) == 0
        mock_subprocess.assert_not_called()

    def test_requires_root(self, mock_subprocess, quiet):
        """Test the root check comes before any log file is opened"""
        with patch("server_setup.cli.os.geteuid", return_value=1000):
            assert cli.main(["--task", "sleep", "--yes"]) == 1
        mock_subprocess.assert_not_called()
        assert quiet.call_count == 1
        assert quiet.call_args.args[1] is None

    def test_real_run(self, mock_subprocess, quiet):
        with patch("server_setup.cli.os.geteuid", return_value=0):
            assert cli.main(["--task", "sleep", "--yes"]) == 0
        assert commands(mock_subprocess) == [["systemctl", "mask", "sleep.target",
                                              "suspend.target", "hibernate.target",
                                              "hybrid-sleep.target"]]
        log_file = quiet.call_args.args[1]
        assert log_file.name.startswith("setup-")

    def test_failed_task_exit_code(self, mock_subprocess):
        mock_subprocess.side_effect = lambda args, **kw: cli_failure(args)
        with patch("server_setup.cli.os.geteuid", return_value=0):
            assert cli.main(["--task", "sleep", "--yes"]) == 1

    def test_declined(self, mock_subprocess):
        with patch("server_setup.cli.os.geteuid", return_value=0), \
             patch("server_setup.cli.Confirm.ask", return_value=False):
            assert cli.main(["--task", "sleep"]) == 0
        mock_subprocess.assert_not_called()

    def test_usbeth_unsupported_platform(self, mock_subprocess):
        with patch("server_setup.cli.os.geteuid", return_value=0), \
             patch("server_setup.cli.InterfaceProberFactory.is_supported", return_value=False):
            assert cli.main(["--enable-usbeth", "--yes"]) == 3

    def test_init_config(self, tmp_path):
        assert cli.main(["--init-config"]) == 0
        assert (tmp_path / "xdg" / "server-setup" / "config.toml").exists()


def cli_failure(args):
    return completed(args, 1, "", "Failed to mask unit")


class TestArguments:
    def test_overrides(self):
        settings = Settings()
        args = cli.create_parser(settings).parse_args([
            "--usb-iface", "enx1", "--usb-name", "wan0", "--usb-metric", "5",
            "--wifi-metric", "900", "--keep-cloud-init", "--dry-run",
        ])
        cli.apply_arguments(args, settings)

        assert settings.usb_interface == "enx1"
        assert settings.usb_rename_target == "wan0"
        assert settings.usb_metric == 5
        assert settings.wifi_metric == 900
        assert settings.suppress_provisioning is False
        assert settings.dry_run is True

    def test_enable_usbeth_adds_to_selection(self):
        settings = Settings(tasks=["ssh"])
        registry = build_registry(settings)
        args = cli.create_parser(settings).parse_args(["--enable-usbeth"])

        cli.select_tasks(args, registry)

        assert [t.kind for t in registry.enabled()] == [TaskKind.SSH, TaskKind.USB_ETHERNET]

    def test_task_flags_replace_configured_selection(self):
        settings = Settings(tasks=["ssh"])
        registry = build_registry(settings)
        cli.select_tasks(cli.create_parser(settings).parse_args(["--task", "lid"]), registry)
        assert [t.kind for t in registry.enabled()] == [TaskKind.LID]


class TestInteractiveMenu:
    def test_toggle_and_apply(self):
        console = Console(file=io.StringIO())
        registry = build_registry()
        session = Session(settings=Settings())

        with patch("server_setup.cli.Prompt.ask", side_effect=["1", "d", "x", "p", "a"]):
            assert cli.interactive_menu(registry, session, console)

        assert [t.kind for t in registry.enabled()] == [TaskKind.UPDATE]
        assert session.dry_run
        assert "Unknown choice" in console.file.getvalue()

    def test_quit(self):
        with patch("server_setup.cli.Prompt.ask", return_value="q"):
            assert not cli.interactive_menu(build_registry(), Session(), Console(file=io.StringIO()))


class TestShowDetect:
    def test_table(self, usb_prober):
        console = Console(file=io.StringIO(), width=120)
        session = Session(prober=usb_prober)

        assert cli.show_detect(session, console) == 0

        out = console.file.getvalue()
        assert "enx00e04c680001" in out
        assert "skip-listed" in out

    def test_unsupported(self):
        console = Console(file=io.StringIO())
        session = Session()
        with patch.object(Session, "get_prober", side_effect=NotImplementedError("no udev")):
            assert cli.show_detect(session, console) == 3

    def test_link_state_column(self):
        console = Console(file=io.StringIO(), width=140)
        prober = FakeProber(
            {"enx0": (True, "00:e0:4c:68:00:01"), "enp0s3": (False, "10:20:30:40:50:60")},
            carriers={"enx0"},
        )

        assert cli.show_detect(Session(prober=prober), console) == 0

        rows = {line.split()[0]: line for line in console.file.getvalue().splitlines()
                if line.split() and line.split()[0] in ("enx0", "enp0s3")}
        assert rows["enx0"].rstrip().endswith("up")
        assert rows["enp0s3"].rstrip().endswith("down")


class TestSetupLogging:
    """Test console and file logging handlers"""

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in list(root.handlers):
            if handler not in handlers:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)

    def rich_handlers(self):
        return [h for h in logging.getLogger().handlers if isinstance(h, RichHandler)]

    def test_console_records_use_rich_console(self):
        """Test log lines are printed by the same console as the progress bar"""
        console = Console(file=io.StringIO(), width=120)

        configure_logging(False, None, console)
        logging.getLogger("server_setup.system").info("[OK] Done: systemctl mask sleep.target")

        handlers = self.rich_handlers()
        assert len(handlers) == 1
        assert handlers[0].console is console
        assert "[OK] Done: systemctl mask sleep.target" in console.file.getvalue()

    def test_reconfigure_replaces_handlers(self):
        console = Console(file=io.StringIO())
        configure_logging(False, None, console)
        configure_logging(True, None, console)

        assert len(self.rich_handlers()) == 1
        assert self.rich_handlers()[0].level == logging.DEBUG

    def test_private_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "setup.log"

        configure_logging(False, log_file, Console(file=io.StringIO()))
        logging.getLogger("server_setup.system").debug("  | output line")

        assert log_file.stat().st_mode & 0o777 == 0o600
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "output line" in log_file.read_text()
