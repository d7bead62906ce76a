"""
Tests for host setup actions
"""

import logging

import pytest
from server_setup import actions
from server_setup.exceptions import PrimitiveFailure, ValidationFailure

from conftest import commands, completed

SSHD_STOCK = (
    "Include /etc/ssh/sshd_config.d/*.conf\n"
    "#PermitRootLogin prohibit-password\n"
    "PasswordAuthentication no\n"
    "#PubkeyAuthentication yes\n"
    "PubkeyAcceptedKeyTypes +ssh-rsa\n"
)


def respond(table):
    """subprocess.run side effect answering by argv[0:2]"""
    def side_effect(args, **kwargs):
        for prefix, result in table.items():
            if tuple(args[:len(prefix)]) == prefix:
                return completed(args, *result)
        return completed(args)
    return side_effect


class TestSetDirective:
    def test_replaces_commented_line(self):
        text = actions.set_directive(SSHD_STOCK, "PermitRootLogin", "no")
        assert "PermitRootLogin no\n" in text
        assert "prohibit-password" not in text

    def test_replaces_active_line(self):
        text = actions.set_directive(SSHD_STOCK, "PasswordAuthentication", "yes")
        assert "PasswordAuthentication yes\n" in text
        assert "PasswordAuthentication no" not in text

    def test_does_not_touch_longer_keys(self):
        text = actions.set_directive(SSHD_STOCK, "PubkeyAuthentication", "yes")
        assert "PubkeyAcceptedKeyTypes +ssh-rsa" in text

    def test_appends_missing(self):
        assert actions.set_directive("Port 22", "UsePAM", "yes") == "Port 22\nUsePAM yes\n"

    def test_duplicate_lines_collapse(self):
        text = "#PermitRootLogin yes\nPort 22\nPermitRootLogin prohibit-password\n"
        assert actions.set_directive(text, "PermitRootLogin", "no") == "PermitRootLogin no\nPort 22\n"

    def test_idempotent(self):
        once = actions.set_directive(SSHD_STOCK, "UsePAM", "yes")
        assert actions.set_directive(once, "UsePAM", "yes") == once


class TestSetIniOption:
    def test_creates_section(self):
        assert actions.set_ini_option("", "Login", "HandleLidSwitch", "ignore") == (
            "[Login]\nHandleLidSwitch=ignore\n"
        )

    def test_replaces_commented(self):
        text = "[Login]\n#HandleLidSwitch=suspend\n#HoldoffTimeoutSec=30s\n"
        assert actions.set_ini_option(text, "Login", "HandleLidSwitch", "ignore") == (
            "[Login]\nHandleLidSwitch=ignore\n#HoldoffTimeoutSec=30s\n"
        )

    def test_similar_key_untouched(self):
        text = "[Login]\n#HandleLidSwitchDocked=ignore\n"
        result = actions.set_ini_option(text, "Login", "HandleLidSwitch", "ignore")
        assert result == "[Login]\n#HandleLidSwitchDocked=ignore\nHandleLidSwitch=ignore\n"

    def test_duplicate_lines_collapse(self):
        """Test commented and active copies of a key leave a single line"""
        text = "[Login]\n#HandleLidSwitch=suspend\nHandleLidSwitch=lock\n#KillUserProcesses=no\n"
        assert actions.set_ini_option(text, "Login", "HandleLidSwitch", "ignore") == (
            "[Login]\nHandleLidSwitch=ignore\n#KillUserProcesses=no\n"
        )

    def test_stays_in_section(self):
        text = "[Login]\n#NAutoVTs=6\n\n[Other]\nHandleLidSwitch=suspend\n"
        result = actions.set_ini_option(text, "Login", "HandleLidSwitch", "ignore")
        assert result == (
            "[Login]\n#NAutoVTs=6\nHandleLidSwitch=ignore\n\n[Other]\nHandleLidSwitch=suspend\n"
        )


class TestHardenSsh:
    """Test validate-before-activate SSH configuration"""

    @pytest.fixture
    def sshd_config(self, live_session):
        cfg = live_session.path(actions.SSHD_CONFIG)
        cfg.parent.mkdir(parents=True)
        cfg.write_text(SSHD_STOCK)
        return cfg

    def test_applies_directives(self, live_session, sshd_config, mock_subprocess):
        actions.harden_ssh(live_session)

        text = sshd_config.read_text()
        for key, value in live_session.settings.ssh_directives.items():
            assert f"{key} {value}\n" in text
        assert len(list(sshd_config.parent.glob("sshd_config.bak_*"))) == 1
        assert not sshd_config.with_name("sshd_config.candidate").exists()

        cmds = commands(mock_subprocess)
        assert cmds[0] == ["systemctl", "enable", "ssh"]
        assert cmds[2] == ["sshd", "-t", "-f", str(sshd_config.with_name("sshd_config.candidate"))]
        assert cmds[-1] == ["systemctl", "restart", "ssh"]

    def test_rejected_config_never_activates(self, live_session, sshd_config, mock_subprocess):
        """Test a candidate rejected by sshd -t leaves the live file alone"""
        mock_subprocess.side_effect = respond({("sshd",): (255, "", "Bad configuration option")})

        with pytest.raises(ValidationFailure, match="Bad configuration option"):
            actions.harden_ssh(live_session)

        assert sshd_config.read_text() == SSHD_STOCK
        assert sorted(p.name for p in sshd_config.parent.iterdir()) == ["sshd_config"]
        assert ["systemctl", "restart", "ssh"] not in commands(mock_subprocess)

    def test_converged_config_is_left_alone(self, live_session, sshd_config, mock_subprocess):
        actions.harden_ssh(live_session)
        mock_subprocess.reset_mock()

        actions.harden_ssh(live_session)

        assert commands(mock_subprocess) == [
            ["systemctl", "enable", "ssh"],
            ["systemctl", "start", "ssh"],
        ]
        assert len(list(sshd_config.parent.glob("sshd_config.bak_*"))) == 1

    def test_missing_config_fails(self, live_session, mock_subprocess):
        with pytest.raises(PrimitiveFailure, match="file not found"):
            actions.harden_ssh(live_session)

    def test_dry_run_creates_nothing(self, dry_session, host_root, caplog):
        with caplog.at_level(logging.INFO):
            actions.harden_ssh(dry_session)
        assert list(host_root.iterdir()) == []
        assert "[DRY-RUN] Would run: systemctl restart ssh" in caplog.text


class TestTimezone:
    def test_sets_known_zone(self, live_session, mock_subprocess):
        mock_subprocess.side_effect = respond({
            ("timedatectl", "list-timezones"): (0, "Asia/Bangkok\nUTC\n"),
        })
        actions.set_timezone(live_session)
        assert ["timedatectl", "set-timezone", "Asia/Bangkok"] in commands(mock_subprocess)

    def test_unknown_zone_skips(self, live_session, mock_subprocess, caplog):
        live_session.settings.timezone = "Mars/Olympus"
        mock_subprocess.side_effect = respond({
            ("timedatectl", "list-timezones"): (0, "Asia/Bangkok\nUTC\n"),
        })

        with caplog.at_level(logging.WARNING):
            actions.set_timezone(live_session)

        assert "Timezone Mars/Olympus not found" in caplog.text
        assert all(cmd[1] != "set-timezone" for cmd in commands(mock_subprocess))


class TestLidClose:
    def test_writes_and_restarts(self, live_session, mock_subprocess):
        cfg = live_session.path(actions.LOGIND_CONF)
        cfg.parent.mkdir(parents=True)
        cfg.write_text("[Login]\n#HandleLidSwitch=suspend\n#HandleLidSwitchDocked=ignore\n")

        actions.ignore_lid_close(live_session)

        assert cfg.read_text() == "[Login]\nHandleLidSwitch=ignore\nHandleLidSwitchDocked=ignore\n"
        assert commands(mock_subprocess) == [["systemctl", "restart", "systemd-logind"]]

    def test_second_run_is_noop(self, live_session, mock_subprocess):
        actions.ignore_lid_close(live_session)
        mock_subprocess.reset_mock()

        actions.ignore_lid_close(live_session)

        mock_subprocess.assert_not_called()


class TestCommandTasks:
    """Test the command sequences of the simpler tasks"""

    def test_update_packages(self, live_session, mock_subprocess):
        actions.update_packages(live_session)
        assert commands(mock_subprocess) == [
            ["apt-get", "update"],
            ["apt-get", "-y", "upgrade"],
            ["apt-get", "-y", "autoremove"],
        ]

    def test_install_packages_tolerates_smartmontools(self, live_session, mock_subprocess):
        mock_subprocess.side_effect = respond({
            ("apt-get", "install", "-y", "smartmontools"): (100, "", "E: Unable to locate"),
        })
        actions.install_packages(live_session)
        first = commands(mock_subprocess)[0]
        assert first[:3] == ["apt-get", "install", "-y"]
        assert "openssh-server" in first

    def test_install_packages_failure(self, live_session, mock_subprocess):
        mock_subprocess.side_effect = respond({("apt-get", "install"): (100, "", "E: broken")})
        with pytest.raises(PrimitiveFailure):
            actions.install_packages(live_session)

    def test_firewall(self, live_session, mock_subprocess):
        actions.configure_firewall(live_session)
        cmds = commands(mock_subprocess)
        assert ["ufw", "default", "deny", "incoming"] in cmds
        assert cmds.index(["ufw", "allow", "OpenSSH"]) < cmds.index(["ufw", "--force", "enable"])

    def test_disable_sleep(self, live_session, mock_subprocess):
        actions.disable_sleep(live_session)
        assert commands(mock_subprocess) == [["systemctl", "mask", *actions.SLEEP_TARGETS]]

    def test_wait_online_tolerates_missing_unit(self, live_session, mock_subprocess):
        mock_subprocess.side_effect = respond({("systemctl",): (5, "", "Unit not found")})
        actions.disable_wait_online(live_session)
        assert len(commands(mock_subprocess)) == 2
