"""
Host setup actions

Each action takes a Session, raises on failure and converges when run
again. Commands issued with ``check=False`` are the ones whose failure is
tolerated (logged as a warning) rather than fatal to the task.
"""

import re
import logging

from .exceptions import PrimitiveFailure, ValidationFailure
from .session import Session

logger = logging.getLogger(__name__)

SSHD_CONFIG = "/etc/ssh/sshd_config"
LOGIND_CONF = "/etc/systemd/logind.conf"

SLEEP_TARGETS = ("sleep.target", "suspend.target", "hibernate.target", "hybrid-sleep.target")
WAIT_ONLINE_SERVICE = "systemd-networkd-wait-online.service"


# -- config file editing ------------------------------------------------------

def set_directive(text: str, key: str, value: str) -> str:
    """
    Set a space-separated directive (sshd_config style).

    The first existing line for ``key``, commented out or not, is replaced
    and any later ones are dropped; otherwise the directive is appended.
    """
    pattern = re.compile(rf"^[ \t]*#?[ \t]*{re.escape(key)}([ \t].*)?$")
    line = f"{key} {value}"
    lines = text.splitlines()
    matches = [i for i, existing in enumerate(lines) if pattern.match(existing)]
    if matches:
        lines[matches[0]] = line
        for i in reversed(matches[1:]):
            del lines[i]
        return "\n".join(lines) + "\n"
    if text and not text.endswith("\n"):
        text += "\n"
    return f"{text}{line}\n"


def set_ini_option(text: str, section: str, key: str, value: str) -> str:
    """
    Set ``key=value`` inside an INI section (logind.conf style).

    The section header is appended when missing. Within the section the
    first existing (possibly commented) line is replaced and any further
    ones are dropped, else the option is added after the section's last
    line.
    """
    header = f"[{section}]"
    option = re.compile(rf"^[ \t]*#?[ \t]*{re.escape(key)}[ \t]*=")
    lines = text.splitlines()

    start = next((i for i, line in enumerate(lines) if line.strip() == header), None)
    if start is None:
        if lines and lines[-1].strip():
            lines.append("")
        lines.extend([header, f"{key}={value}"])
        return "\n".join(lines) + "\n"

    end = len(lines)
    for i in range(start + 1, len(lines)):
        if lines[i].lstrip().startswith("["):
            end = i
            break

    body: list[str] = []
    replaced = False
    for line in lines[start + 1:end]:
        if not option.match(line):
            body.append(line)
        elif not replaced:
            body.append(f"{key}={value}")
            replaced = True

    if not replaced:
        insert_at = len(body)
        while insert_at > 0 and not body[insert_at - 1].strip():
            insert_at -= 1
        body.insert(insert_at, f"{key}={value}")

    lines[start + 1:end] = body
    return "\n".join(lines) + "\n"


def _read_config(session: Session, path) -> str:
    """Current config text; a missing file is fatal unless simulating"""
    current = session.runner.read_text(path)
    if current is not None:
        return current
    if session.dry_run:
        logger.warning(f"[!] {path} not found; simulating against an empty file")
        return ""
    raise PrimitiveFailure(f"read {path}", "file not found")


# -- actions -----------------------------------------------------------------

def update_packages(session: Session) -> None:
    """Refresh package lists, upgrade and autoremove"""
    run = session.runner.run
    run(["apt-get", "update"])
    run(["apt-get", "-y", "upgrade"])
    run(["apt-get", "-y", "autoremove"])


def set_timezone(session: Session) -> None:
    """Set the configured timezone when the host knows it"""
    tz = session.settings.timezone
    listing = session.runner.query(["timedatectl", "list-timezones"])
    if listing is None or tz not in listing.split():
        logger.warning(f"[!] Timezone {tz} not found. Skipping.")
        return
    session.runner.run(["timedatectl", "set-timezone", tz])


def install_packages(session: Session) -> None:
    """Install the base package set"""
    run = session.runner.run
    run(["apt-get", "install", "-y", *session.settings.base_packages])
    run(["apt-get", "install", "-y", "smartmontools"], check=False)


def harden_ssh(session: Session) -> None:
    """
    Enable SSH and apply the configured sshd directives.

    The new configuration is validated with ``sshd -t`` from a side file
    before it replaces the live one, so a rejected config never becomes
    active.

    Raises:
        ValidationFailure: If sshd rejects the candidate configuration
    """
    runner = session.runner
    runner.run(["systemctl", "enable", "ssh"])
    runner.run(["systemctl", "start", "ssh"])

    cfg = session.path(SSHD_CONFIG)
    current = _read_config(session, cfg)
    updated = current
    for key, value in session.settings.ssh_directives.items():
        updated = set_directive(updated, key, value)

    if updated == current:
        logger.info(f"[OK] {cfg} already has the requested directives")
        return

    candidate = cfg.with_name(f"{cfg.name}.candidate")
    runner.write_file(candidate, updated, backup=False)
    try:
        result = runner.run(["sshd", "-t", "-f", str(candidate)], check=False)
        if not result.ok:
            raise ValidationFailure(str(cfg), result.output)
    finally:
        runner.remove_file(candidate, backup=False)

    runner.write_file(cfg, updated)
    runner.run(["systemctl", "restart", "ssh"])
    logger.info("[OK] SSH configured.")


def configure_firewall(session: Session) -> None:
    """Allow SSH, deny other inbound traffic, enable UFW"""
    run = session.runner.run
    run(["ufw", "allow", "OpenSSH"], check=False)
    run(["ufw", "allow", "22/tcp"], check=False)
    run(["ufw", "default", "deny", "incoming"])
    run(["ufw", "default", "allow", "outgoing"])
    run(["ufw", "--force", "enable"])
    run(["ufw", "status", "verbose"], check=False)


def disable_sleep(session: Session) -> None:
    session.runner.run(["systemctl", "mask", *SLEEP_TARGETS])


def ignore_lid_close(session: Session) -> None:
    """Keep running with the lid closed, docked or not"""
    cfg = session.path(LOGIND_CONF)
    current = session.runner.read_text(cfg) or ""
    updated = set_ini_option(current, "Login", "HandleLidSwitch", "ignore")
    updated = set_ini_option(updated, "Login", "HandleLidSwitchDocked", "ignore")

    if session.runner.write_file(cfg, updated):
        session.runner.run(["systemctl", "restart", "systemd-logind"])


def enable_tlp_sensors(session: Session) -> None:
    run = session.runner.run
    run(["systemctl", "enable", "tlp"])
    run(["systemctl", "start", "tlp"])
    run(["sensors-detect", "--auto"], check=False)
    run(["sensors"], check=False)


def disable_wait_online(session: Session) -> None:
    """Stop boot from blocking on systemd-networkd-wait-online"""
    run = session.runner.run
    run(["systemctl", "disable", "--now", WAIT_ONLINE_SERVICE], check=False)
    run(["systemctl", "mask", WAIT_ONLINE_SERVICE], check=False)
