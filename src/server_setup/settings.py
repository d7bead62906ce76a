"""
Configuration loading for server-setup

Search order (later overrides earlier):
1. Built-in defaults
2. /etc/server-setup/config.toml (system-wide)
3. ~/.config/server-setup/config.toml (user global)
4. ./.server-setup.toml (local directory - adjacent invocation)
5. Environment variables (SERVER_SETUP_*)
6. CLI arguments (highest priority)

Profile support allows named task selections for different machines.
"""

from __future__ import annotations

import os
import logging
import tomllib
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any

from .config import USBEthernetOptions


logger = logging.getLogger(__name__)

# Config file names
CONFIG_FILENAME = "config.toml"
LOCAL_CONFIG_FILENAME = ".server-setup.toml"
ALT_LOCAL_CONFIG = "server-setup.toml"

# Environment variable prefix
ENV_PREFIX = "SERVER_SETUP_"

DEFAULT_LOG_DIR = "/var/log/24x7-setup"
DEFAULT_TIMEZONE = "Asia/Bangkok"

DEFAULT_BASE_PACKAGES: tuple[str, ...] = (
    "openssh-server", "ufw", "curl", "wget", "nano",
    "net-tools", "iproute2", "netcat-openbsd",
    "lm-sensors", "tlp",
)

DEFAULT_SSH_DIRECTIVES: dict[str, str] = {
    "PermitRootLogin": "no",
    "PasswordAuthentication": "yes",
    "PubkeyAuthentication": "yes",
    "UsePAM": "yes",
}

# [usb] keys and the Settings attribute each one sets
USB_KEYS: dict[str, str] = {
    "interface": "usb_interface",
    "rename_target": "usb_rename_target",
    "usb_metric": "usb_metric",
    "wifi_glob": "wifi_glob",
    "wifi_metric": "wifi_metric",
    "suppress_provisioning": "suppress_provisioning",
}


def get_config_dir() -> Path:
    """Get user config directory (XDG-compliant)."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "server-setup"
    return Path.home() / ".config" / "server-setup"


def get_config_paths() -> list[Path]:
    """
    Return list of config paths to check, in precedence order (lowest first).

    Returns paths that WOULD be checked - caller should verify existence.
    """
    paths: list[Path] = []

    # 1. System-wide config
    paths.append(Path("/etc/server-setup") / CONFIG_FILENAME)

    # 2. User global config (XDG)
    paths.append(get_config_dir() / CONFIG_FILENAME)

    # 3. Local directory config (adjacent invocation pattern)
    cwd = Path.cwd()
    paths.append(cwd / LOCAL_CONFIG_FILENAME)
    paths.append(cwd / ALT_LOCAL_CONFIG)

    return paths


@dataclass
class SelectionProfile:
    """A named task selection, optionally with USB overrides."""
    tasks: list[str]
    description: str = ""
    usb: dict[str, Any] = field(default_factory=dict)


@dataclass
class Settings:
    """
    Merged configuration settings from all sources.

    Attributes represent the final resolved values after merging
    all config files, environment variables, and CLI arguments.
    """
    # Behavior defaults
    dry_run: bool = False
    skip_confirmation: bool = False
    log_dir: str = DEFAULT_LOG_DIR
    timezone: str = DEFAULT_TIMEZONE

    # Task identifiers enabled at startup
    tasks: list[str] = field(default_factory=list)

    # USB Ethernet takeover
    usb_interface: str | None = None
    usb_rename_target: str = "usbeth0"
    usb_metric: int = 10
    wifi_glob: str = "wlp*"
    wifi_metric: int = 600
    suppress_provisioning: bool = True

    # Task bodies
    ssh_directives: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SSH_DIRECTIVES))
    base_packages: list[str] = field(default_factory=lambda: list(DEFAULT_BASE_PACKAGES))

    # Profile management
    default_profile: str | None = None
    profiles: dict[str, SelectionProfile] = field(default_factory=dict)

    # Metadata
    config_sources: list[str] = field(default_factory=list)

    def usb_options(self) -> USBEthernetOptions:
        """
        Validated USB takeover parameters.

        Raises:
            ValueError: If a name or metric is invalid
        """
        return USBEthernetOptions(
            interface=self.usb_interface or None,
            rename_target=self.usb_rename_target,
            usb_metric=self.usb_metric,
            wifi_glob=self.wifi_glob,
            wifi_metric=self.wifi_metric,
            suppress_provisioning=self.suppress_provisioning,
        )

    def apply_profile(self, name: str) -> bool:
        """
        Apply a named profile to current settings.

        Returns True if profile was found and applied.
        """
        profile = self.profiles.get(name)
        if not profile:
            return False

        self.tasks = list(profile.tasks)
        _merge_usb(self, profile.usb)
        return True

    def list_profiles(self) -> list[str]:
        """List available profile names."""
        return list(self.profiles.keys())


def _merge_usb(settings: Settings, usb: dict[str, Any]) -> None:
    """Merge a [usb] table into settings."""
    for key, attr in USB_KEYS.items():
        if key in usb:
            setattr(settings, attr, usb[key])


def _merge_defaults(settings: Settings, data: dict[str, Any]) -> None:
    """Merge [defaults] section into settings."""
    defaults = data.get("defaults", {})

    if "dry_run" in defaults:
        settings.dry_run = defaults["dry_run"]
    if "skip_confirmation" in defaults:
        settings.skip_confirmation = defaults["skip_confirmation"]
    if "log_dir" in defaults:
        settings.log_dir = defaults["log_dir"]
    if "timezone" in defaults:
        settings.timezone = defaults["timezone"]
    if "tasks" in defaults:
        settings.tasks = list(defaults["tasks"])


def _merge_sections(settings: Settings, data: dict[str, Any]) -> None:
    """Merge [usb], [ssh] and [packages] sections into settings."""
    _merge_usb(settings, data.get("usb", {}))

    ssh = data.get("ssh", {})
    for directive, value in ssh.items():
        settings.ssh_directives[directive] = str(value)

    packages = data.get("packages", {})
    if "base" in packages:
        settings.base_packages = list(packages["base"])


def _merge_profiles(settings: Settings, data: dict[str, Any]) -> None:
    """Merge [profiles.*] sections into settings."""
    profiles_data = data.get("profiles", {})

    for name, profile_data in profiles_data.items():
        if not isinstance(profile_data, dict):
            continue

        if "tasks" not in profile_data:
            logger.warning(f"Profile '{name}' missing required field 'tasks', skipping")
            continue

        settings.profiles[name] = SelectionProfile(
            tasks=list(profile_data["tasks"]),
            description=profile_data.get("description", ""),
            usb=dict(profile_data.get("usb", {})),
        )


def _merge_config(settings: Settings, data: dict[str, Any], source: str) -> None:
    """Merge a config dict into settings."""
    settings.config_sources.append(source)

    # Top-level default_profile
    if "default_profile" in data:
        settings.default_profile = data["default_profile"]

    # Merge sections
    _merge_defaults(settings, data)
    _merge_sections(settings, data)
    _merge_profiles(settings, data)


def _apply_env_overrides(settings: Settings) -> None:
    """Apply environment variable overrides."""
    env_mappings = {
        f"{ENV_PREFIX}LOG_DIR": "log_dir",
        f"{ENV_PREFIX}TIMEZONE": "timezone",
        f"{ENV_PREFIX}PROFILE": "default_profile",
        f"{ENV_PREFIX}USB_IFACE": "usb_interface",
        f"{ENV_PREFIX}USB_NAME": "usb_rename_target",
        f"{ENV_PREFIX}WIFI_GLOB": "wifi_glob",
    }

    int_mappings = {
        f"{ENV_PREFIX}USB_METRIC": "usb_metric",
        f"{ENV_PREFIX}WIFI_METRIC": "wifi_metric",
    }

    bool_mappings = {
        f"{ENV_PREFIX}DRY_RUN": "dry_run",
        f"{ENV_PREFIX}SKIP_CONFIRMATION": "skip_confirmation",
        f"{ENV_PREFIX}SUPPRESS_PROVISIONING": "suppress_provisioning",
    }

    for env_var, attr in env_mappings.items():
        value = os.environ.get(env_var)
        if value:
            setattr(settings, attr, value)
            settings.config_sources.append(f"env:{env_var}")

    for env_var, attr in int_mappings.items():
        value = os.environ.get(env_var)
        if value:
            try:
                setattr(settings, attr, int(value))
            except ValueError:
                logger.warning(f"Ignoring {env_var}={value!r}: not an integer")
                continue
            settings.config_sources.append(f"env:{env_var}")

    for env_var, attr in bool_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            setattr(settings, attr, value.lower() in ("1", "true", "yes"))
            settings.config_sources.append(f"env:{env_var}")

    tasks = os.environ.get(f"{ENV_PREFIX}TASKS")
    if tasks:
        settings.tasks = [task.strip() for task in tasks.split(",") if task.strip()]
        settings.config_sources.append(f"env:{ENV_PREFIX}TASKS")


def load_settings(profile: str | None = None) -> Settings:
    """
    Load and merge settings from all config sources.

    Args:
        profile: Optional profile name to apply after loading.
                 If None and default_profile is set in config, uses that.

    Returns:
        Merged Settings object with all values resolved.
    """
    settings = Settings()

    # Load from each config path that exists
    for config_path in get_config_paths():
        if config_path.exists():
            try:
                with open(config_path, "rb") as f:
                    data = tomllib.load(f)
                _merge_config(settings, data, str(config_path))
                logger.debug(f"Loaded config from {config_path}")
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning(f"Failed to load {config_path}: {e}")

    # Apply environment overrides
    _apply_env_overrides(settings)

    # Apply profile if specified (CLI arg takes precedence)
    active_profile = profile or settings.default_profile
    if active_profile:
        if settings.apply_profile(active_profile):
            logger.debug(f"Applied profile: {active_profile}")
        else:
            logger.warning(f"Profile not found: {active_profile}")

    return settings


def ensure_config_dir() -> Path:
    """Ensure user config directory exists and return its path."""
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_default_config_content() -> str:
    """Return default config file content as a string."""
    return '''# Server Setup - User Configuration
# Place this file at: ~/.config/server-setup/config.toml
# Or use a local override: ./.server-setup.toml

# Default profile to use when none specified via CLI
# default_profile = "24x7"

[defaults]
dry_run = false
log_dir = "/var/log/24x7-setup"
timezone = "Asia/Bangkok"
# Tasks enabled when the tool starts
# (update, timezone, packages, ssh, firewall, sleep, lid, tlp, wait-online, usbeth)
tasks = []

[usb]
# interface = "enx00e04c680001"  # Manual override; auto-detect when unset
rename_target = "usbeth0"
usb_metric = 10
wifi_glob = "wlp*"
wifi_metric = 600
suppress_provisioning = true

[ssh]
PermitRootLogin = "no"
PasswordAuthentication = "yes"
PubkeyAuthentication = "yes"
UsePAM = "yes"

# Named task selections
# Use with: server-setup --profile 24x7

[profiles.24x7]
tasks = ["update", "timezone", "packages", "ssh", "firewall", "sleep", "lid", "tlp"]
description = "Laptop as an always-on server"

[profiles.usb-uplink]
tasks = ["usbeth"]
description = "Take over a USB Ethernet adapter as the preferred uplink"
[profiles.usb-uplink.usb]
rename_target = "usbeth0"
'''


def init_config(force: bool = False) -> Path | None:
    """
    Initialize user config file with defaults.

    Args:
        force: If True, overwrite existing config.

    Returns:
        Path to created config file, or None if it already exists and force=False.
    """
    config_dir = ensure_config_dir()
    config_path = config_dir / CONFIG_FILENAME

    if config_path.exists() and not force:
        return None

    config_path.write_text(get_default_config_content())
    return config_path
