"""
Configuration models and type definitions
Python 3.12+ with modern type system
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, TypeAlias

# Python 3.12 type aliases
InterfaceName: TypeAlias = str
MACAddress: TypeAlias = str

NULL_MAC: MACAddress = "00:00:00:00:00:00"

# Kernel limit is IFNAMSIZ - 1
MAX_INTERFACE_NAME_LENGTH = 15

_MAC_RE = re.compile(r"^[0-9a-f]{2}(:[0-9a-f]{2}){5}$")


class OSType(Enum):
    """Supported operating systems"""
    MACOS = "darwin"
    LINUX = "linux"
    WINDOWS = "win32"


class BusClass(Enum):
    """Bus attribution of a network interface"""
    USB = "usb"
    NOT_USB = "not-usb"
    SKIPPED = "skip-listed"


def normalize_mac(value: Optional[str]) -> Optional[MACAddress]:
    """Lower-case and strip a MAC string; None when empty."""
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def is_valid_mac(value: Optional[str]) -> bool:
    """True for a colon-hex MAC that is not the null address."""
    mac = normalize_mac(value)
    return mac is not None and mac != NULL_MAC and bool(_MAC_RE.match(mac))


def validate_interface_name(name: str) -> None:
    """
    Validate a kernel interface name.

    Raises:
        ValueError: If the name is empty, too long or contains '/' or whitespace
    """
    if not name:
        raise ValueError("Interface name must not be empty")
    if len(name) > MAX_INTERFACE_NAME_LENGTH:
        raise ValueError(
            f"Interface name '{name}' exceeds {MAX_INTERFACE_NAME_LENGTH} characters"
        )
    if "/" in name or any(ch.isspace() for ch in name):
        raise ValueError(f"Interface name '{name}' contains invalid characters")


@dataclass(frozen=True, slots=True)
class NetworkInterface:
    """
    Read-only snapshot of a host network interface.

    Attributes:
        name: Kernel-assigned interface name (e.g., enx00e04c680001)
        bus: Bus attribution derived by the prober
        detected_by: Name of the detector that attributed the interface to USB
    """
    name: InterfaceName
    bus: BusClass = BusClass.NOT_USB
    detected_by: Optional[str] = None

    @property
    def is_usb(self) -> bool:
        return self.bus is BusClass.USB

    def __str__(self) -> str:
        """Human-readable interface representation with status icons"""
        marker = {
            BusClass.USB: "[U]",
            BusClass.NOT_USB: "   ",
            BusClass.SKIPPED: "[S]",
        }[self.bus]
        via = f" (via {self.detected_by})" if self.detected_by else ""
        return f"{marker} {self.name:16} - {self.bus.value}{via}"


@dataclass(frozen=True, slots=True)
class USBNicSelection:
    """
    The USB adapter chosen for takeover.

    Raises:
        ValueError: If the hardware address is missing or the null MAC
    """
    name: InterfaceName
    mac_address: MACAddress

    def __post_init__(self) -> None:
        mac = normalize_mac(self.mac_address)
        if mac is None or mac == NULL_MAC:
            raise ValueError(f"Interface {self.name} has no usable hardware address")
        object.__setattr__(self, "mac_address", mac)


@dataclass(frozen=True, slots=True)
class USBEthernetOptions:
    """
    Tunable parameters of the USB Ethernet takeover.

    Attributes:
        interface: Manual override; bypasses probing when set
        rename_target: Stable name assigned by the udev rule
        usb_metric: DHCP route metric for the USB link (lower preferred)
        wifi_glob: Match pattern for wireless interfaces
        wifi_metric: DHCP route metric for wireless (higher less preferred)
        suppress_provisioning: Disable cloud-init network management
    """
    interface: Optional[InterfaceName] = None
    rename_target: InterfaceName = "usbeth0"
    usb_metric: int = 10
    wifi_glob: str = "wlp*"
    wifi_metric: int = 600
    suppress_provisioning: bool = True

    def __post_init__(self) -> None:
        """Validate names and metrics"""
        validate_interface_name(self.rename_target)
        if self.interface is not None:
            validate_interface_name(self.interface)
        for label, metric in (("usb_metric", self.usb_metric), ("wifi_metric", self.wifi_metric)):
            if isinstance(metric, bool) or not isinstance(metric, int) or metric <= 0:
                raise ValueError(f"{label} must be a positive integer, got {metric!r}")
        if not self.wifi_glob or any(ch.isspace() for ch in self.wifi_glob):
            raise ValueError(f"Invalid wireless glob: {self.wifi_glob!r}")


@dataclass(frozen=True, slots=True)
class ArtifactPaths:
    """Destination paths of the USB takeover artifacts."""
    udev_rule: Path = Path("/etc/udev/rules.d/10-usb-ethernet-name.rules")
    usb_network: Path = Path("/etc/systemd/network/10-usbeth.network")
    wifi_network: Path = Path("/etc/systemd/network/20-wifi.network")
    cloud_disable: Path = Path("/etc/cloud/cloud.cfg.d/99-disable-network-config.cfg")
    netplan_cloud: Path = Path("/etc/netplan/50-cloud-init.yaml")

    def rebased(self, root: Path) -> "ArtifactPaths":
        """Return the same layout under an alternate root (chroot, tests)."""
        def under(path: Path) -> Path:
            return root / path.relative_to(path.anchor)

        return ArtifactPaths(
            udev_rule=under(self.udev_rule),
            usb_network=under(self.usb_network),
            wifi_network=under(self.wifi_network),
            cloud_disable=under(self.cloud_disable),
            netplan_cloud=under(self.netplan_cloud),
        )


@dataclass(frozen=True, slots=True)
class ConfigArtifact:
    """
    One file to persist; ``content`` of None marks the path for deletion.
    """
    path: Path
    content: Optional[str] = field(default=None)

    @property
    def is_deletion(self) -> bool:
        return self.content is None
