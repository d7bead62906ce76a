"""
Linux-specific USB NIC detection using sysfs and udev
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

from .config import InterfaceName, MACAddress
from .detectors import BusDetector, InterfaceProber
from .system import SystemRunner

logger = logging.getLogger(__name__)

SYS_CLASS_NET = Path("/sys/class/net")


def parse_udev_properties(output: str) -> dict[str, str]:
    """Parse ``udevadm info -q property`` KEY=value lines"""
    props: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep and key:
            props[key] = value
    return props


class UdevBusDetector:
    """USB when udev reports ID_BUS=usb"""
    name = "ID_BUS"

    def is_usb(self, prober: "LinuxInterfaceProber", interface: InterfaceName) -> bool:
        return prober.udev_properties(interface).get("ID_BUS") == "usb"


class UsbDriverDetector:
    """USB when udev exposes any ID_USB_DRIVER property"""
    name = "ID_USB_DRIVER"

    def is_usb(self, prober: "LinuxInterfaceProber", interface: InterfaceName) -> bool:
        return "ID_USB_DRIVER" in prober.udev_properties(interface)


class SysfsPathDetector:
    """
    USB when the resolved device path runs through a usb node.

    Fallback for minimal or virtualized systems without udev metadata.
    """
    name = "sysfs-path"

    def is_usb(self, prober: "LinuxInterfaceProber", interface: InterfaceName) -> bool:
        path = prober.device_path(interface)
        return path is not None and "/usb" in str(path)


class LinuxInterfaceProber(InterfaceProber):
    """
    Linux interface prober.

    Detection Strategy:
    1. Enumerate /sys/class/net in sorted order
    2. Skip loopback and virtual links
    3. Attribute to USB via udev ID_BUS, then ID_USB_DRIVER, then the
       sysfs device path
    """

    def __init__(
        self,
        sysfs_root: Path = SYS_CLASS_NET,
        runner: Optional[SystemRunner] = None,
        detectors: Optional[Sequence[BusDetector]] = None,
    ):
        super().__init__(detectors)
        self.sysfs_root = Path(sysfs_root)
        self.runner = runner or SystemRunner()
        self._udev_cache: dict[InterfaceName, dict[str, str]] = {}

    def default_detectors(self) -> tuple[BusDetector, ...]:
        return (UdevBusDetector(), UsbDriverDetector(), SysfsPathDetector())

    def interface_names(self) -> Sequence[InterfaceName]:
        """List interface directories under sysfs"""
        self._udev_cache.clear()
        try:
            return sorted(entry.name for entry in self.sysfs_root.iterdir())
        except OSError as e:
            logger.warning(f"Cannot enumerate {self.sysfs_root}: {e}")
            return []

    def udev_properties(self, interface: InterfaceName) -> dict[str, str]:
        """udev property table for an interface (empty when unavailable)"""
        if interface not in self._udev_cache:
            output = self.runner.query(
                ["udevadm", "info", "-q", "property", "-p", str(self.sysfs_root / interface)]
            )
            self._udev_cache[interface] = parse_udev_properties(output or "")
        return self._udev_cache[interface]

    def device_path(self, interface: InterfaceName) -> Optional[Path]:
        """Resolved physical device path, or None for virtual interfaces"""
        link = self.sysfs_root / interface / "device"
        if not link.exists():
            return None
        try:
            return link.resolve()
        except OSError:
            return None

    def read_mac(self, interface: InterfaceName) -> Optional[MACAddress]:
        """Read hardware address from sysfs"""
        address_file = self.sysfs_root / interface / "address"
        try:
            return address_file.read_text().strip() or None
        except OSError as e:
            logger.debug(f"Cannot read {address_file}: {e}")
            return None

    def has_carrier(self, interface: InterfaceName) -> bool:
        """Check carrier status via sysfs"""
        carrier_file = self.sysfs_root / interface / "carrier"
        try:
            return carrier_file.read_text().strip() == "1"
        except OSError:
            return False
