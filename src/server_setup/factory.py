"""
Factory pattern for creating platform-specific interface probers
"""

import platform
import logging
from typing import Optional

from .config import OSType
from .detectors import InterfaceProber
from .linux import LinuxInterfaceProber
from .system import SystemRunner

logger = logging.getLogger(__name__)


class InterfaceProberFactory:
    """
    Factory for creating platform-specific interface probers.

    Example:
        >>> prober = InterfaceProberFactory.create()
        >>> usb = [iface for iface in prober.list_candidates() if iface.is_usb]
    """

    @staticmethod
    def create(
        os_type: Optional[OSType] = None,
        runner: Optional[SystemRunner] = None,
    ) -> InterfaceProber:
        """
        Create appropriate prober for specified or current platform.

        Args:
            os_type: Optional OS type. If None, auto-detect from platform.
            runner: Runner used for read-only udev queries

        Raises:
            NotImplementedError: If platform is not supported
        """
        if os_type is None:
            os_type = InterfaceProberFactory._detect_os()

        match os_type:
            case OSType.LINUX:
                logger.debug("Creating Linux interface prober")
                return LinuxInterfaceProber(runner=runner)

            case OSType.MACOS | OSType.WINDOWS:
                raise NotImplementedError(
                    f"{os_type.name.title()} hosts are not supported; "
                    "USB Ethernet takeover relies on udev and systemd-networkd"
                )

            case _:
                raise NotImplementedError(f"OS type {os_type} not supported")

    @staticmethod
    def _detect_os() -> OSType:
        """
        Auto-detect current operating system.

        Raises:
            NotImplementedError: If OS is not recognized
        """
        system = platform.system().lower()

        if system == "linux":
            return OSType.LINUX
        elif system == "darwin":
            return OSType.MACOS
        elif system in ("win32", "windows"):
            return OSType.WINDOWS
        else:
            raise NotImplementedError(
                f"Platform '{system}' not supported. Supported platforms: Linux"
            )

    @staticmethod
    def is_supported(os_type: Optional[OSType] = None) -> bool:
        """Check if platform is supported"""
        try:
            if os_type is None:
                os_type = InterfaceProberFactory._detect_os()
            return os_type == OSType.LINUX
        except NotImplementedError:
            return False
