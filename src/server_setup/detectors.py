"""
Abstract base classes and protocols for USB NIC detection
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional, Protocol, Sequence

from .config import BusClass, InterfaceName, MACAddress, NetworkInterface


class BusDetector(Protocol):
    """
    One layer of bus attribution (structural subtyping).

    Detectors are evaluated in order and short-circuit on the first match;
    each layer exists because not every environment exposes every
    metadata source.
    """

    name: str

    def is_usb(self, prober: "InterfaceProber", interface: InterfaceName) -> bool: ...


class InterfaceProber(ABC):
    """
    Abstract base class for platform-specific interface probing.

    Subclasses enumerate interface names and read hardware addresses;
    classification and skip filtering are shared.
    """

    # Names and prefixes that can never be a discrete USB NIC.
    # Class attributes shared across all instances.
    SKIP_NAMES: frozenset[InterfaceName] = frozenset({"lo"})
    SKIP_PREFIXES: tuple[str, ...] = (
        "docker",  # Docker default bridge
        "br-",     # Docker user-defined bridges
        "veth",    # Container veth pairs
        "virbr",   # libvirt bridges
        "wl",      # Wireless; never the wired takeover target
    )

    def __init__(self, detectors: Optional[Sequence[BusDetector]] = None):
        self.detectors: tuple[BusDetector, ...] = (
            tuple(detectors) if detectors is not None else self.default_detectors()
        )

    @abstractmethod
    def interface_names(self) -> Sequence[InterfaceName]:
        """
        Enumerate every interface in the host network namespace.

        Returns:
            Names in a deterministic order
        """
        ...

    @abstractmethod
    def read_mac(self, interface: InterfaceName) -> Optional[MACAddress]:
        """
        Read the hardware address of an interface.

        Returns:
            Raw address string, or None if unreadable
        """
        ...

    def has_carrier(self, interface: InterfaceName) -> bool:
        """Link state; platforms without a carrier source report down"""
        return False

    def default_detectors(self) -> tuple[BusDetector, ...]:
        """Ordered bus detectors used when none are injected"""
        return ()

    def is_skipped(self, interface: InterfaceName) -> bool:
        """Check if interface is loopback or a virtual/bridge/container link"""
        return interface in self.SKIP_NAMES or interface.startswith(self.SKIP_PREFIXES)

    def attribute(self, interface: InterfaceName) -> Optional[str]:
        """
        Run the detector chain against one interface.

        Returns:
            Name of the first detector reporting USB, or None
        """
        for detector in self.detectors:
            if detector.is_usb(self, interface):
                return detector.name
        return None

    def classify(self, interface: InterfaceName) -> NetworkInterface:
        """Build a snapshot with bus attribution for one interface"""
        if self.is_skipped(interface):
            return NetworkInterface(name=interface, bus=BusClass.SKIPPED)

        detected_by = self.attribute(interface)
        bus = BusClass.USB if detected_by else BusClass.NOT_USB
        return NetworkInterface(name=interface, bus=bus, detected_by=detected_by)

    def list_candidates(self) -> Iterator[NetworkInterface]:
        """
        Lazily yield classified, non-skipped interfaces.

        Each call starts a fresh pass, so callers may stop at the first match
        and probe again later.
        """
        for name in self.interface_names():
            if self.is_skipped(name):
                continue
            yield self.classify(name)

    def snapshot(self) -> list[NetworkInterface]:
        """Classify every interface, skip-listed ones included"""
        return [self.classify(name) for name in self.interface_names()]
