"""
USB NIC selection: manual override or first USB-attributed candidate
"""

import logging
from typing import Optional

from .config import InterfaceName, USBNicSelection, is_valid_mac, normalize_mac
from .detectors import InterfaceProber
from .exceptions import NotFoundError, UnreadableAddressError

logger = logging.getLogger(__name__)


def find_usb_interface(prober: InterfaceProber) -> Optional[InterfaceName]:
    """
    First USB-attributed interface in host enumeration order.

    Probing stops at the first match.
    """
    for iface in prober.list_candidates():
        if iface.is_usb:
            logger.info(f"[OK] USB NIC detected: {iface.name} (via {iface.detected_by})")
            return iface.name
        logger.debug(f"Not USB: {iface.name}")
    return None


def select_usb_nic(
    prober: InterfaceProber,
    explicit_name: Optional[InterfaceName] = None,
) -> USBNicSelection:
    """
    Pick the USB adapter to take over and read its hardware address.

    Args:
        prober: Interface prober for the host
        explicit_name: Manual override; skips probing entirely

    Returns:
        Selection with a validated, lower-case MAC

    Raises:
        NotFoundError: If no USB candidate exists
        UnreadableAddressError: If the address is missing, malformed or null
    """
    if explicit_name:
        logger.info(f"[OK] Using forced interface: {explicit_name}")
        name = explicit_name
    else:
        found = find_usb_interface(prober)
        if found is None:
            raise NotFoundError(
                "Cannot find any USB Ethernet interface. Plug in the adapter "
                "or specify the interface name manually (see: ip -br link)"
            )
        name = found

    mac = normalize_mac(prober.read_mac(name))
    if not is_valid_mac(mac):
        raise UnreadableAddressError(
            f"Cannot read MAC from interface {name} (got {mac or 'nothing'})"
        )

    logger.info(f"[i] USB NIC: {name}  MAC: {mac}")
    return USBNicSelection(name=name, mac_address=mac)
