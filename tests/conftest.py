"""
Pytest configuration and shared fixtures
"""

import subprocess
from pathlib import Path
from typing import Optional

import pytest
from unittest.mock import MagicMock, patch

from server_setup.detectors import InterfaceProber
from server_setup.session import Session
from server_setup.settings import Settings
from server_setup.system import SystemRunner


class FakeBusDetector:
    """Attributes a fixed set of names to USB"""
    name = "fake-bus"

    def __init__(self, usb_names):
        self.usb_names = set(usb_names)

    def is_usb(self, prober, interface):
        return interface in self.usb_names


class FakeProber(InterfaceProber):
    """In-memory prober: name -> (is_usb, mac), plus the names with carrier"""

    def __init__(self, interfaces: dict[str, tuple[bool, Optional[str]]], carriers=()):
        self.interfaces = dict(interfaces)
        self.carriers = set(carriers)
        self.mac_reads: list[str] = []
        self.enumerations = 0
        super().__init__([FakeBusDetector(n for n, (usb, _) in self.interfaces.items() if usb)])

    def interface_names(self):
        self.enumerations += 1
        return list(self.interfaces)

    def read_mac(self, interface):
        self.mac_reads.append(interface)
        entry = self.interfaces.get(interface)
        return entry[1] if entry else None

    def has_carrier(self, interface):
        return interface in self.carriers


class FakeSysfs:
    """Builds a /sys/class/net lookalike under a temporary directory"""

    USB_DEVICE = "pci0000:00/0000:00:14.0/usb2/2-1/2-1:1.0"
    PCI_DEVICE = "pci0000:00/0000:00:1f.6"

    def __init__(self, base: Path):
        self.root = base / "sys" / "class" / "net"
        self.devices = base / "sys" / "devices"
        self.root.mkdir(parents=True)

    def add(
        self,
        name: str,
        mac: Optional[str] = "aa:bb:cc:dd:ee:ff",
        device: Optional[str] = None,
        carrier: str = "1",
    ) -> Path:
        iface = self.root / name
        iface.mkdir()
        if mac is not None:
            (iface / "address").write_text(f"{mac}\n")
        (iface / "carrier").write_text(f"{carrier}\n")
        if device is not None:
            target = self.devices / device
            target.mkdir(parents=True, exist_ok=True)
            (iface / "device").symlink_to(target)
        return iface


def completed(args=(), returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=list(args), returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def fake_sysfs(tmp_path) -> FakeSysfs:
    return FakeSysfs(tmp_path)


@pytest.fixture
def usb_prober() -> FakeProber:
    """Host with onboard Ethernet, a container bridge and one USB adapter"""
    return FakeProber({
        "docker0": (True, "02:42:ac:11:00:02"),
        "enp0s31f6": (False, "10:20:30:40:50:60"),
        "enx00e04c680001": (True, "00:E0:4C:68:00:01"),
        "lo": (False, "00:00:00:00:00:00"),
    })


@pytest.fixture
def host_root(tmp_path) -> Path:
    root = tmp_path / "host"
    root.mkdir()
    return root


@pytest.fixture
def dry_session(host_root, usb_prober) -> Session:
    """Dry-run session rooted in an empty temporary tree"""
    return Session(
        settings=Settings(),
        runner=SystemRunner(dry_run=True),
        prober=usb_prober,
        root=host_root,
    )


@pytest.fixture
def live_session(host_root, usb_prober) -> Session:
    """Real-mode session rooted in a temporary tree (subprocess must be mocked)"""
    return Session(
        settings=Settings(),
        runner=SystemRunner(dry_run=False),
        prober=usb_prober,
        root=host_root,
    )


@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run in the primitives module; every command succeeds"""
    with patch("server_setup.system.subprocess.run") as mock_run:
        mock_run.side_effect = lambda args, **kwargs: completed(args)
        yield mock_run


def commands(mock_run: MagicMock) -> list[list[str]]:
    """Argument lists of every mocked subprocess call"""
    return [list(call.args[0]) for call in mock_run.call_args_list]
