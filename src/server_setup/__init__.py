"""
Server Setup Package
Ordered, idempotent host setup tasks with dry-run and USB Ethernet takeover

Version 1.0.0 - Python 3.12+ with modern type system
"""

__version__ = "1.0.0"

from .config import ConfigArtifact, NetworkInterface, USBEthernetOptions, USBNicSelection
from .detectors import InterfaceProber
from .emitter import emit
from .factory import InterfaceProberFactory
from .orchestrator import Orchestrator, RunPlan, RunSummary, TaskOutcome
from .selector import select_usb_nic
from .session import Session
from .settings import Settings, load_settings, init_config
from .system import SystemRunner
from .tasks import TaskKind, TaskRegistry, build_registry

__all__ = [
    "ConfigArtifact",
    "NetworkInterface",
    "USBEthernetOptions",
    "USBNicSelection",
    "InterfaceProber",
    "emit",
    "InterfaceProberFactory",
    "Orchestrator",
    "RunPlan",
    "RunSummary",
    "TaskOutcome",
    "select_usb_nic",
    "Session",
    "Settings",
    "load_settings",
    "init_config",
    "SystemRunner",
    "TaskKind",
    "TaskRegistry",
    "build_registry",
]
