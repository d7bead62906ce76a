"""
Task registry: the fixed, ordered catalogue of setup tasks
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator, Optional, TypeAlias

from . import actions
from .configurator import setup_usb_ethernet
from .session import Session
from .settings import Settings

logger = logging.getLogger(__name__)

TaskUnit: TypeAlias = Callable[[Session], None]


class TaskKind(Enum):
    """
    Task identifiers.

    Declaration order is run order: package work precedes service
    configuration, firewall and SSH hardening precede network topology
    changes, and the USB takeover (which may need a reboot) runs last.
    """
    UPDATE = "update"
    TIMEZONE = "timezone"
    PACKAGES = "packages"
    SSH = "ssh"
    FIREWALL = "firewall"
    SLEEP = "sleep"
    LID = "lid"
    TLP = "tlp"
    WAIT_ONLINE = "wait-online"
    USB_ETHERNET = "usbeth"


def parse_task_ids(ids: Iterable[str]) -> list[TaskKind]:
    """
    Convert identifiers to TaskKind values.

    Raises:
        ValueError: If any identifier is unknown
    """
    kinds: list[TaskKind] = []
    for task_id in ids:
        try:
            kinds.append(TaskKind(task_id.strip().lower()))
        except ValueError:
            valid = ", ".join(kind.value for kind in TaskKind)
            raise ValueError(f"Unknown task '{task_id}'. Valid tasks: {valid}") from None
    return kinds


@dataclass(slots=True)
class Task:
    """
    One registry entry.

    Attributes:
        kind: Stable identifier
        label: Human-readable description
        unit: Callable performing the task; raises on failure
        rank: Position in the registry, fixed at construction
        enabled: Selection toggle
    """
    kind: TaskKind
    label: str
    unit: TaskUnit
    rank: int
    enabled: bool = False

    @property
    def id(self) -> str:
        return self.kind.value

    def toggle(self) -> bool:
        """Flip the selection state and return the new value"""
        self.enabled = not self.enabled
        return self.enabled


class TaskRegistry:
    """
    Ordered, uniquely keyed collection of tasks.

    Only the enabled flags are mutable; order never changes after
    construction.
    """

    def __init__(self, entries: Iterable[tuple[TaskKind, str, TaskUnit]]):
        self._tasks: dict[TaskKind, Task] = {}
        for rank, (kind, label, unit) in enumerate(entries):
            if kind in self._tasks:
                raise ValueError(f"Duplicate task identifier: {kind.value}")
            self._tasks[kind] = Task(kind=kind, label=label, unit=unit, rank=rank)

    def __iter__(self) -> Iterator[Task]:
        return iter(sorted(self._tasks.values(), key=lambda task: task.rank))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, kind: object) -> bool:
        return kind in self._tasks

    def __getitem__(self, kind: TaskKind) -> Task:
        return self._tasks[kind]

    def toggle(self, kind: TaskKind) -> bool:
        return self._tasks[kind].toggle()

    def set_enabled(self, kind: TaskKind, enabled: bool) -> None:
        self._tasks[kind].enabled = enabled

    def enable_only(self, kinds: Iterable[TaskKind]) -> None:
        """Replace the selection with exactly ``kinds``"""
        wanted = set(kinds)
        for task in self._tasks.values():
            task.enabled = task.kind in wanted

    def enable_all(self) -> None:
        for task in self._tasks.values():
            task.enabled = True

    def enabled(self) -> list[Task]:
        """Enabled tasks in registry order"""
        return [task for task in self if task.enabled]

    def toggles(self) -> dict[TaskKind, bool]:
        return {task.kind: task.enabled for task in self}


def default_entries(settings: Optional[Settings] = None) -> list[tuple[TaskKind, str, TaskUnit]]:
    """The standard task table"""
    settings = settings or Settings()
    return [
        (TaskKind.UPDATE, "Update/Upgrade packages", actions.update_packages),
        (TaskKind.TIMEZONE, f"Set timezone {settings.timezone}", actions.set_timezone),
        (TaskKind.PACKAGES, "Install base packages", actions.install_packages),
        (TaskKind.SSH, "Configure SSH", actions.harden_ssh),
        (TaskKind.FIREWALL, "Configure UFW firewall", actions.configure_firewall),
        (TaskKind.SLEEP, "Disable sleep/suspend/hibernate", actions.disable_sleep),
        (TaskKind.LID, "Ignore lid close", actions.ignore_lid_close),
        (TaskKind.TLP, "Enable TLP + sensors", actions.enable_tlp_sensors),
        (TaskKind.WAIT_ONLINE, "Disable systemd-networkd-wait-online", actions.disable_wait_online),
        (TaskKind.USB_ETHERNET, "USB Ethernet setup", setup_usb_ethernet),
    ]


def build_registry(settings: Optional[Settings] = None) -> TaskRegistry:
    """
    Create the standard registry with the settings' initial selection.

    Raises:
        ValueError: If the settings name an unknown task
    """
    settings = settings or Settings()
    registry = TaskRegistry(default_entries(settings))
    registry.enable_only(parse_task_ids(settings.tasks))
    return registry
