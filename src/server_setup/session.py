"""
Explicit per-invocation state shared by the orchestrator and task units
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import ArtifactPaths
from .detectors import InterfaceProber
from .factory import InterfaceProberFactory
from .settings import Settings
from .system import SystemRunner

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


@dataclass
class Session:
    """
    Settings, primitives and probing for one interactive session.

    Attributes:
        settings: Resolved configuration
        runner: Gateway for every host mutation; carries the dry-run flag
        prober: Interface prober (created for the running platform on demand)
        root: Filesystem root that configuration paths are resolved under
    """
    settings: Settings = field(default_factory=Settings)
    runner: SystemRunner = field(default_factory=lambda: SystemRunner(env=APT_ENV))
    prober: Optional[InterfaceProber] = None
    root: Path = Path("/")

    @classmethod
    def from_settings(cls, settings: Settings, root: Path = Path("/")) -> "Session":
        """Build a session whose dry-run flag follows the settings"""
        return cls(
            settings=settings,
            runner=SystemRunner(dry_run=settings.dry_run, env=APT_ENV),
            root=Path(root),
        )

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    @dry_run.setter
    def dry_run(self, value: bool) -> None:
        self.runner.dry_run = value

    def path(self, absolute: str | Path) -> Path:
        """Resolve an absolute host path under the session root"""
        absolute = Path(absolute)
        if self.root == Path("/"):
            return absolute
        return self.root / absolute.relative_to(absolute.anchor)

    def artifact_paths(self) -> ArtifactPaths:
        paths = ArtifactPaths()
        return paths if self.root == Path("/") else paths.rebased(self.root)

    def get_prober(self) -> InterfaceProber:
        if self.prober is None:
            self.prober = InterfaceProberFactory.create(runner=self.runner)
        return self.prober
