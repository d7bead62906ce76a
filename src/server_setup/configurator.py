"""
USB Ethernet takeover: select the adapter, emit and persist its config
"""

import logging
from typing import Optional

from .config import ArtifactPaths, ConfigArtifact, USBEthernetOptions, USBNicSelection
from .detectors import InterfaceProber
from .emitter import emit
from .exceptions import NotFoundError, UnreadableAddressError
from .selector import select_usb_nic
from .session import Session

logger = logging.getLogger(__name__)

# Stand-in adapter used when a dry run finds no usable hardware
PLACEHOLDER_INTERFACE = "<usb-nic>"
PLACEHOLDER_MAC = "xx:xx:xx:xx:xx:xx"


class USBEthernetConfigurator:
    """
    Configurator for USB Ethernet takeover.

    This class orchestrates the takeover workflow:
    1. Adapter selection (manual override or detection)
    2. Artifact emission (udev rename, networkd profiles, cloud-init drop-in)
    3. Backup-then-write of every artifact
    4. udev and networkd reload

    Attributes:
        session: Session providing settings, runner and prober
        options: Takeover parameters
        paths: Artifact destinations
    """

    def __init__(
        self,
        session: Session,
        options: Optional[USBEthernetOptions] = None,
        paths: Optional[ArtifactPaths] = None,
        prober: Optional[InterfaceProber] = None,
    ):
        self.session = session
        self.runner = session.runner
        self.options = options or session.settings.usb_options()
        self.paths = paths or session.artifact_paths()
        self._prober = prober

    @property
    def prober(self) -> InterfaceProber:
        if self._prober is None:
            self._prober = self.session.get_prober()
        return self._prober

    def select_nic(self) -> USBNicSelection:
        """
        Select the adapter to take over.

        In dry-run mode a missing or unreadable adapter is reported and a
        placeholder is used, since simulation cannot fail on host state.

        Raises:
            NotFoundError: No USB candidate (real runs only)
            UnreadableAddressError: Null or missing MAC (real runs only)
        """
        try:
            return select_usb_nic(self.prober, self.options.interface)
        except (NotFoundError, UnreadableAddressError, NotImplementedError) as e:
            if not self.runner.dry_run:
                logger.error(f"[FAIL] {e}")
                raise
            logger.warning(f"[!] {e}")
            logger.warning("[DRY-RUN] Continuing with a placeholder adapter")
            return USBNicSelection(
                name=self.options.interface or PLACEHOLDER_INTERFACE,
                mac_address=PLACEHOLDER_MAC,
            )

    def build_artifacts(self, selection: USBNicSelection) -> list[ConfigArtifact]:
        """Emit the artifacts for a selection using the configured options"""
        return emit(
            selection,
            rename_target=self.options.rename_target,
            usb_metric=self.options.usb_metric,
            wifi_glob=self.options.wifi_glob,
            wifi_metric=self.options.wifi_metric,
            suppress_provisioning=self.options.suppress_provisioning,
            paths=self.paths,
        )

    def persist(self, artifact: ConfigArtifact) -> bool:
        """Back up then write, or back up then delete, one artifact"""
        if artifact.is_deletion:
            return self.runner.remove_file(artifact.path)
        return self.runner.write_file(artifact.path, artifact.content)

    def configure(self) -> list[ConfigArtifact]:
        """
        Execute the takeover.

        Returns:
            The artifacts that were persisted (or simulated)

        Raises:
            SetupError: On any failure; aborts this task only
        """
        selection = self.select_nic()
        logger.info(f"[i] Rename to: {self.options.rename_target}")

        artifacts = self.build_artifacts(selection)

        self.runner.run(["systemctl", "enable", "systemd-networkd"])
        self.runner.run(["systemctl", "enable", "systemd-networkd.socket"], check=False)

        for artifact in artifacts:
            self.persist(artifact)

        self.runner.run(["udevadm", "control", "--reload"])
        self.runner.run(["systemctl", "restart", "systemd-udevd"])
        self.runner.run(["systemctl", "restart", "systemd-networkd"])

        logger.info("[OK] USB Ethernet configured. Reboot recommended for rename to apply.")
        logger.info(f"[i] After reboot check: ip link show {self.options.rename_target}")
        logger.info(f"[i]                    networkctl status {self.options.rename_target}")
        return artifacts


def setup_usb_ethernet(session: Session) -> None:
    """Task unit for the USB Ethernet takeover"""
    USBEthernetConfigurator(session).configure()
