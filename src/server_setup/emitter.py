"""
Pure generation of the USB Ethernet takeover artifacts
"""

from .config import ArtifactPaths, ConfigArtifact, InterfaceName, USBNicSelection

DEFAULT_PATHS = ArtifactPaths()


def udev_rename_rule(mac_address: str, rename_target: InterfaceName) -> str:
    """udev rule renaming the adapter by hardware address"""
    return (
        f'SUBSYSTEM=="net", ACTION=="add", ATTR{{address}}=="{mac_address}", '
        f'NAME="{rename_target}"\n'
    )


def network_profile(match_name: str, metric: int, required_for_online: bool = True) -> str:
    """systemd-networkd DHCP profile with a route metric"""
    sections = [f"[Match]\nName={match_name}\n"]
    if not required_for_online:
        sections.append("[Link]\nRequiredForOnline=no\n")
    sections.append("[Network]\nDHCP=yes\n")
    sections.append(f"[DHCP]\nRouteMetric={metric}\n")
    return "\n".join(sections)


def provisioning_suppression() -> str:
    """cloud-init drop-in disabling its network management"""
    return "network:\n  config: disabled\n"


def emit(
    selection: USBNicSelection,
    rename_target: InterfaceName,
    usb_metric: int,
    wifi_glob: str,
    wifi_metric: int,
    suppress_provisioning: bool,
    paths: ArtifactPaths = DEFAULT_PATHS,
) -> list[ConfigArtifact]:
    """
    Build the artifacts for a USB Ethernet takeover, in write order.

    Returns:
        Rename rule, primary profile and wireless profile; plus the
        cloud-init suppression drop-in and the netplan deletion marker
        when ``suppress_provisioning`` is set
    """
    artifacts = [
        ConfigArtifact(paths.udev_rule, udev_rename_rule(selection.mac_address, rename_target)),
        ConfigArtifact(
            paths.usb_network,
            network_profile(rename_target, usb_metric, required_for_online=False),
        ),
        ConfigArtifact(paths.wifi_network, network_profile(wifi_glob, wifi_metric)),
    ]

    if suppress_provisioning:
        artifacts.append(ConfigArtifact(paths.cloud_disable, provisioning_suppression()))
        artifacts.append(ConfigArtifact(paths.netplan_cloud, None))

    return artifacts
