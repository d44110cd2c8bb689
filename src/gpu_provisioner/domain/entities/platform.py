"""Platform identity of the node being provisioned.

The OS family is detected once and decides every later branch: which
driver installer runs, which package manager is used and which kernel
package tracks upgrades.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OSFamily(Enum):
    """Supported Linux distribution families."""
    DEBIAN = "debian"
    UBUNTU = "ubuntu"
    ROCKY = "rocky"           # RPM family


SUPPORTED_RELEASES: dict[OSFamily, frozenset[str]] = {
    OSFamily.DEBIAN: frozenset({"10", "11", "12"}),
    OSFamily.UBUNTU: frozenset({"18", "20", "22"}),
    OSFamily.ROCKY: frozenset({"8", "9"}),
}


@dataclass(frozen=True)
class PlatformIdentity:
    """OS family plus release as reported by lsb_release."""
    family: OSFamily
    release: str              # e.g. "12", "20.04", "8.8"

    @property
    def major(self) -> str:
        """Major release ("20.04" -> "20")."""
        return self.release.split(".")[0]

    @property
    def uses_apt(self) -> bool:
        return self.family in (OSFamily.DEBIAN, OSFamily.UBUNTU)

    @property
    def package_family(self) -> str:
        return "apt" if self.uses_apt else "dnf"

    @property
    def is_supported_release(self) -> bool:
        return self.major in SUPPORTED_RELEASES[self.family]

    def __str__(self) -> str:
        return f"{self.family.value} {self.release}"
