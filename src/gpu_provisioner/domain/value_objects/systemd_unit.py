"""Declarative systemd unit descriptors for recurring node tasks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SystemdUnit:
    """A oneshot service started on every boot."""
    name: str                          # e.g. "install-headers.service"
    description: str
    exec_start: str
    after: Optional[str] = None        # ordering dependency
    service_type: Optional[str] = None
    remain_after_exit: bool = False
    wanted_by: str = "multi-user.target"

    def render(self) -> str:
        """Render the unit file contents."""
        unit = ["[Unit]", f"Description={self.description}"]
        if self.after:
            unit.append(f"After={self.after}")

        service = ["[Service]", f"ExecStart={self.exec_start}"]
        if self.service_type:
            service.append(f"Type={self.service_type}")
        if self.remain_after_exit:
            service.append("RemainAfterExit=yes")

        install = ["[Install]", f"WantedBy={self.wanted_by}"]
        return "\n".join(unit) + "\n\n" + "\n".join(service) + "\n\n" + "\n".join(install) + "\n"
