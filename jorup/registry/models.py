from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


# ----------------------------------------------------------------------
# Installed release
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class InstalledRelease:
    channel: str
    version: str
    install_dir: str
    publish_date: Optional[str] = None
    checksum: Optional[str] = None
    installed_at: str = field(default_factory=_utcnow)

    @property
    def key(self) -> str:
        return f"{self.channel}-{self.version}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InstalledRelease":
        return cls(
            channel=data["channel"],
            version=data["version"],
            install_dir=data["install_dir"],
            publish_date=data.get("publish_date"),
            checksum=data.get("checksum"),
            installed_at=data.get("installed_at") or _utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ----------------------------------------------------------------------
# Default selection
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class DefaultSelection:
    default_channel: Optional[str] = None
    selections: Mapping[str, str] = field(default_factory=dict)

    def version_for(self, channel: str) -> Optional[str]:
        return self.selections.get(channel)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DefaultSelection":
        return cls(
            default_channel=data.get("default_channel"),
            selections=dict(data.get("selections") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "default_channel": self.default_channel,
            "selections": dict(sorted(self.selections.items())),
        }


# ----------------------------------------------------------------------
# Run record
# ----------------------------------------------------------------------

class RunStatus(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class RunRecord:
    channel: str
    version: str
    pid: int
    executable: str

    control_endpoint: Optional[str] = None
    log_file: Optional[str] = None
    daemon: bool = False
    status: RunStatus = RunStatus.RUNNING
    started_at: str = field(default_factory=_utcnow)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RunRecord":
        return cls(
            channel=data["channel"],
            version=data["version"],
            pid=int(data["pid"]),
            executable=data["executable"],
            control_endpoint=data.get("control_endpoint"),
            log_file=data.get("log_file"),
            daemon=bool(data.get("daemon", False)),
            status=RunStatus(data.get("status") or RunStatus.RUNNING.value),
            started_at=data.get("started_at") or _utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["status"] = self.status.value
        return out
