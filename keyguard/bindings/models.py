"""Device binding model."""

from dataclasses import dataclass
from datetime import datetime, timezone

DEVICE_TYPE_IP = "ip"
DEVICE_TYPE_CLIENT_ID = "client_id"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DeviceBinding:
    device_id: str
    type: str  # "ip" | "client_id"
    first_seen: datetime
    last_seen: datetime
    last_ip: str = ""  # IP of the most recently accepted request
    banned: bool = False
    ban_reason: str = ""
    banned_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "type": self.type,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "last_ip": self.last_ip,
            "banned": self.banned,
            "ban_reason": self.ban_reason,
            "banned_at": self.banned_at.isoformat() if self.banned_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeviceBinding":
        banned_at = data.get("banned_at")
        return cls(
            device_id=data["device_id"],
            type=data.get("type", DEVICE_TYPE_IP),
            first_seen=_parse_time(data["first_seen"]),
            last_seen=_parse_time(data["last_seen"]),
            last_ip=data.get("last_ip", "") or "",
            banned=bool(data.get("banned", False)),
            ban_reason=data.get("ban_reason", "") or "",
            banned_at=_parse_time(banned_at) if banned_at else None,
        )


def _parse_time(value: str) -> datetime:
    """Parse an ISO timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
