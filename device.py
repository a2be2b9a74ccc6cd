# device.py
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class DeviceType(str, Enum):
    PHONE = "Phone"
    LAPTOP = "Laptop"
    TV = "TV"
    OTHER = "Other"


class DeviceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


UNKNOWN_VENDOR = "Unknown"
UNKNOWN_NAME = "Unknown Device"


@dataclass
class DeviceRecord:
    mac: str  # Canonical lower-case, colon separated; the cache key
    ip: str = ""
    name: str = UNKNOWN_NAME
    vendor: str = UNKNOWN_VENDOR
    type: DeviceType = DeviceType.OTHER
    status: DeviceStatus = DeviceStatus.OFFLINE
    blocked: bool = False
    last_seen: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mac": self.mac,
            "ip": self.ip,
            "name": self.name,
            "vendor": self.vendor,
            "type": self.type.value,
            "status": self.status.value,
            "blocked": self.blocked,
            "lastSeen": self.last_seen,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceRecord":
        """Builds a record from its JSON form, tolerating missing or stale fields."""
        try:
            device_type = DeviceType(data.get("type", DeviceType.OTHER.value))
        except ValueError:
            device_type = DeviceType.OTHER
        try:
            status = DeviceStatus(data.get("status", DeviceStatus.OFFLINE.value))
        except ValueError:
            status = DeviceStatus.OFFLINE
        return cls(
            mac=data["mac"],
            ip=data.get("ip") or "",
            name=data.get("name") or UNKNOWN_NAME,
            vendor=data.get("vendor") or UNKNOWN_VENDOR,
            type=device_type,
            status=status,
            blocked=bool(data.get("blocked", False)),
            last_seen=data.get("lastSeen"),
        )


@dataclass
class PendingAuthorizationRequest:
    mac: str
    ip: str
    name: str
    timestamp: str
    status: RequestStatus = RequestStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mac": self.mac,
            "ip": self.ip,
            "name": self.name,
            "timestamp": self.timestamp,
            "status": self.status.value,
        }


@dataclass
class GuestSession:
    mac: str
    name: str
    joined_at: str
    expires_at: Optional[str] = None  # None means unlimited

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mac": self.mac,
            "name": self.name,
            "joinedAt": self.joined_at,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuestSession":
        return cls(
            mac=data["mac"].lower(),
            name=data.get("name") or data["mac"],
            joined_at=data.get("joinedAt") or "",
            expires_at=data.get("expiresAt"),
        )
