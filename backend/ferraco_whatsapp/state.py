"""Connection states, events and the paired account for the WhatsApp session.

Both unions are closed sets of frozen dataclasses. The ``type`` tag on every
variant matches the names the backend and the admin frontend already use, so
snapshots can be compared with what the server reports.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

PLACEHOLDER_PHONE = "Conectado"
PLACEHOLDER_NAME = "WhatsApp"
DEFAULT_PLATFORM = "web"


@dataclass(frozen=True)
class Account:
    """Identity of the paired WhatsApp account."""
    phone: str
    name: str
    platform: str = DEFAULT_PLATFORM
    profile_pic_url: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "Account":
        """Build an account from a ``whatsapp:ready`` payload.

        The backend sometimes only sends ``{"connected": true}``; in that case
        a placeholder account is returned.
        """
        if not isinstance(payload, dict):
            return cls(phone=PLACEHOLDER_PHONE, name=PLACEHOLDER_NAME)
        phone = str(payload.get("phone") or "").strip()
        name = str(payload.get("name") or payload.get("pushname") or "").strip()
        if not phone and not name:
            return cls(phone=PLACEHOLDER_PHONE, name=PLACEHOLDER_NAME)
        pic = payload.get("profilePicUrl") or payload.get("profile_pic_url")
        return cls(
            phone=phone or PLACEHOLDER_PHONE,
            name=name or PLACEHOLDER_NAME,
            platform=str(payload.get("platform") or DEFAULT_PLATFORM),
            profile_pic_url=str(pic) if pic else None,
        )

    def to_dict(self) -> dict[str, str | None]:
        return {
            "phone": self.phone,
            "name": self.name,
            "platform": self.platform,
            "profilePicUrl": self.profile_pic_url,
        }


# ---------------------------------------------------------------------------
# Connection states
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Idle:
    type: ClassVar[str] = "idle"


@dataclass(frozen=True)
class Initializing:
    type: ClassVar[str] = "initializing"


@dataclass(frozen=True)
class QrAvailable:
    type: ClassVar[str] = "qr-available"
    qr_code: str
    attempt: int = 1


@dataclass(frozen=True)
class Authenticating:
    type: ClassVar[str] = "authenticating"


@dataclass(frozen=True)
class Connected:
    type: ClassVar[str] = "connected"
    account: Account


@dataclass(frozen=True)
class Disconnected:
    type: ClassVar[str] = "disconnected"
    reason: str | None = None


@dataclass(frozen=True)
class Error:
    type: ClassVar[str] = "error"
    error: str
    recoverable: bool = True


ConnectionState = Union[Idle, Initializing, QrAvailable, Authenticating, Connected, Disconnected, Error]
STATE_TYPES = (Idle, Initializing, QrAvailable, Authenticating, Connected, Disconnected, Error)

INITIAL_STATE: ConnectionState = Idle()


# ---------------------------------------------------------------------------
# Events (reducer input)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Initialize:
    type: ClassVar[str] = "INITIALIZE"


@dataclass(frozen=True)
class QrReceived:
    type: ClassVar[str] = "QR_RECEIVED"
    qr_code: str
    attempt: int = 1


@dataclass(frozen=True)
class QrScanned:
    type: ClassVar[str] = "QR_SCANNED"


@dataclass(frozen=True)
class AccountConnected:
    type: ClassVar[str] = "CONNECTED"
    account: Account


@dataclass(frozen=True)
class ConnectionLost:
    type: ClassVar[str] = "DISCONNECTED"
    reason: str | None = None


@dataclass(frozen=True)
class Failure:
    # None means "not stated"; the reducer treats it as recoverable.
    type: ClassVar[str] = "ERROR"
    error: str
    recoverable: bool | None = None


@dataclass(frozen=True)
class Reset:
    type: ClassVar[str] = "RESET"


Event = Union[Initialize, QrReceived, QrScanned, AccountConnected, ConnectionLost, Failure, Reset]
EVENT_TYPES = (Initialize, QrReceived, QrScanned, AccountConnected, ConnectionLost, Failure, Reset)
