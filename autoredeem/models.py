"""Enums and dataclasses shared by the client, the orchestrator and the scheduler."""

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

CODE_PATTERN = re.compile(r"^[A-Z0-9]{5}(?:-[A-Z0-9]{5}){4}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp, assuming UTC when no offset is present"""
    if not value:
        return None
    # fromisoformat() on older interpreters rejects the trailing Z
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_valid_code(code: str) -> bool:
    return bool(CODE_PATTERN.match(code or ""))


class OutcomeKind(Enum):
    """Closed set of per-code failure kinds"""
    EXPIRED = "expired"
    ALREADY_REDEEMED = "already_redeemed"
    SERVER_ERROR = "server_error"
    FAILED = "failed"


class ProgressStatus(Enum):
    IDLE = "idle"
    CHECKING = "checking"
    REDEEMING = "redeeming"
    DONE = "done"
    ERROR = "error"


@dataclass
class Session:
    """Authenticated SHiFT identity; the expiry is approximate"""
    cookies: Dict[str, str]
    created_at: datetime
    expires_at: datetime

    @classmethod
    def create(cls, cookies: Dict[str, str], days: int = 365, now: Optional[datetime] = None) -> "Session":
        now = now or utcnow()
        return cls(cookies=dict(cookies), created_at=now, expires_at=now + timedelta(days=days))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cookies": dict(self.cookies),
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            cookies=dict(data.get("cookies") or {}),
            created_at=parse_timestamp(data["createdAt"]),
            expires_at=parse_timestamp(data["expiresAt"]),
        )


@dataclass(frozen=True)
class ShiftCode:
    """A SHiFT code as published by the discovery feed"""
    code: str
    games: List[str] = field(default_factory=list)
    discovered_at: Optional[str] = None
    expires: Optional[str] = None
    source: str = ""
    reward: Optional[str] = None
    expired: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShiftCode":
        code = str(data["code"]).strip().upper()
        if not is_valid_code(code):
            raise ValueError(f"Malformed SHiFT code: {code!r}")
        return cls(
            code=code,
            games=list(data.get("games") or []),
            discovered_at=data.get("discoveredAt"),
            expires=data.get("expires"),
            source=data.get("source") or "",
            reward=data.get("reward"),
            expired=bool(data.get("expired", False)),
        )


@dataclass(frozen=True)
class RedemptionForm:
    """Single-use token bundle for one game/platform pair"""
    game: str
    platform: str
    service: str
    title: str
    code: str
    check: str
    token: str


@dataclass
class LoginResult:
    success: bool
    session: Optional[Session] = None
    error: Optional[Exception] = None

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return getattr(self.error, "user_message", str(self.error))


@dataclass
class CodeCheckResult:
    valid: bool
    forms: List[RedemptionForm] = field(default_factory=list)
    reason: Optional[str] = None
    error: Optional[Exception] = None


@dataclass
class RedeemResult:
    success: bool
    code: str
    game: Optional[str] = None
    platform: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[Exception] = None


@dataclass
class FailedCodeRecord:
    code: str
    failed_at: datetime
    reason: str
    attempt_count: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "failedAt": self.failed_at.isoformat(),
            "reason": self.reason,
            "attemptCount": self.attempt_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailedCodeRecord":
        return cls(
            code=data["code"],
            failed_at=parse_timestamp(data["failedAt"]),
            reason=data.get("reason", ""),
            attempt_count=int(data.get("attemptCount", 1)),
        )


@dataclass
class RedeemedCodeRecord:
    """History entry for one successful platform redemption"""
    code: str
    redeemed_at: datetime
    game: str
    platform: str
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "redeemedAt": self.redeemed_at.isoformat(),
            "game": self.game,
            "platform": self.platform,
            "success": self.success,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RedeemedCodeRecord":
        return cls(
            code=data["code"],
            redeemed_at=parse_timestamp(data["redeemedAt"]),
            game=data.get("game", ""),
            platform=data.get("platform", ""),
            success=bool(data.get("success", True)),
        )


@dataclass
class RedemptionOutcome:
    """Result of driving one code through check, redeem and record"""
    code: str
    success: bool
    message: str
    expired: bool = False
    server_error: bool = False
    kind: Optional[OutcomeKind] = None

    def as_result(self) -> Dict[str, Any]:
        return {"code": self.code, "success": self.success, "message": self.message}


@dataclass
class UserConfig:
    """User preferences persisted in the store"""
    games: List[str] = field(default_factory=list)
    auto_redeem: bool = True
    check_interval_minutes: int = 60
    notify_on_auto_redeem: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "games": list(self.games),
            "autoRedeem": self.auto_redeem,
            "checkIntervalMinutes": self.check_interval_minutes,
            "notifyOnAutoRedeem": self.notify_on_auto_redeem,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], defaults: "UserConfig") -> "UserConfig":
        merged = asdict(defaults)
        merged.update({
            "games": data.get("games", merged["games"]),
            "auto_redeem": data.get("autoRedeem", merged["auto_redeem"]),
            "check_interval_minutes": data.get("checkIntervalMinutes", merged["check_interval_minutes"]),
            "notify_on_auto_redeem": data.get("notifyOnAutoRedeem", merged["notify_on_auto_redeem"]),
        })
        return cls(**merged)


@dataclass
class ProgressEvent:
    current: int = 0
    total: int = 0
    status: ProgressStatus = ProgressStatus.IDLE
    results: List[Dict[str, Any]] = field(default_factory=list)
    current_code: Optional[str] = None
