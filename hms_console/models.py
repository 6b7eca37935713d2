"""
Domain dataclasses used across the application.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


class Role(str, Enum):
    """Operator personas. Closed set: every role table must cover all of them."""
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    PHARMACIST = "pharmacist"
    LAB_TECHNICIAN = "lab_technician"
    PATIENT = "patient"

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        """Return the Role for *value*, or None when it is absent or unknown."""
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class Session:
    """Live proof of authentication for one subject."""
    user_id: str
    email: str
    access_token: str
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return now >= self.expires_at


@dataclass(frozen=True)
class Identity:
    """A backend auth identity (created by sign-up, no session attached)."""
    user_id: str
    email: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    role: Optional[Role]
    first_name: str
    last_name: str
    email: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UserProfile":
        return cls(
            user_id=str(row["user_id"]),
            role=Role.parse(row.get("role")),
            first_name=row.get("first_name") or "",
            last_name=row.get("last_name") or "",
            email=row.get("email"),
        )


@dataclass(frozen=True)
class Notification:
    id: Any
    title: str
    message: str
    created_at: Optional[datetime]
    read: bool
    user_id: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Notification":
        return cls(
            id=row["id"],
            title=row.get("title") or "",
            message=row.get("message") or "",
            created_at=row.get("created_at"),
            read=bool(row.get("read")),
            user_id=str(row.get("user_id")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.created_at is not None:
            data["created_at"] = self.created_at.isoformat()
        return data


# ── Capabilities ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class NavigationItem:
    label: str
    route_id: str


class _CurrentUser:
    """Placeholder bound to the session's subject id when a plan runs."""

    def __repr__(self):
        return "CURRENT_USER"


CURRENT_USER = _CurrentUser()


@dataclass(frozen=True)
class QuerySpec:
    """One dashboard read.

    kind is "count" (counter named *key*) or "notifications" (unread
    feed, newest first). *below* is a (column, threshold_column) pair
    compared row by row.
    """
    key: str
    table: str
    kind: str = "count"
    equals: Tuple[Tuple[str, Any], ...] = ()
    below: Optional[Tuple[str, str]] = None

    def bind(self, user_id: str) -> Dict[str, Any]:
        """Return the equality filter with CURRENT_USER replaced by *user_id*."""
        return {
            col: (user_id if value is CURRENT_USER else value)
            for col, value in self.equals
        }


@dataclass(frozen=True)
class Capabilities:
    navigation_items: Tuple[NavigationItem, ...]
    dashboard_plan: Tuple[QuerySpec, ...]

    @property
    def route_ids(self) -> List[str]:
        return [item.route_id for item in self.navigation_items]


# ── Query results ────────────────────────────────────────────────────

@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class Failure:
    reason: str


QueryResult = Union[Success, Failure]


@dataclass
class DashboardSnapshot:
    """Counters and unread notifications for one role at one point in time."""
    role: Optional[Role]
    counters: Dict[str, int] = field(default_factory=dict)
    recent_notifications: List[Notification] = field(default_factory=list)
    degraded: List[str] = field(default_factory=list)  # keys that fell back to zero/empty

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.counters)
        data["recent_notifications"] = [n.to_dict() for n in self.recent_notifications]
        return data


# ── Session state ────────────────────────────────────────────────────

class AuthState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class CurrentSession:
    """Read-only view of the session store handed to consumers."""
    state: AuthState
    session: Optional[Session] = None
    role: Optional[Role] = None
    profile: Optional[UserProfile] = None

    @property
    def loading(self) -> bool:
        return self.state in (AuthState.UNINITIALIZED, AuthState.CHECKING)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_doctor(self) -> bool:
        return self.role is Role.DOCTOR

    @property
    def is_nurse(self) -> bool:
        return self.role is Role.NURSE

    @property
    def is_pharmacist(self) -> bool:
        return self.role is Role.PHARMACIST

    @property
    def is_lab_technician(self) -> bool:
        return self.role is Role.LAB_TECHNICIAN

    @property
    def is_patient(self) -> bool:
        return self.role is Role.PATIENT


# ── Guard ────────────────────────────────────────────────────────────

class GuardDecision(str, Enum):
    PENDING = "pending"
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class GuardResult:
    decision: GuardDecision
    redirect_to: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.decision is GuardDecision.ALLOW
