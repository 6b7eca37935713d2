"""
Database engine initialisation and the SQL-backed collaborator.

SqlBackend owns the schema and the blocking data access. Each console
client gets its own BackendClient (via SqlBackend.client()), which holds
that client's current session and session-change subscribers and
exposes the async contract the session store and dashboard consume.
"""

import asyncio
import logging
import sys
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

import jwt
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    func,
    select,
    text,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from hms_console.config import (
    PROFILES_TABLE,
    SECRET_KEY,
    TOKEN_EXPIRY_HOURS,
    USERS_TABLE,
    get_env,
)
from hms_console.errors import AuthError, QueryError
from hms_console.models import Identity, Session

logger = logging.getLogger(__name__)

SessionCallback = Callable[[Optional[Session]], Awaitable[None]]

# ── Schema ───────────────────────────────────────────────────────────

metadata = MetaData()

users = Table(
    USERS_TABLE, metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), unique=True, nullable=False),
    Column("password_hash", String(255), nullable=False),
    Column("user_metadata", JSON),
    Column("created_at", DateTime, default=datetime.utcnow),
)

user_profiles = Table(
    PROFILES_TABLE, metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), unique=True, nullable=False),
    Column("role", String(32), nullable=False),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("email", String(255)),
)

patients = Table(
    "patients", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("doctor_id", String(36)),
    Column("created_at", DateTime, default=datetime.utcnow),
)

appointments = Table(
    "appointments", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer),
    Column("doctor_id", String(36)),
    Column("scheduled_at", DateTime),
    Column("status", String(32), default="pending"),
)

lab_tests = Table(
    "lab_tests", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer),
    Column("test_name", String(100)),
    Column("status", String(32), default="pending"),
)

bills = Table(
    "bills", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer),
    Column("amount", Float),
    Column("status", String(32), default="pending"),
)

inventory = Table(
    "inventory", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100)),
    Column("quantity", Integer, default=0),
    Column("reorder_level", Integer, default=0),
)

pharmacy_items = Table(
    "pharmacy_items", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100)),
    Column("quantity", Integer, default=0),
    Column("reorder_level", Integer, default=0),
    Column("unit_price", Float),
)

prescriptions = Table(
    "prescriptions", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("patient_id", Integer),
    Column("doctor_id", String(36)),
    Column("medication", String(100)),
    Column("status", String(32), default="pending"),
)

notifications = Table(
    "notifications", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), nullable=False),
    Column("title", String(200)),
    Column("message", Text),
    Column("created_at", DateTime, default=datetime.utcnow),
    Column("read", Boolean, default=False),
)


def init_engine(db_uri: Optional[str] = None):
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = db_uri or get_env("DB_URI")
    connect_args = {"check_same_thread": False} if db_uri.startswith("sqlite") else {}
    engine = create_engine(db_uri, echo=False, future=True, connect_args=connect_args)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


# ── Tokens ───────────────────────────────────────────────────────────

def generate_token(user_id: str, email: str, secret_key: str = SECRET_KEY,
                   expiry_hours: float = TOKEN_EXPIRY_HOURS) -> Session:
    """Issue a signed session token for *user_id*."""
    issued_at = datetime.utcnow().replace(microsecond=0)
    expires_at = issued_at + timedelta(hours=expiry_hours)
    payload = {
        "sub": user_id,
        "email": email,
        "jti": uuid.uuid4().hex,
        "iat": issued_at,
        "exp": expires_at,
    }
    token = jwt.encode(payload, secret_key, algorithm="HS256")
    return Session(user_id=user_id, email=email, access_token=token,
                   issued_at=issued_at, expires_at=expires_at)


def verify_token(token: str, secret_key: str = SECRET_KEY) -> Optional[Dict[str, Any]]:
    """Verify a session token and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, secret_key, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


# ── Data access ──────────────────────────────────────────────────────

class SqlBackend:
    """Blocking data access over one engine, shared by all clients."""

    def __init__(self, engine, secret_key: str = SECRET_KEY,
                 token_expiry_hours: float = TOKEN_EXPIRY_HOURS):
        self.engine = engine
        self.secret_key = secret_key
        self.token_expiry_hours = token_expiry_hours

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    def client(self) -> "BackendClient":
        return BackendClient(self)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def table(self, name: str) -> Table:
        try:
            return metadata.tables[name]
        except KeyError:
            raise QueryError(f"Unknown table '{name}'") from None

    @staticmethod
    def _column(table: Table, name: str):
        try:
            return table.c[name]
        except KeyError:
            raise QueryError(f"Unknown column '{table.name}.{name}'") from None

    def _where(self, table: Table, equals: Optional[Mapping[str, Any]],
               below: Optional[Tuple[str, str]] = None) -> list:
        clauses = []
        for name, value in (equals or {}).items():
            column = self._column(table, name)
            clauses.append(column.is_(None) if value is None else column == value)
        if below is not None:
            name, threshold = below
            clauses.append(self._column(table, name) < self._column(table, threshold))
        return clauses

    # ── Reads / writes ───────────────────────────────────────────────

    def query_one(self, table_name: str, equals: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        table = self.table(table_name)
        stmt = select(table).where(*self._where(table, equals)).limit(1)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return dict(row) if row else None

    def query_many(self, table_name: str, equals: Optional[Mapping[str, Any]] = None,
                   order_by: Optional[str] = None, descending: bool = False,
                   limit: Optional[int] = None) -> List[Dict[str, Any]]:
        table = self.table(table_name)
        stmt = select(table).where(*self._where(table, equals))
        if order_by:
            column = self._column(table, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.engine.connect() as conn:
            return [dict(r) for r in conn.execute(stmt).mappings().all()]

    def count_where(self, table_name: str, equals: Optional[Mapping[str, Any]] = None,
                    below: Optional[Tuple[str, str]] = None) -> int:
        table = self.table(table_name)
        stmt = select(func.count()).select_from(table).where(*self._where(table, equals, below))
        with self.engine.connect() as conn:
            return int(conn.execute(stmt).scalar_one())

    def insert_row(self, table_name: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        table = self.table(table_name)
        with self.engine.begin() as conn:
            result = conn.execute(table.insert().values(**payload))
            pk = result.inserted_primary_key
            pk_cols = list(table.primary_key.columns)
            stmt = select(table).where(*[c == v for c, v in zip(pk_cols, pk)])
            row = conn.execute(stmt).mappings().first()
        return dict(row) if row else dict(payload)

    # ── Identities ───────────────────────────────────────────────────

    def find_identity(self, email: str) -> Optional[Dict[str, Any]]:
        return self.query_one(USERS_TABLE, {"email": email.strip().lower()})

    def create_identity(self, email: str, password: str,
                        user_metadata: Optional[Dict[str, Any]] = None) -> Identity:
        email = email.strip().lower()
        if not email or not password:
            raise AuthError("Email and password are required")
        user_id = str(uuid.uuid4())
        try:
            with self.engine.begin() as conn:
                conn.execute(users.insert().values(
                    id=user_id,
                    email=email,
                    password_hash=generate_password_hash(password),
                    user_metadata=user_metadata or {},
                    created_at=datetime.utcnow(),
                ))
        except IntegrityError:
            raise AuthError("User already registered") from None
        return Identity(user_id=user_id, email=email, metadata=dict(user_metadata or {}))

    def issue_session(self, user_id: str, email: str) -> Session:
        return generate_token(user_id, email, self.secret_key, self.token_expiry_hours)


class BackendClient:
    """One console client's view of the backend (session + subscribers)."""

    def __init__(self, backend: SqlBackend):
        self._backend = backend
        self._session: Optional[Session] = None
        self._callbacks: List[SessionCallback] = []

    async def _run(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except SQLAlchemyError as e:
            raise QueryError(str(e)) from e

    async def _set_session(self, session: Optional[Session]) -> None:
        if session == self._session:
            return
        self._session = session
        for callback in list(self._callbacks):
            await callback(session)

    # ── Auth ─────────────────────────────────────────────────────────

    async def authenticate(self, email: str, password: str) -> Session:
        try:
            row = await self._run(self._backend.find_identity, email)
        except QueryError as e:
            raise AuthError(f"Could not verify credentials: {e}") from e
        if row is None or not check_password_hash(row["password_hash"], password):
            raise AuthError("Invalid login credentials")
        session = self._backend.issue_session(row["id"], row["email"])
        await self._set_session(session)
        return session

    async def create_identity(self, email: str, password: str,
                              user_metadata: Optional[Dict[str, Any]] = None) -> Identity:
        try:
            return await self._run(self._backend.create_identity, email, password, user_metadata)
        except QueryError as e:
            raise AuthError(f"Could not create account: {e}") from e

    async def get_current_session(self) -> Optional[Session]:
        session = self._session
        if session is not None and (
            session.is_expired()
            or verify_token(session.access_token, self._backend.secret_key) is None
        ):
            logger.info("Session for %s expired", session.email)
            await self._set_session(None)
        return self._session

    def subscribe_session_changes(self, callback: SessionCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def invalidate_session(self) -> None:
        await self._set_session(None)

    # ── Data ─────────────────────────────────────────────────────────

    async def query_one(self, table: str, equals: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._run(self._backend.query_one, table, equals)

    async def query_many(self, table: str, equals: Optional[Mapping[str, Any]] = None,
                         order_by: Optional[str] = None, descending: bool = False,
                         limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self._run(self._backend.query_many, table, equals,
                               order_by=order_by, descending=descending, limit=limit)

    async def count_where(self, table: str, equals: Optional[Mapping[str, Any]] = None,
                          below: Optional[Tuple[str, str]] = None) -> int:
        return await self._run(self._backend.count_where, table, equals, below)

    async def insert_row(self, table: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._run(self._backend.insert_row, table, payload)
