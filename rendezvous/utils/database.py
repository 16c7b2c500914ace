"""Database access for the Rendezvous engine using SQLAlchemy."""

import asyncio
import threading
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Type

import sentry_sdk
from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    and_,
    create_engine,
    delete,
    or_,
    update,
)
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import DeclarativeBase, Mapped, Query, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from rendezvous.utils.errors import ConfigurationError, ConflictError, DatabaseError, TransportError
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Get current UTC time (naive) to replace datetime.utcnow()."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class ProfileDB(Base):
    """Profile database model."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class LikeDB(Base):
    """Like database model. One row per ordered (sender, receiver) pair."""

    __tablename__ = "likes"
    __table_args__ = (UniqueConstraint("sender_id", "receiver_id", name="uq_likes_sender_receiver"),)

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    sender_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    receiver_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class MatchDB(Base):
    """Match database model.

    `pair_key` is the sorted pair of profile ids; its unique constraint is
    what keeps concurrent match completions down to a single row.
    """

    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    user1_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    user2_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    pair_key: Mapped[str] = mapped_column(String(101), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class MessageDB(Base):
    """Message database model."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    match_id: Mapped[str] = mapped_column(String(50), ForeignKey("matches.id"), index=True)
    sender_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"))
    content: Mapped[str] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(20), default="text")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class BlockDB(Base):
    """Block database model."""

    __tablename__ = "blocks"
    __table_args__ = (UniqueConstraint("blocker_id", "blocked_id", name="uq_blocks_blocker_blocked"),)

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    blocker_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    blocked_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ReportDB(Base):
    """Report database model."""

    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    reporter_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"))
    reported_id: Mapped[str] = mapped_column(String(50), ForeignKey("profiles.id"), index=True)
    reason: Mapped[str] = mapped_column(String(50))
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


MODEL_MAP: Dict[str, Type[Base]] = {
    "profiles": ProfileDB,
    "likes": LikeDB,
    "matches": MatchDB,
    "messages": MessageDB,
    "blocks": BlockDB,
    "reports": ReportDB,
}


class QueryResult(NamedTuple):
    """Rows returned by `execute_query`, as plain dictionaries."""

    data: List[Dict[str, Any]]
    count: int = 0


class Database:
    """Singleton database connection manager."""

    _engine = None
    _session_factory = None
    _sqlite_lock = threading.Lock()

    @classmethod
    def get_engine(cls) -> Any:
        """Get or create the database engine."""
        if cls._engine is None:
            from rendezvous.config import get_settings

            settings = get_settings()
            database_url = settings.DATABASE_URL

            if not database_url:
                raise ConfigurationError("DATABASE_URL is not configured")

            # SQLAlchemy requires postgresql:// instead of postgres://
            if database_url.startswith("postgres://"):
                database_url = database_url.replace("postgres://", "postgresql://", 1)

            try:
                if database_url.startswith("sqlite"):
                    # Worker threads share one connection so in-memory databases survive
                    cls._engine = create_engine(
                        database_url,
                        connect_args={"check_same_thread": False},
                        poolclass=StaticPool,
                        echo=settings.DEBUG,
                    )
                else:
                    cls._engine = create_engine(
                        database_url, pool_recycle=300, pool_pre_ping=True, echo=settings.DEBUG
                    )
                logger.info("Database engine created")
            except Exception as e:
                safe_url = _redact_url(database_url)
                logger.error("Failed to create database engine", error=str(e), url=safe_url)
                raise DatabaseError("Failed to connect to database", details={"error": str(e), "url": safe_url}) from e
        return cls._engine

    @classmethod
    def get_session_factory(cls) -> Any:
        """Get or create the session factory."""
        if cls._session_factory is None:
            cls._session_factory = sessionmaker(bind=cls.get_engine(), expire_on_commit=False)
        return cls._session_factory

    @classmethod
    def get_session(cls) -> Session:
        """Get a new database session."""
        return cls.get_session_factory()()  # type: ignore

    @classmethod
    def serialized(cls) -> Any:
        """Lock held around each query. SQLite shares one connection, so its queries run one at a time."""
        if cls.get_engine().dialect.name == "sqlite":
            return cls._sqlite_lock
        return nullcontext()

    @classmethod
    def create_tables(cls) -> None:
        """Create all database tables."""
        engine = cls.get_engine()
        Base.metadata.create_all(engine)
        logger.info("Database tables created")

    @classmethod
    def reset(cls) -> None:
        """Dispose the engine so the next call reconnects with current settings."""
        if cls._engine is not None:
            cls._engine.dispose()
        cls._engine = None
        cls._session_factory = None


def _redact_url(database_url: str) -> str:
    """Hide the password of a database URL for logging."""
    safe_url = database_url
    if "@" in safe_url:
        try:
            part1, part2 = safe_url.rsplit("@", 1)
            if ":" in part1:
                scheme_user, _ = part1.rsplit(":", 1)
                safe_url = f"{scheme_user}:***@{part2}"
        except ValueError:
            safe_url = "REDACTED_MALFORMED_URL"
    return safe_url


def get_session() -> Session:
    """Get a database session."""
    return Database.get_session()


def init_database() -> None:
    """Initialize the database and create tables."""
    Database.create_tables()


def _column(model: Type[Base], field_name: str) -> Any:
    if not hasattr(model, field_name):
        raise ValueError(f"Unknown column: {model.__tablename__}.{field_name}")
    return getattr(model, field_name)


def _condition(model: Type[Base], key: str, value: Any) -> Any:
    """Build one filter condition. Keys may carry an operator suffix (``created_at__lt``)."""
    if "__" in key:
        field_name, op = key.rsplit("__", 1)
        column = _column(model, field_name)
        if op == "gte":
            return column >= value
        if op == "lte":
            return column <= value
        if op == "gt":
            return column > value
        if op == "lt":
            return column < value
        if op == "ne":
            return column != value
        if op == "in":
            return column.in_(value)
        if op == "like":
            return column.like(value)
        if op == "ilike":
            return column.ilike(value)
        raise ValueError(f"Unknown filter operator: {op}")

    column = _column(model, key)
    if value is None:
        return column.is_(None)
    return column == value


def _conditions(model: Type[Base], filters: Dict[str, Any]) -> List[Any]:
    """Turn a filter mapping into a list of conditions.

    ``$or`` takes a list of mappings; conditions inside one mapping are ANDed,
    the mappings themselves are ORed.
    """
    conditions = []
    for key, value in filters.items():
        if key == "$or":
            or_conditions = []
            for condition in value:
                and_conditions = [_condition(model, k, v) for k, v in condition.items()]
                if and_conditions:
                    or_conditions.append(and_(*and_conditions) if len(and_conditions) > 1 else and_conditions[0])
            if or_conditions:
                conditions.append(or_(*or_conditions))
        else:
            conditions.append(_condition(model, key, value))
    return conditions


def _apply_filters(query: Query, model: Type[Base], filters: Dict[str, Any]) -> Query:
    """Apply a filter mapping to a query."""
    for condition in _conditions(model, filters):
        query = query.filter(condition)
    return query


def _apply_order(query: Query, model: Type[Base], order_by: str) -> Query:
    """Apply an ordering such as ``"created_at asc, id asc"``."""
    for clause in order_by.split(","):
        parts = clause.split()
        if not parts:
            continue
        col = _column(model, parts[0])
        direction = parts[1].lower() if len(parts) > 1 else "asc"
        query = query.order_by(col.desc() if direction == "desc" else col.asc())
    return query


def execute_query(
    table: str,
    query_type: str,
    filters: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    order_by: Optional[str] = None,
) -> QueryResult:
    """Execute a query on the database.

    Args:
        table: Table name
        query_type: Query type (select, count, insert, update, delete)
        filters: Query filters
        data: Data for insert/update operations
        limit: Max number of records to return
        offset: Number of records to skip
        order_by: Fields to sort by (e.g. "created_at desc")

    Returns:
        QueryResult with the affected rows. Update returns the rows after the
        update, delete returns the rows that were removed.

    Raises:
        ConflictError: If an insert or update violates a unique constraint
        TransportError: If the database cannot be reached
        DatabaseError: For any other database failure
    """
    filters = filters or {}
    data = data or {}

    model = MODEL_MAP.get(table)
    if not model:
        raise ValueError(f"Unknown table: {table}")

    with sentry_sdk.start_span(op="db.query", name=f"{query_type.upper()} {table}") as span:
        span.set_data("table", table)
        span.set_data("query_type", query_type)
        if filters:
            span.set_data("filters", str(filters))

        with Database.serialized():
            session = get_session()
            try:
                if query_type == "select":
                    query = _apply_filters(session.query(model), model, filters)
                    if order_by:
                        query = _apply_order(query, model, order_by)
                    if offset:
                        query = query.offset(offset)
                    if limit:
                        query = query.limit(limit)
                    rows = [_model_to_dict(r) for r in query.all()]
                    span.set_data("row_count", len(rows))
                    return QueryResult(data=rows, count=len(rows))

                elif query_type == "count":
                    count = _apply_filters(session.query(model), model, filters).count()
                    span.set_data("row_count", count)
                    return QueryResult(data=[], count=count)

                elif query_type == "insert":
                    instance = model(**data)
                    session.add(instance)
                    session.commit()
                    return QueryResult(data=[_model_to_dict(instance)], count=1)

                elif query_type == "update":
                    # Filters are part of the UPDATE; rows a concurrent caller changed are skipped
                    statement = (
                        update(model.__table__)  # type: ignore[arg-type]
                        .where(*_conditions(model, filters))
                        .values(**data)
                        .returning(*model.__table__.columns)
                    )
                    rows = [dict(row._mapping) for row in session.execute(statement)]
                    session.commit()
                    if not rows:
                        logger.debug("No records matched update", table=table, filters=filters)
                    span.set_data("updated_count", len(rows))
                    return QueryResult(data=rows, count=len(rows))

                elif query_type == "delete":
                    statement = (
                        delete(model.__table__)  # type: ignore[arg-type]
                        .where(*_conditions(model, filters))
                        .returning(*model.__table__.columns)
                    )
                    removed = [dict(row._mapping) for row in session.execute(statement)]
                    session.commit()
                    span.set_data("deleted_count", len(removed))
                    return QueryResult(data=removed, count=len(removed))

                else:
                    raise ValueError(f"Invalid query type: {query_type}")

            except ValueError:
                session.rollback()
                raise
            except IntegrityError as e:
                span.set_status("already_exists")
                session.rollback()
                logger.info(f"Constraint violation on {query_type} {table}", error=str(e.orig), filters=filters)
                raise ConflictError(
                    f"Constraint violation: {query_type} on {table}",
                    details={"error": str(e.orig), "filters": filters},
                ) from e
            except OperationalError as e:
                span.set_status("unavailable")
                session.rollback()
                logger.error(f"Database unavailable for {query_type} on {table}", error=str(e))
                raise TransportError(
                    f"Database unavailable: {query_type} on {table}", service="database", details={"error": str(e)}
                ) from e
            except Exception as e:
                span.set_status("internal_error")
                session.rollback()
                logger.error(
                    f"Failed to execute {query_type} query on {table}",
                    error=str(e),
                    filters=filters,
                    data=data,
                )
                raise DatabaseError(
                    f"Database operation failed: {query_type} on {table}",
                    details={"error": str(e), "filters": filters, "data": data},
                ) from e
            finally:
                session.close()


async def run_query(
    table: str,
    query_type: str,
    filters: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    order_by: Optional[str] = None,
) -> QueryResult:
    """Run `execute_query` in a worker thread so the event loop keeps serving."""
    return await asyncio.to_thread(
        execute_query,
        table,
        query_type,
        filters=filters,
        data=data,
        limit=limit,
        offset=offset,
        order_by=order_by,
    )


def _model_to_dict(model: Any) -> Dict[str, Any]:
    """Convert a SQLAlchemy model to a dictionary."""
    return {c.name: getattr(model, c.name) for c in model.__table__.columns}
