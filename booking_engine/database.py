import logging
import os
import time
from contextlib import contextmanager
from dotenv import load_dotenv
from threading import Lock
from typing import Iterator

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from booking_engine.core import config
from booking_engine.core.exceptions import StorageTimeoutError


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking_engine.db")

logger = logging.getLogger(__name__)

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()

ACTIVE_APPOINTMENT_STATUSES = ('pending', 'confirmed')

WINDOW_OVERLAP_GUARD = 'availability_windows_no_overlap'
APPOINTMENT_OVERLAP_GUARD = 'appointments_no_overlap'

_TIMEOUT_MARKERS = (
    'statement timeout',
    'canceling statement due to',
    'lock timeout',
    'database is locked',
)
_TIMEOUT_PGCODES = {'57014', '55P03'}

_POSTGRES_GUARDS = {
    WINDOW_OVERLAP_GUARD: """
        ALTER TABLE availability_windows
          ADD CONSTRAINT availability_windows_no_overlap
          EXCLUDE USING gist (
            instructor_id WITH =,
            weekday WITH =,
            tsrange(DATE '2000-01-01' + start_time, DATE '2000-01-01' + end_time, '[)') WITH &&
          )
          WHERE (is_available)
    """,
    APPOINTMENT_OVERLAP_GUARD: """
        ALTER TABLE appointments
          ADD CONSTRAINT appointments_no_overlap
          EXCLUDE USING gist (
            instructor_id WITH =,
            appointment_date WITH =,
            tsrange(appointment_date + start_time, appointment_date + end_time, '[)') WITH &&
          )
          WHERE (status IN ('pending', 'confirmed'))
    """,
}

_SQLITE_GUARDS = (
    """
    CREATE TRIGGER IF NOT EXISTS availability_windows_no_overlap_insert
    BEFORE INSERT ON availability_windows
    WHEN NEW.is_available AND EXISTS (
        SELECT 1 FROM availability_windows AS existing
        WHERE existing.instructor_id = NEW.instructor_id
          AND existing.weekday = NEW.weekday
          AND existing.is_available
          AND existing.start_time < NEW.end_time
          AND NEW.start_time < existing.end_time
    )
    BEGIN
        SELECT RAISE(ABORT, 'availability_windows_no_overlap');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS availability_windows_no_overlap_update
    BEFORE UPDATE ON availability_windows
    WHEN NEW.is_available AND EXISTS (
        SELECT 1 FROM availability_windows AS existing
        WHERE existing.id != NEW.id
          AND existing.instructor_id = NEW.instructor_id
          AND existing.weekday = NEW.weekday
          AND existing.is_available
          AND existing.start_time < NEW.end_time
          AND NEW.start_time < existing.end_time
    )
    BEGIN
        SELECT RAISE(ABORT, 'availability_windows_no_overlap');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS appointments_no_overlap_insert
    BEFORE INSERT ON appointments
    WHEN NEW.status IN ('pending', 'confirmed') AND EXISTS (
        SELECT 1 FROM appointments AS existing
        WHERE existing.instructor_id = NEW.instructor_id
          AND existing.appointment_date = NEW.appointment_date
          AND existing.status IN ('pending', 'confirmed')
          AND existing.start_time < NEW.end_time
          AND NEW.start_time < existing.end_time
    )
    BEGIN
        SELECT RAISE(ABORT, 'appointments_no_overlap');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS appointments_no_overlap_update
    BEFORE UPDATE ON appointments
    WHEN NEW.status IN ('pending', 'confirmed') AND EXISTS (
        SELECT 1 FROM appointments AS existing
        WHERE existing.id != NEW.id
          AND existing.instructor_id = NEW.instructor_id
          AND existing.appointment_date = NEW.appointment_date
          AND existing.status IN ('pending', 'confirmed')
          AND existing.start_time < NEW.end_time
          AND NEW.start_time < existing.end_time
    )
    BEGIN
        SELECT RAISE(ABORT, 'appointments_no_overlap');
    END
    """,
)

_INDEX_STATEMENTS = (
    'CREATE INDEX IF NOT EXISTS idx_availability_windows_instructor_weekday '
    'ON availability_windows(instructor_id, weekday)',
    'CREATE INDEX IF NOT EXISTS idx_blocked_periods_instructor_date '
    'ON blocked_periods(instructor_id, block_date)',
    'CREATE INDEX IF NOT EXISTS idx_appointments_instructor_date '
    'ON appointments(instructor_id, appointment_date)',
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _install_postgres_guards(connection: Connection) -> None:
    connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
    existing = set(
        connection.execute(
            text('SELECT conname FROM pg_constraint WHERE conname IN (:window_guard, :appointment_guard)'),
            {'window_guard': WINDOW_OVERLAP_GUARD, 'appointment_guard': APPOINTMENT_OVERLAP_GUARD},
        ).scalars()
    )
    for name, statement in _POSTGRES_GUARDS.items():
        if name not in existing:
            logger.info('Installing overlap guard %s', name)
            connection.execute(text(statement))


def ensure_scheduling_schema(bind: Engine | None = None) -> None:
    """Install the overlap guards and lookup indexes. Safe to call repeatedly."""
    target = bind or engine

    with _schema_lock:
        table_names = set(inspect(target).get_table_names())
        if not {'availability_windows', 'appointments', 'blocked_periods'} <= table_names:
            return

        with target.begin() as connection:
            if target.dialect.name == 'postgresql':
                _install_postgres_guards(connection)
            elif target.dialect.name == 'sqlite':
                for statement in _SQLITE_GUARDS:
                    connection.execute(text(statement))
            else:
                logger.warning(
                    'No overlap guard available for dialect %s; relying on application checks.',
                    target.dialect.name,
                )

            for statement in _INDEX_STATEMENTS:
                connection.execute(text(statement))


class Deadline:
    """Time budget a caller grants to the storage calls of one operation."""

    def __init__(self, timeout_seconds: float | None = None, clock=time.monotonic) -> None:
        self._clock = clock
        self.timeout_seconds = timeout_seconds
        self.expires_at = clock() + timeout_seconds if timeout_seconds is not None else None

    @classmethod
    def default(cls) -> 'Deadline':
        return cls(config.STORAGE_TIMEOUT_SECONDS)

    def remaining_seconds(self) -> float | None:
        if self.expires_at is None:
            return None
        return self.expires_at - self._clock()

    def expired(self) -> bool:
        remaining = self.remaining_seconds()
        return remaining is not None and remaining <= 0

    def check(self, operation: str) -> None:
        if self.expired():
            logger.warning('Deadline exceeded before %s', operation)
            raise StorageTimeoutError(
                f'Timed out before {operation}. Please retry.',
                details={'operation': operation},
            )


def apply_deadline(db: Session, deadline: Deadline | None, operation: str) -> None:
    """Fail fast on an expired deadline and cap the next statements on Postgres."""
    if deadline is None:
        return

    deadline.check(operation)
    remaining = deadline.remaining_seconds()
    if remaining is not None and db.get_bind().dialect.name == 'postgresql':
        db.execute(text(f'SET LOCAL statement_timeout = {max(1, int(remaining * 1000))}'))


def is_timeout_error(exc: OperationalError) -> bool:
    orig = getattr(exc, 'orig', None)
    if getattr(orig, 'pgcode', None) in _TIMEOUT_PGCODES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


@contextmanager
def storage_call(operation: str) -> Iterator[None]:
    """Translate driver timeouts into StorageTimeoutError."""
    try:
        yield
    except OperationalError as exc:
        if is_timeout_error(exc):
            logger.warning('Storage timeout during %s', operation)
            raise StorageTimeoutError(
                f'Timed out during {operation}. Please retry.',
                details={'operation': operation},
            ) from exc
        raise


@contextmanager
def atomic(db: Session, deadline: Deadline | None, operation: str) -> Iterator[Session]:
    """Run a unit of work in one transaction; commit on success, roll back on any failure."""
    try:
        with storage_call(operation):
            apply_deadline(db, deadline, operation)
            yield db
            if deadline is not None:
                deadline.check(f'{operation} commit')
            db.commit()
    except BaseException:
        db.rollback()
        raise
