import enum
from datetime import datetime, timezone

from sqlalchemy import create_engine, Column, String, Integer, Text, DateTime, Index
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy import event
from sqlalchemy.pool import StaticPool

Base = declarative_base()

# Bound by init_engine(); every session comes from here unless a storage
# object is handed its own factory.
ENGINE = None
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

# Reserved: means "poll" on the way in and "nothing to do" on the way out.
NO_JOB_ID = 0


class JobState(enum.IntEnum):
    TO_SCHEDULE = 0
    SUCCEEDED = 1
    FAILED = 2


def _utcnow():
    return datetime.now(timezone.utc)


# --- Job Model ---

class Job(Base):
    __tablename__ = 'jobs'

    # Autoincrement starts at 1, so NO_JOB_ID is never handed out
    id = Column(Integer, primary_key=True, autoincrement=True)

    shell = Column(Text, nullable=False)
    state = Column(Integer, default=JobState.TO_SCHEDULE, nullable=False)
    result = Column(Text, default="", nullable=False)
    hostname = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    # The poll query filters on both columns
    __table_args__ = (Index('idx_query', 'hostname', 'state'),)

    def to_dict(self):
        return {
            "id": self.id,
            "shell": self.shell,
            "state": JobState(self.state).name.lower(),
            "result": self.result,
            "hostname": self.hostname,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Job(id={self.id}, host='{self.hostname}', state={JobState(self.state).name}, shell='{self.shell[:20]}...')>"


# --- Tag Model ---

class TagBinding(Base):
    __tablename__ = 'tag_bindings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    hostname = Column(String(255), unique=True, nullable=False)
    tag = Column(String(255), unique=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<TagBinding(tag='{self.tag}', hostname='{self.hostname}')>"


# --- Engine Setup ---

def make_engine(dsn: str):
    """Build an engine for a SQLAlchemy URL, tuning SQLite for threaded use."""
    if dsn.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if dsn in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every thread sees its own empty db
            kwargs["poolclass"] = StaticPool
        engine = create_engine(dsn, **kwargs)

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")  # Write-Ahead Logging for better concurrency
            cursor.close()

        return engine
    return create_engine(dsn, pool_pre_ping=True)


def init_engine(dsn: str):
    """Bind the module-level session factory to `dsn` and return the engine."""
    global ENGINE
    ENGINE = make_engine(dsn)
    SessionLocal.configure(bind=ENGINE)
    return ENGINE


def initialize_db(engine=None):
    """Create the tables if they don't exist."""
    Base.metadata.create_all(bind=engine or ENGINE)


def get_session():
    """Returns a new session object."""
    return SessionLocal()
