"""
Database Configuration and Session Management

SQLAlchemy engine, session factory and table initialization for the
signal event store. SQLite by default; override with DATABASE_URL.
"""

import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Ensure data directory exists
DATA_DIR = Path(__file__).parent.parent.parent / "data"
DATA_DIR.mkdir(exist_ok=True)

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite:///{DATA_DIR}/signal_events.db"
)

# SQLite needs check_same_thread off: the sink writes from a worker thread
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    connect_args=_connect_args,
    echo=False  # Set to True for SQL debugging
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()


def init_db(bind=None):
    """
    Initialize database - create all tables

    Called on application startup to ensure all tables exist.
    """
    # Import all models to ensure they're registered with Base
    from signal_hub.database import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)

    print(f"[OK] Database initialized at: {DATABASE_URL if bind is None else bind.url}")
