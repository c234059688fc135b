# bankfeed/db.py
# Role: Database bootstrap for the banking engine.
#       Defines the SQLAlchemy engine, session factory, and declarative Base.
#       Also ensures the on-disk SQLite directory exists before the app starts.

"""
Database setup for the bank statement engine.

- Uses DATABASE_URL from settings (SQLite file under <project_root>/database/ by default).
- Ensures the folder for a file-based SQLite database exists.
"""

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, declarative_base

from bankfeed.config import settings

DATABASE_URL = settings.database_url

_url = make_url(DATABASE_URL)

# For file-based SQLite, create the parent folder if missing
if _url.get_backend_name() == "sqlite" and _url.database and _url.database != ":memory:":
    os.makedirs(os.path.dirname(os.path.abspath(_url.database)), exist_ok=True)


def _connect_args() -> dict:
    # SQLite needs check_same_thread=False for FastAPI (threaded request handling)
    if _url.get_backend_name() == "sqlite":
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    DATABASE_URL,
    connect_args=_connect_args(),
)

# Standard session factory used via dependency injection (see bankfeed/deps.py:get_db)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Declarative base class for ORM models
Base = declarative_base()
