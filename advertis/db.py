from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from advertis.models import Base

_lock = threading.Lock()
_engine = None
_SessionLocal: sessionmaker[Session] | None = None

DATA_DIR = Path(__file__).parent / "data"


def init_db(db_path: str | Path | None = None) -> None:
    global _engine, _SessionLocal
    with _lock:
        if _engine is not None:
            _engine.dispose()
        if db_path is None:
            db_path = os.environ.get("ADVERTIS_DB_PATH") or DATA_DIR / "advertis.db"
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite:///{db_path}"
        _engine = create_engine(url, connect_args={"check_same_thread": False})
        Base.metadata.create_all(_engine)
        _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)


def get_session_factory() -> sessionmaker[Session]:
    with _lock:
        if _SessionLocal is None:
            raise RuntimeError("init_db() has not been called")
        return _SessionLocal


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """Context manager providing a transactional session scope.

    Rolls back on error; the caller commits. Usage::

        with session_scope() as session:
            ...
            session.commit()
    """
    session = factory() if factory is not None else get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
