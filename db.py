from sqlmodel import create_engine, Session
from sqlmodel import SQLModel
import threading
import weakref
import os

DB_FILE = os.path.join(os.path.dirname(__file__), "uniride.db")
_default_url = f"sqlite:///{DB_FILE}"
DATABASE_URL = os.environ.get("DATABASE_URL", _default_url)

# SQLite needs check_same_thread=False; Postgres does not
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# Application-level locks keyed by a simple name (e.g., ride:12, chat:ride_12).
# An entry lives only while some caller holds its lock object.
locks = weakref.WeakValueDictionary()
locks_lock = threading.Lock()


def get_lock(name: str):
    with locks_lock:
        lock = locks.get(name)
        if lock is None:
            lock = threading.Lock()
            locks[name] = lock
        return lock


def ride_lock(ride_id: int):
    return get_lock(f"ride:{ride_id}")


engine = create_engine(DATABASE_URL, echo=False, connect_args=_connect_args)


def init_db():
    # models must be imported so their tables are registered on the metadata
    import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    # objects outlive the session in the engine, so keep attributes loaded after commit
    return Session(engine, expire_on_commit=False)
