import os
import sys
import random
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import SQLModel, create_engine

# ensure project root in sys.path so the flat modules import
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import db as db_mod  # noqa: E402
import models  # noqa: E402,F401
from lifecycle import RideEngine  # noqa: E402
from messaging import run_now  # noqa: E402
from models import User  # noqa: E402
from routing import RouteEstimator  # noqa: E402
from store import RideStore  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    """Each test runs against a fresh SQLite file."""
    test_db = f"sqlite:///{tmp_path}/test.db"
    new_engine = create_engine(test_db, echo=False, connect_args={"check_same_thread": False})
    monkeypatch.setattr(db_mod, "engine", new_engine)
    SQLModel.metadata.create_all(new_engine)
    yield
    SQLModel.metadata.drop_all(new_engine)
    new_engine.dispose()


class FixedRng(random.Random):
    """Random source whose PIN and traffic draws are pinned."""

    def __init__(self, code=5678, draw=0.5):
        super().__init__(0)
        self.code = code
        self.draw = draw

    def randint(self, a, b):
        return self.code

    def random(self):
        return self.draw


class Clock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 10, 1, 8, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def ride_engine(clock):
    return RideEngine(
        estimator=RouteEstimator(base_url=None),
        scheduler=run_now,
        completion_cooldown=0,
        rng=FixedRng(),
        clock=clock,
    )


@pytest.fixture
def make_user():
    store = RideStore()

    def _make(name="Alice Example", trust_score=50, **kw):
        return store.put_user(User(name=name, trust_score=trust_score, **kw))

    return _make


@pytest.fixture
def fixed_rng():
    return FixedRng
