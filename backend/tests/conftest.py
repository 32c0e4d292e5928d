import os
import sys
import threading
import time
import uuid
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from lessonquiz.db.base import Base
from lessonquiz.db import session as session_module
from lessonquiz.main import create_app

# Import models so that they are registered in Base.metadata before create_all.
from lessonquiz.models.user import User, UserRole
from lessonquiz.models.module import Module
from lessonquiz.models.quiz import Quiz, Question, QuestionOption, QuestionType
from lessonquiz.models.enrollment import Enrollment
from lessonquiz.models.attempt import QuizAttempt, QuizAttemptAnswer  # noqa: F401
from lessonquiz.models.audit import LearningEvent  # noqa: F401


class _MemoryRedis:
    def __init__(self):
        self._data: dict[str, tuple[str, float | None]] = {}
        self._mu = threading.Lock()

    def ping(self):
        return True

    def flushall(self):
        with self._mu:
            self._data.clear()
        return True

    def _now(self) -> float:
        return time.time()

    def _get_entry(self, key: str):
        v = self._data.get(key)
        if not v:
            return None
        value, exp = v
        if exp is not None and exp <= self._now():
            self._data.pop(key, None)
            return None
        return value, exp

    def get(self, key: str):
        with self._mu:
            entry = self._get_entry(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ex: int | None = None, nx: bool = False):
        with self._mu:
            if nx and self._get_entry(key) is not None:
                return None
            exp = (self._now() + int(ex)) if ex else None
            self._data[key] = (value, exp)
            return True

    def delete(self, key: str):
        with self._mu:
            self._data.pop(key, None)
            return 1

    def incr(self, key: str):
        with self._mu:
            entry = self._get_entry(key)
            n = int(entry[0] if entry else 0) + 1
            exp = entry[1] if entry else None
            self._data[key] = (str(n), exp)
            return n

    def expire(self, key: str, seconds: int):
        with self._mu:
            entry = self._get_entry(key)
            if not entry:
                return False
            value, _ = entry
            self._data[key] = (value, self._now() + int(seconds))
            return True

    def ttl(self, key: str):
        with self._mu:
            entry = self._get_entry(key)
            if not entry:
                return -2
            _, exp = entry
            if exp is None:
                return -1
            return max(0, int(exp - self._now()))


# Configure test DB (SQLite in-memory) at import time so all tests importing
# lessonquiz.db.session.SessionLocal will get the patched version.
_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
Base.metadata.create_all(bind=_engine)
session_module.engine = _engine
session_module.SessionLocal = session_module.sessionmaker(autocommit=False, autoflush=False, bind=_engine)


# Stub Redis at import time (rate limiting + submission locks).
_mem_redis = _MemoryRedis()
import lessonquiz.core.redis_client as redis_client_module

redis_client_module.get_redis = lambda: _mem_redis

import lessonquiz.core.rate_limit as rate_limit_module
rate_limit_module.get_redis = lambda: _mem_redis

import lessonquiz.core.locks as locks_module
locks_module.get_redis = lambda: _mem_redis

import lessonquiz.routers.health as health_router_module
health_router_module.get_redis = lambda: _mem_redis


@pytest.fixture(autouse=True)
def _reset_redis():
    _mem_redis.flushall()
    yield


@pytest.fixture()
def memory_redis():
    return _mem_redis


@pytest.fixture(scope="session")
def client():
    app = create_app()

    # Ensure app dependencies use our session factory.
    def _get_db_override():
        db = session_module.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[session_module.get_db] = _get_db_override
    return TestClient(app)


@pytest.fixture()
def db():
    with session_module.SessionLocal() as session:
        yield session


def _create_user(*, role: UserRole) -> User:
    with session_module.SessionLocal() as db:
        u = User(name=f"{role.value}_{uuid.uuid4().hex[:8]}", role=role)
        db.add(u)
        db.commit()
        db.refresh(u)
        db.expunge(u)
        return u


def _headers_for(user: User) -> dict[str, str]:
    from lessonquiz.core.security import create_access_token

    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def learner():
    return _create_user(role=UserRole.learner)


@pytest.fixture()
def admin():
    return _create_user(role=UserRole.admin)


@pytest.fixture()
def make_learner():
    def _make() -> tuple[User, dict[str, str]]:
        u = _create_user(role=UserRole.learner)
        return u, _headers_for(u)

    return _make


@pytest.fixture()
def learner_headers(learner):
    return _headers_for(learner)


@pytest.fixture()
def admin_headers(admin):
    return _headers_for(admin)


@pytest.fixture()
def make_quiz():
    """Create a module with a six-question quiz worth 10 points.

    ========  ===============  ======  =============================
    key       type             points  correct answer
    ========  ===============  ======  =============================
    mc        MULTIPLE_CHOICE  2       option ``mc_a``
    tf        TRUE_FALSE       1       option ``tf_true``
    ma        MULTIPLE_ANSWER  2       options ``ma_x`` and ``ma_y``
    ident     IDENTIFICATION   2       "Paris", any case
    fill      FILL_BLANK       1       "H2O", case sensitive
    essay     ESSAY            2       manual review
    ========  ===============  ======  =============================
    """

    def _make(*, enroll: User | None = None, **quiz_fields) -> SimpleNamespace:
        with session_module.SessionLocal() as db:
            module = Module(title=f"Module {uuid.uuid4().hex[:6]}", is_active=True)
            db.add(module)
            db.flush()

            fields = {"title": "Safety basics", "passing_score": 70}
            fields.update(quiz_fields)
            quiz = Quiz(module_id=module.id, **fields)
            db.add(quiz)
            db.flush()

            q: dict[str, uuid.UUID] = {}
            opt: dict[str, uuid.UUID] = {}

            def _question(key, qtype, points, options=(), **extra):
                question = Question(quiz_id=quiz.id, position=len(q), type=qtype, prompt=f"{key}?", points=points, **extra)
                db.add(question)
                db.flush()
                q[key] = question.id
                for i, (name, text, correct) in enumerate(options):
                    o = QuestionOption(question_id=question.id, position=i, text=text, is_correct=correct)
                    db.add(o)
                    db.flush()
                    opt[name] = o.id

            _question("mc", QuestionType.MULTIPLE_CHOICE, 2, [("mc_a", "A", True), ("mc_b", "B", False), ("mc_c", "C", False)])
            _question("tf", QuestionType.TRUE_FALSE, 1, [("tf_true", "True", True), ("tf_false", "False", False)])
            _question("ma", QuestionType.MULTIPLE_ANSWER, 2, [("ma_x", "X", True), ("ma_y", "Y", True), ("ma_z", "Z", False)])
            _question("ident", QuestionType.IDENTIFICATION, 2, [("ident_key", "Paris", True)])
            _question("fill", QuestionType.FILL_BLANK, 1, [("fill_key", "H2O", True)], case_sensitive=True)
            _question("essay", QuestionType.ESSAY, 2, explanation="Graded by an instructor.")

            if enroll is not None:
                db.add(Enrollment(user_id=enroll.id, module_id=module.id))

            db.commit()
            return SimpleNamespace(quiz_id=quiz.id, module_id=module.id, q=q, opt=opt)

    return _make


@pytest.fixture()
def all_correct():
    """Submit body answering every auto-graded question correctly."""

    def _body(ns: SimpleNamespace, **extra) -> dict:
        body = {
            "answers": [
                {"questionId": str(ns.q["mc"]), "selectedOptionId": str(ns.opt["mc_a"])},
                {"questionId": str(ns.q["tf"]), "selectedOptionId": str(ns.opt["tf_true"])},
                {"questionId": str(ns.q["ma"]), "selectedOptionId": [str(ns.opt["ma_y"]), str(ns.opt["ma_x"])]},
                {"questionId": str(ns.q["ident"]), "answerText": "  paris "},
                {"questionId": str(ns.q["fill"]), "answerText": "H2O"},
                {"questionId": str(ns.q["essay"]), "answerText": "Wear gloves."},
            ],
            "timeSpent": 42,
        }
        body.update(extra)
        return body

    return _body
