import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import uuid4

# The engine is built at import time; keep it off the production path.
os.environ.setdefault("DB_PATH", str(Path(tempfile.gettempdir()) / "biowell_import.db"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from biowell.core.security import get_password_hash
from biowell.db.models import HealthMetric, User, WorkoutSession
from biowell.db.session import SessionLocal, configure_database, create_tables
from biowell.services.billing import BillingRequestError, get_billing_client
from biowell.services.llm import LLMConfigError, LLMRequestError, get_llm_client, parse_llm_json
from biowell.services.speech import SpeechRequestError, get_speech_client


class FakeScenario(str, Enum):
    OK = "OK"
    MALFORMED_JSON = "MALFORMED_JSON"
    TIMEOUT = "TIMEOUT"
    AUTH_ERROR = "AUTH_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    CONFIG_MISSING = "CONFIG_MISSING"


FAKE_CHAT_ANSWER = "Aim for a consistent bedtime and 7-9 hours of sleep."


class FakeLLMClient:
    def __init__(self, scenario: FakeScenario, fixture_dir: Path) -> None:
        self.scenario = scenario
        self.fixture_dir = fixture_dir
        self.chat_calls: list[list[dict[str, str]]] = []
        self.json_calls: list[str] = []

    def _raise_for_scenario(self) -> None:
        if self.scenario == FakeScenario.TIMEOUT:
            raise TimeoutError("simulated timeout")
        if self.scenario == FakeScenario.AUTH_ERROR:
            raise LLMRequestError(provider="openai", model="gpt-4", message="bad key", status_code=401)
        if self.scenario == FakeScenario.RATE_LIMITED:
            raise LLMRequestError(provider="openai", model="gpt-4", message="slow down", status_code=429)
        if self.scenario == FakeScenario.CONFIG_MISSING:
            raise LLMConfigError(provider="openai", model="gpt-4", message="OpenAI API key not configured.")

    def chat(self, db: Session, user_id: int, messages: list[dict[str, str]]) -> str:
        self.chat_calls.append(messages)
        self._raise_for_scenario()
        return FAKE_CHAT_ANSWER

    def generate_json(
        self, db: Session, user_id: int, prompt: str, system_instruction: str = ""
    ) -> dict[str, Any]:
        self.json_calls.append(prompt)
        self._raise_for_scenario()
        if self.scenario == FakeScenario.MALFORMED_JSON:
            raw = (self.fixture_dir / "MALFORMED_PLAN.txt").read_text(encoding="utf-8")
            return parse_llm_json(raw)
        return json.loads((self.fixture_dir / "OK_WORKOUT_PLAN.json").read_text(encoding="utf-8"))


class FakeSpeechClient:
    def __init__(self, audio: bytes = b"ID3-fake-mp3", error: Optional[SpeechRequestError] = None) -> None:
        self.audio = audio
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def synthesize(
        self,
        text: str,
        voice_id: Optional[str] = None,
        stability: Optional[float] = None,
        similarity_boost: Optional[float] = None,
    ) -> bytes:
        self.calls.append(
            {"text": text, "voice_id": voice_id, "stability": stability, "similarity_boost": similarity_boost}
        )
        if self.error:
            raise self.error
        return self.audio


class FakeBillingClient:
    def __init__(self, error: Optional[BillingRequestError] = None) -> None:
        self.error = error
        self.checkout_calls: list[dict[str, Any]] = []
        self.portal_calls: list[tuple[str, str]] = []

    def create_checkout_session(self, params: dict[str, Any]) -> dict[str, Any]:
        self.checkout_calls.append(params)
        if self.error:
            raise self.error
        return {"id": f"cs_test_{len(self.checkout_calls)}", "url": "https://checkout.stripe.test/session"}

    def create_portal_session(self, customer_id: str, return_url: str) -> dict[str, Any]:
        self.portal_calls.append((customer_id, return_url))
        if self.error:
            raise self.error
        return {"id": "bps_test", "url": f"https://billing.stripe.test/{customer_id}"}


@pytest.fixture(scope="session")
def fixture_dir() -> Path:
    return Path(__file__).resolve().parent / "fixtures" / "llm"


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    db_path = tmp_path_factory.mktemp("db") / "biowell_test.db"
    configure_database(str(db_path))
    create_tables()
    return db_path


@pytest.fixture(scope="session")
def app(test_db_path: Path):
    from biowell.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app):
    app.dependency_overrides = {}
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}


@pytest.fixture
def db_session(test_db_path: Path):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def create_user(db_session: Session) -> Callable[..., User]:
    def _create_user() -> User:
        email = f"user_{uuid4().hex[:10]}@test.com"
        user = User(email=email, password_hash=get_password_hash("StrongPass123"))
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def auth_token(client: TestClient) -> str:
    email = f"auth_{uuid4().hex[:10]}@test.com"
    password = "StrongPass123"
    signup = client.post("/auth/signup", json={"email": email, "password": password, "first_name": "Sara"})
    assert signup.status_code == 201
    login = client.post("/auth/login", data={"username": email, "password": password})
    assert login.status_code == 200
    return login.json()["access_token"]


@pytest.fixture
def auth_headers(auth_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def current_user_id(client: TestClient, auth_headers: dict[str, str]) -> int:
    me = client.get("/auth/me", headers=auth_headers)
    assert me.status_code == 200
    return int(me.json()["id"])


@pytest.fixture
def seed_metrics(db_session: Session):
    def _seed(user_id: int) -> list[HealthMetric]:
        now = datetime.now(timezone.utc)
        rows = [
            HealthMetric(user_id=user_id, metric_type="sleep_hours", value_num=6.0, unit="h",
                         source="manual", taken_at=now - timedelta(days=2)),
            HealthMetric(user_id=user_id, metric_type="sleep_hours", value_num=7.5, unit="h",
                         source="wearable", taken_at=now - timedelta(days=1)),
            HealthMetric(user_id=user_id, metric_type="resting_hr_bpm", value_num=58, unit="bpm",
                         source="wearable", taken_at=now - timedelta(days=1)),
            HealthMetric(user_id=user_id, metric_type="weight_kg", value_num=81.0, unit="kg",
                         source="manual", taken_at=now - timedelta(days=10)),
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _seed


@pytest.fixture
def seed_workouts(db_session: Session):
    def _seed(user_id: int, specs: list[tuple[str, float, float, int]]) -> list[WorkoutSession]:
        """``specs`` is a list of (workout_type, duration_min, calories_burned, days_ago)."""
        now = datetime.now(timezone.utc)
        rows = [
            WorkoutSession(
                user_id=user_id,
                workout_type=workout_type,
                duration_min=duration,
                calories_burned=calories,
                timestamp=now - timedelta(days=days_ago),
            )
            for workout_type, duration, calories, days_ago in specs
        ]
        db_session.add_all(rows)
        db_session.commit()
        return rows

    return _seed


@pytest.fixture
def fake_llm_factory(fixture_dir: Path) -> Callable[[FakeScenario], FakeLLMClient]:
    def _factory(scenario: FakeScenario) -> FakeLLMClient:
        return FakeLLMClient(scenario=scenario, fixture_dir=fixture_dir)

    return _factory


@pytest.fixture
def override_llm(app, fake_llm_factory):
    def _override(scenario: FakeScenario) -> FakeLLMClient:
        fake = fake_llm_factory(scenario)
        app.dependency_overrides[get_llm_client] = lambda: fake
        return fake

    return _override


@pytest.fixture
def override_speech(app):
    def _override(error: Optional[SpeechRequestError] = None) -> FakeSpeechClient:
        fake = FakeSpeechClient(error=error)
        app.dependency_overrides[get_speech_client] = lambda: fake
        return fake

    return _override


@pytest.fixture
def override_billing(app):
    def _override(error: Optional[BillingRequestError] = None) -> FakeBillingClient:
        fake = FakeBillingClient(error=error)
        app.dependency_overrides[get_billing_client] = lambda: fake
        return fake

    return _override
