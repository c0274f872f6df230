"""
Fixtures compartidos de los tests de Questline.

  - engine / session_factory → un archivo SQLite nuevo por test (tmp_path), así
    dos sesiones ven de verdad los commits de la otra
  - clock                    → FixedClock el miércoles 2026-03-04 12:00 (Madrid)
  - db                       → sesión con mentee, eventos bonus, logros,
                               insignias y misiones iniciales sembradas
  - client                   → TestClient con get_db / get_clock sobreescritos
  - mentee_headers / mentor_headers → JWT bearer reales de POST /auth/token
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import auth
from achievements import seed_achievements
from clock import FixedClock, get_clock
from database import get_db, init_db, make_engine
from main import app
from quests import ensure_mentee, seed_bonus_events, seed_quests

MENTEE_TOKEN = "mentee-link-token"
MENTOR_TOKEN = "mentor-link-token"


class PickLast:
    """Sustituto determinista de random: siempre el último candidato"""

    def choice(self, seq):
        return seq[-1]


# ============================================================================
# BASE DE DATOS
# ============================================================================

@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'questline.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    ensure_mentee(session)
    seed_bonus_events(session)
    seed_achievements(session)
    seed_quests(session)
    yield session
    session.close()


@pytest.fixture
def mentee(db):
    return ensure_mentee(db)


# ============================================================================
# RELOJ
# ============================================================================

@pytest.fixture
def clock():
    # miércoles
    return FixedClock(datetime(2026, 3, 4, 12, 0), tz_name="Europe/Madrid")


@pytest.fixture
def pick_last():
    return PickLast()


# ============================================================================
# HTTP
# ============================================================================

@pytest.fixture
def client(db, session_factory, clock, monkeypatch):
    monkeypatch.setattr(auth, "MENTEE_TOKEN", MENTEE_TOKEN)
    monkeypatch.setattr(auth, "MENTOR_TOKEN", MENTOR_TOKEN)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


def _headers(client, token):
    response = client.post("/auth/token", json={"token": token})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def mentee_headers(client):
    return _headers(client, MENTEE_TOKEN)


@pytest.fixture
def mentor_headers(client):
    return _headers(client, MENTOR_TOKEN)
