import os, tempfile

# Database and event sink must be configured before the app is imported
testDirectory = tempfile.mkdtemp(prefix="campusride-")
os.environ["DATABASE_URL"] = f"sqlite:///{testDirectory}/campusride.db"
os.environ["OPENOBSERVE_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

from campusride.main import app
from campusride.src import openobserve
from campusride.src.db import ORMbase, engine


@pytest.fixture(autouse=True)
def database():
    ORMbase.metadata.create_all(engine)
    yield
    ORMbase.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def events(monkeypatch):
    captured = []
    monkeypatch.setattr(openobserve, "logEvent", captured.append)
    return captured


@pytest.fixture
def client():
    with TestClient(app) as testClient:
        yield testClient


@pytest.fixture
def signUp(client):
    def register(username: str, role: str = "student") -> dict:
        response = client.post(
            "/api/register",
            data={
                "full_name": username.title(),
                "username": username,
                "password": "password",
                "role": role,
            },
        )
        assert response.status_code == 201, response.text
        data = response.json()
        return {
            "id": data["id"],
            "headers": {"Authorization": f"Bearer {data['access_token']}"},
        }

    return register


@pytest.fixture
def admin(signUp):
    return signUp("admin", "admin")


@pytest.fixture
def driver(signUp):
    return signUp("driver", "driver")


@pytest.fixture
def student(signUp):
    return signUp("student")


@pytest.fixture
def campus(client, admin, driver):
    """A route served by the driver's bus and a second route with no bus."""
    northRoute = client.post(
        "/api/routes",
        headers=admin["headers"],
        data={
            "name": "North campus line",
            "stops": ["Gate A", "Library Junction", "City Bus Stand"],
        },
    ).json()
    southRoute = client.post(
        "/api/routes",
        headers=admin["headers"],
        data={"name": "South campus line", "stops": ["Gate B", "Lake View"]},
    ).json()
    bus = client.post(
        "/api/buses",
        headers=admin["headers"],
        data={
            "bus_number": "KL01AB1001",
            "driver_id": driver["id"],
            "route_id": northRoute["id"],
            "total_seats": 52,
        },
    ).json()
    return {"route": northRoute, "empty_route": southRoute, "bus": bus}


@pytest.fixture
def passForm(campus):
    return {
        "route_id": campus["route"]["id"],
        "boarding_stop": "Gate A",
        "branch": "CSE",
        "passing_year": "2027",
        "phone_number": "+919876543210",
        "email_id": "student@campusride.in",
        "emergency_contact": "+919812345678",
    }
