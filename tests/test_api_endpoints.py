"""Tests for FastAPI REST endpoints using FakeSerial (no hardware).

Tests verify:
- Connection lifecycle (connect, disconnect)
- Screen navigation driving measurements
- Lock policy changes
- Data access (status, display, measurements, ports)
- Error mapping (InvalidConfigValue→400, SerialIOError→503)
"""

import time
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from api import main as api_module
from fakes.fake_serial import FakeSerial
from vitals_lib.errors import InvalidConfigValue
from vitals_lib.transport import Transport


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset global singletons before and after each test."""
    api_module.reset_state()
    yield
    api_module.reset_state()


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(api_module.app)


@pytest.fixture
def fake_serial():
    """Simulated sensor box with default readings."""
    return FakeSerial(hr=72, spo2=98, temp=36.55)


@pytest.fixture
def monkeypatch_transport(monkeypatch, fake_serial):
    """Monkeypatch Transport.open to use FakeSerial."""
    def mock_open(port: str, baud: int):
        """Return Transport wrapping FakeSerial."""
        return Transport(fake_serial)

    monkeypatch.setattr(Transport, "open", mock_open)


def wait_for_display(client, slot: str, text: str, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if client.get("/display").json().get(slot) == text:
            return True
        time.sleep(0.05)
    return False


# =============================================================================
# Health & Status
# =============================================================================

def test_health_check(client):
    """Test GET /health returns service info."""
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "online"
    assert data["version"] == api_module.API_VERSION


def test_status_before_connect(client):
    """Test GET /status with no device connected."""
    response = client.get("/status")

    assert response.status_code == 200
    data = response.json()
    assert data["connected"] is False
    assert data["state"] == "disconnected"
    assert data["session_state"] == "idle"
    assert data["active_key"] is None
    assert data["current_screen"] is None
    assert data["progress_percent"] == 0.0


# =============================================================================
# Connection Lifecycle
# =============================================================================

def test_connect_success(client, monkeypatch_transport):
    """Test POST /connect opens the link."""
    response = client.post("/connect?port=/dev/ttyACM0&baud=115200")

    assert response.status_code == 200
    assert response.json() == {"status": "connected", "port": "/dev/ttyACM0", "baud": 115200}

    status = client.get("/status").json()
    assert status["connected"] is True
    assert status["status_text"] == "Connected"


def test_connect_twice_rejected(client, monkeypatch_transport):
    """Test that connecting while connected returns 400."""
    client.post("/connect?port=/dev/ttyACM0")

    response = client.post("/connect?port=/dev/ttyACM0")

    assert response.status_code == 400
    assert "Already connected" in response.json()["detail"]


def test_connect_failure_maps_to_503(client):
    """Test that an unopenable port returns 503 and sets the status text."""
    response = client.post("/connect?port=/dev/does-not-exist-vitals")

    assert response.status_code == 503

    status = client.get("/status").json()
    assert status["connected"] is False
    assert status["status_text"].startswith("Connection failed:")


def test_disconnect(client, monkeypatch_transport):
    """Test POST /disconnect closes the link."""
    client.post("/connect?port=/dev/ttyACM0")

    response = client.post("/disconnect")

    assert response.status_code == 200
    assert response.json() == {"status": "disconnected"}
    status = client.get("/status").json()
    assert status["connected"] is False
    assert status["status_text"] == "Disconnected"


def test_disconnect_when_never_connected(client):
    """Test that disconnect is harmless without a controller."""
    response = client.post("/disconnect")

    assert response.status_code == 200


# =============================================================================
# Wizard Navigation
# =============================================================================

def test_screen_change_measures(client, monkeypatch_transport, fake_serial):
    """Test that moving to the HR screen measures HR and SPO2."""
    client.post("/connect?port=/dev/ttyACM0")

    response = client.post("/screen/8")

    assert response.status_code == 200
    data = response.json()
    assert data["key"] == "HR"
    assert data["progress_percent"] == pytest.approx(43.75)

    assert wait_for_display(client, "HR", "72 bpm")
    assert wait_for_display(client, "SPO2", "98 %")
    assert fake_serial.commands == ["HR_SPO2"]

    measurements = client.get("/measurements").json()
    assert measurements["stored"] == {"HR": "72 bpm", "SPO2": "98 %"}
    assert measurements["stats"]["row_count"] == 2
    assert {row["screen"] for row in measurements["rows"]} == {8}


def test_measurements_filtered_by_key(client, monkeypatch_transport):
    """Test GET /measurements?key= filters log rows."""
    client.post("/connect?port=/dev/ttyACM0")
    client.post("/screen/8")
    assert wait_for_display(client, "SPO2", "98 %")

    rows = client.get("/measurements?key=spo2").json()["rows"]

    assert len(rows) == 1
    assert rows[0]["key"] == "SPO2"
    assert rows[0]["display"] == "98 %"


def test_unmapped_screen(client):
    """Test that a screen without a sensor returns no key."""
    response = client.post("/screen/1")

    assert response.status_code == 200
    assert response.json()["key"] is None
    assert client.get("/status").json()["current_screen"] == 1


@pytest.mark.parametrize("screen", [0, 18])
def test_screen_out_of_range(client, screen):
    """Test that screens outside the wizard return 400."""
    response = client.post(f"/screen/{screen}")

    assert response.status_code == 400


def test_screen_without_connection_reports_status(client):
    """Test that measuring while disconnected shows the write failure."""
    client.post("/screen/10")

    deadline = time.monotonic() + 3.0
    while time.monotonic() < deadline:
        if client.get("/status").json()["status_text"] == "Port not available for writing":
            break
        time.sleep(0.05)

    status = client.get("/status").json()
    assert status["status_text"] == "Port not available for writing"
    assert status["session_state"] == "waiting"
    assert status["active_key"] == "TEMP"


# =============================================================================
# Lock Policy
# =============================================================================

def test_set_lock_policy(client):
    """Test POST /lock-policy updates the policy."""
    response = client.post("/lock-policy", json={"lock_on_first_valid": False})

    assert response.status_code == 200
    assert response.json() == {"lock_on_first_valid": False}
    assert client.get("/status").json()["lock_on_first_valid"] is False


def test_lock_policy_requires_body(client):
    """Test that a malformed body is rejected by validation."""
    response = client.post("/lock-policy", json={})

    assert response.status_code == 422


def test_invalid_config_maps_to_400(client, monkeypatch):
    """Test that InvalidConfigValue raised by the controller returns 400."""
    controller = api_module.get_controller()

    def reject(flag, wait=True):
        raise InvalidConfigValue("lock policy cannot change now")

    monkeypatch.setattr(controller, "set_lock_on_first_valid", reject)

    response = client.post("/lock-policy", json={"lock_on_first_valid": True})

    assert response.status_code == 400
    assert response.json()["detail"] == "lock policy cannot change now"


# =============================================================================
# Ports
# =============================================================================

def test_list_ports(client, monkeypatch):
    """Test GET /ports lists system serial ports."""
    monkeypatch.setattr(
        api_module,
        "list_serial_ports",
        lambda: [SimpleNamespace(device="/dev/ttyACM0", description="Sensor box")],
    )

    response = client.get("/ports")

    assert response.status_code == 200
    assert response.json() == [{"device": "/dev/ttyACM0", "description": "Sensor box"}]
