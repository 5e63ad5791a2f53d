"""Tests for screen-driven start/stop of measurements."""

from types import SimpleNamespace

import pytest

from fakes.fake_serial import FakeSerial
from fakes.manual_scheduler import ManualScheduler
from vitals_lib.config import WizardConfig
from vitals_lib.context import SessionContext
from vitals_lib.formatting import ERROR_TEXT, WAITING_TEXT
from vitals_lib.models import Reading, SensorKey, SessionState
from vitals_lib.orchestrator import ScreenOrchestrator
from vitals_lib.transport import Transport


@pytest.fixture
def rig() -> SimpleNamespace:
    fake_serial = FakeSerial(auto_respond=False)
    transport = Transport(fake_serial)
    scheduler = ManualScheduler()
    ctx = SessionContext.create(
        config=WizardConfig(),
        get_transport=lambda: transport,
        scheduler=scheduler,
    )
    return SimpleNamespace(
        ctx=ctx,
        orchestrator=ScreenOrchestrator(ctx),
        scheduler=scheduler,
        fake_serial=fake_serial,
    )


def test_progress_percent(rig) -> None:
    """Test progress across the 17-screen wizard."""
    assert rig.orchestrator.progress_percent == 0.0

    rig.orchestrator.on_screen_change(1)
    assert rig.orchestrator.progress_percent == 0.0

    rig.orchestrator.on_screen_change(9)
    assert rig.orchestrator.progress_percent == pytest.approx(50.0)

    rig.orchestrator.on_screen_change(17)
    assert rig.orchestrator.progress_percent == 100.0
    assert rig.orchestrator.current_screen == 17


def test_mapped_screen_starts_measurement(rig) -> None:
    """Test that a measurement screen starts its key and sends the request."""
    key = rig.orchestrator.on_screen_change(10)

    assert key is SensorKey.TEMP
    assert rig.ctx.session.active_key == SensorKey.TEMP
    assert rig.ctx.display.get("TEMP") == WAITING_TEXT

    rig.scheduler.advance(0.3)
    assert rig.fake_serial.commands == ["TEMP"]


def test_unmapped_screen_stops_measurement(rig) -> None:
    """Test that leaving for a screen without a sensor stops the session."""
    rig.orchestrator.on_screen_change(10)

    assert rig.orchestrator.on_screen_change(11) is None

    assert not rig.ctx.session.active
    rig.scheduler.advance(1.0)
    assert rig.fake_serial.commands == []


def test_leaving_cancels_pending_retry(rig) -> None:
    """Test that navigating away during a retry wait prevents the retry."""
    rig.orchestrator.on_screen_change(10)
    rig.scheduler.advance(0.3)
    rig.orchestrator.handle_reading(Reading("TEMP", None))
    assert rig.ctx.display.get("TEMP") == ERROR_TEXT

    rig.orchestrator.on_screen_change(12)
    rig.scheduler.advance(5.0)

    assert rig.fake_serial.commands == ["TEMP"]


def test_combined_request_reused_on_sibling_screen(rig) -> None:
    """Test that SPO2 delivered with HR is shown without a new request."""
    rig.orchestrator.on_screen_change(8)
    rig.scheduler.advance(0.3)
    rig.orchestrator.handle_reading(Reading("HR", 72))
    rig.orchestrator.handle_reading(Reading("SPO2", 98))

    key = rig.orchestrator.on_screen_change(9)
    rig.scheduler.advance(2.0)

    assert key is SensorKey.SPO2
    assert rig.ctx.display.get("SPO2") == "98 %"
    assert rig.fake_serial.commands == ["HR_SPO2"]
    assert not rig.ctx.session.active


def test_sibling_screen_without_cache_measures(rig) -> None:
    """Test that SPO2 is requested when the HR screen never delivered it."""
    rig.orchestrator.on_screen_change(9)
    rig.scheduler.advance(0.3)

    assert rig.fake_serial.commands == ["HR_SPO2"]
    assert rig.ctx.session.active_key == SensorKey.SPO2


def test_single_token_key_always_remeasured(rig) -> None:
    """Test that a stored HEIGHT does not short-circuit a revisit."""
    rig.orchestrator.on_screen_change(6)
    rig.scheduler.advance(0.3)
    rig.orchestrator.handle_reading(Reading("HEIGHT", 172.5))
    assert rig.ctx.session.state == SessionState.LOCKED

    rig.orchestrator.on_screen_change(7)
    rig.orchestrator.on_screen_change(6)
    rig.scheduler.advance(0.3)

    assert rig.fake_serial.commands == ["ALTURA", "ALTURA"]
    assert rig.ctx.display.get("HEIGHT") == WAITING_TEXT
    assert rig.ctx.stored_values.get("HEIGHT") == "172.5 cm"


def test_key_measured_on_its_own_screen_remeasured(rig) -> None:
    """Test that revisiting HR asks the device again instead of reusing it."""
    rig.orchestrator.on_screen_change(8)
    rig.scheduler.advance(0.3)
    rig.orchestrator.handle_reading(Reading("HR", 72))
    assert rig.ctx.stored_values.get("HR") == "72 bpm"

    rig.orchestrator.on_screen_change(7)
    key = rig.orchestrator.on_screen_change(8)
    rig.scheduler.advance(0.3)

    assert key is SensorKey.HR
    assert rig.fake_serial.commands == ["HR_SPO2", "HR_SPO2"]
    assert rig.ctx.session.active_key == SensorKey.HR
    assert rig.ctx.display.get("HR") == WAITING_TEXT
