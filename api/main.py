"""FastAPI REST and WebSocket interface for the vitals wizard.

Single-process, single-device lifecycle with thread-safe access to:
- MeasurementController (serial link, event worker, measurement session)
- MeasurementLog (pandas DataFrame of accepted values)

The controller lives for the whole process so values stored during the
wizard survive a disconnect/reconnect of the sensor box.

Error mapping:
- InvalidConfigValue → 400
- SerialIOError → 503
- Other exceptions → 500
"""

import asyncio
import logging
import os
from threading import RLock
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Path, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import vitals_lib
from data_store import MeasurementLog
from vitals_lib import MeasurementController, WizardConfig
from vitals_lib.errors import InvalidConfigValue, SerialIOError
from vitals_lib.transport import list_serial_ports

# =============================================================================
# Environment Configuration
# =============================================================================


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "9150"))
DEFAULT_SERIAL_PORT = os.getenv("SERIAL_PORT", "/dev/ttyACM0")
DEFAULT_SERIAL_BAUD = int(os.getenv("SERIAL_BAUD", "115200"))
LOCK_ON_FIRST_VALID = _env_flag("LOCK_ON_FIRST_VALID", True)
WATCH_PORTS = _env_flag("WATCH_PORTS", False)
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

API_VERSION = vitals_lib.__version__

# Interval between WebSocket polls of the display board
STREAM_POLL_S = 0.1

# Configure logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# =============================================================================
# Global Singletons
# =============================================================================

_controller: Optional[MeasurementController] = None
_log: Optional[MeasurementLog] = None
_lock = RLock()  # Protects state-changing operations

# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="Vitals Wizard API",
    description="REST and WebSocket interface for the vitals sensor box",
    version=API_VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_404_requests(request: Request, call_next):
    """Log all 404 responses to help debug missing routes."""
    response = await call_next(request)
    if response.status_code == 404:
        logger.warning(f"404 NOT FOUND: {request.method} {request.url.path}")
    return response

# =============================================================================
# Request/Response Models
# =============================================================================


class StatusResponse(BaseModel):
    """Response for GET /status."""
    connected: bool
    state: str
    status_text: str
    session_state: str
    active_key: Optional[str]
    retry_count: int
    current_screen: Optional[int]
    progress_percent: float
    lock_on_first_valid: bool


class ConnectResponse(BaseModel):
    """Response for POST /connect."""
    status: str
    port: str
    baud: int


class ScreenResponse(BaseModel):
    """Response for POST /screen/{n}."""
    screen: int
    key: Optional[str]
    progress_percent: float


class LockPolicyRequest(BaseModel):
    """Request body for POST /lock-policy."""
    lock_on_first_valid: bool


class PortInfo(BaseModel):
    """One entry of GET /ports."""
    device: str
    description: Optional[str] = None


# =============================================================================
# Singleton Access
# =============================================================================


def get_controller() -> MeasurementController:
    """Return the process-wide controller, creating it on first use."""
    global _controller, _log

    with _lock:
        if _controller is None:
            logger.info(f"Creating measurement controller (lock_on_first_valid={LOCK_ON_FIRST_VALID})")
            controller = MeasurementController(
                WizardConfig(lock_on_first_valid=LOCK_ON_FIRST_VALID)
            )
            _log = MeasurementLog(screen_provider=lambda: controller.current_screen)
            controller.add_measurement_listener(_log.record)
            _controller = controller
        return _controller


def get_log() -> MeasurementLog:
    get_controller()
    assert _log is not None
    return _log


def reset_state() -> None:
    """Shut down the controller and forget all wizard state."""
    global _controller, _log

    with _lock:
        if _controller is not None:
            _controller.close()
        _controller = None
        _log = None


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(InvalidConfigValue)
async def invalid_config_handler(request, exc: InvalidConfigValue):
    """Map InvalidConfigValue to 400 Bad Request."""
    logger.error(f"InvalidConfigValue: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(SerialIOError)
async def serial_io_error_handler(request, exc: SerialIOError):
    """Map SerialIOError to 503 Service Unavailable."""
    logger.error(f"SerialIOError: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# =============================================================================
# Read-Only Endpoints
# =============================================================================

@app.get("/status", response_model=StatusResponse)
async def get_status():
    """Get connection, session and wizard progress state."""
    controller = get_controller()
    active_key = controller.active_key

    return StatusResponse(
        connected=controller.is_connected(),
        state=controller.state.value,
        status_text=controller.status_text,
        session_state=controller.session_state.value,
        active_key=str(active_key) if active_key is not None else None,
        retry_count=controller.retry_count,
        current_screen=controller.current_screen,
        progress_percent=controller.progress_percent,
        lock_on_first_valid=controller.lock_on_first_valid,
    )


@app.get("/display")
async def get_display() -> Dict[str, str]:
    """All display slots (one per sensor key, plus "status")."""
    return get_controller().display_snapshot()


@app.get("/measurements")
async def get_measurements(key: Optional[str] = Query(None, description="Only rows for this key")):
    """Values accepted during this wizard session.

    Returns:
        {"stored": {key: text}, "rows": [...], "stats": {...}}
    """
    controller = get_controller()
    log = get_log()

    return {
        "stored": controller.stored_values(),
        "rows": log.to_records(key.upper() if key else None),
        "stats": log.get_stats(),
    }


@app.get("/ports", response_model=List[PortInfo])
async def get_ports():
    """Serial ports currently present on the system."""
    return [
        PortInfo(device=p.device, description=getattr(p, "description", None))
        for p in list_serial_ports()
    ]


# =============================================================================
# Lifecycle & Wizard Endpoints
# =============================================================================

@app.post("/connect", response_model=ConnectResponse)
async def connect(
    port: str = Query(DEFAULT_SERIAL_PORT, description="Serial port (e.g., /dev/ttyACM0)"),
    baud: int = Query(DEFAULT_SERIAL_BAUD, description="Baud rate")
):
    """Open the serial link to the sensor box and start reading.

    Raises:
        400: If already connected
        503: If the port cannot be opened (SerialIOError)
    """
    with _lock:
        controller = get_controller()
        if controller.is_connected():
            raise HTTPException(
                status_code=400,
                detail="Already connected. Disconnect first."
            )

        logger.info(f"Connecting to {port} at {baud} baud...")
        controller.connect(port=port, baud=baud)

        return ConnectResponse(status="connected", port=port, baud=baud)


@app.post("/disconnect")
async def disconnect():
    """Close the serial link. Stored values and the current screen are kept.

    Returns:
        {"status": "disconnected"}
    """
    with _lock:
        if _controller is not None:
            logger.info("Disconnecting from sensor box...")
            _controller.disconnect()

        return {"status": "disconnected"}


@app.post("/screen/{screen}", response_model=ScreenResponse)
async def change_screen(screen: int = Path(..., description="Destination wizard screen (1-based)")):
    """Navigate the wizard and start or stop the matching measurement.

    Raises:
        400: If the screen number is outside the wizard
    """
    controller = get_controller()
    total = controller.config.total_screens
    if not (1 <= screen <= total):
        raise HTTPException(status_code=400, detail=f"screen must be 1-{total}, got {screen}")

    key = controller.on_screen_change(screen)

    return ScreenResponse(
        screen=screen,
        key=str(key) if key is not None else None,
        progress_percent=controller.progress_percent,
    )


@app.post("/lock-policy")
async def set_lock_policy(req: LockPolicyRequest):
    """Set whether measurements stop at the first valid value.

    Takes effect from the next measurement start.
    """
    controller = get_controller()
    controller.set_lock_on_first_valid(req.lock_on_first_valid)
    logger.info(f"lock_on_first_valid set to {req.lock_on_first_valid}")
    return {"lock_on_first_valid": controller.lock_on_first_valid}


# =============================================================================
# WebSocket Streaming
# =============================================================================

@app.websocket("/stream")
async def websocket_stream(websocket: WebSocket):
    """WebSocket endpoint pushing display slot updates as they happen.

    On connect the client receives the full slot snapshot, then one
    message per update: {"seq": int, "slot": str, "text": str}.

    Usage:
        ws = new WebSocket("ws://localhost:9150/stream");
        ws.onmessage = (event) => {
            const update = JSON.parse(event.data);
            document.getElementById(update.slot).textContent = update.text;
        };
    """
    await websocket.accept()
    logger.info(f"WebSocket client connected: {websocket.client}")

    board = get_controller().display

    try:
        last_seq = board.seq
        await websocket.send_json({"seq": last_seq, "snapshot": board.snapshot()})

        while True:
            for update in board.updates_since(last_seq):
                await websocket.send_json(
                    {"seq": update.seq, "slot": update.slot, "text": update.text}
                )
                last_seq = update.seq

            await asyncio.sleep(STREAM_POLL_S)

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: {websocket.client}")


# =============================================================================
# Health
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "service": "Vitals Wizard API",
        "version": API_VERSION,
        "status": "online"
    }


# =============================================================================
# Startup/Shutdown Events
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup and configuration."""
    logger.info("=" * 60)
    logger.info("Vitals Wizard API started")
    logger.info(f"Version: {API_VERSION}")
    logger.info(f"Host: {API_HOST}")
    logger.info(f"Port: {API_PORT}")
    logger.info(f"Default Serial Port: {DEFAULT_SERIAL_PORT}")
    logger.info(f"Default Serial Baud: {DEFAULT_SERIAL_BAUD}")
    logger.info(f"Lock On First Valid: {LOCK_ON_FIRST_VALID}")
    logger.info(f"Watch Ports: {WATCH_PORTS}")
    logger.info(f"CORS Origins: {CORS_ORIGINS}")
    logger.info(f"Log Level: {LOG_LEVEL}")
    logger.info("=" * 60)

    if WATCH_PORTS:
        get_controller().start_port_watcher()


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources on shutdown."""
    logger.info("Shutting down Vitals Wizard API...")
    reset_state()
    logger.info("Shutdown complete")


def main() -> None:
    """Serve the API with uvicorn using API_HOST/API_PORT."""
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
