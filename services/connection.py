"""Ownership of the single serial connection to the weather station.

The supervisor resolves which port to use, opens it, hands the open port to
the ingestion session, and keeps retrying with a capped exponential backoff
whenever the port cannot be opened or drops out. Nothing here is fatal: the
supervisor retries until it is shut down.
"""

from __future__ import annotations

import errno
import logging
import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import serial
from serial.tools import list_ports

from app.schemas import ConnectionSnapshot, ConnectionStatus

logger = logging.getLogger(__name__)

FALLBACK_PORT = "/dev/cu.usbmodem1101"
DEFAULT_BAUD_RATE = 9600
READ_TIMEOUT_SECONDS = 1.0
BACKOFF_FACTOR = 1.5

# USB-serial bridges commonly found on ESP32/Arduino relay boards.
USB_PATH_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"usbmodem",
        r"usbserial",
        r"SLAB_USBtoUART",
        r"ch340",
        r"CP210",
        r"FTDI",
        r"Arduino",
    )
)
USB_MANUFACTURER_PATTERN = re.compile(r"arduino|espressif|silicon labs|ftdi|ch34", re.IGNORECASE)

_BUSY_ERRNOS = {errno.EBUSY, errno.EAGAIN}
_BUSY_MARKERS = (
    "could not exclusively lock port",
    "cannot lock port",
    "resource temporarily unavailable",
    "device or resource busy",
)

Opener = Callable[[str, int], Any]
SessionRunner = Callable[[Any, threading.Event], None]
PortLister = Callable[[], Iterable[Any]]
TimerFactory = Callable[[float, Callable[[], None]], Any]
Spawner = Callable[[Callable[[], None]], Optional[threading.Thread]]


def open_serial(port: str, baud_rate: int) -> serial.Serial:
    return serial.Serial(
        port=port,
        baudrate=baud_rate,
        timeout=READ_TIMEOUT_SECONDS,
        exclusive=True,
    )


def _call_up_first(port_info: Any) -> int:
    return 0 if "/cu." in port_info.device else 1


def is_recognised_device(port_info: Any) -> bool:
    if any(pattern.search(port_info.device) for pattern in USB_PATH_PATTERNS):
        return True
    manufacturer = getattr(port_info, "manufacturer", None) or ""
    return bool(USB_MANUFACTURER_PATTERN.search(manufacturer))


def discover_port(ports: Iterable[Any]) -> Optional[str]:
    """Return the first recognised USB-serial device, preferring call-up devices.

    macOS exposes every device twice; ``/dev/tty.*`` blocks on open until
    carrier detect, ``/dev/cu.*`` does not.
    """
    for port_info in sorted(ports, key=_call_up_first):
        if is_recognised_device(port_info):
            return port_info.device
    return None


def is_port_busy(exc: BaseException) -> bool:
    if getattr(exc, "errno", None) in _BUSY_ERRNOS:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _BUSY_MARKERS)


def _start_daemon_thread(target: Callable[[], None]) -> threading.Thread:
    thread = threading.Thread(target=target, name="serial-ingest", daemon=True)
    thread.start()
    return thread


@dataclass
class ConnectionState:
    status: ConnectionStatus
    port: Optional[str]
    baud_rate: int
    retry_delay: float
    retry_timer: Optional[Any] = None
    consecutive_failures: int = 0

    @property
    def is_open(self) -> bool:
        return self.status is ConnectionStatus.open


class ConnectionSupervisor:
    """Sole owner and writer of the serial :class:`ConnectionState`."""

    def __init__(
        self,
        session_runner: SessionRunner,
        port_override: Optional[str] = None,
        baud_rate: Optional[int] = None,
        base_delay: float = 3.0,
        max_delay: float = 30.0,
        opener: Opener = open_serial,
        port_lister: PortLister = list_ports.comports,
        timer_factory: TimerFactory = threading.Timer,
        spawn: Spawner = _start_daemon_thread,
    ) -> None:
        self._session_runner = session_runner
        self._port_override = port_override
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._opener = opener
        self._port_lister = port_lister
        self._timer_factory = timer_factory
        self._spawn = spawn
        self._lock = threading.Lock()
        self._running = threading.Event()
        self._stopped = False
        self._connection: Optional[Any] = None
        self._session_thread: Optional[threading.Thread] = None
        self.state = ConnectionState(
            status=ConnectionStatus.closed,
            port=port_override,
            baud_rate=baud_rate or DEFAULT_BAUD_RATE,
            retry_delay=base_delay,
        )

    def start(self) -> None:
        with self._lock:
            self._stopped = False
        self._attempt()

    def shutdown(self, timeout: float = 2.0) -> None:
        """Stop retrying, close the port and wait briefly for the session to end."""
        with self._lock:
            self._stopped = True
            self._running.clear()
            self._cancel_timer_locked()
            connection, self._connection = self._connection, None
            thread = self._session_thread
            self.state.status = ConnectionStatus.closed
        if connection is not None:
            self._close_quietly(connection)
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def snapshot(self) -> ConnectionSnapshot:
        with self._lock:
            return ConnectionSnapshot(
                status=self.state.status,
                port_open=self.state.is_open,
                port=self.state.port,
                baud_rate=self.state.baud_rate,
                retry_delay=self.state.retry_delay,
                consecutive_failures=self.state.consecutive_failures,
            )

    def resolve_port(self) -> str:
        if self._port_override:
            return self._port_override

        ports = list(self._port_lister())
        logger.debug(
            "Available serial ports: %s",
            ", ".join(p.device for p in ports) or "(none)",
        )
        detected = discover_port(ports)
        if detected is not None:
            logger.info("Auto-detected serial port", extra={"port": detected})
            return detected

        logger.warning("No USB serial device found, using fallback", extra={"port": FALLBACK_PORT})
        return FALLBACK_PORT

    def _attempt(self) -> None:
        with self._lock:
            if self._stopped or self.state.status in (ConnectionStatus.opening, ConnectionStatus.open):
                return
            if self.state.retry_timer is not threading.current_thread():
                self._cancel_timer_locked()
            self.state.retry_timer = None
            self.state.status = ConnectionStatus.opening
            baud_rate = self.state.baud_rate

        try:
            port = self.resolve_port()
        except (serial.SerialException, OSError) as exc:
            self._handle_failure(exc)
            return

        with self._lock:
            self.state.port = port

        try:
            connection = self._opener(port, baud_rate)
        except (serial.SerialException, OSError, ValueError) as exc:
            self._handle_failure(exc)
            return

        with self._lock:
            if self._stopped:
                self.state.status = ConnectionStatus.closed
                stale = connection
            else:
                stale = None
                self._connection = connection
                self.state.status = ConnectionStatus.open
                self.state.retry_delay = self._base_delay
                self.state.consecutive_failures = 0
                self._running.set()
        if stale is not None:
            self._close_quietly(stale)
            return

        logger.info("Opened serial port", extra={"port": port, "baud_rate": baud_rate})
        thread = self._spawn(lambda: self._run_session(connection))
        with self._lock:
            self._session_thread = thread

    def _run_session(self, connection: Any) -> None:
        error: Optional[BaseException] = None
        try:
            self._session_runner(connection, self._running)
        except Exception as exc:
            error = exc
        finally:
            self._close_quietly(connection)
        self._handle_failure(error)

    def _handle_failure(self, exc: Optional[BaseException]) -> None:
        with self._lock:
            self._connection = None
            self._running.clear()
            if self._stopped:
                self.state.status = ConnectionStatus.closed
                return
            self.state.status = ConnectionStatus.closed if exc is None else ConnectionStatus.error
            self.state.consecutive_failures += 1
            delay = self.state.retry_delay
            self._cancel_timer_locked()
            timer = self._timer_factory(delay, self._attempt)
            timer.daemon = True
            self.state.retry_timer = timer
            self.state.retry_delay = min(delay * BACKOFF_FACTOR, self._max_delay)
            port = self.state.port
            timer.start()

        context = {"port": port, "retry_delay": delay}
        if exc is None:
            logger.info("Serial port closed, retrying", extra=context)
        elif is_port_busy(exc):
            logger.warning(
                "Serial port busy, another process holds it; retrying",
                extra={**context, "reason": str(exc)},
            )
        else:
            logger.error(
                "Serial port error, retrying",
                extra={**context, "reason": str(exc)},
                exc_info=not isinstance(exc, (serial.SerialException, OSError)),
            )

    def _cancel_timer_locked(self) -> None:
        timer = self.state.retry_timer
        if timer is not None:
            timer.cancel()
        self.state.retry_timer = None

    @staticmethod
    def _close_quietly(connection: Any) -> None:
        try:
            connection.close()
        except (serial.SerialException, OSError) as exc:
            logger.debug("Ignoring error while closing serial port", extra={"reason": str(exc)})
