"""Log sink shipping batches to a collector over WebSocket."""

import asyncio
import itertools
from collections.abc import Sequence

import websockets
from opentelemetry._logs import LoggerProvider
from websockets import ClientConnection

from .._otel_mixin import OTelLoggingMixin
from ..config import WSConnectionConfig
from ..entry import LogRow
from ..protocol import ACK, encode_insert, parse_message
from ..utils import get_short_error_info
from .base import InsertResult, LogSink


class WebSocketLogSink(LogSink, OTelLoggingMixin):
    """Sends each batch to an :class:`~rxapplog.collector.RxLogCollectorServer`
    and waits for its acknowledgement.

    The connection is opened lazily on the first insert. A network failure
    becomes a failed :class:`InsertResult` and the connection is opened again
    on the next insert, so reconnection follows the pipeline's retry policy.
    Acknowledgements are matched by request id; stale acks from an insert
    that was abandoned (e.g. by the pipeline's sink timeout) are skipped.

    Parameters
    ----------
    config : WSConnectionConfig
        Collector host, port and path.
    open_timeout : float
        Seconds allowed for the opening handshake.
    name : str | None
        Component name used in diagnostics.
    logger_provider : LoggerProvider | None
        Optional OTel provider for diagnostics.
    """

    def __init__(
        self,
        config: WSConnectionConfig,
        *,
        open_timeout: float = 5.0,
        name: str | None = None,
        logger_provider: LoggerProvider | None = None,
    ):
        self._url = config.url
        self._open_timeout = open_timeout
        self._name = name if name else f"WebSocketLogSink:{self._url}"
        self._logger = (
            logger_provider.get_logger(f"rxapplog.{self._name}")
            if logger_provider
            else None
        )
        self._ws: ClientConnection | None = None
        self._ids = itertools.count(1)
        self._lock: asyncio.Lock | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def insert(self, rows: Sequence[LogRow]) -> InsertResult:
        lock = self._bind_loop()
        async with lock:
            try:
                ws = await self._connect()
                request_id = next(self._ids)
                await ws.send(encode_insert(request_id, rows))
                while True:
                    message = parse_message(await ws.recv())
                    if message["type"] == ACK and message.get("id") == request_id:
                        if message["ok"]:
                            return InsertResult.success()
                        return InsertResult.failure(
                            str(message.get("error") or "rejected by collector")
                        )

            except (
                OSError,
                TimeoutError,
                ValueError,
                websockets.ConnectionClosed,
                websockets.InvalidHandshake,
                websockets.InvalidURI,
            ) as e:
                self._log(
                    f"Insert to {self._url} failed: {get_short_error_info(e)}", "WARN"
                )
                await self._disconnect()
                return InsertResult.failure(get_short_error_info(e))
            except Exception as e:
                # the connection state is unknown, so it is never reused
                self._log(
                    f"Unexpected error on insert to {self._url}: "
                    f"{get_short_error_info(e)}",
                    "ERROR",
                )
                await self._disconnect()
                return InsertResult.failure(get_short_error_info(e))

    async def close(self) -> None:
        self._bind_loop()
        await self._disconnect()

    def _bind_loop(self) -> asyncio.Lock:
        """Return the insert lock of the running loop.

        A connection opened on another (usually finished) loop cannot be
        awaited here; it is dropped and a new one is opened on demand.
        """
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._lock is None:
            if self._ws is not None:
                self._log(
                    f"Dropping connection to {self._url} opened on another event loop",
                    "INFO",
                )
            self._ws = None
            self._lock = asyncio.Lock()
            self._loop = loop
        return self._lock

    async def _connect(self) -> ClientConnection:
        if self._ws is None:
            self._ws = await websockets.connect(
                self._url, open_timeout=self._open_timeout, max_size=None
            )
            self._log(f"Connected to collector {self._url}", "INFO")
        return self._ws

    async def _disconnect(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await asyncio.wait_for(ws.close(), timeout=1.0)
            except Exception:
                pass
