"""WebSocket log collector: the receiving end of
:class:`~rxapplog.sinks.WebSocketLogSink`.

The collector runs a websockets server on a background thread, stores every
inserted batch in a :class:`~rxapplog.sinks.LogSink` and acknowledges it, and
emits the stored rows to its ReactiveX subscribers.
"""

import asyncio
import socket
import threading
from typing import Any

import websockets
from opentelemetry._logs import LoggerProvider
from reactivex import Subject
from websockets import Server, ServerConnection

from ._otel_mixin import OTelLoggingMixin
from .config import WSConnectionConfig
from .mechanism import AppLogException
from .protocol import INSERT, encode_ack, parse_message
from .sinks.base import LogSink
from .sinks.memory import MemoryLogSink
from .utils import get_short_error_info


class RxLogCollectorServer(Subject, OTelLoggingMixin):
    """Accepts log batches over WebSocket and writes them to ``store``.

    Each ``insert`` frame is stored with one ``store.insert`` call and answered
    with an ``ack`` carrying the store's result. Malformed frames are answered
    with a negative ack and the connection stays open.

    Rows are emitted to subscribers (as dictionaries) after they were stored.
    A failed bind is reported through ``on_error`` with an
    :class:`AppLogException`. The server closes upon ``on_completed``.

    Parameters
    ----------
    config : WSConnectionConfig
        Listening host and port; port 0 picks a free port (see :attr:`port`).
    store : LogSink | None
        Where batches are stored; defaults to a :class:`MemoryLogSink`.
    name : str | None
        Component name used in diagnostics.
    logger_provider : LoggerProvider | None
        Optional OTel provider for diagnostics.
    """

    def __init__(
        self,
        config: WSConnectionConfig,
        store: LogSink | None = None,
        ping_interval: float | None = 30.0,
        ping_timeout: float | None = 30.0,
        name: str | None = None,
        logger_provider: LoggerProvider | None = None,
    ):
        super().__init__()
        self.host = config.host
        self._requested_port = config.port
        self.store: LogSink = store if store is not None else MemoryLogSink()
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout

        self._name = name if name else f"RxLogCollectorServer:{self.host}:{config.port}"
        self._logger = (
            logger_provider.get_logger(f"rxapplog.{self._name}")
            if logger_provider
            else None
        )

        # Private asyncio loop in a background thread
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._loop_ready = threading.Event()
        self._started = threading.Event()

        self.serve: Server | None = None

        self._start_server_thread()

    @property
    def port(self) -> int:
        """The bound port (differs from the configured one when it was 0)."""
        if self.serve is not None:
            for sock in self.serve.sockets:
                return sock.getsockname()[1]
        return self._requested_port

    @property
    def url(self) -> str:
        return WSConnectionConfig(self.host, self.port).url

    def wait_until_serving(self, timeout: float | None = 5.0) -> bool:
        """Block until the server listens; False if it failed or timed out."""
        self._started.wait(timeout)
        return self.serve is not None

    def on_completed(self) -> None:
        """Close all connections and the server, then complete."""
        self._shutdown_server()

    async def handle_client(self, websocket: ServerConnection) -> None:
        """Serve a connected sink until the link closes."""
        remote_desc = f"[{websocket.remote_address}]"
        self._log(f"Client established from {remote_desc}", "INFO")

        try:
            while True:
                try:
                    data = await websocket.recv()
                except websockets.exceptions.ConnectionClosedOK:
                    self._log(f"Client {remote_desc} disconnected gracefully.", "INFO")
                    return
                except websockets.exceptions.ConnectionClosedError as e:
                    self._log(
                        f"Client {remote_desc} disconnected"
                        f" with error: {get_short_error_info(e)}.",
                        "WARN",
                    )
                    return
                except OSError as e:
                    self._log(
                        f"Network error (OSError): {get_short_error_info(e)}", "WARN"
                    )
                    return

                await websocket.send(await self._handle_message(data, remote_desc))

        except asyncio.CancelledError:
            self._log(f"Client {remote_desc} connection cancelled.", "INFO")
            raise

        except websockets.exceptions.ConnectionClosed:
            self._log(f"Client {remote_desc} closed before the ack was sent.", "WARN")

        except Exception as e:
            exception = AppLogException(
                e, source=self._name, note=f"Error while handling client {remote_desc}"
            )
            super().on_error(exception)

        finally:
            await websocket.close()
            self._log(f"Client {remote_desc} resources released.", "INFO")

    async def _handle_message(self, data: str | bytes, remote_desc: str) -> str:
        try:
            message = parse_message(data)
        except ValueError as e:
            self._log(f"Malformed frame from {remote_desc}: {e}", "WARN")
            return encode_ack(None, False, str(e))

        request_id = message.get("id")
        if message["type"] != INSERT:
            return encode_ack(request_id, False, f"Unexpected {message['type']!r} frame")

        rows: list[dict[str, Any]] = message["rows"]
        try:
            result = await self.store.insert(rows)  # type: ignore[arg-type]
        except Exception as e:
            self._log(f"Store failed: {get_short_error_info(e)}", "ERROR")
            return encode_ack(request_id, False, get_short_error_info(e))

        if result.ok:
            for row in rows:
                super().on_next(row)
        else:
            self._log(f"Store rejected {len(rows)} rows: {result.error}", "WARN")
        return encode_ack(request_id, result.ok, result.error)

    def _make_dual_stack_socket(self) -> socket.socket | None:
        """Create a dual-stack IPv6 socket if the host is an IPv6 wildcard."""
        if self.host not in ("::", "::0"):
            return None

        sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
        sock.bind((self.host, self._requested_port))
        sock.listen(100)
        sock.setblocking(False)
        return sock

    async def start_server(self) -> None:
        """Create the asyncio WebSocket server on the private loop."""
        try:
            serve_kwargs: dict[str, Any] = dict(
                ping_interval=self.ping_interval,
                ping_timeout=self.ping_timeout,
                max_size=None,
            )
            dual_sock = self._make_dual_stack_socket()
            if dual_sock is not None:
                self.serve = await websockets.serve(
                    self.handle_client, sock=dual_sock, **serve_kwargs
                )
            else:
                self.serve = await websockets.serve(
                    self.handle_client, self.host, self._requested_port, **serve_kwargs
                )
            self._log(f"Log collector listening on {self.host}:{self.port}", "INFO")
        except OSError as e:
            self._log(
                f"FATAL: Failed to bind {self.host}:{self._requested_port} -- {e}. "
                f"Another process may already be listening on this port.",
                "ERROR",
            )
            exception = AppLogException(
                e, source=self._name, note=f"Port {self._requested_port} bind failed"
            )
            super().on_error(exception)
        except asyncio.CancelledError:
            self._log("Collector server task cancelled.", "INFO")
            raise
        finally:
            self._started.set()

    # ---------------- threaded event loop plumbing ---------------- #
    def _run_server_loop(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        self._loop_ready.set()
        asyncio.set_event_loop(loop)
        loop.create_task(self.start_server())
        try:
            loop.run_forever()
        finally:
            try:
                if self.serve is not None:
                    self.serve.close(True)
            except Exception:
                pass
            loop.close()

    def _start_server_thread(self) -> None:
        self._thread = threading.Thread(target=self._run_server_loop, daemon=True)
        self._thread.start()
        self._loop_ready.wait()

    def _shutdown_server(self) -> None:
        self._log("Closing...", "INFO")
        try:
            loop = self._loop
            if loop is not None and not loop.is_closed():

                async def _async_close() -> None:
                    try:
                        if self.serve is not None:
                            self.serve.close(True)
                            try:
                                await asyncio.wait_for(self.serve.wait_closed(), timeout=2.0)
                            except TimeoutError:
                                pass
                        await self.store.close()
                    finally:
                        asyncio.get_running_loop().stop()

                loop.call_soon_threadsafe(lambda: loop.create_task(_async_close()))

            if self._thread is not None:
                self._thread.join(timeout=3.0)

            self.serve = None
            self._log("Closed.", "INFO")
            super().on_completed()
        except Exception as e:
            exception = AppLogException(
                e, source=self._name, note="RxLogCollectorServer.on_completed"
            )
            super().on_error(exception)
