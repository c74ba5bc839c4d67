"""Line-delimited JSON socket server.

Each accepted connection is read on its own thread. Every complete line is
first shown to the registered receivers, then handed to a worker pool for
decoding, dispatch and response. Requests on one connection are therefore
answered in no particular order; clients pair responses with requests by
their ``state`` token.
"""

import atexit
import logging
import socket
import socketserver
import threading
import traceback
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from .handlers import Failure, Handler
from .payloads import (
    BasicPayload,
    ErrorPayload,
    PayloadError,
    PayloadType,
    decode_payload,
    read_envelope,
)

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4567

Receiver = Callable[["Connection", str], None]


class Connection:
    """An accepted client socket. Writes are serialized per connection."""

    def __init__(self, sock: socket.socket, address: Tuple) -> None:
        self.socket = sock
        self.address = address
        self._write_lock = threading.Lock()

    def write(self, data: str) -> None:
        with self._write_lock:
            self.socket.sendall(data.encode('utf-8'))

    def __repr__(self) -> str:
        return f"Connection({self.address!r})"


class _ThreadingServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True
    # Closing the listener must not wait for open connections
    block_on_close = False

    def __init__(self, address: Tuple[str, int], payload_server: "PayloadServer") -> None:
        self.payload_server = payload_server
        super().__init__(address, _ConnectionHandler)


class _ConnectionHandler(socketserver.StreamRequestHandler):
    """Read loop for one connection."""

    def handle(self) -> None:
        self.server.payload_server.read_lines(
            Connection(self.request, self.client_address), self.rfile)


class PayloadServer:
    """Accepts socket clients and answers their payloads."""

    def __init__(self, handlers: Dict[PayloadType, Handler],
                 host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 max_workers: int = 8) -> None:
        """Initialize the server.

        Args:
            handlers: Handler for each receivable payload type
            host: Interface to listen on
            port: TCP port to listen on; 0 picks a free port
            max_workers: Size of the pool that handles requests
        """
        self.handlers = handlers
        self.host = host
        self.port = port
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="payload-worker")
        self._receivers: List[Receiver] = []
        self._receivers_lock = threading.Lock()
        self._server: Optional[_ThreadingServer] = None
        self._serving = threading.Event()
        self._lifecycle_lock = threading.Lock()
        self._closed = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def bind(self) -> Tuple[str, int]:
        """Bind the listening socket.

        Returns:
            The bound (host, port)

        Raises:
            OSError: If the address can't be bound
        """
        self._server = _ThreadingServer((self.host, self.port), self)
        self.host, self.port = self._server.server_address[:2]
        atexit.register(self.shutdown)
        return self.host, self.port

    def start(self) -> None:
        """Bind and accept connections until shutdown() is called."""
        with self._lifecycle_lock:
            if self._closed:
                return
            if self._server is None:
                self.bind()
            server = self._server
            self._serving.set()
        logger.info("Starting payload server on %s:%d...", self.host, self.port)
        try:
            server.serve_forever()
        finally:
            self._serving.clear()

    def shutdown(self) -> None:
        """Stop accepting connections and close the listening socket.

        Connections that are already open keep their read loops, and
        requests already submitted run to completion.
        """
        with self._lifecycle_lock:
            server, self._server = self._server, None
            self._closed = True
            serving = self._serving.is_set()
        if server is None:
            return
        if serving:
            server.shutdown()
        server.server_close()
        logger.info("Payload server on port %d closed", self.port)

    # =========================================================================
    # Receivers
    # =========================================================================

    def add_receiver(self, receiver: Union[Receiver, object]) -> None:
        """Register a raw-line receiver.

        Receivers are called with ``(connection, line)`` on the connection's
        read thread, in registration order, before the line is dispatched.
        Slow receivers delay the following reads on that connection.

        Args:
            receiver: A callable, or an object with a ``receive`` method
        """
        callback = getattr(receiver, 'receive', receiver)
        if not callable(callback):
            raise TypeError(f"Receiver must be callable or have receive(): {receiver!r}")
        with self._receivers_lock:
            self._receivers.append(callback)

    def _notify_receivers(self, connection: Connection, line: str) -> None:
        with self._receivers_lock:
            receivers = list(self._receivers)
        for receiver in receivers:
            try:
                receiver(connection, line)
            except Exception:
                logger.exception("Receiver %r failed on line from %s", receiver, connection)

    # =========================================================================
    # Reading
    # =========================================================================

    def read_lines(self, connection: Connection, stream) -> None:
        """Read newline-terminated lines from ``stream`` until it closes.

        Responses still being prepared when the peer stops sending are
        awaited before returning, since returning closes the socket.
        """
        logger.info("Got client %s", connection.address)
        pending: Set[Future] = set()
        try:
            for raw in stream:
                if not raw.endswith(b"\n"):
                    logger.debug("Dropping unterminated line from %s", connection)
                    break
                line = raw.decode('utf-8', errors='replace').rstrip("\r\n")
                if not line.strip():
                    continue
                self._notify_receivers(connection, line)
                pending = {f for f in pending if not f.done()}
                pending.add(self._executor.submit(self._respond, connection, line))
        except OSError:
            logger.exception("An error occurred while reading from %s", connection)
        wait(pending)
        logger.info("Client %s disconnected", connection.address)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _respond(self, connection: Connection, line: str) -> None:
        response = self.dispatch(line)
        if response is None:
            return
        try:
            self.send_data(connection, response)
        except ConnectionError:
            logger.warning("Could not send %s response to %s", response.type.value, connection)

    def dispatch(self, line: str) -> Optional[BasicPayload]:
        """Decode one line and produce the response payload.

        Returns:
            The payload to send back, or None when the message is dropped
        """
        state = None
        try:
            envelope = read_envelope(line)
            state = envelope.state

            if envelope.code < 1:
                logger.error("Unsuccessful request with code %d: %s\nJson: %s",
                             envelope.code, envelope.message, line)
                return None

            payload_type = PayloadType.from_wire(envelope.type_name, state)
            if not payload_type.receivable:
                message = f"Received unreceivable payload type: {payload_type.value}"
                logger.error(message)
                return ErrorPayload(message=message, state=state,
                                    stack_trace="".join(traceback.format_stack()))

            handler = self.handlers.get(payload_type)
            if handler is None:
                message = f"Unsupported payload type: {payload_type.value}"
                logger.error(message)
                return ErrorPayload(message=message, state=state,
                                    stack_trace="".join(traceback.format_stack()))

            result = handler(decode_payload(envelope))
            if isinstance(result, Failure):
                return ErrorPayload(message=result.message, state=state,
                                    stack_trace=result.detail)
            return result.payload

        except PayloadError as e:
            logger.error("Invalid payload from client: %s\nJson: %s", e, line)
            return ErrorPayload(message=str(e),
                                state=e.state if e.state is not None else state,
                                stack_trace=traceback.format_exc())
        # Anything else still has to reach the client as an ERROR payload
        except Exception as e:
            logger.exception("Exception while handling client data")
            return ErrorPayload(message=str(e) or type(e).__name__, state=state,
                                stack_trace=traceback.format_exc())

    # =========================================================================
    # Writing
    # =========================================================================

    @staticmethod
    def send_data(connection: Connection, data: Union[BasicPayload, str]) -> None:
        """Write one line to the connection.

        Safe to call from any thread.

        Raises:
            ConnectionError: If the write fails
        """
        if not isinstance(data, str):
            data = data.to_json()
        if not data.endswith("\n"):
            data += "\n"
        try:
            connection.write(data)
        except OSError as e:
            raise ConnectionError(f"Failed to write to {connection.address}: {e}") from e
