from __future__ import annotations

import logging
import socket
import threading

from lagprobe.codec import send_message
from lagprobe.common import Endpoint, StartupError, TransportError

log = logging.getLogger(__name__)

ACCEPT_ERROR_DELAY = 0.1


def bind_listener(addr: Endpoint, backlog: int = 128) -> socket.socket:
    """Bind and listen on ``addr``. Any failure is a fatal ``StartupError``."""
    server = None
    try:
        server = socket.socket(addr.family, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind((addr.host, addr.port))
        server.listen(backlog)
    except OSError as e:
        if server is not None:
            server.close()
        raise StartupError(f'Unable to bind TCP listener at "{addr}"') from e
    return server


class Listener:
    """Accept loop shared by the responder and the handshake gate.

    ``stop()`` closes the listening socket, which wakes up a blocked
    ``accept()``. Accept errors raised after that end the loop instead of
    being logged.
    """

    def __init__(self, addr: Endpoint, backlog: int = 128) -> None:
        self._server = bind_listener(addr, backlog)
        self.address = Endpoint.from_sockaddr(self._server.getsockname())
        self._stop = threading.Event()
        self.accept_error_delay = ACCEPT_ERROR_DELAY

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()
        try:
            # wake up accept() on platforms where close() alone does not
            self._server.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._server.close()

    def accept(self) -> tuple[socket.socket, Endpoint] | None:
        """Wait for the next connection. ``None`` means the listener was stopped."""
        while not self.stopped:
            try:
                conn, addr = self._server.accept()
            except OSError as e:
                if self.stopped:
                    return None
                log.error("Unable to get valid incoming stream from listener: %s", e)
                # EMFILE and friends persist until a descriptor frees up
                self._stop.wait(self.accept_error_delay)
                continue
            return conn, Endpoint.from_sockaddr(addr)
        return None

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.stop()


class Responder(Listener):
    """Replies to every connection with the same message, then closes it.

    Each reply runs on its own thread so a slow peer never holds up the
    connections queued behind it.
    """

    def __init__(self, addr: Endpoint, msg: str, backlog: int = 128) -> None:
        super().__init__(addr, backlog)
        self.msg = msg

    def handle_client(self, conn: socket.socket, peer: Endpoint) -> None:
        with conn:
            try:
                send_message(conn, self.msg)
            except TransportError as e:
                log.error('Error writing listener message back to pinger at "%s": %s', peer, e)
                return
        log.info("Successfully sent message: %s", self.msg)

    def serve_forever(self) -> None:
        log.info('Running listener at "%s"', self.address)
        while True:
            accepted = self.accept()
            if accepted is None:
                return
            conn, peer = accepted
            try:
                threading.Thread(target=self.handle_client, args=(conn, peer), daemon=True).start()
            except RuntimeError as e:
                log.error('Unable to start reply thread for "%s": %s', peer, e)
                conn.close()
