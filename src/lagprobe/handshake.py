from __future__ import annotations

import enum
import logging
import socket

from lagprobe.codec import close_write, receive_message, send_message
from lagprobe.common import HANDSHAKE_STR, Endpoint, TransportError
from lagprobe.responder import Listener

log = logging.getLogger(__name__)


class GateState(enum.Enum):
    RUNNING = "running"
    SATISFIED = "satisfied"


def check_handshake(received: str, expected: str = HANDSHAKE_STR) -> bool:
    """Exact, case-sensitive match once trailing whitespace is stripped."""
    return received.rstrip() == expected


class HandshakeGate(Listener):
    """Waits for the first connection that presents the handshake preamble.

    Connections that send anything else are logged and dropped, and the gate
    keeps accepting. Once a connection matches, the state moves to
    ``SATISFIED`` and ``run()`` returns.
    """

    def __init__(
        self,
        addr: Endpoint,
        handshake: str = HANDSHAKE_STR,
        timeout: float | None = None,
        backlog: int = 128,
    ) -> None:
        super().__init__(addr, backlog)
        self.handshake = handshake
        self.timeout = timeout
        self.state = GateState.RUNNING
        self.rejected = 0

    def validate(self, conn: socket.socket, peer: Endpoint) -> bool:
        with conn:
            conn.settimeout(self.timeout)
            log.info("Stream connected, waiting client to send the handshake preamble...")
            try:
                buf = receive_message(conn)
            except TransportError as e:
                log.error('TCP stream read error from "%s": %s', peer, e)
                return False

        if check_handshake(buf, self.handshake):
            log.info('Found the handshaking preamble from "%s"!', peer)
            return True

        log.warning("Invalid handshaking preamble, found: %s", buf.rstrip())
        return False

    def run(self) -> GateState:
        """Accept connections until one passes the handshake or the gate is stopped."""
        log.info('TCP-lag server started listening at "%s"...', self.address)
        while self.state is GateState.RUNNING:
            accepted = self.accept()
            if accepted is None:
                break
            if self.validate(*accepted):
                self.state = GateState.SATISFIED
            else:
                self.rejected += 1
        return self.state


def send_handshake(target: Endpoint, handshake: str = HANDSHAKE_STR, timeout: float | None = None) -> None:
    """Client side of the gate: send the preamble and half-close."""
    with socket.create_connection((target.host, target.port), timeout=timeout) as s:
        send_message(s, handshake + "\n")
        close_write(s)
