"""One message per connection: the sender writes the text and closes."""
from __future__ import annotations

import socket

from lagprobe.common import TransportError

RECV_CHUNK = 4096


def send_message(conn: socket.socket, text: str) -> None:
    """Write ``text`` fully. Closing (or half-closing) ``conn`` is up to the caller."""
    try:
        conn.sendall(text.encode("utf-8"))
    except OSError as e:
        raise TransportError(f"unable to send message: {e}") from e


def receive_message(conn: socket.socket) -> str:
    """Read until the peer closes its write side and return everything read."""
    chunks: list[bytes] = []
    try:
        while True:
            data = conn.recv(RECV_CHUNK)
            if not data:
                break
            chunks.append(data)
    except OSError as e:
        raise TransportError(f"unable to read message: {e}") from e

    try:
        return b"".join(chunks).decode("utf-8")
    except UnicodeDecodeError as e:
        raise TransportError("message is not valid UTF-8") from e


def close_write(conn: socket.socket) -> None:
    """Half-close ``conn`` so the peer sees end-of-message but can still reply."""
    try:
        conn.shutdown(socket.SHUT_WR)
    except OSError as e:
        raise TransportError(f"unable to close write side: {e}") from e
