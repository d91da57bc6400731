import socket
import threading

import pytest

from lagprobe.common import Endpoint
from lagprobe.responder import Responder

LOCALHOST = Endpoint("127.0.0.1", 0)


@pytest.fixture
def responder():
    """A running responder on an ephemeral port that replies "pong"."""
    r = Responder(LOCALHOST, "pong")
    t = threading.Thread(target=r.serve_forever, daemon=True)
    t.start()
    yield r
    r.stop()
    t.join(2)


@pytest.fixture
def closed_port():
    """A localhost endpoint nothing is listening on."""
    s = socket.socket()
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return Endpoint("127.0.0.1", port)
