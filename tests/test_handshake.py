import socket
import threading

import pytest

from lagprobe.codec import send_message
from lagprobe.common import HANDSHAKE_STR, Endpoint, StartupError
from lagprobe.handshake import GateState, HandshakeGate, check_handshake, send_handshake


def send_raw(endpoint, text):
    with socket.create_connection((endpoint.host, endpoint.port), timeout=2) as s:
        send_message(s, text)


@pytest.mark.parametrize("text, ok", [
    ("HELLO", True),
    ("HELLO\n", True),
    ("HELLO \r\n\t", True),
    ("hello", False),
    ("HELLO!", False),
    (" HELLO", False),
    ("HELLO\nHELLO", False),
    ("", False),
])
def test_check_handshake(text, ok):
    assert check_handshake(text, "HELLO") is ok


def start_gate(handshake="HELLO"):
    gate = HandshakeGate(Endpoint("127.0.0.1", 0), handshake, timeout=2)
    result = {}
    t = threading.Thread(target=lambda: result.setdefault("state", gate.run()), daemon=True)
    t.start()
    return gate, t, result


def test_wrong_then_right_handshake():
    gate, t, result = start_gate()
    try:
        send_raw(gate.address, "WRONG\n")
        send_raw(gate.address, "HELLO\n")
        t.join(5)
    finally:
        gate.stop()

    assert not t.is_alive()
    assert result["state"] is GateState.SATISFIED
    assert gate.state is GateState.SATISFIED
    assert gate.rejected == 1


def test_gate_stays_open_after_many_rejections():
    gate, t, result = start_gate()
    try:
        for text in ["hello\n", "HELLO WORLD", ""]:
            send_raw(gate.address, text)
        assert gate.state is GateState.RUNNING
        send_raw(gate.address, "HELLO")
        t.join(5)
    finally:
        gate.stop()
    assert result["state"] is GateState.SATISFIED
    assert gate.rejected == 3


def test_send_handshake_uses_default_literal():
    gate = HandshakeGate(Endpoint("127.0.0.1", 0), timeout=2)
    assert gate.handshake == HANDSHAKE_STR
    t = threading.Thread(target=gate.run, daemon=True)
    t.start()
    try:
        send_handshake(gate.address, timeout=2)
        t.join(5)
    finally:
        gate.stop()
    assert gate.state is GateState.SATISFIED


def test_stop_while_waiting_leaves_gate_running():
    gate, t, result = start_gate()
    gate.stop()
    t.join(5)
    assert not t.is_alive()
    assert result["state"] is GateState.RUNNING


def test_bind_to_occupied_endpoint_is_fatal():
    with HandshakeGate(Endpoint("127.0.0.1", 0)) as gate:
        with pytest.raises(StartupError):
            HandshakeGate(gate.address)


def test_read_failure_is_logged_and_gate_keeps_accepting(caplog):
    gate, t, result = start_gate()
    with caplog.at_level("INFO", logger="lagprobe.handshake"):
        try:
            with socket.create_connection((gate.address.host, gate.address.port), timeout=2) as s:
                s.sendall(b"\xffHELLO")
            send_raw(gate.address, "HELLO\n")
            t.join(5)
        finally:
            gate.stop()

    assert result["state"] is GateState.SATISFIED
    assert gate.rejected == 1
    errors = [r for r in caplog.records if r.levelname == "ERROR"]
    assert len(errors) == 1
    assert "TCP stream read error" in errors[0].message


def test_stalled_client_times_out_then_gate_is_satisfied():
    gate = HandshakeGate(Endpoint("127.0.0.1", 0), "HELLO", timeout=0.2)
    t = threading.Thread(target=gate.run, daemon=True)
    t.start()
    stalled = socket.create_connection((gate.address.host, gate.address.port), timeout=2)
    try:
        stalled.sendall(b"HEL")
        send_raw(gate.address, "HELLO")
        t.join(5)
    finally:
        stalled.close()
        gate.stop()

    assert gate.state is GateState.SATISFIED
    assert gate.rejected == 1
