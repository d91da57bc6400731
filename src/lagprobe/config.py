"""Configuration files.

The operation file is JSON with an externally tagged operation::

    {"op": {"Pinger": {"listen_addrs": ["127.0.0.1:8080"],
                       "ping_delay": {"secs": 1, "nanos": 0}}}}

    {"op": {"Listen": {"listen_addr": "0.0.0.0:8080", "msg": "pong"}}}

The lag server reads TOML::

    listener_socket = "0.0.0.0:9000"
    stream_count = 4
    stream_start_port = 9100
    read_dir = "/srv/lag"
"""
from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from lagprobe.common import ConfigError, Endpoint


@dataclass(frozen=True)
class PingerConfig:
    listen_addrs: tuple[Endpoint, ...]
    ping_delay: float
    timeout: float | None = None


@dataclass(frozen=True)
class ListenConfig:
    listen_addr: Endpoint
    msg: str


@dataclass(frozen=True)
class LagServerConfig:
    listener_socket: Endpoint
    stream_count: int
    stream_start_port: int
    read_dir: Path


Operation = Union[PingerConfig, ListenConfig]


def parse_duration(value: Any, field: str) -> float:
    """Seconds from either a number or a ``{"secs": ..., "nanos": ...}`` table."""
    if isinstance(value, bool):
        raise ConfigError(f"{field}: expected a duration, found {value!r}")
    if isinstance(value, (int, float)):
        secs = float(value)
    elif isinstance(value, dict):
        unknown = set(value) - {"secs", "nanos"}
        if unknown or "secs" not in value:
            raise ConfigError(f'{field}: a duration table needs "secs" and optional "nanos", found {value!r}')
        secs_part, nanos = value["secs"], value.get("nanos", 0)
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in (secs_part, nanos)):
            raise ConfigError(f"{field}: secs and nanos must be integers, found {value!r}")
        if not 0 <= nanos < 1_000_000_000:
            raise ConfigError(f"{field}: nanos out of range: {nanos}")
        secs = secs_part + nanos / 1e9
    else:
        raise ConfigError(f"{field}: expected a duration, found {value!r}")

    if secs < 0:
        raise ConfigError(f"{field}: duration cannot be negative: {value!r}")
    return secs


def parse_endpoint(value: Any, field: str) -> Endpoint:
    try:
        return Endpoint.parse(value)
    except ValueError as e:
        raise ConfigError(f"{field}: {e}") from e


def _require(table: dict, key: str, where: str) -> Any:
    if not isinstance(table, dict):
        raise ConfigError(f"{where}: expected a table, found {table!r}")
    try:
        return table[key]
    except KeyError:
        raise ConfigError(f'{where}: missing field "{key}"') from None


def _parse_pinger(body: dict) -> PingerConfig:
    addrs = _require(body, "listen_addrs", "Pinger")
    if not isinstance(addrs, list):
        raise ConfigError(f"Pinger.listen_addrs: expected a list, found {addrs!r}")

    timeout = body.get("timeout")
    return PingerConfig(
        listen_addrs=tuple(parse_endpoint(a, f"Pinger.listen_addrs[{i}]") for i, a in enumerate(addrs)),
        ping_delay=parse_duration(_require(body, "ping_delay", "Pinger"), "Pinger.ping_delay"),
        timeout=None if timeout is None else parse_duration(timeout, "Pinger.timeout"),
    )


def _parse_listen(body: dict) -> ListenConfig:
    msg = _require(body, "msg", "Listen")
    if not isinstance(msg, str):
        raise ConfigError(f"Listen.msg: expected a string, found {msg!r}")
    return ListenConfig(
        listen_addr=parse_endpoint(_require(body, "listen_addr", "Listen"), "Listen.listen_addr"),
        msg=msg,
    )


_OPERATIONS = {
    "Pinger": _parse_pinger,
    "Listen": _parse_listen,
}


def parse_config(data: Any) -> Operation:
    op = _require(data, "op", "config")
    if not isinstance(op, dict) or len(op) != 1:
        raise ConfigError(f'op: expected exactly one of {sorted(_OPERATIONS)}, found {op!r}')

    (name, body), = op.items()
    try:
        parse = _OPERATIONS[name]
    except KeyError:
        raise ConfigError(f'op: unknown operation "{name}", expected one of {sorted(_OPERATIONS)}') from None
    return parse(body)


def _read_text(path: str | Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f'Unable to open config file path at "{path}"') from e


def load_config(path: str | Path) -> Operation:
    text = _read_text(path)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Unable to parse config as required JSON format: {text}") from e
    return parse_config(data)


def parse_lag_server_config(data: dict) -> LagServerConfig:
    sock = _require(data, "listener_socket", "config")
    if not isinstance(sock, str) or sock.startswith("["):
        raise ConfigError(f"listener_socket: expected an IPv4 socket address, found {sock!r}")

    count = _require(data, "stream_count", "config")
    if not isinstance(count, int) or isinstance(count, bool) or count < 0:
        raise ConfigError(f"stream_count: expected a non-negative integer, found {count!r}")

    port = _require(data, "stream_start_port", "config")
    if not isinstance(port, int) or isinstance(port, bool) or not 0 <= port <= 65535:
        raise ConfigError(f"stream_start_port: expected a port number, found {port!r}")

    read_dir = _require(data, "read_dir", "config")
    if not isinstance(read_dir, str):
        raise ConfigError(f"read_dir: expected a path, found {read_dir!r}")

    return LagServerConfig(
        listener_socket=parse_endpoint(sock, "listener_socket"),
        stream_count=count,
        stream_start_port=port,
        read_dir=Path(read_dir),
    )


def load_lag_server_config(path: str | Path) -> LagServerConfig:
    text = _read_text(path)
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Unable to parse config as required toml format: {text}") from e
    return parse_lag_server_config(data)
