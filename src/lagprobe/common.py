from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass

HANDSHAKE_STR = "TCP-LAG-HANDSHAKE"


class LagProbeError(Exception):
    """Base class for every error raised by lagprobe."""


class StartupError(LagProbeError):
    """Fatal error before a component could start (bind, logging setup)."""


class ConfigError(StartupError):
    """The configuration file is missing, unreadable or has the wrong shape."""


class TransportError(LagProbeError):
    """I/O failure while sending or receiving a message. The cause is chained."""


@dataclass(frozen=True)
class Endpoint:
    host: str
    port: int

    @classmethod
    def parse(cls, text: str) -> Endpoint:
        """Parse ``host:port`` or ``[v6host]:port``.

        The host must be an IP literal, the same rule socket address parsing
        applies in the configuration files.
        """
        if not isinstance(text, str):
            raise ValueError(f"expected a socket address string, found {text!r}")

        if text.startswith("["):
            host, sep, port = text[1:].partition("]:")
            if not sep:
                raise ValueError(f"invalid socket address {text!r}")
            if ipaddress.ip_address(host).version != 6:
                raise ValueError(f"bracketed host must be IPv6 in {text!r}")
        else:
            host, sep, port = text.rpartition(":")
            if not sep or ":" in host:
                raise ValueError(f"invalid socket address {text!r}")
            ipaddress.IPv4Address(host)

        if not port.isdigit() or not 0 <= int(port) <= 65535:
            raise ValueError(f"invalid port in socket address {text!r}")
        return cls(host, int(port))

    @classmethod
    def from_sockaddr(cls, addr: tuple) -> Endpoint:
        # IPv6 sockaddrs carry flowinfo and scope id as well
        return cls(addr[0], addr[1])

    @property
    def family(self) -> int:
        return socket.AF_INET6 if ":" in self.host else socket.AF_INET

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"
