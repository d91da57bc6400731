from __future__ import annotations

import logging
import socket
import threading
from typing import Sequence

from lagprobe.aggregator import ResponseTable
from lagprobe.codec import receive_message
from lagprobe.common import Endpoint, TransportError

log = logging.getLogger(__name__)


def probe_once(target: Endpoint, timeout: float | None = None) -> tuple[Endpoint, str]:
    """Connect to ``target`` and read one message.

    Returns the peer address the connection actually reached, which is not
    always the configured target (NAT, load balancers), and the message.
    Connect failures are raised as ``OSError``, read failures as ``TransportError``.
    """
    with socket.create_connection((target.host, target.port), timeout=timeout) as s:
        peer = Endpoint.from_sockaddr(s.getpeername())
        return peer, receive_message(s)


class Pinger:
    """Probes every target from its own thread and counts the replies.

    Each thread loops connect, receive, record, sleep until ``stop()`` is
    called. A failure against one target is logged and only costs that
    target one round.
    """

    def __init__(
        self,
        targets: Sequence[Endpoint],
        delay: float,
        table: ResponseTable | None = None,
        timeout: float | None = None,
    ) -> None:
        self.targets = list(targets)
        self.delay = delay
        self.timeout = timeout
        self.table = table if table is not None else ResponseTable()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def _probe_loop(self, target: Endpoint) -> None:
        while not self._stop.is_set():
            try:
                peer, msg = probe_once(target, self.timeout)
            except TransportError as e:
                log.error('Unable to read message from listener at "%s": %s', target, e)
            except OSError as e:
                log.error('Unable to connect to listener at "%s": %s', target, e)
            else:
                count = self.table.record(peer, msg)
                log.debug('Received %r from "%s" (seen %d times)', msg, peer, count)

            self._stop.wait(self.delay)

    def start(self) -> None:
        log.info("Running pinger with %d listener(s)...", len(self.targets))
        for target in self.targets:
            t = threading.Thread(
                target=self._probe_loop,
                args=(target,),
                name=f"pinger-{target}",
                daemon=True,
            )
            t.start()
            self._threads.append(t)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        for t in self._threads:
            t.join(timeout)
        self._log_summary()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        """Start probing and block until ``stop()`` is called from another thread."""
        if not self.targets:
            log.info("No listeners configured, nothing to ping")
            return
        self.start()
        self._stop.wait()

    def _log_summary(self) -> None:
        for endpoint, counts in self.table.snapshot().items():
            for msg, count in sorted(counts.items()):
                log.info('"%s" replied %r %d time(s)', endpoint, msg, count)
