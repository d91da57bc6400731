from __future__ import annotations

import argparse
import logging
import sys
from typing import TextIO

from lagprobe.common import StartupError
from lagprobe.config import ListenConfig, PingerConfig, load_config, load_lag_server_config
from lagprobe.handshake import GateState, HandshakeGate
from lagprobe.logs import init_default_logging, init_logging
from lagprobe.pinger import Pinger
from lagprobe.responder import Responder

log = logging.getLogger(__name__)


def _get_parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument("-c", "--config", dest="config_path", required=True, help="File configuration path")
    parser.add_argument("-l", "--log-config", dest="log_config_path", default=None,
                        help="Log configuration file path (.json for dictConfig, otherwise INI)")
    return parser


def _init_logging(args: argparse.Namespace) -> None:
    if args.log_config_path is None:
        init_default_logging()
    else:
        init_logging(args.log_config_path)


def run_pinger(config: PingerConfig) -> None:
    pinger = Pinger(config.listen_addrs, config.ping_delay, timeout=config.timeout)
    try:
        pinger.run()
    except KeyboardInterrupt:
        log.info("Interrupted, stopping pinger")
    finally:
        pinger.stop(timeout=1.0)


def run_listen(config: ListenConfig) -> None:
    with Responder(config.listen_addr, config.msg) as responder:
        try:
            responder.serve_forever()
        except KeyboardInterrupt:
            log.info("Interrupted, stopping listener")


def run_lag_server(config_path: str) -> None:
    config = load_lag_server_config(config_path)
    log.info("Completed configuration initialization!")

    with HandshakeGate(config.listener_socket) as gate:
        log.info("Directory to read from: %s", config.read_dir)
        try:
            state = gate.run()
        except KeyboardInterrupt:
            log.info("Interrupted, stopping TCP-lag server")
            return
    if state is GateState.SATISFIED:
        log.info("Handshake completed after %d rejected attempt(s)", gate.rejected)


def print_error_chain(e: BaseException, stream: TextIO = sys.stderr) -> None:
    print(f"Error: {e}", file=stream)
    cause = e.__cause__
    while cause is not None:
        print(f"- Caused by: {cause}", file=stream)
        cause = cause.__cause__


def _finish(run, *args) -> int:
    try:
        run(*args)
    except StartupError as e:
        print_error_chain(e)
        return 1
    print("Program completed!")
    return 0


def _run_operation(args: argparse.Namespace) -> None:
    _init_logging(args)
    config = load_config(args.config_path)
    log.info("Completed configuration initialization!")

    if isinstance(config, PingerConfig):
        run_pinger(config)
    else:
        run_listen(config)


def main(argv: list[str] | None = None) -> int:
    parser = _get_parser(
        "lagprobe",
        "Probe TCP listeners and count their replies, or act as the listener that replies.",
    )
    args = parser.parse_args(argv)
    return _finish(_run_operation, args)


def _run_server(args: argparse.Namespace) -> None:
    _init_logging(args)
    run_lag_server(args.config_path)


def server_main(argv: list[str] | None = None) -> int:
    parser = _get_parser(
        "lagprobe-server",
        "TCP-lag server: wait for a client to present the handshake preamble.",
    )
    args = parser.parse_args(argv)
    return _finish(_run_server, args)


if __name__ == "__main__":
    raise SystemExit(main())
