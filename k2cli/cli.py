"""
k2 command line.

Examples:
    k2 list -v
    k2 read --topic orders --start 2024-05-01T10:00:00+02:00 --end 2024-05-01T11:00:00+02:00
    k2 read --topic orders --start-offset "1 hour ago"
    k2 read --topic orders --offset -20 --format-hint json
    k2 tail --topic orders --topic payments
    echo '{"a": 1}' | k2 write --topic orders --key k1

Global flags go before the subcommand:
    -b/--brokers  -g/--group  --client-id  --timeout (ms)  -v (repeatable)  -X key=value

Exit codes: 0 on success (including "reached the window end" and "reached the
watermark"), 1 on any fatal error.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Any, List, Optional, Sequence

from confluent_kafka import libversion

from k2cli import __version__
from k2cli.broker import BrokerClient, make_consumer
from k2cli.config import DEFAULT_TIMEOUT_MS, ClientSettings, default_client_id, parse_properties
from k2cli.errors import K2Error, MissingTopic
from k2cli.listing import list_cluster
from k2cli.produce import make_producer, parse_headers, publish
from k2cli.replay import replay
from k2cli.sink import FormatHint, MessageSink, Verbosity
from k2cli.tail import tail
from k2cli.window import resolve

logger = logging.getLogger("k2cli")

_LOG_LEVELS = {
    Verbosity.SILENT: logging.WARNING,
    Verbosity.SOFT: logging.INFO,
    Verbosity.LOUD: logging.DEBUG,
    Verbosity.TOO_MUCH: logging.DEBUG,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="k2", description="Inspect, replay, tail and write Kafka topics.")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("-g", "--group", type=str, default=None,
                    help="Group id for the client (default: $K2_GROUP or 'example').")
    ap.add_argument("--client-id", type=str, default=None,
                    help="Client id to use (default: current user name, or 'unknown').")
    ap.add_argument("-b", "--brokers", type=str, default=None,
                    help="Broker list in Kafka format (default: $K2_BROKERS or localhost:9092).")
    ap.add_argument("-v", "--verbose", action="count", default=0,
                    help="Increase verbosity level (repeatable).")
    ap.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT_MS,
                    help=f"Kafka timeout in milliseconds (default: {DEFAULT_TIMEOUT_MS}).")
    ap.add_argument("-X", dest="properties", action="append", default=[], metavar="KEY=VALUE",
                    help="Extra librdkafka property; may be repeated.")

    sub = ap.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    sub.add_parser("list", help="List topics and partitions.")

    read = sub.add_parser("read", help="Replay a bounded window of one topic.")
    read.add_argument("--topic", type=str, help="Topic to read.")
    read.add_argument("--start", metavar="DATETIME",
                      help="Start datetime (YYYY-MM-DDTHH:MM:SS+ZZ:ZZ).")
    read.add_argument("--end", metavar="DATETIME",
                      help="End datetime (YYYY-MM-DDTHH:MM:SS+ZZ:ZZ).")
    read.add_argument("--offset", type=int, metavar="NUMBER",
                      help="Read the last N records of each partition (non-zero number).")
    read.add_argument("--start-offset", metavar="OFFSET",
                      help="Start offset (e.g. '1 hour ago', '2 days later').")
    read.add_argument("--end-offset", metavar="OFFSET",
                      help="End offset (e.g. '30 minutes ago', '4 months from now').")
    _add_format_hint(read)

    tl = sub.add_parser("tail", help="Follow one or more topics.")
    tl.add_argument("--topic", action="append", default=[], help="Topic to tail; may be repeated.")
    _add_format_hint(tl)

    wr = sub.add_parser("write", help="Publish a single record.")
    wr.add_argument("--topic", type=str, help="Destination topic.")
    wr.add_argument("--key", type=str, default=None, help="Record key.")
    wr.add_argument("--header", action="append", default=[], metavar="NAME=VALUE",
                    help="Record header; may be repeated.")
    wr.add_argument("message", nargs="?", default=None,
                    help="Payload; read from stdin when omitted.")
    return ap


def _add_format_hint(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--format-hint", choices=[h.value for h in FormatHint], default=FormatHint.TEXT.value,
                        help="How to print payloads (default: text).")


def settings_from_args(args: argparse.Namespace) -> ClientSettings:
    settings = ClientSettings(timeout_ms=args.timeout, extra=parse_properties(args.properties))
    if args.brokers:
        settings.brokers = args.brokers
    if args.group:
        settings.group = args.group
    settings.client_id = args.client_id or default_client_id()
    settings.client_logs = Verbosity.from_count(args.verbose) >= Verbosity.TOO_MUCH
    return settings


def configure_logging(verbosity: Verbosity) -> None:
    logging.basicConfig(
        level=_LOG_LEVELS[verbosity],
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        stream=sys.stderr,
    )


def open_broker(settings: ClientSettings, mode: str) -> BrokerClient:
    return BrokerClient(make_consumer(settings, mode))


# ---- subcommands ----

def cmd_list(args: argparse.Namespace, settings: ClientSettings, verbosity: Verbosity) -> int:
    broker = open_broker(settings, "list")
    try:
        list_cluster(broker, settings.timeout, verbosity)
    finally:
        broker.close()
    return 0


def cmd_read(args: argparse.Namespace, settings: ClientSettings, verbosity: Verbosity) -> int:
    if not args.topic:
        raise MissingTopic("topic is required")
    window = resolve(
        start_abs=args.start,
        end_abs=args.end,
        literal_offset=args.offset,
        start_relative=args.start_offset,
        end_relative=args.end_offset,
    )
    window.require_start()

    sink = MessageSink(verbosity, FormatHint(args.format_hint))
    broker = open_broker(settings, "read")
    try:
        result = replay(broker, args.topic, window, sink, settings.timeout)
    finally:
        # auto-commit and the offset store are off: closing persists nothing
        broker.close()
    logger.info("read finished (%s) after %d records", result.outcome.value, result.presented)
    return 0


def _install_signal_handlers(stop: threading.Event) -> None:
    """Let Ctrl+C / SIGTERM end the tail loop gracefully."""
    def _sig_handler(sig: int, _frame: Any) -> None:
        logger.info("signal %d received, stopping", sig)
        stop.set()

    signal.signal(signal.SIGINT, _sig_handler)
    signal.signal(signal.SIGTERM, _sig_handler)


def cmd_tail(args: argparse.Namespace, settings: ClientSettings, verbosity: Verbosity) -> int:
    topics: List[str] = [t for t in args.topic if t]
    if not topics:
        raise MissingTopic("No topic provided.")

    stop = threading.Event()
    _install_signal_handlers(stop)
    sink = MessageSink(verbosity, FormatHint(args.format_hint))
    broker = open_broker(settings, "tail")
    try:
        tail(broker, topics, sink, stop)
    finally:
        broker.close()
    return 0


def cmd_write(args: argparse.Namespace, settings: ClientSettings, verbosity: Verbosity) -> int:
    if not args.topic:
        raise MissingTopic("topic is required")
    message: str = args.message if args.message is not None else sys.stdin.read().rstrip("\n")
    headers = parse_headers(args.header)
    publish(make_producer(settings), args.topic, message, key=args.key,
            headers=headers, timeout=settings.timeout)
    return 0


_COMMANDS = {
    "list": cmd_list,
    "read": cmd_read,
    "tail": cmd_tail,
    "write": cmd_write,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    verbosity = Verbosity.from_count(args.verbose)
    configure_logging(verbosity)

    if verbosity >= Verbosity.TOO_MUCH:
        version_s, version_n = libversion()
        print(f"rd_kafka_version: 0x{version_n:08x}, {version_s}", file=sys.stderr)

    try:
        settings = settings_from_args(args)
        return _COMMANDS[args.command](args, settings, verbosity)
    except K2Error as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    except KeyboardInterrupt:
        # Ctrl+C is how tail normally ends; any other command was cut short
        return 0 if args.command == "tail" else 1


if __name__ == "__main__":
    sys.exit(main())
