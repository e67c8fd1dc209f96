from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from .constants import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT_MS, MAX_ATTEMPTS, MAX_RATE_BPS
from .exchange import ReliableExchange
from .net import Impairment, UdpEndpoint
from .receiver import Receiver
from .sender import FatalTransferError, FileSender, TransferAborted, TransferCancelled

EXIT_FATAL = 1
EXIT_ABORTED = 2
EXIT_CANCELLED = 130


def rate_bps_arg(text: str) -> int:
    value = int(text)
    if not 0 <= value <= MAX_RATE_BPS:
        raise argparse.ArgumentTypeError(f"rate must be between 0 and {MAX_RATE_BPS}")
    return value


def cmd_send(args: argparse.Namespace) -> int:
    impair = Impairment(args.loss_rate, args.delay_ms)
    udp = UdpEndpoint.connected(
        args.dest_host,
        args.dest_port,
        timeout_ms=args.timeout_ms,
        impairment=impair,
    )
    exchange = ReliableExchange(udp, max_attempts=args.max_attempts)

    try:
        sender = FileSender.from_path(exchange, args.file, remote_name=args.remote_name)
        session = sender.run()
    except TransferAborted as exc:
        logging.error("transfer aborted: %s", exc)
        return EXIT_ABORTED
    except FatalTransferError as exc:
        logging.critical("transfer failed: %s", exc)
        return EXIT_FATAL
    except (TransferCancelled, KeyboardInterrupt):
        logging.warning("transfer cancelled")
        return EXIT_CANCELLED
    finally:
        udp.close()

    payload = {
        "role": "sender",
        "bytes": session.offset,
        "seconds": session.duration_s,
        "mbps": session.throughput_mbps,
        "frames": session.frames_sent,
        "retransmits": session.retransmits,
        "delay_ms": session.delay_ms,
    }
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def cmd_recv(args: argparse.Namespace) -> int:
    impair = Impairment(args.loss_rate, args.delay_ms)
    udp = UdpEndpoint.listening(
        args.listen_host,
        args.listen_port,
        timeout_ms=args.timeout_ms,
        impairment=impair,
    )
    out_dir = Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    try:
        result = Receiver(udp, out_dir, rate_bps=args.rate_bps).run()
    except KeyboardInterrupt:
        return EXIT_CANCELLED
    finally:
        udp.close()

    payload = {
        "role": "receiver",
        "path": str(result.path) if result.path else None,
        "bytes": result.bytes_received,
        "seconds": result.duration_s,
        "mbps": result.throughput_mbps,
        "frames": result.frames,
        "rejected": result.rejected,
        "digest_ok": result.digest_ok,
    }
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0 if result.digest_ok else EXIT_FATAL


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dgxfer", description="File transfer over UDP with CRC32C frames.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate packet loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate per-datagram delay")
        x.add_argument("--json", action="store_true")

    send = sub.add_parser("send", help="send a file to a receiver")
    add_common(send)
    send.add_argument("--dest-host", default=DEFAULT_HOST)
    send.add_argument("--dest-port", type=int, default=DEFAULT_PORT)
    send.add_argument("--file", required=True)
    send.add_argument("--remote-name", default=None, help="NAME sent to the receiver (default: file name)")
    send.add_argument("--max-attempts", type=int, default=MAX_ATTEMPTS)
    send.set_defaults(func=cmd_send)

    recv = sub.add_parser("recv", help="receive one file and write it to disk")
    add_common(recv)
    recv.add_argument("--listen-host", default="0.0.0.0")
    recv.add_argument("--listen-port", type=int, default=DEFAULT_PORT)
    recv.add_argument("--out-dir", required=True)
    recv.add_argument("--rate-bps", type=rate_bps_arg, default=None, help="ask the sender for this byte rate")
    recv.set_defaults(func=cmd_recv)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
