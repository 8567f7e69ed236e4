from __future__ import annotations
import argparse
import json
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from .config import (
    CONFIG_PATH,
    PROFILES_PATH,
    SETTABLE_KEYS,
    coerce_value,
    load_config,
    save_config,
    validate_config,
    with_overrides,
)
from .errors import NodecheckError
from .logger import get_logger, log_event, setup_logging
from .profiles import load_profiles
from .report import render_text, report_payload
from .state import read_status_snapshot, write_status_snapshot
from .status import run_status


def _print_kv(title: str, value: object) -> None:
    print(f"{title}: {value}")


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a whole number, got {raw!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def _seconds(allow_zero: bool):
    def parse(raw: str) -> float:
        try:
            value = float(raw)
        except ValueError:
            raise argparse.ArgumentTypeError(f"expected seconds, got {raw!r}") from None
        if value < 0 or (value == 0 and not allow_zero) or value != value:
            raise argparse.ArgumentTypeError(f"out of range: {raw}")
        return value
    return parse


def _invalid_settings(e: ValueError) -> int:
    print(f"❌ Invalid settings: {e}", file=sys.stderr)
    print(f"   Fix {CONFIG_PATH} or run: nodecheck config --set KEY=VALUE", file=sys.stderr)
    return 2


def _install_cancel_handlers(cancel: threading.Event) -> None:
    def _handler(signum, frame):
        cancel.set()

    for name in ("SIGINT", "SIGTERM"):
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            signal.signal(sig, _handler)
        except (ValueError, OSError):
            # not the main thread, or the platform refuses
            continue


def cmd_status(args: argparse.Namespace) -> int:
    """
    Produce the node status report. Exit 0 whenever a report was produced,
    even if it carries warnings.
    """
    try:
        cfg = validate_config(with_overrides(
            load_config(),
            node_type=args.node_type,
            data_dir=args.data_dir,
            ready_attempts=args.attempts,
            ready_interval=args.interval,
            min_connections=args.min_connections,
            rpc_timeout=args.timeout,
        ))
    except ValueError as e:
        return _invalid_settings(e)
    cancel = threading.Event()
    _install_cancel_handlers(cancel)
    conf_path = Path(args.conf).expanduser() if args.conf else None

    try:
        result = run_status(cfg, cancel=cancel, conf_path=conf_path)
    except NodecheckError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        if e.suggestion:
            print(f"   Try running: {e.suggestion}", file=sys.stderr)
        log_event("status_failed", {"error": type(e).__name__, "message": e.message})
        return e.exit_code

    payload = report_payload(result)
    if cfg.write_snapshot and not args.no_snapshot:
        try:
            write_status_snapshot(payload)
        except OSError as e:
            get_logger().warning(f"⚠️  Could not write status snapshot: {e}")

    if args.json:
        print(json.dumps(payload, indent=2))
    else:
        print(render_text(result))
    return 0


def cmd_last(args: argparse.Namespace) -> int:
    snap = read_status_snapshot()
    if snap is None:
        print("(no status snapshot yet; run `nodecheck status` first)")
        return 1
    if args.json:
        print(json.dumps(snap, indent=2))
        return 0
    health = snap.get("health") or {}
    chain = snap.get("blockchain") or {}
    _print_kv("Generated", snap.get("generated_at"))
    _print_kv("Profile", (snap.get("node") or {}).get("profile"))
    _print_kv("Overall", health.get("overall"))
    _print_kv("Sync", f"{health.get('sync')} ({chain.get('blocks')}/{chain.get('headers')})")
    _print_kv("Connections", f"{health.get('connections')} ({(snap.get('network') or {}).get('connections')})")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    try:
        cfg = load_config()
    except ValueError as e:
        return _invalid_settings(e)
    if args.set:
        key, sep, raw = args.set.partition("=")
        key = key.strip()
        if not sep:
            print("❌ --set expects KEY=VALUE", file=sys.stderr)
            return 2
        try:
            value = coerce_value(key, raw.strip())
        except KeyError:
            print(f"❌ Unknown config key: {key}", file=sys.stderr)
            print(f"   Known keys: {', '.join(SETTABLE_KEYS)}", file=sys.stderr)
            return 2
        except ValueError as e:
            print(f"❌ {e}", file=sys.stderr)
            return 2
        setattr(cfg, key, value)
        save_config(cfg)
        log_event("config_updated", {key: value})
        print(f"Updated {key}.")
        return 0

    print("config.json")
    print(CONFIG_PATH)
    print()
    for key in SETTABLE_KEYS:
        _print_kv(f"  {key}", getattr(cfg, key))
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    profiles = load_profiles()
    print(f"profiles ({PROFILES_PATH})")
    for p in profiles.values():
        services = ", ".join(f"{k}={v}" for k, v in sorted(p.services.items())) or "-"
        flag = " [sv2]" if p.secondary_protocol else ""
        print(f"- {p.name:8}  {p.daemon:10}  {p.cli:12}  {services}{flag}")
        if p.description:
            print(f"  {p.description}")
    return 0


def _add_status_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("-v", "--verbose", action="store_true", help="Show debug events on the console.")
    p.add_argument("--json", action="store_true", help="Print the report as JSON.")
    p.add_argument("--node-type", help="Profile to check (default: config node_type, usually auto).")
    p.add_argument("--data-dir", help="Node data directory.")
    p.add_argument("--conf", help="Node config file (default: <data-dir>/bitcoin.conf).")
    p.add_argument("--attempts", type=_positive_int, help="Readiness attempts before giving up.")
    p.add_argument("--interval", type=_seconds(allow_zero=True), help="Seconds between readiness attempts.")
    p.add_argument("--min-connections", type=_positive_int, help="Connections needed to count as healthy.")
    p.add_argument("--timeout", type=_seconds(allow_zero=False), help="Timeout in seconds for each bitcoin-cli call.")
    p.add_argument("--no-snapshot", action="store_true", help="Do not write state/status.json.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="nodecheck", description="Bitcoin node status and health report.")
    _add_status_args(p)
    p.set_defaults(func=cmd_status)
    sub = p.add_subparsers(dest="cmd")

    pstatus = sub.add_parser("status", help="Check the node and print a status report (default).")
    _add_status_args(pstatus)
    pstatus.set_defaults(func=cmd_status)

    plast = sub.add_parser("last", help="Show the last saved status snapshot.")
    plast.add_argument("--json", action="store_true")
    plast.set_defaults(func=cmd_last)

    pcfg = sub.add_parser("config", help="Show/update nodecheck settings.")
    pcfg.add_argument("--show", action="store_true")
    pcfg.add_argument("--set", metavar="KEY=VALUE", help="Update one setting.")
    pcfg.set_defaults(func=cmd_config)

    pprof = sub.add_parser("profiles", help="List known node profiles.")
    pprof.set_defaults(func=cmd_profiles)
    return p


def main(argv: Optional[list] = None) -> None:
    p = build_parser()
    args = p.parse_args(argv)
    setup_logging(verbose=getattr(args, "verbose", False))
    rc = args.func(args)
    raise SystemExit(rc)


if __name__ == "__main__":
    main()
