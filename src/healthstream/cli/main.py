# main.py
# SPDX-License-Identifier: MIT

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional, Sequence

from ..core.config import SINK_FORMATS, HealthStreamConfig, load_config_from_path
from .runner import count, extract


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level healthstream CLI argument parser.

    Returns:
        argparse.ArgumentParser: Parser with ``extract`` and ``count``
        subcommands.
    """
    parser = argparse.ArgumentParser(prog="healthstream", description="Stream records out of health exports")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g., DEBUG, INFO, WARNING); overrides logging.level from --config.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ex_p = subparsers.add_parser("extract", help="Stream SOURCE -> OUTPUT (JSONL, gzip JSONL or Parquet).")
    ex_p.add_argument("source", help="s3://bucket/key or a local file path.")
    ex_p.add_argument("output", help="Output file path.")
    ex_p.add_argument("--config", help="Optional config TOML/JSON.")
    ex_p.add_argument("--type", dest="types", action="append", help="Keep only this record type (repeatable).")
    ex_p.add_argument("--limit", type=int, help="Stop after writing this many records.")
    ex_p.add_argument("--format", choices=list(SINK_FORMATS), help="Override sinks.format.")
    ex_p.add_argument("--max-retries", type=int, help="Override stream.max_retries.")
    ex_p.add_argument("--retry-delay", type=float, help="Override stream.retry_delay (seconds).")

    cnt_p = subparsers.add_parser("count", help="Count records per type in SOURCE.")
    cnt_p.add_argument("source", help="s3://bucket/key or a local file path.")
    cnt_p.add_argument("--config", help="Optional config TOML/JSON.")
    cnt_p.add_argument("--type", dest="types", action="append", help="Count only this record type (repeatable).")

    return parser


def _load_config(path: Optional[str]) -> HealthStreamConfig:
    if not path:
        return HealthStreamConfig()
    return load_config_from_path(path)


def _apply_overrides(cfg: HealthStreamConfig, args: argparse.Namespace) -> None:
    """Apply CLI override flags to ``cfg`` in place."""
    if getattr(args, "types", None):
        cfg.sinks.record_types = tuple(args.types)
    if getattr(args, "format", None):
        cfg.sinks.format = args.format
    if getattr(args, "max_retries", None) is not None:
        cfg.stream.max_retries = int(args.max_retries)
    if getattr(args, "retry_delay", None) is not None:
        cfg.stream.retry_delay = float(args.retry_delay)


def _dispatch(args: argparse.Namespace) -> int:
    """Run the selected subcommand and print its stats as JSON.

    Returns:
        int: Process exit code, 0 on success.
    """
    cfg = _load_config(args.config)
    if args.log_level:
        cfg.logging.level = args.log_level
    cfg.logging.apply()
    _apply_overrides(cfg, args)

    if args.command == "extract":
        stats = extract(args.source, args.output, cfg, limit=args.limit)
        print(json.dumps(stats, indent=2))
        return 0

    if args.command == "count":
        stats = count(args.source, cfg)
        print(json.dumps(stats, indent=2))
        return 0

    print(f"Unknown command: {args.command}", file=sys.stderr)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the healthstream command-line interface.

    Args:
        argv (Sequence[str] | None): Argument strings to parse instead of
            ``sys.argv[1:]``. Primarily useful for tests.

    Returns:
        int: Process exit code, where 0 indicates success and 1 failure.
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    try:
        return _dispatch(args)
    except Exception as exc:  # noqa: BLE001
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
