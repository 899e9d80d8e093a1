from __future__ import annotations

import argparse
import sys

from core.exceptions import RobustGateError
from interfaces.cli.gate_commands import DEFAULT_OUT_DIR, inspect_command, replay_command


def _features(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    return [c.strip() for c in raw.split(",") if c.strip()]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="robust-gate")
    p.add_argument(
        "--config",
        default=None,
        help="Path to gate.yaml (built-in defaults when omitted)",
    )

    sub = p.add_subparsers(dest="command", required=True)

    i = sub.add_parser("inspect", help="Fit the reference model on a golden set and print it")
    i.add_argument("--golden", required=True, help="Golden set (csv or parquet)")
    i.add_argument("--features", default=None, help="Comma-separated feature columns (default: all numeric)")

    r = sub.add_parser("replay", help="Replay a provenance-tagged stream through the gate")
    r.add_argument("--golden", required=True, help="Golden set (csv or parquet)")
    r.add_argument("--stream", required=True, help="Stream with source/trust columns (csv or parquet)")
    r.add_argument("--features", default=None, help="Comma-separated feature columns (default: all numeric)")
    r.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Rows per batch when the stream has no 'batch' column",
    )
    r.add_argument("--seed", type=int, default=None, help="Seed for reservoir sampling")
    r.add_argument("--out-dir", default=str(DEFAULT_OUT_DIR), help="Directory for alerts, events and metrics")

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        if args.command == "inspect":
            res = inspect_command(
                args.config,
                golden=args.golden,
                features=_features(args.features),
            )
            print(res.output)
            return res.exit_code

        if args.command == "replay":
            res = replay_command(
                args.config,
                golden=args.golden,
                stream=args.stream,
                features=_features(args.features),
                batch_size=args.batch_size,
                seed=args.seed,
                out_dir=args.out_dir,
            )
            print(res.output)
            return res.exit_code

        raise RobustGateError(f"Unknown command: {args.command}")
    except (RobustGateError, FileNotFoundError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"ERROR: invalid input: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
