from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import DEFAULT_CONFIG_PATH, TRANSPORTS, load_config
from .errors import ConnectionFailure, TransportError
from .executors import DryRunExecutor
from .inventory import ScriptLoader, ScriptLoadError
from .runner import ControlManager, RunReport
from .types import ActionResult


class Ansi:
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"


def colorize(text: str, color: Optional[str]) -> str:
    if not color:
        return text
    if not sys.stdout.isatty() or os.environ.get("NO_COLOR"):
        return text
    return f"{color}{text}{Ansi.RESET}"


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to prod config file (default: {DEFAULT_CONFIG_PATH})",
    )
    common.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )

    parser = argparse.ArgumentParser(prog="prod", description="Remote host configuration over SSH")
    subparsers = parser.add_subparsers(dest="mode", required=True)

    control = subparsers.add_parser(
        "control",
        parents=[common],
        help="Run an action script, or a single command with --command",
    )
    control.add_argument("--retry", action="store_true", help="Retry connecting while the host is unreachable")
    control.add_argument("--dry-run", action="store_true", help="Log commands instead of connecting")
    control.add_argument("--transport", choices=TRANSPORTS, help="SSH client library (default from config)")
    control.add_argument(
        "--command",
        action="store_true",
        help="Treat the arguments as HOST COMMAND and run that one command",
    )
    control.add_argument("--user", help="Username for --command (prompted when omitted)")
    control.add_argument("--port", type=int, default=22, help="SSH port for --command (default: 22)")
    control.add_argument("targets", nargs="+", metavar="SCRIPT | HOST COMMAND")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command:
        if len(args.targets) != 2:
            parser.error("--command expects exactly two arguments: HOST COMMAND")
    elif len(args.targets) != 1:
        parser.error("expected a single action script path")
    return args


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(name)s - %(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        cfg = load_config(args.config)
    except ValueError as exc:
        print(colorize(f"Config load failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    transport = DryRunExecutor.name if args.dry_run else (args.transport or cfg.transport)
    manager = ControlManager(cfg, transport=transport)

    if args.command:
        host, command = args.targets
        return _run_single_command(manager, host, command, args)

    try:
        script = ScriptLoader().load(Path(args.targets[0]))
    except ScriptLoadError as exc:
        print(colorize(f"Script load failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    report = manager.perform_actions(script, retry=args.retry)
    print_report(report)
    return 0 if report.success else 1


def _run_single_command(manager: ControlManager, host: str, command: str, args: argparse.Namespace) -> int:
    try:
        result = manager.run_command(host, command, username=args.user, port=args.port, retry=args.retry)
    except (ConnectionFailure, TransportError) as exc:
        print(colorize(f"Command failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1
    if result.stdout:
        print(result.stdout, end="" if result.stdout.endswith("\n") else "\n")
    if result.failed:
        if result.stderr_text:
            print(colorize(result.stderr_text.rstrip(), Ansi.RED), file=sys.stderr)
        return 1
    return 0


def format_result(result: ActionResult) -> str:
    if result.failed:
        status, color = "failed", Ansi.RED
    elif result.changed:
        status, color = "changed", Ansi.GREEN
    else:
        status, color = "ok", Ansi.BLUE
    index = f"#{result.index} " if result.index is not None else ""
    resource = f"[{result.resource}]" if result.resource else ""
    line = f"{index}{result.host}::{result.action}{resource} {status} - {result.details}"
    return colorize(line, color)


def print_report(report: RunReport) -> None:
    summary = Summary()
    for result in report.results:
        summary.add(result)
        print(format_result(result))
    if report.error and not any(result.failed for result in report.results):
        print(colorize(f"Run aborted: {report.error}", Ansi.RED), file=sys.stderr)
    print(summary.render())


class Summary:
    def __init__(self) -> None:
        self.actions = 0
        self.changes = 0
        self.failures = 0

    def add(self, result: ActionResult) -> None:
        self.actions += 1
        if result.failed:
            self.failures += 1
        elif result.changed:
            self.changes += 1

    def render(self) -> str:
        text = f"Actions: {self.actions} | Changes: {self.changes} | Failures: {self.failures}"
        color = Ansi.GREEN if self.failures == 0 else Ansi.RED
        return colorize(text, color)


if __name__ == "__main__":
    raise SystemExit(main())
