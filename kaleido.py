"""Kaleido entrypoint module exposing the public API and CLI."""

import argparse
import logging
import os
import sys

from kaleido_lang import (
    ConsoleIO,
    CompilerSession,
    KaleidoError,
    SessionOptions,
)

__all__ = [
    "CompilerSession",
    "ConsoleIO",
    "KaleidoError",
    "SessionOptions",
    "build_options",
    "main",
]


def build_options(args: argparse.Namespace) -> SessionOptions:
    options = SessionOptions.from_env()
    if args.no_ir:
        options.dump_ir = False
    if args.optimize:
        options.optimize = True
    if args.prompt:
        options.prompt = True
    options.libraries.extend(args.lib)
    return options


def main():
    parser = argparse.ArgumentParser(description="Kaleido incremental JIT compiler")
    parser.add_argument("script", nargs="?", help="Source file to run (default: stdin)")
    parser.add_argument(
        "--lib", action="append", default=[], help="Shared library providing extern primitives"
    )
    parser.add_argument("--no-ir", action="store_true", help="Do not print lowered IR")
    parser.add_argument("--optimize", action="store_true", help="Run the function pass pipeline")
    parser.add_argument("--prompt", action="store_true", help="Print 'ready> ' before each statement")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("KALEIDO_LOG_LEVEL", "WARNING"),
        help="Logging level for diagnostics on stderr",
    )
    args = parser.parse_args()

    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        session = CompilerSession(build_options(args), io_handler=ConsoleIO())
    except KaleidoError as e:
        print(f"Error:{e}", file=sys.stderr)
        sys.exit(1)

    if not args.script:
        session.run(sys.stdin)
        return

    try:
        with open(args.script, "r", encoding="utf-8") as f:
            session.run(f)
    except OSError as e:
        print(f"Error:{e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
