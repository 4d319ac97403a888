#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import argparse
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from sops_context import __version__
from sops_context.classifier import should_handle
from sops_context.config import Settings, load_config
from sops_context.invoker import Operation, TransformFailure, TransformInvoker
from sops_context.logger import setup_logger
from sops_context.mediator import Mediator, build_methods

EXIT_FAILURE = 1
EXIT_NOT_MANAGED = 2


# -------------------------------------------------
# CLI parser
# -------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sops_context_server",
        description="JSON-RPC bridge between an editor and sops",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to settings JSON")
    parser.add_argument("--sops", help="sops executable (overrides sops.command)")
    parser.add_argument("--timeout", type=float, help="Kill sops after N seconds")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ...")

    subparsers = parser.add_subparsers(dest="command")

    # -------- SERVE --------
    subparsers.add_parser("serve", help="Serve JSON-RPC on stdin/stdout (default)")

    # -------- DECRYPT / ENCRYPT --------
    for op in Operation:
        op_parser = subparsers.add_parser(op.value, help=f"{op.value.capitalize()} a file to stdout")
        op_parser.add_argument("file", help="Path to file, or - for stdin")
        op_parser.add_argument(
            "--force",
            action="store_true",
            help="Skip the file-name check",
        )

    # -------- CLASSIFY --------
    classify_parser = subparsers.add_parser("classify", help="Tell whether URIs are managed")
    classify_parser.add_argument("uris", nargs="+")

    return parser


def apply_overrides(config: Settings, args: argparse.Namespace) -> Settings:
    if args.sops:
        config.sops.command = [args.sops]
    if args.timeout is not None:
        config.sops.timeout = args.timeout
    if args.log_level:
        config.logging.level = args.log_level
    return config


# -------------------------------------------------
# Commands
# -------------------------------------------------
def serve(config: Settings, logger) -> int:
    logger.info("sops-context-server starting")
    binary = config.sops.command[0]
    located = shutil.which(binary)
    if located:
        logger.info(f"Found sops at: {located}")
    else:
        logger.warning(f"Could not find {binary} in PATH; requests will fail until it is installed")

    invoker = TransformInvoker(config.sops.command, timeout=config.sops.timeout, logger=logger)
    sys.stdout.reconfigure(encoding="utf-8", newline="\n")

    mediator = Mediator(
        build_methods(invoker),
        sys.stdout,
        logger=logger,
        max_workers=config.server.max_workers,
    )
    # Bytes lines, decoded one at a time by Mediator.submit.
    mediator.serve(sys.stdin.buffer)
    logger.info("Input closed, sops-context-server stopped")
    return 0


def transform_file(config: Settings, logger, operation: Operation, file: str, force: bool) -> int:
    if file != "-" and not force and not should_handle(file):
        logger.error(f"Not a sops-managed file: {file} (use --force)")
        return EXIT_NOT_MANAGED

    source = "stdin" if file == "-" else file
    try:
        if file == "-":
            text = sys.stdin.buffer.read().decode("utf-8")
        else:
            file_path = Path(file).expanduser()
            if not file_path.is_file():
                logger.error(f"File not found: {file_path}")
                return EXIT_FAILURE
            text = file_path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Cannot read {source}: {e}")
        return EXIT_FAILURE

    invoker = TransformInvoker(config.sops.command, timeout=config.sops.timeout, logger=logger)
    outcome = invoker.invoke(operation, text)
    if isinstance(outcome, TransformFailure):
        sys.stderr.write(outcome.message if outcome.message.endswith("\n") else outcome.message + "\n")
        return EXIT_FAILURE

    sys.stdout.buffer.write(outcome.text.encode("utf-8"))
    sys.stdout.buffer.flush()
    return 0


def classify(uris: List[str]) -> int:
    for uri in uris:
        print(f"{'true' if should_handle(uri) else 'false'}\t{uri}")
    return 0


# -------------------------------------------------
# Main
# -------------------------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # ---- config ----
    try:
        config = apply_overrides(load_config(args.config), args)
    except (OSError, ValidationError) as exc:
        print(f"FATAL: Cannot load config: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    # ---- logging ----
    logger = setup_logger(config)

    if args.command == "classify":
        return classify(args.uris)
    if args.command in (Operation.DECRYPT.value, Operation.ENCRYPT.value):
        return transform_file(config, logger, Operation(args.command), args.file, args.force)
    return serve(config, logger)


if __name__ == "__main__":
    sys.exit(main())
