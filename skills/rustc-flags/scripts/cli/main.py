#!/usr/bin/env python3
"""rustc-flags CLI: synthesize the rustc invocation cargo would use for one file."""

from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
from typing import List, Optional

from flagsynth import (
    STRATEGIES,
    STRATEGY_CONTEXT,
    SynthesisError,
    SynthesizedInvocation,
    create_provider,
    generate_rustc_flags,
    load_manifest,
    locate,
)
from utils import ToolState
from .config import feature_selection_from_args, options_from_args


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("source", help="Rust source file inside the project")
    parser.add_argument(
        "--manifest-path", default=None, help="Path to Cargo.toml (default: ./Cargo.toml)"
    )
    parser.add_argument(
        "--features",
        action="append",
        default=None,
        help="Space or comma separated features to enable (repeatable)",
    )
    parser.add_argument("--all-features", action="store_true", help="Enable all features")
    parser.add_argument(
        "--no-default-features", action="store_true", help="Do not enable the default feature"
    )
    parser.add_argument("--lib", action="store_true", help="Only consider the library target")
    parser.add_argument(
        "--strategy",
        choices=list(STRATEGIES),
        default=STRATEGY_CONTEXT,
        help="context: cargo metadata + check messages; unit-graph: cargo --unit-graph + deps scan",
    )
    parser.add_argument(
        "--target-dir", default=None, help="Cargo target directory (default: CARGO_TARGET_DIR or ./target)"
    )
    parser.add_argument("--profile", default=None, help="Cargo profile directory (default: debug)")
    parser.add_argument(
        "--no-check-deps",
        action="store_true",
        help="Do not run cargo check for dependencies; use artifacts already on disk",
    )
    parser.add_argument("--verbose", action="store_true", help="Print progress to stderr")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Single-file rustc invocation synthesizer")
    subparsers = parser.add_subparsers(dest="command")

    flags_parser = subparsers.add_parser("flags", help="Print the synthesized invocation")
    add_common_arguments(flags_parser)
    flags_parser.add_argument(
        "--format",
        choices=["shell", "json", "lines"],
        default="shell",
        help="shell: env assignments + quoted command; json: flags/env/warnings; lines: one flag per line",
    )

    exec_parser = subparsers.add_parser("exec", help="Run rustc with the synthesized invocation")
    add_common_arguments(exec_parser)

    locate_parser = subparsers.add_parser("locate", help="Print the unit that owns a file")
    add_common_arguments(locate_parser)
    return parser


def print_warnings(warnings: List[str]) -> None:
    for warning in warnings:
        print(f"warning: {warning}", file=sys.stderr)


def render(invocation: SynthesizedInvocation, fmt: str) -> str:
    if fmt == "json":
        return json.dumps(invocation.to_dict(), ensure_ascii=True, indent=2)
    if fmt == "lines":
        return "\n".join(invocation.flags)
    return invocation.command_line()


def run_flags(args: argparse.Namespace) -> int:
    options = options_from_args(args)
    invocation = generate_rustc_flags(
        args.source,
        feature_selection_from_args(args),
        lib_only=args.lib,
        options=options,
    )
    print_warnings(invocation.warnings)
    print(render(invocation, args.format))
    return 0


def run_exec(args: argparse.Namespace) -> int:
    options = options_from_args(args)
    invocation = generate_rustc_flags(
        args.source,
        feature_selection_from_args(args),
        lib_only=args.lib,
        options=options,
    )
    print_warnings(invocation.warnings)
    env = dict(os.environ)
    env.update(invocation.env)
    cmd = [options.rustc, *invocation.flags[1:]]
    try:
        proc = subprocess.run(cmd, env=env, check=False)
    except FileNotFoundError:
        print(f"error: Missing tool: {options.rustc}", file=sys.stderr)
        return 1
    return proc.returncode


def run_locate(args: argparse.Namespace) -> int:
    options = options_from_args(args)
    tools = ToolState(verbose=options.verbose)
    warnings: List[str] = []
    load_manifest(options.manifest_path)
    provider = create_provider(options, tools, warnings)
    graph = provider.obtain_graph(feature_selection_from_args(args), args.lib)
    unit = locate(graph, args.source)
    print_warnings(warnings)
    print(
        json.dumps(
            {
                "package": unit.package.name,
                "version": unit.package.version,
                "target": unit.target_name,
                "kinds": list(unit.kinds),
                "crate_types": list(unit.crate_types),
                "src_path": str(unit.src_path),
                "edition": unit.edition,
                "features": list(unit.features),
            },
            ensure_ascii=True,
            indent=2,
        )
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)
    handlers = {"flags": run_flags, "exec": run_exec, "locate": run_locate}
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return handler(args)
    except SynthesisError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
