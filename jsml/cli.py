"""
Command line front end.

    jsml compile FILE [-c COMPONENT] [-o OUT.json] [--artifacts DIR]
    jsml check FILE
    jsml format FILE [-i]

Diagnostics go to stderr as ``file:line:col: Kind: path: message``; the exit
status is 1 when compilation fails.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from jsml import __version__
from jsml.compiler import CompileResult, compile_all, compile_file
from jsml.config import CompilerOptions
from jsml.errors import CompilationError, JSMLError
from jsml.io import export_artifacts, export_equation_system
from jsml.parser import format_file, parse_file

logger = logging.getLogger(__name__)


def _options(args: argparse.Namespace) -> CompilerOptions:
    return CompilerOptions(
        metadata_namespace=args.namespace,
        oriented_flows=args.oriented_flows,
        warnings_as_errors=args.werror,
        emit_warnings=False,
    )


def _print_diagnostics(error: JSMLError) -> None:
    errors = error.errors if isinstance(error, CompilationError) else [error]
    for e in errors:
        print(e, file=sys.stderr)


def _print_warnings(result: CompileResult) -> None:
    for w in result.warnings:
        print(w, file=sys.stderr)


def _compile(args: argparse.Namespace) -> int:
    result = compile_file(args.file, args.component, _options(args))
    _print_warnings(result)

    if args.output:
        export_equation_system(result.system, args.output)
        logger.info("wrote %s", args.output)
    else:
        print(result.system)

    if args.artifacts:
        out_dir = Path(args.artifacts)
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / f"{result.name}.artifacts.json"
        export_artifacts(result.artifacts, path)
        logger.info("wrote %s", path)
    return 0


def _check(args: argparse.Namespace) -> int:
    results = compile_all(args.file, _options(args))
    for name, result in results.items():
        _print_warnings(result)
        system = result.system
        print(
            f"{name}: {system.n_equations} equations, {system.n_unknowns} unknowns, "
            f"{len(system.parameters)} parameters, {len(result.artifacts.tests)} tests"
        )
    return 0


def _format(args: argparse.Namespace) -> int:
    text = format_file(parse_file(args.file))
    if args.in_place:
        Path(args.file).write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jsml", description="JSML model compiler")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="count", default=0, help="More logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_compile_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("file", help="JSML source file")
        p.add_argument(
            "--namespace", default="JSML", help="Metadata tool namespace (default: JSML)"
        )
        p.add_argument(
            "--oriented-flows",
            action="store_true",
            help="Count flows of the component's own connectors negatively",
        )
        p.add_argument("--werror", action="store_true", help="Treat warnings as errors")

    p_compile = sub.add_parser(
        "compile", parents=[common], help="Flatten a component into an equation system"
    )
    add_compile_options(p_compile)
    p_compile.add_argument(
        "-c", "--component", default=None, help="Component to compile (default: the last one)"
    )
    p_compile.add_argument("-o", "--output", default=None, help="Write the system as JSON")
    p_compile.add_argument(
        "--artifacts", default=None, help="Directory for experiment/test/layout JSON"
    )
    p_compile.set_defaults(func=_compile)

    p_check = sub.add_parser(
        "check", parents=[common], help="Compile every component of a file"
    )
    add_compile_options(p_check)
    p_check.set_defaults(func=_check)

    p_format = sub.add_parser(
        "format", parents=[common], help="Print the file in canonical form"
    )
    p_format.add_argument("file", help="JSML source file")
    p_format.add_argument("-i", "--in-place", action="store_true", help="Rewrite the file")
    p_format.set_defaults(func=_format)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        return args.func(args)
    except JSMLError as e:
        _print_diagnostics(e)
        return 1
    except OSError as e:
        print(f"jsml: {e}", file=sys.stderr)
        return 1
