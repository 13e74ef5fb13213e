#!/usr/bin/env python3
"""Command line front end: ``pyflamegraph [options] [--] command args...``"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import DEFAULT_MIN_WIDTH, DEFAULT_OUTPUT, load_settings
from .errors import FlamegraphError
from .options import PALETTES, Appearance, Direction, Options
from .pipeline import generate_flamegraph_for_workload
from .privilege import Privilege
from .workload import Command, Pid, ReadPerf


def pid_list(value: str) -> List[int]:
    """Parse ``123`` or ``123,456``"""
    try:
        pids = [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid pid list: {value!r}") from None
    if not pids:
        raise argparse.ArgumentTypeError("empty pid list")
    return pids


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pyflamegraph",
        description="Sample a program with perf, dtrace or xctrace and draw a flame graph",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Profile a command
  pyflamegraph -- ./myapp --input data.txt

  # Attach to running processes (Ctrl+C to stop)
  pyflamegraph -p 1234 -p 5678 -o running.svg

  # Render an existing perf.data
  pyflamegraph --perfdata perf.data --title "last night"
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    target = parser.add_argument_group("workload")
    target.add_argument("-p", "--pid", type=pid_list, action="append", default=[],
                        help="Profile a running process (repeatable, comma separated)")
    target.add_argument("--perfdata", type=Path,
                        help="Render an existing perf.data instead of sampling")
    target.add_argument("command", nargs=argparse.REMAINDER, help="Command to run and profile")

    sampling = parser.add_argument_group("sampling")
    sampling.add_argument("-o", "--output", type=Path, default=Path(DEFAULT_OUTPUT),
                          help=f"Output file (default: {DEFAULT_OUTPUT})")
    sampling.add_argument("--open", action="store_true", help="Open the output in the default viewer")
    sampling.add_argument("--root", nargs="?", const="", default=None, metavar="SUDO_FLAGS",
                          help="Run the sampler with sudo, optionally with extra sudo flags")
    sampling.add_argument("-F", "--freq", type=int, help="Sampling frequency in Hz (default: 997)")
    sampling.add_argument("-c", "--cmd", help="Custom sampler arguments (e.g. 'record -e cycles -g')")
    sampling.add_argument("--ignore-status", action="store_true",
                          help="Render even if the sampler exited with an error")
    sampling.add_argument("--no-inline", action="store_true",
                          help="Do not resolve inlined frames (perf only)")
    sampling.add_argument("--compression-level", type=int, help="perf record compression level")
    sampling.add_argument("--post-process", help="Filter the folded stacks through this command")
    sampling.add_argument("-v", "--verbose", action="store_true", help="Print commands and debug output")

    look = parser.add_argument_group("appearance")
    look.add_argument("--title", help="Image title")
    look.add_argument("--subtitle", help="Second level title")
    look.add_argument("--deterministic", action="store_true",
                      help="Colors depend on function names only")
    look.add_argument("-i", "--inverted", action="store_true", help="Draw an icicle graph")
    look.add_argument("--reverse", action="store_true", help="Reverse the stacks before merging")
    look.add_argument("--notes", help="Notes embedded in the SVG")
    look.add_argument("--min-width", type=float, default=DEFAULT_MIN_WIDTH,
                      help=f"Omit frames narrower than this many pixels (default: {DEFAULT_MIN_WIDTH})")
    look.add_argument("--image-width", type=int, help="Image width in pixels")
    look.add_argument("--palette", choices=PALETTES, help="Color palette")
    look.add_argument("--skip-after", action="append", default=[], metavar="FUNCTION",
                      help="Cut stacks below this function (repeatable, perf only)")
    look.add_argument("--flamechart", action="store_true",
                      help="Keep samples in time order instead of merging them")
    return parser


def resolve_workload(parser: argparse.ArgumentParser, args):
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    pids = [pid for group in args.pid for pid in group]

    given = [bool(pids), bool(command), args.perfdata is not None]
    if sum(given) != 1:
        parser.error("give exactly one of a command, -p/--pid or --perfdata")
    if pids:
        return Pid(pids)
    if command:
        return Command(command)
    return ReadPerf(args.perfdata)


def build_options(args) -> Options:
    appearance = Appearance(
        title=args.title,
        subtitle=args.subtitle,
        deterministic=args.deterministic,
        direction=Direction.INVERTED if args.inverted else Direction.NORMAL,
        reverse=args.reverse,
        notes=args.notes,
        min_width=args.min_width,
        image_width=args.image_width,
        palette=args.palette,
        skip_after=tuple(args.skip_after),
        flame_chart=args.flamechart,
    )
    return Options(
        output=args.output,
        open=args.open,
        privilege=Privilege.sudo(args.root) if args.root is not None else Privilege.none(),
        frequency=args.freq,
        custom_cmd=args.cmd,
        ignore_status=args.ignore_status,
        no_inline=args.no_inline,
        compression_level=args.compression_level,
        post_process=args.post_process,
        verbose=args.verbose,
        appearance=appearance,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    try:
        workload = resolve_workload(parser, args)
        generate_flamegraph_for_workload(workload, build_options(args), settings=load_settings())
    except FlamegraphError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
