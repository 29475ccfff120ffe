"""Argument parsing functionality for nhx.

nhx flags may be interleaved with node flags, but only before the target:
everything from the target onwards belongs to the script. The command line is
first split into nhx tokens and the rest, then the nhx tokens go through
argparse.
"""

import argparse
from typing import List, Optional, Sequence, Tuple

# nhx flags that take a value
_VALUE_FLAGS = ("--with", "--engine", "--loglevel", "--logfile", "--config")
_BOOL_FLAGS = ("--run-postinstall", "-h", "--help")

EXAMPLES = """\
Examples:
  nhx -e 'console.log(1)'           # forward to node
  nhx ./script.js                   # run local file
  nhx cowsay hi                     # run npm package
  nhx --with=typescript tsc         # run tsc from typescript
  nhx --with=tsx --import tsx a.ts  # typescript
  curl ... | nhx -                  # run from stdin
"""


def build_parser() -> argparse.ArgumentParser:
    """Parser for the nhx-owned flags."""
    parser = argparse.ArgumentParser(
        prog="nhx",
        usage="nhx [options] [node-flags] [target] [args...]",
        description="Run a script with its inline dependencies, or an npm package executable.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument("--with",
                        dest="WITH_DEPS",
                        help="Add dependency, 'name' or 'name@version' (repeatable)",
                        action="append",
                        metavar="DEP",
                        default=[])
    parser.add_argument("--engine",
                        dest="ENGINES",
                        help='Node version, e.g. "node:18" or "node:>=18 <20"',
                        action="append",
                        metavar="SPEC",
                        default=[])
    parser.add_argument("--run-postinstall",
                        dest="RUN_POSTINSTALL",
                        help="Allow install lifecycle scripts",
                        action="store_true")
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        type=str)
    parser.add_argument("--config",
                        dest="CONFIG",
                        help="Path to a YAML configuration file",
                        type=str)
    parser.add_argument("-h", "--help",
                        dest="HELP",
                        help="Show help",
                        action="store_true")
    return parser


def _is_nhx_flag(arg: str) -> bool:
    return arg in _BOOL_FLAGS or arg in _VALUE_FLAGS or any(
        arg.startswith(flag + "=") for flag in _VALUE_FLAGS
    )


def split_argv(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Separate nhx tokens from node flags, the target and script arguments."""
    ours: List[str] = []
    rest: List[str] = []
    found_target = False
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg == "-" or not arg.startswith("-"):
            found_target = True
        if found_target or not _is_nhx_flag(arg):
            rest.append(arg)
        elif arg in _VALUE_FLAGS:
            if i + 1 < len(argv):
                ours += [arg, argv[i + 1]]
                i += 1
        else:
            ours.append(arg)
        i += 1
    return ours, rest


def _takes_no_value(token: str) -> bool:
    return token.startswith("-") or token.startswith(("./", "../", "/"))


def split_rest(rest: Sequence[str]) -> Tuple[List[str], Optional[str], List[str]]:
    """Split into node flags, target and script arguments.

    A node flag followed by a non-flag token takes that token as its value,
    so ``-e 'code'`` has no target. Paths starting with ./, ../ or / are
    never taken as flag values.
    """
    node_args: List[str] = []
    i = 0
    while i < len(rest):
        arg = rest[i]
        if arg == "-" or not arg.startswith("-"):
            break
        node_args.append(arg)
        i += 1
        if "=" not in arg and i < len(rest) and not _takes_no_value(rest[i]):
            node_args.append(rest[i])
            i += 1
    target = rest[i] if i < len(rest) else None
    return node_args, target, list(rest[i + 1:])


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parses the arguments passed to the program."""
    ours, rest = split_argv(argv)
    ns = build_parser().parse_args(ours)
    ns.NODE_ARGS, ns.TARGET, ns.SCRIPT_ARGS = split_rest(rest)
    return ns
