"""nhx - run scripts with inline npm dependencies, or npm package executables.

The process exits with the launched script's own exit code, or with the
exit code of the NhxError that stopped the run.
"""

import logging
import os
import sys
from typing import List, Optional, Sequence

from args import build_parser, parse_args
from common.logging_utils import add_file_handler, configure_logging, extra_context, is_debug_enabled
from constants import ExitCodes, load_config
from errors import NhxError, TargetError
from package_executor import execute_package
from script_runner import RunScriptOptions, run_script
from targets import discard_stdin_script, find_script, is_local, matching_scripts, read_stdin_script

logger = logging.getLogger(__name__)


def _setup(args) -> None:
    """Load config and configure logging from CLI arguments."""
    load_config(getattr(args, "CONFIG", None))
    # CLI --loglevel wins over NHX_LOG_LEVEL and the config file
    configure_logging(getattr(args, "LOG_LEVEL", None))
    if getattr(args, "LOG_FILE", None):
        add_file_handler(args.LOG_FILE)


def _check_ambiguity(target: str) -> None:
    matched = matching_scripts(target)
    if matched:
        raise TargetError(
            f'Ambiguous: "{target}" matches: {", ".join(matched)}. '
            "Use ./ for local, --with= for npm"
        )


def dispatch(args) -> int:
    """Route parsed arguments to node forwarding, a script run or a package run."""
    options = RunScriptOptions(
        with_deps=list(args.WITH_DEPS),
        node_args=list(args.NODE_ARGS),
        engines=list(args.ENGINES),
        run_postinstall=bool(args.RUN_POSTINSTALL),
    )
    target: Optional[str] = args.TARGET

    if is_debug_enabled(logger):
        logger.debug(
            "CLI dispatch",
            extra=extra_context(event="function_entry", component="cli", action="dispatch", target=target),
        )

    # No target: forward to node (-e, -p, --version, ...)
    if target is None:
        return run_script(None, args.SCRIPT_ARGS, options)

    if target == "-":
        script = read_stdin_script()
        try:
            return run_script(script, args.SCRIPT_ARGS, options)
        finally:
            discard_stdin_script(script)

    if is_local(target):
        script = find_script(target)
        if not script:
            raise TargetError(f"File not found: {target}")
        return run_script(os.path.abspath(script), args.SCRIPT_ARGS, options)

    if not options.with_deps:
        _check_ambiguity(target)

    # npm package: with --with, the first dependency provides the executable named by target
    spec = options.with_deps[0] if options.with_deps else target
    bin_name = target if options.with_deps else None
    return execute_package(
        spec,
        args.SCRIPT_ARGS,
        run_postinstall=options.run_postinstall,
        bin_name=bin_name,
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main function of the program."""
    argv_list: List[str] = list(sys.argv[1:] if argv is None else argv)
    args = parse_args(argv_list)
    _setup(args)

    if args.HELP and args.TARGET is None:
        sys.stdout.write(build_parser().format_help())
        sys.exit(ExitCodes.SUCCESS.value)

    try:
        code = dispatch(args)
    except NhxError as e:
        logger.error("Failed: %s", e)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(ExitCodes.INTERRUPTED.value)
    sys.exit(code)


if __name__ == "__main__":
    main()
