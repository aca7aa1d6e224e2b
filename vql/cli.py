"""
vql/cli.py -- Command-line entry point.

Joins the command words into one line, hands it to the dispatcher, prints
the result lines, and maps failures to ``ERROR: ...`` on stderr with exit
status 1.

Global options are only recognised *before* the first command word, so
dash-prefixed command words reach the grammar untouched::

    vql --verbose -pr -add q Quality "Readable, tested code"

Usage::

    vql :uc?
    python -m vql -st uc a "Clear layering. High compliance"
"""

from __future__ import annotations

import argparse
import logging
import sys

from vql.config import LOG_DATE_FORMAT, LOG_FORMAT, VERSION, log_level_name
from vql.dispatcher import CommandDispatcher, render_error
from vql.errors import VQLError

logger = logging.getLogger("vql")

_GLOBAL_OPTIONS = frozenset({"--verbose", "--version", "-h", "--help"})

HELP_EPILOG = """\
Setup:
  vql -su ~/projects/app          create ~/projects/app/VQL/vql_storage.json
  vql :-su(~/projects/app)

Listing:
  vql :ls                         everything
  vql -pr | -er | -at | -ar | -cmd

Principles, entities, asset types, assets (flag / functional):
  vql -pr -add q Quality "Readable, tested code"
  vql :pr.add(q, Quality, "Readable, tested code")
  vql -pr -get principles.md      import '# Title (x)' sections
  vql -er -add usr User           vql :er.add(usr, User)
  vql -at -add c Controller       vql :at.add(c, Controller)
  vql -ar -add uc usr c src/user_controller.js
  vql ':-ar.add(uc, usr, c, "src/user_controller.js")'

Rename / delete (scoped or resolved by name):
  vql -er -rn usr user            vql :rn(usr, user)
  vql -at -dl c                   vql :dl(c)

Reviews:
  vql -st uc a "Clean layering. High compliance"
  vql ':uc.st(a, "Clean layering. High compliance")'
  vql -sc uc a M                  vql ':uc.sc(a, M)'
  vql -se uc t                    vql ':uc.se(t)'
  vql uc?                         vql 'uc?(a, s)'

Instruction scripts (read only):
  vql ':uc.rv(a, s)'              vql ':uc.rf(*)'     vql ':uc.rf(ucx)'
  vql ':-rv(*)'                   vql ':-rf(a)'

Integrity:
  vql -ck                         check the registry document

Environment:
  VQL_DIR         registry directory to use instead of searching upward
  VQL_LOG_LEVEL   log level (default WARNING)
"""


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the command-line tool (stderr only)."""
    level_name = "DEBUG" if verbose else log_level_name()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stderr,
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="vql",
        description="Register source assets and keep principle-based reviews of them.",
        usage="vql [--verbose] [--version] [-h] <command words...>",
        epilog=HELP_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--verbose", action="store_true", help="log debug output to stderr")
    p.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return p


def _split_argv(argv: list[str]) -> tuple[list[str], list[str]]:
    """Split *argv* into leading global options and command words."""
    index = 0
    while index < len(argv) and argv[index] in _GLOBAL_OPTIONS:
        index += 1
    return argv[:index], argv[index:]


def main(argv: list[str] | None = None) -> int:
    """Run one vql command; return the process exit status."""
    if argv is None:
        argv = sys.argv[1:]
    options, words = _split_argv(list(argv))

    parser = _build_parser()
    args = parser.parse_args(options)
    _setup_logging(args.verbose)

    if not words:
        print(parser.format_help())
        return 0

    command = " ".join(words)
    logger.debug("Command line: %s", command)
    try:
        result = CommandDispatcher().process_command(command)
    except VQLError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"ERROR: {render_error(exc)}", file=sys.stderr)
        return 1

    for line in result.lines:
        print(line)
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
