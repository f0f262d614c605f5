#!/usr/bin/env python3

# Entry of pipesh

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional

try:
    import readline  # type: ignore
except Exception:  # pragma: no cover - fallback when readline unavailable
    readline = None

READLINE_ACTIVE = bool(readline)

PROMPT = "$ "
LOG_LEVEL_ENV = "PIPESH_LOG_LEVEL"

from command import BUILTINS  # local modules in the same folder
from complete import Completer, ReadlineCompleter
from ops import ShellSession, execute_line
from resolver import list_all_executables


def setup_logging(level: Optional[str] = None) -> None:
    """Send internal diagnostics to stderr at the level named by $PIPESH_LOG_LEVEL."""
    name = (level or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.WARNING),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        stream=sys.stderr,
    )


def build_completer(session: ShellSession) -> Completer:
    return Completer(list_all_executables(session.get_path(), BUILTINS))


def setup_readline(completer: Completer) -> None:
    if not READLINE_ACTIVE:
        return
    try:
        readline.parse_and_bind("tab: complete")
        # the completer rings the bell itself
        readline.parse_and_bind("set bell-style none")
        readline.set_completer_delims(" \t\n")
        readline.set_completer(
            ReadlineCompleter(completer, PROMPT, output=sys.stdout, line_buffer=readline.get_line_buffer)
        )
    except Exception:
        logging.getLogger(__name__).debug("readline setup failed", exc_info=True)


def repl(session: Optional[ShellSession] = None) -> int:
    session = session or ShellSession(inherit_env=True)
    setup_readline(build_completer(session))

    last_exit = 0
    while True:
        try:
            line = input(PROMPT)
        except EOFError:
            # Ctrl-D on empty line -> exit
            print()
            break
        except KeyboardInterrupt:
            # Ctrl-C at prompt -> new line and continue
            print()
            continue

        if line == "":
            continue
        session.history.append(line)

        try:
            last_exit = execute_line(line, session)
        except KeyboardInterrupt:
            # SIGINT during command
            print()
            last_exit = 130
        except Exception as e:
            session.report(f"pipesh: {e}")
            last_exit = 1

    return last_exit


def parse_args(args=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="pipesh - a small interactive shell with pipelines and redirection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Builtins: {', '.join(sorted(BUILTINS))}

Environment:
  {LOG_LEVEL_ENV}    logging level for internal diagnostics (default WARNING)
"""
    )
    return parser.parse_args(args)


def main() -> None:
    parse_args()
    setup_logging()
    sys.exit(repl())


if __name__ == "__main__":
    main()
