# module for builtin commands

from __future__ import annotations

import os
from typing import TYPE_CHECKING, BinaryIO, Callable, Dict, List

from resolver import find_executable

if TYPE_CHECKING:
    from ops import ShellSession

Builtin = Callable[["ShellSession", List[str], BinaryIO, BinaryIO, BinaryIO], int]

BUILTINS: Dict[str, Builtin] = {}

HOME = "~"


def builtin(name: str) -> Callable[[Builtin], Builtin]:
    """Register the decorated handler under `name`."""
    def register(func: Builtin) -> Builtin:
        BUILTINS[name] = func
        return func
    return register


def is_builtin(name: str) -> bool:
    return name in BUILTINS


def write(out: BinaryIO, message: str) -> None:
    out.write((message + "\n").encode("utf-8"))
    out.flush()


def _is_integer(text: str) -> bool:
    try:
        int(text)
    except ValueError:
        return False
    return True


@builtin("exit")
def exit_(session: ShellSession, args: List[str], stdin: BinaryIO, stdout: BinaryIO, stderr: BinaryIO) -> int:
    # int() raises ValueError on a non-numeric status
    status = int(args[0]) if args else 0
    raise SystemExit(status)


@builtin("echo")
def echo(session: ShellSession, args: List[str], stdin: BinaryIO, stdout: BinaryIO, stderr: BinaryIO) -> int:
    write(stdout, " ".join(args))
    return 0


@builtin("type")
def type_(session: ShellSession, args: List[str], stdin: BinaryIO, stdout: BinaryIO, stderr: BinaryIO) -> int:
    if not args:
        write(stdout, "type: usage: type name")
        return 0
    name = args[0]
    if is_builtin(name):
        write(stdout, f"{name} is a shell builtin")
        return 0
    executable = find_executable(name, session.get_path(), session.cwd)
    if executable is not None:
        write(stdout, f"{name} is {executable}")
        return 0
    write(stdout, f"{name}: not found")
    return 1


@builtin("pwd")
def pwd(session: ShellSession, args: List[str], stdin: BinaryIO, stdout: BinaryIO, stderr: BinaryIO) -> int:
    write(stdout, session.cwd)
    return 0


@builtin("cd")
def cd(session: ShellSession, args: List[str], stdin: BinaryIO, stdout: BinaryIO, stderr: BinaryIO) -> int:
    if not args:
        return 0
    target = args[0]
    if target == HOME or target.startswith(HOME + os.sep):
        home = session.env.get("HOME")
        if home is not None:
            target = home + target[len(HOME):]

    new_path = session.resolve_path(target)
    if not os.path.isdir(new_path):
        write(stdout, f"cd: {new_path}: No such file or directory")
        return 1
    session.set_cwd(new_path)
    return 0


@builtin("history")
def history(session: ShellSession, args: List[str], stdin: BinaryIO, stdout: BinaryIO, stderr: BinaryIO) -> int:
    entries = session.history
    limit = len(entries)
    if args:
        if args[0] == "-r":
            # args[1] raises IndexError when the file operand is missing
            history_file = session.resolve_path(args[1])
            with open(history_file, "r", encoding="utf-8") as f:
                entries.extend(f.read().splitlines())
            return 0
        if _is_integer(args[0]):
            limit = int(args[0])

    limit = min(limit, len(entries))
    start = max(0, len(entries) - limit)
    for i in range(start, len(entries)):
        write(stdout, f"{i + 1}  {entries[i]}")
    return 0
