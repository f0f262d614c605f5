"""Grouping and tokenization utilities for pipesh.

This module turns a raw input line into words and then into a `Pipeline`:
an ordered chain of commands plus at most one stdout and one stderr
redirection that apply to the pipeline as a whole.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

PIPE = "|"

# operator -> (stream, append)
REDIRECTS = {
    ">": ("stdout", False),
    "1>": ("stdout", False),
    ">>": ("stdout", True),
    "1>>": ("stdout", True),
    "2>": ("stderr", False),
    "2>>": ("stderr", True),
}

OPERATORS = {PIPE, *REDIRECTS}

# Characters a backslash may escape inside double quotes
_DQUOTE_ESCAPABLE = {'"', '\\', '$', '`'}


class ParseError(ValueError):
    """Base class for errors raised while turning a line into a pipeline."""


class UnclosedQuoteError(ParseError):
    pass


class EmptyCommandError(ParseError):
    pass


class MissingRedirectTargetError(ParseError):
    pass


class Word(str):
    """A token. `quoted` is set when any of its characters were quoted or escaped."""

    quoted: bool = False

    def __new__(cls, value: str, quoted: bool = False) -> "Word":
        word = super().__new__(cls, value)
        word.quoted = quoted
        return word

    def __repr__(self) -> str:
        return f"Word({str(self)!r}, quoted={self.quoted})"


@dataclass(frozen=True)
class Command:
    """A simple command: argv[0] is the program, the rest its arguments."""
    name: str
    args: tuple[str, ...] = ()

    @property
    def argv(self) -> list[str]:
        return [self.name, *self.args]


@dataclass(frozen=True)
class Redirect:
    path: str
    append: bool = False


@dataclass(frozen=True)
class Pipeline:
    """Stages connected stdout-to-stdin with pipeline-wide redirections."""
    stages: tuple[Command, ...]
    stdout: Optional[Redirect] = None
    stderr: Optional[Redirect] = None


# --- Tokenization ---

def tokenize(line: str) -> list[Word]:
    """Split an input line into words.

    Single quotes keep everything literal. Inside double quotes a backslash
    only escapes `"`, `\\`, `$` and a backtick; before any other character it
    is kept. Outside quotes a backslash makes the next character literal.
    Unquoted spaces separate words. Operators are not recognised here.
    """
    words: list[Word] = []
    buf: list[str] = []
    quoted = False
    mode: Optional[str] = None  # None, "'" or '"'
    escape = False

    def flush() -> None:
        nonlocal quoted
        if buf:
            words.append(Word(''.join(buf), quoted))
            buf.clear()
        quoted = False

    for ch in line:
        if mode == "'":
            if ch == "'":
                mode = None
            else:
                buf.append(ch)
        elif mode == '"':
            if escape:
                if ch not in _DQUOTE_ESCAPABLE:
                    buf.append('\\')
                buf.append(ch)
                escape = False
            elif ch == '"':
                mode = None
            elif ch == '\\':
                escape = True
            else:
                buf.append(ch)
        elif escape:
            buf.append(ch)
            quoted = True
            escape = False
        elif ch in ("'", '"'):
            mode = ch
            quoted = True
        elif ch == ' ':
            flush()
        elif ch == '\\':
            escape = True
        else:
            buf.append(ch)

    if mode is not None:
        raise UnclosedQuoteError(f"unclosed {mode} quote")

    flush()
    return words


# --- Grouping ---

def _is_operator(token: str) -> bool:
    return token in OPERATORS and not getattr(token, "quoted", False)


def parse(tokens: Iterable[str]) -> Pipeline:
    """Group tokens into a `Pipeline`.

    Redirection operators consume the following token as their target and
    bind to the whole pipeline whichever stage they appear in; a later
    redirection of the same stream replaces an earlier one.
    """
    stages: list[Command] = []
    buf: list[str] = []
    targets: dict[str, Redirect] = {}
    pending: Optional[str] = None

    def flush() -> None:
        if not buf:
            raise EmptyCommandError("empty command in pipeline")
        stages.append(Command(str(buf[0]), tuple(str(t) for t in buf[1:])))
        buf.clear()

    for tok in tokens:
        if pending is not None:
            stream, append = REDIRECTS[pending]
            targets[stream] = Redirect(str(tok), append)
            pending = None
        elif _is_operator(tok):
            if tok == PIPE:
                flush()
            else:
                pending = str(tok)
        else:
            buf.append(tok)

    if pending is not None:
        raise MissingRedirectTargetError(f"missing target after '{pending}'")

    flush()
    return Pipeline(tuple(stages), targets.get("stdout"), targets.get("stderr"))


# --- Public helpers ---

def split_line(line: str) -> Pipeline:
    return parse(tokenize(line))


# --- Formatting (debug / test aid) ---

def format_pipeline(pipeline: Pipeline) -> str:
    lines: list[str] = []
    for stage in pipeline.stages:
        lines.append("CMD  " + ' '.join(stage.argv))
    for label, redirect in (("OUT", pipeline.stdout), ("ERR", pipeline.stderr)):
        if redirect is not None:
            lines.append(f"{label}  {'>>' if redirect.append else '>'} {redirect.path}")
    return "\n".join(lines) if lines else "<empty>"
