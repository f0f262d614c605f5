from __future__ import annotations

import logging
import os
import queue
import subprocess
import sys
import threading
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional

from command import BUILTINS, Builtin
from groups import Command, ParseError, Pipeline, Redirect, parse, tokenize
from resolver import find_executable

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

NOT_FOUND_STATUS = 127
PARSE_ERROR_STATUS = 2


class RedirectTargetError(OSError):
    """A redirection target could not be opened or created."""


def _binary(stream: Any) -> Any:
    return getattr(stream, "buffer", stream)


class ShellSession:
    """Holds session-wide shell state: environment, working directory, history and streams.

    Nothing here is process-global; every engine instance works on its own
    session so several can coexist (tests build one per case).
    """

    def __init__(
        self,
        inherit_env: bool = True,
        cwd: Optional[str] = None,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
        stderr: Optional[BinaryIO] = None,
    ) -> None:
        # String-only environment used as base for subprocesses
        self.env: Dict[str, str] = dict(os.environ) if inherit_env else {}
        self.cwd: str = os.path.abspath(cwd or os.getcwd())
        self.history: List[str] = []
        self.stdin: BinaryIO = stdin if stdin is not None else _binary(sys.stdin)
        self.stdout: BinaryIO = stdout if stdout is not None else _binary(sys.stdout)
        self.stderr: BinaryIO = stderr if stderr is not None else _binary(sys.stderr)

    def get_env(self) -> Dict[str, str]:
        return dict(self.env)

    def get_path(self) -> Optional[str]:
        return self.env.get("PATH")

    def resolve_path(self, path: str) -> str:
        """Resolve `path` against the session's working directory."""
        return os.path.normpath(os.path.join(self.cwd, path))

    def set_cwd(self, path: str) -> None:
        self.cwd = path
        self.env["PWD"] = path

    def report(self, message: str) -> None:
        self.stderr.write((message + "\n").encode("utf-8"))
        self.stderr.flush()


# --------- In-process plumbing ---------

class Channel:
    """Unbounded byte channel between two adjacent stages of a mixed pipeline.

    The producing side closes it once it has finished; readers then drain
    what is buffered and see end-of-stream. Stages run one after another,
    so writes must never block waiting for a reader.
    """

    def __init__(self) -> None:
        self._chunks: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._pending = b""
        self._eof = False
        self.closed = False

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("write to closed channel")
        if data:
            self._chunks.put(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._chunks.put(None)

    def read1(self, size: int = -1) -> bytes:
        if not self._pending and not self._eof:
            chunk = self._chunks.get()
            if chunk is None:
                self._eof = True
            else:
                self._pending = chunk
        if size < 0 or size >= len(self._pending):
            data, self._pending = self._pending, b""
        else:
            data, self._pending = self._pending[:size], self._pending[size:]
        return data

    def read(self, size: int = -1) -> bytes:
        if size >= 0:
            return self.read1(size)
        parts: List[bytes] = []
        while True:
            chunk = self.read1()
            if not chunk:
                break
            parts.append(chunk)
        return b"".join(parts)


def _pump(source: Any, sink: Any, close_source: bool, close_sink: bool) -> None:
    """Copy `source` into `sink` until end-of-stream."""
    read = getattr(source, "read1", source.read)
    try:
        while True:
            chunk = read(CHUNK_SIZE)
            if not chunk:
                break
            sink.write(chunk)
            sink.flush()
    except BrokenPipeError:
        # Reader went away (e.g. `head`); the rest of the stream is not wanted.
        logger.debug("pump: sink closed early")
    finally:
        if close_source:
            source.close()
        if close_sink:
            try:
                sink.close()
            except BrokenPipeError:
                logger.debug("pump: sink closed before final flush")


def _start_pump(source: Any, sink: Any, *, close_source: bool = False, close_sink: bool = False) -> threading.Thread:
    t = threading.Thread(target=_pump, args=(source, sink, close_source, close_sink), daemon=True)
    t.start()
    return t


def _fileno(stream: Any) -> Optional[int]:
    # io.UnsupportedOperation is both an OSError and a ValueError
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _flush(stream: Any) -> None:
    flush = getattr(stream, "flush", None)
    if callable(flush):
        flush()


# --------- Resolution and redirection ---------

@dataclass
class ResolvedStage:
    command: Command
    handler: Optional[Builtin] = None
    executable: Optional[str] = None

    @property
    def is_builtin(self) -> bool:
        return self.handler is not None


def _resolve_stages(p: Pipeline, session: ShellSession) -> Optional[List[ResolvedStage]]:
    """Classify every stage; report and return None if any name cannot be found."""
    stages: List[ResolvedStage] = []
    for cmd in p.stages:
        handler = BUILTINS.get(cmd.name)
        if handler is not None:
            stages.append(ResolvedStage(cmd, handler=handler))
            continue
        executable = find_executable(cmd.name, session.get_path(), session.cwd)
        if executable is None:
            session.report(f"{cmd.name}: command not found")
            return None
        stages.append(ResolvedStage(cmd, executable=executable))
    return stages


def _open_redirect(redirect: Redirect, session: ShellSession, stack: ExitStack) -> BinaryIO:
    target = session.resolve_path(redirect.path)
    try:
        f = open(target, "ab" if redirect.append else "wb")
    except OSError as e:
        raise RedirectTargetError(f"{redirect.path}: {e.strerror or e}") from e
    return stack.enter_context(f)


# --------- Strategies ---------

def _spawn(stage: ResolvedStage, session: ShellSession, stdin: Any, stdout: Any, stderr: Any) -> subprocess.Popen:
    logger.debug("launching %s (%s)", stage.command.argv, stage.executable)
    return subprocess.Popen(
        stage.command.argv,
        executable=stage.executable,
        stdin=stdin,
        stdout=stdout,
        stderr=stderr,
        cwd=session.cwd,
        env=session.get_env(),
    )


def _run_shell_group(stages: List[ResolvedStage], session: ShellSession, out_sink: BinaryIO, err_sink: BinaryIO) -> int:
    """Run a pipeline made only of external commands, chained with OS pipes.

    Endpoints backed by a file descriptor are handed to the children
    directly; any other stream is fed or drained by a pump thread.
    """
    stdin_fd = _fileno(session.stdin)
    out_fd = _fileno(out_sink)
    err_fd = _fileno(err_sink)
    _flush(out_sink)
    _flush(err_sink)

    procs: List[subprocess.Popen] = []
    pumps: List[threading.Thread] = []
    prev_stdout = None
    last_idx = len(stages) - 1
    try:
        for idx, stage in enumerate(stages):
            if idx == 0:
                stdin = stdin_fd if stdin_fd is not None else subprocess.PIPE
            else:
                stdin = prev_stdout
            if idx == last_idx:
                stdout = out_fd if out_fd is not None else subprocess.PIPE
            else:
                stdout = subprocess.PIPE
            stderr = err_fd if err_fd is not None else subprocess.PIPE

            try:
                proc = _spawn(stage, session, stdin, stdout, stderr)
            except OSError as e:
                logger.debug("failed to start %s: %s", stage.command.name, e)
                session.report(f"{stage.command.name}: command not found")
                # earlier stages keep running; reap whatever has already exited
                for started in procs:
                    started.poll()
                return NOT_FOUND_STATUS
            procs.append(proc)

            if prev_stdout is not None:
                # Allow the upstream stage to receive SIGPIPE if this one exits.
                prev_stdout.close()
                prev_stdout = None

            if idx == 0 and stdin_fd is None:
                pumps.append(_start_pump(session.stdin, proc.stdin, close_sink=True))
            if err_fd is None:
                pumps.append(_start_pump(proc.stderr, err_sink, close_source=True))
            if idx == last_idx:
                if out_fd is None:
                    pumps.append(_start_pump(proc.stdout, out_sink, close_source=True))
            else:
                prev_stdout = proc.stdout

        exit_code = procs[-1].wait()
        for proc in procs[:-1]:
            proc.poll()
        for t in pumps:
            t.join()
        return exit_code
    finally:
        if prev_stdout is not None:
            prev_stdout.close()


def _run_external_stage(stage: ResolvedStage, session: ShellSession, source: Any, feed_stdin: bool, sink: Any, err_sink: Any) -> int:
    proc = _spawn(stage, session, subprocess.PIPE, subprocess.PIPE, subprocess.PIPE)
    assert proc.stdin is not None and proc.stdout is not None and proc.stderr is not None

    # All three pumps must run at once or a child blocked on a full pipe never exits.
    pumps: List[threading.Thread] = []
    if feed_stdin:
        pumps.append(_start_pump(source, proc.stdin, close_sink=True))
    else:
        proc.stdin.close()
    pumps.append(_start_pump(proc.stdout, sink, close_source=True))
    pumps.append(_start_pump(proc.stderr, err_sink, close_source=True))

    exit_code = proc.wait()
    for t in pumps:
        t.join()
    return exit_code


def _run_mixed(stages: List[ResolvedStage], session: ShellSession, out_sink: BinaryIO, err_sink: BinaryIO) -> int:
    """Run a pipeline containing at least one builtin, one stage at a time."""
    source: Any = session.stdin
    from_session_stdin = True
    status = 0
    last_idx = len(stages) - 1

    for idx, stage in enumerate(stages):
        is_last = idx == last_idx
        sink: Any = out_sink if is_last else Channel()
        try:
            if stage.handler is not None:
                status = stage.handler(session, list(stage.command.args), source, sink, err_sink)
            else:
                try:
                    status = _run_external_stage(stage, session, source, not from_session_stdin, sink, err_sink)
                except OSError as e:
                    logger.debug("failed to start %s: %s", stage.command.name, e)
                    session.report(f"{stage.command.name}: command not found")
                    return NOT_FOUND_STATUS
        finally:
            if not is_last:
                sink.close()
        source = sink
        from_session_stdin = False

    return status


# --------- Entry points ---------

def run_pipeline(p: Pipeline, session: ShellSession) -> int:
    """Execute a parsed pipeline and return the status of its last stage."""
    stages = _resolve_stages(p, session)
    if stages is None:
        return NOT_FOUND_STATUS

    with ExitStack() as stack:
        out_sink = _open_redirect(p.stdout, session, stack) if p.stdout else session.stdout
        err_sink = _open_redirect(p.stderr, session, stack) if p.stderr else session.stderr

        if any(stage.is_builtin for stage in stages):
            logger.debug("mixed pipeline: %s", [s.command.name for s in stages])
            return _run_mixed(stages, session, out_sink, err_sink)
        logger.debug("external pipeline: %s", [s.command.name for s in stages])
        return _run_shell_group(stages, session, out_sink, err_sink)


def execute_line(line: str, session: ShellSession) -> int:
    """Parse and run one line of input.

    Parse errors are reported on the session's stderr and nothing runs.
    A line holding only spaces is a no-op.
    """
    try:
        tokens = tokenize(line)
        if not tokens:
            return 0
        pipeline = parse(tokens)
    except ParseError as e:
        session.report(f"pipesh: parse error: {e}")
        return PARSE_ERROR_STATUS
    return run_pipeline(pipeline, session)
