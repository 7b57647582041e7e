"""Run an agent CLI under a wall-clock timeout while draining both pipes."""

import logging
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, IO, List, Optional

from ..errors import ProviderIOError, ProviderNotFoundError, ProviderTimeoutError
from ..utils.process_utils import kill_and_reap, kill_process_group

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.2


@dataclass
class ProcessResult:
    exit_code: int
    stdout: str
    stderr: str


class _PipeReader:
    """Drains one pipe line by line until EOF.

    A failing line callback does not stop the drain; the first such error is
    kept and re-raised by the runner once the process is done.
    """

    def __init__(self, pipe: IO[str], on_line: Optional[Callable[[str], None]]):
        self.pipe = pipe
        self.on_line = on_line
        self.lines: List[str] = []
        self.callback_error: Optional[Exception] = None

    def __call__(self) -> None:
        try:
            for line in self.pipe:
                self.lines.append(line)
                if self.on_line is None or self.callback_error is not None:
                    continue
                try:
                    self.on_line(line)
                except Exception as e:
                    self.callback_error = e
        finally:
            self.pipe.close()

    @property
    def text(self) -> str:
        return "".join(self.lines)


def run_streaming(
    cmd: List[str],
    *,
    cwd: Path,
    timeout_seconds: float,
    on_stdout_line: Optional[Callable[[str], None]] = None,
    on_stderr_line: Optional[Callable[[str], None]] = None,
    env: Optional[Dict[str, str]] = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> ProcessResult:
    """
    Spawn ``cmd`` and stream its output until it exits or times out.

    stdin is closed. stdout and stderr are each drained by their own reader
    thread, so a child that fills one pipe while we read the other cannot
    deadlock. The calling thread only sleeps and polls. The deadline covers
    the readers too: a tool process the child left behind that keeps the
    pipes open past the timeout is killed with the rest of the session.
    Both readers are joined before this function returns or raises,
    including after a timeout kill.

    Args:
        cmd: Command and arguments
        cwd: Working directory for the child
        timeout_seconds: Wall-clock limit
        on_stdout_line: Called from the stdout reader for every line
        on_stderr_line: Called from the stderr reader for every line
        env: Child environment (None inherits ours)
        poll_interval: Seconds between liveness checks

    Returns:
        ProcessResult with the exit code and everything read from both pipes

    Raises:
        ProviderNotFoundError: If the executable does not exist
        ProviderTimeoutError: If the timeout elapsed (child tree killed and reaped)
        ProviderIOError: If spawning or draining failed
    """
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            # Own process group so a timeout kill reaches tool subprocesses too
            start_new_session=True,
        )
    except FileNotFoundError as e:
        raise ProviderNotFoundError(cmd[0]) from e
    except OSError as e:
        raise ProviderIOError(f"failed to spawn {cmd[0]}: {e}") from e

    stdout_reader = _PipeReader(proc.stdout, on_stdout_line)
    stderr_reader = _PipeReader(proc.stderr, on_stderr_line)
    timed_out = False
    start = time.monotonic()

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="provider-pipe") as pool:
        stdout_future = pool.submit(stdout_reader)
        stderr_future = pool.submit(stderr_reader)

        try:
            while proc.poll() is None or not (stdout_future.done() and stderr_future.done()):
                if time.monotonic() - start > timeout_seconds:
                    timed_out = True
                    if proc.poll() is None:
                        logger.warning(
                            f"Process {proc.pid} exceeded {timeout_seconds}s, killing process tree"
                        )
                        kill_and_reap(proc)
                    else:
                        # start_new_session made the child's pid its group id
                        logger.warning(
                            f"Process {proc.pid} exited but its pipes stayed open past "
                            f"{timeout_seconds}s, killing its process group"
                        )
                        kill_process_group(proc.pid)
                    break
                time.sleep(poll_interval)
        except BaseException:
            # Interrupted while polling: do not leave the child running
            kill_and_reap(proc)
            raise
        # Leaving the executor joins both readers

    if timed_out:
        raise ProviderTimeoutError(
            timeout_seconds,
            partial_stdout=stdout_reader.text,
            partial_stderr=stderr_reader.text,
        )

    for future in (stdout_future, stderr_future):
        error = future.exception()
        if error is not None:
            raise ProviderIOError(f"failed reading process output: {error}") from error
    for reader in (stdout_reader, stderr_reader):
        if reader.callback_error is not None:
            raise ProviderIOError(
                f"failed handling process output: {reader.callback_error}"
            ) from reader.callback_error

    return ProcessResult(
        exit_code=proc.returncode,
        stdout=stdout_reader.text,
        stderr=stderr_reader.text,
    )
