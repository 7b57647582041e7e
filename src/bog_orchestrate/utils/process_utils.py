"""Process management utilities for killing agent process trees."""

import logging
import os
import signal
import subprocess

logger = logging.getLogger(__name__)


def kill_process_tree(pid: int, sig: int = signal.SIGKILL) -> None:
    """Send signal to the child's whole process group, falling back to the single process.

    Providers spawn agent CLIs with start_new_session=True, so the child leads
    its own group and killpg also reaches tool subprocesses it started.
    """
    try:
        pgid = os.getpgid(pid)
        os.killpg(pgid, sig)
    except (ProcessLookupError, PermissionError):
        pass
    except OSError:
        # Not a group leader
        try:
            os.kill(pid, sig)
        except (ProcessLookupError, PermissionError):
            pass


def kill_and_reap(proc: subprocess.Popen) -> int:
    """Kill a running child and its group, then wait for it so no zombie is left."""
    kill_process_tree(proc.pid, signal.SIGKILL)
    returncode = proc.wait()
    logger.debug(f"Reaped process {proc.pid} (exit {returncode})")
    return returncode


def kill_process_group(pgid: int, sig: int = signal.SIGKILL) -> None:
    """Signal a process group whose leader may already have been reaped."""
    try:
        os.killpg(pgid, sig)
    except (ProcessLookupError, PermissionError):
        pass
