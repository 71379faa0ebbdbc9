"""
Bridge Installer Smoke Probe

Best-effort liveness check of the freshly registered bridge entry.
"""

import subprocess
import time
from typing import Dict, Optional

from .config import get_config
from .models import ServiceEntry, ProbeOutcome, ProbeResult


def verify(
    entry: ServiceEntry,
    timeout: Optional[float] = None,
    env: Optional[Dict[str, str]] = None,
) -> ProbeResult:
    """
    Launch the entry's command the way Claude Desktop would and stop it shortly after.

    Output is discarded. Any exit code, and running until the deadline, both
    count as the bridge having launched. Nothing is raised; the outcome is
    diagnostics only.

    Args:
        entry: The ServiceEntry just written to the config
        timeout: Seconds to let it run (default: configured probe_timeout)
        env: Environment for the child, e.g. with the freshly installed Node on PATH

    Returns:
        ProbeResult describing what happened
    """
    timeout = get_config().probe_timeout if timeout is None else timeout
    command = [entry.command, *entry.args]
    started = time.monotonic()

    try:
        proc = subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=env,
        )
    except FileNotFoundError as e:
        return ProbeResult(ProbeOutcome.NOT_FOUND, command, detail=str(e))
    except OSError as e:
        return ProbeResult(ProbeOutcome.FAILED, command, detail=str(e))

    try:
        return_code = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        _stop(proc)
        return ProbeResult(
            ProbeOutcome.TIMED_OUT,
            command,
            duration=time.monotonic() - started,
        )

    return ProbeResult(
        ProbeOutcome.EXITED,
        command,
        return_code=return_code,
        duration=time.monotonic() - started,
    )


def _stop(proc: subprocess.Popen, grace: float = 1.0) -> None:
    """SIGTERM, then SIGKILL if it doesn't go away within grace seconds."""
    try:
        proc.terminate()
        try:
            proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait(timeout=grace)
    except (OSError, subprocess.TimeoutExpired):
        # Already gone, or unkillable; either way we are done waiting
        pass
