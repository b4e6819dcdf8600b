"""Signal escalation used to stop worker and ingest server processes."""
from __future__ import annotations

import logging
import signal
import subprocess
from dataclasses import dataclass
from typing import Optional

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StopResult:
    """Outcome of attempting to stop a child process."""

    returncode: Optional[int]
    escalated: bool = False


class StopStrategy:
    """Terminate a process with SIGTERM and escalate to SIGKILL on timeout.

    ``signal_stop`` only delivers the first signal and never blocks, which is
    what request threads use. ``shutdown`` runs the full escalation and is
    meant for runner threads or process exit.
    """

    def __init__(
        self,
        *,
        terminate_timeout: float = 5.0,
        kill_timeout: float = 2.0,
        stop_signal: int = signal.SIGTERM,
    ) -> None:
        self._terminate_timeout = max(0.0, terminate_timeout)
        self._kill_timeout = max(0.0, kill_timeout)
        self._stop_signal = stop_signal

    @property
    def terminate_timeout(self) -> float:
        return self._terminate_timeout

    def signal_stop(self, process: subprocess.Popen, *, label: str = "process") -> bool:
        """Send the stop signal without waiting; return whether it was delivered."""

        if process.poll() is not None:
            LOGGER.debug("%s (pid=%s) already exited with %s", label, process.pid, process.returncode)
            return False
        try:
            LOGGER.info("Sending %s to %s (pid=%s)", signal.Signals(self._stop_signal).name, label, process.pid)
            process.send_signal(self._stop_signal)
        except ProcessLookupError:
            return False
        except OSError as exc:  # pragma: no cover - system dependent
            LOGGER.warning("Failed to signal %s (pid=%s): %s", label, process.pid, exc)
            return False
        return True

    def escalate(self, process: subprocess.Popen, *, label: str = "process") -> StopResult:
        """Wait for a signalled process and SIGKILL it after the timeout."""

        returncode = self._wait_for_exit(process, self._terminate_timeout)
        if returncode is not None:
            return StopResult(returncode=returncode)

        LOGGER.error("%s (pid=%s) ignored stop signal; sending SIGKILL", label, process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            pass
        except OSError:  # pragma: no cover - system dependent
            LOGGER.exception("Failed to kill %s (pid=%s)", label, process.pid)
        returncode = self._wait_for_exit(process, self._kill_timeout)
        if returncode is None:
            LOGGER.error("%s (pid=%s) still running after SIGKILL attempt", label, process.pid)
        return StopResult(returncode=returncode, escalated=True)

    def shutdown(self, process: subprocess.Popen, *, label: str = "process") -> StopResult:
        """Signal, wait, and escalate until the process exits."""

        if not self.signal_stop(process, label=label):
            return StopResult(returncode=process.poll())
        result = self.escalate(process, label=label)
        if result.returncode is not None:
            LOGGER.info("%s exited with %s", label, result.returncode)
        return result

    @staticmethod
    def _wait_for_exit(process: subprocess.Popen, timeout: float) -> Optional[int]:
        try:
            return process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None


__all__ = ["StopResult", "StopStrategy"]
