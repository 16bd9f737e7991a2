"""Supervision of the spawned node process."""

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

# How much of the node's stderr is echoed when it dies.
_STDERR_TAIL_BYTES = 4096


class NodeExitedError(Exception):
    """Raised when the node process exits while it should be running."""


class NodeProcess:
    """Owns a running node and guarantees it does not outlive us.

    The node's stdout is discarded and its stderr goes to *log_path*, so a
    chatty node can never block on a full pipe.

    Args:
        args: Full command line, binary first.
        log_path: File receiving the node's stderr.
        terminate_timeout: Seconds to wait after SIGTERM before SIGKILL.
    """

    def __init__(
        self,
        args: list[str],
        log_path: Path,
        terminate_timeout: float = 10.0,
    ) -> None:
        self.args = args
        self.log_path = Path(log_path)
        self.terminate_timeout = terminate_timeout
        self.terminated = False

        logger.debug("Spawning %s", " ".join(args))
        self._log_file = open(self.log_path, "wb")
        try:
            self._proc = subprocess.Popen(
                args,
                stdout=subprocess.DEVNULL,
                stderr=self._log_file,
            )
        except OSError:
            self._log_file.close()
            raise

    @property
    def pid(self) -> int:
        return self._proc.pid

    def __enter__(self) -> "NodeProcess":
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not self.terminated:
            self.kill()

    def check(self) -> None:
        """Make sure the node is still running.

        Raises:
            NodeExitedError: If the process has exited.
        """
        if self.terminated:
            return

        status = self._proc.poll()
        if status is None:
            return

        self.terminated = True
        self._log_file.close()
        tail = self.stderr_tail()
        if tail:
            logger.error("Node stderr:\n%s", tail)
        raise NodeExitedError(f"Process exited unexpectedly with status {status}")

    def terminate(self) -> int | None:
        """Stop the node with SIGTERM, escalating to SIGKILL on timeout.

        Calling it again after the node stopped is a no-op.

        Returns:
            The exit status, or ``None`` if already terminated.
        """
        if self.terminated:
            return None

        self._proc.terminate()
        try:
            status = self._proc.wait(timeout=self.terminate_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Force-kill the process.")
            self._proc.kill()
            status = self._proc.wait()

        self.terminated = True
        self._log_file.close()
        logger.debug("Node %d stopped with status %s", self.pid, status)
        return status

    def kill(self) -> None:
        """SIGKILL the node without grace period."""
        if self.terminated:
            return
        logger.warning("Force-kill the process.")
        self._proc.kill()
        self._proc.wait()
        self.terminated = True
        self._log_file.close()

    def stderr_tail(self) -> str:
        """Return the last few KiB of the node's stderr log."""
        try:
            data = self.log_path.read_bytes()
        except OSError:
            return ""
        return data[-_STDERR_TAIL_BYTES:].decode("utf-8", errors="replace").strip()
