"""Process supervisor for spawned database servers."""

import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from dbbench.config import Settings, get_settings
from dbbench.utils import get_logger

logger = get_logger(__name__)

IS_WINDOWS = sys.platform.startswith("win")


class ProcessManager:
    """
    Owns the lifecycle of spawned server processes.

    Each container gets a directory ``<containers_dir>/<engine>/<name>`` that
    holds its PID file and log file. The PID file is the only record of a
    live process; it is removed whenever the process is found dead or reused.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """
        Initialize process manager.

        Args:
            settings: Settings to use; defaults to the cached application settings
        """
        self.settings = settings or get_settings()
        # Log size at the latest spawn, keyed by (name, engine)
        self._log_offsets: Dict[Tuple[str, str], int] = {}

    def container_dir(self, name: str, engine: str) -> Path:
        """Directory holding a container's data, logs and PID file."""
        return self.settings.containers_dir / str(engine) / name

    def pid_file(self, name: str, engine: str) -> Path:
        """Path of a container's PID file."""
        return self.container_dir(name, engine) / f"{engine}.pid"

    def log_file(self, name: str, engine: str) -> Path:
        """Path of a container's server log."""
        return self.container_dir(name, engine) / f"{engine}.log"

    def get_pid(self, name: str, engine: str) -> int | None:
        """
        Read the recorded PID of a container.

        Returns:
            PID or None if no valid PID file exists
        """
        pid_path = self.pid_file(name, engine)
        try:
            content = pid_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        first_line = content.splitlines()[0] if content else ""
        return int(first_line) if first_line.isdigit() else None

    def is_running(
        self,
        name: str,
        engine: str,
        signature: str | None = None,
        file_path: str | None = None,
    ) -> bool:
        """
        Check whether a container is running.

        File-based containers are running when their database file exists.
        Server containers are running when their PID is alive and, if the
        command line can be read, it contains ``signature``.

        Args:
            name: Container name
            engine: Engine kind value
            signature: Substring expected in the server's command line
            file_path: Database file for file-based engines

        Returns:
            True if the container is running
        """
        if file_path is not None:
            return Path(file_path).exists()

        pid = self.get_pid(name, engine)
        if pid is None:
            return False

        if not _pid_alive(pid):
            logger.debug("Removing stale PID file", extra={"container": name, "pid": pid})
            self._remove_pid_file(name, engine)
            return False

        if signature:
            cmdline = _read_cmdline(pid)
            if cmdline is not None and signature.lower() not in cmdline.lower():
                logger.info(
                    "PID reused by an unrelated process, removing PID file",
                    extra={"container": name, "pid": pid, "signature": signature},
                )
                self._remove_pid_file(name, engine)
                return False

        return True

    def spawn(
        self,
        name: str,
        engine: str,
        args: List[str],
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> subprocess.Popen:
        """
        Launch a detached server process and record its PID.

        Output is appended to the container's log file; the current end of
        the log is remembered so later tails only show this run's output.

        Args:
            name: Container name
            engine: Engine kind value
            args: Command line
            env: Extra environment merged over the current environment
            cwd: Working directory

        Returns:
            Popen handle of the spawned process

        Raises:
            OSError: If the executable cannot be launched
        """
        log_path = self.log_file(name, engine)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        child_env = dict(os.environ)
        if env:
            child_env.update(env)

        kwargs: Dict[str, object] = {}
        if IS_WINDOWS:
            kwargs["creationflags"] = (
                subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
            )
        else:
            kwargs["start_new_session"] = True

        with open(log_path, "ab") as log:
            self._log_offsets[(name, engine)] = log.tell()
            process = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                cwd=cwd,
                env=child_env,
                **kwargs,
            )

        self.pid_file(name, engine).write_text(f"{process.pid}\n", encoding="utf-8")
        logger.info(
            "Server process spawned",
            extra={"container": name, "engine": engine, "pid": process.pid, "binary": args[0]},
        )
        return process

    def terminate(self, name: str, engine: str, timeout_s: float | None = None) -> bool:
        """
        Stop a container's process: SIGTERM, wait, then SIGKILL.

        Args:
            name: Container name
            engine: Engine kind value
            timeout_s: Grace period before the process is killed

        Returns:
            True if a live process was stopped, False if none was running
        """
        timeout = self.settings.stop_timeout_s if timeout_s is None else timeout_s
        pid = self.get_pid(name, engine)
        if pid is None or not _pid_alive(pid):
            self._remove_pid_file(name, engine)
            return False

        _send_signal(pid, signal.SIGTERM)
        if not self.wait_for_exit(pid, timeout):
            logger.warning(
                "Process did not exit after SIGTERM, killing",
                extra={"container": name, "pid": pid, "timeout_s": timeout},
            )
            _send_signal(pid, getattr(signal, "SIGKILL", signal.SIGTERM))
            self.wait_for_exit(pid, 5)

        self._remove_pid_file(name, engine)
        logger.info("Server process stopped", extra={"container": name, "pid": pid})
        return True

    def wait_for_exit(self, pid: int, timeout_s: float, interval_s: float = 0.1) -> bool:
        """
        Poll until a process exits.

        Returns:
            True if the process exited within the timeout
        """
        deadline = time.monotonic() + timeout_s
        while time.monotonic() < deadline:
            if not _pid_alive(pid):
                return True
            time.sleep(interval_s)
        return not _pid_alive(pid)

    def read_log_tail(self, name: str, engine: str, max_bytes: int = 4096) -> str:
        """
        Read the end of a container's log file.

        After a spawn, only output written since that spawn is returned.

        Args:
            name: Container name
            engine: Engine kind value
            max_bytes: Maximum number of bytes to return

        Returns:
            Log tail, or an empty string when no log exists
        """
        log_path = self.log_file(name, engine)
        try:
            with open(log_path, "rb") as f:
                f.seek(0, os.SEEK_END)
                size = f.tell()
                start = self._log_offsets.get((name, engine), 0)
                f.seek(max(start, size - max_bytes))
                data = f.read()
        except FileNotFoundError:
            return ""
        return data.decode("utf-8", errors="replace")

    def _remove_pid_file(self, name: str, engine: str) -> None:
        self.pid_file(name, engine).unlink(missing_ok=True)


def _pid_alive(pid: int) -> bool:
    if IS_WINDOWS:
        return _read_cmdline(pid) is not None

    # Reap our own exited children so they do not linger as zombies
    try:
        reaped, _ = os.waitpid(pid, os.WNOHANG)
        if reaped == pid:
            return False
    except ChildProcessError:
        pass

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by another user
        return True
    return True


def _send_signal(pid: int, sig: int) -> None:
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        pass


def _read_cmdline(pid: int) -> str | None:
    """Best-effort command line of a process; None when it cannot be read."""
    if sys.platform.startswith("linux"):
        try:
            raw = Path(f"/proc/{pid}/cmdline").read_bytes()
        except OSError:
            return None
        # Empty while a process is being exec'd or is a zombie
        cmdline = raw.replace(b"\0", b" ").decode("utf-8", errors="replace").strip()
        return cmdline or None

    if IS_WINDOWS:
        command = ["tasklist", "/FI", f"PID eq {pid}", "/FO", "CSV", "/NH"]
    else:
        command = ["ps", "-p", str(pid), "-o", "command="]

    try:
        completed = subprocess.run(command, capture_output=True, text=True, timeout=5, check=False)
    except (OSError, subprocess.TimeoutExpired):
        return None

    output = completed.stdout.strip()
    if completed.returncode != 0 or not output:
        return None
    if IS_WINDOWS and f'"{pid}"' not in output:
        return None
    return output


# Global instance
_process_manager: ProcessManager | None = None


def get_process_manager() -> ProcessManager:
    """Get or create the global process manager instance."""
    global _process_manager
    if _process_manager is None:
        _process_manager = ProcessManager()
    return _process_manager
