"""Readiness probes and the bounded polling loop used after a server is spawned."""

import socket
import subprocess
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

import httpx

from dbbench.utils import get_logger

logger = get_logger(__name__)


class Probe(Protocol):
    """A single readiness check."""

    def check(self) -> bool:
        """Return True when the server is ready."""
        ...


@dataclass
class TcpProbe:
    """Ready when a TCP connection can be opened."""

    host: str
    port: int
    timeout_s: float = 1.0

    def check(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout_s):
                return True
        except OSError:
            return False


@dataclass
class HttpProbe:
    """Ready when an HTTP GET returns a 2xx status."""

    url: str
    timeout_s: float = 2.0

    def check(self) -> bool:
        try:
            response = httpx.get(self.url, timeout=self.timeout_s)
        except httpx.HTTPError:
            return False
        return response.is_success


@dataclass
class CommandProbe:
    """Ready when a client command exits 0 and, optionally, prints an expected token."""

    args: List[str]
    expect: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    timeout_s: float = 5.0
    last_output: str = field(default="", repr=False)

    def check(self) -> bool:
        try:
            completed = subprocess.run(
                self.args,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                env=self.env,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        self.last_output = (completed.stdout or "") + (completed.stderr or "")
        if completed.returncode != 0:
            return False
        if self.expect is not None:
            return self.expect in completed.stdout
        return True


def wait_for_ready(
    probe: Probe,
    max_attempts: int = 30,
    interval_s: float = 0.5,
    alive: Callable[[], bool] | None = None,
) -> bool:
    """
    Poll a probe at a fixed interval until it succeeds or attempts run out.

    Args:
        probe: Readiness probe
        max_attempts: Maximum number of checks
        interval_s: Sleep between checks
        alive: Optional callback; when it returns False polling stops early

    Returns:
        True if the probe succeeded
    """
    for attempt in range(1, max_attempts + 1):
        if probe.check():
            logger.debug("Readiness probe succeeded", extra={"attempt": attempt})
            return True
        if alive is not None and not alive():
            logger.debug("Process exited before becoming ready", extra={"attempt": attempt})
            return False
        if attempt < max_attempts:
            time.sleep(interval_s)
    return False
