"""Persisted binary-path configuration shared by all engines."""

import json
import re
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Literal

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from dbbench.utils import get_logger
from dbbench.utils.exceptions import ValidationError

logger = get_logger(__name__)

BinarySource = Literal["bundled", "system", "custom"]

_VERSION_RE = re.compile(r"(\d+\.\d+(?:\.\d+)?)")


class BinaryConfig(BaseModel):
    """Configuration for a single binary tool."""

    tool: str = Field(..., description="Tool name, e.g. psql or redis-server")
    path: str = Field(..., description="Absolute path to the executable")
    source: BinarySource = Field(default="custom", description="Where the binary came from")
    version: str | None = Field(default=None, description="Detected tool version")


class BinaryConfigData(BaseModel):
    """On-disk shape of the binary configuration file."""

    binaries: Dict[str, BinaryConfig] = Field(default_factory=dict)
    updated_at: datetime | None = None


class DetectionResult(BaseModel):
    """Outcome of a PATH scan for engine tools."""

    found: List[str] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)


class BinaryConfigStore:
    """
    Explicit load/persist store for engine binary paths.

    One instance is created per invocation and handed to every engine that
    needs to resolve a tool; nothing reads the file behind its back.
    """

    def __init__(self, path: Path) -> None:
        """
        Initialize the store.

        Args:
            path: JSON file backing the store
        """
        self.path = Path(path)
        self.data = BinaryConfigData()

    def load(self) -> "BinaryConfigStore":
        """
        Load configuration from disk, resetting it if the file is corrupt.

        Returns:
            The store itself, for chaining
        """
        if not self.path.exists():
            self.data = BinaryConfigData()
            return self

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            self.data = BinaryConfigData.model_validate(raw)
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning(
                "Config file corrupted, resetting to default",
                extra={"config_file": str(self.path), "error": str(e)},
            )
            self.data = BinaryConfigData()
        return self

    def save(self) -> None:
        """Persist configuration to disk."""
        self.data.updated_at = datetime.now(timezone.utc)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.data.model_dump_json(indent=2), encoding="utf-8")
        logger.debug("Binary configuration saved", extra={"config_file": str(self.path)})

    def get(self, tool: str) -> BinaryConfig | None:
        """Get the configuration entry for a tool."""
        return self.data.binaries.get(tool)

    def get_path(self, tool: str) -> str | None:
        """
        Get the configured path for a tool.

        Entries pointing at files that no longer exist are ignored.

        Args:
            tool: Tool name

        Returns:
            Executable path or None
        """
        entry = self.get(tool)
        if entry and Path(entry.path).exists():
            return entry.path
        return None

    def set_path(self, tool: str, path: str, source: BinarySource = "custom") -> BinaryConfig:
        """
        Record a path for a tool and persist the store.

        Args:
            tool: Tool name
            path: Path to the executable
            source: Origin of the binary

        Returns:
            The stored entry

        Raises:
            ValidationError: If the path does not exist
        """
        resolved = Path(path).expanduser()
        if not resolved.exists():
            raise ValidationError(f"No file found at {resolved}")

        entry = BinaryConfig(
            tool=tool,
            path=str(resolved.resolve()),
            source=source,
            version=detect_version(str(resolved)),
        )
        self.data.binaries[tool] = entry
        self.save()
        logger.info("Binary path configured", extra={"tool": tool, "path": entry.path})
        return entry

    def unset(self, tool: str) -> bool:
        """
        Remove a tool's entry and persist the store.

        Returns:
            True if an entry was removed
        """
        removed = self.data.binaries.pop(tool, None) is not None
        if removed:
            self.save()
        return removed

    def detect(self, tools: Iterable[str]) -> DetectionResult:
        """
        Scan PATH for tools and record the ones found as system binaries.

        Entries configured as custom are left untouched.

        Args:
            tools: Tool names to look for

        Returns:
            Which tools were found and which are missing
        """
        result = DetectionResult()
        for tool in sorted(set(tools)):
            existing = self.get(tool)
            if existing and existing.source == "custom" and Path(existing.path).exists():
                result.found.append(tool)
                continue

            found = shutil.which(tool)
            if found:
                self.data.binaries[tool] = BinaryConfig(
                    tool=tool, path=found, source="system", version=detect_version(found)
                )
                result.found.append(tool)
            else:
                self.data.binaries.pop(tool, None)
                result.missing.append(tool)

        self.save()
        logger.info(
            "Binary detection complete",
            extra={"found": len(result.found), "missing": len(result.missing)},
        )
        return result


def detect_version(path: str) -> str | None:
    """
    Run ``<path> --version`` and extract a dotted version number.

    Args:
        path: Executable path

    Returns:
        Version string or None if it could not be determined
    """
    try:
        completed = subprocess.run(
            [path, "--version"], capture_output=True, text=True, timeout=5, check=False
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Version detection failed", extra={"path": path, "error": str(e)})
        return None

    match = _VERSION_RE.search(completed.stdout or completed.stderr or "")
    return match.group(1) if match else None
