"""
Per-engine version parsing, comparison and restore-compatibility policy.

Each engine is described by a :class:`VersionPolicy`. The functions in this
module are total: unparseable input produces ``None`` (parsing, comparison)
or a permissive verdict with a warning (compatibility), never an exception.
"""

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Tuple

from dbbench.models.schemas import EngineKind

PARSE_FAILURE_WARNING = "Could not parse versions, proceeding with restore"

SEMVER = ("major", "minor", "patch")


@dataclass(frozen=True)
class VersionPolicy:
    """Version format and restore-compatibility policy for one engine."""

    label: str
    components: Tuple[str, ...] = SEMVER
    min_components: int = 2
    floor: Tuple[int, ...] = (0,)
    rule: Literal["major", "month_window"] = "major"
    tolerance_months: int = 6
    max_major_upgrade: Optional[int] = None
    upgrade_warning: Optional[str] = None
    artifact: str = "backup"


@dataclass(frozen=True)
class VersionInfo:
    """Parsed version components, padded to the engine's component count."""

    components: Tuple[int, ...]
    raw: str

    @property
    def major(self) -> int:
        """Leading component (year for calendar-versioned engines)."""
        return self.components[0]

    @property
    def minor(self) -> int:
        """Second component (month for calendar-versioned engines)."""
        return self.components[1] if len(self.components) > 1 else 0


@dataclass(frozen=True)
class Compatibility:
    """Restore-compatibility verdict."""

    compatible: bool
    warning: Optional[str] = None


POLICIES: Dict[EngineKind, VersionPolicy] = {
    EngineKind.CLICKHOUSE: VersionPolicy(
        label="ClickHouse",
        components=("year", "month", "patch", "build"),
        floor=(24,),
        rule="month_window",
    ),
    EngineKind.QDRANT: VersionPolicy(
        label="Qdrant",
        min_components=1,
        floor=(1,),
        artifact="snapshot",
        upgrade_warning="Qdrant will upgrade the snapshot format on next save.",
    ),
    EngineKind.REDIS: VersionPolicy(
        label="Redis",
        min_components=1,
        floor=(6,),
        artifact="RDB backup",
        upgrade_warning="Redis will upgrade the RDB format on next save.",
    ),
    EngineKind.VALKEY: VersionPolicy(
        label="Valkey",
        min_components=1,
        floor=(8,),
        artifact="RDB backup",
        upgrade_warning="Valkey will upgrade the RDB format on next save.",
    ),
    EngineKind.MONGODB: VersionPolicy(
        label="MongoDB",
        floor=(6,),
        max_major_upgrade=1,
        upgrade_warning="Consider running database upgrade procedures after restore.",
    ),
    EngineKind.POSTGRESQL: VersionPolicy(
        label="PostgreSQL",
        components=("major", "minor"),
        min_components=1,
        floor=(14,),
        artifact="dump",
        upgrade_warning="Review the release notes for incompatible changes.",
    ),
    EngineKind.MYSQL: VersionPolicy(
        label="MySQL",
        floor=(5,),
        artifact="dump",
        upgrade_warning="Run mysql_upgrade checks after restore.",
    ),
    EngineKind.MARIADB: VersionPolicy(
        label="MariaDB",
        floor=(10,),
        artifact="dump",
        upgrade_warning="Run mariadb-upgrade after restore.",
    ),
    EngineKind.COUCHDB: VersionPolicy(label="CouchDB", min_components=1, floor=(3,)),
    EngineKind.MEILISEARCH: VersionPolicy(
        label="Meilisearch", min_components=1, floor=(1,), artifact="dump"
    ),
    EngineKind.SQLITE: VersionPolicy(label="SQLite", min_components=1, floor=(3,)),
    # 0.x releases are still accepted
    EngineKind.DUCKDB: VersionPolicy(label="DuckDB", min_components=1, floor=(0,)),
}


def get_policy(engine: EngineKind | str) -> VersionPolicy:
    """
    Get the version policy for an engine.

    Args:
        engine: Engine kind or its string value

    Returns:
        VersionPolicy for that engine

    Raises:
        ValueError: If the engine is unknown
    """
    return POLICIES[EngineKind(engine)]


def parse_version(engine: EngineKind | str, raw: str) -> VersionInfo | None:
    """
    Parse a version string according to the engine's format.

    Accepts surrounding whitespace and a leading ``v``. Missing trailing
    components default to zero.

    Args:
        engine: Engine kind
        raw: Version string

    Returns:
        VersionInfo, or None if the string is not a valid version
    """
    if not isinstance(raw, str):
        return None

    policy = get_policy(engine)
    cleaned = raw.strip()
    if cleaned[:1] in ("v", "V"):
        cleaned = cleaned[1:]

    parts = cleaned.split(".")
    if len(parts) < policy.min_components or len(parts) > len(policy.components):
        return None
    if not all(part.isascii() and part.isdigit() for part in parts):
        return None

    values = [int(part) for part in parts]
    values.extend([0] * (len(policy.components) - len(values)))
    return VersionInfo(components=tuple(values), raw=cleaned)


def compare_versions(engine: EngineKind | str, a: str, b: str) -> int | None:
    """
    Compare two versions component by component.

    Returns:
        -1 if a < b, 0 if equal, 1 if a > b, None if either side fails to parse
    """
    parsed_a = parse_version(engine, a)
    parsed_b = parse_version(engine, b)
    if parsed_a is None or parsed_b is None:
        return None
    if parsed_a.components == parsed_b.components:
        return 0
    return -1 if parsed_a.components < parsed_b.components else 1


def is_version_supported(engine: EngineKind | str, version: str) -> bool:
    """Check whether a version is at or above the engine's supported floor."""
    parsed = parse_version(engine, version)
    if parsed is None:
        return False
    floor = get_policy(engine).floor
    return parsed.components[: len(floor)] >= floor


def is_valid_version_format(engine: EngineKind | str, version: str) -> bool:
    """Check that a version parses and spells out at least two numeric components."""
    parsed = parse_version(engine, version)
    return parsed is not None and len(parsed.raw.split(".")) >= 2


def is_version_compatible(
    engine: EngineKind | str, source_version: str, target_version: str
) -> Compatibility:
    """
    Decide whether data from ``source_version`` may be restored into ``target_version``.

    Args:
        engine: Engine kind
        source_version: Version the data was produced by
        target_version: Version of the server receiving the data

    Returns:
        Compatibility verdict with an optional warning
    """
    policy = get_policy(engine)
    source = parse_version(engine, source_version)
    target = parse_version(engine, target_version)
    if source is None or target is None:
        return Compatibility(compatible=True, warning=PARSE_FAILURE_WARNING)

    prefix = f"{policy.label} {source_version} {policy.artifact} to {target_version} server."

    if policy.rule == "month_window":
        return _month_window_compatibility(policy, source, target, source_version, target_version)

    if source.major > target.major:
        return Compatibility(
            compatible=False,
            warning=f"Cannot restore {prefix} The {policy.artifact} is from a newer major version.",
        )

    if source.major == target.major:
        if source.components > target.components:
            return Compatibility(
                compatible=True,
                warning=f"Restoring {prefix} The target is older, some features may not be available.",
            )
        return Compatibility(compatible=True)

    jump = target.major - source.major
    if policy.max_major_upgrade is not None and jump > policy.max_major_upgrade:
        return Compatibility(
            compatible=False,
            warning=f"Cannot restore {prefix} The version difference is too large.",
        )

    warning = f"Restoring {prefix}"
    if policy.upgrade_warning:
        warning = f"{warning} {policy.upgrade_warning}"
    return Compatibility(compatible=True, warning=warning)


def _month_window_compatibility(
    policy: VersionPolicy,
    source: VersionInfo,
    target: VersionInfo,
    source_version: str,
    target_version: str,
) -> Compatibility:
    source_months = source.major * 12 + source.minor
    target_months = target.major * 12 + target.minor

    if source_months > target_months + policy.tolerance_months:
        return Compatibility(
            compatible=False,
            warning=(
                f"Cannot restore {policy.label} {source_version} {policy.artifact} to "
                f"{target_version} server. The {policy.artifact} is from a much newer version."
            ),
        )

    if source_months == target_months:
        return Compatibility(compatible=True)

    if target_months > source_months:
        return Compatibility(
            compatible=True,
            warning=(
                f"Restoring {policy.label} {source_version} {policy.artifact} to "
                f"{target_version} server. Schema may need updates."
            ),
        )

    return Compatibility(
        compatible=True,
        warning=(
            f"Restoring {policy.label} {source_version} {policy.artifact} to older "
            f"{target_version} server. Some features may not be available."
        ),
    )
