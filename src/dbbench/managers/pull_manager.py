"""Pull remote databases into local containers with backup and dry-run semantics."""

import json
import os
import subprocess
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from dbbench.engines.versions import is_version_compatible
from dbbench.managers.container_manager import ContainerManager, get_container_manager
from dbbench.models.containers import Container
from dbbench.models.schemas import EngineConfig, PullRequest, PullResult
from dbbench.utils import get_logger
from dbbench.utils.exceptions import (
    BackupFailedError,
    ContainerNotRunningError,
    DatabaseExistsError,
    DBBenchError,
    IncompatibleVersionError,
    InvalidUrlError,
    PostScriptError,
    RestoreFailedError,
    UnsupportedOperationError,
    ValidationError,
)

logger = get_logger(__name__)

MASK = "***"
INVALID_URL = "[invalid url]"
DRY_RUN_MESSAGE = "[DRY RUN] No changes made"


def redact_url(url: str) -> str:
    """
    Replace the password of a connection URL with ``***``.

    Scheme, user, host, port, path and query are preserved. URLs without a
    password are returned unchanged and malformed input yields
    ``[invalid url]``. Never raises.

    Args:
        url: Connection URL

    Returns:
        Redacted URL
    """
    if not isinstance(url, str):
        return INVALID_URL
    try:
        parts = urlsplit(url.strip())
        parts.port
    except ValueError:
        return INVALID_URL

    if not parts.scheme or not (parts.netloc or parts.path):
        return INVALID_URL
    if parts.password is None:
        return url

    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    user = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{user}:{MASK}@{hostinfo}"))


def backup_name(database: str, when: datetime) -> str:
    """Name of the sibling database holding a pre-pull backup: ``<database>_YYYYMMDD_HHMMSS``."""
    return f"{database}_{when.strftime('%Y%m%d_%H%M%S')}"


class PullManager:
    """Replicates remote databases into running local containers."""

    def __init__(
        self,
        container_manager: ContainerManager | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize pull manager.

        Args:
            container_manager: Container registry
            clock: Source of the local time used in backup names
        """
        self.containers = container_manager or get_container_manager()
        self.clock = clock or datetime.now

    def pull(self, request: PullRequest) -> PullResult:
        """
        Pull a remote database into a local container.

        Replace mode (the default) backs up the target database into a
        timestamped sibling before overwriting it. Clone mode
        (``as_database``) restores into a new sibling database instead.

        Args:
            request: Pull request

        Returns:
            PullResult describing the outcome

        Raises:
            ContainerNotFoundError: If the container does not exist
            ContainerNotRunningError: If the container is not running
            ValidationError: For invalid flag combinations or unknown databases
            DatabaseExistsError: If the clone target exists and force is not set
            IncompatibleVersionError: If the remote version cannot be restored locally
            BackupFailedError: If the backup fails; nothing was changed
            RestoreFailedError: If the restore fails; carries the backup name
            PostScriptError: If the post-pull script fails
        """
        container, engine, config = self.containers.resolve(request.container)
        if not engine.supports_pull:
            raise UnsupportedOperationError(engine.display_name, "pull")
        if not engine.is_running(config):
            raise ContainerNotRunningError(container.name)

        source = redact_url(request.from_url)
        if source == INVALID_URL:
            raise InvalidUrlError("could not parse the source URL")

        clone = bool(request.as_database)
        if request.no_backup and not request.force and not clone:
            raise ValidationError("--no-backup discards the current data and requires --force")

        target = request.as_database if clone else (request.database or container.database)
        tracked = list(container.databases or [container.database])
        if clone:
            if target in tracked and not request.force:
                raise DatabaseExistsError(target)
        elif target not in tracked:
            raise ValidationError(f'Database "{target}" does not exist')

        skip_backup = clone or (request.no_backup and request.force)
        # A post-script always sees the original data; under --no-backup that copy is temporary
        temporary_backup = skip_backup and not clone and bool(request.post_script)
        backup_db = (
            None if skip_backup and not temporary_backup else backup_name(target, self.clock())
        )
        kept_backup = None if temporary_backup else backup_db

        if request.dry_run:
            return self._result(
                engine, config, target, kept_backup, source, clone, message=DRY_RUN_MESSAGE
            )

        self._check_versions(engine, config, request.from_url)

        logger.info(
            "Pulling remote database",
            extra={
                "container": container.name,
                "database": target,
                "mode": "clone" if clone else "replace",
                "source": source,
            },
        )

        with tempfile.TemporaryDirectory(prefix="dbbench-pull-") as tmp:
            remote_dump = str(Path(tmp) / "remote.dump")
            engine.dump_from_connection_string(request.from_url, remote_dump)

            if clone:
                self._clone_into(engine, config, target, remote_dump, replace=target in tracked)
            else:
                self._replace(engine, config, target, backup_db, remote_dump, tmp)

        for database in (target, kept_backup):
            if database:
                self.containers.add_database(container.name, database)

        if clone:
            message = f'Cloned remote data into new database "{target}"'
        elif kept_backup:
            message = f'Pulled remote data into "{target}", backup at "{kept_backup}"'
        else:
            message = f'Pulled remote data into "{target}"'
        result = self._result(engine, config, target, kept_backup, source, clone, message=message)

        if request.post_script:
            original_url = engine.get_connection_string(config, backup_db) if backup_db else None
            try:
                self.run_post_script(
                    request.post_script,
                    container,
                    result,
                    original_database=backup_db,
                    original_url=original_url,
                )
            finally:
                if temporary_backup:
                    self._discard_backup(engine, config, backup_db)

        logger.info("Pull complete", extra={"container": container.name, "database": target})
        return result

    def _check_versions(self, engine, config: EngineConfig, url: str) -> None:
        local_version = engine.get_version(config)
        remote_version = engine.get_remote_version(url)
        if not local_version or not remote_version:
            logger.debug(
                "Skipping version check, version unknown",
                extra={"local_version": local_version, "remote_version": remote_version},
            )
            return

        verdict = is_version_compatible(config.engine, remote_version, local_version)
        if not verdict.compatible:
            raise IncompatibleVersionError(
                verdict.warning or "Incompatible versions", remote_version, local_version
            )
        if verdict.warning:
            logger.warning(
                verdict.warning,
                extra={"local_version": local_version, "remote_version": remote_version},
            )

    def _replace(
        self,
        engine,
        config: EngineConfig,
        target: str,
        backup_db: Optional[str],
        remote_dump: str,
        tmp: str,
    ) -> None:
        if backup_db:
            original_dump = str(Path(tmp) / "original.dump")
            try:
                engine.create_database(config, backup_db)
                engine.dump_database(config, target, original_dump)
                engine.restore(config, original_dump, backup_db)
            except DBBenchError as e:
                self._drop_quietly(engine, config, backup_db)
                raise BackupFailedError(target, backup_db, str(e)) from e
            logger.info("Backup created", extra={"database": target, "backup": backup_db})

        try:
            engine.terminate_connections(config, target)
            engine.drop_database(config, target)
            engine.create_database(config, target)
            engine.restore(config, remote_dump, target)
        except DBBenchError as e:
            raise RestoreFailedError(target, str(e), backup_database=backup_db) from e

    def _clone_into(
        self, engine, config: EngineConfig, target: str, remote_dump: str, replace: bool
    ) -> None:
        if replace:
            engine.terminate_connections(config, target)
            engine.drop_database(config, target)

        created = False
        try:
            engine.create_database(config, target)
            created = True
            engine.restore(config, remote_dump, target)
        except DBBenchError as e:
            if created:
                self._drop_quietly(engine, config, target)
            raise RestoreFailedError(target, str(e)) from e

    def _drop_quietly(self, engine, config: EngineConfig, database: str) -> None:
        try:
            engine.drop_database(config, database)
        except DBBenchError as e:
            logger.warning(
                "Could not drop partially created database",
                extra={"database": database, "error": str(e)},
            )

    def _discard_backup(self, engine, config: EngineConfig, database: str) -> None:
        try:
            engine.terminate_connections(config, database)
            engine.drop_database(config, database)
        except DBBenchError as e:
            logger.warning(
                "Could not drop temporary backup", extra={"database": database, "error": str(e)}
            )
            return
        logger.debug("Temporary backup dropped", extra={"database": database})

    def _result(
        self,
        engine,
        config: EngineConfig,
        target: str,
        backup_db: Optional[str],
        source: str,
        clone: bool,
        message: str,
    ) -> PullResult:
        return PullResult(
            success=True,
            mode="clone" if clone else "replace",
            container=config.name,
            port=config.port,
            database=target,
            database_url=engine.get_connection_string(config, target),
            backup_database=backup_db,
            backup_url=engine.get_connection_string(config, backup_db) if backup_db else None,
            source=source,
            message=message,
        )

    def run_post_script(
        self,
        script: str,
        container: Container,
        result: PullResult,
        original_database: Optional[str] = None,
        original_url: Optional[str] = None,
    ) -> None:
        """
        Run a post-pull script with the pull context in its environment.

        The context is written to a JSON file whose path is passed in
        ``DBBENCH_CONTEXT``; the main fields are also exported directly.
        ``original_database`` holds the pre-pull data, which may be a
        temporary copy that is dropped once the script returns.

        Raises:
            PostScriptError: If the script cannot be run or exits non-zero
        """
        context: Dict[str, Any] = {
            "container": container.name,
            "engine": container.engine,
            "mode": result.mode,
            "port": result.port,
            "new_database": result.database,
            "new_url": result.database_url,
            "original_database": original_database,
            "original_url": original_url,
        }

        fd, context_file = tempfile.mkstemp(prefix="dbbench-context-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(context, f, indent=2)

            env = dict(os.environ)
            env.update(
                {
                    "DBBENCH_CONTEXT": context_file,
                    "DBBENCH_CONTAINER": container.name,
                    "DBBENCH_DATABASE": result.database,
                    "DBBENCH_BACKUP_DATABASE": original_database or "",
                    "DBBENCH_PORT": "" if result.port is None else str(result.port),
                    "DBBENCH_ENGINE": container.engine,
                }
            )

            logger.info("Running post-pull script", extra={"script": script})
            try:
                completed = subprocess.run([script], env=env, check=False)
            except OSError as e:
                logger.error("Post-pull script could not be run", extra={"error": str(e)})
                raise PostScriptError(script, 127) from e

            if completed.returncode != 0:
                raise PostScriptError(script, completed.returncode)
        finally:
            Path(context_file).unlink(missing_ok=True)


# Global instance
_pull_manager: PullManager | None = None


def get_pull_manager() -> PullManager:
    """Get or create the global pull manager instance."""
    global _pull_manager
    if _pull_manager is None:
        _pull_manager = PullManager()
    return _pull_manager
