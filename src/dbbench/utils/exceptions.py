"""Custom exceptions for dbbench."""


class DBBenchError(Exception):
    """Base exception for dbbench errors."""

    pass


# Not found


class NotFoundError(DBBenchError):
    """Base exception for missing containers or tools."""

    pass


class ContainerNotFoundError(NotFoundError):
    """Exception raised when a container is not found."""

    def __init__(self, name: str) -> None:
        """
        Initialize ContainerNotFoundError.

        Args:
            name: Container name that was not found
        """
        self.name = name
        super().__init__(f'Container "{name}" not found')


class ToolNotFoundError(NotFoundError):
    """Exception raised when an engine binary cannot be located."""

    def __init__(self, tool: str, hint: str | None = None) -> None:
        """
        Initialize ToolNotFoundError.

        Args:
            tool: Binary name that could not be resolved
            hint: Optional installation hint
        """
        self.tool = tool
        self.hint = hint
        message = f"{tool} not found. Configure it with: dbbench config set {tool} <path>"
        if hint:
            message = f"{message}\n{hint}"
        super().__init__(message)


# Conflicts


class ConflictError(DBBenchError):
    """Base exception for state conflicts."""

    pass


class ContainerAlreadyExistsError(ConflictError):
    """Exception raised when a container with the same name already exists."""

    def __init__(self, name: str) -> None:
        """
        Initialize ContainerAlreadyExistsError.

        Args:
            name: Name that already exists
        """
        self.name = name
        super().__init__(f'Container "{name}" already exists')


class SourceRunningError(ConflictError):
    """Exception raised when cloning a container that is still running."""

    def __init__(self, name: str) -> None:
        """
        Initialize SourceRunningError.

        Args:
            name: Source container name
        """
        self.name = name
        super().__init__(f'Source container "{name}" is running. Stop it first')


class ContainerRunningError(ConflictError):
    """Exception raised when an operation requires a stopped container."""

    def __init__(self, name: str) -> None:
        """
        Initialize ContainerRunningError.

        Args:
            name: Container name
        """
        self.name = name
        super().__init__(f'Container "{name}" is running. Stop it first or use --force')


class PortExhaustedError(ConflictError):
    """Exception raised when no free port is left in a range."""

    def __init__(self, start: int, end: int) -> None:
        """
        Initialize PortExhaustedError.

        Args:
            start: First port of the scanned range
            end: Last port of the scanned range
        """
        self.start = start
        self.end = end
        super().__init__(f"No available ports found in range {start}-{end}")


class DatabaseExistsError(ConflictError):
    """Exception raised when a pull target database already exists."""

    def __init__(self, database: str) -> None:
        """
        Initialize DatabaseExistsError.

        Args:
            database: Database name
        """
        self.database = database
        super().__init__(f'Database "{database}" already exists. Use --force to overwrite')


# Startup


class StartFailureError(DBBenchError):
    """Exception raised when a server fails to launch or become ready."""

    def __init__(
        self,
        message: str,
        output: str = "",
        remediation: str | None = None,
    ) -> None:
        """
        Initialize StartFailureError.

        Args:
            message: Error message
            output: Captured process output (stdout, stderr or log tail)
            remediation: Actionable fix derived from the output, if recognized
        """
        self.output = output
        self.remediation = remediation
        super().__init__(message)


# Validation


class ValidationError(DBBenchError):
    """Base exception for invalid user input."""

    pass


class InvalidNameError(ValidationError):
    """Exception raised for container names that fail validation."""

    def __init__(self, name: str) -> None:
        """
        Initialize InvalidNameError.

        Args:
            name: Rejected name
        """
        self.name = name
        super().__init__(
            f'Invalid container name "{name}": must start with a letter and contain '
            "only letters, digits, hyphens and underscores"
        )


class InvalidEngineError(ValidationError):
    """Exception raised for unknown engine kinds."""

    def __init__(self, engine: str, available: list[str] | None = None) -> None:
        """
        Initialize InvalidEngineError.

        Args:
            engine: Rejected engine name
            available: Supported engine names
        """
        self.engine = engine
        message = f'Unknown engine "{engine}"'
        if available:
            message = f"{message}. Available engines: {', '.join(available)}"
        super().__init__(message)


class InvalidVersionError(ValidationError):
    """Exception raised when a version string cannot be parsed."""

    def __init__(self, version: str, engine: str) -> None:
        """
        Initialize InvalidVersionError.

        Args:
            version: Rejected version string
            engine: Engine the version was meant for
        """
        self.version = version
        self.engine = engine
        super().__init__(f'Invalid {engine} version "{version}"')


class InvalidUrlError(ValidationError):
    """Exception raised when a connection URL cannot be parsed."""

    def __init__(self, reason: str) -> None:
        """
        Initialize InvalidUrlError.

        Args:
            reason: Why the URL was rejected (never the URL itself)
        """
        super().__init__(f"Invalid connection URL: {reason}")


class IncompatibleVersionError(DBBenchError):
    """Exception raised when restore policy vetoes a version combination."""

    def __init__(self, message: str, source_version: str, target_version: str) -> None:
        """
        Initialize IncompatibleVersionError.

        Args:
            message: Policy warning explaining the veto
            source_version: Version the data comes from
            target_version: Version of the local server
        """
        self.source_version = source_version
        self.target_version = target_version
        super().__init__(message)


# Operational


class ContainerNotRunningError(DBBenchError):
    """Exception raised when an operation needs a running container."""

    def __init__(self, name: str) -> None:
        """
        Initialize ContainerNotRunningError.

        Args:
            name: Container name
        """
        self.name = name
        super().__init__(f'Container "{name}" is not running. Run: dbbench start {name}')


class UnsupportedOperationError(DBBenchError):
    """Exception raised when an engine lacks a capability."""

    def __init__(self, engine: str, operation: str) -> None:
        """
        Initialize UnsupportedOperationError.

        Args:
            engine: Engine display name
            operation: Operation that is not supported
        """
        self.engine = engine
        self.operation = operation
        super().__init__(f"{engine} does not support {operation}")


class CommandFailedError(DBBenchError):
    """Exception raised when a client binary exits non-zero where success is required."""

    def __init__(self, message: str, result=None) -> None:
        """
        Initialize CommandFailedError.

        Args:
            message: Error message
            result: CommandResult of the failed invocation
        """
        self.result = result
        super().__init__(message)


class BackupFailedError(DBBenchError):
    """Exception raised when the pre-pull backup could not be written."""

    def __init__(self, database: str, backup_database: str, reason: str) -> None:
        """
        Initialize BackupFailedError.

        Args:
            database: Database that was being backed up
            backup_database: Intended backup database name
            reason: Underlying failure
        """
        self.database = database
        self.backup_database = backup_database
        super().__init__(
            f'Backup of "{database}" to "{backup_database}" failed, nothing was changed: {reason}'
        )


class RestoreFailedError(DBBenchError):
    """Exception raised when a restore fails after the backup was taken."""

    def __init__(self, database: str, reason: str, backup_database: str | None = None) -> None:
        """
        Initialize RestoreFailedError.

        Args:
            database: Target database
            reason: Underlying failure
            backup_database: Backup holding the pre-pull state, if one was made
        """
        self.database = database
        self.backup_database = backup_database
        message = f'Restore into "{database}" failed: {reason}'
        if backup_database:
            message = f'{message}\nOriginal data is preserved in "{backup_database}"'
        super().__init__(message)


class PostScriptError(DBBenchError):
    """Exception raised when a post-pull script exits non-zero."""

    def __init__(self, script: str, exit_code: int) -> None:
        """
        Initialize PostScriptError.

        Args:
            script: Script path
            exit_code: Exit code of the script
        """
        self.script = script
        self.exit_code = exit_code
        super().__init__(f"Post-pull script {script} exited with code {exit_code}")
