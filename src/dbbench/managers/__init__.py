"""Manager modules for business logic."""

# Leaf managers first: engines import them while this package is initializing
from .library_env import detect_library_error, get_library_env
from .port_manager import PortManager
from .process_manager import ProcessManager, get_process_manager
from .container_manager import ContainerManager, get_container_manager
from .pull_manager import PullManager, backup_name, get_pull_manager, redact_url

__all__ = [
    "ContainerManager",
    "PortManager",
    "ProcessManager",
    "PullManager",
    "backup_name",
    "detect_library_error",
    "get_container_manager",
    "get_library_env",
    "get_process_manager",
    "get_pull_manager",
    "redact_url",
]
