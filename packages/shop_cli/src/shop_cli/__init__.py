from .app import create_app, main
from .kernel import Kernel
from .plugin import ENTRY_POINT_GROUP, CommandRegistrar, Plugin, load_plugins
from .utils import exit_on_error, get_kernel, parse_entity_counts

__all__ = [
    "ENTRY_POINT_GROUP",
    "CommandRegistrar",
    "Kernel",
    "Plugin",
    "create_app",
    "exit_on_error",
    "get_kernel",
    "load_plugins",
    "main",
    "parse_entity_counts",
]
