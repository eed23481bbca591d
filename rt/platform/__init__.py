"""Platform abstraction layer."""

from .files import atomic_write_text, remove_tree
from .process import ProcessError, run

__all__ = [
    # files
    "atomic_write_text",
    "remove_tree",
    # process
    "ProcessError",
    "run",
]
