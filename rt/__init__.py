"""Release synchronization and orchestration across several git repositories."""

__version__ = "0.1.0"
