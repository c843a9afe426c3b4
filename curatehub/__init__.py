"""curatehub — RSS and marketplace plugins behind a thin FastAPI server."""

__version__ = "0.1.0"
