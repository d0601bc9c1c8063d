"""Package compiled application builds into platform distributable archives."""

__version__ = "0.1.0"
