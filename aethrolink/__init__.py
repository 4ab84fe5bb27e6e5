"""ACP runtime dialects, sticky sessions, a node command-line client and fake test agents."""

__version__ = "0.1.0"