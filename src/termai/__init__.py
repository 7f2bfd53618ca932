"""termai: natural language to shell commands, in your terminal."""

__version__ = "0.1.0"
