"""Runtime graph execution for declared backend architectures."""

__version__ = "0.1.0"
