"""termhost: managed pseudo-terminal sessions for remote clients."""

__version__ = "0.1.0"
