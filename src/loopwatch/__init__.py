"""loopwatch: live stats for agent loop stream-json output."""

__version__ = "0.1.0"
