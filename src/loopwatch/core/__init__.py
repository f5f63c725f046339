"""Stream classification and stats engine."""
