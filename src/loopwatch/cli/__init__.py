"""Command line interface and terminal dashboard."""
