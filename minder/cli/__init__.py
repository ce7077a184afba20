"""Command line interface for minder."""
