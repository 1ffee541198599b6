"""Command-line interface for BUILDLINE."""
