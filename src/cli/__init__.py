"""Command-line interface: trade-engine."""
