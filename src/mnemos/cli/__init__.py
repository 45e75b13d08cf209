"""Command-line interface for Mnemos."""
