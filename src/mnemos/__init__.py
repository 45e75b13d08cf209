"""Mnemos - spaced repetition scheduling and learner progress analytics."""

__version__ = "0.1.0"
