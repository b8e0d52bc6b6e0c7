"""challenge_py - command-line client for public coding challenges."""

__version__ = "1.0.0"
