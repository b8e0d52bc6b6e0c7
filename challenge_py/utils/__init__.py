"""Utility functions."""

from .terminal import (
    console,
    create_table,
    format_result_color,
    print_run_result,
    print_submission_result,
    tests_table,
)
from .text import html_to_text, shorten

__all__ = [
    "console",
    "create_table",
    "format_result_color",
    "print_run_result",
    "print_submission_result",
    "tests_table",
    "html_to_text",
    "shorten",
]
