"""Terminal output: tables and colored results."""

from typing import List

from rich.console import Console
from rich.table import Table

from ..client.models import RunResult, SubmissionResult, TestCaseResult

console = Console()


def create_table(title: str, headers: list) -> Table:
    """Create a formatted table for display."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    for header in headers:
        table.add_column(header)
    return table


def format_result_color(result: str) -> str:
    """Format a verdict with appropriate color."""
    result_upper = (result or "").upper()

    if result_upper in ["AC", "PASSED"]:
        return f"[green]{result}[/green]"
    elif result_upper in ["WA", "RE", "FAILED"]:
        return f"[red]{result}[/red]"
    elif result_upper in ["TLE", "MLE"]:
        return f"[magenta]{result}[/magenta]"
    elif result_upper == "CE":
        return f"[bold red]{result}[/bold red]"
    elif result_upper in ["PENDING", "RUNNING", ""]:
        return f"[yellow]{result or 'PENDING'}[/yellow]"
    else:
        return result


def _number(value) -> str:
    if value is None:
        return "-"
    try:
        return f"{float(value):g}"
    except (TypeError, ValueError):
        return str(value)


def tests_table(title: str, tests: List[TestCaseResult]) -> Table:
    """Table with one row per test case."""
    table = create_table(title, ["#", "Status", "Input", "Output", "Expected", "Time ms"])
    for test in tests:
        table.add_row(
            str(test.seq_no),
            format_result_color(test.status),
            test.input,
            test.output or test.error_message,
            test.expected_output,
            _number(test.time_ms),
        )
    return table


def print_run_result(result: RunResult) -> None:
    """Show a sample run with its summary line."""
    console.print(tests_table("Sample Run", result.tests))
    summary = result.summary
    color = "green" if summary.all_passed else "red"
    console.print(
        f"[{color}]Passed {summary.passed}/{summary.tests_executed}[/{color}]"
        + (f" in {_number(summary.time_ms_total)} ms" if summary.time_ms_total else "")
    )


def print_submission_result(result: SubmissionResult) -> None:
    """Show a graded submission."""
    console.print(f"\nVerdict: {format_result_color(result.verdict)}")
    if result.points_earned is not None:
        console.print(f"Points: [bold]{_number(result.points_earned)}[/bold]")
    if result.tests:
        console.print(tests_table("Tests", result.tests))
    if result.message:
        console.print(f"[dim]{result.message}[/dim]")
