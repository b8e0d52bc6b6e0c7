"""Command-line interface for challenge_py."""

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .client import ApiError, ChallengeClient, FirebasePhoneAuth
from .client.models import Problem
from .config import GlobalConfig, LocalConfig
from .session import (
    ChallengeSession,
    SessionClock,
    ChallengeStatus,
    McqSession,
    SessionState,
    derive_status,
    filter_challenges,
    format_phone_for_display,
    supported_languages,
)
from .session.registration import RegistrationOutcome
from .session.templates import LANGUAGES, language_for_extension
from .utils.terminal import (
    console,
    create_table,
    print_run_result,
    print_submission_result,
)
from .utils.text import html_to_text, shorten


logger = logging.getLogger(__name__)

WATCH_INTERVAL = 0.5

LANG_OPTION = click.option(
    "-l", "--lang", type=click.Choice([lang["value"] for lang in LANGUAGES])
)
UNLOCK_OPTION = click.option(
    "--unlock", is_flag=True, default=False, help="Work on a problem that is already solved"
)


def setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=debug)],
        force=True,
    )
    # Keep request noise out of debug output
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def run_async(coro):
    """Run a command coroutine, printing API failures instead of tracebacks."""
    try:
        return asyncio.run(coro)
    except ApiError as e:
        console.print(f"[red]Error: {e.message}[/red]")
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")
    return None


def challenge_ref(challenge: Optional[str]) -> str:
    """Use the argument, or the challenge saved in the local config."""
    if challenge:
        return challenge
    config = LocalConfig.load()
    if config and config.challenge:
        return config.challenge
    raise click.UsageError("No challenge given and none saved with set-language --challenge")


def make_session(challenge: Optional[str]) -> Tuple[ChallengeSession, GlobalConfig]:
    config = GlobalConfig.load()
    client = ChallengeClient(config)
    provider = None
    if config.has_phone_auth():
        provider = FirebasePhoneAuth(
            config.firebase_api_key,
            config.recaptcha_token or None,
            timeout=config.request_timeout,
        )
    session = ChallengeSession(
        client, challenge_ref(challenge), provider=provider, country_code=config.country_code
    )
    return session, config


async def open_registered(challenge: Optional[str]) -> Optional[ChallengeSession]:
    """Load a challenge and restore a registered session, or explain what is missing."""
    session, config = make_session(challenge)
    await session.load()
    await session.restore(config.phone or None)

    if session.state is SessionState.REGISTERED:
        return session
    if session.gate.is_verified:
        message = session.resolver.error or "Registration details are still needed."
        console.print(f"[yellow]{message}[/yellow]")
        console.print("Run [bold]challenge_py register[/bold] first.")
    else:
        console.print("[yellow]Phone not verified for this challenge.[/yellow]")
        console.print("Run [bold]challenge_py verify[/bold] first.")
    return None


def find_problem(session: ChallengeSession, problem_ref: str) -> Optional[Problem]:
    problem = session.challenge.get_problem(problem_ref)
    if problem is None:
        console.print(f"[red]Problem {problem_ref} not found in this challenge.[/red]")
    return problem


def pick_language(
    session: ChallengeSession,
    problem: Problem,
    lang: Optional[str],
    file: Optional[Path] = None,
) -> Optional[str]:
    """Explicit option, then file extension, then saved preferences."""
    language = lang
    if language is None and file is not None:
        language = language_for_extension(file.suffix)
    if language is None:
        local = LocalConfig.load()
        default = local.default_language if local else "python"
        language = session.language_for(problem, default)

    allowed = [entry["value"] for entry in supported_languages(problem.interface_spec)]
    if language not in allowed:
        console.print(f"[red]Language {language} is not available for this problem.[/red]")
        console.print(f"[yellow]Available: {', '.join(allowed)}[/yellow]")
        return None
    return language


@click.group()
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, default=False, help="Enable debug output")
def cli(debug: bool):
    """challenge_py - CLI client for public coding challenges."""
    setup_logging(debug)


@cli.command()
def version():
    """Print the client version."""
    console.print(f"challenge_py {__version__}")


@cli.command()
@click.option("-s", "--search", help="Only challenges whose title or description matches")
def challenges(search: Optional[str]):
    """List public challenges that are open or running."""
    client = ChallengeClient()
    try:
        found, date_header = client.get_challenges()
    except ApiError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        return

    now = datetime.now(timezone.utc)
    if date_header:
        try:
            now = parsedate_to_datetime(date_header)
        except (TypeError, ValueError):
            logger.debug("Unparseable Date header: %s", date_header)

    visible = filter_challenges(found, now, search)
    if not visible:
        console.print("[yellow]No challenges found.[/yellow]")
        return

    table = Table(title="Challenges", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="cyan")
    table.add_column("Slug", style="yellow")
    table.add_column("Title", style="white")
    table.add_column("Status", style="magenta")
    table.add_column("Starts", style="green")
    for challenge in visible:
        start = challenge.challenge_start_at
        table.add_row(
            str(challenge.id),
            challenge.slug,
            challenge.title,
            derive_status(challenge, now).value.replace("_", " "),
            start.astimezone().strftime("%d %b %Y %H:%M") if start else "--",
        )
    console.print(table)


@cli.command()
@click.argument("challenge", required=False)
def show(challenge: Optional[str]):
    """Show the details and schedule of a challenge."""

    async def main():
        session, _ = make_session(challenge)
        loaded = await session.load()
        status = session.status()

        console.print(f"\n[bold cyan]{loaded.title}[/bold cyan] ({loaded.slug or loaded.id})")
        console.print(f"[bold cyan]Status:[/bold cyan] {status.value.replace('_', ' ')}")
        for label, value in (
            ("Registration opens", loaded.registration_start_at),
            ("Registration closes", loaded.registration_end_at),
            ("Starts", loaded.challenge_start_at),
            ("Ends", loaded.challenge_end_at),
        ):
            if value:
                when = value.astimezone().strftime("%d %b %Y %H:%M")
                console.print(f"[bold cyan]{label}:[/bold cyan] {when}")
        if status is ChallengeStatus.ONGOING:
            console.print(f"[bold cyan]Time remaining:[/bold cyan] {session.remaining()}")
        console.print(f"[bold cyan]Registrations:[/bold cyan] {loaded.registration_count}")
        if loaded.description:
            console.print(f"\n{html_to_text(loaded.description)}")

    run_async(main())


@cli.command()
@click.argument("challenge", required=False)
@click.option("--phone", help="Phone number to verify (default: last used)")
def verify(challenge: Optional[str], phone: Optional[str]):
    """Verify your phone number with a one-time code."""

    async def main():
        session, config = make_session(challenge)
        await session.load()
        gate = session.gate

        if gate.restore(phone or config.phone or None):
            shown = format_phone_for_display(gate.verified_phone)
            console.print(f"[green]{shown} is already verified.[/green]")
        else:
            if session.provider is None:
                console.print("[red]Phone verification is not configured.[/red]")
                console.print("[yellow]Set CHALLENGE_FIREBASE_API_KEY first.[/yellow]")
                return
            number = phone or click.prompt("Phone number", default=config.phone or None)
            if not await gate.request_code(number):
                console.print(f"[red]{gate.error}[/red]")
                return
            console.print(f"[cyan]Code sent to {format_phone_for_display(gate.phone)}[/cyan]")

            while True:
                code = click.prompt("6-digit code (or 'r' to resend)")
                if code.strip().lower() == "r":
                    if not await gate.resend():
                        console.print(f"[red]{gate.error}[/red]")
                    continue
                if await gate.confirm_code(code):
                    break
                console.print(f"[red]{gate.error}[/red]")

            console.print("[green]Phone verified.[/green]")
            config.phone = gate.verified_phone
            config.save()

        outcome = await session.resolve()
        if outcome is None:
            console.print(f"[red]{session.resolver.error}[/red]")
        elif outcome is RegistrationOutcome.NEEDS_DETAILS:
            console.print("[yellow]Registration details needed.[/yellow]")
            console.print("Run [bold]challenge_py register[/bold] to complete registration.")
        else:
            name = session.identity.user_name or "there"
            console.print(f"[green]Welcome, {name}! You are registered.[/green]")

    run_async(main())


@cli.command()
@click.argument("challenge", required=False)
def register(challenge: Optional[str]):
    """Register for a challenge after verifying your phone."""

    async def main():
        session, config = make_session(challenge)
        await session.load()
        outcome = await session.restore(config.phone or None)
        if not session.gate.is_verified:
            console.print("[yellow]Phone not verified. Run challenge_py verify first.[/yellow]")
            return
        if session.state is SessionState.REGISTERED:
            console.print("[green]You are already registered for this challenge.[/green]")
            return
        if outcome is None and session.resolver.error:
            console.print(f"[red]{session.resolver.error}[/red]")

        details = {
            "name": click.prompt("Full name", default=session.identity.user_name or ""),
            "email": click.prompt("Email", default="", show_default=False),
            "college_name": click.prompt("College", default="", show_default=False),
            "qualification": click.prompt("Qualification", default="", show_default=False),
            "year_of_passing": click.prompt("Year of passing", default="", show_default=False),
            "address": click.prompt("Address", default="", show_default=False),
        }
        if await session.register(details):
            console.print("[green]Registration successful.[/green]")
            if session.identity.access_code:
                console.print(
                    f"[bold cyan]Access code:[/bold cyan] {session.identity.access_code}"
                )
        else:
            console.print(f"[red]{session.resolver.error}[/red]")

    run_async(main())


@cli.command()
@click.argument("challenge", required=False)
def problems(challenge: Optional[str]):
    """List the coding problems of a challenge."""

    async def main():
        session = await open_registered(challenge)
        if session is None:
            return
        found = await session.problems()
        if not found:
            console.print("[yellow]No problems found in this challenge.[/yellow]")
            return

        table = create_table("Problems", ["ID", "Title", "Difficulty", "Points", "Solved"])
        for problem in found:
            table.add_row(
                str(problem.id),
                problem.title,
                problem.difficulty,
                "-" if problem.points is None else f"{problem.points:g}",
                "[green]yes[/green]" if problem.is_solved else "",
            )
        console.print(table)

    run_async(main())


@cli.command()
@click.argument("challenge")
@click.argument("problem")
def statement(challenge: str, problem: str):
    """Print a problem statement and its sample tests."""

    async def main():
        session = await open_registered(challenge)
        if session is None:
            return
        await session.problems()
        found = find_problem(session, problem)
        if found is None:
            return
        console.print(f"\n[bold cyan]{found.title}[/bold cyan]")
        console.print(html_to_text(found.description))
        for idx, sample in enumerate(found.sample_test_cases, 1):
            console.print(f"\n[bold]Sample {idx}[/bold]\n[cyan]Input:[/cyan]\n{sample.input}")
            console.print(f"[cyan]Output:[/cyan]\n{sample.output}")

    run_async(main())


async def watch_file(session: ChallengeSession, path: Path, interval: float = WATCH_INTERVAL):
    """Feed file changes into the draft engine until the session ends."""
    drafts = session.drafts
    ended = asyncio.Event()
    session.end_callbacks.append(ended.set)
    last_mtime = path.stat().st_mtime

    session.start_timer(
        on_tick=lambda left: logger.debug("Time remaining %s", left),
    )
    try:
        while not ended.is_set():
            try:
                await asyncio.wait_for(ended.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            mtime = path.stat().st_mtime
            if mtime == last_mtime:
                continue
            last_mtime = mtime
            if drafts.edit(path.read_text(encoding="utf-8")):
                console.print("[dim]Change detected, saving draft...[/dim]")
            elif drafts.locked:
                console.print("[yellow]Problem is solved; edits are not saved.[/yellow]")
    finally:
        await drafts.flush()
        session.close()

    console.print("[bold red]Time is over. The challenge has ended.[/bold red]")


@cli.command()
@click.argument("challenge")
@click.argument("problem")
@click.argument("file", type=click.Path(dir_okay=False, path_type=Path))
@LANG_OPTION
@UNLOCK_OPTION
def edit(challenge: str, problem: str, file: Path, lang: Optional[str], unlock: bool):
    """Write the draft of a problem to FILE and autosave it while you edit."""

    async def main():
        session = await open_registered(challenge)
        if session is None:
            return
        await session.problems()
        found = find_problem(session, problem)
        if found is None:
            return
        language = pick_language(session, found, lang, file)
        if language is None:
            return

        code = await session.drafts.select(found, language)
        if unlock and session.drafts.enter_edit_mode():
            console.print("[yellow]Edit mode: the solved problem is unlocked.[/yellow]")
        elif session.drafts.locked:
            console.print("[yellow]Problem solved. Showing your accepted submission.[/yellow]")
        session.remember_language(found, session.drafts.language)

        file.write_text(code, encoding="utf-8")
        console.print(f"[green]Wrote {session.drafts.language} code to {file}[/green]")
        console.print(f"[cyan]Time remaining: {session.remaining()}[/cyan]")
        console.print("[cyan]Watching for changes, press Ctrl-C to stop.[/cyan]")
        await watch_file(session, file)

    run_async(main())


def _read_code(file: Path) -> Optional[str]:
    code = file.read_text(encoding="utf-8")
    if not code.strip():
        console.print("[red]Please write some code first.[/red]")
        return None
    return code


async def prepare_problem(
    challenge: str, problem: str, file: Path, lang: Optional[str], unlock: bool
) -> Optional[Tuple[ChallengeSession, Problem, str, str]]:
    """Open a registered session and resolve the problem, code and language."""
    session = await open_registered(challenge)
    if session is None:
        return None
    await session.problems()
    found = find_problem(session, problem)
    if found is None:
        return None
    code = _read_code(file)
    language = pick_language(session, found, lang, file)
    if code is None or language is None:
        return None

    await session.drafts.select(found, language)
    if unlock:
        session.drafts.enter_edit_mode()
    elif session.drafts.locked:
        console.print("[yellow]Problem already solved. Use --unlock to try again.[/yellow]")
        return None
    return session, found, code, language


@cli.command(name="run")
@click.argument("challenge")
@click.argument("problem")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@LANG_OPTION
@UNLOCK_OPTION
def run_command(challenge: str, problem: str, file: Path, lang: Optional[str], unlock: bool):
    """Run the sample tests of a problem against FILE."""

    async def main():
        prepared = await prepare_problem(challenge, problem, file, lang, unlock)
        if prepared is None:
            return
        session, found, code, language = prepared

        with console.status("[bold green]Running sample tests..."):
            result = await session.runner.run(found, code, language)
        if result is None:
            console.print(f"[red]{session.runner.error}[/red]")
            return
        print_run_result(result)

    run_async(main())


@cli.command()
@click.argument("challenge")
@click.argument("problem")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@LANG_OPTION
@UNLOCK_OPTION
def submit(challenge: str, problem: str, file: Path, lang: Optional[str], unlock: bool):
    """Submit FILE as the solution of a problem."""

    async def main():
        prepared = await prepare_problem(challenge, problem, file, lang, unlock)
        if prepared is None:
            return
        session, found, code, language = prepared

        with console.status("[bold green]Judging..."):
            result = await session.runner.submit(
                found, code, language, session.identity.access_code
            )
        if result is None:
            console.print(f"[red]{session.runner.error}[/red]")
            return
        print_submission_result(result)
        if result.accepted:
            console.print("[green]Accepted! The problem is now marked as solved.[/green]")

    run_async(main())


async def record_answer(quiz: McqSession, question_id, **answer) -> None:
    """Record an answer locally and save it to the backend right away."""
    if not quiz.answer(question_id, **answer):
        console.print(f"[red]{quiz.error}[/red]")
    elif str(question_id) in quiz.answers:
        await quiz.save_answer(question_id)


@cli.command()
@click.argument("challenge", required=False)
def mcq(challenge: Optional[str]):
    """Answer the multiple-choice questions of a challenge."""

    async def main():
        session = await open_registered(challenge)
        if session is None:
            return
        questions = await session.mcq_questions()
        quiz = session.mcq
        if not questions:
            console.print("[yellow]This challenge has no MCQ questions.[/yellow]")
            return
        if quiz.submitted:
            console.print("[green]Answers already submitted; you can update them.[/green]")

        for idx, question in enumerate(questions, 1):
            console.print(f"\n[bold cyan]Q{idx}.[/bold cyan] {html_to_text(question.text)}")
            current = quiz.answers.get(str(question.id)) or {}
            if question.question_type == "FILL_IN_BLANK":
                text = click.prompt(
                    "Answer (blank to skip)",
                    default=current.get("text_answer") or "",
                    show_default=bool(current),
                )
                if text.strip():
                    await record_answer(quiz, question.id, text_answer=text)
                continue

            for pos, option in enumerate(question.options):
                marker = "*" if current.get("selected_option_id") == option.id else " "
                console.print(f"  {marker}{pos}. {shorten(html_to_text(option.text), 80)}")
            choice = click.prompt("Option number (blank to skip)", default="", show_default=False)
            if not choice.strip():
                continue
            try:
                option = question.options[int(choice)]
            except (ValueError, IndexError):
                console.print("[red]Please enter a valid option number[/red]")
                continue
            await record_answer(quiz, question.id, selected_option_id=option.id)

        if not click.confirm(f"\nSubmit {len(quiz.answers)} answers?", default=True):
            console.print("[yellow]Answers kept locally, not submitted.[/yellow]")
            return
        if await quiz.submit():
            console.print("[green]Answers submitted.[/green]")
        else:
            console.print(f"[red]{quiz.error}[/red]")

    run_async(main())


@cli.command()
@click.argument("challenge", required=False)
def score(challenge: Optional[str]):
    """Show your score in a challenge."""

    async def main():
        session = await open_registered(challenge)
        if session is None:
            return
        result = await asyncio.to_thread(
            session.client.get_my_score,
            session.challenge.id,
            session.identity.user_id,
            session.identity.registration_id,
        )
        if result is None:
            console.print("[yellow]No score yet.[/yellow]")
            return

        table = create_table("My Score", ["Part", "Points", "Out of"])
        table.add_row("MCQ", f"{result.mcq_points:g}", f"{result.total_mcq_points:g}")
        table.add_row("Coding", f"{result.coding_points:g}", f"{result.total_coding_points:g}")
        table.add_row("[bold]Total[/bold]", f"{result.total:g}", f"{result.maximum:g}")
        console.print(table)
        if result.rank:
            console.print(f"[bold cyan]Rank:[/bold cyan] {result.rank}")

    run_async(main())


@cli.command(name="time")
def time_command():
    """Show the server-corrected time and the local clock offset."""

    async def main():
        clock = SessionClock(ChallengeClient())
        await clock.sync()
        if not clock.is_synced():
            console.print("[yellow]Could not sync with the server, using local time.[/yellow]")
        now = clock.now().astimezone().strftime("%d %b %Y %H:%M:%S %Z")
        console.print(f"[bold cyan]Server time:[/bold cyan] {now}")
        console.print(f"[bold cyan]Offset:[/bold cyan] {clock.offset_ms:.0f} ms")

    run_async(main())


@cli.command(name="set-language")
@click.argument("language", type=click.Choice([lang["value"] for lang in LANGUAGES]))
@click.option("-c", "--challenge", help="Also save this challenge as the default")
def set_language(language: str, challenge: Optional[str]):
    """Choose the default language (and optionally the default challenge)."""
    config = LocalConfig.load()
    if config is None:
        config = LocalConfig()
    config.default_language = language
    if challenge:
        config.challenge = challenge
    config.save()

    console.print(f"[green]Default language set to: {language}[/green]")
    if challenge:
        console.print(f"[green]Default challenge set to: {challenge}[/green]")


def main():
    cli()


if __name__ == "__main__":
    main()
