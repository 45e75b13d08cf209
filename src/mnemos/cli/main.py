"""Main CLI entry point for Mnemos."""

from typing import NoReturn

import typer
from rich import print as rprint
from rich.panel import Panel
from rich.table import Table

from mnemos.cli.helpers import (
    analyzer,
    attempt_log,
    console,
    get_settings,
    get_storage,
    lifecycle,
    scheduler,
    wellness_tracker,
)
from mnemos.core.errors import MnemosError
from mnemos.core.models import (
    Outcome,
    PracticeSession,
    SessionMode,
    SessionResults,
    WellnessType,
)
from mnemos.core.sessions import session_progress

app = typer.Typer(
    name="mnemos",
    help="Spaced repetition scheduling and progress analytics for question banks.",
    no_args_is_help=True,
)

question_app = typer.Typer(help="Question metadata (categories, answer keys).")
app.add_typer(question_app, name="question")

session_app = typer.Typer(help="Practice sessions.")
app.add_typer(session_app, name="session")

wellness_app = typer.Typer(help="Wellness exercises and their streaks.")
app.add_typer(wellness_app, name="wellness")


def _fail(error: MnemosError) -> NoReturn:
    rprint(f"[red]{error}[/red]")
    raise typer.Exit(1)


def _user() -> str:
    return get_settings().user_id


# ============================================================================
# ANSWER / HISTORY commands
# ============================================================================


@app.command()
def answer(
    question_id: str = typer.Argument(..., help="Question ID"),
    selected: list[str] = typer.Argument(..., help="Selected option(s)"),
    time_spent: int = typer.Option(0, "--time", "-t", help="Seconds spent on the question"),
    correct: bool | None = typer.Option(
        None,
        "--correct/--incorrect",
        help="Record the outcome directly instead of grading against the answer key",
    ),
) -> None:
    """Record an answer to a question."""
    selection = selected[0] if len(selected) == 1 else selected
    try:
        record = attempt_log().submit(
            _user(), question_id, selection, time_spent_seconds=time_spent, is_correct=correct
        )
    except MnemosError as e:
        _fail(e)

    verdict = "[green]Correct[/green]" if record.is_correct else "[red]Incorrect[/red]"
    rprint(f"{verdict} (attempt #{record.attempt_number})")


@app.command()
def history(
    outcome: Outcome = typer.Option(Outcome.ALL, "--filter", "-f", help="all, correct, incorrect"),
    limit: int = typer.Option(50, "--limit", "-l", help="Maximum attempts to show"),
) -> None:
    """Show recent attempts, newest first."""
    try:
        records, total = attempt_log().history(_user(), outcome, limit)
    except MnemosError as e:
        _fail(e)

    if not records:
        rprint("[dim]No attempts recorded.[/dim]")
        return

    table = Table(title=f"Attempt History ({len(records)} of {total})")
    table.add_column("When", style="dim")
    table.add_column("Question", style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Result")
    table.add_column("Time", justify="right")
    for r in records:
        table.add_row(
            r.attempted_at.strftime("%Y-%m-%d %H:%M"),
            r.question_id,
            str(r.attempt_number),
            "[green]correct[/green]" if r.is_correct else "[red]incorrect[/red]",
            f"{r.time_spent_seconds}s",
        )
    console.print(table)


# ============================================================================
# QUESTION commands
# ============================================================================


@question_app.command("set")
def question_set(
    question_id: str = typer.Argument(..., help="Question ID"),
    category: str | None = typer.Option(None, "--category", "-c", help="Topical category"),
    answer_key: list[str] | None = typer.Option(
        None, "--answer", "-a", help="Correct option (repeat for multi-select)"
    ),
) -> None:
    """Set a question's category and/or answer key."""
    if category is None and not answer_key:
        rprint("[yellow]Nothing to set. Pass --category and/or --answer.[/yellow]")
        raise typer.Exit(1)

    try:
        questions = get_storage().questions
        if category is not None:
            questions.set_category(question_id, category)
        if answer_key:
            questions.set_correct_answer(
                question_id, answer_key[0] if len(answer_key) == 1 else answer_key
            )
    except MnemosError as e:
        _fail(e)
    rprint(f"[green]Updated {question_id}.[/green]")


# ============================================================================
# REVIEW / DUE commands
# ============================================================================


@app.command()
def review(
    question_id: str = typer.Argument(..., help="Question ID"),
    quality: int = typer.Argument(..., help="Recall quality 0 (blackout) - 5 (perfect)"),
) -> None:
    """Submit a spaced-repetition review."""
    try:
        result = scheduler().review(_user(), question_id, quality)
    except MnemosError as e:
        _fail(e)

    s = result.schedule
    rprint(f"Next review in [bold]{result.next_review_in}[/bold] ({s.next_review_date})")
    rprint(f"[dim]Ease {s.easiness_factor:.2f}, repetitions {s.repetitions}[/dim]")


@app.command()
def due() -> None:
    """List questions due for review."""
    try:
        queue = scheduler().due(_user())
    except MnemosError as e:
        _fail(e)

    if not queue.schedules:
        rprint("[green]No questions due for review![/green]")
        return

    table = Table(title=f"Due for Review ({len(queue.schedules)}, {queue.due_today} today)")
    table.add_column("Question", style="cyan")
    table.add_column("Due")
    table.add_column("Interval", justify="right")
    table.add_column("Ease", justify="right")
    for s in queue.schedules:
        table.add_row(
            s.question_id, s.next_review_date.isoformat(), f"{s.interval}d", f"{s.easiness_factor:.2f}"
        )
    console.print(table)


# ============================================================================
# STATS / TREND / STREAK commands
# ============================================================================


@app.command()
def stats() -> None:
    """Show accuracy statistics."""
    try:
        user = _user()
        progress = analyzer().stats(user)
        metrics = analyzer().performance(user)
    except MnemosError as e:
        _fail(e)

    table = Table(title="Mnemos Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Questions Attempted", str(progress.total_attempted))
    table.add_row("Correct", str(progress.total_correct))
    table.add_row("Incorrect", str(progress.total_incorrect))
    table.add_row("Accuracy", f"{progress.accuracy:.1f}%")
    table.add_row("First-Try Accuracy", f"{metrics.first_attempt_accuracy:.1f}%")
    table.add_row("7-Day Accuracy", f"{metrics.seven_day_accuracy:.1f}%")
    table.add_row("Avg Time / Question", f"{progress.average_time_per_question}s")
    table.add_row("Study Streak", f"{metrics.current_streak} day(s)")
    table.add_row("Longest Study Streak", f"{metrics.longest_streak} day(s)")
    table.add_row("Pass Probability", f"{metrics.pass_probability}%")
    table.add_row("Readiness", str(metrics.readiness_level))

    if metrics.domain_mastery:
        table.add_row("", "")
        table.add_row("[bold]By Category[/bold]", "")
        for d in metrics.domain_mastery:
            table.add_row(
                f"  {d.domain}",
                f"{d.accuracy:.1f}% ({d.correct}/{d.attempted}) {d.mastery_level}",
            )

    console.print(table)


@app.command()
def trend(
    window: int | None = typer.Option(None, "--window", "-w", help="Rolling window in days"),
    horizon: int | None = typer.Option(None, "--horizon", "-n", help="Number of points"),
) -> None:
    """Show the rolling accuracy trend."""
    try:
        settings = get_settings()
        points = analyzer().trend(
            _user(),
            window_days=settings.trend_window_days if window is None else window,
            horizon_days=settings.trend_horizon_days if horizon is None else horizon,
        )
    except MnemosError as e:
        _fail(e)

    if not points:
        rprint("[dim]No attempts recorded.[/dim]")
        return

    table = Table(title="Accuracy Trend")
    table.add_column("Date")
    table.add_column("Accuracy", justify="right")
    table.add_column("Attempted", justify="right")
    for p in points:
        table.add_row(p.date.isoformat(), f"{p.accuracy:.1f}%", str(p.attempted))
    console.print(table)


@app.command()
def streak() -> None:
    """Show review and wellness streaks."""
    try:
        user = _user()
        reviews = scheduler().streaks(user)
        wellness = wellness_tracker().stats(user)
    except MnemosError as e:
        _fail(e)

    rprint(f"Review streak: [bold]{reviews.current}[/bold] day(s) (longest {reviews.longest})")
    rprint(
        f"Wellness streak: [bold]{wellness.current_streak}[/bold] day(s) "
        f"(longest {wellness.longest_streak})"
    )


@app.command()
def recommend(
    count: int = typer.Option(20, "--count", "-c", help="Number of questions"),
) -> None:
    """Show the questions most worth practicing next."""
    try:
        picks = lifecycle().recommend(_user(), count)
    except MnemosError as e:
        _fail(e)

    if not picks:
        rprint("[dim]No questions in the bank. Add some with 'mnemos question set'.[/dim]")
        return

    table = Table(title=f"Recommended Questions ({len(picks)})")
    table.add_column("Question", style="cyan")
    table.add_column("Category")
    table.add_column("Priority", justify="right")
    table.add_column("Reason")
    for p in picks:
        table.add_row(p.question_id, p.domain, str(p.priority_score), p.reason)
    console.print(table)


# ============================================================================
# SESSION commands
# ============================================================================


def _print_results(results: SessionResults) -> None:
    table = Table(title="Session Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Attempted", str(results.attempted))
    table.add_row("Correct", str(results.correct))
    table.add_row("Incorrect", str(results.incorrect))
    table.add_row("Accuracy", f"{results.accuracy:.1f}%")
    table.add_row("Total Time", f"{results.total_time_seconds}s")
    table.add_row("Avg Time", f"{results.average_time_seconds}s")
    for d in results.by_domain:
        table.add_row(f"  {d.category}", f"{d.accuracy:.1f}% ({d.correct}/{d.attempted})")
    console.print(table)


def _print_session(session: PracticeSession) -> None:
    progress = session_progress(session)
    body = (
        f"Mode: {session.mode}\n"
        f"Status: {session.status}\n"
        f"Started: {session.started_at.strftime('%Y-%m-%d %H:%M')}\n"
        f"Progress: {progress.answered}/{progress.total} answered, {progress.remaining} remaining"
    )
    if session.current_question_index < len(session.questions):
        body += f"\nCurrent question: {session.questions[session.current_question_index]}"
    console.print(Panel(body, title=f"Session {session.id[:8]}", border_style="blue"))


@session_app.command("start")
def session_start(
    question_ids: list[str] = typer.Argument(..., help="Question IDs in order"),
    mode: SessionMode = typer.Option(SessionMode.CUSTOM, "--mode", "-m", help="Session mode"),
) -> None:
    """Start a practice session."""
    try:
        session = lifecycle().create(_user(), mode, question_ids)
    except MnemosError as e:
        _fail(e)
    rprint(f"[green]Session started:[/green] {session.id}")
    _print_session(session)


@session_app.command("recommend")
def session_recommend(
    count: int = typer.Option(20, "--count", "-c", help="Number of questions"),
) -> None:
    """Start a recommended session built from your weakest and stalest questions."""
    try:
        session = lifecycle().create_recommended(_user(), count)
    except MnemosError as e:
        _fail(e)
    rprint(f"[green]Session started:[/green] {session.id}")
    _print_session(session)


@session_app.command("show")
def session_show(session_id: str = typer.Argument(..., help="Session ID")) -> None:
    """Show a session's progress (and results once completed)."""
    try:
        session = lifecycle().get(session_id, _user())
    except MnemosError as e:
        _fail(e)
    _print_session(session)
    if session.results:
        _print_results(session.results)


@session_app.command("next")
def session_next(session_id: str = typer.Argument(..., help="Session ID")) -> None:
    """Move to the next question."""
    try:
        session = lifecycle().advance(session_id, _user())
    except MnemosError as e:
        _fail(e)
    _print_session(session)


@session_app.command("complete")
def session_complete(session_id: str = typer.Argument(..., help="Session ID")) -> None:
    """Finish a session and score it."""
    try:
        session = lifecycle().complete(session_id, _user())
    except MnemosError as e:
        _fail(e)
    rprint("[bold green]Session complete![/bold green]")
    _print_results(session.results)


@session_app.command("abandon")
def session_abandon(session_id: str = typer.Argument(..., help="Session ID")) -> None:
    """Abandon a session without scoring it."""
    try:
        lifecycle().abandon(session_id, _user())
    except MnemosError as e:
        _fail(e)
    rprint("[yellow]Session abandoned.[/yellow]")


@session_app.command("list")
def session_list() -> None:
    """List sessions, most recent first."""
    try:
        sessions = lifecycle().list_sessions(_user())
    except MnemosError as e:
        _fail(e)

    if not sessions:
        rprint("[dim]No sessions yet.[/dim]")
        return

    table = Table(title="Practice Sessions")
    table.add_column("ID", style="cyan")
    table.add_column("Mode")
    table.add_column("Status")
    table.add_column("Started", style="dim")
    table.add_column("Accuracy", justify="right")
    for s in sessions:
        table.add_row(
            s.id[:8],
            s.mode,
            s.status,
            s.started_at.strftime("%Y-%m-%d %H:%M"),
            f"{s.results.accuracy:.1f}%" if s.results else "-",
        )
    console.print(table)


# ============================================================================
# WELLNESS commands
# ============================================================================


@wellness_app.command("start")
def wellness_start(
    exercise_type: WellnessType = typer.Argument(..., help="Exercise type"),
    name: str = typer.Argument(..., help="Exercise name"),
    duration: int = typer.Option(300, "--duration", "-d", help="Duration in seconds"),
    technique: str | None = typer.Option(None, "--technique", help="e.g. 4-7-8, box"),
) -> None:
    """Start a wellness exercise."""
    try:
        session = wellness_tracker().start(_user(), exercise_type, name, duration, technique)
    except MnemosError as e:
        _fail(e)
    rprint(f"[green]Started:[/green] {session.id}")


@wellness_app.command("complete")
def wellness_complete(session_id: str = typer.Argument(..., help="Wellness session ID")) -> None:
    """Mark a wellness exercise as done."""
    try:
        wellness_tracker().complete(session_id, _user())
    except MnemosError as e:
        _fail(e)
    rprint("[green]Nice work![/green]")


@wellness_app.command("stats")
def wellness_stats() -> None:
    """Show wellness statistics."""
    try:
        ws = wellness_tracker().stats(_user())
    except MnemosError as e:
        _fail(e)

    table = Table(title="Wellness")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Sessions", str(ws.total_sessions))
    table.add_row("Minutes", str(ws.total_minutes))
    table.add_row("Current Streak", f"{ws.current_streak} day(s)")
    table.add_row("Longest Streak", f"{ws.longest_streak} day(s)")
    table.add_row("Favorite", ws.favorite_exercise or "-")
    for kind, count in ws.sessions_by_type.items():
        table.add_row(f"  {kind}", str(count))
    console.print(table)


if __name__ == "__main__":
    app()
