# ABOUTME: Provides a CLI that runs the adaptive engine over response and content files.
# ABOUTME: Prints mastery, difficulty, recommendations, rewards, and the level curve as Rich tables.

from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from src.adaptive.engine import AdaptiveEngine
from src.common.config import load_config
from src.common.errors import EngineError
from src.common.events import read_frame
from src.common.logging_utils import setup_logging
from src.common.schemas import RecommendationContext, ensure_utc
from src.common.sources import InMemoryLearningStore
from src.progression.levels import level_progress, xp_for_next_level, xp_to_reach_level
from src.progression.rewards import RelevantAttributes, compose_reward

console = Console()
app = typer.Typer(help="Explore mastery, difficulty, recommendations, and progression for a learner.")


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(code=1)


def _build_engine(
    events_path: Path,
    items_path: Optional[Path],
    learner_id: str,
    age: Optional[int],
    config_path: Optional[Path],
    now: Optional[datetime],
) -> AdaptiveEngine:
    if not events_path.exists():
        _fail(f"Missing events file at {events_path}")
    if items_path is not None and not items_path.exists():
        _fail(f"Missing items file at {items_path}")

    config = load_config(config_path)
    setup_logging(config.log_level)
    events_df = read_frame(events_path)
    items_df = read_frame(items_path) if items_path is not None else None
    ages = {learner_id: age} if age is not None else None
    store = InMemoryLearningStore.from_frames(events_df, items_df, ages)
    store.default_age = config.default_age
    clock = (lambda: ensure_utc(now)) if now is not None else None
    return AdaptiveEngine.from_store(store, config=config, clock=clock)


@app.command()
def mastery(
    learner_id: str = typer.Option(..., "--learner-id", help="Learner identifier in the events file."),
    events_path: Path = typer.Option(Path("data/events.parquet"), "--events-path", help="Graded responses (.parquet or .csv)."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML."),
    now: Optional[datetime] = typer.Option(None, "--now", help="Evaluate as of this instant (defaults to the current time)."),
) -> None:
    """
    Shows per-concept mastery and knowledge gaps for one learner.
    """
    engine = _build_engine(events_path, None, learner_id, None, config_path, now)
    console.rule(f"[bold blue]Mastery for {learner_id}[/bold blue]")

    masteries = engine.get_concept_masteries(learner_id)
    if not masteries:
        console.print("[yellow]No response history; treating as a new learner.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Concept")
    table.add_column("Mastery", justify="right")
    table.add_column("Correct", justify="right")
    table.add_column("Avg time (s)", justify="right")
    table.add_column("Review?", justify="center")
    for m in masteries:
        table.add_row(
            m.concept_name,
            f"{m.mastery_level:.2f}",
            f"{m.questions_correct}/{m.questions_attempted}",
            f"{m.average_response_time:.1f}",
            "yes" if m.needs_review else "",
        )
    console.print(table)

    gaps = engine.get_knowledge_gaps(learner_id)
    if gaps:
        console.print("[bold]Knowledge gaps:[/]")
        for gap in gaps:
            console.print(f"  • {gap}")

    steps = engine.get_next_steps(learner_id)
    if steps:
        console.print("[bold]Next steps:[/]")
        for step in steps:
            console.print(f"  • {step}")


@app.command()
def difficulty(
    learner_id: str = typer.Option(..., "--learner-id", help="Learner identifier in the events file."),
    subject_id: str = typer.Option(..., "--subject-id", help="Subject to scale difficulty for."),
    age: int = typer.Option(10, "--age", help="Learner age in years."),
    events_path: Path = typer.Option(Path("data/events.parquet"), "--events-path", help="Graded responses (.parquet or .csv)."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML."),
    now: Optional[datetime] = typer.Option(None, "--now", help="Evaluate as of this instant (defaults to the current time)."),
) -> None:
    """
    Recommends a target difficulty for the learner's next questions in a subject.
    """
    engine = _build_engine(events_path, None, learner_id, age, config_path, now)
    try:
        rec = engine.recommend_difficulty(learner_id, subject_id, age)
    except EngineError as exc:
        _fail(str(exc))

    console.rule(f"[bold blue]Difficulty for {learner_id} / {subject_id}[/bold blue]")
    console.print(f"[bold]Target difficulty:[/] {rec.target_difficulty:.1f}")
    console.print(f"[bold]Confidence:[/] {rec.confidence_level:.2f}")
    console.print(f"[bold]Adjustment:[/] {rec.adjustment_factor:+.2f}")
    console.print(f"[bold]Reasoning:[/] {rec.reasoning}")


@app.command()
def recommend(
    learner_id: str = typer.Option(..., "--learner-id", help="Learner identifier in the events file."),
    events_path: Path = typer.Option(Path("data/events.parquet"), "--events-path", help="Graded responses (.parquet or .csv)."),
    items_path: Path = typer.Option(Path("data/items.parquet"), "--items-path", help="Content items (.parquet or .csv)."),
    age: Optional[int] = typer.Option(None, "--age", help="Learner age in years (defaults to the configured age)."),
    subject: Optional[str] = typer.Option(None, "--subject", help="Current focus subject."),
    minutes: float = typer.Option(15.0, "--minutes", help="Time available for the session."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML."),
    now: Optional[datetime] = typer.Option(None, "--now", help="Evaluate as of this instant (defaults to the current time)."),
) -> None:
    """
    Ranks topics and content items for the learner's next session.
    """
    engine = _build_engine(events_path, items_path, learner_id, age, config_path, now)
    try:
        result = engine.get_recommendations(
            RecommendationContext(learner_id=learner_id, current_subject=subject, time_available=minutes)
        )
    except EngineError as exc:
        _fail(str(exc))

    console.rule(f"[bold blue]Recommendations for {learner_id}[/bold blue]")
    topic_table = Table(show_header=True, header_style="bold magenta")
    topic_table.add_column("Topic")
    topic_table.add_column("Priority", justify="right")
    topic_table.add_column("Minutes", justify="right")
    topic_table.add_column("Reasoning")
    for topic in result.topics:
        topic_table.add_row(
            topic.topic_name, f"{topic.priority:.2f}", f"{topic.estimated_time:.0f}", topic.reasoning
        )
    console.print(topic_table)

    item_table = Table(show_header=True, header_style="bold magenta")
    item_table.add_column("Item")
    item_table.add_column("Subject")
    item_table.add_column("Difficulty", justify="right")
    item_table.add_column("Prompt")
    for item in result.items:
        item_table.add_row(item.item_id, item.subject_id, str(item.difficulty), item.prompt)
    console.print(item_table)

    meta = result.metadata
    console.print(f"[bold]Rationale:[/] {result.rationale}")
    for objective in engine.get_learning_objectives(learner_id, result.items):
        console.print(f"[bold]Objective:[/] {objective}")
    console.print(
        f"[bold]Items:[/] {meta.total_items}  [bold]Avg difficulty:[/] {meta.average_difficulty:.1f}  "
        f"[bold]Est. minutes:[/] {meta.estimated_completion_time:.0f}"
    )
    if meta.degraded_sources:
        console.print(f"[yellow]Degraded sources: {', '.join(meta.degraded_sources)}[/yellow]")


@app.command()
def reward(
    difficulty_level: int = typer.Option(..., "--difficulty", help="Question difficulty (1-5)."),
    accuracy: float = typer.Option(1.0, "--accuracy", help="Answer accuracy in [0, 1]."),
    time_bonus: float = typer.Option(0.0, "--time-bonus", help="Speed bonus in [0, 1]."),
    primary: int = typer.Option(10, "--primary", help="Primary attribute value."),
    secondary: Optional[int] = typer.Option(None, "--secondary", help="Secondary attribute value."),
) -> None:
    """
    Breaks down the XP reward for one graded answer.
    """
    try:
        breakdown = compose_reward(
            difficulty_level, accuracy, time_bonus, RelevantAttributes(primary=primary, secondary=secondary)
        )
    except EngineError as exc:
        _fail(str(exc))

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Component")
    table.add_column("XP", justify="right")
    table.add_row("Base", str(breakdown.base_xp))
    table.add_row("Accuracy bonus", str(breakdown.accuracy_bonus))
    table.add_row("Time bonus", str(breakdown.time_bonus))
    table.add_row("Attribute bonus", str(breakdown.stat_bonus))
    table.add_row("[bold]Total[/bold]", f"[bold]{breakdown.total_xp}[/bold]")
    console.print(table)


@app.command()
def levels(
    max_level: int = typer.Option(30, "--max-level", help="Highest level to list."),
    total_xp: Optional[int] = typer.Option(None, "--xp", help="Also show progress for this XP total."),
) -> None:
    """
    Lists the cumulative XP curve and, optionally, where an XP total sits on it.
    """
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Level", justify="right")
    table.add_column("XP to reach", justify="right")
    table.add_column("XP to next", justify="right")
    for level in range(1, max_level + 1):
        table.add_row(str(level), str(xp_to_reach_level(level)), str(xp_for_next_level(level)))
    console.print(table)

    if total_xp is not None:
        try:
            progress = level_progress(total_xp)
        except EngineError as exc:
            _fail(str(exc))
        console.print(
            f"[bold]{total_xp} XP:[/] level {progress.level}, "
            f"{progress.current_xp}/{progress.xp_for_next_level} into the level ({progress.fraction:.0%})"
        )


if __name__ == "__main__":
    app()
