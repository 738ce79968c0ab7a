#!/usr/bin/env python3
"""
RxTutor - USMLE Step 1 study companion.
CLI interface for ingesting exams, quizzing, and tracking the learning profile.
"""

import logging
import random
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from config import Config
from core.blooms import enrich_objective_with_bloom
from core.deep_learn import DeepLearnSession
from core.histology import identify_image_file, scan_pdf_for_histology
from core.ingestion import EMPTY, FAILED, SUCCESS, run_ingestion_jobs
from core.learning_model import (
    accuracy_by_type,
    build_system_prompt,
    default_profile,
    record_answer,
    start_session,
    topic_key,
    weakest_topics,
)
from core.objectives import (
    LearningObjective,
    ObjectiveStatus,
    extract_lecture_objectives,
    import_objectives_table,
    objective_progress,
    set_objective_status,
)
from core.pdf_processor import PDFProcessor
from core.question import Question
from core.vignettes import generate_vignettes
from models.llm_manager import LLMManager
from storage.database import Database
from storage.repositories import (
    SQLiteProfileRepository,
    SQLiteQuestionBankRepository,
    SQLiteStudyStateRepository,
)

console = Console()

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp"}
STATUS_STYLES = {SUCCESS: "green", EMPTY: "yellow", FAILED: "red"}


@click.group()
@click.version_option(version="0.1.0", prog_name="RxTutor")
@click.option('--verbose', '-v', is_flag=True, help='Show debug logging')
def cli(verbose):
    """RxTutor - adaptive USMLE Step 1 practice from your own exams."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
def init():
    """Initialize the RxTutor data directory and database."""
    console.print("\n[bold cyan]Initializing RxTutor...[/bold cyan]\n")

    try:
        console.print("📁 Creating directories...")
        Config.ensure_dirs()
        console.print("   ✓ Directories created\n")

        console.print("🗄️  Creating database schema...")
        with Database() as db:
            db.initialize()
        console.print("   ✓ Database schema created\n")

        console.print("[bold green]✨ RxTutor initialized successfully![/bold green]\n")
        console.print(f"Database: {Config.DB_PATH}")
        console.print(f"Data directory: {Config.DATA_DIR}")
        if not LLMManager().has_credentials:
            console.print("\n[yellow]No API key set. Export RXT_GEMINI_API_KEY to enable "
                          "AI parsing.[/yellow]")
        console.print("\nNext steps:")
        console.print("  • rxtutor ingest <FILE.pdf> - Import exam PDFs")
        console.print("  • rxtutor quiz - Practice uploaded questions")
        console.print("  • rxtutor --help - See all commands\n")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command()
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
def ingest(files):
    """Parse exam PDFs (or text banks) into question banks."""
    try:
        Config.ensure_dirs()

        def show(job):
            if not job.finished:
                console.print(f"  [dim]{job.file_name}: {job.message}[/dim]")

        jobs = run_ingestion_jobs(
            [Path(f) for f in files],
            LLMManager(),
            SQLiteQuestionBankRepository(),
            on_status=show,
        )

        table = Table(title="\n📥 Ingestion Results")
        table.add_column("File", style="cyan")
        table.add_column("Status")
        table.add_column("Questions", justify="right")
        table.add_column("Details", style="white")
        for job in jobs:
            style = STATUS_STYLES.get(job.status, "white")
            table.add_row(job.file_name, f"[{style}]{job.status}[/{style}]",
                          str(job.question_count), job.message)
        console.print(table)
        console.print()

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command()
@click.option('--delete', 'delete_name', help='Remove the bank stored under this file name')
def banks(delete_name):
    """List stored question banks."""
    try:
        repo = SQLiteQuestionBankRepository()
        if delete_name:
            if repo.delete_bank(delete_name):
                console.print(f"\n[green]✓ Deleted {delete_name}[/green]\n")
            else:
                console.print(f"\n[red]Bank '{delete_name}' not found.[/red]\n")
            return

        stored = repo.load_banks()
        if not stored:
            console.print("\n[yellow]No question banks yet. Run 'rxtutor ingest' first.[/yellow]\n")
            return

        table = Table(title="\n📚 Question Banks")
        table.add_column("File", style="cyan")
        table.add_column("Format", style="magenta")
        table.add_column("Questions", justify="right")
        table.add_column("Lecture", justify="right")
        for name, bank in sorted(stored.items()):
            table.add_row(
                name,
                bank.get('format') or '',
                str(len(bank.get('questions') or [])),
                str(bank.get('lectureNumber') or ''),
            )
        console.print(table)
        console.print(f"\nTotal: {len(stored)} banks\n")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


def _collect_questions(stored, bank_name=None):
    questions = []
    for name, bank in stored.items():
        if bank_name and name != bank_name:
            continue
        for raw in bank.get('questions') or []:
            question = Question.from_dict(raw)
            if question.is_multiple_choice_ready():
                questions.append(question)
    return questions


def _show_question(index, total, question):
    console.print(f"\n[bold cyan]Question {index}/{total}[/bold cyan] "
                  f"[dim]{question.topic or ''}[/dim]")
    if question.image_question:
        console.print("[dim](image question: the slide image is stored with the bank)[/dim]")
    console.print(f"\n{question.stem}\n")
    for letter, text in sorted(question.populated_choices().items()):
        console.print(f"  [bold]{letter}.[/bold] {text}")


@cli.command()
@click.option('--bank', '-b', help='Only questions from this file')
@click.option('--count', '-n', default=10, show_default=True, help='Number of questions')
@click.option('--weak-only', is_flag=True, help='Only topics recorded as weak')
@click.option('--seed', type=int, help='Shuffle seed')
@click.option('--generate', '-g', 'generate_subject', metavar='SUBJECT',
              help='Generate new vignettes for this subject instead of using stored banks')
@click.option('--subtopic', '-t', help='Subtopic for generated vignettes')
def quiz(bank, count, weak_only, seed, generate_subject, subtopic):
    """Practice stored or freshly generated questions and update the learning profile."""
    try:
        profile_repo = SQLiteProfileRepository()
        profile = profile_repo.load_profile()

        if generate_subject:
            console.print(f"\n[dim]Generating {count} vignette(s) for {generate_subject}...[/dim]")
            questions = generate_vignettes(profile, generate_subject, subtopic, count, LLMManager())
        else:
            questions = _collect_questions(SQLiteQuestionBankRepository().load_banks(), bank)
            if weak_only:
                weak = profile.get('weakTopics') or {}
                questions = [q for q in questions if topic_key(q.topic, q.subtopic) in weak]

        if not questions:
            console.print("\n[yellow]No matching questions.[/yellow]\n")
            return

        random.Random(seed).shuffle(questions)
        questions = questions[:count]

        profile = start_session(profile)
        profile_repo.save_profile(profile)

        correct = graded = 0
        for index, question in enumerate(questions, 1):
            _show_question(index, len(questions), question)
            letters = sorted(question.populated_choices())
            answer = click.prompt(
                "\nYour answer (q to stop)",
                type=click.Choice(letters + ['q'], case_sensitive=False),
                show_choices=False,
            )
            if answer.lower() == 'q':
                break

            result = question.is_correct(answer)
            if result is None:
                console.print(f"[yellow]Answer: {question.reveal_answer()}[/yellow]")
            else:
                graded += 1
                if result:
                    correct += 1
                    console.print("[green]✓ Correct[/green]")
                else:
                    console.print(f"[red]✗ Incorrect. Answer: {question.correct}[/red]")
                profile = record_answer(profile, question.topic, question.subtopic,
                                        result, question.type.value)
                profile_repo.save_profile(profile)

            if question.explanation:
                console.print(f"[dim]{question.explanation}[/dim]")

        if graded:
            console.print(f"\n[bold]Score:[/bold] {correct}/{graded} "
                          f"({round(correct * 100 / graded)}%)\n")

    except click.Abort:
        raise
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command()
@click.option('--reset', is_flag=True, help='Replace the profile with defaults')
def profile(reset):
    """Show the learning profile."""
    try:
        repo = SQLiteProfileRepository()
        if reset:
            click.confirm("Reset the learning profile?", abort=True)
            repo.save_profile(default_profile())
            console.print("\n[green]✓ Profile reset[/green]\n")
            return

        data = repo.load_profile()
        console.print(f"\n[bold cyan]Learning Profile[/bold cyan]")
        console.print(f"Sessions: {data.get('totalSessions', 0)}")
        console.print(f"Answers recorded: {len(data.get('sessionHistory') or [])}")

        weights = Table(title="\nQuestion type weights")
        weights.add_column("Type", style="cyan")
        weights.add_column("Weight", justify="right")
        weights.add_column("Accuracy", justify="right")
        stats = accuracy_by_type(data)
        for qtype, weight in data['questionTypeWeights'].items():
            bucket = stats.get(qtype)
            accuracy = (f"{round(bucket['accuracy'] * 100)}% ({bucket['correct']}/{bucket['total']})"
                        if bucket else "-")
            weights.add_row(qtype, f"{weight:.2f}", accuracy)
        console.print(weights)

        weak = weakest_topics(data)
        if weak:
            console.print(f"\n[bold]Weakest topics:[/bold]")
            for key, misses in weak:
                console.print(f"  • {key} ({misses})")
        console.print()

    except click.Abort:
        raise
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command()
@click.option('--subject', '-s', help='Session subject')
@click.option('--subtopic', '-t', help='Session subtopic')
@click.option('--mode', '-m', help='Session mode')
def prompt(subject, subtopic, mode):
    """Print the generation system prompt built from the profile."""
    try:
        data = SQLiteProfileRepository().load_profile()
        click.echo(build_system_prompt(data, subject, subtopic, mode))
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False))
def histo(file):
    """Identify histology slides in an image or PDF."""
    try:
        path = Path(file)
        llm = LLMManager()
        suffix = path.suffix.lower()

        if suffix in IMAGE_SUFFIXES:
            llm.require_credentials()
            slides = [identify_image_file(path.read_bytes(), path.name, llm)]
        elif suffix == ".pdf":
            with PDFProcessor().open(path) as document:
                slides = scan_pdf_for_histology(
                    document, llm,
                    on_progress=lambda m: console.print(f"  [dim]{m}[/dim]"),
                )
        else:
            console.print(f"\n[red]Unsupported file type: {path.name}[/red]\n")
            return

        if not slides:
            console.print("\n[yellow]No histology slides identified.[/yellow]\n")
            return

        SQLiteQuestionBankRepository().merge_bank(path.name, {
            "examTitle": path.stem,
            "format": "histology",
            "totalQuestions": len(slides),
            "questions": [slide.to_dict() for slide in slides],
        })

        table = Table(title=f"\n🔬 Histology slides from {path.name}")
        table.add_column("#", justify="right")
        table.add_column("Tissue", style="magenta")
        table.add_column("Topic", style="cyan")
        table.add_column("Stain")
        for slide in slides:
            table.add_row(str(slide.num), slide.extra.get("tissueType", "Other"),
                          slide.topic or "", slide.extra.get("stain") or "")
        console.print(table)
        console.print()

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command()
@click.argument('question_id')
@click.argument('rating', type=click.IntRange(0, 5))
def rate(question_id, rating):
    """Record self-rated confidence (0-5) for a question."""
    try:
        repo = SQLiteStudyStateRepository()
        ratings = repo.load_confidence()
        ratings[question_id] = rating
        repo.save_confidence(ratings)
        console.print(f"\n[green]✓ {question_id}: confidence {rating}[/green]\n")
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command()
@click.argument('question_id', required=False)
def bookmark(question_id):
    """Toggle a bookmark, or list bookmarks when no id is given."""
    try:
        repo = SQLiteStudyStateRepository()
        marks = repo.load_bookmarks()
        if not question_id:
            if not marks:
                console.print("\n[yellow]No bookmarks.[/yellow]\n")
            for mark in sorted(marks):
                console.print(f"  • {mark}")
            return

        if question_id in marks:
            marks.discard(question_id)
            console.print(f"\n[yellow]Removed bookmark {question_id}[/yellow]\n")
        else:
            marks.add(question_id)
            console.print(f"\n[green]✓ Bookmarked {question_id}[/green]\n")
        repo.save_bookmarks(marks)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command(name='deep-learn')
@click.argument('topic')
def deep_learn(topic):
    """Walk one topic through the six Deep-Learn phases."""
    try:
        session = DeepLearnSession(topic, LLMManager())
        for phase, content in session.run_all():
            console.print(f"\n[bold cyan]PHASE {phase.num} OF 6 · {phase.title}[/bold cyan] "
                          f"[dim]{phase.subtitle}[/dim]")
            if content:
                console.print_json(data=content)
            else:
                console.print("[yellow]No content generated for this phase.[/yellow]")
        console.print()
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command()
@click.argument('pdf', type=click.Path(exists=True, dir_okay=False))
@click.option('--table', 'from_table', is_flag=True,
              help='Import an objectives table instead of scanning a lecture')
@click.option('--lecture-type', type=click.Choice(['lecture', 'DLA', 'SG', 'TBL']),
              default='lecture', show_default=True)
def objectives(pdf, from_table, lecture_type):
    """Extract learning objectives from a lecture PDF."""
    try:
        path = Path(pdf)
        with PDFProcessor().open(path) as document:
            if from_table:
                found = import_objectives_table(document)
            else:
                found = extract_lecture_objectives(document, path.name, LLMManager())

        if not found:
            console.print("\n[yellow]No objectives found.[/yellow]\n")
            return

        repo = SQLiteStudyStateRepository()
        stored = {item.get('id'): item for item in repo.load_objectives()}
        for obj in found:
            stored[obj.id] = obj.to_dict()
        repo.save_objectives(list(stored.values()))

        table = Table(title=f"\n🎯 Objectives from {path.name}")
        table.add_column("Id", style="dim")
        table.add_column("Activity", style="cyan")
        table.add_column("Bloom", style="magenta")
        table.add_column("Objective", style="white")
        table.add_column("Pre-lecture guide", style="dim")
        for obj in found:
            enriched = enrich_objective_with_bloom(obj.to_dict(), lecture_type)
            table.add_row(obj.id, obj.activity,
                          f"{enriched['bloom_level']} {enriched['bloom_level_name']}",
                          obj.objective, enriched['pre_lecture_guide'])
        console.print(table)
        console.print(f"\nStored {len(found)} objectives\n")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


@cli.command(name='objective-status')
@click.argument('objective_id', required=False)
@click.argument('status', required=False,
                type=click.Choice([s.value for s in ObjectiveStatus]))
def objective_status(objective_id, status):
    """Set an objective's status, or show progress when no id is given."""
    try:
        repo = SQLiteStudyStateRepository()
        items = [LearningObjective.from_dict(d) for d in repo.load_objectives()]

        if objective_id:
            if not status:
                console.print("\n[red]A status is required with an objective id.[/red]\n")
                return
            try:
                items = set_objective_status(items, objective_id, ObjectiveStatus(status))
            except KeyError:
                console.print(f"\n[red]Objective '{objective_id}' not found.[/red]\n")
                return
            repo.save_objectives([obj.to_dict() for obj in items])
            console.print(f"\n[green]✓ {objective_id}: {status}[/green]\n")
            return

        counts = objective_progress(items)
        console.print(f"\n[bold cyan]Objectives[/bold cyan] "
                      f"{counts['mastered']}/{counts['total']} mastered "
                      f"({counts['percentMastered']}%)")
        console.print(f"  In progress: {counts['inprogress']}")
        console.print(f"  Struggling: {counts['struggling']}")
        console.print(f"  Untested: {counts['untested']}\n")

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}\n")
        raise click.Abort()


if __name__ == "__main__":
    cli()
