# survey_analytics/app/cli.py
"""
Command line entry point.

    survey-analytics init-db
    survey-analytics import-csv answers.csv
    survey-analytics stats <survey_id>
    survey-analytics analyze <survey_id> --method IMPORTANCE_PERFORMANCE
    survey-analytics backup backup.json
"""
from __future__ import annotations

import asyncio
import json
import sys
from typing import Optional

import click

from survey_analytics.agents.dispatcher import AnalysisDispatcher
from survey_analytics.agents.intro_writer_agent import IntroWriterAgent
from survey_analytics.agents.question_writer_agent import QuestionBrief, QuestionWriterAgent
from survey_analytics.agents.utils import GenerationClient, RetryPolicy
from survey_analytics.app.config import Settings
from survey_analytics.app.errors import AppError
from survey_analytics.app.logging import get_logger, setup_logging
from survey_analytics.db.exporter import export_questions_csv, export_responses_csv
from survey_analytics.db.importer import ExternalSurveyImporter
from survey_analytics.db.models import University
from survey_analytics.db.repository import SQLiteRepository
from survey_analytics.tools.stats import compute_stats, fallback_score, survey_overview, survey_score
from survey_analytics.workflows.slots import AnalysisSession
from survey_analytics.workflows.state import ANALYSIS_METHODS, AnalysisMethod


log = get_logger(__name__)


class AppContext:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.repo = SQLiteRepository(settings.db_path)


def _echo_json(data) -> None:
    click.echo(json.dumps(data, ensure_ascii=False, indent=2))


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Survey analytics: statistics and AI analyses over collected survey responses."""
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_json)
    app = AppContext(settings)
    app.repo.init_schema()
    ctx.obj = app


@cli.command(name="init-db")
@click.pass_obj
def init_db(app: AppContext) -> None:
    """Create the database schema."""
    click.echo(f"Database ready at {app.settings.db_path}")


@cli.command(name="add-university")
@click.argument("university_id")
@click.argument("name")
@click.option("--region", default="", help="Region or campus")
@click.option("--members", "member_count", type=int, default=0, help="Number of members")
@click.option("--vision", default=None, help="Vision / mission statement used by the vision alignment analysis")
@click.pass_obj
def add_university(app: AppContext, university_id: str, name: str, region: str, member_count: int, vision: Optional[str]) -> None:
    """Register (or update) a university."""
    app.repo.upsert_university(
        University(university_id=university_id, name=name, region=region, member_count=member_count, vision=vision)
    )
    click.echo(f"University {university_id} saved")


@cli.command(name="import-csv")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--university", "university_id", default=None, help="Attach the survey to this university")
@click.pass_obj
def import_csv(app: AppContext, path: str, university_id: Optional[str]) -> None:
    """Import a CSV of answers as a new external survey."""
    result = ExternalSurveyImporter(app.repo).import_csv(path, university_id=university_id)
    click.echo(
        f"Imported '{result.title}' ({result.survey_id}): "
        f"{result.inserted_responses} responses, {result.registered_questions} questions "
        f"({result.likert_questions} Likert)"
    )


@cli.command(name="export-csv")
@click.argument("survey_id")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--questions", is_flag=True, help="Export the question list instead of the responses")
@click.pass_obj
def export_csv(app: AppContext, survey_id: str, path: str, questions: bool) -> None:
    """Export a survey's responses (or questions) to CSV."""
    if questions:
        rows = export_questions_csv(app.repo, survey_id, path)
    else:
        rows = export_responses_csv(app.repo, survey_id, path)
    click.echo(f"Wrote {rows} rows to {path}")


@cli.command()
@click.argument("survey_id", required=False)
@click.option("--university", "university_id", default=None, help="Only surveys of this university (overview)")
@click.pass_obj
def stats(app: AppContext, survey_id: Optional[str], university_id: Optional[str]) -> None:
    """Likert statistics for one survey, or the score overview of every survey."""
    if survey_id is None:
        rows = survey_overview(
            app.repo.list_surveys(),
            app.repo.list_responses(),
            app.repo.list_universities(),
            university_id=university_id,
        )
        for row in rows:
            methods = ", ".join(m.value for m in row.methods_performed) or "-"
            click.echo(f"{row.survey_id}  {row.score:>3}  {row.responses:>4}  {row.title}  [{methods}]")
        return

    survey = app.repo.require_survey(survey_id)
    responses = app.repo.get_responses(survey_id)
    _echo_json(
        {
            "survey_id": survey.survey_id,
            "title": survey.title,
            "responses": len(responses),
            "score": survey_score(survey, responses),
            "fallback_score": round(fallback_score(survey, responses), 2),
            "questions": [s.to_dict() for s in compute_stats(survey, responses)],
        }
    )


@cli.command()
@click.argument("survey_id")
@click.option(
    "--method",
    type=click.Choice([m.value for m in ANALYSIS_METHODS]),
    default=AnalysisMethod.COMPREHENSIVE.value,
    show_default=True,
)
@click.option("--regenerate", is_flag=True, help="Recompute even when a completed analysis exists")
@click.option("--language", type=click.Choice(["ko", "en"]), default=None, help="Output language")
@click.pass_obj
def analyze(app: AppContext, survey_id: str, method: str, regenerate: bool, language: Optional[str]) -> None:
    """Run one AI analysis method for a survey and print the stored record."""
    dispatcher = AnalysisDispatcher.from_settings(app.settings)
    session = AnalysisSession(survey_id, app.repo, dispatcher, language=language or app.settings.language)

    async def _run():
        record = session.invoke(AnalysisMethod(method))
        if regenerate and not record.is_pending and not record.is_failed:
            session.retry(record)
        await session.wait_idle()
        return session.displayed()

    record = asyncio.run(_run())
    _echo_json(record.to_dict() if record is not None else None)


@cli.command(name="draft-questions")
@click.argument("topic")
@click.option("--description", default="", help="Context used to tailor the questions")
@click.option("--count", type=int, default=7, show_default=True)
@click.option("--language", type=click.Choice(["ko", "en"]), default=None)
@click.option("--intro", is_flag=True, help="Also draft the welcome message")
@click.pass_obj
def draft_questions(app: AppContext, topic: str, description: str, count: int, language: Optional[str], intro: bool) -> None:
    """Draft survey questions (and optionally a welcome message) for a topic."""
    settings = app.settings
    client = GenerationClient.from_settings(settings, model=settings.builder_model)
    retry = RetryPolicy(retries=settings.retry_max, initial_delay=settings.retry_initial_delay)
    brief = QuestionBrief(topic=topic, description=description, language=language or settings.language, count=count)

    async def _run():
        questions = await QuestionWriterAgent(client=client, prompts_dir=settings.prompts_dir, retry=retry).generate(brief)
        message = ""
        if intro:
            message = await IntroWriterAgent(client=client, prompts_dir=settings.prompts_dir, retry=retry).generate(brief)
        return questions, message

    questions, message = asyncio.run(_run())
    _echo_json({"intro_message": message or None, "questions": [q.to_dict() for q in questions]})


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.pass_obj
def backup(app: AppContext, path: str) -> None:
    """Write every survey, response and university to a JSON file."""
    counts = app.repo.export_backup(path)
    click.echo(f"Backup written to {path}: {counts}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.confirmation_option(prompt="This replaces all stored data. Continue?")
@click.pass_obj
def restore(app: AppContext, path: str) -> None:
    """Replace all stored data with the contents of a JSON backup."""
    counts = app.repo.restore_backup(path)
    click.echo(f"Restored from {path}: {counts}")


def main() -> None:
    try:
        cli(standalone_mode=False)
    except click.exceptions.Abort:
        click.echo("Aborted.", err=True)
        sys.exit(1)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except AppError as e:
        log.error("Command failed", extra={"error": str(e)})
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
