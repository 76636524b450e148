"""CLI entrypoint for volley-coach."""

import logging
from pathlib import Path

import rich_click as click

from volley_coach import __version__
from volley_coach.pipeline.controllers import (
    DbInitCommand,
    PipelineCliController,
    ReportShowCommand,
    SubmitCommand,
    UsageShowCommand,
)
from volley_coach.pipeline.models import TaskType
from volley_coach.tiers import TIER_HIERARCHY, Capability

click.rich_click.USE_MARKDOWN = True
PIPELINE_CONTROLLER = PipelineCliController()


@click.group()
@click.version_option(version=__version__, prog_name="volley-coach")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level.",
)
def volley_coach(log_level: str) -> None:
    """Volleyball video analysis pipeline CLI."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@volley_coach.group()
def db() -> None:
    """Database commands."""


@db.command("init")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def db_init(db_path: Path | None) -> None:
    """Apply schema migrations."""

    _emit_lines(PIPELINE_CONTROLLER.init_db(DbInitCommand(db_path=db_path)))


@volley_coach.command("submit")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--type",
    "task_type",
    required=True,
    help=f"Task type: {', '.join(task_type.value for task_type in TaskType)}.",
)
@click.option("--subject-id", required=True, help="Subject (video) id.")
@click.option("--account-id", required=True, help="Requesting account id.")
@click.option(
    "--tier",
    required=True,
    help=f"Subscription tier: {', '.join(tier.value for tier in TIER_HIERARCHY)}.",
)
@click.option("--task-id", default=None, help="Explicit task id. Generated when omitted.")
@click.option("--media-url", default=None, help="Media URL for `analyze`.")
@click.option("--mime-type", default=None, help="Media MIME type for `analyze`.")
@click.option(
    "--analysis-type",
    type=click.Choice(["full", "quick"]),
    default=None,
    help="Analysis depth for `analyze`.",
)
@click.option(
    "--focus-area",
    "focus_areas",
    multiple=True,
    help="Focus area for `analyze`. Can be repeated.",
)
@click.option("--report-id", type=int, default=None, help="Report id for `generate-plan`.")
@click.option("--player-ref", default=None, help="Player reference for `assess`, e.g. jersey:7.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=50),
    default=None,
    help="Number of stat rows for `assess`.",
)
def submit(  # noqa: PLR0913
    db_path: Path | None,
    task_type: str,
    subject_id: str,
    account_id: str,
    tier: str,
    task_id: str | None,
    media_url: str | None,
    mime_type: str | None,
    analysis_type: str | None,
    focus_areas: tuple[str, ...],
    report_id: int | None,
    player_ref: str | None,
    limit: int | None,
) -> None:
    """Run one task through the orchestrator and print the result envelope."""

    outcome = PIPELINE_CONTROLLER.submit(
        SubmitCommand(
            db_path=db_path,
            task_type=task_type,
            subject_id=subject_id,
            account_id=account_id,
            tier=tier,
            media_url=media_url,
            mime_type=mime_type,
            analysis_type=analysis_type,
            focus_areas=focus_areas,
            report_id=report_id,
            player_ref=player_ref,
            limit=limit,
            task_id=task_id,
        ),
    )
    _emit_lines(outcome.lines)
    if not outcome.success:
        raise click.ClickException("Task failed.")


@volley_coach.group()
def usage() -> None:
    """Usage ledger commands."""


@usage.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--account-id", required=True, help="Account id.")
@click.option(
    "--capability",
    type=click.Choice([capability.value for capability in Capability]),
    default=Capability.VIDEO_ANALYSIS.value,
    show_default=True,
    help="Gated capability.",
)
def usage_show(db_path: Path | None, account_id: str, capability: str) -> None:
    """Show used/limit for one account and capability."""

    _emit_lines(
        PIPELINE_CONTROLLER.usage_show(
            UsageShowCommand(db_path=db_path, account_id=account_id, capability=capability),
        ),
    )


@volley_coach.group()
def report() -> None:
    """Analysis report commands."""


@report.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--report-id", type=int, required=True, help="Report id.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["summary", "json"]),
    default="summary",
    show_default=True,
    help="Output format.",
)
def report_show(db_path: Path | None, report_id: int, output_format: str) -> None:
    """Show one stored report with its error, exercise and stat counts."""

    try:
        lines = PIPELINE_CONTROLLER.report_show(
            ReportShowCommand(db_path=db_path, report_id=report_id, output_format=output_format),
        )
    except LookupError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    volley_coach()
