"""CLI entrypoint for agent-loop."""

import logging
from pathlib import Path

import rich_click as click

from agent_loop import __version__
from agent_loop.controllers import (
    AgentLoopCliController,
    PrdCommand,
    ProgressCommand,
    RunLoopCommand,
    RunTaskCommand,
)
from agent_loop.loop import LoopMode

click.rich_click.USE_MARKDOWN = True
CONTROLLER = AgentLoopCliController()


@click.group()
@click.version_option(version=__version__, prog_name="agent-loop")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
    help="Logging verbosity.",
)
def agent_loop(log_level: str) -> None:
    """Run an external code-generation tool against staged tasks and PRD backlogs."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@agent_loop.command("run")
@click.option("--prompt", required=True, help="Task prompt written to instructions.json.")
@click.option(
    "--schema",
    "schema_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="JSON Schema file the result must satisfy.",
)
@click.option(
    "--var",
    "variables",
    multiple=True,
    help="Task variable as KEY=VALUE; JSON values are decoded. Can be repeated.",
)
@click.option("--skill", default=None, help="Optional skill passed to the tool.")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-run timeout. Defaults to AGENT_LOOP_TIMEOUT_SECONDS.",
)
@click.option(
    "--tool-command",
    default=None,
    help="Tool command line. Defaults to AGENT_LOOP_TOOL_COMMAND.",
)
@click.option(
    "--staging-root",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory for task directories. Defaults to AGENT_LOOP_STAGING_ROOT.",
)
def run(  # noqa: PLR0913
    prompt: str,
    schema_path: Path,
    variables: tuple[str, ...],
    skill: str | None,
    timeout_seconds: float | None,
    tool_command: str | None,
    staging_root: Path | None,
) -> None:
    """Execute one task and validate its result."""

    try:
        result = CONTROLLER.run_task(
            RunTaskCommand(
                prompt=prompt,
                schema_path=schema_path,
                variables=variables,
                skill=skill,
                timeout_seconds=timeout_seconds,
                tool_command=tool_command,
                staging_root=staging_root,
            ),
        )
    except (TypeError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Task failed.")


@agent_loop.command("loop")
@click.option(
    "--prd",
    "prd_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="PRD backlog JSON file.",
)
@click.option(
    "--progress-file",
    "progress_path",
    type=click.Path(path_type=Path, dir_okay=False),
    required=True,
    help="Progress ledger JSON file; created when missing.",
)
@click.option(
    "--max-iterations",
    type=click.IntRange(min=0),
    default=10,
    show_default=True,
    help="Iteration budget.",
)
@click.option(
    "--mode",
    type=click.Choice([mode.value for mode in LoopMode], case_sensitive=False),
    default=LoopMode.CODE.value,
    show_default=True,
    help="Prompt flavor for each iteration.",
)
@click.option(
    "--max-attempts-per-story",
    type=click.IntRange(min=1),
    default=None,
    help="Skip a story after this many failed attempts.",
)
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-iteration timeout. Defaults to AGENT_LOOP_TIMEOUT_SECONDS.",
)
@click.option("--skill", default=None, help="Optional skill passed to the tool.")
@click.option(
    "--tool-command",
    default=None,
    help="Tool command line. Defaults to AGENT_LOOP_TOOL_COMMAND.",
)
@click.option(
    "--staging-root",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory for task directories. Defaults to AGENT_LOOP_STAGING_ROOT.",
)
def loop(  # noqa: PLR0913
    prd_path: Path,
    progress_path: Path,
    max_iterations: int,
    mode: str,
    max_attempts_per_story: int | None,
    timeout_seconds: float | None,
    skill: str | None,
    tool_command: str | None,
    staging_root: Path | None,
) -> None:
    """Drive the tool over the PRD until every story passes or the budget runs out."""

    try:
        result = CONTROLLER.run_loop(
            RunLoopCommand(
                prd_path=prd_path,
                progress_path=progress_path,
                max_iterations=max_iterations,
                mode=mode.lower(),
                max_attempts_per_story=max_attempts_per_story,
                timeout_seconds=timeout_seconds,
                skill=skill,
                tool_command=tool_command,
                staging_root=staging_root,
            ),
        )
    except (TypeError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Loop ended before completion.")


@agent_loop.group()
def prd() -> None:
    """PRD backlog commands."""


@prd.command("status")
@click.option(
    "--prd",
    "prd_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="PRD backlog JSON file.",
)
def prd_status(prd_path: Path) -> None:
    """Show every story and its pass flag."""

    _emit_lines(CONTROLLER.prd_status(PrdCommand(prd_path=prd_path)))


@prd.command("next")
@click.option(
    "--prd",
    "prd_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    required=True,
    help="PRD backlog JSON file.",
)
def prd_next(prd_path: Path) -> None:
    """Show the story the next loop iteration would pick."""

    _emit_lines(CONTROLLER.prd_next(PrdCommand(prd_path=prd_path)))


@agent_loop.group()
def progress() -> None:
    """Progress ledger commands."""


@progress.command("init")
@click.option(
    "--progress-file",
    "progress_path",
    type=click.Path(path_type=Path, dir_okay=False),
    required=True,
    help="Progress ledger JSON file.",
)
def progress_init(progress_path: Path) -> None:
    """Create an empty progress ledger if none exists."""

    _emit_lines(CONTROLLER.progress_init(ProgressCommand(progress_path=progress_path)))


@progress.command("show")
@click.option(
    "--progress-file",
    "progress_path",
    type=click.Path(path_type=Path, dir_okay=False),
    required=True,
    help="Progress ledger JSON file.",
)
def progress_show(progress_path: Path) -> None:
    """Print ledger entries and accumulated learnings."""

    _emit_lines(CONTROLLER.progress_show(ProgressCommand(progress_path=progress_path)))


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_loop()
