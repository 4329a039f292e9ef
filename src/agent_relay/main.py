"""CLI entrypoint for agent-relay."""

import logging
from pathlib import Path

import rich_click as click

from agent_relay import __version__
from agent_relay.controllers import (
    AgentRelayCliController,
    ParseCommand,
    RunCommand,
    StatusCommand,
)
from agent_relay.orchestrator.models import ToolId

click.rich_click.USE_MARKDOWN = True
CONTROLLER = AgentRelayCliController()
TOOL_CHOICES = [tool.value for tool in ToolId]


@click.group()
@click.version_option(version=__version__, prog_name="agent-relay")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging on stderr.")
def agent_relay(verbose: bool) -> None:
    """Run prompts through AI coding-assistant CLIs in headless mode."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@agent_relay.command("run")
@click.option(
    "--tool",
    type=click.Choice(TOOL_CHOICES, case_sensitive=False),
    default=None,
    help="AI tool to drive. Defaults to AGENT_RELAY_DEFAULT_TOOL.",
)
@click.option("--prompt", default=None, help="Prompt text.")
@click.option(
    "--prompt-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read the prompt from a file instead of `--prompt`.",
)
@click.option(
    "--cwd",
    "working_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Workspace directory the agent runs in. Defaults to the current directory.",
)
@click.option("--resume", "resume_session_id", default=None, help="Session id to resume.")
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Hard timeout in seconds. Defaults to AGENT_RELAY_TIMEOUT_SECONDS.",
)
@click.option(
    "--allow",
    "allowed_capabilities",
    multiple=True,
    help="Capability granted to the agent (tool name or sandbox mode). Can be repeated.",
)
@click.option("--project", default=None, help="Project name used as the session continuity key.")
@click.option("--phase", default=None, help="Workflow phase within the project.")
def run(  # noqa: PLR0913
    tool: str | None,
    prompt: str | None,
    prompt_file: Path | None,
    working_dir: Path | None,
    resume_session_id: str | None,
    timeout_seconds: float | None,
    allowed_capabilities: tuple[str, ...],
    project: str | None,
    phase: str | None,
) -> None:
    """Execute a prompt and stream progress until it finishes."""

    if (prompt is None) == (prompt_file is None):
        raise click.UsageError("Pass exactly one of --prompt or --prompt-file.")
    prompt_text = prompt if prompt is not None else prompt_file.read_text("utf-8")
    try:
        report = CONTROLLER.run(
            RunCommand(
                prompt=prompt_text,
                tool=tool,
                working_dir=working_dir,
                resume_session_id=resume_session_id,
                timeout_seconds=timeout_seconds,
                allowed_capabilities=allowed_capabilities,
                project=project,
                phase=phase,
            ),
            emit=click.echo,
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(report.lines)
    if not report.success:
        raise click.ClickException("Execution failed.")


@agent_relay.command("status")
@click.option(
    "--tool",
    "tools",
    multiple=True,
    type=click.Choice(TOOL_CHOICES, case_sensitive=False),
    help="Tool to check. Repeat to check several; defaults to all.",
)
def status(tools: tuple[str, ...]) -> None:
    """Show which tools can run headless on this machine."""

    report = CONTROLLER.status(StatusCommand(tools=tools))
    _emit_lines(report.lines)


@agent_relay.command("parse")
@click.option(
    "--tool",
    required=True,
    type=click.Choice(TOOL_CHOICES, case_sensitive=False),
    help="Tool whose output format the file uses.",
)
@click.argument("stream_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def parse(tool: str, stream_path: Path) -> None:
    """Replay a captured agent output stream and print the progress it yields."""

    report = CONTROLLER.parse(ParseCommand(tool=tool, stream_path=stream_path))
    _emit_lines(report.lines)
    if not report.success:
        raise click.ClickException(f"Cannot parse output for {tool}.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_relay()
