"""Command-line entry point for maid."""

import asyncio
import signal
import sys
from pathlib import Path

import typer

from maid.config import Config, get_config, set_config
from maid.exceptions import MaidError
from maid.llm.registry import default_registry
from maid.llm.types import ReasoningEffort
from maid.logging import configure_logging, get_logger
from maid.turn import ChatTurn, TurnResult

log = get_logger(__name__)

app = typer.Typer(help="maid - quick streamed answers from any LLM backend", add_completion=False)


def _print_tool_call(name: str, arguments: dict) -> None:
    query = arguments.get("query") if isinstance(arguments.get("query"), str) else ""
    error = arguments.get("error") if isinstance(arguments.get("error"), str) else ""
    details = f"{query} {error}".strip() if error else query
    typer.echo(f"[{name}]" + (f": {details}" if details else ""), err=True)


def _validate_effort(value: str) -> str:
    normalized = (value or "").strip().lower()
    allowed = [member.value for member in ReasoningEffort]
    if normalized and normalized not in allowed:
        raise typer.BadParameter(f"expected one of: {', '.join(allowed)}")
    return normalized


async def _list_models(provider: str) -> list[str]:
    adapter = default_registry().create(provider)
    try:
        models = await adapter.list_models()
    finally:
        await adapter.close()
    return sorted(model.id for model in models)


async def _run_turn(turn: ChatTurn, prompt: str, show_thinking: bool) -> TurnResult:
    abort_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort_event.set)
    except (NotImplementedError, RuntimeError):
        log.debug("SIGINT handler unavailable; stopping with Ctrl+C is disabled")

    def on_reasoning(delta: str) -> None:
        if show_thinking:
            typer.echo(delta, nl=False, err=True)

    try:
        return await turn.run(
            prompt,
            on_visible_delta=lambda delta: typer.echo(delta, nl=False),
            on_reasoning_delta=on_reasoning,
            on_tool_call=_print_tool_call,
            abort_event=abort_event,
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


@app.command()
def main(
    prompt: str = typer.Argument("", help="Question to ask; read from stdin when omitted"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    effort: str = typer.Option(
        "", "-e", "--effort", callback=_validate_effort, help="Reasoning effort: off, low, medium, high"
    ),
    web_search: bool = typer.Option(False, "-w", "--web-search", help="Enable web search"),
    models: bool = typer.Option(False, "--models", help="List model ids for the provider and exit"),
    thinking: bool = typer.Option(False, "-t", "--thinking", help="Print reasoning to stderr"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Ask one question and stream the answer."""
    if config:
        config_path = Path(config).expanduser()
        if not config_path.exists():
            typer.echo(f"Config file not found: {config_path}", err=True)
            raise typer.Exit(code=2)
        set_config(Config.from_yaml(config_path))
    cfg = get_config()
    configure_logging("DEBUG" if verbose else None)

    active_provider = provider or cfg.model.provider
    try:
        if models:
            for model_id in asyncio.run(_list_models(active_provider)):
                typer.echo(model_id)
            return

        question = prompt or ("" if sys.stdin.isatty() else sys.stdin.read())
        if not question.strip():
            typer.echo("Nothing to ask.", err=True)
            raise typer.Exit(code=2)

        turn = ChatTurn(
            provider=active_provider,
            model=model or None,
            effort=ReasoningEffort(effort) if effort else None,
            web_search=True if web_search else None,
        )
        result = asyncio.run(_run_turn(turn, question, thinking))
    except MaidError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo("")
    if result.stopped:
        typer.echo("[stopped]", err=True)
    elif result.command:
        # Printed for the user to run; maid never executes it
        typer.echo(f"$ {result.command}")


if __name__ == "__main__":
    app()
