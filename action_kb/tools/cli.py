"""
Action Knowledge Base CLI Interface

Command-line tool for mining repositories into the knowledge base and
querying, teaching and inspecting it.
"""

import asyncio
import functools
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Tuple

import click
from pydantic import BaseModel

from action_kb.core.config import KnowledgeBaseConfig
from action_kb.core.errors import KnowledgeBaseError
from action_kb.core.observability import LogLevel, ObservabilityConfig, ObservabilityManager
from action_kb.knowledge.service import ActionKnowledgeBase
from action_kb.models.actions import Brand, Platform

logger = logging.getLogger(__name__)


def build_knowledge_base(persist_dir: Optional[str]) -> ActionKnowledgeBase:
    config = KnowledgeBaseConfig.from_env()
    if persist_dir:
        config = config.model_copy(update={"persist_directory": Path(persist_dir)})
    return ActionKnowledgeBase(config)


def run_with_kb(persist_dir: Optional[str], fn: Callable[[ActionKnowledgeBase], Awaitable[Any]]) -> Any:
    """Run one coroutine against a knowledge base, persisting it on exit."""

    async def main() -> Any:
        async with build_knowledge_base(persist_dir) as kb:
            return await fn(kb)

    try:
        return asyncio.run(main())
    except KnowledgeBaseError as e:
        raise click.ClickException(e.message) from e


def emit(result: BaseModel, json_output: bool, render: Callable[[Any], None]) -> None:
    if json_output:
        click.echo(result.model_dump_json(indent=2))
    else:
        render(result)


def kb_options(fn: Callable) -> Callable:
    """--persist-dir and --json-output shared by knowledge base commands."""

    @click.option(
        "--persist-dir",
        type=click.Path(file_okay=False),
        envvar="ACTION_KB_PERSIST_DIR",
        default=None,
        help="Directory holding the collection snapshots",
    )
    @click.option(
        "--json-output",
        is_flag=True,
        help="Output in JSON format",
    )
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return fn(*args, **kwargs)

    return wrapper


@click.group()
@click.option(
    "--verbose/--quiet",
    default=False,
    help="Verbose logging output",
)
def cli(verbose: bool) -> None:
    """Action knowledge base CLI - map test steps onto page-object methods."""
    ObservabilityManager.initialize(
        ObservabilityConfig(
            service_name="action-kb-cli",
            log_level=LogLevel.DEBUG if verbose else LogLevel.ERROR,
        )
    )
    logging.basicConfig(level=logging.DEBUG if verbose else logging.ERROR)


@cli.command()
@click.argument("repository", type=click.Path(exists=True, file_okay=False))
@kb_options
def index(repository: str, persist_dir: Optional[str], json_output: bool) -> None:
    """
    Mine page-object methods from REPOSITORY into atomic actions.

    \b
    Examples:
        action-kb index ./automation --persist-dir .kb
    """
    stats = run_with_kb(persist_dir, lambda kb: kb.index_methods_from_repository(repository))

    def render(s: Any) -> None:
        click.echo(f"Files scanned:   {s.files_scanned}")
        click.echo(f"Methods found:   {s.methods_found}")
        click.echo(f"Actions created: {s.actions_created}")
        for error in s.errors:
            click.echo(f"  ! {error.path}: {error.error}", err=True)

    emit(stats, json_output, render)


@cli.command()
@click.argument("query")
@click.option("--platform", type=click.Choice([p.value for p in Platform]), default=None)
@click.option("--brand", type=click.Choice([b.value for b in Brand]), default=None)
@click.option("--screen", default=None, help="Target screen filter")
@click.option("--top-k", type=int, default=5, show_default=True)
@kb_options
def find(
    query: str,
    platform: Optional[str],
    brand: Optional[str],
    screen: Optional[str],
    top_k: int,
    persist_dir: Optional[str],
    json_output: bool,
) -> None:
    """Find atomic actions matching QUERY."""
    filters = {"platform": platform, "brand": brand, "target_screen": screen}
    lookup = run_with_kb(persist_dir, lambda kb: kb.find_atomic_action(query, filters, top_k))

    def render(result: Any) -> None:
        status = "FOUND" if result.found else "NOT FOUND"
        click.echo(f"{status}: {result.query}")
        for candidate in result.candidates:
            action = candidate.action
            click.echo(
                f"  {candidate.confidence:.2f}  {action.action_name} -> "
                f"{action.class_name}.{action.method_name}()  [{action.id}]"
            )

    emit(lookup, json_output, render)


@cli.command()
@click.argument("text")
@kb_options
def translate(text: str, persist_dir: Optional[str], json_output: bool) -> None:
    """Translate user wording TEXT into action phrases."""
    translation = run_with_kb(persist_dir, lambda kb: kb.translate_user_term(text))

    def render(result: Any) -> None:
        if result.found:
            click.echo(f"{result.input} -> {', '.join(result.expands_to)} ({result.source.value})")
        else:
            click.echo(f"No translation for '{result.input}'. {result.suggestion or ''}".rstrip())

    emit(translation, json_output, render)


@cli.command()
@click.argument("term")
@click.argument("actions", nargs=-1, required=True)
@click.option("--synonym", "-s", multiple=True, help="Alternative phrasing (repeatable)")
@click.option("--context", default="", help="Free-text context for the term")
@kb_options
def teach(
    term: str,
    actions: Tuple[str, ...],
    synonym: Tuple[str, ...],
    context: str,
    persist_dir: Optional[str],
    json_output: bool,
) -> None:
    """Teach that TERM means ACTIONS."""
    learned = run_with_kb(
        persist_dir,
        lambda kb: kb.learn_from_user(term, list(actions), context=context, synonyms=list(synonym)),
    )
    emit(learned, json_output, lambda t: click.echo(f"Learned '{t.user_term}' -> {t.expands_to} [{t.id}]"))


@cli.command()
@click.argument("composite_id")
@kb_options
def expand(composite_id: str, persist_dir: Optional[str], json_output: bool) -> None:
    """Expand COMPOSITE_ID into atomic actions."""
    expansion = run_with_kb(persist_dir, lambda kb: kb.expand_composite_action(composite_id))

    def render(result: Any) -> None:
        click.echo(f"{result.action_name} ({len(result.steps)} steps)")
        for step in result.steps:
            if step.unmapped:
                click.echo(f"  ? {step.phrase}  (unmapped)")
            else:
                click.echo(f"  - {step.phrase} -> {step.action.class_name}.{step.action.method_name}()")

    emit(expansion, json_output, render)


@cli.command()
@kb_options
def stats(persist_dir: Optional[str], json_output: bool) -> None:
    """Show entity counts per layer."""
    result = run_with_kb(persist_dir, lambda kb: kb.get_stats())

    def render(s: Any) -> None:
        click.echo(f"Atomic actions:    {s.atomic_actions}")
        click.echo(f"Composite actions: {s.composite_actions}")
        click.echo(f"User terminology:  {s.user_terminology}")
        click.echo(f"Learned patterns:  {s.learned_patterns}")
        click.echo(f"Total:             {s.total}")

    emit(result, json_output, render)


@cli.command()
@click.confirmation_option(prompt="Delete every entity in every layer?")
@click.option(
    "--persist-dir",
    type=click.Path(file_okay=False),
    envvar="ACTION_KB_PERSIST_DIR",
    default=None,
)
def clear(persist_dir: Optional[str]) -> None:
    """Delete every entity in every layer."""
    run_with_kb(persist_dir, lambda kb: kb.clear_all())
    click.echo("Knowledge base cleared")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=8000, show_default=True)
def serve(host: str, port: int) -> None:
    """Run the REST API with uvicorn."""
    import uvicorn

    uvicorn.run("action_kb.api.app:app", host=host, port=port)


if __name__ == "__main__":
    cli()
