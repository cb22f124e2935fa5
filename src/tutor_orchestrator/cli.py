import asyncio
import json
import sys

import click

from . import __version__
from .config import get_settings
from .exceptions import OrchestratorError
from .service import TutorOrchestrator
from .telemetry.logger import setup_logging


def get_version():
    return __version__


def run_server(host=None, port=None, reload=False):
    from .server.main import start_server

    start_server(host=host, port=port, reload=reload)


async def _run(method: str, *args, **kwargs):
    async with TutorOrchestrator.from_settings(get_settings()) as orchestrator:
        return await getattr(orchestrator, method)(*args, **kwargs)


def _emit(coro) -> None:
    try:
        result = asyncio.run(coro)
    except OrchestratorError as e:
        click.echo(json.dumps(e.to_dict(), indent=2, default=str), err=True)
        sys.exit(1)
    click.echo(result.model_dump_json(by_alias=True, indent=2))
    if not result.ok:
        sys.exit(2)


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level):
    settings = get_settings()
    setup_logging(level=log_level or settings.log_level, format=settings.log_format)


@cli.command()
@click.option("--format", default="text", type=click.Choice(["text", "json"]))
def version(format):
    if format == "json":
        click.echo(json.dumps({"version": get_version()}))
    else:
        click.echo(f"v{get_version()}")


@cli.command()
@click.option("--check", is_flag=True, help="Also check whether each backend is reachable")
def status(check):
    """Show configured providers per capability."""
    if check:
        click.echo(json.dumps(asyncio.run(_run("check_status")), indent=2))
        return
    orchestrator = TutorOrchestrator.from_settings(get_settings())
    try:
        click.echo(json.dumps(orchestrator.status(), indent=2))
    finally:
        asyncio.run(orchestrator.aclose())


@cli.command()
@click.argument("question")
@click.option("--language", default="python")
@click.option("--provider", default=None, help="Preferred provider id")
def ask(question, language, provider):
    """Ask the tutor a coding question."""
    _emit(_run("answer_question", question, language, provider=provider))


@cli.command()
@click.argument("source", type=click.File("r"))
@click.option("--language", required=True)
@click.option("--stdin", "stdin_text", default="", help="Text fed to the program's stdin")
@click.option("--provider", default=None, help="Preferred provider id")
def execute(source, language, stdin_text, provider):
    """Run SOURCE (a file, or - for stdin) in a code-execution sandbox."""
    _emit(_run("execute_code", source.read(), language, stdin_text, provider=provider))


@cli.command()
@click.argument("source", type=click.File("r"))
@click.option("--language", required=True)
@click.option("--provider", default=None, help="Preferred provider id")
def validate(source, language, provider):
    """Check that SOURCE compiles and runs cleanly."""
    try:
        validation = asyncio.run(_run("validate_code", source.read(), language, provider=provider))
    except OrchestratorError as e:
        click.echo(json.dumps(e.to_dict(), indent=2, default=str), err=True)
        sys.exit(1)
    click.echo(validation.model_dump_json(by_alias=True, indent=2))
    if not validation.is_valid:
        sys.exit(2)


@cli.command()
@click.option("--host", default=None)
@click.option("--port", default=None, type=int)
@click.option("--reload", is_flag=True)
def serve(host, port, reload):
    run_server(host, port, reload)


if __name__ == "__main__":
    cli()
