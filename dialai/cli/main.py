"""CLI entry point for the calling agent."""

import asyncio
import json
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Optional
import click
import structlog

from ..config.settings import settings
from ..core.generator import ConversationGenerator, DEFAULT_KNOWLEDGE_BASE
from ..core.orchestrator import CallOrchestrator
from ..core.scheduler import RateLimitedScheduler
from ..core.voice import VoiceCoordinator
from ..errors import DialAIError
from ..providers import registry
from ..state.call_store import CallStore
from ..state.knowledge_store import KnowledgeBaseStore
from ..state.models import Call, MessageRole
from ..utils.logging import close_call_log, open_call_log, setup_logging, silence_logging


logger = structlog.get_logger()

END_COMMANDS = ("/end", "/quit")


def _format_time(timestamp_ms: Optional[int]) -> str:
    if timestamp_ms is None:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _speaker(call: Call, role: MessageRole, agent_name: Optional[str]) -> str:
    if role is MessageRole.ASSISTANT:
        return agent_name or call.assistant_name or "Agent"
    return "You"


def _build_generation_provider(mock: bool):
    if mock:
        from mocks.providers import MockGenerationProvider
        provider = MockGenerationProvider()
    else:
        provider = registry.get_generation_provider(settings.providers.generation_provider)
    provider.initialize()
    return provider


def _build_voice(mock: bool, stdin) -> VoiceCoordinator:
    capture = registry.get_capture_provider(
        settings.providers.capture_provider, stream=stdin, end_commands=END_COMMANDS
    )
    if mock:
        from mocks.providers import MockSynthesizer
        synthesizer = MockSynthesizer(
            on_speak=lambda text: click.echo(click.style(f"🔊 {text}", fg="cyan"))
        )
    else:
        synthesizer = registry.get_synthesis_provider(settings.providers.synthesis_provider)
    synthesizer.initialize()
    return VoiceCoordinator(capture, synthesizer, **settings.voice_coordinator_config())


async def _run_text_call(orchestrator: CallOrchestrator, call_id: str, stdin) -> None:
    call = orchestrator.calls[call_id]
    greeting = call.messages[0]
    click.echo(click.style(f"{call.assistant_name}: {greeting.content}", fg="cyan"))

    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, stdin.readline)
        if not line:
            break
        text = line.strip()
        if not text:
            continue
        if text in END_COMMANDS:
            break

        try:
            message = await orchestrator.send_message(text, use_voice=orchestrator.voice is not None)
        except DialAIError as e:
            click.echo(click.style(f"❌ {e}", fg="red"))
            continue
        if message is not None:
            click.echo(click.style(f"{message.agent_name}: {message.content}", fg="cyan"))


async def _run_voice_call(orchestrator: CallOrchestrator) -> None:
    capture = orchestrator.voice.capture

    if orchestrator.toggle_listening():
        click.echo("🎙️  Listening. Type what the caller says; /end finishes the call.")
        await capture.wait_closed()
    else:
        click.echo(click.style(f"❌ Voice capture unavailable: {orchestrator.error}", fg="red"))


async def _finish_call(orchestrator: CallOrchestrator, call_id: str) -> Call:
    try:
        call = await orchestrator.end_call(call_id)
    finally:
        orchestrator.generator.scheduler.close()
    return call


@click.command()
@click.option("--mock", is_flag=True, help="Run with mock providers (no API calls)")
@click.option("--voice/--text", default=False, help="Speak replies and take turns through voice capture")
@click.option("--knowledge-base", "-k", help="Knowledge base to use for this call")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--config", type=click.Path(exists=True), help="Path to configuration file"
)
def call(mock: bool, voice: bool, knowledge_base: Optional[str], debug: bool, config: Optional[str]):
    """
    Start a call with the sales agent.

    Caller turns are read from stdin, one per line. "/end" or end of input
    finishes the call and prints its summary.
    """
    if config:
        settings.config_file = Path(config)
        settings.load_from_file()

    setup_logging(
        debug=debug,
        log_file=settings.logging.file_enabled,
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        log_dir=settings.logging.log_dir,
        file_rotation_mb=settings.logging.file_rotation_mb,
        file_backup_count=settings.logging.file_backup_count,
    )

    for issue in settings.validate():
        logger.warning("Configuration issue", issue=issue)

    stdin = click.get_text_stream("stdin")
    try:
        provider = _build_generation_provider(mock)
        voice_coordinator = _build_voice(mock, stdin) if voice else None
    except (ValueError, DialAIError) as e:
        raise click.ClickException(f"Error initializing providers: {e}")

    generator = ConversationGenerator(
        provider,
        RateLimitedScheduler(min_interval=settings.scheduler.min_interval),
        product_name=settings.agent.product_name,
        agent_names=settings.agent.agent_names,
        max_attempts=settings.retries.max_attempts,
        base_delay=settings.retries.base_delay,
        knowledge_bases=KnowledgeBaseStore(settings.knowledge_bases_path).load(),
    )
    orchestrator = CallOrchestrator(
        generator,
        voice_coordinator,
        CallStore(settings.calls_path),
        knowledge_base_id=settings.agent.knowledge_base_id,
    )
    if knowledge_base:
        try:
            orchestrator.set_active_knowledge_base(knowledge_base)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--knowledge-base")

    click.echo(click.style("📞 Call starting...", fg="green", bold=True))
    if mock:
        click.echo(click.style("⚠️  Running in MOCK mode - no API calls will be made", fg="yellow"))

    async def run() -> Call:
        call_id = await orchestrator.start_call()
        call_log = None
        if settings.logging.file_enabled:
            call_log = open_call_log(
                call_id,
                log_dir=settings.logging.log_dir,
                log_level="DEBUG" if debug else settings.logging.level,
            )
        try:
            if voice:
                await _run_voice_call(orchestrator)
            else:
                await _run_text_call(orchestrator, call_id, stdin)
            return await _finish_call(orchestrator, call_id)
        finally:
            if call_log is not None:
                close_call_log(call_log)

    try:
        finished = asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("\n\nCall interrupted.")
        return
    except DialAIError as e:
        logger.error("Call ended with error", error=str(e))
        raise click.ClickException(str(e))
    finally:
        provider.stop()
        if voice_coordinator is not None:
            voice_coordinator.synthesizer.stop()

    click.echo("\n📋 Call Summary:")
    click.echo(f"Call ID: {finished.id}")
    click.echo(f"Status: {finished.status.value}")
    click.echo(f"Messages: {len(finished.messages)}")
    if finished.summary:
        click.echo(finished.summary)
    click.echo("\n👋 Goodbye!")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def calls(as_json: bool):
    """List stored calls, most recent first."""
    if as_json:
        silence_logging()
    stored = sorted(
        CallStore(settings.calls_path).load().values(),
        key=lambda c: c.start_time,
        reverse=True,
    )

    if as_json:
        click.echo(json.dumps([c.to_dict() for c in stored], indent=2))
        return

    if not stored:
        click.echo("No calls found.")
        return

    click.echo(f"📞 Calls ({len(stored)})")
    click.echo("-" * 60)
    for c in stored:
        click.echo(
            f"{c.id[:8]}  {c.status.value:<9}  {_format_time(c.start_time)}  "
            f"{c.assistant_name:<8}  {len(c.messages)} messages"
        )


@click.command()
@click.argument("call_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def transcript(call_id: str, as_json: bool):
    """Show the transcript of a stored call. A unique id prefix is enough."""
    if as_json:
        silence_logging()
    stored = CallStore(settings.calls_path).load()

    matches = [c for cid, c in stored.items() if cid.startswith(call_id)]
    if not matches:
        raise click.ClickException(f"Call {call_id} not found")
    if len(matches) > 1:
        raise click.ClickException(f"Call id prefix {call_id} is ambiguous")
    found = matches[0]

    if as_json:
        click.echo(json.dumps(found.to_dict(), indent=2))
        return

    click.echo(f"Call {found.id} ({found.status.value})")
    click.echo(f"Started: {_format_time(found.start_time)}  Ended: {_format_time(found.end_time)}")
    click.echo("-" * 60)
    for message in found.messages:
        click.echo(f"{_speaker(found, message.role, message.agent_name)}: {message.content}")
    if found.summary:
        click.echo("-" * 60)
        click.echo(f"Summary: {found.summary}")


@click.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def clear(yes: bool):
    """Delete every stored call."""
    if not yes and not click.confirm("Delete all stored calls?"):
        click.echo("Aborted.")
        return
    CallStore(settings.calls_path).clear()
    click.echo("🗑️  Call history cleared.")


def _knowledge_catalog() -> ConversationGenerator:
    """A generator used only for its knowledge base catalog."""
    return ConversationGenerator(
        None,
        RateLimitedScheduler(),
        knowledge_bases=KnowledgeBaseStore(settings.knowledge_bases_path).load(),
    )


def _save_catalog(catalog: ConversationGenerator) -> None:
    KnowledgeBaseStore(settings.knowledge_bases_path).save(catalog.list_knowledge_bases())


@click.group(invoke_without_command=True)
@click.pass_context
def knowledge(ctx):
    """List available knowledge bases, or add and edit them."""
    if ctx.invoked_subcommand is not None:
        return

    click.echo("📚 Knowledge Bases")
    click.echo("-" * 50)
    for kb in _knowledge_catalog().list_knowledge_bases():
        marker = " (active)" if kb.id == settings.agent.knowledge_base_id else ""
        click.echo(f"  - {kb.id}: {kb.name}{marker}")
        click.echo(f"    {kb.description}")


@knowledge.command("add")
@click.argument("name")
@click.option("--description", "-d", default="", help="Short description")
@click.option(
    "--content", "content_file", type=click.File("r"), required=True,
    help="File with the product and qualification content",
)
@click.option(
    "--prompt", "prompt_file", type=click.File("r"),
    help="File with persona instructions (defaults to the built-in persona)",
)
def add_knowledge(name: str, description: str, content_file, prompt_file):
    """Add a knowledge base."""
    catalog = _knowledge_catalog()
    prompt = prompt_file.read() if prompt_file else DEFAULT_KNOWLEDGE_BASE.prompt
    kb = catalog.add_knowledge_base(name, description, content_file.read(), prompt)
    _save_catalog(catalog)
    click.echo(f"✅ Added knowledge base {kb.id}: {kb.name}")


@knowledge.command("update")
@click.argument("knowledge_base_id")
@click.option("--name", help="New name")
@click.option("--description", "-d", help="New description")
@click.option("--content", "content_file", type=click.File("r"), help="File with new content")
@click.option("--prompt", "prompt_file", type=click.File("r"), help="File with new persona instructions")
def update_knowledge(knowledge_base_id: str, name: Optional[str], description: Optional[str],
                     content_file, prompt_file):
    """Edit a knowledge base. Calls already running keep the old version."""
    catalog = _knowledge_catalog()
    if not catalog.has_knowledge_base(knowledge_base_id):
        raise click.ClickException(f"Unknown knowledge base: {knowledge_base_id}")

    current = catalog.get_knowledge_base(knowledge_base_id)
    catalog.update_knowledge_base(replace(
        current,
        name=name or current.name,
        description=current.description if description is None else description,
        content=content_file.read() if content_file else current.content,
        prompt=prompt_file.read() if prompt_file else current.prompt,
    ))
    _save_catalog(catalog)
    click.echo(f"✅ Updated knowledge base {knowledge_base_id}")


@click.command()
def providers():
    """List available providers."""
    click.echo("🔌 Available Providers")
    click.echo("-" * 50)

    generation = registry.list_providers("generation")
    click.echo(f"\n🤖 Generation Providers ({len(generation)})")
    for name in generation:
        click.echo(f"  - {name}")

    capture = registry.list_providers("capture")
    click.echo(f"\n🎙️  Capture Providers ({len(capture)})")
    for name in capture:
        click.echo(f"  - {name}")

    synthesis = registry.list_providers("synthesis")
    click.echo(f"\n🔊 Synthesis Providers ({len(synthesis)})")
    for name in synthesis:
        click.echo(f"  - {name}")


# Create CLI group
cli = click.Group(help="DialAI voice calling agent.")
cli.add_command(call)
cli.add_command(calls)
cli.add_command(transcript)
cli.add_command(clear)
cli.add_command(knowledge)
cli.add_command(providers)


if __name__ == "__main__":
    cli()
