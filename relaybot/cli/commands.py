"""CLI commands for relaybot."""

import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from relaybot import __version__
from relaybot.config import (
    Config,
    ensure_workspace,
    get_config_path,
    get_data_dir,
    load_config,
    save_default_config,
)

app = typer.Typer(
    name="relaybot",
    help="relaybot: a chat-driven LLM agent with tools, background subagents and scheduled jobs",
)
cron_app = typer.Typer(help="Manage scheduled jobs")
app.add_typer(cron_app, name="cron")
console = Console()

WORKSPACE_TEMPLATES = {
    "AGENTS.md": (
        "# Agent Instructions\n\n"
        "You are a helpful AI assistant. Be concise, accurate, and friendly.\n\n"
        "## Guidelines\n\n"
        "- Always explain what you're doing before taking actions\n"
        "- Ask for clarification when the request is ambiguous\n"
        "- Use tools to help accomplish tasks\n"
        "- Remember important information in your memory files\n"
    ),
    "SOUL.md": (
        "# Soul\n\n"
        "I am relaybot, a lightweight AI assistant.\n\n"
        "## Personality\n\n"
        "- Helpful and friendly\n"
        "- Concise and to the point\n"
    ),
    "USER.md": (
        "# User\n\n"
        "Information about the user goes here.\n\n"
        "## Preferences\n\n"
        "- Communication style: (casual/formal)\n"
        "- Timezone: (your timezone)\n"
    ),
    "HEARTBEAT.md": (
        "# Heartbeat Tasks\n\n"
        "<!-- Add tasks below. The agent checks this file every 30 minutes. -->\n"
    ),
    "memory/MEMORY.md": (
        "# Long-term Memory\n\n"
        "This file stores important information that should persist across sessions.\n"
    ),
}


def _create_workspace_templates(workspace: Path) -> list[str]:
    created: list[str] = []
    for relative, content in WORKSPACE_TEMPLATES.items():
        path = workspace / relative
        if path.exists():
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        created.append(relative)
    return created


def _cron_store_path() -> Path:
    return get_data_dir() / "cron" / "jobs.json"


def _require_api_key(config: Config) -> str:
    api_key = config.get_api_key()
    if not api_key:
        console.print("[red]Error:[/red] No API key configured. Run 'relaybot onboard' first.")
        raise typer.Exit(1)
    return api_key


def _make_provider(config: Config):
    from relaybot.providers.litellm_provider import LiteLLMProvider

    return LiteLLMProvider(
        api_key=_require_api_key(config),
        api_base=config.get_api_base(),
        default_model=config.agents.defaults.model,
    )


def _make_agent_loop(config: Config, bus, provider, workspace: Path, cron_service=None):
    from relaybot.agent.loop import AgentLoop
    from relaybot.session.manager import SessionManager

    defaults = config.agents.defaults
    return AgentLoop(
        bus=bus,
        provider=provider,
        workspace=workspace,
        model=defaults.model,
        max_tokens=defaults.max_tokens,
        temperature=defaults.temperature,
        max_iterations=defaults.max_tool_iterations,
        max_history_messages=defaults.max_history_messages,
        brave_api_key=config.tools.web.search.api_key or None,
        exec_timeout=config.tools.exec.timeout,
        restrict_to_workspace=config.tools.exec.restrict_to_workspace,
        cron_service=cron_service,
        sessions=SessionManager(get_data_dir() / "sessions"),
    )


def _make_cron_callback(agent_loop, bus):
    """Build the gateway's job handler: an agent turn, or a verbatim notice for system events."""
    from relaybot.bus.events import OutboundMessage
    from relaybot.cron.types import SYSTEM_EVENT, CronJob

    async def on_cron_job(job: CronJob) -> str | None:
        channel = job.payload.channel or "cli"
        if job.payload.kind == SYSTEM_EVENT:
            response = job.payload.message
        else:
            response = await agent_loop.process_direct(
                job.payload.message,
                session_key=f"cron:{job.id}",
                channel=channel,
                chat_id=job.payload.to or "direct",
            )

        if (job.payload.deliver or job.payload.kind == SYSTEM_EVENT) and job.payload.to:
            await bus.publish_outbound(OutboundMessage(channel=channel, chat_id=job.payload.to, content=response or ""))
        elif job.payload.kind == SYSTEM_EVENT:
            logger.warning(f"Cron: system event '{job.name}' has no recipient")
        return response

    return on_cron_job


@app.command()
def version() -> None:
    """Show the relaybot version."""
    console.print(f"relaybot v{__version__}")


@app.command()
def onboard(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Initialize configuration and workspace."""
    path = config_path or get_config_path()
    if path.exists():
        console.print(f"[yellow]Config already exists at {path}[/yellow]")
        console.print("Delete it first if you want to start fresh.")
        return

    save_default_config(path)
    config = load_config(path)
    workspace = ensure_workspace(config)
    for name in _create_workspace_templates(workspace):
        console.print(f"  Created {name}")

    console.print(f"[green]Config created at:[/green] {path}")
    console.print(f"[green]Workspace initialized at:[/green] {workspace}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print(f"1. Add your API key to {path}")
    console.print('2. Run: relaybot agent -m "Hello!"')


@app.command()
def agent(
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Message to send"),
    session_id: str = typer.Option("cli:direct", "--session", "-s", help="Session ID"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Chat with the agent."""
    from relaybot.bus.queue import MessageBus

    config = load_config(config_path)
    workspace = ensure_workspace(config)
    provider = _make_provider(config)
    loop = _make_agent_loop(config, MessageBus(), provider, workspace)

    if message:
        response = asyncio.run(loop.process_direct(message, session_key=session_id))
        console.print(response)
        return

    console.print("[bold]relaybot[/bold] interactive mode. Type 'exit' to quit.\n")
    while True:
        try:
            user_input = console.input("[bold blue]> [/bold blue]")
            if user_input.strip().lower() in ("exit", "quit"):
                break
            if not user_input.strip():
                continue
            response = asyncio.run(loop.process_direct(user_input, session_key=session_id))
            console.print(f"\n{response}\n")
        except (KeyboardInterrupt, EOFError):
            break
    console.print("\n[dim]Goodbye![/dim]")


@app.command()
def status(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Show current status and configuration."""
    from relaybot.cron.service import CronService

    path = config_path or get_config_path()
    config = load_config(path)

    table = Table(title="relaybot Status")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Config", f"{path} " + ("[green]ok[/green]" if path.exists() else "[red]missing[/red]"))
    workspace = config.workspace_path
    table.add_row("Workspace", f"{workspace} " + ("[green]ok[/green]" if workspace.exists() else "[red]missing[/red]"))
    table.add_row("Model", config.agents.defaults.model)
    table.add_row("Max Tokens", str(config.agents.defaults.max_tokens))
    table.add_row("Temperature", str(config.agents.defaults.temperature))
    table.add_row("Max Tool Iterations", str(config.agents.defaults.max_tool_iterations))

    api_key = config.get_api_key()
    table.add_row("API Key", f"...{api_key[-8:]}" if api_key else "[red]Not configured[/red]")
    table.add_row("API Base", config.get_api_base() or "Default")

    table.add_row("Telegram", "Enabled" if config.channels.telegram.enabled else "Disabled")
    table.add_row("Web Search", "Configured" if config.tools.web.search.api_key else "[dim]Not configured[/dim]")
    table.add_row(
        "Heartbeat",
        f"every {config.heartbeat.interval_s}s" if config.heartbeat.enabled else "Disabled",
    )
    table.add_row("Cron Jobs", str(CronService(_cron_store_path()).status()["jobs"]))

    console.print(table)


@app.command()
def gateway(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Start the gateway (agent + channels + cron + heartbeat)."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")

    config = load_config(config_path)
    workspace = ensure_workspace(config)
    provider = _make_provider(config)

    from relaybot.bus.queue import MessageBus
    from relaybot.channels.manager import ChannelManager
    from relaybot.cron.service import CronService
    from relaybot.heartbeat.service import HeartbeatService

    async def _run_gateway() -> None:
        bus = MessageBus()
        cron = CronService(_cron_store_path())
        agent_loop = _make_agent_loop(config, bus, provider, workspace, cron_service=cron)

        cron.on_job = _make_cron_callback(agent_loop, bus)

        heartbeat = HeartbeatService(
            workspace=workspace,
            on_heartbeat=lambda prompt: agent_loop.process_direct(prompt, session_key="heartbeat"),
            interval_s=config.heartbeat.interval_s,
            enabled=config.heartbeat.enabled,
        )
        channel_manager = ChannelManager.from_config(config, bus)

        console.print("[bold green]Gateway starting...[/bold green]")
        if channel_manager.channel_names:
            console.print(f"Channels enabled: {', '.join(channel_manager.channel_names)}")
        else:
            console.print("[yellow]Warning: No channels enabled[/yellow]")

        await cron.start()
        await heartbeat.start()
        await channel_manager.start_all()
        cron_status = cron.status()
        if cron_status["jobs"]:
            console.print(f"Cron: {cron_status['jobs']} scheduled jobs")

        try:
            await asyncio.gather(agent_loop.run(), bus.dispatch_outbound())
        finally:
            heartbeat.stop()
            cron.stop()
            agent_loop.stop()
            bus.stop()
            await agent_loop.subagents.cleanup()
            await channel_manager.stop_all()

    try:
        asyncio.run(_run_gateway())
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/dim]")


def _format_ms(ms: int | None) -> str:
    if ms is None:
        return ""
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


@cron_app.command("list")
def cron_list(
    include_all: bool = typer.Option(False, "--all", "-a", help="Include disabled jobs"),
) -> None:
    """List scheduled jobs."""
    from relaybot.cron.service import CronService

    jobs = CronService(_cron_store_path()).list_jobs(include_disabled=include_all)
    if not jobs:
        console.print("No scheduled jobs.")
        return

    table = Table(title="Scheduled Jobs")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Schedule")
    table.add_column("Status")
    table.add_column("Next Run")

    for job in jobs:
        table.add_row(
            job.id,
            job.name,
            job.schedule.describe(),
            "enabled" if job.enabled else "disabled",
            _format_ms(job.state.next_run_at_ms),
        )
    console.print(table)


@cron_app.command("add")
def cron_add(
    name: str = typer.Option(..., "--name", "-n", help="Job name"),
    message: str = typer.Option(..., "--message", "-m", help="Message for the agent"),
    every: Optional[int] = typer.Option(None, "--every", "-e", help="Run every N seconds"),
    cron_expr: Optional[str] = typer.Option(None, "--cron", "-c", help="Cron expression, e.g. '0 9 * * *'"),
    tz: Optional[str] = typer.Option(None, "--tz", help="IANA timezone for --cron"),
    at: Optional[str] = typer.Option(None, "--at", help="Run once at an ISO time"),
    deliver: bool = typer.Option(False, "--deliver", "-d", help="Deliver the response to a channel"),
    to: Optional[str] = typer.Option(None, "--to", help="Recipient chat ID for delivery"),
    channel: Optional[str] = typer.Option(None, "--channel", help="Channel for delivery"),
    notify: bool = typer.Option(False, "--notify", help="Send the message verbatim to --to instead of running the agent"),
) -> None:
    """Add a scheduled job."""
    from relaybot.cron.service import CronService
    from relaybot.cron.types import AGENT_TURN, SYSTEM_EVENT, CronSchedule

    if every is not None:
        schedule = CronSchedule.every(every * 1000)
    elif cron_expr:
        schedule = CronSchedule.cron(cron_expr, tz)
    elif at:
        try:
            schedule = CronSchedule.at(int(datetime.fromisoformat(at).timestamp() * 1000))
        except ValueError:
            console.print(f"[red]Error:[/red] invalid ISO time: {at}")
            raise typer.Exit(1)
    else:
        console.print("[red]Error:[/red] Must specify --every, --cron, or --at")
        raise typer.Exit(1)

    if notify and not to:
        console.print("[red]Error:[/red] --notify requires --to")
        raise typer.Exit(1)

    try:
        job = CronService(_cron_store_path()).add_job(
            name=name,
            schedule=schedule,
            message=message,
            deliver=deliver,
            channel=channel,
            to=to,
            kind=SYSTEM_EVENT if notify else AGENT_TURN,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]Added job '{job.name}' ({job.id})[/green]")


@cron_app.command("remove")
def cron_remove(job_id: str = typer.Argument(..., help="Job ID to remove")) -> None:
    """Remove a scheduled job."""
    from relaybot.cron.service import CronService

    if CronService(_cron_store_path()).remove_job(job_id):
        console.print(f"[green]Removed job {job_id}[/green]")
    else:
        console.print(f"[red]Job {job_id} not found[/red]")
        raise typer.Exit(1)


@cron_app.command("enable")
def cron_enable(
    job_id: str = typer.Argument(..., help="Job ID"),
    disable: bool = typer.Option(False, "--disable", help="Disable instead of enable"),
) -> None:
    """Enable or disable a job."""
    from relaybot.cron.service import CronService

    job = CronService(_cron_store_path()).enable_job(job_id, enabled=not disable)
    if job is None:
        console.print(f"[red]Job {job_id} not found[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Job '{job.name}' {'disabled' if disable else 'enabled'}[/green]")


if __name__ == "__main__":
    app()
