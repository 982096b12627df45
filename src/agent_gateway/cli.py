"""
Command-line interface for Agent-Gateway.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from uuid import uuid4

import structlog
from sqlalchemy import select

from .config import Settings, get_settings


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="agent-gateway",
        description="Agent-Gateway - tool-calling agents with persistent memory",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init", help="Create the database tables and a .env template")

    agents_parser = subparsers.add_parser("agents", help="Manage agents")
    agents_subparsers = agents_parser.add_subparsers(dest="agents_command")

    add_parser = agents_subparsers.add_parser("add", help="Create an agent")
    add_parser.add_argument("--name", required=True, help="Agent name")
    add_parser.add_argument("--provider", required=True, choices=["openai", "anthropic", "openrouter"])
    add_parser.add_argument("--model", required=True, help="Model identifier")
    add_parser.add_argument("--prompt", default=None, help="Persona text or markdown:<category>/<slug>")
    add_parser.add_argument("--max-iterations", type=int, default=10)
    add_parser.add_argument("--temperature", type=float, default=0.7)
    add_parser.add_argument("--tools", default="", help="Comma-separated tool names (default: all)")

    agents_subparsers.add_parser("list", help="List agents")

    chat_parser = subparsers.add_parser("chat", help="Chat with an agent interactively")
    chat_parser.add_argument("agent_id", help="Agent id")
    chat_parser.add_argument("--chat-id", default=None, help="Resume an existing chat")

    compact_parser = subparsers.add_parser("compact", help="Compact a chat into a snapshot")
    compact_parser.add_argument("agent_id")
    compact_parser.add_argument("chat_id")

    rename_parser = subparsers.add_parser("rename", help="Label a chat session")
    rename_parser.add_argument("chat_id")
    rename_parser.add_argument("label")

    prompt_parser = subparsers.add_parser("prompt", help="Print an agent's assembled system prompt")
    prompt_parser.add_argument("agent_id")
    prompt_parser.add_argument("--chat-id", default=None)

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    configure_logging(settings)

    if args.command == "init":
        asyncio.run(init_project(settings))
    elif args.command == "agents":
        if args.agents_command == "add":
            asyncio.run(add_agent(settings, args))
        elif args.agents_command == "list":
            asyncio.run(list_agents(settings))
        else:
            agents_parser.print_help()
    elif args.command == "chat":
        asyncio.run(chat(settings, args.agent_id, args.chat_id))
    elif args.command == "compact":
        asyncio.run(compact(settings, args.agent_id, args.chat_id))
    elif args.command == "rename":
        asyncio.run(rename(settings, args.chat_id, args.label))
    elif args.command == "prompt":
        asyncio.run(show_prompt(settings, args.agent_id, args.chat_id))
    elif args.command == "config":
        show_config(settings, args.check)
    else:
        parser.print_help()


async def _runtime(settings: Settings):
    from .agent import AgentRuntime
    from .models import init_database

    session_maker = await init_database(settings.database_url)
    return AgentRuntime(session_maker, settings=settings)


async def init_project(settings: Settings) -> None:
    """Create tables and a starter .env file."""
    from .models import init_database

    await init_database(settings.database_url)
    print(f"✅ Database ready at {settings.database_url}")

    env_file = Path(".env")
    if env_file.exists():
        print(f"ℹ️  {env_file} already exists")
        return

    env_file.write_text("""# Agent-Gateway Configuration

# LLM API Keys (set at least one)
OPENROUTER_API_KEY=
# OPENAI_API_KEY=
# ANTHROPIC_API_KEY=

# Database
DATABASE_URL=sqlite+aiosqlite:///./data/agent_gateway.db

# Runtime
# HISTORY_WINDOW=20
# COMPACTION_THRESHOLD=0.5
# EXEC_TIMEOUT_SECONDS=15
# LOG_LEVEL=INFO
""")
    print(f"✅ Created {env_file}")


async def add_agent(settings: Settings, args: argparse.Namespace) -> None:
    from .models import Agent, init_database

    session_maker = await init_database(settings.database_url)
    tools = [name.strip() for name in args.tools.split(",") if name.strip()]

    async with session_maker() as db:
        agent = Agent(
            name=args.name,
            system_prompt=args.prompt,
            provider_key=args.provider,
            model=args.model,
            temperature=args.temperature,
            max_iterations=args.max_iterations,
            tools=tools,
        )
        db.add(agent)
        await db.commit()
        await db.refresh(agent)

    logger.info("Agent created", agent_id=agent.id, name=agent.name)
    print(agent.id)


async def list_agents(settings: Settings) -> None:
    from .models import Agent, init_database

    session_maker = await init_database(settings.database_url)
    async with session_maker() as db:
        result = await db.execute(select(Agent).order_by(Agent.created_at))
        agents = result.scalars().all()

    if not agents:
        print("No agents defined.")
        return

    print(f"\n{'ID':<38} {'Name':<20} {'Provider':<12} {'Model':<30}")
    print("-" * 100)
    for agent in agents:
        print(f"{agent.id:<38} {agent.name:<20} {agent.provider_key:<12} {agent.model:<30}")


async def chat(settings: Settings, agent_id: str, chat_id: str | None) -> None:
    """Interactive chat. Ctrl-C cancels the running turn."""
    from .agent import OperationAborted

    runtime = await _runtime(settings)
    agent = await runtime.get_agent(agent_id)
    chat_id = chat_id or str(uuid4())
    loop = asyncio.get_running_loop()

    print(f"Chatting with {agent.name} (chat {chat_id}). Type 'exit' to quit.")
    print("Commands: /new, /sessions, /compact, /rename <label>\n")

    while True:
        try:
            line = (await asyncio.to_thread(input, "you> ")).strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not line:
            continue
        if line == "exit":
            break

        if line == "/new":
            chat_id = str(uuid4())
            print(f"Started chat {chat_id}")
            continue
        if line == "/sessions":
            for session in await runtime.sessions.list_sessions(agent_id=agent.id):
                print(f"  {session.chat_id}  {session.label or '-':<20} tokens={session.total_tokens} updated={session.updated_at}")
            continue
        if line == "/compact":
            result = await runtime.compact_session(agent.id, chat_id)
            print(f"Compacted into {result.snapshot_id}" if result.success else result.message)
            continue
        if line.startswith("/rename"):
            renamed = await runtime.rename_session(chat_id, line[len("/rename"):])
            print(f"Renamed to {renamed.label}" if renamed.success else renamed.message)
            continue

        abort = asyncio.Event()
        loop.add_signal_handler(signal.SIGINT, abort.set)
        try:
            result = await runtime.process_message(agent.id, line, sender_id="cli", chat_id=chat_id, abort=abort)
            print(f"\n{agent.name}> {result.text}\n")
        except OperationAborted as e:
            print(f"\n[{e}]\n")
        finally:
            loop.remove_signal_handler(signal.SIGINT)


async def compact(settings: Settings, agent_id: str, chat_id: str) -> None:
    runtime = await _runtime(settings)
    result = await runtime.compact_session(agent_id, chat_id)
    if result.success:
        print(f"✅ Snapshot {result.snapshot_id}")
    else:
        print(f"ℹ️  {result.message}")


async def rename(settings: Settings, chat_id: str, label: str) -> None:
    runtime = await _runtime(settings)
    result = await runtime.rename_session(chat_id, label)
    if result.success:
        print(f"✅ Renamed to {result.label}")
    else:
        print(f"❌ {result.message}")


async def show_prompt(settings: Settings, agent_id: str, chat_id: str | None) -> None:
    runtime = await _runtime(settings)
    agent = await runtime.get_agent(agent_id)
    print(await runtime.build_system_prompt(agent, chat_id))


def show_config(settings: Settings, check: bool) -> None:
    """Show current configuration."""

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== Agent-Gateway Configuration ===\n")

    print("Application:")
    print(f"  Debug: {settings.debug}")
    print(f"  Log Level: {settings.log_level}")

    print("\nLLM Providers:")
    print(f"  OpenAI Key: {mask(settings.openai_api_key)}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  OpenRouter Key: {mask(settings.openrouter_api_key)}")
    print(f"  OpenRouter URL: {settings.openrouter_base_url}")

    print("\nRuntime:")
    print(f"  History Window: {settings.history_window}")
    print(f"  Compaction Threshold: {settings.compaction_threshold}")
    print(f"  Default Context Length: {settings.default_context_length}")
    print(f"  Exec Timeout: {settings.exec_timeout_seconds}s")
    print(f"  Serialize Chat Turns: {settings.serialize_chat_turns}")

    print("\nDatabase:")
    print(f"  URL: {settings.database_url}")

    if check:
        print("\n=== Configuration Check ===\n")
        has_llm = settings.openai_api_key or settings.anthropic_api_key or settings.openrouter_api_key
        if has_llm:
            print("✅ Configuration looks good!")
        else:
            print("❌ At least one LLM API key is required")


if __name__ == "__main__":
    main()
