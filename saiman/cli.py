"""Command-line harness for exercising the agent against live services.

Usage:
    saiman                      Run all checks
    saiman quick                Bedrock and Exa checks only
    saiman bedrock              Test Bedrock connectivity
    saiman exa                  Test Exa search
    saiman agent                Test the agent loop
    saiman eval                 Run the evaluation suite
    saiman ask "your question"  Ask a question using the agent
    saiman help                 Show this help

Anything else is treated as a question.
"""

import asyncio
import sys

from pydantic import ValidationError
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel

from saiman.clients.exa import SearchType
from saiman.config import Settings
from saiman.evals import EvalRunner
from saiman.models.messages import Message, cuid
from saiman.services.container import Services, build_services
from saiman.utils.logging import LogConfig, setup_logging

console = Console()

AGENT_CHECK_QUESTION = "What are the top 3 programming languages in 2024? Be brief and cite sources."


def _masked(value: str) -> str:
    return "[red]❌ Missing[/red]" if not value else f"[green]✓[/green] {value[:8]}..."


def print_config(settings: Settings) -> None:
    console.print("\n📋 [bold]Configuration:[/bold]")
    console.print(f"   AWS Region: {settings.aws_region}")
    console.print(f"   AWS Key: {_masked(settings.aws_access_key_id)}")
    console.print(f"   Exa Key: {_masked(settings.exa_api_key)}")
    console.print(f"   Model: {settings.bedrock_model_id}")


def print_usage() -> None:
    console.print(Panel(__doc__.strip(), title="[cyan]Saiman CLI[/cyan]", border_style="cyan"))


async def check_bedrock(services: Services) -> None:
    console.print("📝 [bold]Testing Bedrock...[/bold]")
    message = Message(conversation_id=cuid(), role="user", content="What is 2 + 2? Reply in one word.")
    try:
        response = await services.model_client.send_message([message], [])
        services.tracker.add(response.usage)
        console.print(f"   [green]✓[/green] Response: {response.text}")
    except Exception as e:
        console.print(f"   [red]❌ Error:[/red] {e}")


async def check_exa(services: Services) -> None:
    console.print("\n📝 [bold]Testing Exa Search...[/bold]")
    for label, query, search_type in (
        ("Fast", "current weather", SearchType.FAST),
        ("Deep", "Python asyncio patterns", SearchType.DEEP),
    ):
        try:
            results = await services.exa_client.search(query, search_type=search_type)
            console.print(f"   [green]✓[/green] {label}: {len(results)} results")
        except Exception as e:
            console.print(f"   [red]❌ {label}:[/red] {e}")


async def ask_question(services: Services, question: str) -> None:
    console.print(f"   Question: {question}\n", markup=False)
    loop = services.new_agent_loop()
    result = await loop.ask([Message(conversation_id=cuid(), role="user", content=question)])
    if result is None:
        console.print("   [yellow]Cancelled[/yellow]")
        return

    if result.tool_calls:
        console.print(f"   🔧 Tool calls: {len(result.tool_calls)}")
        for call in result.tool_calls:
            console.print(f"      - {call.name}: {call.arguments[:60]}...", markup=False)
        console.print()

    console.print(Panel(Markdown(result.text), title="[bold green]📝 Response[/bold green]", border_style="green"))


async def main(args: list[str]) -> None:
    mode = args[0] if args else "all"

    console.print("=" * 50)
    console.print("  [bold]Saiman CLI[/bold]")
    console.print("=" * 50)

    if mode in ("help", "-h", "--help"):
        print_usage()
        return

    try:
        settings = Settings()
    except ValidationError as e:
        console.print(f"\n[red]❌ Invalid configuration:[/red] {e}")
        return
    setup_logging(LogConfig(level=settings.log_level))
    print_config(settings)

    if not settings.is_configured:
        console.print("\n[red]❌ Missing configuration:[/red]")
        for item in settings.missing_configuration:
            console.print(f"   - {item}")
        return

    console.print()
    try:
        services = build_services(settings)
    except Exception as e:
        console.print(f"\n[red]❌ Failed to start:[/red] {e}")
        return

    try:
        match mode:
            case "bedrock":
                await check_bedrock(services)
            case "exa":
                await check_exa(services)
            case "agent":
                console.print("\n📝 [bold]Testing Agent Loop...[/bold]")
                await ask_question(services, AGENT_CHECK_QUESTION)
            case "eval" | "evals":
                await EvalRunner(services.new_agent_loop, console=console).run_all()
            case "ask":
                question = " ".join(args[1:])
                if not question:
                    console.print('Usage: saiman ask "your question"')
                else:
                    await ask_question(services, question)
            case "quick":
                await check_bedrock(services)
                await check_exa(services)
            case "all":
                await check_bedrock(services)
                await check_exa(services)
                console.print("\n📝 [bold]Testing Agent Loop...[/bold]")
                await ask_question(services, AGENT_CHECK_QUESTION)
            case _:
                await ask_question(services, " ".join(args))
    except Exception as e:
        console.print(f"\n[red]❌ Error:[/red] {e}")
    finally:
        console.print(f"\n[dim]Token usage: {services.tracker.summary()}[/dim]")
        services.close()

    console.print("\n" + "=" * 50)


def run() -> None:
    """Console script entry point. Always exits 0; failures are printed."""
    try:
        asyncio.run(main(sys.argv[1:]))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
    except Exception as e:
        console.print(f"\n[red]❌ Error:[/red] {e}")
    finally:
        sys.exit(0)


if __name__ == "__main__":
    run()
