#!/usr/bin/env python3
"""Interactive chat CLI against the local Saiman API."""

import base64
import sys
from pathlib import Path

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt


class ChatCLI:
    """Terminal stand-in for the floating window."""

    def __init__(self, base_url: str = "http://127.0.0.1:8765"):
        self.base_url = base_url
        self.conversation_id: str | None = None
        self.pending_images: list[dict[str, str]] = []
        self.console = Console()
        # Extended reasoning plus several tool rounds can take minutes
        self.client = httpx.Client(timeout=600.0)

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]Saiman - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /new, /recent, /list [query], /image <path>, /delete, /usage, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to Saiman[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")
                command = user_input.strip()

                if command.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command.lower() == "/help":
                    self._show_help()
                elif command.lower() == "/new":
                    self.conversation_id = None
                    self.pending_images = []
                    self.console.print("[yellow]🔄 New conversation[/yellow]")
                elif command.lower() == "/recent":
                    self._resume_recent()
                elif command.lower().startswith("/list"):
                    self._list_conversations(command[len("/list") :].strip())
                elif command.lower().startswith("/image "):
                    self._attach_image(Path(command[len("/image ") :].strip()).expanduser())
                elif command.lower() == "/delete":
                    self._delete_conversation()
                elif command.lower() == "/usage":
                    self._show_usage()
                elif command == "" and not self.pending_images:
                    continue
                else:
                    response = self._send_message(command)
                    if response:
                        self._display_response(response)

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        try:
            response = self.client.get(f"{self.base_url}/health")
        except httpx.HTTPError:
            return False
        if response.status_code != 200:
            return False
        health = response.json()
        for item in health.get("missing_configuration", []):
            self.console.print(f"[yellow]⚠️  Missing configuration: {item}[/yellow]")
        return True

    def _send_message(self, message: str) -> dict | None:
        if self.conversation_id:
            url = f"{self.base_url}/conversations/{self.conversation_id}/messages"
        else:
            url = f"{self.base_url}/conversations/messages"
        payload = {"message": message, "attachments": self.pending_images}

        try:
            with self.console.status("[dim]💭 Thinking...[/dim]"):
                response = self.client.post(url, json=payload)
        except KeyboardInterrupt:
            self._cancel()
            return None
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return None

        if response.status_code != 200:
            self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
            return None

        self.pending_images = []
        data = response.json()
        self.conversation_id = data["conversation"]["id"]
        return data

    def _cancel(self) -> None:
        if not self.conversation_id:
            return
        response = self.client.post(f"{self.base_url}/conversations/{self.conversation_id}/cancel")
        if response.status_code == 200 and response.json().get("conversation_deleted"):
            self.conversation_id = None
        self.console.print("[yellow]Request cancelled[/yellow]")

    def _display_response(self, response: dict) -> None:
        assistant = response.get("assistant_message")
        if not assistant:
            self.console.print("[yellow]No response (cancelled)[/yellow]")
            return

        subtitle = assistant.get("tool_usage_summary")
        self.console.print(
            Panel(
                Markdown(assistant.get("content", "")),
                title=f"[bold green]🤖 {response['conversation']['title']}[/bold green]",
                subtitle=subtitle,
                border_style="green",
                padding=(1, 2),
            )
        )

    def _attach_image(self, path: Path) -> None:
        try:
            data = path.read_bytes()
        except OSError as e:
            self.console.print(f"[red]❌ Cannot read {path}: {e}[/red]")
            return
        self.pending_images.append({"filename": path.name, "data": base64.b64encode(data).decode("ascii")})
        self.console.print(f"[dim]📎 {path.name} attached ({len(self.pending_images)} pending)[/dim]")

    def _resume_recent(self) -> None:
        response = self.client.get(f"{self.base_url}/conversations/recent")
        conversation = response.json() if response.status_code == 200 else None
        if not conversation:
            self.console.print("[yellow]No recent conversation, starting fresh[/yellow]")
            self.conversation_id = None
            return
        self.conversation_id = conversation["id"]
        self.console.print(f"[green]Resumed: {conversation['title']}[/green]")

    def _list_conversations(self, query: str) -> None:
        response = self.client.get(f"{self.base_url}/conversations", params={"query": query})
        for conversation in response.json():
            self.console.print(f"• {conversation['title']} [dim]({conversation['id']})[/dim]")

    def _delete_conversation(self) -> None:
        if not self.conversation_id:
            return
        self.client.delete(f"{self.base_url}/conversations/{self.conversation_id}")
        self.conversation_id = None
        self.console.print("[yellow]🗑️  Conversation deleted[/yellow]")

    def _show_usage(self) -> None:
        usage = self.client.get(f"{self.base_url}/usage").json()
        self.console.print(f"Tokens: {usage['formatted_input']} in / {usage['formatted_output']} out")

    def _show_help(self) -> None:
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /new - Start a new conversation
• /recent - Resume the most recent conversation unless it has gone stale
• /list [query] - List or search conversations
• /image <path> - Attach an image to the next message
• /delete - Delete the current conversation
• /usage - Show cumulative token usage
• /quit or /exit - Exit the chat

Press Ctrl+C while waiting for a reply to cancel the request.
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://127.0.0.1:8765"

    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
