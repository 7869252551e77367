"""Shell Chat - terminal client for the relay.

A rich TUI that connects to the relay over HTTP/SSE and renders the
reassembled conversation live.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import httpx
from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.prompt import Prompt
from rich.style import Style
from rich.text import Text

from .client.reassembler import ConversationBuffer, stream_buffers

logger = logging.getLogger(__name__)

# Cache directory for conversation persistence
CACHE_DIR = Path.home() / ".cache" / "relay-chat"
CONVERSATION_FILE = CACHE_DIR / "conversation_id"

# Styles
TOOL_STYLE = Style(color="yellow")
ERROR_STYLE = Style(color="red", bold=True)
INFO_STYLE = Style(color="cyan")


def render_buffer(buffer: ConversationBuffer) -> Group:
    """Render tool steps, text, citations and suggestions for ``Live``."""

    parts: list = []
    for step in buffer.steps:
        if step.type == "tool_call":
            parts.append(Text(f"🔧 {step.name} {step.input}", style=TOOL_STYLE))
        else:
            marker = "✗" if step.is_error else "✓"
            parts.append(Text(f"{marker} {step.name}: {step.content}", style="dim"))
    if buffer.text:
        parts.append(Markdown(buffer.text))
    if buffer.citations:
        parts.append(Text("Sources:", style=INFO_STYLE))
        for citation in buffer.citations:
            parts.append(Text(f"  • {citation.title} <{citation.url}>", style="dim"))
    if buffer.suggestions:
        parts.append(Text("Try: " + " | ".join(buffer.suggestions), style=INFO_STYLE))
    return Group(*parts)


class ShellChat:
    """Terminal chat client for the relay."""

    def __init__(self, server_url: str):
        self.server_url = server_url.rstrip("/")
        self.conversation_id: Optional[str] = None
        self.console = Console()
        self.running = True
        self._load_conversation()

    def _load_conversation(self) -> None:
        try:
            if CONVERSATION_FILE.exists():
                self.conversation_id = CONVERSATION_FILE.read_text().strip() or None
        except OSError as exc:
            logger.debug("Could not read cached conversation id: %s", exc)
        if self.conversation_id:
            self.console.print(
                f"[dim]Resuming conversation: {self.conversation_id[:8]}...[/dim]"
            )

    def _save_conversation(self) -> None:
        if not self.conversation_id:
            return
        try:
            CACHE_DIR.mkdir(parents=True, exist_ok=True)
            CONVERSATION_FILE.write_text(self.conversation_id)
        except OSError as exc:
            logger.debug("Could not cache conversation id: %s", exc)

    def _clear_conversation(self) -> None:
        self.conversation_id = None
        try:
            CONVERSATION_FILE.unlink(missing_ok=True)
        except OSError as exc:
            logger.debug("Could not remove cached conversation id: %s", exc)
        self.console.print("Conversation cleared. Starting fresh.", style=INFO_STYLE)

    async def _check_health(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self.server_url}/health")
        except httpx.HTTPError as exc:
            self.console.print(f"Cannot connect to relay: {exc}", style=ERROR_STYLE)
            return False
        if resp.status_code != 200:
            self.console.print(f"Relay health check failed: {resp.status_code}", style=ERROR_STYLE)
            return False
        model = resp.json().get("default_model", "unknown")
        self.console.print(f"[dim]Connected to relay. Model: {model}[/dim]")
        return True

    async def _stream_chat(self, message: str) -> None:
        payload: dict = {"message": message}
        if self.conversation_id:
            payload["conversationId"] = self.conversation_id

        buffer = ConversationBuffer()
        async with httpx.AsyncClient(timeout=None) as client:
            with Live(console=self.console, refresh_per_second=10) as live:
                async for buffer in stream_buffers(
                    client, f"{self.server_url}/api/chat/stream", payload
                ):
                    live.update(render_buffer(buffer))

        if buffer.conversation_id and buffer.conversation_id != self.conversation_id:
            self.conversation_id = buffer.conversation_id
            self._save_conversation()
        if buffer.status == "error" and buffer.error is not None:
            self.console.print(Text(f"Stream failed ({buffer.error.reason})", style=ERROR_STYLE))
        elif buffer.usage is not None:
            self.console.print(
                f"[dim]{buffer.usage.input_tokens} in / {buffer.usage.output_tokens} out tokens[/dim]"
            )

    async def run(self) -> None:
        """Main chat loop."""
        if not await self._check_health():
            return

        self.console.print()
        self.console.print(
            "[bold]Relay Chat[/bold] - /clear starts over, /quit or Ctrl+D exits",
            style=INFO_STYLE,
        )
        self.console.print()

        while self.running:
            try:
                user_input = Prompt.ask("[bold blue]You[/bold blue]")
            except EOFError:
                self.console.print("\n[dim]Goodbye![/dim]")
                break

            command = user_input.strip().lower()
            if not command:
                continue
            if command == "/quit":
                break
            if command == "/clear":
                self._clear_conversation()
                continue

            self.console.print()
            try:
                await self._stream_chat(user_input)
            except asyncio.CancelledError:
                self.console.print("\n[dim]Request cancelled[/dim]")
            self.console.print()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Relay Chat - terminal client for the relay")
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get("RELAY_CHAT_SERVER", "http://localhost:8000"),
        help="Relay server URL (default: http://localhost:8000)",
    )
    args = parser.parse_args()

    chat = ShellChat(server_url=args.server)
    try:
        asyncio.run(chat.run())
    except KeyboardInterrupt:
        print("\nExiting...")


if __name__ == "__main__":
    main()
