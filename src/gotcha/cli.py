"""Interactive terminal chat for gotcha."""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from pathlib import Path

import click
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gotcha import __version__
from gotcha.chat.reconciler import ERROR_MARKER
from gotcha.chat.session import ChatSession
from gotcha.config import REASONING_PRESETS, AppConfig, find_preset, load_config
from gotcha.llm.client import AsyncResponsesClient
from gotcha.types import EventType, Role, SessionEvent, TranscriptEntry

console = Console()

_ROLE_PREFIX = {
    Role.ASSISTANT: "[bold white]⏺[/bold white] ",
    Role.REASONING: "[dim]✻ thinking[/dim] ",
    Role.TOOL: "[bold cyan]⏺ Web Search[/bold cyan] ",
}


class StreamingDisplay:
    """Renders session events to the terminal as they arrive.

    Text and reasoning entries only ever grow, so only the unseen suffix
    is printed.  Tool entries are re-announced when their query changes.
    Provider text is escaped before it goes into rich markup.
    """

    def __init__(self, con: Console):
        self.con = con
        self._printed: dict[int, int] = {}
        self._current: int | None = None
        self._tools: dict[int, str] = {}

    def handle(self, event: SessionEvent) -> None:
        if event.type is EventType.TURN_STARTED:
            self._printed.clear()
            self._tools.clear()
            self._current = None

        elif event.type is EventType.TURN_UPDATED:
            entry = event.data.get("entry")
            if entry is not None:
                self._render(entry)

        elif event.type is EventType.TURN_ERROR:
            self._flush()
            message = escape(f"{ERROR_MARKER}{event.data.get('error')}")
            self.con.print(f"[red]{message}[/red]")
            entry = event.data.get("entry")
            if entry is not None:
                self._printed[entry.index] = len(entry.text)

        elif event.type is EventType.TURN_CANCELLED:
            self._flush()
            self.con.print("[yellow](cancelled)[/yellow]")

        elif event.type is EventType.TURN_DONE:
            self._flush()

    def _render(self, entry: TranscriptEntry) -> None:
        if entry.role is Role.TOOL:
            if self._tools.get(entry.index) != entry.text:
                self._flush()
                query = escape(entry.text)
                self.con.print(f"{_ROLE_PREFIX[Role.TOOL]}[dim]({query})[/dim]")
                self._tools[entry.index] = entry.text
            return

        done = self._printed.get(entry.index, 0)
        new = entry.text[done:]
        if not new:
            return
        if self._current != entry.index:
            self._flush()
            self.con.print(_ROLE_PREFIX.get(entry.role, ""), end="")
            self._current = entry.index
        style = "dim italic" if entry.role is Role.REASONING else None
        self.con.print(new, end="", style=style, highlight=False, markup=False)
        self._printed[entry.index] = len(entry.text)

    def _flush(self) -> None:
        if self._current is not None:
            self.con.print()
            self._current = None


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------

def _print_help() -> None:
    console.print("""[bold]Commands:[/bold]
  /model [level]   - Show or set reasoning level (minimal, low, medium, high)
  /clear           - Start a fresh conversation
  /help            - Show this help
  /quit            - Exit""")


def _print_presets(current: str) -> None:
    table = Table(title="Reasoning levels", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Level")
    table.add_column("Description", style="dim")
    for preset in REASONING_PRESETS:
        mark = "●" if preset.effort == current else ""
        table.add_row(mark, preset.name, preset.description)
    console.print(table)


def handle_command(cmd: str, session: ChatSession) -> bool | str:
    """Handle a slash command.  Returns ``"quit"``, True if handled, else False."""
    parts = cmd.strip().split(maxsplit=1)
    name = parts[0].lower()
    arg = parts[1] if len(parts) > 1 else ""

    if name in ("/quit", "/exit", "/q"):
        return "quit"

    if name == "/help":
        _print_help()
        return True

    if name == "/model":
        if not arg:
            _print_presets(session.reasoning_effort)
            return True
        preset = find_preset(arg)
        if preset is None:
            names = ", ".join(p.name for p in REASONING_PRESETS)
            console.print(f"[red]Unknown level: {escape(arg)}[/red] [dim]({names})[/dim]")
            return True
        session.reasoning_effort = preset.effort
        console.print(f"[green]Reasoning: {preset.name}[/green]")
        return True

    if name == "/clear":
        session.clear()
        console.print("[dim]Conversation cleared.[/dim]")
        return True

    return False


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def build_session(config: AppConfig, *, stream: bool = True) -> ChatSession:
    client = AsyncResponsesClient(config.llm, proxy_url=config.proxy_url)
    return ChatSession(
        client,
        system=config.system_prompt(),
        model=config.llm.model,
        max_tokens=config.llm.max_tokens,
        temperature=config.llm.temperature,
        reasoning_effort=config.reasoning_effort,
        reasoning_summary=config.reasoning_summary,
        web_search=config.web_search,
        stream=stream,
    )


async def _run_turn(session: ChatSession, prompt: str) -> None:
    start = time.monotonic()
    response = await session.send(prompt)
    elapsed = time.monotonic() - start
    if response is not None:
        usage = ""
        if response.input_tokens or response.output_tokens:
            usage = f", {response.input_tokens}→{response.output_tokens} tokens"
        note = ", non-streamed" if response.fell_back else ""
        console.print(f"[dim]({elapsed:.1f}s{usage}{note})[/dim]\n")


async def _repl(session: ChatSession, config: AppConfig) -> None:
    history_path = Path(config.history_path).expanduser()
    history_path.parent.mkdir(parents=True, exist_ok=True)
    prompt_session: PromptSession[str] = PromptSession(
        history=FileHistory(str(history_path)),
    )

    def _get_prompt():
        line = "─" * shutil.get_terminal_size().columns
        return HTML(f"<dim>{line}</dim>\n<ansigreen><b>❯ </b></ansigreen>")

    while True:
        try:
            user_input = (await prompt_session.prompt_async(_get_prompt)).strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye![/dim]")
            return

        if not user_input:
            continue

        if user_input.startswith("/"):
            result = handle_command(user_input, session)
            if result == "quit":
                console.print("[dim]Goodbye![/dim]")
                return
            if result:
                continue

        await _run_turn(session, user_input)


async def _main(config: AppConfig, prompt: str | None, stream: bool) -> None:
    session = build_session(config, stream=stream)
    display = StreamingDisplay(console)
    session.event_bus.subscribe("*", display.handle)
    try:
        if prompt:
            response = await session.send(prompt)
            if response is None:
                raise SystemExit(1)
            return
        await _repl(session, config)
    finally:
        await session.close()


@click.command()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to gotcha.yaml (auto-detected from CWD or ~/.config/gotcha/)")
@click.option("--model", "-m", default=None, help="Model name override")
@click.option("--effort", "-e", default=None,
              type=click.Choice([p.name for p in REASONING_PRESETS]),
              help="Reasoning level")
@click.option("--prompt", "-p", default=None, help="Ask one question and exit")
@click.option("--no-stream", is_flag=True, help="Disable streaming")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(config_path: str | None, model: str | None, effort: str | None,
         prompt: str | None, no_stream: bool, verbose: bool):
    """gotcha - terminal chat assistant."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    config = load_config(config_path)
    if model:
        config.llm.model = model
    if effort:
        preset = find_preset(effort)
        if preset is not None:
            config.reasoning_effort = preset.effort

    if not config.llm.api_key:
        console.print("[red]openai: missing API key[/red] [dim](set OPENAI_API_KEY)[/dim]")
        raise SystemExit(1)

    if not prompt:
        console.print(f"[bold cyan]{config.app_name}[/bold cyan] [dim]v{__version__}[/dim]")
        console.print(f"[dim]Model: {config.llm.model} @ {config.llm.base_url}[/dim]")
        console.print("[dim]Type /help for commands[/dim]\n")

    try:
        asyncio.run(_main(config, prompt, stream=not no_stream))
    except KeyboardInterrupt:
        console.print("\n[dim]Goodbye![/dim]")


if __name__ == "__main__":
    main()
