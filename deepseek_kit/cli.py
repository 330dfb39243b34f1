"""deepseek CLI: Typer + Rich terminal interface.

Commands: chat, stream, reason, complete, json, functions, models, balance,
export, search, keys.
All output is Rich-powered with panels and tables.
"""

from __future__ import annotations

import ast
import asyncio
import json
import logging
import operator
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from deepseek_kit import __version__
from deepseek_kit.builders import FunctionBuilder
from deepseek_kit.client import DeepSeekClient
from deepseek_kit.errors import DeepSeekError, InvalidAPIKeyError
from deepseek_kit.keys import clear_keys, get_api_key, mask_key, save_key, validate_key
from deepseek_kit.persistence.export import (
    ExportFormat,
    export_conversation,
    load_conversation,
    write_export,
)
from deepseek_kit.persistence.search import search_messages
from deepseek_kit.schemas.chat import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    DeepSeekModel,
    MessageRole,
    ResponseFormat,
)
from deepseek_kit.schemas.completion import CompletionRequest
from deepseek_kit.schemas.conversation import Conversation
from deepseek_kit.schemas.session import CancelBoundary, StreamState
from deepseek_kit.streaming.events import StreamEvent, StreamEventEmitter, StreamEventType
from deepseek_kit.tools.registry import ToolRegistry

console = Console()
err_console = Console(stderr=True)

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="deepseek",
    help="DeepSeek chat, streaming and account tools.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

keys_app = typer.Typer(
    name="keys",
    help="Manage the stored API key.",
    no_args_is_help=True,
)
app.add_typer(keys_app, name="keys")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"deepseek-kit {__version__}")
        raise typer.Exit()


# ── App Callback ────────────────────────────────────────────────


@app.callback()
def main(
    ctx: typer.Context,
    api_key: str = typer.Option(
        None, "--api-key", "-k",
        help="API key (defaults to DEEPSEEK_API_KEY or ~/.deepseek/keys.env).",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging.",
    ),
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """DeepSeek chat, streaming and account tools."""
    ctx.obj = {"api_key": api_key}
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
            force=True,
        )


# ── Helpers ──────────────────────────────────────────────────────


def _make_client(ctx: typer.Context) -> DeepSeekClient:
    """Build a client from the global options, exit on missing key."""
    api_key = (ctx.obj or {}).get("api_key")
    client = DeepSeekClient(api_key=api_key)
    if not client.has_api_key:
        console.print(
            "[red]API key not set.[/red] Pass --api-key, export DEEPSEEK_API_KEY, "
            "or run: deepseek keys set <key>"
        )
        raise typer.Exit(1)
    return client


def _run(coro):
    """Run a coroutine, turning API errors into a red message and exit 1."""
    try:
        return asyncio.run(coro)
    except InvalidAPIKeyError as e:
        console.print(f"[red]Authentication failed:[/red] {e}")
        raise typer.Exit(1) from None
    except DeepSeekError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _resolve_model(name: str) -> DeepSeekModel:
    aliases = {"chat": DeepSeekModel.CHAT, "reasoner": DeepSeekModel.REASONER}
    try:
        return aliases.get(name) or DeepSeekModel(name)
    except ValueError:
        console.print(f"[red]Unknown model:[/red] '{name}'. Choose chat or reasoner.")
        raise typer.Exit(1) from None


def _build_messages(prompt: str, system: str | None) -> list[ChatMessage]:
    messages = []
    if system:
        messages.append(ChatMessage.system(system))
    messages.append(ChatMessage.user(prompt))
    return messages


def _print_usage(response: ChatCompletionResponse) -> None:
    usage = response.usage
    if usage is None:
        return
    parts = [f"Tokens: {usage.prompt_tokens}+{usage.completion_tokens}"]
    if usage.reasoning_tokens:
        parts.append(f"reasoning {usage.reasoning_tokens}")
    if usage.prompt_cache_hit_tokens:
        parts.append(f"cache hits {usage.prompt_cache_hit_tokens}")
    console.print(f"[dim]{' | '.join(parts)}[/dim]")


def _save_conversation(path: Path, messages: list[ChatMessage], title: str) -> None:
    conversation = Conversation(title=title)
    for message in messages:
        if message.role in (MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT):
            conversation.add(message.role, message.content)
    write_export(conversation, path, ExportFormat.JSON)
    console.print(f"[dim]Conversation saved to {path}[/dim]")


# ── deepseek chat ───────────────────────────────────────────────


@app.command()
def chat(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Message to send"),
    system: str = typer.Option(None, "--system", "-s", help="System prompt"),
    model: str = typer.Option(
        None, "--model", "-m", help="chat or reasoner [default: from config]",
    ),
    temperature: float = typer.Option(None, "--temperature", "-t", min=0.0, max=2.0),
    max_tokens: int = typer.Option(None, "--max-tokens", min=1),
    save: Path = typer.Option(None, "--save", help="Save the exchange as JSON"),
) -> None:
    """Send a message and print the reply."""
    client = _make_client(ctx)
    messages = _build_messages(prompt, system)
    request = ChatCompletionRequest(
        model=_resolve_model(model or client.config.default_model),
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
    )

    with console.status("[bold blue]Waiting for reply...", spinner="dots"):
        response = _run(client.complete(request))

    if response.reasoning_content:
        console.print(Panel(response.reasoning_content, title="Reasoning", border_style="dim"))
    console.print(Panel(response.content or "[dim](empty reply)[/dim]", title="Assistant"))
    _print_usage(response)

    if save:
        _save_conversation(save, [*messages, ChatMessage.assistant(response.content)], prompt[:60])


# ── deepseek stream ─────────────────────────────────────────────


@app.command()
def stream(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Message to send"),
    system: str = typer.Option(None, "--system", "-s", help="System prompt"),
    model: str = typer.Option(
        None, "--model", "-m", help="chat or reasoner [default: from config]",
    ),
    stop_after: CancelBoundary = typer.Option(
        None, "--stop-after",
        help="Boundary at which a cancellation takes effect.",
    ),
    max_chunks: int = typer.Option(
        None, "--max-chunks", min=1,
        help="Request cancellation once this many chunks have arrived.",
    ),
    show_reasoning: bool = typer.Option(
        False, "--show-reasoning", help="Print the reasoning trace as it streams",
    ),
) -> None:
    """Stream a reply, optionally stopping it at a text boundary."""
    client = _make_client(ctx)
    request = ChatCompletionRequest(
        model=_resolve_model(model or client.config.default_model),
        messages=_build_messages(prompt, system),
    )
    boundary = stop_after or CancelBoundary(client.config.stream.default_boundary)

    emitter = StreamEventEmitter(keep_history=False)
    consumer = client.start_session(request, emitter=emitter)

    def on_event(event: StreamEvent) -> None:
        if event.type == StreamEventType.CHUNK_APPENDED:
            console.print(event.data["delta"], end="", markup=False, highlight=False)
            if (
                max_chunks is not None
                and event.snapshot.chunk_count >= max_chunks
                and consumer.pending_cancel is None
            ):
                consumer.request_cancel(boundary, reason=f"stopped after {max_chunks} chunks")
        elif event.type == StreamEventType.REASONING_APPENDED and show_reasoning:
            console.print(event.data["delta"], end="", style="dim", markup=False, highlight=False)

    emitter.add_listener(on_event)

    try:
        snapshot = _run(consumer.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        raise typer.Exit(130) from None

    console.print()
    if snapshot.state == StreamState.FAILED:
        console.print(f"[red]Stream failed:[/red] {snapshot.error}")
        raise typer.Exit(1)

    summary = f"{snapshot.state} | {snapshot.chunk_count} chunks | {snapshot.buffer_size:,} chars"
    if snapshot.state == StreamState.CANCELLED:
        summary += f" | {snapshot.cancel_reason}"
    console.print(f"[dim]{summary}[/dim]")


# ── deepseek reason ─────────────────────────────────────────────


@app.command()
def reason(
    ctx: typer.Context,
    problem: str = typer.Argument(..., help="Problem or question to solve"),
    max_tokens: int = typer.Option(
        None, "--max-tokens", min=1, help="Defaults to the model's output limit",
    ),
    hide_reasoning: bool = typer.Option(
        False, "--hide-reasoning", help="Show only the final answer",
    ),
) -> None:
    """Solve a problem with the reasoner model."""
    client = _make_client(ctx)
    if max_tokens is None:
        max_tokens = client.config.model_config_for(DeepSeekModel.REASONER).max_output_tokens
    request = ChatCompletionRequest(
        model=DeepSeekModel.REASONER,
        messages=[ChatMessage.user(problem)],
        max_tokens=max_tokens,
    )

    with console.status("[bold blue]Reasoning...", spinner="dots"):
        response = _run(client.complete(request))

    if response.reasoning_content and not hide_reasoning:
        console.print(Panel(response.reasoning_content, title="Reasoning", border_style="dim"))
    console.print(Panel(response.content or "[dim](no answer)[/dim]", title="Answer"))
    _print_usage(response)


# ── deepseek complete ───────────────────────────────────────────


@app.command()
def complete(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Text before the gap"),
    suffix: str = typer.Option(None, "--suffix", help="Text after the gap"),
    max_tokens: int = typer.Option(128, "--max-tokens", min=1),
) -> None:
    """Fill in the middle between a prompt and an optional suffix (beta)."""
    client = _make_client(ctx)
    request = CompletionRequest(prompt=prompt, suffix=suffix, max_tokens=max_tokens)
    response = _run(client.complete_fim(request))

    console.print(prompt, end="", markup=False, highlight=False)
    console.print(response.text, style="bold green", end="", markup=False, highlight=False)
    if suffix:
        console.print(suffix, markup=False, highlight=False)
    else:
        console.print()


# ── deepseek json ───────────────────────────────────────────────


@app.command("json")
def json_mode(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="What to produce as JSON"),
    system: str = typer.Option(
        "You are a helpful assistant. Always answer with a valid JSON object.",
        "--system", "-s",
    ),
) -> None:
    """Ask for a JSON object and pretty-print it."""
    client = _make_client(ctx)
    request = ChatCompletionRequest(
        messages=_build_messages(prompt, system),
        response_format=ResponseFormat.json_object(),
    )
    response = _run(client.complete(request))

    try:
        console.print_json(json.dumps(json.loads(response.content)))
    except json.JSONDecodeError:
        console.print("[yellow]Model did not return valid JSON:[/yellow]")
        console.print(response.content, markup=False)
        raise typer.Exit(1) from None


# ── deepseek functions ──────────────────────────────────────────

_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
    ast.Mod: operator.mod,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


def _evaluate(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_evaluate(node.left), _evaluate(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_evaluate(node.operand))
    raise ValueError("Only arithmetic expressions are supported")


def calculate(expression: str) -> dict:
    try:
        return {"expression": expression, "result": _evaluate(ast.parse(expression, mode="eval"))}
    except (SyntaxError, ValueError, ZeroDivisionError) as e:
        return {"expression": expression, "error": str(e)}


def get_weather(location: str, unit: str = "celsius") -> dict:
    # Demo data; a real handler would call a weather service
    temperature = 22 if unit == "celsius" else 72
    return {"location": location, "temperature": temperature, "unit": unit, "condition": "sunny"}


def build_demo_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        FunctionBuilder("get_weather", "Get the current weather in a given location")
        .add_string_parameter("location", "The city and state, e.g. San Francisco, CA", required=True)
        .add_string_parameter("unit", "Temperature unit", enum=["celsius", "fahrenheit"])
        .build(),
        get_weather,
    )
    registry.register(
        FunctionBuilder("calculate", "Perform mathematical calculations")
        .add_string_parameter("expression", "The arithmetic expression to evaluate", required=True)
        .build(),
        calculate,
    )
    return registry


@app.command()
def functions(
    ctx: typer.Context,
    message: str = typer.Argument(..., help="Message that should trigger tool calls"),
    model: str = typer.Option(
        None, "--model", "-m", help="chat or reasoner [default: from config]",
    ),
    choice: str = typer.Option("auto", "--choice", help="Tool choice: auto, required or none"),
) -> None:
    """Run a tool-calling round trip with demo weather and calculator tools."""
    if choice not in ("auto", "required", "none"):
        console.print(f"[red]Invalid tool choice:[/red] '{choice}'")
        raise typer.Exit(1)

    client = _make_client(ctx)
    registry = build_demo_registry()
    executor = client.tool_executor(registry)
    request = ChatCompletionRequest(
        model=_resolve_model(model or client.config.default_model),
        messages=[ChatMessage.user(message)],
        tools=registry.tools(),
        tool_choice=choice,
    )

    console.print(f"[dim]Available functions: {', '.join(t.function.name for t in registry.tools())}[/dim]")
    response, history = _run(client.complete_with_tools(request, registry, executor=executor))

    calls = [m for m in history if m.role == MessageRole.TOOL]
    if calls:
        table = Table(title="Tool Calls")
        table.add_column("Function", style="bold cyan")
        table.add_column("Result")
        for call in calls:
            table.add_row(call.name or "", call.content)
        console.print(table)
    console.print(Panel(response.content or "[dim](empty reply)[/dim]", title="Assistant"))


# ── deepseek models / balance ───────────────────────────────────


@app.command()
def models(ctx: typer.Context) -> None:
    """List the models available to your API key."""
    client = _make_client(ctx)
    available = _run(client.list_models())

    table = Table(title="Available Models")
    table.add_column("ID", style="bold cyan")
    table.add_column("Owned By", style="dim")
    for model in available:
        table.add_row(model.id, model.owned_by)
    console.print(table)
    console.print(f"\n[dim]{len(available)} models available[/dim]")


@app.command()
def balance(ctx: typer.Context) -> None:
    """Show the account balance."""
    client = _make_client(ctx)
    result = _run(client.get_balance())

    status = "[green]available[/green]" if result.is_available else "[red]unavailable[/red]"
    console.print(f"Account status: {status}")

    table = Table(title="Balance")
    table.add_column("Currency", style="bold")
    table.add_column("Total", justify="right")
    table.add_column("Granted", justify="right")
    table.add_column("Topped Up", justify="right")
    for info in result.balance_infos:
        table.add_row(info.currency, info.total_balance, info.granted_balance, info.topped_up_balance)
    console.print(table)


# ── deepseek export / search ────────────────────────────────────


def _load_or_exit(path: Path) -> Conversation:
    try:
        return load_conversation(path)
    except FileNotFoundError:
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(1) from None
    except ValueError as e:
        console.print(f"[red]Not a saved conversation:[/red] {path} ({e})")
        raise typer.Exit(1) from None


@app.command()
def export(
    source: Path = typer.Argument(..., help="Conversation saved with chat --save"),
    fmt: ExportFormat = typer.Option(ExportFormat.MARKDOWN, "--format", "-f"),
    output: Path = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout"),
) -> None:
    """Convert a saved conversation to JSON, Markdown, text or CSV."""
    conversation = _load_or_exit(source)
    if output:
        write_export(conversation, output, fmt)
        console.print(f"[green]Exported[/green] {len(conversation.messages)} messages to {output}")
        return
    console.print(export_conversation(conversation, fmt), markup=False, highlight=False)


@app.command()
def search(
    query: str = typer.Argument(..., help="e.g. 'role:user content:weather rain'"),
    files: list[Path] = typer.Argument(..., help="Saved conversation files"),
) -> None:
    """Search messages in saved conversations."""
    conversations = [_load_or_exit(path) for path in files]
    results = search_messages(conversations, query)

    if not results:
        console.print("[dim]No matching messages.[/dim]")
        return

    table = Table(title=f"Results for: {query}")
    table.add_column("Conversation", style="bold")
    table.add_column("Role", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Message")
    for result in results:
        content = result.message.content
        table.add_row(
            result.conversation_title,
            result.message.role.value,
            f"{result.score:.2f}",
            content if len(content) <= 80 else content[:77] + "...",
        )
    console.print(table)


# ── deepseek keys ───────────────────────────────────────────────


@keys_app.command("set")
def keys_set(
    api_key: str = typer.Argument(..., help="Your DeepSeek API key"),
    validate: bool = typer.Option(False, "--validate", help="Check the key with a tiny request"),
) -> None:
    """Save the API key to ~/.deepseek/keys.env."""
    if validate:
        with console.status("[bold blue]Validating key...", spinner="dots"):
            ok, detail = asyncio.run(validate_key(api_key))
        if not ok:
            console.print(f"[red]Key rejected:[/red] {detail}")
            raise typer.Exit(1)
        console.print(f"[green]{detail}[/green]")

    path = save_key(api_key)
    console.print(f"Saved key {mask_key(api_key)} to {path}")


@keys_app.command("show")
def keys_show(ctx: typer.Context) -> None:
    """Show which API key is in effect (masked)."""
    api_key = get_api_key((ctx.obj or {}).get("api_key"))
    console.print(f"DEEPSEEK_API_KEY: {mask_key(api_key)}")


@keys_app.command("clear")
def keys_clear() -> None:
    """Delete the saved keys file."""
    if clear_keys():
        console.print("Removed saved keys.")
    else:
        console.print("[dim]No saved keys file.[/dim]")
