# display.py
# All terminal output for the command router CLI.
#
# This module owns presentation entirely. assistant.py and run.py never
# format strings; they call named functions here.
#
# Colour language:
#   cyan   : routing events
#   blue   : engine calls
#   yellow : fallback path
#   green  : success
#   red    : errors and denials

import json

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from llama_router.config import Settings
from llama_router.models import DispatchResult, ValidatedPlan

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def banner(settings: Settings) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Local Command Router[/bold cyan]\n"
            "[dim]Instruction → plan → sandboxed action, one engine call at a time[/dim]\n\n"
            f"[dim]Engine  :[/dim] [white]{settings.llama_bin}[/white]\n"
            f"[dim]Model   :[/dim] [white]{settings.llama_model or '(not set)'}[/white]\n"
            f"[dim]Allowed :[/dim] [white]{', '.join(settings.allowed_dirs)}[/white]\n"
            f"[dim]Timeout :[/dim] [white]{settings.timeout_seconds:.0f}s[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def instruction_received(instruction: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW INSTRUCTION[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(instruction)}[/white]",
            title=_label("INSTRUCTION", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def planning() -> None:
    console.print(_label("ROUTER", "blue"), "[blue] → Asking the local engine for a plan…[/blue]")


def plan_chosen(plan: ValidatedPlan) -> None:
    console.print()
    color = "cyan" if plan.source == "engine" else "yellow"
    table = Table(box=box.SIMPLE_HEAVY, show_header=True, header_style=f"bold {color}", padding=(0, 1))
    table.add_column("Param", style="bold white", width=16)
    table.add_column("Value", style="dim white")

    for key, value in plan.to_wire()["params"].items():
        table.add_row(key, escape(_mono(value if isinstance(value, str) else json.dumps(value), 80)))

    title = "PLAN" if plan.source == "engine" else "PLAN (FALLBACK)"
    console.print(
        Panel(
            table,
            title=_label(title, color),
            subtitle=f"[dim]Action: {plan.action.value}[/dim]",
            border_style=color,
            padding=(0, 1),
        )
    )


def dispatch_result(result: DispatchResult) -> None:
    console.print()
    if result.ok:
        body = json.dumps(result.result, indent=2, ensure_ascii=False, default=str)
        console.print(
            Panel(
                f"[white]{escape(_mono(body, 2000))}[/white]",
                title=_label("RESULT", "green"),
                border_style="green",
                padding=(1, 2),
            )
        )
    else:
        console.print(
            Panel(
                f"[bold red]{result.error}[/bold red]\n\n[white]{escape(result.message or '')}[/white]",
                title=_label(f"{result.action.upper()} FAILED", "red"),
                border_style="red",
                padding=(0, 2),
            )
        )
    console.print()


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


def chat_started(session_id: str) -> None:
    console.print(_label("CHAT", "cyan"), f"[dim] session {session_id}, empty line or 'exit' to quit[/dim]")


def chat_reply(reply: str) -> None:
    console.print(f"[bold green]assistant[/bold green]  [white]{escape(reply)}[/white]")


def generated(text: str) -> None:
    console.print(
        Panel(
            escape(text) or "[dim](empty)[/dim]",
            title=_label("GENERATE", "blue"),
            border_style="blue",
            padding=(0, 2),
        )
    )


def error(message: str) -> None:
    console.print(
        Panel(
            f"[bold white]{escape(message)}[/bold white]",
            title=_label("ERROR", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
