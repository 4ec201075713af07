# run.py
# Command-line entry point: argument parsing, logging setup and wiring.
#
#   llama-router "write hello to docs/hello.txt"
#   llama-router --plan-only "summarize docs/notes.md"
#   llama-router --chat
#   llama-router --generate --seed 7 --temperature 0.8 "a haiku about sqlite"
#   llama-router            (interactive: one instruction per line)

import argparse
import json
import logging

from rich.logging import RichHandler

from llama_router import display
from llama_router.assistant import Assistant
from llama_router.config import Settings
from llama_router.errors import RouterError
from llama_router.seed import seed_database


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=display.console, rich_tracebacks=True, show_path=False)],
    )


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="llama-router", description="Route instructions to sandboxed local actions.")
    parser.add_argument("instructions", nargs="*", help="Instructions to run, in order.")
    parser.add_argument("--plan-only", action="store_true", help="Print the plan without dispatching it.")
    parser.add_argument("--chat", action="store_true", help="Start an interactive chat session.")
    parser.add_argument("--seed-db", action="store_true", help="Create the demo notes table before running.")
    parser.add_argument("--generate", action="store_true", help="Send each instruction to the engine as a raw prompt.")
    gen = parser.add_argument_group("generation options (with --generate)")
    gen.add_argument("--system", default=None, help="System instruction.")
    gen.add_argument("--max-tokens", type=int, default=None, help="Output token budget, clamped to 1..2048.")
    gen.add_argument("--temperature", type=float, default=None, help="Sampling temperature.")
    gen.add_argument("--seed", type=int, default=None, help="Sampling seed.")
    return parser.parse_args(argv)


def _chat_loop(assistant: Assistant) -> None:
    session_id = assistant.sessions.create()
    display.chat_started(session_id)
    while True:
        text = display.console.input("[bold cyan]you[/bold cyan] ").strip()
        if not text or text.lower() in {"exit", "quit"}:
            return
        try:
            display.chat_reply(assistant.sessions.send(session_id, text, max_tokens=400))
        except RouterError as exc:
            display.error(str(exc))


def _generate(assistant: Assistant, prompt: str, args: argparse.Namespace) -> None:
    try:
        text = assistant.generate(
            prompt,
            system=args.system,
            max_tokens=args.max_tokens,
            temperature=args.temperature,
            seed=args.seed,
        )
    except RouterError as exc:
        display.error(str(exc))
        return
    display.generated(text)


def _handle(assistant: Assistant, instruction: str, args: argparse.Namespace) -> None:
    if args.generate:
        _generate(assistant, instruction, args)
        return
    if args.plan_only:
        plan = assistant.plan(instruction)
        display.plan_chosen(plan)
        display.console.print_json(json.dumps(plan.to_wire()))
        return
    assistant.run(instruction)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    try:
        settings = Settings.from_env()
    except RouterError as exc:
        display.error(str(exc))
        raise SystemExit(2) from exc

    configure_logging(settings.log_level)
    display.banner(settings)

    if args.seed_db:
        seed_database(settings.resolve(settings.db_path))

    with Assistant(settings, verbose=True) as assistant:
        try:
            if args.chat:
                _chat_loop(assistant)
                return
            if args.instructions:
                for instruction in args.instructions:
                    _handle(assistant, instruction, args)
                return
            while True:
                instruction = display.console.input("[bold cyan]>[/bold cyan] ").strip()
                if not instruction or instruction.lower() in {"exit", "quit"}:
                    return
                _handle(assistant, instruction, args)
        except (EOFError, KeyboardInterrupt):
            display.console.print()


if __name__ == "__main__":
    main()
