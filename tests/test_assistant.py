import json
import os
import sys

import pytest

from llama_router.assistant import Assistant, CommandOutcome
from llama_router.config import Settings
from llama_router.errors import InferenceTimeoutError


class FixedOutputEngine:
    """Engine that prints the same text for every request, or hangs."""

    def __init__(self, output: str = "", hang: bool = False) -> None:
        self.output = output
        self.hang = hang
        self.calls = 0

    def command(self, request):
        self.calls += 1
        script = "import time; time.sleep(30)" if self.hang else f"print({self.output!r})"
        return [sys.executable, "-c", script]


def _settings(workspace, timeout=5.0):
    return Settings(
        allowed_dirs=("docs", "reports", "data"),
        working_root=str(workspace),
        llama_model="model.gguf",
        timeout_seconds=timeout,
    )


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


def test_unresponsive_engine_falls_back_to_write(workspace):
    with Assistant(_settings(workspace, timeout=0.5), engine=FixedOutputEngine(hang=True)) as assistant:
        outcome = assistant.run("escribe hola en docs/nota.txt")

    assert isinstance(outcome, CommandOutcome)
    assert outcome.source == "fallback"
    assert outcome.plan["action"] == "write_file"
    assert outcome.result.ok is True
    assert outcome.result.result["path"] == os.path.join("docs", "nota.txt")
    assert "escribe hola en docs/nota.txt" in (workspace / "docs" / "nota.txt").read_text(encoding="utf-8")


def test_malformed_engine_output_falls_back_to_chat(workspace):
    engine = FixedOutputEngine("I am not JSON")
    with Assistant(_settings(workspace), engine=engine) as assistant:
        outcome = assistant.run("tell me a joke")

    assert outcome.plan["action"] == "chat"
    assert outcome.result.ok is True
    assert outcome.result.result["reply"] == "I am not JSON"
    assert engine.calls == 2


def test_engine_plan_is_dispatched(workspace):
    (workspace / "docs" / "todo.md").write_text("- buy milk", encoding="utf-8")
    plan = {"action": "read_file", "params": {"path": "docs/todo.md"}}
    with Assistant(_settings(workspace), engine=FixedOutputEngine(json.dumps(plan))) as assistant:
        outcome = assistant.run("what is on my todo list?")

    assert outcome.source == "engine"
    assert outcome.plan == plan
    assert outcome.result.result["content"] == "- buy milk"


def test_forbidden_engine_plan_becomes_error_payload(workspace):
    plan = {"action": "sql_select", "params": {"sql": "DROP TABLE notas"}}
    with Assistant(_settings(workspace), engine=FixedOutputEngine(json.dumps(plan))) as assistant:
        outcome = assistant.run("drop the notes table")

    assert outcome.result.ok is False
    assert outcome.result.error == "forbidden_statement"


def test_denied_path_becomes_error_payload(workspace):
    plan = {"action": "write_file", "params": {"path": "../../etc/passwd", "content": "x"}}
    with Assistant(_settings(workspace), engine=FixedOutputEngine(json.dumps(plan))) as assistant:
        outcome = assistant.run("overwrite passwd")

    assert outcome.result.error == "denied"


def test_missing_model_still_routes_by_fallback(workspace):
    settings = Settings(allowed_dirs=("docs",), working_root=str(workspace), llama_model=None)
    with Assistant(settings) as assistant:
        outcome = assistant.run("save hello to docs/hi.txt")

    assert outcome.source == "fallback"
    assert outcome.result.ok is True
    assert (workspace / "docs" / "hi.txt").exists()


def test_closed_assistant_rejects_work(workspace):
    assistant = Assistant(_settings(workspace), engine=FixedOutputEngine("x"))
    assistant.close()
    outcome = assistant.run("hello there")
    # Planning falls back; the chat reply itself cannot be produced.
    assert outcome.plan["action"] == "chat"
    assert outcome.result.ok is False
    assert outcome.result.error == "executor_closed"


@pytest.mark.parametrize("instruction", ["", "   "])
def test_blank_instruction_never_raises(workspace, instruction):
    with Assistant(_settings(workspace), engine=FixedOutputEngine("hi")) as assistant:
        outcome = assistant.run(instruction)
    assert outcome.plan["action"] == "chat"


# ---------------------------------------------------------------------------
# Free-form generation
# ---------------------------------------------------------------------------


class RecordingEngine(FixedOutputEngine):
    def __init__(self, output: str = "") -> None:
        super().__init__(output)
        self.requests = []

    def command(self, request):
        self.requests.append(request)
        return super().command(request)


def test_generate_passes_caller_options_to_engine(workspace):
    engine = RecordingEngine("a haiku")
    with Assistant(_settings(workspace), engine=engine) as assistant:
        text = assistant.generate("write a haiku", system="be poetic", max_tokens=99999, temperature=0.8, seed=7)

    assert text == "a haiku"
    (request,) = engine.requests
    assert request.prompt == "write a haiku"
    assert request.system == "be poetic"
    assert request.max_tokens == 2048
    assert request.temperature == 0.8
    assert request.seed == 7
    assert request.transcript is False


def test_generate_defaults_when_options_unset(workspace):
    engine = RecordingEngine("ok")
    with Assistant(_settings(workspace), engine=engine) as assistant:
        assistant.generate("hello")

    (request,) = engine.requests
    assert (request.max_tokens, request.temperature, request.seed) == (256, 0.2, 42)
    assert request.system is None


def test_generate_surfaces_engine_failure(workspace):
    with Assistant(_settings(workspace, timeout=0.5), engine=FixedOutputEngine(hang=True)) as assistant:
        with pytest.raises(InferenceTimeoutError):
            assistant.generate("anything")
