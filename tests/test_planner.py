import json

import pytest

from llama_router.errors import InferenceTimeoutError, ProcessError
from llama_router.models import ActionKind
from llama_router.planner import (
    DEFAULT_PATH,
    PLAN_JSON_SCHEMA,
    PlanGenerator,
    extract_path,
    fallback_plan,
    parse_plan_text,
)


@pytest.fixture
def generator(mock_executor, sandbox):
    return PlanGenerator(mock_executor, sandbox)


# ---------------------------------------------------------------------------
# Primary path
# ---------------------------------------------------------------------------


def test_engine_plan_is_used_when_valid(generator, mock_executor):
    mock_executor.submit.return_value = json.dumps(
        {"action": "read_file", "params": {"path": "docs/todo.md"}}
    )
    plan = generator.generate("show me the todo list")
    assert plan.action is ActionKind.READ_FILE
    assert plan.params.path == "docs/todo.md"
    assert plan.source == "engine"


def test_engine_request_carries_schema_and_allow_list(generator, mock_executor):
    mock_executor.submit.return_value = '{"action": "chat", "params": {"text": "hi"}}'
    generator.generate("hi")

    request = mock_executor.submit.call_args.args[0]
    assert request.json_schema == PLAN_JSON_SCHEMA
    assert request.max_tokens == 300
    assert request.temperature == 0.1
    assert "docs, reports, data" in request.system
    assert "write_file" in request.system
    assert '"""hi"""' in request.prompt


def test_plan_wrapped_in_fence_and_chatter(generator, mock_executor):
    mock_executor.submit.return_value = (
        "```json\n"
        '{"action": "sql_select", "params": {"sql": "SELECT * FROM notas"}}\n'
        "```"
    )
    plan = generator.generate("list the notes")
    assert plan.action is ActionKind.SQL_SELECT
    assert plan.source == "engine"


def test_parse_plan_text_tolerates_preamble():
    plan = parse_plan_text('Sure! {"action": "chat", "params": {"text": "ok"}} Hope that helps.')
    assert plan.params.text == "ok"


def test_parse_plan_text_rejects_non_json():
    with pytest.raises(ValueError):
        parse_plan_text("I cannot help with that.")


# ---------------------------------------------------------------------------
# Fallback activation
# ---------------------------------------------------------------------------


def test_not_json_falls_back(generator, mock_executor):
    mock_executor.submit.return_value = "{definitely not json"
    plan = generator.generate("escribe hola en docs/nota.txt")
    assert plan.source == "fallback"
    assert plan.action is ActionKind.WRITE_FILE
    assert plan.params.path == "docs/nota.txt"
    assert plan.params.content == "escribe hola en docs/nota.txt"


def test_unknown_action_falls_back(generator, mock_executor):
    mock_executor.submit.return_value = '{"action": "rm_rf", "params": {}}'
    plan = generator.generate("just chatting")
    assert plan.action is ActionKind.CHAT
    assert plan.source == "fallback"


def test_invalid_params_fall_back(generator, mock_executor):
    mock_executor.submit.return_value = '{"action": "write_file", "params": {"path": 7}}'
    plan = generator.generate("save this")
    assert plan.source == "fallback"
    assert plan.action is ActionKind.WRITE_FILE


@pytest.mark.parametrize("failure", [InferenceTimeoutError("slow"), ProcessError("crash", stderr="boom")])
def test_engine_failure_falls_back(generator, mock_executor, failure):
    mock_executor.submit.side_effect = failure
    plan = generator.generate("lee docs/a.txt")
    assert plan.action is ActionKind.READ_FILE
    assert plan.params.path == "docs/a.txt"


# ---------------------------------------------------------------------------
# Fallback heuristics
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "message, action",
    [
        ("write a haiku to docs/h.txt", ActionKind.WRITE_FILE),
        ("guarda esto", ActionKind.WRITE_FILE),
        ("read docs/a.md", ActionKind.READ_FILE),
        ("lee el archivo", ActionKind.READ_FILE),
        ("summarize docs/a.md", ActionKind.SUMMARIZE_FILE),
        ("resume docs/a.md", ActionKind.SUMMARIZE_FILE),
        ("build a report please", ActionKind.BUILD_REPORT),
        ("genera un reporte", ActionKind.BUILD_REPORT),
        ("what is the capital of France?", ActionKind.CHAT),
    ],
)
def test_fallback_patterns(message, action):
    assert fallback_plan(message).action is action


@pytest.mark.parametrize(
    "message, action",
    [
        ("read the report and write a note", ActionKind.WRITE_FILE),
        ("summarize what you read", ActionKind.READ_FILE),
        ("summarize the report", ActionKind.SUMMARIZE_FILE),
    ],
)
def test_fallback_priority_order(message, action):
    assert fallback_plan(message).action is action


def test_keywords_match_whole_words_only():
    # "sleep" contains "lee", "already" contains "read".
    assert fallback_plan("I already sleep well").action is ActionKind.CHAT


def test_fallback_defaults():
    assert fallback_plan("read it").params.path == DEFAULT_PATH
    report = fallback_plan("report")
    assert report.params.title == "Generated report"
    assert report.params.include_summary is True
    chat = fallback_plan("hola")
    assert chat.params.text == "hola"
    assert chat.params.session_id is None


def test_fallback_never_raises_on_empty_input():
    plan = fallback_plan("")
    assert plan.action is ActionKind.CHAT


# ---------------------------------------------------------------------------
# Path extraction
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "text, expected",
    [
        ("escribe hola en docs/nota.txt", "docs/nota.txt"),
        ("read reports/2024/q1.md.", "reports/2024/q1.md"),
        ("open ./docs/a-b_c.json now", "./docs/a-b_c.json"),
        ("version 3.5 notes", DEFAULT_PATH),
        ("no path here", DEFAULT_PATH),
    ],
)
def test_extract_path(text, expected):
    assert extract_path(text) == expected
