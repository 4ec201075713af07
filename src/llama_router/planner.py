# planner.py
# Free text -> ValidatedPlan.
#
# The engine is asked for a JSON plan first. Anything that goes wrong on that
# path (engine failure, unparsable output, schema violation) drops through to
# a deterministic keyword heuristic, so generate() always returns a plan.
# Side-effecting guards (sandbox, SELECT gate) are the dispatcher's job.

import json
import logging
import re

from llama_router.errors import ExecutorError, PlanError
from llama_router.executor import SerializedExecutor
from llama_router.models import (
    ACTION_SIGNATURES,
    ActionKind,
    InferenceRequest,
    ValidatedPlan,
    validate_plan,
)
from llama_router.sandbox import PathSandbox

logger = logging.getLogger(__name__)

DEFAULT_PATH = "docs/demo.txt"
DEFAULT_REPORT_TITLE = "Generated report"
EMPTY_CHAT_TEXT = "Hello"

PLAN_MAX_TOKENS = 300
PLAN_TEMPERATURE = 0.1

PLAN_JSON_SCHEMA = {
    "type": "object",
    "properties": {
        "action": {"type": "string", "enum": [kind.value for kind in ActionKind]},
        "params": {"type": "object"},
    },
    "required": ["action", "params"],
    "additionalProperties": False,
}

PLANNER_SYSTEM_PROMPT = """\
You are a fully local command planner. Reply with ONLY a JSON object that \
matches the schema {{"action": <action>, "params": {{...}}}}.

Actions and their params:
{actions}

File paths must stay inside these directories: {allowed}
If the user asks for a path outside them, or for SQL that is not a SELECT, \
use "chat" and explain the limitation.\
"""

PLANNER_USER_TEMPLATE = '''\
User message:
"""{message}"""

Mapping rules:
- "write/save ..." -> write_file
- "read ..." -> read_file
- "summarize ..." -> summarize_file
- "report ..." -> build_report (includeSummary defaults to true)
- SQL or "query the notes" -> sql_select ONLY if it starts with SELECT
- when in doubt -> chat

Valid examples:
{{"action": "write_file", "params": {{"path": "docs/note.txt", "content": "hello"}}}}
{{"action": "chat", "params": {{"text": "explain how the local router works"}}}}\
'''

# Evaluated in order; the first match wins.
FALLBACK_PATTERNS: list[tuple[ActionKind, re.Pattern]] = [
    (ActionKind.WRITE_FILE, re.compile(r"\b(write|save|escribe|escribir|guarda|guardar)\b", re.IGNORECASE)),
    (ActionKind.READ_FILE, re.compile(r"\b(read|lee|leer)\b", re.IGNORECASE)),
    (ActionKind.SUMMARIZE_FILE, re.compile(r"\b(summari[sz]e|resume|resumen|resumir)\b", re.IGNORECASE)),
    (ActionKind.BUILD_REPORT, re.compile(r"\b(report|reporte|informe)\b", re.IGNORECASE)),
]

_PATH_TOKEN = re.compile(r"(?<![\w/.-])((?:[\w.-]+/)+[\w-][\w.-]*\.[A-Za-z][A-Za-z0-9]{0,7})(?![\w/])")
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def extract_path(text: str, default: str = DEFAULT_PATH) -> str:
    """First `dir/file.ext` token in `text`, else `default`."""
    match = _PATH_TOKEN.search(text)
    return match.group(1) if match else default


def fallback_plan(message: str) -> ValidatedPlan:
    """Deterministic keyword routing. `chat` is the sink when nothing matches."""
    kind = next((k for k, pattern in FALLBACK_PATTERNS if pattern.search(message)), ActionKind.CHAT)

    if kind is ActionKind.WRITE_FILE:
        params = {"path": extract_path(message), "content": message}
    elif kind in (ActionKind.READ_FILE, ActionKind.SUMMARIZE_FILE):
        params = {"path": extract_path(message)}
    elif kind is ActionKind.BUILD_REPORT:
        params = {"title": DEFAULT_REPORT_TITLE, "includeSummary": True}
    else:
        params = {"text": message if message.strip() else EMPTY_CHAT_TEXT}

    return validate_plan({"action": kind.value, "params": params}, source="fallback")


def parse_plan_text(raw: str) -> ValidatedPlan:
    """
    Parse engine output into a ValidatedPlan.

    Tolerates markdown fences and chatter around the JSON object.
    Raises PlanError or ValueError on anything else.
    """
    text = _CODE_FENCE.sub("", raw.strip())
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise ValueError(f"No JSON object in engine output: {raw!r}")
    data = json.loads(text[start : end + 1], strict=False)
    return validate_plan(data, source="engine")


class PlanGenerator:
    """Turns an instruction into a plan using the engine, or the heuristic."""

    def __init__(self, executor: SerializedExecutor, sandbox: PathSandbox) -> None:
        self._executor = executor
        self._sandbox = sandbox

    def system_prompt(self) -> str:
        actions = "\n".join(f"- {kind.value}: {sig}" for kind, sig in ACTION_SIGNATURES.items())
        allowed = ", ".join(self._sandbox.relative(d) for d in self._sandbox.allowed_dirs)
        return PLANNER_SYSTEM_PROMPT.format(actions=actions, allowed=allowed)

    def request_for(self, message: str) -> InferenceRequest:
        return InferenceRequest(
            prompt=PLANNER_USER_TEMPLATE.format(message=message),
            system=self.system_prompt(),
            max_tokens=PLAN_MAX_TOKENS,
            temperature=PLAN_TEMPERATURE,
            json_schema=PLAN_JSON_SCHEMA,
        )

    def generate(self, message: str) -> ValidatedPlan:
        raw = ""
        try:
            raw = self._executor.submit(self.request_for(message))
            return parse_plan_text(raw)
        except (ExecutorError, PlanError, ValueError) as exc:
            logger.warning("Plan generation fell back to heuristics: %s (raw=%r)", exc, raw[:200])
        return fallback_plan(message)
