# models.py
# Data contracts for the command router.
# Schema and validation only. Nothing here touches the filesystem or the engine.

from enum import Enum
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    ValidationError,
    field_validator,
    model_validator,
)

from llama_router.errors import InvalidParamsError, UnknownActionError

MAX_TOKENS_CEILING = 2048
DEFAULT_MAX_TOKENS = 256
DEFAULT_TEMPERATURE = 0.2
DEFAULT_SEED = 42


def clamp_tokens(value: int) -> int:
    """Clamp an output-token budget into [1, MAX_TOKENS_CEILING]."""
    return min(max(int(value), 1), MAX_TOKENS_CEILING)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ActionKind(str, Enum):
    WRITE_FILE = "write_file"
    READ_FILE = "read_file"
    SQL_SELECT = "sql_select"
    SUMMARIZE_FILE = "summarize_file"
    BUILD_REPORT = "build_report"
    CHAT = "chat"


class ActionParams(BaseModel):
    """Base for the per-action parameter records. Unknown keys are dropped."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class WriteFileParams(ActionParams):
    path: str = Field(..., min_length=1)
    content: str


class ReadFileParams(ActionParams):
    path: str = Field(..., min_length=1)


class SqlSelectParams(ActionParams):
    sql: str = Field(..., min_length=1)
    params: list[Any] = Field(default_factory=list, description="Positional bindings for ? placeholders.")


class SummarizeFileParams(ActionParams):
    path: str = Field(..., min_length=1)


class BuildReportParams(ActionParams):
    title: str = Field(..., min_length=1)
    query: str | None = None
    include_summary: bool = Field(default=True, alias="includeSummary")


class ChatParams(ActionParams):
    text: str = Field(..., min_length=1)
    session_id: str | None = Field(default=None, alias="sessionId")


PARAM_SCHEMAS: dict[ActionKind, type[ActionParams]] = {
    ActionKind.WRITE_FILE: WriteFileParams,
    ActionKind.READ_FILE: ReadFileParams,
    ActionKind.SQL_SELECT: SqlSelectParams,
    ActionKind.SUMMARIZE_FILE: SummarizeFileParams,
    ActionKind.BUILD_REPORT: BuildReportParams,
    ActionKind.CHAT: ChatParams,
}

# Shown to the engine when it is asked to plan.
ACTION_SIGNATURES: dict[ActionKind, str] = {
    ActionKind.WRITE_FILE: '{"path": "<string>", "content": "<string>"}',
    ActionKind.READ_FILE: '{"path": "<string>"}',
    ActionKind.SQL_SELECT: '{"sql": "<SELECT statement>", "params"?: [<value>, ...]}',
    ActionKind.SUMMARIZE_FILE: '{"path": "<string>"}',
    ActionKind.BUILD_REPORT: '{"title": "<string>", "query"?: "<string>", "includeSummary"?: <bool>}',
    ActionKind.CHAT: '{"text": "<string>", "sessionId"?: "<string>"}',
}


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class Plan(BaseModel):
    """Wire shape of an action plan, as produced by the engine or the fallback."""

    action: str
    params: dict[str, Any] = Field(default_factory=dict)


class ValidatedPlan(BaseModel):
    """A plan whose params have been checked against its action's record."""

    model_config = ConfigDict(frozen=True)

    action: ActionKind
    params: SerializeAsAny[ActionParams]
    source: Literal["engine", "fallback"] = "engine"

    @model_validator(mode="after")
    def _params_match_action(self) -> "ValidatedPlan":
        expected = PARAM_SCHEMAS[self.action]
        if type(self.params) is not expected:
            raise ValueError(f"{self.action.value} takes {expected.__name__}, got {type(self.params).__name__}")
        return self

    def to_wire(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "params": self.params.model_dump(by_alias=True, exclude_none=True),
        }


def validate_plan(raw: Any, source: Literal["engine", "fallback"] = "engine") -> ValidatedPlan:
    """
    Check a raw plan against the schema table.

    Raises UnknownActionError when the action is outside the closed set and
    InvalidParamsError naming the first violation otherwise.
    """
    if isinstance(raw, Plan):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raise InvalidParamsError("Plan must be a JSON object.")

    action = raw.get("action")
    try:
        kind = ActionKind(action)
    except (ValueError, TypeError):
        raise UnknownActionError(f"Unknown action: {action!r}") from None

    params = raw.get("params")
    if not isinstance(params, dict):
        raise InvalidParamsError(f"{kind.value}: params must be an object.")

    try:
        record = PARAM_SCHEMAS[kind].model_validate(params)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"]) or "params"
        raise InvalidParamsError(f"{kind.value}: {where}: {first['msg']}") from exc

    return ValidatedPlan(action=kind, params=record, source=source)


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------


class InferenceRequest(BaseModel):
    """
    One call into the engine.

    `transcript=True` marks a pre-rendered multi-turn prompt; those carry no
    system instruction. `timeout` is seconds from admission; None means the
    executor's default.
    """

    prompt: str
    system: str | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    seed: int = DEFAULT_SEED
    timeout: float | None = Field(default=None, gt=0)
    json_schema: dict[str, Any] | None = None
    transcript: bool = False

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _clamp_max_tokens(cls, value: Any) -> int:
        if value is None:
            return DEFAULT_MAX_TOKENS
        return clamp_tokens(value)

    @field_validator("temperature", mode="before")
    @classmethod
    def _default_temperature(cls, value: Any) -> Any:
        return DEFAULT_TEMPERATURE if value is None else value

    @field_validator("seed", mode="before")
    @classmethod
    def _default_seed(cls, value: Any) -> Any:
        return DEFAULT_SEED if value is None else value


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class DispatchResult(BaseModel):
    """Discriminated success/error payload returned for every dispatched plan."""

    ok: bool
    action: str
    result: dict[str, Any] | None = None
    error: str | None = Field(default=None, description="Error code on failure.")
    message: str | None = None

    @classmethod
    def success(cls, action: str, result: dict[str, Any]) -> "DispatchResult":
        return cls(ok=True, action=action, result=result)

    @classmethod
    def failure(cls, action: str, error: str, message: str) -> "DispatchResult":
        return cls(ok=False, action=action, error=error, message=message)
