# dispatcher.py
# Validated plan -> guarded collaborator call.
#
# dispatch() raises the error taxonomy; execute() wraps it into a
# DispatchResult payload. Results are returned as the collaborators produce
# them: nothing is cached or rewritten on the way out.

import json
import logging
import re
import sqlite3
from collections.abc import Callable
from typing import Any

from llama_router import tools
from llama_router.config import Settings
from llama_router.errors import ExecutorError, ForbiddenStatementError, InvalidParamsError, RouterError
from llama_router.executor import SerializedExecutor
from llama_router.models import (
    PARAM_SCHEMAS,
    ActionKind,
    BuildReportParams,
    ChatParams,
    DispatchResult,
    InferenceRequest,
    ReadFileParams,
    SqlSelectParams,
    SummarizeFileParams,
    ValidatedPlan,
    WriteFileParams,
    validate_plan,
)
from llama_router.sandbox import PathSandbox
from llama_router.sessions import DEFAULT_CHAT_SYSTEM_PROMPT, SessionStore

logger = logging.getLogger(__name__)

# Lexical gate only: comment-prefixed or stacked statements are not parsed.
SELECT_PREFIX = re.compile(r"^\s*select\b", re.IGNORECASE)

SUMMARY_PROMPT = "Summarize the following text in 5 short, clear bullet points:\n\n"
SUMMARY_SYSTEM = "Be concise. Answer with bullet points starting with '- '."
SUMMARY_MAX_TOKENS = 220

REPORT_JSON_PROMPT = (
    "Write 4 bullet points about the current state of the documents listed below.\n"
    'Return valid JSON {{"bullets": string[]}}.\n\nFiles: {files}'
)
REPORT_JSON_SYSTEM = "Return ONLY valid JSON."
REPORT_TEXT_PROMPT = "Write 4 short bullet points about the current state of these documents: {files}"
REPORT_TEXT_SYSTEM = "Be concise and clear."

CHAT_MAX_TOKENS = 400
CHAT_TEMPERATURE = 0.2


def ensure_select(sql: str) -> str:
    if not SELECT_PREFIX.match(sql):
        raise ForbiddenStatementError("Only SELECT statements are allowed.")
    return sql


class ActionDispatcher:
    """Runs one validated plan against the sandbox, the engine and the collaborators."""

    def __init__(
        self,
        settings: Settings,
        sandbox: PathSandbox,
        executor: SerializedExecutor,
        sessions: SessionStore,
    ) -> None:
        self._settings = settings
        self._sandbox = sandbox
        self._executor = executor
        self._sessions = sessions
        self._handlers: dict[ActionKind, Callable[[Any], dict[str, Any]]] = {
            ActionKind.WRITE_FILE: self._write_file,
            ActionKind.READ_FILE: self._read_file,
            ActionKind.SQL_SELECT: self._sql_select,
            ActionKind.SUMMARIZE_FILE: self._summarize_file,
            ActionKind.BUILD_REPORT: self._build_report,
            ActionKind.CHAT: self._chat,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def dispatch(self, plan: ValidatedPlan | dict) -> dict[str, Any]:
        """Validate (if needed), guard and run a plan. Raises RouterError subclasses."""
        if not isinstance(plan, ValidatedPlan):
            plan = validate_plan(plan)
        elif type(plan.params) is not PARAM_SCHEMAS[plan.action]:
            # Only reachable through model_construct(), which skips validation.
            raise InvalidParamsError(f"{plan.action.value}: params do not match the action.")
        logger.info("Dispatching %s", plan.action.value)
        return self._handlers[plan.action](plan.params)

    def execute(self, plan: ValidatedPlan | dict) -> DispatchResult:
        """Like dispatch(), but every failure comes back as an error payload."""
        action = plan.action.value if isinstance(plan, ValidatedPlan) else str(plan.get("action"))
        try:
            return DispatchResult.success(action, self.dispatch(plan))
        except RouterError as exc:
            logger.warning("%s failed: %s", action, exc)
            return DispatchResult.failure(action, exc.code, str(exc))
        except (sqlite3.Error, sqlite3.Warning) as exc:
            logger.warning("%s failed: %s", action, exc)
            return DispatchResult.failure(action, "query_error", str(exc))
        except OSError as exc:
            logger.warning("%s failed: %s", action, exc)
            return DispatchResult.failure(action, "io_error", str(exc))

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _write_file(self, params: WriteFileParams) -> dict[str, Any]:
        target = self._sandbox.authorize(params.path)
        tools.write_text(target, params.content, self._settings.max_payload_bytes)
        return {"ok": True, "path": self._sandbox.relative(target)}

    def _read_file(self, params: ReadFileParams) -> dict[str, Any]:
        target = self._sandbox.authorize(params.path)
        content = tools.read_text(target, self._settings.max_payload_bytes)
        return {"path": self._sandbox.relative(target), "content": content}

    def _sql_select(self, params: SqlSelectParams) -> dict[str, Any]:
        sql = ensure_select(params.sql)
        rows = tools.run_select(self._settings.resolve(self._settings.db_path), sql, params.params)
        return {"rows": rows}

    def _summarize_file(self, params: SummarizeFileParams) -> dict[str, Any]:
        target = self._sandbox.authorize(params.path)
        content = tools.read_text(target, self._settings.max_payload_bytes)
        summary = self._executor.submit(
            InferenceRequest(
                prompt=SUMMARY_PROMPT + content,
                system=SUMMARY_SYSTEM,
                max_tokens=SUMMARY_MAX_TOKENS,
            )
        )
        return {"path": self._sandbox.relative(target), "summary": summary}

    def _build_report(self, params: BuildReportParams) -> dict[str, Any]:
        docs_dir = self._settings.resolve(self._settings.docs_dir)
        reports_dir = self._sandbox.authorize(self._settings.reports_dir)
        hits = tools.list_doc_hits(docs_dir, params.query)

        summary, summary_error = "", None
        if params.include_summary:
            try:
                summary = self._report_summary(hits)
            except ExecutorError as exc:
                logger.warning("Report summary unavailable: %s", exc)
                summary_error = str(exc)

        md_path, html_path = tools.build_report(
            reports_dir,
            params.title,
            params.query,
            hits,
            summary,
            docs_label=self._settings.docs_dir,
        )
        result: dict[str, Any] = {
            "ok": True,
            "md_path": self._sandbox.relative(md_path),
            "html_path": self._sandbox.relative(html_path),
            "hits": hits,
        }
        if summary_error is not None:
            result["summary_error"] = summary_error
        return result

    def _report_summary(self, hits: list[str]) -> str:
        files = ", ".join(hits) or "(none)"
        raw = self._executor.submit(
            InferenceRequest(
                prompt=REPORT_JSON_PROMPT.format(files=files),
                system=REPORT_JSON_SYSTEM,
                max_tokens=200,
            )
        )
        try:
            bullets = json.loads(raw).get("bullets")
        except (ValueError, AttributeError):
            bullets = None
        if isinstance(bullets, list):
            return "\n".join(f"- {b}" for b in bullets)

        return self._executor.submit(
            InferenceRequest(
                prompt=REPORT_TEXT_PROMPT.format(files=files),
                system=REPORT_TEXT_SYSTEM,
                max_tokens=180,
            )
        )

    def _chat(self, params: ChatParams) -> dict[str, Any]:
        session_id = params.session_id or self._sessions.create(DEFAULT_CHAT_SYSTEM_PROMPT)
        reply = self._sessions.send(
            session_id,
            params.text,
            max_tokens=CHAT_MAX_TOKENS,
            temperature=CHAT_TEMPERATURE,
        )
        return {"session_id": session_id, "reply": reply}
