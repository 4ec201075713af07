# assistant.py
# Instruction -> plan -> dispatch pipeline.
#
# The Assistant owns the wiring: one sandbox, one executor (and therefore one
# engine process at a time), one session store. The planner and dispatcher are
# stateless over those and can be used from many threads at once.
#
# All terminal output is delegated to display.py. No formatting here.

from typing import Any

from pydantic import BaseModel

from llama_router import display
from llama_router.config import Settings
from llama_router.dispatcher import ActionDispatcher
from llama_router.executor import Engine, LlamaCli, SerializedExecutor
from llama_router.models import DispatchResult, InferenceRequest, ValidatedPlan
from llama_router.planner import PlanGenerator
from llama_router.sandbox import PathSandbox
from llama_router.sessions import SessionStore


class CommandOutcome(BaseModel):
    """What one instruction produced: the plan chosen and its result payload."""

    plan: dict[str, Any]
    source: str
    result: DispatchResult


class Assistant:
    """
    Central pipeline for local command routing.

    Example:
        with Assistant(Settings.from_env()) as assistant:
            outcome = assistant.run("write hello to docs/hello.txt")
    """

    def __init__(
        self,
        settings: Settings,
        engine: Engine | None = None,
        session_ttl: float | None = None,
        verbose: bool = False,
    ) -> None:
        self.settings = settings
        self.sandbox = PathSandbox(settings.allowed_dirs, root=settings.working_root)
        self.executor = SerializedExecutor(
            engine or LlamaCli(settings.llama_bin, settings.llama_model),
            default_timeout=settings.timeout_seconds,
        )
        self.sessions = SessionStore(self.executor, ttl=session_ttl)
        self.planner = PlanGenerator(self.executor, self.sandbox)
        self.dispatcher = ActionDispatcher(settings, self.sandbox, self.executor, self.sessions)
        self._verbose = verbose

    def __enter__(self) -> "Assistant":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.executor.shutdown(cancel_pending=True)

    def plan(self, instruction: str) -> ValidatedPlan:
        return self.planner.generate(instruction)

    def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        seed: int | None = None,
    ) -> str:
        """
        Free-form completion, bypassing planning. Unset options take the
        engine defaults; max_tokens is clamped. Raises ExecutorError subclasses.
        """
        request = InferenceRequest(
            prompt=prompt,
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
            seed=seed,
        )
        return self.executor.submit(request)

    def run(self, instruction: str) -> CommandOutcome:
        """
        Full pipeline entry point.

        Always returns an outcome; failures are carried in the result payload.
        """
        if self._verbose:
            display.instruction_received(instruction)
            display.planning()

        plan = self.planner.generate(instruction)
        self.sessions.expire()
        if self._verbose:
            display.plan_chosen(plan)

        result = self.dispatcher.execute(plan)
        if self._verbose:
            display.dispatch_result(result)

        return CommandOutcome(plan=plan.to_wire(), source=plan.source, result=result)
