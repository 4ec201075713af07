# errors.py
# Error taxonomy for the command router.
#
# Every failure the core can produce derives from RouterError and carries a
# stable `code`. The dispatcher turns these into error payloads; nothing here
# is ever allowed to take down the hosting process.


class RouterError(Exception):
    """Base class for every error raised by the router core."""

    code = "error"


class ConfigError(RouterError):
    """Raised when a setting cannot be parsed from the environment."""

    code = "config"


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


class DeniedError(RouterError):
    """Raised when a path resolves outside every allow-listed directory."""

    code = "denied"

    def __init__(self, path: str) -> None:
        super().__init__(f"Access denied outside allow-list: {path}")
        self.path = path


class ForbiddenStatementError(RouterError):
    """Raised when a query does not begin with SELECT."""

    code = "forbidden_statement"


class PayloadTooLargeError(RouterError):
    """Raised when file content exceeds the configured payload ceiling."""

    code = "payload_too_large"


class UnreadableFileError(RouterError):
    """Raised when file content cannot be encoded or decoded as UTF-8."""

    code = "encoding_error"


# ---------------------------------------------------------------------------
# Plan validation
# ---------------------------------------------------------------------------


class PlanError(RouterError):
    """Base for plan schema failures."""

    code = "invalid_plan"


class UnknownActionError(PlanError):
    """Raised when a plan names an action outside the closed set."""

    code = "unknown_action"


class InvalidParamsError(PlanError):
    """Raised when plan params do not satisfy the action's parameter record."""

    code = "invalid_params"


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionNotFoundError(RouterError):
    code = "session_not_found"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class ExecutorError(RouterError):
    """Base for failures of a single inference call."""

    code = "executor_error"


class InferenceTimeoutError(ExecutorError, TimeoutError):
    """Raised when a call misses its deadline. The engine process is killed."""

    code = "timeout"


class ProcessError(ExecutorError):
    """Raised when the engine exits non-zero or cannot be spawned."""

    code = "process_error"

    def __init__(self, message: str, stderr: str = "", returncode: int | None = None) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode


class InferenceCancelledError(ExecutorError):
    """Raised when a caller cancels a call that was already running."""

    code = "cancelled"


class ExecutorClosedError(ExecutorError):
    """Raised when submitting to an executor that has been shut down."""

    code = "executor_closed"


class EngineConfigError(ExecutorError):
    """Raised when the engine command cannot be built (e.g. no model path)."""

    code = "engine_config"
