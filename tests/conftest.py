import sys
from unittest.mock import MagicMock

import pytest

from llama_router.config import Settings
from llama_router.executor import SerializedExecutor
from llama_router.sandbox import PathSandbox
from llama_router.sessions import SessionStore

# Stand-in for llama-cli: echoes its prompt with wall-clock start/end stamps.
# "sleep:<seconds>" stalls, "fail" exits non-zero with a message on stderr.
ENGINE_SCRIPT = r"""
import sys, time
prompt = sys.argv[sys.argv.index("-p") + 1]
start = time.time()
if prompt.startswith("sleep:"):
    time.sleep(float(prompt.split(":", 1)[1]))
if prompt == "fail":
    sys.stderr.write("engine exploded")
    sys.exit(3)
print(f"{start} {time.time()} {prompt}")
"""


class ScriptEngine:
    """Engine whose command is a short Python process."""

    def __init__(self) -> None:
        self.requests = []

    def command(self, request):
        self.requests.append(request)
        return [sys.executable, "-c", ENGINE_SCRIPT, "-n", str(request.max_tokens), "-p", request.prompt]


@pytest.fixture
def script_engine():
    return ScriptEngine()


@pytest.fixture
def executor(script_engine):
    ex = SerializedExecutor(script_engine, default_timeout=10.0)
    yield ex
    ex.shutdown(cancel_pending=True)


@pytest.fixture
def workspace(tmp_path):
    for name in ("docs", "reports", "data"):
        (tmp_path / name).mkdir()
    return tmp_path


@pytest.fixture
def settings(workspace):
    return Settings(
        allowed_dirs=("docs", "reports", "data"),
        working_root=str(workspace),
        db_path="data/app.db",
        llama_model="model.gguf",
        timeout_seconds=5.0,
        max_payload_bytes=1024,
    )


@pytest.fixture
def sandbox(settings):
    return PathSandbox(settings.allowed_dirs, root=settings.working_root)


@pytest.fixture
def mock_executor():
    ex = MagicMock(spec=SerializedExecutor)
    ex.submit.return_value = "engine reply"
    return ex


@pytest.fixture
def sessions(mock_executor):
    return SessionStore(mock_executor)
