# sessions.py
# In-memory chat sessions.
#
# A session is an ordered transcript that only ever grows by a user message
# followed by the assistant's reply. Each session has its own lock, held for
# the whole append / submit / append sequence, so concurrent sends against one
# id are applied one after the other. Sessions live until they are dropped or
# expired; with no TTL configured nothing is ever evicted.

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field

from llama_router.errors import ExecutorError, SessionNotFoundError
from llama_router.executor import SerializedExecutor
from llama_router.models import ChatMessage, InferenceRequest

logger = logging.getLogger(__name__)

DEFAULT_CHAT_SYSTEM_PROMPT = "You are a local technical assistant. Answer precisely and concisely."

TURN_MARKERS = {
    "system": "<|system|>\n",
    "user": "<|user|>\n",
    "assistant": "<|assistant|>\n",
}


def render_transcript(messages: list[ChatMessage]) -> str:
    """
    Serialize a transcript into the engine's turn-delimited prompt format.

    Ends with an open assistant marker unless the last message already is an
    assistant turn, so the engine continues instead of replaying.
    """
    parts = [TURN_MARKERS[message.role] + message.content for message in messages]
    if not messages or messages[-1].role != "assistant":
        parts.append("<|assistant|>")
    return "".join(parts)


@dataclass
class ChatSession:
    id: str
    messages: list[ChatMessage]
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class SessionStore:
    """Process-lifetime map of session id to transcript."""

    def __init__(self, executor: SerializedExecutor, ttl: float | None = None) -> None:
        self._executor = executor
        self._ttl = ttl
        self._sessions: dict[str, ChatSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def create(self, system_prompt: str | None = None) -> str:
        session_id = str(uuid.uuid4())
        session = ChatSession(
            id=session_id,
            messages=[ChatMessage(role="system", content=system_prompt or DEFAULT_CHAT_SYSTEM_PROMPT)],
        )
        with self._lock:
            self._sessions[session_id] = session
        logger.debug("Created session %s", session_id)
        return session_id

    def get(self, session_id: str) -> ChatSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def transcript(self, session_id: str) -> list[ChatMessage]:
        session = self.get(session_id)
        with session.lock:
            return list(session.messages)

    def send(
        self,
        session_id: str,
        text: str,
        max_tokens: int = 256,
        temperature: float = 0.2,
    ) -> str:
        """
        Append `text`, ask the engine for the next assistant turn, append it.

        If the engine call fails the user message is withdrawn and the error
        propagates, leaving the transcript as it was before the call.
        """
        session = self.get(session_id)
        with session.lock:
            session.messages.append(ChatMessage(role="user", content=text))
            request = InferenceRequest(
                prompt=render_transcript(session.messages),
                max_tokens=max_tokens,
                temperature=temperature,
                transcript=True,
            )
            try:
                reply = self._executor.submit(request)
            except ExecutorError:
                session.messages.pop()
                raise
            session.messages.append(ChatMessage(role="assistant", content=reply))
            session.last_used = time.monotonic()
        return reply

    def drop(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def expire(self, now: float | None = None) -> list[str]:
        """Evict sessions idle longer than the TTL. No-op without a TTL."""
        if self._ttl is None:
            return []
        now = time.monotonic() if now is None else now
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if now - s.last_used > self._ttl]
            for sid in stale:
                del self._sessions[sid]
        if stale:
            logger.info("Expired %d idle session(s)", len(stale))
        return stale
