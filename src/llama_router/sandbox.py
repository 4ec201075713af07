# sandbox.py
# Allow-list check for every path an action touches.
#
# Paths are resolved lexically against a fixed root and accepted only when
# they are an allow-listed directory or sit beneath one. The comparison is
# done on `entry + os.sep`, so "docs2" never matches "docs".

import os
from collections.abc import Iterable

from llama_router.errors import DeniedError


class PathSandbox:
    """Immutable allow-list of directories, resolved once at construction."""

    def __init__(self, allowed_dirs: Iterable[str], root: str | None = None) -> None:
        self._root = os.path.abspath(root or os.getcwd())
        resolved: list[str] = []
        for entry in allowed_dirs:
            absolute = self._resolve(entry)
            if absolute not in resolved:
                resolved.append(absolute)
        if not resolved:
            raise ValueError("PathSandbox requires at least one allowed directory.")
        self._allowed = tuple(resolved)

    @property
    def root(self) -> str:
        return self._root

    @property
    def allowed_dirs(self) -> tuple[str, ...]:
        return self._allowed

    def _resolve(self, candidate: str) -> str:
        return os.path.normpath(os.path.join(self._root, candidate))

    def is_allowed(self, candidate: str) -> bool:
        absolute = self._resolve(candidate)
        return any(
            absolute == entry or absolute.startswith(entry.rstrip(os.sep) + os.sep)
            for entry in self._allowed
        )

    def authorize(self, candidate: str) -> str:
        """Return the absolute path for `candidate`, or raise DeniedError."""
        if not candidate or "\x00" in candidate or not self.is_allowed(candidate):
            raise DeniedError(candidate)
        return self._resolve(candidate)

    def relative(self, absolute: str) -> str:
        """Root-relative form of an authorized path, for results and display."""
        return os.path.relpath(absolute, self._root)
