# tools.py
# Collaborators invoked by the dispatcher once a plan has been authorized.
# Plain I/O only: no path checks, no statement checks, no engine calls.
# Callers are responsible for handing these absolute, sandbox-approved paths.

import io
import os
import sqlite3
import time
import uuid
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.markdown import Markdown

from llama_router.errors import PayloadTooLargeError, UnreadableFileError


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


def write_text(path: str, content: str, max_bytes: int | None = None) -> int:
    try:
        data = content.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise UnreadableFileError(f"Content is not valid UTF-8 text: {exc.reason}") from exc
    if max_bytes is not None and len(data) > max_bytes:
        raise PayloadTooLargeError(f"Content is {len(data)} bytes; limit is {max_bytes}.")
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(data)
    return len(data)


def read_text(path: str, max_bytes: int | None = None) -> str:
    size = os.path.getsize(path)
    if max_bytes is not None and size > max_bytes:
        raise PayloadTooLargeError(f"{os.path.basename(path)} is {size} bytes; limit is {max_bytes}.")
    with open(path, "rb") as fh:
        data = fh.read()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise UnreadableFileError(f"{os.path.basename(path)} is not UTF-8 text.") from exc


def list_doc_hits(docs_dir: str, query: str | None = None) -> list[str]:
    """Names of regular files in `docs_dir` whose name or content contains `query`."""
    if not os.path.isdir(docs_dir):
        return []
    needle = (query or "").lower()
    hits: list[str] = []
    for name in sorted(os.listdir(docs_dir)):
        full = os.path.join(docs_dir, name)
        if not os.path.isfile(full):
            continue
        if not needle or needle in name.lower():
            hits.append(name)
            continue
        try:
            with open(full, encoding="utf-8", errors="ignore") as fh:
                text = fh.read()
        except OSError:
            continue
        if needle in text.lower():
            hits.append(name)
    return hits


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


def run_select(db_path: str, sql: str, params: list[Any] | tuple[Any, ...] = ()) -> list[dict[str, Any]]:
    """Run one statement with positional bindings on a read-only connection; rows as dicts."""
    if not os.path.exists(db_path):
        raise FileNotFoundError(f"Database not found: {db_path}")
    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    try:
        return [dict(row) for row in conn.execute(sql, tuple(params)).fetchall()]
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def render_report_markdown(title: str, query: str | None, hits: list[str], summary: str, docs_label: str) -> str:
    lines = [f"# {title}", "", f"Date: {datetime.now().isoformat(timespec='seconds')}", ""]
    heading = f"## Matching files in `{docs_label}`"
    if query:
        heading += f" (query: `{query}`)"
    lines.append(heading)
    if hits:
        lines.extend(f"- {hit}" for hit in hits)
    else:
        lines.append("_No matches_")
    lines.append("")
    if summary:
        lines += ["## Summary (local LLM)", summary, ""]
    return "\n".join(lines)


def build_report(
    reports_dir: str,
    title: str,
    query: str | None,
    hits: list[str],
    summary: str,
    docs_label: str = "docs",
) -> tuple[str, str]:
    """Persist a report as Markdown plus an HTML rendering. Returns both paths."""
    os.makedirs(reports_dir, exist_ok=True)
    # report-<ms>-<random>: unique even within one millisecond.
    name = f"report-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
    md_path = os.path.join(reports_dir, f"{name}.md")
    html_path = os.path.join(reports_dir, f"{name}.html")

    markdown = render_report_markdown(title, query, hits, summary, docs_label)
    # Engine-supplied titles may carry lone surrogates.
    markdown = markdown.encode("utf-8", errors="replace").decode("utf-8")
    with open(md_path, "x", encoding="utf-8") as fh:
        fh.write(markdown)

    console = Console(record=True, file=io.StringIO(), width=100)
    console.print(Markdown(markdown))
    console.save_html(html_path)

    return md_path, html_path
