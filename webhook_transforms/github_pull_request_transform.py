"""
Transform GitHub pull request webhooks into a review agent action.

Only newly opened, reopened or ready-for-review pull requests produce an
action; every other pull request event is acknowledged and skipped.
"""

from __future__ import annotations

import re
from typing import Any

REVIEW_AGENT = "code-reviewer"
REVIEW_ACTIONS = {"opened", "reopened", "ready_for_review"}


def _first_non_empty(*values: Any) -> str | None:
    for value in values:
        if isinstance(value, str):
            stripped = value.strip()
            if stripped:
                return stripped
    return None


def _safe_segment(value: str | None, fallback: str) -> str:
    text = (value or "").strip()
    if not text:
        return fallback
    safe = re.sub(r"[^a-zA-Z0-9_-]", "_", text)
    safe = safe.strip("_")
    return safe or fallback


def transform(ctx: dict[str, Any]) -> dict[str, Any] | None:
    headers = ctx.get("headers") or {}
    payload = ctx.get("payload") or {}
    if not isinstance(payload, dict):
        return None

    event = str(headers.get("x-github-event") or "").strip().lower()
    if event == "ping":
        zen = _first_non_empty(payload.get("zen")) or "GitHub webhook ping"
        return {"kind": "wake", "text": zen}
    if event != "pull_request":
        return None

    action = str(payload.get("action") or "").strip().lower()
    if action not in REVIEW_ACTIONS:
        return None

    pull_request = payload.get("pull_request") or {}
    repository = payload.get("repository") or {}
    if not isinstance(pull_request, dict) or not isinstance(repository, dict):
        return None

    number = pull_request.get("number")
    repo_name = _first_non_empty(repository.get("full_name")) or "unknown/unknown"
    title = _first_non_empty(pull_request.get("title")) or "(untitled)"
    author = _first_non_empty((pull_request.get("user") or {}).get("login")) or "unknown"
    url = _first_non_empty(pull_request.get("html_url")) or ""

    lines = [
        f"Pull request {action} on {repo_name}.",
        f"target_subagent: {REVIEW_AGENT}",
        f"number: {number}",
        f"title: {title}",
        f"author: {author}",
        f"url: {url}",
    ]
    body = _first_non_empty(pull_request.get("body"))
    if body:
        lines.append("")
        lines.append(body)

    return {
        "kind": "agent",
        "name": "GitHubPullRequest",
        "session_key": f"hook:github-pr:{_safe_segment(repo_name, 'repo')}:{number}",
        "to": REVIEW_AGENT,
        "message": "\n".join(lines),
    }
