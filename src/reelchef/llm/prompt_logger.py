"""
ReelChef - Prompt Logger.

Dumps each structuring call (prompt, attachments, backend answer, tokens)
to a markdown file under prompt_logs/<session>/ for debugging extraction.
Enabled via LOG_PROMPTS=1 or the --log-prompts CLI flag.
Screenshots and videos are only described, never written.
"""

import json
import os
from datetime import datetime
from pathlib import Path

from ..pipeline.models import UsageMetrics

LOG_PROMPTS = os.getenv("LOG_PROMPTS", "0").lower() in ("1", "true")
LOG_DIR = Path("prompt_logs")

_session_id: str | None = None
_call_counter: int = 0


def enable_prompt_logging(enabled: bool = True) -> None:
    """Turn prompt logging on or off for this process."""
    global LOG_PROMPTS
    LOG_PROMPTS = enabled


def _session_dir() -> Path:
    global _session_id
    if _session_id is None:
        _session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
    path = LOG_DIR / _session_id
    path.mkdir(parents=True, exist_ok=True)
    return path


def _pretty_json(text: str) -> str:
    try:
        return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
    except (json.JSONDecodeError, TypeError):
        return text


def _render(
    node: str,
    model: str,
    prompt: str,
    attachments: list[str],
    response_text: str | None,
    usage: UsageMetrics | None,
    error: str | None,
) -> str:
    lines = [
        f"# {node} structuring",
        "",
        f"- time: {datetime.now().isoformat(timespec='seconds')}",
        f"- model: {model}",
    ]
    for attachment in attachments:
        lines.append(f"- attachment: {attachment}")
    if usage is not None:
        lines.append(
            f"- tokens: {usage.prompt_tokens} in / {usage.candidates_tokens} out "
            f"({usage.total_tokens} total, {usage.cost_eur:.6f} EUR)"
        )

    lines += ["", "## Prompt", "", "```", prompt, "```", "", "## Answer", ""]
    if error:
        lines.append(f"**ERROR:** {error}")
    elif response_text:
        lines += ["```json", _pretty_json(response_text), "```"]
    else:
        lines.append("(empty answer)")
    return "\n".join(lines) + "\n"


def log_prompt(
    *,
    node: str,
    model: str,
    prompt: str,
    attachments: list[str] | None = None,
    response_text: str | None = None,
    usage: UsageMetrics | None = None,
    error: str | None = None,
) -> Path | None:
    """
    Write one structuring call to `NN_<node>.md` in the session directory.

    Returns the file path, or None when logging is off.
    """
    if not LOG_PROMPTS:
        return None

    global _call_counter
    _call_counter += 1

    path = _session_dir() / f"{_call_counter:02d}_{node}.md"
    path.write_text(
        _render(node, model, prompt, attachments or [], response_text, usage, error),
        encoding="utf-8",
    )
    return path


def get_session_log_dir() -> Path | None:
    """Directory holding this session's logs, or None when logging is off."""
    if not LOG_PROMPTS:
        return None
    return _session_dir()


def reset_session() -> None:
    """Start numbering from scratch in a new session directory (tests)."""
    global _session_id, _call_counter
    _session_id = None
    _call_counter = 0
