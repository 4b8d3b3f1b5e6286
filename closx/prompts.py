"""Jinja2 rendering of agent instructions and session messages.

The default instructions describe the `<shell>` directive syntax, the
`shell` tool and the user's environment. Extra instructions from the
configuration are rendered with the same context and appended, so they can
refer to `{{ env.cwd }}`, `{{ policy.mode }}` and friends.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from .shell.types import ExecutionMode, PolicySettings
from .toolsets.environment import EnvironmentInfo

DEFAULT_INSTRUCTIONS = """\
You are closx, a command-line assistant running in the user's terminal.

You help with tasks by proposing shell commands. To run a command, wrap it
in shell tags on its own line, for example:

<shell>ls -la</shell>

Rules:
- One command per tag. Several tags in one response run in order.
- Do not put markdown backticks inside the tags.
- After your response the commands run and their output is sent back to
  you in the next message. Use it to decide what to do next.
- When no further commands are needed, answer without any shell tags.
- You can also call the `shell` tool directly, and use the read-only
  tools `directory_info`, `current_directory` and `current_environment`.
{% if policy.mode == "message" %}
Commands are currently NOT executed: the user only wants to see them.
Explain what each command would do.
{% elif policy.mode == "allowlist" %}
Commands outside the allow list need the user's confirmation.
{% elif policy.mode == "denylist" %}
Commands matching the deny list need the user's confirmation.
{% endif %}
Prefer safe, read-only commands and explain anything destructive before
proposing it.

Environment:
- OS: {{ env.os_release }} ({{ env.platform }}, {{ env.arch }})
- Shell: {{ env.shell or "unknown" }}
- Working directory: {{ env.cwd }}
- User: {{ env.user }}@{{ env.hostname }}
- Language: {{ env.lang or "unknown" }}
"""

SESSION_TEMPLATE = "Session {{ session_id }} started at {{ started_at }}."


def _environment() -> Environment:
    return Environment(
        autoescape=False,  # Plain text prompts
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )


def render_template(template_str: str, **context: Any) -> str:
    """Render a Jinja2 template string with the given context.

    Raises:
        ValueError: If the template is invalid or refers to an unknown name
    """
    try:
        template = _environment().from_string(template_str)
        return template.render(**context)
    except (TemplateSyntaxError, UndefinedError) as exc:
        raise ValueError(f"Error rendering template: {exc}") from exc


def build_instructions(
    env: EnvironmentInfo,
    policy: PolicySettings,
    extra: Optional[str] = None,
) -> str:
    """Render the system instructions for the agent."""
    context = {
        "env": env.model_dump(),
        "policy": {
            "mode": ExecutionMode(policy.mode).value,
            "allow_list": list(policy.allow_list),
            "deny_list": list(policy.deny_list),
        },
    }
    text = render_template(DEFAULT_INSTRUCTIONS, **context)
    if extra and extra.strip():
        text = text.rstrip("\n") + "\n\n" + render_template(extra, **context).strip() + "\n"
    return text


def session_message(session_id: str, now: Optional[datetime] = None) -> str:
    """System message recording the session id and start time."""
    started = (now or datetime.now(timezone.utc)).isoformat(timespec="seconds")
    return render_template(SESSION_TEMPLATE, session_id=session_id, started_at=started)


__all__ = [
    "DEFAULT_INSTRUCTIONS",
    "build_instructions",
    "render_template",
    "session_message",
]
