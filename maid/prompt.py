"""System prompt construction."""

import platform

RUNTIME_CONTEXT_PREFIX = "Runtime context:"

DEFAULT_CHAT_SYSTEM_PROMPT = (
    "You are a terminal assistant for quick, concise answers. Provide only what the user asked for. "
    "No extra context, no markdown, plain text only. If the answer is a single shell command the user "
    "can run, wrap exactly that command in <command></command> tags, once. Never use the tags for "
    "anything other than one executable command."
)

OPENROUTER_SYSTEM_PROMPT = (
    "You are in a terminal CLI. Provide succinct, direct answers without unnecessary verbosity. "
    "Be helpful and concise."
)


def build_prompt(system_prompt: str) -> str:
    """Append a runtime context line (OS/arch) to a system prompt once."""
    runtime_line = f"{RUNTIME_CONTEXT_PREFIX} OS={platform.system().lower()}/{platform.machine().lower()}."
    trimmed = (system_prompt or "").strip()
    if not trimmed:
        return runtime_line
    if RUNTIME_CONTEXT_PREFIX in trimmed:
        return trimmed
    return f"{trimmed}\n{runtime_line}"


def default_system_prompt(configured: str = "") -> str:
    """Resolve the chat system prompt, falling back to the built-in one."""
    return build_prompt(configured or DEFAULT_CHAT_SYSTEM_PROMPT)
