"""Command assistant behind the Ctrl+Space panel.

A pydantic-ai agent talks to an Ollama server through its OpenAI-compatible
endpoint. Replies are free text; runnable commands are pulled out of fenced
code blocks with ``extract_commands``.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic_ai import Agent as PydanticAgent  # type: ignore
from pydantic_ai.models.openai import OpenAIChatModel  # type: ignore
from pydantic_ai.providers.ollama import OllamaProvider  # type: ignore

from ait.errors import AssistantError
from ait.log_utils import log_event
from ait.models import AssistantReply
from ait.settings import SettingsStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an expert Linux/Unix system administrator and terminal assistant.

Your responsibilities:
- Provide accurate, concise terminal commands for the user's tasks
- Explain commands clearly with key options
- Always wrap commands in ```bash code blocks
- Prioritize safety: warn about destructive commands (rm -rf, dd, etc.)
- Consider the user's current environment and context

Response format:
1. Brief explanation of the solution
2. Command(s) in ```bash blocks
3. Important notes or warnings if needed

Keep responses focused and practical."""


class Assistant(Protocol):
    server_url: str
    model_name: str

    async def ask(self, prompt: str, context: str | None = None) -> AssistantReply: ...

    def configure(self, server_url: str, model_name: str) -> None: ...


def build_prompt(prompt: str, context: str | None = None) -> str:
    if context:
        return f"## Current Context\n{context}\n\n## User Question\n{prompt}"
    return f"## User Question\n{prompt}"


def build_context(os_info: str | None, current_input: str = "") -> str | None:
    lines = []
    if os_info:
        lines.append(f"Remote OS: {os_info}")
    if current_input.strip():
        lines.append(f"Current command line: {current_input.strip()}")
    return "\n".join(lines) or None


def extract_commands(text: str) -> list[str]:
    """Commands from fenced code blocks, comment and blank lines dropped.

    A block with several command lines yields one entry joined with newlines;
    an unterminated final block still counts.
    """
    commands: list[str] = []
    current: list[str] = []
    in_block = False
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("```"):
            if in_block and current:
                commands.append("\n".join(current).strip())
                current = []
            in_block = not in_block
            continue
        if in_block and stripped and not stripped.startswith("#"):
            current.append(line)
    if current:
        commands.append("\n".join(current).strip())
    return commands


def build_model(server_url: str, model_name: str) -> Any:
    provider = OllamaProvider(base_url=f"{server_url.rstrip('/')}/v1")
    return OpenAIChatModel(model_name, provider=provider)


class CommandAssistant:
    def __init__(
        self,
        server_url: str,
        model_name: str,
        *,
        settings: SettingsStore | None = None,
        model: Any | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.model_name = model_name
        self._settings = settings
        self._model = model
        self._agent: Any | None = None

    def _get_agent(self) -> Any:
        if self._agent is None:
            model = self._model if self._model is not None else build_model(self.server_url, self.model_name)
            self._agent = PydanticAgent(model, system_prompt=SYSTEM_PROMPT)
        return self._agent

    def configure(self, server_url: str, model_name: str) -> None:
        """Point at a different server or model and save the choice to settings.

        The agent is rebuilt on the next ask.
        """
        server_url = server_url.rstrip("/")
        if (server_url, model_name) == (self.server_url, self.model_name):
            return
        self.server_url = server_url
        self.model_name = model_name
        self._agent = None
        if self._settings is not None:
            self._settings.set("ai_server_url", server_url)
            self._settings.set("ai_model", model_name)
        log_event(logger, "assistant.configured", server=server_url, model=model_name)

    async def ask(self, prompt: str, context: str | None = None) -> AssistantReply:
        if not prompt.strip():
            raise AssistantError("empty question")
        log_event(logger, "assistant.ask", model=self.model_name, length=len(prompt))
        try:
            result = await self._get_agent().run(build_prompt(prompt, context))
        except Exception as exc:
            logger.warning("assistant.failed model=%s error=%s", self.model_name, exc)
            raise AssistantError(str(exc) or exc.__class__.__name__) from exc
        return AssistantReply(response=str(result.output), model=self.model_name)
