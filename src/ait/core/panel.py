"""State of the assistant panel.

Typing edits the question; Enter asks when a question is pending, otherwise
inserts the selected extracted command. A successful answer clears the
question so the next Enter acts on the command list. A question starting
with ``/`` is a panel command (``/model``, ``/server``, ``/help``) that
changes the assistant instead of asking it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from ait.assistant import Assistant, extract_commands
from ait.errors import AssistantError
from ait.models import AssistantReply

logger = logging.getLogger(__name__)

PanelCommandHandler = Callable[[Assistant, str], str]


@dataclass
class PanelCommandDef:
    description: str
    hint: str
    handler: PanelCommandHandler


PANEL_COMMANDS: dict[str, PanelCommandDef] = {}


def register_panel_command(name: str, description: str, hint: str) -> Callable[[PanelCommandHandler], PanelCommandHandler]:
    """Decorator to register a panel command; the handler returns the notice to show."""

    def _decorator(func: PanelCommandHandler) -> PanelCommandHandler:
        PANEL_COMMANDS[name] = PanelCommandDef(description=description, hint=hint, handler=func)
        return func

    return _decorator


@register_panel_command("/help", description="List panel commands.", hint="/help")
def _handle_help(_assistant: Assistant, _argument: str) -> str:
    return "  ".join(entry.hint for entry in PANEL_COMMANDS.values())


@register_panel_command("/model", description="Show or set the assistant model.", hint="/model <name>")
def _handle_model(assistant: Assistant, argument: str) -> str:
    if argument:
        assistant.configure(assistant.server_url, argument)
    return f"model: {assistant.model_name}"


@register_panel_command("/server", description="Show or set the assistant server URL.", hint="/server <url>")
def _handle_server(assistant: Assistant, argument: str) -> str:
    if argument:
        assistant.configure(argument, assistant.model_name)
    return f"server: {assistant.server_url}"


@dataclass
class AssistantPanel:
    question: str = ""
    loading: bool = False
    reply: AssistantReply | None = None
    commands: list[str] = field(default_factory=list)
    selected: int = 0
    error: str | None = None
    notice: str | None = None

    @property
    def is_command(self) -> bool:
        return self.question.strip().startswith("/")

    @property
    def selected_command(self) -> str | None:
        if not self.commands:
            return None
        return self.commands[self.selected]

    def type_text(self, text: str) -> None:
        if self.loading:
            return
        self.question += "".join(ch for ch in text if ch.isprintable())

    def backspace(self) -> None:
        if self.loading:
            return
        self.question = self.question[:-1]

    def move(self, delta: int) -> None:
        if not self.commands:
            return
        self.selected = max(0, min(len(self.commands) - 1, self.selected + delta))

    def reset(self) -> None:
        self.question = ""
        self.loading = False
        self.reply = None
        self.commands = []
        self.selected = 0
        self.error = None
        self.notice = None

    def run_command(self, assistant: Assistant) -> bool:
        """Run the pending panel command; unknown commands land in ``error``."""
        name, _, argument = self.question.strip().partition(" ")
        entry = PANEL_COMMANDS.get(name)
        self.question = ""
        if entry is None:
            self.error = f"unknown command: {name} (try /help)"
            return False
        self.error = None
        self.notice = entry.handler(assistant, argument.strip())
        logger.debug("panel.command name=%s", name)
        return True

    async def ask(
        self,
        assistant: Assistant,
        context: str | None = None,
        *,
        on_loading: Callable[[], None] | None = None,
    ) -> bool:
        """Send the pending question; errors land in ``error`` for the user to retry."""
        prompt = self.question.strip()
        if not prompt or self.loading:
            return False
        self.loading = True
        self.error = None
        self.notice = None
        if on_loading is not None:
            on_loading()
        try:
            reply = await assistant.ask(prompt, context)
        except AssistantError as exc:
            self.error = str(exc)
            return False
        finally:
            self.loading = False
        self.reply = reply
        self.commands = extract_commands(reply.response)
        self.selected = 0
        self.question = ""
        return True
