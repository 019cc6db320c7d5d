"""Chat session: conversation state, streamed replies, and saved history notes."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from vaultrag.config import RagConfig
from vaultrag.llm.client import ChatModel
from vaultrag.rag.assembler import PromptAssembler, context_size
from vaultrag.store import DocumentStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an expert at responding to queries about the given text."
CHAT_TEMPERATURE = 0.5

_LINK_EXT_RE = re.compile(r"\[\[(.*?)(\.md)?\]\]")


def normalize_links(text: str) -> str:
    """Drop the .md extension inside wikilinks: [[x.md]] becomes [[x]]."""
    return _LINK_EXT_RE.sub(r"[[\1]]", text)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ChatMessage:
    """One turn of the conversation.

    ``hidden_message`` is what the model sees in place of ``message`` (the
    assembled prompt for user turns); None means the model sees ``message``.
    """

    role: str
    message: str
    hidden_message: str | None = None
    id: int = field(default_factory=_now_ms)

    def model_content(self) -> str:
        return self.hidden_message or self.message


FragmentCallback = Callable[[str, ChatMessage], None]


class ChatSession:
    """A conversation with the chat model, grounded in the vault.

    Args:
        assembler:  Builds the hidden prompt for each user message.
        chat_model: Streaming chat model.
        store:      Where ``save_history`` writes the transcript.
        config:     Chat folder and base context window.
    """

    def __init__(
        self,
        assembler: PromptAssembler,
        chat_model: ChatModel,
        store: DocumentStore,
        config: RagConfig,
    ) -> None:
        self._assembler = assembler
        self._chat_model = chat_model
        self._store = store
        self._config = config
        self.messages: list[ChatMessage] = []

    def send(self, message: str, on_fragment: FragmentCallback | None = None) -> ChatMessage:
        """Send a user message and stream the assistant's reply.

        The reply is accumulated fragment by fragment into the returned
        assistant message; *on_fragment* sees each fragment as it arrives.

        Raises:
            MalformedReferenceError: If the message references a missing note.
                The message is not added to the conversation.
            ConnectivityError: If the chat model is unreachable. The failed
                turn is dropped from the conversation.
        """
        assembled = self._assembler.assemble(message)
        self.messages.append(
            ChatMessage(role="user", message=message, hidden_message=assembled.prompt)
        )

        chat_messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            *({"role": m.role, "content": m.model_content()} for m in self.messages),
        ]
        num_ctx = context_size(chat_messages, self._config.context_window)
        logger.debug(
            "Sending %d messages (%s, context %d)", len(chat_messages), assembled.kind, num_ctx
        )

        reply = ChatMessage(role="assistant", message="")
        self.messages.append(reply)
        try:
            for fragment in self._chat_model.stream(
                chat_messages, context_size=num_ctx, temperature=CHAT_TEMPERATURE
            ):
                reply.message += fragment
                if on_fragment is not None:
                    on_fragment(fragment, reply)
        except Exception:
            del self.messages[-2:]
            raise
        return reply

    def clear(self) -> None:
        self.messages = []

    def history_path(self) -> str:
        """Vault path of the transcript, named after the first message's time."""
        if not self.messages:
            raise ValueError("No messages to save")
        started = datetime.fromtimestamp(self.messages[0].id / 1000, tz=timezone.utc)
        return f"{self._config.llm_folder}/{started.strftime('%Y-%m-%dT%H-%M-%S')}.md"

    def save_history(self) -> str:
        """Write the conversation as a Markdown note and return its path.

        Saving again overwrites the same note with the longer transcript.
        """
        path = self.history_path()
        text = "\n\n".join(f"## {m.role}\n{normalize_links(m.message)}" for m in self.messages)
        self._store.ensure_folder(self._config.llm_folder)
        self._store.write(path, text)
        logger.debug("Saved chat history to %s", path)
        return path
