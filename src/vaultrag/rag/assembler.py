"""Prompt assembler: turn a chat message into the prompt actually sent to the model.

Priority:
  1. ``[[note]]`` references → the referenced notes inlined as <document> blocks.
  2. Directive keywords (``@workspace``) → the registered handler builds the prompt.
  3. Anything else passes through unchanged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from vaultrag.config import RagConfig
from vaultrag.db.models import SearchHit
from vaultrag.exceptions import MalformedReferenceError
from vaultrag.rag.retriever import Retriever, rerank
from vaultrag.store import DocumentStore

logger = logging.getLogger(__name__)

REFERENCE_RE = re.compile(r"\[\[(.*?)\]\]")
_CLEAN_REFERENCE_RE = re.compile(r"\[\[(.*?)(\.md)?\]\]")
_WORKSPACE_RE = re.compile(r"@workspace\s?")

MAX_CONTEXT_SIZE = 128_000

DirectiveHandler = Callable[[str], str]

_REFERENCE_INSTRUCTION = (
    "Using the documents above, answer the following query below to the best of your ability."
)

_WORKSPACE_PREAMBLE = (
    "Below are documents that are relevant to the query provided; "
    "use these documents to generate a response."
)

_CITATION_INSTRUCTION = """\
When answering questions, ensure you cite the source document by providing the file name in wikilink format.
For example, to cite the document "source", use [[source]] in your response.
If the answer involves multiple documents, cite each source clearly.
For example, [[source1]] states that "..." and [[source2]] states that "..."."""


@dataclass
class AssembledPrompt:
    """The model-facing prompt for one message.

    Attributes:
        prompt: Text to send in place of the user's message.
        kind: ``"references"``, the directive name (``"@workspace"``), or ``"plain"``.
        references: Note paths inlined into the prompt, in order.
    """

    prompt: str
    kind: str = "plain"
    references: list[str] = field(default_factory=list)


def note_name(path: str) -> str:
    """Display name of a note: its path without the ``.md`` extension."""
    return path[:-3] if path.endswith(".md") else path


def clean_references(message: str) -> str:
    """Replace ``[[x]]`` and ``[[x.md]]`` with ``x``."""
    return _CLEAN_REFERENCE_RE.sub(r"\1", message)


def document_block(path: str, contents: str) -> str:
    return f"<document>\nFile name:\n{note_name(path)}\n\nContents:\n{contents}\n</document>"


def context_size(messages: list[dict], configured: int) -> int:
    """Context window for a chat request: the configured size, grown for long chats.

    Estimates four characters per token and caps the estimate at 128k tokens.
    """
    total_chars = sum(len(m.get("content") or "") for m in messages)
    return max(configured, min(total_chars // 4, MAX_CONTEXT_SIZE))


class PromptAssembler:
    """Build model prompts from chat messages.

    Args:
        store:     Source of referenced notes.
        retriever: Used by the ``@workspace`` directive.
        config:    Search limit for the workspace directive.
    """

    def __init__(self, store: DocumentStore, retriever: Retriever, config: RagConfig) -> None:
        self._store = store
        self._retriever = retriever
        self._config = config
        self._directives: dict[str, DirectiveHandler] = {}
        self.register_directive("@workspace", self.workspace_prompt)

    @property
    def directives(self) -> list[str]:
        return list(self._directives)

    def register_directive(self, keyword: str, handler: DirectiveHandler) -> None:
        """Add (or replace) the handler for a directive keyword such as ``@daily``."""
        if not keyword:
            raise ValueError("Directive keyword must not be empty")
        self._directives[keyword] = handler

    def assemble(self, message: str) -> AssembledPrompt:
        """Return the prompt for *message*.

        Raises:
            MalformedReferenceError: If a ``[[reference]]`` names no existing note.
        """
        names = REFERENCE_RE.findall(message)
        if names:
            return self._reference_prompt(message, names)

        keyword = self._first_directive(message)
        if keyword is not None:
            logger.debug("Dispatching directive %s", keyword)
            return AssembledPrompt(prompt=self._directives[keyword](message), kind=keyword)

        return AssembledPrompt(prompt=message)

    # ------------------------------------------------------------------
    # Explicit references
    # ------------------------------------------------------------------

    def _reference_prompt(self, message: str, names: list[str]) -> AssembledPrompt:
        paths: list[str] = []
        missing: list[str] = []
        for name in dict.fromkeys(names):
            path = self._store.resolve_reference(name)
            if path is None:
                missing.append(name)
            elif path not in paths:
                paths.append(path)
        if missing:
            raise MalformedReferenceError(missing)

        blocks = "\n".join(document_block(p, self._store.read(p)) for p in paths)
        prompt = (
            f"{blocks}\n\n{_REFERENCE_INSTRUCTION}\n\n"
            f"<query>\n{clean_references(message)}\n</query>"
        )
        logger.debug("Inlined %d referenced notes", len(paths))
        return AssembledPrompt(prompt=prompt, kind="references", references=paths)

    # ------------------------------------------------------------------
    # Directives
    # ------------------------------------------------------------------

    def _first_directive(self, message: str) -> str | None:
        found = [(message.find(k), k) for k in self._directives if k in message]
        if not found:
            return None
        return min(found)[1]

    def workspace_prompt(self, message: str) -> str:
        """Retrieve across the whole vault and build a citation-instructing prompt.

        The most relevant document is placed last, nearest the query.
        """
        query = _WORKSPACE_RE.sub("", message)
        candidates = self._retriever.workspace_candidates(query)
        ranked: list[SearchHit] = rerank(
            query, candidates, self._config.similar_notes_search_limit
        )
        ranked.reverse()
        documents = "\n\n".join(document_block(h.file_path, h.contents) for h in ranked)
        return (
            f"{_WORKSPACE_PREAMBLE}\n\n{documents}\n\n{_CITATION_INSTRUCTION}\n\n"
            f"<query>\n{query}\n</query>"
        )
