"""Whole-document context summaries for contextual chunk embedding.

Called once per multi-chunk document during reconcile. The same summary is
prepended to every chunk of that document before hashing and embedding.
"""

from __future__ import annotations

import logging
import math

from vaultrag.llm.client import ChatModel

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are an expert of adding context to succinctly summarize the given documents. "
    "Only respond with a few sentences to summarize the text. "
    "Do not add an explanation for your decisions. Do not give examples."
)

_SUMMARY_PROMPT = """\
<document>
{document_text}
</document>
From the document above, provide a short succinct summary of the document that adds useful context."""

_MAX_CONTEXT = 100_000


class ContextSummarizer:
    """Generate a short summary of a full note with the chat model.

    Args:
        model:       Chat model used for generation.
        temperature: Sampling temperature.
        seed:        Fixed seed so re-indexing an unchanged note is stable.
    """

    def __init__(self, model: ChatModel, temperature: float = 0.7, seed: int = 0) -> None:
        self._model = model
        self._temperature = temperature
        self._seed = seed

    def summarize(self, contents: str) -> str:
        """Return a summary of *contents* (the entire original document).

        Raises:
            ConnectivityError: If the chat model cannot be reached. The caller
                treats this as a failure of the whole document.
        """
        prompt = _SUMMARY_PROMPT.format(document_text=contents)
        context_size = min(math.ceil(len(prompt) / 4), _MAX_CONTEXT)
        summary = self._model.complete(
            [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            context_size=context_size,
            temperature=self._temperature,
            seed=self._seed,
        )
        summary = summary.strip()
        logger.debug("Summary (%d chars): %s", len(summary), summary)
        return summary
