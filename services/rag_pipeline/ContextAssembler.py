"""Assembles ranked search results into a bounded, labelled context string."""

import re

from shared.models.rag import AssembledContext
from shared.models.vector import SearchResult

BLOCK_SEPARATOR = "\n\n"
TRUNCATION_MARKER = " [truncated]"

_SENTENCE_END = re.compile(r"[.!?。！？]")


def render_block(position: int, result: SearchResult, content: str | None = None) -> str:
    """Render one result as "[docN] (source: X)\\n<content>" (N is 1-based)."""
    body = result.get_content() if content is None else content
    return f"[doc{position}] (source: {result.get_source()})\n{body}"


def _cut_content(content: str, budget: int) -> str:
    """Cut content to at most budget characters, preferring a sentence end, then a word boundary."""
    head = content[:budget]
    sentence_ends = [m.end() for m in _SENTENCE_END.finditer(head)]
    if sentence_ends:
        return head[:sentence_ends[-1]]
    space = head.rfind(" ")
    if space > 0:
        return head[:space]
    return head


class ContextAssembler:
    """Appends blocks in rank order; the least relevant blocks are dropped first."""

    def assemble(self, results: list[SearchResult], max_context_chars: int) -> AssembledContext:
        """Build the context for the generation prompt.

        Blocks are added in rank order until the next one would exceed
        max_context_chars; it and all lower-ranked blocks are dropped. When
        even the top block does not fit, it is cut at a sentence or word
        boundary and marked with TRUNCATION_MARKER.

        Args:
            results (list[SearchResult]): Candidates ordered by ascending distance.
            max_context_chars (int): Upper bound for the context length.

        Returns:
            AssembledContext: The context and the results it contains.
        """
        if max_context_chars <= 0 or not results:
            return AssembledContext(context="", used_results=[])

        parts: list[str] = []
        used: list[SearchResult] = []
        length = 0
        for result in results:
            block = render_block(len(used) + 1, result)
            added = len(block) + (len(BLOCK_SEPARATOR) if parts else 0)
            if length + added > max_context_chars:
                if not parts:
                    truncated = self._truncate_first_block(result, max_context_chars)
                    if truncated is not None:
                        parts.append(truncated)
                        used.append(result)
                break
            parts.append(block)
            used.append(result)
            length += added

        return AssembledContext(context=BLOCK_SEPARATOR.join(parts), used_results=used)

    @staticmethod
    def _truncate_first_block(result: SearchResult, max_context_chars: int) -> str | None:
        header = render_block(1, result, content="")
        budget = max_context_chars - len(header) - len(TRUNCATION_MARKER)
        if budget <= 0:
            return None
        content = _cut_content(result.get_content(), budget).rstrip()
        if not content:
            return None
        return render_block(1, result, content=content + TRUNCATION_MARKER)
