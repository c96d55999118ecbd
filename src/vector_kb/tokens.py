"""Token estimation for embedding size limits."""

from dataclasses import dataclass

import tiktoken

from vector_kb.errors import OversizedItem
from vector_kb.models import KnowledgeItem


class TokenCounter:
    """Counts tokens with a tiktoken encoding.

    The encoding is loaded once per counter; counting is pure afterwards.
    """

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        self.encoding = tiktoken.get_encoding(encoding_name)

    def count(self, text: str) -> int:
        return len(self.encoding.encode(text, disallowed_special=()))


@dataclass(frozen=True)
class TokenReport:
    """Token counts for a validated list of items.

    Attributes:
        counts: Token count per item, in input order
        oversized: Items above the limit (empty when the input is valid)
    """

    counts: list[int]
    oversized: list[OversizedItem]

    @property
    def is_valid(self) -> bool:
        return not self.oversized


def check_token_lengths(
    items: list[KnowledgeItem], counter: TokenCounter, max_tokens: int
) -> TokenReport:
    """Count tokens for every item and collect those above ``max_tokens``."""
    counts = []
    oversized = []
    for index, item in enumerate(items):
        tokens = counter.count(item.text)
        counts.append(tokens)
        if tokens > max_tokens:
            oversized.append(
                OversizedItem(
                    index=index, topic=item.topic, token_count=tokens, max_tokens=max_tokens
                )
            )
    return TokenReport(counts=counts, oversized=oversized)
