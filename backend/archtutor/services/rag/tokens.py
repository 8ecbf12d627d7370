"""
Token Counter

Model-accurate token counting with tiktoken. Used for the retrieval token
budget and for trimming conversation history before generation.

The encoding is loaded lazily on first use (tiktoken fetches the BPE file the
first time an encoding is requested).
"""

import tiktoken


class TokenCounter:
    """Counts tokens for plain text."""

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        self._encoding = None

    @property
    def encoding(self):
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(str(text)))

    def __call__(self, text: str) -> int:
        return self.count_tokens(text)


# ── Singleton ─────────────────────────────────────────────────────────────────

_token_counter: TokenCounter | None = None


def get_token_counter() -> TokenCounter:
    """Get or create the shared token counter."""
    global _token_counter
    if _token_counter is None:
        _token_counter = TokenCounter()
    return _token_counter
