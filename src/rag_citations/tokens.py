"""Token counting collaborators used to size chunks.

The chunk builder only needs a callable ``count_tokens(text) -> int``. It may
also be a coroutine function (for a remote tokenizer service), and it may
expose ``count_many(texts) -> list[int]`` to count a batch in one call.
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Awaitable, Protocol, Sequence, Union

import tiktoken

DEFAULT_ENCODING = "cl100k_base"

_WORD_RE = re.compile(r"\S+")


class TokenCounter(Protocol):
    def __call__(self, text: str) -> Union[int, Awaitable[int]]: ...


@lru_cache(maxsize=8)
def _get_encoding(encoding_name: str) -> tiktoken.Encoding:
    return tiktoken.get_encoding(encoding_name)


class TiktokenCounter:
    """Count tokens with a tiktoken encoding (OpenAI-compatible counts).

    Args:
        encoding_name: Name of the tiktoken encoding, e.g. ``cl100k_base``.
    """

    def __init__(self, encoding_name: str = DEFAULT_ENCODING) -> None:
        self.encoding_name = encoding_name

    @classmethod
    def for_model(cls, model: str) -> TiktokenCounter:
        """Pick the encoding tiktoken associates with an OpenAI model name.

        Unknown model names fall back to the default encoding.
        """
        try:
            encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            return cls(DEFAULT_ENCODING)
        return cls(encoding.name)

    @property
    def encoding(self) -> tiktoken.Encoding:
        return _get_encoding(self.encoding_name)

    def __call__(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode_ordinary(text))

    def count_many(self, texts: Sequence[str]) -> list[int]:
        encoded = self.encoding.encode_ordinary_batch(list(texts))
        return [len(tokens) for tokens in encoded]


class WhitespaceTokenCounter:
    """Approximate tokens as whitespace-separated words; needs no model files."""

    def __call__(self, text: str) -> int:
        return len(_WORD_RE.findall(text))

    def count_many(self, texts: Sequence[str]) -> list[int]:
        return [self(text) for text in texts]
