"""
Word-bounded text chunker.

Extracted OCR text is split into chunks of at most `max_chunk_size`
characters for embedding:

  1. Tokenize on whitespace (any run of spaces, tabs, newlines).
  2. Greedily append words to the current chunk while
     len(current) + 1 + len(word) <= max_chunk_size.
  3. On overflow, close the current chunk and start a new one with the word.
  4. Discard empty chunks.

Words are never split. A single word longer than max_chunk_size becomes
its own oversized chunk. Joining the chunks with single spaces yields the
whitespace-normalized input, and the output is a pure function of
(text, max_chunk_size).
"""

from __future__ import annotations

DEFAULT_CHUNK_SIZE = 500   # characters


def split_into_chunks(text: str | None, max_chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    if max_chunk_size < 1:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    if not text:
        return []

    chunks: list[str] = []
    current = ""

    for word in text.split():
        # the separator is counted even for the first word of a chunk
        if len(current) + 1 + len(word) <= max_chunk_size:
            current = f"{current} {word}" if current else word
        else:
            if current:
                chunks.append(current)
            current = word

    if current:
        chunks.append(current)

    return chunks
