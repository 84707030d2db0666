from __future__ import annotations

from websynth.models.context import Chunk


def chunk_text(text: str, size: int = 500, overlap: int = 50) -> list[str]:
    """Split text into fixed-size windows that overlap by ``overlap`` chars.

    Windows are ``[start, start + size)``; the next window starts at the
    previous end minus ``overlap``. The last window always ends at
    ``len(text)``, and text no longer than ``size`` yields exactly one chunk.
    Dropping the first ``overlap`` chars of every chunk after the first and
    concatenating gives back ``text``.
    """
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    if not 0 < overlap < size:
        raise ValueError(f"overlap must satisfy 0 < overlap < size, got overlap={overlap} size={size}")

    if len(text) <= size:
        return [text]

    chunks: list[str] = []
    start = 0
    while True:
        end = min(start + size, len(text))
        chunks.append(text[start:end])
        if end == len(text):
            break
        start = end - overlap
    return chunks


def build_chunks(
    text: str,
    *,
    source_url: str,
    source_title: str,
    size: int = 500,
    overlap: int = 50,
    original_index: int = 0,
) -> list[Chunk]:
    """Chunk one page's text and attach its source attribution."""
    if len(text) > size:
        windows = chunk_text(text, size, overlap)
        is_chunked = True
    else:
        windows = [text]
        is_chunked = False

    return [
        Chunk(
            text=window,
            source_url=source_url,
            source_title=source_title,
            chunk_index=index,
            total_chunks=len(windows),
            is_chunked=is_chunked,
            original_index=original_index,
        )
        for index, window in enumerate(windows)
    ]
