"""Word-window text chunking."""

import re

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse all whitespace runs to single spaces and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def chunk_step(chunk_size: int, overlap: int) -> int:
    """
    Number of words each window advances by.

    ``chunk_size - overlap``; an overlap that would stall the window
    (``overlap >= chunk_size``) advances by a whole chunk instead.
    """
    if overlap >= chunk_size:
        return chunk_size
    return chunk_size - overlap


def chunk_words(words: list[str], chunk_size: int, overlap: int) -> list[list[str]]:
    """
    Split a word sequence into sliding windows.

    Args:
        words: Token stream
        chunk_size: Words per window
        overlap: Words shared between consecutive windows

    Returns:
        Windows covering every word; the last one may be shorter

    Raises:
        ValueError: If chunk_size < 1 or overlap < 0
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    step = chunk_step(chunk_size, overlap)
    windows: list[list[str]] = []
    start = 0
    while start < len(words):
        windows.append(words[start : start + chunk_size])
        if start + chunk_size >= len(words):
            break
        start += step
    return windows


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[str]:
    """
    Split text into overlapping word windows.

    Whitespace is normalized first, so joining the non-overlapping part of
    every chunk (the first ``chunk_size - overlap`` words of each chunk but
    the last, then the whole last chunk) gives back the normalized text.

    Args:
        text: Source text
        chunk_size: Words per chunk
        overlap: Words repeated from the previous chunk

    Returns:
        List of chunk strings (empty for blank text)
    """
    normalized = normalize_text(text)
    if not normalized:
        return []
    return [" ".join(window) for window in chunk_words(normalized.split(" "), chunk_size, overlap)]
