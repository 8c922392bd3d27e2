"""Overlapping, size-bounded text chunking for embedding.

Strategy: accumulate paragraphs (or separator-delimited segments) greedily
into chunks of at most ``chunk_size`` characters.  Each new chunk is seeded
with the tail of the previous one: the last ``chunk_overlap`` characters,
advanced to the next word boundary so no word is cut.  A final pass merges
undersized chunks forward and re-splits oversized ones at sentence
boundaries.
"""

import logging
import re
from typing import List, Optional

from ingestly.models.options import ChunkingOptions

logger = logging.getLogger(__name__)

_SPACES_RE = re.compile(r"[ \t\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE_RE = re.compile(r"\s")

RESERVED_TOKENS = 100


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _clean(text: str) -> str:
    """Collapse runs of spaces, strip every line, keep paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_SPACES_RE.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def _overlap_tail(chunk: str, overlap: int) -> str:
    if overlap <= 0:
        return ""
    if len(chunk) <= overlap:
        return chunk
    cut = len(chunk) - overlap
    if not chunk[cut - 1].isspace():
        match = _WHITESPACE_RE.search(chunk, cut)
        if match is None:
            return ""
        cut = match.end()
    return chunk[cut:].strip()


def _accumulate(
    units: List[str],
    joiner: str,
    overlap_joiner: str,
    options: ChunkingOptions,
) -> List[str]:
    chunks: List[str] = []
    current = ""
    for unit in units:
        candidate = f"{current}{joiner}{unit}" if current else unit
        if len(candidate) > options.chunk_size and len(current) >= options.min_chunk_size:
            chunks.append(current)
            tail = _overlap_tail(current, options.chunk_overlap)
            current = f"{tail}{overlap_joiner}{unit}" if tail else unit
        else:
            current = candidate
    if current.strip():
        chunks.append(current)
    return chunks


def _hard_split(text: str, max_size: int) -> List[str]:
    """Cut *text* at word boundaries; words longer than *max_size* are sliced."""
    pieces: List[str] = []
    current = ""
    for word in text.split():
        while len(word) > max_size:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(word[:max_size])
            word = word[max_size:]
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_size:
            pieces.append(current)
            current = word
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def _split_sentences(chunk: str, min_size: int, max_size: int) -> List[str]:
    """Re-split an oversized chunk, packing whole sentences up to *max_size*.

    A pending piece shorter than *min_size* is never emitted on its own: it
    is glued to the following sentence and the pair is cut at word
    boundaries instead.  Only the returned last piece may be undersized.
    """
    pieces: List[str] = []
    current = ""
    for sentence in _SENTENCE_END_RE.split(chunk):
        sentence = sentence.strip()
        if not sentence:
            continue
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= max_size:
            current = candidate
        elif current and len(current) >= min_size and len(sentence) <= max_size:
            pieces.append(current)
            current = sentence
        else:
            *full, current = _hard_split(candidate, max_size)
            pieces.extend(full)
    if current:
        pieces.append(current)
    return pieces


def _post_process(chunks: List[str], min_size: int, max_size: int) -> List[str]:
    result: List[str] = []
    carry = ""
    last_index = len(chunks) - 1
    for index, chunk in enumerate(chunks):
        if carry:
            chunk = f"{carry}\n\n{chunk}"
            carry = ""
        is_last = index == last_index

        if len(chunk) < min_size and not is_last:
            carry = chunk
            continue

        pieces = _split_sentences(chunk, min_size, max_size) if len(chunk) > max_size else [chunk]
        if not is_last and len(pieces) > 1 and len(pieces[-1]) < min_size:
            carry = pieces.pop()
        result.extend(pieces)
    return result


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def split_text(text: str, options: Optional[ChunkingOptions] = None) -> List[str]:
    """Split *text* into overlapping chunks.

    Every chunk except the last is between ``min_chunk_size`` and
    ``chunk_size`` characters.  Adjacent chunks share up to ``chunk_overlap``
    characters.  Returns ``[]`` for blank input and the cleaned text as the
    only chunk when it already fits.
    """
    options = options or ChunkingOptions()
    cleaned = _clean(text)
    if not cleaned:
        return []
    if len(cleaned) <= options.chunk_size:
        return [cleaned]

    if options.preserve_paragraphs:
        joiner = "\n\n" if "\n\n" in cleaned else "\n"
        units = [p.strip() for p in cleaned.split(joiner) if p.strip()]
        chunks = _accumulate(units, joiner, " ", options)
    else:
        joiner = options.separator
        units = [s.strip() for s in cleaned.split(joiner) if s.strip()]
        chunks = _accumulate(units, joiner, joiner, options)

    chunks = _post_process(chunks, options.min_chunk_size, options.chunk_size)
    logger.debug(
        "Split text into %d chunks",
        len(chunks),
        extra={"text_length": len(cleaned), "chunk_count": len(chunks)},
    )
    return chunks


def calculate_optimal_chunk_size(max_tokens: int, avg_tokens_per_char: float = 0.25) -> int:
    """Chunk size in characters for a model accepting *max_tokens* tokens.

    100 tokens are held back for metadata and prompt framing.
    """
    if avg_tokens_per_char <= 0:
        raise ValueError("avg_tokens_per_char must be positive")
    available = max_tokens - RESERVED_TOKENS
    if available <= 0:
        raise ValueError(f"max_tokens must exceed {RESERVED_TOKENS}")
    return int(available / avg_tokens_per_char)
