"""Word-level diff between two text snapshots.

Tokenizes text into alternating runs of non-whitespace and whitespace,
aligns the two token streams with a longest-common-subsequence table and
backtracks it into a stream of unchanged/added/deleted tokens. Whitespace
is kept as its own tokens, so filtering the stream by classification
reconstructs either input exactly.

Diff tokens are ephemeral: they are recomputed on demand and never stored
in a manifest.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

_TOKEN_RE = re.compile(r"\S+|\s+")


class DiffType(str, Enum):
    """Classification of a diff token."""

    UNCHANGED = "unchanged"
    ADDED = "added"
    DELETED = "deleted"


_PREFIXES = {
    DiffType.UNCHANGED: " ",
    DiffType.ADDED: "+",
    DiffType.DELETED: "-",
}


@dataclass
class DiffToken:
    """A classified span of text."""

    type: DiffType
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "text": self.text}


@dataclass
class WordDiff:
    """Diff result: the token stream plus a unified-diff style rendering."""

    tokens: list[DiffToken] = field(default_factory=list)
    unified_text: str = ""

    @property
    def has_changes(self) -> bool:
        return any(t.type is not DiffType.UNCHANGED for t in self.tokens)

    def stats(self) -> dict[str, int]:
        """Count added and deleted words (whitespace tokens are not counted)."""
        counts = {"added": 0, "deleted": 0, "unchanged": 0}
        for token in self.tokens:
            if token.text.strip():
                counts[token.type.value] += 1
        return counts

    def summary(self) -> str:
        """Short human-readable description of the change."""
        counts = self.stats()
        parts = []
        if counts["added"]:
            parts.append(_plural(counts["added"], "word") + " added")
        if counts["deleted"]:
            parts.append(_plural(counts["deleted"], "word") + " removed")
        if not parts:
            return "Whitespace changes only" if self.has_changes else "No changes"
        return ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokens": [t.to_dict() for t in self.tokens],
            "unified": self.unified_text,
            "stats": self.stats(),
        }


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def tokenize(text: str) -> list[str]:
    """Split text into maximal runs of non-whitespace or whitespace."""
    if not text:
        return []
    return _TOKEN_RE.findall(text)


def compute_lcs_table(a: list[str], b: list[str]) -> list[list[int]]:
    """Longest-common-subsequence table.

    ``table[i][j]`` is the LCS length of ``a[:i]`` and ``b[:j]``.
    """
    m, n = len(a), len(b)
    table = [[0] * (n + 1) for _ in range(m + 1)]
    for i in range(1, m + 1):
        row, prev = table[i], table[i - 1]
        ai = a[i - 1]
        for j in range(1, n + 1):
            if ai == b[j - 1]:
                row[j] = prev[j - 1] + 1
            else:
                row[j] = max(prev[j], row[j - 1])
    return table


def build_diff_tokens(a: list[str], b: list[str], table: list[list[int]]) -> list[DiffToken]:
    """Backtrack the LCS table into an ordered token stream.

    On ties between an addition and a deletion, the addition is taken first
    while walking backwards, so deletions precede additions in the output.
    """
    tokens: list[DiffToken] = []
    i, j = len(a), len(b)

    while i > 0 or j > 0:
        if i > 0 and j > 0 and a[i - 1] == b[j - 1]:
            tokens.append(DiffToken(DiffType.UNCHANGED, a[i - 1]))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or table[i][j - 1] >= table[i - 1][j]):
            tokens.append(DiffToken(DiffType.ADDED, b[j - 1]))
            j -= 1
        else:
            tokens.append(DiffToken(DiffType.DELETED, a[i - 1]))
            i -= 1

    tokens.reverse()
    return tokens


def _unified_lines(tokens: list[DiffToken], a_len: int, b_len: int) -> list[str]:
    lines = ["--- original", "+++ proposed"]
    if not any(t.type is not DiffType.UNCHANGED for t in tokens):
        return lines

    lines.append(f"@@ -1,{a_len} +1,{b_len} @@")
    for token in merge_adjacent_tokens(tokens):
        lines.append(_PREFIXES[token.type] + token.text)
    return lines


def generate_unified_format(original: str, proposed: str) -> str:
    """Render a unified-diff style text block for two snapshots."""
    return compute_word_diff(original, proposed).unified_text


def compute_word_diff(original: str, proposed: str) -> WordDiff:
    """Compute the word-level diff of two text snapshots."""
    a = tokenize(original)
    b = tokenize(proposed)
    tokens = build_diff_tokens(a, b, compute_lcs_table(a, b))
    unified = "\n".join(_unified_lines(tokens, len(a), len(b)))
    return WordDiff(tokens=tokens, unified_text=unified)


def merge_adjacent_tokens(tokens: list[DiffToken]) -> list[DiffToken]:
    """Coalesce consecutive tokens of the same classification."""
    merged: list[DiffToken] = []
    for token in tokens:
        if merged and merged[-1].type is token.type:
            merged[-1] = DiffToken(token.type, merged[-1].text + token.text)
        else:
            merged.append(DiffToken(token.type, token.text))
    return merged


def reconstruct_original(tokens: list[DiffToken]) -> str:
    """Rebuild the original text from unchanged and deleted tokens."""
    return "".join(t.text for t in tokens if t.type is not DiffType.ADDED)


def reconstruct_proposed(tokens: list[DiffToken]) -> str:
    """Rebuild the proposed text from unchanged and added tokens."""
    return "".join(t.text for t in tokens if t.type is not DiffType.DELETED)
