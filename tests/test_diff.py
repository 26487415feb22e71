"""Tests for the word-level diff engine."""

from __future__ import annotations

import pytest

from textprov.diff import (
    DiffToken,
    DiffType,
    build_diff_tokens,
    compute_lcs_table,
    compute_word_diff,
    generate_unified_format,
    merge_adjacent_tokens,
    reconstruct_original,
    reconstruct_proposed,
    tokenize,
)


def _pairs(tokens):
    return [(t.type.value, t.text) for t in tokens]


class TestTokenize:
    """Test whitespace-preserving tokenization."""

    def test_alternating_runs(self):
        assert tokenize("a  b\tc\n") == ["a", "  ", "b", "\t", "c", "\n"]

    def test_leading_whitespace(self):
        assert tokenize("  hi") == ["  ", "hi"]

    def test_empty(self):
        assert tokenize("") == []

    def test_join_is_identity(self):
        text = " one two\n\nthree  "
        assert "".join(tokenize(text)) == text


class TestLcs:
    """Test LCS table and backtracking."""

    def test_table_corner(self):
        a, b = tokenize("a b c"), tokenize("a x c")
        table = compute_lcs_table(a, b)
        assert len(table) == len(a) + 1
        assert len(table[0]) == len(b) + 1
        assert table[len(a)][len(b)] == 4

    def test_substitution_tokens(self):
        a, b = tokenize("a b c"), tokenize("a x c")
        tokens = build_diff_tokens(a, b, compute_lcs_table(a, b))
        assert _pairs(tokens) == [
            ("unchanged", "a"),
            ("unchanged", " "),
            ("deleted", "b"),
            ("added", "x"),
            ("unchanged", " "),
            ("unchanged", "c"),
        ]

    def test_pure_addition(self):
        tokens = compute_word_diff("", "new text").tokens
        assert all(t.type is DiffType.ADDED for t in tokens)

    def test_pure_deletion(self):
        tokens = compute_word_diff("old text", "").tokens
        assert all(t.type is DiffType.DELETED for t in tokens)

    @pytest.mark.parametrize(
        "original,proposed",
        [
            ("The cat sat", "The dog sat down"),
            ("line one\nline two\n", "line one\nline 2\n"),
            ("same", "same"),
            ("a b", "b a"),
        ],
    )
    def test_reconstruction(self, original, proposed):
        tokens = compute_word_diff(original, proposed).tokens
        assert reconstruct_original(tokens) == original
        assert reconstruct_proposed(tokens) == proposed


class TestUnifiedFormat:
    """Test unified-diff style rendering."""

    def test_substitution(self):
        assert generate_unified_format("a b c", "a x c") == "\n".join([
            "--- original",
            "+++ proposed",
            "@@ -1,5 +1,5 @@",
            " a ",
            "-b",
            "+x",
            "  c",
        ])

    def test_no_changes_has_no_hunk(self):
        assert generate_unified_format("same", "same") == "--- original\n+++ proposed"


class TestMerge:
    """Test coalescing of adjacent tokens."""

    def test_merge(self):
        tokens = [
            DiffToken(DiffType.UNCHANGED, "a"),
            DiffToken(DiffType.UNCHANGED, " "),
            DiffToken(DiffType.ADDED, "x"),
            DiffToken(DiffType.ADDED, " "),
            DiffToken(DiffType.UNCHANGED, "b"),
        ]
        assert _pairs(merge_adjacent_tokens(tokens)) == [
            ("unchanged", "a "),
            ("added", "x "),
            ("unchanged", "b"),
        ]

    def test_input_untouched(self):
        tokens = [DiffToken(DiffType.ADDED, "a"), DiffToken(DiffType.ADDED, "b")]
        merge_adjacent_tokens(tokens)
        assert tokens[0].text == "a"


class TestSummary:
    """Test diff statistics and summaries."""

    def test_stats_ignore_whitespace(self):
        diff = compute_word_diff("a b c", "a x c")
        assert diff.stats() == {"added": 1, "deleted": 1, "unchanged": 2}

    def test_summary(self):
        assert compute_word_diff("a b c", "a x y c").summary() == "2 words added, 1 word removed"
        assert compute_word_diff("a b", "a  b").summary() == "Whitespace changes only"
        assert compute_word_diff("a", "a").summary() == "No changes"

    def test_to_dict(self):
        data = compute_word_diff("a", "b").to_dict()
        assert data["tokens"] == [{"type": "deleted", "text": "a"}, {"type": "added", "text": "b"}]
        assert data["unified"].startswith("--- original")
