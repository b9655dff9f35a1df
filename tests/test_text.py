"""Tests for text normalization primitives."""

from char_knowledge.text import ELLIPSIS, clip, norm, tokenize


class TestNorm:
    """Tests for norm."""

    def test_none_is_empty(self):
        """None normalizes to an empty string."""
        assert norm(None) == ""

    def test_collapses_whitespace(self):
        """Runs of whitespace collapse to one space and the ends are trimmed."""
        assert norm("  I  like \n\t cats  ") == "I like cats"

    def test_stringifies(self):
        """Non-string input is converted with str()."""
        assert norm(42) == "42"


class TestTokenize:
    """Tests for tokenize."""

    def test_cjk_characters_and_runs(self):
        """Every character is a token, and the ideograph run is one too."""
        tokens = tokenize("喜歡貓")
        assert {"喜", "歡", "貓", "喜歡貓"} <= tokens

    def test_lowercases_ascii_words(self):
        """ASCII words are lowercased and kept whole."""
        tokens = tokenize("Play Zelda")
        assert "zelda" in tokens
        assert "play" in tokens
        assert "Zelda" not in tokens

    def test_punctuation_splits_words(self):
        """Punctuation separates word runs."""
        tokens = tokenize("使用者喜歡：貓")
        assert "使用者喜歡" in tokens
        assert "貓" in tokens
        assert "：" in tokens

    def test_no_whitespace_tokens(self):
        """Whitespace never becomes a token."""
        assert not any(t.isspace() for t in tokenize("a b\tc"))

    def test_empty(self):
        """Empty input yields no tokens."""
        assert tokenize("") == set()
        assert tokenize(None) == set()


class TestClip:
    """Tests for clip."""

    def test_strips_trailing_punctuation(self):
        """Trailing punctuation is removed from the span."""
        assert clip(" 下雨。！ ") == "下雨"

    def test_rejects_short(self):
        """Spans shorter than min_len are dropped."""
        assert clip("", min_len=1) is None
        assert clip("貓", min_len=2) is None
        assert clip("。", min_len=1) is None

    def test_truncates_with_ellipsis(self):
        """Long spans are cut to max_len including the ellipsis."""
        result = clip("a" * 100, max_len=10)
        assert result == "a" * 9 + ELLIPSIS
        assert len(result) == 10

    def test_exact_max_len_untouched(self):
        """A span of exactly max_len is returned as is."""
        assert clip("a" * 10, max_len=10) == "a" * 10
