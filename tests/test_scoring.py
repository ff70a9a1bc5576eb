"""Tests for exact match scoring and response statistics."""

from unittest.mock import Mock, patch

from needlebench.services.scoring import estimate_tokens, matches, response_statistics


class TestMatches:
    """Tests for whole-word, case-insensitive matching."""

    def test_case_insensitive_match(self):
        """Test that case differences do not prevent a match."""
        assert matches("The code is ABC123.", "abc123") is True

    def test_partial_word_does_not_match(self):
        """Test that the target inside a longer token is not found."""
        assert matches("a915609a", "15609") is False

    def test_empty_response(self):
        """Test that an empty response never matches."""
        assert matches("", "x") is False

    def test_empty_target(self):
        """Test that an empty target never matches."""
        assert matches("x", "") is False

    def test_whitespace_is_trimmed(self):
        """Test that surrounding whitespace is ignored on both sides."""
        assert matches("  The answer is 42  ", "  42 ") is True

    def test_none_values(self):
        """Test that missing values count as empty."""
        assert matches(None, "x") is False
        assert matches("x", None) is False

    def test_regex_characters_are_literal(self):
        """Test that punctuation in the target is matched literally."""
        assert matches("Version 1.2 shipped", "1.2") is True
        assert matches("Version 1x2 shipped", "1.2") is False

    def test_multi_word_target(self):
        """Test that a phrase is matched as a whole."""
        assert matches("She lives in New York City.", "new york") is True

    def test_match_at_boundaries(self):
        """Test that targets at the start and end of the text are found."""
        assert matches("Paris is the capital", "paris") is True
        assert matches("The capital is Paris", "paris") is True


class TestResponseStatistics:
    """Tests for response statistics."""

    def test_counts(self):
        """Test word, character and sentence counts."""
        text = "First sentence. Second one! Third?"
        stats = response_statistics(text)

        assert stats["word_count"] == 5
        assert stats["character_count"] == len(text)
        assert stats["sentence_count"] == 3
        assert stats["reading_time"] == 1

    def test_empty_text(self):
        """Test that an empty text has zero counts."""
        stats = response_statistics("")

        assert stats == {
            "word_count": 0,
            "character_count": 0,
            "sentence_count": 0,
            "reading_time": 0,
            "estimated_tokens": 0,
        }

    def test_reading_time_rounds_up(self):
        """Test that reading time rounds up to whole minutes."""
        stats = response_statistics(" ".join(["word"] * 201))
        assert stats["reading_time"] == 2

    def test_token_estimate_fallback(self):
        """Test the character based estimate when no tokenizer is available."""
        assert estimate_tokens("a" * 40) == 10

    def test_token_estimate_with_tokenizer(self):
        """Test that the tokenizer is used when available."""
        tokenizer = Mock()
        tokenizer.encode.return_value = [1, 2, 3]

        with patch("needlebench.services.scoring._tokenizer", return_value=tokenizer):
            assert estimate_tokens("three tokens here") == 3

        tokenizer.encode.assert_called_once_with("three tokens here", disallowed_special=())
