"""Tests for text metrics."""

from webtoon_translator.utils.text_metrics import (
    analyze_formatting,
    calculate_readability_score,
)


class TestAnalyzeFormatting:
    """Tests for analyze_formatting."""

    def test_all_tags_and_headers_present(self):
        """Test a fully tagged text reports no problems."""
        text = '=== Page 1 ===\n\n"": Hi\n(): Hmm\n[]: Later'

        report = analyze_formatting(text)

        assert report.tag_consistency is True
        assert report.page_headers_present is True
        assert report.missing_tags == []

    def test_missing_tags_and_headers(self):
        """Test missing tags are listed and headers detected as absent."""
        report = analyze_formatting('"": Only dialogue')

        assert report.tag_consistency is False
        assert report.page_headers_present is False
        assert report.missing_tags == ["()", "[]"]

    def test_header_with_file_name(self):
        """Test extracted page headers with file names count as headers."""
        report = analyze_formatting("=== Page 3 (03.jpg) ===\n\n")

        assert report.page_headers_present is True


class TestReadabilityScore:
    """Tests for calculate_readability_score."""

    def test_empty_text_scores_zero(self):
        """Test text without words scores zero."""
        assert calculate_readability_score("") == 0
        assert calculate_readability_score("...") == 0

    def test_short_sentences_score_high(self):
        """Test short simple sentences score near the top."""
        assert calculate_readability_score("I go. You stay. We eat.") == 99

    def test_long_complex_sentences_score_lower(self):
        """Test long words in long sentences lower the score."""
        simple = calculate_readability_score("I go. You stay. We eat.")
        complex_text = calculate_readability_score(
            "Extraordinarily complicated international negotiations "
            "notwithstanding considerable disagreements continued indefinitely."
        )

        assert complex_text < simple
        assert 0 <= complex_text <= 100
