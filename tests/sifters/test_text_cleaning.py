"""Tests for text cleaning and structural junk stripping."""

from broadway_ingest.sifters.quality import clean_text, strip_structural_junk
from broadway_ingest.sifters.quality.text_cleaning import (
    count_words,
    ends_with_terminal_punctuation,
)

BODY = (
    "Sadie Sink gives a performance of ferocious focus in John Proctor Is the Villain, "
    "a play that takes its time before it bares its teeth. The ensemble of high school "
    "students is sharply drawn, and the final scene lands with real weight."
)


class TestCleanText:
    def test_entities_decoded_twice(self) -> None:
        assert clean_text("Rock &amp;amp; roll &amp;#8217;s") == "Rock & roll ’s"

    def test_zero_width_and_control_characters_removed(self) -> None:
        assert clean_text("Bra\u200bvo\x07!") == "Bravo!"

    def test_markdown_links_keep_label(self) -> None:
        assert clean_text("See [the review](https://example.com/a_(b)) now") == "See the review now"

    def test_markdown_images_dropped(self) -> None:
        assert clean_text("Before ![alt text](https://img/x.png) after") == "Before after"

    def test_whitespace_normalized(self) -> None:
        assert clean_text("  one  two \r\n\r\n\r\n\r\nthree  ") == "one two\n\nthree"

    def test_empty(self) -> None:
        assert clean_text("") == ""


class TestStripStructuralJunk:
    def test_trailing_newsletter_promo(self) -> None:
        result = strip_structural_junk(BODY + "\n\nSign up for our newsletter for the latest theater news.")
        assert result.text == BODY
        assert result.applied == ["newsletter_promo"]
        assert result.signals == ["stripped:newsletter_promo"]

    def test_leading_and_trailing_junk(self) -> None:
        text = "Skip to content\n" + BODY + "\n\nCopyright © 2025 Example Media. All rights reserved."
        result = strip_structural_junk(text)
        assert result.text == BODY
        assert "skip_to_content" in result.applied
        assert "copyright_footer" in result.applied

    def test_greedy_pattern_skipped(self) -> None:
        text = "Share this article\n" + BODY
        result = strip_structural_junk(text)
        # Removing everything after "share this article" would destroy the body
        assert result.text == text
        assert result.skipped == ["share_bar"]

    def test_clean_text_unchanged(self) -> None:
        result = strip_structural_junk(BODY)
        assert result.text == BODY
        assert result.applied == []

    def test_is_stable_on_second_pass(self) -> None:
        once = strip_structural_junk(BODY + "\n\nAdvertisement\n\nRead more: Other news")
        twice = strip_structural_junk(once.text)
        assert twice.text == once.text


class TestHelpers:
    def test_terminal_punctuation(self) -> None:
        assert ends_with_terminal_punctuation("It works.")
        assert ends_with_terminal_punctuation('She said "go."')
        assert ends_with_terminal_punctuation("Really?)")
        assert not ends_with_terminal_punctuation("and then the")
        assert not ends_with_terminal_punctuation("")

    def test_count_words(self) -> None:
        assert count_words("one two\nthree") == 3
