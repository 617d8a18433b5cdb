"""Tests for the notes sanitizer."""

import pytest

from finance_tracker.validation import sanitize


class TestSanitize:
    """Tests for markup stripping."""

    def test_plain_text_unchanged(self):
        """Test ordinary notes pass through."""
        assert sanitize("Lunch with Sam") == "Lunch with Sam"

    def test_script_block_removed_with_body(self):
        """Test <script> blocks are removed including their content."""
        assert sanitize("<script>alert(1)</script>Lunch") == "Lunch"

    def test_script_block_case_insensitive_and_multiline(self):
        """Test script stripping ignores case and spans lines."""
        assert sanitize("Coffee<SCRIPT type='x'>\nsteal()\n</Script >") == "Coffee"

    def test_tags_removed_text_kept(self):
        """Test other tags are stripped but their text stays."""
        assert sanitize("<b>Rent</b> for <i>March</i>") == "Rent for March"

    def test_entities_removed(self):
        """Test entity references are dropped."""
        assert sanitize("Fish &amp; chips&#x3c;") == "Fish  chips"

    def test_whitespace_trimmed(self):
        """Test surrounding whitespace is trimmed."""
        assert sanitize("   taxi  \n") == "taxi"

    @pytest.mark.parametrize("value", [None, "", "<br/>", "<script>x</script>", "  &nbsp; "])
    def test_empty_results_become_none(self, value):
        """Test input that is empty or only markup gives None."""
        assert sanitize(value) is None

    @pytest.mark.parametrize("value", [
        "<scr<script></script>ipt>alert(1)</script>",
        "a < b and c > d",
        "<<b>>bold<</b>>",
        "Tom & Jerry; friends",
    ])
    def test_idempotent(self, value):
        """Test sanitizing twice changes nothing further."""
        once = sanitize(value)
        assert sanitize(once) == once

    def test_unclosed_tag_is_kept_as_text(self):
        """Test a lone angle bracket is not treated as a tag."""
        assert sanitize("5 < 6") == "5 < 6"
