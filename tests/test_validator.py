"""
Tests for the annotation validator
"""

from strikemd.validator import validate


class TestValidate:
    """Tests for validate()."""

    def test_clean_text(self):
        """Test well-formed annotations report nothing."""
        text = 'The <strike comment="r"><del>cat</del><ins>dog</ins></strike> sat.'
        assert validate(text) == []

    def test_plain_text(self):
        """Test text without tags reports nothing."""
        assert validate("Nothing here.\n") == []

    def test_empty_deletion_without_replacement(self):
        """Test an empty deletion with no replace-with or sibling insertion."""
        problems = validate('Before <del comment="x"></del> after.')
        assert len(problems) == 1
        assert "neither deletion nor insertion" in problems[0]

    def test_empty_combined_span(self):
        """Test a combined span without sub-spans is flagged."""
        problems = validate('<strike comment="x"></strike>')
        assert problems == ["Change 0: has neither deletion nor insertion"]

    def test_residual_markup(self):
        """Test unparsed tags surviving recovery are flagged."""
        problems = validate('a <strike comment="x"><del>b</del> c')
        assert len(problems) == 1
        assert "artifacts" in problems[0]

    def test_both_problems(self):
        """Test independent problems are all reported."""
        text = '<ins comment="x"></ins> and <strike comment="y"><del>open'
        problems = validate(text)
        assert len(problems) == 2
        assert problems[0].startswith("Change 0")
