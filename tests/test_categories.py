"""
Tests for automatic category assignment.
"""

from catalogworker.entries import CategoryDefinition
from catalogworker.harvester.categories import CategoryMatcher, name_tokens


class TestNameTokens:
    def test_stopwords_and_singulars(self):
        tokens = name_tokens("Спойлери для BMW")
        assert "для" not in tokens
        assert "спойлери" in tokens
        assert "спойлер" in tokens
        assert "bmw" in tokens


class TestCategoryMatcher:
    """Regex first, then token overlap."""

    def test_default_regex_for_known_name(self):
        matcher = CategoryMatcher([CategoryDefinition(id="d", name="Дифузори")])
        assert matcher.guess("Diffuser rear Audi A4") == "d"

    def test_explicit_regex(self):
        matcher = CategoryMatcher(
            [CategoryDefinition(id="mats", name="Коврики", regex=r"\bmats?\b")]
        )
        assert matcher.guess("Floor mat set") == "mats"

    def test_deeper_regex_wins(self):
        matcher = CategoryMatcher(
            [
                CategoryDefinition(id="body", name="Тюнінг", regex="spoiler"),
                CategoryDefinition(id="spoilers", name="Спойлери", parent_id="body"),
            ]
        )
        assert matcher.guess("Spoiler BMW E46") == "spoilers"

    def test_token_score(self):
        matcher = CategoryMatcher(
            [
                CategoryDefinition(id="lights", name="Фари задні"),
                CategoryDefinition(id="rear-lights-led", name="Задні фари LED"),
            ]
        )
        assert matcher.guess("LED задні фари для Golf") == "rear-lights-led"

    def test_invalid_regex_falls_back_to_tokens(self):
        matcher = CategoryMatcher([CategoryDefinition(id="x", name="Антени", regex="(")])
        assert matcher.guess("Антена кругова") == "x"

    def test_no_match(self):
        matcher = CategoryMatcher([CategoryDefinition(id="x", name="Антени")])
        assert matcher.guess("Колеса") is None
        assert matcher.guess("") is None

    def test_empty_matcher(self):
        assert not CategoryMatcher([])
        assert CategoryMatcher([]).guess("Spoiler") is None

    def test_parent_cycle_terminates(self):
        matcher = CategoryMatcher(
            [
                CategoryDefinition(id="a", name="Alpha items", parent_id="b"),
                CategoryDefinition(id="b", name="Beta items", parent_id="a"),
            ]
        )
        assert matcher.guess("alpha") == "a"
