"""Keyword classifier: category match order, priority rules and custom keyword tables."""
import pytest

from utils.classifier import KeywordClassifier


@pytest.fixture
def classifier():
    return KeywordClassifier()


@pytest.mark.parametrize(
    "title, description, expected",
    [
        ("Cold food", "The food served in the mess is always cold", "mess"),
        ("No internet", "WiFi in my room keeps dropping", "infrastructure"),
        ("Seniors", "Seniors keep ragging me every night", "harassment"),
        ("Toilets", "The toilet on floor two is filthy and smells", "hygiene"),
        ("Main gate", "Nobody checks who walks in at night", "security"),
        ("Professor absent", "Professor skipped the lecture twice", "academic"),
        ("Something happened", "Please look into it", "other"),
    ],
)
def test_categorize_by_keyword(classifier, title, description, expected):
    assert classifier.categorize(title, description) == expected


def test_first_matching_category_wins(classifier):
    # "dirty" is a hygiene keyword but mess is checked first.
    assert classifier.categorize("Dirty plates", "Food in the canteen is served on dirty plates") == "mess"


def test_title_contributes_to_category(classifier):
    assert classifier.categorize("Library closed early", "Could not return the items") == "academic"


def test_harassment_is_always_urgent(classifier):
    assert classifier.detect_priority("calm description", "harassment") == "urgent"


def test_urgency_keyword_overrides_category_default(classifier):
    assert classifier.detect_priority("This is an emergency, water everywhere", "infrastructure") == "urgent"


@pytest.mark.parametrize(
    "category, expected",
    [
        ("security", "high"),
        ("hygiene", "high"),
        ("infrastructure", "medium"),
        ("mess", "medium"),
        ("academic", "low"),
        ("other", "low"),
    ],
)
def test_category_default_priority(classifier, category, expected):
    assert classifier.detect_priority("nothing special here", category) == expected


def test_custom_keyword_table():
    classifier = KeywordClassifier(category_keywords={"security": ("drone",)}, urgent_keywords=("asap",))
    assert classifier.categorize("Drone sighting", "") == "security"
    assert classifier.categorize("Cold food", "") == "other"
    assert classifier.detect_priority("fix asap", "academic") == "urgent"
