"""Property-based tests for tour naming and rating rules."""

import re

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError

from natours.models.tour import derive_slug, round_rating
from natours.schemas.tour import UpdateTourRequest

SLUG_PATTERN = re.compile(r"^([a-z0-9]+(-[a-z0-9]+)*)?$")

# "&", "#" and ";" are left out: they can form case-sensitive HTML entities
tour_names = st.text(
    alphabet=st.sampled_from(
        "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
        " \t!?.,:-_'\"()/@*+"
    ),
    max_size=40,
)


@given(tour_names)
def test_slug_is_lowercase_and_hyphenated(name):
    assert SLUG_PATTERN.match(derive_slug(name))


@given(tour_names)
def test_slug_is_stable(name):
    slug = derive_slug(name)

    assert derive_slug(slug) == slug


@given(tour_names)
def test_slug_ignores_casing(name):
    assert derive_slug(name.upper()) == derive_slug(name.lower())


@given(tour_names)
def test_slug_ignores_surrounding_whitespace_and_punctuation(name):
    assert derive_slug(f"  {name}!! ") == derive_slug(name)


@given(st.floats(min_value=0, max_value=10, allow_nan=False))
def test_round_rating_keeps_one_decimal(value):
    rounded = round_rating(value)

    assert abs(rounded - value) <= 0.05 + 1e-9
    assert round_rating(rounded) == rounded


@given(st.floats(min_value=1.0, max_value=5.0))
def test_ratings_in_range_are_accepted(value):
    update = UpdateTourRequest(ratings_average=value)

    assert 1.0 <= update.ratings_average <= 5.0


@given(st.one_of(st.floats(min_value=-100, max_value=0.94), st.floats(min_value=5.06, max_value=100)))
def test_ratings_out_of_range_are_rejected(value):
    with pytest.raises(ValidationError):
        UpdateTourRequest(ratings_average=value)


@pytest.mark.parametrize("value, expected", [(4.45, 4.5), (4.44, 4.4), (4.666, 4.7), (1.0, 1.0)])
def test_round_rating_examples(value, expected):
    assert round_rating(value) == expected


@pytest.mark.parametrize("name, slug", [
    ("  The Amazing Forest Trail  ", "the-amazing-forest-trail"),
    ("The Sea Explorer!", "the-sea-explorer"),
    ("The Snow -- Adventurer", "the-snow-adventurer"),
])
def test_slug_examples(name, slug):
    assert derive_slug(name) == slug


@pytest.mark.parametrize("value", [1e308, -1e308, float("inf"), float("nan")])
def test_extreme_ratings_are_rejected(value):
    with pytest.raises(ValidationError):
        UpdateTourRequest(ratings_average=value)
