import itertools

import pytest

from screening_api.services.risk_service import (
    GENERAL_RECOMMENDATIONS,
    assess_health_risk,
    get_bmi_category,
    get_risk_level,
)

FLAGS = list(itertools.product([False, True], repeat=4))


def test_obese_with_diabetes_history_is_high():
    result = assess_health_risk(31.0, True, False, False, False)

    assert result.risk_score == 5
    assert result.risk_level == "High"
    assert result.recommendations[:2] == [
        "Consider weight management programs",
        "Regular blood glucose monitoring recommended",
    ]
    assert result.recommendations[-3:] == GENERAL_RECOMMENDATIONS


def test_every_factor_present():
    result = assess_health_risk(35.0, True, True, True, True)

    assert result.risk_score == 10
    assert result.risk_level == "Very High"


def test_no_factors():
    result = assess_health_risk(22.0, False, False, False, False)

    assert result.risk_score == 0
    assert result.risk_level == "Low"
    assert result.recommendations == GENERAL_RECOMMENDATIONS


def test_missing_bmi_skips_bmi_factor():
    assert assess_health_risk(None, False, True, False, False).risk_score == 2


@pytest.mark.parametrize("flags", FLAGS)
def test_deterministic(flags):
    assert assess_health_risk(27.5, *flags) == assess_health_risk(27.5, *flags)


@pytest.mark.parametrize("flags", FLAGS)
def test_adding_a_factor_never_lowers_score(flags):
    base = assess_health_risk(24.0, *flags).risk_score
    for index, flag in enumerate(flags):
        if not flag:
            raised = list(flags)
            raised[index] = True
            assert assess_health_risk(24.0, *raised).risk_score > base


@pytest.mark.parametrize("flags", FLAGS)
def test_higher_bmi_never_lowers_score(flags):
    scores = [assess_health_risk(bmi, *flags).risk_score for bmi in (20.0, 25.0, 29.9, 30.0, 45.0)]

    assert scores == sorted(scores)


@pytest.mark.parametrize("score,level", [(0, "Low"), (2, "Low"), (3, "Moderate"), (4, "Moderate"),
                                         (5, "High"), (6, "High"), (7, "Very High")])
def test_risk_level_bands(score, level):
    assert get_risk_level(score) == level


@pytest.mark.parametrize("bmi,category", [(18.4, "Underweight"), (18.5, "Normal weight"),
                                          (25.0, "Overweight"), (30.0, "Obese")])
def test_bmi_categories(bmi, category):
    assert get_bmi_category(bmi) == category
