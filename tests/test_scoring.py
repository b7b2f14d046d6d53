import numpy as np
import pytest

from profiles import generate_sample_profiles
from scoring import (
    DEFAULT_SCORING,
    FactorRule,
    calculate_compatibility,
    compatibility_matrix,
    segment_score,
    shared_interests,
)
from tests.helpers import make_profile

# Every factor agreeing: sum(weight * match) over the default table
ALL_MATCH_POINTS = 69.6


# -------------------------------
# Segments
# -------------------------------

@pytest.mark.parametrize("score, segment", [
    (1, 'low'), (3, 'low'),
    (4, 'medium'), (6, 'medium'),
    (7, 'high'), (10, 'high'),
    (None, None),
])
def test_segment_score(score, segment):
    assert segment_score(score) == segment


# -------------------------------
# Pairwise score
# -------------------------------

def test_identical_profiles_score():
    a, b = make_profile(1), make_profile(2)
    assert calculate_compatibility(a, b) == pytest.approx(ALL_MATCH_POINTS / 99 * 100)


def test_mixed_gender_scores_higher():
    same = calculate_compatibility(make_profile(1), make_profile(2))
    mixed = calculate_compatibility(make_profile(1), make_profile(2, gender='Female'))
    # gender mismatch earns the full 10 instead of 5
    assert mixed - same == pytest.approx(5 / 99 * 100)


def test_scores_in_same_segment_count_as_agreement():
    a = make_profile(1, creative_score=4)
    b = make_profile(2, creative_score=6)
    assert calculate_compatibility(a, b) == pytest.approx(ALL_MATCH_POINTS / 99 * 100)


def test_scores_in_different_segments_lose_points():
    a = make_profile(1, creative_score=2)
    b = make_profile(2, creative_score=9)
    # creative: 5 * 0.7 -> 5 * 0.4
    expected = (ALL_MATCH_POINTS - 1.5) / 99 * 100
    assert calculate_compatibility(a, b) == pytest.approx(expected)


def test_music_wildcard_matches_anything():
    a = make_profile(1, music_vibe='Rap')
    b = make_profile(2, music_vibe='Depends on mood')
    assert calculate_compatibility(a, b) == pytest.approx(ALL_MATCH_POINTS / 99 * 100)


def test_score_is_symmetric_and_bounded():
    profiles = generate_sample_profiles(25, seed=11)
    for a in profiles[:8]:
        for b in profiles[8:16]:
            forward = calculate_compatibility(a, b)
            assert forward == calculate_compatibility(b, a)
            assert 0 <= forward <= 100


def test_missing_answers_still_score():
    a = make_profile(1, weekend_plan=None, introvert_score=None)
    b = make_profile(2, weekend_plan=None, introvert_score=None)
    assert 0 <= calculate_compatibility(a, b) <= 100


# -------------------------------
# Config
# -------------------------------

def test_default_weights_total():
    assert DEFAULT_SCORING.total_weight == 99


def test_with_rule_replaces_one_factor():
    config = DEFAULT_SCORING.with_rule('gender', FactorRule(0, 0.0, 0.0))
    assert config.total_weight == 89
    assert DEFAULT_SCORING.total_weight == 99


def test_with_rule_unknown_factor():
    with pytest.raises(KeyError):
        DEFAULT_SCORING.with_rule('star_sign', FactorRule(1, 1.0, 0.0))


# -------------------------------
# Shared interests and matrix
# -------------------------------

def test_shared_interests_tags():
    assert shared_interests(make_profile(1), make_profile(2)) == [
        'Both love Partying',
        'Both into Indie',
        'Both describe college as "Balanced"',
        'Both workout regularly',
        'Both love spontaneous plans',
    ]


def test_shared_interests_ignores_wildcard_and_missing():
    a = make_profile(1, music_vibe='Depends on mood', weekend_plan=None, fitness_active=False)
    b = make_profile(2, music_vibe='Indie', weekend_plan=None)
    tags = shared_interests(a, b)
    assert not any(t.startswith('Both into') for t in tags)
    assert not any(t.startswith('Both love P') for t in tags)
    assert 'Both workout regularly' not in tags


def test_compatibility_matrix_shape():
    profiles = generate_sample_profiles(7, seed=2)
    matrix = compatibility_matrix(profiles)

    assert matrix.shape == (7, 7)
    assert np.allclose(matrix, matrix.T)
    assert np.all(np.diag(matrix) == 0)
    assert matrix[1][4] == pytest.approx(calculate_compatibility(profiles[1], profiles[4]))
