"""
================================================================================
SCORING - How well do two attendees get along?
================================================================================

Compares two profiles factor by factor and returns a 0-100 score.

Each factor has a WEIGHT (how much it matters) and two FRACTIONS:
    - match:    share of the weight awarded when the answers agree
    - mismatch: share of the weight awarded when they don't

Most factors reward agreement (same weekend plans = easy conversation).
Gender and personality type do the opposite: a mixed table is livelier,
so a MISMATCH earns more than a match.

The 1-10 quiz scores are bucketed into low / medium / high before they're
compared, so a 6 and a 7 don't count as "different" in a meaningful way
while a 2 and a 9 do.

================================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Optional

import numpy as np

from profiles import Profile


# ============================================================================
# CONFIGURATION - Weights and match/mismatch fractions
# ============================================================================

@dataclass(frozen=True)
class FactorRule:
    weight: float
    match: float        # fraction of weight earned when the two answers agree
    mismatch: float     # fraction of weight earned when they differ


DEFAULT_FACTORS = {
    'gender':           FactorRule(10, 0.5, 1.0),   # diversity preferred
    'spontaneous':      FactorRule(6, 0.7, 0.3),
    'personality_type': FactorRule(2, 0.6, 1.0),    # Smart + Funny mix preferred
    'introvert':        FactorRule(9, 0.6, 0.3),
    'creative':         FactorRule(5, 0.7, 0.4),
    'college_life':     FactorRule(9, 0.8, 0.2),
    'social':           FactorRule(6, 0.7, 0.3),
    'family':           FactorRule(2, 0.5, 0.0),
    'humor':            FactorRule(4, 0.6, 0.3),
    'academic':         FactorRule(8, 0.6, 0.3),
    'fitness':          FactorRule(8, 0.7, 0.2),
    'weekend_plan':     FactorRule(8, 0.9, 0.1),
    'music_vibe':       FactorRule(6, 0.8, 0.2),
    'college_vibe':     FactorRule(6, 0.85, 0.15),
    'relationship':     FactorRule(10, 0.8, 0.2),
}


@dataclass(frozen=True)
class ScoringConfig:
    """
    All the tuning knobs of the scorer in one place.

    Tests (and curious organizers) can build their own config instead of
    editing module constants:

        strict_vibes = DEFAULT_SCORING.with_rule('college_vibe', FactorRule(20, 1.0, 0.0))
    """
    factors: dict = field(default_factory=lambda: dict(DEFAULT_FACTORS))
    music_wildcard: str = 'Depends on mood'

    @property
    def total_weight(self) -> float:
        return sum(rule.weight for rule in self.factors.values())

    def with_rule(self, name: str, rule: FactorRule) -> 'ScoringConfig':
        if name not in self.factors:
            raise KeyError(f'Unknown scoring factor: {name}')
        factors = dict(self.factors)
        factors[name] = rule
        return replace(self, factors=factors)


DEFAULT_SCORING = ScoringConfig()


# ============================================================================
# SEGMENTS - Low / medium / high buckets for 1-10 scores
# ============================================================================

def segment_score(score: Optional[int]) -> Optional[str]:
    """Bucket a 1-10 score: <=3 low, 4-6 medium, 7-10 high."""
    if score is None:
        return None
    if score <= 3:
        return 'low'
    if score <= 6:
        return 'medium'
    return 'high'


# (factor name, how to read the value off a profile)
# Segment factors compare buckets; the rest compare raw answers.
_VALUE_FACTORS = (
    ('gender', lambda p: p.gender),
    ('spontaneous', lambda p: p.spontaneous_preference),
    ('personality_type', lambda p: p.personality_type),
)

_SEGMENT_FACTORS = (
    ('introvert', lambda p: p.introvert_score),
    ('creative', lambda p: p.creative_score),
    ('college_life', lambda p: p.college_life_score),
    ('social', lambda p: p.social_score),
    ('family', lambda p: p.family_importance),
    ('humor', lambda p: p.humor_importance),
    ('academic', lambda p: p.academic_importance),
)

_CHOICE_FACTORS = (
    ('fitness', lambda p: p.fitness_active),
    ('weekend_plan', lambda p: p.weekend_plan),
    ('college_vibe', lambda p: p.college_vibe),
    ('relationship', lambda p: p.relationship_status),
)


# ============================================================================
# PAIRWISE COMPATIBILITY
# ============================================================================

def calculate_compatibility(profile1: Profile, profile2: Profile,
                            config: ScoringConfig = DEFAULT_SCORING) -> float:
    """
    Score how well two people would get along at the same table.

    Returns a float from 0-100 (not rounded - callers round for display).
    The score is symmetric: calculate_compatibility(a, b) == calculate_compatibility(b, a).
    """
    earned = 0.0

    def award(name: str, same: bool):
        rule = config.factors[name]
        return rule.weight * (rule.match if same else rule.mismatch)

    for name, read in _VALUE_FACTORS:
        earned += award(name, read(profile1) == read(profile2))

    for name, read in _SEGMENT_FACTORS:
        earned += award(name, segment_score(read(profile1)) == segment_score(read(profile2)))

    for name, read in _CHOICE_FACTORS:
        earned += award(name, read(profile1) == read(profile2))

    # "Depends on mood" gets along with any playlist
    music1, music2 = profile1.music_vibe, profile2.music_vibe
    earned += award('music_vibe', music1 == music2
                    or config.music_wildcard in (music1, music2))

    total = config.total_weight
    return (earned / total) * 100 if total > 0 else 0.0


def shared_interests(profile1: Profile, profile2: Profile) -> list[str]:
    """
    List the things two people have in common, as short readable tags.

    Only exact matches count here (unlike the scorer, "Depends on mood"
    is not a shared music taste).
    """
    shared = []

    if profile1.weekend_plan and profile1.weekend_plan == profile2.weekend_plan:
        shared.append(f'Both love {profile1.weekend_plan}')

    if profile1.music_vibe and profile1.music_vibe == profile2.music_vibe:
        shared.append(f'Both into {profile1.music_vibe}')

    if profile1.college_vibe and profile1.college_vibe == profile2.college_vibe:
        shared.append(f'Both describe college as "{profile1.college_vibe}"')

    if profile1.fitness_active and profile2.fitness_active:
        shared.append('Both workout regularly')

    if profile1.spontaneous_preference and profile2.spontaneous_preference:
        shared.append('Both love spontaneous plans')

    return shared


def compatibility_matrix(profiles: list[Profile],
                         config: ScoringConfig = DEFAULT_SCORING) -> np.ndarray:
    """
    Build the full N x N compatibility matrix for one run.

    Row/column i is profiles[i]. The matrix is symmetric; the diagonal is
    left at 0 and is never read (nobody is paired with themselves).
    """
    n = len(profiles)
    matrix = np.zeros((n, n))

    for i in range(n):
        for j in range(i + 1, n):
            score = calculate_compatibility(profiles[i], profiles[j], config)
            matrix[i][j] = score
            matrix[j][i] = score

    return matrix
