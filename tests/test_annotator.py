from itertools import combinations

import pytest

from grouping import MANUAL_REVIEW_NOTICE, PlacementLedger, Table, annotate_table
from scoring import calculate_compatibility, compatibility_matrix
from tests.helpers import make_profile, make_profiles


def _table(members):
    table = Table(id='table-0', group_number=1)
    for seat, profile in enumerate(members):
        table.add(seat, profile)
    return table


def test_reasons_for_a_balanced_table():
    table = annotate_table(_table(make_profiles(2, 4)), PlacementLedger())

    assert table.matching_reasons == [
        '2 females, 4 males - balanced gender mix',
        'Shared interests: Both love Partying, Both into Indie',
        'From 1 different colleges',
        'Shared college vibe: "Balanced"',
    ]


def test_score_is_rounded_pair_average():
    members = make_profiles(2, 4)
    pairs = [calculate_compatibility(a, b) for a, b in combinations(members, 2)]

    table = annotate_table(_table(members), PlacementLedger())

    assert table.compatibility_score == pytest.approx(round(sum(pairs) / len(pairs), 2))


def test_matrix_and_direct_scores_agree():
    members = make_profiles(3, 4, university='DU')
    with_matrix = annotate_table(_table(members), PlacementLedger(), compatibility_matrix(members))
    direct = annotate_table(_table(members), PlacementLedger())
    assert with_matrix.compatibility_score == direct.compatibility_score


def test_college_count_and_extroverts():
    members = [make_profile(i, gender='Female' if i < 2 else 'Male', introvert_score=2,
                            university=f'Uni {i % 3}') for i in range(6)]
    reasons = annotate_table(_table(members), PlacementLedger()).matching_reasons

    assert '6 extroverts - lively energy' in reasons
    assert 'From 3 different colleges' in reasons


def test_no_gender_line_outside_band():
    reasons = annotate_table(_table(make_profiles(4, 2)), PlacementLedger()).matching_reasons
    assert not any('balanced gender mix' in r for r in reasons)


def test_no_vibe_line_without_majority():
    vibes = ['Balanced', 'Balanced', 'Chaos & fun', 'Chaos & fun', 'Hustle & grind', 'Hustle & grind', 'Balanced']
    members = [make_profile(i, college_vibe=v) for i, v in enumerate(vibes)]
    reasons = annotate_table(_table(members), PlacementLedger()).matching_reasons
    assert not any(r.startswith('Shared college vibe') for r in reasons)


def test_attention_lines_come_last():
    ledger = PlacementLedger()
    ledger.record(1, 'Placed to complete table')
    table = annotate_table(_table(make_profiles(2, 4)), ledger)

    assert table.matching_reasons[-2:] == ['Needs attention: Person 1', MANUAL_REVIEW_NOTICE]


def test_annotate_is_repeatable():
    ledger = PlacementLedger()
    ledger.record(3, 'x')
    table = _table(make_profiles(2, 4))

    first = list(annotate_table(table, ledger).matching_reasons)
    second = annotate_table(table, ledger).matching_reasons

    assert first == second


def test_single_member_table_scores_zero():
    table = annotate_table(_table([make_profile(0)]), PlacementLedger())
    assert table.compatibility_score == 0.0
