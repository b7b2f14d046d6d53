"""
================================================================================
GROUPING - Seating attendees at dinner tables
================================================================================

PURPOSE:
    Split a list of profiles into tables of 6-8 people so that:
       - everyone at a table gets along (high pairwise compatibility)
       - each table has 2-3 women
       - each table has at most 2 introverts
       - NOBODY is left without a seat, even when the rules can't be met

HOW IT WORKS:
    1. PLAN   - decide the table sizes up front (e.g. 25 people -> 7, 6, 6, 6)
    2. BUILD  - fill one table at a time, greedily:
                 a. seed it with a woman (they're usually the scarcer group)
                 b. add the best-scoring candidate that keeps the rules
                 c. if nobody keeps the rules, take the best "near miss"
                 d. if there are no near misses either, take whoever is left
    3. SEAT   - anyone still without a table is squeezed into the best
                 existing table (or gets a new one if there's nowhere to go)
    4. EXPLAIN - every table gets a short "why this table works" list, plus a
                 "needs attention" note naming anyone seated by compromise

COMPROMISES ARE DATA, NOT ERRORS:
    Whenever a rule has to bend, the person is recorded in the
    PlacementLedger with a reason. Organizers see these as highlighted
    members and a "Manual review needed" line on the table card.

================================================================================
"""

import os
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations
from math import ceil
from typing import Iterator, Optional

import numpy as np

from profiles import Profile
from scoring import DEFAULT_SCORING, ScoringConfig, calculate_compatibility, compatibility_matrix, shared_interests


# ============================================================================
# CONFIGURATION - Table rules
# ============================================================================

MIN_GROUP_SIZE = 6
MAX_GROUP_SIZE = 8
MIN_FEMALES = 2
MAX_FEMALES = 3
MAX_INTROVERTS = 2

# Safety caps - the builder always terminates, even on weird input
MAX_GROWTH_ITERATIONS = 200     # attempts to grow a single table
RELAXED_VIOLATION_LIMIT = 2     # worst "near miss" the relaxed search accepts

# Candidate scoring bonuses
TARGET_FEMALE_RATIO = 0.4
SHARED_INTERESTS_FOR_FULL_BONUS = 2
SHARED_INTEREST_BONUS = 20
SOME_SHARED_INTEREST_BONUS = 10
GENDER_BALANCE_BONUS = 15
NEW_UNIVERSITY_BONUS = 10
ONE_SAME_UNIVERSITY_BONUS = 5

# Highlight reasons (shown next to the person in exports)
REASON_RELAXED = 'Best available fit for constraints'
REASON_FORCED = 'Placed to complete table'
REASON_REVIEW = 'Constraint review needed'
REASON_FORCED_SEAT = 'Forced placement to seat everyone'
REASON_OVER_CAPACITY = 'Table exceeds capacity - manual adjustment required'
REASON_NO_TABLES = 'No other tables available'

ATTENTION_PREFIX = 'Needs attention: '
MANUAL_REVIEW_NOTICE = 'Manual review needed'


@dataclass(frozen=True)
class GroupingRules:
    """The table rules for one run. Defaults match a typical dinner event."""
    min_size: int = MIN_GROUP_SIZE
    max_size: int = MAX_GROUP_SIZE
    min_females: int = MIN_FEMALES
    max_females: int = MAX_FEMALES
    max_introverts: int = MAX_INTROVERTS
    max_iterations: int = MAX_GROWTH_ITERATIONS
    relaxed_violation_limit: int = RELAXED_VIOLATION_LIMIT

    def __post_init__(self):
        if self.min_size < 1:
            raise ValueError(f'min_size must be at least 1 (got {self.min_size})')
        if self.max_size < self.min_size:
            raise ValueError(f'max_size ({self.max_size}) is smaller than min_size ({self.min_size})')

    @classmethod
    def from_env(cls) -> 'GroupingRules':
        """Read TABLE_MIN_SIZE / TABLE_MAX_SIZE from the environment (.env)."""
        return cls(
            min_size=int(os.environ.get('TABLE_MIN_SIZE', MIN_GROUP_SIZE)),
            max_size=int(os.environ.get('TABLE_MAX_SIZE', MAX_GROUP_SIZE)),
        )

    def female_band(self, size: int) -> tuple[int, int]:
        """
        Allowed number of women at a table of `size`.

        The upper bound does not grow with the table: an 8-seat table still
        takes at most 3 women. Tiny tables only need as many as they have seats.
        """
        return min(self.min_females, size), self.max_females


DEFAULT_RULES = GroupingRules()


# ============================================================================
# DATA STRUCTURES
# ============================================================================
#
# A "seat" is a profile's position in the input list. Everything inside a
# run refers to people by seat number, so two identical-looking records
# can never be confused with each other.
#
# ============================================================================

class BuildStatus(str, Enum):
    COMPLETE = 'complete'       # reached the target size
    CAPPED = 'capped'           # hit MAX_GROWTH_ITERATIONS first
    EXHAUSTED = 'exhausted'     # ran out of people


class PlacementLedger:
    """
    Who was seated by compromise, and why.

    Maps seat -> list of reasons. A second placement event for the same
    person adds to their list rather than overwriting it.
    """

    def __init__(self):
        self._reasons: dict[int, list[str]] = {}

    def record(self, seat: int, reason: str):
        self._reasons.setdefault(seat, []).append(reason)

    def highlighted(self, seat: int) -> bool:
        return bool(self._reasons.get(seat))

    def reasons(self, seat: int) -> list[str]:
        return list(self._reasons.get(seat, []))

    def reason_for(self, seat: int) -> Optional[str]:
        reasons = self._reasons.get(seat)
        return '; '.join(reasons) if reasons else None

    def seats(self) -> list[int]:
        return sorted(self._reasons)

    def __len__(self):
        return len(self._reasons)


@dataclass
class Table:
    """
    One dinner table.

    female_count and introvert_count are computed from the member list
    every time they're read, so they can't go stale when people are added.
    """
    id: str
    group_number: int
    members: list[Profile] = field(default_factory=list)
    seats: list[int] = field(default_factory=list)
    compatibility_score: float = 0.0
    matching_reasons: list[str] = field(default_factory=list)

    def add(self, seat: int, profile: Profile):
        self.seats.append(seat)
        self.members.append(profile)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def female_count(self) -> int:
        return sum(1 for m in self.members if m.is_female)

    @property
    def introvert_count(self) -> int:
        return sum(1 for m in self.members if m.is_introvert)


@dataclass
class BuildOutcome:
    table: Table
    status: BuildStatus


@dataclass
class GroupingResult:
    groups: list[Table]
    total_profiles: int
    groups_formed: int
    ungrouped_profiles: list[Profile] = field(default_factory=list)
    ledger: PlacementLedger = field(default_factory=PlacementLedger)
    build_statuses: list[BuildStatus] = field(default_factory=list)

    def member_rows(self, table: Table) -> Iterator[tuple[Profile, bool, Optional[str]]]:
        """Yield (profile, highlighted, highlight_reason) for each member of a table."""
        for seat, profile in zip(table.seats, table.members):
            yield profile, self.ledger.highlighted(seat), self.ledger.reason_for(seat)

    @property
    def highlighted_count(self) -> int:
        return sum(1 for t in self.groups for s in t.seats if self.ledger.highlighted(s))


# ============================================================================
# STEP 1: PLAN TABLE SIZES
# ============================================================================
#
# Before anyone is scored we decide how many tables there are and how big
# each one is. We prefer tables of the minimum size (smaller tables = more
# conversation) and spread any extra people one at a time across tables.
#
#     24 people -> 6, 6, 6, 6
#     25 people -> 7, 6, 6, 6
#     27 people -> 7, 7, 7, 6
#
# ============================================================================

def plan_group_sizes(total: int, min_size: int = MIN_GROUP_SIZE,
                     max_size: int = MAX_GROUP_SIZE) -> list[int]:
    """
    Split `total` people into table sizes between min_size and max_size.

    The sizes always add up to `total`. A group of min_size people or fewer
    becomes a single table (even if it's below the minimum). If no count of
    tables fits the range, everyone goes into one table.
    """
    if total <= 0:
        return []
    if total <= min_size:
        return [total]

    fewest_tables = ceil(total / max_size)
    most_tables = total // min_size

    # More tables = sizes closer to the minimum, so try the largest count first
    for count in range(most_tables, fewest_tables - 1, -1):
        shortfall = total - count * min_size
        if shortfall > count * (max_size - min_size):
            continue

        sizes = [min_size] * count
        i = 0
        while shortfall > 0:
            if sizes[i] < max_size:
                sizes[i] += 1
                shortfall -= 1
            i = (i + 1) % count
        return sizes

    return [total]


# ============================================================================
# STEP 2: BUILD ONE TABLE
# ============================================================================
#
# Constraint helpers first, then candidate scoring, then the builder loop.
#
# ============================================================================

def table_problems(members: list[Profile], rules: GroupingRules = DEFAULT_RULES) -> list[str]:
    """Describe every rule a finished table breaks (empty list = valid)."""
    females = sum(1 for m in members if m.is_female)
    introverts = sum(1 for m in members if m.is_introvert)
    low, high = rules.female_band(len(members))

    problems = []
    if females < low:
        problems.append(f'{females} female(s), need at least {low}')
    elif females > high:
        problems.append(f'{females} females, max {high}')
    if introverts > rules.max_introverts:
        problems.append(f'{introverts} introverts, max {rules.max_introverts}')
    return problems


def is_valid_table(members: list[Profile], rules: GroupingRules = DEFAULT_RULES) -> bool:
    return not table_problems(members, rules)


def _constraint_violations(candidate: Profile, table: Table, target_size: int,
                           rules: GroupingRules) -> list[tuple[str, int]]:
    """
    What would go wrong if `candidate` joined `table`?

    Returns (description, magnitude) pairs. Strict mode rejects any
    candidate with a violation; relaxed mode adds up the magnitudes.
    """
    violations = []
    females = table.female_count + (1 if candidate.is_female else 0)
    open_seats = target_size - (table.size + 1)
    low, high = rules.female_band(target_size)

    if females > high:
        violations.append((f'female cap of {high} exceeded', females - high))
    elif females + open_seats < low:
        # Even if every remaining seat went to a woman we'd fall short
        violations.append((f'female minimum of {low} unreachable', low - females - open_seats))

    if candidate.is_introvert and table.introvert_count >= rules.max_introverts:
        violations.append((f'introvert cap of {rules.max_introverts} exceeded',
                           table.introvert_count + 1 - rules.max_introverts))

    return violations


def _candidate_score(seat: int, table: Table, arena: list[Profile], matrix: np.ndarray) -> float:
    """
    How good would this person be at this table?

    Average compatibility with the people already seated, plus bonuses for
    shared interests, moving the gender ratio toward 40% women, and bringing
    a new university to the table.
    """
    candidate = arena[seat]

    if table.seats:
        score = float(np.mean([matrix[seat][s] for s in table.seats]))
    else:
        score = 50.0

    shared_count = sum(len(shared_interests(candidate, m)) for m in table.members)
    if shared_count >= SHARED_INTERESTS_FOR_FULL_BONUS:
        score += SHARED_INTEREST_BONUS
    elif shared_count > 0:
        score += SOME_SHARED_INTEREST_BONUS

    if table.size > 0:
        current_ratio = table.female_count / table.size
        new_ratio = (table.female_count + (1 if candidate.is_female else 0)) / (table.size + 1)
        if abs(new_ratio - TARGET_FEMALE_RATIO) < abs(current_ratio - TARGET_FEMALE_RATIO):
            score += GENDER_BALANCE_BONUS

    same_university = sum(1 for m in table.members if m.university == candidate.university)
    if same_university == 0:
        score += NEW_UNIVERSITY_BONUS
    elif same_university == 1:
        score += ONE_SAME_UNIVERSITY_BONUS

    return score


def _find_candidate(arena: list[Profile], available: list[bool], table: Table, target_size: int,
                    matrix: np.ndarray, rules: GroupingRules,
                    strict: bool) -> Optional[tuple[int, list[tuple[str, int]]]]:
    """
    Find the best available person for a table.

    strict=True  -> only people who break no rule
    strict=False -> people whose violations add up to at most
                    rules.relaxed_violation_limit; fewest violations first,
                    then highest score

    Ties go to whoever comes first in the input list.
    Returns (seat, violations) or None.
    """
    best = None
    best_key = None

    for seat, free in enumerate(available):
        if not free:
            continue

        violations = _constraint_violations(arena[seat], table, target_size, rules)
        magnitude = sum(m for _, m in violations)

        if strict and violations:
            continue
        if not strict and magnitude > rules.relaxed_violation_limit:
            continue

        key = (-magnitude, _candidate_score(seat, table, arena, matrix))
        if best_key is None or key > best_key:
            best = (seat, violations)
            best_key = key

    return best


def _first_available(arena: list[Profile], available: list[bool],
                     female_only: bool = False) -> Optional[int]:
    for seat, free in enumerate(available):
        if free and (not female_only or arena[seat].is_female):
            return seat
    return None


def build_table(arena: list[Profile], available: list[bool], target_size: int,
                matrix: np.ndarray, ledger: PlacementLedger,
                rules: GroupingRules = DEFAULT_RULES, group_number: int = 1) -> BuildOutcome:
    """
    Greedily fill one table up to `target_size`.

    Args:
        arena: every profile of the run, indexed by seat
        available: available[seat] is True while that person has no table
                   (updated in place as people are seated)
        target_size: how many people this table should get
        matrix: pairwise compatibility matrix for the arena
        ledger: where compromises are recorded
        rules: table rules
        group_number: 1-based number of the table being built

    Returns:
        BuildOutcome with the table and how building ended
    """
    table = Table(id=f'table-{group_number - 1}', group_number=group_number)

    # ----------------------------------------------------------------
    # SEED: start with a woman if there is one
    # ----------------------------------------------------------------
    start = _first_available(arena, available, female_only=True)
    if start is None:
        start = _first_available(arena, available)
    if start is None:
        return BuildOutcome(table, BuildStatus.EXHAUSTED)

    table.add(start, arena[start])
    available[start] = False

    # ----------------------------------------------------------------
    # GROW: strict -> relaxed -> forced, one seat per iteration
    # ----------------------------------------------------------------
    flagged = set()
    iterations = 0

    while table.size < target_size and iterations < rules.max_iterations:
        iterations += 1

        pick = _find_candidate(arena, available, table, target_size, matrix, rules, strict=True)
        if pick is not None:
            seat = pick[0]
        else:
            pick = _find_candidate(arena, available, table, target_size, matrix, rules, strict=False)
            if pick is not None:
                seat, violations = pick
                details = ', '.join(description for description, _ in violations)
                ledger.record(seat, f'{REASON_RELAXED} ({details})' if details else REASON_RELAXED)
            else:
                seat = _first_available(arena, available)
                if seat is None:
                    break
                ledger.record(seat, REASON_FORCED)
            flagged.add(seat)

        table.add(seat, arena[seat])
        available[seat] = False

    if table.size >= target_size:
        status = BuildStatus.COMPLETE
    elif iterations >= rules.max_iterations:
        status = BuildStatus.CAPPED
    else:
        status = BuildStatus.EXHAUSTED

    # ----------------------------------------------------------------
    # BACKSTOP: a broken table where nobody was flagged yet
    # ----------------------------------------------------------------
    problems = table_problems(table.members, rules)
    if problems and not flagged:
        reason = f'{REASON_REVIEW}: {", ".join(problems)}'
        for seat in table.seats:
            ledger.record(seat, reason)

    return BuildOutcome(table, status)


# ============================================================================
# STEP 3: SEAT THE LEFTOVERS (NO ONE LEFT BEHIND)
# ============================================================================
#
# Anyone the planned tables didn't absorb is placed here, trying in order:
#   a. a table with a free seat where the rules still hold
#   b. a table with a free seat, rules or not         (flagged)
#   c. a table that is already over capacity         (flagged)
#   d. a brand new table of their own                (flagged)
# Within each option the table with the best average compatibility wins.
#
# ============================================================================

def _average_with(seat: int, table: Table, matrix: np.ndarray) -> float:
    if not table.seats:
        return 0.0
    return float(np.mean([matrix[seat][s] for s in table.seats]))


def _best_table(seat: int, tables: list[Table], matrix: np.ndarray) -> Table:
    best = tables[0]
    best_score = _average_with(seat, best, matrix)
    for table in tables[1:]:
        score = _average_with(seat, table, matrix)
        if score > best_score:
            best, best_score = table, score
    return best


def place_leftovers(leftover_seats: list[int], tables: list[Table], arena: list[Profile],
                    available: list[bool], matrix: np.ndarray, ledger: PlacementLedger,
                    rules: GroupingRules = DEFAULT_RULES, verbose: bool = False) -> list[Table]:
    """
    Seat everyone in `leftover_seats` who still has no table.

    Tables are modified in place; a new table is appended to `tables` only
    when there's nowhere else to go. Returns `tables`.
    """
    for seat in leftover_seats:
        if not available[seat]:
            continue
        profile = arena[seat]

        open_tables = [t for t in tables if t.size < rules.max_size]
        fitting = [t for t in open_tables if is_valid_table(t.members + [profile], rules)]
        overflow = [t for t in tables if t.size > rules.max_size]

        if fitting:
            target, reason = _best_table(seat, fitting, matrix), None
        elif open_tables:
            target, reason = _best_table(seat, open_tables, matrix), REASON_FORCED_SEAT
        elif overflow:
            target, reason = _best_table(seat, overflow, matrix), REASON_OVER_CAPACITY
        else:
            target = Table(id=f'table-{len(tables)}', group_number=len(tables) + 1)
            tables.append(target)
            reason = REASON_NO_TABLES

        target.add(seat, profile)
        available[seat] = False
        if reason:
            ledger.record(seat, reason)
        refresh_attention(target, ledger)

        if verbose:
            print(f"    -> {profile.name} joined Table {target.group_number}"
                  + (f" ({reason})" if reason else ""))

    return tables


# ============================================================================
# STEP 4: EXPLAIN EACH TABLE
# ============================================================================

def _pair_scores(table: Table, matrix: Optional[np.ndarray],
                 scoring: ScoringConfig) -> list[float]:
    if matrix is not None:
        return [float(matrix[i][j]) for i, j in combinations(table.seats, 2)]
    return [calculate_compatibility(a, b, scoring) for a, b in combinations(table.members, 2)]


def _attention_lines(table: Table, ledger: PlacementLedger) -> list[str]:
    names = [p.name for seat, p in zip(table.seats, table.members) if ledger.highlighted(seat)]
    if not names:
        return []
    return [ATTENTION_PREFIX + ', '.join(names), MANUAL_REVIEW_NOTICE]


def refresh_attention(table: Table, ledger: PlacementLedger):
    """
    Bring the table's "Needs attention" line up to date.

    The existing line is replaced where it stands; if there was none the
    pair of lines is appended; if nobody is flagged any more both go.
    """
    lines = _attention_lines(table, ledger)
    reasons = [r for r in table.matching_reasons if r != MANUAL_REVIEW_NOTICE]

    position = next((i for i, r in enumerate(reasons) if r.startswith(ATTENTION_PREFIX)), None)
    if position is not None:
        reasons[position:position + 1] = lines
    else:
        reasons.extend(lines)

    table.matching_reasons = reasons


def annotate_table(table: Table, ledger: PlacementLedger, matrix: Optional[np.ndarray] = None,
                   scoring: ScoringConfig = DEFAULT_SCORING) -> Table:
    """
    Recompute a table's score and rebuild its "why this table works" list.

    Safe to call any number of times - the result only depends on the
    current members and the ledger.
    """
    members = table.members
    size = len(members)

    scores = _pair_scores(table, matrix, scoring)
    table.compatibility_score = round(sum(scores) / len(scores), 2) if scores else 0.0

    reasons = []

    females = table.female_count
    if females in (2, 3):
        reasons.append(f'{females} females, {size - females} males - balanced gender mix')

    extroverts = sum(1 for m in members if m.is_extrovert)
    if extroverts >= size - 2:
        reasons.append(f'{extroverts} extroverts - lively energy')

    interest_counts = Counter()
    for a, b in combinations(members, 2):
        interest_counts.update(shared_interests(a, b))
    # most_common keeps first-seen order among equal counts
    top_interests = [interest for interest, _ in interest_counts.most_common(2)]
    if top_interests:
        reasons.append(f'Shared interests: {", ".join(top_interests)}')

    universities = {m.university for m in members}
    reasons.append(f'From {len(universities)} different colleges')

    vibes = Counter(m.college_vibe for m in members if m.college_vibe)
    if vibes:
        vibe, count = vibes.most_common(1)[0]
        if count >= ceil(size / 2):
            reasons.append(f'Shared college vibe: "{vibe}"')

    reasons.extend(_attention_lines(table, ledger))
    table.matching_reasons = reasons
    return table


# ============================================================================
# STEP 5: RUN EVERYTHING
# ============================================================================

def create_dinner_tables(profiles: list[Profile], rules: Optional[GroupingRules] = None,
                         scoring: Optional[ScoringConfig] = None,
                         verbose: bool = False) -> GroupingResult:
    """
    Seat every profile at a dinner table.

    Never raises for rule trouble and never drops anyone: compromises end up
    in result.ledger and on the table's reason list instead.
    """
    rules = rules or DEFAULT_RULES
    scoring = scoring or DEFAULT_SCORING

    arena = list(profiles)
    available = [True] * len(arena)
    ledger = PlacementLedger()
    matrix = compatibility_matrix(arena, scoring)

    sizes = plan_group_sizes(len(arena), rules.min_size, rules.max_size)
    if verbose:
        print(f"\nPlanned {len(sizes)} tables: {', '.join(str(s) for s in sizes) or 'none'}")

    tables = []
    statuses = []
    for target_size in sizes:
        outcome = build_table(arena, available, target_size, matrix, ledger, rules,
                              group_number=len(tables) + 1)
        statuses.append(outcome.status)
        if not outcome.table.members:
            break
        tables.append(outcome.table)

        if verbose:
            table = outcome.table
            print(f"  Table {table.group_number}: {table.size}/{target_size} seated "
                  f"({table.female_count} female, {table.introvert_count} introvert) [{outcome.status.value}]")

    leftovers = [seat for seat, free in enumerate(available) if free]
    if leftovers:
        if verbose:
            print(f"\n  Seating {len(leftovers)} leftover attendee(s)...")
        place_leftovers(leftovers, tables, arena, available, matrix, ledger, rules, verbose)

    for table in tables:
        annotate_table(table, ledger, matrix, scoring)

    if verbose:
        print(f"\nDone: {len(tables)} tables, {len(ledger)} attendee(s) need attention")

    return GroupingResult(
        groups=tables,
        total_profiles=len(arena),
        groups_formed=len(tables),
        ungrouped_profiles=[arena[seat] for seat, free in enumerate(available) if free],
        ledger=ledger,
        build_statuses=statuses,
    )


def summarize_result(result: GroupingResult) -> dict:
    """Headline numbers for a results page or console summary."""
    groups = result.groups
    total_members = sum(t.size for t in groups)

    def average(values):
        values = list(values)
        return round(sum(values) / len(values), 2) if values else 0

    return {
        "groups_formed": result.groups_formed,
        "total_profiles": result.total_profiles,
        "avg_compatibility": average(t.compatibility_score for t in groups),
        "total_females": sum(t.female_count for t in groups),
        "total_members": total_members,
        "avg_introverts": average(t.introvert_count for t in groups),
        "avg_group_size": round(total_members / len(groups), 1) if groups else 0,
        "total_highlighted": result.highlighted_count,
    }
