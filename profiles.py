"""
================================================================================
PROFILES - Loading attendees for the dinner table matcher
================================================================================

Everything that happens BEFORE the table engine runs lives here:

    1. The Profile record (one attendee + their quiz answers)
    2. Reading profiles from a CSV export or a JSON list
    3. Generating sample profiles for demos
    4. The pre-flight check (is this list good enough to seat?)

The engine itself never reads files. It gets a plain list of Profile
objects and hands back a GroupingResult (see grouping.py).

================================================================================
"""

import csv
import io
import json
import os
import random
import re
from collections import Counter
from dataclasses import dataclass
from typing import Optional


# ============================================================================
# VOCABULARIES - The closed answer sets from the quiz
# ============================================================================

GENDERS = ('Male', 'Female')
PERSONALITY_TYPES = ('Smart', 'Funny')
WEEKEND_PLANS = ('Partying', 'Chill in cafe', 'Long drives', 'Bed rotting', 'Binge watching')
MUSIC_VIBES = ('Bollywood', 'Indie', 'Rap', 'Lo-fi', 'EDM', 'Depends on mood')
COLLEGE_VIBES = ('Hustle & grind', 'Chill & spontaneous', 'Balanced', 'Chaos & fun')
RELATIONSHIP_STATUSES = ('Single', 'Committed', 'Not looking for anything')

# Every attendee list must have at least this many people before we seat it
MIN_PROFILES = 20

# Quiz scores run 1-10; anything missing or unreadable becomes the midpoint
DEFAULT_SCORE = 5

INTROVERT_THRESHOLD = 7     # introvert_score >= 7 counts as an introvert
EXTROVERT_THRESHOLD = 4     # introvert_score <= 4 counts as an extrovert


class ProfileLoadError(ValueError):
    """Raised when an input file can't be turned into profiles."""


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class Profile:
    """
    One attendee of the dinner.

    The first block is contact info (shown on the table cards and in the
    exports). The second block is the quiz: a mix of 1-10 scores, yes/no
    answers and picks from the small vocabularies above.

    Profiles are frozen. The engine never writes onto them - anything it
    wants to say about a person (e.g. "needs manual attention") goes into
    the PlacementLedger instead.
    """
    id: str
    name: str
    phone: str = ''
    university: str = 'Unknown University'
    year: str = 'First'
    gender: str = 'Female'
    instagram: str = ''
    city: str = ''
    course: str = ''

    # Quiz responses (may be None when a JSON record leaves them out)
    spontaneous_preference: Optional[bool] = None
    personality_type: Optional[str] = None
    introvert_score: Optional[int] = None
    creative_score: Optional[int] = None
    college_life_score: Optional[int] = None
    social_score: Optional[int] = None
    family_importance: Optional[int] = None
    humor_importance: Optional[int] = None
    academic_importance: Optional[int] = None
    fitness_active: Optional[bool] = None
    weekend_plan: Optional[str] = None
    music_vibe: Optional[str] = None
    college_vibe: Optional[str] = None
    relationship_status: Optional[str] = None

    @property
    def is_female(self) -> bool:
        return self.gender == 'Female'

    @property
    def is_introvert(self) -> bool:
        return self.introvert_score is not None and self.introvert_score >= INTROVERT_THRESHOLD

    @property
    def is_extrovert(self) -> bool:
        return self.introvert_score is not None and self.introvert_score <= EXTROVERT_THRESHOLD


# ============================================================================
# STEP 1A: LOAD PROFILES FROM CSV
# ============================================================================
#
# The sign-up sheet is exported as a CSV with one row per attendee. Column
# names are matched case-insensitively. Missing answers get sensible
# defaults so a half-filled sheet still produces a seating plan.
#
# ============================================================================

def _parse_score(value: Optional[str]) -> int:
    """Read the leading integer of a cell ("7", "7/10", " 8 ") or fall back to 5."""
    if not value:
        return DEFAULT_SCORE
    match = re.match(r'\s*[-+]?\d+', value)
    if not match:
        return DEFAULT_SCORE
    score = int(match.group())
    # A zero is treated the same as a blank answer
    return score or DEFAULT_SCORE


def _parse_flag(value: Optional[str]) -> bool:
    return bool(value) and (value.lower() == 'yes' or value == '1')


def parse_csv_text(csv_text: str) -> list[Profile]:
    """
    Turn the text of a CSV sign-up sheet into Profile objects.

    Rows that have fewer cells than the header are skipped (usually a
    stray blank or truncated line at the end of the export).

    Raises:
        ProfileLoadError: if there is no header or no data row at all
    """
    rows = list(csv.reader(io.StringIO(csv_text.strip())))
    if len(rows) < 2:
        raise ProfileLoadError('CSV must have at least a header and one data row')

    headers = [h.strip().lower() for h in rows[0]]
    profiles = []

    for line_num, cells in enumerate(rows[1:], 1):
        if len(cells) < len(headers):
            continue

        row = {header: cells[i].strip() for i, header in enumerate(headers)}

        profiles.append(Profile(
            id=f'profile-{line_num}',
            name=row.get('name') or 'Unknown',
            phone=row.get('phone') or '',
            university=row.get('university') or 'Unknown University',
            year=row.get('year') or 'First',
            gender='Male' if (row.get('gender') or '').lower() == 'male' else 'Female',
            instagram=row.get('instagram') or '',
            city=row.get('city') or '',
            course=row.get('course') or '',

            spontaneous_preference=_parse_flag(row.get('spontaneous')),
            personality_type='Funny' if 'funny' in (row.get('personality_type') or '').lower() else 'Smart',
            introvert_score=_parse_score(row.get('introvert_score')),
            creative_score=_parse_score(row.get('creative_score')),
            college_life_score=_parse_score(row.get('college_life_score')),
            social_score=_parse_score(row.get('social_score')),
            family_importance=_parse_score(row.get('family_importance')),
            humor_importance=_parse_score(row.get('humor_importance')),
            academic_importance=_parse_score(row.get('academic_importance')),
            fitness_active=_parse_flag(row.get('fitness')),
            weekend_plan=row.get('weekend_plan') or 'Chill in cafe',
            music_vibe=row.get('music_vibe') or 'Depends on mood',
            college_vibe=row.get('college_vibe') or 'Balanced',
            relationship_status=row.get('relationship_status') or 'Single',
        ))

    return profiles


def parse_csv(filepath: str) -> list[Profile]:
    """Read a CSV sign-up sheet from disk."""
    with open(filepath, 'r', encoding='utf-8-sig') as f:
        return parse_csv_text(f.read())


# ============================================================================
# STEP 1B: LOAD PROFILES FROM JSON
# ============================================================================
#
# JSON input is a list of records that already use our field names. Contact
# fields get the same defaults as the CSV path; quiz answers are copied
# as-is (after a type check), so a record that leaves one out simply has
# None there.
#
# ============================================================================

SCORE_FIELDS = (
    'introvert_score', 'creative_score', 'college_life_score', 'social_score',
    'family_importance', 'humor_importance', 'academic_importance',
)
FLAG_FIELDS = ('spontaneous_preference', 'fitness_active')
CHOICE_FIELDS = ('personality_type', 'weekend_plan', 'music_vibe', 'college_vibe', 'relationship_status')

QUIZ_FIELDS = SCORE_FIELDS + FLAG_FIELDS + CHOICE_FIELDS


def _check_quiz_answers(index: int, item: dict):
    """Reject answers of the wrong type here, before they reach the scorer."""
    for field in SCORE_FIELDS:
        value = item.get(field)
        # bool is an int subclass, but true/false is not a 1-10 score
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ProfileLoadError(f'Profile #{index}: {field} must be a number')
    for field in FLAG_FIELDS:
        value = item.get(field)
        if value is not None and not isinstance(value, bool):
            raise ProfileLoadError(f'Profile #{index}: {field} must be true or false')
    for field in CHOICE_FIELDS:
        value = item.get(field)
        if value is not None and not isinstance(value, str):
            raise ProfileLoadError(f'Profile #{index}: {field} must be text')


def parse_json_text(json_text: str) -> list[Profile]:
    """
    Turn a JSON array of profile records into Profile objects.

    Raises:
        ProfileLoadError: on invalid JSON, when the top level isn't a list,
            or when a quiz answer has the wrong type
    """
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise ProfileLoadError(f'Invalid JSON: {e}') from e

    if not isinstance(data, list):
        raise ProfileLoadError('JSON must be an array of profiles')

    profiles = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise ProfileLoadError(f'Profile #{index} is not an object')
        _check_quiz_answers(index, item)

        profiles.append(Profile(
            id=item.get('id') or f'profile-{index}',
            name=item.get('name') or 'Unknown',
            phone=item.get('phone') or '',
            university=item.get('university') or 'Unknown University',
            year=item.get('year') or 'First',
            gender='Male' if item.get('gender') == 'Male' else 'Female',
            instagram=item.get('instagram') or '',
            city=item.get('city') or '',
            course=item.get('course') or '',
            **{field: item.get(field) for field in QUIZ_FIELDS},
        ))

    return profiles


def parse_json(filepath: str) -> list[Profile]:
    """Read a JSON profile list from disk."""
    with open(filepath, 'r', encoding='utf-8') as f:
        return parse_json_text(f.read())


def load_profiles(filepath: str) -> list[Profile]:
    """Pick the right parser from the file extension."""
    extension = os.path.splitext(filepath)[1].lower()
    if extension == '.csv':
        return parse_csv(filepath)
    if extension == '.json':
        return parse_json(filepath)
    raise ProfileLoadError('Please upload a CSV or JSON file')


# ============================================================================
# SAMPLE DATA - For demos and trying things out
# ============================================================================

SAMPLE_UNIVERSITIES = ['IIT Delhi', 'DU', 'BITS Pilani', 'IISER Pune', 'IIM Bangalore', 'JNU']
SAMPLE_CITIES = ['Delhi', 'Mumbai', 'Bangalore', 'Pune', 'Hyderabad', 'Chennai']
SAMPLE_COURSES = ['Computer Science', 'Business', 'Engineering', 'Design', 'Liberal Arts', 'Data Science']
SAMPLE_YEARS = ['First', 'Second', 'Third', 'Fourth']


def generate_sample_profiles(count: int, seed: Optional[int] = None) -> list[Profile]:
    """
    Make up `count` random attendees (roughly 60% male, like real sign-ups).

    Pass a seed to get the same list every time.
    """
    rng = random.Random(seed)
    profiles = []

    for i in range(count):
        profiles.append(Profile(
            id=f'profile-{i}',
            name=f'User {i + 1}',
            phone=f'+91{rng.randint(1000000000, 9999999999)}',
            university=rng.choice(SAMPLE_UNIVERSITIES),
            year=rng.choice(SAMPLE_YEARS),
            gender='Male' if rng.random() > 0.4 else 'Female',
            instagram=f'user{i + 1}',
            city=rng.choice(SAMPLE_CITIES),
            course=rng.choice(SAMPLE_COURSES),

            spontaneous_preference=rng.random() > 0.5,
            personality_type=rng.choice(PERSONALITY_TYPES),
            introvert_score=rng.randint(1, 10),
            creative_score=rng.randint(1, 10),
            college_life_score=rng.randint(1, 10),
            social_score=rng.randint(1, 10),
            family_importance=rng.randint(1, 10),
            humor_importance=rng.randint(1, 10),
            academic_importance=rng.randint(1, 10),
            fitness_active=rng.random() > 0.5,
            weekend_plan=rng.choice(WEEKEND_PLANS),
            music_vibe=rng.choice(MUSIC_VIBES),
            college_vibe=rng.choice(COLLEGE_VIBES),
            relationship_status=rng.choice(RELATIONSHIP_STATUSES),
        ))

    return profiles


# ============================================================================
# PRE-FLIGHT CHECK - Validate before seating starts
# ============================================================================
#
# The table engine never refuses a list - it always seats everyone, even if
# that means flagging tables for manual review. So the "can we even run?"
# decision happens here, in the caller:
# - Is the list empty or below the 20-profile minimum? (blocking)
# - Are there enough women for 2 per table? (warning)
# - Are there lots of introverts? (warning)
# - Any duplicate ids? (warning)
#
# ============================================================================

def run_preflight_check(profiles: list[Profile], min_profiles: int = MIN_PROFILES,
                        table_size: int = 6) -> dict:
    """
    Validate that seating makes sense before running the engine.

    Returns a dict with:
    - can_proceed: bool - whether the engine should run
    - errors: list of blocking errors
    - warnings: list of non-blocking warnings
    - stats: counts about the attendee pool
    """
    errors = []
    warnings = []

    females = sum(1 for p in profiles if p.is_female)
    introverts = sum(1 for p in profiles if p.is_introvert)
    expected_tables = max(1, len(profiles) // table_size) if profiles else 0

    stats = {
        "total_profiles": len(profiles),
        "females": females,
        "males": len(profiles) - females,
        "introverts": introverts,
        "expected_tables": expected_tables,
    }

    # CHECK 1: Minimum profile count
    if not profiles:
        errors.append("No valid profiles found in the file")
    elif len(profiles) < min_profiles:
        errors.append(f"Need at least {min_profiles} profiles to create dinner groups "
                      f"(got {len(profiles)})")

    # CHECK 2: Gender balance - every table wants at least 2 women
    if profiles and females < 2 * expected_tables:
        warnings.append(
            f"Only {females} female attendee(s) for about {expected_tables} tables. "
            f"Some tables will be flagged for manual review."
        )

    # CHECK 3: Introvert load - each table takes at most 2
    if profiles and introverts > 2 * expected_tables:
        warnings.append(
            f"{introverts} introverts for about {expected_tables} tables. "
            f"Some tables will go over the introvert cap."
        )

    # CHECK 4: Duplicate ids (harmless to the engine, confusing in exports)
    duplicates = [pid for pid, n in Counter(p.id for p in profiles).items() if n > 1]
    if duplicates:
        warnings.append(
            f"{len(duplicates)} duplicate profile id(s): {', '.join(duplicates[:5])}"
            + (f" (+{len(duplicates) - 5} more)" if len(duplicates) > 5 else "")
        )

    return {
        "can_proceed": not errors,
        "errors": errors,
        "warnings": warnings,
        "stats": stats,
    }
