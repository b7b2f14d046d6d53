"""
================================================================================
DINNER TABLE MATCHER - Seating plan for student dinner events
================================================================================

PURPOSE:
    This script takes the sign-up list for a dinner event and seats everyone
    at tables of 6-8 people. Instead of random seating, it uses each
    attendee's quiz answers to put people together who will actually enjoy
    the evening.

HOW IT WORKS:
    1. Load the sign-up list (CSV export or JSON)
    2. Pre-flight check: enough people? enough women for 2 per table?
    3. Seat everyone (see grouping.py for the algorithm):
       - plan table sizes
       - fill each table with the most compatible people
       - bend the rules only when there's no other way, and flag it
    4. Save the plan as JSON + CSV
    5. Coverage check: is everyone seated exactly once?
    6. Optional: ask AI to review the flagged tables

CONSTRAINTS:
    - 2-3 women per table
    - At most 2 introverts per table
    - Everyone gets a seat, no exceptions

USAGE:
    python matcher.py "path/to/signups.csv"
    python matcher.py "path/to/signups.json" --ai-review
    python matcher.py --sample 50 --seed 7

OUTPUT:
    dinner-groups-<date>.json and dinner-groups-<date>.csv next to the
    input file (or in --output).

================================================================================
"""

# ============================================================================
# IMPORTS
# ============================================================================

import argparse     # For the command line flags
import json         # For saving the coverage report
import os           # For file path handling
import sys
from collections import Counter
from typing import Optional

from openai import OpenAI           # For the optional AI review

from export import export_to_csv, export_to_json
from grouping import GroupingResult, GroupingRules, create_dinner_tables, summarize_result
from profiles import Profile, ProfileLoadError, generate_sample_profiles, load_profiles, run_preflight_check


# ============================================================================
# CONFIGURATION - Load API credentials
# ============================================================================
#
# The AI review needs an OpenAI API key, stored in a .env file in the
# project root (never commit API keys to git!):
#
#   OPENAI_API_KEY=sk-proj-xxxxx
#   OPENAI_MODEL=gpt-4o-mini        (optional)
#   TABLE_MIN_SIZE=6                (optional)
#   TABLE_MAX_SIZE=8                (optional)
#
# Everything except the AI review works without it.
#
# ============================================================================

DEFAULT_MODEL = 'gpt-4o-mini'


def load_env():
    """
    Load environment variables from the .env file.
    Values already set in the environment win over the file.
    """
    possible_paths = [
        os.path.join(os.path.dirname(os.path.abspath(__file__)), '.env'),
        os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', '.env'),
    ]
    for env_path in possible_paths:
        if os.path.exists(env_path):
            with open(env_path) as f:
                for line in f:
                    if '=' in line and not line.startswith('#'):
                        key, value = line.strip().split('=', 1)
                        os.environ.setdefault(key, value)
            break


load_env()

_client = None


def get_client() -> Optional[OpenAI]:
    """Create the OpenAI client on first use. None when no key is configured."""
    global _client
    if _client is None and os.environ.get('OPENAI_API_KEY'):
        _client = OpenAI(api_key=os.environ['OPENAI_API_KEY'])
    return _client


# ============================================================================
# AI REVIEW - A second opinion on the flagged tables
# ============================================================================
#
# The engine already tells us WHICH tables needed compromises. Here we hand
# those tables to the AI and ask what an organizer should do about them
# (e.g. "swap Priya from Table 2 with Rahul from Table 4").
#
# If the AI is unavailable the run still finishes - the review just says so.
#
# ============================================================================

def review_tables_ai(result: GroupingResult) -> dict:
    """
    Use AI to review the seating plan and suggest manual fixes.

    Returns a dict with:
    - issues: list of problems found
    - suggestions: list of concrete fixes
    - overall: one-line assessment
    - flagged_tables: numbers of tables that need manual review
    - low_score_tables: numbers of tables scoring under 60
    """
    flagged = [t for t in result.groups if any(h for _, h, _ in result.member_rows(t))]
    low_score = [t for t in result.groups if t.compatibility_score < 60]

    review = {
        "issues": [],
        "suggestions": [],
        "overall": "",
        "flagged_tables": [t.group_number for t in flagged],
        "low_score_tables": [t.group_number for t in low_score],
        "raw_response": "",
    }

    client = get_client()
    if client is None:
        review["overall"] = "AI review skipped: OPENAI_API_KEY not set"
        return review

    print(f"\n  Reviewing tables with AI...")

    table_lines = []
    for table in flagged + [t for t in low_score if t not in flagged]:
        people = []
        for profile, highlighted, reason in result.member_rows(table):
            tag = f" [FLAGGED: {reason}]" if highlighted else ""
            people.append(f"{profile.name} ({profile.gender}, introvert {profile.introvert_score}, "
                          f"{profile.university}){tag}")
        table_lines.append(
            f"Table {table.group_number} (score {table.compatibility_score}, "
            f"{table.female_count} female, {table.introvert_count} introvert): " + "; ".join(people)
        )

    prompt = f"""You are reviewing the seating plan for a student dinner event.
Rules: 6-8 people per table, 2-3 women per table, at most 2 introverts per table.

TOTAL TABLES: {result.groups_formed}
TABLES NEEDING REVIEW: {len(table_lines)}

{chr(10).join(table_lines[:10]) if table_lines else "No tables need review."}

Please provide:
1. ISSUES: List 0-5 specific problems (if any)
2. SUGGESTIONS: List 0-3 concrete swaps or moves an organizer could make
3. OVERALL: One sentence assessment (Good/Acceptable/Needs Improvement)

Be concise. Format as:

ISSUES:
- issue 1

SUGGESTIONS:
- suggestion 1

OVERALL: Your assessment here"""

    try:
        response = client.chat.completions.create(
            model=os.environ.get('OPENAI_MODEL', DEFAULT_MODEL),
            max_tokens=500,
            messages=[{"role": "user", "content": prompt}]
        )
        ai_response = response.choices[0].message.content.strip()
    except Exception as e:
        print(f"  AI review failed: {e}")
        review["overall"] = f"AI review error: {e}"
        return review

    current_section = None
    for line in ai_response.split('\n'):
        line = line.strip()
        if line.startswith("ISSUES:"):
            current_section = "issues"
        elif line.startswith("SUGGESTIONS:"):
            current_section = "suggestions"
        elif line.startswith("OVERALL:"):
            current_section = "overall"
            review["overall"] = line.replace("OVERALL:", "").strip()
        elif line.startswith("- ") or line.startswith("* "):
            item = line[2:].strip()
            if current_section in ("issues", "suggestions") and item:
                review[current_section].append(item)
        elif current_section == "overall" and line and not review["overall"]:
            review["overall"] = line

    review["overall"] = review["overall"] or "Assessment not available"
    review["raw_response"] = ai_response
    return review


def print_ai_review(review: dict):
    """Print the AI review results."""
    print(f"\n{'='*60}")
    print("AI REVIEW")
    print(f"{'='*60}")

    print(f"\n{review['overall']}")

    if review["issues"]:
        print(f"\n{'-'*60}")
        print("ISSUES:")
        print(f"{'-'*60}")
        for issue in review["issues"]:
            print(f"  [!] {issue}")

    if review["suggestions"]:
        print(f"\n{'-'*60}")
        print("SUGGESTED FIXES:")
        print(f"{'-'*60}")
        for suggestion in review["suggestions"]:
            print(f"  -> {suggestion}")

    print(f"\n  Flagged tables: {review['flagged_tables'] or 'none'}")
    print(f"  Low score tables (<60): {review['low_score_tables'] or 'none'}")
    print(f"\n{'='*60}\n")


# ============================================================================
# COVERAGE REPORT - Verify everyone got a seat
# ============================================================================
#
# The engine promises that nobody is dropped. This is where we check it:
# - Is every attendee at exactly one table?
# - Does each table's female/introvert count match its members?
# - Who needs manual attention?
#
# ============================================================================

def generate_coverage_report(result: GroupingResult, profiles: list[Profile]) -> dict:
    """
    Check the seating plan against the attendee list.

    Returns a report dict with:
    - seated / missing / duplicated counts
    - needs_attention: name, table and reason for every flagged attendee
    - count_mismatches: tables whose stored counts disagree with their members
    - quality_stats: score distribution across tables
    """
    seat_counts = Counter(seat for table in result.groups for seat in table.seats)
    missing = [profiles[i].name for i in range(len(profiles)) if seat_counts[i] == 0]
    duplicated = [profiles[i].name for i, n in seat_counts.items() if n > 1]

    needs_attention = []
    count_mismatches = []
    for table in result.groups:
        for profile, highlighted, reason in result.member_rows(table):
            if highlighted:
                needs_attention.append({
                    "name": profile.name,
                    "table": table.group_number,
                    "reason": reason,
                })
        females = sum(1 for m in table.members if m.gender == 'Female')
        introverts = sum(1 for m in table.members
                         if m.introvert_score is not None and m.introvert_score >= 7)
        if females != table.female_count or introverts != table.introvert_count:
            count_mismatches.append(table.group_number)

    scores = [t.compatibility_score for t in result.groups]
    quality_stats = {
        "avg_score": round(sum(scores) / len(scores), 2) if scores else 0,
        "min_score": min(scores) if scores else 0,
        "max_score": max(scores) if scores else 0,
        "low_quality_tables": len([s for s in scores if s < 60]),
    }

    return {
        "total_profiles": len(profiles),
        "seated": sum(1 for i in range(len(profiles)) if seat_counts[i] > 0),
        "missing": missing,
        "duplicated": duplicated,
        "needs_attention": needs_attention,
        "count_mismatches": count_mismatches,
        "quality_stats": quality_stats,
    }


def print_coverage_report(report: dict):
    """Print a human-readable coverage report."""
    print(f"\n{'='*60}")
    print(f"COVERAGE REPORT")
    print(f"{'='*60}")

    print(f"\nAttendees: {report['total_profiles']}")
    print(f"Seated: {report['seated']}")

    if report["missing"]:
        print(f"  [X] Missing: {', '.join(report['missing'])}")
    if report["duplicated"]:
        print(f"  [X] Seated twice: {', '.join(report['duplicated'])}")
    if report["count_mismatches"]:
        print(f"  [X] Count mismatch at tables: {report['count_mismatches']}")

    if report["needs_attention"]:
        print(f"\n{'-'*60}")
        print("NEEDS MANUAL ATTENTION:")
        print(f"{'-'*60}")
        for person in report["needs_attention"]:
            print(f"  Table {person['table']}: {person['name']} - {person['reason']}")
    else:
        print(f"\n  Every table met the rules without compromises!")

    stats = report["quality_stats"]
    print(f"\n{'-'*60}")
    print("TABLE QUALITY:")
    print(f"{'-'*60}")
    print(f"  Average score: {stats['avg_score']:.1f}/100")
    print(f"  Range: {stats['min_score']} - {stats['max_score']}")
    print(f"  Low quality tables (<60): {stats['low_quality_tables']}")

    print(f"\n{'='*60}")
    if report["missing"] or report["duplicated"]:
        print("STATUS: Seating plan is INCOMPLETE")
    elif report["needs_attention"]:
        print(f"STATUS: Everyone seated, {len(report['needs_attention'])} attendee(s) need attention")
    else:
        print("STATUS: Everyone seated!")
    print(f"{'='*60}\n")


# ============================================================================
# CONSOLE OUTPUT
# ============================================================================

def print_preflight_report(report: dict) -> bool:
    """
    Print the pre-flight check results.
    Returns True if seating can proceed, False if blocked.
    """
    print(f"\n{'='*60}")
    print("PRE-FLIGHT CHECK")
    print(f"{'='*60}")

    stats = report["stats"]
    print(f"\nProfiles: {stats['total_profiles']}")
    print(f"Women / men: {stats['females']} / {stats['males']}")
    print(f"Introverts: {stats['introverts']}")
    print(f"Expected tables: about {stats['expected_tables']}")

    if report["errors"]:
        print(f"\n{'-'*60}")
        print("ERRORS (blocking):")
        print(f"{'-'*60}")
        for error in report["errors"]:
            print(f"  [X] {error}")

    if report["warnings"]:
        print(f"\n{'-'*60}")
        print("WARNINGS:")
        print(f"{'-'*60}")
        for warning in report["warnings"]:
            print(f"  [!] {warning}")

    print(f"\n{'='*60}")
    if report["can_proceed"]:
        print("STATUS: Ready to proceed" + (" (with warnings)" if report["warnings"] else ""))
    else:
        print("STATUS: Cannot proceed - fix errors above")
    print(f"{'='*60}\n")

    return report["can_proceed"]


def print_tables(result: GroupingResult):
    """Show every table in a readable format."""
    for table in result.groups:
        print(f"\nTable {table.group_number} - {table.size} people, score {table.compatibility_score}/100")
        for profile, highlighted, reason in result.member_rows(table):
            marker = " [!]" if highlighted else ""
            print(f"  - {profile.name} ({profile.gender}, {profile.university}){marker}")
            if highlighted:
                print(f"      {reason}")
        for line in table.matching_reasons:
            print(f"  * {line}")


def print_summary(result: GroupingResult):
    stats = summarize_result(result)
    print(f"\n{'='*60}")
    print(f"COMPLETE!")
    print(f"{'='*60}")
    print(f"Tables formed: {stats['groups_formed']} from {stats['total_profiles']} profiles")
    print(f"Average compatibility: {stats['avg_compatibility']}%")
    print(f"Female representation: {stats['total_females']}/{stats['total_members']}")
    print(f"Average introverts per table: {stats['avg_introverts']}")
    print(f"Average table size: {stats['avg_group_size']}")
    print(f"Needing manual attention: {stats['total_highlighted']}")


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Seat dinner attendees at balanced, compatible tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python matcher.py signups.csv
  python matcher.py signups.json --output out/ --ai-review
  python matcher.py --sample 50 --seed 7
        """
    )
    parser.add_argument('profiles_file', nargs='?',
                        help='CSV or JSON file with the sign-ups')
    parser.add_argument('--sample', type=int, metavar='N',
                        help='Use N generated sample profiles instead of a file')
    parser.add_argument('--seed', type=int,
                        help='Random seed for --sample')
    parser.add_argument('--output', '-o', metavar='DIR',
                        help='Where to write the exports (default: next to the input)')
    parser.add_argument('--min-size', type=int,
                        help='Smallest table size (default: TABLE_MIN_SIZE or 6)')
    parser.add_argument('--max-size', type=int,
                        help='Largest table size (default: TABLE_MAX_SIZE or 8)')
    parser.add_argument('--ai-review', action='store_true',
                        help='Ask OpenAI to review the flagged tables')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Skip the per-table listing')
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.profiles_file and not args.sample:
        parser.print_usage()
        print("error: give a profiles file or --sample N")
        return 1

    # ----------------------------------------------------------------
    # STEP 1: Load profiles
    # ----------------------------------------------------------------
    print(f"\n{'='*60}")
    print(f"STEP 1: LOADING PROFILES")
    print(f"{'='*60}")

    if args.sample:
        profiles = generate_sample_profiles(args.sample, seed=args.seed)
        print(f"\nGenerated {len(profiles)} sample profiles")
        output_dir = args.output or '.'
    else:
        print(f"\nFile: {args.profiles_file}")
        try:
            profiles = load_profiles(args.profiles_file)
        except (ProfileLoadError, OSError) as e:
            print(f"Error reading file '{args.profiles_file}': {e}")
            return 1
        print(f"Loaded {len(profiles)} profiles")
        output_dir = args.output or os.path.dirname(args.profiles_file) or '.'

    # ----------------------------------------------------------------
    # STEP 2: Pre-flight check
    # ----------------------------------------------------------------
    print(f"\n{'='*60}")
    print(f"STEP 2: PRE-FLIGHT VALIDATION")
    print(f"{'='*60}")

    try:
        env_rules = GroupingRules.from_env()
        rules = GroupingRules(
            min_size=args.min_size if args.min_size is not None else env_rules.min_size,
            max_size=args.max_size if args.max_size is not None else env_rules.max_size,
        )
    except ValueError as e:
        print(f"Invalid table sizes: {e}")
        return 1

    preflight = run_preflight_check(profiles, table_size=rules.min_size)
    if not print_preflight_report(preflight):
        print("Cannot create tables. Please fix the errors above.")
        return 1

    # ----------------------------------------------------------------
    # STEP 3: Seat everyone
    # ----------------------------------------------------------------
    print(f"\n{'='*60}")
    print(f"STEP 3: FORMING TABLES")
    print(f"{'='*60}")

    result = create_dinner_tables(profiles, rules=rules, verbose=True)
    if not args.quiet:
        print_tables(result)

    # ----------------------------------------------------------------
    # STEP 4: Export JSON + CSV
    # ----------------------------------------------------------------
    print(f"\n{'='*60}")
    print(f"STEP 4: SAVING RESULTS")
    print(f"{'='*60}\n")

    os.makedirs(output_dir, exist_ok=True)
    export_to_json(result, output_dir)
    export_to_csv(result, output_dir)

    # ----------------------------------------------------------------
    # STEP 5: Coverage report
    # ----------------------------------------------------------------
    print(f"\n{'='*60}")
    print(f"STEP 5: COVERAGE VALIDATION")
    print(f"{'='*60}")

    coverage = generate_coverage_report(result, profiles)
    print_coverage_report(coverage)

    coverage_path = os.path.join(output_dir, 'coverage.json')
    with open(coverage_path, 'w') as f:
        json.dump(coverage, f, indent=2)
    print(f"  -> Saved: {coverage_path}")

    # ----------------------------------------------------------------
    # STEP 6: AI review (optional)
    # ----------------------------------------------------------------
    if args.ai_review:
        print(f"\n{'='*60}")
        print(f"STEP 6: AI REVIEW")
        print(f"{'='*60}")
        review = review_tables_ai(result)
        print_ai_review(review)

    print_summary(result)
    return 0


# ============================================================================
# RUN THE SCRIPT
# ============================================================================

if __name__ == "__main__":
    sys.exit(main())
