"""
================================================================================
EXPORT - Saving the seating plan
================================================================================

Two formats, both byte-compatible with the files organizers already use:

    - dinner-groups-<date>.json : summary + every table with its members
    - dinner-groups-<date>.csv  : one row per person, every field quoted,
                                  ready for printing place cards

================================================================================
"""

import csv
import io
import json
import os
from datetime import date
from typing import Optional

from grouping import GroupingResult


CSV_HEADER = [
    'Group Number',
    'Name',
    'Phone',
    'University',
    'Year',
    'Gender',
    'City',
    'Course',
    'Instagram',
    'Needs Manual Attention',
    'Highlight Reason',
]


def export_filename(extension: str, on: Optional[date] = None) -> str:
    return f'dinner-groups-{(on or date.today()).isoformat()}.{extension}'


def _json_number(value: float):
    # Whole scores are written without a fractional part (0, not 0.0)
    return int(value) if float(value).is_integer() else value


# ============================================================================
# STRUCTURED EXPORT (JSON)
# ============================================================================

def build_export_data(result: GroupingResult) -> dict:
    """
    Build the JSON-ready export of a seating plan.

    Highlight flags come from the run's ledger; the profiles themselves
    carry no engine state.
    """
    groups = []

    for table in result.groups:
        members = []
        highlighted_count = 0

        for profile, highlighted, reason in result.member_rows(table):
            if highlighted:
                highlighted_count += 1
            members.append({
                "name": profile.name,
                "phone": profile.phone,
                "email": f"{profile.instagram}@instagram.com",
                "university": profile.university,
                "year": profile.year,
                "gender": profile.gender,
                "city": profile.city,
                "course": profile.course,
                "instagram": profile.instagram,
                "highlighted": highlighted,
                "highlight_reason": reason,
            })

        groups.append({
            "group_number": table.group_number,
            "compatibility_score": _json_number(table.compatibility_score),
            "female_count": table.female_count,
            "introvert_count": table.introvert_count,
            "matching_reasons": list(table.matching_reasons),
            "highlighted_member_count": highlighted_count,
            "members": members,
        })

    return {
        "summary": {
            "total_profiles": result.total_profiles,
            "groups_formed": result.groups_formed,
            "ungrouped_count": len(result.ungrouped_profiles),
        },
        "groups": groups,
        "ungrouped_profiles": [
            {"name": p.name, "phone": p.phone, "university": p.university}
            for p in result.ungrouped_profiles
        ],
    }


def to_json_text(result: GroupingResult) -> str:
    return json.dumps(build_export_data(result), indent=2, ensure_ascii=False)


def export_to_json(result: GroupingResult, output_dir: str, on: Optional[date] = None) -> str:
    """Write the JSON export into output_dir and return its path."""
    path = os.path.join(output_dir, export_filename('json', on))
    with open(path, 'w', encoding='utf-8') as f:
        f.write(to_json_text(result))
    print(f"  -> Saved: {path}")
    return path


# ============================================================================
# TABULAR EXPORT (CSV)
# ============================================================================

def to_csv_text(result: GroupingResult) -> str:
    """
    One header row, then one row per member per table.

    The header is written bare; every data field is double-quoted with
    embedded quotes doubled.
    """
    buffer = io.StringIO()
    buffer.write(','.join(CSV_HEADER) + '\n')

    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\n')
    for table in result.groups:
        for profile, highlighted, reason in result.member_rows(table):
            writer.writerow([
                table.group_number,
                profile.name,
                profile.phone,
                profile.university,
                profile.year,
                profile.gender,
                profile.city,
                profile.course,
                profile.instagram or '',
                'Yes' if highlighted else 'No',
                reason or '',
            ])

    return buffer.getvalue()


def export_to_csv(result: GroupingResult, output_dir: str, on: Optional[date] = None) -> str:
    """Write the CSV export into output_dir and return its path."""
    path = os.path.join(output_dir, export_filename('csv', on))
    with open(path, 'w', newline='', encoding='utf-8') as f:
        f.write(to_csv_text(result))
    print(f"  -> Saved: {path}")
    return path
