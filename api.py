"""
FastAPI server for running the dinner table matcher via web interface.
Run with: uvicorn api:app --reload --port 8000
"""

import os
from typing import Optional

from fastapi import FastAPI, UploadFile, File, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from export import build_export_data, export_filename, to_csv_text, to_json_text
from grouping import GroupingRules, create_dinner_tables, summarize_result
from matcher import generate_coverage_report, review_tables_ai
from profiles import ProfileLoadError, generate_sample_profiles, parse_csv_text, parse_json_text, run_preflight_check

app = FastAPI(title="Dinner Table Matcher API")

# Allow CORS for frontend (permissive for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


def _empty_session() -> dict:
    return {
        "status": "idle",
        "message": None,
        "source": None,
        "profiles": None,
        "result": None,
        "coverage": None,
        "review": None,
    }


# Store for current matching session
current_session = _empty_session()


def _require_result():
    if current_session.get("result") is None:
        raise HTTPException(status_code=404, detail="No results available. Run matching first.")
    return current_session["result"]


def _rules() -> GroupingRules:
    """Table rules from TABLE_MIN_SIZE / TABLE_MAX_SIZE; 400 when they make no sense."""
    try:
        return GroupingRules.from_env()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid table size settings: {e}")


@app.get("/")
def root():
    return {"status": "ok", "message": "Dinner Table Matcher API"}


@app.get("/status")
def get_status():
    """Get current matching status"""
    profiles = current_session.get("profiles")
    return {
        "status": current_session["status"],
        "message": current_session["message"],
        "source": current_session["source"],
        "profile_count": len(profiles) if profiles is not None else 0,
        "has_results": current_session.get("result") is not None,
    }


@app.post("/upload")
async def upload_profiles(file: UploadFile = File(...)):
    """Upload a CSV or JSON sign-up list and parse profiles"""
    filename = file.filename or ""
    extension = os.path.splitext(filename)[1].lower()
    if extension not in (".csv", ".json"):
        raise HTTPException(status_code=400, detail="Please upload a CSV or JSON file")

    try:
        content = (await file.read()).decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File must be UTF-8 encoded")

    try:
        if extension == ".csv":
            profiles = parse_csv_text(content)
        else:
            profiles = parse_json_text(content)
    except ProfileLoadError as e:
        current_session["status"] = "error"
        current_session["message"] = str(e)
        raise HTTPException(status_code=400, detail=str(e))

    preflight = run_preflight_check(profiles, table_size=_rules().min_size)

    current_session.update(_empty_session())
    current_session["status"] = "parsed"
    current_session["message"] = f"Loaded {len(profiles)} profiles"
    current_session["source"] = filename
    current_session["profiles"] = profiles

    return {
        "success": True,
        "total_profiles": len(profiles),
        "preflight": preflight,
    }


@app.post("/sample")
def load_sample(count: int = 50, seed: Optional[int] = None):
    """Generate sample profiles instead of uploading a file"""
    if count < 1:
        raise HTTPException(status_code=400, detail="count must be at least 1")

    profiles = generate_sample_profiles(count, seed=seed)

    current_session.update(_empty_session())
    current_session["status"] = "parsed"
    current_session["message"] = f"Generated {len(profiles)} sample profiles"
    current_session["source"] = "sample"
    current_session["profiles"] = profiles

    return {"success": True, "total_profiles": len(profiles)}


@app.post("/run")
def run_matching(ai_review: bool = False):
    """Run the table engine on the loaded profiles"""
    profiles = current_session.get("profiles")
    if not profiles:
        raise HTTPException(status_code=400, detail="No profiles loaded. Upload a file first.")

    rules = _rules()
    preflight = run_preflight_check(profiles, table_size=rules.min_size)
    if preflight["errors"]:
        current_session["status"] = "error"
        current_session["message"] = "Pre-flight check failed"
        return {
            "success": False,
            "errors": preflight["errors"],
        }

    current_session["status"] = "running"
    result = create_dinner_tables(profiles, rules=rules)
    coverage = generate_coverage_report(result, profiles)

    current_session["result"] = result
    current_session["coverage"] = coverage
    current_session["review"] = review_tables_ai(result) if ai_review else None
    current_session["status"] = "complete"
    current_session["message"] = f"Created {result.groups_formed} tables"

    return {
        "success": True,
        "summary": summarize_result(result),
        "warnings": preflight["warnings"],
        "needs_attention": len(coverage["needs_attention"]),
    }


@app.get("/results")
def get_results():
    """Get the full seating plan"""
    result = _require_result()
    return {
        "results": build_export_data(result),
        "summary": summarize_result(result),
        "coverage": current_session["coverage"],
        "review": current_session["review"],
    }


@app.get("/export/json")
def download_json():
    """Download the seating plan as JSON"""
    result = _require_result()
    return Response(
        content=to_json_text(result),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{export_filename("json")}"'},
    )


@app.get("/export/csv")
def download_csv():
    """Download the seating plan as CSV"""
    result = _require_result()
    return Response(
        content=to_csv_text(result),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename("csv")}"'},
    )


@app.post("/reset")
def reset_session():
    """Reset the current session"""
    current_session.update(_empty_session())
    return {"success": True, "message": "Session reset"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
