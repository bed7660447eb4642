"""
Data validation utilities for uploaded task sheets
"""

from typing import Dict, List

import pandas as pd

from helpers import REQUIRED_TASK_COLUMNS
from models import Phase, TaskStatus


def validate_uploaded_file(file, required_columns: List[str] = None, file_type: str = "excel") -> Dict:
    """
    Validate an uploaded task sheet file
    Returns dict with validation results
    """
    required_columns = required_columns or REQUIRED_TASK_COLUMNS
    try:
        if file_type == "excel":
            df = pd.read_excel(file)
        elif file_type == "csv":
            df = pd.read_csv(file)
        else:
            return {"valid": False, "error": f"Unsupported file type: {file_type}"}
    except (OSError, ValueError) as e:
        return {"valid": False, "error": f"File validation failed: {str(e)}"}

    if df.empty:
        return {"valid": False, "error": "File is empty"}

    missing_columns = [col for col in required_columns if col not in df.columns]
    return {
        "valid": len(missing_columns) == 0,
        "missing_columns": missing_columns,
        "row_count": len(df),
        "columns_found": list(df.columns)
    }


def validate_task_frame(df: pd.DataFrame) -> Dict:
    """
    Row-level checks on a task sheet before it is parsed.

    Problems are collected, not raised: the result lists every row error so
    the whole sheet can be corrected in one pass.
    """
    errors = []
    missing_columns = [col for col in REQUIRED_TASK_COLUMNS if col not in df.columns]
    if missing_columns:
        return {"valid": False, "errors": [f"Missing columns: {missing_columns}"], "row_count": len(df)}

    valid_phases = {p.value for p in Phase}
    valid_statuses = {s.value for s in TaskStatus}

    ids = df["TaskID"].astype(str).str.strip()
    for task_id in sorted(ids[ids.duplicated()].unique()):
        errors.append(f"Duplicate TaskID '{task_id}'")

    starts = pd.to_datetime(df["StartDate"], errors="coerce")
    ends = pd.to_datetime(df["EndDate"], errors="coerce")

    for position, (_, row) in enumerate(df.iterrows()):
        label = f"Row {position + 2}"  # header is row 1
        phase = str(row["Phase"]).strip().lower()
        if phase not in valid_phases:
            errors.append(f"{label}: unknown phase '{row['Phase']}'")
        if pd.isna(starts.iloc[position]) or pd.isna(ends.iloc[position]):
            errors.append(f"{label}: missing or unreadable start/end date")
        elif ends.iloc[position] < starts.iloc[position]:
            errors.append(f"{label}: end date is before start date")
        if "Status" in df.columns and not pd.isna(row["Status"]):
            status = str(row["Status"]).strip().lower()
            if status and status not in valid_statuses:
                errors.append(f"{label}: unknown status '{row['Status']}'")

    return {"valid": not errors, "errors": errors, "row_count": len(df)}
