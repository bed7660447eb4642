#!/usr/bin/env python3
"""
Run the full schedule analysis for one project from the command line.

Examples:
    python scripts/analyze_project.py demo-house
    python scripts/analyze_project.py tower-b --import tasks.xlsx --export csv
"""

import sys
import os
import argparse
from datetime import date

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from backend import ScheduleRepository, init_db
from config.settings import settings
from exceptions import AnalysisTimeoutError, FileContentError
from helpers import parse_task_excel
from reporting import export_analysis
from scheduling_engine import ScheduleIntelligenceEngine
from utils.calendar import to_date
from utils.file_utils import check_task_file
from utils.handoffs import upcoming_handoffs
from utils.logger import setup_logging
from utils.validators import validate_task_frame


def import_task_sheet(repository: ScheduleRepository, project_id: str, path: str) -> int:
    ok, message = check_task_file(path)
    if not ok:
        raise FileContentError(message)

    df = pd.read_csv(path) if path.lower().endswith(".csv") else pd.read_excel(path)
    check = validate_task_frame(df)
    for error in check["errors"]:
        print(f"  ⚠️ {error}")

    tasks = parse_task_excel(df, project_id)
    return repository.save_tasks(project_id, tasks)


def print_report(report, as_of):
    print(f"\n📊 Project {report.project_id}: {report.task_count} tasks (rules v{report.rules_version})")
    print(f"  Invalid tasks: {len(report.invalid_tasks)}")
    for result in report.invalid_tasks:
        for issue in result.issues:
            print(f"    [{issue.severity.value}] {result.task_id}: {issue.description}")

    print(f"  Open conflicts: {len(report.conflicts)}")
    for conflict in report.conflicts:
        flag = " (auto-resolvable)" if conflict.auto_resolvable else ""
        print(f"    [{conflict.severity.value}] {conflict.conflict_type.value}{flag}: {conflict.description}")

    print(f"  Inspections: {len(report.inspections)}")
    for inspection in report.inspections:
        ready = "ready" if inspection.prerequisites_met else "waiting on work"
        print(f"    {inspection.inspection_type} on {inspection.optimal_date} ({ready})")

    if report.optimization is not None:
        opt = report.optimization
        print(f"  Critical path: {opt.critical_path_days} days ({' -> '.join(opt.critical_path)})")
        print(f"  Completion: {opt.original_completion_date} -> {opt.new_completion_date} "
              f"({opt.estimated_time_saved} days saved)")
    else:
        print(f"  ❌ {report.optimization_error}")

    upcoming = upcoming_handoffs(report.handoffs, as_of, settings.UPCOMING_HANDOFF_DAYS)
    print(f"  Hand-offs in the next {settings.UPCOMING_HANDOFF_DAYS} days: {len(upcoming)}")
    for handoff in upcoming:
        print(f"    {handoff.handoff_date} {handoff.from_trade} -> {handoff.to_trade} "
              f"({handoff.from_task} -> {handoff.to_task}, {handoff.status.value})")


def main():
    parser = argparse.ArgumentParser(description="Analyze a construction project schedule")
    parser.add_argument("project_id", help="Project to analyze")
    parser.add_argument("--import", dest="import_path", help="Task sheet (.xlsx/.csv) to load first")
    parser.add_argument("--as-of", help="Evaluation date (YYYY-MM-DD), defaults to today")
    parser.add_argument("--export", choices=["xlsx", "csv", "none"], default="xlsx",
                        help="Export format for the analysis report")
    args = parser.parse_args()

    setup_logging()
    if not init_db():
        print("❌ Database is not available")
        return 1

    repository = ScheduleRepository()
    if args.import_path:
        try:
            count = import_task_sheet(repository, args.project_id, args.import_path)
        except FileContentError as e:
            print(f"❌ {e}")
            return 1
        print(f"✅ Imported {count} tasks")

    as_of = to_date(args.as_of) if args.as_of else date.today()
    engine = ScheduleIntelligenceEngine(repository)
    try:
        report = engine.run_full_analysis(args.project_id, as_of=as_of)
    except AnalysisTimeoutError as e:
        print(f"⏱️ {e}")
        return 2

    print_report(report, as_of)
    if args.export != "none":
        path = export_analysis(report, fmt=args.export)
        print(f"\n📁 Report written to {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
