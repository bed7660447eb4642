import logging
import os
from typing import Dict, Optional

import pandas as pd

from config.settings import settings
from utils.file_utils import ensure_directory, generate_filename

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


class AnalysisReporter:
    """
    Turns an AnalysisReport into DataFrames and writes them to disk.
    """

    def __init__(self, report, output_dir: Optional[str] = None):
        self.report = report
        self.output_dir = output_dir or settings.OUTPUT_DIR

    def validation_frame(self) -> pd.DataFrame:
        rows = []
        for result in self.report.validation:
            if not result.issues:
                rows.append({
                    "TaskID": result.task_id, "TaskName": result.task_name, "Valid": result.is_valid,
                    "Severity": "", "Code": "", "Issue": "", "Remediation": "",
                })
            for issue in result.issues:
                rows.append({
                    "TaskID": result.task_id,
                    "TaskName": result.task_name,
                    "Valid": result.is_valid,
                    "Severity": issue.severity.value,
                    "Code": issue.code or "",
                    "Issue": issue.description,
                    "Remediation": issue.remediation or "",
                })
        return pd.DataFrame(rows, columns=["TaskID", "TaskName", "Valid", "Severity", "Code", "Issue", "Remediation"])

    def conflicts_frame(self) -> pd.DataFrame:
        columns = ["ConflictID", "Type", "Severity", "AffectedTasks", "Description",
                   "SuggestedResolution", "AutoResolvable", "Status", "Signature"]
        rows = [{
            "ConflictID": c.conflict_id,
            "Type": c.conflict_type.value,
            "Severity": c.severity.value,
            "AffectedTasks": ", ".join(c.affected_tasks),
            "Description": c.description,
            "SuggestedResolution": c.suggested_resolution,
            "AutoResolvable": c.auto_resolvable,
            "Status": c.resolution_status.value,
            "Signature": c.signature,
        } for c in self.report.conflicts]
        df = pd.DataFrame(rows, columns=columns)
        if not df.empty:
            df = (
                df.assign(_rank=df["Severity"].map(SEVERITY_ORDER))
                .sort_values(["_rank", "Type", "Signature"])
                .drop(columns="_rank")
                .reset_index(drop=True)
            )
        return df

    def inspections_frame(self) -> pd.DataFrame:
        rows = [{
            "InspectionID": i.inspection_id,
            "Type": i.inspection_type,
            "Phase": i.required_for_phase.value,
            "Date": i.optimal_date,
            "PrerequisitesMet": i.prerequisites_met,
            "AutoScheduled": i.auto_scheduled,
            "Status": i.status.value,
        } for i in self.report.inspections]
        return pd.DataFrame(rows, columns=["InspectionID", "Type", "Phase", "Date",
                                           "PrerequisitesMet", "AutoScheduled", "Status"])

    def optimization_frame(self) -> pd.DataFrame:
        columns = ["Action", "Description", "TasksAffected", "DaysSaved"]
        optimization = self.report.optimization
        if optimization is None:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame([{
            "Action": a.type.value,
            "Description": a.description,
            "TasksAffected": ", ".join(a.tasks_affected),
            "DaysSaved": a.time_impact,
        } for a in optimization.optimizations_applied], columns=columns)

    def handoffs_frame(self) -> pd.DataFrame:
        rows = [{
            "From": h.from_task, "To": h.to_task, "FromTrade": h.from_trade,
            "ToTrade": h.to_trade, "Date": h.handoff_date, "Status": h.status.value,
        } for h in self.report.handoffs]
        return pd.DataFrame(rows, columns=["From", "To", "FromTrade", "ToTrade", "Date", "Status"])

    def summary_frame(self) -> pd.DataFrame:
        report = self.report
        optimization = report.optimization
        rows = [
            ("Project", report.project_id),
            ("Rules version", report.rules_version),
            ("Tasks", report.task_count),
            ("Invalid tasks", len(report.invalid_tasks)),
            ("Open conflicts", len(report.conflicts)),
            ("Inspections", len(report.inspections)),
        ]
        if optimization is not None:
            rows += [
                ("Critical path (days)", optimization.critical_path_days),
                ("Original completion", optimization.original_completion_date),
                ("Estimated time saved (days)", optimization.estimated_time_saved),
                ("New completion", optimization.new_completion_date),
            ]
        else:
            rows.append(("Optimization", report.optimization_error or "unavailable"))
        return pd.DataFrame(rows, columns=["Metric", "Value"])

    def frames(self) -> Dict[str, pd.DataFrame]:
        return {
            "Summary": self.summary_frame(),
            "Validation": self.validation_frame(),
            "Conflicts": self.conflicts_frame(),
            "Inspections": self.inspections_frame(),
            "Optimization": self.optimization_frame(),
            "Handoffs": self.handoffs_frame(),
        }

    def export_all(self, fmt: str = "xlsx") -> str:
        """
        Write every frame to ``output_dir``: one workbook with a sheet per
        frame for ``xlsx``, or one file per frame for ``csv``.
        Returns the workbook path or the CSV folder.
        """
        ensure_directory(self.output_dir)
        prefix = f"analysis_{self.report.project_id}"

        if fmt == "xlsx":
            path = os.path.join(self.output_dir, generate_filename(prefix, ".xlsx"))
            with pd.ExcelWriter(path, engine="openpyxl") as writer:
                for sheet, df in self.frames().items():
                    df.to_excel(writer, sheet_name=sheet, index=False)
        elif fmt == "csv":
            path = ensure_directory(os.path.join(self.output_dir, generate_filename(prefix, "")))
            for name, df in self.frames().items():
                df.to_csv(os.path.join(path, f"{name.lower()}.csv"), index=False)
        else:
            raise ValueError(f"Unsupported export format: {fmt}")

        logger.info(f"📁 Analysis for {self.report.project_id} exported to {path}")
        return path


def export_analysis(report, output_dir: Optional[str] = None, fmt: str = "xlsx") -> str:
    return AnalysisReporter(report, output_dir).export_all(fmt)
