import os
import pytest
from datetime import date

import pandas as pd

from defaults import SAMPLE_PROJECT_ID
from reporting import AnalysisReporter, export_analysis
from scheduling_engine import AnalysisReport

SHEETS = ["Summary", "Validation", "Conflicts", "Inspections", "Optimization", "Handoffs"]


@pytest.fixture
def sample_report(schedule_engine, repository, sample_tasks):
    repository.save_tasks(SAMPLE_PROJECT_ID, sample_tasks)
    return schedule_engine.run_full_analysis(SAMPLE_PROJECT_ID, as_of=date(2026, 5, 1))


class TestAnalysisReporter:
    def test_export_workbook(self, sample_report, tmp_path):
        path = export_analysis(sample_report, output_dir=str(tmp_path))

        assert path.endswith(".xlsx")
        sheets = pd.read_excel(path, sheet_name=None)
        assert list(sheets) == SHEETS
        assert len(sheets["Inspections"]) == 4
        assert sheets["Conflicts"].loc[0, "Severity"] == "critical"

    def test_export_csv_folder(self, sample_report, tmp_path):
        folder = AnalysisReporter(sample_report, output_dir=str(tmp_path)).export_all(fmt="csv")

        assert sorted(os.listdir(folder)) == sorted(f"{name.lower()}.csv" for name in SHEETS)
        validation = pd.read_csv(os.path.join(folder, "validation.csv"))
        assert set(validation["TaskID"]) == {f"T{n}" for n in range(1, 9)}

    def test_unknown_format(self, sample_report, tmp_path):
        with pytest.raises(ValueError):
            AnalysisReporter(sample_report, output_dir=str(tmp_path)).export_all(fmt="pdf")

    def test_summary_without_optimization(self):
        report = AnalysisReport(project_id="p1", task_count=0, rules_version="1.2.0",
                                optimization_error="Optimization unavailable: cycle")
        summary = AnalysisReporter(report).summary_frame()
        assert summary.iloc[-1].tolist() == ["Optimization", "Optimization unavailable: cycle"]
        assert AnalysisReporter(report).optimization_frame().empty
