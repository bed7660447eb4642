import os
import pytest
from datetime import date

import pandas as pd

from exceptions import DataIntegrityError, FileContentError, GraphCycleError
from helpers import (
    Topo_order_tasks, TradeIntervalIndex, build_dependency_graph,
    generate_task_template, parse_task_excel, tasks_to_frame,
)
from models import TaskStatus
from utils.validators import validate_task_frame, validate_uploaded_file


def _sheet(**overrides):
    data = {
        "TaskID": ["T1", "T2", "T3"],
        "TaskName": ["Footings", "Walls", "Wiring"],
        "Phase": ["Foundation", "framing", "rough_in"],
        "StartDate": ["2026-05-01", "2026-05-11", "2026-05-25"],
        "EndDate": ["2026-05-08", "2026-05-22", "2026-06-03"],
        "Status": ["completed", "in_progress", None],
        "Trade": ["concrete", "carpentry", "electrical"],
        "InspectionRequired": ["yes", False, None],
        "DependsOn": [None, "T1", "T1, T2"],
    }
    data.update(overrides)
    return pd.DataFrame(data)


class TestTaskSheet:
    def test_parse_task_excel(self):
        tasks = parse_task_excel(_sheet(), "p1")

        assert [t.id for t in tasks] == ["T1", "T2", "T3"]
        assert tasks[0].phase == "foundation"
        assert tasks[0].status == TaskStatus.COMPLETED
        assert tasks[0].inspection_required is True
        assert tasks[1].start_date == date(2026, 5, 11)
        assert tasks[2].status == TaskStatus.NOT_STARTED
        assert tasks[2].depends_on == ("T1", "T2")
        assert all(t.project_id == "p1" for t in tasks)

    def test_bad_rows_are_kept_for_the_validator(self):
        tasks = parse_task_excel(_sheet(Phase=["foundation", "roofing", "rough_in"],
                                        EndDate=["2026-04-01", "2026-05-22", "2026-06-03"]), "p1")
        assert len(tasks) == 3
        assert not tasks[0].has_valid_dates
        assert tasks[1].known_phase is None

    def test_strict_mode_raises(self):
        with pytest.raises(DataIntegrityError) as excinfo:
            parse_task_excel(_sheet(Phase=["foundation", "roofing", "rough_in"]), "p1", strict=True)
        assert excinfo.value.task_id == "T2"

    def test_missing_columns(self):
        with pytest.raises(FileContentError):
            parse_task_excel(_sheet().drop(columns=["EndDate"]), "p1")

    def test_duplicate_ids(self):
        with pytest.raises(FileContentError):
            parse_task_excel(_sheet(TaskID=["T1", "T1", "T3"]), "p1")

    def test_frame_layout_matches_sheet(self):
        tasks = parse_task_excel(_sheet(), "p1")
        df = tasks_to_frame(tasks)
        assert list(df.columns) == list(_sheet().columns)
        assert df.loc[2, "DependsOn"] == "T1,T2"
        assert parse_task_excel(df, "p1") == tasks

    def test_template_is_written(self):
        path = generate_task_template()
        assert os.path.exists(path)
        template = pd.read_excel(path)
        assert len(template) == 7
        assert "Phase" in template.columns


class TestTaskFrameValidation:
    def test_clean_sheet(self):
        result = validate_task_frame(_sheet())
        assert result["valid"]
        assert result["row_count"] == 3

    def test_uploaded_file_columns(self, tmp_path):
        path = tmp_path / "tasks.xlsx"
        _sheet().to_excel(path, index=False)
        assert validate_uploaded_file(str(path))["valid"]

        _sheet().drop(columns=["StartDate"]).to_csv(tmp_path / "tasks.csv", index=False)
        result = validate_uploaded_file(str(tmp_path / "tasks.csv"), file_type="csv")
        assert not result["valid"]
        assert result["missing_columns"] == ["StartDate"]

    def test_unreadable_upload(self, tmp_path):
        result = validate_uploaded_file(str(tmp_path / "missing.xlsx"))
        assert not result["valid"]
        assert "File validation failed" in result["error"]

    def test_collects_every_row_error(self):
        result = validate_task_frame(_sheet(
            TaskID=["T1", "T1", "T3"],
            Phase=["foundation", "roofing", "rough_in"],
            EndDate=["2026-04-01", "2026-05-22", None],
            Status=["completed", "done", None],
        ))
        assert not result["valid"]
        errors = "\n".join(result["errors"])
        assert "Duplicate TaskID 'T1'" in errors
        assert "Row 2: end date is before start date" in errors
        assert "Row 3: unknown phase 'roofing'" in errors
        assert "Row 3: unknown status 'done'" in errors
        assert "Row 4: missing or unreadable start/end date" in errors


class TestGraphHelpers:
    def test_topological_order_is_stable(self):
        order = Topo_order_tasks(["a", "b", "c", "d"], {"b": {"a"}, "c": {"a"}, "d": {"c", "b"}})
        assert order == ["a", "b", "c", "d"]

    def test_cycle_raises(self):
        with pytest.raises(GraphCycleError) as excinfo:
            Topo_order_tasks(["a", "b", "c"], {"a": {"b"}, "b": {"a"}})
        assert excinfo.value.task_ids == ["a", "b"]

    def test_phase_edges_require_chronological_order(self, rules, make_task):
        tasks = [
            make_task("F1", "foundation", "2026-05-01", "2026-05-10"),
            make_task("FR1", "framing", "2026-05-11", "2026-05-20"),
            make_task("FR0", "framing", "2026-04-20", "2026-04-25"),
            make_task("X", "roofing", "2026-05-01", "2026-05-02"),
        ]
        graph = build_dependency_graph(tasks, rules)
        assert graph.edges() == [("F1", "FR1")]
        assert "X" not in graph.tasks

    def test_explicit_links_are_added(self, rules, make_task):
        tasks = [
            make_task("A", "framing", "2026-05-01", "2026-05-05"),
            make_task("B", "framing", "2026-05-06", "2026-05-10", depends_on=("A", "missing")),
        ]
        graph = build_dependency_graph(tasks, rules)
        assert graph.edges() == [("A", "B")]
        assert graph.related("A", "B")
        assert graph.descendants("A") == {"B"}

    def test_explicit_cycle_detected_on_order(self, rules, make_task):
        tasks = [
            make_task("A", "foundation", "2026-05-01", "2026-05-05", depends_on=("B",)),
            make_task("B", "framing", "2026-05-06", "2026-05-10"),
        ]
        with pytest.raises(GraphCycleError):
            build_dependency_graph(tasks, rules).order()


class TestTradeIntervalIndex:
    def test_every_intersecting_pair_once(self, make_task):
        tasks = [
            make_task("T1", "framing", "2026-05-01", "2026-05-10", trade="carpentry"),
            make_task("T2", "framing", "2026-05-05", "2026-05-12", trade="carpentry"),
            make_task("T3", "framing", "2026-05-08", "2026-05-15", trade="carpentry"),
            make_task("T4", "framing", "2026-05-20", "2026-05-25", trade="carpentry"),
            make_task("T5", "framing", "2026-05-01", "2026-05-25", trade=None),
        ]
        index = TradeIntervalIndex(tasks)
        assert index.trades() == ["carpentry"]
        assert index.overlapping_pairs("carpentry") == [("T1", "T2"), ("T1", "T3"), ("T2", "T3")]

    def test_touching_end_and_start_overlap(self, make_task):
        index = TradeIntervalIndex([
            make_task("T1", "framing", "2026-05-01", "2026-05-10", trade="carpentry"),
            make_task("T2", "framing", "2026-05-10", "2026-05-12", trade="carpentry"),
        ])
        assert index.overlapping_pairs("carpentry") == [("T1", "T2")]

    def test_free_slot_queries(self, make_task):
        index = TradeIntervalIndex([make_task("T1", "framing", "2026-05-05", "2026-05-10", trade="carpentry")])
        assert index.is_free("carpentry", date(2026, 5, 11), date(2026, 5, 12))
        assert not index.is_free("carpentry", date(2026, 5, 1), date(2026, 5, 5))
        assert index.is_free("carpentry", date(2026, 5, 1), date(2026, 5, 5), ignore="T1")
        assert index.blocking_end("carpentry", date(2026, 5, 1), date(2026, 5, 6)) == date(2026, 5, 10)
        assert index.blocking_end("electrical", date(2026, 5, 1), date(2026, 5, 6)) is None

    def test_move_rebooks_a_task(self, make_task):
        first = make_task("T1", "framing", "2026-05-05", "2026-05-10", trade="carpentry")
        index = TradeIntervalIndex([first, make_task("T2", "framing", "2026-05-20", "2026-05-22", trade="carpentry")])

        index.move(first, date(2026, 5, 15), date(2026, 5, 20))

        assert index.is_free("carpentry", date(2026, 5, 5), date(2026, 5, 10))
        assert index.overlapping_pairs("carpentry") == [("T1", "T2")]
