"""
End-to-end integration tests.

Tests complete workflows from CSV exports through the calibration CLI
to the weight database, audit logs and report artifacts.
"""

import json

import pytest
import yaml

from churn_risk import DEFAULT_WEIGHTS, generate_sample_data
from churn_risk.errors import StorageError
from calibration import AccuracyEvaluator, CalibrationConfig, SqlWeightStore
from calibration.run import main

from conftest import AS_OF


FOLLOW_UP_HEAVY = dict(DEFAULT_WEIGHTS, first_session_satisfaction=0.20, follow_up_booking_rate=0.25)


@pytest.fixture
def workspace(tmp_path):
    """CSV exports, config and weight files for one CLI run."""
    students_df, sessions_df = generate_sample_data(n_students=120, seed=7, as_of=AS_OF)
    students_df.to_csv(tmp_path / "students.csv", index=False)
    sessions_df.to_csv(tmp_path / "sessions.csv", index=False)

    CalibrationConfig(
        max_workers=2,
        chunk_size=20,
        logs_dir=str(tmp_path / "logs"),
        artifacts_dir=str(tmp_path / "artifacts"),
    ).to_yaml(tmp_path / "calibration.yaml")

    with open(tmp_path / "proposed.yaml", "w") as f:
        yaml.dump({"weights": FOLLOW_UP_HEAVY}, f)
    with open(tmp_path / "invalid.yaml", "w") as f:
        yaml.dump(dict(FOLLOW_UP_HEAVY, tutor_consistency=0.5), f)

    churned = students_df[students_df["STATUS"] == "churned"]["STUDENT_ID"]
    return {
        "dir": tmp_path,
        "db": f"sqlite:///{tmp_path / 'weights.db'}",
        "churned_id": churned.iloc[0],
    }


def run_cli(workspace, *args):
    d = workspace["dir"]
    return main([
        "--students", str(d / "students.csv"),
        "--sessions", str(d / "sessions.csv"),
        "--db", workspace["db"],
        "--config", str(d / "calibration.yaml"),
        "--as-of", AS_OF.isoformat(),
        *args,
    ])


class TestCalibrationCli:
    """CLI workflows against a SQLite weight store."""

    def test_evaluate_with_report(self, workspace, capsys):
        assert run_cli(workspace, "evaluate", "--report") == 0

        out = capsys.readouterr().out
        assert "Retroactive accuracy:" in out
        assert "Report saved to:" in out

        reports = list((workspace["dir"] / "artifacts").iterdir())
        assert len(reports) == 1
        assert (reports[0] / "confusion_matrix.png").exists()

    def test_evaluate_timeout_reported(self, workspace, capsys, monkeypatch):
        def stalled(self, weights, as_of=None):
            raise StorageError("Accuracy evaluation timed out")

        monkeypatch.setattr(AccuracyEvaluator, "evaluate_with_predictions", stalled)

        assert run_cli(workspace, "evaluate") == 1
        assert "ERROR: Accuracy evaluation timed out" in capsys.readouterr().out

    def test_evaluate_invalid_weights(self, workspace, capsys):
        assert run_cli(workspace, "evaluate", "--weights", str(workspace["dir"] / "invalid.yaml")) == 1
        assert "Weight validation failed" in capsys.readouterr().out

    def test_simulate_saves_nothing(self, workspace, capsys):
        assert run_cli(workspace, "simulate", "--weights", str(workspace["dir"] / "proposed.yaml")) == 0

        out = capsys.readouterr().out
        assert "Accuracy change:" in out
        assert SqlWeightStore.from_url(workspace["db"]).list_versions() == []

    def test_update_then_history(self, workspace, capsys):
        weights_file = str(workspace["dir"] / "proposed.yaml")
        assert run_cli(workspace, "update", "--weights", weights_file,
                       "--actor", "admin-1", "--reason", "Emphasize follow-ups") == 0
        assert "Applied version 1" in capsys.readouterr().out

        store = SqlWeightStore.from_url(workspace["db"])
        assert store.get_weights(1) == pytest.approx(FOLLOW_UP_HEAVY)

        assert run_cli(workspace, "history") == 0
        assert "Emphasize follow-ups" in capsys.readouterr().out

        assert run_cli(workspace, "history", "--audit") == 0
        assert "v1: audited" in capsys.readouterr().out

        logs = list((workspace["dir"] / "logs").glob("upd_*.json"))
        assert len(logs) == 1

    def test_invalid_update_rejected(self, workspace, capsys):
        weights_file = str(workspace["dir"] / "invalid.yaml")
        assert run_cli(workspace, "update", "--weights", weights_file,
                       "--actor", "admin-1", "--reason", "bad") == 1

        assert "Weight validation failed" in capsys.readouterr().out
        assert SqlWeightStore.from_url(workspace["db"]).list_versions() == []

    def test_case_study(self, workspace, capsys):
        assert run_cli(workspace, "case-study", workspace["churned_id"], "--survey", "Too expensive") == 0

        out = capsys.readouterr().out
        assert "actual churned" in out
        assert "Suggested weights:" in out

    def test_case_study_unknown_student(self, workspace, capsys):
        assert run_cli(workspace, "case-study", "NOBODY") == 1
        assert "Student not found" in capsys.readouterr().out

    def test_recent_churns_json(self, workspace, capsys):
        assert run_cli(workspace, "recent-churns", "--limit", "5") == 0

        churns = json.loads(capsys.readouterr().out)
        assert len(churns) == 5
        dates = [c["churned_date"] for c in churns]
        assert dates == sorted(dates, reverse=True)

    def test_learning_events_empty(self, workspace, capsys):
        assert run_cli(workspace, "learning-events") == 0
        assert json.loads(capsys.readouterr().out) == []
