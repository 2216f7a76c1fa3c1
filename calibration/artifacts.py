"""
Report artifacts for weight evaluations.

Saves the evaluated weights, metrics, per-student predictions and a
confusion matrix plot under one report directory.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
import yaml
from sklearn.metrics import confusion_matrix

from .evaluator import AccuracyMetrics


class ArtifactManager:
    """Manages saving evaluation reports."""

    def __init__(self, artifacts_dir: Path | str):
        """
        Initialize artifact manager.

        Args:
            artifacts_dir: Base directory for reports
        """
        self.artifacts_dir = Path(artifacts_dir)
        self.artifacts_dir.mkdir(parents=True, exist_ok=True)

    def save_report(
        self,
        weights: Mapping[str, float],
        metrics: AccuracyMetrics,
        predictions: pd.DataFrame,
        report_id: Optional[str] = None,
    ) -> Path:
        """
        Save a full report for one evaluated weight set.

        Args:
            weights: Weight map that was evaluated
            metrics: AccuracyMetrics for those weights
            predictions: Per-student predictions (PREDICTION_COLUMNS)
            report_id: Directory name (default: timestamp)

        Returns:
            Path to the report directory
        """
        report_id = report_id or datetime.now(timezone.utc).strftime("eval_%Y%m%d_%H%M%S")
        report_dir = self.artifacts_dir / report_id
        report_dir.mkdir(parents=True, exist_ok=True)

        with open(report_dir / "weights.yaml", "w") as f:
            yaml.dump(
                {k: float(v) for k, v in weights.items()},
                f,
                default_flow_style=False,
                sort_keys=False,
            )

        pd.DataFrame([metrics.to_dict()]).to_csv(report_dir / "metrics.csv", index=False)
        predictions.to_csv(report_dir / "predictions.csv", index=False)

        self._plot_confusion_matrix(predictions, report_dir)

        return report_dir

    def _plot_confusion_matrix(self, df: pd.DataFrame, output_dir: Path) -> None:
        """Generate confusion matrix plot."""
        if df.empty:
            cm = np.zeros((2, 2), dtype=int)
        else:
            y_true = df["IS_CHURN"].astype(int)
            y_pred = df["PREDICTED_CHURN"].astype(int)
            cm = confusion_matrix(y_true, y_pred, labels=[0, 1])

        fig, ax = plt.subplots(figsize=(8, 6))
        sns.heatmap(
            cm,
            annot=True,
            fmt="d",
            cmap="Blues",
            ax=ax,
            xticklabels=["Predicted Active", "Predicted Churn"],
            yticklabels=["Actual Active", "Actual Churn"],
        )
        ax.set_title(f"Confusion Matrix ({len(df)} students)")
        plt.tight_layout()
        plt.savefig(output_dir / "confusion_matrix.png", dpi=150)
        plt.close(fig)

    def load_report(self, report_id: str) -> dict | None:
        """
        Load a saved report.

        Returns:
            Dictionary with weights, metrics and predictions, or None if not found
        """
        report_dir = self.artifacts_dir / report_id
        if not report_dir.exists():
            return None

        with open(report_dir / "weights.yaml") as f:
            weights = yaml.safe_load(f)

        return {
            "weights": weights,
            "metrics": pd.read_csv(report_dir / "metrics.csv"),
            "predictions": pd.read_csv(report_dir / "predictions.csv"),
        }
