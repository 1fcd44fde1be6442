from __future__ import annotations

import os
import uuid
from typing import Any, Dict, List


class MlflowLogger:
    """
    Optional MLflow logger for reelbatch runs. Enabled by setting
    REELBATCH_ENABLE_MLFLOW=1 and installing the mlflow package.
    """

    def __init__(self) -> None:
        self._enabled = os.getenv("REELBATCH_ENABLE_MLFLOW", "0").lower() in (
            "1",
            "true",
            "yes",
        )
        self._mlflow = None
        self._run_name = os.getenv("REELBATCH_MLFLOW_RUN_NAME", "reelbatch")
        if self._enabled:
            try:
                import mlflow  # type: ignore

                self._mlflow = mlflow
            except ImportError:
                self._enabled = False
                self._mlflow = None

    @property
    def enabled(self) -> bool:
        return self._enabled and self._mlflow is not None

    def log_run_summary(self, summary: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        self._log_dict(summary, f"runs/summary_{uuid.uuid4().hex}.json")

    def log_task_outcomes(self, outcomes: List[Dict[str, Any]]) -> None:
        if not (self.enabled and outcomes):
            return
        self._log_dict({"outcomes": outcomes}, f"runs/outcomes_{uuid.uuid4().hex}.json")

    def log_operation(self, operation: Dict[str, Any]) -> None:
        if not self.enabled:
            return
        self._log_dict(operation, f"operations/{uuid.uuid4().hex}.json")

    def _log_dict(self, data: Dict[str, Any], artifact_path: str) -> None:
        assert self._mlflow is not None

        def action() -> None:
            self._mlflow.log_dict(data, artifact_path)

        if self._mlflow.active_run():
            action()
            return

        with self._mlflow.start_run(run_name=self._run_name):
            action()
