"""
tests/test_dry_run.py — Dry-run orchestration against the sample data set.
"""

import json
import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from clinic_scheduler.dry_run import main, run_dry_run

SAMPLE_DIR = PROJECT_ROOT / "config" / "sample"


class TestDryRun:

    def test_run_writes_log(self, tmp_path):
        out = run_dry_run(date(2026, 3, 2), data_dir=SAMPLE_DIR, output_dir=tmp_path)
        log_path = out["outputs"]["log"]
        assert log_path == tmp_path / "2026-03-02_daily_run.json"
        payload = json.loads(log_path.read_text())
        assert payload["weekday"] == "mon"
        # BCBAs are not on the grid
        assert {s["staff_id"] for s in payload["schedule"]} == {"s1", "s2", "s3", "s4", "s5"}
        assert all(len(s["slots"]) == 6 for s in payload["schedule"])
        assert [u["session_id"] for u in payload["training_session_updates"]] == ["t1"]
        assert len(payload["hard_violations"]) == len(out["hard_violations"])

    def test_cli(self, tmp_path):
        main(["--data-dir", str(SAMPLE_DIR), "--date", "2026-03-02", "--output-dir", str(tmp_path)])
        assert (tmp_path / "2026-03-02_daily_run.json").exists()

    def test_cli_defaults_to_sample_data(self, tmp_path):
        main(["--date", "2026-03-02", "--output-dir", str(tmp_path)])
        assert (tmp_path / "2026-03-02_daily_run.json").exists()

    def test_cli_bad_date(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["--data-dir", str(SAMPLE_DIR), "--date", "03/02/2026", "--output-dir", str(tmp_path)])

    def test_cli_missing_data(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["--data-dir", str(tmp_path / "nowhere"), "--date", "2026-03-02", "--output-dir", str(tmp_path)])
