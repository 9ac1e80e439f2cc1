from pathlib import Path

import pandas as pd
import pytest

from repairbi.pipeline import (
    EMPTY,
    READY,
    UNAVAILABLE,
    UNCONFIGURED,
    ProjectConfig,
    load_transactions,
    run_all,
)


@pytest.fixture
def ledger_file(tmp_path, ledger_csv):
    path = tmp_path / "ledger.csv"
    path.write_text(ledger_csv, encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path, ledger_file):
    return ProjectConfig(feed_path=ledger_file, out_dir=tmp_path / "out")


class TestLoadTransactions:

    def test_ready(self, config):
        loaded = load_transactions(config)
        assert loaded.status == READY
        assert loaded.ok
        assert len(loaded.records) == 4

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("", encoding="utf-8")
        loaded = load_transactions(ProjectConfig(feed_path=path))
        assert loaded.status == EMPTY
        assert loaded.records == []

    def test_header_only_file_is_empty(self, tmp_path):
        path = tmp_path / "header.csv"
        path.write_text("날짜,매출\n", encoding="utf-8")
        assert load_transactions(ProjectConfig(feed_path=path)).status == EMPTY

    def test_unavailable(self, tmp_path):
        loaded = load_transactions(ProjectConfig(feed_path=tmp_path / "missing.csv"))
        assert loaded.status == UNAVAILABLE
        assert "missing.csv" in loaded.error

    def test_unconfigured(self):
        loaded = load_transactions(ProjectConfig())
        assert loaded.status == UNCONFIGURED
        assert not loaded.ok

    def test_strict_phone(self, tmp_path):
        path = tmp_path / "ledger.csv"
        path.write_text("date,phone,sales\n2024-01-02,,100\n", encoding="utf-8")
        assert load_transactions(ProjectConfig(feed_path=path, require_phone=True)).status == EMPTY


class TestRunAll:

    def test_outputs_written(self, config):
        result = run_all(config)
        assert result["status"] == READY
        for name in (
            "transactions.csv",
            "customer_profiles.csv",
            "monthly_revenue.csv",
            "brand_breakdown.csv",
            "cohort_retention.csv",
            "segment_counts.png",
            "monthly_revenue.png",
        ):
            assert (config.out_dir / name).exists(), name

    def test_results(self, config):
        result = run_all(config)
        assert len(result["records"]) == 4
        assert len(result["profiles"]) == 2
        assert result["summary"]["revenue"] == 1_500_000
        assert [m["period"] for m in result["monthly"]] == ["2024-03", "2024-11", "2024-12"]
        assert result["retention"]["action_required"] == 1

    def test_profiles_csv(self, config):
        run_all(config)
        df = pd.read_csv(config.profiles_path, encoding="utf-8-sig", dtype={"phone_key": str})
        assert list(df["phone_key"]) == ["01012345678", "01098765432"]

    def test_no_plots_when_disabled(self, config):
        config.save_plots = False
        run_all(config)
        assert not (config.out_dir / "segment_counts.png").exists()

    def test_stops_without_source(self, tmp_path):
        result = run_all(ProjectConfig(out_dir=tmp_path / "out"))
        assert result["status"] == UNCONFIGURED
        assert not (tmp_path / "out").exists()


class TestConfig:

    def test_paths_coerced(self):
        cfg = ProjectConfig(feed_path="ledger.csv", out_dir="reports")
        assert cfg.feed_path == Path("ledger.csv")
        assert cfg.transactions_path == Path("reports") / "transactions.csv"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("REPAIRBI_FEED_URL", "https://example.com/sheet.csv")
        monkeypatch.setenv("REPAIRBI_OUT_DIR", "env_out")
        monkeypatch.setenv("REPAIRBI_REQUIRE_PHONE", "true")
        monkeypatch.setenv("REPAIRBI_TIMEOUT", "5")
        monkeypatch.delenv("REPAIRBI_FEED_PATH", raising=False)
        monkeypatch.delenv("REPAIRBI_LOG_FILE", raising=False)
        cfg = ProjectConfig.from_env()
        assert cfg.feed_url == "https://example.com/sheet.csv"
        assert cfg.out_dir == Path("env_out")
        assert cfg.require_phone is True
        assert cfg.timeout == 5.0
        assert cfg.feed_path is None

    def test_overrides_beat_env(self, monkeypatch):
        monkeypatch.setenv("REPAIRBI_OUT_DIR", "env_out")
        cfg = ProjectConfig.from_env(out_dir="cli_out")
        assert cfg.out_dir == Path("cli_out")

    def test_defaults(self, monkeypatch):
        for var in ("REPAIRBI_FEED_URL", "REPAIRBI_FEED_PATH", "REPAIRBI_OUT_DIR", "REPAIRBI_LOG_LEVEL",
                    "REPAIRBI_LOG_FILE", "REPAIRBI_REQUIRE_PHONE", "REPAIRBI_TIMEOUT"):
            monkeypatch.delenv(var, raising=False)
        cfg = ProjectConfig.from_env()
        assert cfg.out_dir == Path("out")
        assert cfg.log_level == "INFO"
        assert cfg.require_phone is False
