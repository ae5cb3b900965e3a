from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json

import pytest

from station_dashboard.config import Settings
from station_dashboard.data_pipeline import cli_collect
from station_dashboard.data_pipeline.records import StationRecord, error_record
from station_dashboard.workflows.poll_stations import StationPoller


def sample_records() -> list[StationRecord]:
    now = datetime.now(timezone.utc)
    return [
        StationRecord(station_id=2, name="Centro", timestamp=now, temperature=28.6),
        StationRecord(station_id=3, name="Sul", timestamp=now - timedelta(hours=2)),
        error_record(8, "timeout after 10s"),
    ]


class FakePipeline:
    records: list[StationRecord] = []
    closed = False

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def aggregate(self, *, force_rescan: bool = False) -> list[StationRecord]:
        return list(self.records)

    async def aclose(self) -> None:
        FakePipeline.closed = True


@pytest.fixture()
def fake_pipeline(monkeypatch: pytest.MonkeyPatch) -> type[FakePipeline]:
    monkeypatch.setattr(cli_collect, "AggregationPipeline", FakePipeline)
    monkeypatch.setattr(cli_collect, "configure_logging", lambda level=None: None)
    monkeypatch.setattr(cli_collect, "get_settings", Settings)
    FakePipeline.records = sample_records()
    FakePipeline.closed = False
    return FakePipeline


def test_render_summary_marks_each_station() -> None:
    summary = cli_collect.render_summary(sample_records(), Settings())

    assert "ESTAÇÕES: 3 | ativas: 1 | desconectadas: 2" in summary
    assert "✓   2  Centro: 28.6°C" in summary
    assert "⚠️   3  Sul: —" in summary
    assert "❌   8  Station 8: timeout after 10s" in summary


def test_main_prints_json(fake_pipeline, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli_collect.main(["--json"])

    printed = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert [item["station_id"] for item in printed] == [2, 3, 8]
    assert printed[2]["error"] == "timeout after 10s"
    assert fake_pipeline.closed


def test_main_fails_without_records(fake_pipeline, capsys: pytest.CaptureFixture[str]) -> None:
    fake_pipeline.records = []

    assert cli_collect.main([]) == 1
    assert fake_pipeline.closed


def test_watch_mode_runs_requested_cycles(fake_pipeline, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli_collect.main(["--watch", "--interval", "0.01", "--max-cycles", "2"])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert output.count("ESTAÇÕES: 3") == 2


@pytest.mark.parametrize(("argv", "expected"), [(["--interval", "0"], 0.0), ([], 60.0)])
def test_interval_flag_is_honoured(
    fake_pipeline, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], argv, expected
) -> None:
    intervals: list[float] = []

    class RecordingPoller(StationPoller):
        def __init__(self, pipeline, *, interval_seconds: float = 60.0, on_cycle=None) -> None:
            intervals.append(interval_seconds)
            super().__init__(pipeline, interval_seconds=interval_seconds, on_cycle=on_cycle)

    monkeypatch.setattr(cli_collect, "StationPoller", RecordingPoller)

    assert cli_collect.main(["--watch", "--max-cycles", "1", *argv]) == 0
    assert intervals == [expected]
