"""Tests for the ``python -m obd_emissions`` entry point."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Generator

import pytest
import structlog

from obd_emissions.__main__ import _build_parser, main


@pytest.fixture(autouse=True)
def _restore_structlog() -> Generator[None, None, None]:
    yield
    structlog.reset_defaults()


def test_parser_defaults() -> None:
    args = _build_parser().parse_args([])
    assert args.dry_run is None
    assert args.ticks is None
    assert args.replay is None


def test_replay_prints_summary(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    sample_log_path: Path,
) -> None:
    monkeypatch.setattr(sys, "argv", ["obd_emissions", "--replay", str(sample_log_path)])
    main()
    out = capsys.readouterr().out
    assert "Distance: 0.05 km" in out
    assert "CO2:      0.02 kg" in out
    assert "Stale:    2/6 ticks" in out


def test_replay_missing_file_exits(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setattr(
        sys, "argv", ["obd_emissions", "--replay", str(tmp_path / "missing.txt")]
    )
    with pytest.raises(SystemExit) as exc_info:
        main()
    assert exc_info.value.code == 1


def test_simulated_trip_prints_report(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("OBD_PORT", "sim")
    monkeypatch.setenv("VEHICLE_ID", "V-CLI-001")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "0.01")
    monkeypatch.setattr(sys, "argv", ["obd_emissions", "--dry-run", "--ticks", "2"])
    main()
    out = capsys.readouterr().out
    assert "Vehicle:     V-CLI-001" in out
    assert "2/2 ticks usable" in out
