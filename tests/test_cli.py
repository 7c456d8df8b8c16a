from __future__ import annotations

import pytest

from gtrends_explorer.cli import main
from tests.factories import make_reply, monthly_dates


def _write_inputs(tmp_path, n: int = 24):
    dates = monthly_dates(n, start="2016-01-01")
    rows = "\n".join(f"{d[:7]},{40 + i % 12},{10 + i % 6}" for i, d in enumerate(dates))
    csv = tmp_path / "multiTimeline.csv"
    csv.write_text(
        "Category: All categories\n\nMonth,Influenza: (United States),Sunburn: (United States)\n" + rows + "\n",
        encoding="utf-8",
    )
    fixture = tmp_path / "replies.txt"
    fixture.write_text(make_reply(n) + "\n", encoding="utf-8")
    return csv, fixture


def test_catalog_lists_terms(capsys) -> None:
    assert main(["catalog"]) == 0
    out = capsys.readouterr().out
    assert "Influenza" in out and "Worldwide" in out and "spring" in out


def test_explore_offline_writes_report(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    csv, fixture = _write_inputs(tmp_path)
    out = tmp_path / "explore.html"
    code = main(
        [
            "explore",
            "--terms", "Influenza", "Sunburn",
            "--csv", str(csv),
            "--engine", "fixture",
            "--fixture", str(fixture),
            "--merge",
            "--out", str(out),
        ]
    )
    assert code == 0
    assert out.exists()
    html = out.read_text(encoding="utf-8")
    assert "Interest over time" in html
    assert "Split Charts" in html
    assert "ready" in capsys.readouterr().out


def test_explore_failed_run_exits_nonzero(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    csv, _ = _write_inputs(tmp_path)
    bad = tmp_path / "bad.txt"
    bad.write_text("seasonal:1,2,3\n", encoding="utf-8")
    code = main(
        ["explore", "--terms", "Influenza", "--csv", str(csv), "--engine", "fixture", "--fixture", str(bad), "--out", str(tmp_path / "x.html")]
    )
    assert code == 1


def test_explore_unknown_geo_is_usage_error(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    csv, _ = _write_inputs(tmp_path)
    with pytest.raises(SystemExit):
        main(["explore", "--terms", "Influenza", "--geo", "ZZ", "--csv", str(csv), "--engine", "local"])
