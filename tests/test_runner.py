import json
import logging

import pytest

from situation_monitor import config, runner
from situation_monitor.models import AggregationResult, Prediction, Provenance


@pytest.fixture(autouse=True)
def _isolated_logging(tmp_path, monkeypatch):
    monkeypatch.setattr(config.SETTINGS, "data_dir", tmp_path)
    root = logging.getLogger()
    saved = root.handlers[:]
    yield
    for h in root.handlers:
        if h not in saved:
            h.close()
    root.handlers[:] = saved


def test_result_to_dict():
    pred = Prediction(id="1", question="Q?", yes=40, volume=2.0, url="https://p")
    res = AggregationResult("polymarket_predictions", [pred], Provenance.STALE_FALLBACK, {"t": "timeout"})
    out = runner.result_to_dict(res)
    assert out["provenance"] == "stale-fallback"
    assert out["count"] == 1
    text = json.dumps(out, default=runner._jsonable)
    assert '"question": "Q?"' in text


def test_unknown_dataset_exits_2(capsys):
    assert runner.main(["--dataset", "weather"]) == 2
    assert "weather" in capsys.readouterr().err


def test_writes_json_output(tmp_path, monkeypatch):
    async def fake_run(datasets, force):
        return {"news_ai": {"count": 0, "items": []}}

    monkeypatch.setattr(runner, "_run", fake_run)
    out = tmp_path / "out.json"
    assert runner.main(["--dataset", "news_ai", "--output", str(out)]) == 0
    assert json.loads(out.read_text(encoding="utf-8")) == {"news_ai": {"count": 0, "items": []}}
