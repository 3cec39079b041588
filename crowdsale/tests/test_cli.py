import json
import os

import pytest
from typer.testing import CliRunner

from crowdsale.cli import ManualClock, app
from crowdsale.version import __version__

runner = CliRunner()

CONFIG = {
    "token": {"name": "SJS Tokens", "symbol": "SJS", "decimals": 0, "initial_supply": 1000},
    "sale": {"duration": 100, "unit_price": 2, "available_tokens": 30, "min_contribution": 1, "max_contribution": 10},
    "admin": "admin",
}

HAPPY = [
    {"op": "start"},
    {"op": "allow", "identities": ["alice", "bob"]},
    {"op": "fund", "identity": "alice", "amount": 10},
    {"op": "fund", "identity": "bob", "amount": 10},
    {"op": "contribute", "identity": "alice", "value": 2},
    {"op": "contribute", "identity": "bob", "value": 10},
    {"op": "advance", "seconds": 101},
    {"op": "release"},
    {"op": "withdraw", "destination": "vault", "amount": 12},
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for k in list(os.environ):
        if k.startswith("CROWDSALE_"):
            monkeypatch.delenv(k, raising=False)


def _write(tmp_path, actions, **extra):
    p = tmp_path / "scenario.json"
    p.write_text(json.dumps({"config": CONFIG, "start_time": 5_000, "actions": actions, **extra}))
    return p


def test_version_json_reports_configured_token(monkeypatch):
    monkeypatch.setenv("CROWDSALE_TOKEN_SYMBOL", "SJS")
    res = runner.invoke(app, ["version", "--json"])
    assert res.exit_code == 0, res.output
    meta = json.loads(res.stdout)
    assert set(meta) == {"version", "installed", "python", "ledger", "token", "admin"}
    assert meta["version"] == __version__
    assert meta["token"]["symbol"] == "SJS"
    assert meta["ledger"] == {"amount_bits": 256, "max_decimals": 36}


def test_version_text():
    res = runner.invoke(app, ["version"])
    assert res.exit_code == 0, res.output
    assert res.stdout.startswith(f"crowdsale {__version__} (token CST, 18 decimals")


def test_config_prints_effective_config(monkeypatch):
    monkeypatch.setenv("CROWDSALE_UNIT_PRICE", "7")
    res = runner.invoke(app, ["config"])
    assert res.exit_code == 0, res.output
    assert json.loads(res.stdout)["sale"]["unit_price"] == 7


def test_config_rejects_invalid(monkeypatch):
    monkeypatch.setenv("CROWDSALE_DURATION", "0")
    res = runner.invoke(app, ["config"])
    assert res.exit_code == 2


def test_simulate_full_sale(tmp_path):
    res = runner.invoke(app, ["simulate", str(_write(tmp_path, HAPPY))])
    assert res.exit_code == 0, res.output
    out = json.loads(res.stdout)
    assert out["ok"] is True
    assert out["now"] == 5_101
    assert out["sale"]["phase"] == "released"
    assert out["sale"]["available"] == 6
    assert out["token_balances"]["alice"] == 4
    assert out["token_balances"]["bob"] == 20
    assert out["value_balances"]["vault"] == 12
    assert out["value_balances"]["crowdsale"] == 0
    assert [r["op"] for r in out["results"]] == [a["op"] for a in HAPPY]
    assert "events" not in out


def test_simulate_aborts_on_first_failure(tmp_path):
    actions = [{"op": "start"}, {"op": "contribute", "identity": "mallory", "value": 2}, {"op": "advance", "seconds": 1}]
    res = runner.invoke(app, ["simulate", str(_write(tmp_path, actions))])
    assert res.exit_code == 1
    out = json.loads(res.stdout)
    assert out["ok"] is False
    last = out["results"][-1]
    assert last["index"] == 1
    assert last["status"] == "eligibility"
    assert last["error"]["code"] == "CROWDSALE_NOT_ALLOWLISTED"
    assert len(out["results"]) == 2


def test_simulate_keep_going_records_errors(tmp_path):
    actions = [
        {"op": "start"},
        {"op": "release"},
        {"op": "allow", "identity": "alice", "caller": "alice"},
        {"op": "advance", "seconds": 100},
        {"op": "withdraw", "destination": "vault", "amount": 0},
    ]
    res = runner.invoke(app, ["simulate", str(_write(tmp_path, actions)), "--keep-going", "--events"])
    assert res.exit_code == 0, res.output
    out = json.loads(res.stdout)
    assert out["ok"] is False
    codes = [r.get("error", {}).get("code") for r in out["results"]]
    assert codes == [
        None,
        "CROWDSALE_NOT_ENDED",
        "CROWDSALE_NOT_ADMIN",
        None,
        "CROWDSALE_NOT_RELEASED",
    ]
    assert [e["name"] for e in out["events"]][:2] == ["Transfer", "SaleStarted"]


def test_simulate_unknown_op(tmp_path):
    res = runner.invoke(app, ["simulate", str(_write(tmp_path, [{"op": "refund"}]))])
    assert res.exit_code == 2


def test_simulate_missing_file(tmp_path):
    res = runner.invoke(app, ["simulate", str(tmp_path / "missing.json")])
    assert res.exit_code != 0


def test_manual_clock():
    c = ManualClock(10)
    c.advance(5)
    assert c() == 15
    with pytest.raises(ValueError):
        c.advance(-1)


def test_simulate_rejects_fractional_value(tmp_path):
    actions = [
        {"op": "start", "unit_price": 1},
        {"op": "allow", "identity": "alice"},
        {"op": "fund", "identity": "alice", "amount": 10},
        {"op": "contribute", "identity": "alice", "value": 2.9},
    ]
    res = runner.invoke(app, ["simulate", str(_write(tmp_path, actions))])
    assert res.exit_code == 1
    out = json.loads(res.stdout)
    last = out["results"][-1]
    assert last["ok"] is False
    assert last["error"]["code"] == "CROWDSALE_LEDGER_BAD_AMOUNT"
    assert out["sale"]["purchases"] == []
    assert out["value_balances"]["alice"] == 10


@pytest.mark.parametrize(
    "action",
    [
        {"op": "start", "duration": 100.5},
        {"op": "fund", "identity": "alice", "amount": 1.5},
    ],
)
def test_simulate_float_parameters_are_recorded_as_errors(tmp_path, action):
    res = runner.invoke(app, ["simulate", str(_write(tmp_path, [action])), "--keep-going"])
    assert res.exit_code == 0, res.output
    (result,) = json.loads(res.stdout)["results"]
    assert result["ok"] is False


def test_simulate_fractional_clock_advance_is_invalid(tmp_path):
    res = runner.invoke(app, ["simulate", str(_write(tmp_path, [{"op": "advance", "seconds": 1.5}]))])
    assert res.exit_code == 2


def test_simulate_partial_sale_section_keeps_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("CROWDSALE_MAX_CONTRIBUTION", "20")
    p = tmp_path / "scenario.json"
    p.write_text(json.dumps({"config": {"sale": {"unit_price": 3}}, "actions": [{"op": "start"}]}))
    res = runner.invoke(app, ["simulate", str(p)])
    assert res.exit_code == 0, res.output
    started = json.loads(res.stdout)["results"][0]["result"]
    assert started["unit_price"] == 3
    assert started["max_contribution"] == 20


def test_manual_clock_rejects_fractional_seconds():
    c = ManualClock(10)
    with pytest.raises(ValueError):
        c.advance(0.5)
    with pytest.raises(ValueError):
        ManualClock(1.5)
    assert c() == 10
