from __future__ import annotations

"""
crowdsale.cli
-------------

Operator tooling for the crowdsale coordinator:
- Show the effective configuration (defaults ← file ← environment).
- Replay a scripted sale against an in-memory token ledger and treasury,
  driven by a manual clock, and print the resulting state as JSON.

Scenario files are JSON (or YAML) documents:

    {
      "config": {"token": {...}, "sale": {...}, "admin": "admin"},
      "start_time": 1000,
      "actions": [
        {"op": "start"},
        {"op": "allow", "identity": "alice"},
        {"op": "fund", "identity": "alice", "amount": 10},
        {"op": "contribute", "identity": "alice", "value": 1},
        {"op": "advance", "seconds": 101},
        {"op": "release"},
        {"op": "withdraw", "destination": "vault", "amount": 1}
      ]
    }

`start` takes the sale parameters from the config unless the action overrides
them. Administrative actions run as the configured admin unless they name a
`caller`. Identities are plain text or 0x-prefixed hex.

Examples
--------
python -m crowdsale config
python -m crowdsale --log-level DEBUG simulate scenario.json
python -m crowdsale simulate scenario.json --keep-going --events
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import typer
import yaml

from crowdsale import config as cfgmod
from crowdsale.coordinator import Crowdsale
from crowdsale.errors import CrowdsaleError, _show, error_to_payload
from crowdsale.version import version_metadata

log = logging.getLogger(__name__)

app = typer.Typer(
    name="crowdsale",
    add_completion=False,
    no_args_is_help=True,
    help="Inspect configuration and replay scripted token crowdsales.",
)

# -------------------- utils --------------------


class ManualClock:
    """Scenario time source; only moves on `advance`."""

    def __init__(self, t: int = 0) -> None:
        self.t = _whole(t, "start_time")

    def now(self) -> int:
        return self.t

    def advance(self, seconds: int) -> None:
        self.t += _whole(seconds, "seconds")

    __call__ = now


def _whole(x: Any, what: str) -> int:
    """Non-negative int only; floats and bools are rejected rather than truncated."""
    if isinstance(x, bool) or not isinstance(x, int):
        raise ValueError(f"{what} must be an integer (got {x!r})")
    if x < 0:
        raise ValueError(f"{what} must not be negative (got {x!r})")
    return x


def _read_doc(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return data


def _fail(msg: str, code: int = 2) -> None:
    typer.secho(msg, fg=typer.colors.RED, err=True)
    raise typer.Exit(code)


def _layer(base: cfgmod.CrowdsaleConfig, doc: Dict[str, Any]) -> cfgmod.CrowdsaleConfig:
    """Overlay a scenario's config on `base`, merging `token` and `sale` key by key."""
    if not isinstance(doc, dict):
        raise ValueError("scenario config must be a mapping")
    merged = base.to_dict()
    for key, value in doc.items():
        if key in ("token", "sale") and isinstance(value, dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return cfgmod.from_mapping(merged)


# -------------------- scenario runner --------------------


class Scenario:
    """A deployed sale plus the bookkeeping needed to replay actions against it."""

    def __init__(self, cfg: cfgmod.CrowdsaleConfig, start_time: int = 0) -> None:
        self.cfg = cfg
        self.clock = ManualClock(start_time)
        self.admin = cfg.admin_id
        self.sale = Crowdsale.deploy(
            self.admin,
            cfg.token.name.encode("ascii"),
            cfg.token.symbol.encode("ascii"),
            cfg.token.decimals,
            cfg.token.initial_supply,
            time_fn=self.clock,
        )
        self.seen: List[bytes] = [self.admin]
        self._ops: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "start": self._start,
            "allow": self._allow,
            "fund": self._fund,
            "contribute": self._contribute,
            "advance": self._advance,
            "release": self._release,
            "withdraw": self._withdraw,
        }

    def _id(self, action: Dict[str, Any], key: str) -> bytes:
        if key not in action:
            raise ValueError(f"action {action.get('op')!r} requires {key!r}")
        who = cfgmod.parse_identity(action[key])
        if who not in self.seen:
            self.seen.append(who)
        return who

    def _caller(self, action: Dict[str, Any]) -> bytes:
        return self._id(action, "caller") if "caller" in action else self.admin

    # -- actions --

    def _start(self, a: Dict[str, Any]) -> Any:
        s = self.cfg.sale
        cfg = self.sale.start(
            self._caller(a),
            a.get("duration", s.duration),
            a.get("unit_price", s.unit_price),
            a.get("available_tokens", s.available_tokens),
            a.get("min_contribution", s.min_contribution),
            a.get("max_contribution", s.max_contribution),
        )
        return cfg.to_dict()

    def _allow(self, a: Dict[str, Any]) -> Any:
        if "identities" in a:
            batch = [cfgmod.parse_identity(x) for x in a["identities"]]
            for who in batch:
                if who not in self.seen:
                    self.seen.append(who)
            return {"added": self.sale.allow_many(self._caller(a), batch)}
        return {"added": self.sale.allow(self._caller(a), self._id(a, "identity"))}

    def _fund(self, a: Dict[str, Any]) -> Any:
        who = self._id(a, "identity")
        self.sale.treasury.credit(who, a["amount"], reason="scenario-fund")
        return {"balance": self.sale.treasury.balance(who)}

    def _contribute(self, a: Dict[str, Any]) -> Any:
        who = self._id(a, "identity")
        return self.sale.contribute(who, a["value"]).to_dict()

    def _advance(self, a: Dict[str, Any]) -> Any:
        self.clock.advance(a["seconds"])
        return {"now": self.clock.now(), "phase": self.sale.phase.value}

    def _release(self, a: Dict[str, Any]) -> Any:
        return {"released": self.sale.release(self._caller(a))}

    def _withdraw(self, a: Dict[str, Any]) -> Any:
        dest = self._id(a, "destination")
        return {"remaining": self.sale.withdraw(self._caller(a), dest, a["amount"])}

    # -- driver --

    def apply(self, index: int, action: Dict[str, Any]) -> Dict[str, Any]:
        op = action.get("op")
        fn = self._ops.get(op) if isinstance(op, str) else None
        if fn is None:
            raise ValueError(f"action #{index}: unknown op {op!r} (expected one of {', '.join(self._ops)})")
        result = fn(action)
        log.debug("action #%d %s -> %s", index, op, result)
        return {"index": index, "op": op, "ok": True, "result": result}

    def report(self, results: List[Dict[str, Any]], *, with_events: bool) -> Dict[str, Any]:
        token = self.sale.token
        who = self.seen + [self.sale.address]
        out: Dict[str, Any] = {
            "ok": all(r["ok"] for r in results),
            "now": self.clock.now(),
            "results": results,
            "sale": self.sale.summary(),
            "token_balances": {_show(w): token.balance_of(w) for w in who},
            "value_balances": {_show(w): self.sale.treasury.balance(w) for w in who},
        }
        if with_events:
            out["events"] = [e.to_dict() for e in self.sale.events]
        return out


# -------------------- commands --------------------


@app.command("config")
def cmd_config(
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="JSON/YAML config file (defaults to $CROWDSALE_CONFIG_FILE)."),
) -> None:
    """Print the effective configuration as JSON."""
    try:
        cfg = cfgmod.from_env(base=cfgmod.from_file(file)) if file else cfgmod.load()
    except (OSError, ValueError) as e:
        _fail(f"invalid configuration: {e}")
    typer.echo(cfgmod.pretty(cfg))


@app.command("simulate")
def cmd_simulate(
    scenario: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Scenario file (JSON/YAML)."),
    keep_going: bool = typer.Option(False, "--keep-going", help="Record failed actions and continue instead of aborting."),
    events: bool = typer.Option(False, "--events", help="Include the full event log in the output."),
) -> None:
    """Replay a scripted sale and print the final state as JSON."""
    try:
        doc = _read_doc(scenario)
        base = cfgmod.load()
        cfg = _layer(base, doc["config"]) if doc.get("config") else base
        sim = Scenario(cfg, start_time=doc.get("start_time", 0))
    except (OSError, ValueError, KeyError) as e:
        _fail(f"invalid scenario: {e}")

    actions = doc.get("actions") or []
    results: List[Dict[str, Any]] = []
    for i, action in enumerate(actions):
        try:
            results.append(sim.apply(i, action))
        except CrowdsaleError as e:
            log.info("action #%d %s failed: %s", i, action.get("op"), e.code)
            results.append({"index": i, "op": action.get("op"), "ok": False, **error_to_payload(e)})
            if not keep_going:
                typer.echo(json.dumps(sim.report(results, with_events=events), indent=2, sort_keys=True))
                raise typer.Exit(1)
        except (ValueError, KeyError, TypeError) as e:
            _fail(f"action #{i}: {e}")

    typer.echo(json.dumps(sim.report(results, with_events=events), indent=2, sort_keys=True))


@app.command("version")
def cmd_version(
    json_out: bool = typer.Option(False, "--json", help="Output JSON."),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="JSON/YAML config file (defaults to $CROWDSALE_CONFIG_FILE)."),
) -> None:
    """Print the package version and the token a sale would deploy."""
    try:
        cfg = cfgmod.from_env(base=cfgmod.from_file(file)) if file else cfgmod.load()
    except (OSError, ValueError) as e:
        _fail(f"invalid configuration: {e}")
    meta = version_metadata(cfg)
    if json_out:
        typer.echo(json.dumps(meta, indent=2, sort_keys=True))
        return
    tok = meta["token"]
    typer.echo(f"crowdsale {meta['version']} (token {tok['symbol']}, {tok['decimals']} decimals, admin {meta['admin']})")


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING", "--log-level", envvar="CROWDSALE_LOG_LEVEL", help="Python logging level."
    ),
) -> None:
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        _fail(f"unknown log level {log_level!r}")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


if __name__ == "__main__":
    app()
