from __future__ import annotations

import copy
import json
from dataclasses import asdict, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd

from stocklab.backtest.engine import BacktestConfig, EventScalingConfig, StrategyConfig, VolumeGateConfig
from stocklab.core.types import AtrMethod, StrategyType

_SECTIONS = {
    "volume_gate": VolumeGateConfig,
    "event_scaling": EventScalingConfig,
    "strategy": StrategyConfig,
}

_ENUMS = {
    "atr_method": AtrMethod,
    "strategy": StrategyType,
}


def _as_enum(v: Any, enum_cls):
    if isinstance(v, enum_cls):
        return v
    s = str(v).strip()
    # allow name
    if s in enum_cls.__members__:
        return enum_cls[s]
    return enum_cls(s)


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(v)


def _coerce(cls, key: str, v: Any) -> Any:
    if key in _ENUMS:
        return _as_enum(v, _ENUMS[key])
    default = getattr(cls(), key)
    if isinstance(default, bool):
        return _as_bool(v)
    if isinstance(default, int):
        return int(float(v))
    if isinstance(default, float):
        return float(v)
    return v


def _build(cls, data: Mapping[str, Any], where: str):
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        raise ValueError(f"Unknown config key(s) in {where}: {unknown}")
    return cls(**{k: _coerce(cls, k, v) for k, v in data.items()})


def config_from_dict(data: Mapping[str, Any]) -> BacktestConfig:
    """Build a BacktestConfig from nested plain data (JSON-like).

    Enum fields accept either the enum value string (recommended) or the enum name.
    """
    top: Dict[str, Any] = {}
    nested: Dict[str, Any] = {}
    for k, v in data.items():
        if k in _SECTIONS:
            if not isinstance(v, Mapping):
                raise ValueError(f"Config section '{k}' must be an object, got {type(v).__name__}")
            nested[k] = _build(_SECTIONS[k], v, k)
        else:
            top[k] = v
    cfg = _build(BacktestConfig, top, "backtest config")
    return replace(cfg, **nested) if nested else cfg


def config_to_dict(cfg: BacktestConfig) -> Dict[str, Any]:
    d = asdict(cfg)
    d["atr_method"] = cfg.atr_method.value
    d["strategy"]["strategy"] = cfg.strategy.strategy.value
    return d


def load_backtest_config(path: str | Path) -> BacktestConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Config file must hold a JSON object: {p}")
    return config_from_dict(data)


def _read_table(path: str | Path, sheet: Optional[str] = None) -> pd.DataFrame:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    if p.suffix.lower() in {".xlsx", ".xls"}:
        df = pd.read_excel(p, sheet_name=sheet or 0)
    else:
        df = pd.read_csv(p)
    return df


def load_sweep_configs(
    path: str | Path,
    sheet: Optional[str] = None,
    base: Optional[BacktestConfig] = None,
) -> List[Tuple[str, BacktestConfig]]:
    """Load (run_id, BacktestConfig) pairs from CSV/XLSX, one row per run.

    Columns
    -------
    - optional `run_id` (defaults to the row number)
    - optional `enabled` (rows with 0 are skipped)
    - top-level fields by name (`fee_bps`, `atr_stop_multiplier`, ...)
    - nested fields as `section.field` (`volume_gate.enabled`, `strategy.fast_window`, ...)
      or by bare field name for `strategy` fields (`fast_window`, `rsi_entry`, ...)

    Empty cells fall back to `base` (default BacktestConfig()).
    """
    df = _read_table(path, sheet=sheet)
    if df.empty:
        return []

    # normalize column names
    df = df.rename(columns={c: str(c).strip() for c in df.columns})
    if "enabled" in df.columns:
        df = df[df["enabled"].astype(int) != 0].copy()

    base_dict = config_to_dict(base or BacktestConfig())
    strategy_fields = {f.name for f in fields(StrategyConfig)}

    out: List[Tuple[str, BacktestConfig]] = []
    for n, (_, r) in enumerate(df.iterrows()):
        d = copy.deepcopy(base_dict)
        for col in df.columns:
            if col in {"run_id", "enabled"}:
                continue
            v = r[col]
            if pd.isna(v):
                continue
            if "." in col:
                section, key = col.split(".", 1)
                if section not in _SECTIONS:
                    raise ValueError(f"Unknown config section in column '{col}'")
                d[section][key] = v
            elif col in strategy_fields:
                d["strategy"][col] = v
            else:
                d[col] = v
        run_id = str(r["run_id"]) if "run_id" in df.columns and not pd.isna(r["run_id"]) else f"run_{n:03d}"
        out.append((run_id, config_from_dict(d)))
    return out
