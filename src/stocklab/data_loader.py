from __future__ import annotations

import logging
import re
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from stocklab.core.types import PriceBar, PriceSeries

logger = logging.getLogger(__name__)

OHLCV_COLS = ["open", "high", "low", "close", "volume"]


def sanitize_ohlcv(df: pd.DataFrame) -> pd.DataFrame:
    """Sanitize OHLCV data before it reaches the engine.

    Rules
    -----
    - Coerce all price/volume columns to numeric
    - Drop rows with missing or non-positive close
    - Treat non-positive O/H/L as missing and fill them from close
    - Enforce high >= max(open, close) and low <= min(open, close)
    - Missing / negative volume becomes 0
    """
    out = df.copy()
    if "volume" not in out.columns:
        out["volume"] = 0.0
    for c in OHLCV_COLS:
        out[c] = pd.to_numeric(out[c], errors="coerce").astype(float)

    out.loc[out["close"] <= 0, "close"] = np.nan
    out = out.dropna(subset=["close"]).copy()

    for c in ["open", "high", "low"]:
        out.loc[out[c] <= 0, c] = np.nan
        out[c] = out[c].fillna(out["close"])

    out["high"] = out[["high", "open", "close"]].max(axis=1)
    out["low"] = out[["low", "open", "close"]].min(axis=1)

    vol = out["volume"].fillna(0.0)
    out["volume"] = vol.where(vol >= 0, 0.0)
    return out


def load_ohlcv_csv(csv_path: str | Path) -> pd.DataFrame:
    """Load a date,open,high,low,close,(volume) CSV into a sorted, de-duplicated frame.

    Column names are matched case-insensitively. Duplicate dates keep the last row.
    """
    p = Path(csv_path)
    if not p.exists():
        raise FileNotFoundError(p)

    df = pd.read_csv(p)
    df = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
    required = {"date", "open", "high", "low", "close"}
    if not required.issubset(df.columns):
        raise ValueError(f"Unrecognized OHLCV schema: {p}. Columns={list(df.columns)}")

    keep = ["date", "open", "high", "low", "close"] + (["volume"] if "volume" in df.columns else [])
    df = df[keep].copy()
    df["date"] = pd.to_datetime(df["date"]).dt.normalize()
    df = df.drop_duplicates(subset=["date"], keep="last").set_index("date").sort_index()

    before = len(df)
    df = sanitize_ohlcv(df)
    if len(df) < before:
        logger.info("dropped %d row(s) with invalid close from %s", before - len(df), p)
    return df


def frame_to_bars(df: pd.DataFrame) -> List[PriceBar]:
    """Convert a date-indexed OHLCV frame to PriceBar objects (ISO date strings)."""
    vols = df["volume"] if "volume" in df.columns else pd.Series(0.0, index=df.index)
    bars: List[PriceBar] = []
    for ts, o, h, l, c, v in zip(df.index, df["open"], df["high"], df["low"], df["close"], vols):
        bars.append(
            PriceBar(
                date=pd.Timestamp(ts).strftime("%Y-%m-%d"),
                open=float(o),
                high=float(h),
                low=float(l),
                close=float(c),
                volume=float(v),
            )
        )
    return bars


def bars_to_frame(bars: PriceSeries) -> pd.DataFrame:
    df = pd.DataFrame(
        {
            "date": pd.to_datetime([b.date for b in bars]),
            "open": [b.open for b in bars],
            "high": [b.high for b in bars],
            "low": [b.low for b in bars],
            "close": [b.close for b in bars],
            "volume": [b.volume for b in bars],
        },
        columns=["date"] + OHLCV_COLS,
    )
    return df.set_index("date")


def filter_by_date(bars: PriceSeries, start: Optional[str] = None, end: Optional[str] = None) -> List[PriceBar]:
    """Keep bars with start <= date <= end (ISO strings, inclusive).

    If the range leaves nothing, the full series is returned unchanged.
    """
    out = [b for b in bars if (start is None or b.date >= start) and (end is None or b.date <= end)]
    return out if out else list(bars)


def _iso_week_key(iso: str) -> str:
    y, w, _ = date.fromisoformat(iso[:10]).isocalendar()
    return f"{y}-W{w:02d}"


def resample_weekly(bars: PriceSeries) -> List[PriceBar]:
    """Aggregate daily bars into ISO weeks.

    open=first, high=max, low=min, close=last, volume=sum; the bar is labelled with
    the last trading date of the week.
    """
    out: List[PriceBar] = []
    cur: Optional[Dict[str, float]] = None
    cur_key = ""
    cur_date = ""
    for b in bars:
        k = _iso_week_key(b.date)
        if cur is None or k != cur_key:
            if cur is not None:
                out.append(PriceBar(date=cur_date, **cur))
            cur_key = k
            cur = {"open": b.open, "high": b.high, "low": b.low, "close": b.close, "volume": b.volume}
        else:
            cur["high"] = max(cur["high"], b.high)
            cur["low"] = min(cur["low"], b.low)
            cur["close"] = b.close
            cur["volume"] = cur["volume"] + b.volume
        cur_date = b.date
    if cur is not None:
        out.append(PriceBar(date=cur_date, **cur))
    return out


_DIGITS = re.compile(r"\D")


def parse_event_date(raw: object) -> str:
    """Normalize an event timestamp to YYYY-MM-DD; '' when it cannot be parsed.

    Accepts ISO-like strings (2026-02-11 ...) and compact forms (20260211T093000Z).
    """
    s = str(raw or "").strip()
    if not s or s.lower() == "nan":
        return ""
    if "-" in s and len(s) >= 10:
        return s[:10]
    digits = _DIGITS.sub("", s)
    if len(digits) < 8:
        return ""
    return f"{digits[0:4]}-{digits[4:6]}-{digits[6:8]}"


def load_event_counts(csv_path: str | Path) -> Dict[str, int]:
    """Load a date -> event count mapping.

    Supported layouts
    -----------------
    - Aggregated: date,count
    - Raw events: one row per event with a `date` or `seendate` column
    """
    p = Path(csv_path)
    if not p.exists():
        raise FileNotFoundError(p)

    df = pd.read_csv(p, dtype=str)
    df = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
    date_col = "date" if "date" in df.columns else ("seendate" if "seendate" in df.columns else None)
    if date_col is None:
        raise ValueError(f"Event CSV needs a 'date' or 'seendate' column: {p}. Columns={list(df.columns)}")

    dates = df[date_col].map(parse_event_date)
    if "count" in df.columns:
        counts = pd.to_numeric(df["count"], errors="coerce").fillna(0).astype(int)
    else:
        counts = pd.Series(1, index=df.index)

    agg = pd.DataFrame({"date": dates, "count": counts})
    agg = agg[agg["date"] != ""]
    grouped = agg.groupby("date")["count"].sum()
    return {str(k): int(v) for k, v in grouped.items()}
