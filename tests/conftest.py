from __future__ import annotations

import math
from datetime import date, timedelta
from typing import List, Optional, Sequence

import pytest

from stocklab.core.types import PriceBar


def make_bars(
    closes: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
    spread: float = 1.0,
    start: str = "2024-01-01",
) -> List[PriceBar]:
    d0 = date.fromisoformat(start)
    out = []
    for i, c in enumerate(closes):
        v = volumes[i] if volumes is not None else 1000.0
        out.append(
            PriceBar(
                date=(d0 + timedelta(days=i)).isoformat(),
                open=float(c),
                high=float(c) + spread,
                low=float(c) - spread,
                close=float(c),
                volume=float(v),
            )
        )
    return out


@pytest.fixture
def wave_bars() -> List[PriceBar]:
    closes = [100.0 + 10.0 * math.sin(i / 5.0) + 0.1 * i for i in range(200)]
    volumes = [1000.0 + 300.0 * math.cos(i / 3.0) for i in range(200)]
    return make_bars(closes, volumes)


@pytest.fixture
def trend_bars() -> List[PriceBar]:
    return make_bars([100.0 + i for i in range(120)])
