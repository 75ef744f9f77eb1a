import math

import pytest

from stocklab.core.types import PriceBar
from stocklab.indicators.atr import atr_sma, atr_wilder, true_range
from stocklab.indicators.moving_average import sma
from stocklab.indicators.rsi import rsi, rsi_wilder
from stocklab.indicators.volume import volume_ratio

from conftest import make_bars


def _tr_bars():
    # true ranges: -, 3, 1, 4
    return [
        PriceBar("2024-01-01", 10, 11, 9, 10, 100),
        PriceBar("2024-01-02", 10, 12, 9, 10, 100),
        PriceBar("2024-01-03", 10, 11, 10, 10, 100),
        PriceBar("2024-01-04", 10, 14, 10, 10, 100),
    ]


class TestSma:
    def test_warmup_and_values(self):
        assert sma([1, 2, 3, 4, 5], 3) == [None, None, 2.0, 3.0, 4.0]

    def test_equals_trailing_mean(self):
        values = [3.0, 1.5, 7.25, 2.0, 9.5, 4.0, 6.0]
        out = sma(values, 4)
        for i in range(3, len(values)):
            assert out[i] == pytest.approx(sum(values[i - 3 : i + 1]) / 4)

    def test_window_longer_than_series(self):
        assert sma([1.0, 2.0], 5) == [None, None]


class TestRsi:
    def test_undefined_before_period(self):
        out = rsi([float(x) for x in range(1, 30)], 14)
        assert all(v is None for v in out[:14])
        assert out[14] is not None

    def test_no_losses_is_100(self):
        out = rsi([1.0, 2.0, 3.0, 4.0, 5.0], 3)
        assert out[3] == 100.0
        assert out[4] == 100.0

    def test_recursion_on_raw_sums(self):
        # seed at i=2 from sums: gain 0, loss 2 -> 0
        # i=3: gain (0*1 + 1)/2 = 0.5, loss (2*1 + 0)/2 = 1 -> RS 0.5 -> 33.33
        # i=4: gain 0.75, loss 0.5 -> 60
        out = rsi([10.0, 9.0, 8.0, 9.0, 10.0, 11.0, 10.0], 2)
        assert out[:2] == [None, None]
        assert out[2] == pytest.approx(0.0)
        assert out[3] == pytest.approx(100.0 / 3.0)
        assert out[4] == pytest.approx(60.0)
        assert out[5] == pytest.approx(700.0 / 9.0)
        assert out[6] == pytest.approx(100.0 - 100.0 / 1.7)

    def test_wilder_variant_seeds_with_averages(self):
        # seed at i=2: avg gain 0.5, avg loss 0.5 -> 50
        # i=3: gain (0.5*1 + 1)/2 = 0.75, loss 0.25 -> RS 3 -> 75
        out = rsi_wilder([1.0, 2.0, 1.0, 2.0], 2)
        assert out[:2] == [None, None]
        assert out[2] == pytest.approx(50.0)
        assert out[3] == pytest.approx(75.0)

    def test_variants_share_seed_value(self):
        closes = [1.0, 2.0, 1.0, 2.0]
        assert rsi(closes, 2)[2] == rsi_wilder(closes, 2)[2]
        assert rsi(closes, 2)[3] == pytest.approx(200.0 / 3.0)

    def test_range(self, wave_bars):
        out = rsi([b.close for b in wave_bars], 14)
        defined = [v for v in out if v is not None]
        assert defined
        assert all(0.0 <= v <= 100.0 for v in defined)


class TestAtr:
    def test_true_range(self):
        assert true_range(_tr_bars()) == [None, 3.0, 1.0, 4.0]

    def test_rolling_mean_uses_defined_count(self):
        out = atr_sma(_tr_bars(), 3)
        assert out[0] is None and out[1] is None
        # window [-, 3, 1] -> (3 + 1) / 2
        assert out[2] == pytest.approx(2.0)
        assert out[3] == pytest.approx(8.0 / 3.0)

    def test_wilder_variant(self):
        out = atr_wilder(_tr_bars(), 2)
        assert out[:2] == [None, None]
        assert out[2] == pytest.approx(2.0)
        assert out[3] == pytest.approx(3.0)

    def test_short_series(self):
        assert atr_sma(_tr_bars()[:1], 14) == [None]
        assert atr_wilder(_tr_bars()[:2], 14) == [None, None]

    def test_non_negative(self, wave_bars):
        for series in (atr_sma(wave_bars, 14), atr_wilder(wave_bars, 14)):
            defined = [v for v in series if v is not None]
            assert defined
            assert all(v >= 0 and math.isfinite(v) for v in defined)


class TestVolumeRatio:
    def test_values(self):
        bars = make_bars([10, 10, 10, 10], volumes=[10, 20, 30, 40])
        out = volume_ratio(bars, 2)
        assert out[0] is None
        assert out[1] == pytest.approx(20 / 15)
        assert out[2] == pytest.approx(30 / 25)
        assert out[3] == pytest.approx(40 / 35)

    def test_zero_average_is_undefined(self):
        bars = make_bars([10, 10, 10], volumes=[0, 0, 0])
        assert volume_ratio(bars, 2) == [None, None, None]
