import json
import math

import pytest

from optspot.concentration import (
    ConcentrationModel, analyze_concentration, is_confident_thickness, solve_concentration
)
from optspot.utils import CUSO4_COEFFICIENTS

MODEL = ConcentrationModel.default()


def test_default_table():
    assert MODEL.name == "CuSO4"
    assert MODEL.a == (35190.0, -96479.0)
    assert MODEL.b == (2037.8, 5645.6)
    assert MODEL.c == (-31.43, -86.72)


def test_forward_model_expands_coefficients():
    c, t = 5.0, 1.3
    ln_c = math.log(c)
    a = 35190 * ln_c - 96479
    b = 2037.8 * ln_c + 5645.6
    cc = -31.43 * ln_c - 86.72
    assert MODEL.area_increase(c, t) == pytest.approx(a * t * t + b * t + cc)


@pytest.mark.parametrize("c", [1e-4, 0.001, 0.05, 1.0, 11.8, 42.0, 99.99, 100.0])
def test_round_trip(c):
    area = MODEL.area_increase(c, 1.0)
    assert MODEL.solve(area, 1.0) == pytest.approx(c, rel=1e-6)


def test_closed_form_value():
    expected = math.exp((900.0 + 90920.12) / 37196.37)
    assert solve_concentration(900.0) == pytest.approx(expected)


def test_clamps_above_hundred():
    assert MODEL.solve(MODEL.area_increase(100.0) + 1000.0) == 100.0
    assert MODEL.solve(1e6) == 100.0


@pytest.mark.parametrize("area", [1e9, math.inf, math.nan, -1e8])
def test_non_finite_or_vanishing_gives_zero(area):
    assert MODEL.solve(area) == 0.0


def test_degenerate_denominator():
    zero = ConcentrationModel("zero", a=(0.0, 1.0), b=(0.0, 1.0), c=(0.0, 1.0))
    assert zero.solve(50.0) == 0.0


def test_from_json(tmp_path):
    table = dict(CUSO4_COEFFICIENTS, name="test")
    path = tmp_path / "coefficients.json"
    path.write_text(json.dumps(table), encoding="utf-8")

    model = ConcentrationModel.from_json(path)
    assert model.name == "test"
    assert model.a == MODEL.a


def test_malformed_table():
    with pytest.raises(ValueError):
        ConcentrationModel.from_dict({"a": {"coeff": 1}, "b": {}, "c": {}})


def test_thickness_confidence_range():
    assert is_confident_thickness(1.0)
    assert is_confident_thickness(0.5)
    assert not is_confident_thickness(0.3)
    assert not is_confident_thickness(2.5)


def test_analyze_detected():
    film = math.pi * 12.5 ** 2
    result = analyze_concentration(film * 2, 25.0)

    assert result.film_area_mm2 == pytest.approx(film)
    assert result.area_increase_percent == pytest.approx(200.0)
    assert result.concentration_percent == pytest.approx(solve_concentration(200.0))
    assert result.is_detected
    assert result.message.startswith("CuSO4 Detected: ")
    assert not result.low_confidence


def test_analyze_not_detected():
    # ln(C) = AreaIncrease - 20，面积为 0 时 C 约 2e-9 %
    faint = ConcentrationModel("faint", a=(1.0, 20.0), b=(0.0, 0.0), c=(0.0, 0.0))
    result = analyze_concentration(0.0, 25.0, model=faint)

    assert 0.0 < result.concentration_percent < 0.001
    assert not result.is_detected
    assert result.message == "Not Detected"
    assert result.formatted()['concentration_percent'] == "0"


def test_analyze_low_confidence_thickness():
    result = analyze_concentration(100.0, 25.0, thickness_mm=3.0)
    assert result.low_confidence
    assert result.film_thickness_mm == 3.0


def test_analyze_rejects_bad_film_diameter():
    with pytest.raises(ValueError):
        analyze_concentration(100.0, 0.0)
