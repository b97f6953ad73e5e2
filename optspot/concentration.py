"""
浓度模块 - 经验模型的闭式反解

模型: AreaIncrease(%) = a(C)·T² + b(C)·T + c(C)
其中 a、b、c 均为 ln(C) 的仿射函数，因此 ln(C) 可直接解出:

    ln(C) = (AreaIncrease - (a₀·T² + b₀·T + c₀)) / (a₁·T² + b₁·T + c₁)

a₁、a₀ 分别为 a(C) 中 ln(C) 的系数与常数项，b、c 同理。
"""
import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from .calibration import area_increase_percent, film_area_mm2
from .models import AnalysisResult
from .utils import (
    CUSO4_COEFFICIENTS, FILM_THICKNESS_MM, CONFIDENT_THICKNESS_RANGE_MM,
    DETECTION_THRESHOLD_PERCENT, MIN_DENOMINATOR, MAX_CONCENTRATION_PERCENT
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConcentrationModel:
    """系数表，每项为 (ln(C) 系数, 常数项)"""
    name: str
    a: Tuple[float, float]
    b: Tuple[float, float]
    c: Tuple[float, float]

    @classmethod
    def from_dict(cls, table: dict) -> 'ConcentrationModel':
        """从 {"name", "a": {"coeff", "constant"}, ...} 构造"""
        try:
            terms = {
                key: (float(table[key]["coeff"]), float(table[key]["constant"]))
                for key in ("a", "b", "c")
            }
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"系数表格式错误: {e}") from e
        return cls(name=str(table.get("name", "custom")), **terms)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> 'ConcentrationModel':
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def default(cls) -> 'ConcentrationModel':
        return cls.from_dict(CUSO4_COEFFICIENTS)

    def log_coefficient(self, thickness_mm: float) -> float:
        """ln(C) 的合并系数 (分母)"""
        t = thickness_mm
        return self.a[0] * t * t + self.b[0] * t + self.c[0]

    def constant_term(self, thickness_mm: float) -> float:
        t = thickness_mm
        return self.a[1] * t * t + self.b[1] * t + self.c[1]

    def area_increase(self, concentration_percent: float,
                      thickness_mm: float = FILM_THICKNESS_MM) -> float:
        """正向模型：由浓度计算面积增长率"""
        ln_c = math.log(concentration_percent)
        return ln_c * self.log_coefficient(thickness_mm) + self.constant_term(thickness_mm)

    def solve(self, area_increase: float,
              thickness_mm: float = FILM_THICKNESS_MM) -> float:
        """由面积增长率反解浓度 (%)，结果限制在 [0, 100]"""
        denominator = self.log_coefficient(thickness_mm)
        if abs(denominator) < MIN_DENOMINATOR:
            return 0.0

        ln_c = (area_increase - self.constant_term(thickness_mm)) / denominator
        try:
            c = math.exp(ln_c)
        except OverflowError:
            c = math.inf

        if not math.isfinite(c) or c <= 0:
            return 0.0
        if c > MAX_CONCENTRATION_PERCENT:
            return MAX_CONCENTRATION_PERCENT
        return c


def solve_concentration(area_increase: float,
                        thickness_mm: float = FILM_THICKNESS_MM,
                        model: Optional[ConcentrationModel] = None) -> float:
    return (model or ConcentrationModel.default()).solve(area_increase, thickness_mm)


def is_confident_thickness(thickness_mm: float) -> bool:
    low, high = CONFIDENT_THICKNESS_RANGE_MM
    return low <= thickness_mm <= high


def analyze_concentration(reaction_area_mm2: float,
                          film_diameter_mm: float,
                          thickness_mm: float = FILM_THICKNESS_MM,
                          model: Optional[ConcentrationModel] = None) -> AnalysisResult:
    """根据反应面积和薄膜直径计算浓度

    Args:
        reaction_area_mm2: 反应区域面积 (mm²)
        film_diameter_mm: 原始薄膜直径 (mm)
        thickness_mm: 薄膜厚度 (mm)
        model: 系数表，默认 CuSO4

    Returns:
        AnalysisResult: 分析结果
    """
    if film_diameter_mm <= 0:
        raise ValueError("薄膜直径必须大于0")

    model = model or ConcentrationModel.default()
    film_area = film_area_mm2(film_diameter_mm)
    increase = area_increase_percent(reaction_area_mm2, film_area)
    concentration = model.solve(increase, thickness_mm)
    detected = concentration > DETECTION_THRESHOLD_PERCENT

    low_confidence = not is_confident_thickness(thickness_mm)
    if low_confidence:
        logger.info(f"薄膜厚度 {thickness_mm}mm 超出模型标定范围，结果置信度低")

    message = (f"{model.name} Detected: {AnalysisResult.format_concentration(concentration)}%"
               if detected else "Not Detected")

    return AnalysisResult(
        area_mm2=reaction_area_mm2,
        area_increase_percent=increase,
        concentration_percent=concentration,
        film_area_mm2=film_area,
        is_detected=detected,
        message=message,
        film_thickness_mm=thickness_mm,
        low_confidence=low_confidence,
    )
