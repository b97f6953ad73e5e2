"""
标定与几何模块 - 参考物比例尺、鞋带公式面积、面积增长率
"""
import math
from typing import Sequence, Tuple, Union

from .errors import DegenerateScaleError
from .models import BoundaryPolygon, CircleReference, ReferenceShape, SegmentReference


def reference_pixel_extent(reference: ReferenceShape) -> float:
    """参考物的像素尺寸：圆取直径，线段取长度"""
    if isinstance(reference, CircleReference):
        return 2.0 * reference.radius_px
    if isinstance(reference, SegmentReference):
        (x0, y0), (x1, y1) = reference.start, reference.end
        return math.hypot(x1 - x0, y1 - y0)
    raise TypeError(f"未知参考物类型: {type(reference).__name__}")


def compute_scale(reference: ReferenceShape, real_mm: float) -> float:
    """计算比例尺 (mm/像素)

    圆: real_diameter / (2 * radius)；线段: real_length / 像素长度。
    像素尺寸为 0 时返回 0.0 而不抛出，调用方需用 require_scale 检查。
    """
    if real_mm <= 0:
        raise ValueError("参考物真实尺寸必须大于0")
    extent = reference_pixel_extent(reference)
    if extent == 0:
        return 0.0
    return real_mm / extent


def require_scale(scale: float) -> float:
    """比例尺必须为有限正数"""
    if not math.isfinite(scale) or scale <= 0:
        raise DegenerateScaleError(f"比例尺无效: {scale}")
    return scale


def polygon_area_px(points: Union[BoundaryPolygon, Sequence[Tuple[float, float]]]) -> float:
    """鞋带公式计算多边形像素面积，少于 3 个顶点返回 0"""
    if isinstance(points, BoundaryPolygon):
        points = points.points
    n = len(points)
    if n < 3:
        return 0.0

    s = 0.0
    for i in range(n):
        x1, y1 = points[i]
        x2, y2 = points[(i + 1) % n]
        s += x1 * y2 - x2 * y1
    return abs(s) / 2.0


def polygon_area_mm2(points, scale: float) -> float:
    """像素面积换算为 mm² (线性比例作用于两个维度，故取平方)"""
    return polygon_area_px(points) * scale * scale


def film_area_mm2(film_diameter_mm: float) -> float:
    """原始薄膜面积 (圆形)"""
    radius = film_diameter_mm / 2.0
    return math.pi * radius * radius


def area_increase_percent(reaction_area_mm2: float, film_area: float) -> float:
    """反应面积占原始薄膜面积的百分比"""
    if film_area <= 0:
        return 0.0
    return reaction_area_mm2 / film_area * 100.0
