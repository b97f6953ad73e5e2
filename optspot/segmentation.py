"""
分割模块 - HSV 红色掩码、Sobel 边界精修与形态学开运算

所有函数都是对 (height, width) 网格的纯变换，不修改输入。
"""
import logging
from typing import Tuple

import numpy as np

from .models import Raster
from .utils import (
    RED_HUE_LOW_DEG, RED_HUE_HIGH_DEG, RED_SATURATION_MIN, RED_VALUE_MIN,
    RED_DOMINANCE_RATIO, RELAXED_HUE_LOW_DEG, RELAXED_HUE_HIGH_DEG,
    RELAXED_SATURATION_MIN, RELAXED_VALUE_MIN, RELAX_MIN_FRACTION,
    GRADIENT_THRESHOLD
)

logger = logging.getLogger(__name__)

# 3x3 邻域偏移(含中心)
_OFFSETS = [(dy, dx) for dy in (-1, 0, 1) for dx in (-1, 0, 1)]


def rgb_to_hsv(rgb: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """RGB(uint8) 转 HSV

    Returns:
        (h, s, v): h 为角度 [0, 360)，s、v 为 [0, 1]
    """
    rgb = rgb.astype(np.float64) / 255.0
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]

    cmax = rgb.max(axis=-1)
    cmin = rgb.min(axis=-1)
    delta = cmax - cmin
    safe = np.where(delta == 0, 1.0, delta)

    # 最大值通道优先级 R > G > B
    h = np.select(
        [delta == 0, cmax == r, cmax == g],
        [0.0, np.mod((g - b) / safe, 6.0), (b - r) / safe + 2.0],
        default=(r - g) / safe + 4.0,
    ) * 60.0
    h = np.mod(h, 360.0)

    s = np.where(cmax == 0, 0.0, delta / np.where(cmax == 0, 1.0, cmax))
    v = cmax
    return h, s, v


def _red_candidates(rgb: np.ndarray, h, s, v, hue_low, hue_high, sat_min, val_min,
                    dominance: float) -> np.ndarray:
    r = rgb[..., 0].astype(np.float64)
    g = rgb[..., 1].astype(np.float64)
    b = rgb[..., 2].astype(np.float64)
    return (
        ((h < hue_low) | (h > hue_high))
        & (s > sat_min)
        & (v > val_min)
        & (r > g * dominance)
        & (r > b * dominance)
    )


def create_red_mask(raster: Raster,
                    min_fraction: float = RELAX_MIN_FRACTION,
                    hue_low: float = RED_HUE_LOW_DEG,
                    hue_high: float = RED_HUE_HIGH_DEG,
                    saturation_min: float = RED_SATURATION_MIN,
                    value_min: float = RED_VALUE_MIN,
                    dominance: float = RED_DOMINANCE_RATIO,
                    relaxed_hue_low: float = RELAXED_HUE_LOW_DEG,
                    relaxed_hue_high: float = RELAXED_HUE_HIGH_DEG,
                    relaxed_saturation_min: float = RELAXED_SATURATION_MIN,
                    relaxed_value_min: float = RELAXED_VALUE_MIN) -> np.ndarray:
    """生成红色候选掩码

    候选像素少于 min_fraction 时，用放宽阈值对整幅图重新评估，以捕捉淡色反应。
    放宽阈值只要求 R 大于 G、B。

    Args:
        raster: 解码后的图像
        min_fraction: 触发放宽阈值的候选像素比例
        hue_low, hue_high: 色相在 [0, hue_low) 或 (hue_high, 360) 内视为红色
        dominance: R 需同时超过 G、B 的倍数
    """
    rgb = raster.rgb
    h, s, v = rgb_to_hsv(rgb)

    mask = _red_candidates(rgb, h, s, v, hue_low, hue_high,
                           saturation_min, value_min, dominance)
    flagged = int(mask.sum())
    logger.debug(f"严格阈值候选像素: {flagged}")

    if flagged < raster.width * raster.height * min_fraction:
        relaxed = _red_candidates(rgb, h, s, v, relaxed_hue_low, relaxed_hue_high,
                                  relaxed_saturation_min, relaxed_value_min, 1.0)
        mask = mask | relaxed
        logger.debug(f"候选过少，放宽阈值后: {int(mask.sum())}")

    return mask


def sobel_magnitude(channel: np.ndarray) -> np.ndarray:
    """3x3 Sobel 梯度幅值，图像边框像素为 0"""
    c = channel.astype(np.float64)
    mag = np.zeros_like(c)
    if c.shape[0] < 3 or c.shape[1] < 3:
        return mag

    tl, tc, tr = c[:-2, :-2], c[:-2, 1:-1], c[:-2, 2:]
    ml, mr = c[1:-1, :-2], c[1:-1, 2:]
    bl, bc, br = c[2:, :-2], c[2:, 1:-1], c[2:, 2:]

    gx = (tr + 2 * mr + br) - (tl + 2 * ml + bl)
    gy = (bl + 2 * bc + br) - (tl + 2 * tc + tr)
    mag[1:-1, 1:-1] = np.sqrt(gx * gx + gy * gy)
    return mag


def _shifted(mask: np.ndarray, dy: int, dx: int, fill: bool) -> np.ndarray:
    """返回 out[y, x] = mask[y + dy, x + dx]，越界取 fill"""
    padded = np.pad(mask, 1, mode='constant', constant_values=fill)
    h, w = mask.shape
    return padded[1 + dy:1 + dy + h, 1 + dx:1 + dx + w]


def edge_adjacent(mask: np.ndarray) -> np.ndarray:
    """掩码为真且 8 邻域内存在图像内的假像素"""
    has_false = np.zeros_like(mask, dtype=bool)
    for dy, dx in _OFFSETS:
        if dy == 0 and dx == 0:
            continue
        # 图像外不算掩码外
        has_false |= ~_shifted(mask, dy, dx, fill=True)
    return mask & has_false


def refine_with_gradient(raster: Raster, mask: np.ndarray,
                         threshold: float = GRADIENT_THRESHOLD) -> np.ndarray:
    """按红色通道梯度修剪边界

    边缘相邻像素仅在梯度幅值 >= threshold 时保留，内部像素全部保留。
    """
    gradient = sobel_magnitude(raster.red)
    near_edge = edge_adjacent(mask)
    refined = mask & (~near_edge | (gradient >= threshold))
    logger.debug(f"边界精修: {int(mask.sum())} -> {int(refined.sum())}")
    return refined


def erode(mask: np.ndarray) -> np.ndarray:
    """3x3 腐蚀，越界视为假"""
    out = mask.astype(bool).copy()
    for dy, dx in _OFFSETS:
        out &= _shifted(mask.astype(bool), dy, dx, fill=False)
    return out


def dilate(mask: np.ndarray) -> np.ndarray:
    """3x3 膨胀"""
    out = mask.astype(bool).copy()
    for dy, dx in _OFFSETS:
        out |= _shifted(mask.astype(bool), dy, dx, fill=False)
    return out


def morphological_open(mask: np.ndarray) -> np.ndarray:
    """先腐蚀后膨胀，去除散点噪声"""
    return dilate(erode(mask))
