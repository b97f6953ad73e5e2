"""
区域模块 - 8 连通域提取与边界多边形生成
"""
import logging
import math
from collections import deque
from typing import List, Tuple

import numpy as np

from .errors import InsufficientRegionError
from .models import BoundaryPolygon
from .utils import (
    MIN_CLUSTER_PIXELS, POLYGON_VERTEX_COUNT, EMPTY_SECTOR_OFFSET_PX,
    OUTLIER_DISTANCE_FACTOR, OUTLIER_CLAMP_FACTOR
)

logger = logging.getLogger(__name__)

Pixel = Tuple[int, int]  # (x, y)

_NEIGHBORS_8 = [(dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if dx or dy]
_NEIGHBORS_4 = [(-1, 0), (1, 0), (0, -1), (0, 1)]


def find_clusters(mask: np.ndarray) -> List[List[Pixel]]:
    """BFS 将掩码划分为互不重叠的 8 连通域，按光栅扫描顺序返回"""
    height, width = mask.shape
    visited = np.zeros((height, width), dtype=bool)
    clusters = []

    for y, x in zip(*np.nonzero(mask)):
        y = int(y)
        x = int(x)
        if visited[y, x]:
            continue

        cluster = []
        queue = deque([(x, y)])
        visited[y, x] = True
        while queue:
            cx, cy = queue.popleft()
            cluster.append((cx, cy))
            for dx, dy in _NEIGHBORS_8:
                nx, ny = cx + dx, cy + dy
                if 0 <= nx < width and 0 <= ny < height and mask[ny, nx] and not visited[ny, nx]:
                    visited[ny, nx] = True
                    queue.append((nx, ny))
        clusters.append(cluster)

    return clusters


def find_largest_cluster(mask: np.ndarray,
                         min_pixels: int = MIN_CLUSTER_PIXELS) -> List[Pixel]:
    """返回像素数最多的连通域(并列时取先扫描到的)

    Raises:
        InsufficientRegionError: 最大连通域少于 min_pixels 像素
    """
    largest: List[Pixel] = []
    clusters = find_clusters(mask)
    for cluster in clusters:
        if len(cluster) > len(largest):
            largest = cluster

    logger.debug(f"连通域数量: {len(clusters)}, 最大: {len(largest)} 像素")
    if len(largest) < min_pixels:
        raise InsufficientRegionError(len(largest), min_pixels)
    return largest


def boundary_pixels(cluster: List[Pixel], mask: np.ndarray) -> List[Pixel]:
    """4 邻域中至少有一个不属于该连通域(掩码外或图像外)的像素"""
    height, width = mask.shape
    members = set(cluster)
    boundary = []
    for x, y in cluster:
        for dx, dy in _NEIGHBORS_4:
            nx, ny = x + dx, y + dy
            if not (0 <= nx < width and 0 <= ny < height) or not mask[ny, nx] \
                    or (nx, ny) not in members:
                boundary.append((x, y))
                break
    return boundary


def _clamp_outliers(vertices: np.ndarray, cx: float, cy: float,
                    distance_factor: float, clamp_factor: float) -> np.ndarray:
    """离群顶点沿自身角度收回到平均半径的 clamp_factor 倍"""
    dx = vertices[:, 0] - cx
    dy = vertices[:, 1] - cy
    dist = np.hypot(dx, dy)
    mean_dist = float(dist.mean())

    outliers = dist > mean_dist * distance_factor
    if outliers.any():
        logger.debug(f"收回离群顶点 {int(outliers.sum())} 个 (平均半径 {mean_dist:.2f})")
        angles = np.arctan2(dy[outliers], dx[outliers])
        vertices = vertices.copy()
        vertices[outliers, 0] = cx + np.cos(angles) * mean_dist * clamp_factor
        vertices[outliers, 1] = cy + np.sin(angles) * mean_dist * clamp_factor
    return vertices


def extract_polygon(cluster: List[Pixel], mask: np.ndarray,
                    num_vertices: int = POLYGON_VERTEX_COUNT,
                    default_offset: float = EMPTY_SECTOR_OFFSET_PX,
                    distance_factor: float = OUTLIER_DISTANCE_FACTOR,
                    clamp_factor: float = OUTLIER_CLAMP_FACTOR) -> BoundaryPolygon:
    """由连通域生成固定顶点数的边界多边形

    以全部像素的均值为中心，把 360° 等分为 num_vertices 个扇区，
    每个扇区取距离中心最远的边界像素；空扇区取中心沿扇区中线偏移
    default_offset 像素的点。顶点按角度升序排列。

    Args:
        cluster: 连通域像素 (x, y)
        mask: 清理后的掩码
        num_vertices: 顶点数

    Returns:
        BoundaryPolygon: 恰好 num_vertices 个顶点
    """
    if num_vertices < 3:
        raise ValueError("顶点数至少为 3")
    if not cluster:
        raise ValueError("连通域为空")

    pixels = np.array(cluster, dtype=float)
    cx = float(pixels[:, 0].mean())
    cy = float(pixels[:, 1].mean())

    boundary = boundary_pixels(cluster, mask)
    candidates = np.array(boundary if len(boundary) >= 3 else cluster, dtype=float)

    dx = candidates[:, 0] - cx
    dy = candidates[:, 1] - cy
    angles = np.arctan2(dy, dx)
    dists = np.hypot(dx, dy)

    step = 2 * math.pi / num_vertices
    vertices = np.empty((num_vertices, 2), dtype=float)

    for i in range(num_vertices):
        center = step * i
        # 环绕角差，取值 [0, pi]
        diff = np.abs(np.mod(angles - center + math.pi, 2 * math.pi) - math.pi)
        in_sector = np.where(diff <= step / 2, dists, 0.0)
        best = int(np.argmax(in_sector))

        if in_sector[best] > 0:
            vertices[i] = candidates[best]
        else:
            vertices[i] = (cx + math.cos(center) * default_offset,
                           cy + math.sin(center) * default_offset)

    vertices = _clamp_outliers(vertices, cx, cy, distance_factor, clamp_factor)
    return BoundaryPolygon.from_points(vertices.tolist())
