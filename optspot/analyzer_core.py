"""
图像分析核心模块 - 包含SpotAnalyzer类及检测流水线
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Union

import cv2
import numpy as np

from .calibration import (
    compute_scale, film_area_mm2, polygon_area_mm2, polygon_area_px, require_scale
)
from .capture import prepare_capture
from .concentration import ConcentrationModel, analyze_concentration
from .errors import InsufficientRegionError, SpotAnalysisError
from .models import (
    AnalysisResult, BoundaryPolygon, CircleReference, Raster, ReferenceShape, SegmentReference
)
from .png_decoder import decode_png
from .regions import extract_polygon, find_largest_cluster
from .segmentation import create_red_mask, morphological_open, refine_with_gradient
from .utils import FILM_DIAMETER_MM, FILM_THICKNESS_MM, POLYGON_VERTEX_COUNT

logger = logging.getLogger(__name__)


def segment_reaction(raster: Raster) -> np.ndarray:
    """颜色分割 -> 梯度精修 -> 开运算，返回清理后的掩码"""
    mask = create_red_mask(raster)
    mask = refine_with_gradient(raster, mask)
    return morphological_open(mask)


def detect_reaction_polygon(data: bytes,
                            num_vertices: int = POLYGON_VERTEX_COUNT) -> BoundaryPolygon:
    """PNG 字节 -> 候选边界多边形

    解码失败抛出 FormatError / DecodeError；未找到可靠区域时返回空多边形。
    """
    raster = decode_png(data)
    mask = segment_reaction(raster)
    try:
        cluster = find_largest_cluster(mask)
    except InsufficientRegionError as e:
        logger.info(f"未找到足够大的红色区域: {e}")
        return BoundaryPolygon()
    return extract_polygon(cluster, mask, num_vertices)


class SpotAnalyzer:
    """反应斑点分析核心类"""

    def __init__(self, model: Optional[ConcentrationModel] = None,
                 film_diameter_mm: float = FILM_DIAMETER_MM,
                 film_thickness_mm: float = FILM_THICKNESS_MM):
        self.model = model or ConcentrationModel.default()
        self.film_diameter_mm = film_diameter_mm
        self.film_thickness_mm = film_thickness_mm
        self.raster: Optional[Raster] = None
        self.mask: Optional[np.ndarray] = None
        self.polygon = BoundaryPolygon()
        self.reference: Optional[ReferenceShape] = None
        self.reference_mm: Optional[float] = None
        self.scale_mm_per_pixel = 0.0

    def load_png(self, data: bytes) -> Raster:
        """加载已缩放的 PNG 字节"""
        self.raster = decode_png(data)
        self.mask = None
        self.polygon = BoundaryPolygon()
        return self.raster

    def load_image(self, path: Union[str, Path], resize: bool = True) -> Raster:
        """加载图像文件，resize 为 True 时先缩放到采样尺寸"""
        if resize:
            data = prepare_capture(path)
        else:
            data = Path(path).read_bytes()
        return self.load_png(data)

    def set_film_diameter(self, film_diameter_mm: float):
        """设置薄膜直径"""
        if film_diameter_mm <= 0:
            raise ValueError("薄膜直径必须大于0")
        self.film_diameter_mm = film_diameter_mm

    def set_reference(self, reference: ReferenceShape, real_mm: float) -> float:
        """设置参考物并重新计算比例尺"""
        self.reference = reference
        self.reference_mm = real_mm
        self.scale_mm_per_pixel = compute_scale(reference, real_mm)
        if self.scale_mm_per_pixel <= 0:
            logger.warning("参考物像素尺寸为0，比例尺无效")
        return self.scale_mm_per_pixel

    def set_polygon(self, polygon: BoundaryPolygon):
        """用编辑后的多边形替换自动检测结果"""
        self.polygon = polygon

    def detect(self, num_vertices: int = POLYGON_VERTEX_COUNT) -> BoundaryPolygon:
        """在已加载图像上检测反应区域"""
        if self.raster is None:
            raise ValueError("请先加载图像")

        self.mask = segment_reaction(self.raster)
        try:
            cluster = find_largest_cluster(self.mask)
        except InsufficientRegionError as e:
            logger.info(f"自动检测失败，请手动标记: {e}")
            self.polygon = BoundaryPolygon()
            return self.polygon

        self.polygon = extract_polygon(cluster, self.mask, num_vertices)
        logger.debug(f"检测到多边形: {len(self.polygon)} 个顶点, "
                     f"面积 {polygon_area_px(self.polygon):.1f} 像素")
        return self.polygon

    def reaction_area_mm2(self) -> float:
        """当前多边形面积 (mm²)"""
        scale = require_scale(self.scale_mm_per_pixel)
        return polygon_area_mm2(self.polygon, scale)

    def analyze(self) -> AnalysisResult:
        """由多边形、参考物、薄膜直径计算最终结果

        Raises:
            DegenerateScaleError: 比例尺为0或无效
        """
        if len(self.polygon) < 3:
            return AnalysisResult.empty(film_area_mm2(self.film_diameter_mm))
        return analyze_concentration(self.reaction_area_mm2(), self.film_diameter_mm,
                                     self.film_thickness_mm, self.model)

    # ===== 可视化方法 =====
    def get_visualization(self, zoom: int = 4) -> np.ndarray:
        """获取可视化结果 (BGR)，多边形为绿色、参考物为蓝色"""
        if self.raster is None:
            raise ValueError("请先加载图像")

        vis_image = cv2.cvtColor(self.raster.pixels.copy(), cv2.COLOR_RGBA2BGR)
        vis_image = cv2.resize(vis_image, (self.raster.width * zoom, self.raster.height * zoom),
                               interpolation=cv2.INTER_NEAREST)

        if isinstance(self.reference, CircleReference):
            cx, cy = self.reference.center
            cv2.circle(vis_image, (int(round(cx * zoom)), int(round(cy * zoom))),
                       int(round(self.reference.radius_px * zoom)), (255, 0, 0), 1)
        elif isinstance(self.reference, SegmentReference):
            p0 = tuple(int(round(v * zoom)) for v in self.reference.start)
            p1 = tuple(int(round(v * zoom)) for v in self.reference.end)
            cv2.line(vis_image, p0, p1, (255, 0, 0), 1)

        if len(self.polygon) >= 2:
            pts = np.int32(np.round(self.polygon.scaled(zoom, zoom).to_array()))
            cv2.polylines(vis_image, [pts], True, (0, 255, 0), 1)
            for x, y in pts:
                cv2.circle(vis_image, (int(x), int(y)), 2, (0, 0, 255), -1)

        return vis_image


class DetectionWorker:
    """后台检测，只交付最近一次提交的结果

    新图像提交后，之前尚未完成的检测结果会被丢弃，回调不会触发。
    """

    def __init__(self, num_vertices: int = POLYGON_VERTEX_COUNT):
        self.num_vertices = num_vertices
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='optspot-detect')
        self._generation = 0
        # 回调内可再次 submit()，需可重入
        self._lock = threading.RLock()

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def submit(self, data: bytes,
               callback: Callable[[BoundaryPolygon, Optional[SpotAnalysisError]], None]) -> Future:
        """提交一张图像；Future 结果为多边形，被取代时为 None"""
        with self._lock:
            self._generation += 1
            generation = self._generation

        def run() -> Optional[BoundaryPolygon]:
            if not self._is_current(generation):
                return None
            error = None
            try:
                polygon = detect_reaction_polygon(data, self.num_vertices)
            except SpotAnalysisError as e:
                polygon, error = BoundaryPolygon(), e
            # 判断与回调在同一把锁内，回调期间的 submit()/cancel() 会等待交付完成
            with self._lock:
                if generation != self._generation:
                    logger.debug(f"检测 #{generation} 已被取代，丢弃结果")
                    return None
                try:
                    callback(polygon, error)
                except Exception:
                    logger.exception(f"检测 #{generation} 的回调出错")
            return polygon

        return self._executor.submit(run)

    def cancel(self):
        """丢弃所有进行中的检测"""
        with self._lock:
            self._generation += 1

    def shutdown(self, wait: bool = True):
        self.cancel()
        self._executor.shutdown(wait=wait)
