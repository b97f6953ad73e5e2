"""
数据模型模块 - 定义所有数据类和数据结构
"""
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional, Tuple, Union

import numpy as np

from .utils import AREA_DECIMALS, CONCENTRATION_DECIMALS, CONCENTRATION_DISPLAY_MIN


@dataclass(frozen=True)
class Raster:
    """解码后的 RGBA8 图像，解码后不可修改"""
    width: int
    height: int
    pixels: np.ndarray  # (height, width, 4) uint8

    def __post_init__(self):
        # 复制一份，调用方的缓冲区及其 base 都不会影响本对象
        pixels = np.array(self.pixels, dtype=np.uint8, copy=True)
        object.__setattr__(self, 'pixels', pixels)
        if self.pixels.shape != (self.height, self.width, 4):
            raise ValueError(f"像素缓冲尺寸 {self.pixels.shape} 与 {self.width}x{self.height} 不符")
        self.pixels.setflags(write=False)

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    @property
    def red(self) -> np.ndarray:
        return self.pixels[:, :, 0]

    def pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        """按 (x, y) 读取单个像素"""
        r, g, b, a = self.pixels[y, x]
        return int(r), int(g), int(b), int(a)


def new_vertex_id() -> str:
    """生成与位置无关的顶点标识"""
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Vertex:
    """多边形顶点，id 在编辑过程中保持不变"""
    id: str
    x: float
    y: float


@dataclass(frozen=True)
class BoundaryPolygon:
    """反应区域边界多边形

    顶点按角度升序排列。所有编辑操作都返回新对象，并保留其余顶点的 id，
    因此拖动、删除、插入不会改变邻近顶点的标识。
    """
    vertices: Tuple[Vertex, ...] = ()

    @classmethod
    def from_points(cls, points) -> 'BoundaryPolygon':
        return cls(tuple(Vertex(new_vertex_id(), float(x), float(y)) for x, y in points))

    def __len__(self) -> int:
        return len(self.vertices)

    def __iter__(self):
        return iter(self.vertices)

    @property
    def is_empty(self) -> bool:
        return not self.vertices

    @property
    def points(self) -> List[Tuple[float, float]]:
        return [(v.x, v.y) for v in self.vertices]

    @property
    def ids(self) -> List[str]:
        return [v.id for v in self.vertices]

    def to_array(self) -> np.ndarray:
        return np.array(self.points, dtype=float).reshape(-1, 2)

    def index_of(self, vertex_id: str) -> int:
        for i, v in enumerate(self.vertices):
            if v.id == vertex_id:
                return i
        raise KeyError(vertex_id)

    def get(self, vertex_id: str) -> Vertex:
        return self.vertices[self.index_of(vertex_id)]

    def move_vertex(self, vertex_id: str, x: float, y: float) -> 'BoundaryPolygon':
        """移动顶点(拖动)"""
        i = self.index_of(vertex_id)
        moved = replace(self.vertices[i], x=float(x), y=float(y))
        return BoundaryPolygon(self.vertices[:i] + (moved,) + self.vertices[i + 1:])

    def remove_vertex(self, vertex_id: str) -> 'BoundaryPolygon':
        """删除顶点(点击删除)"""
        i = self.index_of(vertex_id)
        return BoundaryPolygon(self.vertices[:i] + self.vertices[i + 1:])

    def insert_vertex_after(self, vertex_id: str, x: float, y: float) -> 'BoundaryPolygon':
        """在指定顶点之后插入新顶点"""
        i = self.index_of(vertex_id)
        new = Vertex(new_vertex_id(), float(x), float(y))
        return BoundaryPolygon(self.vertices[:i + 1] + (new,) + self.vertices[i + 1:])

    def split_edge(self, vertex_id: str) -> 'BoundaryPolygon':
        """在 vertex_id 与下一个顶点之间的边中点插入顶点(点击边插入)"""
        i = self.index_of(vertex_id)
        a = self.vertices[i]
        b = self.vertices[(i + 1) % len(self.vertices)]
        return self.insert_vertex_after(vertex_id, (a.x + b.x) / 2.0, (a.y + b.y) / 2.0)

    def scaled(self, sx: float, sy: float) -> 'BoundaryPolygon':
        """从采样网格坐标映射到显示坐标，id 不变"""
        return BoundaryPolygon(tuple(replace(v, x=v.x * sx, y=v.y * sy) for v in self.vertices))


@dataclass(frozen=True)
class CircleReference:
    """圆形参考物(如培养皿)，配合真实直径使用"""
    center: Tuple[float, float]
    radius_px: float


@dataclass(frozen=True)
class SegmentReference:
    """线段参考物(如直尺)，配合真实长度使用"""
    start: Tuple[float, float]
    end: Tuple[float, float]


ReferenceShape = Union[CircleReference, SegmentReference]


@dataclass(frozen=True)
class AnalysisResult:
    """一次完整分析的结果快照"""
    area_mm2: float
    area_increase_percent: float
    concentration_percent: float
    film_area_mm2: float
    is_detected: bool
    message: str = ""
    film_thickness_mm: Optional[float] = None
    low_confidence: bool = False
    created_at: datetime = field(default_factory=datetime.now, compare=False)

    @classmethod
    def empty(cls, film_area_mm2: float = 0.0) -> 'AnalysisResult':
        """无法自动检测时的零结果"""
        return cls(0.0, 0.0, 0.0, film_area_mm2, False, "Not Detected")

    @staticmethod
    def format_concentration(value: float) -> str:
        if value < CONCENTRATION_DISPLAY_MIN:
            return "0"
        return f"{value:.{CONCENTRATION_DECIMALS}f}"

    def formatted(self) -> dict:
        """按显示精度格式化"""
        return {
            'area_mm2': f"{self.area_mm2:.{AREA_DECIMALS}f}",
            'area_increase_percent': f"{self.area_increase_percent:.{AREA_DECIMALS}f}",
            'concentration_percent': self.format_concentration(self.concentration_percent),
            'film_area_mm2': f"{self.film_area_mm2:.{AREA_DECIMALS}f}",
            'is_detected': self.is_detected,
            'message': self.message,
        }

    def to_history_record(self, image_ref: Optional[str] = None) -> dict:
        """生成历史记录条目，持久化由调用方负责"""
        record = {
            'id': str(int(self.created_at.timestamp() * 1000)),
            'date': self.created_at.isoformat(),
            'concentration': self.concentration_percent,
            'area': self.area_mm2,
        }
        if image_ref is not None:
            record['imageUri'] = image_ref
        return record
