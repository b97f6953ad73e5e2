"""
OptSpot - 薄膜反应斑点面积测量与浓度估算
"""
from .analyzer_core import DetectionWorker, SpotAnalyzer, detect_reaction_polygon
from .calibration import compute_scale, polygon_area_px, require_scale
from .concentration import ConcentrationModel, analyze_concentration, solve_concentration
from .errors import (
    DecodeError, DegenerateScaleError, FormatError, InsufficientRegionError, SpotAnalysisError
)
from .models import (
    AnalysisResult, BoundaryPolygon, CircleReference, Raster, SegmentReference, Vertex
)
from .png_decoder import decode_png

__version__ = "0.1.0"
