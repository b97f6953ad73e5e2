"""
异常模块 - 分析流程中可恢复的错误类型
"""


class SpotAnalysisError(Exception):
    """所有分析错误的基类"""


class FormatError(SpotAnalysisError):
    """PNG 容器格式错误或不支持"""


class DecodeError(SpotAnalysisError):
    """压缩数据流或扫描行损坏"""


class InsufficientRegionError(SpotAnalysisError):
    """未找到足够大的反应区域"""

    def __init__(self, size: int, minimum: int):
        super().__init__(f"最大连通域仅 {size} 像素 (至少需要 {minimum})")
        self.size = size
        self.minimum = minimum


class DegenerateScaleError(SpotAnalysisError):
    """参考形状像素尺寸为零，无法得到比例尺"""
