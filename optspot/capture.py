"""
拍摄预处理模块 - 将原始照片缩放为小尺寸 PNG 供检测使用
"""
import io
import logging
from pathlib import Path
from typing import Union

from PIL import Image

from .utils import SAMPLE_SIZE_PX

logger = logging.getLogger(__name__)


def prepare_capture(source: Union[str, Path, bytes, Image.Image],
                    size: int = SAMPLE_SIZE_PX) -> bytes:
    """读取任意 Pillow 可打开的图像，缩放为 size x size 并编码为 RGBA PNG

    Args:
        source: 文件路径、图像字节或 PIL 图像
        size: 输出边长(像素)

    Returns:
        bytes: PNG 文件内容
    """
    if size <= 0:
        raise ValueError("采样尺寸必须大于0")

    if isinstance(source, Image.Image):
        img = source
    elif isinstance(source, (bytes, bytearray)):
        img = Image.open(io.BytesIO(source))
    else:
        img = Image.open(source)

    original_size = img.size
    img = img.convert('RGBA').resize((size, size), Image.Resampling.BILINEAR)

    buf = io.BytesIO()
    img.save(buf, format='PNG')
    logger.debug(f"拍摄图像 {original_size} 缩放至 {size}x{size}")
    return buf.getvalue()
