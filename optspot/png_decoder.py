"""
PNG 解码模块 - 将拍摄端缩放后的 PNG 字节解码为 RGBA8 像素网格
"""
import logging
import struct
import zlib
from typing import List, Tuple

import numpy as np

from .errors import DecodeError, FormatError
from .models import Raster

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'

# 颜色类型 -> 每像素通道数
COLOR_TYPE_CHANNELS = {
    0: 1,  # 灰度
    2: 3,  # 真彩色
    4: 2,  # 灰度 + alpha
    6: 4,  # 真彩色 + alpha
}

FILTER_NONE = 0
FILTER_SUB = 1
FILTER_UP = 2
FILTER_AVERAGE = 3
FILTER_PAETH = 4


def _read_chunks(data: bytes) -> Tuple[bytes, bytes]:
    """遍历数据块，返回 (IHDR 内容, 拼接后的 IDAT 数据)"""
    ihdr = None
    idat: List[bytes] = []
    offset = len(PNG_SIGNATURE)

    while offset + 8 <= len(data):
        length, chunk_type = struct.unpack('>I4s', data[offset:offset + 8])
        start = offset + 8
        end = start + length
        if end > len(data):
            raise FormatError(f"数据块 {chunk_type!r} 长度 {length} 超出缓冲区")

        if chunk_type == b'IHDR':
            ihdr = data[start:end]
        elif chunk_type == b'IDAT':
            idat.append(data[start:end])
        elif chunk_type == b'IEND':
            break

        # 长度(4) + 类型(4) + 数据 + CRC(4)
        offset = end + 4

    if ihdr is None:
        raise FormatError("缺少 IHDR 数据块")
    return ihdr, b''.join(idat)


def _parse_header(ihdr: bytes) -> Tuple[int, int, int]:
    """解析 IHDR，返回 (width, height, color_type)"""
    if len(ihdr) < 13:
        raise FormatError("IHDR 数据块过短")

    width, height, bit_depth, color_type, _, _, interlace = struct.unpack('>IIBBBBB', ihdr[:13])
    if width == 0 or height == 0:
        raise FormatError(f"图像尺寸无效: {width}x{height}")
    if color_type not in COLOR_TYPE_CHANNELS:
        raise FormatError(f"不支持的颜色类型: {color_type}")
    if bit_depth != 8:
        raise FormatError(f"不支持的位深: {bit_depth}")
    if interlace != 0:
        raise FormatError("不支持隔行扫描图像")
    return width, height, color_type


def _paeth(a: int, b: int, c: int) -> int:
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def unfilter_scanlines(raw: bytes, height: int, stride: int, bpp: int) -> np.ndarray:
    """逐行还原 PNG 滤波，返回 (height, stride) uint8

    左、上、左上字节均取自已还原的数据，越界按 0 处理。
    """
    expected = height * (stride + 1)
    if len(raw) < expected:
        raise DecodeError(f"解压数据长度 {len(raw)} 小于所需 {expected}")

    out = np.zeros((height, stride), dtype=np.uint8)
    prev = np.zeros(stride, dtype=np.int32)

    for y in range(height):
        row_start = y * (stride + 1)
        filter_type = raw[row_start]
        line = np.frombuffer(raw, dtype=np.uint8, count=stride, offset=row_start + 1).astype(np.int32)

        if filter_type == FILTER_NONE:
            cur = line
        elif filter_type == FILTER_UP:
            cur = (line + prev) & 0xFF
        elif filter_type in (FILTER_SUB, FILTER_AVERAGE, FILTER_PAETH):
            # 依赖同一行左侧已还原字节，只能顺序计算
            cur = np.zeros(stride, dtype=np.int32)
            for x in range(stride):
                a = int(cur[x - bpp]) if x >= bpp else 0
                b = int(prev[x])
                if filter_type == FILTER_SUB:
                    pred = a
                elif filter_type == FILTER_AVERAGE:
                    pred = (a + b) // 2
                else:
                    c = int(prev[x - bpp]) if x >= bpp else 0
                    pred = _paeth(a, b, c)
                cur[x] = (int(line[x]) + pred) & 0xFF
        else:
            raise DecodeError(f"第 {y} 行滤波类型未知: {filter_type}")

        out[y] = cur
        prev = cur

    return out


def _expand_to_rgba(samples: np.ndarray, width: int, height: int, color_type: int) -> np.ndarray:
    """展开为 RGBA8，无 alpha 的格式补 255，灰度广播到三个通道"""
    channels = COLOR_TYPE_CHANNELS[color_type]
    samples = samples.reshape(height, width, channels)
    rgba = np.empty((height, width, 4), dtype=np.uint8)

    if color_type == 6:
        rgba[:] = samples
    elif color_type == 2:
        rgba[:, :, :3] = samples
        rgba[:, :, 3] = 255
    elif color_type == 4:
        rgba[:, :, :3] = samples[:, :, :1]
        rgba[:, :, 3] = samples[:, :, 1]
    else:
        rgba[:, :, :3] = samples
        rgba[:, :, 3] = 255
    return rgba


def decode_png(data: bytes) -> Raster:
    """解码 PNG 字节为 Raster

    Args:
        data: PNG 文件内容(约 60-100 像素边长)

    Returns:
        Raster: RGBA8 像素网格

    Raises:
        FormatError: 签名、IHDR、颜色类型、位深或隔行方式不合法
        DecodeError: 压缩流或扫描行数据损坏
    """
    data = bytes(data)
    if data[:len(PNG_SIGNATURE)] != PNG_SIGNATURE:
        raise FormatError("不是 PNG 文件 (签名不匹配)")

    ihdr, compressed = _read_chunks(data)
    width, height, color_type = _parse_header(ihdr)

    try:
        raw = zlib.decompress(compressed)
    except zlib.error as e:
        raise DecodeError(f"IDAT 解压失败: {e}") from e

    bpp = COLOR_TYPE_CHANNELS[color_type]
    stride = width * bpp
    samples = unfilter_scanlines(raw, height, stride, bpp)
    rgba = _expand_to_rgba(samples, width, height, color_type)

    logger.debug(f"PNG 解码完成: {width}x{height}, 颜色类型 {color_type}")
    return Raster(width=width, height=height, pixels=rgba)
