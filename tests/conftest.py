import struct
import zlib

import numpy as np
import pytest

from optspot.models import Raster

CHANNELS = {0: 1, 2: 3, 4: 2, 6: 4}


def _chunk(chunk_type: bytes, data: bytes) -> bytes:
    return (struct.pack('>I', len(data)) + chunk_type + data
            + struct.pack('>I', zlib.crc32(chunk_type + data) & 0xFFFFFFFF))


def _filter_row(cur: np.ndarray, prev: np.ndarray, bpp: int, filter_type: int) -> np.ndarray:
    cur = cur.astype(np.int32)
    prev = prev.astype(np.int32)
    a = np.concatenate([np.zeros(bpp, np.int32), cur[:-bpp]])
    b = prev
    c = np.concatenate([np.zeros(bpp, np.int32), prev[:-bpp]])

    if filter_type == 0:
        pred = np.zeros_like(cur)
    elif filter_type == 1:
        pred = a
    elif filter_type == 2:
        pred = b
    elif filter_type == 3:
        pred = (a + b) // 2
    elif filter_type == 4:
        p = a + b - c
        pa, pb, pc = np.abs(p - a), np.abs(p - b), np.abs(p - c)
        pred = np.where((pa <= pb) & (pa <= pc), a, np.where(pb <= pc, b, c))
    else:
        raise ValueError(filter_type)
    return ((cur - pred) & 0xFF).astype(np.uint8)


def encode_png(samples: np.ndarray, color_type: int = 6, filters=0,
               idat_chunks: int = 1, interlace: int = 0, bit_depth: int = 8,
               width=None, height=None) -> bytes:
    """测试用 PNG 编码器，filters 可为单个滤波类型或逐行列表"""
    samples = np.asarray(samples, dtype=np.uint8)
    h, w = samples.shape[:2]
    bpp = CHANNELS.get(color_type, 1)
    rows = samples.reshape(h, w * bpp)
    if isinstance(filters, int):
        filters = [filters] * h

    raw = bytearray()
    prev = np.zeros(w * bpp, dtype=np.uint8)
    for y in range(h):
        raw.append(filters[y])
        raw.extend(_filter_row(rows[y], prev, bpp, filters[y]).tobytes())
        prev = rows[y]

    compressed = zlib.compress(bytes(raw))
    step = max(1, -(-len(compressed) // idat_chunks))
    parts = [compressed[i:i + step] for i in range(0, len(compressed), step)]

    ihdr = struct.pack('>IIBBBBB', w if width is None else width, h if height is None else height,
                       bit_depth, color_type, 0, 0, interlace)
    out = b'\x89PNG\r\n\x1a\n' + _chunk(b'IHDR', ihdr)
    for part in parts:
        out += _chunk(b'IDAT', part)
    return out + _chunk(b'IEND', b'')


def rgba_from_rgb(rgb: np.ndarray) -> np.ndarray:
    rgb = np.asarray(rgb, dtype=np.uint8)
    alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([rgb, alpha], axis=2)


def raster_from_rgb(rgb: np.ndarray) -> Raster:
    rgba = rgba_from_rgb(rgb)
    return Raster(width=rgba.shape[1], height=rgba.shape[0], pixels=rgba)


def disk_image(size=100, center=(50, 50), radius=20, fg=(200, 30, 30), bg=(255, 255, 255)):
    """白底实心圆，返回 (size, size, 3) uint8"""
    yy, xx = np.mgrid[0:size, 0:size]
    inside = (xx - center[0]) ** 2 + (yy - center[1]) ** 2 <= radius ** 2
    img = np.empty((size, size, 3), dtype=np.uint8)
    img[:] = bg
    img[inside] = fg
    return img


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def disk_png():
    return encode_png(rgba_from_rgb(disk_image()), color_type=6, filters=4)
