import logging
import math
import threading

import numpy as np
import pytest

from conftest import disk_image, encode_png, rgba_from_rgb
from optspot.analyzer_core import DetectionWorker, SpotAnalyzer, detect_reaction_polygon
from optspot.calibration import polygon_area_px
from optspot.concentration import solve_concentration
from optspot.errors import DegenerateScaleError, FormatError
from optspot.models import BoundaryPolygon, CircleReference, SegmentReference


def _blank_png(size=100):
    return encode_png(rgba_from_rgb(np.full((size, size, 3), 255, dtype=np.uint8)))


def test_end_to_end_disk(disk_png):
    analyzer = SpotAnalyzer(film_diameter_mm=25.0)
    analyzer.load_png(disk_png)
    scale = analyzer.set_reference(CircleReference(center=(50, 50), radius_px=40), 150.0)
    polygon = analyzer.detect()
    result = analyzer.analyze()

    assert scale == pytest.approx(1.875)
    assert len(polygon) == 16
    expected = math.pi * (20 * 1.875) ** 2
    # 16 边形内接于边界像素中心，且开运算会削去单像素尖端，面积略偏小
    assert 0.92 * expected < result.area_mm2 < expected
    assert result.film_area_mm2 == pytest.approx(math.pi * 12.5 ** 2)
    assert result.concentration_percent == pytest.approx(
        solve_concentration(result.area_increase_percent))
    assert result.is_detected == (result.concentration_percent > 0.001)


def test_more_vertices_tighten_the_estimate(disk_png):
    coarse = polygon_area_px(detect_reaction_polygon(disk_png, 8))
    fine = polygon_area_px(detect_reaction_polygon(disk_png, 64))
    assert coarse < fine < math.pi * 400
    assert fine > 0.88 * math.pi * 400


def test_polygon_centered_on_disk(disk_png):
    pts = detect_reaction_polygon(disk_png).to_array()
    assert pts.mean(axis=0) == pytest.approx((50.0, 50.0), abs=1.0)


def test_blank_image_gives_empty_polygon():
    assert detect_reaction_polygon(_blank_png()).is_empty


def test_blank_image_analyzes_to_zero():
    analyzer = SpotAnalyzer()
    analyzer.load_png(_blank_png())
    analyzer.set_reference(CircleReference((50, 50), 40), 150.0)
    assert analyzer.detect().is_empty

    result = analyzer.analyze()
    assert result.area_mm2 == 0.0
    assert result.concentration_percent == 0.0
    assert not result.is_detected


def test_decode_errors_propagate():
    with pytest.raises(FormatError):
        detect_reaction_polygon(b"not a png")


def test_zero_scale_is_rejected(disk_png):
    analyzer = SpotAnalyzer()
    analyzer.load_png(disk_png)
    analyzer.detect()
    assert analyzer.set_reference(SegmentReference((10, 10), (10, 10)), 50.0) == 0.0
    with pytest.raises(DegenerateScaleError):
        analyzer.analyze()


def test_edited_polygon_is_used(disk_png):
    analyzer = SpotAnalyzer()
    analyzer.load_png(disk_png)
    analyzer.set_reference(SegmentReference((0, 0), (10, 0)), 10.0)
    analyzer.set_polygon(BoundaryPolygon.from_points([(0, 0), (10, 0), (10, 10), (0, 10)]))
    assert analyzer.analyze().area_mm2 == pytest.approx(100.0)


def test_detect_requires_image():
    with pytest.raises(ValueError):
        SpotAnalyzer().detect()


def test_load_image_resizes(tmp_path):
    from PIL import Image

    path = tmp_path / "capture.png"
    Image.fromarray(disk_image(size=400, center=(200, 200), radius=80)).save(path)

    analyzer = SpotAnalyzer()
    raster = analyzer.load_image(path)
    assert (raster.width, raster.height) == (100, 100)
    assert len(analyzer.detect()) == 16


def test_visualization(disk_png):
    analyzer = SpotAnalyzer()
    analyzer.load_png(disk_png)
    analyzer.set_reference(CircleReference((50, 50), 40), 150.0)
    analyzer.detect()
    vis = analyzer.get_visualization(zoom=2)

    assert vis.shape == (200, 200, 3)
    assert vis.dtype == np.uint8
    assert (vis == (0, 255, 0)).all(axis=2).any()


def _block(worker):
    gate = threading.Event()
    worker._executor.submit(gate.wait)
    return gate


def test_worker_delivers_only_latest(disk_png):
    worker = DetectionWorker()
    delivered = []
    gate = _block(worker)

    stale = worker.submit(_blank_png(), lambda p, e: delivered.append(("stale", p, e)))
    latest = worker.submit(disk_png, lambda p, e: delivered.append(("latest", p, e)))
    gate.set()

    assert stale.result(timeout=30) is None
    polygon = latest.result(timeout=30)
    worker.shutdown()

    assert len(polygon) == 16
    assert [d[0] for d in delivered] == ["latest"]
    assert delivered[0][2] is None


def test_worker_cancel(disk_png):
    worker = DetectionWorker()
    delivered = []
    gate = _block(worker)

    future = worker.submit(disk_png, lambda p, e: delivered.append(p))
    worker.cancel()
    gate.set()

    assert future.result(timeout=30) is None
    worker.shutdown()
    assert delivered == []


def test_worker_reports_decode_error():
    worker = DetectionWorker()
    delivered = []
    worker.submit(b"broken", lambda p, e: delivered.append((p, e))).result(timeout=30)
    worker.shutdown()

    polygon, error = delivered[0]
    assert polygon.is_empty
    assert isinstance(error, FormatError)


def test_worker_callback_error_is_logged(disk_png, caplog):
    worker = DetectionWorker()

    def explode(polygon, error):
        raise RuntimeError("callback failed")

    with caplog.at_level(logging.ERROR, logger='optspot.analyzer_core'):
        polygon = worker.submit(disk_png, explode).result(timeout=30)
    worker.shutdown()

    assert len(polygon) == 16
    assert any(r.exc_info and r.exc_info[0] is RuntimeError for r in caplog.records)


def test_worker_resubmit_from_callback(disk_png):
    worker = DetectionWorker()
    delivered = []
    follow_up = []

    def first(polygon, error):
        delivered.append("first")
        follow_up.append(worker.submit(_blank_png(), lambda p, e: delivered.append("second")))

    worker.submit(disk_png, first).result(timeout=30)
    assert follow_up[0].result(timeout=30).is_empty
    worker.shutdown()

    assert delivered == ["first", "second"]
