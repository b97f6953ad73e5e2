"""
反应斑点浓度分析 - 程序入口
"""
import argparse
import json
import logging
import sys

import cv2

from .analyzer_core import SpotAnalyzer
from .concentration import ConcentrationModel
from .errors import SpotAnalysisError
from .models import CircleReference, SegmentReference
from .utils import FILM_DIAMETER_MM, PETRI_DISH_DIAMETER_MM, POLYGON_VERTEX_COUNT, RULER_PRESET_MM

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='optspot',
        description="测量薄膜上红色反应斑点的面积并估算浓度",
    )
    parser.add_argument('image', help="拍摄的图像文件")
    ref = parser.add_mutually_exclusive_group(required=True)
    ref.add_argument('--circle', nargs=3, type=float, metavar=('CX', 'CY', 'R'),
                     help="圆形参考物 (采样网格像素坐标)")
    ref.add_argument('--segment', nargs=4, type=float, metavar=('X0', 'Y0', 'X1', 'Y1'),
                     help="线段参考物 (采样网格像素坐标)")
    parser.add_argument('--reference-mm', type=float, default=None,
                        help=f"参考物真实尺寸 mm (圆默认 {PETRI_DISH_DIAMETER_MM:g}，线段必填)")
    parser.add_argument('--film-diameter', type=float, default=FILM_DIAMETER_MM,
                        help="薄膜直径 mm")
    parser.add_argument('--vertices', type=int, default=POLYGON_VERTEX_COUNT,
                        help="多边形顶点数")
    parser.add_argument('--coefficients', default=None,
                        help="浓度模型系数表 JSON 文件")
    parser.add_argument('--no-resize', action='store_true',
                        help="图像已是小尺寸 PNG，不再缩放")
    parser.add_argument('--overlay', default=None, help="保存可视化结果的路径")
    parser.add_argument('--json', action='store_true', help="以 JSON 输出结果")
    parser.add_argument('--verbose', action='store_true', help="输出调试日志")
    return parser


def main(argv=None) -> int:
    """主函数"""
    args = build_parser().parse_args(argv)

    # 日志配置
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s [%(levelname)s] %(message)s')

    if args.circle:
        cx, cy, r = args.circle
        reference = CircleReference(center=(cx, cy), radius_px=r)
        reference_mm = PETRI_DISH_DIAMETER_MM if args.reference_mm is None else args.reference_mm
    else:
        if args.reference_mm is None:
            logger.error(f"线段参考物需要 --reference-mm (例如直尺 {RULER_PRESET_MM:g})")
            return 2
        x0, y0, x1, y1 = args.segment
        reference = SegmentReference(start=(x0, y0), end=(x1, y1))
        reference_mm = args.reference_mm

    try:
        model = ConcentrationModel.from_json(args.coefficients) if args.coefficients else None
        analyzer = SpotAnalyzer(model=model)
        analyzer.set_film_diameter(args.film_diameter)
        analyzer.load_image(args.image, resize=not args.no_resize)
        analyzer.set_reference(reference, reference_mm)
        polygon = analyzer.detect(args.vertices)
        if polygon.is_empty:
            logger.info("无法自动检测反应区域，请手动标记")
        result = analyzer.analyze()
    except (OSError, ValueError, SpotAnalysisError) as e:
        logger.error(f"分析失败: {e}")
        return 1
    except Exception:
        logger.exception("分析时发生未预期的错误")
        return 1

    if args.overlay:
        cv2.imwrite(args.overlay, analyzer.get_visualization())
        logger.info(f"可视化结果已保存: {args.overlay}")

    formatted = result.formatted()
    if args.json:
        payload = dict(formatted, low_confidence=result.low_confidence,
                       record=result.to_history_record(args.image))
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(f"反应面积: {formatted['area_mm2']} mm²")
        print(f"面积增长率: {formatted['area_increase_percent']} %")
        print(f"浓度: {formatted['concentration_percent']} %")
        print(formatted['message'])
    return 0


if __name__ == "__main__":
    sys.exit(main())
