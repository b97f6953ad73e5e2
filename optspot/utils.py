"""
工具模块 - 常量定义
"""

# ==================== 常量定义 ====================
# 采样
SAMPLE_SIZE_PX = 100                   # 拍摄端缩放后的边长(像素)

# 颜色分割 (严格阈值)
RED_HUE_LOW_DEG = 20                   # 色相下限以下视为红色
RED_HUE_HIGH_DEG = 335                 # 色相上限以上视为红色(环绕)
RED_SATURATION_MIN = 0.2
RED_VALUE_MIN = 0.15
RED_DOMINANCE_RATIO = 1.2              # R 需超过 G、B 的倍数

# 颜色分割 (放宽阈值，用于淡色反应)
RELAXED_HUE_LOW_DEG = 30
RELAXED_HUE_HIGH_DEG = 320
RELAXED_SATURATION_MIN = 0.15
RELAXED_VALUE_MIN = 0.1
RELAX_MIN_FRACTION = 0.005             # 候选像素低于 0.5% 时放宽

# 边界精修
GRADIENT_THRESHOLD = 30                # Sobel 梯度幅值阈值(红色通道)

# 连通域 / 多边形
MIN_CLUSTER_PIXELS = 5                 # 最大连通域的最小像素数
POLYGON_VERTEX_COUNT = 16              # 多边形顶点数
EMPTY_SECTOR_OFFSET_PX = 3.0           # 空扇区默认顶点偏移
OUTLIER_DISTANCE_FACTOR = 1.8          # 超过平均半径该倍数视为离群
OUTLIER_CLAMP_FACTOR = 1.3             # 离群点收回到平均半径该倍数

# 标定
PETRI_DISH_DIAMETER_MM = 150.0         # 培养皿预设直径
RULER_PRESET_MM = 50.0                 # 直尺预设长度
FILM_DIAMETER_MM = 25.0                # 默认薄膜直径

# 浓度模型
FILM_THICKNESS_MM = 1.0                # 薄膜厚度(固定)
CONFIDENT_THICKNESS_RANGE_MM = (0.5, 2.0)
DETECTION_THRESHOLD_PERCENT = 0.001    # 浓度高于该值判定为检出
MIN_DENOMINATOR = 1e-10
MAX_CONCENTRATION_PERCENT = 100.0

# CuSO4 系数表: a(C)=coeff*ln(C)+constant，b、c 同理
CUSO4_COEFFICIENTS = {
    "name": "CuSO4",
    "a": {"coeff": 35190.0, "constant": -96479.0},
    "b": {"coeff": 2037.8, "constant": 5645.6},
    "c": {"coeff": -31.43, "constant": -86.72},
}

# 输出格式
AREA_DECIMALS = 2
CONCENTRATION_DECIMALS = 4
CONCENTRATION_DISPLAY_MIN = 0.0001
