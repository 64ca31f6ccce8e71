# Settings ranges (inclusive); values are clamped to these before use
CHROMATIC_ABERRATION_RANGE: tuple[float, float] = (0.0, 10.0)
COLOR_SHIFT_RANGE: tuple[float, float] = (-10.0, 10.0)
SATURATION_RANGE: tuple[float, float] = (0.0, 200.0)
BRIGHTNESS_RANGE: tuple[float, float] = (0.0, 200.0)
CONTRAST_RANGE: tuple[float, float] = (0.0, 200.0)
NOISE_RANGE: tuple[float, float] = (0.0, 100.0)
SCAN_LINES_RANGE: tuple[float, float] = (0.0, 100.0)
TRACKING_ERROR_RANGE: tuple[float, float] = (0.0, 10.0)
GHOSTING_RANGE: tuple[float, float] = (0.0, 10.0)
SHARPEN_RANGE: tuple[float, float] = (0.0, 10.0)
BLUR_RANGE: tuple[float, float] = (0.0, 5.0)
VIGNETTE_RANGE: tuple[float, float] = (0.0, 100.0)
TARGET_FPS_RANGE: tuple[float, float] = (15.0, 60.0)

DEFAULT_TARGET_FPS: float = 30.0
DEFAULT_PRESET: str = "authentic"

# Color grade
LUMA_WEIGHTS: tuple[float, float, float] = (0.2989, 0.587, 0.114)  # Rec. 601
COLOR_SHIFT_BIAS: tuple[float, float, float] = (8.0, -2.0, -6.0)  # RGB offset at colorShift=10

# Noise: amplitude at noise=100 is half the channel range
NOISE_MAX_AMPLITUDE: float = 127.5
NOISE_FILTER_MAX_STRENGTH: int = 100  # ffmpeg noise alls upper bound

# Ghosting: weight of the previous frame = ghosting / GHOST_DIVISOR (max 0.5)
GHOST_DIVISOR: float = 20.0

# Scan lines
SCAN_LINE_DIVISOR: float = 200.0  # alpha = scanLines / 200
SCAN_LINE_SPACING: int = 2

# Tracking error
TRACKING_BAND_MIN_HEIGHT: int = 5
TRACKING_BAND_MAX_HEIGHT: int = 25
TRACKING_OFFSET_SCALE: float = 10.0  # offset drawn from +/- trackingError * 10 / 2

# Vignette
VIGNETTE_INNER_RADIUS: float = 0.3  # fraction of the half-diagonal left untouched
VIGNETTE_MAX_ANGLE: float = 1.5707963267948966  # ffmpeg vignette angle upper bound (PI/2)

# Date stamp
DATE_STAMP_MIN_FONT_SIZE: int = 16
DATE_STAMP_FONT_DIVISOR: int = 30  # font size = height / 30
DATE_STAMP_MARGIN: int = 20
DATE_STAMP_OUTLINE: int = 2
DATE_STAMP_FILL: tuple[int, int, int, int] = (255, 255, 255, 230)
DATE_STAMP_STROKE: tuple[int, int, int, int] = (0, 0, 0, 204)
DATE_STAMP_FONTS: tuple[str, ...] = (
    "DejaVuSansMono-Bold.ttf",
    "Courier New Bold.ttf",
    "courbd.ttf",
    "LiberationMono-Bold.ttf",
)

# Video bitrate tiers (in bits per second)
BITRATE_720P: int = 8_000_000  # 8 Mbps
BITRATE_1080P: int = 15_000_000  # 15 Mbps
BITRATE_4K: int = 40_000_000  # 40 Mbps
BITRATE_HIGHER: int = 60_000_000  # 60 Mbps

# Resolution thresholds (pixels)
PIXELS_720P: int = 1280 * 720  # 921,600
PIXELS_1080P: int = 1920 * 1080  # 2,073,600
PIXELS_4K: int = 3840 * 2160  # 8,294,400

# Encoder settings
VIDEO_CODEC: str = "libx264"
VIDEO_CRF: int = 23
VIDEO_PRESET: str = "fast"
PIXEL_FORMAT: str = "yuv420p"
AUDIO_CODEC: str = "aac"
AUDIO_BITRATE: str = "128k"

# Orchestration
SEEK_TIMEOUT_SECONDS: float = 5.0  # per-frame seek/capture fallback window
SEEK_END_EPSILON: float = 0.001  # last seek lands just before the clip end
MAX_INPUT_MB: int = 500
ONE_PASS_ENCODE_START: float = 95.0  # progress reserved for encoder finalization
TWO_PASS_SPLIT: float = 50.0  # extraction 0-50%, processing and encoding 50-100%
BATCH_START: float = 5.0
BATCH_END: float = 95.0
