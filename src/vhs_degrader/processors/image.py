from pathlib import Path

import numpy as np
from PIL import Image

from ..core.pipeline import FramePipeline
from ..core.settings import VHSSettings

SUPPORTED_IMAGE_FORMATS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tiff"}


def is_supported_image(path: Path) -> bool:
    """Check if file is a supported image format."""
    return path.suffix.lower() in SUPPORTED_IMAGE_FORMATS


def process_image(
    input_path: Path,
    output_path: Path | None = None,
    settings: VHSSettings | None = None,
    suffix: str = "_vhs",
    seed: int | None = None,
) -> Path:
    """
    Apply the VHS look to a single image.

    The image is treated as the first frame of a clip, so ghosting has no
    effect.

    Args:
        input_path: Path to input image
        output_path: Optional explicit output path. If None, uses input name with suffix.
        settings: Degradation settings (neutral when omitted)
        suffix: Suffix to add to filename if output_path not specified
        seed: Seed for noise and tracking error

    Returns:
        Path to the output file
    """
    # Determine output path
    if output_path is None:
        output_path = input_path.parent / f"{input_path.stem}{suffix}.png"

    # Load image as RGBA (handles RGB, palette, etc.)
    with Image.open(input_path) as img:
        image_array = np.array(img.convert("RGBA"), dtype=np.uint8)

    pipeline = FramePipeline(settings or VHSSettings(), seed=seed)
    result_array = pipeline.process_frame(image_array)

    # JPEG and BMP have no alpha channel
    result_image = Image.fromarray(result_array)
    if output_path.suffix.lower() in (".jpg", ".jpeg", ".bmp"):
        result_image = result_image.convert("RGB")
    result_image.save(output_path, quality=95)

    return output_path
