"""Frame-by-frame VHS pipeline with temporal state for ghosting."""

import logging

import numpy as np
from numpy.typing import NDArray

from .effects import (
    add_noise,
    blur,
    chromatic_aberration,
    color_grade,
    date_stamp,
    ensure_rgba,
    ghost,
    scan_lines,
    tracking_error,
    vignette,
)
from .settings import VHSSettings

logger = logging.getLogger(__name__)

# Later stages assume the output of earlier ones; the order is fixed.
PIPELINE_STAGES: tuple[str, ...] = (
    "color_grade",
    "chromatic_aberration",
    "noise",
    "ghosting",
    "blur",
    "scan_lines",
    "tracking_error",
    "vignette",
    "date_stamp",
)


class FramePipeline:
    """
    Applies the VHS effect chain to consecutive frames of one clip.

    Keeps exactly one buffer between calls: the previous frame as it was
    before its own ghost blend, so ghosting never feeds back on itself.
    Use one instance per clip and per job; call reset() before reusing it
    on another clip.
    """

    def __init__(
        self,
        settings: VHSSettings,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            settings: Degradation settings; clamped once here
            rng: Random source for noise and tracking error
            seed: Seed for a fresh generator when rng is not given
        """
        self.settings = settings.clamped()
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        # State from previous frame
        self.previous_frame: NDArray[np.uint8] | None = None
        self.frame_count: int = 0

        if self.settings.sharpen:
            logger.debug("sharpen=%s is advisory and not applied", self.settings.sharpen)

    def process_frame(self, frame: NDArray[np.uint8]) -> NDArray[np.uint8]:
        """
        Run one frame through every stage.

        Args:
            frame: (H, W, 3) RGB or (H, W, 4) RGBA uint8 frame

        Returns:
            New (H, W, 4) RGBA frame; the input is not modified
        """
        s = self.settings
        self.frame_count += 1

        result = ensure_rgba(frame)
        result = color_grade(result, s)
        result = chromatic_aberration(result, s)
        result = add_noise(result, s, self.rng)

        unghosted = result
        result = ghost(result, s, self.previous_frame)
        self.previous_frame = unghosted

        result = blur(result, s)
        result = scan_lines(result, s)
        result = tracking_error(result, s, self.rng)
        result = vignette(result, s)
        result = date_stamp(result, s)

        return result

    def reset(self) -> None:
        """Reset temporal state (call before a new clip)."""
        self.previous_frame = None
        self.frame_count = 0
