from .image import SUPPORTED_IMAGE_FORMATS, is_supported_image, process_image
from .video import SUPPORTED_VIDEO_FORMATS, is_supported_video, process_video

__all__ = [
    "process_image",
    "process_video",
    "is_supported_image",
    "is_supported_video",
    "SUPPORTED_IMAGE_FORMATS",
    "SUPPORTED_VIDEO_FORMATS",
]
