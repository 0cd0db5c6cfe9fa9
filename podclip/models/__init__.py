from podclip.models.base import Base
from podclip.models.video_job import VideoJobRecord

__all__ = [
    "Base",
    "VideoJobRecord",
]
