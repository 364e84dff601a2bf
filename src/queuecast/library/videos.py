"""Local video library."""

import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from queuecast.config import get_settings
from queuecast.logging.config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LocalVideo:
    """A video file in the local library."""

    name: str
    path: Path


class LocalLibrary:
    """
    Lists the videos stored in the configured videos directory.

    Display names are file stems with spaces replaced by underscores,
    so they can be typed as a single word.
    """

    SUPPORTED_EXTENSIONS = {".mp4", ".mkv", ".webm", ".mov", ".avi", ".m4v", ".flv"}

    def __init__(self, videos_dir: Optional[Path] = None):
        """
        Initialize local library.

        Args:
            videos_dir: Directory to list (defaults to config value)
        """
        self.videos_dir = Path(videos_dir) if videos_dir else get_settings().videos_dir

    def list_videos(self) -> List[LocalVideo]:
        """
        List videos in the library, sorted by name.

        Returns:
            List of LocalVideo, empty if the directory does not exist
        """
        if not self.videos_dir.is_dir():
            logger.warning(f"Videos directory not found: {self.videos_dir}")
            return []

        videos = [
            LocalVideo(name=path.stem.replace(" ", "_"), path=path)
            for path in self.videos_dir.iterdir()
            if path.is_file() and path.suffix.lower() in self.SUPPORTED_EXTENSIONS
        ]
        return sorted(videos, key=lambda v: v.name.lower())

    def find(self, name: str) -> Optional[LocalVideo]:
        """Find a video by display name (case-insensitive)."""
        wanted = name.lower()
        for video in self.list_videos():
            if video.name.lower() == wanted:
                return video
        return None

    def random_video(self) -> Optional[LocalVideo]:
        videos = self.list_videos()
        if not videos:
            return None
        return random.choice(videos)
