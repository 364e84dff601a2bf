"""Transmission primitives that stream one source into an output session."""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

from queuecast.exceptions import ConfigurationError, TransmissionFault
from queuecast.logging.config import get_logger
from queuecast.playback.session import OutputSession

logger = get_logger(__name__)

ENCODERS = {
    "H264": "libx264",
    "H265": "libx265",
    "VP8": "libvpx",
    "VP9": "libvpx-vp9",
    "AV1": "libaom-av1",
}

# Lines of ffmpeg stderr kept for error reports
STDERR_TAIL = 20


class Transmitter(ABC):
    """Abstract base class for transmission primitives."""

    @abstractmethod
    async def transmit(self, source: str, session: OutputSession) -> None:
        """
        Stream a source into a session until it ends.

        Cancelling the awaiting task must stop the transmission.

        Args:
            source: Local path or playable URL
            session: Acquired output session

        Raises:
            TransmissionFault: If streaming fails
        """


class FFmpegTransmitter(Transmitter):
    """Streams sources with an ffmpeg subprocess."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        width: int = 1280,
        height: int = 720,
        fps: int = 30,
        bitrate_kbps: int = 2000,
        max_bitrate_kbps: int = 2500,
        video_codec: str = "H264",
        h26x_preset: str = "ultrafast",
        hardware_accelerated_decoding: bool = False,
    ):
        if video_codec.upper() not in ENCODERS:
            raise ConfigurationError(f"Unsupported video codec: {video_codec}")

        self.ffmpeg_path = ffmpeg_path
        self.width = width
        self.height = height
        self.fps = fps
        self.bitrate_kbps = bitrate_kbps
        self.max_bitrate_kbps = max_bitrate_kbps
        self.video_codec = video_codec.upper()
        self.h26x_preset = h26x_preset
        self.hardware_accelerated_decoding = hardware_accelerated_decoding

    def build_args(self, source: str, destination: str) -> List[str]:
        """Build the ffmpeg command line for one transmission."""
        args = [self.ffmpeg_path, "-hide_banner", "-loglevel", "error"]

        if self.hardware_accelerated_decoding:
            args += ["-hwaccel", "auto"]

        args += ["-re", "-i", source]

        encoder = ENCODERS[self.video_codec]
        args += [
            "-vf",
            f"scale={self.width}:{self.height}:force_original_aspect_ratio=decrease,"
            f"pad={self.width}:{self.height}:(ow-iw)/2:(oh-ih)/2",
            "-r",
            str(self.fps),
            "-c:v",
            encoder,
            "-b:v",
            f"{self.bitrate_kbps}k",
            "-maxrate",
            f"{self.max_bitrate_kbps}k",
            "-bufsize",
            f"{self.max_bitrate_kbps * 2}k",
        ]
        if self.video_codec in ("H264", "H265"):
            args += ["-preset", self.h26x_preset, "-tune", "zerolatency"]

        args += ["-c:a", "aac", "-b:a", "128k", "-ar", "48000"]
        args += ["-f", _container_for(destination), destination]
        return args

    async def transmit(self, source: str, session: OutputSession) -> None:
        args = self.build_args(source, session.destination)
        logger.info(f"Starting ffmpeg transmission: {source}")
        logger.debug(" ".join(args))

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransmissionFault(f"Could not start ffmpeg: {e}") from e

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            await _terminate(process)
            raise

        if process.returncode != 0:
            tail = "\n".join(stderr.decode(errors="replace").splitlines()[-STDERR_TAIL:])
            raise TransmissionFault(
                f"ffmpeg exited with code {process.returncode} for {source}: {tail}"
            )

        logger.info(f"ffmpeg transmission finished: {source}")


class NullTransmitter(Transmitter):
    """Dry-run transmitter: logs what would be streamed."""

    def __init__(self, duration: float = 0.0):
        self.duration = duration
        self.history: List[str] = []

    async def transmit(self, source: str, session: OutputSession) -> None:
        logger.info(f"DRY RUN: Would stream {source} to {session.destination}")
        self.history.append(source)
        if self.duration:
            await asyncio.sleep(self.duration)


def _container_for(destination: str) -> str:
    if destination.startswith(("rtmp://", "rtmps://")):
        return "flv"
    if destination.startswith("srt://") or destination.startswith("udp://"):
        return "mpegts"
    if destination.startswith("rtsp://"):
        return "rtsp"
    return "matroska"


async def _terminate(process: asyncio.subprocess.Process, timeout: float = 5.0) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
        await asyncio.wait_for(process.wait(), timeout=timeout)
        logger.info("ffmpeg transmission stopped")
    except asyncio.TimeoutError:
        logger.warning("ffmpeg did not exit after terminate, killing")
        process.kill()
        await process.wait()
    except ProcessLookupError:
        pass


def get_transmitter(transmitter_type: str = "ffmpeg", **kwargs) -> Transmitter:
    """
    Factory function to get a transmitter instance.

    Args:
        transmitter_type: Type of transmitter (ffmpeg, null)
        **kwargs: Transmitter-specific arguments

    Returns:
        Transmitter instance
    """
    kind = transmitter_type.lower()
    if kind == "ffmpeg":
        return FFmpegTransmitter(**kwargs)
    elif kind == "null":
        return NullTransmitter(**kwargs)
    else:
        raise ConfigurationError(f"Unknown transmitter type: {transmitter_type}")
