"""
Watermarked photo evidence for attendance events.

A camera frame is fitted into a fixed-size canvas and stamped with a band
along the bottom edge that identifies the event, the worker, the time and
the coordinates. The result is a single JPEG ready for upload.
"""

import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional, Protocol, Tuple

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from core.errors import ErrorCode, EvidenceCaptureError
from models.attendance_event import EventType
from utils.timezone_helpers import format_watermark_timestamp

logger = logging.getLogger(__name__)

# Watermark layout (pixels)
PADDING = 20
LINE_HEIGHT = 28
FONT_SIZE = 18
BADGE_MIN_WIDTH = 100
BAND_LINES = 5

BAND_COLOR = (17, 17, 17)
TEXT_COLOR = (255, 255, 255)
TAG_COLOR = (156, 163, 175)  # #9ca3af
BADGE_COLORS = {
    EventType.CLOCK_IN: (34, 197, 94),   # #22c55e
    EventType.CLOCK_OUT: (239, 68, 68),  # #ef4444
}

CONTENT_TYPE = "image/jpeg"

# Largest frame accepted from a device (about 50 megapixels)
MAX_FRAME_PIXELS = 50_000_000


@dataclass(frozen=True)
class EvidenceMetadata:
    worker_name: str
    event_type: EventType
    latitude: float
    longitude: float
    captured_at: datetime


@dataclass(frozen=True)
class EvidenceArtifact:
    data: bytes
    width: int
    height: int
    overlay_lines: Tuple[str, ...]
    content_type: str = CONTENT_TYPE


class FrameSource(Protocol):
    """A camera-like stream. Must be started before frames can be read."""

    @property
    def frame_size(self) -> Tuple[int, int]: ...

    def start(self) -> None: ...

    def read_frame(self) -> Image.Image: ...

    def stop(self) -> None: ...


class UploadedFrameSource:
    """Frame source over a single still frame captured by the worker's device."""

    def __init__(self, data: bytes, max_pixels: int = MAX_FRAME_PIXELS):
        self._data = data
        self._max_pixels = max_pixels
        self._image: Optional[Image.Image] = None
        self.released = False

    @property
    def frame_size(self) -> Tuple[int, int]:
        if self._image is None:
            return (0, 0)
        return self._image.size

    def start(self) -> None:
        try:
            # Only the header is parsed here, pixels are decoded by load()
            image = Image.open(io.BytesIO(self._data))
            if image.width * image.height > self._max_pixels:
                image.close()
                raise EvidenceCaptureError(
                    ErrorCode.CAMERA_NOT_READY,
                    f"Camera frame is too large ({image.width}x{image.height}).",
                )
            image.load()
        except Image.DecompressionBombError as e:
            raise EvidenceCaptureError(ErrorCode.CAMERA_NOT_READY, f"Camera frame is too large: {e}")
        except (UnidentifiedImageError, OSError) as e:
            raise EvidenceCaptureError(
                ErrorCode.CAMERA_NOT_READY,
                f"Unable to read camera frame: {e}",
            )
        self._image = image
        self.released = False

    def read_frame(self) -> Image.Image:
        if self.released:
            raise EvidenceCaptureError(ErrorCode.CAMERA_NOT_READY, "Camera has been released.")
        if self._image is None:
            raise EvidenceCaptureError(ErrorCode.CAMERA_NOT_READY, "Camera stream has not started.")
        return self._image.copy()

    def stop(self) -> None:
        if self._image is not None:
            self._image.close()
            self._image = None
        self.released = True


@contextmanager
def camera_session(source: FrameSource) -> Iterator[FrameSource]:
    """Start `source` and always stop it again, including when start itself fails."""
    try:
        source.start()
        yield source
    finally:
        source.stop()


def _font(size: int, style: str = "Bold"):
    name = f"DejaVuSans-{style}.ttf" if style else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        return ImageFont.load_default(size=size)


class EvidenceCapture:
    def __init__(
        self,
        *,
        tz: str,
        width: int = 1280,
        height: int = 720,
        quality: int = 85,
        verification_tag: str = "GeoAttend Verified",
    ):
        band_height = LINE_HEIGHT * BAND_LINES + PADDING * 2
        if width <= 0 or height <= band_height:
            raise ValueError(f"Evidence canvas must be wider than 0 and taller than {band_height}px")
        self._tz = tz
        self._size = (width, height)
        self._quality = quality
        self._tag = verification_tag

    def overlay_lines(self, metadata: EvidenceMetadata) -> Tuple[str, ...]:
        return (
            EventType(metadata.event_type).label,
            f"Employee: {metadata.worker_name}",
            f"Time: {format_watermark_timestamp(metadata.captured_at, self._tz)}",
            f"GPS: {metadata.latitude:.6f}, {metadata.longitude:.6f}",
            self._tag,
        )

    def compose(self, frame: Optional[Image.Image], metadata: EvidenceMetadata) -> EvidenceArtifact:
        if frame is None or frame.width == 0 or frame.height == 0:
            raise EvidenceCaptureError(
                ErrorCode.CAMERA_NOT_READY,
                "Camera is not ready yet. Wait for the preview before capturing.",
            )

        lines = self.overlay_lines(metadata)
        try:
            # Phone cameras store rotation in EXIF rather than in the pixels
            upright = ImageOps.exif_transpose(frame)
            canvas = ImageOps.fit(upright.convert("RGB"), self._size, method=Image.Resampling.LANCZOS)
            self._draw_watermark(canvas, EventType(metadata.event_type), lines)

            buffer = io.BytesIO()
            canvas.save(buffer, format="JPEG", quality=self._quality)
        except (OSError, ValueError) as e:
            logger.error(f"[EVIDENCE] Failed to render evidence image: {e}")
            raise EvidenceCaptureError(ErrorCode.EVIDENCE_ENCODING_FAILED, "Could not create the evidence photo.")

        return EvidenceArtifact(
            data=buffer.getvalue(),
            width=canvas.width,
            height=canvas.height,
            overlay_lines=lines,
        )

    def capture(self, source: FrameSource, metadata: EvidenceMetadata) -> EvidenceArtifact:
        """Open the camera, grab one frame, compose it and release the camera."""
        with camera_session(source) as camera:
            width, height = camera.frame_size
            if width == 0 or height == 0:
                raise EvidenceCaptureError(ErrorCode.CAMERA_NOT_READY, "Camera stream is not ready.")
            return self.compose(camera.read_frame(), metadata)

    def _draw_watermark(self, canvas: Image.Image, event_type: EventType, lines: Tuple[str, ...]) -> None:
        badge_text, name_line, time_line, gps_line, tag_line = lines
        width, height = canvas.size
        band_height = LINE_HEIGHT * BAND_LINES + PADDING * 2

        draw = ImageDraw.Draw(canvas)
        draw.rectangle((0, height - band_height, width, height), fill=BAND_COLOR)

        bold = _font(FONT_SIZE)
        regular = _font(FONT_SIZE - 2, "")
        italic = _font(FONT_SIZE - 4, "Oblique")

        # Rows are laid out from the top of the band
        top = height - band_height + PADDING

        badge_width = max(BADGE_MIN_WIDTH, int(draw.textlength(badge_text, font=bold)) + 16)
        draw.rectangle(
            (PADDING, top, PADDING + badge_width, top + FONT_SIZE + 8),
            fill=BADGE_COLORS[event_type],
        )
        draw.text((PADDING + 8, top + 4), badge_text, font=bold, fill=TEXT_COLOR)

        draw.text((PADDING, top + LINE_HEIGHT), name_line, font=bold, fill=TEXT_COLOR)
        draw.text((PADDING, top + LINE_HEIGHT * 2), time_line, font=bold, fill=TEXT_COLOR)
        draw.text((PADDING, top + LINE_HEIGHT * 3), gps_line, font=regular, fill=TEXT_COLOR)
        draw.text((PADDING, top + LINE_HEIGHT * 4), tag_line, font=italic, fill=TAG_COLOR)
