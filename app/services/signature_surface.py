"""
Signature Surface

Server-side drawing surface for handwritten signatures. Pointer input is
replayed onto a Pillow image that mirrors what the signer sees, and the image
is exported as PNG when the consent is submitted.
"""

import logging
from io import BytesIO
from typing import Optional

from PIL import Image, ImageDraw

from app.core.exceptions import RasterizationError
from app.schemas.signature import Point, PointerEvent, SignatureCapture

logger = logging.getLogger(__name__)

STROKE_COLOR = "#1f2937"
STROKE_WIDTH = 3
MIN_HEIGHT = 180
HEIGHT_RATIO = 0.4


def surface_height(width: float) -> int:
    return int(max(MIN_HEIGHT, width * HEIGHT_RATIO))


class SignatureSurface:
    def __init__(self, capture: Optional[SignatureCapture] = None):
        self.capture = capture if capture is not None else SignatureCapture()
        self._image: Optional[Image.Image] = None
        self._drawing = False

    @property
    def is_mounted(self) -> bool:
        return self._image is not None

    @property
    def is_drawing(self) -> bool:
        return self._drawing

    @property
    def size(self) -> Optional[tuple]:
        return self._image.size if self._image is not None else None

    def mount(self, width: float) -> None:
        """Create the raster for a container of the given width."""
        if self._image is None:
            self._image = Image.new("RGBA", (int(width), surface_height(width)), (0, 0, 0, 0))
        else:
            self.resize(width)

    def unmount(self) -> None:
        self._image = None
        self._drawing = False

    def resize(self, width: float) -> None:
        """Resize the surface, copying the existing pixels unscaled to the top-left corner."""
        if self._image is None:
            self.mount(width)
            return
        previous = self._image
        resized = Image.new("RGBA", (int(width), surface_height(width)), (0, 0, 0, 0))
        resized.paste(previous, (0, 0))
        self._image = resized

    def _draw_dot(self, draw: ImageDraw.ImageDraw, point: Point) -> None:
        radius = STROKE_WIDTH / 2
        x, y = point
        draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=STROKE_COLOR)

    def begin_stroke(self, point: Point) -> None:
        if self._image is None:
            return
        self.capture.strokes.append([tuple(point)])
        self.capture.has_drawn = True
        self._drawing = True

    def extend_stroke(self, point: Point) -> None:
        if not self._drawing or self._image is None or not self.capture.strokes:
            return
        stroke = self.capture.strokes[-1]
        previous = stroke[-1]
        stroke.append(tuple(point))

        draw = ImageDraw.Draw(self._image)
        draw.line([previous, tuple(point)], fill=STROKE_COLOR, width=STROKE_WIDTH)
        # Round caps and joins
        self._draw_dot(draw, previous)
        self._draw_dot(draw, tuple(point))

    def end_stroke(self) -> None:
        self._drawing = False

    def draw_stroke(self, points) -> None:
        """Replay a complete stroke sent as one batch."""
        if not points:
            return
        self.begin_stroke(points[0])
        for point in points[1:]:
            self.extend_stroke(point)
        self.end_stroke()

    def handle_pointer(self, event: PointerEvent) -> bool:
        """Apply a pointer event; returns True when the platform default must be suppressed."""
        point = (event.x, event.y)
        if event.kind == "down":
            self.begin_stroke(point)
            event.default_prevented = True
        elif event.kind == "move":
            self.extend_stroke(point)
            event.default_prevented = True
        elif event.kind == "up":
            self.end_stroke()
        elif event.kind == "leave" and self._drawing:
            self.end_stroke()
        return event.default_prevented

    def clear(self) -> None:
        if self._image is not None:
            self._image = Image.new("RGBA", self._image.size, (0, 0, 0, 0))
        self.capture.strokes = []
        self.capture.has_drawn = False
        self._drawing = False

    def rasterize(self) -> bytes:
        if self._image is None:
            raise RasterizationError("No se encontró el lienzo de firma")
        buffer = BytesIO()
        try:
            self._image.save(buffer, format="PNG")
        except (OSError, ValueError) as e:
            logger.error(f"Signature rasterization failed: {e}")
            raise RasterizationError("No se pudo generar la imagen de la firma", detail=str(e))
        data = buffer.getvalue()
        if not data:
            raise RasterizationError("No se pudo generar la imagen de la firma")
        return data
