from io import BytesIO

import pytest
from PIL import Image

from app.core.exceptions import RasterizationError
from app.schemas.signature import PointerEvent
from app.services.signature_surface import SignatureSurface, surface_height


def _image(png: bytes) -> Image.Image:
    return Image.open(BytesIO(png))


def test_surface_height_has_a_floor():
    assert surface_height(300) == 180
    assert surface_height(1000) == 400


def test_strokes_are_ignored_before_mount():
    surface = SignatureSurface()
    surface.begin_stroke((10, 10))
    surface.extend_stroke((20, 20))

    assert surface.capture.has_drawn is False
    assert surface.capture.strokes == []


def test_rasterize_requires_a_mounted_surface():
    surface = SignatureSurface()
    with pytest.raises(RasterizationError) as exc:
        surface.rasterize()
    assert exc.value.message == "No se encontró el lienzo de firma"


def test_completed_stroke_rasterizes_to_png():
    surface = SignatureSurface()
    surface.mount(500)
    surface.draw_stroke([(10, 20), (100, 20), (150, 60)])

    png = surface.rasterize()

    assert png.startswith(b"\x89PNG")
    image = _image(png)
    assert image.size == (500, 200)
    assert image.getpixel((50, 20))[3] > 0
    assert surface.capture.has_drawn is True
    assert len(surface.capture.strokes) == 1


def test_clear_erases_raster_and_capture():
    surface = SignatureSurface()
    surface.mount(500)
    surface.draw_stroke([(10, 20), (100, 20)])

    surface.clear()

    assert surface.capture.has_drawn is False
    assert surface.capture.strokes == []
    assert _image(surface.rasterize()).getbbox() is None


def test_resize_keeps_existing_signature():
    surface = SignatureSurface()
    surface.mount(400)
    surface.draw_stroke([(10, 20), (100, 20)])

    surface.resize(900)

    image = _image(surface.rasterize())
    assert image.size == (900, 360)
    assert image.getpixel((50, 20))[3] > 0
    assert surface.capture.has_drawn is True


def test_extend_after_end_is_ignored():
    surface = SignatureSurface()
    surface.mount(400)
    surface.begin_stroke((10, 10))
    surface.extend_stroke((20, 10))
    surface.end_stroke()
    surface.extend_stroke((200, 100))

    assert surface.capture.strokes == [[(10, 10), (20, 10)]]


def test_pointer_events_suppress_default_gestures_while_drawing():
    surface = SignatureSurface()
    surface.mount(400)

    assert surface.handle_pointer(PointerEvent(kind="down", x=5, y=5)) is True
    assert surface.handle_pointer(PointerEvent(kind="move", x=30, y=8)) is True
    assert surface.is_drawing

    surface.handle_pointer(PointerEvent(kind="leave", x=400, y=8))
    assert not surface.is_drawing

    # Moving outside an active stroke draws nothing
    surface.handle_pointer(PointerEvent(kind="move", x=60, y=60))
    assert surface.handle_pointer(PointerEvent(kind="up", x=60, y=60)) is False
    assert surface.capture.strokes == [[(5, 5), (30, 8)]]
