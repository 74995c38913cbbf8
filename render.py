"""
Pillow renderer and exporter for computed layouts.

Layout geometry is computed first (grid_layout / ring_layout) and handed in as
an immutable result; this module only decodes bitmaps, fits them into their
cells and writes the page out.
"""

import io
import logging
import math
import re
from enum import Enum
from typing import BinaryIO, List, Sequence, Tuple, Union

from PIL import Image, ImageDraw, ImageOps

from layout_types import HexPosition, LayoutResult, Rectangle, RingLayoutResult, RingPattern

logger = logging.getLogger(__name__)

A4_WIDTH_MM = 210.0
A4_HEIGHT_MM = 297.0
MM_PER_INCH = 25.4

HEX_COLOR_RE = re.compile(r'^#[0-9A-Fa-f]{6}([0-9A-Fa-f]{2})?$')


class FitMode(str, Enum):
    COVER = "cover"
    CONTAIN = "contain"


class OutputFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"
    TIFF = "tiff"
    PDF = "pdf"


MEDIA_TYPES = {
    OutputFormat.PNG: "image/png",
    OutputFormat.JPEG: "image/jpeg",
    OutputFormat.TIFF: "image/tiff",
    OutputFormat.PDF: "application/pdf",
}

FILE_EXTENSIONS = {
    OutputFormat.PNG: "png",
    OutputFormat.JPEG: "jpg",
    OutputFormat.TIFF: "tiff",
    OutputFormat.PDF: "pdf",
}


def page_size_px(width_mm: float, height_mm: float, dpi: float) -> Tuple[int, int]:
    """Page size in pixels; mm / 25.4 = inches, then * dpi = pixels."""
    return int(round(width_mm / MM_PER_INCH * dpi)), int(round(height_mm / MM_PER_INCH * dpi))


def parse_color_rgba(color_str: str) -> Tuple[int, int, int, int]:
    """Parse #RRGGBB or #RRGGBBAA to RGBA tuple."""
    if isinstance(color_str, str) and color_str.startswith('#'):
        hex_str = color_str[1:]
        if len(hex_str) == 8:
            return tuple(int(hex_str[i:i + 2], 16) for i in (0, 2, 4, 6))
        elif len(hex_str) == 6:
            r, g, b = (int(hex_str[i:i + 2], 16) for i in (0, 2, 4))
            return (r, g, b, 255)
    return (255, 255, 255, 255)


def open_image(source: Union[bytes, str, BinaryIO]) -> Image.Image:
    """Decode an image from bytes, a path or a file object, upright and in RGB."""
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    with Image.open(source) as img:
        # Normalize EXIF orientation (rotate/transpose to upright)
        img = ImageOps.exif_transpose(img)
        if img.mode != 'RGB':
            img = img.convert('RGB')
        img.load()
        return img


def fit_cover(img: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """Resize without distortion using scale-to-cover and center crop."""
    src_w, src_h = img.width, img.height
    scale = max(target_width / src_w, target_height / src_h)
    new_w = max(target_width, int(round(src_w * scale)))
    new_h = max(target_height, int(round(src_h * scale)))
    img = img.resize((new_w, new_h), Image.Resampling.LANCZOS)

    left = (new_w - target_width) // 2
    top = (new_h - target_height) // 2
    return img.crop((left, top, left + target_width, top + target_height))


def fit_contain(
    img: Image.Image, target_width: int, target_height: int, background: Tuple[int, int, int, int], mode: str = 'RGB'
) -> Image.Image:
    """Scale to fit inside the box and letterbox the rest with the background colour."""
    src_w, src_h = img.width, img.height
    scale = min(target_width / src_w, target_height / src_h)
    new_w = max(1, min(target_width, int(round(src_w * scale))))
    new_h = max(1, min(target_height, int(round(src_h * scale))))
    img = img.resize((new_w, new_h), Image.Resampling.LANCZOS)

    fill = background if mode == 'RGBA' else background[:3]
    tile = Image.new(mode, (target_width, target_height), fill)
    tile.paste(img, ((target_width - new_w) // 2, (target_height - new_h) // 2))
    return tile


def hexagon_vertices(cx: float, cy: float, size: float) -> List[Tuple[float, float]]:
    """Corners of a flat-top hexagon, starting east and going clockwise on the page."""
    return [
        (cx + size * math.cos(math.radians(60 * i)), cy + size * math.sin(math.radians(60 * i)))
        for i in range(6)
    ]


class CollageRenderer:
    """Draws a computed layout onto a Pillow canvas."""

    def __init__(self, background_color: str = "#FFFFFF", fit: Union[FitMode, str] = FitMode.COVER):
        if not HEX_COLOR_RE.match(background_color):
            raise ValueError(f"Invalid hex color: {background_color}")
        self.background_color = background_color
        self.background = parse_color_rgba(background_color)
        self.fit = FitMode(fit)

    def render(self, result: Union[LayoutResult, RingLayoutResult], main_image: Image.Image,
               side_images: Sequence[Image.Image], scale: float = 1.0) -> Image.Image:
        if isinstance(result, RingLayoutResult):
            return self.render_ring(result, main_image, side_images, scale)
        return self.render_grid(result, main_image, side_images, scale)

    def render_grid(self, result: LayoutResult, main_image: Image.Image,
                    side_images: Sequence[Image.Image], scale: float = 1.0) -> Image.Image:
        self._check_side_images(len(result.side), side_images)
        canvas = self._new_canvas(result.page_width, result.page_height, scale)

        self._draw_rectangle(canvas, main_image, result.main, scale)
        for rect, img in zip(result.side, side_images):
            self._draw_rectangle(canvas, img, rect, scale)
        return canvas

    def render_ring(self, result: RingLayoutResult, main_image: Image.Image,
                    side_images: Sequence[Image.Image], scale: float = 1.0) -> Image.Image:
        self._check_side_images(len(result.side), side_images)
        canvas = self._new_canvas(result.page_width, result.page_height, scale)

        self._draw_cell(canvas, main_image, result.center, result.pattern, scale)
        for position, img in zip(result.side, side_images):
            self._draw_cell(canvas, img, position, result.pattern, scale)
        return canvas

    def _check_side_images(self, expected: int, side_images: Sequence[Image.Image]) -> None:
        if len(side_images) != expected:
            raise ValueError(f"Layout has {expected} side cells but {len(side_images)} side images were given")

    def _new_canvas(self, width: int, height: int, scale: float) -> Image.Image:
        size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
        # Support RGBA when background has alpha
        r, g, b, a = self.background
        if a < 255:
            return Image.new('RGBA', size, (r, g, b, a))
        return Image.new('RGB', size, (r, g, b))

    def _fit(self, img: Image.Image, width: int, height: int, mode: str) -> Image.Image:
        if self.fit == FitMode.CONTAIN:
            return fit_contain(img, width, height, self.background, mode)
        return fit_cover(img, width, height)

    def _draw_rectangle(self, canvas: Image.Image, img: Image.Image, rect: Rectangle, scale: float) -> None:
        # rounding both edges keeps neighbouring cells from overlapping after scaling
        x0, y0 = int(round(rect.x * scale)), int(round(rect.y * scale))
        x1, y1 = int(round(rect.right * scale)), int(round(rect.bottom * scale))
        if x1 - x0 <= 0 or y1 - y0 <= 0:
            return
        canvas.paste(self._fit(img, x1 - x0, y1 - y0, canvas.mode), (x0, y0))

    def _draw_cell(self, canvas: Image.Image, img: Image.Image, position: HexPosition,
                   pattern: RingPattern, scale: float) -> None:
        size = position.size * scale
        if size < 1:
            return
        cx, cy = position.x * scale, position.y * scale
        half_w = size
        half_h = size * math.sqrt(3.0) / 2.0 if pattern == RingPattern.HEXAGON else size

        left, top = int(round(cx - half_w)), int(round(cy - half_h))
        right, bottom = int(round(cx + half_w)), int(round(cy + half_h))
        width, height = right - left, bottom - top
        if width <= 0 or height <= 0:
            return

        tile = self._fit(img, width, height, canvas.mode)
        mask = Image.new('L', (width, height), 0)
        draw = ImageDraw.Draw(mask)
        if pattern == RingPattern.HEXAGON:
            draw.polygon(hexagon_vertices(cx - left, cy - top, size), fill=255)
        else:
            draw.ellipse([0, 0, width - 1, height - 1], fill=255)
        canvas.paste(tile, (left, top), mask)


def export_collage(
    image: Image.Image,
    fp: Union[str, BinaryIO],
    output_format: Union[OutputFormat, str] = OutputFormat.PNG,
    dpi: int = 300,
) -> Union[str, BinaryIO]:
    """Save the rendered page in the requested format with the DPI embedded."""
    output_format = OutputFormat(output_format)
    if output_format == OutputFormat.JPEG:
        # JPEG does not support alpha
        if image.mode == 'RGBA':
            image = image.convert('RGB')
        image.save(fp, 'JPEG', quality=95, dpi=(dpi, dpi))
    elif output_format == OutputFormat.PNG:
        image.save(fp, 'PNG', dpi=(dpi, dpi))
    elif output_format == OutputFormat.TIFF:
        image.save(fp, 'TIFF', dpi=(dpi, dpi), compression='tiff_lzw')
    elif output_format == OutputFormat.PDF:
        if image.mode == 'RGBA':
            image = image.convert('RGB')
        image.save(fp, 'PDF', resolution=float(dpi))
    logger.debug(f"Exported {image.width}x{image.height} collage as {output_format.value} at {dpi} dpi")
    return fp
