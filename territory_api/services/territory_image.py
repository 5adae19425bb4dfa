"""
Territory map rendering.

Map tiles come from the IGN WMS service through the process-wide request
queue; drawing happens with Pillow in a worker thread so the event loop stays
free while large images are composed.
"""
from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from PIL import Image, ImageColor, ImageDraw, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from territory_api.utils.geometry import (
    PHI,
    BBox,
    CropBox,
    Dimensions,
    Point,
    calculate_bounding_box,
    calculate_crop_parameters,
    convex_hull,
    find_optimal_orientation,
    is_upside_down,
    polygon_to_pixels,
    rotate_point,
)
from territory_api.utils.network import build_ign_url, load_image_bytes, wms_queue

logger = logging.getLogger(__name__)

MASK_COLOR = (128, 128, 128)
MASK_ALPHA = 0.55
WEBP_QUALITY = 80
DEFAULT_CONTOUR_COLOR = "red"

Fetcher = Callable[[str, int, int], Awaitable[bytes]]


class ImageGenerationError(RuntimeError):
    """Raised when a map image cannot be decoded or rendered."""


@dataclass
class StandardImage:
    png: bytes
    miniature: bytes
    width: int
    height: int
    rotation: float
    miniature_width: int
    miniature_height: int


@dataclass
class LargeImage:
    png: bytes
    width: int
    height: int
    bbox: BBox


async def _queued_fetch(url: str, retries: int, delay_ms: int) -> bytes:
    return await wms_queue.add(lambda: load_image_bytes(url, retries, delay_ms))


# ---- Pillow helpers ----

def decode_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageGenerationError(f"Map service did not return a readable image: {exc}") from exc
    return image.convert("RGBA")


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


# PUBLIC_INTERFACE
def to_webp(png: bytes, quality: int = WEBP_QUALITY) -> bytes:
    """Re-encode an image as WebP."""
    image = decode_image(png)
    buffer = io.BytesIO()
    image.save(buffer, format="WEBP", quality=quality)
    return buffer.getvalue()


def parse_color(color: str) -> Tuple[int, ...]:
    try:
        return ImageColor.getrgb(color)
    except ValueError:
        logger.warning("Unknown contour colour %r, using %s", color, DEFAULT_CONTOUR_COLOR)
        return ImageColor.getrgb(DEFAULT_CONTOUR_COLOR)


def fit_to_canvas(image: Image.Image, size: int) -> Image.Image:
    """Place `image` at the top-left of a transparent square canvas of `size` pixels."""
    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    canvas.paste(image, (0, 0))
    return canvas


def rotate_canvas(image: Image.Image, angle: float) -> Image.Image:
    """Rotate around the centre by `angle` radians, clockwise on screen for positive angles."""
    return image.rotate(
        -math.degrees(angle),
        resample=Image.Resampling.BICUBIC,
        center=(image.width / 2, image.height / 2),
    )


def crop_and_resize(image: Image.Image, crop: CropBox, width: int, height: int) -> Image.Image:
    """Map `crop` (which may extend past the image) onto a `width` x `height` canvas."""
    scale_x = crop.width / width
    scale_y = crop.height / height
    return image.transform(
        (width, height),
        Image.Transform.AFFINE,
        (scale_x, 0, crop.x, 0, scale_y, crop.y),
        resample=Image.Resampling.BICUBIC,
    )


def draw_mask(image: Image.Image, polygon: Sequence[Point], plan_large: bool) -> Image.Image:
    """
    Shade the image in grey: outside the polygon for standard plans, inside it
    for large plans.
    """
    if len(polygon) < 3:
        return image
    level = int(round(255 * MASK_ALPHA))
    mask = Image.new("L", image.size, 0 if plan_large else level)
    ImageDraw.Draw(mask).polygon(list(polygon), fill=level if plan_large else 0)
    shade = Image.new("RGBA", image.size, MASK_COLOR + (255,))
    return Image.composite(shade, image, mask)


def draw_contour(image: Image.Image, polygon: Sequence[Point], color: str, width: int) -> Image.Image:
    if len(polygon) < 2:
        return image
    points = list(polygon) + [polygon[0]]
    ImageDraw.Draw(image).line(points, fill=parse_color(color), width=int(width), joint="curve")
    return image


def flip_if_needed(image: Image.Image, angle: float) -> Image.Image:
    if is_upside_down(angle):
        return image.rotate(180)
    return image


def make_thumbnail(image: Image.Image, width: int, height: int) -> Image.Image:
    """Crop to the `width:height` ratio (keeping the vertical centre) then scale down."""
    src_w, src_h = image.size
    sy, s_height = 0.0, float(src_h)
    target_ratio = width / height
    if src_w / src_h < target_ratio:
        s_height = src_w / target_ratio
        sy = (src_h - s_height) / 2
    return crop_and_resize(image, CropBox(0, sy, src_w, s_height), width, height)


# PUBLIC_INTERFACE
def create_thumbnail(png: bytes, width: int, height: int) -> bytes:
    """Thumbnail of an encoded image as PNG bytes."""
    return encode_png(make_thumbnail(decode_image(png), width, height))


class TerritoryImageService:
    """
    Generates standard, large and cropped large territory images for one user.

    Parameters:
        config: user configuration (ppp, large_factor, contour, thumbnail and IGN settings)
        dimensions: page and raw sizes derived from `config`
        fetcher: coroutine `(url, retries, delay_ms) -> bytes`; defaults to the queued WMS download
    """

    def __init__(self, config: Any, dimensions: Dimensions, fetcher: Optional[Fetcher] = None) -> None:
        self.config = config
        self.dimensions = dimensions
        self.fetcher = fetcher or _queued_fetch

    def _contour(self, options: Optional[Mapping[str, Any]]) -> Tuple[str, int]:
        options = options or {}
        color = options.get("contourColor") or self.config.contour_color
        width = options.get("contourWidth") or self.config.contour_width
        return color, int(width)

    async def _fetch_map(self, bbox: BBox, size: int) -> bytes:
        url = build_ign_url(
            bbox,
            size,
            base_url=self.config.ign_api_base_url,
            layer=self.config.ign_api_layer,
            image_format=self.config.ign_api_format,
            crs=self.config.ign_api_crs,
        )
        return await self.fetcher(url, self.config.network_retries, self.config.network_delay)

    # ---- Standard ----

    async def generate_standard_image(
        self, territory: Dict[str, Any], options: Optional[Mapping[str, Any]] = None
    ) -> StandardImage:
        """
        Render the territory rotated to fill the page, shaded outside its
        outline, and its WebP miniature. Sets `territory["rotation"]`.
        """
        bbox = calculate_bounding_box(
            territory["polygon"], False, self.config.ppp, float(self.config.large_factor), PHI
        )
        data = await self._fetch_map(bbox, self.dimensions.raw_size)
        color, width = self._contour(options)
        result = await run_in_threadpool(self._render_standard, data, territory["polygon"], bbox, color, width)
        territory["rotation"] = result.rotation
        return result

    def _render_standard(
        self, data: bytes, polygon: Sequence[Mapping[str, float]], bbox: BBox, color: str, width: int
    ) -> StandardImage:
        dims = self.dimensions
        raw = dims.raw_size
        map_image = fit_to_canvas(decode_image(data), raw)

        pixels = polygon_to_pixels(polygon, bbox, raw)
        optimal = find_optimal_orientation(convex_hull(pixels), raw, dims.final_width, dims.final_height)

        rotated = rotate_canvas(map_image, optimal.angle)
        crop = calculate_crop_parameters(optimal.hull, dims.final_width, dims.final_height)
        page = crop_and_resize(rotated, crop, dims.final_width, dims.final_height)

        final_polygon = self._to_page(pixels, optimal.angle, crop)
        page = draw_mask(page, final_polygon, plan_large=False)
        page = draw_contour(page, final_polygon, color, width)
        page = flip_if_needed(page, optimal.angle)

        thumb_width = int(self.config.thumbnail_width)
        thumb_height = int(math.floor(dims.final_height / dims.final_width * thumb_width + 0.5))
        miniature = make_thumbnail(page, thumb_width, thumb_height)
        buffer = io.BytesIO()
        miniature.save(buffer, format="WEBP", quality=WEBP_QUALITY)

        return StandardImage(
            png=encode_png(page),
            miniature=buffer.getvalue(),
            width=dims.final_width,
            height=dims.final_height,
            rotation=optimal.angle,
            miniature_width=thumb_width,
            miniature_height=thumb_height,
        )

    def _to_page(self, pixels: Sequence[Point], angle: float, crop: CropBox) -> List[Point]:
        dims = self.dimensions
        cx = cy = dims.raw_size / 2
        result = []
        for point in pixels:
            xr, yr = rotate_point(point, angle, cx, cy)
            result.append((
                (xr - crop.x) * dims.final_width / crop.width,
                (yr - crop.y) * dims.final_height / crop.height,
            ))
        return result

    # ---- Large ----

    async def generate_large_image(
        self, territory: Dict[str, Any], options: Optional[Mapping[str, Any]] = None
    ) -> LargeImage:
        """Render the raw square map around the territory, shaded inside its outline."""
        bbox = calculate_bounding_box(
            territory["polygon"], True, self.config.ppp, float(self.config.large_factor), PHI
        )
        raw = self.dimensions.large_raw_size or self.dimensions.raw_size
        data = await self._fetch_map(bbox, raw)
        color, width = self._contour(options)
        return await run_in_threadpool(self._render_large, data, territory["polygon"], bbox, raw, color, width)

    def _render_large(
        self,
        data: bytes,
        polygon: Sequence[Mapping[str, float]],
        bbox: BBox,
        raw: int,
        color: str,
        width: int,
    ) -> LargeImage:
        canvas = fit_to_canvas(decode_image(data), raw)
        pixels = polygon_to_pixels(polygon, bbox, raw)
        canvas = draw_mask(canvas, pixels, plan_large=True)
        canvas = draw_contour(canvas, pixels, color, width)
        return LargeImage(png=encode_png(canvas), width=raw, height=raw, bbox=bbox)

    async def generate_large_image_with_custom_bbox(
        self,
        territory: Dict[str, Any],
        custom_bbox: Sequence[float],
        options: Optional[Mapping[str, Any]] = None,
        crop_data: Optional[Mapping[str, Any]] = None,
    ) -> LargeImage:
        """
        Render a large image framed exactly on `custom_bbox`.

        The map is fetched for the box grown by PHI times its size on each side,
        then cut back to the box at the configured large page size, turned to
        the orientation closest to the box ratio.
        """
        min_lon, min_lat, max_lon, max_lat = (float(v) for v in custom_bbox)
        bbox_w = max_lon - min_lon
        bbox_h = max_lat - min_lat
        if bbox_w <= 0 or bbox_h <= 0:
            raise ImageGenerationError("Crop box must have a positive width and height")

        expanded: BBox = (
            min_lon - bbox_w * PHI,
            min_lat - bbox_h * PHI,
            max_lon + bbox_w * PHI,
            max_lat + bbox_h * PHI,
        )
        raw = self.dimensions.large_raw_size or self.dimensions.raw_size
        data = await self._fetch_map(expanded, raw)
        color, width = self._contour(options)
        if crop_data:
            logger.debug("Crop requested from client selection %s", dict(crop_data))
        return await run_in_threadpool(
            self._render_custom,
            data,
            territory["polygon"],
            (min_lon, min_lat, max_lon, max_lat),
            expanded,
            raw,
            color,
            width,
        )

    def _render_custom(
        self,
        data: bytes,
        polygon: Sequence[Mapping[str, float]],
        bbox: BBox,
        expanded: BBox,
        raw: int,
        color: str,
        width: int,
    ) -> LargeImage:
        min_lon, min_lat, max_lon, max_lat = bbox
        bbox_w = max_lon - min_lon
        bbox_h = max_lat - min_lat

        config_w = self.dimensions.large_final_width or self.dimensions.final_width
        config_h = self.dimensions.large_final_height or self.dimensions.final_height
        config_ratio = config_w / config_h
        bbox_ratio = bbox_w / bbox_h
        if abs(bbox_ratio - config_ratio) < abs(bbox_ratio - 1 / config_ratio):
            final_w, final_h = config_w, config_h
        else:
            final_w, final_h = config_h, config_w

        expanded_w = expanded[2] - expanded[0]
        expanded_h = expanded[3] - expanded[1]
        crop = CropBox(
            x=(min_lon - expanded[0]) / expanded_w * raw,
            y=(expanded[3] - max_lat) / expanded_h * raw,
            width=bbox_w / expanded_w * raw,
            height=bbox_h / expanded_h * raw,
        )

        canvas = fit_to_canvas(decode_image(data), raw)
        page = crop_and_resize(canvas, crop, final_w, final_h)

        pixels = [
            ((p["lon"] - min_lon) / bbox_w * final_w, (max_lat - p["lat"]) / bbox_h * final_h)
            for p in polygon
        ]
        page = draw_mask(page, pixels, plan_large=True)
        page = draw_contour(page, pixels, color, width)
        return LargeImage(png=encode_png(page), width=final_w, height=final_h, bbox=bbox)
