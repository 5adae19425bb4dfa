"""
Map geometry used to frame a territory on paper.

Coordinates are `{"lat", "lon"}` dicts, pixels are `(x, y)` tuples and a
bounding box is `(min_lon, min_lat, max_lon, max_lat)`.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Tuple

PHI = 1.618033988749
PAPER_WIDTH_CM = 29.7
CM_PER_INCH = 2.54

Point = Tuple[float, float]
BBox = Tuple[float, float, float, float]


@dataclass(frozen=True)
class Orientation:
    """Best rotation found for a hull: angle in radians and the rotated hull."""
    angle: float
    scale: float
    center: Point
    hull: List[Point]


@dataclass(frozen=True)
class CropBox:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Dimensions:
    """Pixel sizes derived from a user configuration."""
    final_width: int
    final_height: int
    raw_size: int
    large_final_width: int
    large_final_height: int
    large_raw_size: int


def _cross(o: Point, a: Point, b: Point) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


# PUBLIC_INTERFACE
def convex_hull(points: Sequence[Point]) -> List[Point]:
    """Convex hull by Andrew's monotone chain, counter-clockwise without repeating the first point."""
    pts = sorted((float(x), float(y)) for x, y in points)
    if len(pts) <= 2:
        return pts

    lower: List[Point] = []
    for p in pts:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper: List[Point] = []
    for p in reversed(pts):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    return lower[:-1] + upper[:-1]


# PUBLIC_INTERFACE
def rotate_point(point: Point, angle: float, cx: float, cy: float) -> Point:
    """Rotate `point` by `angle` radians around (cx, cy)."""
    dx, dy = point[0] - cx, point[1] - cy
    return (
        dx * math.cos(angle) - dy * math.sin(angle) + cx,
        dx * math.sin(angle) + dy * math.cos(angle) + cy,
    )


# PUBLIC_INTERFACE
def gps_to_pixel(lat: float, lon: float, bbox: BBox, size: float) -> Point:
    """Project a coordinate into a square image of `size` pixels covering `bbox`."""
    min_lon, min_lat, max_lon, max_lat = bbox
    x = (lon - min_lon) / (max_lon - min_lon) * size
    y = (max_lat - lat) / (max_lat - min_lat) * size
    return (x, y)


# PUBLIC_INTERFACE
def calculate_bounding_box(
    polygon: Sequence[Mapping[str, float]],
    plan_large: bool,
    ppp: int,
    large_factor: float,
    phi: float = PHI,
) -> BBox:
    """
    Square bounding box centred on the polygon.

    Standard plans get a box of `diag * phi` (rounded to 5 decimals) with a
    minimum size that depends on `ppp`; large plans get `diag / large_factor`.
    """
    lats = [p["lat"] for p in polygon]
    lons = [p["lon"] for p in polygon]
    min_lat, max_lat = min(lats), max(lats)
    min_lon, max_lon = min(lons), max(lons)

    diag = math.hypot(max_lat - min_lat, max_lon - min_lon)
    center_lat = (min_lat + max_lat) / 2
    center_lon = (min_lon + max_lon) / 2

    if plan_large:
        size = diag / large_factor
    else:
        factor = (200 / ppp) * 1.2
        if diag < 0.01 / factor:
            size = 0.01618 / factor
        else:
            size = math.floor(diag * phi * 100000 + 0.5) / 100000

    return (
        center_lon - size / 2,
        center_lat - size / 2,
        center_lon + size / 2,
        center_lat + size / 2,
    )


def _extent(points: Sequence[Point]) -> Tuple[float, float, float, float]:
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return min(xs), min(ys), max(xs), max(ys)


# PUBLIC_INTERFACE
def find_optimal_orientation(
    hull: Sequence[Point], canvas_size: float, final_width: float, final_height: float
) -> Orientation:
    """
    Try aligning each hull edge with the horizontal axis and keep the rotation
    that lets the territory appear largest on the final page.
    """
    cx = cy = canvas_size / 2
    hull = list(hull)
    if len(hull) < 2:
        center = hull[0] if hull else (cx, cy)
        return Orientation(angle=0.0, scale=math.inf, center=center, hull=hull)

    best = None
    for i, a in enumerate(hull):
        b = hull[(i + 1) % len(hull)]
        angle = -math.atan2(b[1] - a[1], b[0] - a[0])
        rotated = [rotate_point(p, angle, cx, cy) for p in hull]
        min_x, min_y, max_x, max_y = _extent(rotated)
        w, h = max_x - min_x, max_y - min_y
        scale = min(
            final_width / w if w else math.inf,
            final_height / h if h else math.inf,
        )
        if best is None or scale > best.scale:
            best = Orientation(
                angle=angle,
                scale=scale,
                center=((min_x + max_x) / 2, (min_y + max_y) / 2),
                hull=rotated,
            )
    return best


# PUBLIC_INTERFACE
def calculate_crop_parameters(hull: Sequence[Point], final_width: int, final_height: int) -> CropBox:
    """Smallest box around `hull` with the final page ratio, centred on the hull."""
    min_x, min_y, max_x, max_y = _extent(hull)
    w, h = max_x - min_x, max_y - min_y
    cx, cy = (min_x + max_x) / 2, (min_y + max_y) / 2

    target_ratio = final_width / final_height
    crop_w, crop_h = w, h
    if h and w / h > target_ratio:
        crop_h = w / target_ratio
    else:
        crop_w = h * target_ratio
    crop_w = crop_w or w or 1.0
    crop_h = crop_h or h or 1.0
    return CropBox(x=cx - crop_w / 2, y=cy - crop_h / 2, width=crop_w, height=crop_h)


# PUBLIC_INTERFACE
def is_upside_down(angle: float) -> bool:
    """True when a rotation leaves the map more than a quarter turn from north-up."""
    return abs(abs(angle) - math.pi) < math.pi / 2


# PUBLIC_INTERFACE
def get_resolution(paper_width: float, ratio_x: float, ratio_y: float, ppp: int) -> Tuple[int, int]:
    """
    Pixel size of a page whose longest side is `paper_width` cm, printed at `ppp`.

    Landscape or square ratios use the paper width as width, portrait ratios as height.
    """
    if ratio_x >= ratio_y:
        width_cm = paper_width
        height_cm = paper_width * ratio_y / ratio_x
    else:
        height_cm = paper_width
        width_cm = paper_width * ratio_x / ratio_y
    return (
        int(math.floor(width_cm / CM_PER_INCH * ppp + 0.5)),
        int(math.floor(height_cm / CM_PER_INCH * ppp + 0.5)),
    )


# PUBLIC_INTERFACE
def compute_dimensions(config: Any) -> Dimensions:
    """Derive page and raw WMS image sizes from a user configuration."""
    final_width, final_height = get_resolution(
        PAPER_WIDTH_CM, float(config.ratio_x), float(config.ratio_y), config.ppp
    )
    large_width, large_height = get_resolution(
        PAPER_WIDTH_CM, float(config.large_ratio_x), float(config.large_ratio_y), config.ppp
    )
    return Dimensions(
        final_width=final_width,
        final_height=final_height,
        raw_size=int(math.floor(max(final_width, final_height) * PHI + 0.5)),
        large_final_width=large_width,
        large_final_height=large_height,
        large_raw_size=int(math.floor(max(large_width, large_height) * PHI + 0.5)),
    )



def polygon_to_pixels(polygon: Sequence[Mapping[str, float]], bbox: BBox, size: float) -> List[Point]:
    return [gps_to_pixel(p["lat"], p["lon"], bbox, size) for p in polygon]
