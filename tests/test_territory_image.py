import io
from types import SimpleNamespace

import pytest
from PIL import Image

from conftest import SQUARE, FakeMapService, png_bytes
from territory_api.services.territory_image import (
    ImageGenerationError,
    TerritoryImageService,
    create_thumbnail,
    draw_mask,
    to_webp,
)
from territory_api.utils.geometry import compute_dimensions


def _config(**overrides):
    values = dict(
        ppp=100,
        ratio_x=1.618,
        ratio_y=1.0,
        large_ratio_x=1.0,
        large_ratio_y=1.618,
        large_factor=0.2,
        contour_color="red",
        contour_width=4,
        thumbnail_width=100,
        network_retries=1,
        network_delay=0,
        ign_api_base_url="https://wms.test/wms-r",
        ign_api_layer="LAYER",
        ign_api_format="image/png",
        ign_api_crs="EPSG:4326",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


@pytest.fixture
def service():
    config = _config()
    return TerritoryImageService(config, compute_dimensions(config), fetcher=FakeMapService())


async def test_standard_image_has_page_size_and_miniature(service):
    territory = {"num": "1", "polygon": list(SQUARE)}
    result = await service.generate_standard_image(territory, {"contourColor": "#00ff00"})

    page = _open(result.png)
    dims = service.dimensions
    assert page.format == "PNG"
    assert page.size == (dims.final_width, dims.final_height)
    assert (result.width, result.height) == page.size

    miniature = _open(result.miniature)
    assert miniature.format == "WEBP"
    assert miniature.size == (100, result.miniature_height)
    assert territory["rotation"] == result.rotation

    url = service.fetcher.urls[0]
    assert url.startswith("https://wms.test/wms-r?")
    assert f"WIDTH={dims.raw_size}" in url


async def test_large_image_is_raw_square(service):
    result = await service.generate_large_image({"num": "1", "polygon": list(SQUARE)})
    raw = service.dimensions.large_raw_size
    assert _open(result.png).size == (raw, raw)
    min_lon, min_lat, max_lon, max_lat = result.bbox
    assert min_lon < 2.35 and max_lon > 2.356


async def test_custom_bbox_picks_orientation_from_ratio(service):
    dims = service.dimensions
    wide = await service.generate_large_image_with_custom_bbox(
        {"num": "1", "polygon": list(SQUARE)}, [2.34, 48.85, 2.37, 48.86]
    )
    assert (wide.width, wide.height) == (dims.large_final_height, dims.large_final_width)
    assert _open(wide.png).size == (wide.width, wide.height)

    tall = await service.generate_large_image_with_custom_bbox(
        {"num": "1", "polygon": list(SQUARE)}, [2.34, 48.85, 2.35, 48.87]
    )
    assert (tall.width, tall.height) == (dims.large_final_width, dims.large_final_height)


async def test_custom_bbox_must_have_area(service):
    with pytest.raises(ImageGenerationError):
        await service.generate_large_image_with_custom_bbox(
            {"num": "1", "polygon": list(SQUARE)}, [2.3, 48.8, 2.3, 48.9]
        )


async def test_unreadable_map_is_reported():
    async def garbage(url, retries, delay_ms):
        return b"<html>maintenance</html>"

    config = _config()
    service = TerritoryImageService(config, compute_dimensions(config), fetcher=garbage)
    with pytest.raises(ImageGenerationError):
        await service.generate_large_image({"num": "1", "polygon": list(SQUARE)})


def test_mask_shades_outside_for_standard_and_inside_for_large():
    image = Image.new("RGBA", (10, 10), (255, 255, 255, 255))
    square = [(2, 2), (7, 2), (7, 7), (2, 7)]

    standard = draw_mask(image.copy(), square, plan_large=False)
    assert standard.getpixel((5, 5)) == (255, 255, 255, 255)
    assert standard.getpixel((0, 0))[:3] != (255, 255, 255)

    large = draw_mask(image.copy(), square, plan_large=True)
    assert large.getpixel((0, 0)) == (255, 255, 255, 255)
    assert large.getpixel((5, 5))[:3] != (255, 255, 255)


def test_to_webp_and_thumbnail():
    webp = to_webp(png_bytes(40, 20))
    assert _open(webp).format == "WEBP"

    thumb = _open(create_thumbnail(png_bytes(200, 100), 50, 50))
    assert thumb.size == (50, 50)
