from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from territory_api.repositories.territories import TerritoryRepository, get_image_file_path
from territory_api.repositories.user_config import UserConfigRepository
from territory_api.services.base import BaseService
from territory_api.services.storage import ImageStorage
from territory_api.services.territory_image import (
    Fetcher,
    ImageGenerationError,
    TerritoryImageService,
    decode_image,
    to_webp,
)
from territory_api.utils.csv_import import parse_csv
from territory_api.utils.geometry import compute_dimensions
from territory_api.utils.gpx import make_gpx


_DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")


class InvalidImageData(ValueError):
    """Raised when an uploaded image is not valid base64 image data."""


def decode_data_url(value: str) -> bytes:
    """Bytes of a `data:image/...;base64,` URL or of bare base64."""
    try:
        return base64.b64decode(_DATA_URL_PREFIX.sub("", value.strip()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImageData("Image data is not valid base64") from exc


def _image_size(data: bytes) -> tuple[int, int]:
    try:
        image = decode_image(data)
    except ImageGenerationError as exc:
        raise InvalidImageData(str(exc)) from exc
    return image.width, image.height


class TerritoryService(BaseService):
    """
    Territory image workflows: generation from the map service, saving of
    edited images and layers, deletion and CSV import.

    Database rows and files below the static root are kept in step: rows are
    replaced first, then the files of replaced rows are removed.
    """

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[ImageStorage] = None,
        fetcher: Optional[Fetcher] = None,
    ) -> None:
        super().__init__(session)
        self.repo = TerritoryRepository(session)
        self.config_repo = UserConfigRepository(session)
        self.storage = storage or ImageStorage()
        self.fetcher = fetcher

    async def _image_service(self, user_id: str) -> TerritoryImageService:
        config = await self.config_repo.get_user_config(user_id)
        return TerritoryImageService(config, compute_dimensions(config), fetcher=self.fetcher)

    async def _drop_images(self, user_id: str, territory_number: str, *image_types: str) -> None:
        paths: List[str] = []
        for image_type in image_types:
            paths.extend(await self.repo.delete_territory_image(user_id, territory_number, image_type))
        await self.storage.remove_all(paths)

    async def _store(
        self,
        user_id: str,
        territory_number: str,
        image_type: str,
        data: bytes,
        **metadata: Any,
    ) -> None:
        await self.storage.write(get_image_file_path(user_id, territory_number, image_type), data)
        await self.repo.create_territory_image(
            user_id=user_id,
            territory_number=territory_number,
            image_type=image_type,
            **metadata,
        )

    # PUBLIC_INTERFACE
    async def generate_image(
        self,
        user_id: str,
        territory: Dict[str, Any],
        image_type: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Generate and store the standard or large image of a territory.

        Standard writes `original`, `standard` and `miniature`; large writes
        `originalLarge` and `large`. Previous images of those types are removed.
        """
        num = territory["num"]
        service = await self._image_service(user_id)

        if image_type == "standard":
            await self._drop_images(user_id, num, "standard", "original", "miniature")
            result = await service.generate_standard_image(territory, options)
            size = {"width": result.width, "height": result.height, "rotation": result.rotation}
            await self._store(user_id, num, "original", result.png, **size)
            await self._store(user_id, num, "standard", result.png, **size)
            await self._store(
                user_id,
                num,
                "miniature",
                result.miniature,
                width=result.miniature_width,
                height=result.miniature_height,
            )
        elif image_type == "large":
            await self._drop_images(user_id, num, "large", "originalLarge")
            large = await service.generate_large_image(territory, options)
            metadata = {
                "width": large.width,
                "height": large.height,
                "bbox": json.dumps(list(large.bbox)),
                "rotation": territory.get("rotation"),
            }
            await self._store(user_id, num, "originalLarge", large.png, **metadata)
            await self._store(user_id, num, "large", large.png, **metadata)
        else:
            raise ValueError(f"Unsupported image type: {image_type}")
        self.logger.info("Generated %s image for territory %s", image_type, num)

    # PUBLIC_INTERFACE
    async def generate_image_with_crop(
        self,
        user_id: str,
        territory: Dict[str, Any],
        custom_bbox: List[float],
        crop_data: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Regenerate the large image of a territory framed on `custom_bbox`."""
        num = territory["num"]
        service = await self._image_service(user_id)
        await self._drop_images(user_id, num, "large")
        large = await service.generate_large_image_with_custom_bbox(territory, custom_bbox, options, crop_data)
        await self._store(
            user_id,
            num,
            "large",
            large.png,
            width=large.width,
            height=large.height,
            bbox=json.dumps(list(custom_bbox)),
            crop_data=json.dumps(crop_data) if crop_data else None,
        )
        self.logger.info("Generated cropped large image for territory %s", num)

    # PUBLIC_INTERFACE
    async def update_territory_complete(
        self,
        user_id: str,
        territory: Dict[str, Any],
        images: Dict[str, Optional[str]],
        layers: Dict[str, Optional[List[Dict[str, Any]]]],
    ) -> None:
        """
        Save edited images and paint layers of a territory.

        Only the edited types (`standard`, `large`, `miniature`) are replaced;
        originals stay. The miniature is stored as WebP. A layer list replaces
        the stored layers of its image type only when it is non-empty.
        """
        num = territory["num"]
        rotation = territory.get("rotation")

        edited = (("image", "standard"), ("large", "large"), ("miniature", "miniature"))
        for key, image_type in edited:
            value = images.get(key)
            if not value:
                continue
            data = decode_data_url(value)
            width, height = _image_size(data)
            if image_type == "miniature":
                data = await run_in_threadpool(to_webp, data)
            paths = await self.repo.delete_modified_territory_images(user_id, num, image_type)
            await self.storage.remove_all(paths)
            await self._store(
                user_id,
                num,
                image_type,
                data,
                width=width,
                height=height,
                rotation=None if image_type == "miniature" else rotation,
            )

        for key, image_type in (("paint_layers_image", "standard"), ("paint_layers_large", "large")):
            paint_layers = layers.get(key)
            if paint_layers:
                await self.repo.save_territory_layers(user_id, num, image_type, paint_layers)
                self.logger.info("Saved %d %s layers for territory %s", len(paint_layers), image_type, num)

    # PUBLIC_INTERFACE
    async def delete_image(self, user_id: str, territory_number: str, image_type: str) -> None:
        """Delete one image row and its file."""
        await self._drop_images(user_id, territory_number, image_type)

    # PUBLIC_INTERFACE
    async def delete_all_data(self, user_id: str) -> None:
        """Delete the GPX document plus every image and layer of the user's territories."""
        for image in await self.repo.get_territory_images_by_user(user_id):
            await self._drop_images(user_id, image.territory_number, image.image_type)
        for layer in await self.repo.get_territory_layers_by_user(user_id):
            await self.repo.delete_territory_layer(user_id, layer.id)
        await self.repo.delete_territory_data(user_id)

    # PUBLIC_INTERFACE
    async def import_csv(self, user_id: str, content: str) -> List[Dict[str, Any]]:
        """
        Convert a CSV export to GPX and store it as the user's territory data.

        Returns the parsed territories; nothing is stored when none is found.
        """
        territories = parse_csv(content)
        if territories:
            await self.repo.save_territory_data(user_id, make_gpx(territories))
        self.logger.info("Imported %d territories from CSV", len(territories))
        return territories
