from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, select, update

from territory_api.db.base import new_id, utcnow
from territory_api.db.models.territories import TerritoryData, TerritoryImage, TerritoryLayer
from territory_api.utils.gpx import parse_gpx
from .base import BaseRepository

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def generate_file_name(territory_number: str, image_type: str) -> str:
    """File name of a territory image: miniatures are WebP, everything else PNG."""
    extension = "webp" if image_type == "miniature" else "png"
    return f"{territory_number}-{image_type}.{extension}"


# PUBLIC_INTERFACE
def get_image_file_path(user_id: str, territory_number: str, image_type: str) -> str:
    """Path of an image relative to the static root, e.g. `/<userId>/12-standard.png`."""
    return f"/{user_id}/{generate_file_name(territory_number, image_type)}"


def layer_to_paint_layer(layer: TerritoryLayer) -> Dict[str, Any]:
    """Convert a stored layer to the shape the paint editor works with."""
    created = layer.created_at
    timestamp = int(created.timestamp() * 1000) if created else int(time.time() * 1000)
    return {
        "id": layer.id,
        "visible": layer.visible,
        "locked": layer.locked,
        "style": json.loads(layer.style),
        "timestamp": timestamp,
        "type": layer.layer_type,
        "data": json.loads(layer.layer_data),
    }


class TerritoryRepository(BaseRepository):
    """GPX data, image metadata and paint layers of a user's territories."""

    # ---- GPX data ----

    async def save_territory_data(self, user_id: str, gpx_data: str) -> Optional[TerritoryData]:
        """Insert or replace the user's GPX document. Blank documents are refused and return None."""
        if not gpx_data or not gpx_data.strip():
            logger.error("Refusing to save empty GPX data")
            return None

        existing = await self.get_territory_data(user_id)
        if existing is not None:
            existing.data = gpx_data
            existing.updated_at = utcnow()
            await self.commit()
            return existing

        entity = TerritoryData(user_id=user_id, data=gpx_data)
        await self.add(entity)
        await self.commit()
        return entity

    async def get_territory_data(self, user_id: str) -> Optional[TerritoryData]:
        stmt = select(TerritoryData).where(TerritoryData.user_id == user_id).limit(1)
        return await self.first(stmt)

    async def delete_territory_data(self, user_id: str) -> None:
        await self.delete_rows(delete(TerritoryData).where(TerritoryData.user_id == user_id))

    # ---- Images ----

    async def create_territory_image(
        self,
        *,
        user_id: str,
        territory_number: str,
        image_type: str,
        width: Optional[int] = None,
        height: Optional[int] = None,
        bbox: Optional[str] = None,
        rotation: Optional[float] = None,
        crop_data: Optional[str] = None,
    ) -> TerritoryImage:
        """Record an image, replacing any previous row for the same territory and type."""
        await self.execute(
            delete(TerritoryImage).where(
                TerritoryImage.user_id == user_id,
                TerritoryImage.territory_number == territory_number,
                TerritoryImage.image_type == image_type,
            )
        )
        entity = TerritoryImage(
            id=new_id(),
            user_id=user_id,
            territory_number=territory_number,
            image_type=image_type,
            file_name=generate_file_name(territory_number, image_type),
            width=width,
            height=height,
            bbox=bbox,
            rotation=rotation,
            crop_data=crop_data,
        )
        await self.add(entity)
        await self.commit()
        return entity

    async def get_territory_images_by_user(
        self,
        user_id: str,
        territory_number: Optional[str] = None,
        image_type: Optional[str] = None,
    ) -> List[TerritoryImage]:
        stmt = select(TerritoryImage).where(TerritoryImage.user_id == user_id)
        if territory_number:
            stmt = stmt.where(TerritoryImage.territory_number == territory_number)
        if image_type:
            stmt = stmt.where(TerritoryImage.image_type == image_type)
        stmt = stmt.order_by(TerritoryImage.created_at.desc())
        return list(await self.scalars(stmt))

    async def get_territory_image(
        self, user_id: str, territory_number: str, image_type: str
    ) -> Optional[TerritoryImage]:
        stmt = (
            select(TerritoryImage)
            .where(
                TerritoryImage.user_id == user_id,
                TerritoryImage.territory_number == territory_number,
                TerritoryImage.image_type == image_type,
            )
            .limit(1)
        )
        return await self.first(stmt)

    async def delete_territory_image(
        self, user_id: str, territory_number: str, image_type: Optional[str] = None
    ) -> List[str]:
        """
        Delete image rows of a territory, all types unless `image_type` is given.

        Returns the relative file paths of the deleted images so the caller can
        remove the files.
        """
        conditions = [
            TerritoryImage.user_id == user_id,
            TerritoryImage.territory_number == territory_number,
        ]
        if image_type:
            conditions.append(TerritoryImage.image_type == image_type)

        rows = list(await self.scalars(select(TerritoryImage).where(*conditions)))
        await self.delete_rows(delete(TerritoryImage).where(*conditions))
        return [get_image_file_path(r.user_id, r.territory_number, r.image_type) for r in rows]

    async def delete_modified_territory_images(
        self, user_id: str, territory_number: str, image_type: str
    ) -> List[str]:
        """Delete one edited image type (never the originals) and return its file paths."""
        return await self.delete_territory_image(user_id, territory_number, image_type)

    # ---- Layers ----

    async def create_territory_layer(
        self,
        *,
        user_id: str,
        territory_number: str,
        image_type: str,
        layer_type: str,
        layer_data: str,
        style: str,
        visible: bool = True,
        locked: bool = False,
        name: Optional[str] = None,
        commit: bool = True,
    ) -> TerritoryLayer:
        entity = TerritoryLayer(
            id=new_id(),
            user_id=user_id,
            territory_number=territory_number,
            image_type=image_type,
            layer_type=layer_type,
            layer_data=layer_data,
            style=style,
            visible=visible,
            locked=locked,
            name=name,
        )
        await self.add(entity)
        if commit:
            await self.commit()
        return entity

    async def get_territory_layers_by_user(
        self,
        user_id: str,
        territory_number: Optional[str] = None,
        image_type: Optional[str] = None,
    ) -> List[TerritoryLayer]:
        stmt = select(TerritoryLayer).where(TerritoryLayer.user_id == user_id)
        if territory_number:
            stmt = stmt.where(TerritoryLayer.territory_number == territory_number)
        if image_type:
            stmt = stmt.where(TerritoryLayer.image_type == image_type)
        stmt = stmt.order_by(TerritoryLayer.created_at.desc())
        return list(await self.scalars(stmt))

    async def get_territory_layer(self, user_id: str, layer_id: str) -> Optional[TerritoryLayer]:
        stmt = (
            select(TerritoryLayer)
            .where(TerritoryLayer.user_id == user_id, TerritoryLayer.id == layer_id)
            .limit(1)
        )
        return await self.first(stmt)

    async def update_territory_layer(self, user_id: str, layer_id: str, updates: Dict[str, Any]) -> bool:
        """Update `visible`, `locked`, `name`, `style` or `layer_data`; False when the layer does not exist."""
        allowed = {k: v for k, v in updates.items() if k in {"visible", "locked", "name", "style", "layer_data"}}
        if allowed:
            allowed["updated_at"] = utcnow()
            await self.execute(
                update(TerritoryLayer)
                .where(TerritoryLayer.user_id == user_id, TerritoryLayer.id == layer_id)
                .values(**allowed)
                .execution_options(synchronize_session="fetch")
            )
            await self.commit()
        return await self.get_territory_layer(user_id, layer_id) is not None

    async def delete_territory_layer(self, user_id: str, layer_id: str) -> bool:
        layer = await self.get_territory_layer(user_id, layer_id)
        if layer is None:
            return False
        await self.delete_rows(
            delete(TerritoryLayer).where(TerritoryLayer.user_id == user_id, TerritoryLayer.id == layer_id)
        )
        return True

    async def delete_territory_layers_by_territory(
        self,
        user_id: str,
        territory_number: str,
        image_type: Optional[str] = None,
        commit: bool = True,
    ) -> int:
        conditions = [
            TerritoryLayer.user_id == user_id,
            TerritoryLayer.territory_number == territory_number,
        ]
        if image_type:
            conditions.append(TerritoryLayer.image_type == image_type)
        return await self.delete_rows(delete(TerritoryLayer).where(*conditions), commit=commit)

    async def save_territory_layers(
        self,
        user_id: str,
        territory_number: str,
        image_type: str,
        layers: Iterable[Dict[str, Any]],
    ) -> List[TerritoryLayer]:
        """Replace every layer of a territory image with `layers` in one transaction."""
        await self.delete_territory_layers_by_territory(user_id, territory_number, image_type, commit=False)
        saved = []
        for layer in layers:
            saved.append(
                await self.create_territory_layer(
                    user_id=user_id,
                    territory_number=territory_number,
                    image_type=image_type,
                    layer_type=layer["type"],
                    layer_data=json.dumps(layer.get("data")),
                    style=json.dumps(layer.get("style")),
                    visible=layer.get("visible", True),
                    locked=layer.get("locked", False),
                    name=layer.get("name"),
                    commit=False,
                )
            )
        await self.commit()
        return saved

    # ---- Reconstruction ----

    async def get_reconstructed_territories(self, user_id: str, base_url: str) -> List[Dict[str, Any]]:
        """
        Rebuild the user's territories from the stored GPX and attach image URLs,
        rotation and paint layers.

        Image URLs are `<base_url>/api/p/<userId>/<num>-<type>.<ext>`.
        """
        data = await self.get_territory_data(user_id)
        if data is None or not data.data:
            return []
        territories = parse_gpx(data.data)
        if not territories:
            return []

        images_by_territory: Dict[str, Dict[str, TerritoryImage]] = {}
        for image in await self.get_territory_images_by_user(user_id):
            images_by_territory.setdefault(image.territory_number, {})[image.image_type] = image

        layers_by_territory: Dict[str, Dict[str, List[Dict[str, Any]]]] = {}
        for layer in await self.get_territory_layers_by_user(user_id):
            bucket = layers_by_territory.setdefault(
                layer.territory_number, {"paintLayersImage": [], "paintLayersLarge": []}
            )
            if layer.image_type == "standard":
                bucket["paintLayersImage"].append(layer_to_paint_layer(layer))
            elif layer.image_type == "large":
                bucket["paintLayersLarge"].append(layer_to_paint_layer(layer))

        def url(num: str, image_type: str) -> str:
            return f"{base_url}/api/p{get_image_file_path(user_id, num, image_type)}"

        for territory in territories:
            num = territory["num"]
            images = images_by_territory.get(num)
            if images:
                source = images.get("original") or images.get("standard")
                if source is not None and source.rotation is not None:
                    territory["rotation"] = source.rotation

                if "standard" in images:
                    territory["image"] = url(num, "standard")
                if "original" in images:
                    territory["original"] = url(num, "original")
                elif "standard" in images:
                    territory["original"] = url(num, "standard")
                if "large" in images:
                    territory["large"] = url(num, "large")
                if "originalLarge" in images:
                    territory["originalLarge"] = url(num, "originalLarge")
                elif "large" in images:
                    territory["originalLarge"] = url(num, "large")
                if "miniature" in images:
                    territory["miniature"] = url(num, "miniature")
                if "standard" in images or "large" in images:
                    territory["isDefault"] = False

            layers = layers_by_territory.get(num, {"paintLayersImage": [], "paintLayersLarge": []})
            territory["paintLayersImage"] = layers["paintLayersImage"]
            territory["paintLayersLarge"] = layers["paintLayersLarge"]
        return territories
