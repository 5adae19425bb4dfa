from __future__ import annotations

import json
from typing import Any, Dict

from sqlalchemy import select

from territory_api.db.base import new_id
from territory_api.db.models.config import UserConfig
from .base import BaseRepository

DEFAULT_PALETTE = [
    "rgba(0,0,0,1)",
    "rgba(255,0,0,1)",
    "rgba(0,128,0,1)",
    "rgba(0,0,255,1)",
    "rgba(255,255,0,1)",
    "rgba(0,255,255,1)",
    "rgba(255,0,255,1)",
    "rgba(255,255,255,1)",
    "rgba(255,165,0,1)",
    "rgba(128,0,128,1)",
]

# A reset also restores pink, brown and grey.
RESET_PALETTE = DEFAULT_PALETTE + [
    "rgba(255,192,203,1)",
    "rgba(165,42,42,1)",
    "rgba(128,128,128,1)",
]

DEFAULT_CONFIG: Dict[str, Any] = {
    "ppp": 250,
    "ratio_x": 1.618,
    "ratio_y": 1.0,
    "large_ratio_x": 1.0,
    "large_ratio_y": 1.618,
    "large_factor": 0.2,
    "contour_color": "red",
    "contour_width": 8,
    "thumbnail_width": 500,
    "network_retries": 3,
    "network_delay": 1000,
    "ign_api_rate_limit": 40,
    "ign_api_base_url": "https://data.geopf.fr/wms-r",
    "ign_api_layer": "GEOGRAPHICALGRIDSYSTEMS.PLANIGNV2",
    "ign_api_format": "image/png",
    "ign_api_crs": "EPSG:4326",
}

UPDATABLE_FIELDS = frozenset(DEFAULT_CONFIG) | {"palette"}


class UserConfigRepository(BaseRepository):
    """Per-user image generation configuration, created on first access."""

    async def _find(self, user_id: str) -> UserConfig | None:
        stmt = select(UserConfig).where(UserConfig.user_id == user_id).limit(1)
        return await self.first(stmt)

    async def get_user_config(self, user_id: str) -> UserConfig:
        config = await self._find(user_id)
        if config is not None:
            return config

        config = UserConfig(
            id=new_id(),
            user_id=user_id,
            palette=json.dumps(DEFAULT_PALETTE),
            **DEFAULT_CONFIG,
        )
        await self.add(config)
        await self.commit()
        return config

    async def update_user_config(self, user_id: str, updates: Dict[str, Any]) -> UserConfig:
        """
        Apply `updates` (snake_case attribute names) to the user's configuration.

        Unknown keys are ignored. A palette given as a list is stored as JSON.
        """
        config = await self.get_user_config(user_id)
        for key, value in updates.items():
            if key not in UPDATABLE_FIELDS:
                continue
            if key == "palette" and not isinstance(value, str):
                value = json.dumps(value)
            setattr(config, key, value)
        await self.commit()
        await self.session.refresh(config)
        return config

    async def reset_user_config(self, user_id: str) -> UserConfig:
        updates = dict(DEFAULT_CONFIG)
        updates["palette"] = RESET_PALETTE
        return await self.update_user_config(user_id, updates)
