"""Configuration dependency."""

from typing import Annotated

from fastapi import Depends

from knowledge_garden.config import GardenConfig, get_config


def get_app_config() -> GardenConfig:  # pragma: no cover
    return get_config()


AppConfigDep = Annotated[GardenConfig, Depends(get_app_config)]
