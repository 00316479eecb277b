"""Settings for StakeMap.

Settings come from three places, later ones winning:

1. the defaults on ``Settings``
2. an optional YAML file (path from ``STAKEMAP_CONFIG`` or passed explicitly)
3. ``STAKEMAP_*`` environment variables (``STAKEMAP_LAYOUT__FALLBACK_RADIUS``
   for nested layout fields)

Example YAML::

    supabase_url: https://example.supabase.co
    supabase_key: public-anon-key
    theme: light
    layout:
      fallback_radius: 300
      cluster_ring_radius: 350
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .models import DEFAULT_MAP_ID


class LayoutSettings(BaseModel):
    """Geometry constants for fallback placement, clustering and node sizing.

    Attributes:
        fallback_radius:      Circle used for stakeholders with no layout entry.
        cluster_ring_radius:  Ring the company centres sit on (R).
        cluster_sub_radius:   Ceiling for a company's member ring.
        per_member_radius:    Member ring growth per member.
        min_node_size:        Diameter for influence 1.
        max_node_size:        Diameter for influence 5.
        hull_padding:         Outward padding of company outlines.
    """
    fallback_radius: float = 300.0
    cluster_ring_radius: float = 350.0
    cluster_sub_radius: float = 48.0
    per_member_radius: float = 25.0
    min_node_size: float = 28.0
    max_node_size: float = 60.0
    hull_padding: float = 40.0


class Settings(BaseSettings):
    """Top-level StakeMap settings."""
    model_config = SettingsConfigDict(
        env_prefix="STAKEMAP_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    map_id: str = DEFAULT_MAP_ID
    request_timeout: float = 10.0
    suppress_company_named: bool = True
    theme: str = "light"
    output_dir: Path = Field(default_factory=lambda: Path.home() / ".stakemap" / "exports")
    layout: LayoutSettings = Field(default_factory=LayoutSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Keyword arguments carry the YAML file and sit under the environment
        return env_settings, init_settings


def load_settings(path: Optional[str] = None) -> Settings:
    """Build settings from defaults, an optional YAML file and the environment."""
    data: dict = {}

    config_path = path or os.environ.get("STAKEMAP_CONFIG")
    if config_path:
        loaded = yaml.safe_load(Path(config_path).read_text())
        if loaded:
            if not isinstance(loaded, dict):
                raise ValueError(f"Config file {config_path} must contain a mapping")
            data.update(loaded)

    return Settings(**data)
