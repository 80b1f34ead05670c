from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BEACONRELAY_", extra="ignore", frozen=True)

    allowed_root_domain: str = Field(
        default="example.com",
        description="Root domain whose origins (and any subdomain) may send beacons.",
    )
    # Comma-separated; each entry may be a bare domain or a full origin URL
    extra_allowed_origins: str = Field(
        default="",
        description="Comma-separated extra origins/domains admitted alongside the root domain.",
    )
    webhook_url: str = Field(default="", description="Destination webhook. Required for forwarding.")

    host: str = Field(default="0.0.0.0", description="Bind host for `beaconrelay serve`.")
    port: int = Field(default=3000, description="Bind port for `beaconrelay serve`.")

    collect_paths: str = Field(default="/,/collect", description="Comma-separated POST collection routes.")
    max_body_bytes: int = Field(default=64 * 1024, description="Max accepted request body bytes.")
    forward_timeout_s: float = Field(default=5.0, description="Per-attempt webhook timeout (seconds).")
    cors_max_age: int = Field(default=86400, description="Preflight cache lifetime (seconds).")
    service_name: str = Field(default="beaconrelay", description="Display name.")

    def extra_origins_list(self) -> List[str]:
        return [o.strip() for o in self.extra_allowed_origins.split(",") if o.strip()]

    def collect_paths_list(self) -> List[str]:
        paths = []
        for p in self.collect_paths.split(","):
            p = p.strip()
            if not p:
                continue
            if not p.startswith("/"):
                p = "/" + p
            if p not in paths:
                paths.append(p)
        return paths
