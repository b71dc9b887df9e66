"""Configuration for the Statsig MCP Adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="statsig")

    statsig_host: str = Field(default="https://api.statsig.com")
    statsig_api_key: str = Field(default="[KEY MISSING]")
    statsig_api_version: str = Field(default="20240601")
    statsig_openapi_path: str = Field(default="/openapi/20240601.json")
    statsig_api_key_header: str = Field(default="STATSIG-API-KEY")
    statsig_api_version_header: str = Field(default="STATSIG-API-VERSION")
    statsig_api_timeout_seconds: float = Field(default=30)

    adapter_transport: str = Field(default="stdio")
    adapter_host: str = Field(default="0.0.0.0")
    adapter_port: int = Field(default=8000)
    adapter_max_concurrency: int = Field(default=20)

    adapter_include_only_tagged: bool = Field(default=True)
    adapter_include_tag: str = Field(default="MCP")
    adapter_warehouse_native_tag: str = Field(default="(Warehouse Native)")
    adapter_deployment_mode: Literal["all", "cloud", "warehouse_native"] = Field(default="all")
    adapter_schema_policy: Literal["permissive", "strict"] = Field(default="permissive")
    adapter_tool_name_max_length: int = Field(default=40, ge=1)

    adapter_log_level: str = Field(default="INFO")

    def base_url(self) -> str:
        return self.statsig_host.rstrip("/")

    def openapi_url(self) -> str:
        return f"{self.base_url()}{self.statsig_openapi_path}"

    def api_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            self.statsig_api_key_header: self.statsig_api_key,
            self.statsig_api_version_header: self.statsig_api_version,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
