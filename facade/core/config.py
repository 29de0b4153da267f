"""Configuration management for the façade reconciler."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from facade.core.models import DesiredState, NamespaceRegistry, capability_id


class ValidationSettings(BaseSettings):
    """Flags for the validation phase."""

    model_config = SettingsConfigDict(populate_by_name=True)

    strict_uses: bool = Field(default=False, alias="STRICT_USES")
    allow_dual_write: bool = Field(default=False, alias="ALLOW_DUAL_WRITE")
    allow_core_mutation: bool = Field(default=False, alias="ALLOW_CORE_MUTATION")
    # Comma-separated in the environment: EXTRA_PROTECTED_CAPABILITIES=0x12345678,0x9abcdef0
    extra_protected_capabilities: str = Field(default="", alias="EXTRA_PROTECTED_CAPABILITIES")

    @field_validator("extra_protected_capabilities", mode="before")
    @classmethod
    def _join_list(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)):
            return ",".join(str(item) for item in value)
        return value

    @property
    def extra_protected(self) -> frozenset[str]:
        items = [part.strip() for part in self.extra_protected_capabilities.split(",")]
        return frozenset(capability_id(item) for item in items if item)


class StoreSettings(BaseSettings):
    """Snapshot store settings."""

    model_config = SettingsConfigDict(populate_by_name=True)

    snapshot_dir: Path = Field(default=Path("state/snapshots"), alias="SNAPSHOT_DIR")
    default_environment: str = Field(default="local", alias="DEFAULT_ENVIRONMENT")


class Settings(BaseSettings):
    """Main reconciler settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# =============================================================================
# Document loaders
# =============================================================================


def _read_document(path: Union[str, Path]) -> dict[str, Any]:
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            # YAML is a superset of JSON; .yaml/.yml and anything else go through safe_load
            data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"document root must be a mapping: {path}")
    return data


def load_desired_state(path: Union[str, Path]) -> DesiredState:
    """Load a desired-state document from YAML or JSON."""
    return DesiredState.model_validate(_read_document(path))


def load_namespace_registry(path: Union[str, Path]) -> NamespaceRegistry:
    """Load a namespace registry document from YAML or JSON."""
    return NamespaceRegistry.model_validate(_read_document(path))


def load_layout(path: Union[str, Path]) -> list:
    """Load a namespace field layout (``fields: [{type_tag, slot, offset}]``)."""
    from facade.reconciler.layout import LayoutField

    data = _read_document(path)
    return [LayoutField.model_validate(item) for item in data.get("fields", [])]
