"""Vision model catalog loading and client construction."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

import yaml

from .anthropic_client import AnthropicClientConfig, AnthropicVisionClient
from .base import BaseVisionClient
from .openai_client import OpenAIClientConfig, OpenAIVisionClient

SUPPORTED_PROVIDERS = ("openai", "anthropic")


@dataclass(slots=True)
class ModelCatalog:
    """Normalized model metadata keyed by alias."""

    models: dict[str, dict[str, Any]]
    default_model: str

    def get(self, alias: str | None = None) -> dict[str, Any]:
        alias = alias or self.default_model
        try:
            return self.models[alias]
        except KeyError as exc:
            raise KeyError(f"Unknown model '{alias}'") from exc


def _normalize_model_entry(alias: str, entry: dict[str, Any]) -> dict[str, Any]:
    provider = str(entry["provider"])
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unknown provider '{provider}' for model '{alias}'")

    return {
        "alias": alias,
        "name": str(entry.get("name", alias)),
        "provider": provider,
        "api_model": str(entry.get("api_model") or entry.get("model_id") or alias),
        "base_url": entry.get("base_url"),
        # Models from one vendor may share a key by pointing at the same variable.
        "api_key_env": str(entry.get("api_key_env", f"{alias.upper()}_API_KEY")),
        "timeout_seconds": float(entry.get("timeout_seconds", 30.0)),
        "max_output_tokens": int(entry.get("max_output_tokens", 1024)),
        "temperature": float(entry.get("temperature", 0.4)),
    }


def load_model_catalog(*, config_path: Path | None = None, raw_config: dict[str, Any] | None = None) -> ModelCatalog:
    """Load and normalize model config into a stable internal schema."""
    if raw_config is None:
        if config_path is None:
            raise ValueError("Either config_path or raw_config must be provided")
        raw_config = yaml.safe_load(config_path.read_text(encoding="utf-8"))

    if not isinstance(raw_config, dict) or not isinstance(raw_config.get("models"), dict):
        raise ValueError("Model config must be a mapping with a 'models' section")

    models = {str(alias): _normalize_model_entry(str(alias), cfg) for alias, cfg in raw_config["models"].items()}
    if not models:
        raise ValueError("Model config lists no models")

    default_model = str(raw_config.get("default_model") or next(iter(models)))
    if default_model not in models:
        raise ValueError(f"default_model '{default_model}' is not defined")
    return ModelCatalog(models=models, default_model=default_model)


def build_client(catalog: ModelCatalog, alias: str | None = None, *, dry_run: bool = False) -> BaseVisionClient:
    """Instantiate the adapter for one catalog entry; the key is read from the environment."""
    model_cfg = catalog.get(alias)
    api_key = os.getenv(model_cfg["api_key_env"])

    if model_cfg["provider"] == "anthropic":
        return AnthropicVisionClient(
            model_alias=model_cfg["alias"],
            api_model=model_cfg["api_model"],
            api_key=api_key,
            dry_run=dry_run,
            config=AnthropicClientConfig(
                timeout_seconds=model_cfg["timeout_seconds"],
                max_output_tokens=model_cfg["max_output_tokens"],
                temperature=model_cfg["temperature"],
            ),
        )
    return OpenAIVisionClient(
        model_alias=model_cfg["alias"],
        api_model=model_cfg["api_model"],
        api_key=api_key,
        base_url=model_cfg["base_url"],
        dry_run=dry_run,
        config=OpenAIClientConfig(
            timeout_seconds=model_cfg["timeout_seconds"],
            max_output_tokens=model_cfg["max_output_tokens"],
            temperature=model_cfg["temperature"],
        ),
    )
