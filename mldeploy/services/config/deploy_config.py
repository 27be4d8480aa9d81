from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class DeploySettingsConfig:
    """Where resource definitions live on disk and which environment overlay applies.

    Layout under `config_dir`:
    - `databases/content.json` (single resource, namespace "databases/content")
    - `triggers/*.json` (one file per item of the "triggers" namespace)
    - `env/<environment>/...` (overlays deep-merged on top of the base files)
    - `env/<environment>.json` (properties substituted into `${name}` placeholders)
    """

    config_dir: Path
    environment: str = "local"

    @staticmethod
    def from_env() -> "DeploySettingsConfig":
        config_dir = (os.getenv("DEPLOY_CONFIG_DIR") or "").strip()
        if not config_dir:
            raise ValueError("Missing required environment variable: DEPLOY_CONFIG_DIR")

        return DeploySettingsConfig(
            config_dir=Path(config_dir),
            environment=(os.getenv("DEPLOY_ENV") or "local").strip() or "local",
        )


@dataclass(frozen=True)
class DocumentLoaderConfig:
    """Runtime configuration for bulk document loads (concurrency, progress)."""

    concurrency: int = 10
    show_progress: bool = True

    @staticmethod
    def from_env() -> "DocumentLoaderConfig":
        raw = os.getenv("DEPLOY_LOAD_CONCURRENCY", "10")
        try:
            concurrency = int(raw)
        except ValueError:
            concurrency = 10
        if concurrency <= 0:
            concurrency = 10

        return DocumentLoaderConfig(concurrency=concurrency)
