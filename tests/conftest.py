from __future__ import annotations

from pathlib import Path

import pytest

from media_gallery.config import AppConfig, build_config


@pytest.fixture()
def config(tmp_path: Path) -> AppConfig:
    return build_config(tmp_path / "media")


@pytest.fixture()
def upload_dir(config: AppConfig) -> Path:
    return config.media_paths.uploads
