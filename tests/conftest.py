import json
from pathlib import Path

import pytest
from PIL import Image

from mapgallery import BuildConfig


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """
    Empty project tree with the metadata and source image directories in place.
    """
    (tmp_path / "data" / "maps").mkdir(parents=True)
    (tmp_path / "images" / "maps").mkdir(parents=True)
    return tmp_path


@pytest.fixture
def config(project: Path) -> BuildConfig:
    return BuildConfig(root=project)


@pytest.fixture
def write_map(project: Path):
    """Write one metadata record; the filename follows the id."""

    def _write(**fields) -> Path:
        path = project / "data" / "maps" / f"{fields['id']}.json"
        path.write_text(json.dumps(fields), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_image(project: Path):
    """Write a flat-colour source scan into images/maps/."""

    def _make(name: str, size=(800, 600), mode="RGB") -> Path:
        path = project / "images" / "maps" / name
        color = (120, 80, 40, 200) if mode == "RGBA" else (120, 80, 40)
        Image.new(mode, size, color).save(path)
        return path

    return _make
