"""Shared fixtures for twinfinder tests."""

import random
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory: pytest.TempPathFactory, monkeypatch) -> Path:
    """Point the user config directory at an empty temp dir."""
    config_home = tmp_path_factory.mktemp("config-home")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    return config_home


def noise_image(seed: int, size: tuple = (36, 32)) -> Image.Image:
    """Deterministic grayscale noise image; different seeds look different."""
    rng = random.Random(seed)
    img = Image.new("L", size)
    img.putdata([rng.randrange(256) for _ in range(size[0] * size[1])])
    return img


def gradient_image(increasing: bool = True, size: tuple = (90, 80)) -> Image.Image:
    """Horizontal gradient, brightening left to right when increasing."""
    width, height = size
    img = Image.new("L", size)
    values = []
    for _y in range(height):
        for x in range(width):
            value = x * 2 if increasing else (width - 1 - x) * 2
            values.append(value)
    img.putdata(values)
    return img


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[..., Path]:
    """Create a file below tmp_path with the given bytes or text."""

    def _write(relative: str, content) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            path.write_text(content)
        else:
            path.write_bytes(content)
        return path

    return _write


@pytest.fixture
def hello_tree(write_file) -> Path:
    """a.txt and b.txt share content, c.txt is unique."""
    write_file("a.txt", "hello")
    write_file("b.txt", "hello")
    c = write_file("c.txt", "world")
    return c.parent


@pytest.fixture
def png_pair_tree(tmp_path: Path) -> Path:
    """Two PNGs with identical pixels but different compression."""
    img = noise_image(seed=1)
    img.save(tmp_path / "one.png", compress_level=0)
    img.save(tmp_path / "two.png", compress_level=9)
    noise_image(seed=99).save(tmp_path / "other.png")
    return tmp_path
