"""Shared fixtures for the ElfScope test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from elfscope.core.image import Image
from elf_builder import ElfBuilder, alpha_beta_image


@pytest.fixture
def alpha_beta_bytes() -> bytes:
    return alpha_beta_image()


@pytest.fixture
def alpha_beta(alpha_beta_bytes: bytes) -> Image:
    image = Image(alpha_beta_bytes)
    assert image.is_valid()
    return image


@pytest.fixture
def builder() -> ElfBuilder:
    return ElfBuilder()


@pytest.fixture
def alpha_beta_file(tmp_path: Path, alpha_beta_bytes: bytes) -> Path:
    path = tmp_path / "alpha_beta.elf"
    path.write_bytes(alpha_beta_bytes)
    return path
