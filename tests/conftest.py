"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path

import pytest
from PIL import Image

from src.models.capture import Captured, hash_image
from src.models.config import ShotdiffConfig, UserAgentConfig
from src.models.golden import GoldenEntry, GoldenManifest, ScreenshotIdentity


# ============================================================================
# Helpers
# ============================================================================


def ident(page: str, user_agent: str) -> ScreenshotIdentity:
    return ScreenshotIdentity(page=page, user_agent=user_agent)


def make_png(color=(255, 255, 255), size=(20, 10)) -> bytes:
    """Create a solid-color PNG."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def golden_for(image_bytes: bytes) -> GoldenEntry:
    image_hash = hash_image(image_bytes)
    return GoldenEntry(image_hash=image_hash, image_url=f"https://assets.test/{image_hash}.png")


def captured(identity: ScreenshotIdentity, image_bytes: bytes) -> Captured:
    return Captured.from_bytes(
        identity, image_bytes, image_url=f"https://assets.test/{hash_image(image_bytes)}.png"
    )


# ============================================================================
# Image Fixtures
# ============================================================================


@pytest.fixture
def white_png() -> bytes:
    return make_png((255, 255, 255))


@pytest.fixture
def red_png() -> bytes:
    return make_png((255, 0, 0))


@pytest.fixture
def blue_png() -> bytes:
    return make_png((0, 0, 255))


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def shotdiff_config(tmp_path: Path) -> ShotdiffConfig:
    """A config with two pages in two user agents, all paths under tmp_path."""
    return ShotdiffConfig(
        base_url="http://localhost:8080/demos",
        pages=["pageA", "pageB"],
        user_agents=[
            UserAgentConfig(alias="chrome", browser="chromium"),
            UserAgentConfig(alias="firefox", browser="firefox"),
        ],
        golden_path=str(tmp_path / "golden.json"),
        assets_dir=str(tmp_path / "assets"),
        asset_base_url="https://assets.test",
        runs_dir=str(tmp_path / "runs"),
        report_output_dir=str(tmp_path / "reports"),
        settle_ms=0,
    )


# ============================================================================
# Manifest Fixtures
# ============================================================================


@pytest.fixture
def prior_manifest(white_png: bytes, red_png: bytes) -> GoldenManifest:
    """pageA/chrome and pageA/firefox are white, pageB/chrome is red."""
    return GoldenManifest({
        ident("pageA", "chrome"): golden_for(white_png),
        ident("pageA", "firefox"): golden_for(white_png),
        ident("pageB", "chrome"): golden_for(red_png),
    })
