"""Configuration models for shotdiff."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from src.errors import ConfigError


class UserAgentConfig(BaseModel):
    """A browser/viewport combination that every page is captured in."""
    alias: str
    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    width: int = 1280
    height: int = 720
    device_scale_factor: float = 1.0
    user_agent: Optional[str] = None  # overrides the browser's UA string
    enabled: bool = True  # disabled agents keep their goldens but are not captured

    @field_validator("alias")
    @classmethod
    def _valid_alias(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("User agent alias must not be empty")
        # ">" separates page and alias in "<page> > <user_agent>"
        if ">" in v:
            raise ValueError(f"User agent alias must not contain '>': {v!r}")
        return v


def _default_user_agents() -> list[UserAgentConfig]:
    return [
        UserAgentConfig(alias="desktop_chromium", browser="chromium", width=1280, height=720),
        UserAgentConfig(alias="desktop_firefox", browser="firefox", width=1280, height=720),
        UserAgentConfig(alias="mobile_webkit", browser="webkit", width=375, height=812,
                        device_scale_factor=2.0),
    ]


class ShotdiffConfig(BaseModel):
    # Where the demo pages are served and which ones to capture
    base_url: str
    pages: list[str] = Field(default_factory=list)
    user_agents: list[UserAgentConfig] = Field(default_factory=_default_user_agents)

    # Goldens
    golden_path: str = "test/screenshot/golden.json"
    assets_dir: str = ".shotdiff/assets"
    asset_base_url: str = ""  # public URL prefix of assets_dir; file:// URIs if empty

    # Capture
    max_parallel_captures: int = Field(default=3, ge=1)
    capture_timeout_seconds: float = Field(default=60.0, gt=0)
    settle_ms: int = 500
    full_page: bool = True

    # Comparison
    diff_pixel_threshold: int = Field(default=40, ge=0, le=255)

    # Reporting
    runs_dir: str = "runs"
    report_output_dir: str = "./screenshot-reports"
    report_formats: list[str] = Field(default_factory=lambda: ["html", "json"])

    # AI summary of each run (needs ANTHROPIC_API_KEY)
    ai_summary: bool = False
    ai_model: str = "claude-sonnet-4-5"

    @field_validator("pages")
    @classmethod
    def _unique_pages(cls, v: list[str]) -> list[str]:
        pages = [p.strip().lstrip("/").strip() for p in v]
        if any(not p for p in pages):
            raise ValueError("Pages must not be empty or just '/'")
        dupes = sorted({p for p in pages if pages.count(p) > 1})
        if dupes:
            raise ValueError(f"Duplicate pages: {', '.join(dupes)}")
        return pages

    @field_validator("user_agents")
    @classmethod
    def _unique_aliases(cls, v: list[UserAgentConfig]) -> list[UserAgentConfig]:
        aliases = [ua.alias for ua in v]
        dupes = sorted({a for a in aliases if aliases.count(a) > 1})
        if dupes:
            raise ValueError(f"Duplicate user agent aliases: {', '.join(dupes)}")
        return v

    @field_validator("report_formats")
    @classmethod
    def _known_formats(cls, v: list[str]) -> list[str]:
        unknown = [f for f in v if f not in ("html", "json")]
        if unknown:
            raise ValueError(f"Unknown report formats: {', '.join(unknown)}")
        return v

    def user_agent(self, alias: str) -> UserAgentConfig | None:
        for ua in self.user_agents:
            if ua.alias == alias:
                return ua
        return None

    @classmethod
    def load(cls, path: str | Path) -> "ShotdiffConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            with open(path) as f:
                data = json.load(f)
            return cls(**data)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config file is not valid JSON: {e}", context={"path": path}) from e
        except ValidationError as e:
            raise ConfigError(f"Invalid config: {e}", context={"path": path}) from e

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
