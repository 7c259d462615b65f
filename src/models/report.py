"""Run report data structures — everything needed to render or approve a run later."""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.models.classification import Classification


class RunReport(BaseModel):
    run_id: str
    base_url: str = ""
    golden_path: str = ""
    pages: list[str] = Field(default_factory=list)
    user_agents: list[str] = Field(default_factory=list)
    classification: Classification = Field(default_factory=Classification)
    ai_summary: str = ""

    @property
    def num_changes(self) -> int:
        return self.classification.metadata.num_changes
