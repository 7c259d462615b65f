"""Claude API client used to write natural-language summaries of screenshot runs."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Optional

import anthropic

from src.ai.prompts.summary import SUMMARY_SYSTEM_PROMPT, build_summary_prompt

logger = logging.getLogger(__name__)

# Where request/response records are written; the orchestrator points this into .shotdiff/
_debug_dir: Path | None = None


def set_debug_dir(path: Path) -> None:
    global _debug_dir
    _debug_dir = Path(path)
    _debug_dir.mkdir(parents=True, exist_ok=True)


def _get_debug_dir() -> Path:
    global _debug_dir
    if _debug_dir is None:
        _debug_dir = Path(".shotdiff") / "debug"
    _debug_dir.mkdir(parents=True, exist_ok=True)
    return _debug_dir


class AIClient:
    """Thin wrapper around the Anthropic messages API.

    Every exchange, successful or not, is recorded as a JSON file in the
    debug directory so a surprising summary can be traced back to its input.
    """

    def __init__(self, model: str = "claude-sonnet-4-5", max_tokens: int = 1024):
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError(
                "ANTHROPIC_API_KEY environment variable is not set. "
                "Set it or turn off ai_summary in shotdiff.json."
            )
        self.client = anthropic.Anthropic(api_key=api_key, timeout=120.0)
        self.model = model
        self.max_tokens = max_tokens
        self._call_count = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    def summarize(self, run_results: dict, max_tokens: int = 500) -> str:
        """Summarize a run's classification for a reviewer deciding what to approve."""
        text = self.complete(
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            user_message=build_summary_prompt(json.dumps(run_results, indent=2)),
            max_tokens=max_tokens,
        )
        return text.strip()

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None,
        temperature: float = 0.3,
    ) -> str:
        self._call_count += 1
        call = self._call_count
        tokens = max_tokens or self.max_tokens
        logger.debug("AI call #%d (model=%s, max_tokens=%d)", call, self.model, tokens)

        started = time.time()
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            )
        except anthropic.APIError as e:
            logger.error("Claude API error on call #%d: %s", call, e)
            self._record_exchange(call, system_prompt, user_message, "", str(e), time.time() - started)
            raise

        text = response.content[0].text
        elapsed = time.time() - started
        logger.info("AI summary received in %.1fs (%d chars)", elapsed, len(text))
        if response.stop_reason == "max_tokens":
            logger.warning("AI response was truncated at max_tokens=%d", tokens)
        self._record_exchange(call, system_prompt, user_message, text, None, elapsed)
        return text

    def _record_exchange(
        self,
        call: int,
        system_prompt: str,
        user_message: str,
        response_text: str,
        error: str | None,
        elapsed: float,
    ) -> None:
        record = {
            "call": call,
            "model": self.model,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
            "elapsed_seconds": round(elapsed, 2),
            "system_prompt": system_prompt,
            "user_message": user_message,
            "response": response_text,
            "error": error,
        }
        try:
            path = _get_debug_dir() / f"ai_{time.strftime('%Y%m%d_%H%M%S')}_{call:03d}.json"
            with open(path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
        except OSError as e:
            logger.debug("Could not record AI exchange: %s", e)
