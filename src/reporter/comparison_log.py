"""Plain-text listing of a classification, one block per category."""

from __future__ import annotations

import logging

from src.models.classification import CATEGORIES, Classification

logger = logging.getLogger(__name__)


def _plural(n: int) -> str:
    return "" if n == 1 else "s"


def format_comparison_results(classification: Classification) -> list[str]:
    """Render e.g. ``Changed 2 screenshots:`` followed by ``  - page > alias`` lines."""
    lines: list[str] = []
    for category in CATEGORIES:
        entries = classification.by_category(category)
        lines.append(f"{category.capitalize()} {len(entries)} screenshot{_plural(len(entries))}:")
        lines.extend(f"  - {entry.identity}" for entry in entries)
        lines.append("")
    return lines


def changes_headline(classification: Classification) -> str:
    n = classification.metadata.num_changes
    return f"{n} screenshot{_plural(n)} changed!"


def log_comparison_results(classification: Classification) -> None:
    for line in format_comparison_results(classification):
        if line:
            logger.info(line)
