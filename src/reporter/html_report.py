"""HTML report generator — a self-contained page with before/after/diff images per screenshot."""

from __future__ import annotations

import base64
import html
import logging
from pathlib import Path
from typing import Callable, Optional

from src.models.classification import CATEGORIES, ClassificationEntry
from src.models.report import RunReport

logger = logging.getLogger(__name__)

# Resolves a content hash to a local PNG, or None when the image is not on disk
ImageLookup = Callable[[str], Optional[Path]]

_CATEGORY_COLORS = {
    "changed": "#ef4444",
    "added": "#6366f1",
    "removed": "#f97316",
    "skipped": "#eab308",
    "unchanged": "#22c55e",
}

# Sections are listed most actionable first
_SECTION_ORDER = ("changed", "added", "removed", "skipped", "unchanged")


def _embed_image(path: Path | str | None) -> str:
    """Read an image file and return a base64 data URI, or empty string on failure."""
    if not path:
        return ""
    try:
        p = Path(path)
        if not p.exists() or p.stat().st_size == 0:
            return ""
        with open(p, "rb") as f:
            data = base64.b64encode(f.read()).decode()
        return f"data:image/png;base64,{data}"
    except OSError:
        return ""


def _image_cell(label: str, image_hash: str | None, url: str | None, lookup: ImageLookup) -> str:
    if not image_hash and not url:
        return ""
    src = _embed_image(lookup(image_hash)) if image_hash else ""
    if not src and url:
        src = url
    img = (f'<img src="{html.escape(src)}" alt="{label}" loading="lazy" '
           f'onclick="this.classList.toggle(\'zoomed\')"/>') if src else '<div class="missing">image unavailable</div>'
    hash_label = f" &middot; <code>{html.escape(image_hash[:12])}</code>" if image_hash else ""
    return f'''
        <div class="screenshot-item">
          {img}
          <div class="screenshot-label">{label}{hash_label}</div>
        </div>'''


def _build_entry_card(entry: ClassificationEntry, lookup: ImageLookup) -> str:
    """Build a collapsible card for a single classified screenshot."""
    color = _CATEGORY_COLORS.get(entry.category, "#94a3b8")
    meta = ""
    if entry.diff and entry.diff.pixels:
        px = entry.diff.pixels
        if px.error:
            meta = f"comparison failed: {html.escape(px.error)}"
        else:
            meta = f"{px.changed_pixels:,} of {px.total_pixels:,} pixels ({px.diff_ratio:.2%})"
            if px.size_mismatch:
                meta += f" &middot; size {px.before_size} &rarr; {px.after_size}"
    elif entry.skip_reason:
        meta = html.escape(entry.skip_reason)

    card = f'''
    <div class="entry-card" data-category="{entry.category}">
      <div class="entry-header" style="border-left: 4px solid {color};" onclick="this.parentElement.classList.toggle('expanded')">
        <div class="entry-header-left">
          <span class="badge {entry.category}">{entry.category.upper()}</span>
          <strong>{html.escape(entry.identity.page)}</strong>
          <span class="badge ua">{html.escape(entry.identity.user_agent)}</span>
          <span class="entry-meta">{meta}</span>
        </div>
        <span class="expand-arrow">&#9660;</span>
      </div>
      <div class="entry-body"><div class="screenshots-grid">'''

    card += _image_cell("Golden", entry.before_hash, entry.before_url, lookup)
    card += _image_cell("Captured", entry.after_hash, entry.after_url, lookup)
    if entry.diff and entry.diff.pixels and entry.diff.pixels.diff_image_path:
        diff_src = _embed_image(entry.diff.pixels.diff_image_path)
        if diff_src:
            card += f'''
        <div class="screenshot-item">
          <img src="{diff_src}" alt="Diff" loading="lazy" onclick="this.classList.toggle('zoomed')"/>
          <div class="screenshot-label">Diff</div>
        </div>'''

    card += '</div></div></div>'
    return card


def generate_html_report(
    report: RunReport,
    output_path: Path,
    image_lookup: ImageLookup | None = None,
) -> None:
    """Generate a self-contained HTML report grouped by category."""
    lookup = image_lookup or (lambda _hash: None)
    classification = report.classification
    meta = classification.metadata

    ai_section = ""
    if report.ai_summary:
        formatted_summary = html.escape(report.ai_summary).replace('\n', '<br>')
        ai_section = f'<div class="ai-summary"><h2>&#129302; AI Summary</h2><div class="summary-content">{formatted_summary}</div></div>'

    stats = "".join(
        f'<div class="stat {c}"><div class="value">{meta.counts.get(c, 0)}</div><div class="label">{c.capitalize()}</div></div>'
        for c in CATEGORIES
    )

    sections = []
    for category in _SECTION_ORDER:
        entries = classification.by_category(category)
        if not entries:
            continue
        cards = "".join(_build_entry_card(e, lookup) for e in entries)
        sections.append(
            f'<div class="section" id="section-{category}"><h2>{category.capitalize()} ({len(entries)})</h2>{cards}</div>'
        )

    headline = (
        f'<p class="headline changes">{meta.num_changes} screenshot{"" if meta.num_changes == 1 else "s"} changed</p>'
        if meta.num_changes else '<p class="headline no-changes">0 screenshots changed</p>'
    )

    report_html = f'''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Screenshot Report &mdash; {html.escape(report.run_id)}</title>
<style>
  :root {{ --changed: #ef4444; --added: #6366f1; --removed: #f97316; --skipped: #eab308; --unchanged: #22c55e; --bg: #f8fafc; --card: white; --border: #e2e8f0; --text: #1e293b; --muted: #64748b; --accent: #6366f1; }}
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: var(--bg); color: var(--text); line-height: 1.6; padding: 1.5rem; }}
  .container {{ max-width: 1400px; margin: 0 auto; }}
  h1 {{ font-size: 1.8rem; margin-bottom: 0.3rem; }}
  .meta {{ color: var(--muted); margin-bottom: 1rem; font-size: 0.9rem; }}
  .headline {{ font-weight: 700; margin-bottom: 1rem; }}
  .headline.changes {{ color: var(--changed); }}
  .headline.no-changes {{ color: var(--unchanged); }}
  .summary {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(130px, 1fr)); gap: 0.8rem; margin-bottom: 1.5rem; }}
  .stat {{ background: var(--card); border-radius: 8px; padding: 1rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); text-align: center; }}
  .stat .value {{ font-size: 1.8rem; font-weight: 700; }}
  .stat .label {{ font-size: 0.8rem; color: var(--muted); }}
  .stat.changed .value {{ color: var(--changed); }}
  .stat.added .value {{ color: var(--added); }}
  .stat.removed .value {{ color: var(--removed); }}
  .stat.skipped .value {{ color: var(--skipped); }}
  .stat.unchanged .value {{ color: var(--unchanged); }}
  .badge {{ display: inline-block; padding: 0.15rem 0.55rem; border-radius: 9999px; font-size: 0.7rem; font-weight: 600; text-transform: uppercase; white-space: nowrap; }}
  .badge.changed {{ background: #fecaca; color: #991b1b; }}
  .badge.added {{ background: #e0e7ff; color: #3730a3; }}
  .badge.removed {{ background: #fed7aa; color: #9a3412; }}
  .badge.skipped {{ background: #fef9c3; color: #854d0e; }}
  .badge.unchanged {{ background: #dcfce7; color: #166534; }}
  .badge.ua {{ background: #f1f5f9; color: #334155; text-transform: none; }}
  .ai-summary {{ background: var(--card); border-radius: 8px; padding: 1.2rem; margin-bottom: 1.5rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); border-left: 4px solid var(--accent); }}
  .ai-summary h2 {{ font-size: 1rem; color: var(--accent); margin-bottom: 0.8rem; }}
  .summary-content {{ font-size: 0.9rem; line-height: 1.7; }}
  .section {{ margin-bottom: 1.5rem; }}
  .section h2 {{ font-size: 1rem; color: var(--muted); text-transform: uppercase; letter-spacing: 0.05em; margin-bottom: 0.5rem; }}
  .entry-card {{ background: var(--card); border-radius: 8px; margin-bottom: 0.6rem; box-shadow: 0 1px 3px rgba(0,0,0,0.08); overflow: hidden; }}
  .entry-header {{ display: flex; justify-content: space-between; align-items: center; padding: 0.7rem 1rem; cursor: pointer; user-select: none; }}
  .entry-header:hover {{ background: #f8fafc; }}
  .entry-header-left {{ display: flex; align-items: center; gap: 0.5rem; flex-wrap: wrap; }}
  .entry-meta {{ font-size: 0.78rem; color: var(--muted); }}
  .expand-arrow {{ color: var(--muted); font-size: 0.7rem; transition: transform 0.2s; }}
  .entry-card.expanded .expand-arrow {{ transform: rotate(180deg); }}
  .entry-body {{ display: none; padding: 0 1rem 1rem 1rem; }}
  .entry-card.expanded .entry-body {{ display: block; }}
  .screenshots-grid {{ display: grid; grid-template-columns: repeat(auto-fill, minmax(280px, 1fr)); gap: 0.6rem; }}
  .screenshot-item {{ text-align: center; }}
  .screenshot-item img {{ width: 100%; border-radius: 6px; border: 1px solid var(--border); cursor: pointer; }}
  .screenshot-item img.zoomed {{ position: fixed; top: 5%; left: 5%; width: 90%; height: 90%; object-fit: contain; z-index: 1000; background: rgba(0,0,0,0.85); border: none; border-radius: 8px; padding: 1rem; }}
  .screenshot-label {{ font-size: 0.75rem; color: var(--muted); margin-top: 0.2rem; }}
  .missing {{ padding: 2rem; color: var(--muted); border: 1px dashed var(--border); border-radius: 6px; font-size: 0.8rem; }}
</style>
</head>
<body>
<div class="container">
  <h1>Screenshot Report</h1>
  <p class="meta">Run: {html.escape(report.run_id)} &middot; {html.escape(report.base_url)} &middot; {html.escape(meta.started_at)} &middot; Duration: {meta.duration_seconds}s</p>
  {headline}
  <div class="summary">{stats}</div>
  {ai_section}
  {"".join(sections)}
</div>
</body>
</html>'''

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report_html)
    logger.debug("Wrote HTML report with %d entries", meta.total)
