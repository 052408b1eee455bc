"""Generate the monthly application report (markdown)."""
from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

from jobseeker.config import reports_dir
from jobseeker.log import get_logger
from jobseeker.models import AdStatus, JobRecord, SearchSettings
from jobseeker.store import RecordStore

log = get_logger(__name__)


def _clip(text: str, width: int) -> str:
    return text[:width] + ("…" if len(text) > width else "")


def _short_url_label(url: str) -> str:
    host = (urlparse(url).hostname or "").replace("www.", "")
    parts = host.split(".")
    return parts[0].capitalize() if parts and parts[0] else "Link"


def _progress(applied: int, settings: SearchSettings) -> str:
    if applied >= settings.app_goal_count:
        return "Goal reached"
    if applied >= settings.app_min_count:
        return f"Minimum reached, {settings.app_goal_count - applied} more to the goal"
    return f"{settings.app_min_count - applied} more needed for the minimum"


def _place(record: JobRecord) -> str:
    return record.municipality_name or record.city or "—"


def build_monthly_report(
    store: RecordStore, settings: SearchSettings, year: int, month: int
) -> str:
    applied = store.list_by([AdStatus.APPLIED], year=year, month=month)
    bookmarked = store.list_by([AdStatus.BOOKMARKED], year=year, month=month)
    stats = store.keyword_stats()

    lines: list[str] = [f"# Application Report — {year}-{month:02d}", ""]
    lines.append(
        f"**{len(applied)}** applied (minimum {settings.app_min_count}, "
        f"goal {settings.app_goal_count}) | **{len(bookmarked)}** bookmarked"
    )
    lines.append("")
    lines.append(f"_{_progress(len(applied), settings)}_")
    lines.append("")

    if applied:
        lines.append("## Applied")
        lines.append("")
        lines.append("| # | Role | Employer | Location | Applied | Link |")
        lines.append("|--:|------|----------|----------|---------|------|")
        for i, r in enumerate(applied, 1):
            when = r.applied_at.strftime("%Y-%m-%d") if r.applied_at else ""
            link = f"[{_short_url_label(r.detail_url)}]({r.detail_url})" if r.detail_url else "—"
            lines.append(
                f"| {i} | {_clip(r.headline, 40)} | {_clip(r.employer_name, 22)} "
                f"| {_clip(_place(r), 18)} | {when} | {link} |"
            )
        lines.append("")

    if bookmarked:
        lines.append("## Bookmarked")
        lines.append("")
        for r in bookmarked:
            lines.append(f"- **{r.headline}** @ {r.employer_name or 'unknown employer'} — {_place(r)}")
        lines.append("")

    if stats:
        lines.append("## Keywords")
        lines.append("")
        lines.append("| Keyword | Records |")
        lines.append("|---------|--------:|")
        for keyword, count in stats.items():
            lines.append(f"| {_clip(keyword, 40)} | {count} |")
        lines.append("")

    log.info("Built report for %d-%02d: %d applied, %d bookmarked",
             year, month, len(applied), len(bookmarked))
    return "\n".join(lines)


def write_report(content: str, year: int, month: int, directory: Path | None = None) -> Path:
    directory = directory or reports_dir()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"monthly_{year}-{month:02d}.md"
    path.write_text(content, encoding="utf-8")
    log.info("Report written → %s", path)
    return path
