from __future__ import annotations

from dataclasses import dataclass

from .models import SessionSummary

UNCATEGORIZED = "未分类"


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    task_count: int
    session_count: int
    total_seconds: int


def format_duration(seconds: float) -> str:
    total = max(0, int(seconds))
    minutes, sec = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}小时{minutes:02d}分{sec:02d}秒"
    return f"{minutes}分{sec:02d}秒"


def format_clock(seconds: float) -> str:
    total = max(0, int(seconds))
    minutes, sec = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{sec:02d}"


def category_totals(summaries: list[SessionSummary]) -> list[CategoryTotal]:
    buckets: dict[str, list[int]] = {}
    for item in summaries:
        key = item.category_name or UNCATEGORIZED
        bucket = buckets.setdefault(key, [0, 0, 0])
        bucket[0] += 1
        bucket[1] += item.session_count
        bucket[2] += item.total_seconds

    totals = [
        CategoryTotal(category=name, task_count=v[0], session_count=v[1], total_seconds=v[2])
        for name, v in buckets.items()
    ]
    return sorted(totals, key=lambda x: (-x.total_seconds, x.category))


def render_summary(summaries: list[SessionSummary]) -> list[str]:
    if not summaries:
        return ["暂无任务。"]

    lines: list[str] = []
    lines.append("| 任务 | 分类 | 会话 | 时长 |")
    lines.append("| --- | --- | --- | --- |")
    for item in summaries:
        lines.append(
            f"| {item.task_name} | {item.category_name or UNCATEGORIZED} | "
            f"{item.session_count} | {format_duration(item.total_seconds)} |"
        )
    lines.append("")
    lines.append("| 分类 | 任务 | 会话 | 时长 |")
    lines.append("| --- | --- | --- | --- |")
    for total in category_totals(summaries):
        lines.append(
            f"| {total.category} | {total.task_count} | {total.session_count} | "
            f"{format_duration(total.total_seconds)} |"
        )
    return lines
