"""Print a human-readable probe report with Rich."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from flowprobe.core.sitemap import count_nodes, render_sitemap_tree
from flowprobe.models.types import IssuePriority


PRIORITY_COLORS = {"high": "red bold", "medium": "yellow", "low": "cyan"}
LABEL_COLORS = {"good": "green", "needs-work": "yellow", "poor": "red"}


def _short(url: str, width: int) -> str:
    short = url.replace("https://", "").replace("http://", "")
    return short if len(short) <= width else short[:width - 3] + "..."


def print_report(result, console: Console | None = None, show_sitemap: bool = True):
    """Print the report for a ProbeResult."""
    console = console or Console()
    crawl, artifact, health = result.crawl, result.artifact, result.health

    header = Text()
    header.append("\n flowprobe report\n", style="bold")
    header.append(f" {artifact.target_url}\n", style="dim")
    header.append(
        f" {len(crawl.pages)} pages crawled in {crawl.crawl_duration / 1000:.1f}s, "
        f"{crawl.total_links_checked} links checked, "
        f"{len(artifact.workflow_results)} workflows run\n",
        style="dim",
    )
    if crawl.spa_detected.detected:
        header.append(f" SPA: {crawl.spa_detected.framework}\n", style="dim")
    console.print(Panel(header, border_style="blue"))

    score_color = LABEL_COLORS.get(health.label, "white")
    score_text = Text()
    score_text.append("  Health Score: ", style="bold")
    score_text.append(f"{health.overall}/100 ({health.label})", style=f"bold {score_color}")
    score_text.append(f"   checks {health.checks_passed}/{health.checks_total}", style="dim")
    console.print()
    console.print(score_text)
    console.print()

    breakdown = Table(title="Breakdown", show_header=True, header_style="bold", padding=(0, 1))
    breakdown.add_column("Axis")
    breakdown.add_column("Score", justify="right")
    for axis, value in health.breakdown.items():
        breakdown.add_row(axis, str(value))
    console.print(breakdown)
    console.print()

    if artifact.workflow_results:
        workflows = Table(title="Workflows", show_header=True, header_style="bold", padding=(0, 1))
        workflows.add_column("Workflow", min_width=24)
        workflows.add_column("Status", width=8)
        workflows.add_column("Steps", justify="right")
        workflows.add_column("Time", justify="right")
        for w in artifact.workflow_results:
            style = "green" if w.overall_status == "passed" else "red"
            workflows.add_row(
                w.workflow_name[:50],
                Text(w.overall_status, style=style),
                f"{w.passed_steps}/{w.total_steps}" + (f" ({w.skipped_steps} skipped)" if w.skipped_steps else ""),
                f"{w.duration}ms",
            )
        console.print(workflows)
        console.print()

    if not result.issues:
        console.print("  [green bold]No issues found.[/green bold]\n")
    else:
        counts = []
        for priority in IssuePriority:
            n = sum(1 for i in result.issues if i.priority == priority)
            if n:
                color = PRIORITY_COLORS[priority.value]
                counts.append(f"[{color}]{n} {priority.value}[/{color}]")
        console.print(f"  Issues: {', '.join(counts)}\n")

        table = Table(show_header=True, header_style="bold", padding=(0, 1))
        table.add_column("Priority", width=8)
        table.add_column("Category", width=16)
        table.add_column("Issue", min_width=40)
        table.add_column("Where", max_width=35)
        table.add_column("x", width=3, justify="right")
        for issue in result.issues:
            table.add_row(
                Text(issue.priority.value, style=PRIORITY_COLORS[issue.priority.value]),
                issue.category,
                issue.summary[:80],
                _short(issue.location, 35),
                str(issue.occurrence_count or 1),
            )
        console.print(table)
        console.print()

    if show_sitemap and count_nodes(result.sitemap) > 1:
        console.print(render_sitemap_tree(result.sitemap))
        console.print()

    if crawl.warnings:
        console.print(f"  [dim]Warnings: {len(crawl.warnings)}[/dim]")
        for warning in crawl.warnings[:5]:
            console.print(f"    [dim]• {warning[:120]}[/dim]")
        console.print()
