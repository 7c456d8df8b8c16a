from __future__ import annotations

from datetime import datetime
from pathlib import Path
import re

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .controller import PipelineState
from .session import ExploreSession

PLOTLY_CDN_TAG = '<script src="https://cdn.plot.ly/plotly-2.27.0.min.js"></script>'


def write_report(session: ExploreSession, *, out: Path | None = None, include_js: str = "cdn") -> Path:
    """Render the session's current view to an HTML file and return its path."""
    if out is not None:
        out_path = out
        out_path.parent.mkdir(parents=True, exist_ok=True)
    else:
        reports_dir = Path("reports")
        reports_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d-%H%M%S")
        names = session.filters.confirmed.term_names
        slug = _slugify("-".join(names))[:60] or "explore"
        out_path = reports_dir / f"{slug}-{ts}.html"

    out_path.write_text(render_explore_html(session, include_js=include_js), encoding="utf-8", errors="strict")
    return out_path


def _slugify(s: str) -> str:
    s = (s or "").strip().lower()
    s = re.sub(r"[^a-z0-9]+", "-", s)
    s = re.sub(r"-{2,}", "-", s).strip("-")
    return s


def render_explore_html(session: ExploreSession, *, include_js: str = "cdn") -> str:
    controller = session.controller
    run = controller.run
    confirmed = session.filters.confirmed

    # Inline plotly JS once (first chart) when running offline.
    inline_state = {"used": include_js != "inline"}

    def chart_html(chart) -> str:
        include_plotlyjs: bool | str = False
        if not inline_state["used"]:
            include_plotlyjs = "inline"
            inline_state["used"] = True
        return chart.to_html(include_plotlyjs=include_plotlyjs)

    top_queries: list[dict] = []
    if run is not None:
        for name, entry in zip(run.filter.term_names, run.top_queries):
            if entry:
                top_queries.append({"term": name, "queries": [q.title for q in entry]})

    error = str(controller.error) if controller.state == PipelineState.FAILED and controller.error else ""

    templates_dir = Path(__file__).parent / "templates"
    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html", "xml", "j2"]),
    )
    template = env.get_template("explore.html.j2")
    return template.render(
        title="Search interest explorer",
        terms=", ".join(confirmed.term_names) or "(none)",
        geo=confirmed.geo.name,
        state=controller.state.value,
        error=error,
        merge_label=session.chart_sync.merge_label,
        seasonal_html=chart_html(session.seasonal_chart),
        secondary_html=chart_html(session.secondary_chart),
        top_queries=top_queries,
        plotly_js_tag=PLOTLY_CDN_TAG if include_js == "cdn" else "",
    )
