"""
charts.py
=========

Plotly figures for the dashboard.  Each builder takes the worker list,
aggregates it with the group-by helpers in ``roster_agent`` and returns a
figure ready for ``st.plotly_chart``.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

import plotly.graph_objects as go

from roster_agent import (
    WorkerData,
    category_distribution,
    location_distribution,
    role_distribution,
    status_distribution,
)

COLORS = ["#F97316", "#3B82F6", "#10B981", "#6366F1", "#EC4899", "#8B5CF6"]
CATEGORY_COLORS = {"ITR": "#6366F1", "WORKER": "#F97316", "MACHINERY": "#64748B"}
FALLBACK_COLOR = "#94a3b8"
CHART_HEIGHT = 320
EMPTY_LABEL = "Нет данных"


def _layout(fig: go.Figure, **kwargs) -> go.Figure:
    fig.update_layout(
        height=CHART_HEIGHT,
        margin=dict(l=10, r=30, t=20, b=10),
        paper_bgcolor="white",
        plot_bgcolor="white",
        font=dict(color="#64748b"),
        **kwargs,
    )
    return fig


def _empty_figure() -> go.Figure:
    fig = go.Figure()
    fig.add_annotation(text=EMPTY_LABEL, showarrow=False, x=0.5, y=0.5, xref="paper", yref="paper",
                       font=dict(size=14))
    fig.update_xaxes(visible=False)
    fig.update_yaxes(visible=False)
    return _layout(fig)


def _split(items: Sequence[Tuple[str, int]]) -> Tuple[List[str], List[int]]:
    return [name for name, _ in items], [count for _, count in items]


def role_distribution_chart(workers: Sequence[WorkerData]) -> go.Figure:
    """Horizontal bars for the ten most common roles, largest on top."""
    items = role_distribution(workers)
    if not items:
        return _empty_figure()
    names, values = _split(items)
    fig = go.Figure(go.Bar(x=values, y=names, orientation="h", marker_color="#F97316", width=0.5))
    fig.update_xaxes(visible=False)
    fig.update_yaxes(autorange="reversed", tickfont=dict(size=11), gridcolor="#e2e8f0")
    return _layout(fig)


def status_pie_chart(workers: Sequence[WorkerData]) -> go.Figure:
    items = status_distribution(workers)
    if not items:
        return _empty_figure()
    names, values = _split(items)
    colors = [COLORS[i % len(COLORS)] for i in range(len(names))]
    fig = go.Figure(go.Pie(labels=names, values=values, hole=0.6, marker=dict(colors=colors), sort=False))
    return _layout(fig, legend=dict(orientation="h", y=-0.1))


def category_pie_chart(workers: Sequence[WorkerData]) -> go.Figure:
    items = category_distribution(workers)
    if not items:
        return _empty_figure()
    names, values = _split(items)
    colors = [CATEGORY_COLORS.get(name, FALLBACK_COLOR) for name in names]
    fig = go.Figure(go.Pie(labels=names, values=values, marker=dict(colors=colors), sort=False))
    return _layout(fig, legend=dict(orientation="h", y=-0.1))


def location_distribution_chart(workers: Sequence[WorkerData]) -> go.Figure:
    """Vertical bars for the fifteen busiest locations (titles)."""
    items = location_distribution(workers)
    if not items:
        return _empty_figure()
    names, values = _split(items)
    fig = go.Figure(go.Bar(x=names, y=values, marker_color="#3B82F6", width=0.5))
    fig.update_xaxes(tickangle=-45, tickfont=dict(size=10), type="category")
    fig.update_yaxes(gridcolor="#e2e8f0")
    return _layout(fig)
