from __future__ import annotations

from charts import (
    CATEGORY_COLORS,
    COLORS,
    EMPTY_LABEL,
    FALLBACK_COLOR,
    category_pie_chart,
    location_distribution_chart,
    role_distribution_chart,
    status_pie_chart,
)
from roster_agent import WorkerData, initial_data


def test_role_chart_is_horizontal_and_sorted() -> None:
    fig = role_distribution_chart(initial_data().workers)
    bar = fig.data[0]

    assert bar.orientation == "h"
    assert list(bar.y)[0] == "Арматурщик"
    assert list(bar.x)[0] == 3
    assert fig.layout.yaxis.autorange == "reversed"


def test_location_chart_orders_by_headcount() -> None:
    fig = location_distribution_chart(initial_data().workers)
    bar = fig.data[0]

    assert list(bar.x) == ["Офис", "Титул 25", "Площадка", "Титул 1.1", "Титул 30", "Склад"]
    assert list(bar.y) == [4, 3, 2, 2, 1, 1]
    assert fig.layout.xaxis.tickangle == -45


def test_category_pie_uses_category_colors() -> None:
    workers = initial_data().workers + [WorkerData(id="99", name="Кран 1", role="Кран", category="CRANE")]
    pie = category_pie_chart(workers).data[0]

    assert list(pie.labels) == ["ITR", "WORKER", "CRANE"]
    assert list(pie.marker.colors) == [CATEGORY_COLORS["ITR"], CATEGORY_COLORS["WORKER"], FALLBACK_COLOR]


def test_status_pie_cycles_palette() -> None:
    pie = status_pie_chart(initial_data().workers).data[0]

    assert list(pie.labels) == ["На смене", "Больничный"]
    assert list(pie.values) == [12, 1]
    assert list(pie.marker.colors) == COLORS[:2]
    assert pie.hole == 0.6


def test_empty_roster_draws_placeholder() -> None:
    for builder in (role_distribution_chart, status_pie_chart, category_pie_chart, location_distribution_chart):
        fig = builder([])
        assert len(fig.data) == 0
        assert fig.layout.annotations[0].text == EMPTY_LABEL
