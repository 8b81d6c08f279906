"""
app.py
======

Streamlit dashboard for the site workforce roster defined in
``roster_agent.py``.  It shows the executive summary, KPI cards, charts and
the roster table, lets the user correct the roster inline and imports new
rosters from pasted text or uploaded files through the Gemini parsing
service.

The page performs the following steps on every run:

1. Restores the dashboard state from ``st.session_state`` (the demo roster
   on first load).
2. Renders the importer; submitting replaces the dashboard state with the
   parsed roster, or shows an error banner and keeps the current one.
3. Derives headcounts and chart aggregations from the current roster.
4. Renders the roster either read-only or as an editable table.

To run the app locally, set ``API_KEY`` (a Gemini key) and execute
``streamlit run app.py``.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import List

import pandas as pd
import streamlit as st

from charts import category_pie_chart, location_distribution_chart, role_distribution_chart, status_pie_chart
from config import configure_logging
from importer import ACCEPTED_EXTENSIONS, UnsupportedFileError, can_submit, read_uploaded_text, submit_text
from report import COLUMNS, build_print_report, export_roster_xlsx, roster_frame
from roster_agent import (
    CATEGORIES,
    DashboardData,
    WorkStatus,
    compute_stats,
    initial_data,
    status_tone,
    workers_from_records,
)

logger = logging.getLogger(__name__)

TONE_COLORS = {"active": "color: #16a34a", "off": "color: #ef4444", "other": "color: #d97706"}
EDITOR_FIELDS = ["category", "role", "name", "location", "status", "efficiency"]


def init_state() -> None:
    if "dashboard" not in st.session_state:
        st.session_state["dashboard"] = initial_data()
    st.session_state.setdefault("error", None)
    st.session_state.setdefault("editing", False)
    st.session_state.setdefault("roster_text", "")
    st.session_state.setdefault("loaded_file", None)


def render_header() -> None:
    left, right = st.columns([4, 1])
    with left:
        st.title("INTEGRA CONSTRUCTION KZ")
        st.caption("Система мониторинга трудовых ресурсов")
    with right:
        editing = st.session_state["editing"]
        if st.button("Сохранить" if editing else "Корректировать", type="primary" if editing else "secondary"):
            st.session_state["editing"] = not editing
            st.rerun()


def render_downloads(data: DashboardData) -> None:
    with st.sidebar:
        st.header("Печать / Экспорт")
        st.download_button(
            "Печать (HTML)",
            data=build_print_report(data).encode("utf-8"),
            file_name=f"roster_{dt.date.today():%Y%m%d}.html",
            mime="text/html",
            help="Open the downloaded report in a browser and print it.",
        )
        st.download_button(
            "Экспорт в Excel",
            data=export_roster_xlsx(data),
            file_name=f"roster_{dt.date.today():%Y%m%d}.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )


def render_importer() -> None:
    with st.container(border=True):
        st.subheader("Загрузка Данных (Data Input)")
        st.markdown(
            "Загрузите CSV/текстовый файл или вставьте список рабочих ниже для анализа ИИ.  \n"
            "<small>Пример: \"Иванов - Сварщик - Сектор А, Петров - Электрик - Больничный...\"</small>",
            unsafe_allow_html=True,
        )
        uploaded = st.file_uploader("Выбрать файл", type=list(ACCEPTED_EXTENSIONS))
        if uploaded is not None and st.session_state["loaded_file"] != uploaded.file_id:
            # Load the file into the text area once per upload; the user may edit it afterwards.
            try:
                st.session_state["roster_text"] = read_uploaded_text(uploaded.getvalue(), uploaded.name)
            except (UnsupportedFileError, OSError, ValueError) as exc:
                st.error(f"Не удалось прочитать файл: {exc}")
            st.session_state["loaded_file"] = uploaded.file_id

        text = st.text_area(
            "Список рабочих",
            key="roster_text",
            height=160,
            placeholder="Вставьте список рабочих здесь...",
            label_visibility="collapsed",
        )
        if st.button("Сформировать отчет", type="primary", disabled=not can_submit(text), use_container_width=True):
            with st.spinner("Анализ данных..."):
                result = submit_text(text)
            if result.ok:
                logger.info("Dashboard replaced with %d imported workers", len(result.data.workers))
                st.session_state["dashboard"] = result.data
                st.session_state["error"] = None
            elif result.error:
                st.session_state["error"] = result.error
            st.rerun()


def render_summary(data: DashboardData) -> None:
    stats = compute_stats(data.workers)
    with st.container(border=True):
        left, right = st.columns([4, 1])
        with left:
            st.subheader("Оперативная Сводка (Executive Summary)")
            st.write(data.summary)
        with right:
            st.metric("Динамика", f"{stats.dynamics:+d} чел.")
            st.caption("к предыдущей смене")

        col_a, col_r = st.columns(2)
        if data.alerts:
            with col_a:
                st.error("**Критические замечания**\n\n" + "\n".join(f"- {a}" for a in data.alerts))
        if data.recommendations:
            with col_r:
                st.success("**Рекомендации**\n\n" + "\n".join(f"- {r}" for r in data.recommendations))


def render_kpis(data: DashboardData) -> None:
    stats = compute_stats(data.workers)
    k1, k2, k3, k4 = st.columns(4)
    k1.metric("Весь персонал", stats.total_people, delta="+5%")
    k2.metric("ИТР Состав", stats.itr_count)
    k3.metric("Рабочие", stats.worker_count)
    k4.metric("Спецтехника", stats.machinery_count)


def render_charts(data: DashboardData) -> None:
    col1, col2 = st.columns([1, 2])
    with col1:
        with st.container(border=True):
            st.markdown("**Состав ИТР / Рабочие**")
            st.plotly_chart(category_pie_chart(data.workers), use_container_width=True)
    with col2:
        with st.container(border=True):
            st.markdown("**Распределение по Титулам (Объектам)**")
            st.plotly_chart(location_distribution_chart(data.workers), use_container_width=True)

    col3, col4 = st.columns([2, 1])
    with col3:
        with st.container(border=True):
            st.markdown("**Детализация по Должностям**")
            st.plotly_chart(role_distribution_chart(data.workers), use_container_width=True)
    with col4:
        with st.container(border=True):
            st.markdown("**Статусы**")
            st.plotly_chart(status_pie_chart(data.workers), use_container_width=True)


def _status_options(data: DashboardData) -> List[str]:
    options = [s.value for s in WorkStatus]
    for w in data.workers:
        if w.status not in options:
            options.append(w.status)
    return options


def render_roster(data: DashboardData) -> None:
    st.subheader("Ведомость расстановки (Roster)")
    if not st.session_state["editing"]:
        df = roster_frame(data.workers)
        styled = df.style.map(lambda s: TONE_COLORS[status_tone(str(s))], subset=[COLUMNS["status"]])
        st.dataframe(
            styled,
            use_container_width=True,
            hide_index=True,
            column_config={
                COLUMNS["efficiency"]: st.column_config.ProgressColumn(
                    COLUMNS["efficiency"], min_value=0, max_value=100, format="%d%%"
                ),
            },
        )
        return

    st.caption(":orange[Режим редактирования активен]")
    df = pd.DataFrame([{f: getattr(w, f) for f in EDITOR_FIELDS} for w in data.workers], columns=EDITOR_FIELDS)
    df["efficiency"] = pd.to_numeric(df["efficiency"], errors="coerce")
    edited = st.data_editor(
        df,
        key="roster_editor",
        use_container_width=True,
        hide_index=True,
        num_rows="fixed",
        column_config={
            "category": st.column_config.SelectboxColumn(COLUMNS["category"], options=list(CATEGORIES), required=True),
            "role": st.column_config.TextColumn(COLUMNS["role"]),
            "name": st.column_config.TextColumn(COLUMNS["name"]),
            "location": st.column_config.TextColumn(COLUMNS["location"]),
            "status": st.column_config.SelectboxColumn(COLUMNS["status"], options=_status_options(data), required=True),
            "efficiency": st.column_config.NumberColumn(COLUMNS["efficiency"], min_value=0, max_value=100, step=1),
        },
    )
    workers = workers_from_records(edited.to_dict("records"), data.workers)
    if workers != data.workers:
        st.session_state["dashboard"] = DashboardData(
            workers=workers, summary=data.summary, alerts=data.alerts, recommendations=data.recommendations
        )


def main() -> None:
    st.set_page_config(page_title="Мониторинг трудовых ресурсов", page_icon="👷", layout="wide")
    configure_logging()
    init_state()

    render_header()
    if st.session_state["error"]:
        st.error(st.session_state["error"], icon="⚠️")
    render_importer()

    data: DashboardData = st.session_state["dashboard"]
    render_downloads(data)
    render_summary(data)
    render_kpis(data)
    render_charts(data)
    render_roster(data)
    # Charts above were drawn before this run's table edits; refresh once so they agree.
    if st.session_state["dashboard"] is not data:
        st.rerun()


if __name__ == "__main__":
    main()
