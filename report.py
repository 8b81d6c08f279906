"""
report.py
=========

Printable and downloadable views of the dashboard: the roster table as a
pandas DataFrame, a standalone HTML report ("Справка о расстановке трудовых
ресурсов") that the browser can print, and an Excel export.
"""

from __future__ import annotations

import datetime as dt
import html
import io
from typing import List, Optional, Sequence

import openpyxl
import pandas as pd
from openpyxl.styles import Font

from roster_agent import DashboardData, WorkerData, compute_stats

REPORT_TITLE = "Справка о расстановке трудовых ресурсов"
COMPANY = "INTEGRA CONSTRUCTION KZ"

COLUMNS = {
    "category": "Категория",
    "role": "Должность / Роль",
    "name": "Имя / ID",
    "location": "Объект (Титул)",
    "status": "Статус",
    "efficiency": "Эфф.",
}


def roster_frame(workers: Sequence[WorkerData]) -> pd.DataFrame:
    """Roster table with the Russian column headers used on screen and in print."""
    rows = [{label: getattr(w, field) for field, label in COLUMNS.items()} for w in workers]
    return pd.DataFrame(rows, columns=list(COLUMNS.values()), dtype=object)


def _kpi_rows(data: DashboardData) -> List[tuple]:
    stats = compute_stats(data.workers)
    return [
        ("Весь персонал", stats.total_people),
        ("ИТР Состав", stats.itr_count),
        ("Рабочие", stats.worker_count),
        ("Спецтехника", stats.machinery_count),
        ("Динамика к предыдущей смене", f"{stats.dynamics:+d} чел."),
    ]


def _html_list(title: str, items: Sequence[str]) -> str:
    if not items:
        return ""
    lis = "".join(f"<li>{html.escape(item)}</li>" for item in items)
    return f"<h3>{html.escape(title)}</h3><ul>{lis}</ul>"


def build_print_report(data: DashboardData, generated_on: Optional[dt.date] = None) -> str:
    """
    Render the dashboard as a self-contained HTML page for printing.

    Parameters
    ----------
    data : DashboardData
        Current dashboard state.
    generated_on : datetime.date, optional
        Formation date printed under the title (default: today).

    Returns
    -------
    str
        HTML document.  All roster text is escaped.
    """
    generated_on = generated_on or dt.date.today()
    df = roster_frame(data.workers)
    df[COLUMNS["efficiency"]] = [f"{w.efficiency}%" if w.efficiency is not None else "" for w in data.workers]
    table = df.to_html(index=False, escape=True, border=0, classes="roster")
    kpis = "".join(
        f"<tr><th>{html.escape(label)}</th><td>{html.escape(str(value))}</td></tr>" for label, value in _kpi_rows(data)
    )
    return f"""<!DOCTYPE html>
<html lang="ru">
<head>
<meta charset="utf-8">
<title>{html.escape(REPORT_TITLE)}</title>
<style>
body {{ font-family: Arial, sans-serif; color: #000; margin: 2em; }}
header {{ text-align: center; border-bottom: 2px solid #000; padding-bottom: 1em; margin-bottom: 1.5em; }}
table {{ border-collapse: collapse; width: 100%; font-size: 12px; }}
th, td {{ border: 1px solid #cbd5e1; padding: 4px 8px; text-align: left; }}
table.kpi {{ width: auto; margin-bottom: 1.5em; }}
tr {{ page-break-inside: avoid; }}
</style>
</head>
<body>
<header>
<p>{html.escape(COMPANY)}</p>
<h1>{html.escape(REPORT_TITLE.upper())}</h1>
<p>Дата формирования: {generated_on.strftime("%d.%m.%Y")}</p>
</header>
<h2>Оперативная сводка</h2>
<p>{html.escape(data.summary)}</p>
{_html_list("Критические замечания", data.alerts)}
{_html_list("Рекомендации", data.recommendations)}
<table class="kpi">{kpis}</table>
<h2>Ведомость расстановки</h2>
{table}
</body>
</html>
"""


def export_roster_xlsx(data: DashboardData) -> bytes:
    """Write the roster and the summary to an in-memory Excel workbook."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Roster"
    ws.append(["ID"] + list(COLUMNS.values()))
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for w in data.workers:
        ws.append([w.id, w.category, w.role, w.name, w.location, w.status, w.efficiency])

    summary = wb.create_sheet("Summary")
    summary.append(["Оперативная сводка", data.summary])
    for label, value in _kpi_rows(data):
        summary.append([label, value])
    for alert in data.alerts:
        summary.append(["Критическое замечание", alert])
    for rec in data.recommendations:
        summary.append(["Рекомендация", rec])

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
