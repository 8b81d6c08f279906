from __future__ import annotations

import datetime as dt
import io

import openpyxl

from report import COLUMNS, build_print_report, export_roster_xlsx, roster_frame
from roster_agent import DashboardData, WorkerData, initial_data


def test_roster_frame_uses_russian_headers() -> None:
    df = roster_frame(initial_data().workers)
    assert list(df.columns) == list(COLUMNS.values())
    assert len(df) == 13
    assert df.iloc[0][COLUMNS["efficiency"]] == 100


def test_roster_frame_for_empty_roster() -> None:
    df = roster_frame([])
    assert df.empty
    assert list(df.columns) == list(COLUMNS.values())


def test_print_report_contains_title_date_and_rows() -> None:
    page = build_print_report(initial_data(), generated_on=dt.date(2026, 5, 12))

    assert "СПРАВКА О РАССТАНОВКЕ ТРУДОВЫХ РЕСУРСОВ" in page
    assert "Дата формирования: 12.05.2026" in page
    assert "Титул 25" in page
    assert "Провести инструктаж по ТБ на Титуле 25" in page
    assert "+1 чел." in page
    assert "85%" in page


def test_print_report_escapes_roster_text() -> None:
    data = DashboardData(
        workers=[WorkerData(id="1", name="<script>alert(1)</script>", role="Сварщик")],
        summary="A & B",
        alerts=[],
        recommendations=[],
    )
    page = build_print_report(data, generated_on=dt.date(2026, 1, 1))

    assert "<script>" not in page
    assert "&lt;script&gt;" in page
    assert "A &amp; B" in page
    assert "Критические замечания" not in page


def test_excel_export_has_roster_and_summary_sheets() -> None:
    wb = openpyxl.load_workbook(io.BytesIO(export_roster_xlsx(initial_data())))

    assert wb.sheetnames == ["Roster", "Summary"]
    roster = wb["Roster"]
    assert roster.max_row == 14
    assert roster["A2"].value == "1"
    assert roster["B2"].value == "ITR"
    summary_labels = [row[0] for row in wb["Summary"].iter_rows(values_only=True)]
    assert "Весь персонал" in summary_labels
    assert summary_labels.count("Рекомендация") == 2
