"""
roster_agent.py
===============

Core roster model for the site workforce dashboard.

A roster arrives from the Gemini parsing service as a loosely-typed JSON
object.  This module turns it into validated ``WorkerData`` records, derives
the headline counts shown on the dashboard (personnel, ITR, workers,
machinery, shift dynamics), aggregates the roster for the charts and applies
inline edits coming from the table editor.

The module can also be run on its own to produce a console report:

    python roster_agent.py --file "roster_12_05.txt"
    python roster_agent.py --demo

The first form sends the file to the parsing service (an ``API_KEY`` must be
configured), the second prints the bundled demo roster.
"""

from __future__ import annotations

import argparse
import copy
import json
import logging
import math
import re
import sys
from collections import Counter
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


class WorkerRole(str, Enum):
    GENERAL = "Разнорабочий"
    WELDER = "Сварщик"
    ELECTRICIAN = "Электрик"
    FOREMAN = "Прораб"
    ENGINEER = "Инженер"
    MASON = "Каменщик"
    PAINTER = "Маляр"
    DRIVER = "Водитель"
    MECHANIC = "Механик"
    SURVEYOR = "Геодезист"
    OTHER = "Другое"


class WorkStatus(str, Enum):
    ACTIVE = "На смене"
    SICK = "Больничный"
    LEAVE = "Отпуск"
    ABSENT = "Отсутствует"


CATEGORIES: Tuple[str, ...] = ("ITR", "WORKER", "MACHINERY")
DEFAULT_CATEGORY = "WORKER"
EDITABLE_FIELDS: Tuple[str, ...] = ("category", "role", "name", "location", "status", "efficiency")
MISSING_TEXT = "—"

_CATEGORY_SYNONYMS = {
    "itr": "ITR",
    "итр": "ITR",
    "worker": "WORKER",
    "workers": "WORKER",
    "рабочий": "WORKER",
    "рабочие": "WORKER",
    "machinery": "MACHINERY",
    "equipment": "MACHINERY",
    "техника": "MACHINERY",
    "спецтехника": "MACHINERY",
}

_STATUS_SYNONYMS = {
    "на смене": WorkStatus.ACTIVE,
    "работает": WorkStatus.ACTIVE,
    "active": WorkStatus.ACTIVE,
    "on shift": WorkStatus.ACTIVE,
    "больничный": WorkStatus.SICK,
    "sick": WorkStatus.SICK,
    "sick leave": WorkStatus.SICK,
    "отпуск": WorkStatus.LEAVE,
    "leave": WorkStatus.LEAVE,
    "vacation": WorkStatus.LEAVE,
    "отсутствует": WorkStatus.ABSENT,
    "absent": WorkStatus.ABSENT,
}

ACTIVE_MARKERS = ("На смене", "Active", "Работает")
OFF_MARKERS = ("Больничный", "Отсутствует")

# Mock previous shift: 5 % fewer people on site than now.
PREVIOUS_SHIFT_RATIO = 0.95


class RosterParseError(ValueError):
    """Raised when a parsed payload cannot be interpreted as a roster."""


@dataclass
class WorkerData:
    """A single roster entry: a person or a piece of equipment."""
    id: str
    name: str
    role: str
    category: str = DEFAULT_CATEGORY
    location: str = MISSING_TEXT
    status: str = WorkStatus.ACTIVE.value
    efficiency: Optional[float] = None  # 0-100


@dataclass
class DashboardData:
    workers: List[WorkerData] = field(default_factory=list)
    summary: str = ""
    alerts: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class RosterStats:
    total_people: int
    itr_count: int
    worker_count: int
    machinery_count: int
    active_now: int
    previous_active: int
    dynamics: int


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_category(value: Any) -> str:
    """Map a category label to ``ITR``, ``WORKER`` or ``MACHINERY``.

    Unknown or missing labels fall back to ``WORKER``.
    """
    if value is None:
        return DEFAULT_CATEGORY
    text = str(value).strip()
    if text.upper() in CATEGORIES:
        return text.upper()
    return _CATEGORY_SYNONYMS.get(text.lower(), DEFAULT_CATEGORY)


def normalize_status(value: Any) -> str:
    """Standardize a status to one of the ``WorkStatus`` labels.

    Empty statuses mean the person is on shift.  Statuses that are not
    recognised are returned unchanged (stripped) so nothing typed by a
    foreman is silently lost.
    """
    text = "" if value is None else str(value).strip()
    if not text:
        return WorkStatus.ACTIVE.value
    status = _STATUS_SYNONYMS.get(text.lower())
    return status.value if status is not None else text


def coerce_efficiency(value: Any) -> Optional[float]:
    """Return ``value`` as a number clamped to 0..100, or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    number = min(100.0, max(0.0, number))
    return int(number) if number.is_integer() else number


def parse_int(value: Any) -> Optional[int]:
    """Parse an integer the way an HTML number input does.

    A leading integer is taken from strings ("85%" -> 85); floats are
    truncated; anything else gives ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        return int(value)
    match = re.match(r"\s*([+-]?\d+)", str(value))
    return int(match.group(1)) if match else None


def _text(value: Any, default: str = MISSING_TEXT) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        # A lone number or object where a list of strings belongs.
        return [str(value)]
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def dashboard_from_payload(payload: Any) -> DashboardData:
    """
    Build a ``DashboardData`` from the JSON object returned by the parser.

    Parameters
    ----------
    payload : dict
        Decoded JSON with optional ``workers``, ``summary``, ``alerts`` and
        ``recommendations`` keys.

    Returns
    -------
    DashboardData
        Roster with categories and statuses standardized, efficiencies
        clamped and every worker carrying a unique id and a name.

    Raises
    ------
    RosterParseError
        If the payload is not an object or ``workers`` is not a list.
    """
    if not isinstance(payload, dict):
        raise RosterParseError(f"Expected a JSON object, got {type(payload).__name__}")

    raw_workers = payload.get("workers") or []
    if not isinstance(raw_workers, list):
        raise RosterParseError("'workers' must be a list")

    rows = [w for w in raw_workers if isinstance(w, dict)]
    if len(rows) != len(raw_workers):
        logger.warning("Skipped %d non-object worker entries", len(raw_workers) - len(rows))

    # First occurrence of an id wins; blanks and duplicates get fresh ids.
    kept_ids: List[Optional[str]] = []
    used = set()
    for row in rows:
        raw_id = row.get("id")
        worker_id = str(raw_id).strip() if raw_id is not None else ""
        if worker_id and worker_id not in used:
            used.add(worker_id)
            kept_ids.append(worker_id)
        else:
            kept_ids.append(None)

    next_id = 1
    role_seen: Counter = Counter()
    workers: List[WorkerData] = []
    for row, worker_id in zip(rows, kept_ids):
        if worker_id is None:
            while str(next_id) in used:
                next_id += 1
            worker_id = str(next_id)
            used.add(worker_id)
        role = _text(row.get("role"))
        role_seen[role] += 1
        workers.append(
            WorkerData(
                id=worker_id,
                name=_text(row.get("name"), default=f"{role} {role_seen[role]}"),
                role=role,
                category=normalize_category(row.get("category")),
                location=_text(row.get("location")),
                status=normalize_status(row.get("status")),
                efficiency=coerce_efficiency(row.get("efficiency")),
            )
        )

    summary = payload.get("summary")
    return DashboardData(
        workers=workers,
        summary=str(summary).strip() if summary is not None else "",
        alerts=_string_list(payload.get("alerts")),
        recommendations=_string_list(payload.get("recommendations")),
    )


def dashboard_to_dict(data: DashboardData) -> Dict[str, Any]:
    return asdict(data)


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------

def _coerce_field(field_name: str, value: Any) -> Any:
    if field_name not in EDITABLE_FIELDS:
        raise ValueError(f"Field '{field_name}' is not editable")
    if field_name == "efficiency":
        return parse_int(value)
    return "" if value is None else str(value)


def update_worker(data: DashboardData, index: int, field_name: str, value: Union[str, int, float, None]) -> DashboardData:
    """
    Return a copy of ``data`` with one field of one worker replaced.

    Parameters
    ----------
    data : DashboardData
        Current dashboard state; it is not modified.
    index : int
        Position of the worker in ``data.workers``.
    field_name : str
        One of ``EDITABLE_FIELDS``.
    value : str | int | float | None
        New value.  Efficiency is parsed as an integer.
    """
    if not 0 <= index < len(data.workers):
        raise IndexError(f"Worker index {index} out of range (0..{len(data.workers) - 1})")
    updated = list(data.workers)
    updated[index] = replace(updated[index], **{field_name: _coerce_field(field_name, value)})
    return replace(data, workers=updated)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _unchanged(old: Any, new: Any) -> bool:
    if _is_missing(old) or _is_missing(new):
        return _is_missing(old) and _is_missing(new)
    return old == new


def workers_from_records(records: Iterable[Dict[str, Any]], previous: Sequence[WorkerData]) -> List[WorkerData]:
    """Rebuild the worker list from table-editor rows.

    Rows line up with ``previous`` by position; ids are carried over from
    the previous workers when the row does not have one.  Only cells whose
    value differs from the previous worker are coerced, so untouched rows
    come back exactly as they were.
    """
    workers: List[WorkerData] = []
    for idx, record in enumerate(records):
        base = previous[idx] if idx < len(previous) else WorkerData(id=str(len(previous) + idx + 1), name="", role="")
        changes = {
            name: _coerce_field(name, record[name])
            for name in EDITABLE_FIELDS
            if name in record and not _unchanged(getattr(base, name), record[name])
        }
        workers.append(replace(base, **changes))
    return workers


# ---------------------------------------------------------------------------
# Derived statistics
# ---------------------------------------------------------------------------

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_active(status: str) -> bool:
    return "Active" in status or WorkStatus.ACTIVE.value in status


def compute_stats(workers: Sequence[WorkerData]) -> RosterStats:
    """
    Compute the KPI counts shown above the charts.

    People are everything that is not machinery.  The previous shift is not
    tracked, so it is approximated as 95 % of the current active headcount;
    ``dynamics`` is the difference.
    """
    counts = Counter(w.category for w in workers)
    active_now = sum(1 for w in workers if is_active(w.status))
    previous_active = round_half_up(active_now * PREVIOUS_SHIFT_RATIO)
    return RosterStats(
        total_people=sum(1 for w in workers if w.category != "MACHINERY"),
        itr_count=counts["ITR"],
        worker_count=counts["WORKER"],
        machinery_count=counts["MACHINERY"],
        active_now=active_now,
        previous_active=previous_active,
        dynamics=active_now - previous_active,
    )


def status_tone(status: str) -> str:
    """Classify a status for colouring: ``active``, ``off`` or ``other``."""
    if any(marker in status for marker in ACTIVE_MARKERS):
        return "active"
    if any(marker in status for marker in OFF_MARKERS):
        return "off"
    return "other"


# ---------------------------------------------------------------------------
# Aggregations for charts
# ---------------------------------------------------------------------------

def group_counts(
    workers: Iterable[WorkerData],
    key: Union[str, Callable[[WorkerData], Any]],
    limit: Optional[int] = None,
    sort: bool = False,
    default: Optional[str] = None,
) -> List[Tuple[str, int]]:
    """
    Count workers per value of ``key``.

    Parameters
    ----------
    workers : Iterable[WorkerData]
        Roster entries.
    key : str | callable
        Attribute name or function returning the grouping value.
    limit : int, optional
        Keep only the first ``limit`` groups.
    sort : bool, optional
        Order by count descending.  Ties keep first-seen order.
    default : str, optional
        Group name used when the value is empty.

    Returns
    -------
    List[Tuple[str, int]]
        ``(group, count)`` pairs, in first-seen order unless ``sort``.
    """
    getter = key if callable(key) else (lambda w: getattr(w, key))
    counts: Counter = Counter()
    for worker in workers:
        value = getter(worker)
        if default is not None and not value:
            value = default
        counts[value] += 1
    items = list(counts.items())
    if sort:
        items.sort(key=lambda item: -item[1])
    return items[:limit] if limit is not None else items


def role_distribution(workers: Iterable[WorkerData]) -> List[Tuple[str, int]]:
    return group_counts(workers, "role", limit=10, sort=True)


def status_distribution(workers: Iterable[WorkerData]) -> List[Tuple[str, int]]:
    return group_counts(workers, "status")


def category_distribution(workers: Iterable[WorkerData]) -> List[Tuple[str, int]]:
    return group_counts(workers, "category", default=DEFAULT_CATEGORY)


def location_distribution(workers: Iterable[WorkerData]) -> List[Tuple[str, int]]:
    return group_counts(workers, "location", limit=15, sort=True)


# ---------------------------------------------------------------------------
# Demo roster
# ---------------------------------------------------------------------------

def _demo(id_: str, name: str, role: str, category: str, location: str, efficiency: int,
          status: WorkStatus = WorkStatus.ACTIVE) -> WorkerData:
    return WorkerData(id=id_, name=name, role=role, category=category, location=location,
                      status=status.value, efficiency=efficiency)


INITIAL_DATA = DashboardData(
    workers=[
        # ITR
        _demo("1", "Исполнительный директор", "Директор", "ITR", "Офис", 100),
        _demo("2", "Технический директор", "Директор", "ITR", "Офис", 100),
        _demo("3", "Начальник ОКК", "Начальник", "ITR", "Офис", 95),
        _demo("4", "Инженер ПТО 1", "Инженер", "ITR", "Офис", 90),
        _demo("5", "Геодезист 1", "Геодезист", "ITR", "Площадка", 88),
        _demo("6", "Геодезист 2", "Геодезист", "ITR", "Площадка", 88),
        # Workers
        _demo("10", "Рабочий 1", "Электромонтажник", "WORKER", "Титул 1.1", 85),
        _demo("11", "Рабочий 2", "Электромонтажник", "WORKER", "Титул 1.1", 85),
        _demo("12", "Рабочий 3", "Арматурщик", "WORKER", "Титул 25", 80),
        _demo("13", "Рабочий 4", "Арматурщик", "WORKER", "Титул 25", 80),
        _demo("14", "Рабочий 5", "Арматурщик", "WORKER", "Титул 25", 80),
        _demo("15", "Рабочий 6", "Бетонщик", "WORKER", "Титул 30", 75),
        _demo("16", "Рабочий 7", "Разнорабочий", "WORKER", "Склад", 0, WorkStatus.SICK),
    ],
    summary=(
        "Общий штат укомплектован согласно плану. Наблюдается высокая активность на Титуле 25 "
        "(монтаж арматуры). Требуется контроль за поставкой материалов на Титул 1.1."
    ),
    alerts=["1 сотрудник на больничном (Склад)", "Необходимо усилить бригаду геодезистов"],
    recommendations=["Провести инструктаж по ТБ на Титуле 25", "Утвердить график отпусков для ИТР состава"],
)


def initial_data() -> DashboardData:
    return copy.deepcopy(INITIAL_DATA)


# ---------------------------------------------------------------------------
# Console report
# ---------------------------------------------------------------------------

def print_summary(data: DashboardData) -> None:
    """
    Print the roster, headline counts, alerts and recommendations.

    Workers are listed in roster order; efficiency is shown as a percentage
    or ``-`` when unknown.
    """
    stats = compute_stats(data.workers)
    print("\n=== Workforce Roster ===\n")
    header = ["Category", "Role", "Name / ID", "Location", "Status", "Eff."]
    print("{:<10} {:<22} {:<26} {:<14} {:<14} {:>5}".format(*header))
    print("-" * 96)
    for w in data.workers:
        eff = f"{w.efficiency}%" if w.efficiency is not None else "-"
        print(f"{w.category:<10} {w.role[:22]:<22} {w.name[:26]:<26} {w.location[:14]:<14} {w.status[:14]:<14} {eff:>5}")

    print("\nTotals:")
    print(f"  Personnel: {stats.total_people}")
    print(f"  ITR: {stats.itr_count}   Workers: {stats.worker_count}   Machinery: {stats.machinery_count}")
    print(f"  On shift: {stats.active_now} ({stats.dynamics:+d} vs previous shift)")
    if data.summary:
        print(f"\nSummary:\n  {data.summary}")
    if data.alerts:
        print("\nAlerts:")
        for alert in data.alerts:
            print(f"  ! {alert}")
    if data.recommendations:
        print("\nRecommendations:")
        for rec in data.recommendations:
            print(f"  - {rec}")
    print()


def main(argv: Optional[Sequence[str]] = None) -> int:
    # Imported here: gemini_service and importer depend on this module.
    from config import configure_logging
    from gemini_service import ParsingServiceError, parse_and_analyze_data
    from importer import check_input_size, load_roster_file

    parser = argparse.ArgumentParser(description="Workforce roster report from free-text or CSV allocation tables")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="Roster file (.txt, .csv, .json or .xlsx)")
    source.add_argument("--demo", action="store_true", help="Print the bundled demo roster without calling the API")
    parser.add_argument("--json-out", help="Write the normalized roster as JSON to this path")
    parser.add_argument("--log-level", default=None, type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], help="Logging level")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    if args.demo:
        data = initial_data()
    else:
        try:
            text = load_roster_file(args.file)
            check_input_size(text)
            data = parse_and_analyze_data(text)
        except (OSError, ValueError, ParsingServiceError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1

    if not data.workers:
        print("No workers found in the provided roster.")

    print_summary(data)

    if args.json_out:
        with open(args.json_out, "w", encoding="utf-8") as fh:
            json.dump(dashboard_to_dict(data), fh, ensure_ascii=False, indent=2)
        logger.info("Wrote %d workers to %s", len(data.workers), args.json_out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
