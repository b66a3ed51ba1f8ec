import logging
import math
from collections import defaultdict
from dataclasses import replace
from datetime import date, timedelta
from typing import Callable, Iterable, Optional, Union

from dateutil.relativedelta import relativedelta, MO

from rota.models import (
    Entry, IncomeEntry, ExpenseEntry, MaintenanceEntry, OdometerEntry,
    AppConfig, ConfigPatch, MaintenanceAlert, WeeklySummary, FuelMetrics,
    MaintenanceStatus, WeeklyGroup, DailyStat, SpendCategory,
    SPEND_CATEGORIES, PAYMENT_METHODS, PAYMENT_FEES, EXPENSE_MARKER, ODOMETER_LABEL,
    URGENT_KM_THRESHOLD, generate_id, default_is_paid,
)

logger = logging.getLogger(__name__)

Matcher = Callable[[MaintenanceAlert, Entry], bool]


class InvalidEntryError(ValueError):
    pass


# ===== HELPERS =====
def _positive(value, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidEntryError(f"{name} must be a number, got {value!r}")
    if math.isnan(number) or number <= 0:
        raise InvalidEntryError(f"{name} must be greater than zero, got {value!r}")
    return number


def _as_date(value: Union[date, str]) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidEntryError(f"Date must be in YYYY-MM-DD format, got {value!r}")


def _check_payment_method(payment_method: Optional[str]) -> Optional[str]:
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise InvalidEntryError(f"Unknown payment method: {payment_method}")
    return payment_method


def payment_fee(gross_amount: float, payment_method: Optional[str]) -> float:
    rate = PAYMENT_FEES.get(payment_method or "money", 0.0)
    return round(gross_amount * rate, 2)


# ===== ALLOCATION =====
def compute_income_entry(
        gross_amount: float,
        entry_date: Union[date, str],
        entry_time: str,
        store_name: str,
        config: AppConfig,
        payment_method: Optional[str] = None,
        entry_id: Optional[str] = None,
) -> IncomeEntry:
    """Split a gross amount into fuel/food/maintenance reserves, fee and net take-home."""
    gross = _positive(gross_amount, "Gross amount")
    entry_date = _as_date(entry_date)
    _check_payment_method(payment_method)

    fuel = round(gross * config.perc_fuel, 2)
    food = round(gross * config.perc_food, 2)
    maintenance = round(gross * config.perc_maintenance, 2)
    fee = payment_fee(gross, payment_method)
    net = round(gross - fuel - food - maintenance - fee, 2)

    return IncomeEntry(
        id=entry_id or generate_id(),
        date=entry_date,
        time=entry_time,
        store_name=store_name,
        gross=gross,
        fuel_reserve=fuel,
        food_reserve=food,
        maintenance_reserve=maintenance,
        net=net,
        payment_method=payment_method,
        is_paid=default_is_paid(payment_method),
    )


def compute_expense_entry(
        amount: float,
        category: SpendCategory,
        entry_date: Union[date, str],
        entry_time: str,
        description: str = "",
        km_at_maintenance: Optional[float] = None,
        payment_method: Optional[str] = None,
        entry_id: Optional[str] = None,
) -> Union[ExpenseEntry, MaintenanceEntry]:
    value = _positive(amount, "Amount")
    if category not in SPEND_CATEGORIES:
        raise InvalidEntryError(f"Category must be one of {', '.join(SPEND_CATEGORIES)}")
    entry_date = _as_date(entry_date)
    _check_payment_method(payment_method)

    common = dict(
        id=entry_id or generate_id(),
        date=entry_date,
        time=entry_time,
        store_name=f"{EXPENSE_MARKER}{description}",
        amount=value,
        payment_method=payment_method,
        is_paid=default_is_paid(payment_method),
    )

    if category == "maintenance":
        km = _positive(km_at_maintenance, "KM at maintenance") if km_at_maintenance is not None else None
        if km is None:
            logger.debug("Maintenance expense '%s' recorded without an odometer reading", description)
        return MaintenanceEntry(km_at_maintenance=km, **common)

    return ExpenseEntry(spent_category=category, **common)


def compute_odometer_entry(
        km_driven: float,
        entry_date: Union[date, str],
        config_last_fuel_price: Optional[float],
        fuel_price_override: Optional[float] = None,
        entry_time: str = "00:00",
        entry_id: Optional[str] = None,
) -> tuple[OdometerEntry, ConfigPatch]:
    """Build an odometer closing and the config patch carrying its fuel price."""
    km = _positive(km_driven, "KM driven")
    entry_date = _as_date(entry_date)
    if fuel_price_override is not None:
        fuel_price = _positive(fuel_price_override, "Fuel price")
    else:
        fuel_price = config_last_fuel_price

    entry = OdometerEntry(
        id=entry_id or generate_id(),
        date=entry_date,
        time=entry_time,
        store_name=ODOMETER_LABEL,
        km_driven=km,
        fuel_price=fuel_price,
    )
    return entry, ConfigPatch(last_fuel_price=fuel_price)


def apply_config_patch(config: AppConfig, patch: ConfigPatch) -> AppConfig:
    if patch.last_fuel_price:
        return replace(config, last_fuel_price=patch.last_fuel_price)
    return config


# ===== AGGREGATION =====
def summarize(entries: Iterable[Entry]) -> WeeklySummary:
    summary = WeeklySummary()

    for entry in entries:
        if isinstance(entry, IncomeEntry):
            summary.total_gross += entry.gross
            summary.total_net += entry.net
            summary.total_fuel += entry.fuel_reserve
            summary.total_food += entry.food_reserve
            summary.total_maintenance += entry.maintenance_reserve
            if entry.fee > 0:
                summary.total_fees += entry.fee
        elif isinstance(entry, ExpenseEntry):
            if entry.spent_category == "fuel":
                summary.total_spent_fuel += entry.amount
            else:
                summary.total_spent_food += entry.amount
        elif isinstance(entry, MaintenanceEntry):
            summary.total_spent_maintenance += entry.amount
        elif isinstance(entry, OdometerEntry):
            summary.total_km += entry.km_driven

    return summary


def week_bounds(day: date) -> tuple[date, date]:
    monday = day + relativedelta(weekday=MO(-1))
    return monday, monday + timedelta(days=6)


def entries_on(entries: Iterable[Entry], day: date) -> list[Entry]:
    return [e for e in entries if e.date == day]


def entries_in_week(entries: Iterable[Entry], day: date) -> list[Entry]:
    start, end = week_bounds(day)
    return [e for e in entries if start <= e.date <= end]


def entries_in_month(entries: Iterable[Entry], day: date) -> list[Entry]:
    return [e for e in entries if e.date.year == day.year and e.date.month == day.month]


def filter_entries(
        entries: Iterable[Entry],
        start: Optional[date] = None,
        end: Optional[date] = None,
        category: Optional[str] = None,
        payment_method: Optional[str] = None,
) -> list[Entry]:
    """History view: entries matching every given criterion, newest first."""
    matched = [
        e for e in entries
        if (start is None or e.date >= start) and
           (end is None or e.date <= end) and
           (category is None or e.category == category) and
           (payment_method is None or getattr(e, "payment_method", None) == payment_method)
    ]
    return sorted(matched, key=lambda e: (e.date, e.time or "00:00"), reverse=True)


# ===== FUEL METRICS =====
def compute_fuel_metrics(entries: Iterable[Entry]) -> FuelMetrics:
    total_km = 0.0
    total_fuel = 0.0
    deliveries = 0

    for entry in entries:
        total_fuel += entry.fuel
        if isinstance(entry, OdometerEntry):
            total_km += entry.km_driven
        elif isinstance(entry, IncomeEntry):
            deliveries += 1

    return FuelMetrics(
        cost_per_km=total_fuel / total_km if total_km > 0 else 0.0,
        cost_per_delivery=total_fuel / deliveries if deliveries > 0 else 0.0,
        total_km=total_km,
        total_fuel=total_fuel,
        deliveries=deliveries,
    )


# ===== MAINTENANCE =====
def substring_matcher(alert: MaintenanceAlert, entry: Entry) -> bool:
    return alert.description.lower() in entry.store_name.lower()


def current_km_max_observed(entries: Iterable[Entry]) -> float:
    """Highest single odometer figure seen, treated as the current reading."""
    current = 0.0
    for entry in entries:
        if isinstance(entry, OdometerEntry):
            km = entry.km_driven
        elif isinstance(entry, MaintenanceEntry):
            km = entry.km_at_maintenance or 0.0
        else:
            continue
        current = max(current, km)
    return current


def current_km_cumulative(entries: Iterable[Entry]) -> float:
    """Sum of daily km deltas, never below the latest absolute shop reading."""
    driven = 0.0
    highest_service = 0.0
    for entry in entries:
        if isinstance(entry, OdometerEntry):
            driven += entry.km_driven
        elif isinstance(entry, MaintenanceEntry) and entry.km_at_maintenance:
            highest_service = max(highest_service, entry.km_at_maintenance)
    return max(driven, highest_service)


def predict_maintenance(
        entries: Iterable[Entry],
        alerts: Iterable[MaintenanceAlert],
        matcher: Matcher = substring_matcher,
        current_km: Optional[float] = None,
) -> list[MaintenanceStatus]:
    entries = list(entries)
    services = [e for e in entries if isinstance(e, MaintenanceEntry) and e.amount > 0]
    if current_km is None:
        current_km = current_km_max_observed(entries)

    statuses = []
    for alert in alerts:
        history = [e for e in services if matcher(alert, e)]
        if history:
            last_km = max(e.km_at_maintenance or 0.0 for e in history)
        else:
            last_km = alert.last_km

        next_due = last_km + alert.km_interval
        remaining = next_due - current_km
        if alert.km_interval > 0:
            progress = min(1.0, max(0.0, (current_km - last_km) / alert.km_interval))
        else:
            progress = 0.0

        statuses.append(MaintenanceStatus(
            alert=alert,
            last_maintenance_km=last_km,
            next_due_km=next_due,
            current_km=current_km,
            km_remaining=remaining,
            progress=progress,
            urgent=remaining < URGENT_KM_THRESHOLD,
        ))
    return statuses


def urgent_alerts(
        entries: Iterable[Entry],
        alerts: Iterable[MaintenanceAlert],
        matcher: Matcher = substring_matcher,
        current_km: Optional[float] = None,
) -> list[MaintenanceStatus]:
    return [s for s in predict_maintenance(entries, alerts, matcher, current_km) if s.urgent]


# ===== WEEKLY GROUPING =====
def group_by_week(entries: Iterable[Entry], weeks: Optional[int] = None) -> list[WeeklyGroup]:
    """
    One summary per Monday-Sunday window that holds at least one entry,
    most recent week first. With ``weeks`` only the trailing N calendar weeks
    ending at the latest entry are considered.
    """
    buckets = defaultdict(list)
    for entry in entries:
        buckets[week_bounds(entry.date)[0]].append(entry)

    if not buckets:
        return []

    mondays = sorted(buckets, reverse=True)
    if weeks is not None:
        oldest = mondays[0] - timedelta(weeks=max(weeks, 0) - 1)
        mondays = [m for m in mondays if m >= oldest] if weeks > 0 else []

    return [
        WeeklyGroup(start_date=m, end_date=m + timedelta(days=6), summary=summarize(buckets[m]))
        for m in mondays
    ]


# ===== RESERVES AND GOALS =====
def reserve_balances(entries: Iterable[Entry]) -> dict:
    summary = summarize(entries)
    balances = {}
    for cat in SPEND_CATEGORIES:
        reserved = getattr(summary, f"total_{cat}")
        spent = getattr(summary, f"total_spent_{cat}")
        balances[cat] = {
            "reserved": reserved,
            "spent": spent,
            "balance": reserved - spent,
            "usage": min(100.0, spent / reserved * 100) if reserved > 0 else 0.0,
        }
    balances["total"] = sum(balances[cat]["balance"] for cat in SPEND_CATEGORIES)
    return balances


def goal_progress(gross: float, daily_goal: float) -> float:
    if daily_goal <= 0:
        return 0.0
    return min(100.0, gross / daily_goal * 100)


def daily_stats(entries: Iterable[Entry], config: AppConfig) -> list[DailyStat]:
    days = defaultdict(lambda: {"gross": 0.0, "net": 0.0, "entries": 0})
    for entry in entries:
        if isinstance(entry, IncomeEntry):
            day = days[entry.date]
            day["gross"] += entry.gross
            day["net"] += entry.net
            day["entries"] += 1

    return [
        DailyStat(
            date=d,
            gross=v["gross"],
            net=v["net"],
            entries=v["entries"],
            goal_met=v["gross"] >= config.daily_goal,
        )
        for d, v in sorted(days.items(), reverse=True)
    ]


def recent_stores(entries: list[Entry], limit: int = 6) -> list[str]:
    stores = []
    for entry in reversed(entries):
        if isinstance(entry, IncomeEntry) and entry.store_name and entry.store_name not in stores:
            stores.append(entry.store_name)
    return stores[:limit]


# ===== COLLECTION =====
def add_entry(entries: list[Entry], entry: Entry) -> None:
    entries.append(entry)


def update_entry(entries: list[Entry], updated: Entry) -> bool:
    for i, e in enumerate(entries):
        if e.id == updated.id:
            entries[i] = updated
            return True
    logger.warning("No entry found with id %s", updated.id)
    return False


def delete_entry(entries: list[Entry], entry_id: str) -> bool:
    if not entry_id:
        return False

    remaining = [e for e in entries if e.id != entry_id]
    if len(remaining) == len(entries):
        logger.warning("No entry found with id %s", entry_id)
        return False

    entries[:] = remaining
    return True


def toggle_paid(entries: list[Entry], entry_id: str) -> bool:
    """Flip the settlement flag of a card/PIX entry. Cash entries are always settled."""
    for i, e in enumerate(entries):
        if e.id != entry_id:
            continue
        if default_is_paid(getattr(e, "payment_method", None)):
            return False
        entries[i] = replace(e, is_paid=not e.is_paid)
        return True
    logger.warning("No entry found with id %s", entry_id)
    return False
