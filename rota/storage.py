import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from rota import config as settings
from rota.models import (
    Entry, IncomeEntry, ExpenseEntry, MaintenanceEntry, OdometerEntry,
    AppConfig, MaintenanceAlert, SPEND_CATEGORIES, PAYMENT_METHODS,
    default_maintenance_alerts, default_is_paid, generate_id,
)

logger = logging.getLogger(__name__)

PAYMENT_ALIASES = {"card": "debito"}


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, Entry):
            return entry_to_dict(obj)
        if isinstance(obj, AppConfig):
            return config_to_dict(obj)
        return super().default(obj)


def _path(key: str, data_dir: Optional[Path] = None) -> Path:
    return Path(data_dir or settings.DATA_DIR) / f"{key}.json"


def _write(path: Path, payload) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, cls=EnhancedJSONEncoder, indent=2, ensure_ascii=False), encoding="utf-8")
        return True
    except (OSError, TypeError) as e:
        logger.error("Error saving %s: %s", path, e)
        return False


def _read(path: Path):
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error("Error loading %s: %s", path, e)
        return None


# ===== ENTRY CODEC =====
def _payment(data: dict) -> Optional[str]:
    method = data.get("paymentMethod")
    method = PAYMENT_ALIASES.get(method, method)
    return method if method in PAYMENT_METHODS else None


def entry_to_dict(entry: Entry) -> dict:
    record = {
        "id": entry.id,
        "date": entry.date.isoformat(),
        "time": entry.time,
        "storeName": entry.store_name,
        "grossAmount": entry.gross_amount,
        "fuel": entry.fuel,
        "food": entry.food,
        "maintenance": entry.maintenance,
        "netAmount": entry.net_amount,
    }
    if isinstance(entry, OdometerEntry):
        record["kmDriven"] = entry.km_driven
        if entry.fuel_price is not None:
            record["fuelPrice"] = entry.fuel_price
    else:
        record["category"] = entry.category
        if isinstance(entry, MaintenanceEntry) and entry.km_at_maintenance is not None:
            record["kmAtMaintenance"] = entry.km_at_maintenance
        if entry.payment_method is not None:
            record["paymentMethod"] = entry.payment_method
        record["isPaid"] = entry.is_paid
    return record


def entry_from_dict(data: dict) -> Entry:
    """Rebuild the entry variant from a flat stored record."""
    common = dict(
        id=data.get("id") or generate_id(),
        date=date.fromisoformat(data["date"]),
        time=data.get("time") or "00:00",
        store_name=data.get("storeName") or "",
    )
    gross = float(data.get("grossAmount") or 0)
    fuel = float(data.get("fuel") or 0)
    food = float(data.get("food") or 0)
    maintenance = float(data.get("maintenance") or 0)
    method = _payment(data)
    is_paid = data.get("isPaid")
    if is_paid is None:
        is_paid = default_is_paid(method)

    if gross > 0:
        return IncomeEntry(
            gross=gross,
            fuel_reserve=fuel,
            food_reserve=food,
            maintenance_reserve=maintenance,
            net=float(data.get("netAmount") or 0),
            payment_method=method,
            is_paid=bool(is_paid),
            **common
        )

    if data.get("kmDriven"):
        price = data.get("fuelPrice")
        return OdometerEntry(
            km_driven=float(data["kmDriven"]),
            fuel_price=float(price) if price else None,
            **common
        )

    category = data.get("category")
    if category not in SPEND_CATEGORIES:
        if fuel > 0:
            category = "fuel"
        elif food > 0:
            category = "food"
        elif maintenance > 0 or data.get("kmAtMaintenance"):
            category = "maintenance"
        else:
            raise ValueError("record has no income, spending or odometer data")

    if category == "maintenance":
        km = data.get("kmAtMaintenance")
        return MaintenanceEntry(
            amount=maintenance,
            km_at_maintenance=float(km) if km else None,
            payment_method=method,
            is_paid=bool(is_paid),
            **common
        )

    return ExpenseEntry(
        spent_category=category,
        amount=fuel if category == "fuel" else food,
        payment_method=method,
        is_paid=bool(is_paid),
        **common
    )


def sanitize_entries(payload) -> list[Entry]:
    if not isinstance(payload, list):
        logger.error("Entries payload is not a list, starting empty")
        return []

    entries = []
    for record in payload:
        try:
            entries.append(entry_from_dict(record))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            record_id = record.get("id") if isinstance(record, dict) else None
            logger.warning("Skipping invalid entry %s: %s", record_id, e)
    return entries


# ===== CONFIG CODEC =====
def config_to_dict(config: AppConfig) -> dict:
    return {
        "percFuel": config.perc_fuel,
        "percFood": config.perc_food,
        "percMaintenance": config.perc_maintenance,
        "dailyGoal": config.daily_goal,
        "lastFuelPrice": config.last_fuel_price,
        "maintenanceAlerts": [
            {
                "id": a.id,
                "description": a.description,
                "kmInterval": a.km_interval,
                "lastKm": a.last_km,
            } for a in config.maintenance_alerts
        ],
    }


def config_from_dict(data: dict) -> AppConfig:
    """Build a config, backfilling any field a partial save is missing."""
    defaults = AppConfig()
    if not isinstance(data, dict):
        logger.error("Config payload is not an object, using defaults")
        return defaults

    raw_alerts = data.get("maintenanceAlerts")
    if raw_alerts is None:
        alerts = default_maintenance_alerts()
    elif not isinstance(raw_alerts, list):
        raise ValueError("maintenanceAlerts must be a list")
    else:
        alerts = []
        for a in raw_alerts:
            try:
                alerts.append(MaintenanceAlert(
                    id=str(a.get("id") or generate_id()),
                    description=a["description"],
                    km_interval=float(a["kmInterval"]),
                    last_km=float(a.get("lastKm") or 0),
                ))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping invalid maintenance alert: %s", e)

    def number(key, default):
        value = data.get(key)
        return default if value is None else float(value)

    return AppConfig(
        perc_fuel=number("percFuel", defaults.perc_fuel),
        perc_food=number("percFood", defaults.perc_food),
        perc_maintenance=number("percMaintenance", defaults.perc_maintenance),
        daily_goal=number("dailyGoal", defaults.daily_goal),
        last_fuel_price=number("lastFuelPrice", defaults.last_fuel_price),
        maintenance_alerts=alerts,
    )


# ===== LOAD / SAVE =====
def load_entries(data_dir: Optional[Path] = None) -> list[Entry]:
    payload = _read(_path(settings.ENTRIES_KEY, data_dir))
    if payload is None:
        return []
    entries = sanitize_entries(payload)
    logger.info("Loaded %d entries", len(entries))
    return entries


def save_entries(entries: list[Entry], data_dir: Optional[Path] = None) -> bool:
    return _write(_path(settings.ENTRIES_KEY, data_dir), [entry_to_dict(e) for e in entries])


def load_config(data_dir: Optional[Path] = None) -> AppConfig:
    payload = _read(_path(settings.CONFIG_KEY, data_dir))
    if payload is None:
        return AppConfig()
    try:
        return config_from_dict(payload)
    except (TypeError, ValueError) as e:
        logger.error("Error reading config, using defaults: %s", e)
        return AppConfig()


def save_config(config: AppConfig, data_dir: Optional[Path] = None) -> bool:
    return _write(_path(settings.CONFIG_KEY, data_dir), config_to_dict(config))


# ===== IMPORT / EXPORT =====
def export_snapshot(path: Path, entries: list[Entry], config: AppConfig) -> bool:
    data = {
        "metadata": {
            "version": "1.0",
            "created": datetime.now().isoformat(timespec="seconds"),
            "entry_count": len(entries),
        },
        "entries": entries,
        "config": config,
    }
    return _write(Path(path), data)


def import_snapshot(path: Path) -> tuple[list[Entry], Optional[AppConfig]]:
    """
    Read a backup written by export_snapshot, or a bare entries array.
    Raises ValueError when the file cannot be used, so the caller keeps its current data.
    """
    path = Path(path)
    if not path.exists():
        raise ValueError(f"Snapshot '{path}' not found")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ValueError(f"Snapshot '{path}' is not valid JSON: {e}")

    if isinstance(data, list):
        return sanitize_entries(data), None
    if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
        raise ValueError(f"Snapshot '{path}' has no entries list")

    config = None
    if data.get("config") is not None:
        try:
            config = config_from_dict(data["config"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"Snapshot '{path}' has an invalid config: {e}")
    return sanitize_entries(data["entries"]), config
