from __future__ import annotations
import uuid
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Optional, List, Literal


SpendCategory = Literal["fuel", "food", "maintenance"]
EntryCategory = Literal["income", "fuel", "food", "maintenance", "odometer"]
PaymentMethod = Literal["money", "debito", "pix"]

SPEND_CATEGORIES = ("fuel", "food", "maintenance")
PAYMENT_METHODS = ("money", "debito", "pix")

# Fraction of gross retained by the payment provider.
PAYMENT_FEES = {
    "money": 0.0,
    "pix": 0.0,
    "debito": 0.0199,
}

EXPENSE_MARKER = "[GASTO] "
ODOMETER_LABEL = "Fechamento de KM"
URGENT_KM_THRESHOLD = 1000


def generate_id() -> str:
    return uuid.uuid4().hex


def default_is_paid(payment_method: Optional[str]) -> bool:
    return payment_method in (None, "money")


@dataclass
class Entry:
    """Fields shared by every entry variant. Only the subclasses are instantiated."""
    id: str
    date: date
    time: str
    store_name: str

    def __post_init__(self):
        if type(self) is Entry:
            raise TypeError("Entry is a base class, build an IncomeEntry, ExpenseEntry, MaintenanceEntry or OdometerEntry")

    # Uniform view over the variants; each subclass overrides what it carries.
    @property
    def gross_amount(self) -> float:
        return 0.0

    @property
    def net_amount(self) -> float:
        return 0.0

    @property
    def fuel(self) -> float:
        return 0.0

    @property
    def food(self) -> float:
        return 0.0

    @property
    def maintenance(self) -> float:
        return 0.0

    @property
    def category(self) -> EntryCategory:
        raise NotImplementedError


@dataclass
class IncomeEntry(Entry):
    gross: float
    fuel_reserve: float
    food_reserve: float
    maintenance_reserve: float
    net: float
    payment_method: Optional[PaymentMethod] = None
    is_paid: bool = True

    @property
    def gross_amount(self) -> float:
        return self.gross

    @property
    def net_amount(self) -> float:
        return self.net

    @property
    def fuel(self) -> float:
        return self.fuel_reserve

    @property
    def food(self) -> float:
        return self.food_reserve

    @property
    def maintenance(self) -> float:
        return self.maintenance_reserve

    @property
    def reserved(self) -> float:
        return self.fuel_reserve + self.food_reserve + self.maintenance_reserve

    @property
    def fee(self) -> float:
        return round(self.gross - (self.net + self.reserved), 2)

    @property
    def category(self) -> EntryCategory:
        return "income"


@dataclass
class ExpenseEntry(Entry):
    """Money actually spent on fuel or food."""
    spent_category: Literal["fuel", "food"]
    amount: float
    payment_method: Optional[PaymentMethod] = None
    is_paid: bool = True

    @property
    def fuel(self) -> float:
        return self.amount if self.spent_category == "fuel" else 0.0

    @property
    def food(self) -> float:
        return self.amount if self.spent_category == "food" else 0.0

    @property
    def category(self) -> EntryCategory:
        return self.spent_category


@dataclass
class MaintenanceEntry(Entry):
    """A maintenance service, optionally anchored to the odometer reading at the shop."""
    amount: float
    km_at_maintenance: Optional[float] = None
    payment_method: Optional[PaymentMethod] = None
    is_paid: bool = True

    @property
    def maintenance(self) -> float:
        return self.amount

    @property
    def category(self) -> EntryCategory:
        return "maintenance"


@dataclass
class OdometerEntry(Entry):
    km_driven: float
    fuel_price: Optional[float] = None

    @property
    def category(self) -> EntryCategory:
        return "odometer"


def display_name(entry: Entry) -> str:
    if entry.store_name.startswith(EXPENSE_MARKER):
        return entry.store_name[len(EXPENSE_MARKER):]
    return entry.store_name


@dataclass
class MaintenanceAlert:
    id: str
    description: str
    km_interval: float
    last_km: float = 0.0


def default_maintenance_alerts() -> List[MaintenanceAlert]:
    return [
        MaintenanceAlert("1", "Troca de Óleo", 10000, 0),
        MaintenanceAlert("2", "Pneus", 40000, 0),
        MaintenanceAlert("3", "Freios", 20000, 0),
    ]


@dataclass
class AppConfig:
    perc_fuel: float = 0.14
    perc_food: float = 0.08
    perc_maintenance: float = 0.08
    daily_goal: float = 250.0
    last_fuel_price: Optional[float] = 5.50
    maintenance_alerts: List[MaintenanceAlert] = field(default_factory=default_maintenance_alerts)


@dataclass
class ConfigPatch:
    last_fuel_price: Optional[float] = None


@dataclass
class WeeklySummary:
    total_gross: float = 0.0
    total_net: float = 0.0
    total_fuel: float = 0.0
    total_food: float = 0.0
    total_maintenance: float = 0.0
    total_spent_fuel: float = 0.0
    total_spent_food: float = 0.0
    total_spent_maintenance: float = 0.0
    total_fees: float = 0.0
    total_km: float = 0.0

    def __add__(self, other: WeeklySummary) -> WeeklySummary:
        if not isinstance(other, WeeklySummary):
            return NotImplemented
        return WeeklySummary(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })


@dataclass
class FuelMetrics:
    cost_per_km: float = 0.0
    cost_per_delivery: float = 0.0
    total_km: float = 0.0
    total_fuel: float = 0.0
    deliveries: int = 0


@dataclass
class MaintenanceStatus:
    alert: MaintenanceAlert
    last_maintenance_km: float
    next_due_km: float
    current_km: float
    km_remaining: float
    progress: float
    urgent: bool


@dataclass
class WeeklyGroup:
    start_date: date
    end_date: date
    summary: WeeklySummary


@dataclass
class DailyStat:
    date: date
    gross: float
    net: float
    entries: int
    goal_met: bool
