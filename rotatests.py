import io
import json
import tempfile
import unittest
from dataclasses import fields
from datetime import date
from pathlib import Path
from unittest.mock import patch

from rota.models import (
    Entry, IncomeEntry, ExpenseEntry, MaintenanceEntry, OdometerEntry,
    AppConfig, ConfigPatch, MaintenanceAlert, WeeklySummary, display_name,
)
from rota.logic import (
    InvalidEntryError,
    compute_income_entry, compute_expense_entry, compute_odometer_entry, apply_config_patch,
    summarize, week_bounds, entries_on, entries_in_week, entries_in_month, filter_entries,
    compute_fuel_metrics, predict_maintenance, urgent_alerts, substring_matcher,
    current_km_max_observed, current_km_cumulative, group_by_week,
    reserve_balances, goal_progress, daily_stats, recent_stores,
    add_entry, update_entry, delete_entry, toggle_paid,
)
from rota.storage import (
    save_entries, load_entries, save_config, load_config,
    entry_to_dict, entry_from_dict, export_snapshot, import_snapshot,
)
from rota.cli import RotaCLI


DAY = date(2024, 1, 10)


def income(gross, day=DAY, store="App", config=None, method=None):
    return compute_income_entry(gross, day, "12:00", store, config or AppConfig(), method)


def expense(amount, category, day=DAY, desc="", km=None, method=None):
    return compute_expense_entry(amount, category, day, "13:00", desc, km, method)


def odometer(km, day=DAY, price=None):
    entry, _ = compute_odometer_entry(km, day, 5.5, price)
    return entry


class TestAllocation(unittest.TestCase):
    def test_income_split_cash(self):
        """Gross 100 with default percentages, paid in cash"""
        entry = income(100)
        self.assertIsInstance(entry, IncomeEntry)
        self.assertAlmostEqual(entry.fuel, 14.0)
        self.assertAlmostEqual(entry.food, 8.0)
        self.assertAlmostEqual(entry.maintenance, 8.0)
        self.assertAlmostEqual(entry.net_amount, 70.0)
        self.assertAlmostEqual(entry.fee, 0.0)
        self.assertTrue(entry.is_paid)
        self.assertEqual(entry.category, "income")

    def test_income_split_balances_for_every_method(self):
        for method in (None, "money", "debito", "pix"):
            for gross in (6, 7.5, 13.37, 100, 249.99):
                entry = income(gross, method=method)
                total = entry.fuel + entry.food + entry.maintenance + entry.net + entry.fee
                self.assertAlmostEqual(total, gross, places=6)

    def test_debit_fee(self):
        entry = income(100, method="debito")
        self.assertAlmostEqual(entry.fee, 1.99)
        self.assertAlmostEqual(entry.net, 68.01)
        self.assertFalse(entry.is_paid)

    def test_custom_percentages(self):
        config = AppConfig(perc_fuel=0.2, perc_food=0.0, perc_maintenance=0.1)
        entry = income(50, config=config)
        self.assertAlmostEqual(entry.fuel, 10.0)
        self.assertAlmostEqual(entry.food, 0.0)
        self.assertAlmostEqual(entry.net, 35.0)

    def test_income_accepts_iso_date_string(self):
        entry = compute_income_entry(10, "2024-03-05", "08:30", "App", AppConfig())
        self.assertEqual(entry.date, date(2024, 3, 5))

    @patch("rota.logic.generate_id", return_value="fixed-id")
    def test_generated_id(self, _):
        self.assertEqual(income(10).id, "fixed-id")
        self.assertEqual(compute_income_entry(10, DAY, "08:00", "", AppConfig(), entry_id="given").id, "given")

    def test_invalid_amounts_rejected(self):
        for bad in (0, -5, "abc", None, float("nan")):
            with self.assertRaises(InvalidEntryError):
                income(bad)
        with self.assertRaises(ValueError):
            expense(0, "fuel")
        with self.assertRaises(InvalidEntryError):
            compute_odometer_entry(-1, DAY, 5.5)

    def test_invalid_category_and_method(self):
        with self.assertRaises(InvalidEntryError):
            expense(10, "rent")
        with self.assertRaises(InvalidEntryError):
            income(10, method="cheque")

    def test_fuel_expense(self):
        entry = expense(50, "fuel", desc="Posto Shell", method="pix")
        self.assertIsInstance(entry, ExpenseEntry)
        self.assertEqual(entry.fuel, 50)
        self.assertEqual(entry.food, 0)
        self.assertEqual(entry.maintenance, 0)
        self.assertEqual(entry.gross_amount, 0)
        self.assertEqual(entry.net_amount, 0)
        self.assertEqual(entry.store_name, "[GASTO] Posto Shell")
        self.assertEqual(display_name(entry), "Posto Shell")
        self.assertFalse(entry.is_paid)

    def test_maintenance_expense(self):
        entry = expense(180, "maintenance", desc="Troca de Óleo", km=45000)
        self.assertIsInstance(entry, MaintenanceEntry)
        self.assertEqual(entry.maintenance, 180)
        self.assertEqual(entry.km_at_maintenance, 45000)
        self.assertEqual(entry.category, "maintenance")

    def test_maintenance_without_km_is_tolerated(self):
        entry = expense(90, "maintenance", desc="Freios")
        self.assertIsNone(entry.km_at_maintenance)

    def test_base_entry_cannot_be_built(self):
        """Only the concrete variants carry a category"""
        with self.assertRaises(TypeError):
            Entry("x", DAY, "12:00", "App")
        self.assertEqual(odometer(10).category, "odometer")

    def test_odometer_entry_and_patch(self):
        entry, patch_ = compute_odometer_entry(120.5, DAY, 5.5)
        self.assertIsInstance(entry, OdometerEntry)
        self.assertEqual(entry.km_driven, 120.5)
        self.assertEqual(entry.fuel_price, 5.5)
        self.assertEqual(entry.gross_amount, 0)
        self.assertEqual(entry.store_name, "Fechamento de KM")

        entry, patch_ = compute_odometer_entry(80, DAY, 5.5, fuel_price_override=6.19)
        self.assertEqual(entry.fuel_price, 6.19)
        self.assertEqual(patch_, ConfigPatch(last_fuel_price=6.19))

        config = AppConfig()
        updated = apply_config_patch(config, patch_)
        self.assertEqual(updated.last_fuel_price, 6.19)
        self.assertEqual(config.last_fuel_price, 5.5)

    def test_empty_patch_keeps_config(self):
        config = AppConfig()
        self.assertIs(apply_config_patch(config, ConfigPatch()), config)


class TestAggregation(unittest.TestCase):
    def test_empty_summary(self):
        summary = summarize([])
        for f in fields(summary):
            self.assertEqual(getattr(summary, f.name), 0)

    def test_singleton_reproduces_entry(self):
        summary = summarize([income(100)])
        self.assertAlmostEqual(summary.total_gross, 100)
        self.assertAlmostEqual(summary.total_fuel, 14)
        self.assertAlmostEqual(summary.total_food, 8)
        self.assertAlmostEqual(summary.total_maintenance, 8)
        self.assertAlmostEqual(summary.total_net, 70)
        self.assertAlmostEqual(summary.total_fees, 0)

    def test_reserved_vs_spent(self):
        entries = [
            income(100),
            income(100, method="debito"),
            expense(30, "fuel"),
            expense(12, "food"),
            expense(200, "maintenance", km=10000),
            odometer(150),
        ]
        summary = summarize(entries)
        self.assertAlmostEqual(summary.total_gross, 200)
        self.assertAlmostEqual(summary.total_fuel, 28)
        self.assertAlmostEqual(summary.total_spent_fuel, 30)
        self.assertAlmostEqual(summary.total_spent_food, 12)
        self.assertAlmostEqual(summary.total_spent_maintenance, 200)
        self.assertAlmostEqual(summary.total_fees, 1.99)
        self.assertAlmostEqual(summary.total_net, 138.01)
        self.assertAlmostEqual(summary.total_km, 150)

    def test_additivity(self):
        a = [income(100), expense(20, "food"), odometer(40)]
        b = [income(57.3, method="debito"), expense(75, "maintenance", km=3000), expense(9, "fuel")]
        combined = summarize(a + b)
        parts = summarize(a) + summarize(b)
        for f in fields(WeeklySummary):
            self.assertAlmostEqual(getattr(combined, f.name), getattr(parts, f.name))

    def test_order_independent(self):
        entries = [income(10), expense(5, "fuel"), income(33, method="debito")]
        self.assertEqual(summarize(entries), summarize(list(reversed(entries))))

    def test_week_bounds(self):
        self.assertEqual(week_bounds(date(2024, 1, 10)), (date(2024, 1, 8), date(2024, 1, 14)))
        self.assertEqual(week_bounds(date(2024, 1, 8)), (date(2024, 1, 8), date(2024, 1, 14)))
        self.assertEqual(week_bounds(date(2024, 1, 14)), (date(2024, 1, 8), date(2024, 1, 14)))

    def test_windows(self):
        entries = [
            income(10, date(2024, 1, 7)),
            income(20, date(2024, 1, 8)),
            income(30, date(2024, 1, 10)),
            income(40, date(2024, 2, 1)),
        ]
        self.assertEqual(len(entries_on(entries, date(2024, 1, 10))), 1)
        self.assertEqual(len(entries_in_week(entries, date(2024, 1, 10))), 2)
        self.assertEqual(len(entries_in_month(entries, date(2024, 1, 1))), 3)

    def test_filter_entries(self):
        e1 = income(10, date(2024, 1, 5), method="pix")
        e2 = expense(5, "fuel", date(2024, 1, 6))
        e3 = income(20, date(2024, 1, 7))
        e4 = odometer(80, date(2024, 1, 8))
        entries = [e1, e2, e3, e4]

        self.assertEqual(filter_entries(entries), [e4, e3, e2, e1])
        self.assertEqual(filter_entries(entries, category="income"), [e3, e1])
        self.assertEqual(filter_entries(entries, payment_method="pix"), [e1])
        self.assertEqual(filter_entries(entries, start=date(2024, 1, 6), end=date(2024, 1, 7)), [e3, e2])
        self.assertEqual(filter_entries(entries, category="odometer"), [e4])


class TestFuelMetrics(unittest.TestCase):
    def test_cost_per_km(self):
        entries = [odometer(100), odometer(50), income(100)]
        metrics = compute_fuel_metrics(entries)
        self.assertAlmostEqual(metrics.cost_per_km, 14 / 150)
        self.assertAlmostEqual(metrics.cost_per_delivery, 14)
        self.assertEqual(metrics.total_km, 150)
        self.assertEqual(metrics.deliveries, 1)

    def test_spent_fuel_counts(self):
        entries = [odometer(100), income(100), income(50), expense(40, "fuel")]
        metrics = compute_fuel_metrics(entries)
        self.assertAlmostEqual(metrics.total_fuel, 14 + 7 + 40)
        self.assertAlmostEqual(metrics.cost_per_delivery, 61 / 2)

    def test_zero_guards(self):
        metrics = compute_fuel_metrics([income(100)])
        self.assertEqual(metrics.cost_per_km, 0)
        metrics = compute_fuel_metrics([odometer(100), expense(30, "fuel")])
        self.assertEqual(metrics.cost_per_delivery, 0)
        self.assertAlmostEqual(metrics.cost_per_km, 0.3)
        metrics = compute_fuel_metrics([])
        self.assertEqual((metrics.cost_per_km, metrics.cost_per_delivery), (0, 0))


class TestMaintenance(unittest.TestCase):
    def setUp(self):
        self.oil = MaintenanceAlert("1", "Troca de Óleo", 10000, 0)
        self.tires = MaintenanceAlert("2", "Pneus", 40000, 5000)

    def test_no_history_urgent(self):
        status = predict_maintenance([odometer(9500)], [self.oil])[0]
        self.assertEqual(status.last_maintenance_km, 0)
        self.assertEqual(status.next_due_km, 10000)
        self.assertEqual(status.current_km, 9500)
        self.assertEqual(status.km_remaining, 500)
        self.assertAlmostEqual(status.progress, 0.95)
        self.assertTrue(status.urgent)

    def test_threshold_boundary(self):
        status = predict_maintenance([odometer(9000)], [self.oil])[0]
        self.assertEqual(status.km_remaining, 1000)
        self.assertFalse(status.urgent)
        status = predict_maintenance([odometer(9001)], [self.oil])[0]
        self.assertTrue(status.urgent)

    def test_history_overrides_baseline(self):
        entries = [
            expense(150, "maintenance", desc="Troca de óleo sintético", km=45000),
            expense(140, "maintenance", desc="TROCA DE ÓLEO", km=35000),
            expense(600, "maintenance", desc="Pneus dianteiros", km=20000),
            odometer(46000),
        ]
        oil, tires = predict_maintenance(entries, [self.oil, self.tires])
        self.assertEqual(oil.last_maintenance_km, 45000)
        self.assertEqual(oil.km_remaining, 9000)
        self.assertFalse(oil.urgent)
        self.assertEqual(tires.last_maintenance_km, 20000)
        self.assertEqual(tires.next_due_km, 60000)

    def test_baseline_used_without_match(self):
        entries = [expense(80, "maintenance", desc="Freios", km=30000)]
        status = predict_maintenance(entries, [self.tires])[0]
        self.assertEqual(status.last_maintenance_km, 5000)
        self.assertEqual(status.current_km, 30000)
        self.assertAlmostEqual(status.progress, 25000 / 40000)

    def test_progress_is_clamped(self):
        status = predict_maintenance([odometer(90000)], [self.oil])[0]
        self.assertEqual(status.progress, 1.0)
        self.assertLess(status.km_remaining, 0)
        status = predict_maintenance([], [self.tires])[0]
        self.assertEqual(status.progress, 0.0)

    def test_zero_interval(self):
        alert = MaintenanceAlert("9", "Lavagem", 0, 0)
        status = predict_maintenance([odometer(10)], [alert])[0]
        self.assertEqual(status.progress, 0.0)

    def test_custom_matcher_and_current_km(self):
        entries = [expense(150, "maintenance", desc="oil", km=8000)]
        never = predict_maintenance(entries, [self.oil], matcher=lambda alert, entry: False, current_km=8500)[0]
        self.assertEqual(never.last_maintenance_km, 0)
        self.assertEqual(never.km_remaining, 1500)

    def test_substring_matcher(self):
        self.assertTrue(substring_matcher(self.oil, expense(10, "maintenance", desc="troca de óleo 5w30")))
        self.assertFalse(substring_matcher(self.oil, expense(10, "maintenance", desc="Pneus")))

    def test_current_km_policies(self):
        entries = [odometer(100), odometer(150), expense(50, "maintenance", km=120)]
        self.assertEqual(current_km_max_observed(entries), 150)
        self.assertEqual(current_km_cumulative(entries), 250)
        self.assertEqual(current_km_cumulative([odometer(10), expense(50, "maintenance", km=40000)]), 40000)
        self.assertEqual(current_km_max_observed([]), 0)

    def test_urgent_alerts(self):
        urgent = urgent_alerts([odometer(9500)], [self.oil, self.tires])
        self.assertEqual([s.alert.id for s in urgent], ["1"])


class TestWeeklyGrouping(unittest.TestCase):
    def setUp(self):
        self.entries = [
            income(100, date(2024, 1, 1)),
            expense(20, "fuel", date(2024, 1, 7)),
            expense(15, "food", date(2024, 1, 8)),
            expense(60, "maintenance", date(2024, 1, 24), km=1000),
        ]

    def test_groups_most_recent_first(self):
        groups = group_by_week(self.entries)
        self.assertEqual([g.start_date for g in groups],
                         [date(2024, 1, 22), date(2024, 1, 8), date(2024, 1, 1)])
        self.assertEqual(groups[0].end_date, date(2024, 1, 28))

        first_week = groups[2].summary
        self.assertAlmostEqual(first_week.total_gross, 100)
        self.assertAlmostEqual(first_week.total_spent_fuel, 20)
        self.assertAlmostEqual(groups[1].summary.total_spent_food, 15)
        self.assertAlmostEqual(groups[0].summary.total_spent_maintenance, 60)

    def test_trailing_weeks(self):
        groups = group_by_week(self.entries, weeks=2)
        self.assertEqual([g.start_date for g in groups], [date(2024, 1, 22)])
        groups = group_by_week(self.entries, weeks=3)
        self.assertEqual(len(groups), 2)
        self.assertEqual(group_by_week(self.entries, weeks=0), [])

    def test_empty_history(self):
        self.assertEqual(group_by_week([]), [])


class TestReservesAndGoals(unittest.TestCase):
    def test_reserve_balances(self):
        balances = reserve_balances([income(100), expense(20, "fuel")])
        self.assertAlmostEqual(balances["fuel"]["reserved"], 14)
        self.assertAlmostEqual(balances["fuel"]["balance"], -6)
        self.assertEqual(balances["fuel"]["usage"], 100)
        self.assertEqual(balances["food"]["usage"], 0)
        self.assertAlmostEqual(balances["total"], 10)

    def test_goal_progress(self):
        self.assertAlmostEqual(goal_progress(125, 250), 50)
        self.assertEqual(goal_progress(300, 250), 100)
        self.assertEqual(goal_progress(50, 0), 0)

    def test_daily_stats(self):
        entries = [
            income(150, date(2024, 1, 2)),
            income(120, date(2024, 1, 2)),
            income(100, date(2024, 1, 3)),
            expense(30, "fuel", date(2024, 1, 4)),
        ]
        stats = daily_stats(entries, AppConfig())
        self.assertEqual([s.date for s in stats], [date(2024, 1, 3), date(2024, 1, 2)])
        self.assertFalse(stats[0].goal_met)
        self.assertTrue(stats[1].goal_met)
        self.assertEqual(stats[1].entries, 2)
        self.assertAlmostEqual(stats[1].gross, 270)

    def test_recent_stores(self):
        entries = [income(10, store="A"), income(10, store="B"), income(10, store="A"), expense(5, "food", desc="C")]
        self.assertEqual(recent_stores(entries), ["A", "B"])
        self.assertEqual(recent_stores(entries, limit=1), ["A"])


class TestCollection(unittest.TestCase):
    def setUp(self):
        self.entries = [income(10), expense(5, "fuel"), odometer(40)]

    def test_delete_missing_id(self):
        with self.assertLogs("rota.logic", level="WARNING"):
            self.assertFalse(delete_entry(self.entries, "does-not-exist"))
        self.assertEqual(len(self.entries), 3)

    def test_delete_existing(self):
        target = self.entries[1].id
        self.assertTrue(delete_entry(self.entries, target))
        self.assertEqual(len(self.entries), 2)
        self.assertNotIn(target, [e.id for e in self.entries])
        self.assertFalse(delete_entry(self.entries, ""))

    def test_add_and_update(self):
        extra = income(25)
        add_entry(self.entries, extra)
        self.assertEqual(len(self.entries), 4)

        changed = compute_income_entry(30, DAY, "18:00", "Cliente", AppConfig(), entry_id=extra.id)
        self.assertTrue(update_entry(self.entries, changed))
        self.assertEqual(self.entries[3].gross, 30)
        with self.assertLogs("rota.logic", level="WARNING"):
            self.assertFalse(update_entry(self.entries, income(1)))

    def test_toggle_paid(self):
        pix = income(40, method="pix")
        self.entries.append(pix)
        self.assertTrue(toggle_paid(self.entries, pix.id))
        self.assertTrue(self.entries[-1].is_paid)
        self.assertTrue(toggle_paid(self.entries, pix.id))
        self.assertFalse(self.entries[-1].is_paid)
        # cash and odometer entries have nothing to settle
        self.assertFalse(toggle_paid(self.entries, self.entries[0].id))
        self.assertFalse(toggle_paid(self.entries, self.entries[2].id))


class TestStorage(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name, payload):
        (self.data_dir / name).write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")

    def test_save_and_load_entries(self):
        entries = [
            income(100, method="debito"),
            expense(30, "food", desc="Lanche"),
            expense(200, "maintenance", desc="Pneus", km=40000, method="pix"),
            odometer(120, price=6.1),
        ]
        self.assertTrue(save_entries(entries, self.data_dir))
        self.assertTrue((self.data_dir / "rota_financeira_data.json").exists())

        loaded = load_entries(self.data_dir)
        self.assertEqual(loaded, entries)

    def test_wire_format_is_flat(self):
        record = entry_to_dict(expense(200, "maintenance", desc="Freios", km=30000))
        self.assertEqual(record["storeName"], "[GASTO] Freios")
        self.assertEqual(record["maintenance"], 200)
        self.assertEqual(record["grossAmount"], 0)
        self.assertEqual(record["kmAtMaintenance"], 30000)
        self.assertEqual(record["category"], "maintenance")

    def test_missing_file_and_bad_payloads(self):
        self.assertEqual(load_entries(self.data_dir), [])
        self._write("rota_financeira_data.json", "{not json")
        with self.assertLogs("rota.storage", level="ERROR"):
            self.assertEqual(load_entries(self.data_dir), [])
        self._write("rota_financeira_data.json", {"entries": []})
        with self.assertLogs("rota.storage", level="ERROR"):
            self.assertEqual(load_entries(self.data_dir), [])

    def test_sanitizes_records(self):
        self._write("rota_financeira_data.json", [
            {"date": "2024-01-02", "time": "10:00", "storeName": "App", "grossAmount": 10,
             "fuel": 1.4, "food": 0.8, "maintenance": 0.8, "netAmount": 7},
            {"id": "x1", "date": "2024-01-03", "time": "11:00", "storeName": "[GASTO] Posto",
             "grossAmount": 0, "fuel": 50, "food": 0, "maintenance": 0, "netAmount": 0, "paymentMethod": "card"},
            {"id": "x2", "date": "2024-01-03", "time": "19:00", "storeName": "Fechamento de KM",
             "grossAmount": 0, "fuel": 0, "food": 0, "maintenance": 0, "netAmount": 0,
             "kmDriven": 130, "fuelPrice": 5.89},
            {"id": "bad", "time": "11:00"},
            {"id": "empty", "date": "2024-01-03", "grossAmount": 0},
        ])
        with self.assertLogs("rota.storage", level="WARNING"):
            loaded = load_entries(self.data_dir)

        self.assertEqual(len(loaded), 3)
        self.assertIsInstance(loaded[0], IncomeEntry)
        self.assertTrue(loaded[0].id)
        self.assertIsInstance(loaded[1], ExpenseEntry)
        self.assertEqual(loaded[1].payment_method, "debito")
        self.assertFalse(loaded[1].is_paid)
        self.assertIsInstance(loaded[2], OdometerEntry)
        self.assertEqual(loaded[2].fuel_price, 5.89)

    def test_explicit_category_wins(self):
        entry = entry_from_dict({"id": "m", "date": "2024-01-01", "storeName": "[GASTO] Oficina",
                                 "maintenance": 0, "kmAtMaintenance": 12000, "category": "maintenance"})
        self.assertIsInstance(entry, MaintenanceEntry)
        self.assertEqual(entry.amount, 0)
        self.assertEqual(entry.km_at_maintenance, 12000)

    def test_config_round_trip(self):
        config = AppConfig(perc_fuel=0.2, daily_goal=300, last_fuel_price=6.0,
                           maintenance_alerts=[MaintenanceAlert("a", "Correia", 50000, 1000)])
        self.assertTrue(save_config(config, self.data_dir))
        self.assertEqual(load_config(self.data_dir), config)

    def test_config_defaults_backfilled(self):
        self.assertEqual(load_config(self.data_dir), AppConfig())

        self._write("rota_financeira_config.json", {"percFuel": 0.1, "percFood": 0.05,
                                                    "percMaintenance": 0.05, "dailyGoal": 200})
        config = load_config(self.data_dir)
        self.assertEqual(config.perc_fuel, 0.1)
        self.assertEqual(config.daily_goal, 200)
        self.assertEqual([a.description for a in config.maintenance_alerts], ["Troca de Óleo", "Pneus", "Freios"])

        self._write("rota_financeira_config.json", {"maintenanceAlerts": []})
        self.assertEqual(load_config(self.data_dir).maintenance_alerts, [])

        self._write("rota_financeira_config.json", "[1, 2")
        with self.assertLogs("rota.storage", level="ERROR"):
            self.assertEqual(load_config(self.data_dir), AppConfig())

    def test_export_and_import(self):
        entries = [income(100), odometer(50)]
        config = AppConfig(daily_goal=180)
        path = self.data_dir / "backup.json"
        self.assertTrue(export_snapshot(path, entries, config))

        loaded, loaded_config = import_snapshot(path)
        self.assertEqual(loaded, entries)
        self.assertEqual(loaded_config.daily_goal, 180)

    def test_import_bare_array_and_failures(self):
        path = self.data_dir / "entries.json"
        path.write_text(json.dumps([entry_to_dict(income(10))]), encoding="utf-8")
        loaded, config = import_snapshot(path)
        self.assertEqual(len(loaded), 1)
        self.assertIsNone(config)

        with self.assertRaises(ValueError):
            import_snapshot(self.data_dir / "missing.json")
        path.write_text('{"config": {}}', encoding="utf-8")
        with self.assertRaises(ValueError):
            import_snapshot(path)

    def test_import_rejects_badly_typed_config(self):
        path = self.data_dir / "backup.json"
        for bad_config in ({"maintenanceAlerts": 5}, {"percFuel": [1]}, {"dailyGoal": "muito"}):
            path.write_text(json.dumps({"entries": [], "config": bad_config}), encoding="utf-8")
            with self.assertRaises(ValueError):
                import_snapshot(path)

    def test_badly_typed_stored_config_uses_defaults(self):
        self._write("rota_financeira_config.json", {"maintenanceAlerts": 5})
        with self.assertLogs("rota.storage", level="ERROR"):
            self.assertEqual(load_config(self.data_dir), AppConfig())

    def test_fresh_collection_is_usable(self):
        path = self.data_dir / "entries.json"
        path.write_text(json.dumps([entry_to_dict(odometer(9500))]), encoding="utf-8")
        loaded, _ = import_snapshot(path)
        self.assertTrue(predict_maintenance(loaded, AppConfig().maintenance_alerts)[0].urgent)
        self.assertEqual(summarize(loaded).total_km, 9500)


class TestCLI(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.cli = RotaCLI(entries=[], config=AppConfig(), data_dir=self.data_dir)

    def tearDown(self):
        self._tmp.cleanup()

    def run_cmd(self, line):
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            self.cli.onecmd(line)
        return out.getvalue()

    def test_income_command(self):
        output = self.run_cmd("income 100 Loja Centro 2024-01-10 18:30 --pay debito")
        self.assertIn("Added income", output)
        entry = self.cli.entries[0]
        self.assertEqual(entry.store_name, "Loja Centro")
        self.assertEqual(entry.date, date(2024, 1, 10))
        self.assertEqual(entry.time, "18:30")
        self.assertEqual(entry.payment_method, "debito")
        self.assertEqual(len(load_entries(self.data_dir)), 1)

    def test_invalid_input(self):
        self.assertIn("Invalid input", self.run_cmd("income 0"))
        self.assertIn("Invalid input", self.run_cmd("expense 10 rent"))
        self.assertEqual(self.cli.entries, [])

    def test_expense_and_km_commands(self):
        self.run_cmd("expense 180 maintenance --km 45000 --desc Troca de Óleo")
        self.assertIsInstance(self.cli.entries[0], MaintenanceEntry)
        self.assertEqual(display_name(self.cli.entries[0]), "Troca de Óleo")

        self.run_cmd("km 120 --price 6.29")
        self.assertEqual(self.cli.config.last_fuel_price, 6.29)
        self.assertEqual(load_config(self.data_dir).last_fuel_price, 6.29)

    def test_delete_command(self):
        self.run_cmd("income 10")
        self.assertIn("Entry not found", self.run_cmd("delete nope"))
        self.assertEqual(len(self.cli.entries), 1)
        self.assertIn("Deleted", self.run_cmd(f"delete {self.cli.entries[0].id}"))
        self.assertEqual(self.cli.entries, [])

    def test_views_render(self):
        self.run_cmd("income 300 App 2024-01-10")
        self.run_cmd("expense 40 fuel 2024-01-11")
        self.run_cmd("km 9500 2024-01-11")
        self.assertIn("Goal reached", self.run_cmd("dashboard 2024-01-10"))
        self.assertIn("Troca de Óleo", self.run_cmd("maintenance"))
        self.assertIn("08/01 - 14/01", self.run_cmd("weeks"))
        self.assertIn("3 entries", self.run_cmd("history"))
        self.assertIn("1 entries", self.run_cmd("history --category income --days"))
        self.assertIn("Reserve balance", self.run_cmd("reserves"))

    def test_settings_command(self):
        self.run_cmd("settings goal 320")
        self.assertEqual(self.cli.config.daily_goal, 320)
        self.assertIn("Invalid input", self.run_cmd("settings fuel 2"))
        self.assertEqual(load_config(self.data_dir).daily_goal, 320)

    def test_export_import_commands(self):
        self.run_cmd("income 50")
        path = self.data_dir / "backup.json"
        self.run_cmd(f"export {path}")
        self.cli.entries = []
        self.assertIn("Restore complete", self.run_cmd(f"import {path}"))
        self.assertEqual(len(self.cli.entries), 1)

    def test_import_with_bad_config_keeps_data(self):
        self.run_cmd("income 50")
        self.run_cmd("settings goal 300")
        path = self.data_dir / "backup.json"
        path.write_text(json.dumps({"entries": [], "config": {"percFuel": [1]}}), encoding="utf-8")
        self.assertIn("Import failed", self.run_cmd(f"import {path}"))
        self.assertEqual(len(self.cli.entries), 1)
        self.assertEqual(self.cli.config.daily_goal, 300)

    def test_maintenance_without_km_note(self):
        output = self.run_cmd("expense 90 maintenance --desc Freios")
        self.assertIn("done at 0 km", output)


if __name__ == "__main__":
    unittest.main()
