import cmd
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from rota.logic import (
    compute_income_entry,
    compute_expense_entry,
    compute_odometer_entry,
    apply_config_patch,
    add_entry,
    delete_entry,
    toggle_paid,
    summarize,
    entries_on,
    entries_in_week,
    entries_in_month,
    filter_entries,
    compute_fuel_metrics,
    predict_maintenance,
    urgent_alerts,
    group_by_week,
    reserve_balances,
    goal_progress,
    daily_stats,
    recent_stores,
)
from rota.models import AppConfig, IncomeEntry, OdometerEntry, display_name, SPEND_CATEGORIES, PAYMENT_METHODS
from rota.storage import save_entries, save_config, load_entries, load_config, export_snapshot, import_snapshot

CATEGORY_LABELS = {
    "fuel": "Fuel",
    "food": "Food",
    "maintenance": "Maintenance",
}

SETTING_FIELDS = {
    "fuel": "perc_fuel",
    "food": "perc_food",
    "maintenance": "perc_maintenance",
    "goal": "daily_goal",
    "price": "last_fuel_price",
}


def _now() -> str:
    return datetime.now().strftime("%H:%M")


def _money(value: float) -> str:
    return f"R$ {value:,.2f}"


class RotaCLI(cmd.Cmd):
    prompt = "(rota) "

    def __init__(self, entries=None, config: Optional[AppConfig] = None, data_dir: Optional[Path] = None):
        super().__init__()
        self.intro = "Welcome to Rota Financeira. Type 'help' for commands."
        self.data_dir = data_dir
        self.entries = entries if entries is not None else load_entries(data_dir)
        self.config = config if config is not None else load_config(data_dir)

    def _persist(self, config_changed: bool = False):
        save_entries(self.entries, self.data_dir)
        if config_changed:
            save_config(self.config, self.data_dir)

    # ===== RECORDING =====
    def do_income(self, arg):
        """Record earnings: income <amount> [store name] [YYYY-MM-DD] [HH:MM] [--pay money|debito|pix]"""
        try:
            args = self._parse_entry_args(arg, min_args=1)
            entry = compute_income_entry(
                gross_amount=args['amount'],
                entry_date=args['date'],
                entry_time=args['time'],
                store_name=' '.join(args['words']),
                config=self.config,
                payment_method=args['pay'],
            )
            add_entry(self.entries, entry)
            self._persist()
            print(f"✓ Added income of {_money(entry.gross)} (net {_money(entry.net)})")
            print(f"  Reserved: fuel {_money(entry.fuel)}, food {_money(entry.food)}, maintenance {_money(entry.maintenance)}")
            if entry.fee > 0:
                print(f"  Fee: {_money(entry.fee)}")
        except ValueError as e:
            print(f"Invalid input: {e}")

    def do_expense(self, arg):
        """Record spending: expense <amount> <fuel|food|maintenance> [YYYY-MM-DD] [HH:MM] [--km N] [--pay METHOD] [description | --desc "description"]"""
        try:
            args = self._parse_entry_args(arg, min_args=2)
            category = args['words'][0].lower() if args['words'] else None
            if category not in SPEND_CATEGORIES:
                raise ValueError("Category must be fuel, food or maintenance")
            entry = compute_expense_entry(
                amount=args['amount'],
                category=category,
                entry_date=args['date'],
                entry_time=args['time'],
                description=args['desc'] or ' '.join(args['words'][1:]),
                km_at_maintenance=args['km'],
                payment_method=args['pay'],
            )
            add_entry(self.entries, entry)
            self._persist()
            print(f"✓ Added {CATEGORY_LABELS[category].lower()} expense of {_money(entry.amount)}")
            if category == "maintenance" and args['km'] is None:
                print("  Note: no odometer reading given, maintenance alerts will count this service as done at 0 km")
        except ValueError as e:
            print(f"Invalid input: {e}")

    def do_km(self, arg):
        """Close the odometer: km <km driven> [YYYY-MM-DD] [--price PRICE_PER_LITER]"""
        try:
            args = self._parse_entry_args(arg, min_args=1)
            entry, patch = compute_odometer_entry(
                km_driven=args['amount'],
                entry_date=args['date'],
                config_last_fuel_price=self.config.last_fuel_price,
                fuel_price_override=args['price'],
                entry_time=args['time'],
            )
            add_entry(self.entries, entry)
            patched = apply_config_patch(self.config, patch)
            changed = patched != self.config
            self.config = patched
            self._persist(config_changed=changed)
            print(f"✓ Closed {entry.km_driven:g} km at fuel price {entry.fuel_price}")
        except ValueError as e:
            print(f"Invalid input: {e}")

    # ===== VIEWS =====
    def do_dashboard(self, arg):
        """Today / week / month totals, fuel metrics and maintenance warnings: dashboard [YYYY-MM-DD]"""
        try:
            day = date.fromisoformat(arg.strip()) if arg.strip() else date.today()
        except ValueError:
            print("Invalid input: Date must be in YYYY-MM-DD format")
            return

        today = summarize(entries_on(self.entries, day))
        print(f"\n{' Dashboard ' + day.isoformat() + ' ':-^50}")
        for label, sub in (("Today", entries_on(self.entries, day)),
                           ("Week", entries_in_week(self.entries, day)),
                           ("Month", entries_in_month(self.entries, day))):
            s = summarize(sub)
            print(f"  {label:<6} gross {_money(s.total_gross):>14}   net {_money(s.total_net):>14}")

        progress = goal_progress(today.total_gross, self.config.daily_goal)
        status = "Goal reached!" if today.total_gross >= self.config.daily_goal else "On the road"
        print(f"\nDaily goal {_money(self.config.daily_goal)}: {progress:.0f}% ({status})")

        metrics = compute_fuel_metrics(self.entries)
        print(f"Fuel cost per km: {_money(metrics.cost_per_km)}   per delivery: {_money(metrics.cost_per_delivery)}")

        urgent = urgent_alerts(self.entries, self.config.maintenance_alerts)
        if len(urgent) == 1:
            print(f"\n! {urgent[0].alert.description} maintenance is due soon")
        elif urgent:
            print(f"\n! {len(urgent)} maintenance services pending")

        if self.entries and not entries_on(self.entries, day):
            print("\nNo entries for this day yet.")

    def do_history(self, arg):
        """List entries: history [--from DATE] [--to DATE] [--category income|fuel|food|maintenance|odometer] [--pay METHOD] [--days]"""
        try:
            args = self._parse_history_args(arg)
        except ValueError as e:
            print(f"Invalid input: {e}")
            return

        show_days = args.pop('days')
        found = filter_entries(self.entries, **args)
        stats = summarize(found)
        print(f"\n{len(found)} entries   gross {_money(stats.total_gross)}   net {_money(stats.total_net)}   fees {_money(stats.total_fees)}")
        for e in found:
            if isinstance(e, IncomeEntry):
                amount = f"+ {_money(e.gross)}"
            elif isinstance(e, OdometerEntry):
                amount = f"{e.km_driven:g} km"
            else:
                amount = f"- {_money(e.fuel + e.food + e.maintenance)}"
            method = getattr(e, 'payment_method', None)
            flags = ""
            if method:
                flags = f" {method.upper()}"
                if method != "money":
                    flags += " PAID" if e.is_paid else " PENDING"
            print(f"  {e.date.isoformat()} {e.time}  {display_name(e):<24} {amount:>16}{flags}  [{e.id}]")

        if show_days:
            days = daily_stats(found, self.config)
            met = sum(1 for d in days if d.goal_met)
            print(f"\nDays worked: {len(days)}   goal met: {met}   missed: {len(days) - met}")
            for d in days:
                print(f"  {d.date.isoformat()}  {_money(d.gross):>14}  {'✓' if d.goal_met else '✗'}")

    def do_weeks(self, arg):
        """Weekly expense balance, most recent first: weeks [N]"""
        try:
            limit = int(arg) if arg.strip() else None
        except ValueError:
            print("Invalid input: N must be a whole number")
            return

        groups = group_by_week(self.entries, weeks=limit)
        if not groups:
            print("No entries recorded yet")
            return
        for g in groups:
            s = g.summary
            spent = s.total_spent_fuel + s.total_spent_food + s.total_spent_maintenance
            reserved = s.total_fuel + s.total_food + s.total_maintenance
            print(f"\n{g.start_date.strftime('%d/%m')} - {g.end_date.strftime('%d/%m')}")
            print(f"  Reserved {_money(reserved)}   Spent {_money(spent)}   Balance {_money(reserved - spent)}")

    def do_reserves(self, arg):
        """Reserved vs spent per category"""
        balances = reserve_balances(self.entries)
        total_perc = (self.config.perc_fuel + self.config.perc_food + self.config.perc_maintenance) * 100
        print(f"\nReserve balance: {_money(balances['total'])} ({total_perc:.0f}% of gross set aside)")
        for cat in SPEND_CATEGORIES:
            b = balances[cat]
            print(f"  {CATEGORY_LABELS[cat]:<12} reserved {_money(b['reserved']):>12}  spent {_money(b['spent']):>12}  "
                  f"balance {_money(b['balance']):>12}  ({b['usage']:.0f}% used)")

    def do_maintenance(self, arg):
        """Kilometers left until each configured service"""
        statuses = predict_maintenance(self.entries, self.config.maintenance_alerts)
        if not statuses:
            print("No maintenance alerts configured")
            return
        for s in statuses:
            marker = "!" if s.urgent else " "
            print(f"{marker} {s.alert.description:<16} next at {s.next_due_km:>9,.0f} km  "
                  f"remaining {s.km_remaining:>9,.0f} km  ({s.progress * 100:.0f}%)")

    def do_stores(self, arg):
        """Recently used store names"""
        stores = recent_stores(self.entries)
        print("\n".join(stores) if stores else "No stores yet")

    # ===== EDITING =====
    def do_delete(self, arg):
        """Delete an entry: delete <ID>"""
        entry_id = arg.strip()
        if not entry_id:
            print("Usage: delete <ID>")
            return
        if delete_entry(self.entries, entry_id):
            self._persist()
            print(f"✓ Deleted entry {entry_id}")
        else:
            print("Entry not found")

    def do_paid(self, arg):
        """Toggle settlement of a card/PIX entry: paid <ID>"""
        entry_id = arg.strip()
        if toggle_paid(self.entries, entry_id):
            self._persist()
            print(f"✓ Updated entry {entry_id}")
        else:
            print("Entry not found or paid in cash")

    def do_settings(self, arg):
        """Show or change settings: settings [fuel|food|maintenance|goal|price VALUE]"""
        args = arg.split()
        if not args:
            c = self.config
            print(f"  fuel {c.perc_fuel:.0%}  food {c.perc_food:.0%}  maintenance {c.perc_maintenance:.0%}")
            print(f"  daily goal {_money(c.daily_goal)}  last fuel price {c.last_fuel_price}")
            for a in c.maintenance_alerts:
                print(f"  alert {a.description}: every {a.km_interval:,.0f} km (baseline {a.last_km:,.0f})")
            return

        try:
            if len(args) != 2 or args[0] not in SETTING_FIELDS:
                raise ValueError("Usage: settings <fuel|food|maintenance|goal|price> <value>")
            value = float(args[1])
            if args[0] in ("fuel", "food", "maintenance") and not 0 <= value <= 1:
                raise ValueError("Percentages are fractions between 0 and 1")
            if value < 0:
                raise ValueError("Value must not be negative")
            self.config = replace(self.config, **{SETTING_FIELDS[args[0]]: value})
            save_config(self.config, self.data_dir)
            print(f"✓ {args[0]} set to {value}")
        except ValueError as e:
            print(f"Invalid input: {e}")

    # ===== DATA MANAGEMENT =====
    def do_export(self, arg):
        """Write a backup: export <path>"""
        path = arg.strip() or "rota_backup.json"
        if export_snapshot(Path(path), self.entries, self.config):
            print(f"✓ Exported {len(self.entries)} entries to '{path}'")
        else:
            print("Export failed")

    def do_import(self, arg):
        """Replace all data from a backup: import <path>"""
        path = arg.strip()
        if not path:
            print("Usage: import <path>")
            return
        try:
            entries, config = import_snapshot(Path(path))
        except ValueError as e:
            print(f"Import failed: {e}")
            return

        self.entries = entries
        if config is not None:
            self.config = config
        self._persist(config_changed=config is not None)
        print(f"✓ Restore complete! {len(entries)} entries.")

    # ===== UTILITIES =====
    def do_exit(self, arg):
        """Exit the program"""
        print("Goodbye!")
        return True

    # ===== HELPERS =====
    @staticmethod
    def _parse_entry_args(arg, min_args=1):
        """Parse <amount> followed by free words, date, time and flags"""
        args = arg.split()
        if len(args) < min_args:
            raise ValueError("Missing required arguments")

        result = {
            'amount': args[0],
            'words': [],
            'date': date.today(),
            'time': _now(),
            'pay': None,
            'km': None,
            'price': None,
            'desc': "",
        }

        i = 1
        while i < len(args):
            if args[i] in ('--pay', '--km', '--price'):
                if i + 1 >= len(args):
                    raise ValueError(f"Missing value after {args[i]}")
                key = args[i][2:]
                value = args[i + 1]
                if key == 'pay':
                    if value not in PAYMENT_METHODS:
                        raise ValueError(f"Payment method must be one of {', '.join(PAYMENT_METHODS)}")
                    result['pay'] = value
                else:
                    result[key] = float(value)
                i += 2
            elif args[i] == '--desc':
                result['desc'] = ' '.join(args[i + 1:])
                break
            elif args[i].startswith('--'):
                raise ValueError(f"Unknown flag: {args[i]}")
            else:
                try:
                    result['date'] = date.fromisoformat(args[i])
                    i += 1
                    continue
                except ValueError:
                    pass
                try:
                    datetime.strptime(args[i], "%H:%M")
                    result['time'] = args[i]
                    i += 1
                    continue
                except ValueError:
                    pass
                result['words'].append(args[i])
                i += 1

        return result

    @staticmethod
    def _parse_history_args(arg):
        args = arg.split()
        result = {
            'start': None,
            'end': None,
            'category': None,
            'payment_method': None,
            'days': False,
        }

        i = 0
        while i < len(args):
            if args[i] == '--days':
                result['days'] = True
                i += 1
                continue
            if i + 1 >= len(args):
                raise ValueError(f"Missing value after {args[i]}")
            if args[i] == '--from':
                result['start'] = date.fromisoformat(args[i + 1])
            elif args[i] == '--to':
                result['end'] = date.fromisoformat(args[i + 1])
            elif args[i] == '--category':
                result['category'] = args[i + 1]
            elif args[i] == '--pay':
                result['payment_method'] = args[i + 1]
            else:
                raise ValueError(f"Unknown flag: {args[i]}")
            i += 2

        return result


if __name__ == "__main__":
    RotaCLI().cmdloop()
