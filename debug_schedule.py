#!/usr/bin/env python3

"""Debug script for due date generation"""

import sys
from datetime import date
from lending.dates import WEEKDAY_ABBREVIATIONS, format_date, weekday_index
from lending.periodicity import (
    IntervalType, PeriodicityConfig, describe_periodicity, generate_schedule, validate_start_date
)

def show(start_date, count, config):
    print(f"{describe_periodicity(config)} from {format_date(start_date, 'pt_BR')}: {config.to_dict()}")

    validation = validate_start_date(start_date, config)
    if not validation.is_valid:
        print(f"  ! {validation.message}")

    for number, due_date in enumerate(generate_schedule(start_date, count, config), start=1):
        weekday = WEEKDAY_ABBREVIATIONS['pt_BR'][weekday_index(due_date)]
        print(f"  {number:>2}  {format_date(due_date, 'pt_BR')}  {weekday}")
    print()

def main():
    start_date = date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else date(2024, 1, 31)

    show(start_date, 4, PeriodicityConfig(IntervalType.MONTHLY))
    show(start_date, 6, PeriodicityConfig(IntervalType.MONTHLY, allowed_month_days=(5, 20)))
    show(start_date, 10, PeriodicityConfig(IntervalType.DAILY, allowed_weekdays=(1, 2, 3, 4, 5)))
    show(start_date, 4, PeriodicityConfig(IntervalType.WEEKLY, interval_value=2))
    show(start_date, 3, PeriodicityConfig(IntervalType.YEARLY))


if __name__ == "__main__":
    main()
