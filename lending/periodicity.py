"""
Periodicity Module

Expands a start date into the due dates of a loan's installments according to
a periodicity (daily, weekly, monthly or yearly steps, optionally restricted to
allowed weekdays or days of the month), and keeps the registry of named
periodicities that loans reference.
"""

from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
from enum import Enum
import json
import logging
import uuid

from .dates import (
    WEEKDAY_ABBREVIATIONS, WEEKDAY_NAMES, add_days, add_months, add_years,
    format_date, weekday_index, with_day
)
from .config import get_config
from .errors import ConfigurationError, InvalidPeriodicityError
from .logging_config import log_action
from .storage import StorageInterface, StorageRecord


logger = logging.getLogger(__name__)


class IntervalType(Enum):
    """Unit of the step between two due dates"""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


# Names used by the first periodicity seed
INTERVAL_TYPE_ALIASES = {
    "DAYS": IntervalType.DAILY,
    "WEEKS": IntervalType.WEEKLY,
    "MONTHS": IntervalType.MONTHLY,
    "YEARS": IntervalType.YEARLY,
}

WEEKDAY_RANGE = range(0, 7)      # 0 = Sunday
MONTH_DAY_RANGE = range(1, 32)
MONTH_RANGE = range(1, 13)


def parse_interval_type(value: Any) -> IntervalType:
    """Resolve an interval type name, raising ConfigurationError when unknown"""
    if isinstance(value, IntervalType):
        return value
    name = str(value).strip().upper()
    if name in INTERVAL_TYPE_ALIASES:
        return INTERVAL_TYPE_ALIASES[name]
    try:
        return IntervalType(name)
    except ValueError:
        raise InvalidPeriodicityError(f"Unknown interval type: {value!r}")


def _parse_allow_list(name: str, values: Any, valid: range) -> Optional[Tuple[int, ...]]:
    if values is None:
        return None
    if isinstance(values, str):
        # Stored as a JSON array in the periodicity table
        try:
            values = json.loads(values)
        except ValueError:
            raise InvalidPeriodicityError(f"{name} is not a JSON list: {values!r}")
        if values is None:
            return None
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise InvalidPeriodicityError(f"{name} must be a list, got {type(values).__name__}")
    if not values:
        raise InvalidPeriodicityError(f"{name} is present but empty")

    parsed = set()
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int) or value not in valid:
            raise InvalidPeriodicityError(
                f"{name} contains {value!r}, expected integers {valid.start}-{valid.stop - 1}"
            )
        parsed.add(value)
    return tuple(sorted(parsed))


@dataclass(frozen=True)
class PeriodicityConfig:
    """
    Interval specification for generating due dates.

    Allow-lists are optional; when given they must be non-empty and are
    normalized to sorted tuples of unique values.
    """
    interval_type: IntervalType
    interval_value: int = 1
    allowed_weekdays: Optional[Tuple[int, ...]] = None
    allowed_month_days: Optional[Tuple[int, ...]] = None
    allowed_months: Optional[Tuple[int, ...]] = None

    def __post_init__(self):
        object.__setattr__(self, 'interval_type', parse_interval_type(self.interval_type))

        if isinstance(self.interval_value, bool) or not isinstance(self.interval_value, int):
            raise InvalidPeriodicityError(f"Interval value must be an integer, got {self.interval_value!r}")
        if self.interval_value <= 0:
            raise InvalidPeriodicityError(f"Interval value must be positive, got {self.interval_value}")

        object.__setattr__(self, 'allowed_weekdays',
                           _parse_allow_list("allowed_weekdays", self.allowed_weekdays, WEEKDAY_RANGE))
        object.__setattr__(self, 'allowed_month_days',
                           _parse_allow_list("allowed_month_days", self.allowed_month_days, MONTH_DAY_RANGE))
        object.__setattr__(self, 'allowed_months',
                           _parse_allow_list("allowed_months", self.allowed_months, MONTH_RANGE))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PeriodicityConfig':
        """Build from snake_case or camelCase keys; allow-lists may be JSON strings"""
        def pick(snake: str, camel: str, default=None):
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        interval_type = pick('interval_type', 'intervalType')
        if interval_type is None:
            raise InvalidPeriodicityError("Interval type is required")

        return cls(
            interval_type=interval_type,
            interval_value=pick('interval_value', 'intervalValue', 1),
            allowed_weekdays=pick('allowed_weekdays', 'allowedWeekdays'),
            allowed_month_days=pick('allowed_month_days', 'allowedMonthDays'),
            allowed_months=pick('allowed_months', 'allowedMonths'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'interval_type': self.interval_type.value,
            'interval_value': self.interval_value,
            'allowed_weekdays': list(self.allowed_weekdays) if self.allowed_weekdays else None,
            'allowed_month_days': list(self.allowed_month_days) if self.allowed_month_days else None,
            'allowed_months': list(self.allowed_months) if self.allowed_months else None,
        }


def _advance_to_allowed_weekday(value: date, allowed_weekdays: Iterable[int]) -> date:
    """Move forward one day at a time until the weekday is allowed"""
    allowed = set(allowed_weekdays)
    for _ in range(7):
        if weekday_index(value) in allowed:
            return value
        value = add_days(value, 1)
    raise InvalidPeriodicityError(f"No valid weekday in {sorted(allowed)}")


def _closest_month_day(day: int, allowed_month_days: Iterable[int]) -> int:
    # Ascending order makes the lower day win ties
    return min(sorted(allowed_month_days), key=lambda candidate: abs(candidate - day))


def compute_next_due_date(current_date: date, config: PeriodicityConfig) -> date:
    """
    Compute the due date that follows current_date.

    DAILY steps interval_value days and then creeps forward to an allowed
    weekday. WEEKLY steps 7 * interval_value days. MONTHLY steps calendar
    months (day clamped to the month's length) and then snaps to the closest
    allowed day of the month. YEARLY steps calendar years. Allow-lists are only
    consulted by the interval type that names them.

    Raises:
        ConfigurationError: If the interval type is not supported
    """
    interval_type = config.interval_type

    if interval_type == IntervalType.DAILY:
        next_date = add_days(current_date, config.interval_value)
        if config.allowed_weekdays:
            next_date = _advance_to_allowed_weekday(next_date, config.allowed_weekdays)
    elif interval_type == IntervalType.WEEKLY:
        next_date = add_days(current_date, 7 * config.interval_value)
    elif interval_type == IntervalType.MONTHLY:
        next_date = add_months(current_date, config.interval_value)
        if config.allowed_month_days:
            next_date = with_day(next_date, _closest_month_day(next_date.day, config.allowed_month_days))
    elif interval_type == IntervalType.YEARLY:
        next_date = add_years(current_date, config.interval_value)
    else:
        raise ConfigurationError(f"Unsupported interval type: {interval_type!r}")

    return next_date


def generate_schedule(start_date: date, installment_count: int, config: PeriodicityConfig) -> List[date]:
    """
    Generate the due dates of installment_count installments.

    The first installment is due on start_date itself; every following date is
    compute_next_due_date of the previous one.
    """
    if installment_count < 1:
        raise ValueError(f"Installment count must be at least 1, got {installment_count}")

    schedule = [start_date]
    current_date = start_date
    for _ in range(1, installment_count):
        current_date = compute_next_due_date(current_date, config)
        schedule.append(current_date)

    logger.debug(
        f"Generated {installment_count} due dates from {start_date.isoformat()} "
        f"({config.interval_type.value} x{config.interval_value})"
    )
    return schedule


_LABELS = {
    "pt_BR": {
        IntervalType.DAILY: ("Diário", "A cada {n} dias", "Diário ({days})"),
        IntervalType.WEEKLY: ("Semanal", "A cada {n} semanas", None),
        IntervalType.MONTHLY: ("Mensal", "A cada {n} meses", None),
        IntervalType.YEARLY: ("Anual", "A cada {n} anos", None),
    },
    "en_US": {
        IntervalType.DAILY: ("Daily", "Every {n} days", "Daily ({days})"),
        IntervalType.WEEKLY: ("Weekly", "Every {n} weeks", None),
        IntervalType.MONTHLY: ("Monthly", "Every {n} months", None),
        IntervalType.YEARLY: ("Yearly", "Every {n} years", None),
    },
}


def _resolve_locale(locale: str) -> str:
    """Requested locale if supported, else the configured one, else pt_BR"""
    if locale in _LABELS:
        return locale
    configured = get_config().locale
    return configured if configured in _LABELS else "pt_BR"


def describe_periodicity(config: PeriodicityConfig, locale: str = "pt_BR") -> str:
    """Human-readable label such as "Mensal", "A cada 3 dias" or "Diário (Seg, Ter)" """
    locale = _resolve_locale(locale)
    single, multiple, restricted = _LABELS[locale][config.interval_type]

    if restricted and config.allowed_weekdays:
        abbreviations = WEEKDAY_ABBREVIATIONS[locale]
        days = ", ".join(abbreviations[d] for d in config.allowed_weekdays)
        return restricted.format(days=days)

    if config.interval_value == 1:
        return single
    return multiple.format(n=config.interval_value)


@dataclass(frozen=True)
class StartDateValidation:
    """Outcome of checking a start date against a weekday restriction"""
    is_valid: bool
    suggested_date: Optional[date] = None
    message: Optional[str] = None


def validate_start_date(start_date: date, config: PeriodicityConfig,
                        locale: str = "pt_BR") -> StartDateValidation:
    """
    Check that start_date falls on an allowed weekday.

    Only informs the caller; generate_schedule still uses the start date as
    given.
    """
    if not config.allowed_weekdays or weekday_index(start_date) in config.allowed_weekdays:
        return StartDateValidation(is_valid=True)

    suggested = _advance_to_allowed_weekday(start_date, config.allowed_weekdays)
    locale = _resolve_locale(locale)
    names = WEEKDAY_NAMES[locale]
    allowed_names = ", ".join(names[d] for d in config.allowed_weekdays)
    weekday_name = names[weekday_index(start_date)]

    if locale == "en_US":
        message = (f"The chosen date falls on {weekday_name}, but this periodicity only allows: "
                   f"{allowed_names}. Suggested: {format_date(suggested, locale)}")
    else:
        message = (f"A data escolhida cai em {weekday_name}, mas esta periodicidade só permite: "
                   f"{allowed_names}. Sugerimos: {format_date(suggested, 'pt_BR')}")

    return StartDateValidation(is_valid=False, suggested_date=suggested, message=message)


@dataclass
class Periodicity(StorageRecord):
    """Named periodicity referenced by loans"""
    name: str
    config: PeriodicityConfig
    description: Optional[str] = None

    @property
    def label(self) -> str:
        return describe_periodicity(self.config)


DEFAULT_PERIODICITIES = [
    ("Diário", "Pagamento diário", IntervalType.DAILY, 1),
    ("Semanal", "Pagamento semanal", IntervalType.WEEKLY, 1),
    ("Quinzenal", "Pagamento quinzenal", IntervalType.DAILY, 15),
    ("Mensal", "Pagamento mensal", IntervalType.MONTHLY, 1),
    ("Bimestral", "Pagamento bimestral", IntervalType.MONTHLY, 2),
    ("Trimestral", "Pagamento trimestral", IntervalType.MONTHLY, 3),
    ("Semestral", "Pagamento semestral", IntervalType.MONTHLY, 6),
    ("Anual", "Pagamento anual", IntervalType.YEARLY, 1),
]


class PeriodicityManager:
    """
    Registry of named periodicities (admin created, updated and deleted)
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.periodicities_table = "periodicities"
        self.loans_table = "loans"

    def create_periodicity(
        self,
        name: str,
        config: PeriodicityConfig,
        description: Optional[str] = None
    ) -> Periodicity:
        """
        Create a named periodicity

        Raises:
            ValueError: If the name is empty or already taken
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Periodicity name is required")
        if self.get_periodicity_by_name(name):
            raise ValueError(f"Periodicity '{name}' already exists")

        now = datetime.now(timezone.utc)
        periodicity = Periodicity(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            config=config,
            description=description
        )
        self._save_periodicity(periodicity)

        log_action(logger, "info", f"Periodicity '{name}' created",
                   action="periodicity_created", resource=periodicity.id,
                   extra=config.to_dict())
        return periodicity

    def get_periodicity(self, periodicity_id: str) -> Optional[Periodicity]:
        data = self.storage.load(self.periodicities_table, periodicity_id)
        if data:
            return self._periodicity_from_dict(data)
        return None

    def get_periodicity_by_name(self, name: str) -> Optional[Periodicity]:
        matches = self.storage.find(self.periodicities_table, {"name": name})
        if matches:
            return self._periodicity_from_dict(matches[0])
        return None

    def list_periodicities(self) -> List[Periodicity]:
        periodicities = [self._periodicity_from_dict(data)
                         for data in self.storage.load_all(self.periodicities_table)]
        periodicities.sort(key=lambda p: p.name)
        return periodicities

    def update_periodicity(
        self,
        periodicity_id: str,
        name: Optional[str] = None,
        config: Optional[PeriodicityConfig] = None,
        description: Optional[str] = None
    ) -> Periodicity:
        """Update a periodicity; existing installments keep their dates"""
        periodicity = self.get_periodicity(periodicity_id)
        if not periodicity:
            raise ValueError(f"Periodicity {periodicity_id} not found")

        if name is not None and name != periodicity.name:
            existing = self.get_periodicity_by_name(name)
            if existing and existing.id != periodicity_id:
                raise ValueError(f"Periodicity '{name}' already exists")
            periodicity.name = name
        if config is not None:
            periodicity.config = config
        if description is not None:
            periodicity.description = description

        periodicity.updated_at = datetime.now(timezone.utc)
        self._save_periodicity(periodicity)

        log_action(logger, "info", f"Periodicity '{periodicity.name}' updated",
                   action="periodicity_updated", resource=periodicity_id)
        return periodicity

    def delete_periodicity(self, periodicity_id: str) -> bool:
        """
        Delete a periodicity

        Raises:
            ValueError: If any loan still references it
        """
        in_use = self.storage.find(self.loans_table, {"periodicity_id": periodicity_id})
        if in_use:
            raise ValueError(f"Periodicity {periodicity_id} is used by {len(in_use)} loan(s)")

        deleted = self.storage.delete(self.periodicities_table, periodicity_id)
        if deleted:
            log_action(logger, "info", "Periodicity deleted",
                       action="periodicity_deleted", resource=periodicity_id)
        return deleted

    def seed_defaults(self) -> List[Periodicity]:
        """Create the standard periodicities that do not exist yet"""
        created = []
        for name, description, interval_type, interval_value in DEFAULT_PERIODICITIES:
            if self.get_periodicity_by_name(name):
                continue
            created.append(self.create_periodicity(
                name=name,
                config=PeriodicityConfig(interval_type=interval_type, interval_value=interval_value),
                description=description
            ))
        return created

    def _save_periodicity(self, periodicity: Periodicity) -> None:
        self.storage.save(self.periodicities_table, periodicity.id, self._periodicity_to_dict(periodicity))

    def _periodicity_to_dict(self, periodicity: Periodicity) -> Dict[str, Any]:
        return {
            'id': periodicity.id,
            'created_at': periodicity.created_at.isoformat(),
            'updated_at': periodicity.updated_at.isoformat(),
            'name': periodicity.name,
            'description': periodicity.description,
            'config': periodicity.config.to_dict(),
        }

    def _periodicity_from_dict(self, data: Dict[str, Any]) -> Periodicity:
        return Periodicity(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            description=data.get('description'),
            config=PeriodicityConfig.from_dict(data['config'])
        )
