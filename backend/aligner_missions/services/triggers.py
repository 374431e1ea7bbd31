# backend/aligner_missions/services/triggers.py
"""
Trigger evaluation.

Pure functions: given a trigger configuration (a MissionAssignment or a
MissionProgramTemplate, anything with ``trigger``, ``trigger_aligner_number``,
``trigger_days_offset`` and ``aligner_interval``), the template it points at
and a TreatmentState snapshot, decide which trigger "firings" are live right
now. No database access happens here.

A firing carries an ``anchor`` (what fired: "immediate", "aligner:5",
"aligner:2+7d", ...). The anchor plus the template's frequency period form the
``period_key`` the activator uses as its idempotency key.

Aligner triggers are evaluated retroactively over the *latest step* of the
treatment: every aligner number reached since the previous recorded aligner.
A patient jumping from aligner 3 straight to 6 therefore fires aligner 4, 5
and 6 rules on the same evaluation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from aligner_missions.models.enums import MissionFrequency, RepeatSchedule, Trigger
from aligner_missions.timeutil import day_of_week

RECURRING_FREQUENCIES = (
    MissionFrequency.DAILY,
    MissionFrequency.WEEKLY,
    MissionFrequency.MONTHLY,
)


@dataclass(frozen=True)
class AlignerStart:
    number: int
    start_date: date


@dataclass(frozen=True)
class TreatmentState:
    now: datetime
    treatment_start_date: Optional[date] = None
    current_aligner_number: int = 1
    aligner_history: Sequence[AlignerStart] = field(default_factory=tuple)
    has_treatment: bool = True

    @classmethod
    def none(cls, now: datetime) -> "TreatmentState":
        return cls(now=now, current_aligner_number=0, has_treatment=False)

    @classmethod
    def from_treatment(cls, treatment, now: datetime) -> "TreatmentState":
        if treatment is None:
            return cls.none(now)
        history = tuple(
            sorted(
                (AlignerStart(a.aligner_number, a.start_date) for a in (treatment.aligners or [])),
                key=lambda a: a.number,
            )
        )
        return cls(
            now=now,
            treatment_start_date=treatment.start_date,
            current_aligner_number=treatment.current_aligner_number or 1,
            aligner_history=history,
        )

    @property
    def today(self) -> date:
        return self.now.date()

    def start_date_of_aligner(self, number: int) -> Optional[date]:
        """
        Recorded start date of aligner `number`. A skipped aligner (reached but
        never recorded) inherits the start date of the next recorded aligner.
        """
        if number > self.current_aligner_number or number < 1:
            return None
        later = None
        for a in self.aligner_history:
            if a.number == number:
                return a.start_date
            if a.number > number and (later is None or a.start_date < later):
                later = a.start_date
        if later is not None:
            return later
        return self.treatment_start_date

    def latest_step(self) -> range:
        """Aligner numbers reached since the previously recorded aligner."""
        previous = 0
        for a in self.aligner_history:
            if a.number < self.current_aligner_number:
                previous = max(previous, a.number)
        return range(previous + 1, self.current_aligner_number + 1)


@dataclass(frozen=True)
class Firing:
    anchor: str
    anchor_date: date
    aligner_number: Optional[int] = None

    @property
    def sort_key(self):
        return (self.anchor_date, self.aligner_number or 0)


# ----------------------------------------------------------------------
# Template-level gates
# ----------------------------------------------------------------------
def parse_available_from(value: Optional[str]) -> tuple[str, int]:
    """'aligner_5' -> ('aligner', 5); 'start' / None -> ('start', 0)."""
    if not value or value == "start":
        return "start", 0
    kind, _, n = value.partition("_")
    if kind not in ("aligner", "week", "month") or not n.isdigit() or int(n) < 1:
        raise ValueError(f"invalid availableFrom {value!r}")
    return kind, int(n)


def is_available(template, state: TreatmentState) -> bool:
    kind, n = parse_available_from(getattr(template, "available_from", None))
    if kind == "start":
        return True
    if kind == "aligner":
        return state.current_aligner_number >= n
    if state.treatment_start_date is None:
        return False
    days = (n - 1) * (7 if kind == "week" else 30)
    return state.today >= state.treatment_start_date + timedelta(days=days)


def weekday_allowed(template, today: date) -> bool:
    if template.frequency != MissionFrequency.WEEKLY:
        return True
    days = template.active_days_of_week
    if not days:
        return True
    return day_of_week(today) in set(days)


def within_window(template, firing: Firing, today: date) -> bool:
    """A firing whose expiry window already elapsed is not worth activating."""
    if template.frequency in RECURRING_FREQUENCIES:
        return True
    if not template.expires_after_days:
        return True
    return firing.anchor_date + timedelta(days=template.expires_after_days) > today


def period_suffix(template, state: TreatmentState) -> str:
    today = state.today
    frequency = template.frequency
    if frequency == MissionFrequency.CUSTOM:
        frequency = {
            RepeatSchedule.DAILY: MissionFrequency.DAILY,
            RepeatSchedule.WEEKLY: MissionFrequency.WEEKLY,
            RepeatSchedule.MONTHLY: MissionFrequency.MONTHLY,
        }.get(template.repeat_schedule, frequency)
        if template.repeat_schedule == RepeatSchedule.YEARLY:
            return f"{today.year}"

    if frequency == MissionFrequency.DAILY:
        return today.isoformat()
    if frequency == MissionFrequency.WEEKLY:
        iso = today.isocalendar()
        return f"{iso[0]}-W{iso[1]:02d}"
    if frequency == MissionFrequency.MONTHLY:
        return f"{today.year}-{today.month:02d}"
    if frequency == MissionFrequency.PER_ALIGNER:
        return f"a{state.current_aligner_number}"
    return ""


def period_key(template, firing: Firing, state: TreatmentState) -> str:
    # aligner anchors already are per-aligner periods
    if firing.aligner_number is not None and template.frequency == MissionFrequency.PER_ALIGNER:
        return firing.anchor
    suffix = period_suffix(template, state)
    return f"{firing.anchor}|{suffix}" if suffix else firing.anchor


# ----------------------------------------------------------------------
# One evaluator per trigger variant
# ----------------------------------------------------------------------
def _offset(config) -> int:
    return config.trigger_days_offset or 0


def _immediate(config, state: TreatmentState) -> List[Firing]:
    return [Firing("immediate", state.today)]


def _on_treatment_start(config, state: TreatmentState) -> List[Firing]:
    start = state.treatment_start_date
    if start is None or start > state.today:
        return []
    return [Firing("treatment_start", start)]


def _on_aligner_change(config, state: TreatmentState) -> List[Firing]:
    interval = max(1, getattr(config, "aligner_interval", 1) or 1)
    base = config.trigger_aligner_number or 1
    out = []
    for n in state.latest_step():
        # the first aligner is a start, not a change
        if n <= 1 or n < base or (n - base) % interval:
            continue
        out.append(Firing(f"aligner:{n}", state.start_date_of_aligner(n) or state.today, n))
    return out


def _on_aligner_n_start(config, state: TreatmentState) -> List[Firing]:
    n = config.trigger_aligner_number
    if not n or n not in state.latest_step():
        return []
    return [Firing(f"aligner:{n}", state.start_date_of_aligner(n) or state.today, n)]


def _days_after_aligner_n(config, state: TreatmentState) -> List[Firing]:
    n = config.trigger_aligner_number
    if not n:
        return []
    started = state.start_date_of_aligner(n)
    if started is None:
        return []
    due = started + timedelta(days=_offset(config))
    if state.today < due:
        return []
    return [Firing(f"aligner:{n}+{_offset(config)}d", due, n)]


def _days_after_treatment_start(config, state: TreatmentState) -> List[Firing]:
    return _after_start(state, _offset(config), f"treatment+{_offset(config)}d")


def _weeks_after_treatment_start(config, state: TreatmentState) -> List[Firing]:
    return _after_start(state, _offset(config) * 7, f"treatment+{_offset(config)}w")


def _after_start(state: TreatmentState, days: int, anchor: str) -> List[Firing]:
    start = state.treatment_start_date
    if start is None:
        return []
    due = start + timedelta(days=days)
    if state.today < due:
        return []
    return [Firing(anchor, due)]


def _manual(config, state: TreatmentState) -> List[Firing]:
    return []


EVALUATORS: Dict[Trigger, Callable[[object, TreatmentState], List[Firing]]] = {
    Trigger.IMMEDIATE: _immediate,
    Trigger.ON_TREATMENT_START: _on_treatment_start,
    Trigger.ON_ALIGNER_CHANGE: _on_aligner_change,
    Trigger.ON_ALIGNER_N_START: _on_aligner_n_start,
    Trigger.DAYS_AFTER_ALIGNER_N: _days_after_aligner_n,
    Trigger.DAYS_AFTER_TREATMENT_START: _days_after_treatment_start,
    Trigger.WEEKS_AFTER_TREATMENT_START: _weeks_after_treatment_start,
    Trigger.MANUAL: _manual,
}


def firings(config, template, state: TreatmentState) -> List[Firing]:
    """Live firings for `config` under `state`, after template-level gates."""
    if not state.has_treatment:
        return []
    if not is_available(template, state):
        return []
    if not weekday_allowed(template, state.today):
        return []
    out = EVALUATORS[Trigger(config.trigger)](config, state)
    return sorted(
        (f for f in out if within_window(template, f, state.today)),
        key=lambda f: f.sort_key,
    )


def fires(config, template, state: TreatmentState) -> bool:
    return bool(firings(config, template, state))
