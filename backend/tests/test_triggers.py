from datetime import date, datetime
from types import SimpleNamespace

import pytest

from aligner_missions.models.enums import MissionFrequency, RepeatSchedule, Trigger
from aligner_missions.services import triggers
from aligner_missions.services.triggers import AlignerStart, Firing, TreatmentState


def cfg(trigger, aligner_number=0, days_offset=0, aligner_interval=1):
    return SimpleNamespace(
        trigger=trigger,
        trigger_aligner_number=aligner_number,
        trigger_days_offset=days_offset,
        aligner_interval=aligner_interval,
    )


def tpl(frequency=MissionFrequency.ONCE, **kw):
    values = dict(
        frequency=frequency,
        available_from="start",
        active_days_of_week=None,
        expires_after_days=None,
        repeat_schedule=RepeatSchedule.NONE,
    )
    values.update(kw)
    return SimpleNamespace(**values)


def state(today, current=1, history=((1, date(2026, 3, 2)),), start=date(2026, 3, 2)):
    return TreatmentState(
        now=datetime.combine(today, datetime.min.time()).replace(hour=10),
        treatment_start_date=start,
        current_aligner_number=current,
        aligner_history=tuple(AlignerStart(n, d) for n, d in history),
    )


def test_every_trigger_has_an_evaluator():
    assert set(triggers.EVALUATORS) == set(Trigger)


def test_immediate_needs_a_treatment():
    assert triggers.fires(cfg(Trigger.IMMEDIATE), tpl(), state(date(2026, 3, 2)))
    assert not triggers.fires(cfg(Trigger.IMMEDIATE), tpl(), TreatmentState.none(datetime(2026, 3, 2)))


def test_on_treatment_start_waits_for_the_start_date():
    s = state(date(2026, 3, 1), start=date(2026, 3, 2), history=())
    assert not triggers.fires(cfg(Trigger.ON_TREATMENT_START), tpl(), s)
    s = state(date(2026, 3, 2), start=date(2026, 3, 2), history=())
    assert triggers.firings(cfg(Trigger.ON_TREATMENT_START), tpl(), s)[0].anchor == "treatment_start"


def test_manual_never_fires():
    assert triggers.firings(cfg(Trigger.MANUAL), tpl(), state(date(2026, 3, 2))) == []


def test_aligner_change_respects_interval():
    history = [(n, date(2026, 3, 2 + n)) for n in range(1, 6)]
    every_other = cfg(Trigger.ON_ALIGNER_CHANGE, aligner_interval=2)
    s5 = state(date(2026, 3, 8), current=5, history=history)
    assert [f.aligner_number for f in triggers.firings(every_other, tpl(), s5)] == [5]
    s4 = state(date(2026, 3, 8), current=4, history=history[:4])
    assert triggers.firings(every_other, tpl(), s4) == []


def test_first_aligner_is_not_a_change():
    assert triggers.firings(cfg(Trigger.ON_ALIGNER_CHANGE), tpl(), state(date(2026, 3, 2))) == []


def test_aligner_jump_fires_skipped_aligners():
    s = state(date(2026, 3, 20), current=6, history=[(1, date(2026, 3, 2)), (6, date(2026, 3, 20))])
    for n in (4, 5, 6):
        fired = triggers.firings(cfg(Trigger.ON_ALIGNER_N_START, aligner_number=n), tpl(), s)
        assert [f.anchor for f in fired] == [f"aligner:{n}"]
        # a skipped aligner inherits the date of the jump
        assert fired[0].anchor_date == date(2026, 3, 20)
    assert triggers.firings(cfg(Trigger.ON_ALIGNER_N_START, aligner_number=7), tpl(), s) == []


def test_aligner_n_start_only_for_latest_step():
    s = state(date(2026, 3, 20), current=3, history=[(1, date(2026, 3, 2)), (2, date(2026, 3, 9)), (3, date(2026, 3, 16))])
    assert triggers.fires(cfg(Trigger.ON_ALIGNER_N_START, aligner_number=3), tpl(), s)
    assert not triggers.fires(cfg(Trigger.ON_ALIGNER_N_START, aligner_number=2), tpl(), s)


def test_days_after_aligner_n():
    history = [(1, date(2026, 3, 2)), (2, date(2026, 3, 9))]
    c = cfg(Trigger.DAYS_AFTER_ALIGNER_N, aligner_number=2, days_offset=7)
    assert not triggers.fires(c, tpl(), state(date(2026, 3, 15), current=2, history=history))
    fired = triggers.firings(c, tpl(), state(date(2026, 3, 16), current=2, history=history))
    assert fired == [Firing("aligner:2+7d", date(2026, 3, 16), 2)]


def test_days_and_weeks_after_treatment_start():
    days = cfg(Trigger.DAYS_AFTER_TREATMENT_START, days_offset=10)
    weeks = cfg(Trigger.WEEKS_AFTER_TREATMENT_START, days_offset=2)
    assert not triggers.fires(days, tpl(), state(date(2026, 3, 11)))
    assert triggers.fires(days, tpl(), state(date(2026, 3, 12)))
    assert not triggers.fires(weeks, tpl(), state(date(2026, 3, 15)))
    assert triggers.firings(weeks, tpl(), state(date(2026, 3, 16)))[0].anchor == "treatment+2w"


def test_available_from_gates():
    c = cfg(Trigger.IMMEDIATE)
    assert not triggers.fires(c, tpl(available_from="aligner_3"), state(date(2026, 3, 2), current=2))
    assert triggers.fires(c, tpl(available_from="aligner_3"), state(date(2026, 3, 2), current=3))
    assert not triggers.fires(c, tpl(available_from="week_2"), state(date(2026, 3, 8)))
    assert triggers.fires(c, tpl(available_from="week_2"), state(date(2026, 3, 9)))
    assert not triggers.fires(c, tpl(available_from="month_2"), state(date(2026, 3, 31)))
    assert triggers.fires(c, tpl(available_from="month_2"), state(date(2026, 4, 1)))


@pytest.mark.parametrize("value", ["aligner_0", "day_3", "week_", "aligner_x"])
def test_invalid_available_from(value):
    with pytest.raises(ValueError):
        triggers.parse_available_from(value)


def test_weekly_active_days():
    t = tpl(MissionFrequency.WEEKLY, active_days_of_week=[1, 3, 5])
    c = cfg(Trigger.IMMEDIATE)
    assert not triggers.fires(c, t, state(date(2026, 3, 3)))  # Tuesday
    assert triggers.fires(c, t, state(date(2026, 3, 2)))  # Monday


def test_active_days_ignored_for_non_weekly():
    t = tpl(MissionFrequency.DAILY, active_days_of_week=[1])
    assert triggers.fires(cfg(Trigger.IMMEDIATE), t, state(date(2026, 3, 3)))


def test_expired_window_is_skipped():
    t = tpl(expires_after_days=3)
    c = cfg(Trigger.ON_ALIGNER_N_START, aligner_number=2)
    history = [(1, date(2026, 3, 2)), (2, date(2026, 3, 9))]
    assert triggers.fires(c, t, state(date(2026, 3, 11), current=2, history=history))
    assert not triggers.fires(c, t, state(date(2026, 3, 12), current=2, history=history))


def test_period_keys():
    s = state(date(2026, 3, 2), current=3)
    imm = Firing("immediate", date(2026, 3, 2))
    assert triggers.period_key(tpl(), imm, s) == "immediate"
    assert triggers.period_key(tpl(MissionFrequency.DAILY), imm, s) == "immediate|2026-03-02"
    assert triggers.period_key(tpl(MissionFrequency.WEEKLY), imm, s) == "immediate|2026-W10"
    assert triggers.period_key(tpl(MissionFrequency.MONTHLY), imm, s) == "immediate|2026-03"
    assert triggers.period_key(tpl(MissionFrequency.PER_ALIGNER), imm, s) == "immediate|a3"
    aligner = Firing("aligner:3", date(2026, 3, 2), 3)
    assert triggers.period_key(tpl(MissionFrequency.PER_ALIGNER), aligner, s) == "aligner:3"
    yearly = tpl(MissionFrequency.CUSTOM, repeat_schedule=RepeatSchedule.YEARLY)
    assert triggers.period_key(yearly, imm, s) == "immediate|2026"
    assert triggers.period_key(tpl(MissionFrequency.CUSTOM), imm, s) == "immediate"
