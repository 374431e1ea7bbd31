from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from aligner_missions.errors import BusinessRuleViolation, ValidationError
from aligner_missions.models import PointTransaction
from aligner_missions.models.enums import CompletionCriteria, EventKind, MissionStatus, TimeUnit, Trigger
from aligner_missions.services import engine, ledger, lifecycle, progress
from aligner_missions.services.progress import ProgressEvent

from conftest import NOW


def usage(amount=1, at=NOW, **kw):
    return ProgressEvent(kind=EventKind.USAGE, occurred_at=at, amount=amount, **kw)


@pytest.fixture
def assign(db):
    def _assign(patient, template, trigger=Trigger.IMMEDIATE):
        result = engine.assign_and_activate(db, patient.id, template.id, trigger, NOW)
        db.commit()
        return result.mission

    return _assign


def test_total_count_completes_exactly_once(db, make_patient, make_template, assign):
    p = make_patient()
    m = assign(p, make_template(target_value=3, base_points=10, bonus_points=2))

    progress.apply_event(db, m, usage(1), NOW)
    assert (m.status, m.progress) == (MissionStatus.IN_PROGRESS, 1)
    progress.apply_event(db, m, usage(1), NOW)
    assert m.progress == 2
    progress.apply_event(db, m, usage(2), NOW)
    assert (m.status, m.progress) == (MissionStatus.COMPLETED, 3)
    assert m.points_earned == 12
    assert m.completed_at == NOW

    progress.apply_event(db, m, usage(5), NOW + timedelta(hours=1))
    db.commit()
    assert m.progress == 3 and m.points_earned == 12

    txs = db.scalars(select(PointTransaction).where(PointTransaction.patient_id == p.id)).all()
    assert len(txs) == 1
    assert (txs[0].amount_coins, txs[0].amount_xp) == (12, 6)
    points = ledger.get_or_create_points(db, p.id)
    assert (points.coins, points.xp, points.level) == (12, 6, 1)


def test_custom_points_override_template_points(db, make_patient, make_template):
    p = make_patient()
    t = make_template(target_value=1)
    m = engine.assign_and_activate(db, p.id, t.id, Trigger.IMMEDIATE, NOW, custom_points=40).mission
    progress.apply_event(db, m, usage(1), NOW)
    assert m.points_earned == 40


def test_negative_amount_rejected(db, make_patient, make_template, assign):
    m = assign(make_patient(), make_template())
    with pytest.raises(ValidationError):
        progress.apply_event(db, m, usage(-1), NOW)


def test_days_streak(db, make_patient, make_template, assign):
    m = assign(make_patient(), make_template(completion_criteria=CompletionCriteria.DAYS_STREAK, target_value=10))

    for day in range(3):
        progress.apply_event(db, m, usage(at=NOW + timedelta(days=day)), NOW + timedelta(days=day))
    assert m.progress == 3

    # same day again is a no-op
    progress.apply_event(db, m, usage(at=NOW + timedelta(days=2, hours=5)), NOW + timedelta(days=2, hours=5))
    assert m.progress == 3

    # day 5: gap of two days
    progress.apply_event(db, m, usage(at=NOW + timedelta(days=4)), NOW + timedelta(days=4))
    assert m.progress == 1
    assert m.status == MissionStatus.IN_PROGRESS


def test_percentage_is_recomputed(db, make_patient, make_template, assign):
    m = assign(make_patient(), make_template(completion_criteria=CompletionCriteria.PERCENTAGE, target_value=50))
    progress.apply_event(db, m, usage(numerator=1, denominator=3), NOW)
    assert m.progress == 33
    progress.apply_event(db, m, usage(numerator=1, denominator=8), NOW)
    assert m.progress == 13
    progress.apply_event(db, m, usage(numerator=3, denominator=4), NOW)
    assert (m.status, m.progress) == (MissionStatus.COMPLETED, 50)


def test_percentage_needs_denominator(db, make_patient, make_template, assign):
    m = assign(make_patient(), make_template(completion_criteria=CompletionCriteria.PERCENTAGE, target_value=50))
    with pytest.raises(ValidationError):
        progress.apply_event(db, m, usage(numerator=1, denominator=0), NOW)


def test_time_based_accumulates_in_template_unit(db, make_patient, make_template, assign):
    t = make_template(completion_criteria=CompletionCriteria.TIME_BASED, target_value=22, time_unit=TimeUnit.HOURS)
    m = assign(make_patient(), t)
    progress.apply_event(db, m, usage(seconds=10 * 3600 + 1800), NOW)
    assert m.progress == 10
    progress.apply_event(db, m, usage(seconds=11 * 3600 + 1800), NOW)
    assert (m.status, m.progress) == (MissionStatus.COMPLETED, 22)


def test_manual_mission_ignores_events_and_completes_explicitly(db, make_patient, make_template, assign):
    t = make_template(completion_criteria=CompletionCriteria.MANUAL, target_value=1, base_points=30, bonus_points=0)
    m = assign(make_patient(), t, Trigger.MANUAL)
    assert m.period_key.startswith("manual:")

    progress.apply_event(db, m, usage(5), NOW)
    assert (m.status, m.progress) == (MissionStatus.AVAILABLE, 0)

    progress.complete_manually(db, m, NOW)
    progress.complete_manually(db, m, NOW)
    db.commit()
    assert (m.status, m.progress, m.points_earned) == (MissionStatus.COMPLETED, 1, 30)
    assert len(db.scalars(select(PointTransaction)).all()) == 1


def test_complete_refused_for_non_manual(db, make_patient, make_template, assign):
    m = assign(make_patient(), make_template())
    with pytest.raises(BusinessRuleViolation):
        progress.complete_manually(db, m, NOW)


def test_validation_approve_and_reject(db, make_patient, make_template, assign):
    p = make_patient()
    needs_review = make_template(name="Photo check", requires_manual_validation=True, target_value=1)
    other = make_template(name="Second photo check", requires_manual_validation=True, target_value=1)
    m1 = assign(p, needs_review)
    m2 = assign(p, other)

    # automatic events don't complete a mission waiting for a clinician
    progress.apply_event(db, m1, usage(1), NOW)
    assert m1.status == MissionStatus.AVAILABLE

    progress.validate(db, m1, True, "dr.costa", NOW)
    progress.validate(db, m2, False, "dr.costa", NOW)
    db.commit()
    assert (m1.status, m1.validated_by, m1.points_earned) == (MissionStatus.COMPLETED, "dr.costa", 12)
    assert (m2.status, m2.points_earned) == (MissionStatus.FAILED, 0)

    with pytest.raises(BusinessRuleViolation):
        progress.validate(db, m2, True, "dr.costa", NOW)


def test_reset_only_for_open_missions(db, make_patient, make_template, assign):
    m = assign(make_patient(), make_template(target_value=5))
    progress.apply_event(db, m, usage(2), NOW)
    lifecycle.reset(m, NOW + timedelta(hours=1))
    assert (m.status, m.progress) == (MissionStatus.AVAILABLE, 0)

    lifecycle.transition(m, MissionStatus.FAILED, NOW)
    with pytest.raises(BusinessRuleViolation):
        lifecycle.reset(m, NOW)


def test_terminal_states_are_final(db, make_patient, make_template, assign):
    m = assign(make_patient(), make_template())
    lifecycle.transition(m, MissionStatus.EXPIRED, NOW)
    with pytest.raises(BusinessRuleViolation):
        lifecycle.transition(m, MissionStatus.IN_PROGRESS, NOW)


def test_progress_never_exceeds_target(db, make_patient, make_template, assign):
    m = assign(make_patient(), make_template(target_value=4))
    for amount in (0, 3, 0, 7):
        progress.apply_event(db, m, usage(amount), NOW)
        assert 0 <= m.progress <= m.target_value


def test_domain_event_routes_by_category(db, make_patient, make_template, assign):
    from aligner_missions.models.enums import MissionCategory

    p = make_patient()
    wear = assign(p, make_template(name="Wear", target_value=5))
    floss = assign(p, make_template(name="Floss", category=MissionCategory.HYGIENE, target_value=5))
    photo = assign(p, make_template(name="Selfie", category=MissionCategory.TRACKING, target_value=1))

    touched = engine.apply_domain_event(db, p.id, ProgressEvent(EventKind.HYGIENE, NOW, amount=2), NOW)
    assert [m.id for m in touched] == [floss.id]
    assert (wear.progress, floss.progress) == (0, 2)

    engine.apply_domain_event(db, p.id, ProgressEvent(EventKind.PHOTO, NOW), NOW)
    assert photo.status == MissionStatus.COMPLETED


def test_ledger_rejects_negative_balance(db, make_patient):
    p = make_patient()
    ledger.add_coins(db, p.id, 5, source="manual")
    with pytest.raises(ValidationError):
        ledger.add_coins(db, p.id, -10, source="manual")
    assert ledger.level_for_xp(250) == 3
