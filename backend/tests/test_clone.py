import pytest
from sqlalchemy import select

from aligner_missions.errors import BusinessRuleViolation, NotFound
from aligner_missions.models import MissionAssignment
from aligner_missions.models.enums import MissionStatus, Trigger
from aligner_missions.services import cloning, engine

from conftest import NOW


@pytest.fixture
def source(db, make_patient, make_template):
    p = make_patient("Source")
    templates = [make_template(name=f"Mission {i}") for i in range(3)]
    for i, t in enumerate(templates):
        engine.assign_and_activate(db, p.id, t.id, Trigger.IMMEDIATE, NOW, custom_points=10 * (i + 1))
    db.commit()
    return p, templates


def test_clone_to_two_targets_with_differing_counts(db, make_patient, source):
    src, templates = source
    a = make_patient("Target A")
    b = make_patient("Target B")
    engine.assign_and_activate(db, b.id, templates[1].id, Trigger.IMMEDIATE, NOW)
    db.commit()

    result = cloning.clone(db, src.id, [a.id, b.id], NOW)
    db.commit()

    assert result.failed == []
    by_target = {r.target_id: r for r in result.succeeded}
    assert len(by_target[a.id].created) == 3
    assert len(by_target[b.id].created) == 2
    assert by_target[b.id].skipped == [templates[1].id]

    cloned = engine.patient_missions(db, a.id, NOW)
    assert sorted(m.custom_points for m in cloned) == [10, 20, 30]
    assert all(m.status == MissionStatus.AVAILABLE and m.progress == 0 for m in cloned)
    sources = db.scalars(select(MissionAssignment.source).where(MissionAssignment.patient_id == a.id)).all()
    assert sources == ["clone"] * 3


def test_bad_target_does_not_abort_others(db, make_patient, source):
    src, _ = source
    good = make_patient("Good")
    result = cloning.clone(db, src.id, [999, good.id, src.id], NOW)
    db.commit()

    assert [r.target_id for r in result.succeeded] == [good.id]
    assert {f.target_id for f in result.failed} == {999, src.id}
    assert len(engine.patient_missions(db, good.id, NOW)) == 3


def test_clone_is_repeatable(db, make_patient, source):
    src, templates = source
    target = make_patient("Target")
    cloning.clone(db, src.id, [target.id], NOW)
    again = cloning.clone(db, src.id, [target.id], NOW)
    assert again.succeeded[0].created == []
    assert sorted(again.succeeded[0].skipped) == sorted(t.id for t in templates)


def test_clone_source_errors(db, make_patient):
    with pytest.raises(NotFound):
        cloning.clone(db, 999, [1], NOW)
    lonely = make_patient("Lonely")
    other = make_patient("Other")
    with pytest.raises(BusinessRuleViolation):
        cloning.clone(db, lonely.id, [other.id], NOW)
