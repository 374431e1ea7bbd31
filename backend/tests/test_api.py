from datetime import timedelta

from conftest import NOW


def create_patient(client, name="Bia", start_date="2026-03-02", total_aligners=20):
    r = client.post("/patients", json={"name": name})
    assert r.status_code == 201, r.text
    pid = r.json()["id"]
    if start_date:
        r = client.put(f"/patients/{pid}/treatment", json={"start_date": start_date, "total_aligners": total_aligners})
        assert r.status_code == 200, r.text
    return pid


def create_template(client, **overrides):
    body = {
        "name": "Wear it",
        "category": "usage",
        "frequency": "once",
        "completion_criteria": "total_count",
        "target_value": 3,
        "base_points": 10,
        "bonus_points": 5,
    }
    body.update(overrides)
    r = client.post("/missions/templates", json=body)
    assert r.status_code == 201, r.text
    return r.json()["id"]


def activate(client, pid, tid, **extra):
    return client.post("/missions/activate", json={"patient_id": pid, "mission_template_id": tid, **extra})


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "db": "ok"}


def test_treatment_mirror(client):
    pid = create_patient(client)
    body = client.get(f"/patients/{pid}").json()
    assert body["treatment"]["current_aligner_number"] == 1
    assert body["treatment"]["aligners"] == [{"aligner_number": 1, "start_date": "2026-03-02"}]


def test_activate_progress_and_reward(client):
    pid = create_patient(client)
    tid = create_template(client)

    r = activate(client, pid, tid, trigger="immediate")
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["scheduled"] is False
    assert body["mission"]["status"] == "available"
    assert body["mission"]["template"]["name"] == "Wear it"

    r = activate(client, pid, tid, trigger="immediate")
    assert r.status_code == 409
    assert r.json()["error"] == "already_assigned"

    r = client.post("/missions/events", json={"patient_id": pid, "kind": "usage", "amount": 2})
    assert [m["progress"] for m in r.json()] == [2]
    r = client.post("/missions/events", json={"patient_id": pid, "kind": "usage", "amount": 2})
    mission = r.json()[0]
    assert (mission["status"], mission["progress"], mission["points_earned"]) == ("completed", 3, 15)

    points = client.get(f"/points/patient/{pid}").json()
    assert (points["coins"], points["xp"], points["level"]) == (15, 7, 1)
    txs = client.get(f"/points/patient/{pid}/transactions").json()
    assert len(txs) == 1 and txs[0]["patient_mission_id"] == mission["id"]

    assert client.get(f"/missions/patient/{pid}").json() == []
    closed = client.get(f"/missions/patient/{pid}", params={"include_closed": True}).json()
    assert [m["id"] for m in closed] == [mission["id"]]


def test_error_shapes(client):
    pid = create_patient(client)

    r = client.post("/missions/templates", json={
        "name": "Bad", "category": "usage", "frequency": "once",
        "completion_criteria": "total_count", "target_value": 0,
    })
    assert r.status_code == 422

    r = client.post("/missions/templates", json={
        "name": "Bad", "category": "usage", "frequency": "once",
        "completion_criteria": "total_count", "target_value": 1, "available_from": "day_3",
    })
    assert r.status_code == 422
    assert r.json()["error"] == "validation_failed"

    r = activate(client, pid, 999)
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"

    tid = create_template(client)
    mid = activate(client, pid, tid).json()["mission"]["id"]
    r = client.post(f"/missions/{mid}/complete")
    assert r.status_code == 422
    assert r.json()["error"] == "business_rule"

    assert client.get("/missions/12345").status_code == 404


def test_lazy_expiry_over_http(client, clock):
    pid = create_patient(client)
    tid = create_template(client, expires_after_days=7)
    mid = activate(client, pid, tid).json()["mission"]["id"]

    clock.set(NOW + timedelta(days=6, hours=23))
    assert [m["id"] for m in client.get(f"/missions/patient/{pid}").json()] == [mid]

    clock.set(NOW + timedelta(days=8))
    assert client.get(f"/missions/patient/{pid}").json() == []
    assert client.get(f"/missions/{mid}").json()["status"] == "expired"


def test_aligner_change_missions(client, clock):
    pid = create_patient(client)
    tid = create_template(
        client, name="Swap on time", category="aligner_change", frequency="per_aligner", target_value=1,
        base_points=20, bonus_points=0,
    )
    r = activate(client, pid, tid, trigger="on_aligner_change")
    assert r.status_code == 201
    assert r.json()["scheduled"] is True

    clock.set(NOW + timedelta(days=7))
    r = client.post(f"/patients/{pid}/treatment/aligners", json={})
    assert r.status_code == 200, r.text
    touched = r.json()
    assert [(m["period_key"], m["status"]) for m in touched] == [("aligner:2", "completed")]

    clock.set(NOW + timedelta(days=14))
    touched = client.post(f"/patients/{pid}/treatment/aligners", json={}).json()
    assert [m["period_key"] for m in touched] == ["aligner:3"]
    assert client.get(f"/points/patient/{pid}").json()["coins"] == 40

    r = client.post(f"/patients/{pid}/treatment/aligners", json={"aligner_number": 2})
    assert r.status_code == 422


def test_validate_and_reset(client):
    pid = create_patient(client)
    review = create_template(client, name="Photo review", requires_manual_validation=True, target_value=1)
    steps = create_template(client, name="Steps", target_value=5)

    mid = activate(client, pid, review).json()["mission"]["id"]
    r = client.post(f"/missions/{mid}/validate", json={"approved": True, "validated_by": "dr.lima"})
    assert r.status_code == 200
    assert (r.json()["status"], r.json()["validated_by"]) == ("completed", "dr.lima")

    sid = activate(client, pid, steps).json()["mission"]["id"]
    client.post("/missions/events", json={"patient_id": pid, "kind": "usage", "amount": 2})
    r = client.post(f"/missions/{sid}/reset")
    assert (r.json()["status"], r.json()["progress"]) == ("available", 0)

    assert client.post(f"/missions/{sid}/fail").json()["status"] == "failed"
    r = client.post(f"/missions/{sid}/reset")
    assert r.status_code == 422


def test_templates_crud(client):
    global_tid = create_template(client, name="Global")
    clinic_tid = create_template(client, name="Clinic only", clinic_id=3)
    other_tid = create_template(client, name="Other clinic", clinic_id=4)

    ids = [t["id"] for t in client.get("/missions/templates", params={"clinic_id": 3}).json()]
    assert ids == [global_tid, clinic_tid]
    assert other_tid not in ids

    r = client.put(f"/missions/templates/{global_tid}", json={"target_value": 9, "active_days_of_week": [5, 1, 1]})
    assert r.status_code == 200
    assert (r.json()["target_value"], r.json()["active_days_of_week"]) == (9, [1, 5])

    assert client.delete(f"/missions/templates/{global_tid}").status_code == 204
    assert client.get(f"/missions/templates/{global_tid}").status_code == 404


def test_programs_over_http(client):
    pid = create_patient(client)
    wear = create_template(client, name="Wear")
    clean = create_template(client, name="Clean", category="hygiene")

    r = client.post("/mission-programs", json={
        "name": "Starter",
        "clinic_id": 1,
        "templates": [{"mission_template_id": wear, "trigger_aligner_number": 1}],
    })
    assert r.status_code == 201, r.text
    prog = r.json()["id"]

    r = client.put(f"/mission-programs/{prog}/cells", json={"cells": [
        {"mission_template_id": clean, "aligner_number": 2, "active": True},
        {"mission_template_id": clean, "aligner_number": 2, "active": True},
    ]})
    assert r.status_code == 200
    assert r.json()["rows"] == [
        {"mission_template_id": wear, "aligners": [1]},
        {"mission_template_id": clean, "aligners": [2]},
    ]

    r = client.put(f"/mission-programs/{prog}", json={
        "description": "First weeks",
        "cells": [{"mission_template_id": wear, "aligner_number": 0, "active": True}],
    })
    assert r.status_code == 422
    assert r.json()["error"] == "business_rule"

    r = client.post(f"/mission-programs/{prog}/apply", json={"patient_id": pid})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["created"] == 2
    assert [m["mission_template_id"] for m in body["activated"]] == [wear]

    assert client.post(f"/mission-programs/{prog}/apply", json={"patient_id": pid}).json()["created"] == 0
    assert [p["id"] for p in client.get("/mission-programs", params={"clinic_id": 1}).json()] == [prog]
    assert client.get(f"/mission-programs/{prog}").json()["templates"][1]["trigger"] == "on_aligner_N_start"
    assert client.delete(f"/mission-programs/{prog}").status_code == 204
    assert client.get(f"/mission-programs/{prog}/grid").status_code == 404


def test_clone_over_http(client):
    src = create_patient(client, "Source")
    target = create_patient(client, "Target")
    for name in ("One", "Two"):
        activate(client, src, create_template(client, name=name))

    r = client.post("/missions/clone", json={"source_patient_id": src, "target_patient_ids": [target, 4242]})
    assert r.status_code == 200, r.text
    body = r.json()
    assert [(s["target_id"], len(s["created"])) for s in body["succeeded"]] == [(target, 2)]
    assert [f["target_id"] for f in body["failed"]] == [4242]
