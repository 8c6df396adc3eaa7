import time
from datetime import timedelta

import jwt
import pytest

from plans.core.clock import utcnow
from plans.core.config import settings
from plans.models import GuestProfile, Hangout, HangoutParticipant, Notification, NotificationKind, Profile
from plans.services.identity import ParticipantRef
from plans.services.notify import InboxDispatcher


def idp_token(sub: str, name: str = "Nina", **extra) -> str:
    now = int(time.time())
    claims = {
        "sub": sub,
        "name": name,
        "iss": settings.IDP_ISS,
        "aud": settings.IDP_AUD,
        "iat": now,
        "exp": now + 300,
        **extra,
    }
    return jwt.encode(claims, settings.IDP_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def alice(make_profile):
    return make_profile("Alice")


@pytest.fixture
def bob(make_profile):
    return make_profile("Bob")


def _create(c, **body):
    r = c.post("/hangouts", json=body)
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_session_login_sets_cookie(client, db):
    r = client.post("/auth/session", json={"id_token": idp_token("idp|nina", picture="http://p/n.png")})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["profile"]["display_name"] == "Nina"
    assert body["upgraded_memberships"] == 0
    assert "access_token" in r.cookies

    me = client.get("/me").json()
    assert me["kind"] == "REGISTERED"
    assert me["avatar_url"] == "http://p/n.png"
    assert db.query(Profile).filter_by(external_id="idp|nina").count() == 1


def test_session_rejects_bad_token(client):
    bad = jwt.encode({"sub": "x", "iss": "someone", "aud": "else", "exp": int(time.time()) + 60}, "nope")
    assert client.post("/auth/session", json={"id_token": bad}).status_code == 401


def test_logout_clears_session(client):
    client.post("/auth/session", json={"id_token": idp_token("idp|out")})
    assert client.post("/auth/logout").status_code == 204
    assert client.get("/me").status_code == 401


def test_requires_identity(client):
    assert client.get("/me").status_code == 401
    assert client.post("/hangouts", json={}).status_code == 401
    assert client.get("/hangouts/1/status").status_code == 401


def test_invalid_cookie_is_rejected(client_for):
    c = client_for()
    c.cookies.set("access_token", "garbage")
    assert c.get("/me").status_code == 401


def test_full_voting_flow(client_for, alice, bob, dispatcher):
    a = client_for(alice)
    b = client_for(bob)

    h = _create(
        a,
        activities=[{"activity_ref": "act-bowl", "title": "Bowling"}, {"activity_ref": "act-mus", "title": "Museum"}],
        member_profile_ids=[bob.id],
    )
    assert h["status"] == "VOTING"
    hid = h["id"]

    options = b.get(f"/hangouts/{hid}/options").json()
    assert [o["title"] for o in options] == ["Bowling", "Museum"]
    bowling, museum = options

    assert b.post(f"/hangouts/{hid}/vote", json={"option_id": bowling["id"], "value": 1}).json()["value"] == 1
    assert a.post(f"/hangouts/{hid}/vote", json={"option_id": museum["id"], "value": 1}).status_code == 200
    assert a.post(f"/hangouts/{hid}/vote", json={"option_id": museum["id"], "value": 0}).json()["value"] == 0
    a.post(f"/hangouts/{hid}/vote", json={"option_id": bowling["id"], "value": 1})

    t = a.get(f"/hangouts/{hid}/tally").json()
    assert t["options"] == {str(bowling["id"]): 2, str(museum["id"]): 0}

    assert b.post(f"/hangouts/{hid}/end-voting").status_code == 403

    r = a.post(f"/hangouts/{hid}/end-voting")
    assert r.status_code == 200, r.text
    result = r.json()
    assert result["outcome"] == "RESOLVED"
    assert result["winner"]["id"] == bowling["id"]
    assert result["hangout"]["status"] == "CONFIRMED"
    assert result["hangout"]["final_activity_ref"] == "act-bowl"
    assert dispatcher.recipients == [ParticipantRef.registered(bob.id)]

    again = a.post(f"/hangouts/{hid}/end-voting").json()
    assert again["outcome"] == "ALREADY_RESOLVED"
    assert again["winner"]["id"] == bowling["id"]

    r = b.post(f"/hangouts/{hid}/vote", json={"option_id": museum["id"], "value": 1})
    assert r.status_code == 409

    r = b.post(f"/hangouts/{hid}/options", json={"activity_ref": "act-late"})
    assert r.status_code == 409

    # RSVP still open after confirmation
    r = b.post(f"/hangouts/{hid}/rsvp", json={"status": "MAYBE"})
    assert r.status_code == 200
    assert r.json()["rsvp_status"] == "MAYBE"


def test_vote_on_other_hangouts_option(client_for, alice):
    a = client_for(alice)
    h1 = _create(a, activities=[{"activity_ref": "x"}, {"activity_ref": "y"}])
    h2 = _create(a, activities=[{"activity_ref": "x"}, {"activity_ref": "y"}])
    foreign = a.get(f"/hangouts/{h2['id']}/options").json()[0]

    r = a.post(f"/hangouts/{h1['id']}/vote", json={"option_id": foreign["id"], "value": 1})
    assert r.status_code == 404


def test_end_voting_without_options(client_for, alice):
    a = client_for(alice)
    h = _create(a, start_voting=True)
    r = a.post(f"/hangouts/{h['id']}/end-voting")
    assert r.status_code == 400
    assert a.get(f"/hangouts/{h['id']}/status").json()["status"] == "VOTING"


def test_options_and_time_options(client_for, alice, bob):
    a = client_for(alice)
    b = client_for(bob)
    h = _create(a, activities=[{"activity_ref": "x"}], member_profile_ids=[bob.id], allow_participant_suggestions=False)
    hid = h["id"]

    assert b.post(f"/hangouts/{hid}/options", json={"activity_ref": "y"}).status_code == 403
    r = a.post(f"/hangouts/{hid}/options", json={"activity_ref": "y", "title": "Why"})
    assert r.status_code == 201
    assert r.json()["display_order"] == 1

    r = a.post(f"/hangouts/{hid}/time-options", json={"starts_at": "2026-11-06T19:00:00+00:00"})
    assert r.status_code == 201
    slot = r.json()
    assert slot["starts_at"].startswith("2026-11-06T19:00:00")

    assert a.post(f"/hangouts/{hid}/start-voting").json()["status"] == "VOTING"
    r = b.post(f"/hangouts/{hid}/time-vote", json={"option_id": slot["id"], "value": 1})
    assert r.status_code == 200
    assert a.get(f"/hangouts/{hid}/tally").json()["time_options"] == {str(slot["id"]): 1}
    assert [t["id"] for t in b.get(f"/hangouts/{hid}/time-options").json()] == [slot["id"]]


def test_rsvp_validation(client_for, alice, bob, make_profile):
    a = client_for(alice)
    h = _create(a, activities=[{"activity_ref": "x"}], member_profile_ids=[bob.id])

    r = client_for(bob).post(f"/hangouts/{h['id']}/rsvp", json={"status": "SURE"})
    assert r.status_code == 400
    r = client_for(make_profile("Eve")).post(f"/hangouts/{h['id']}/rsvp", json={"status": "GOING"})
    assert r.status_code == 403


def test_participants_endpoints(client_for, alice, bob, db):
    a = client_for(alice)
    b = client_for(bob)
    h = _create(a, activities=[{"activity_ref": "x"}], member_profile_ids=[bob.id])
    hid = h["id"]
    bob_m = db.query(HangoutParticipant).filter_by(hangout_id=hid, profile_id=bob.id).one()

    assert b.post(f"/hangouts/{hid}/participants/{bob_m.id}/mandatory", json={"is_mandatory": True}).status_code == 403
    r = a.post(f"/hangouts/{hid}/participants/{bob_m.id}/mandatory", json={"is_mandatory": True})
    assert r.json()["is_mandatory"] is True

    assert b.delete(f"/hangouts/{hid}/participants/{bob_m.id}").status_code == 204
    assert b.get(f"/hangouts/{hid}/status").status_code == 403


def test_cancel(client_for, alice, bob, dispatcher):
    a = client_for(alice)
    h = _create(a, activities=[{"activity_ref": "x"}], member_profile_ids=[bob.id])

    assert client_for(bob).post(f"/hangouts/{h['id']}/cancel").status_code == 403
    r = a.post(f"/hangouts/{h['id']}/cancel")
    assert r.json()["status"] == "CANCELLED"
    assert dispatcher.recipients == [ParticipantRef.registered(bob.id)]


def test_guest_invite_flow(client_for, client, alice, db):
    a = client_for(alice)
    h = _create(a, activities=[{"activity_ref": "x", "title": "Picnic"}, {"activity_ref": "y"}])
    hid = h["id"]

    inv = a.post(f"/hangouts/{hid}/invite").json()
    assert inv["url"].endswith(f"/join/{inv['token']}")
    assert a.post(f"/hangouts/{hid}/invite").json()["token"] == inv["token"]

    preview = client.get(f"/join/{inv['token']}").json()
    assert preview["hangout"]["id"] == hid
    assert preview["host"]["display_name"] == "Alice"
    assert preview["going_count"] == 1
    assert preview["membership"] is None
    assert client.get("/join/not-a-token").status_code == 401

    headers = {"Idempotency-Key": "k-1"}
    r1 = client.post(f"/join/{inv['token']}/guest", json={"display_name": "Gabe"}, headers=headers)
    assert r1.status_code == 200, r1.text
    r2 = client.post(f"/join/{inv['token']}/guest", json={"display_name": "Gabe"}, headers=headers)
    assert r1.json()["guest"]["id"] == r2.json()["guest"]["id"]
    assert db.query(GuestProfile).count() == 1
    assert settings.GUEST_COOKIE_NAME in client.cookies

    # the guest cookie now identifies the caller
    gid = r1.json()["guest"]["id"]
    assert client.get("/me").json() == {"kind": "GUEST", "id": gid, "display_name": "Gabe", "avatar_url": None}
    options = client.get(f"/hangouts/{hid}/options").json()
    assert client.post(f"/hangouts/{hid}/vote", json={"option_id": options[1]["id"], "value": 1}).status_code == 200

    status = a.get(f"/hangouts/{hid}/status").json()
    assert any(p["guest"] and p["guest"]["id"] == gid for p in status["participants"])

    r = client.post(f"/join/{inv['token']}/guest", json={"display_name": "x"})
    assert r.status_code == 400


def test_invite_rsvp_anonymous_and_claim(client_for, client, alice, db):
    a = client_for(alice)
    h = _create(a, activities=[{"activity_ref": "x"}])
    token = a.post(f"/hangouts/{h['id']}/invite").json()["token"]

    r = client.post(f"/join/{token}/rsvp", json={"status": "MAYBE"})
    assert r.status_code == 200
    body = r.json()
    assert body["identity"]["kind"] == "GUEST"
    assert body["membership"]["rsvp_status"] == "MAYBE"
    gid = body["guest"]["id"]
    public_id = body["guest"]["public_id"]

    # sequential ids never unlock a guest session
    stranger = client_for()
    for guess in range(1, gid + 3):
        r = stranger.post(f"/hangouts/{h['id']}/claim", json={"public_id": str(guess)})
        assert r.status_code == 404
    assert settings.GUEST_COOKIE_NAME not in stranger.cookies

    other = client_for()
    r = other.post(f"/hangouts/{h['id']}/claim", json={"public_id": public_id, "display_name": "Gina"})
    assert r.status_code == 200
    assert r.json()["token"] == db.get(GuestProfile, gid).token
    assert other.get("/me").json()["display_name"] == "Gina"

    status = a.get(f"/hangouts/{h['id']}/status").text
    assert public_id not in status


def test_guest_signs_in_and_keeps_memberships(client_for, client, alice, db):
    a = client_for(alice)
    h = _create(a, activities=[{"activity_ref": "x"}, {"activity_ref": "y"}])
    token = a.post(f"/hangouts/{h['id']}/invite").json()["token"]
    client.post(f"/join/{token}/guest", json={"display_name": "Gabe"})

    r = client.post("/auth/session", json={"id_token": idp_token("idp|gabe", name="Gabe")})
    assert r.status_code == 200, r.text
    assert r.json()["upgraded_memberships"] == 1

    mine = client.get("/me/hangouts").json()
    assert [x["id"] for x in mine] == [h["id"]]
    assert mine[0]["membership"]["profile_id"] == r.json()["profile"]["id"]


def test_notifications_inbox(client_for, alice, bob, session_factory, db):
    inbox = InboxDispatcher(session_factory)
    inbox.notify(ParticipantRef.registered(bob.id), kind=NotificationKind.HANGOUT_UPDATE, content="one", link="/hangouts/1")
    inbox.notify(ParticipantRef.registered(bob.id), kind=NotificationKind.HANGOUT_UPDATE, content="two")
    inbox.notify(ParticipantRef.registered(alice.id), kind=NotificationKind.HANGOUT_UPDATE, content="not yours")

    b = client_for(bob)
    items = b.get("/me/notifications").json()
    assert sorted(n["content"] for n in items) == ["one", "two"]
    assert all(n["is_read"] is False for n in items)

    first = next(n for n in items if n["content"] == "one")
    assert b.post("/me/notifications/read", json={"ids": [first["id"]]}).json()["updated"] == 1
    assert [n["content"] for n in b.get("/me/notifications", params={"unread_only": True}).json()] == ["two"]

    assert b.post("/me/notifications/read").json()["updated"] == 1
    assert db.query(Notification).filter_by(profile_id=alice.id, is_read=False).count() == 1


def test_my_hangouts_filter(client_for, alice):
    a = client_for(alice)
    planning = _create(a, activities=[{"activity_ref": "x"}])
    voting = _create(a, activities=[{"activity_ref": "x"}, {"activity_ref": "y"}])

    assert {h["id"] for h in a.get("/me/hangouts").json()} == {planning["id"], voting["id"]}
    assert [h["id"] for h in a.get("/me/hangouts", params={"status": "voting"}).json()] == [voting["id"]]


def test_status_poll_settles_expired_vote(client_for, alice, bob, db, dispatcher):
    a = client_for(alice)
    h = _create(
        a,
        activities=[{"activity_ref": "x"}, {"activity_ref": "y"}],
        member_profile_ids=[bob.id],
        voting_ends_at=(utcnow() + timedelta(hours=1)).isoformat(),
    )
    db.query(Hangout).filter_by(id=h["id"]).update({"voting_ends_at": utcnow() - timedelta(minutes=1)})
    db.commit()

    snap = client_for(bob).get(f"/hangouts/{h['id']}/status").json()
    assert snap["status"] == "CONFIRMED"
    assert snap["final_activity_ref"] == "x"
    assert set(dispatcher.recipients) == {ParticipantRef.registered(alice.id), ParticipantRef.registered(bob.id)}


def test_internal_endpoints(client, client_for, alice, db):
    a = client_for(alice)
    h = _create(a, activities=[{"activity_ref": "x"}, {"activity_ref": "y"}])
    db.query(Hangout).filter_by(id=h["id"]).update({"voting_ends_at": utcnow() - timedelta(minutes=1)})
    db.commit()

    assert client.post("/internal/resolve-due").status_code == 401

    secret = {"X-Internal-Secret": settings.INTERNAL_SECRET}
    r = client.post("/internal/resolve-due", headers=secret)
    assert r.status_code == 200
    assert [x["hangout"]["id"] for x in r.json()["resolved"]] == [h["id"]]

    r = client.post(f"/internal/hangouts/{h['id']}/complete", headers=secret)
    assert r.status_code == 200
    assert r.json()["status"] == "COMPLETED"

    assert client.post(f"/internal/hangouts/{h['id']}/complete", headers=secret).status_code == 409
