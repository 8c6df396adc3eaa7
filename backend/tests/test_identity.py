from datetime import timedelta

import pytest

from plans.core.clock import as_utc, utcnow
from plans.core.errors import InvalidToken
from plans.models import Hangout, HangoutParticipant, IdentityKind, Profile
from plans.services.identity import (
    ParticipantRef,
    create_guest,
    display_identity,
    get_guest_by_token,
    resolve_guest,
    resolve_profile,
)


def test_participant_ref_columns_and_str():
    r = ParticipantRef.registered(7)
    g = ParticipantRef.guest(7)

    assert r != g
    assert r.columns() == {"profile_id": 7, "guest_id": None}
    assert g.columns() == {"profile_id": None, "guest_id": 7}
    assert str(r) == "registered:7"
    assert str(g) == "guest:7"
    assert g.kind == IdentityKind.GUEST


def test_participant_ref_of_row():
    assert ParticipantRef.of(HangoutParticipant(profile_id=3)) == ParticipantRef.registered(3)
    assert ParticipantRef.of(HangoutParticipant(guest_id=4)) == ParticipantRef.guest(4)


def test_resolve_profile_creates_once(db):
    p1 = resolve_profile(db, external_id="idp|1", display_name="Ann", avatar_url="http://a/1.png")
    p2 = resolve_profile(db, external_id="idp|1", display_name="Someone Else")

    assert p1.id == p2.id
    assert p2.display_name == "Ann"
    assert db.query(Profile).count() == 1


def test_resolve_profile_fills_missing_fields_only(db):
    p = resolve_profile(db, external_id="idp|2")
    assert p.display_name is None

    p = resolve_profile(db, external_id="idp|2", display_name="Bo", avatar_url="http://a/2.png")
    assert p.display_name == "Bo"
    assert p.avatar_url == "http://a/2.png"


def test_resolve_profile_requires_key(db):
    with pytest.raises(InvalidToken):
        resolve_profile(db, external_id="  ")


def test_guest_token_and_expiry(db):
    now = utcnow()
    guest = create_guest(db, display_name="Gus", now=now)
    db.commit()

    assert len(guest.token) >= 32
    assert as_utc(guest.expires_at) - now == timedelta(days=30)
    assert get_guest_by_token(db, guest.token).id == guest.id

    with pytest.raises(InvalidToken):
        get_guest_by_token(db, guest.token, now=now + timedelta(days=31))
    with pytest.raises(InvalidToken):
        get_guest_by_token(db, "nope")
    with pytest.raises(InvalidToken):
        get_guest_by_token(db, None)


def test_converted_guest_acts_as_profile(db, make_profile):
    p = make_profile("Cleo")
    guest = create_guest(db, display_name="Cleo")
    guest.converted_to_profile_id = p.id
    db.commit()

    assert resolve_guest(db, guest.token) == ParticipantRef.registered(p.id)


def test_display_identity(db, make_profile):
    p = make_profile("Dana")
    guest = create_guest(db, display_name="Guesty")
    db.commit()

    assert display_identity(db, ParticipantRef.registered(p.id))["display_name"] == "Dana"
    shown = display_identity(db, ParticipantRef.guest(guest.id))
    assert shown == {"kind": "GUEST", "id": guest.id, "display_name": "Guesty", "avatar_url": None}


def test_smart_title(db, make_profile, make_hangout):
    alice = make_profile("Alice Smith")
    bob = make_profile("Bob Jones")

    h = make_hangout(alice, activities=[("act-1", "Bowling"), ("act-2", "Museum")], members=[bob])
    assert h.title == "Bowling or Museum with Bob"
    assert db.get(Hangout, h.id).status == "VOTING"
