from datetime import datetime, timezone

import pytest

from plans.core.errors import InvalidInput, NotAMember, NotFound, VotingClosed
from plans.models import Hangout, TimeVote, Vote
from plans.services import votes
from plans.services.hangouts import cancel_hangout
from plans.services.identity import ParticipantRef, create_guest
from plans.services.membership import join
from plans.services.options import add_time_option
from plans.services.resolution import resolve
from plans.services.votes import NO_VOTE, cast_time_vote, cast_vote, tally, time_tally


@pytest.fixture
def voting(db, make_profile, make_hangout):
    alice = make_profile("Alice")
    bob = make_profile("Bob")
    h = make_hangout(alice, activities=["bowling", "museum"], members=[bob])
    bowling, museum = h.activity_options
    return h, alice, bob, bowling, museum


def test_unvoted_options_score_zero(db, voting):
    h, _, _, bowling, museum = voting
    assert tally(db, h.id) == {bowling.id: 0, museum.id: 0}


def test_repeated_upsert_keeps_last_value(db, voting):
    h, alice, _, bowling, _ = voting
    me = ParticipantRef.registered(alice.id)

    for value in (1, 1, 3, -1, 2):
        cast_vote(db, bowling.id, me, value)

    assert tally(db, h.id)[bowling.id] == 2
    assert db.query(Vote).filter_by(activity_option_id=bowling.id).count() == 1


def test_zero_deletes_vote(db, voting):
    h, alice, bob, bowling, _ = voting
    cast_vote(db, bowling.id, ParticipantRef.registered(alice.id), 1)
    cast_vote(db, bowling.id, ParticipantRef.registered(bob.id), 1)

    assert cast_vote(db, bowling.id, ParticipantRef.registered(alice.id), NO_VOTE) is None
    assert tally(db, h.id)[bowling.id] == 1
    assert db.query(Vote).filter_by(activity_option_id=bowling.id, profile_id=alice.id).count() == 0

    # removing a vote that isn't there is fine
    cast_vote(db, bowling.id, ParticipantRef.registered(alice.id), NO_VOTE)
    assert tally(db, h.id)[bowling.id] == 1


def test_one_identity_many_options(db, voting):
    h, alice, _, bowling, museum = voting
    me = ParticipantRef.registered(alice.id)
    cast_vote(db, bowling.id, me, 1)
    cast_vote(db, museum.id, me, 1)
    assert tally(db, h.id) == {bowling.id: 1, museum.id: 1}


def test_guest_votes_count(db, voting):
    h, _, _, bowling, _ = voting
    guest = create_guest(db, display_name="Gwen")
    db.commit()
    join(db, h.id, ParticipantRef.guest(guest.id))

    v = cast_vote(db, bowling.id, ParticipantRef.guest(guest.id), 1)
    assert v.guest_id == guest.id
    assert v.profile_id is None
    assert tally(db, h.id)[bowling.id] == 1


def test_vote_guards(db, voting, make_profile, dispatcher):
    h, alice, _, bowling, _ = voting
    stranger = make_profile("Stranger")

    with pytest.raises(NotAMember):
        cast_vote(db, bowling.id, ParticipantRef.registered(stranger.id), 1)
    with pytest.raises(NotFound):
        cast_vote(db, 987654, ParticipantRef.registered(alice.id), 1)
    with pytest.raises(InvalidInput):
        cast_vote(db, bowling.id, ParticipantRef.registered(alice.id), True)
    with pytest.raises(InvalidInput):
        cast_vote(db, bowling.id, ParticipantRef.registered(alice.id), "1")
    with pytest.raises(NotFound):
        cast_vote(db, bowling.id, ParticipantRef.registered(alice.id), 1, hangout_id=h.id + 1)

    cancel_hangout(db, h.id, actor=ParticipantRef.registered(alice.id), dispatcher=dispatcher)
    with pytest.raises(VotingClosed):
        cast_vote(db, bowling.id, ParticipantRef.registered(alice.id), 1)


def test_time_votes(db, voting):
    h, alice, bob, _, _ = voting
    slot = add_time_option(
        db, h.id, datetime(2026, 11, 6, 19, 0, tzinfo=timezone.utc), requester=ParticipantRef.registered(alice.id)
    )

    cast_time_vote(db, slot.id, ParticipantRef.registered(alice.id), 1)
    cast_time_vote(db, slot.id, ParticipantRef.registered(alice.id), 1)
    cast_time_vote(db, slot.id, ParticipantRef.registered(bob.id), 1)
    assert time_tally(db, h.id) == {slot.id: 2}

    cast_time_vote(db, slot.id, ParticipantRef.registered(bob.id), NO_VOTE)
    assert time_tally(db, h.id) == {slot.id: 1}
    assert db.query(TimeVote).count() == 1


def test_vote_racing_resolution_is_rejected(session_factory, voting, dispatcher, monkeypatch):
    h, _, bob, bowling, _ = voting
    hangout_id, option_id = h.id, bowling.id
    real_require = votes.require_membership

    def resolve_meanwhile(db, hid, identity):
        # the hangout gets decided while the vote is in flight
        with session_factory() as other:
            resolve(other, hid, dispatcher=dispatcher)
        return real_require(db, hid, identity)

    monkeypatch.setattr(votes, "require_membership", resolve_meanwhile)
    with session_factory() as s:
        with pytest.raises(VotingClosed):
            cast_vote(s, option_id, ParticipantRef.registered(bob.id), 1)

    with session_factory() as s:
        assert s.get(Hangout, hangout_id).status == "CONFIRMED"
        assert s.query(Vote).filter_by(activity_option_id=option_id).count() == 0
