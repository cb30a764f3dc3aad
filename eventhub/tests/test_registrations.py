"""
Test the registration engine: capacity, uniqueness and counter consistency.
"""
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from eventhub.core.errors import (
    AppError,
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InfrastructureError,
    InvalidStateError,
    NotFoundError,
)
from eventhub.core.permissions import Role
from eventhub.models.events import Event
from eventhub.models.participants import Participant, ParticipantStatus, ParticipationLog
from eventhub.services import registrations
from eventhub.services.registrations import (
    list_participants,
    register_participant,
    remove_participant,
    withdraw_participant,
)


def _race(session_factory, event_id: int, user_ids: list[int]) -> list[str]:
    """Register every user at once, each on its own session. Returns outcome kinds."""
    barrier = threading.Barrier(len(user_ids), timeout=30)

    def attempt(user_id: int) -> str:
        db = session_factory()
        try:
            barrier.wait()
            register_participant(db, event_id=event_id, user_id=user_id)
            return "registered"
        except AppError as e:
            return e.kind
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=len(user_ids)) as executor:
        return list(executor.map(attempt, user_ids))


class TestRegister:
    """Test register_participant."""

    def test_register_success(self, db_session: Session, make_user, make_event, event_state):
        user = make_user()
        event = make_event(capacity=10)

        participant = register_participant(db_session, event_id=event.id, user_id=user.id, notes="vegetarian")

        assert participant.id is not None
        assert participant.event_id == event.id
        assert participant.user_id == user.id
        assert participant.status == ParticipantStatus.REGISTERED.value
        assert participant.notes == "vegetarian"
        assert participant.registration_date is not None
        assert event_state(event.id) == (1, 1)
        assert participant.user.email == user.email

    def test_register_unlimited_capacity(self, db_session: Session, make_user, make_event, event_state):
        event = make_event(capacity=None)
        for _ in range(5):
            register_participant(db_session, event_id=event.id, user_id=make_user().id)
        assert event_state(event.id) == (5, 5)

    def test_register_writes_log(self, db_session: Session, make_user, make_event):
        user = make_user()
        event = make_event()
        register_participant(db_session, event_id=event.id, user_id=user.id)

        log = db_session.scalars(select(ParticipationLog)).one()
        assert (log.user_id, log.event_id, log.transition, log.actor_id) == (user.id, event.id, "registered", user.id)

    def test_unknown_event(self, db_session: Session, make_user):
        with pytest.raises(NotFoundError, match="Event not found"):
            register_participant(db_session, event_id=99999, user_id=make_user().id)

    def test_unknown_user(self, db_session: Session, make_event):
        with pytest.raises(NotFoundError, match="User not found"):
            register_participant(db_session, event_id=make_event().id, user_id=99999)

    def test_admin_cannot_participate(self, db_session: Session, admin, make_event, event_state):
        event = make_event(capacity=5)
        with pytest.raises(ForbiddenError):
            register_participant(db_session, event_id=event.id, user_id=admin.id)
        assert event_state(event.id) == (0, 0)

    def test_event_already_ended(self, db_session: Session, make_user, make_event, event_state):
        now = datetime.now(timezone.utc)
        event = make_event(start_date=now - timedelta(days=2), end_date=now - timedelta(days=1))

        with pytest.raises(InvalidStateError, match="already ended") as exc_info:
            register_participant(db_session, event_id=event.id, user_id=make_user().id)

        assert not isinstance(exc_info.value, CapacityExceededError)
        assert event_state(event.id) == (0, 0)

    def test_event_ending_later_today_is_open(self, db_session: Session, make_user, make_event):
        now = datetime.now(timezone.utc)
        event = make_event(start_date=now - timedelta(hours=1), end_date=now + timedelta(hours=1))
        assert register_participant(db_session, event_id=event.id, user_id=make_user().id) is not None

    def test_duplicate_registration(self, db_session: Session, make_user, make_event, event_state):
        user = make_user()
        event = make_event(capacity=10)
        register_participant(db_session, event_id=event.id, user_id=user.id)

        with pytest.raises(ConflictError, match="already registered"):
            register_participant(db_session, event_id=event.id, user_id=user.id)

        assert event_state(event.id) == (1, 1)

    def test_capacity_reached(self, db_session: Session, make_user, make_event, event_state):
        event = make_event(capacity=2)
        register_participant(db_session, event_id=event.id, user_id=make_user().id)
        register_participant(db_session, event_id=event.id, user_id=make_user().id)

        with pytest.raises(CapacityExceededError):
            register_participant(db_session, event_id=event.id, user_id=make_user().id)

        assert event_state(event.id) == (2, 2)

    def test_capacity_error_is_an_invalid_state(self):
        error = CapacityExceededError()
        assert isinstance(error, InvalidStateError)
        assert error.kind == "capacity_exceeded"
        assert error.status_code == 400

    def test_duplicate_checked_before_capacity(self, db_session: Session, make_user, make_event):
        user = make_user()
        event = make_event(capacity=1)
        register_participant(db_session, event_id=event.id, user_id=user.id)

        # full and already registered: the caller learns it is a duplicate
        with pytest.raises(ConflictError):
            register_participant(db_session, event_id=event.id, user_id=user.id)

    def test_unique_index_violation_rolls_back(
        self, db_session: Session, make_user, make_event, event_state, monkeypatch
    ):
        user = make_user()
        event = make_event(capacity=5)
        register_participant(db_session, event_id=event.id, user_id=user.id)

        # let the duplicate slip past the application check
        monkeypatch.setattr(registrations, "_find_participant", lambda db, event_id, user_id: None)

        with pytest.raises(ConflictError):
            register_participant(db_session, event_id=event.id, user_id=user.id)

        assert event_state(event.id) == (1, 1)
        logs = db_session.scalars(select(ParticipationLog)).all()
        assert len(logs) == 1

    def test_register_again_after_withdraw(self, db_session: Session, make_user, make_event, event_state):
        user = make_user()
        event = make_event(capacity=1)

        register_participant(db_session, event_id=event.id, user_id=user.id)
        withdraw_participant(db_session, event_id=event.id, user_id=user.id)
        assert event_state(event.id) == (0, 0)

        register_participant(db_session, event_id=event.id, user_id=user.id)
        assert event_state(event.id) == (1, 1)


class TestWithdraw:
    """Test withdraw_participant."""

    def test_withdraw(self, db_session: Session, make_user, make_event, event_state):
        user = make_user()
        event = make_event(capacity=3)
        register_participant(db_session, event_id=event.id, user_id=user.id, notes="bringing a friend")

        result = withdraw_participant(db_session, event_id=event.id, user_id=user.id)

        assert result["message"] == "Successfully withdrew from the event"
        assert result["participant"]["user_id"] == user.id
        assert result["participant"]["notes"] == "bringing a friend"
        assert result["participant"]["user"]["email"] == user.email
        assert event_state(event.id) == (0, 0)

    def test_withdraw_logs_transition(self, db_session: Session, make_user, make_event):
        user = make_user()
        event = make_event()
        register_participant(db_session, event_id=event.id, user_id=user.id)
        withdraw_participant(db_session, event_id=event.id, user_id=user.id)

        transitions = db_session.scalars(select(ParticipationLog.transition).order_by(ParticipationLog.id)).all()
        assert transitions == ["registered", "withdrawn"]

    def test_withdraw_unknown_event(self, db_session: Session, make_user):
        with pytest.raises(NotFoundError, match="Event not found"):
            withdraw_participant(db_session, event_id=99999, user_id=make_user().id)

    def test_withdraw_not_registered(self, db_session: Session, make_user, make_event):
        with pytest.raises(NotFoundError, match="not registered"):
            withdraw_participant(db_session, event_id=make_event().id, user_id=make_user().id)

    def test_counter_out_of_sync_is_internal_error(
        self, db_session: Session, session_factory, make_user, make_event, event_state
    ):
        user = make_user()
        event = make_event()
        register_participant(db_session, event_id=event.id, user_id=user.id)

        with session_factory() as other:
            other.execute(update(Event).where(Event.id == event.id).values(participants_count=0))
            other.commit()

        with pytest.raises(InfrastructureError):
            withdraw_participant(db_session, event_id=event.id, user_id=user.id)

        # nothing was deleted
        assert event_state(event.id) == (0, 1)


class TestAdminRemove:
    """Test remove_participant."""

    def test_remove(self, db_session: Session, admin, make_user, make_event, event_state):
        user = make_user()
        event = make_event(capacity=3)
        register_participant(db_session, event_id=event.id, user_id=user.id)

        result = remove_participant(db_session, event_id=event.id, user_id=user.id, acting_admin_id=admin.id)

        assert result["message"] == "Participant removed successfully"
        assert result["participant"]["status"] == "registered"
        assert event_state(event.id) == (0, 0)

        log = db_session.scalars(select(ParticipationLog).where(ParticipationLog.transition == "removed")).one()
        assert log.actor_id == admin.id
        assert log.user_id == user.id

    def test_remove_unknown_user(self, db_session: Session, admin, make_event):
        with pytest.raises(NotFoundError, match="User not found"):
            remove_participant(db_session, event_id=make_event().id, user_id=99999, acting_admin_id=admin.id)

    def test_remove_unknown_event(self, db_session: Session, admin, make_user):
        with pytest.raises(NotFoundError, match="Event not found"):
            remove_participant(db_session, event_id=99999, user_id=make_user().id, acting_admin_id=admin.id)

    def test_remove_not_registered(self, db_session: Session, admin, make_user, make_event):
        with pytest.raises(NotFoundError, match="not registered"):
            remove_participant(
                db_session, event_id=make_event().id, user_id=make_user().id, acting_admin_id=admin.id
            )


class TestConcurrency:
    """Concurrent registrations against the same event."""

    def test_last_slot_race(self, session_factory, make_user, make_event, event_state):
        event = make_event(capacity=1)
        users = [make_user().id, make_user().id]

        outcomes = _race(session_factory, event.id, users)

        assert sorted(outcomes) == ["capacity_exceeded", "registered"]
        assert event_state(event.id) == (1, 1)

    def test_capacity_never_exceeded(self, session_factory, make_user, make_event, event_state):
        event = make_event(capacity=3)
        users = [make_user().id for _ in range(10)]

        outcomes = _race(session_factory, event.id, users)

        assert outcomes.count("registered") == 3
        assert outcomes.count("capacity_exceeded") == 7
        assert event_state(event.id) == (3, 3)

    def test_same_user_twice_at_once(self, session_factory, make_user, make_event, event_state):
        event = make_event(capacity=10)
        user = make_user()

        outcomes = _race(session_factory, event.id, [user.id, user.id])

        assert sorted(outcomes) == ["conflict", "registered"]
        assert event_state(event.id) == (1, 1)

    def test_counter_matches_rows_after_mixed_operations(
        self, session_factory, admin, make_user, make_event, event_state
    ):
        event = make_event(capacity=4)
        users = [make_user().id for _ in range(8)]
        rng = random.Random(1234)

        def operate(user_id: int) -> None:
            db = session_factory()
            try:
                for _ in range(6):
                    action = rng.choice(["register", "register", "withdraw", "remove"])
                    try:
                        if action == "register":
                            register_participant(db, event_id=event.id, user_id=user_id)
                        elif action == "withdraw":
                            withdraw_participant(db, event_id=event.id, user_id=user_id)
                        else:
                            remove_participant(db, event_id=event.id, user_id=user_id, acting_admin_id=admin.id)
                    except (CapacityExceededError, ConflictError, NotFoundError):
                        pass
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=len(users)) as executor:
            list(executor.map(operate, users))

        counter, rows = event_state(event.id)
        assert counter == rows
        assert 0 <= counter <= 4


class TestListParticipants:
    """Participants listing through the query engine."""

    def test_list_with_user_fields(self, db_session: Session, make_user, make_event):
        event = make_event()
        users = [make_user() for _ in range(3)]
        for user in users:
            register_participant(db_session, event_id=event.id, user_id=user.id)

        result = list_participants(db_session, event.id, {"sortBy": "registrationDate", "sortOrder": "ASC"})

        assert [item["user_id"] for item in result["participants"]] == [user.id for user in users]
        assert result["participants"][0]["user"]["email"] == users[0].email
        assert result["pagination"]["total"] == 3
        assert result["sort"] == {"sortBy": "registrationDate", "sortOrder": "ASC"}

    def test_status_filter(self, db_session: Session, make_user, make_event):
        event = make_event()
        attendee = register_participant(db_session, event_id=event.id, user_id=make_user().id)
        for _ in range(2):
            register_participant(db_session, event_id=event.id, user_id=make_user().id)
        db_session.execute(
            update(Participant)
            .where(Participant.id == attendee.id)
            .values(status=ParticipantStatus.ATTENDED.value)
        )
        db_session.commit()

        attended = list_participants(db_session, event.id, {"status": "attended"})
        assert attended["pagination"]["total"] == 1
        assert attended["participants"][0]["status"] == "attended"

    def test_invalid_status_ignored(self, db_session: Session, make_user, make_event):
        event = make_event()
        register_participant(db_session, event_id=event.id, user_id=make_user().id)

        result = list_participants(db_session, event.id, {"status": "bogus"})
        assert result["pagination"]["total"] == 1

    def test_only_this_event(self, db_session: Session, make_user, make_event):
        first, second = make_event(), make_event()
        user = make_user()
        register_participant(db_session, event_id=first.id, user_id=user.id)
        register_participant(db_session, event_id=second.id, user_id=user.id)

        assert list_participants(db_session, first.id)["pagination"]["total"] == 1

    def test_unknown_event(self, db_session: Session):
        with pytest.raises(NotFoundError):
            list_participants(db_session, 99999)


def test_roles_enum_is_closed():
    assert {role.value for role in Role} == {"user", "admin"}
