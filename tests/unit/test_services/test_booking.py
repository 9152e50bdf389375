"""
Unit tests for the booking validation service.

Tests check ordering, duration bounds, operating hours, rental holds and
operator-created sessions.
"""

import threading

import pytest
from datetime import date, datetime, time, timedelta, timezone

from arena_scheduler.config import Settings
from arena_scheduler.errors import (
    CustomSessionsDisabled,
    DurationOutOfRange,
    HoldExpired,
    InvalidRentalTransition,
    OutsideOperatingHours,
    RentalNotFound,
    ResourceNotBookable,
    ResourceNotFound,
    SchedulingConflict,
)
from arena_scheduler.models.programs import Program
from arena_scheduler.models.rentals import FacilityRental
from arena_scheduler.services.booking import (
    RentalRequest,
    admit_booking,
    add_custom_session,
    cancel_rental,
    confirm_rental,
    expire_lapsed_holds,
    reserve_rental,
    validate_booking,
)

UTC = timezone.utc


def at(hour: int, minute: int = 0, day: int = 2) -> datetime:
    return datetime(2026, 3, day, hour, minute, tzinfo=UTC)


class TestValidateBooking:
    """Test validate_booking decisions."""

    def test_accepts_free_slot(self, db_session, court, now, settings):
        decision = validate_booking(db_session, court.id, at(9), at(10), now=now, settings=settings)

        assert decision.accepted
        assert decision.kind is None
        assert decision.reason is None

    def test_unknown_facility(self, db_session, now, settings):
        from uuid import uuid4

        decision = validate_booking(db_session, uuid4(), at(9), at(10), now=now, settings=settings)

        assert not decision.accepted
        assert decision.kind == "resource_not_found"

    def test_not_bookable(self, db_session, court, now, settings):
        court.bookable = False
        db_session.commit()

        decision = validate_booking(db_session, court.id, at(9), at(10), now=now, settings=settings)

        assert decision.kind == "resource_not_bookable"
        assert decision.reason == "This facility cannot be booked."

    @pytest.mark.parametrize(
        "end, accepted",
        [
            (at(9, 29), False),
            (at(9, 30), True),
            (at(11), True),
            (at(11, 1), False),
        ],
    )
    def test_duration_bounds_inclusive(self, db_session, court, now, settings, end, accepted):
        decision = validate_booking(db_session, court.id, at(9), end, now=now, settings=settings)

        assert decision.accepted is accepted
        if not accepted:
            assert decision.kind == "duration_out_of_range"

    def test_duration_messages(self, db_session, court, now, settings):
        short = validate_booking(db_session, court.id, at(9), at(9, 10), now=now, settings=settings)
        long = validate_booking(db_session, court.id, at(9), at(14), now=now, settings=settings)

        assert short.reason == "Minimum booking duration for this facility is 30 minutes."
        assert long.reason == "Maximum booking duration for this facility is 120 minutes."

    def test_end_before_start(self, db_session, court, now, settings):
        decision = validate_booking(db_session, court.id, at(10), at(9), now=now, settings=settings)

        assert decision.kind == "duration_out_of_range"

    def test_unset_bounds_are_unbounded(self, db_session, court, now, settings):
        court.min_booking_duration_minutes = None
        court.max_booking_duration_minutes = None
        db_session.commit()

        decision = validate_booking(db_session, court.id, at(1), at(23), now=now, settings=settings)

        assert decision.accepted

    def test_conflict_reports_collision(self, db_session, court, now, settings, rental_factory):
        rental = rental_factory(court, at(9), at(10))

        decision = validate_booking(db_session, court.id, at(9), at(10), now=now, settings=settings)

        assert decision.kind == "scheduling_conflict"
        assert decision.collision.record_id == rental.id

    def test_does_not_write(self, db_session, court, now, settings):
        validate_booking(db_session, court.id, at(9), at(10), now=now, settings=settings)

        assert db_session.query(FacilityRental).count() == 0


class TestCheckOrder:
    """The first failing check determines the rejection kind."""

    def test_not_bookable_before_duration(self, db_session, court, now, settings):
        court.bookable = False
        db_session.commit()

        decision = validate_booking(db_session, court.id, at(9), at(9, 5), now=now, settings=settings)

        assert decision.kind == "resource_not_bookable"

    def test_duration_before_hours(self, db_session, field_house, now, settings):
        decision = validate_booking(
            db_session, field_house.id, at(6), at(6, 30), now=now, settings=settings
        )

        assert decision.kind == "duration_out_of_range"

    def test_hours_before_conflict(self, db_session, field_house, now, settings, rental_factory):
        rental_factory(field_house, at(7), at(9))

        decision = validate_booking(db_session, field_house.id, at(7), at(9), now=now, settings=settings)

        assert decision.kind == "outside_operating_hours"


class TestOperatingHours:
    """Test facility and global opening hours."""

    def test_within_hours(self, db_session, field_house, now, settings):
        decision = validate_booking(db_session, field_house.id, at(8), at(22), now=now, settings=settings)

        assert not decision.accepted  # 14h exceeds the 4h maximum
        decision = validate_booking(db_session, field_house.id, at(18), at(22), now=now, settings=settings)
        assert decision.accepted

    def test_before_open(self, db_session, field_house, now, settings):
        decision = validate_booking(db_session, field_house.id, at(7), at(9), now=now, settings=settings)

        assert decision.kind == "outside_operating_hours"
        assert decision.reason == "Field House opens at 08:00."

    def test_after_close(self, db_session, field_house, now, settings):
        decision = validate_booking(db_session, field_house.id, at(21), at(23), now=now, settings=settings)

        assert decision.reason == "Field House closes at 22:00."

    def test_past_midnight(self, db_session, field_house, now, settings):
        decision = validate_booking(
            db_session, field_house.id, at(21), at(0, day=3), now=now, settings=settings
        )

        assert decision.kind == "outside_operating_hours"

    def test_global_defaults_apply(self, db_session, court, now):
        settings = Settings(
            _env_file=None,
            timezone="UTC",
            default_open_time=time(6, 0),
            default_close_time=time(23, 0),
        )

        decision = validate_booking(db_session, court.id, at(5), at(6), now=now, settings=settings)

        assert decision.kind == "outside_operating_hours"

    def test_hours_use_facility_timezone(self, db_session, field_house, now):
        """16:00 UTC is 08:00 in Los Angeles on 2026-03-02."""
        pacific = Settings(_env_file=None, timezone="America/Los_Angeles")

        early = validate_booking(db_session, field_house.id, at(15), at(16), now=now, settings=pacific)
        open_ = validate_booking(db_session, field_house.id, at(16), at(17), now=now, settings=pacific)

        assert early.kind == "outside_operating_hours"
        assert open_.accepted


class TestAdmitBooking:
    """Test the raising form of validation."""

    def test_raises_first_failure(self, db_session, court, now, settings):
        with pytest.raises(DurationOutOfRange):
            admit_booking(db_session, court.id, at(9), at(9, 10), now=now, settings=settings)

    def test_unknown_facility_raises(self, db_session, now, settings):
        from uuid import uuid4

        with pytest.raises(ResourceNotFound):
            admit_booking(db_session, uuid4(), at(9), at(10), now=now, settings=settings)

    def test_skip_duration(self, db_session, court, now, settings):
        policy = admit_booking(
            db_session, court.id, at(9), at(9, 10), now=now, enforce_duration=False, settings=settings
        )

        assert policy.facility_id == court.id

    def test_naive_times_are_facility_local(self, db_session, court, now, settings, rental_factory):
        rental_factory(court, at(9), at(10))

        with pytest.raises(SchedulingConflict):
            admit_booking(
                db_session,
                court.id,
                datetime(2026, 3, 2, 9, 30),
                datetime(2026, 3, 2, 10, 30),
                now=now,
                settings=settings,
            )


class TestReserveRental:
    """Test rental admission and persistence."""

    def test_pending_with_hold(self, db_session, court, now, settings):
        rental = reserve_rental(
            db_session,
            RentalRequest(facility_id=court.id, start_time=at(9), end_time=at(10), customer_ref="c-42"),
            now=now,
            settings=settings,
        )

        assert rental.status == "pending"
        assert rental.hold_expires_at == now + timedelta(minutes=15)
        assert rental.customer_ref == "c-42"

    def test_confirmed_immediately(self, db_session, court, now, settings):
        rental = reserve_rental(
            db_session,
            RentalRequest(facility_id=court.id, start_time=at(9), end_time=at(10), confirm=True),
            now=now,
            settings=settings,
        )

        assert rental.status == "confirmed"
        assert rental.hold_expires_at is None

    def test_second_overlapping_request_rejected(self, db_session, court, now, settings):
        request = RentalRequest(facility_id=court.id, start_time=at(9), end_time=at(10))
        reserve_rental(db_session, request, now=now, settings=settings)

        with pytest.raises(SchedulingConflict):
            reserve_rental(db_session, request, now=now, settings=settings)

        assert db_session.query(FacilityRental).count() == 1

    def test_slot_reusable_after_hold_lapses(self, db_session, court, now, settings):
        request = RentalRequest(facility_id=court.id, start_time=at(9), end_time=at(10))
        reserve_rental(db_session, request, now=now, settings=settings)

        later = now + timedelta(minutes=16)
        rental = reserve_rental(db_session, request, now=later, settings=settings)

        assert rental.status == "pending"

    def test_rejection_writes_nothing(self, db_session, court, now, settings):
        with pytest.raises(DurationOutOfRange):
            reserve_rental(
                db_session,
                RentalRequest(facility_id=court.id, start_time=at(9), end_time=at(9, 5)),
                now=now,
                settings=settings,
            )

        assert db_session.query(FacilityRental).count() == 0

    def test_concurrent_requests_admit_one(self, tmp_path, now, settings):
        """Two threads racing for the same slot: exactly one rental is admitted."""
        from sqlalchemy.orm import sessionmaker

        from arena_scheduler.database import create_db_engine
        from arena_scheduler.models.base import Base
        from arena_scheduler.models.facilities import Facility

        # File database so each thread gets its own connection
        engine = create_db_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(bind=engine, autoflush=False)

        with Session() as setup:
            court = Facility(name="Court 9", facility_type="court")
            setup.add(court)
            setup.commit()
            court_id = court.id

        barrier = threading.Barrier(2)
        outcomes = []

        def attempt():
            session = Session()
            try:
                barrier.wait()
                reserve_rental(
                    session,
                    RentalRequest(facility_id=court_id, start_time=at(9), end_time=at(10)),
                    now=now,
                    settings=settings,
                )
                outcomes.append("admitted")
            except SchedulingConflict:
                outcomes.append("conflict")
            finally:
                session.close()

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["admitted", "conflict"]
        engine.dispose()


class TestRentalLifecycle:
    """Test confirm, cancel and hold expiry."""

    @pytest.fixture
    def pending(self, db_session, court, now, settings) -> FacilityRental:
        return reserve_rental(
            db_session,
            RentalRequest(facility_id=court.id, start_time=at(9), end_time=at(10)),
            now=now,
            settings=settings,
        )

    def test_confirm_live_hold(self, db_session, pending, now):
        rental = confirm_rental(db_session, pending.id, now=now + timedelta(minutes=5))

        assert rental.status == "confirmed"
        assert rental.hold_expires_at is None

    def test_confirm_is_idempotent(self, db_session, pending, now):
        confirm_rental(db_session, pending.id, now=now)
        rental = confirm_rental(db_session, pending.id, now=now + timedelta(days=1))

        assert rental.status == "confirmed"

    def test_confirm_lapsed_hold(self, db_session, pending, now):
        with pytest.raises(HoldExpired):
            confirm_rental(db_session, pending.id, now=now + timedelta(minutes=15))

        db_session.refresh(pending)
        assert pending.status == "expired"

    def test_confirm_cancelled(self, db_session, pending, now):
        cancel_rental(db_session, pending.id)

        with pytest.raises(InvalidRentalTransition):
            confirm_rental(db_session, pending.id, now=now)

    def test_confirm_missing(self, db_session, now):
        from uuid import uuid4

        with pytest.raises(RentalNotFound):
            confirm_rental(db_session, uuid4(), now=now)

    def test_cancel_releases_slot(self, db_session, court, pending, now, settings):
        cancel_rental(db_session, pending.id)

        decision = validate_booking(db_session, court.id, at(9), at(10), now=now, settings=settings)
        assert decision.accepted

    def test_cancel_expired(self, db_session, pending, now):
        expire_lapsed_holds(db_session, now=now + timedelta(hours=1))

        with pytest.raises(InvalidRentalTransition):
            cancel_rental(db_session, pending.id)

    def test_expire_lapsed_holds(self, db_session, court, pending, now, rental_factory):
        confirmed = rental_factory(court, at(11), at(12))

        assert expire_lapsed_holds(db_session, now=now + timedelta(minutes=1)) == 0
        assert expire_lapsed_holds(db_session, now=now + timedelta(minutes=20)) == 1

        db_session.refresh(pending)
        db_session.refresh(confirmed)
        assert pending.status == "expired"
        assert confirmed.status == "confirmed"


class TestAddCustomSession:
    """Test operator-created sessions."""

    @pytest.fixture
    def custom_program(self, db_session, weekly_program) -> Program:
        weekly_program.custom_sessions = True
        db_session.add(weekly_program)
        db_session.commit()
        return weekly_program

    def test_adds_session(self, db_session, custom_program, settings):
        session = add_custom_session(
            db_session, custom_program, date(2026, 3, 3), time(12, 0), time(13, 0), settings=settings
        )

        assert session.id is not None
        assert session.facility_id == custom_program.facility_id
        assert session.effective_drop_in_price == 20.0

    def test_drop_in_override(self, db_session, custom_program, settings):
        session = add_custom_session(
            db_session,
            custom_program,
            date(2026, 3, 3),
            time(12, 0),
            time(13, 0),
            drop_in_price=12.5,
            settings=settings,
        )

        assert session.effective_drop_in_price == 12.5

    def test_duration_bounds_do_not_apply(self, db_session, custom_program, settings):
        """Court rentals cap at 120 minutes; a 4-hour session is still allowed."""
        session = add_custom_session(
            db_session, custom_program, date(2026, 3, 3), time(9, 0), time(13, 0), settings=settings
        )

        assert session.end_time == time(13, 0)

    def test_rejects_generated_program(self, db_session, weekly_program, settings):
        db_session.add(weekly_program)
        db_session.commit()

        with pytest.raises(CustomSessionsDisabled):
            add_custom_session(
                db_session, weekly_program, date(2026, 3, 3), time(12, 0), time(13, 0), settings=settings
            )

    def test_conflicts_with_rental(self, db_session, court, custom_program, settings, rental_factory):
        rental_factory(court, at(12, day=3), at(13, day=3))

        with pytest.raises(SchedulingConflict):
            add_custom_session(
                db_session, custom_program, date(2026, 3, 3), time(12, 30), time(13, 30), settings=settings
            )

    def test_conflicts_with_session(self, db_session, custom_program, settings):
        add_custom_session(
            db_session, custom_program, date(2026, 3, 3), time(12, 0), time(13, 0), settings=settings
        )

        with pytest.raises(SchedulingConflict):
            add_custom_session(
                db_session, custom_program, date(2026, 3, 3), time(12, 30), time(14, 0), settings=settings
            )

    def test_outside_hours(self, db_session, custom_program, field_house, settings):
        with pytest.raises(OutsideOperatingHours):
            add_custom_session(
                db_session,
                custom_program,
                date(2026, 3, 3),
                time(6, 0),
                time(7, 0),
                facility_id=field_house.id,
                settings=settings,
            )

    def test_closed_facility(self, db_session, court, custom_program, settings):
        court.bookable = False
        db_session.commit()

        with pytest.raises(ResourceNotBookable):
            add_custom_session(
                db_session, custom_program, date(2026, 3, 3), time(12, 0), time(13, 0), settings=settings
            )


class TestRentalStateAcrossSessions:
    """Rental transitions re-read state inside the facility lock."""

    @pytest.fixture
    def file_db(self, tmp_path):
        from sqlalchemy.orm import sessionmaker

        from arena_scheduler.database import create_db_engine
        from arena_scheduler.models.base import Base

        engine = create_db_engine(f"sqlite:///{tmp_path / 'lifecycle.db'}")
        Base.metadata.create_all(bind=engine)
        yield sessionmaker(bind=engine, autoflush=False)
        engine.dispose()

    @pytest.fixture
    def court_id(self, file_db):
        from arena_scheduler.models.facilities import Facility

        with file_db() as setup:
            court = Facility(name="Court 9", facility_type="court")
            setup.add(court)
            setup.commit()
            return court.id

    def test_confirm_after_concurrent_cancel_rejected(self, file_db, court_id, now, settings):
        """
        Given: Session A has loaded a pending rental
        When: Session B cancels it and rebooks the slot, then A confirms
        Then: A sees the cancellation and exactly one rental holds the slot
        """
        from sqlalchemy import select

        with file_db() as setup:
            rental_id = reserve_rental(
                setup,
                RentalRequest(facility_id=court_id, start_time=at(9), end_time=at(10)),
                now=now,
                settings=settings,
            ).id

        confirmer = file_db()
        assert confirmer.get(FacilityRental, rental_id).status == "pending"

        with file_db() as other:
            cancel_rental(other, rental_id)
            reserve_rental(
                other,
                RentalRequest(facility_id=court_id, start_time=at(9), end_time=at(10), confirm=True),
                now=now,
                settings=settings,
            )

        with pytest.raises(InvalidRentalTransition):
            confirm_rental(confirmer, rental_id, now=now)
        confirmer.close()

        with file_db() as check:
            confirmed = check.scalars(
                select(FacilityRental).where(FacilityRental.status == "confirmed")
            ).all()
        assert len(confirmed) == 1
        assert confirmed[0].id != rental_id

    def test_cancel_sees_expiry_from_other_session(self, file_db, court_id, now, settings):
        with file_db() as setup:
            rental_id = reserve_rental(
                setup,
                RentalRequest(facility_id=court_id, start_time=at(9), end_time=at(10)),
                now=now,
                settings=settings,
            ).id

        canceller = file_db()
        assert canceller.get(FacilityRental, rental_id).status == "pending"

        with file_db() as sweeper:
            expire_lapsed_holds(sweeper, now=now + timedelta(hours=1))

        with pytest.raises(InvalidRentalTransition):
            cancel_rental(canceller, rental_id)
        canceller.close()
