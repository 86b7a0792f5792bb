import asyncio
import pytest
from datetime import datetime, timezone

from conftest import class_payload, make_user

from class_service.core.exceptions import (
    AlreadyCancelledError,
    ClassFullError,
    DuplicateBookingError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PastClassError,
    ServiceUnavailableError,
    SubscriptionRequiredError,
    TooLateError,
)
from class_service.models.booking import BookingStatus
from class_service.repositories.booking import async_booking_repository
from class_service.repositories.gym_class import async_class_repository
from class_service.schemas.user import UserRole


def utc(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 1, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
async def spinning(db, class_lifecycle, monitor):
    """Clase de Spinning el 10/01/2030 a las 10:00 UTC con 10 plazas."""
    return await class_lifecycle.create_class(db, class_payload(), monitor)


async def reload_class(db, class_id):
    return await async_class_repository.get(db, class_id)


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_create_booking_success(self, db, booking_lifecycle, spinning, socio, subscription_checker):
        booking = await booking_lifecycle.create_booking(db, spinning.id, socio)

        assert booking.status == BookingStatus.CONFIRMED
        assert booking.user_id == socio.id
        assert booking.user_name == socio.name
        assert booking.class_name == "Spinning"
        subscription_checker.has_active_subscription.assert_awaited_once_with(socio.token)

        gym_class = await reload_class(db, spinning.id)
        assert gym_class.current_participants == 1

    @pytest.mark.asyncio
    async def test_only_socios_can_book(self, db, booking_lifecycle, spinning, monitor, subscription_checker):
        with pytest.raises(ForbiddenError):
            await booking_lifecycle.create_booking(db, spinning.id, monitor)
        subscription_checker.has_active_subscription.assert_not_called()

    @pytest.mark.asyncio
    async def test_class_not_found(self, db, booking_lifecycle, socio):
        with pytest.raises(NotFoundError):
            await booking_lifecycle.create_booking(db, 999, socio)

    @pytest.mark.asyncio
    async def test_cancelled_class_cannot_be_booked(self, db, booking_lifecycle, class_lifecycle, spinning, monitor, socio):
        await class_lifecycle.cancel_class(db, spinning.id, monitor)
        with pytest.raises(InvalidStateError):
            await booking_lifecycle.create_booking(db, spinning.id, socio)

    @pytest.mark.asyncio
    async def test_started_class_cannot_be_booked(self, db, booking_lifecycle, spinning, socio, clock):
        clock.now = utc(10, 10, 5)
        with pytest.raises(PastClassError):
            await booking_lifecycle.create_booking(db, spinning.id, socio)

    @pytest.mark.asyncio
    async def test_full_class(self, db, booking_lifecycle, class_lifecycle, monitor, socio, other_socio):
        gym_class = await class_lifecycle.create_class(db, class_payload(max_participants=1), monitor)
        await booking_lifecycle.create_booking(db, gym_class.id, socio)

        with pytest.raises(ClassFullError) as exc_info:
            await booking_lifecycle.create_booking(db, gym_class.id, other_socio)
        assert exc_info.value.code == "CLASS_FULL"

        gym_class = await reload_class(db, gym_class.id)
        assert gym_class.current_participants == 1

    @pytest.mark.asyncio
    async def test_subscription_required(self, db, booking_lifecycle, spinning, socio, subscription_checker):
        subscription_checker.has_active_subscription.return_value = False

        with pytest.raises(SubscriptionRequiredError):
            await booking_lifecycle.create_booking(db, spinning.id, socio)

        assert await async_booking_repository.count_confirmed_for_class(db, class_id=spinning.id) == 0
        assert (await reload_class(db, spinning.id)).current_participants == 0

    @pytest.mark.asyncio
    async def test_payment_service_unavailable_denies_booking(
        self, db, booking_lifecycle, spinning, socio, subscription_checker
    ):
        subscription_checker.has_active_subscription.side_effect = ServiceUnavailableError()

        with pytest.raises(ServiceUnavailableError):
            await booking_lifecycle.create_booking(db, spinning.id, socio)

        assert await async_booking_repository.count_confirmed_for_class(db, class_id=spinning.id) == 0

    @pytest.mark.asyncio
    async def test_duplicate_booking_then_rebook_after_cancel(self, db, booking_lifecycle, spinning, socio):
        class_id = spinning.id
        first = await booking_lifecycle.create_booking(db, class_id, socio)
        first_id = first.id

        with pytest.raises(DuplicateBookingError):
            await booking_lifecycle.create_booking(db, class_id, socio)

        await booking_lifecycle.cancel_booking(db, first_id, socio)
        second = await booking_lifecycle.create_booking(db, class_id, socio)

        assert second.id != first_id
        assert second.status == BookingStatus.CONFIRMED
        assert (await reload_class(db, class_id)).current_participants == 1


class TestConcurrentBookings:
    @pytest.mark.asyncio
    async def test_capacity_never_exceeded(self, session_factory, db, class_lifecycle, booking_lifecycle, monitor):
        """5 reservas simultáneas para 4 plazas: exactamente una se rechaza por aforo."""
        gym_class = await class_lifecycle.create_class(db, class_payload(max_participants=4), monitor)

        async def attempt(i):
            async with session_factory() as session:
                return await booking_lifecycle.create_booking(
                    session, gym_class.id, make_user(f"socio-{i}", UserRole.SOCIO)
                )

        results = await asyncio.gather(*(attempt(i) for i in range(5)), return_exceptions=True)

        confirmed = [r for r in results if not isinstance(r, Exception)]
        full = [r for r in results if isinstance(r, ClassFullError)]
        assert len(confirmed) == 4
        assert len(full) == 1

        async with session_factory() as session:
            refreshed = await async_class_repository.get(session, gym_class.id)
            assert refreshed.current_participants == 4
            assert await async_booking_repository.count_confirmed_for_class(session, class_id=gym_class.id) == 4

    @pytest.mark.asyncio
    async def test_concurrent_duplicate(self, session_factory, booking_lifecycle, spinning, socio):
        async def attempt():
            async with session_factory() as session:
                return await booking_lifecycle.create_booking(session, spinning.id, socio)

        results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

        assert len([r for r in results if not isinstance(r, Exception)]) == 1
        assert len([r for r in results if isinstance(r, DuplicateBookingError)]) == 1

        async with session_factory() as session:
            assert (await async_class_repository.get(session, spinning.id)).current_participants == 1


class TestCancelBooking:
    @pytest.mark.asyncio
    async def test_cancel_frees_the_spot(self, db, booking_lifecycle, spinning, socio):
        booking = await booking_lifecycle.create_booking(db, spinning.id, socio)

        cancelled = await booking_lifecycle.cancel_booking(db, booking.id, socio)

        assert cancelled.status == BookingStatus.CANCELLED
        assert (await reload_class(db, spinning.id)).current_participants == 0

    @pytest.mark.asyncio
    async def test_cannot_cancel_someone_elses_booking(self, db, booking_lifecycle, spinning, socio, other_socio):
        booking = await booking_lifecycle.create_booking(db, spinning.id, socio)
        with pytest.raises(ForbiddenError):
            await booking_lifecycle.cancel_booking(db, booking.id, other_socio)

    @pytest.mark.asyncio
    async def test_cancel_not_found(self, db, booking_lifecycle, socio):
        with pytest.raises(NotFoundError):
            await booking_lifecycle.cancel_booking(db, 999, socio)

    @pytest.mark.asyncio
    async def test_cancel_just_before_cutoff(self, db, booking_lifecycle, spinning, socio, clock):
        booking = await booking_lifecycle.create_booking(db, spinning.id, socio)
        clock.now = utc(10, 8, 59)

        cancelled = await booking_lifecycle.cancel_booking(db, booking.id, socio)
        assert cancelled.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_too_late(self, db, booking_lifecycle, spinning, socio, clock):
        booking = await booking_lifecycle.create_booking(db, spinning.id, socio)
        clock.now = utc(10, 9, 1)

        with pytest.raises(TooLateError):
            await booking_lifecycle.cancel_booking(db, booking.id, socio)

        assert (await async_booking_repository.get(db, booking.id)).status == BookingStatus.CONFIRMED
        assert (await reload_class(db, spinning.id)).current_participants == 1

    @pytest.mark.asyncio
    async def test_cancel_twice(self, db, booking_lifecycle, spinning, socio):
        booking = await booking_lifecycle.create_booking(db, spinning.id, socio)
        await booking_lifecycle.cancel_booking(db, booking.id, socio)

        with pytest.raises(AlreadyCancelledError):
            await booking_lifecycle.cancel_booking(db, booking.id, socio)
        assert (await reload_class(db, spinning.id)).current_participants == 0

    @pytest.mark.asyncio
    async def test_decrement_never_goes_below_zero(self, db, spinning):
        await async_class_repository.decrement_participants(db, class_id=spinning.id, now=utc(2, 8))
        await db.commit()
        assert (await reload_class(db, spinning.id)).current_participants == 0


class TestBookingListings:
    @pytest.mark.asyncio
    async def test_my_bookings_newest_first_with_class(
        self, db, booking_lifecycle, class_lifecycle, spinning, monitor, socio, clock
    ):
        yoga = await class_lifecycle.create_class(
            db, class_payload(name="Yoga", room="Sala 2", schedule=utc(11, 10)), monitor
        )
        first = await booking_lifecycle.create_booking(db, spinning.id, socio)
        clock.advance(minutes=5)
        second = await booking_lifecycle.create_booking(db, yoga.id, socio)

        bookings = await booking_lifecycle.list_my_bookings(db, socio)

        assert [b.id for b in bookings] == [second.id, first.id]
        assert bookings[0].gym_class.name == "Yoga"

        cancelled_only = await booking_lifecycle.list_my_bookings(db, socio, status=BookingStatus.CANCELLED)
        assert cancelled_only == []

    @pytest.mark.asyncio
    async def test_class_bookings_include_emails(
        self, db, booking_lifecycle, spinning, monitor, socio, other_socio, user_directory
    ):
        user_directory.get_email_map.return_value = {socio.id: "sergio@gym.test"}
        await booking_lifecycle.create_booking(db, spinning.id, socio)
        await booking_lifecycle.create_booking(db, spinning.id, other_socio)

        response = await booking_lifecycle.list_class_bookings(db, spinning.id, monitor)

        assert response.count == 2
        assert response.class_info.id == spinning.id
        emails = {b.user_id: b.user_email for b in response.bookings}
        assert emails == {socio.id: "sergio@gym.test", other_socio.id: "-"}
        user_directory.get_email_map.assert_awaited_once_with(monitor.token)

    @pytest.mark.asyncio
    async def test_class_bookings_newest_first(
        self, db, booking_lifecycle, spinning, monitor, socio, other_socio, clock
    ):
        first = await booking_lifecycle.create_booking(db, spinning.id, socio)
        clock.advance(minutes=5)
        second = await booking_lifecycle.create_booking(db, spinning.id, other_socio)

        response = await booking_lifecycle.list_class_bookings(db, spinning.id, monitor)

        assert [b.id for b in response.bookings] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_class_bookings_forbidden_for_other_monitor(
        self, db, booking_lifecycle, spinning, other_monitor, socio
    ):
        with pytest.raises(ForbiddenError):
            await booking_lifecycle.list_class_bookings(db, spinning.id, other_monitor)
        with pytest.raises(ForbiddenError):
            await booking_lifecycle.list_class_bookings(db, spinning.id, socio)

    @pytest.mark.asyncio
    async def test_class_bookings_for_admin(self, db, booking_lifecycle, spinning, admin, user_directory):
        response = await booking_lifecycle.list_class_bookings(db, spinning.id, admin)
        assert response.count == 0
        user_directory.get_email_map.assert_not_called()

    @pytest.mark.asyncio
    async def test_list_all_bookings(self, db, booking_lifecycle, spinning, admin, socio, other_socio):
        first = await booking_lifecycle.create_booking(db, spinning.id, socio)
        await booking_lifecycle.create_booking(db, spinning.id, other_socio)
        await booking_lifecycle.cancel_booking(db, first.id, socio)

        everything = await booking_lifecycle.list_all_bookings(db, admin)
        assert len(everything) == 2

        cancelled = await booking_lifecycle.list_all_bookings(db, admin, status=BookingStatus.CANCELLED)
        assert [b.id for b in cancelled] == [first.id]

        by_user = await booking_lifecycle.list_all_bookings(db, admin, user_id=other_socio.id)
        assert [b.user_id for b in by_user] == [other_socio.id]

        with pytest.raises(ForbiddenError):
            await booking_lifecycle.list_all_bookings(db, socio)
