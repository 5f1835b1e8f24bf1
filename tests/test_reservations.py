"""Tests for table reservations and dish reviews."""

import pytest
from datetime import date, datetime, timedelta, timezone

from tablequeue.core.errors import DomainValidationError, InvalidStateError, NotFoundError
from tablequeue.core.rbac import OrgScope
from tablequeue.models import DishReview, Reservation, ReservationStatus, Table, TableStatus
from tablequeue.services.notification_bus import EventType
from tablequeue.services.reservation_service import ReservationService
from tablequeue.services.review_service import ReviewService

API = "/api/v1"
EVENING = datetime(2026, 10, 20, 19, 0, tzinfo=timezone.utc)


@pytest.fixture
def reservations(db_session, bus, scope):
    return ReservationService(db_session, bus, scope)


@pytest.fixture
def reviews(db_session, bus):
    return ReviewService(db_session, bus)


@pytest.fixture
def booking(reservations, table):
    return reservations.create_reservation(table.id, "Marta", 2, EVENING, customer_phone="555-0101")


# ============== Reservations ==============

class TestCreateReservation:
    def test_free_table_becomes_reserved(self, events, booking, table, organization):
        assert booking.status == ReservationStatus.CONFIRMED
        assert booking.organization_id == organization.id
        assert table.status == TableStatus.RESERVED
        assert events[-1].type == EventType.RESERVATION_CREATED
        assert events[-1].data["table_status"] == "reserved"
        assert events[-1].organization_id == organization.id

    def test_occupied_table_stays_occupied(self, db_session, reservations, table):
        table.status = TableStatus.OCCUPIED
        db_session.commit()
        reservations.create_reservation(table.id, "Marta", 2, EVENING)
        assert table.status == TableStatus.OCCUPIED

    def test_party_larger_than_table_rejected(self, db_session, reservations, table):
        with pytest.raises(DomainValidationError, match="seats 4"):
            reservations.create_reservation(table.id, "Big Party", 6, EVENING)
        assert db_session.query(Reservation).count() == 0
        assert table.status == TableStatus.FREE

    def test_blank_name_rejected(self, reservations, table):
        with pytest.raises(DomainValidationError):
            reservations.create_reservation(table.id, "   ", 2, EVENING)

    def test_other_organization_table_looks_missing(self, db_session, reservations, other_organization):
        foreign = Table(
            organization_id=other_organization.id,
            number=1,
            capacity=4,
            status=TableStatus.FREE,
            qr_code="harbor-table-1",
        )
        db_session.add(foreign)
        db_session.commit()
        with pytest.raises(NotFoundError):
            reservations.create_reservation(foreign.id, "Marta", 2, EVENING)
        assert foreign.status == TableStatus.FREE


class TestListReservations:
    def test_by_day_in_utc_ordered_by_time(self, reservations, table):
        reservations.create_reservation(table.id, "Late", 2, EVENING)
        # 12:00 at +02:00 is 10:00 UTC on the same day
        reservations.create_reservation(
            table.id, "Lunch", 2, datetime(2026, 10, 20, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        )
        reservations.create_reservation(table.id, "Next Day", 2, EVENING + timedelta(hours=5, minutes=30))

        on_day = reservations.list_reservations(on_date=date(2026, 10, 20))
        assert [r.customer_name for r in on_day] == ["Lunch", "Late"]
        assert [r.customer_name for r in reservations.list_reservations()] == ["Lunch", "Late", "Next Day"]

    def test_other_organization_reservations_hidden(self, db_session, bus, booking, other_organization):
        other = ReservationService(db_session, bus, OrgScope(organization_id=other_organization.id))
        assert other.list_reservations() == []
        with pytest.raises(NotFoundError):
            other.update_status(booking.id, ReservationStatus.CANCELLED)


class TestReservationStatus:
    def test_cancel_frees_table(self, reservations, booking, table, events):
        reservations.update_status(booking.id, ReservationStatus.CANCELLED)
        assert booking.status == ReservationStatus.CANCELLED
        assert table.status == TableStatus.FREE
        assert events[-1].type == EventType.RESERVATION_UPDATED
        assert events[-1].data["status"] == "cancelled"

    def test_table_held_while_another_booking_is_confirmed(self, reservations, booking, table):
        later = reservations.create_reservation(table.id, "Otto", 3, EVENING + timedelta(hours=2))
        reservations.update_status(booking.id, ReservationStatus.COMPLETED)
        assert table.status == TableStatus.RESERVED

        reservations.update_status(later.id, ReservationStatus.CANCELLED)
        assert table.status == TableStatus.FREE

    def test_occupied_table_is_not_freed(self, db_session, reservations, booking, table):
        table.status = TableStatus.OCCUPIED
        db_session.commit()
        reservations.update_status(booking.id, ReservationStatus.COMPLETED)
        assert table.status == TableStatus.OCCUPIED

    def test_closed_reservation_cannot_reopen(self, reservations, booking):
        reservations.update_status(booking.id, ReservationStatus.CANCELLED)
        with pytest.raises(InvalidStateError) as exc:
            reservations.update_status(booking.id, ReservationStatus.CONFIRMED)
        assert exc.value.current == "cancelled"
        assert exc.value.requested == "confirmed"

    def test_cancelled_cannot_complete(self, reservations, booking):
        reservations.update_status(booking.id, ReservationStatus.CANCELLED)
        with pytest.raises(InvalidStateError):
            reservations.update_status(booking.id, ReservationStatus.COMPLETED)

    def test_repeated_status_is_noop(self, reservations, booking, events):
        reservations.update_status(booking.id, ReservationStatus.CANCELLED)
        reservations.update_status(booking.id, ReservationStatus.CANCELLED)
        assert [e.type for e in events].count(EventType.RESERVATION_UPDATED) == 1


class TestDeleteReservation:
    def test_delete_frees_table(self, db_session, reservations, booking, table, events):
        reservation_id = booking.id
        reservations.delete_reservation(reservation_id)
        assert db_session.query(Reservation).count() == 0
        assert table.status == TableStatus.FREE
        assert events[-1].type == EventType.RESERVATION_DELETED
        assert events[-1].data == {"reservation_id": reservation_id, "table_id": table.id}

    def test_delete_missing(self, reservations):
        with pytest.raises(NotFoundError):
            reservations.delete_reservation(99999)


# ============== Dish reviews ==============

class TestReviews:
    def test_average_rounded_newest_first(self, reviews, menu, organization, events):
        burger = menu["burger"]
        first = reviews.create_review(burger.id, 5, comment="Great bun", customer_name=" Ana ")
        reviews.create_review(burger.id, 4)
        last = reviews.create_review(burger.id, 4, comment="   ")

        assert first.customer_name == "Ana"
        assert last.comment is None
        assert events[-1].type == EventType.REVIEW_CREATED
        assert events[-1].organization_id == organization.id

        result = reviews.list_reviews(burger.id)
        assert result["average_rating"] == 4.3
        assert result["total"] == 3
        assert result["reviews"][0].id == last.id
        assert result["reviews"][-1].id == first.id

    def test_unrated_item_averages_zero(self, reviews, menu):
        assert reviews.list_reviews(menu["soda"].id) == {"reviews": [], "average_rating": 0, "total": 0}

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_out_of_range(self, db_session, reviews, menu, rating):
        with pytest.raises(DomainValidationError):
            reviews.create_review(menu["burger"].id, rating)
        assert db_session.query(DishReview).count() == 0

    def test_unavailable_item_rejected(self, reviews, menu):
        with pytest.raises(DomainValidationError):
            reviews.create_review(menu["special"].id, 5)

    def test_inactive_organization_items_missing(self, db_session, reviews, menu, organization):
        organization.is_active = False
        db_session.commit()
        with pytest.raises(NotFoundError):
            reviews.create_review(menu["burger"].id, 5)
        with pytest.raises(NotFoundError):
            reviews.list_reviews(menu["burger"].id)

    def test_reviews_removed_with_menu_item(self, db_session, reviews, menu):
        reviews.create_review(menu["burger"].id, 3)
        db_session.delete(menu["burger"])
        db_session.commit()
        assert db_session.query(DishReview).count() == 0


# ============== HTTP ==============

class TestReservationsApi:
    def test_booking_flow(self, client, table, waiter_headers):
        response = client.post(f"{API}/reservations", headers=waiter_headers, json={
            "table_id": table.id,
            "customer_name": "Marta",
            "guest_count": 2,
            "reservation_time": "2026-10-20T19:00:00Z",
        })
        assert response.status_code == 201, response.text
        reservation_id = response.json()["id"]

        on_day = client.get(f"{API}/reservations/date/2026-10-20", headers=waiter_headers).json()
        assert [r["id"] for r in on_day] == [reservation_id]
        assert client.get(f"{API}/reservations/date/2026-10-21", headers=waiter_headers).json() == []
        assert client.get(f"{API}/tables/{table.id}", headers=waiter_headers).json()["status"] == "reserved"

        response = client.patch(f"{API}/reservations/{reservation_id}/status",
                                headers=waiter_headers, json={"status": "cancelled"})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert client.get(f"{API}/tables/{table.id}", headers=waiter_headers).json()["status"] == "free"

        response = client.patch(f"{API}/reservations/{reservation_id}/status",
                                headers=waiter_headers, json={"status": "confirmed"})
        assert response.status_code == 409

        assert client.delete(f"{API}/reservations/{reservation_id}", headers=waiter_headers).status_code == 204
        assert client.get(f"{API}/reservations", headers=waiter_headers).json() == []

    def test_requires_staff(self, client, table):
        response = client.post(f"{API}/reservations", json={
            "table_id": table.id,
            "customer_name": "Marta",
            "guest_count": 2,
            "reservation_time": "2026-10-20T19:00:00Z",
        })
        assert response.status_code == 401


class TestReviewsApi:
    def test_public_review_flow(self, client, menu):
        burger = menu["burger"]
        for rating in (5, 2):
            response = client.post(f"{API}/reviews", json={"menu_item_id": burger.id, "rating": rating})
            assert response.status_code == 201, response.text

        data = client.get(f"{API}/reviews/{burger.id}").json()
        assert data["average_rating"] == 3.5
        assert data["total"] == 2
        assert [r["rating"] for r in data["reviews"]] == [2, 5]

    def test_rating_validated(self, client, menu):
        response = client.post(f"{API}/reviews", json={"menu_item_id": menu["burger"].id, "rating": 9})
        assert response.status_code == 422
