"""
Tests for the public booking endpoints.
"""

import json

from tests.conftest import future_date


class TestPublicSlots:
    def test_slots_for_future_date(self, client, restaurant):
        day = future_date()

        response = client.get(f"/api/public/trattoria/slots?date={day.isoformat()}")

        assert response.status_code == 200
        data = response.json()
        assert data["is_open"] is True
        assert data["slots"][0] == "19:00"
        assert data["slots"][-1] == "22:30"
        assert len(data["slots"]) == 8

    def test_closed_restaurant(self, client, restaurant, seed_settings, db_session):
        seed_settings.is_active = False
        db_session.commit()

        response = client.get(f"/api/public/trattoria/slots?date={future_date().isoformat()}")

        assert response.status_code == 200
        assert response.json() == {"date": future_date().isoformat(), "is_open": False, "slots": []}

    def test_unknown_restaurant(self, client, restaurant):
        response = client.get(f"/api/public/nowhere/slots?date={future_date().isoformat()}")
        assert response.status_code == 404

    def test_date_required(self, client, restaurant):
        assert client.get("/api/public/trattoria/slots").status_code == 422


class TestPublicBooking:
    def payload(self, **overrides):
        data = {
            "customer_name": "Luca Verdi",
            "customer_email": "luca@example.com",
            "customer_phone": "+39 320 1112233",
            "guests": 3,
            "high_chairs": 1,
            "date": future_date().isoformat(),
            "time": "20:30",
        }
        data.update(overrides)
        return data

    def test_creates_pending_reservation(self, client, restaurant, fake_redis):
        response = client.post("/api/public/trattoria/reservations", json=self.payload())

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["time"] == "20:30"
        assert data["reservation_id"] > 0

    def test_dashboard_event_and_restaurant_email(self, client, restaurant, fake_redis):
        client.post("/api/public/trattoria/reservations", json=self.payload())

        channel, message = fake_redis.publish.await_args.args
        assert channel == f"tenant:{restaurant.id}:reservations"
        event = json.loads(message)
        assert event["type"] == "RESERVATION_CREATED"
        assert event["entity"]["status"] == "pending"

        fields = fake_redis.xadd.await_args.args[1]
        assert fields["kind"] == "new"
        assert fields["recipient"] == "sala@trattoria.it"

    def test_redis_down_does_not_fail_booking(self, client, restaurant, fake_redis):
        fake_redis.publish.side_effect = ConnectionError("redis down")
        fake_redis.xadd.side_effect = ConnectionError("redis down")

        response = client.post("/api/public/trattoria/reservations", json=self.payload())

        assert response.status_code == 201

    def test_slot_not_offered(self, client, restaurant):
        response = client.post("/api/public/trattoria/reservations", json=self.payload(time="17:00"))
        assert response.status_code == 400

    def test_invalid_email(self, client, restaurant):
        response = client.post(
            "/api/public/trattoria/reservations", json=self.payload(customer_email="not-an-email"),
        )
        assert response.status_code == 422

    def test_zero_guests(self, client, restaurant):
        response = client.post("/api/public/trattoria/reservations", json=self.payload(guests=0))
        assert response.status_code == 422

    def test_closed_restaurant(self, client, restaurant, seed_settings, db_session):
        seed_settings.is_active = False
        db_session.commit()

        response = client.post("/api/public/trattoria/reservations", json=self.payload())

        assert response.status_code == 400

    def test_rate_limited(self, client, restaurant):
        statuses = [
            client.post("/api/public/trattoria/reservations", json=self.payload()).status_code
            for _ in range(11)
        ]
        assert statuses[:10] == [201] * 10
        assert statuses[10] == 429
