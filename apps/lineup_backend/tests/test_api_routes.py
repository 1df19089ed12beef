"""
HTTP-level tests for the API routes.

Services are replaced with fakes so these run without a database; the
focus is status codes, auth checks and the error body shape.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
import stripe
from fastapi.testclient import TestClient

from lineup_backend.api.main import app
from lineup_backend.database.models import Game, Team
from lineup_backend.services import (
    auth_service,
    data_service,
    optimizer_service,
    payment_service,
    settings_service,
    user_service,
)
from lineup_backend.services.settings_service import AppConfig
from lineup_backend.utils.datetime_utils import utcnow
from lineup_backend.utils.exceptions import (
    DuplicateAssignment,
    OptimizerRejected,
    OptimizerUnreachable,
)

OWNER_ID = 1


# ============================================================================
# Test Fixtures and Helpers
# ============================================================================

def make_client_with_auth(monkeypatch, user_id=OWNER_ID, email="coach@example.com", admin_emails=None):
    """Helper to create an authenticated test client."""
    def fake_verify_token(token):
        return {"user_id": user_id}

    async def fake_get_user_by_id(session, uid):
        return {"id": user_id, "email": email, "full_name": "Test User", "created_at": None}

    async def fake_get_setting(session, key: str):
        if key == "system_admin_emails":
            return admin_emails
        return None

    monkeypatch.setattr(auth_service, "verify_token", fake_verify_token, raising=True)
    monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id, raising=True)
    monkeypatch.setattr(data_service, "get_setting", fake_get_setting, raising=True)

    return TestClient(app), {"Authorization": "Bearer dummy"}


def install_game(monkeypatch, team: Team, game: Game):
    """Serve one team and one game from the fake data layer."""
    async def fake_get_game(session, game_id):
        return game

    async def fake_get_team(session, team_id, for_update=False):
        return team

    monkeypatch.setattr(data_service, "get_game", fake_get_game, raising=True)
    monkeypatch.setattr(data_service, "get_team", fake_get_team, raising=True)


def install_config(monkeypatch, **overrides):
    config = AppConfig(optimizer_url="http://optimizer.test/optimize", unlock_price_amount=19.99, **overrides)

    async def fake_load_app_config(session):
        return config

    monkeypatch.setattr(settings_service, "load_app_config", fake_load_app_config, raising=True)
    return config


def _team(user_id=OWNER_ID, status="none", expires_at=None):
    return Team(id=3, user_id=user_id, name="Rockets", access_status=status, access_expires_at=expires_at)


def _game(lineup=None):
    return Game(id=11, team_id=3, innings=6, opponent_name="Comets", lineup_data=lineup)


# ============================================================================
# Health and auth
# ============================================================================

def test_health():
    response = TestClient(app).get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_token_is_rejected():
    response = TestClient(app).get("/api/games/11/lineup")
    assert response.status_code in (401, 403)


def test_invalid_token_is_rejected(monkeypatch):
    monkeypatch.setattr(auth_service, "verify_token", lambda token: None, raising=True)
    response = TestClient(app).get("/api/games/11/lineup", headers={"Authorization": "Bearer bad"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid authentication token"


# ============================================================================
# Autocomplete lineup
# ============================================================================

class TestAutocompleteLineup:
    """Tests for POST /api/games/{id}/autocomplete-lineup."""

    def test_success(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(), _game())
        install_config(monkeypatch)
        saved = {
            "game_id": 11,
            "lineup": [{"player_id": 4, "innings": {"1": "P"}, "batting_order": 1}],
            "finalized_at": "2025-05-01T00:00:00+00:00",
            "missing_player_ids": [],
        }
        fake_optimize = AsyncMock(return_value=saved)
        monkeypatch.setattr(optimizer_service, "optimize_lineup", fake_optimize, raising=True)

        response = client.post(
            "/api/games/11/autocomplete-lineup",
            json={"players_in_game": [4], "fixed_assignments": {"4": {"1": "P"}}},
            headers=headers,
        )

        assert response.status_code == 200, response.text
        assert response.json()["lineup"][0]["batting_order"] == 1
        args = fake_optimize.call_args.args
        assert args[3] == [4]
        assert args[4] == {"4": {"1": "P"}}

    def test_empty_player_list_is_rejected_by_schema(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        response = client.post(
            "/api/games/11/autocomplete-lineup", json={"players_in_game": []}, headers=headers
        )
        assert response.status_code == 422

    def test_duplicate_players_are_rejected_by_schema(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        response = client.post(
            "/api/games/11/autocomplete-lineup", json={"players_in_game": [4, 4]}, headers=headers
        )
        assert response.status_code == 422

    def test_not_owner(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(user_id=99), _game())

        response = client.post(
            "/api/games/11/autocomplete-lineup", json={"players_in_game": [4]}, headers=headers
        )

        assert response.status_code == 403
        assert response.json()["error"] == "access_denied"
        assert response.json()["reason"] == "not_owner"

    def test_admin_may_act_on_any_team(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, admin_emails="coach@example.com")
        install_game(monkeypatch, _team(user_id=99), _game())
        install_config(monkeypatch)
        monkeypatch.setattr(
            optimizer_service,
            "optimize_lineup",
            AsyncMock(return_value={"game_id": 11, "lineup": [], "finalized_at": None, "missing_player_ids": []}),
            raising=True,
        )

        response = client.post(
            "/api/games/11/autocomplete-lineup", json={"players_in_game": [4]}, headers=headers
        )
        assert response.status_code == 200

    def test_optimizer_unreachable(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(), _game())
        install_config(monkeypatch)
        monkeypatch.setattr(
            optimizer_service,
            "optimize_lineup",
            AsyncMock(side_effect=OptimizerUnreachable("Could not connect to the lineup optimizer service.")),
            raising=True,
        )

        response = client.post(
            "/api/games/11/autocomplete-lineup", json={"players_in_game": [4]}, headers=headers
        )

        assert response.status_code == 503
        assert response.json() == {
            "error": "optimizer_unreachable",
            "detail": "Could not connect to the lineup optimizer service.",
        }

    def test_optimizer_rejected_carries_upstream_detail(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(), _game())
        install_config(monkeypatch)
        monkeypatch.setattr(
            optimizer_service,
            "optimize_lineup",
            AsyncMock(side_effect=OptimizerRejected(400, {"error": "infeasible"})),
            raising=True,
        )

        response = client.post(
            "/api/games/11/autocomplete-lineup", json={"players_in_game": [4]}, headers=headers
        )

        assert response.status_code == 502
        body = response.json()
        assert body["upstream_status"] == 400
        assert body["upstream_detail"] == {"error": "infeasible"}

    def test_duplicate_assignment(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(), _game())
        install_config(monkeypatch)
        monkeypatch.setattr(
            optimizer_service,
            "optimize_lineup",
            AsyncMock(side_effect=DuplicateAssignment(2, "SS")),
            raising=True,
        )

        response = client.post(
            "/api/games/11/autocomplete-lineup", json={"players_in_game": [4, 5]}, headers=headers
        )

        assert response.status_code == 422
        assert response.json()["error"] == "duplicate_assignment"
        assert response.json()["slot"] == 2
        assert response.json()["label"] == "SS"

    def test_unexpected_error_is_a_generic_500(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(), _game())
        install_config(monkeypatch)
        monkeypatch.setattr(
            optimizer_service, "optimize_lineup", AsyncMock(side_effect=KeyError("boom")), raising=True
        )

        response = client.post(
            "/api/games/11/autocomplete-lineup", json={"players_in_game": [4]}, headers=headers
        )

        assert response.status_code == 500
        assert "internal error" in response.json()["detail"]


# ============================================================================
# Export
# ============================================================================

class TestExportLineup:
    """Tests for GET /api/games/{id}/export."""

    @pytest.mark.parametrize(
        "status, expires_at, reason",
        [
            ("none", None, "no_access"),
            ("paid_active", utcnow() - timedelta(seconds=1), "access_expired"),
            ("promo_active", utcnow() - timedelta(days=3), "access_expired"),
        ],
    )
    def test_denied_without_active_access(self, monkeypatch, status, expires_at, reason):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(status=status, expires_at=expires_at), _game(lineup=[]))

        response = client.get("/api/games/11/export", headers=headers)

        assert response.status_code == 403
        assert response.json()["reason"] == reason

    def test_not_owner_comes_first(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(user_id=99, status="paid_active"), _game(lineup=[]))

        response = client.get("/api/games/11/export", headers=headers)

        assert response.json()["reason"] == "not_owner"

    def test_export_with_access(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        lineup = [{"player_id": 4, "innings": {"1": "P"}, "batting_order": 1}]
        install_game(monkeypatch, _team(status="paid_active"), _game(lineup=lineup))
        monkeypatch.setattr(data_service, "get_players_by_ids", AsyncMock(return_value={}), raising=True)

        response = client.get("/api/games/11/export", headers=headers)

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["game_details"]["team_name"] == "Rockets"
        assert body["lineup_assignments"] == lineup

    def test_export_without_saved_lineup(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(status="paid_active"), _game(lineup=None))

        response = client.get("/api/games/11/export", headers=headers)

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


# ============================================================================
# Access and payments
# ============================================================================

class TestTeamAccess:
    def test_access_summary_with_price(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(status="paid_active"), _game())
        install_config(monkeypatch)

        response = client.get("/api/teams/3/access", headers=headers)

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["access_status"] == "paid_active"
        assert body["has_active_access"] is True
        assert body["unlock_price_amount"] == 19.99

    @patch("lineup_backend.services.payment_service.stripe.PaymentIntent.create")
    def test_payment_intent(self, mock_create, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(), _game())
        install_config(monkeypatch)
        mock_create.return_value = {"id": "pi_1", "client_secret": "pi_1_secret"}

        response = client.post("/api/teams/3/payment-intent", headers=headers)

        assert response.status_code == 200, response.text
        assert response.json()["client_secret"] == "pi_1_secret"
        assert response.json()["amount"] == 1999

    def test_payment_intent_for_active_team_conflicts(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch)
        install_game(monkeypatch, _team(status="promo_active"), _game())
        install_config(monkeypatch)

        response = client.post("/api/teams/3/payment-intent", headers=headers)

        assert response.status_code == 409
        assert response.json()["error"] == "already_has_access"


class TestStripeWebhook:
    """Tests for POST /api/stripe/webhook."""

    def test_secret_not_configured(self, monkeypatch):
        install_config(monkeypatch)
        response = TestClient(app).post(
            "/api/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"}
        )
        assert response.status_code == 500

    def test_missing_signature(self, monkeypatch):
        install_config(monkeypatch, stripe_webhook_secret="whsec_test")
        response = TestClient(app).post("/api/stripe/webhook", content=b"{}")
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing Stripe signature"

    def test_invalid_signature(self, monkeypatch):
        install_config(monkeypatch, stripe_webhook_secret="whsec_test")

        def fake_construct_event(payload, signature, secret):
            raise stripe.SignatureVerificationError("No signatures found", signature)

        monkeypatch.setattr(payment_service, "construct_event", fake_construct_event, raising=True)

        response = TestClient(app).post(
            "/api/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"

    def test_invalid_payload(self, monkeypatch):
        install_config(monkeypatch, stripe_webhook_secret="whsec_test")

        def fake_construct_event(payload, signature, secret):
            raise ValueError("Invalid payload")

        monkeypatch.setattr(payment_service, "construct_event", fake_construct_event, raising=True)

        response = TestClient(app).post(
            "/api/stripe/webhook", content=b"not json", headers={"Stripe-Signature": "t=1,v1=abc"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid payload"

    def test_verified_event_is_dispatched(self, monkeypatch):
        install_config(monkeypatch, stripe_webhook_secret="whsec_test")
        event = {"id": "evt_1", "type": "customer.created", "data": {"object": {"id": "cus_1"}}}
        monkeypatch.setattr(payment_service, "construct_event", lambda p, s, k: event, raising=True)

        response = TestClient(app).post(
            "/api/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "status": "success",
            "type": "customer.created",
            "handled": False,
            "reason": "unhandled_type",
        }


# ============================================================================
# Admin
# ============================================================================

class TestAdminSettings:
    def test_non_admin_is_forbidden(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, admin_emails="boss@example.com")
        response = client.get("/api/admin/settings", headers=headers)
        assert response.status_code == 403

    def test_invalid_value_is_rejected(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, admin_emails="coach@example.com")
        fake_set_setting = AsyncMock()
        monkeypatch.setattr(data_service, "set_setting", fake_set_setting, raising=True)

        response = client.put(
            "/api/admin/settings/unlock_currency", json={"value": "dollars"}, headers=headers
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_failed"
        fake_set_setting.assert_not_called()

    def test_valid_value_is_stored_normalized(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, admin_emails="Coach@Example.com")
        fake_set_setting = AsyncMock()
        monkeypatch.setattr(data_service, "set_setting", fake_set_setting, raising=True)

        response = client.put(
            "/api/admin/settings/unlock_currency", json={"value": "EUR"}, headers=headers
        )

        assert response.status_code == 200
        assert response.json() == {"key": "unlock_currency", "value": "eur"}
        assert fake_set_setting.call_args.args[1:] == ("unlock_currency", "eur")
