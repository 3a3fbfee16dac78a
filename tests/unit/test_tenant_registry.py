from unittest.mock import MagicMock, patch

import pytest
import requests

from gymapp.core.config import get_settings
from gymapp.db.tenant_registry import TenantRegistry

CLIENTS = [
    {"clientId": "gym-activo", "estadoSuscripcion": "activo"},
    {"clientId": "gym-prueba", "estadoSuscripcion": "periodo_prueba"},
    {"clientId": "gym-suspendido", "estadoSuscripcion": "suspendido"},
    {"_id": "gym-sin-client-id", "estadoSuscripcion": "activo"},
]


@pytest.fixture
def super_admin(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "SUPER_ADMIN_API_URL", "https://admin.example.com/")
    monkeypatch.setattr(settings, "INTERNAL_ADMIN_API_KEY", "clave-interna")
    monkeypatch.setattr(settings, "TENANT_DATABASE_URLS", {"gym-estatico": "sqlite:///:memory:"})
    return settings


def _response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


def test_client_ids_include_active_super_admin_clients(super_admin):
    with patch("gymapp.db.tenant_registry.requests.get", return_value=_response(body=CLIENTS)) as mock_get:
        ids = TenantRegistry().client_ids()

    assert ids == ["gym-estatico", "gym-activo", "gym-prueba", "gym-sin-client-id"]
    args, kwargs = mock_get.call_args
    assert args[0] == "https://admin.example.com/api/clients/internal/all-clients"
    assert kwargs["headers"] == {"x-internal-api-key": "clave-interna"}


def test_client_ids_fall_back_when_super_admin_is_down(super_admin):
    with patch("gymapp.db.tenant_registry.requests.get", side_effect=requests.ConnectionError("sin red")):
        assert TenantRegistry().client_ids() == ["gym-estatico"]


def test_client_ids_ignore_error_responses(super_admin):
    with patch("gymapp.db.tenant_registry.requests.get", return_value=_response(status_code=500)):
        assert TenantRegistry().client_ids() == ["gym-estatico"]


def test_client_ids_without_super_admin_config(super_admin, monkeypatch):
    monkeypatch.setattr(super_admin, "SUPER_ADMIN_API_URL", None)

    with patch("gymapp.db.tenant_registry.requests.get") as mock_get:
        assert TenantRegistry().client_ids() == ["gym-estatico"]
    mock_get.assert_not_called()
