"""End-to-end tests through the application factory and lifespan."""

import pytest
from fastapi.testclient import TestClient

from leaveadmin.core.config import get_settings
from leaveadmin.main import create_app

KEY = "0f" * 32


@pytest.fixture
def app_client(tmp_path, monkeypatch):
    """Application wired to a temporary control store with auth disabled."""
    monkeypatch.setenv("LEAVEADMIN_DATABASE__URL", f"sqlite:///{tmp_path / 'control.db'}")
    monkeypatch.setenv("LEAVEADMIN_SWITCHOVER__BACKUP_DIR", str(tmp_path / "backups"))
    monkeypatch.setenv("LEAVEADMIN_SECURITY__DB_ENCRYPTION_KEY", KEY)
    monkeypatch.setenv("LEAVEADMIN_SECURITY__AUTH_DISABLED", "true")
    get_settings.cache_clear()

    with TestClient(create_app()) as client:
        yield client

    get_settings.cache_clear()


def _register(client, name, url):
    response = client.post(
        "/api/database/connections",
        json={"name": name, "connection_string": url, "environment": "production"},
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestApplication:
    """Test the assembled application."""

    def test_health(self, app_client):
        """Test the control store is reported healthy."""
        # Execute
        response = app_client.get("/health")

        # Assert
        assert response.status_code == 200
        assert response.json()["control_store"] == "ok"

    def test_metrics(self, app_client):
        """Test Prometheus metrics are exposed."""
        # Setup
        app_client.get("/healthz")

        # Execute
        response = app_client.get("/metrics")

        # Assert
        assert response.status_code == 200
        assert "leaveadmin_http_requests_total" in response.text

    def test_switch_over_http(self, app_client, source_url, target_url):
        """Test activating a database and switching to another through the API."""
        # Setup
        source_id = _register(app_client, "Primary", source_url)
        target_id = _register(app_client, "Replacement", target_url)

        # Execute
        first = app_client.post(
            f"/api/database/connections/{source_id}/switch", json={"confirm": True}
        )
        second = app_client.post(
            f"/api/database/connections/{target_id}/switch",
            json={"confirm": True, "batch_size": 2},
        )

        # Assert
        assert first.status_code == 200
        assert first.json()["success"] is True
        assert second.status_code == 200
        assert second.json()["success"] is True
        assert second.json()["details"]["total_rows"] == 12

        connections = app_client.get("/api/database/connections").json()
        current = [c["id"] for c in connections if c["is_current"]]
        assert current == [target_id]
        assert "connection_string" not in connections[0]

        history = app_client.get("/api/database/history").json()
        assert history["total"] == 2
        assert history["items"][0]["to_connection_name"] == "Replacement"

        status = app_client.get("/api/database/status").json()
        assert status["connected"] is True
        assert app_client.get("/api/database/maintenance").json() == {
            "enabled": False,
            "switch_in_progress": False,
        }

    def test_switch_to_same_database_is_400(self, app_client, source_url):
        """Test switching to the already active database is refused."""
        # Setup
        source_id = _register(app_client, "Primary", source_url)
        app_client.post(f"/api/database/connections/{source_id}/switch", json={"confirm": True})

        # Execute
        response = app_client.post(
            f"/api/database/connections/{source_id}/switch", json={"confirm": True}
        )

        # Assert
        assert response.status_code == 400

    def test_delete_active_connection_is_409(self, app_client, source_url):
        """Test the active connection cannot be deleted through the API."""
        # Setup
        source_id = _register(app_client, "Primary", source_url)
        app_client.post(f"/api/database/connections/{source_id}/switch", json={"confirm": True})

        # Execute
        response = app_client.delete(f"/api/database/connections/{source_id}")

        # Assert
        assert response.status_code == 409
