"""Tests for pool API endpoints."""

import pytest
from fastapi.testclient import TestClient

from shardkeeper.api.main import app
from shardkeeper.topology import Topology, configure_topology


@pytest.fixture
def client(inventory, transport, settings):
    """Create test client over the in-memory fleet."""
    configure_topology(Topology(inventory, transport, settings))
    with TestClient(app) as client:
        yield client
    configure_topology(None)


class TestPoolAPI:
    """Pool API tests."""

    def test_health(self, client):
        """Test health reports a consistent fleet."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["spares"] == 6

    def test_list_pools(self, client):
        """Test listing pools."""
        response = client.get("/api/v1/pools")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["pools"][0]["name"] == "users"
        assert data["pools"][0]["active_weight_total"] == 100

    def test_get_pool(self, client):
        """Test getting a pool by name."""
        response = client.get("/api/v1/pools/users")

        assert response.status_code == 200
        data = response.json()
        assert data["master"]["address"] == "10.0.0.1"
        assert [r["role"] for r in data["replicas"]] == [
            "active_replica",
            "standby_replica",
            "backup_replica",
        ]

    def test_get_nonexistent_pool(self, client):
        """Test getting a non-existent pool."""
        response = client.get("/api/v1/pools/orders")

        assert response.status_code == 404

    def test_activate_replica(self, client, inventory):
        """Test activating a standby replica."""
        response = client.post(
            "/api/v1/pools/users/replicas/10.0.0.3/activate", json={"weight": 25}
        )

        assert response.status_code == 200
        assert response.json()["active_weight_total"] == 125
        assert inventory.config["pools"][0]["replicas"]["10.0.0.3"] == 25

    def test_activate_rejects_zero_weight(self, client):
        """Test request validation on weight."""
        response = client.post(
            "/api/v1/pools/users/replicas/10.0.0.3/activate", json={"weight": 0}
        )

        assert response.status_code == 422

    def test_standby_replica(self, client):
        """Test taking an active replica out of rotation."""
        response = client.post("/api/v1/pools/users/replicas/10.0.0.2/standby")

        assert response.status_code == 200
        assert response.json()["active_weight_total"] == 0

    def test_standby_wrong_role(self, client):
        """Test precondition failures map to 400."""
        response = client.post("/api/v1/pools/users/replicas/10.0.0.4/standby")

        assert response.status_code == 400

    def test_remove_replica(self, client):
        """Test removing a backup replica."""
        response = client.delete("/api/v1/pools/users/replicas/10.0.0.4")

        assert response.status_code == 204
        replicas = client.get("/api/v1/pools/users").json()["replicas"]
        assert "10.0.0.4" not in [r["address"] for r in replicas]

    def test_promote_candidates(self, client):
        """Test promotion without a target lists candidates."""
        response = client.post(
            "/api/v1/pools/users/promote", json={"demoted_role": "standby"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["promoted"] is None
        assert set(data["candidates"]) == {"10.0.0.2", "10.0.0.3"}

    def test_promote(self, client):
        """Test promoting a standby replica."""
        response = client.post(
            "/api/v1/pools/users/promote",
            json={"promoted": "10.0.0.3", "demoted_role": "retire"},
        )

        assert response.status_code == 200
        assert response.json()["promoted"] == "10.0.0.3"
        assert client.get("/api/v1/pools/users").json()["master"]["address"] == "10.0.0.3"

    def test_promote_not_a_replica(self, client):
        """Test promoting a node from another pool."""
        response = client.post(
            "/api/v1/pools/users/promote",
            json={"promoted": "10.1.0.2", "demoted_role": "retire"},
        )

        assert response.status_code == 400

    def test_promote_requires_policy(self, client):
        """Test the demotion policy is mandatory."""
        response = client.post("/api/v1/pools/users/promote", json={"promoted": "10.0.0.3"})

        assert response.status_code == 422

    def test_promote_partial_failure(self, client, transport):
        """Test partial failures return per-node outcomes."""
        transport.fail("change_replication_source", "10.0.0.4")

        response = client.post(
            "/api/v1/pools/users/promote",
            json={"promoted": "10.0.0.3", "demoted_role": "retire"},
        )

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["operation"] == "promote"
        assert detail["outcomes"]["10.0.0.2"] == "ok"
        assert detail["outcomes"]["10.0.0.4"] != "ok"

    def test_list_spares(self, client):
        """Test listing spares with a role filter."""
        response = client.get("/api/v1/spares", params={"role": "master"})

        assert response.status_code == 200
        assert {s["address"] for s in response.json()["spares"]} == {"spare-m1", "spare-m2"}

    def test_list_spares_bad_role(self, client):
        """Test unknown roles are rejected."""
        response = client.get("/api/v1/spares", params={"role": "wizard"})

        assert response.status_code == 400
