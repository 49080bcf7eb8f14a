import threading

import pytest
import redis
from fastapi.testclient import TestClient

from faucet.cache.redis_cache import RedisCache
from faucet.domain.eligibility import EligibilityThresholds
from faucet.main import create_app
from faucet.repos.claims_repo import ClaimStatsRepo
from faucet.security.cooldown import LocalCooldownOracle
from faucet.services.claims import ClaimCoordinator

from conftest import ADDR_A, COOLDOWN, DAY, T0, Clock, FakeGateway, history_since


@pytest.fixture
def gateway():
    gw = FakeGateway(tx_count=15)
    gw.history[ADDR_A] = history_since(T0 - 20 * DAY)
    return gw


@pytest.fixture
def client(gateway):
    coordinator = ClaimCoordinator(
        gateway=gateway,
        oracle=LocalCooldownOracle(),
        thresholds=EligibilityThresholds(min_transaction_count=10, min_account_age_days=12),
        cooldown_seconds=COOLDOWN,
        confirmation_timeout=5,
        clock=Clock(),
    )
    app = create_app(coordinator=coordinator, claim_stats=ClaimStatsRepo(RedisCache(None)))
    return TestClient(app)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_claim_grant_then_cooldown(client):
    resp = client.post("/claim", json={"address": ADDR_A})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["txHash"].startswith("0x")
    assert body["nextClaim"] == T0 + COOLDOWN
    assert "error" not in body

    resp = client.post("/claim", json={"address": ADDR_A})
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "error": "cooldown active", "nextClaim": T0 + COOLDOWN}

    resp = client.post("/cooldown", json={"address": ADDR_A.upper().replace("0X", "0x")})
    assert resp.json() == {"nextClaim": T0 + COOLDOWN}


def test_insufficient_transaction_count(client, gateway):
    gateway.tx_counts[ADDR_A] = 2
    resp = client.post("/claim", json={"address": ADDR_A})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "insufficient transaction count"
    assert body["transactionCount"] == 2


def test_cooldown_unknown_address_is_zero(client):
    resp = client.post("/cooldown", json={"address": ADDR_A})
    assert resp.status_code == 200
    assert resp.json() == {"nextClaim": 0}


@pytest.mark.parametrize("path", ["/claim", "/cooldown"])
@pytest.mark.parametrize("payload", [{}, {"address": ""}, {"address": None}])
def test_address_required(client, path, payload):
    resp = client.post(path, json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Address required"}


@pytest.mark.parametrize("path", ["/claim", "/cooldown"])
def test_malformed_address(client, gateway, path):
    resp = client.post(path, json={"address": "0x1234"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert gateway.calls == []


def test_non_json_body_is_structured(client):
    resp = client.post("/claim", content=b"nope", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_submission_failure_is_500(client, gateway):
    gateway.submit_error = "nonce too low"
    resp = client.post("/claim", json={"address": ADDR_A})
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "nonce too low"}

    # nothing recorded: a later attempt can still go through
    gateway.submit_error = None
    assert client.post("/claim", json={"address": ADDR_A}).json()["success"] is True


def test_gateway_read_failure_is_500(client, gateway):
    gateway.read_error = "rpc unreachable"
    resp = client.post("/claim", json={"address": ADDR_A})
    assert resp.status_code == 500
    assert resp.json()["success"] is False


def test_security_headers(client):
    resp = client.get("/health")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["Cache-Control"] == "no-store"


def test_admin_requires_key(client):
    assert client.get("/api/admin/config").status_code == 401
    assert client.get("/api/admin/config", headers={"X-API-Key": "wrong"}).status_code == 401


def test_admin_config_and_stats(client):
    headers = {"X-API-Key": "test-admin-key"}
    cfg = client.get("/api/admin/config", headers=headers).json()
    assert cfg["cooldown"]["COOLDOWN_SECONDS"] == COOLDOWN
    assert cfg["eligibility"]["MIN_TX_COUNT"] == 10
    assert "PRIVATE_KEY" not in str(cfg)

    stats = client.get("/api/admin/stats", headers=headers).json()
    assert stats == {"window_min": 60, "enabled": False, "granted": 0, "denied": 0, "failed": 0}


def _coordinator(gateway):
    return ClaimCoordinator(
        gateway=gateway,
        oracle=LocalCooldownOracle(),
        thresholds=EligibilityThresholds(min_transaction_count=10, min_account_age_days=12),
        cooldown_seconds=COOLDOWN,
        confirmation_timeout=5,
        clock=Clock(),
    )


class ThreadRecordingGateway(FakeGateway):
    async def submit_claim(self, address):
        self.loop_thread = threading.get_ident()
        return await super().submit_claim(address)


class ThreadRecordingStats:
    def __init__(self):
        self.threads = []
        self.outcomes = []

    def record(self, outcome):
        self.threads.append(threading.get_ident())
        self.outcomes.append(outcome)


def test_claim_stats_recorded_off_event_loop():
    gw = ThreadRecordingGateway(tx_count=15)
    gw.history[ADDR_A] = history_since(T0 - 20 * DAY)
    stats = ThreadRecordingStats()
    client = TestClient(create_app(coordinator=_coordinator(gw), claim_stats=stats))

    resp = client.post("/claim", json={"address": ADDR_A})
    assert resp.json()["success"] is True
    assert len(stats.outcomes) == 1
    assert stats.threads[0] != gw.loop_thread


class DownRedis:
    def pipeline(self):
        raise redis.ConnectionError("connection refused")

    def mget(self, keys):
        raise redis.ConnectionError("connection refused")


def test_admin_stats_unavailable_when_redis_down(gateway):
    stats = ClaimStatsRepo(RedisCache(client=DownRedis()))
    client = TestClient(create_app(coordinator=_coordinator(gateway), claim_stats=stats))

    resp = client.get("/api/admin/stats", headers={"X-API-Key": "test-admin-key"})
    assert resp.status_code == 503
    assert resp.json() == {"success": False, "error": "stats unavailable"}

    # recording swallows the outage, so claims still go through
    resp = client.post("/claim", json={"address": ADDR_A})
    assert resp.status_code == 200
    assert resp.json()["success"] is True
