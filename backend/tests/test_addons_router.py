# tests/test_addons_router.py - Tenant add-on HTTP endpoints
import pytest

from auth import UserRole
from database import engine_options
from tests.conftest import (
    TENANT_ID, OTHER_TENANT_ID, get_auth_headers, make_addon, make_installation, fetch_installation,
)
from models import InstallationStatus

BASE = f"/api/v1/tenants/{TENANT_ID}/addons"


@pytest.mark.asyncio
async def test_root(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Add-on Lifecycle Engine"


@pytest.mark.asyncio
async def test_health_reports_database(client, db_session):
    await make_addon(db_session, "payroll")
    await make_installation(db_session, "payroll", "1.0.0")

    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["database"] == "connected"
    assert data["status"] == "healthy"
    assert data["service"] == "addon-lifecycle-engine"
    assert data["catalog_addons"] == 1
    assert data["installations"] == 1
    assert "X-Request-ID" in resp.headers


@pytest.mark.asyncio
async def test_responses_are_not_cached(client):
    resp = await client.get("/", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.headers["Cache-Control"] == "no-store"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert "Strict-Transport-Security" not in resp.headers


def test_engine_options_skip_pool_sizing_for_sqlite():
    assert "pool_size" not in engine_options("sqlite+aiosqlite:///./x.db")
    options = engine_options("postgresql+asyncpg://u:p@localhost/db")
    assert options["pool_size"] > 0
    assert options["max_overflow"] == 0
    assert options["pool_pre_ping"] is True


# ============================================================
# AUTH
# ============================================================

@pytest.mark.asyncio
async def test_requires_token(client):
    resp = await client.get(BASE)
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_rejects_garbage_token(client):
    resp = await client.get(BASE, headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_cross_tenant_access_denied(client):
    resp = await client.get(BASE, headers=get_auth_headers(tenant_id=OTHER_TENANT_ID))
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "TENANT_MISMATCH"


@pytest.mark.asyncio
async def test_member_can_read_but_not_install(client, db_session):
    await make_addon(db_session, "payroll")
    headers = get_auth_headers(role=UserRole.USER)

    assert (await client.get(BASE, headers=headers)).status_code == 200
    resp = await client.post(BASE, json={"addon_id": "payroll"}, headers=headers)
    assert resp.status_code == 403


# ============================================================
# INSTALL / LIST
# ============================================================

@pytest.mark.asyncio
async def test_install_and_list(client, db_session):
    await make_addon(db_session, "payroll", name="Payroll")
    headers = get_auth_headers()

    resp = await client.post(BASE, json={"addon_id": "payroll", "config": {"currency": "EUR"}}, headers=headers)
    assert resp.status_code == 201
    data = resp.json()
    assert data["version"] == "1.0.0"
    assert data["installation"]["status"] == "active"
    assert data["installation"]["config"] == {"currency": "EUR"}
    assert data["installation"]["installed_by"] == "u1"

    resp = await client.get(BASE, headers=headers)
    assert resp.status_code == 200
    installed = resp.json()["installed_addons"]
    assert [i["addon_name"] for i in installed] == ["Payroll"]


@pytest.mark.asyncio
async def test_install_twice_conflicts(client, db_session):
    await make_addon(db_session, "payroll")
    headers = get_auth_headers()

    assert (await client.post(BASE, json={"addon_id": "payroll"}, headers=headers)).status_code == 201
    resp = await client.post(BASE, json={"addon_id": "payroll"}, headers=headers)
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["code"] == "ALREADY_INSTALLED"
    assert detail["rollback_performed"] is False


@pytest.mark.asyncio
async def test_install_unknown_addon(client):
    resp = await client.post(BASE, json={"addon_id": "ghost"}, headers=get_auth_headers())
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "ADDON_NOT_FOUND"


@pytest.mark.asyncio
async def test_install_with_invalid_pricing(client, db_session):
    await make_addon(db_session, "payroll")
    resp = await client.post(BASE, json={"addon_id": "payroll", "pricing_id": "nope"}, headers=get_auth_headers())
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "INVALID_PRICING"


@pytest.mark.asyncio
async def test_install_missing_dependencies(client, db_session):
    await make_addon(db_session, "payroll")
    await make_addon(db_session, "payroll-reports",
                     dependencies=[{"addon_id": "payroll", "optional": False, "min_version": "1.0.0"}])

    resp = await client.post(BASE, json={"addon_id": "payroll-reports"}, headers=get_auth_headers())
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["code"] == "MISSING_DEPENDENCIES"
    assert detail["details"]["missing"] == [{"addon_id": "payroll", "optional": False, "min_version": "1.0.0"}]


@pytest.mark.asyncio
async def test_install_body_validation(client):
    resp = await client.post(BASE, json={"addon_id": ""}, headers=get_auth_headers())
    assert resp.status_code == 422
    assert isinstance(resp.json()["detail"], list)


# ============================================================
# DEPENDENCY QUERIES
# ============================================================

@pytest.mark.asyncio
async def test_check_dependencies_endpoint(client, db_session):
    await make_addon(db_session, "payroll", versions=["0.9.0"])
    await make_addon(db_session, "payroll-reports", dependencies=[{"addon_id": "payroll", "min_version": "1.0.0"}])
    await make_installation(db_session, "payroll", "0.9.0")

    resp = await client.post(f"{BASE}/check-dependencies", json={"addon_id": "payroll-reports"},
                             headers=get_auth_headers(role=UserRole.USER))
    assert resp.status_code == 200
    assert resp.json() == {
        "satisfied": False,
        "missing": [],
        "conflicts": ["Dependency payroll requires version >= 1.0.0, but 0.9.0 is installed"],
    }


@pytest.mark.asyncio
async def test_dependents_endpoint(client, db_session):
    await make_addon(db_session, "payroll")
    await make_addon(db_session, "payroll-reports", name="Payroll Reports", dependencies=[{"addon_id": "payroll"}])
    await make_installation(db_session, "payroll", "1.0.0")
    await make_installation(db_session, "payroll-reports", "1.0.0")

    resp = await client.get(f"{BASE}/payroll/dependents", headers=get_auth_headers())
    assert resp.status_code == 200
    assert resp.json() == {"has_dependents": True, "dependents": ["Payroll Reports"]}


# ============================================================
# TRANSITIONS
# ============================================================

@pytest.mark.asyncio
async def test_upgrade_endpoint(client, db_session, session_factory):
    await make_addon(db_session, "payroll", versions=["1.0.0", "1.1.0"])
    await make_installation(db_session, "payroll", "1.0.0")

    resp = await client.post(f"{BASE}/payroll/upgrade", json={"target_version_id": "payroll@1.1.0"},
                             headers=get_auth_headers())
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["to_version"] == "1.1.0"
    assert (await fetch_installation(session_factory, "payroll")).version_id == "payroll@1.1.0"


@pytest.mark.asyncio
async def test_upgrade_to_unknown_version(client, db_session):
    await make_addon(db_session, "payroll")
    await make_installation(db_session, "payroll", "1.0.0")

    resp = await client.post(f"{BASE}/payroll/upgrade", json={"target_version_id": "payroll@9.9.9"},
                             headers=get_auth_headers())
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "VERSION_NOT_FOUND"


@pytest.mark.asyncio
async def test_disable_enable_endpoints(client, db_session, session_factory):
    await make_addon(db_session, "payroll")
    await make_installation(db_session, "payroll", "1.0.0")
    headers = get_auth_headers()

    resp = await client.post(f"{BASE}/payroll/disable", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "status": "disabled"}

    resp = await client.post(f"{BASE}/payroll/disable", headers=headers)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "ALREADY_DISABLED"

    resp = await client.post(f"{BASE}/payroll/enable", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "status": "active"}
    assert (await fetch_installation(session_factory, "payroll")).status == InstallationStatus.ACTIVE

    resp = await client.post(f"{BASE}/payroll/enable", headers=headers)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "NOT_DISABLED"


@pytest.mark.asyncio
async def test_disable_with_dependents(client, db_session):
    await make_addon(db_session, "payroll")
    await make_addon(db_session, "payroll-reports", name="Payroll Reports", dependencies=[{"addon_id": "payroll"}])
    await make_installation(db_session, "payroll", "1.0.0")
    await make_installation(db_session, "payroll-reports", "1.0.0")

    resp = await client.post(f"{BASE}/payroll/disable", headers=get_auth_headers())
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["code"] == "HAS_DEPENDENTS"
    assert detail["details"] == {"dependents": ["Payroll Reports"]}


@pytest.mark.asyncio
async def test_update_config_endpoint(client, db_session):
    await make_addon(db_session, "payroll")
    await make_installation(db_session, "payroll", "1.0.0")

    resp = await client.patch(f"{BASE}/payroll", json={"config": {"currency": "USD"}}, headers=get_auth_headers())
    assert resp.status_code == 200
    assert resp.json()["installation"]["config"] == {"currency": "USD"}


@pytest.mark.asyncio
async def test_uninstall_endpoint_and_history(client, db_session, session_factory):
    await make_addon(db_session, "payroll")
    headers = get_auth_headers()
    await client.post(BASE, json={"addon_id": "payroll"}, headers=headers)

    resp = await client.delete(f"{BASE}/payroll", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "uninstalled": True}
    assert await fetch_installation(session_factory, "payroll") is None

    resp = await client.delete(f"{BASE}/payroll", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NOT_INSTALLED"

    resp = await client.get(f"{BASE}/history", params={"addon_id": "payroll"}, headers=headers)
    assert resp.status_code == 200
    assert [h["action"] for h in resp.json()["history"]] == ["uninstall", "install"]


@pytest.mark.asyncio
async def test_transaction_failure_maps_to_500(client, db_session, lifecycle, monkeypatch):
    from sqlalchemy.exc import OperationalError

    await make_addon(db_session, "payroll")
    await make_installation(db_session, "payroll", "1.0.0")

    async def failing_record_history(*args, **kwargs):
        raise OperationalError("INSERT INTO addon_install_history", {}, Exception("database is locked"))
    monkeypatch.setattr(lifecycle, "_record_history", failing_record_history)

    resp = await client.post(f"{BASE}/payroll/disable", headers=get_auth_headers())
    assert resp.status_code == 500
    detail = resp.json()["detail"]
    assert detail["code"] == "DISABLE_FAILED"
    assert detail["rollback_performed"] is True
