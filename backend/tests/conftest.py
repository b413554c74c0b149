# tests/conftest.py - Shared test fixtures
import os
from typing import Dict, Iterable, List, Optional

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test_addons.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import (
    Base, Addon, AddonVersion, AddonPricing, TenantAddon,
    AddonStatus, InstallationStatus, new_uuid,
)
from auth import AuthService, UserRole
from addon_lifecycle import AddonLifecycleService, get_lifecycle_service
from main import app

TENANT_ID = "tenant-t"
OTHER_TENANT_ID = "tenant-other"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def lifecycle(session_factory):
    return AddonLifecycleService(session_factory)


@pytest_asyncio.fixture(scope="function")
async def client(lifecycle):
    """HTTP test client bound to the test database"""
    app.dependency_overrides[get_lifecycle_service] = lambda: lifecycle
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ============================================================
# CATALOG HELPERS
# ============================================================

async def make_addon(
    db: AsyncSession,
    slug: str,
    name: Optional[str] = None,
    versions: Iterable[str] = ("1.0.0",),
    dependencies: Optional[List[Dict]] = None,
    version_dependencies: Optional[Dict[str, List[Dict]]] = None,
    status: AddonStatus = AddonStatus.PUBLISHED,
) -> Addon:
    """Create an add-on whose id is its slug. The last version listed is the latest.

    Version ids are "<slug>@<version>".
    """
    addon = Addon(
        id=slug,
        slug=slug,
        name=name or slug.replace("-", " ").title(),
        status=status,
        install_count=0,
        dependencies=dependencies or [],
    )
    db.add(addon)

    labels = list(versions)
    for i, label in enumerate(labels):
        major, minor, patch = (int(p) for p in label.split("."))
        db.add(AddonVersion(
            id=f"{slug}@{label}",
            addon_id=slug,
            semver_major=major,
            semver_minor=minor,
            semver_patch=patch,
            is_latest=i == len(labels) - 1,
            dependencies=(version_dependencies or {}).get(label),
        ))
    await db.commit()
    return addon


async def make_pricing(db: AsyncSession, addon_id: str, trial_days: Optional[int] = None) -> AddonPricing:
    pricing = AddonPricing(id=new_uuid(), addon_id=addon_id, name="Monthly",
                           billing_cycle="monthly", trial_days=trial_days)
    db.add(pricing)
    await db.commit()
    return pricing


async def make_installation(
    db: AsyncSession,
    addon_id: str,
    version: str,
    status: InstallationStatus = InstallationStatus.ACTIVE,
    tenant_id: str = TENANT_ID,
) -> TenantAddon:
    """Insert an installation row directly, bypassing the lifecycle service"""
    installation = TenantAddon(
        id=new_uuid(),
        tenant_id=tenant_id,
        addon_id=addon_id,
        version_id=f"{addon_id}@{version}",
        status=status,
        config={},
        installed_by="seed",
    )
    db.add(installation)
    await db.commit()
    return installation


async def fetch_installation(session_factory, addon_id: str, tenant_id: str = TENANT_ID) -> Optional[TenantAddon]:
    async with session_factory() as db:
        result = await db.execute(
            select(TenantAddon).where(TenantAddon.tenant_id == tenant_id, TenantAddon.addon_id == addon_id)
        )
        return result.scalar_one_or_none()


async def fetch_install_count(session_factory, addon_id: str) -> int:
    async with session_factory() as db:
        return (await db.execute(select(Addon.install_count).where(Addon.id == addon_id))).scalar_one()


def get_auth_headers(
    tenant_id: str = TENANT_ID,
    user_id: str = "u1",
    role: UserRole = UserRole.ORG_ADMIN,
) -> dict:
    """Generate auth headers for a tenant user"""
    token = AuthService.create_access_token({
        "sub": user_id,
        "tenant_id": tenant_id,
        "role": role.value,
    })
    return {"Authorization": f"Bearer {token}"}
