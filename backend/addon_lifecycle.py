"""
Add-on Lifecycle Service

Installs, upgrades, disables, enables, reconfigures and uninstalls add-ons for
a tenant. Every state change follows the same shape:

1. read-only pre-checks in a short-lived session (fast fail, precise codes)
2. one transaction that re-reads the installation row FOR UPDATE, re-validates
   its state, mutates it and appends exactly one history row
3. any database error inside the transaction rolls the whole thing back and is
   reported as <OP>_FAILED with rollback_performed=True

Expected failures come back as LifecycleResult values. Only errors the engine
cannot classify (lost connections, programming errors) are raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select, update, case
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from addon_dependencies import (
    DependencyCheck, DependentCheck, check_dependencies, check_dependents,
)
from database import async_session_maker
from models import (
    Addon, AddonVersion, AddonPricing, TenantAddon, AddonInstallHistory,
    AddonStatus, InstallationStatus, HistoryAction, HistoryStatus,
    utcnow, new_uuid,
)

logger = logging.getLogger("addon-engine.lifecycle")

# Postgres unique_violation
UNIQUE_VIOLATION_SQLSTATE = "23505"
SQLITE_UNIQUE_ERRORNAME = "SQLITE_CONSTRAINT_UNIQUE"

UPGRADABLE_STATES = (InstallationStatus.ACTIVE, InstallationStatus.DISABLED)


class LifecycleErrorCode(str, Enum):
    # Not found
    ADDON_NOT_FOUND = "ADDON_NOT_FOUND"
    NOT_INSTALLED = "NOT_INSTALLED"
    VERSION_NOT_FOUND = "VERSION_NOT_FOUND"
    # State conflicts
    ALREADY_INSTALLED = "ALREADY_INSTALLED"
    ALREADY_DISABLED = "ALREADY_DISABLED"
    NOT_DISABLED = "NOT_DISABLED"
    INVALID_STATE = "INVALID_STATE"
    # Dependency violations
    MISSING_DEPENDENCIES = "MISSING_DEPENDENCIES"
    HAS_DEPENDENTS = "HAS_DEPENDENTS"
    # Bad request
    NO_VERSION = "NO_VERSION"
    INVALID_PRICING = "INVALID_PRICING"
    # Transaction failures (rolled back)
    INSTALL_FAILED = "INSTALL_FAILED"
    UPGRADE_FAILED = "UPGRADE_FAILED"
    DISABLE_FAILED = "DISABLE_FAILED"
    ENABLE_FAILED = "ENABLE_FAILED"
    UNINSTALL_FAILED = "UNINSTALL_FAILED"
    CONFIGURE_FAILED = "CONFIGURE_FAILED"


@dataclass
class LifecycleResult:
    """Outcome of a lifecycle operation"""
    success: bool
    code: Optional[LifecycleErrorCode] = None
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    rollback_performed: bool = False

    @classmethod
    def ok(cls, data: Optional[Dict[str, Any]] = None) -> "LifecycleResult":
        return cls(success=True, data=data or {})

    @classmethod
    def fail(
        cls,
        code: LifecycleErrorCode,
        error: str,
        data: Optional[Dict[str, Any]] = None,
        rollback_performed: bool = False,
    ) -> "LifecycleResult":
        return cls(success=False, code=code, error=error, data=data or {},
                   rollback_performed=rollback_performed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "code": self.code.value if self.code else None,
            "error": self.error,
            "data": self.data,
            "rollback_performed": self.rollback_performed,
        }


class _TransitionConflict(Exception):
    """Raised inside a transaction when the row no longer allows the transition"""

    def __init__(self, code: LifecycleErrorCode, error: str):
        super().__init__(error)
        self.code = code
        self.error = error


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION_SQLSTATE:
        return True
    return getattr(orig, "sqlite_errorname", None) == SQLITE_UNIQUE_ERRORNAME


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _installation_out(inst: TenantAddon) -> Dict[str, Any]:
    return {
        "id": inst.id,
        "tenant_id": inst.tenant_id,
        "addon_id": inst.addon_id,
        "version_id": inst.version_id,
        "pricing_id": inst.pricing_id,
        "status": inst.status.value,
        "config": inst.config or {},
        "trial_ends_at": _iso(inst.trial_ends_at),
        "installed_by": inst.installed_by,
        "installed_at": _iso(inst.installed_at),
        "updated_at": _iso(inst.updated_at),
    }


def _history_out(entry: AddonInstallHistory) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "tenant_addon_id": entry.tenant_addon_id,
        "tenant_id": entry.tenant_id,
        "addon_id": entry.addon_id,
        "action": entry.action.value,
        "from_version_id": entry.from_version_id,
        "to_version_id": entry.to_version_id,
        "status": entry.status.value,
        "error_message": entry.error_message,
        "performed_by": entry.performed_by,
        "performed_at": _iso(entry.performed_at),
        "completed_at": _iso(entry.completed_at),
    }


class AddonLifecycleService:
    """Transactional lifecycle operations for tenant add-on installations"""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    # ============================================================
    # DEPENDENCY QUERIES
    # ============================================================

    async def check_dependencies(
        self, tenant_id: str, addon_id: str, target_version_id: Optional[str] = None
    ) -> DependencyCheck:
        async with self._session_factory() as db:
            return await check_dependencies(db, tenant_id, addon_id, target_version_id)

    async def check_dependents(self, tenant_id: str, addon_id: str) -> DependentCheck:
        async with self._session_factory() as db:
            return await check_dependents(db, tenant_id, addon_id)

    # ============================================================
    # INSTALL
    # ============================================================

    async def install(
        self,
        tenant_id: str,
        addon_id: str,
        pricing_id: Optional[str],
        config: Optional[Dict[str, Any]],
        user_id: str,
    ) -> LifecycleResult:
        config = dict(config or {})
        action = HistoryAction.INSTALL

        async with self._session_factory() as db:
            addon = (await db.execute(
                select(Addon).where(Addon.id == addon_id, Addon.status == AddonStatus.PUBLISHED)
            )).scalar_one_or_none()
            if not addon:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.ADDON_NOT_FOUND,
                                    "Add-on not found or not available")

            if await self._find_installation(db, tenant_id, addon_id):
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.ALREADY_INSTALLED,
                                    "Add-on already installed")

            latest = (await db.execute(
                select(AddonVersion).where(
                    AddonVersion.addon_id == addon_id, AddonVersion.is_latest == True,
                ).limit(1)
            )).scalar_one_or_none()
            if not latest:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.NO_VERSION,
                                    "No available version")

            dep_check = await check_dependencies(db, tenant_id, addon_id, latest.id)
            if not dep_check.satisfied:
                return self._missing_dependencies(action, tenant_id, addon_id, dep_check,
                                                  "Missing dependencies")

            trial_days = None
            if pricing_id:
                pricing = (await db.execute(
                    select(AddonPricing).where(
                        AddonPricing.id == pricing_id, AddonPricing.addon_id == addon_id,
                    )
                )).scalar_one_or_none()
                if not pricing:
                    return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.INVALID_PRICING,
                                        "Invalid pricing option")
                trial_days = pricing.trial_days

            version_id = latest.id
            version_label = latest.version

        async def apply(tx: AsyncSession) -> Dict[str, Any]:
            # The unique constraint enforces this too; checking first gives a clean code
            if await self._find_installation(tx, tenant_id, addon_id, lock=True):
                raise _TransitionConflict(LifecycleErrorCode.ALREADY_INSTALLED, "Add-on already installed")

            now = utcnow()
            installation = TenantAddon(
                id=new_uuid(),
                tenant_id=tenant_id,
                addon_id=addon_id,
                version_id=version_id,
                pricing_id=pricing_id or None,
                status=InstallationStatus.ACTIVE,
                config=config,
                trial_ends_at=now + timedelta(days=trial_days) if trial_days else None,
                installed_by=user_id,
                installed_at=now,
                updated_at=now,
            )
            tx.add(installation)
            await tx.flush()

            await self._record_history(
                tx, installation_id=installation.id, tenant_id=tenant_id, addon_id=addon_id,
                action=action, user_id=user_id, to_version_id=version_id,
            )
            await tx.execute(
                update(Addon)
                .where(Addon.id == addon_id)
                .values(install_count=Addon.install_count + 1)
                .execution_options(synchronize_session=False)
            )
            return {"installation": _installation_out(installation), "version": version_label}

        result = await self._transact(
            apply, action=action, tenant_id=tenant_id, addon_id=addon_id, user_id=user_id,
            failure_code=LifecycleErrorCode.INSTALL_FAILED, failure_error="Installation failed",
            to_version_id=version_id,
        )
        if result.success:
            logger.info(f"Installed add-on {addon_id} {version_label} for tenant {tenant_id}")
        return result

    # ============================================================
    # UPGRADE
    # ============================================================

    async def upgrade(
        self, tenant_id: str, addon_id: str, target_version_id: str, user_id: str
    ) -> LifecycleResult:
        action = HistoryAction.UPDATE

        async with self._session_factory() as db:
            installation = await self._find_installation(db, tenant_id, addon_id)
            if not installation:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.NOT_INSTALLED,
                                    "Installation not found")
            if installation.status not in UPGRADABLE_STATES:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.INVALID_STATE,
                                    "Cannot upgrade add-on in current state")

            target = (await db.execute(
                select(AddonVersion).where(
                    AddonVersion.id == target_version_id, AddonVersion.addon_id == addon_id,
                )
            )).scalar_one_or_none()
            if not target:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.VERSION_NOT_FOUND,
                                    "Target version not found")

            dep_check = await check_dependencies(db, tenant_id, addon_id, target_version_id)
            if not dep_check.satisfied:
                return self._missing_dependencies(action, tenant_id, addon_id, dep_check,
                                                  "Missing dependencies for target version")

            installation_id = installation.id
            from_version_id = installation.version_id
            target_label = target.version

        async def apply(tx: AsyncSession) -> Dict[str, Any]:
            current = await self._lock_installation(tx, installation_id)
            if current.status not in UPGRADABLE_STATES:
                raise _TransitionConflict(LifecycleErrorCode.INVALID_STATE,
                                          "Cannot upgrade add-on in current state")

            previous_version_id = current.version_id
            current.version_id = target_version_id
            current.updated_at = utcnow()
            await tx.flush()

            await self._record_history(
                tx, installation_id=current.id, tenant_id=tenant_id, addon_id=addon_id,
                action=action, user_id=user_id,
                from_version_id=previous_version_id, to_version_id=target_version_id,
            )
            return {
                "from_version_id": previous_version_id,
                "to_version_id": target_version_id,
                "to_version": target_label,
                "status": current.status.value,
            }

        result = await self._transact(
            apply, action=action, tenant_id=tenant_id, addon_id=addon_id, user_id=user_id,
            failure_code=LifecycleErrorCode.UPGRADE_FAILED, failure_error="Upgrade failed",
            installation_id=installation_id,
            from_version_id=from_version_id, to_version_id=target_version_id,
        )
        if result.success:
            logger.info(f"Upgraded add-on {addon_id} to {target_label} for tenant {tenant_id}")
        return result

    # ============================================================
    # DISABLE / ENABLE
    # ============================================================

    async def disable(self, tenant_id: str, addon_id: str, user_id: str) -> LifecycleResult:
        action = HistoryAction.DISABLE

        async with self._session_factory() as db:
            installation = await self._find_installation(db, tenant_id, addon_id)
            if not installation:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.NOT_INSTALLED,
                                    "Installation not found")
            if installation.status == InstallationStatus.DISABLED:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.ALREADY_DISABLED,
                                    "Add-on is already disabled")
            if installation.status != InstallationStatus.ACTIVE:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.INVALID_STATE,
                                    "Cannot disable add-on in current state")

            dependents = await check_dependents(db, tenant_id, addon_id)
            if dependents.has_dependents:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.HAS_DEPENDENTS,
                                    "Cannot disable: other add-ons depend on this one",
                                    {"dependents": dependents.dependents})

            installation_id = installation.id

        async def apply(tx: AsyncSession) -> Dict[str, Any]:
            current = await self._lock_installation(tx, installation_id)
            if current.status == InstallationStatus.DISABLED:
                raise _TransitionConflict(LifecycleErrorCode.ALREADY_DISABLED, "Add-on is already disabled")
            if current.status != InstallationStatus.ACTIVE:
                raise _TransitionConflict(LifecycleErrorCode.INVALID_STATE,
                                          "Cannot disable add-on in current state")

            current.status = InstallationStatus.DISABLED
            current.updated_at = utcnow()
            await tx.flush()

            await self._record_history(
                tx, installation_id=current.id, tenant_id=tenant_id, addon_id=addon_id,
                action=action, user_id=user_id,
            )
            return {"status": InstallationStatus.DISABLED.value}

        result = await self._transact(
            apply, action=action, tenant_id=tenant_id, addon_id=addon_id, user_id=user_id,
            failure_code=LifecycleErrorCode.DISABLE_FAILED, failure_error="Failed to disable add-on",
            installation_id=installation_id,
        )
        if result.success:
            logger.info(f"Disabled add-on {addon_id} for tenant {tenant_id}")
        return result

    async def enable(self, tenant_id: str, addon_id: str, user_id: str) -> LifecycleResult:
        action = HistoryAction.ENABLE

        async with self._session_factory() as db:
            installation = await self._find_installation(db, tenant_id, addon_id)
            if not installation:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.NOT_INSTALLED,
                                    "Installation not found")
            if installation.status != InstallationStatus.DISABLED:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.NOT_DISABLED,
                                    "Add-on is not disabled")

            # Dependencies may have changed while this add-on was disabled
            dep_check = await check_dependencies(db, tenant_id, addon_id, installation.version_id)
            if not dep_check.satisfied:
                return self._missing_dependencies(action, tenant_id, addon_id, dep_check,
                                                  "Cannot enable: missing dependencies")

            installation_id = installation.id

        async def apply(tx: AsyncSession) -> Dict[str, Any]:
            current = await self._lock_installation(tx, installation_id)
            if current.status != InstallationStatus.DISABLED:
                raise _TransitionConflict(LifecycleErrorCode.NOT_DISABLED, "Add-on is not disabled")

            current.status = InstallationStatus.ACTIVE
            current.updated_at = utcnow()
            await tx.flush()

            await self._record_history(
                tx, installation_id=current.id, tenant_id=tenant_id, addon_id=addon_id,
                action=action, user_id=user_id,
            )
            return {"status": InstallationStatus.ACTIVE.value}

        result = await self._transact(
            apply, action=action, tenant_id=tenant_id, addon_id=addon_id, user_id=user_id,
            failure_code=LifecycleErrorCode.ENABLE_FAILED, failure_error="Failed to enable add-on",
            installation_id=installation_id,
        )
        if result.success:
            logger.info(f"Enabled add-on {addon_id} for tenant {tenant_id}")
        return result

    # ============================================================
    # CONFIGURE
    # ============================================================

    async def configure(
        self, tenant_id: str, addon_id: str, config: Dict[str, Any], user_id: str
    ) -> LifecycleResult:
        action = HistoryAction.CONFIGURE

        async with self._session_factory() as db:
            installation = await self._find_installation(db, tenant_id, addon_id)
            if not installation:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.NOT_INSTALLED,
                                    "Installation not found")
            installation_id = installation.id

        async def apply(tx: AsyncSession) -> Dict[str, Any]:
            current = await self._lock_installation(tx, installation_id)
            current.config = dict(config)
            current.updated_at = utcnow()
            await tx.flush()

            await self._record_history(
                tx, installation_id=current.id, tenant_id=tenant_id, addon_id=addon_id,
                action=action, user_id=user_id,
            )
            return {"installation": _installation_out(current)}

        return await self._transact(
            apply, action=action, tenant_id=tenant_id, addon_id=addon_id, user_id=user_id,
            failure_code=LifecycleErrorCode.CONFIGURE_FAILED, failure_error="Failed to update configuration",
            installation_id=installation_id,
        )

    # ============================================================
    # UNINSTALL
    # ============================================================

    async def uninstall(self, tenant_id: str, addon_id: str, user_id: str) -> LifecycleResult:
        action = HistoryAction.UNINSTALL

        async with self._session_factory() as db:
            installation = await self._find_installation(db, tenant_id, addon_id)
            if not installation:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.NOT_INSTALLED,
                                    "Installation not found")

            dependents = await check_dependents(db, tenant_id, addon_id)
            if dependents.has_dependents:
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.HAS_DEPENDENTS,
                                    "Cannot uninstall: other add-ons depend on this one",
                                    {"dependents": dependents.dependents})

            installation_id = installation.id
            from_version_id = installation.version_id

        async def apply(tx: AsyncSession) -> Dict[str, Any]:
            current = await self._lock_installation(tx, installation_id)

            # History first: it must reference a row that still exists
            await self._record_history(
                tx, installation_id=current.id, tenant_id=tenant_id, addon_id=addon_id,
                action=action, user_id=user_id, from_version_id=current.version_id,
            )
            await tx.delete(current)
            await tx.flush()

            await tx.execute(
                update(Addon)
                .where(Addon.id == addon_id)
                .values(install_count=case(
                    (Addon.install_count > 0, Addon.install_count - 1), else_=0,
                ))
                .execution_options(synchronize_session=False)
            )
            return {"uninstalled": True}

        result = await self._transact(
            apply, action=action, tenant_id=tenant_id, addon_id=addon_id, user_id=user_id,
            failure_code=LifecycleErrorCode.UNINSTALL_FAILED, failure_error="Uninstall failed",
            installation_id=installation_id, from_version_id=from_version_id,
        )
        if result.success:
            logger.info(f"Uninstalled add-on {addon_id} for tenant {tenant_id}")
        return result

    # ============================================================
    # READS
    # ============================================================

    async def list_installed(self, tenant_id: str) -> List[Dict[str, Any]]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(TenantAddon, Addon, AddonVersion)
                .join(Addon, TenantAddon.addon_id == Addon.id)
                .join(AddonVersion, TenantAddon.version_id == AddonVersion.id)
                .where(TenantAddon.tenant_id == tenant_id)
                .order_by(Addon.name)
            )
            return [
                {
                    **_installation_out(inst),
                    "addon_name": addon.name,
                    "addon_slug": addon.slug,
                    "version": version.version,
                }
                for inst, addon, version in result.all()
            ]

    async def get_history(self, tenant_id: str, addon_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = select(AddonInstallHistory).where(AddonInstallHistory.tenant_id == tenant_id)
        if addon_id:
            query = query.where(AddonInstallHistory.addon_id == addon_id)
        query = query.order_by(AddonInstallHistory.performed_at.desc(), AddonInstallHistory.id.desc())

        async with self._session_factory() as db:
            result = await db.execute(query)
            return [_history_out(entry) for entry in result.scalars().all()]

    # ============================================================
    # INTERNALS
    # ============================================================

    async def _find_installation(
        self, db: AsyncSession, tenant_id: str, addon_id: str, lock: bool = False
    ) -> Optional[TenantAddon]:
        query = select(TenantAddon).where(
            TenantAddon.tenant_id == tenant_id, TenantAddon.addon_id == addon_id,
        )
        if lock:
            query = query.with_for_update()
        return (await db.execute(query)).scalar_one_or_none()

    async def _lock_installation(self, tx: AsyncSession, installation_id: str) -> TenantAddon:
        current = (await tx.execute(
            select(TenantAddon).where(TenantAddon.id == installation_id).with_for_update()
        )).scalar_one_or_none()
        if current is None:
            raise _TransitionConflict(LifecycleErrorCode.NOT_INSTALLED, "Installation not found")
        return current

    async def _record_history(
        self,
        db: AsyncSession,
        *,
        installation_id: str,
        tenant_id: str,
        addon_id: str,
        action: HistoryAction,
        user_id: str,
        from_version_id: Optional[str] = None,
        to_version_id: Optional[str] = None,
    ) -> AddonInstallHistory:
        now = utcnow()
        entry = AddonInstallHistory(
            id=new_uuid(),
            tenant_addon_id=installation_id,
            tenant_id=tenant_id,
            addon_id=addon_id,
            action=action,
            from_version_id=from_version_id,
            to_version_id=to_version_id,
            status=HistoryStatus.COMPLETED,
            performed_by=user_id,
            performed_at=now,
            completed_at=now,
        )
        db.add(entry)
        await db.flush()
        return entry

    async def _record_failure(
        self,
        *,
        action: HistoryAction,
        tenant_id: str,
        addon_id: str,
        user_id: str,
        error: str,
        installation_id: Optional[str] = None,
        from_version_id: Optional[str] = None,
        to_version_id: Optional[str] = None,
    ) -> None:
        """Audit a rolled-back attempt in its own transaction. Best effort."""
        try:
            async with self._session_factory.begin() as db:
                db.add(AddonInstallHistory(
                    id=new_uuid(),
                    tenant_addon_id=installation_id,
                    tenant_id=tenant_id,
                    addon_id=addon_id,
                    action=action,
                    from_version_id=from_version_id,
                    to_version_id=to_version_id,
                    status=HistoryStatus.FAILED,
                    error_message=error[:2000],
                    performed_by=user_id,
                    performed_at=utcnow(),
                ))
        except SQLAlchemyError as exc:
            logger.warning(f"Could not record failed {action.value} of {addon_id} for tenant {tenant_id}: {exc}")

    async def _transact(
        self,
        apply: Callable[[AsyncSession], Awaitable[Dict[str, Any]]],
        *,
        action: HistoryAction,
        tenant_id: str,
        addon_id: str,
        user_id: str,
        failure_code: LifecycleErrorCode,
        failure_error: str,
        installation_id: Optional[str] = None,
        from_version_id: Optional[str] = None,
        to_version_id: Optional[str] = None,
    ) -> LifecycleResult:
        try:
            async with self._session_factory.begin() as tx:
                data = await apply(tx)
        except _TransitionConflict as conflict:
            return self._reject(action, tenant_id, addon_id, conflict.code, conflict.error)
        except SQLAlchemyError as exc:
            if isinstance(exc, DBAPIError) and exc.connection_invalidated:
                raise
            if (
                action == HistoryAction.INSTALL
                and isinstance(exc, IntegrityError)
                and _is_unique_violation(exc)
            ):
                # Lost the race against a concurrent install of the same add-on
                return self._reject(action, tenant_id, addon_id, LifecycleErrorCode.ALREADY_INSTALLED,
                                    "Add-on already installed")

            logger.error(
                f"{action.value} of add-on {addon_id} for tenant {tenant_id} rolled back: {exc}",
                exc_info=True,
            )
            await self._record_failure(
                action=action, tenant_id=tenant_id, addon_id=addon_id, user_id=user_id,
                error=str(exc), installation_id=installation_id,
                from_version_id=from_version_id, to_version_id=to_version_id,
            )
            return LifecycleResult.fail(failure_code, failure_error, rollback_performed=True)

        return LifecycleResult.ok(data)

    def _reject(
        self,
        action: HistoryAction,
        tenant_id: str,
        addon_id: str,
        code: LifecycleErrorCode,
        error: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> LifecycleResult:
        logger.warning(f"{action.value} of add-on {addon_id} for tenant {tenant_id} rejected: {code.value}")
        return LifecycleResult.fail(code, error, data)

    def _missing_dependencies(
        self,
        action: HistoryAction,
        tenant_id: str,
        addon_id: str,
        dep_check: DependencyCheck,
        error: str,
    ) -> LifecycleResult:
        return self._reject(
            action, tenant_id, addon_id, LifecycleErrorCode.MISSING_DEPENDENCIES, error,
            {
                "missing": [d.to_dict() for d in dep_check.missing],
                "conflicts": list(dep_check.conflicts),
            },
        )


addon_lifecycle = AddonLifecycleService(async_session_maker)


def get_lifecycle_service() -> AddonLifecycleService:
    """Dependency for the shared lifecycle service (FastAPI Depends)"""
    return addon_lifecycle
