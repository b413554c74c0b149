"""
Add-on dependency resolution

Read-only queries over a tenant's installations:
- installed_addons / declared_dependencies: the raw graph
- check_dependencies: can this add-on (at this version) be installed or enabled?
- check_dependents: which installed add-ons would break if this one went away?

Disabled installations still count as present for check_dependents (their data
is kept) but not for check_dependencies.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Addon, AddonVersion, TenantAddon, InstallationStatus
from version_compare import InvalidVersionError, compare_versions

logger = logging.getLogger("addon-engine.dependencies")

PRESENT_FOR_DEPENDENCIES = (
    InstallationStatus.ACTIVE,
    InstallationStatus.INSTALLING,
    InstallationStatus.UPDATING,
)
PRESENT_FOR_DEPENDENTS = (
    InstallationStatus.ACTIVE,
    InstallationStatus.DISABLED,
)


@dataclass(frozen=True)
class AddonDependency:
    """One entry of an addon- or version-level dependency list"""
    addon_id: str
    optional: bool = False
    min_version: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AddonDependency":
        return cls(
            addon_id=str(raw["addon_id"]),
            optional=bool(raw.get("optional", False)),
            min_version=raw.get("min_version") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "addon_id": self.addon_id,
            "optional": self.optional,
            "min_version": self.min_version,
        }


@dataclass(frozen=True)
class InstalledAddon:
    addon_id: str
    version_id: Optional[str]
    status: InstallationStatus


@dataclass
class DependencyCheck:
    satisfied: bool
    missing: List[AddonDependency] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "satisfied": self.satisfied,
            "missing": [d.to_dict() for d in self.missing],
            "conflicts": list(self.conflicts),
        }


@dataclass
class DependentCheck:
    has_dependents: bool
    dependents: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"has_dependents": self.has_dependents, "dependents": list(self.dependents)}


def parse_dependencies(raw: Optional[Iterable[Dict[str, Any]]]) -> List[AddonDependency]:
    """Decode a stored JSON dependency list. None and [] both mean no dependencies.

    Entries that are not objects or carry no addon_id are skipped with a warning.
    """
    dependencies = []
    for entry in raw or []:
        if not isinstance(entry, dict) or not entry.get("addon_id"):
            logger.warning(f"Skipping malformed dependency entry {entry!r}")
            continue
        dependencies.append(AddonDependency.from_dict(entry))
    return dependencies


# ============================================================
# GRAPH READER
# ============================================================

async def installed_addons(
    db: AsyncSession,
    tenant_id: str,
    statuses: Iterable[InstallationStatus],
    exclude_addon_id: Optional[str] = None,
) -> List[InstalledAddon]:
    query = select(TenantAddon.addon_id, TenantAddon.version_id, TenantAddon.status).where(
        TenantAddon.tenant_id == tenant_id,
        TenantAddon.status.in_(list(statuses)),
    )
    if exclude_addon_id is not None:
        query = query.where(TenantAddon.addon_id != exclude_addon_id)

    result = await db.execute(query)
    return [InstalledAddon(addon_id=a, version_id=v, status=s) for a, v, s in result.all()]


async def declared_dependencies(
    db: AsyncSession, addon: Addon, version_id: Optional[str] = None
) -> List[AddonDependency]:
    dependencies = parse_dependencies(addon.dependencies)
    if version_id:
        result = await db.execute(
            select(AddonVersion.dependencies).where(AddonVersion.id == version_id)
        )
        version_deps = result.scalar_one_or_none()
        dependencies.extend(parse_dependencies(version_deps))
    return dependencies


# ============================================================
# CHECKERS
# ============================================================

async def check_dependencies(
    db: AsyncSession,
    tenant_id: str,
    addon_id: str,
    target_version_id: Optional[str] = None,
) -> DependencyCheck:
    addon = (await db.execute(select(Addon).where(Addon.id == addon_id))).scalar_one_or_none()
    if not addon:
        return DependencyCheck(satisfied=False, conflicts=["Add-on not found"])

    dependencies = await declared_dependencies(db, addon, target_version_id)
    if not dependencies:
        return DependencyCheck(satisfied=True)

    installed = {
        inst.addon_id: inst
        for inst in await installed_addons(db, tenant_id, PRESENT_FOR_DEPENDENCIES)
    }

    # Resolve every installed version that a min_version constraint needs in one query
    wanted_versions = {
        installed[d.addon_id].version_id
        for d in dependencies
        if d.min_version and d.addon_id in installed and installed[d.addon_id].version_id
    }
    version_labels: Dict[str, str] = {}
    if wanted_versions:
        result = await db.execute(select(AddonVersion).where(AddonVersion.id.in_(wanted_versions)))
        version_labels = {v.id: v.version for v in result.scalars().all()}

    missing: List[AddonDependency] = []
    conflicts: List[str] = []

    for dep in dependencies:
        inst = installed.get(dep.addon_id)
        if inst is None:
            if not dep.optional:
                missing.append(dep)
            continue

        if not dep.min_version or dep.optional:
            continue

        installed_version = version_labels.get(inst.version_id)
        if installed_version is None:
            continue

        try:
            too_old = compare_versions(installed_version, dep.min_version) < 0
        except InvalidVersionError:
            logger.warning(
                f"Add-on {addon_id} declares invalid min_version {dep.min_version!r} for {dep.addon_id}"
            )
            conflicts.append(
                f"Dependency {dep.addon_id} declares an invalid minimum version '{dep.min_version}'"
            )
            continue

        if too_old:
            conflicts.append(
                f"Dependency {dep.addon_id} requires version >= {dep.min_version}, "
                f"but {installed_version} is installed"
            )

    return DependencyCheck(
        satisfied=not missing and not conflicts,
        missing=missing,
        conflicts=conflicts,
    )


async def check_dependents(db: AsyncSession, tenant_id: str, addon_id: str) -> DependentCheck:
    others = await installed_addons(db, tenant_id, PRESENT_FOR_DEPENDENTS, exclude_addon_id=addon_id)
    if not others:
        return DependentCheck(has_dependents=False)

    addon_rows = await db.execute(
        select(Addon.id, Addon.name, Addon.dependencies).where(
            Addon.id.in_({inst.addon_id for inst in others})
        )
    )
    addon_map = {
        row_id: (name, parse_dependencies(deps)) for row_id, name, deps in addon_rows.all()
    }

    version_ids = {inst.version_id for inst in others if inst.version_id}
    version_map: Dict[str, List[AddonDependency]] = {}
    if version_ids:
        version_rows = await db.execute(
            select(AddonVersion.id, AddonVersion.dependencies).where(AddonVersion.id.in_(version_ids))
        )
        version_map = {row_id: parse_dependencies(deps) for row_id, deps in version_rows.all()}

    def _requires_target(deps: List[AddonDependency]) -> bool:
        return any(d.addon_id == addon_id and not d.optional for d in deps)

    dependents: List[str] = []
    for inst in others:
        if inst.addon_id not in addon_map:
            continue
        name, addon_deps = addon_map[inst.addon_id]
        if _requires_target(addon_deps):
            dependents.append(name)
            continue
        if inst.version_id and _requires_target(version_map.get(inst.version_id, [])):
            dependents.append(name)

    return DependentCheck(has_dependents=bool(dependents), dependents=dependents)
