# models.py - Database models for the add-on lifecycle engine
# - UUID string primary keys everywhere
# - Catalog tables (addons, versions, pricing) are read-only for the engine
# - tenant_addons is the only installation record; one row per (tenant, addon)
# - addon_install_history is append-only

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class AddonStatus(str, PyEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    DEPRECATED = "deprecated"


class InstallationStatus(str, PyEnum):
    INSTALLING = "installing"
    ACTIVE = "active"
    DISABLED = "disabled"
    UPDATING = "updating"


class HistoryAction(str, PyEnum):
    INSTALL = "install"
    UPDATE = "update"
    DISABLE = "disable"
    ENABLE = "enable"
    UNINSTALL = "uninstall"
    CONFIGURE = "configure"


class HistoryStatus(str, PyEnum):
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================
# CATALOG
# ============================================================

class Addon(Base):
    __tablename__ = "addons"

    id = Column(String, primary_key=True, default=new_uuid)
    slug = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(AddonStatus), default=AddonStatus.DRAFT, nullable=False, index=True)
    install_count = Column(Integer, nullable=False, default=0)
    # [{"addon_id": ..., "optional": false, "min_version": "1.0.0"}]
    dependencies = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    versions = relationship("AddonVersion", back_populates="addon")
    pricing = relationship("AddonPricing", back_populates="addon")

    __table_args__ = (
        CheckConstraint("install_count >= 0", name="ck_addon_install_count_non_negative"),
    )


class AddonVersion(Base):
    __tablename__ = "addon_versions"

    id = Column(String, primary_key=True, default=new_uuid)
    addon_id = Column(String, ForeignKey("addons.id"), nullable=False, index=True)
    semver_major = Column(Integer, nullable=False, default=0)
    semver_minor = Column(Integer, nullable=False, default=0)
    semver_patch = Column(Integer, nullable=False, default=0)
    is_latest = Column(Boolean, nullable=False, default=False)
    dependencies = Column(JSON, nullable=True)  # additive to Addon.dependencies
    changelog = Column(Text, nullable=True)
    released_at = Column(DateTime(timezone=True), default=utcnow)

    addon = relationship("Addon", back_populates="versions")

    __table_args__ = (
        Index("idx_addon_version_latest", "addon_id", "is_latest"),
    )

    @property
    def version(self) -> str:
        return f"{self.semver_major}.{self.semver_minor}.{self.semver_patch}"


class AddonPricing(Base):
    __tablename__ = "addon_pricing"

    id = Column(String, primary_key=True, default=new_uuid)
    addon_id = Column(String, ForeignKey("addons.id"), nullable=False, index=True)
    name = Column(String, nullable=False, default="Standard")
    billing_cycle = Column(String, nullable=False, default="monthly")
    trial_days = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    addon = relationship("Addon", back_populates="pricing")


# ============================================================
# INSTALLATIONS
# ============================================================

class TenantAddon(Base):
    __tablename__ = "tenant_addons"

    id = Column(String, primary_key=True, default=new_uuid)
    tenant_id = Column(String, nullable=False, index=True)
    addon_id = Column(String, ForeignKey("addons.id"), nullable=False, index=True)
    version_id = Column(String, ForeignKey("addon_versions.id"), nullable=False)
    pricing_id = Column(String, ForeignKey("addon_pricing.id"), nullable=True)
    status = Column(SQLEnum(InstallationStatus), default=InstallationStatus.INSTALLING, nullable=False)
    config = Column(JSON, nullable=False, default=dict)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    installed_by = Column(String, nullable=False)
    installed_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "addon_id", name="uq_tenant_addon"),
        Index("idx_tenant_addon_status", "tenant_id", "status"),
    )


# ============================================================
# INSTALL HISTORY (append-only, never updated or deleted)
# ============================================================

class AddonInstallHistory(Base):
    __tablename__ = "addon_install_history"

    id = Column(String, primary_key=True, default=new_uuid)
    # No FK: history rows outlive the installation they describe
    tenant_addon_id = Column(String, nullable=True, index=True)
    tenant_id = Column(String, nullable=False, index=True)
    addon_id = Column(String, nullable=False, index=True)
    action = Column(SQLEnum(HistoryAction), nullable=False)
    from_version_id = Column(String, nullable=True)
    to_version_id = Column(String, nullable=True)
    status = Column(SQLEnum(HistoryStatus), nullable=False, default=HistoryStatus.COMPLETED)
    error_message = Column(Text, nullable=True)
    performed_by = Column(String, nullable=False)
    performed_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_history_tenant_time", "tenant_id", "performed_at"),
    )
