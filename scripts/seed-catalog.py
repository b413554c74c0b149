#!/usr/bin/env python3
"""
Add-on Lifecycle Engine - Catalog Seeder
Populates a development database with a small published add-on catalog
(dependencies, version-level dependencies, trial pricing) so the lifecycle
API can be exercised end to end.

Usage:
    python scripts/seed-catalog.py
    python scripts/seed-catalog.py --dry-run
    python scripts/seed-catalog.py --output catalog.json

Catalog administration is not part of the engine; this script writes the
catalog tables directly.
"""

import json
import asyncio
import argparse
from typing import Any

from sqlalchemy import select

from database import get_db_context, init_db
from models import Addon, AddonVersion, AddonPricing, AddonStatus


# ── Catalog ─────────────────────────────────────────────────

CATALOG = [
    {
        "slug": "payroll",
        "name": "Payroll",
        "description": "Run payroll, payslips and statutory deductions.",
        "versions": ["1.0.0", "1.1.0", "2.0.0"],
        "dependencies": [],
        "pricing": [{"name": "Monthly", "billing_cycle": "monthly", "trial_days": 14}],
    },
    {
        "slug": "payroll-reports",
        "name": "Payroll Reports",
        "description": "Period summaries and cost-centre breakdowns for payroll.",
        "versions": ["1.0.0"],
        "dependencies": [{"addon_id": "payroll", "optional": False, "min_version": "1.0.0"}],
        "pricing": [{"name": "Monthly", "billing_cycle": "monthly", "trial_days": None}],
    },
    {
        "slug": "timesheets",
        "name": "Timesheets",
        "description": "Weekly time capture. 2.x feeds approved hours into payroll.",
        "versions": ["1.0.0", "2.0.0"],
        "dependencies": [],
        "version_dependencies": {"2.0.0": [{"addon_id": "payroll", "optional": False, "min_version": "2.0.0"}]},
        "pricing": [],
    },
    {
        "slug": "crm",
        "name": "CRM",
        "description": "Contacts, companies and pipelines.",
        "versions": ["3.2.1"],
        "dependencies": [],
        "pricing": [{"name": "Annual", "billing_cycle": "yearly", "trial_days": 30}],
    },
    {
        "slug": "mailer",
        "name": "Mailer",
        "description": "Transactional email. Uses CRM contacts when available.",
        "versions": ["0.9.0", "1.0.0"],
        "dependencies": [{"addon_id": "crm", "optional": True, "min_version": "3.0.0"}],
        "pricing": [],
    },
]


def build_rows(entry: dict[str, Any]) -> tuple[Addon, list[AddonVersion], list[AddonPricing]]:
    """Turn one catalog entry into model instances. Ids are derived from the slug."""
    slug = entry["slug"]
    addon = Addon(
        id=slug,
        slug=slug,
        name=entry["name"],
        description=entry.get("description"),
        status=AddonStatus.PUBLISHED,
        install_count=0,
        dependencies=entry.get("dependencies", []),
    )

    version_deps = entry.get("version_dependencies", {})
    labels = entry["versions"]
    versions = []
    for i, label in enumerate(labels):
        major, minor, patch = (int(p) for p in label.split("."))
        versions.append(AddonVersion(
            id=f"{slug}@{label}",
            addon_id=slug,
            semver_major=major,
            semver_minor=minor,
            semver_patch=patch,
            is_latest=i == len(labels) - 1,
            dependencies=version_deps.get(label),
        ))

    pricing = [
        AddonPricing(
            id=f"{slug}:{p['billing_cycle']}",
            addon_id=slug,
            name=p["name"],
            billing_cycle=p["billing_cycle"],
            trial_days=p.get("trial_days"),
        )
        for p in entry.get("pricing", [])
    ]
    return addon, versions, pricing


async def seed(catalog: list[dict[str, Any]]) -> int:
    """Insert catalog entries that are not present yet. Returns the number added."""
    await init_db()
    added = 0
    async with get_db_context() as db:
        existing = set((await db.execute(select(Addon.slug))).scalars().all())
        for entry in catalog:
            if entry["slug"] in existing:
                print(f"  skip   {entry['slug']} (already present)")
                continue
            addon, versions, pricing = build_rows(entry)
            db.add(addon)
            db.add_all(versions)
            db.add_all(pricing)
            added += 1
            print(f"  add    {entry['slug']} ({', '.join(entry['versions'])})")
    return added


def main():
    parser = argparse.ArgumentParser(description="Seed the add-on catalog")
    parser.add_argument("--dry-run", action="store_true", help="Print the catalog without writing")
    parser.add_argument("--output", type=str, help="Also write the catalog as JSON to this file")
    args = parser.parse_args()

    if args.output:
        with open(args.output, "w") as f:
            json.dump(CATALOG, f, indent=2)
        print(f"✅ Catalog written to {args.output}")

    if args.dry_run:
        print(json.dumps(CATALOG, indent=2))
        return

    added = asyncio.run(seed(CATALOG))
    print(f"✅ Seeded {added} add-on(s)")


if __name__ == "__main__":
    main()
