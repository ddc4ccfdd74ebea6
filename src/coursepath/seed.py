"""Seed a catalog from a YAML file.

File layout::

    domains:
      - name: Software Engineering
        description: Building software
    job_roles:
      - title: Backend Developer
        salary_range: "$90k-$130k"
    courses:
      - course_name: Software Engineering Immersive
        course_type: immersive
        domain: Software Engineering
        weeks: 12
        course_objectives: Full-stack fundamentals
        job_roles: [Backend Developer]
    pathways:
      - prerequisite: Software Engineering Immersive
        next: Cloud Fundamentals
        order: 1

Everything goes through the catalog and pathway services, so seeded data is
checked, owned and audited exactly like interactive edits. Entries that
already exist (same domain name, job role title, course name or pathway pair)
are skipped, so a file can be applied more than once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from coursepath import catalog, catalog_crud, crud, engine
from coursepath.authorization import Actor
from coursepath.database import CatalogDB
from coursepath.errors import NotFoundError
from coursepath.graph import DEFAULT_MAX_DEPTH
from coursepath.logging import get_logger

logger = get_logger(__name__)

SECTIONS = ("domains", "job_roles", "courses", "pathways")


@dataclass
class SeedResult:
    """Counts of created and skipped entries per section."""

    created: dict[str, int] = field(default_factory=lambda: dict.fromkeys(SECTIONS, 0))
    skipped: dict[str, int] = field(default_factory=lambda: dict.fromkeys(SECTIONS, 0))

    def to_dict(self) -> dict[str, Any]:
        return {"created": dict(self.created), "skipped": dict(self.skipped)}


def load_catalog(path: str | Path) -> dict[str, list[dict[str, Any]]]:
    """Read and shape-check a YAML catalog file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file isn't a mapping of known sections to lists.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Catalog file must contain a mapping, got {type(data).__name__}")

    unknown = set(data) - set(SECTIONS)
    if unknown:
        raise ValueError(f"Unknown catalog section(s): {', '.join(sorted(unknown))}")

    result: dict[str, list[dict[str, Any]]] = {}
    for section in SECTIONS:
        entries = data.get(section) or []
        if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
            raise ValueError(f"Section '{section}' must be a list of mappings")
        result[section] = entries
    return result


def _required(entry: dict[str, Any], key: str, section: str) -> Any:
    if key not in entry or entry[key] in (None, ""):
        raise ValueError(f"Entry in '{section}' is missing '{key}': {entry}")
    return entry[key]


def _course_id_by_name(db: CatalogDB, name: str) -> int:
    course = crud.find_course_by_name(db, name)
    if course is None:
        raise NotFoundError(f"Course not found: {name}")
    return int(course["id"])


def _apply_entries(
    db: CatalogDB,
    data: dict[str, list[dict[str, Any]]],
    actor: Actor,
    result: SeedResult,
    max_depth: int,
) -> None:
    domain_ids: dict[str, int] = {
        d["name"]: d["id"] for d in catalog_crud.list_domains(db)
    }
    for entry in data.get("domains", []):
        name = _required(entry, "name", "domains")
        if name in domain_ids:
            result.skipped["domains"] += 1
            continue
        domain = catalog.create_domain(db, actor, name, entry.get("description"))
        domain_ids[name] = domain["id"]
        result.created["domains"] += 1

    role_ids: dict[str, int] = {r["title"]: r["id"] for r in catalog_crud.list_job_roles(db)}
    for entry in data.get("job_roles", []):
        title = _required(entry, "title", "job_roles")
        if title in role_ids:
            result.skipped["job_roles"] += 1
            continue
        role = catalog.create_job_role(
            db, actor, title, entry.get("description"), entry.get("salary_range")
        )
        role_ids[title] = role["id"]
        result.created["job_roles"] += 1

    for entry in data.get("courses", []):
        name = _required(entry, "course_name", "courses")
        if crud.find_course_by_name(db, name) is not None:
            result.skipped["courses"] += 1
            continue
        domain_name = _required(entry, "domain", "courses")
        if domain_name not in domain_ids:
            raise NotFoundError(f"Domain not found: {domain_name}")
        titles = entry.get("job_roles") or []
        missing = [t for t in titles if t not in role_ids]
        if missing:
            raise NotFoundError(f"Job role not found: {', '.join(missing)}")

        catalog.create_course(
            db,
            actor,
            course_name=name,
            course_type=_required(entry, "course_type", "courses"),
            domain_id=domain_ids[domain_name],
            weeks=_required(entry, "weeks", "courses"),
            course_objectives=_required(entry, "course_objectives", "courses"),
            certifications_badges=entry.get("certifications_badges"),
            job_role_ids=[role_ids[t] for t in titles],
        )
        result.created["courses"] += 1

    for entry in data.get("pathways", []):
        prereq_id = _course_id_by_name(db, _required(entry, "prerequisite", "pathways"))
        next_id = _course_id_by_name(db, _required(entry, "next", "pathways"))
        existing = [
            p
            for p in crud.list_pathways_touching(db, prereq_id)
            if p["prerequisite_course_id"] == prereq_id and p["next_course_id"] == next_id
        ]
        if existing:
            result.skipped["pathways"] += 1
            continue
        engine.create_pathway(
            db, prereq_id, next_id, entry.get("order", 1), actor, max_depth=max_depth
        )
        result.created["pathways"] += 1


def apply_catalog(
    db: CatalogDB,
    data: dict[str, list[dict[str, Any]]],
    actor: Actor,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> SeedResult:
    """Create the catalog's entries in section order, all or nothing.

    Pathways are applied in file order, so every prerequisite must already
    be reachable from an immersive course when its edge is added.

    Raises:
        CatalogError: If any entry is rejected by the services.
        ValueError: If an entry lacks a required key.
    """
    result = SeedResult()
    with db.transaction():
        _apply_entries(db, data, actor, result, max_depth)

    logger.info("catalog_seeded", created=result.created, skipped=result.skipped)
    return result
