"""Coursepath CLI - Main entry point."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from coursepath import __version__, audit, catalog, catalog_crud, crud, engine
from coursepath.cli_utils import (
    DEFAULT_DATA_DIR,
    EXIT_SYSTEM_ERROR,
    EXIT_USER_ERROR,
    ProjectRootNotFoundError,
    as_user_option,
    check_data_status,
    data_dir_option,
    db_name_option,
    find_project_root,
    format_error_details,
    json_option,
    quiet_option,
    resolve_actor,
    wire_config,
)
from coursepath.config import CoursepathConfig
from coursepath.database import CatalogDB, DatabaseError
from coursepath.errors import CatalogError, NotFoundError, PreconditionFailedError
from coursepath.forest import PathwayNode, build_pathway_forest, forest_to_dict, pathway_stats
from coursepath.graph import check_integrity
from coursepath.logging import configure_logging
from coursepath.schema import init_database
from coursepath.seed import apply_catalog, load_catalog

app = typer.Typer(
    name="coursepath",
    help="Coursepath - Course catalog and training pathway manager.",
    add_completion=False,
)
course_app = typer.Typer(help="Manage courses.", no_args_is_help=True)
pathway_app = typer.Typer(help="Manage pathway edges between courses.", no_args_is_help=True)
domain_app = typer.Typer(help="Manage domains.", no_args_is_help=True)
role_app = typer.Typer(help="Manage job roles (global admins only).", no_args_is_help=True)
app.add_typer(course_app, name="course")
app.add_typer(pathway_app, name="pathway")
app.add_typer(domain_app, name="domain")
app.add_typer(role_app, name="role")

# Rich consoles for output
console = Console()
err_console = Console(stderr=True)


# -----------------------------------------------------------------------------
# Output Helpers
# -----------------------------------------------------------------------------


def _output_success(message: str, quiet: bool = False) -> None:
    """Print a success message."""
    if not quiet:
        console.print(f"[green]Success:[/green] {message}")


def _output_error(message: str) -> None:
    """Print an error message."""
    err_console.print(f"[red]Error:[/red] {message}")


def _output_warning(message: str, quiet: bool = False) -> None:
    """Print a warning message."""
    if not quiet:
        err_console.print(f"[yellow]Warning:[/yellow] {message}")


def _output_info(message: str, quiet: bool = False) -> None:
    """Print an info message."""
    if not quiet:
        console.print(message)


def _output_json(data: Any) -> None:
    console.print_json(json.dumps(data))


def _exit_error(message: str, exit_code: int = EXIT_USER_ERROR) -> NoReturn:
    """Print error and exit."""
    _output_error(message)
    raise typer.Exit(code=exit_code)


def _fail(
    message: str,
    json_output: bool,
    *,
    code: str = "error",
    exit_code: int = EXIT_USER_ERROR,
    extra: dict[str, Any] | None = None,
) -> NoReturn:
    if json_output:
        _output_json({"error": message, "code": code, **(extra or {})})
    _exit_error(message, exit_code)


@contextmanager
def _open_catalog(
    data_dir: str | None, db_name: str | None, json_output: bool
) -> Iterator[tuple[CoursepathConfig, CatalogDB]]:
    """Locate the project, load config, open the catalog and map errors to exit codes."""
    try:
        project_root = find_project_root(marker=data_dir or DEFAULT_DATA_DIR)
    except ProjectRootNotFoundError as e:
        _fail(str(e), json_output, code="not_initialized")

    config = wire_config(data_dir=data_dir, db_name=db_name, start_dir=project_root)
    configure_logging(config.log_level, config.log_format)

    db_path = config.get_db_path(project_root)
    if not db_path.exists():
        _fail(
            f"Database not found: {db_path}. Run 'coursepath init' first.",
            json_output,
            code="not_initialized",
        )

    try:
        with CatalogDB(db_path, auto_init=False) as db:
            yield config, db
    except PreconditionFailedError as e:
        details = format_error_details(e.affected)
        message = f"{e.message}\n{details}" if details and not json_output else e.message
        _fail(message, json_output, code=e.code, extra={"affected": e.affected})
    except CatalogError as e:
        _fail(e.message, json_output, code=e.code, exit_code=e.exit_code)
    except ValueError as e:
        _fail(str(e), json_output, code="invalid_input")
    except sqlite3.IntegrityError as e:
        _fail(f"Rejected by the database: {e}", json_output, code="integrity_error")
    except (DatabaseError, sqlite3.Error) as e:
        _fail(f"Database error: {e}", json_output, code="database_error", exit_code=EXIT_SYSTEM_ERROR)


def _resolve_course(db: CatalogDB, ref: str) -> dict[str, Any]:
    """Find a course by display key (CRS-3), numeric id, or name."""
    course: dict[str, Any] | None
    if ref.upper().startswith(crud.COURSE_KEY_PREFIX):
        course = crud.get_course_by_key(db, ref.upper())
    elif ref.isdigit():
        course = crud.get_course(db, int(ref))
    else:
        course = crud.find_course_by_name(db, ref)
    if course is None:
        raise NotFoundError(f"Course not found: {ref}")
    return course


# -----------------------------------------------------------------------------
# Version Callback
# -----------------------------------------------------------------------------


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"coursepath version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Coursepath - Course catalog and training pathway manager."""
    pass


# -----------------------------------------------------------------------------
# Init Command
# -----------------------------------------------------------------------------


@app.command()
def init(
    path: str | None = typer.Argument(
        None,
        help="Path to initialize in. Defaults to current directory.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Recreate the catalog database, discarding existing data.",
    ),
    data_dir: str | None = data_dir_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Create the .coursepath/ directory and an empty catalog database."""
    target_path = Path(path).resolve() if path else Path.cwd()
    config = wire_config(data_dir=data_dir, start_dir=target_path)
    db_path = config.get_db_path(target_path)

    result: dict[str, Any] = {"success": False, "path": str(target_path), "db_path": str(db_path)}
    status = check_data_status(target_path, config)

    if status == "complete" and not force:
        result["success"] = True
        result["action"] = "skipped"
        if json_output:
            _output_json(result)
        else:
            _output_info("[green]✓[/green] Catalog already initialized", quiet)
        return

    if status == "complete":
        if not json_output:
            _output_warning("Overwriting existing catalog database", quiet)
        db_path.unlink()

    try:
        init_database(db_path)
    except (sqlite3.Error, OSError) as e:
        _fail(f"Failed to create catalog: {e}", json_output, exit_code=EXIT_SYSTEM_ERROR)

    result["success"] = True
    result["action"] = "created"
    if json_output:
        _output_json(result)
    else:
        _output_success(f"Created catalog at: {db_path}", quiet)


# -----------------------------------------------------------------------------
# Course Commands
# -----------------------------------------------------------------------------


@course_app.command("add")
def course_add(
    name: str = typer.Argument(..., help="Course name."),
    course_type: str = typer.Option(
        ...,
        "--type",
        "-t",
        help=f"Course type: {', '.join(crud.COURSE_TYPES)}.",
    ),
    domain_id: int = typer.Option(..., "--domain", help="Domain id."),
    weeks: int = typer.Option(..., "--weeks", "-w", help="Length in weeks."),
    objectives: str = typer.Option(..., "--objectives", help="Course objectives."),
    certifications: str | None = typer.Option(
        None, "--certifications", help="Certifications or badges earned."
    ),
    roles: list[int] | None = typer.Option(
        None, "--role", help="Job role id (repeat for a secondary role; first is primary)."
    ),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Add a course to the catalog."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        course = catalog.create_course(
            db,
            actor,
            course_name=name,
            course_type=course_type,
            domain_id=domain_id,
            weeks=weeks,
            course_objectives=objectives,
            certifications_badges=certifications,
            job_role_ids=roles,
        )

    if json_output:
        _output_json({"course": course})
    elif quiet:
        console.print(course["course_id"])
    else:
        _output_success(f"Created course {course['course_id']}: {course['course_name']}")


@course_app.command("list")
def course_list(
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """List all courses."""
    with _open_catalog(data_dir, db_name, json_output) as (_, db):
        courses = crud.list_courses(db)
        domains = {d["id"]: d["name"] for d in catalog_crud.list_domains(db, include_inactive=True)}

    if json_output:
        _output_json({"courses": courses})
        return

    if not courses:
        _output_info("No courses registered.", quiet)
        return

    if quiet:
        for c in courses:
            console.print(f"{c['course_id']}: {c['course_name']}")
        return

    table = Table(title="Courses")
    table.add_column("Key", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Type")
    table.add_column("Weeks", justify="right")
    table.add_column("Domain")
    table.add_column("Created By")

    for c in courses:
        type_style = "bold magenta" if c["course_type"] == "immersive" else "white"
        table.add_row(
            c["course_id"],
            c["course_name"],
            f"[{type_style}]{c['course_type']}[/{type_style}]",
            str(c["weeks"]),
            domains.get(c["domain_id"], "-"),
            c["created_by"],
        )

    console.print(table)


@course_app.command("show")
def course_show(
    ref: str = typer.Argument(..., help="Course key (CRS-3), id, or name."),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
) -> None:
    """Show a course with its prerequisites, next steps and job roles."""
    with _open_catalog(data_dir, db_name, json_output) as (_, db):
        course = _resolve_course(db, ref)
        prerequisites = crud.get_prerequisites(db, course["id"])
        next_steps = crud.get_next_steps(db, course["id"])
        job_roles = catalog_crud.get_job_roles_for_course(db, course["id"])

    if json_output:
        _output_json(
            {
                "course": course,
                "prerequisites": prerequisites,
                "next_steps": next_steps,
                "job_roles": job_roles,
            }
        )
        return

    console.print(f"[bold cyan]{course['course_id']}[/bold cyan] [bold]{course['course_name']}[/bold]")
    console.print(f"  Type: {course['course_type']}")
    console.print(f"  Weeks: {course['weeks']}")
    console.print(f"  Objectives: {course['course_objectives']}")
    if course.get("certifications_badges"):
        console.print(f"  Certifications: {course['certifications_badges']}")
    console.print(f"  Created by: {course['created_by']}")

    if job_roles:
        console.print("\n[bold]Job roles:[/bold]")
        for r in job_roles:
            label = "primary" if r["is_primary"] else "secondary"
            console.print(f"  - {r['title']} ({label})")

    console.print("\n[bold]Prerequisites:[/bold]")
    if not prerequisites:
        console.print("  (none)")
    for p in prerequisites:
        console.print(f"  - {p['course']['course_id']} {p['course']['course_name']} (pathway {p['id']})")

    console.print("\n[bold]Next steps:[/bold]")
    if not next_steps:
        console.print("  (none)")
    for p in next_steps:
        console.print(
            f"  {p['order']}. {p['course']['course_id']} {p['course']['course_name']} "
            f"(pathway {p['id']})"
        )


@course_app.command("update")
def course_update(
    ref: str = typer.Argument(..., help="Course key (CRS-3), id, or name."),
    name: str | None = typer.Option(None, "--name", help="New course name."),
    course_type: str | None = typer.Option(None, "--type", "-t", help="New course type."),
    domain_id: int | None = typer.Option(None, "--domain", help="New domain id."),
    weeks: int | None = typer.Option(None, "--weeks", "-w", help="New length in weeks."),
    objectives: str | None = typer.Option(None, "--objectives", help="New objectives."),
    certifications: str | None = typer.Option(None, "--certifications", help="New certifications."),
    roles: list[int] | None = typer.Option(
        None, "--role", help="Replace job roles (repeat for a secondary role)."
    ),
    clear_roles: bool = typer.Option(False, "--clear-roles", help="Remove all job roles."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Update a course's fields or job roles."""
    job_role_ids = [] if clear_roles else roles

    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        course = _resolve_course(db, ref)
        updated = catalog.update_course(
            db,
            actor,
            course["id"],
            job_role_ids=job_role_ids,
            course_name=name,
            course_type=course_type,
            domain_id=domain_id,
            weeks=weeks,
            course_objectives=objectives,
            certifications_badges=certifications,
        )

    if json_output:
        _output_json({"course": updated})
    else:
        _output_success(f"Updated course {updated['course_id']}: {updated['course_name']}", quiet)


@course_app.command("delete")
def course_delete(
    ref: str = typer.Argument(..., help="Course key (CRS-3), id, or name."),
    cascade: bool = typer.Option(
        False, "--cascade", help="Also delete every pathway that uses the course."
    ),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Delete a course. Refuses if pathways use it, unless --cascade."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        course = _resolve_course(db, ref)
        deleted = engine.delete_course_cascade(db, course["id"], actor, cascade=cascade)

    if json_output:
        _output_json({"deleted": deleted})
    else:
        _output_success(f"Deleted course {deleted['course_id']}: {deleted['course_name']}", quiet)


@course_app.command("impact")
def course_impact(
    ref: str = typer.Argument(..., help="Course key (CRS-3), id, or name."),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
) -> None:
    """Preview what deleting a course would affect."""
    with _open_catalog(data_dir, db_name, json_output) as (_, db):
        course = _resolve_course(db, ref)
        impact = engine.get_delete_impact(db, course["id"])

    if json_output:
        _output_json(impact.to_dict())
        return

    if impact.can_delete:
        console.print(f'[green]✓[/green] "{impact.course_name}" can be deleted safely.')
        return

    console.print(
        f'[yellow]![/yellow] "{impact.course_name}" is used in '
        f"{len(impact.affected_pathways)} pathway(s); deletion requires --cascade."
    )
    for p in impact.affected_pathways:
        console.print(f"  - [{p['id']}] {p['description']}")
    if impact.orphaned_courses:
        console.print("\n[bold]Courses left without a prerequisite:[/bold]")
        for c in impact.orphaned_courses:
            console.print(f"  - {c['course_id']} {c['course_name']}")


# -----------------------------------------------------------------------------
# Pathway Commands
# -----------------------------------------------------------------------------


@pathway_app.command("add")
def pathway_add(
    prerequisite: str = typer.Argument(..., help="Prerequisite course (key, id, or name)."),
    next_course: str = typer.Argument(..., help="Next course (key, id, or name)."),
    order: int = typer.Option(1, "--order", "-o", help="Position among sibling next steps."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Add a pathway edge: PREREQUISITE must be completed before NEXT_COURSE."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        prereq = _resolve_course(db, prerequisite)
        nxt = _resolve_course(db, next_course)
        pathway = engine.create_pathway(
            db, prereq["id"], nxt["id"], order, actor, max_depth=config.max_pathway_depth
        )

    if json_output:
        _output_json({"pathway": pathway})
    elif quiet:
        console.print(str(pathway["id"]))
    else:
        _output_success(
            f"Created pathway {pathway['id']}: {prereq['course_name']} → {nxt['course_name']}"
        )


@pathway_app.command("list")
def pathway_list(
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """List all pathway edges."""
    with _open_catalog(data_dir, db_name, json_output) as (_, db):
        pathways = crud.list_pathways(db)
        names = {c["id"]: c["course_name"] for c in crud.list_courses(db)}

    if json_output:
        _output_json({"pathways": pathways})
        return

    if not pathways:
        _output_info("No pathways registered.", quiet)
        return

    if quiet:
        for p in pathways:
            console.print(f"{p['id']}: {p['prerequisite_course_id']} -> {p['next_course_id']}")
        return

    table = Table(title="Pathways")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Prerequisite", style="green")
    table.add_column("Next Course", style="green")
    table.add_column("Order", justify="right")
    table.add_column("Created By")

    for p in pathways:
        table.add_row(
            str(p["id"]),
            names.get(p["prerequisite_course_id"], "-"),
            names.get(p["next_course_id"], "-"),
            str(p["order"]),
            p["created_by"],
        )

    console.print(table)


@pathway_app.command("reorder")
def pathway_reorder(
    pathway_id: int = typer.Argument(..., help="Pathway id."),
    order: int = typer.Argument(..., help="New position among sibling next steps."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Change the display order of a pathway edge."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        pathway = engine.update_pathway_order(db, pathway_id, order, actor)

    if json_output:
        _output_json({"pathway": pathway})
    else:
        _output_success(f"Pathway {pathway_id} now has order {order}", quiet)


@pathway_app.command("remove")
def pathway_remove(
    pathway_id: int = typer.Argument(..., help="Pathway id."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Remove a pathway edge, unless that would strand downstream courses."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        pathway = engine.delete_pathway(db, pathway_id, actor)

    if json_output:
        _output_json({"deleted": pathway})
    else:
        _output_success(f"Removed pathway {pathway_id}", quiet)


# -----------------------------------------------------------------------------
# Domain Commands
# -----------------------------------------------------------------------------


@domain_app.command("add")
def domain_add(
    name: str = typer.Argument(..., help="Domain name."),
    description: str | None = typer.Option(None, "--description", help="Domain description."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Add a domain."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        domain = catalog.create_domain(db, actor, name, description)

    if json_output:
        _output_json({"domain": domain})
    elif quiet:
        console.print(str(domain["id"]))
    else:
        _output_success(f"Created domain {domain['id']}: {domain['name']}")


@domain_app.command("list")
def domain_list(
    include_inactive: bool = typer.Option(False, "--all", help="Include deleted domains."),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """List domains."""
    with _open_catalog(data_dir, db_name, json_output) as (_, db):
        domains = catalog_crud.list_domains(db, include_inactive=include_inactive)

    if json_output:
        _output_json({"domains": domains})
        return

    if not domains:
        _output_info("No domains registered.", quiet)
        return

    if quiet:
        for d in domains:
            console.print(f"{d['id']}: {d['name']}")
        return

    table = Table(title="Domains")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Name", style="green")
    table.add_column("Description")
    table.add_column("Created By")
    if include_inactive:
        table.add_column("Active")

    for d in domains:
        row = [str(d["id"]), d["name"], d.get("description") or "-", d["created_by"]]
        if include_inactive:
            row.append("yes" if d["is_active"] else "[dim]no[/dim]")
        table.add_row(*row)

    console.print(table)


@domain_app.command("update")
def domain_update(
    domain_id: int = typer.Argument(..., help="Domain id."),
    name: str | None = typer.Option(None, "--name", help="New name."),
    description: str | None = typer.Option(None, "--description", help="New description."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Rename or re-describe a domain."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        domain = catalog.update_domain(db, actor, domain_id, name=name, description=description)

    if json_output:
        _output_json({"domain": domain})
    else:
        _output_success(f"Updated domain {domain_id}: {domain['name']}", quiet)


@domain_app.command("remove")
def domain_remove(
    domain_id: int = typer.Argument(..., help="Domain id."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Delete a domain no course belongs to."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        domain = catalog.delete_domain(db, actor, domain_id)

    if json_output:
        _output_json({"deleted": domain})
    else:
        _output_success(f"Deleted domain {domain_id}: {domain['name']}", quiet)


# -----------------------------------------------------------------------------
# Job Role Commands
# -----------------------------------------------------------------------------


@role_app.command("add")
def role_add(
    title: str = typer.Argument(..., help="Job role title."),
    description: str | None = typer.Option(None, "--description", help="Role description."),
    salary_range: str | None = typer.Option(None, "--salary", help="Salary range text."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Add a job role."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        role = catalog.create_job_role(db, actor, title, description, salary_range)

    if json_output:
        _output_json({"job_role": role})
    elif quiet:
        console.print(str(role["id"]))
    else:
        _output_success(f"Created job role {role['id']}: {role['title']}")


@role_app.command("list")
def role_list(
    include_inactive: bool = typer.Option(False, "--all", help="Include deleted job roles."),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """List job roles."""
    with _open_catalog(data_dir, db_name, json_output) as (_, db):
        roles = catalog_crud.list_job_roles(db, include_inactive=include_inactive)

    if json_output:
        _output_json({"job_roles": roles})
        return

    if not roles:
        _output_info("No job roles registered.", quiet)
        return

    if quiet:
        for r in roles:
            console.print(f"{r['id']}: {r['title']}")
        return

    table = Table(title="Job Roles")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Title", style="green")
    table.add_column("Salary Range")
    table.add_column("Description")

    for r in roles:
        table.add_row(
            str(r["id"]), r["title"], r.get("salary_range") or "-", r.get("description") or "-"
        )

    console.print(table)


@role_app.command("update")
def role_update(
    job_role_id: int = typer.Argument(..., help="Job role id."),
    title: str | None = typer.Option(None, "--title", help="New title."),
    description: str | None = typer.Option(None, "--description", help="New description."),
    salary_range: str | None = typer.Option(None, "--salary", help="New salary range."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Update a job role."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        role = catalog.update_job_role(
            db, actor, job_role_id, title=title, description=description, salary_range=salary_range
        )

    if json_output:
        _output_json({"job_role": role})
    else:
        _output_success(f"Updated job role {job_role_id}: {role['title']}", quiet)


@role_app.command("remove")
def role_remove(
    job_role_id: int = typer.Argument(..., help="Job role id."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Delete a job role."""
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        role = catalog.delete_job_role(db, actor, job_role_id)

    if json_output:
        _output_json({"deleted": role})
    else:
        _output_success(f"Deleted job role {job_role_id}: {role['title']}", quiet)


# -----------------------------------------------------------------------------
# Tree, Stats, Check Commands
# -----------------------------------------------------------------------------


def _node_label(node: PathwayNode) -> str:
    course = node.course
    prefix = "" if node.order is None else f"[dim]{node.order}.[/dim] "
    style = "bold magenta" if node.depth == 0 else "green"
    return (
        f"{prefix}[{style}]{course['course_name']}[/{style}] "
        f"[dim]({course.get('course_id')}, {course['course_type']})[/dim]"
    )


def _add_branches(tree: Tree, node: PathwayNode) -> None:
    stack = [(tree, node)]
    while stack:
        branch, current = stack.pop()
        for child in current.next_steps:
            stack.append((branch.add(_node_label(child)), child))


@app.command()
def tree(
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Show every pathway as a tree rooted at its immersive course."""
    with _open_catalog(data_dir, db_name, json_output) as (_, db):
        forest = build_pathway_forest(crud.list_courses(db), crud.list_pathways(db))

    if json_output:
        _output_json({"pathways": forest_to_dict(forest)})
        return

    if not forest:
        _output_info("No immersive courses registered.", quiet)
        return

    for root in forest:
        root_tree = Tree(_node_label(root))
        _add_branches(root_tree, root)
        console.print(root_tree)


@app.command()
def stats(
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Summarize each immersive course's pathway."""
    with _open_catalog(data_dir, db_name, json_output) as (_, db):
        summary = pathway_stats(crud.list_courses(db), crud.list_pathways(db))

    if json_output:
        _output_json({"stats": summary})
        return

    if not summary:
        _output_info("No immersive courses registered.", quiet)
        return

    table = Table(title="Pathway Overview")
    table.add_column("Immersive Course", style="magenta")
    table.add_column("Courses", justify="right")
    table.add_column("Next Steps", justify="right")
    table.add_column("Course Types")

    for s in summary:
        table.add_row(
            s["course_name"],
            str(s["total_courses"]),
            str(s["direct_next_steps"]),
            ", ".join(t for t in s["course_types"] if t != "immersive") or "-",
        )

    console.print(table)


@app.command()
def check(
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Check stored pathways against every graph invariant.

    Exits with code 1 if any problem is found.
    """
    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        snapshot = engine.load_snapshot(db)
        report = check_integrity(snapshot, config.max_pathway_depth)

    problems: list[str] = []
    for cycle in report.cycles:
        names = " → ".join(snapshot.course_name(c) for c in cycle)
        problems.append(f"Circular prerequisites: {names}")
    for edge in report.immersive_targets:
        target = snapshot.course_name(edge.next_course_id)
        problems.append(f'Pathway {edge.id} points into immersive course "{target}"')
    for course in report.unreachable_courses:
        problems.append(f'"{course.course_name}" has no path to an immersive course')
    for course, depth in report.too_deep_courses:
        problems.append(
            f'"{course.course_name}" is {depth} levels deep (limit {config.max_pathway_depth})'
        )
    for edge in report.duplicate_edges:
        problems.append(f"Pathway {edge.id} duplicates an earlier pathway")
    for edge in report.dangling_edges:
        problems.append(f"Pathway {edge.id} references a missing course")

    if json_output:
        _output_json({"valid": report.ok, "problems": problems})
    elif report.ok:
        _output_success("All pathway invariants hold", quiet)
    else:
        _output_error(f"Found {len(problems)} problem(s)")
        if not quiet:
            for problem in problems:
                console.print(f"  [red]FAIL[/red] {problem}")

    if not report.ok:
        raise typer.Exit(code=EXIT_USER_ERROR)


# -----------------------------------------------------------------------------
# Audit and Seed Commands
# -----------------------------------------------------------------------------


@app.command("audit")
def audit_log(
    limit: int = typer.Option(100, "--limit", "-n", help="Maximum records to show."),
    entity_type: str | None = typer.Option(
        None, "--entity", help="Only records for this entity type (with --id)."
    ),
    entity_id: int | None = typer.Option(None, "--id", help="Only records for this entity id."),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Show the audit log, newest first."""
    if (entity_type is None) != (entity_id is None):
        _fail("--entity and --id must be used together", json_output)

    with _open_catalog(data_dir, db_name, json_output) as (_, db):
        if entity_type is not None and entity_id is not None:
            records = audit.get_audit_logs_for_entity(db, entity_type, entity_id)[:limit]
        else:
            records = audit.list_audit_logs(db, limit=limit)

    if json_output:
        _output_json({"audit_logs": records})
        return

    if not records:
        _output_info("No audit records.", quiet)
        return

    if quiet:
        for r in records:
            console.print(f"{r['timestamp']} {r['admin_username']} {r['change_description']}")
        return

    table = Table(title="Audit Log")
    table.add_column("When", style="dim")
    table.add_column("User", style="cyan")
    table.add_column("Action")
    table.add_column("Entity")
    table.add_column("Change")

    action_styles = {"create": "green", "update": "yellow", "delete": "red"}
    for r in records:
        style = action_styles.get(r["action"], "white")
        table.add_row(
            r["timestamp"],
            r["admin_username"],
            f"[{style}]{r['action']}[/{style}]",
            f"{r['entity_type']} {r['entity_id']}",
            r["change_description"],
        )

    console.print(table)


@app.command()
def seed(
    file: Path = typer.Argument(..., help="YAML catalog file."),
    user: str | None = as_user_option(),
    data_dir: str | None = data_dir_option(),
    db_name: str | None = db_name_option(),
    json_output: bool = json_option(),
    quiet: bool = quiet_option(),
) -> None:
    """Load domains, job roles, courses and pathways from a YAML file."""
    try:
        data = load_catalog(file)
    except FileNotFoundError as e:
        _fail(str(e), json_output, code="not_found")
    except ValueError as e:
        _fail(str(e), json_output, code="invalid_input")

    with _open_catalog(data_dir, db_name, json_output) as (config, db):
        actor = resolve_actor(config, user)
        result = apply_catalog(db, data, actor, max_depth=config.max_pathway_depth)

    if json_output:
        _output_json(result.to_dict())
        return

    created = ", ".join(f"{n} {k}" for k, n in result.created.items())
    _output_success(f"Seeded catalog ({created})", quiet)
    skipped = sum(result.skipped.values())
    if skipped:
        _output_info(f"Skipped {skipped} existing entr{'y' if skipped == 1 else 'ies'}", quiet)


if __name__ == "__main__":
    app()
