"""CLI tools for forms administration."""

import asyncio
import json
import logging
import os

import click

from app.core.migrations import MigrationError, get_migration_status, upgrade_to_head
from app.db.enums import CollectionTarget, ImportMode
from app.db.session import SessionLocal, engine, init_db
from app.schemas.imports import BulkImportCreate, HierarchyDefaults
from app.services import form_service, import_service, source_service


@click.group()
def cli():
    """Sampark forms CLI tools."""
    pass


@cli.command("init-db")
def init_db_command():
    """Create any missing database tables."""
    init_db()
    click.echo("✅ Database tables created")


@cli.command("seed-sources")
def seed_sources():
    """Create the default lead sources that are not present yet."""
    db = SessionLocal()
    try:
        created = source_service.seed_default_sources(db)
    finally:
        db.close()
    click.echo(f"✅ {created} sources created")


@cli.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Restart on code changes (development)")
def serve(host: str, port: int, reload: bool):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("app.main:app", host=host, port=port, reload=reload)


@cli.command("migrate")
def migrate():
    """Apply alembic migrations up to head."""
    try:
        status = upgrade_to_head(engine)
    except MigrationError as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)
    click.echo(f"✅ Database at {', '.join(status.current_heads)}")


@cli.command("migration-status")
def migration_status():
    status = get_migration_status(engine)
    current = ", ".join(status.current_heads) or "(none)"
    state = "up to date" if status.is_up_to_date else "behind"
    click.echo(f"current: {current}  head: {', '.join(status.head_revisions)}  [{state}]")


@cli.command("validate-schema")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--publish", is_flag=True, help="Apply the stricter publish-time checks")
def validate_schema(path: str, publish: bool):
    """
    Validate a form schema JSON file ({"sections": [...], "settings": {...}}).

    Example:
        python -m app.cli validate-schema volunteer_form.json --publish
    """
    with open(path, encoding="utf-8") as f:
        payload = json.load(f)
    try:
        schema = form_service.parse_schema(payload)
        form_service.validate_schema(schema, for_publish=publish)
    except form_service.SchemaValidationError as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)
    fields = form_service.flatten_fields(schema)
    click.echo(f"✅ Schema valid: {len(schema.sections)} sections, {len(fields)} fields")


@cli.command("import-file")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--source", "source_tag", required=True, help="Source tag stamped on every record")
@click.option(
    "--target",
    type=click.Choice([c.value for c in CollectionTarget]),
    default=None,
    help="Target collection (detected from headers when omitted)",
)
@click.option(
    "--mode",
    type=click.Choice([m.value for m in ImportMode]),
    default=ImportMode.APPEND.value,
    show_default=True,
)
@click.option("--khanda", default=None)
@click.option("--valaya", default=None)
@click.option("--milan-ghat", default=None)
@click.option("--ai", "enable_ai_mapping", is_flag=True, help="Ask the AI assistant for a column mapping")
def import_file(
    path: str,
    source_tag: str,
    target: str | None,
    mode: str,
    khanda: str | None,
    valaya: str | None,
    milan_ghat: str | None,
    enable_ai_mapping: bool,
):
    """
    Import a CSV/XLSX/JSON file synchronously (no worker needed).

    Example:
        python -m app.cli import-file leads.csv --source fair-2024 --target lead --mode replace
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    with open(path, "rb") as f:
        content = f.read()

    data = BulkImportCreate(
        source_tag=source_tag,
        target_collection=target,
        import_mode=mode,
        hierarchy_defaults=HierarchyDefaults(khanda=khanda, valaya=valaya, milan_ghat=milan_ghat),
        enable_ai_mapping=enable_ai_mapping,
    )

    db = SessionLocal()
    try:
        try:
            job = import_service.create_import_job(db, data, os.path.basename(path), content)
        except import_service.UnsupportedFileFormat as e:
            click.echo(f"❌ {e}")
            raise SystemExit(1)

        job = asyncio.run(import_service.run_import_job(db, job, file_bytes=content))

        click.echo(f"Import {job.id}: {job.status}")
        click.echo(f"  collection: {job.target_collection}")
        click.echo(
            f"  total={job.total_records} ok={job.successful_records} failed={job.failed_records}"
        )
        for error in job.errors or []:
            click.echo(f"  - {error}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
