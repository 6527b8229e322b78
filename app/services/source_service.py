"""Lead source registry."""

from uuid import UUID

from sqlalchemy.orm import Session

from app.db.models import Source
from app.schemas.sources import SourceCreate, SourceUpdate

# Initial outreach channels, loaded by `seed-sources`
DEFAULT_SOURCES = (
    "Mane Mane Samparka",
    "Street Samparka",
    "BJP Karyakartha",
    "Bala Bharathi Parent",
    "Kishora Bharathi Parent",
    "Maithreyi Parent",
    "Mithra Parent",
    "Sevika Samithi Spouse",
    "Relocation from another Milan",
    "Sangha Utsav",
    "Join RSS Website",
    "Join RSS Campaign",
    "Friend Circle",
    "Relation Circle",
    "Yuva Conclave",
    "Yuva Samavesha",
    "Existing Pattlist SS",
)


class SourceConflictError(ValueError):
    """Raised when another source already uses the name."""

    pass


def list_sources(db: Session, active_only: bool = False) -> list[Source]:
    query = db.query(Source)
    if active_only:
        query = query.filter(Source.is_active.is_(True))
    return query.order_by(Source.order, Source.name).all()


def get_source(db: Session, source_id: UUID) -> Source | None:
    return db.query(Source).filter(Source.id == source_id).first()


def get_source_by_name(db: Session, name: str) -> Source | None:
    return db.query(Source).filter(Source.name == name).first()


def create_source(db: Session, data: SourceCreate) -> Source:
    if get_source_by_name(db, data.name):
        raise SourceConflictError("Source with this name already exists")

    source = Source(
        name=data.name,
        description=data.description,
        order=data.order,
        is_active=data.is_active,
    )
    db.add(source)
    db.commit()
    db.refresh(source)
    return source


def update_source(db: Session, source: Source, data: SourceUpdate) -> Source:
    if data.name is not None and data.name != source.name:
        if get_source_by_name(db, data.name):
            raise SourceConflictError("Source with this name already exists")
        source.name = data.name
    if "description" in data.model_fields_set:
        source.description = data.description
    if data.order is not None:
        source.order = data.order
    if data.is_active is not None:
        source.is_active = data.is_active
    db.commit()
    db.refresh(source)
    return source


def delete_source(db: Session, source: Source) -> None:
    """Records keep their source text; only the registry entry goes."""
    db.delete(source)
    db.commit()


def seed_default_sources(db: Session) -> int:
    """Add any missing default sources. Returns the number created."""
    existing = {name for (name,) in db.query(Source.name).all()}
    created = 0
    for order, name in enumerate(DEFAULT_SOURCES):
        if name in existing:
            continue
        db.add(Source(name=name, order=order, is_active=True))
        created += 1
    db.commit()
    return created
