from __future__ import annotations

import json
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker

# Allow the deployment to override the local data path
DB_DIR = os.getenv("DB_DIR", "data")  # defaults to ./data when local
DB_FILENAME = "cushions.db"
DB_PATH = os.path.join(DB_DIR, DB_FILENAME)

DEFAULT_ARTICLE_LIMIT = 100


def _ensure_data_dir() -> None:
    os.makedirs(DB_DIR, exist_ok=True)


_ensure_data_dir()

engine = create_engine(
    f"sqlite:///{DB_PATH}",
    future=True,
    echo=False,
    connect_args={"check_same_thread": False},
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


class Base(DeclarativeBase):
    pass


class CalculationBatch(Base):
    __tablename__ = "calculation_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    name: Mapped[str] = mapped_column(String(255), default="")
    item_count: Mapped[int] = mapped_column(Integer, default=0)

    rows: Mapped[List["BatchRow"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BatchRow.id",
    )


class BatchRow(Base):
    __tablename__ = "batch_rows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(ForeignKey("calculation_batches.id", ondelete="CASCADE"), index=True)
    cushion_width: Mapped[float] = mapped_column(Float)
    cushion_height: Mapped[float] = mapped_column(Float)
    original_row_json: Mapped[Optional[str]] = mapped_column("original_row", Text, nullable=True)

    batch: Mapped[CalculationBatch] = relationship(back_populates="rows")

    @property
    def original_row(self) -> Optional[Dict[str, Any]]:
        if self.original_row_json is None:
            return None
        try:
            data = json.loads(self.original_row_json)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    @original_row.setter
    def original_row(self, value: Optional[Dict[str, Any]]) -> None:
        if value is None:
            self.original_row_json = None
            return
        self.original_row_json = json.dumps(value, ensure_ascii=False, default=str)


class ProductFamily(Base):
    __tablename__ = "product_families"
    __table_args__ = (UniqueConstraint("code", name="uq_product_families_code"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(10))
    name: Mapped[str] = mapped_column(String(255), default="")

    articles: Mapped[List["Article"]] = relationship(back_populates="family")


class Article(Base):
    __tablename__ = "articles"
    __table_args__ = (UniqueConstraint("sku", name="uq_articles_sku"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sku: Mapped[str] = mapped_column(String(10))
    original_description: Mapped[str] = mapped_column(Text, default="")
    family_id: Mapped[int] = mapped_column(ForeignKey("product_families.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    family: Mapped[ProductFamily] = relationship(back_populates="articles")


@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _ensure_schema() -> None:
    with engine.connect() as conn:
        conn.execute(text("PRAGMA journal_mode=WAL"))


def init_db() -> None:
    _ensure_data_dir()
    Base.metadata.create_all(engine, checkfirst=True)
    _ensure_schema()


@contextmanager
def get_session() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _serialize_batch(batch: CalculationBatch) -> Dict[str, Any]:
    return {
        "id": batch.id,
        "name": batch.name,
        "created_at": batch.created_at.isoformat(),
        "item_count": batch.item_count,
    }


def _serialize_row(row: BatchRow) -> Dict[str, Any]:
    return {
        "id": row.id,
        "batch_id": row.batch_id,
        "width": row.cushion_width,
        "height": row.cushion_height,
        "original_row": row.original_row,
    }


def save_batch(*, name: str, items: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Store width, height and the source row of each item. Results are never stored."""
    records = list(items or [])
    if not records:
        raise ValueError("items are required to save a batch")

    with get_session() as session:
        batch = CalculationBatch(name=name, item_count=len(records))
        session.add(batch)
        session.flush()
        for record in records:
            row = BatchRow(
                batch_id=batch.id,
                cushion_width=float(record["width"]),
                cushion_height=float(record["height"]),
            )
            row.original_row = record.get("original_row")
            session.add(row)
        session.flush()
        return _serialize_batch(batch)


def list_batches(limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
    limit = max(1, min(limit or 50, 200))
    offset = max(offset or 0, 0)
    with SessionLocal() as session:
        stmt = (
            select(CalculationBatch)
            .order_by(CalculationBatch.created_at.desc(), CalculationBatch.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return [_serialize_batch(batch) for batch in session.execute(stmt).scalars().all()]


def fetch_history(batch_id: Optional[int] = None) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        stmt = (
            select(BatchRow)
            .join(CalculationBatch, CalculationBatch.id == BatchRow.batch_id)
            .order_by(CalculationBatch.created_at.desc(), CalculationBatch.id.desc(), BatchRow.id)
        )
        if batch_id is not None:
            if session.get(CalculationBatch, batch_id) is None:
                raise ValueError(f"Batch {batch_id} not found")
            stmt = stmt.where(BatchRow.batch_id == batch_id)
        return [_serialize_row(row) for row in session.execute(stmt).scalars().all()]


def delete_batch(batch_id: int) -> bool:
    with get_session() as session:
        batch = session.get(CalculationBatch, batch_id)
        if not batch:
            return False
        session.delete(batch)
        return True


def _serialize_family(family: ProductFamily) -> Dict[str, Any]:
    return {"id": family.id, "code": family.code, "name": family.name}


def create_family(code: str, name: str = "") -> Dict[str, Any]:
    with get_session() as session:
        existing = session.execute(
            select(ProductFamily).where(ProductFamily.code == code)
        ).scalar_one_or_none()
        if existing:
            existing.name = name or existing.name
            session.flush()
            return _serialize_family(existing)
        family = ProductFamily(code=code, name=name)
        session.add(family)
        session.flush()
        return _serialize_family(family)


def list_families() -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        families = session.execute(select(ProductFamily).order_by(ProductFamily.code)).scalars().all()
        return [_serialize_family(family) for family in families]


def save_articles(items: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Insert generated SKUs. Codes already present are skipped, not updated."""
    inserted = 0
    skipped = 0
    with get_session() as session:
        families = {
            family.code: family
            for family in session.execute(select(ProductFamily)).scalars().all()
        }
        existing = set(session.execute(select(Article.sku)).scalars().all())
        for item in items or []:
            family = families.get(item.get("family") or "")
            if family is None:
                raise ValueError(f"Family {item.get('family')!r} not found")
            code = item.get("code") or ""
            if code in existing:
                skipped += 1
                continue
            session.add(
                Article(
                    sku=code,
                    original_description=item.get("description") or "",
                    family_id=family.id,
                )
            )
            existing.add(code)
            inserted += 1
    return {"inserted": inserted, "skipped": skipped}


def list_articles(limit: int = DEFAULT_ARTICLE_LIMIT) -> List[Dict[str, Any]]:
    limit = max(1, min(limit or DEFAULT_ARTICLE_LIMIT, 500))
    with SessionLocal() as session:
        stmt = (
            select(Article, ProductFamily)
            .join(ProductFamily, ProductFamily.id == Article.family_id)
            .order_by(Article.created_at.desc(), Article.id.desc())
            .limit(limit)
        )
        return [
            {
                "code": article.sku,
                "description": article.original_description,
                "family": family.code,
            }
            for article, family in session.execute(stmt).all()
        ]


__all__ = [
    "init_db",
    "save_batch",
    "list_batches",
    "fetch_history",
    "delete_batch",
    "create_family",
    "list_families",
    "save_articles",
    "list_articles",
]
