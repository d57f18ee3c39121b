"""
Metric record ORM model (document-style: one row per record version).

Contract:
    MetricRecordModel persists one version of an entity's metric record.
    The metric tree is stored whole in a JSON column (``metrics``);
    lineage is a back-reference chain through ``previous_version``.

Invariants enforced by the schema:
    - at most one active row per entity (partial unique index on
      entity_id WHERE is_active)
    - (entity_id, version) is unique

Architecture: esg_ingestion/models. Imports from esg_kernel.db.base only
(plus the pure domain DTOs for conversion).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from esg_kernel.db.base import TrackedBase, UUIDString
from esg_ingestion.domain.types import (
    ImportSource,
    MetricRecord,
    ValidationStatus,
    VerificationStatus,
    metrics_from_dicts,
)


class MetricRecordModel(TrackedBase):
    """One version of an entity's metric record."""

    __tablename__ = "metric_records"

    __table_args__ = (
        UniqueConstraint("entity_id", "version", name="uq_metric_records_entity_version"),
        Index("ix_metric_records_entity_active", "entity_id", "is_active"),
        Index(
            "uq_metric_records_one_active",
            "entity_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("ix_metric_records_batch", "import_batch_id"),
    )

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    report_type: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_version: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("metric_records.id"), nullable=True,
    )
    restored_from: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("metric_records.id"), nullable=True,
    )
    restore_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Provenance
    import_source: Mapped[str] = mapped_column(String(20), nullable=False)
    source_file_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    original_source: Mapped[str | None] = mapped_column(String(500), nullable=True)
    import_batch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    import_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    import_notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    data_period_start: Mapped[str | None] = mapped_column(String(10), nullable=True)
    data_period_end: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # Validation
    validation_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ValidationStatus.NOT_VALIDATED.value,
    )
    validation_errors: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    validation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_quality_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Verification
    verification_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=VerificationStatus.UNVERIFIED.value,
    )
    verified_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Soft delete
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    metrics: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    def to_dto(self) -> MetricRecord:
        return MetricRecord(
            record_id=self.id,
            entity_id=self.entity_id,
            report_type=self.report_type,
            version=self.version,
            is_active=self.is_active,
            metrics=tuple(metrics_from_dicts(self.metrics or [])),
            previous_version=self.previous_version,
            restored_from=self.restored_from,
            restore_notes=self.restore_notes,
            import_source=ImportSource(self.import_source),
            source_file_name=self.source_file_name,
            original_source=self.original_source,
            import_batch_id=self.import_batch_id,
            import_date=self.import_date,
            import_notes=self.import_notes or "",
            data_period_start=self.data_period_start,
            data_period_end=self.data_period_end,
            validation_status=ValidationStatus(self.validation_status),
            validation_errors=tuple(self.validation_errors or ()),
            validation_notes=self.validation_notes,
            data_quality_score=self.data_quality_score,
            verification_status=VerificationStatus(self.verification_status),
            verified_by=self.verified_by,
            verified_at=self.verified_at,
            verification_notes=self.verification_notes,
            deleted_at=self.deleted_at,
            deleted_by=self.deleted_by,
            created_by=self.created_by,
            created_at=self.created_at,
            last_updated_by=self.last_updated_by,
            last_updated_at=self.last_updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<MetricRecordModel entity={self.entity_id} v{self.version} "
            f"active={self.is_active}>"
        )
