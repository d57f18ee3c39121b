"""
VersionManager -- sole writer of an entity's active metric record.

Responsibility:
    Every content change to an entity's metrics creates a new record
    version: the current active row is deactivated and a successor linked
    to it through ``previous_version`` is inserted, inside one savepoint.
    Also owns restore-from-version, soft delete, per-metric edits and
    verification metadata.

Invariants enforced:
    - At most one active record per entity. ``SELECT ... FOR UPDATE`` on the
      active row serializes writers; the partial unique index on
      ``entity_id WHERE is_active`` rejects anything that slips past it.
    - Versions along a lineage are 1, 2, 3, ... with no gaps; the unique
      ``(entity_id, version)`` constraint backs this up.
    - Historical versions are never mutated except for ``is_active`` and
      the audit columns on deactivation.

Failure modes:
    - TransactionConflictError: a concurrent commit for the same entity won
      (IntegrityError on flush). The savepoint is rolled back; the caller
      should rerun the whole pipeline.
    - RecordNotFoundError / VersionNotFoundError / MetricNotFoundError.

Does NOT call ``session.commit()`` -- the caller controls transaction
boundaries (see ``esg_kernel.db.session_scope``).
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from esg_config import get_section_table
from esg_ingestion.domain.attribution import attribute_metric
from esg_ingestion.domain.types import (
    ImportSource,
    Metric,
    MetricRecord,
    RecordPayload,
    ValidationStatus,
    VerificationStatus,
    metric_to_dict,
    metrics_to_dicts,
)
from esg_ingestion.models.metric_record import MetricRecordModel
from esg_kernel.domain.clock import Clock, SystemClock
from esg_kernel.exceptions import (
    InvalidMetricPayloadError,
    MetricNotFoundError,
    RecordNotFoundError,
    TransactionConflictError,
    VersionNotFoundError,
)
from esg_kernel.logging_config import get_logger

logger = get_logger("ingestion.version_manager")

# Builds the successor row from (locked predecessor, new version number, now)
_SuccessorBuilder = Callable[[MetricRecordModel | None, int, datetime], MetricRecordModel]


class VersionManager:
    """
    Versioned writes for metric records.

    Usage:
        with session_scope() as session:
            manager = VersionManager(session, clock)
            record = manager.commit(entity_id, payload, actor_id)
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    def _lock_active(self, entity_id: UUID) -> MetricRecordModel | None:
        """Active row for ``entity_id``, locked until the transaction ends."""
        return self._session.execute(
            select(MetricRecordModel)
            .where(
                MetricRecordModel.entity_id == entity_id,
                MetricRecordModel.is_active.is_(True),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_head(self, entity_id: UUID) -> MetricRecordModel | None:
        """
        Newest version of the lineage: the active row, or the latest
        version when the entity's head was soft-deleted.
        """
        active = self._lock_active(entity_id)
        if active is not None:
            return active
        return self._session.execute(
            select(MetricRecordModel)
            .where(MetricRecordModel.entity_id == entity_id)
            .order_by(MetricRecordModel.version.desc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _require_active(self, entity_id: UUID) -> MetricRecordModel:
        active = self._lock_active(entity_id)
        if active is None:
            raise RecordNotFoundError(str(entity_id))
        return active

    def _supersede(
        self,
        entity_id: UUID,
        actor_id: UUID,
        build: _SuccessorBuilder,
        require_active: bool = False,
    ) -> MetricRecordModel:
        """
        Deactivate the head row (if any) and insert ``build``'s successor.

        Runs in a savepoint so a failed attempt leaves the surrounding
        transaction usable.
        """
        attempted = 0
        savepoint = self._session.begin_nested()
        try:
            previous = self._lock_head(entity_id)
            if require_active and (previous is None or not previous.is_active):
                raise RecordNotFoundError(str(entity_id))
            attempted = previous.version + 1 if previous is not None else 1
            now = self._clock.now()

            if previous is not None:
                previous.is_active = False
                previous.last_updated_by = actor_id
                previous.last_updated_at = now
                # Deactivation must reach the database before the insert.
                self._session.flush()

            successor = build(previous, attempted, now)
            successor.entity_id = entity_id
            successor.version = attempted
            successor.previous_version = previous.id if previous is not None else None
            successor.is_active = True
            successor.created_by = actor_id
            successor.created_at = now
            successor.last_updated_by = actor_id
            successor.last_updated_at = now
            self._session.add(successor)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "commit_conflict",
                extra={"entity_id": str(entity_id), "attempted_version": attempted},
            )
            raise TransactionConflictError(str(entity_id), attempted) from None
        except Exception:
            savepoint.rollback()
            raise
        return successor

    # -------------------------------------------------------------------------
    # Commits
    # -------------------------------------------------------------------------

    def commit(self, entity_id: UUID, payload: RecordPayload, actor_id: UUID) -> MetricRecord:
        """
        Persist ``payload`` as the entity's new active record.

        Postconditions:
            - returned record has ``version = previous.version + 1`` (or 1)
              and ``previous_version`` = the superseded record's id
            - the superseded record has ``is_active=False``
        """
        def build(previous: MetricRecordModel | None, version: int, now: datetime) -> MetricRecordModel:
            return MetricRecordModel(
                report_type=payload.report_type,
                metrics=metrics_to_dicts(payload.metrics),
                import_source=payload.import_source.value,
                source_file_name=payload.source_file_name,
                original_source=payload.original_source,
                import_batch_id=payload.import_batch_id,
                import_date=payload.import_date or now,
                import_notes=payload.import_notes,
                data_period_start=payload.data_period_start,
                data_period_end=payload.data_period_end,
                validation_status=ValidationStatus.NOT_VALIDATED.value,
                validation_errors=[],
                verification_status=VerificationStatus.UNVERIFIED.value,
            )

        model = self._supersede(entity_id, actor_id, build)
        logger.info(
            "record_committed",
            extra={
                "entity_id": str(entity_id),
                "record_id": str(model.id),
                "version": model.version,
                "previous_version": str(model.previous_version) if model.previous_version else None,
                "metric_count": len(payload.metrics),
                "import_batch_id": payload.import_batch_id,
            },
        )
        return model.to_dto()

    def restore_version(
        self,
        entity_id: UUID,
        version_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> MetricRecord:
        """
        Clone a historical version into a new active head.

        The metric tree is deep-copied, so later edits never reach the
        historical row.

        Raises:
            VersionNotFoundError: unknown id, or the version belongs to
                another entity.
        """
        source = self._session.get(MetricRecordModel, version_id)
        if source is None or source.entity_id != entity_id:
            raise VersionNotFoundError(str(entity_id), str(version_id))

        def build(previous: MetricRecordModel | None, version: int, now: datetime) -> MetricRecordModel:
            return MetricRecordModel(
                report_type=source.report_type,
                metrics=copy.deepcopy(source.metrics),
                import_source=source.import_source,
                source_file_name=source.source_file_name,
                original_source=source.original_source,
                import_batch_id=source.import_batch_id,
                import_date=source.import_date,
                import_notes=source.import_notes or "",
                data_period_start=source.data_period_start,
                data_period_end=source.data_period_end,
                restored_from=source.id,
                restore_notes=notes or f"Restored from version {source.version} on {now.isoformat()}",
                validation_status=ValidationStatus.NOT_VALIDATED.value,
                validation_errors=[],
                verification_status=VerificationStatus.UNVERIFIED.value,
            )

        model = self._supersede(entity_id, actor_id, build)
        logger.info(
            "record_restored",
            extra={
                "entity_id": str(entity_id),
                "record_id": str(model.id),
                "version": model.version,
                "restored_from": str(version_id),
                "restored_version": source.version,
            },
        )
        return model.to_dto()

    def _edit_metrics(
        self,
        entity_id: UUID,
        actor_id: UUID,
        edit: Callable[[list[dict[str, Any]], MetricRecordModel, datetime], str],
    ) -> MetricRecordModel:
        """New version whose metric list is ``edit``'s result; provenance carried over."""
        def build(previous: MetricRecordModel | None, version: int, now: datetime) -> MetricRecordModel:
            metrics = copy.deepcopy(previous.metrics)
            notes = edit(metrics, previous, now)
            return MetricRecordModel(
                report_type=previous.report_type,
                metrics=metrics,
                import_source=ImportSource.MANUAL.value,
                source_file_name=previous.source_file_name,
                original_source=previous.original_source,
                import_batch_id=previous.import_batch_id,
                import_date=previous.import_date,
                import_notes=notes,
                data_period_start=previous.data_period_start,
                data_period_end=previous.data_period_end,
                validation_status=ValidationStatus.NOT_VALIDATED.value,
                validation_errors=[],
                verification_status=VerificationStatus.UNVERIFIED.value,
            )

        return self._supersede(entity_id, actor_id, build, require_active=True)

    def deactivate_metric(self, entity_id: UUID, metric_id: UUID, actor_id: UUID) -> MetricRecord:
        """
        Soft-delete one metric: commit a new version whose copy of it is inactive.

        Raises:
            RecordNotFoundError: entity has no active record.
            MetricNotFoundError: metric id not on the active record.
        """
        def edit(metrics: list[dict[str, Any]], previous: MetricRecordModel, now: datetime) -> str:
            for m in metrics:
                if m.get("metric_id") == str(metric_id):
                    m["is_active"] = False
                    m["last_updated_by"] = str(actor_id)
                    m["updated_at"] = now.isoformat()
                    return f"Metric {m.get('metric_name')!r} deactivated"
            raise MetricNotFoundError(str(entity_id), str(metric_id))

        model = self._edit_metrics(entity_id, actor_id, edit)
        logger.info(
            "metric_deactivated",
            extra={
                "entity_id": str(entity_id),
                "metric_id": str(metric_id),
                "record_id": str(model.id),
                "version": model.version,
            },
        )
        return model.to_dto()

    def upsert_metric(self, entity_id: UUID, metric: Metric, actor_id: UUID) -> MetricRecord:
        """
        Commit a new version with ``metric`` replacing the one with the same
        (category, metric_name), or appended when there is none.

        The replaced metric's id and original creation attribution are kept.

        Raises:
            RecordNotFoundError: entity has no active record.
            InvalidMetricPayloadError: category outside the report type's set.
        """
        def edit(metrics: list[dict[str, Any]], previous: MetricRecordModel, now: datetime) -> str:
            categories = get_section_table(previous.report_type).categories
            if metric.category not in categories:
                raise InvalidMetricPayloadError(
                    f"category {metric.category!r} is not valid for {previous.report_type!r}",
                    metric.metric_name,
                )
            incoming = attribute_metric(metric, actor_id, now)
            for i, existing in enumerate(metrics):
                if (existing.get("category"), existing.get("metric_name")) == incoming.key:
                    merged = metric_to_dict(incoming)
                    merged["metric_id"] = existing.get("metric_id") or merged["metric_id"]
                    merged["created_by"] = existing.get("created_by") or merged["created_by"]
                    merged["created_at"] = existing.get("created_at") or merged["created_at"]
                    merged["last_updated_by"] = str(actor_id)
                    merged["updated_at"] = now.isoformat()
                    metrics[i] = merged
                    return f"Metric {metric.metric_name!r} updated"
            metrics.append(metric_to_dict(incoming))
            return f"Metric {metric.metric_name!r} added"

        model = self._edit_metrics(entity_id, actor_id, edit)
        logger.info(
            "metric_upserted",
            extra={
                "entity_id": str(entity_id),
                "category": metric.category,
                "metric_name": metric.metric_name,
                "record_id": str(model.id),
                "version": model.version,
            },
        )
        return model.to_dto()

    # -------------------------------------------------------------------------
    # In-place metadata updates (no new version)
    # -------------------------------------------------------------------------

    def soft_delete(self, entity_id: UUID, actor_id: UUID) -> MetricRecord:
        """
        Mark the active record deleted and inactive. Nothing is removed.

        Raises:
            RecordNotFoundError: entity has no active record.
        """
        active = self._require_active(entity_id)
        now = self._clock.now()
        active.is_active = False
        active.deleted_at = now
        active.deleted_by = actor_id
        active.last_updated_by = actor_id
        active.last_updated_at = now
        self._session.flush()
        logger.info(
            "record_soft_deleted",
            extra={"entity_id": str(entity_id), "record_id": str(active.id), "version": active.version},
        )
        return active.to_dto()

    def update_verification_status(
        self,
        entity_id: UUID,
        status: VerificationStatus,
        actor_id: UUID,
        notes: str | None = None,
    ) -> MetricRecord:
        """Set verification metadata on the active record (metric content untouched)."""
        active = self._require_active(entity_id)
        now = self._clock.now()
        active.verification_status = VerificationStatus(status).value
        active.verified_by = actor_id
        active.verified_at = now
        active.verification_notes = notes
        active.last_updated_by = actor_id
        active.last_updated_at = now
        self._session.flush()
        logger.info(
            "verification_updated",
            extra={
                "entity_id": str(entity_id),
                "record_id": str(active.id),
                "verification_status": active.verification_status,
            },
        )
        return active.to_dto()

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def get_versions(self, entity_id: UUID) -> list[MetricRecord]:
        """All versions of the entity, newest first."""
        rows = self._session.execute(
            select(MetricRecordModel)
            .where(MetricRecordModel.entity_id == entity_id)
            .order_by(MetricRecordModel.version.desc())
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def get_lineage(self, entity_id: UUID, record_id: UUID | None = None) -> list[MetricRecord]:
        """
        Lineage chain from ``record_id`` (default: the active record) back to
        version 1, following ``previous_version``.

        Raises:
            RecordNotFoundError: no record_id given and no active record.
            VersionNotFoundError: record_id unknown or owned by another entity.
        """
        if record_id is None:
            start = self._session.execute(
                select(MetricRecordModel).where(
                    MetricRecordModel.entity_id == entity_id,
                    MetricRecordModel.is_active.is_(True),
                )
            ).scalar_one_or_none()
            if start is None:
                raise RecordNotFoundError(str(entity_id))
        else:
            start = self._session.get(MetricRecordModel, record_id)
            if start is None or start.entity_id != entity_id:
                raise VersionNotFoundError(str(entity_id), str(record_id))

        chain: list[MetricRecord] = []
        current: MetricRecordModel | None = start
        while current is not None:
            chain.append(current.to_dto())
            if current.previous_version is None:
                break
            current = self._session.get(MetricRecordModel, current.previous_version)
        return chain
