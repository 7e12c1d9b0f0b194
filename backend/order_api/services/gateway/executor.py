"""
Terminal pipeline stage: executes a DataOperation against the SQLAlchemy session.
"""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from shared.config.logging import get_logger
from shared.infrastructure.db import classify_db_error, is_concurrency_failure
from shared.utils.exceptions import NotFoundError, ValidationError, VersionConflictError

from .filters import build_order_by, build_where, split_key
from .operation import DataAction, DataOperation
from .registry import spec_for

logger = get_logger(__name__)


class SQLAlchemyExecutor:
    """
    Runs operations on the request session. Never commits: the caller owns
    the transaction boundary.
    """

    def __init__(self, db: Session):
        self._db = db

    @property
    def db(self) -> Session:
        return self._db

    def __call__(self, op: DataOperation) -> Any:
        handler = getattr(self, f"_{op.action.value}")
        try:
            return handler(op)
        except IntegrityError:
            # Unique violations are interpreted by the caller (replay, number retry)
            raise
        except SQLAlchemyError as e:
            raise classify_db_error(e, f"{op.action.value} {op.entity.value}") from e

    # =========================================================================
    # Query helpers
    # =========================================================================

    def _select(self, op: DataOperation):
        model = spec_for(op.entity).model
        stmt = select(model)
        criteria = build_where(model, op.where)
        if criteria is not None:
            stmt = stmt.where(criteria)
        if op.order_by:
            stmt = stmt.order_by(*build_order_by(model, op.order_by))
        if op.offset:
            stmt = stmt.offset(op.offset)
        if op.limit is not None:
            stmt = stmt.limit(op.limit)
        return stmt

    def snapshot(self, op: DataOperation) -> Sequence[Any]:
        """Rows an update/delete/upsert would touch (for pre-images)."""
        stmt = self._select(op)
        if not op.action.is_bulk:
            stmt = stmt.limit(1)
        return self._db.scalars(stmt).all()

    def _flush(self, op: DataOperation) -> None:
        try:
            self._db.flush()
        except StaleDataError as e:
            # Row version moved between read and write
            logger.info("Stale version on flush", entity=op.entity.value, error=str(e))
            raise VersionConflictError(op.entity.value) from e
        except DBAPIError as e:
            if op.action is DataAction.UPDATE and is_concurrency_failure(e):
                # A concurrent transaction wrote the row first
                logger.info("Concurrent write on flush", entity=op.entity.value, error=str(e.orig))
                raise VersionConflictError(op.entity.value) from e
            raise

    @staticmethod
    def _apply(obj: Any, data: dict[str, Any]) -> None:
        model = type(obj)
        for key, value in data.items():
            if key not in model.__mapper__.column_attrs:
                raise ValidationError(f"Unknown field '{key}' for {model.__name__}")
            setattr(obj, key, value)

    # =========================================================================
    # Reads
    # =========================================================================

    def _find_first(self, op: DataOperation) -> Any | None:
        return self._db.scalars(self._select(op).limit(1)).first()

    def _find_many(self, op: DataOperation) -> list[Any]:
        return list(self._db.scalars(self._select(op)).all())

    def _count(self, op: DataOperation) -> int:
        model = spec_for(op.entity).model
        stmt = select(func.count()).select_from(model)
        criteria = build_where(model, op.where)
        if criteria is not None:
            stmt = stmt.where(criteria)
        return int(self._db.scalar(stmt) or 0)

    # =========================================================================
    # Writes
    # =========================================================================

    def _create(self, op: DataOperation) -> Any:
        model = spec_for(op.entity).model
        obj = model()
        self._apply(obj, dict(op.data or {}))
        self._db.add(obj)
        self._flush(op)
        return obj

    def _create_many(self, op: DataOperation) -> int:
        model = spec_for(op.entity).model
        objs = []
        for row in op.data or []:
            obj = model()
            self._apply(obj, dict(row))
            objs.append(obj)
        self._db.add_all(objs)
        self._flush(op)
        return len(objs)

    def _update(self, op: DataOperation) -> Any:
        obj = self._find_first(op)
        if obj is None:
            raise NotFoundError(op.entity.value)
        self._apply(obj, dict(op.data or {}))
        self._flush(op)
        return obj

    def _update_many(self, op: DataOperation) -> int:
        model = spec_for(op.entity).model
        stmt = update(model).values(**dict(op.data or {}))
        criteria = build_where(model, op.where)
        if criteria is not None:
            stmt = stmt.where(criteria)
        result = self._db.execute(stmt.execution_options(synchronize_session="fetch"))
        return result.rowcount

    def _upsert(self, op: DataOperation) -> Any:
        obj = self._find_first(op)
        if obj is not None:
            self._apply(obj, dict(op.data or {}))
            self._flush(op)
            return obj

        # Equality criteria of the lookup seed the new row
        seed = {
            field: value
            for field, lookup, value in ((*split_key(k), v) for k, v in op.where.items())
            if lookup is None
        }
        return self._create(
            DataOperation(
                entity=op.entity,
                action=DataAction.CREATE,
                data={**seed, **dict(op.create_data or {})},
            )
        )

    def _delete(self, op: DataOperation) -> Any:
        obj = self._find_first(op)
        if obj is None:
            raise NotFoundError(op.entity.value)
        self._db.delete(obj)
        self._flush(op)
        return obj

    def _delete_many(self, op: DataOperation) -> int:
        model = spec_for(op.entity).model
        stmt = delete(model)
        criteria = build_where(model, op.where)
        if criteria is not None:
            stmt = stmt.where(criteria)
        result = self._db.execute(stmt.execution_options(synchronize_session="fetch"))
        return result.rowcount
