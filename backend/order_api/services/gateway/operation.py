"""
Data operations flowing through the gateway pipeline.

Interceptors never mutate an operation: they derive a new one with
``dataclasses.replace`` and hand it to the next stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from order_api.services.permissions import EntityKind, Operation


class DataAction(str, Enum):
    FIND_FIRST = "find_first"
    FIND_MANY = "find_many"
    COUNT = "count"
    CREATE = "create"
    CREATE_MANY = "create_many"
    UPDATE = "update"
    UPDATE_MANY = "update_many"
    UPSERT = "upsert"
    DELETE = "delete"
    DELETE_MANY = "delete_many"

    @property
    def is_mutation(self) -> bool:
        return self not in (DataAction.FIND_FIRST, DataAction.FIND_MANY, DataAction.COUNT)

    @property
    def is_bulk(self) -> bool:
        return self in (DataAction.CREATE_MANY, DataAction.UPDATE_MANY, DataAction.DELETE_MANY)

    @property
    def operations(self) -> tuple[Operation, ...]:
        """Access-control operations this action implies."""
        return _ACTION_OPERATIONS[self]


_ACTION_OPERATIONS: dict[DataAction, tuple[Operation, ...]] = {
    DataAction.FIND_FIRST: (Operation.READ,),
    DataAction.FIND_MANY: (Operation.LIST,),
    DataAction.COUNT: (Operation.COUNT,),
    DataAction.CREATE: (Operation.CREATE,),
    DataAction.CREATE_MANY: (Operation.CREATE,),
    DataAction.UPDATE: (Operation.UPDATE,),
    DataAction.UPDATE_MANY: (Operation.UPDATE,),
    DataAction.UPSERT: (Operation.CREATE, Operation.UPDATE),
    DataAction.DELETE: (Operation.DELETE,),
    DataAction.DELETE_MANY: (Operation.DELETE,),
}


@dataclass(frozen=True)
class DataOperation:
    """
    One call against the data store.

    ``where`` uses ``field`` / ``field__lookup`` keys (see filters.py).
    ``data`` is the payload for create/update (a list of payloads for
    create_many); ``create_data`` is the insert payload of an upsert.
    ``soft_delete`` marks a delete that was rewritten into an update.
    """

    entity: EntityKind
    action: DataAction
    where: Mapping[str, Any] = field(default_factory=dict)
    data: Any = None
    create_data: Mapping[str, Any] | None = None
    order_by: tuple[str, ...] = ()
    offset: int | None = None
    limit: int | None = None
    soft_delete: bool = False
