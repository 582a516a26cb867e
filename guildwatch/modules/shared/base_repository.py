"""
Generic async repository over one mapped model.

Services build one per model they touch::

    self._player_repo = BaseRepository[Player](Player, self.log)

    async with self.db.get_session() as session:
        player = await self._player_repo.find_one_where(
            session, Player.name == name, Player.world == world
        )

Repositories never commit. The session (and its transaction) belongs to the
calling service, which gets it from ``DatabaseService``.

Listings that reach the API are paged through ``paginate``, which returns a
``Page`` carrying the ``page/limit/total/totalPages/hasNext/hasPrev`` block
the dashboard endpoints expose.

``bulk_upsert`` writes many rows keyed on a ``UniqueKey`` (the model's
natural key, e.g. player name + world) with one lookup query per batch.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute

T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        if not self.limit:
            return 0
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def meta(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }


def normalize_paging(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """Page is at least 1; limit is clamped to [1, MAX_PAGE_LIMIT] (0/None -> default)."""
    clamped_page = max(int(page or 1), 1)
    clamped_limit = min(max(int(limit or DEFAULT_PAGE_LIMIT), 1), MAX_PAGE_LIMIT)
    return clamped_page, clamped_limit


class BaseRepository(Generic[T]):
    """Reads and writes for ``model_class`` inside a caller-owned session."""

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def _name(self) -> str:
        return self.model_class.__name__

    def _trace(self, action: str, **fields: Any) -> None:
        self.log.debug(f"{self._name}.{action}", extra={"model": self._name, **fields})

    # -- reads ---------------------------------------------------------------

    async def get(
        self,
        session: AsyncSession,
        id_value: Any,
        eager_load: Optional[List[InstrumentedAttribute]] = None,
    ) -> Optional[T]:
        """Row by primary key, or None. ``eager_load`` relationships are selectin-loaded."""
        stmt = select(self.model_class).where(self.model_class.id == id_value)  # type: ignore[attr-defined]
        for relationship in eager_load or ():
            stmt = stmt.options(selectinload(relationship))

        row = (await session.execute(stmt)).scalar_one_or_none()
        self._trace("get", id=id_value, hit=row is not None)
        return row

    async def get_for_update(self, session: AsyncSession, id_value: Any) -> Optional[T]:
        """
        Like ``get`` but with ``SELECT ... FOR UPDATE``.

        SQLite ignores the lock clause; the write transaction it is used in
        already serializes writers there.
        """
        return await self.find_one_where(
            session,
            self.model_class.id == id_value,  # type: ignore[attr-defined]
            for_update=True,
        )

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[T]:
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update()

        row = (await session.execute(stmt)).scalar_one_or_none()
        self._trace("find_one_where", hit=row is not None, for_update=for_update)
        return row

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
    ) -> List[T]:
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)

        rows = list((await session.execute(stmt)).scalars())
        self._trace("find_many_where", rows=len(rows), limit=limit)
        return rows

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        total = (await session.execute(stmt)).scalar_one()
        self._trace("count", total=total)
        return total

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    async def paginate(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
        order_by: Optional[Sequence[Any]] = None,
    ) -> Page[T]:
        """
        One page of rows matching ``conditions``.

        ``page``/``limit`` go through ``normalize_paging``. Include a unique
        column in ``order_by`` or rows can repeat across pages.
        """
        page, limit = normalize_paging(page, limit)
        total = await self.count(session, *conditions)

        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        stmt = stmt.offset((page - 1) * limit).limit(limit)

        items = list((await session.execute(stmt)).scalars())
        self._trace("paginate", page=page, limit=limit, total=total, rows=len(items))
        return Page(items=items, page=page, limit=limit, total=total)

    # -- writes --------------------------------------------------------------

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        self._trace("add")
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
        self._trace("delete")

    async def delete_where(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        """Bulk DELETE; returns the affected row count."""
        result = await session.execute(delete(self.model_class).where(*conditions))
        removed = result.rowcount or 0
        self._trace("delete_where", removed=removed)
        return removed


# -- keyed upsert ------------------------------------------------------------


@dataclass(frozen=True)
class UniqueKey(Generic[T]):
    """
    The columns that identify a row of ``model`` outside its surrogate id.

        PLAYER_KEY = UniqueKey(Player, ("name", "world"))
    """

    model: Type[T]
    columns: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.columns:
            raise ValueError("UniqueKey needs at least one column")
        unknown = [name for name in self.columns if not hasattr(self.model, name)]
        if unknown:
            raise ValueError(f"{self.model.__name__} has no column(s) {unknown}")

    def of_row(self, row: Mapping[str, Any]) -> Tuple[Any, ...]:
        return tuple(row[name] for name in self.columns)

    def of_instance(self, instance: T) -> Tuple[Any, ...]:
        return tuple(getattr(instance, name) for name in self.columns)

    def matches(self, keys: Sequence[Tuple[Any, ...]]) -> ColumnElement[bool]:
        attrs = [getattr(self.model, name) for name in self.columns]
        return or_(*(and_(*(a == v for a, v in zip(attrs, key))) for key in keys))


@dataclass
class UpsertResult(Generic[T]):
    created: List[T] = field(default_factory=list)
    updated: List[T] = field(default_factory=list)
    # (key, error) per row rolled back under isolate_rows
    failed: List[Tuple[Tuple[Any, ...], SQLAlchemyError]] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


async def bulk_upsert(
    session: AsyncSession,
    rows: Sequence[Mapping[str, Any]],
    key: UniqueKey[T],
    *,
    insert_defaults: Optional[Mapping[str, Any]] = None,
    isolate_rows: bool = False,
    batch_size: int = 100,
    logger: Optional[Logger] = None,
) -> UpsertResult[T]:
    """
    Insert or update ``rows``, matching stored rows on ``key``.

    One SELECT per batch finds the existing rows; matches get every column
    in the row assigned, the rest are inserted. Rows sharing a key collapse
    to the last one.

    Args:
        rows: Column-name mappings; each must contain the key columns
        insert_defaults: Extra columns used only when inserting, overridden
            by the row itself
        isolate_rows: Write each row inside its own SAVEPOINT. A row whose
            flush fails is rolled back and reported in ``failed``; the
            others are kept. Without it the first error propagates.
        batch_size: Rows per lookup query

    The caller owns the transaction.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    latest: Dict[Tuple[Any, ...], Mapping[str, Any]] = {}
    for row in rows:
        latest[key.of_row(row)] = row
    pending = list(latest.items())
    defaults = dict(insert_defaults or {})

    outcome: UpsertResult[T] = UpsertResult()

    async def _write(row_key: Tuple[Any, ...], row: Mapping[str, Any], existing: Dict) -> None:
        instance = existing.get(row_key)
        if instance is None:
            instance = key.model(**{**defaults, **row})
            session.add(instance)
            await session.flush()
            outcome.created.append(instance)
            return
        for column, value in row.items():
            setattr(instance, column, value)
        await session.flush()
        outcome.updated.append(instance)

    for start in range(0, len(pending), batch_size):
        batch = pending[start : start + batch_size]
        found = await session.execute(
            select(key.model).where(key.matches([row_key for row_key, _ in batch]))
        )
        existing = {key.of_instance(obj): obj for obj in found.scalars()}

        for row_key, row in batch:
            if not isolate_rows:
                await _write(row_key, row, existing)
                continue
            try:
                async with session.begin_nested():
                    await _write(row_key, row, existing)
            except SQLAlchemyError as exc:
                outcome.failed.append((row_key, exc))

    if logger is not None:
        logger.debug(
            f"{key.model.__name__}.bulk_upsert",
            extra={
                "model": key.model.__name__,
                "rows": len(pending),
                "created": outcome.created_count,
                "updated": outcome.updated_count,
                "failed": outcome.failed_count,
            },
        )
    return outcome
