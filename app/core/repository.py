from typing import Any, Generic, Sequence, TypeVar
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.base import Base
from app.core.errors import NotFoundError

ModelT = TypeVar("ModelT", bound=Base)

class DataRepository(Generic[ModelT]):
    """read / read_all / create / update / delete over one mapped model.

    ``read_all`` takes an equality filter keyed by attribute name; a ``None``
    value matches SQL NULL.
    """
    model: type[ModelT]

    def __init__(self, session: AsyncSession, model: type[ModelT] | None = None):
        self.session = session
        if model is not None:
            self.model = model

    async def read(self, item_id: str) -> ModelT:
        obj = await self.session.get(self.model, item_id)
        if obj is None:
            raise NotFoundError(self.model.__name__, item_id)
        return obj

    async def read_all(self, filter: dict[str, Any] | None = None, *, limit: int | None = None) -> Sequence[ModelT]:
        conditions = []
        for name, value in (filter or {}).items():
            column = getattr(self.model, name)
            conditions.append(column.is_(None) if value is None else column == value)
        q = select(self.model)
        if conditions:
            q = q.where(and_(*conditions))
        q = q.order_by(self.model.created_at.asc())
        if limit is not None:
            q = q.limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def read_first(self, filter: dict[str, Any]) -> ModelT | None:
        items = await self.read_all(filter, limit=1)
        return items[0] if items else None

    async def create(self, obj: ModelT) -> ModelT:
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def update(self, item_id: str, **fields) -> ModelT:
        obj = await self.read(item_id)
        for k, v in fields.items():
            setattr(obj, k, v)
        await self.session.flush()
        return obj

    async def delete(self, item_id: str) -> None:
        obj = await self.read(item_id)
        await self.session.delete(obj)
        await self.session.flush()
