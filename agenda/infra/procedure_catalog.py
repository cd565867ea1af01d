"""SQL-backed procedure catalog."""

from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agenda.core.scheduling.models import Procedure
from agenda.core.scheduling.ports import ProcedureCatalog
from agenda.infra.database import async_session_factory
from agenda.models.database import ProcedureRecord


class SqlProcedureCatalog(ProcedureCatalog):
    """Reads the procedures table. Unknown ids are simply absent from results."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or async_session_factory

    async def get_procedures(self, procedure_ids: Iterable[str]) -> dict[str, Procedure]:
        ids = list(procedure_ids)
        if not ids:
            return {}

        async with self.session_factory() as session:
            result = await session.execute(
                select(ProcedureRecord).where(ProcedureRecord.id.in_(ids))
            )
            return {
                record.id: Procedure(
                    id=record.id,
                    name=record.name,
                    duration_minutes=record.duration_minutes,
                    price=record.price,
                )
                for record in result.scalars().all()
            }

    async def max_duration_minutes(self) -> int:
        async with self.session_factory() as session:
            longest = await session.scalar(select(func.max(ProcedureRecord.duration_minutes)))
            return int(longest or 0)
