"""Machine service: the equipment catalogue requests are filed against."""

import uuid

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.db.models import Machine, MaintenanceRequest
from maintrack.schemas.machine import MachineCreate, MachineUpdate
from maintrack.services.errors import ConflictError, NotFoundError

logger = structlog.get_logger()


class MachineService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: MachineCreate) -> Machine:
        await self._ensure_code_free(data.code)
        machine = Machine(**data.model_dump())
        self.db.add(machine)
        await self.db.commit()
        await self.db.refresh(machine)
        logger.info("machine.created", machine_id=str(machine.id), code=machine.code)
        return machine

    async def get(self, machine_id: uuid.UUID) -> Machine:
        machine = await self.db.get(Machine, machine_id)
        if machine is None:
            raise NotFoundError(f"Machine {machine_id} not found")
        return machine

    async def list(self, active_only: bool = False) -> list:
        query = select(Machine).order_by(Machine.code)
        if active_only:
            query = query.where(Machine.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update(self, machine_id: uuid.UUID, data: MachineUpdate) -> Machine:
        machine = await self.get(machine_id)
        changes = data.model_dump(exclude_unset=True)
        if "code" in changes and changes["code"] != machine.code:
            await self._ensure_code_free(changes["code"])
        for field, value in changes.items():
            setattr(machine, field, value)
        await self.db.commit()
        await self.db.refresh(machine)
        return machine

    async def remove(self, machine_id: uuid.UUID) -> None:
        """Delete a machine. Refused while any request still references it."""
        machine = await self.get(machine_id)
        in_use = await self.db.scalar(
            select(func.count())
            .select_from(MaintenanceRequest)
            .where(MaintenanceRequest.machine_id == machine_id)
        )
        if in_use:
            raise ConflictError(
                f"Machine {machine.code} has {in_use} maintenance request(s); deactivate it instead"
            )
        await self.db.delete(machine)
        await self.db.commit()
        logger.info("machine.removed", machine_id=str(machine_id))

    async def _ensure_code_free(self, code: str) -> None:
        existing = await self.db.scalar(select(Machine).where(Machine.code == code))
        if existing is not None:
            raise ConflictError(f"Machine code '{code}' already exists")
