"""Machine catalogue API routes. Reads are open to any user; writes are admin-only."""

import uuid

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack.auth.dependencies import require_roles
from maintrack.db.engine import get_db
from maintrack.db.models import Role
from maintrack.schemas.machine import MachineCreate, MachineRead, MachineUpdate
from maintrack.services.machine_service import MachineService

router = APIRouter(prefix="/machines")

_admin = [Depends(require_roles(Role.ADMIN))]


def _svc(db: AsyncSession = Depends(get_db)) -> MachineService:
    return MachineService(db)


@router.post("", response_model=MachineRead, status_code=201, dependencies=_admin)
async def create_machine(body: MachineCreate, svc: MachineService = Depends(_svc)):
    """Register a machine. 409 if the code is taken."""
    return await svc.create(body)


@router.get("", response_model=list[MachineRead])
async def list_machines(
    active_only: bool = Query(False),
    svc: MachineService = Depends(_svc),
):
    return await svc.list(active_only=active_only)


@router.get("/{machine_id}", response_model=MachineRead)
async def get_machine(machine_id: uuid.UUID, svc: MachineService = Depends(_svc)):
    return await svc.get(machine_id)


@router.patch("/{machine_id}", response_model=MachineRead, dependencies=_admin)
async def update_machine(
    machine_id: uuid.UUID,
    body: MachineUpdate,
    svc: MachineService = Depends(_svc),
):
    return await svc.update(machine_id, body)


@router.delete("/{machine_id}", status_code=204, dependencies=_admin)
async def delete_machine(machine_id: uuid.UUID, svc: MachineService = Depends(_svc)):
    await svc.remove(machine_id)
    return Response(status_code=204)
