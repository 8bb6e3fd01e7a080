"""
Machine endpoints: listing, details, QR scanning and admin management.
"""

from fastapi import APIRouter, Depends, Request, status

from washq.api.deps import get_admin_user, get_app_state, get_current_user
from washq.schemas.machine import (
    Machine, MachineCreate, MachineListResponse, MachineQRResponse,
    MachineStatus, MachineStatusUpdate, ScanRequest,
)
from washq.schemas.user import User
from washq.services.app_state import WashQ
from washq.services.cache_service import get_cached_machines, set_cached_machines
from washq.services.qr_service import machine_qr_url, resolve_frame, resolve_scan

router = APIRouter(prefix="/machines", tags=["Machines"])


@router.get("/", response_model=MachineListResponse)
async def list_machines(washq: WashQ = Depends(get_app_state)):
    """
    All machines in creation order.

    Served from the Redis cache when warm; the cache is dropped on every
    committed machine change.
    """
    if washq.use_cache:
        cached = await get_cached_machines()
        if cached:
            cached["cached"] = True
            return cached

    machines = await washq.registry.list()
    response = MachineListResponse(
        machines=machines,
        total=len(machines),
        available=sum(1 for m in machines if m.status == MachineStatus.AVAILABLE),
    )
    if washq.use_cache and machines:
        await set_cached_machines(response.model_dump(mode="json"))
    return response


@router.get("/{machine_id}", response_model=Machine)
async def get_machine(machine_id: str, washq: WashQ = Depends(get_app_state)):
    return await washq.registry.fetch_machine_details(machine_id)


@router.post("/scan", response_model=Machine)
async def scan_machine(
    scan: ScanRequest,
    user: User = Depends(get_current_user),
    washq: WashQ = Depends(get_app_state),
):
    """Resolve a scanned QR payload to its machine."""
    return await resolve_scan(washq.registry, scan.payload)


@router.post("/scan/frame", response_model=Machine)
async def scan_frame(
    request: Request,
    user: User = Depends(get_current_user),
    washq: WashQ = Depends(get_app_state),
):
    """Resolve a raw camera frame with the configured QR decoder."""
    return await resolve_frame(washq.registry, washq.decoder, await request.body())


@router.get("/{machine_id}/qr", response_model=MachineQRResponse)
async def machine_qr(machine_id: str, washq: WashQ = Depends(get_app_state)):
    machine = await washq.registry.fetch_machine_details(machine_id)
    return MachineQRResponse(
        machine_id=machine.id,
        payload=machine_qr_url(washq.settings.QR_ORIGIN, machine.id),
    )


@router.post("/", response_model=Machine, status_code=status.HTTP_201_CREATED)
async def create_machine(
    machine_data: MachineCreate,
    admin: User = Depends(get_admin_user),
    washq: WashQ = Depends(get_app_state),
):
    return await washq.registry.create(machine_data.name, admin)


@router.patch("/{machine_id}/status", response_model=Machine)
async def update_machine_status(
    machine_id: str,
    update: MachineStatusUpdate,
    admin: User = Depends(get_admin_user),
    washq: WashQ = Depends(get_app_state),
):
    """Admin override. Entering `available` releases every booking on the machine."""
    return await washq.registry.set_status(machine_id, update.status, admin)


@router.post("/{machine_id}/complete", response_model=Machine)
async def complete_machine(
    machine_id: str,
    admin: User = Depends(get_admin_user),
    washq: WashQ = Depends(get_app_state),
):
    return await washq.coordinator.complete_to_available(machine_id, admin)


@router.delete("/{machine_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_machine(
    machine_id: str,
    admin: User = Depends(get_admin_user),
    washq: WashQ = Depends(get_app_state),
):
    await washq.registry.remove(machine_id, admin)
