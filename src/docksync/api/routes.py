"""REST API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from docksync.registry.models import Device
from docksync.service import DockSyncService

router = APIRouter(prefix="/api")


def get_service(request: Request) -> DockSyncService:
    return request.app.state.service


# Response models
class ToggleSavedResponse(BaseModel):
    id: str
    is_saved: bool


class RemoveDeviceResponse(BaseModel):
    id: str
    removed: bool


class ScheduledResponse(BaseModel):
    action: str
    device_ids: list[str]


class StatusResponse(BaseModel):
    has_external_display: bool | None
    busy_devices: list[str]
    device_count: int
    saved_count: int


def _require_device(service: DockSyncService, device_id: str) -> Device:
    device = service.registry.get(device_id)
    if device is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return device


@router.get("/devices")
async def list_devices(service: DockSyncService = Depends(get_service)) -> list[Device]:
    return service.registry.devices


@router.post("/devices/pair-all", status_code=202)
async def pair_all(service: DockSyncService = Depends(get_service)) -> ScheduledResponse:
    ids = [d.id for d in service.registry.saved_devices()]
    service.submit(service.orchestrator.pair_all_saved_devices(), name="pair-all")
    return ScheduledResponse(action="pair", device_ids=ids)


@router.post("/devices/unpair-all", status_code=202)
async def unpair_all(service: DockSyncService = Depends(get_service)) -> ScheduledResponse:
    ids = [d.id for d in service.registry.saved_devices()]
    service.submit(service.orchestrator.unpair_all_saved_devices(), name="unpair-all")
    return ScheduledResponse(action="unpair", device_ids=ids)


@router.get("/devices/{device_id}")
async def device_detail(
    device_id: str,
    service: DockSyncService = Depends(get_service),
) -> Device:
    return _require_device(service, device_id)


# --- Device Management ---


@router.post("/devices/{device_id}/toggle-saved")
async def toggle_saved(
    device_id: str,
    service: DockSyncService = Depends(get_service),
) -> ToggleSavedResponse:
    device = _require_device(service, device_id)
    is_saved = service.registry.toggle_saved(device.id)
    if is_saved is None:
        raise HTTPException(status_code=404, detail="Device not found")
    return ToggleSavedResponse(id=device.id, is_saved=is_saved)


@router.delete("/devices/{device_id}")
async def remove_device(
    device_id: str,
    service: DockSyncService = Depends(get_service),
) -> RemoveDeviceResponse:
    device = _require_device(service, device_id)
    removed = await service.registry.remove_device(device.id)
    return RemoveDeviceResponse(id=device.id, removed=removed)


# --- Pairing Actions ---


@router.post("/devices/{device_id}/pair", status_code=202)
async def pair_device(
    device_id: str,
    service: DockSyncService = Depends(get_service),
) -> ScheduledResponse:
    device = _require_device(service, device_id)
    service.submit(service.orchestrator.pair_device(device.id), name=f"pair-{device.id}")
    return ScheduledResponse(action="pair", device_ids=[device.id])


@router.post("/devices/{device_id}/connect", status_code=202)
async def connect_device(
    device_id: str,
    service: DockSyncService = Depends(get_service),
) -> ScheduledResponse:
    device = _require_device(service, device_id)
    service.submit(service.orchestrator.connect_device(device.id), name=f"connect-{device.id}")
    return ScheduledResponse(action="connect", device_ids=[device.id])


@router.post("/devices/{device_id}/unpair", status_code=202)
async def unpair_device(
    device_id: str,
    service: DockSyncService = Depends(get_service),
) -> ScheduledResponse:
    device = _require_device(service, device_id)
    service.submit(service.orchestrator.unpair_device(device.id), name=f"unpair-{device.id}")
    return ScheduledResponse(action="unpair", device_ids=[device.id])


# --- Status ---


@router.post("/refresh")
async def refresh(service: DockSyncService = Depends(get_service)) -> list[Device]:
    return await service.registry.refresh()


@router.get("/status")
async def status(service: DockSyncService = Depends(get_service)) -> StatusResponse:
    devices = service.registry.devices
    return StatusResponse(
        has_external_display=service.display_monitor.has_external_display,
        busy_devices=sorted(service.orchestrator.busy_devices()),
        device_count=len(devices),
        saved_count=sum(1 for d in devices if d.is_saved),
    )


@router.get("/display")
async def display(service: DockSyncService = Depends(get_service)) -> dict[str, bool | None]:
    return {"has_external_display": service.display_monitor.has_external_display}
