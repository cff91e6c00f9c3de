"""
Review checklist endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends

from backend.app.services.checklist_service import ChecklistService, get_checklist_service


router = APIRouter(prefix="/api/checklist", tags=["checklist"])


@router.get("")
def list_checklist(
    category: Optional[str] = None,
    enabledOnly: bool = False,
    service: ChecklistService = Depends(get_checklist_service),
):
    items = service.list_items(category=category, enabled_only=enabledOnly)
    return {"success": True, "items": items, "count": len(items)}


@router.post("", status_code=201)
def create_checklist_item(payload: dict[str, Any], service: ChecklistService = Depends(get_checklist_service)):
    return {"success": True, "item": service.create(payload)}


@router.post("/initialize")
def initialize_checklist(service: ChecklistService = Depends(get_checklist_service)):
    inserted = service.initialize_defaults()
    if not inserted:
        return {"success": True, "inserted": 0, "message": "Checklist already initialized"}
    return {"success": True, "inserted": inserted, "message": f"Initialized {inserted} checklist items"}


@router.get("/stats")
def checklist_stats(service: ChecklistService = Depends(get_checklist_service)):
    return service.stats()


@router.put("/{item_id}")
def update_checklist_item(
    item_id: str,
    payload: dict[str, Any],
    service: ChecklistService = Depends(get_checklist_service),
):
    return {"success": True, "item": service.update(item_id, payload)}


@router.delete("/{item_id}")
def delete_checklist_item(item_id: str, service: ChecklistService = Depends(get_checklist_service)):
    service.delete(item_id)
    return {"success": True, "message": "Checklist item deleted"}


@router.patch("/{item_id}/toggle")
def toggle_checklist_item(item_id: str, service: ChecklistService = Depends(get_checklist_service)):
    return {"success": True, "item": service.toggle(item_id)}
