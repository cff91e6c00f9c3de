"""
Review checklist management.

Enabled items are injected into the stage-two analysis prompt as evaluation
criteria.
"""

from __future__ import annotations

from typing import Any

from backend.app.core.db.documents import DocumentCollection, get_document_store
from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.observability.logging import log_event
from backend.app.utils.dates import utc_iso_now

CHECKLIST_COLLECTION = "checklist_items"
PRIORITIES = ("High", "Medium", "Low")
REQUIRED_FIELDS = ("category", "item", "description", "recommendedAction", "owner", "priority")
EDITABLE_FIELDS = REQUIRED_FIELDS + ("enabled",)
_PRIORITY_RANK = {"High": 0, "Medium": 1, "Low": 2}

DEFAULT_CHECKLIST = [
    {
        "category": "Identity & Access",
        "item": "Strong authentication",
        "description": "Protect consoles and management planes",
        "recommendedAction": "Enforce MFA for every account and hardware keys for administrators.",
        "owner": "Security/Cloud Ops",
        "priority": "High",
    },
    {
        "category": "Identity & Access",
        "item": "Least privilege IAM",
        "description": "Prevent over-permissive roles",
        "recommendedAction": "Scope roles to the minimum required actions and review them regularly.",
        "owner": "Security/DevOps",
        "priority": "High",
    },
    {
        "category": "Data Protection",
        "item": "Encryption at rest",
        "description": "Stored data is encrypted",
        "recommendedAction": "Enable provider or customer managed key encryption for storage and databases.",
        "owner": "Security",
        "priority": "High",
    },
    {
        "category": "Logging & Monitoring",
        "item": "Audit logs",
        "description": "Capture control plane and data access events",
        "recommendedAction": "Enable provider audit logging and ship it to a central store.",
        "owner": "SecOps",
        "priority": "High",
    },
    {
        "category": "Resilience",
        "item": "Backups and recovery",
        "description": "Data can be restored within the recovery objectives",
        "recommendedAction": "Schedule automated backups and test restores.",
        "owner": "Cloud Ops",
        "priority": "Medium",
    },
    {
        "category": "Cost Management",
        "item": "Budgets and alerts",
        "description": "Spend is tracked against budgets",
        "recommendedAction": "Define budgets per environment with alert thresholds.",
        "owner": "FinOps",
        "priority": "Low",
    },
]


def _sort_items(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(
        items,
        key=lambda i: (
            str(i.get("category") or ""),
            _PRIORITY_RANK.get(str(i.get("priority")), len(_PRIORITY_RANK)),
            str(i.get("item") or ""),
        ),
    )


def _validate(data: dict[str, Any], partial: bool = False):
    if not partial:
        missing = [f for f in REQUIRED_FIELDS if not str(data.get(f) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    if "priority" in data and data["priority"] not in PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(PRIORITIES)}")


class ChecklistService:
    def __init__(self, collection: DocumentCollection):
        self.collection = collection

    def list_items(self, category: str | None = None, enabled_only: bool = False) -> list[dict[str, Any]]:
        query: dict[str, Any] = {}
        if category:
            query["category"] = category
        if enabled_only:
            query["enabled"] = True
        return _sort_items(self.collection.find(query))

    def get_enabled_items(self) -> list[dict[str, Any]]:
        return self.list_items(enabled_only=True)

    def get(self, item_id: str) -> dict[str, Any]:
        item = self.collection.find_one({"_id": item_id})
        if item is None:
            raise NotFoundError("Checklist item not found")
        return item

    def create(self, data: dict[str, Any]) -> dict[str, Any]:
        _validate(data)
        now = utc_iso_now()
        doc = {f: str(data[f]).strip() for f in REQUIRED_FIELDS}
        doc["enabled"] = bool(data.get("enabled", True))
        doc["createdAt"] = now
        doc["updatedAt"] = now
        saved = self.collection.insert_one(doc)
        log_event("checklist_item_created", item_id=saved["_id"], category=doc["category"])
        return saved

    def update(self, item_id: str, data: dict[str, Any]) -> dict[str, Any]:
        updates = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
        _validate(updates, partial=True)
        updates["updatedAt"] = utc_iso_now()
        updated = self.collection.update_one({"_id": item_id}, updates)
        if updated is None:
            raise NotFoundError("Checklist item not found")
        return updated

    def delete(self, item_id: str) -> bool:
        deleted = self.collection.delete_one({"_id": item_id})
        if not deleted:
            raise NotFoundError("Checklist item not found")
        return True

    def toggle(self, item_id: str) -> dict[str, Any]:
        item = self.get(item_id)
        return self.collection.update_one(
            {"_id": item_id},
            {"enabled": not bool(item.get("enabled", True)), "updatedAt": utc_iso_now()},
        )

    def stats(self) -> dict[str, Any]:
        items = self.collection.find({})
        enabled = sum(1 for i in items if i.get("enabled", True))

        categories: dict[str, dict[str, int]] = {}
        priorities: dict[str, int] = {}
        for item in items:
            cat = categories.setdefault(str(item.get("category") or ""), {"total": 0, "enabled": 0})
            cat["total"] += 1
            if item.get("enabled", True):
                cat["enabled"] += 1
            priority = str(item.get("priority") or "")
            priorities[priority] = priorities.get(priority, 0) + 1

        return {
            "totalItems": len(items),
            "enabledItems": enabled,
            "disabledItems": len(items) - enabled,
            "categoryStats": [{"_id": k, **v} for k, v in sorted(categories.items())],
            "priorityStats": [{"_id": k, "count": v} for k, v in sorted(priorities.items())],
        }

    def initialize_defaults(self) -> int:
        if self.collection.count({}) > 0:
            return 0
        for item in DEFAULT_CHECKLIST:
            self.create({**item, "enabled": True})
        log_event("checklist_initialized", inserted=len(DEFAULT_CHECKLIST))
        return len(DEFAULT_CHECKLIST)


def get_checklist_service() -> ChecklistService:
    return ChecklistService(get_document_store().collection(CHECKLIST_COLLECTION))
