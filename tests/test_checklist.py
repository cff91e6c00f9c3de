import pytest

from backend.app.core.errors import NotFoundError, ValidationError

ITEM = {
    "category": "Networking",
    "item": "Private subnets",
    "description": "Databases are not internet facing",
    "recommendedAction": "Move data stores into private subnets.",
    "owner": "Network team",
    "priority": "High",
}


def test_initialize_defaults_only_when_empty(checklist_service):
    inserted = checklist_service.initialize_defaults()
    assert inserted > 0
    assert checklist_service.initialize_defaults() == 0
    assert len(checklist_service.list_items()) == inserted


def test_list_is_sorted_by_category_priority_item(checklist_service):
    checklist_service.create({**ITEM, "item": "Zero trust", "priority": "Low"})
    checklist_service.create({**ITEM, "item": "Bastion hosts", "priority": "Medium"})
    checklist_service.create({**ITEM, "item": "Private subnets"})
    checklist_service.create({**ITEM, "category": "Compute", "item": "Patch images", "priority": "Low"})

    names = [i["item"] for i in checklist_service.list_items()]
    assert names == ["Patch images", "Private subnets", "Bastion hosts", "Zero trust"]
    assert [i["item"] for i in checklist_service.list_items(category="Compute")] == ["Patch images"]


def test_create_validates(checklist_service):
    with pytest.raises(ValidationError):
        checklist_service.create({"category": "Networking"})
    with pytest.raises(ValidationError):
        checklist_service.create({**ITEM, "priority": "Urgent"})


def test_toggle_update_delete(checklist_service):
    item = checklist_service.create(ITEM)
    assert item["enabled"] is True

    toggled = checklist_service.toggle(item["_id"])
    assert toggled["enabled"] is False
    assert checklist_service.get_enabled_items() == []

    updated = checklist_service.update(item["_id"], {"owner": "Platform", "bogus": "ignored"})
    assert updated["owner"] == "Platform"
    assert "bogus" not in updated

    assert checklist_service.delete(item["_id"]) is True
    with pytest.raises(NotFoundError):
        checklist_service.delete(item["_id"])
    with pytest.raises(NotFoundError):
        checklist_service.toggle(item["_id"])


def test_stats(checklist_service):
    first = checklist_service.create(ITEM)
    checklist_service.create({**ITEM, "item": "WAF", "priority": "Medium"})
    checklist_service.toggle(first["_id"])

    stats = checklist_service.stats()
    assert stats["totalItems"] == 2
    assert stats["enabledItems"] == 1
    assert stats["disabledItems"] == 1
    assert stats["categoryStats"] == [{"_id": "Networking", "total": 2, "enabled": 1}]
    assert {"_id": "High", "count": 1} in stats["priorityStats"]
