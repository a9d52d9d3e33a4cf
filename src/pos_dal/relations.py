"""Relationship registry: the only schema information the DAL receives."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Optional

from pos_dal.identifiers import check_identifier


class RelationKind(str, Enum):
    """Direction of a relation edge, seen from the owning table."""

    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"


@dataclass(frozen=True)
class Relation:
    """A declared relation edge.

    For ONE_TO_MANY, ``foreign_key`` lives on ``target_table`` and points at the
    owner's ``local_key``. For MANY_TO_ONE, ``foreign_key`` lives on the owner and
    points at the target's ``local_key``.
    """

    kind: RelationKind
    target_table: str
    foreign_key: str
    local_key: str = "id"

    def __post_init__(self) -> None:
        check_identifier(self.target_table, "table")
        check_identifier(self.foreign_key, "field")
        check_identifier(self.local_key, "field")


class RelationshipRegistry:
    """Immutable ``table -> relation field -> Relation`` map."""

    def __init__(self, relations: Mapping[str, Mapping[str, Relation]]) -> None:
        frozen: Dict[str, Mapping[str, Relation]] = {}
        for table, fields in relations.items():
            check_identifier(table, "table")
            for name in fields:
                check_identifier(name, "relation")
            frozen[table] = MappingProxyType(dict(fields))
        self._relations = MappingProxyType(frozen)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, Mapping]]) -> "RelationshipRegistry":
        """Build a registry from plain descriptor mappings.

        Descriptors use the keys ``type``, ``foreignTable``, ``foreignKey`` and
        ``localKey``.
        """
        relations = {
            table: {
                name: Relation(
                    kind=RelationKind(descriptor["type"]),
                    target_table=descriptor["foreignTable"],
                    foreign_key=descriptor["foreignKey"],
                    local_key=descriptor.get("localKey", "id"),
                )
                for name, descriptor in fields.items()
            }
            for table, fields in raw.items()
        }
        return cls(relations)

    def get(self, table: str, field: str) -> Optional[Relation]:
        """Return the relation declared for ``table.field`` or None."""
        return self._relations.get(table, {}).get(field)

    def relations_for(self, table: str) -> Mapping[str, Relation]:
        return self._relations.get(table, MappingProxyType({}))

    def tables(self) -> list[str]:
        return list(self._relations)


def _one_to_many(target: str, foreign_key: str) -> Relation:
    return Relation(RelationKind.ONE_TO_MANY, target, foreign_key)


def _many_to_one(target: str, foreign_key: str) -> Relation:
    return Relation(RelationKind.MANY_TO_ONE, target, foreign_key)


POS_RELATIONSHIPS = RelationshipRegistry(
    {
        "orders": {
            "items": _one_to_many("order_items", "orderId"),
            "table": _many_to_one("tables", "tableId"),
            "customer": _many_to_one("customers", "customerId"),
            "user": _many_to_one("users", "userId"),
            "payments": _one_to_many("payments", "orderId"),
        },
        "order_items": {
            "order": _many_to_one("orders", "orderId"),
            "menuItem": _many_to_one("menu_items", "menuItemId"),
            "addons": _one_to_many("order_item_addons", "orderItemId"),
        },
        "order_item_addons": {
            "orderItem": _many_to_one("order_items", "orderItemId"),
            "addon": _many_to_one("addons", "addonId"),
        },
        "menu_items": {
            "category": _many_to_one("categories", "categoryId"),
            "inventoryItems": _one_to_many("menu_item_inventory", "menuItemId"),
            "orderItems": _one_to_many("order_items", "menuItemId"),
        },
        "menu_item_inventory": {
            "menuItem": _many_to_one("menu_items", "menuItemId"),
            "inventory": _many_to_one("inventory", "inventoryId"),
        },
        "categories": {
            "menuItems": _one_to_many("menu_items", "categoryId"),
            "addonCategoryAssignments": _one_to_many("category_addon_groups", "categoryId"),
        },
        "category_addon_groups": {
            "category": _many_to_one("categories", "categoryId"),
            "addonGroup": _many_to_one("addon_groups", "addonGroupId"),
        },
        "addon_groups": {
            "addons": _one_to_many("addons", "addonGroupId"),
            "categoryAssignments": _one_to_many("category_addon_groups", "addonGroupId"),
        },
        "addons": {
            "addonGroup": _many_to_one("addon_groups", "addonGroupId"),
            "orderItemAddons": _one_to_many("order_item_addons", "addonId"),
        },
        "users": {"orders": _one_to_many("orders", "userId")},
        "tables": {"orders": _one_to_many("orders", "tableId")},
        "customers": {"orders": _one_to_many("orders", "customerId")},
        "payments": {"order": _many_to_one("orders", "orderId")},
        "inventory": {"menuItemInventory": _one_to_many("menu_item_inventory", "inventoryId")},
    }
)

MODEL_TABLES: Mapping[str, str] = MappingProxyType(
    {
        "user": "users",
        "table": "tables",
        "category": "categories",
        "menuItem": "menu_items",
        "customer": "customers",
        "order": "orders",
        "orderItem": "order_items",
        "payment": "payments",
        "inventory": "inventory",
        "menuItemInventory": "menu_item_inventory",
        "expense": "expenses",
        "setting": "settings",
        "auditLog": "audit_logs",
        "addonGroup": "addon_groups",
        "addon": "addons",
        "addonInventoryItem": "addon_inventory_items",
        "categoryAddonGroup": "category_addon_groups",
        "orderItemAddon": "order_item_addons",
    }
)
