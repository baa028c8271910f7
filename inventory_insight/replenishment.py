"""Replenishment priority list and shopping list.

Ranks every product by how soon it needs restocking, then turns the
ranked list into a purchase plan grouped by supplier.

Urgency:
    high:   runs out within 7 days, or no estimate and nothing on hand
            while at/below minimum
    medium: runs out within 14 days, or no estimate and at/below minimum
    low:    otherwise

Order quantity (economic order quantity):
    EOQ = ceil(sqrt(2 * D * S / H))
    D = daily consumption * 365, S = ordering cost, H = unit value * holding rate
Never below the recommended quantity.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping

from .config import InsightSettings, get_settings
from .gateway import Snapshot
from .models import DepletionPrediction, Product, Severity

logger = logging.getLogger("insight.replenishment")

UNSPECIFIED_SUPPLIER = "Unspecified"


# ---------------------------------------------------------------------------
# Report data classes
# ---------------------------------------------------------------------------


@dataclass
class PriorityItem:
    """One product on the replenishment priority list."""

    product_id: int
    code: str
    name: str
    quantity_on_hand: int
    days_remaining: int | None
    urgency: Severity
    recommended_quantity: int
    daily_consumption: float
    replenishment_value: float
    supplier: str | None = None
    category: str | None = None
    purchase_group: str | None = None

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "code": self.code,
            "name": self.name,
            "quantity_on_hand": self.quantity_on_hand,
            "days_remaining": self.days_remaining,
            "urgency": self.urgency.value,
            "recommended_quantity": self.recommended_quantity,
            "daily_consumption": round(self.daily_consumption, 2),
            "replenishment_value": round(self.replenishment_value, 2),
            "supplier": self.supplier,
            "category": self.category,
            "purchase_group": self.purchase_group,
        }


@dataclass
class ShoppingItem:
    """A line of the shopping list."""

    item: PriorityItem
    order_quantity: int

    def to_dict(self) -> dict:
        d = self.item.to_dict()
        d["order_quantity"] = self.order_quantity
        return d


@dataclass
class SupplierOrder:
    """Shopping list lines consolidated for one supplier."""

    supplier: str
    product_ids: list[int] = field(default_factory=list)
    total_value: float = 0.0
    max_urgency: Severity = Severity.LOW

    def to_dict(self) -> dict:
        return {
            "supplier": self.supplier,
            "product_ids": list(self.product_ids),
            "total_value": round(self.total_value, 2),
            "max_urgency": self.max_urgency.value,
        }


@dataclass
class ShoppingList:
    """Complete purchase plan."""

    items: list[ShoppingItem] = field(default_factory=list)
    suppliers: dict[str, SupplierOrder] = field(default_factory=dict)
    total_value: float = 0.0
    estimated_savings: float | None = None

    @property
    def total_items(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict:
        return {
            "items": [i.to_dict() for i in self.items],
            "total_items": self.total_items,
            "suppliers": {k: v.to_dict() for k, v in self.suppliers.items()},
            "total_value": round(self.total_value, 2),
            "estimated_savings": (
                round(self.estimated_savings, 2)
                if self.estimated_savings is not None
                else None
            ),
        }


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


def _sort_key(item: PriorityItem) -> tuple:
    return (
        -item.urgency.rank,
        item.days_remaining is None,
        item.days_remaining if item.days_remaining is not None else 0,
        item.purchase_group or "",
        item.supplier or "",
        item.category or "",
    )


class ReplenishmentPlanner:
    """Build the priority list and shopping list from depletion predictions.

    Usage:
        planner = ReplenishmentPlanner()
        items = planner.prioritize(snapshot, predictions, now)
        plan = planner.shopping_list(items)
    """

    def __init__(self, settings: InsightSettings | None = None):
        self.settings = settings or get_settings()
        self.heuristics = self.settings.replenishment
        self.unit_value = self.settings.anomalies.assumed_unit_value

    def urgency(self, product: Product, prediction: DepletionPrediction) -> Severity:
        h = self.heuristics
        days = prediction.days_remaining
        if days is not None:
            if days <= h.high_urgency_days:
                return Severity.HIGH
            if days <= h.medium_urgency_days:
                return Severity.MEDIUM
            return Severity.LOW

        minimum = (
            product.min_quantity
            if product.min_quantity is not None
            else self.settings.depletion.default_min_quantity
        )
        if product.quantity_on_hand <= minimum:
            return Severity.HIGH if product.quantity_on_hand == 0 else Severity.MEDIUM
        return Severity.LOW

    def prioritize(
        self,
        snapshot: Snapshot,
        predictions: Mapping[int, DepletionPrediction],
        now: datetime,
    ) -> list[PriorityItem]:
        """Products ranked by replenishment urgency, most urgent first."""
        h = self.heuristics
        supplier_sizes: dict[str, int] = {}
        for product in snapshot.products:
            key = product.supplier or UNSPECIFIED_SUPPLIER
            supplier_sizes[key] = supplier_sizes.get(key, 0) + 1

        items = []
        for product in snapshot.products:
            prediction = predictions.get(product.id)
            if prediction is None:
                continue
            supplier = product.supplier or UNSPECIFIED_SUPPLIER
            group = None
            if supplier_sizes[supplier] >= h.min_supplier_products and prediction.needs_reorder:
                group = f"{supplier}-{now:%Y%m%d}"

            items.append(
                PriorityItem(
                    product_id=product.id,
                    code=product.code,
                    name=product.name,
                    quantity_on_hand=product.quantity_on_hand,
                    days_remaining=prediction.days_remaining,
                    urgency=self.urgency(product, prediction),
                    recommended_quantity=prediction.recommended_quantity,
                    daily_consumption=prediction.daily_consumption,
                    replenishment_value=prediction.recommended_quantity * self.unit_value,
                    supplier=product.supplier,
                    category=product.category,
                    purchase_group=group,
                )
            )

        items = [
            i for i in items if i.urgency != Severity.LOW or i.recommended_quantity > 0
        ]
        items.sort(key=_sort_key)
        logger.info(
            "Priority list: %d items (%d high urgency)",
            len(items),
            sum(1 for i in items if i.urgency == Severity.HIGH),
        )
        return items

    def economic_order_quantity(self, item: PriorityItem) -> int:
        h = self.heuristics
        annual_demand = item.daily_consumption * 365
        holding = self.unit_value * h.holding_cost_rate
        if annual_demand <= 0 or holding <= 0:
            return item.recommended_quantity
        eoq = math.ceil(math.sqrt(2 * annual_demand * h.ordering_cost / holding))
        return max(eoq, item.recommended_quantity)

    def shopping_list(self, items: list[PriorityItem]) -> ShoppingList:
        """Consolidate priority items into a per-supplier purchase plan."""
        plan = ShoppingList()
        for item in items:
            if item.recommended_quantity <= 0 and item.urgency == Severity.LOW:
                continue
            plan.items.append(
                ShoppingItem(item=item, order_quantity=self.economic_order_quantity(item))
            )
            supplier = item.supplier or UNSPECIFIED_SUPPLIER
            order = plan.suppliers.setdefault(supplier, SupplierOrder(supplier=supplier))
            order.product_ids.append(item.product_id)
            order.total_value += item.replenishment_value
            if item.urgency.rank > order.max_urgency.rank:
                order.max_urgency = item.urgency

        plan.total_value = sum(o.total_value for o in plan.suppliers.values())
        savings = (len(plan.items) - len(plan.suppliers)) * self.heuristics.ordering_cost
        plan.estimated_savings = savings if savings > 0 else None
        return plan
