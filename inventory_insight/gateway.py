"""Data gateway interface and snapshot.

The analytics core never owns persistence. It reads products and
movements through a ``DataGateway`` exactly once per request and works
on the resulting immutable ``Snapshot``.

Implementations:
    InMemoryGateway  -- lists of records (dev/testing)
    FrameGateway     -- pandas DataFrames or CSV exports from a POS/ERP

Usage:
    gateway = FrameGateway.from_csv("products.csv", "movements.csv")
    snapshot = Snapshot.capture(gateway)
    snapshot.outbound(product_id)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

import pandas as pd

from .errors import NotFound, StorageUnavailable
from .models import Movement, MovementDirection, Product, to_naive_utc

logger = logging.getLogger("insight.gateway")


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------


class DataGateway(ABC):
    """Read-only source of validated Product and Movement records."""

    @abstractmethod
    def list_movements(
        self,
        product_id: int | None = None,
        since: datetime | None = None,
    ) -> list[Movement]:
        """List movements, optionally for one product and from ``since`` on."""
        ...

    @abstractmethod
    def list_products(self) -> list[Product]:
        """List every product in the catalog."""
        ...


# ---------------------------------------------------------------------------
# In-memory implementation (dev/testing)
# ---------------------------------------------------------------------------


class InMemoryGateway(DataGateway):
    """Gateway over plain lists of records."""

    def __init__(
        self,
        products: list[Product] | None = None,
        movements: list[Movement] | None = None,
    ) -> None:
        self._products = list(products or [])
        self._movements = list(movements or [])

    def list_movements(
        self,
        product_id: int | None = None,
        since: datetime | None = None,
    ) -> list[Movement]:
        if since is not None:
            since = to_naive_utc(since)
        return [
            m
            for m in self._movements
            if (product_id is None or m.product_id == product_id)
            and (since is None or m.timestamp >= since)
        ]

    def list_products(self) -> list[Product]:
        return list(self._products)


# ---------------------------------------------------------------------------
# DataFrame implementation
# ---------------------------------------------------------------------------

# Canonical field -> accepted source column names
PRODUCT_ALIASES: dict[str, list[str]] = {
    "id": ["id", "product_id", "item_id"],
    "code": ["code", "sku", "SKU", "barcode", "upc"],
    "name": ["name", "description", "product_name"],
    "quantity_on_hand": ["quantity_on_hand", "qty_on_hand", "quantity", "qty", "on_hand", "stock"],
    "min_quantity": ["min_quantity", "min_qty", "reorder_point", "minimum"],
    "supplier": ["supplier", "vendor"],
    "category": ["category", "department"],
    "location": ["location", "bin_location", "bin"],
}

MOVEMENT_ALIASES: dict[str, list[str]] = {
    "id": ["id", "movement_id"],
    "product_id": ["product_id", "item_id", "sku_id"],
    "direction": ["direction", "type", "kind"],
    "quantity": ["quantity", "qty", "units"],
    "timestamp": ["timestamp", "date", "created_at", "movement_date"],
}

_DIRECTION_VALUES: dict[str, MovementDirection] = {
    "in": MovementDirection.IN,
    "inbound": MovementDirection.IN,
    "receipt": MovementDirection.IN,
    "out": MovementDirection.OUT,
    "outbound": MovementDirection.OUT,
    "sale": MovementDirection.OUT,
}


def _resolve_columns(df: pd.DataFrame, aliases: dict[str, list[str]]) -> dict[str, str]:
    """Map source column names to canonical field names."""
    rename: dict[str, str] = {}
    for canonical, candidates in aliases.items():
        for col in candidates:
            if col in df.columns:
                rename[col] = canonical
                break
    return rename


def _optional(value):
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    return value


class FrameGateway(DataGateway):
    """Gateway over pandas DataFrames.

    Columns are matched through alias lists, so exports from most POS
    systems load without manual renaming. Missing optional columns are
    simply absent from the resulting products.
    """

    def __init__(self, products: pd.DataFrame, movements: pd.DataFrame) -> None:
        self._products = self._parse_products(products)
        self._movements = self._parse_movements(movements)
        logger.info(
            "FrameGateway loaded %d products, %d movements",
            len(self._products),
            len(self._movements),
        )

    @classmethod
    def from_csv(cls, products_path: str | Path, movements_path: str | Path) -> FrameGateway:
        return cls(pd.read_csv(products_path), pd.read_csv(movements_path))

    @staticmethod
    def _parse_products(df: pd.DataFrame) -> list[Product]:
        df = df.rename(columns=_resolve_columns(df, PRODUCT_ALIASES))
        missing = {"id", "code", "name"} - set(df.columns)
        if missing:
            raise ValueError(f"Product frame missing columns: {sorted(missing)}")

        products = []
        for row in df.to_dict(orient="records"):
            min_qty = _optional(row.get("min_quantity"))
            products.append(
                Product(
                    id=int(row["id"]),
                    code=str(row["code"]),
                    name=str(row["name"]),
                    quantity_on_hand=int(_optional(row.get("quantity_on_hand")) or 0),
                    min_quantity=int(min_qty) if min_qty is not None else None,
                    supplier=_optional(row.get("supplier")),
                    category=_optional(row.get("category")),
                    location=_optional(row.get("location")),
                )
            )
        return products

    @staticmethod
    def _parse_movements(df: pd.DataFrame) -> list[Movement]:
        df = df.rename(columns=_resolve_columns(df, MOVEMENT_ALIASES))
        missing = {"product_id", "direction", "quantity", "timestamp"} - set(df.columns)
        if missing:
            raise ValueError(f"Movement frame missing columns: {sorted(missing)}")

        # Offsets are folded into naive UTC; naive values are read as UTC.
        df = df.assign(
            timestamp=pd.to_datetime(df["timestamp"], utc=True).dt.tz_convert(None)
        )
        if "id" not in df.columns:
            df = df.assign(id=range(1, len(df) + 1))

        movements = []
        for row in df.to_dict(orient="records"):
            direction = _DIRECTION_VALUES.get(str(row["direction"]).strip().lower())
            if direction is None:
                raise ValueError(f"Unknown movement direction: {row['direction']!r}")
            movements.append(
                Movement(
                    id=int(row["id"]),
                    product_id=int(row["product_id"]),
                    direction=direction,
                    quantity=int(row["quantity"]),
                    timestamp=row["timestamp"].to_pydatetime(),
                )
            )
        return movements

    def list_movements(
        self,
        product_id: int | None = None,
        since: datetime | None = None,
    ) -> list[Movement]:
        if since is not None:
            since = to_naive_utc(since)
        return [
            m
            for m in self._movements
            if (product_id is None or m.product_id == product_id)
            and (since is None or m.timestamp >= since)
        ]

    def list_products(self) -> list[Product]:
        return list(self._products)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of the catalog and its movement history.

    Fetched once per request; every analysis of the request reads the
    same snapshot, so concurrent analyses cannot affect each other.
    """

    products: tuple[Product, ...]
    movements: tuple[Movement, ...]
    _by_id: Mapping[int, Product] = field(repr=False, compare=False)
    _by_product: Mapping[int, tuple[Movement, ...]] = field(repr=False, compare=False)

    @classmethod
    def build(cls, products: list[Product], movements: list[Movement]) -> Snapshot:
        grouped: dict[int, list[Movement]] = defaultdict(list)
        for m in movements:
            grouped[m.product_id].append(m)
        return cls(
            products=tuple(products),
            movements=tuple(movements),
            _by_id=MappingProxyType({p.id: p for p in products}),
            _by_product=MappingProxyType({k: tuple(v) for k, v in grouped.items()}),
        )

    @classmethod
    def capture(cls, gateway: DataGateway) -> Snapshot:
        """Fetch products and movements once.

        Raises:
            StorageUnavailable: If the gateway fails.
        """
        try:
            products = gateway.list_products()
            movements = gateway.list_movements()
        except Exception as e:
            raise StorageUnavailable(f"Data gateway failed: {e}") from e
        logger.debug(
            "Captured snapshot: %d products, %d movements", len(products), len(movements)
        )
        return cls.build(products, movements)

    def product(self, product_id: int) -> Product:
        """Look up a product.

        Raises:
            NotFound: If the id is not in the catalog.
        """
        try:
            return self._by_id[product_id]
        except KeyError:
            raise NotFound(product_id) from None

    def has_product(self, product_id: int) -> bool:
        return product_id in self._by_id

    def movements_for(self, product_id: int) -> tuple[Movement, ...]:
        return self._by_product.get(product_id, ())

    def outbound(self, product_id: int) -> list[Movement]:
        return [m for m in self.movements_for(product_id) if m.is_outbound]
