from __future__ import annotations

from typing import Any, Dict, List, Optional

from storefront.db import sqlite as db
from storefront.services.cart import CartLine


def line_from_row(row: Dict[str, Any]) -> CartLine:
    return CartLine(
        line_id=str(row["id"]),
        product_id=str(row["product_id"]),
        name=row["name"],
        unit_price=float(row["price"]),
        image_url=row["image_url"],
        quantity=int(row["quantity"]),
        selected_size=row.get("selected_size") or None,
        slug=row.get("slug"),
    )


class SqliteCartStore:
    """Cart rows in the application database."""

    def list_cart_rows(self, user_id: str) -> List[CartLine]:
        return [line_from_row(r) for r in db.list_cart_rows(user_id)]

    def upsert_cart_row(self, user_id: str, product_id: str, selected_size: Optional[str], quantity_delta: int) -> CartLine:
        return line_from_row(db.upsert_cart_row(user_id, product_id, selected_size, quantity_delta))

    def update_cart_row(self, row_id: str, user_id: str, new_quantity: int) -> bool:
        return db.update_cart_row(row_id, user_id, new_quantity)

    def delete_cart_row(self, row_id: str, user_id: str) -> bool:
        return db.delete_cart_row(row_id, user_id)

    def delete_all_cart_rows(self, user_id: str) -> None:
        db.delete_all_cart_rows(user_id)
