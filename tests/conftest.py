"""
Shared fixtures.

Every test gets its own SQLite file and its own local-storage directory, so
tests never see each other's carts or users.
"""
import dataclasses
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from storefront import config
from storefront.db import sqlite as db
from storefront.errors import NotFound, StoreUnavailable
from storefront.services.cart import CartLine, CartService, ProductRef
from storefront.services.guest_storage import LocalStorage
from storefront.web.main import app


@pytest.fixture
def test_settings(tmp_path, monkeypatch):
    s = dataclasses.replace(
        config.settings,
        db_path=str(tmp_path / "storefront.db"),
        guest_storage_dir=str(tmp_path / "local_storage"),
    )
    monkeypatch.setattr(db, "settings", s)
    db.init_db()
    return s


@pytest.fixture
def catalog(test_settings) -> Dict[str, dict]:
    """Two products in the database: a sized shirt and a sizeless cap."""
    shirt = db.add_product(
        "Kaos Polos",
        "kaos-polos",
        10000,
        category="Pakaian",
        image_urls=["https://img.example/kaos.jpg"],
        sizes=["S", "M", "L"],
    )
    cap = db.add_product("Topi", "topi", 5000, category="Aksesoris")
    return {"shirt": shirt, "cap": cap}


@pytest.fixture
def users(test_settings) -> Dict[str, dict]:
    """Users created straight in the database (no usable password)."""
    return {
        "a": db.create_user("a@example.com", "Ani", "!"),
        "b": db.create_user("b@example.com", "Budi", "!"),
    }


@pytest.fixture
def local_storage(tmp_path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "device"))


class FakeCartStore:
    """
    In-memory stand-in for the persistent cart store.

    Row ids are global across users, like database row ids, so a user can
    name another user's row. ``failing_products`` makes upserts of those
    products raise StoreUnavailable; ``down`` makes every call raise.
    """

    def __init__(self, products: Dict[str, ProductRef]):
        self.products = products
        self.rows: Dict[str, dict] = {}
        self.next_id = 1
        self.failing_products: set = set()
        self.down = False
        self.calls: List[tuple] = []

    def _check(self, *call):
        self.calls.append(call)
        if self.down:
            raise StoreUnavailable("store is down")

    def list_cart_rows(self, user_id: str) -> List[CartLine]:
        self._check("list", user_id)
        out = []
        for row_id, r in self.rows.items():
            if r["user_id"] != user_id:
                continue
            p = self.products[r["product_id"]]
            out.append(
                CartLine(
                    line_id=row_id,
                    product_id=p.product_id,
                    name=p.name,
                    unit_price=p.unit_price,
                    image_url=p.image_url,
                    quantity=r["quantity"],
                    selected_size=r["size"],
                    slug=p.slug,
                )
            )
        return out

    def upsert_cart_row(self, user_id: str, product_id: str, selected_size: Optional[str], quantity_delta: int) -> None:
        self._check("upsert", user_id, product_id, selected_size, quantity_delta)
        if product_id in self.failing_products:
            raise StoreUnavailable(f"upsert of {product_id} failed")
        if product_id not in self.products:
            raise NotFound("Product not found.")
        for r in self.rows.values():
            if (r["user_id"], r["product_id"], r["size"]) == (user_id, product_id, selected_size):
                r["quantity"] += quantity_delta
                return
        self.rows[str(self.next_id)] = {
            "user_id": user_id,
            "product_id": product_id,
            "size": selected_size,
            "quantity": quantity_delta,
        }
        self.next_id += 1

    def update_cart_row(self, row_id: str, user_id: str, new_quantity: int) -> bool:
        self._check("update", row_id, user_id, new_quantity)
        r = self.rows.get(row_id)
        if not r or r["user_id"] != user_id:
            return False
        r["quantity"] = new_quantity
        return True

    def delete_cart_row(self, row_id: str, user_id: str) -> bool:
        self._check("delete", row_id, user_id)
        r = self.rows.get(row_id)
        if not r or r["user_id"] != user_id:
            return False
        del self.rows[row_id]
        return True

    def delete_all_cart_rows(self, user_id: str) -> None:
        self._check("delete_all", user_id)
        self.rows = {k: v for k, v in self.rows.items() if v["user_id"] != user_id}


@pytest.fixture
def products() -> Dict[str, ProductRef]:
    return {
        "P1": ProductRef("P1", "Kaos Polos", 10000, "https://img.example/p1.jpg", "kaos-polos"),
        "P2": ProductRef("P2", "Topi", 5000, "https://img.example/p2.jpg", "topi"),
        "P3": ProductRef("P3", "Jaket", 25000, "https://img.example/p3.jpg", "jaket"),
    }


@pytest.fixture
def fake_store(products) -> FakeCartStore:
    return FakeCartStore(products)


@pytest.fixture
def cart(fake_store, local_storage) -> CartService:
    return CartService(fake_store, local_storage, guest_cart_key="myEcomGuestCart")


@pytest.fixture
def client(test_settings) -> TestClient:
    return TestClient(app)


@pytest.fixture
def login_as():
    """Register a customer and log the given client in as them."""

    def _login(client: TestClient, email: str, password: str = "rahasia123", name: str = "Tester") -> dict:
        resp = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
        assert resp.status_code == 201, resp.text
        resp = client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()["user"]

    return _login
