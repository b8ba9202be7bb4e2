from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from storefront.config import settings
from storefront.constants import PLACEHOLDER_IMAGE_URL, ROLE_CUSTOMER
from storefront.errors import Conflict, NotFound, StoreUnavailable, ValidationError

logger = logging.getLogger(__name__)


def _connect() -> sqlite3.Connection:
    os.makedirs(os.path.dirname(settings.db_path) or ".", exist_ok=True)
    conn = sqlite3.connect(settings.db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _new_id() -> str:
    return uuid.uuid4().hex


def init_db() -> None:
    conn = _connect()
    try:
        with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


# ---------------- users ----------------

_USER_FIELDS = "id, email, name, role, created_at"


def create_user(email: str, name: str, password_hash: str, role: str = ROLE_CUSTOMER) -> Dict[str, Any]:
    user_id = _new_id()
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO users(id, email, name, password, role, created_at) VALUES(?,?,?,?,?,?)",
            (user_id, email, name, password_hash, role, _now()),
        )
        conn.commit()
        row = conn.execute(f"SELECT {_USER_FIELDS} FROM users WHERE id=?", (user_id,)).fetchone()
        return dict(row)
    except sqlite3.IntegrityError as e:
        raise Conflict("User with this email already exists.") from e
    finally:
        conn.close()


def get_user(user_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(f"SELECT {_USER_FIELDS} FROM users WHERE id=?", (user_id,)).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def get_user_credentials(email: str) -> Optional[Dict[str, Any]]:
    """Same as a user lookup by email but includes the password hash."""
    conn = _connect()
    try:
        row = conn.execute(
            f"SELECT {_USER_FIELDS}, password FROM users WHERE email=?",
            (email,),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def list_users() -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        rows = conn.execute(f"SELECT {_USER_FIELDS} FROM users ORDER BY created_at, email").fetchall()
        return [dict(r) for r in rows]
    finally:
        conn.close()


def update_user(user_id: str, name: Optional[str], email: str, role: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        cur = conn.execute(
            "UPDATE users SET name=COALESCE(?, name), email=?, role=? WHERE id=?",
            (name, email, role, user_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            return None
        row = conn.execute(f"SELECT {_USER_FIELDS} FROM users WHERE id=?", (user_id,)).fetchone()
        return dict(row)
    except sqlite3.IntegrityError as e:
        raise Conflict("Email already exists.") from e
    finally:
        conn.close()


def delete_user(user_id: str) -> bool:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM users WHERE id=?", (user_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


# ---------------- sessions ----------------

def create_session(token: str, user_id: str, expires_at: str) -> None:
    conn = _connect()
    try:
        conn.execute(
            "INSERT INTO sessions(token, user_id, expires_at) VALUES(?,?,?)",
            (token, user_id, expires_at),
        )
        conn.commit()
    finally:
        conn.close()


def get_session_user(token: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute(
            """
            SELECT u.id, u.email, u.name, u.role, u.created_at
            FROM sessions s
            JOIN users u ON u.id = s.user_id
            WHERE s.token = ? AND s.expires_at > ?
            """,
            (token, _now()),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def delete_session(token: str) -> None:
    conn = _connect()
    try:
        conn.execute("DELETE FROM sessions WHERE token=?", (token,))
        conn.commit()
    finally:
        conn.close()


# ---------------- products ----------------

def _first_image(image_urls: str, product_id: str) -> str:
    try:
        urls = json.loads(image_urls or "[]")
    except ValueError:
        logger.error("Error parsing image_urls for product %s", product_id)
        return PLACEHOLDER_IMAGE_URL
    if isinstance(urls, list) and urls and isinstance(urls[0], str):
        return urls[0]
    return PLACEHOLDER_IMAGE_URL


def _product_dict(row: sqlite3.Row) -> Dict[str, Any]:
    d = dict(row)
    d["image_url"] = _first_image(d.get("image_urls", "[]"), d["id"])
    try:
        d["sizes"] = json.loads(d.get("sizes") or "[]")
    except ValueError:
        d["sizes"] = []
    return d


def add_product(
    name: str,
    slug: str,
    price: float,
    description: Optional[str] = None,
    category: Optional[str] = None,
    image_urls: Optional[List[str]] = None,
    sizes: Optional[List[str]] = None,
) -> Dict[str, Any]:
    if price < 0:
        raise ValidationError("price must be >= 0")
    product_id = _new_id()
    conn = _connect()
    try:
        conn.execute(
            """
            INSERT INTO products(id, name, slug, description, price, category, image_urls, sizes, created_at)
            VALUES(?,?,?,?,?,?,?,?,?)
            """,
            (
                product_id,
                name,
                slug,
                description,
                float(price),
                category,
                json.dumps(image_urls or []),
                json.dumps(sizes or []),
                _now(),
            ),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM products WHERE id=?", (product_id,)).fetchone()
        return _product_dict(row)
    except sqlite3.IntegrityError as e:
        raise Conflict(f"Product slug already exists: {slug}") from e
    finally:
        conn.close()


def update_product(
    product_id: str,
    name: str,
    slug: str,
    price: float,
    description: Optional[str] = None,
    category: Optional[str] = None,
    image_urls: Optional[List[str]] = None,
    sizes: Optional[List[str]] = None,
) -> Optional[Dict[str, Any]]:
    """Replace a product's fields. Returns None when the product does not exist."""
    if price < 0:
        raise ValidationError("price must be >= 0")
    conn = _connect()
    try:
        cur = conn.execute(
            """
            UPDATE products
            SET name=?, slug=?, description=?, price=?, category=?, image_urls=?, sizes=?
            WHERE id=?
            """,
            (
                name,
                slug,
                description,
                float(price),
                category,
                json.dumps(image_urls or []),
                json.dumps(sizes or []),
                product_id,
            ),
        )
        conn.commit()
        if cur.rowcount == 0:
            return None
        row = conn.execute("SELECT * FROM products WHERE id=?", (product_id,)).fetchone()
        return _product_dict(row)
    except sqlite3.IntegrityError as e:
        raise Conflict(f"Product slug already exists: {slug}") from e
    finally:
        conn.close()


def list_products(category: Optional[str] = None) -> List[Dict[str, Any]]:
    conn = _connect()
    try:
        if category:
            rows = conn.execute(
                "SELECT * FROM products WHERE category=? ORDER BY created_at DESC, name",
                (category,),
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM products ORDER BY created_at DESC, name").fetchall()
        return [_product_dict(r) for r in rows]
    finally:
        conn.close()


def get_product(product_id: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM products WHERE id=?", (product_id,)).fetchone()
        return _product_dict(row) if row else None
    finally:
        conn.close()


def find_product_by_slug(slug: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM products WHERE slug=?", (slug,)).fetchone()
        return _product_dict(row) if row else None
    finally:
        conn.close()


def delete_product(product_id: str) -> bool:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM products WHERE id=?", (product_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


# ---------------- cart rows ----------------
# Every cart statement carries user_id in its WHERE clause: a row of another
# user is indistinguishable from a missing row.

_CART_SELECT = """
    SELECT c.id, c.user_id, c.product_id, c.selected_size, c.quantity, c.created_at,
           p.name, p.price, p.image_urls, p.slug
    FROM cart_items c
    JOIN products p ON p.id = c.product_id
"""


def _cart_row(row: sqlite3.Row) -> Dict[str, Any]:
    d = dict(row)
    d["image_url"] = _first_image(d.pop("image_urls"), d["product_id"])
    d["selected_size"] = d["selected_size"] or None
    return d


def _row_id(row_id: Any) -> Optional[int]:
    try:
        return int(row_id)
    except (TypeError, ValueError):
        return None


def list_cart_rows(user_id: str) -> List[Dict[str, Any]]:
    try:
        conn = _connect()
        try:
            rows = conn.execute(
                _CART_SELECT + " WHERE c.user_id = ? ORDER BY c.created_at, c.id",
                (user_id,),
            ).fetchall()
            return [_cart_row(r) for r in rows]
        finally:
            conn.close()
    except sqlite3.Error as e:
        raise StoreUnavailable(str(e)) from e


def upsert_cart_row(
    user_id: str,
    product_id: str,
    selected_size: Optional[str],
    quantity_delta: int,
) -> Dict[str, Any]:
    """
    Insert a cart row or add quantity_delta to the existing one.

    The increment happens inside a single INSERT .. ON CONFLICT statement, so
    two concurrent adds of the same key both land.
    """
    if quantity_delta < 1:
        raise ValidationError("quantity must be >= 1")
    size = selected_size or ""
    try:
        conn = _connect()
        try:
            prod = conn.execute("SELECT id FROM products WHERE id=?", (product_id,)).fetchone()
            if not prod:
                raise NotFound("Product not found.")

            conn.execute(
                """
                INSERT INTO cart_items(user_id, product_id, selected_size, quantity, created_at)
                VALUES(?,?,?,?,?)
                ON CONFLICT(user_id, product_id, selected_size)
                DO UPDATE SET quantity = cart_items.quantity + excluded.quantity
                """,
                (user_id, product_id, size, int(quantity_delta), _now()),
            )
            conn.commit()

            row = conn.execute(
                _CART_SELECT + " WHERE c.user_id = ? AND c.product_id = ? AND c.selected_size = ?",
                (user_id, product_id, size),
            ).fetchone()
            return _cart_row(row)
        finally:
            conn.close()
    except sqlite3.Error as e:
        raise StoreUnavailable(str(e)) from e


def update_cart_row(row_id: Any, user_id: str, new_quantity: int) -> bool:
    if new_quantity < 1:
        raise ValidationError("quantity must be >= 1")
    rid = _row_id(row_id)
    if rid is None:
        return False
    try:
        conn = _connect()
        try:
            cur = conn.execute(
                "UPDATE cart_items SET quantity=? WHERE id=? AND user_id=?",
                (int(new_quantity), rid, user_id),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()
    except sqlite3.Error as e:
        raise StoreUnavailable(str(e)) from e


def delete_cart_row(row_id: Any, user_id: str) -> bool:
    rid = _row_id(row_id)
    if rid is None:
        return False
    try:
        conn = _connect()
        try:
            cur = conn.execute("DELETE FROM cart_items WHERE id=? AND user_id=?", (rid, user_id))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()
    except sqlite3.Error as e:
        raise StoreUnavailable(str(e)) from e


def delete_all_cart_rows(user_id: str) -> int:
    try:
        conn = _connect()
        try:
            cur = conn.execute("DELETE FROM cart_items WHERE user_id=?", (user_id,))
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()
    except sqlite3.Error as e:
        raise StoreUnavailable(str(e)) from e


def list_all_cart_rows(user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Cart rows of every user (or one user), newest first, for the admin view."""
    conn = _connect()
    try:
        sql = """
            SELECT c.id, c.user_id, c.product_id, c.selected_size, c.quantity, c.created_at,
                   p.name, p.price, p.image_urls, p.slug,
                   u.name AS user_name, u.email AS user_email
            FROM cart_items c
            JOIN products p ON p.id = c.product_id
            LEFT JOIN users u ON u.id = c.user_id
        """
        if user_id:
            rows = conn.execute(sql + " WHERE c.user_id = ? ORDER BY c.created_at DESC, c.id DESC", (user_id,)).fetchall()
        else:
            rows = conn.execute(sql + " ORDER BY c.created_at DESC, c.id DESC").fetchall()
        return [_cart_row(r) for r in rows]
    finally:
        conn.close()
