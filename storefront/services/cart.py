from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from storefront.config import settings
from storefront.constants import ROLE_CUSTOMER
from storefront.errors import ParseError, StorefrontError, ValidationError
from storefront.services.guest_storage import LocalStorage, decode_snapshot, encode_snapshot
from storefront.services.pricing import cart_total, item_count
from storefront.utils.validators import require_positive_int

logger = logging.getLogger(__name__)

LineKey = Tuple[str, Optional[str]]


class OwnerMode(str, Enum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class CartState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    GUEST_READY = "guest_ready"
    AUTH_READY = "auth_ready"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str = field(default=ROLE_CUSTOMER, compare=False)


@dataclass
class ProductRef:
    product_id: str
    name: str
    unit_price: float
    image_url: str = ""
    slug: Optional[str] = None
    selected_size: Optional[str] = None


@dataclass
class CartLine:
    line_id: str
    product_id: str
    name: str
    unit_price: float
    image_url: str
    quantity: int
    selected_size: Optional[str] = None
    slug: Optional[str] = None

    @property
    def key(self) -> LineKey:
        return (self.product_id, self.selected_size or None)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.line_id,
            "productId": self.product_id,
            "name": self.name,
            "price": self.unit_price,
            "imageUrl": self.image_url,
            "quantity": self.quantity,
        }
        if self.selected_size:
            d["selectedSize"] = self.selected_size
        if self.slug:
            d["slug"] = self.slug
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CartLine":
        try:
            quantity = int(d.get("quantity", 1))
            return cls(
                line_id=str(d.get("id") or guest_line_id(str(d["productId"]), d.get("selectedSize"))),
                product_id=str(d["productId"]),
                name=str(d.get("name", "")),
                unit_price=float(d.get("price", 0)),
                image_url=str(d.get("imageUrl") or ""),
                quantity=max(1, quantity),
                selected_size=d.get("selectedSize") or None,
                slug=d.get("slug") or None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"malformed cart line {d!r}: {e}") from e


@dataclass
class MergeResult:
    merged: List[CartLine] = field(default_factory=list)
    failed: List[CartLine] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


def guest_line_id(product_id: str, selected_size: Optional[str]) -> str:
    return f"{product_id}-{selected_size}" if selected_size else product_id


class CartStore(Protocol):
    """Persistent cart rows; every call is scoped to user_id."""

    def list_cart_rows(self, user_id: str) -> List[CartLine]: ...

    def upsert_cart_row(self, user_id: str, product_id: str, selected_size: Optional[str], quantity_delta: int) -> None: ...

    def update_cart_row(self, row_id: str, user_id: str, new_quantity: int) -> bool: ...

    def delete_cart_row(self, row_id: str, user_id: str) -> bool: ...

    def delete_all_cart_rows(self, user_id: str) -> None: ...


class CartService:
    """
    The shopping cart of one principal.

    A guest cart lives in device-local storage and is written on every
    mutation. An authenticated cart lives in the persistent store: every
    mutation goes to the store first and is followed by a full reload, so
    ``lines`` only ever shows what the store acknowledged. When the
    principal switches from guest to a user the guest cart is replayed into
    the user's cart once (``merge_on_login``).
    """

    def __init__(
        self,
        store: CartStore,
        local_storage: Optional[LocalStorage] = None,
        guest_cart_key: Optional[str] = None,
    ) -> None:
        self.store = store
        self.local_storage = local_storage or LocalStorage()
        self.guest_cart_key = guest_cart_key or settings.guest_cart_key
        self._principal: Optional[Principal] = None
        self._state = CartState.UNINITIALIZED
        self._lines: Dict[LineKey, CartLine] = {}

    # ---------------- state ----------------

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state in (CartState.UNINITIALIZED, CartState.LOADING)

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def owner_mode(self) -> OwnerMode:
        return OwnerMode.AUTHENTICATED if self._principal else OwnerMode.GUEST

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def total(self) -> float:
        return cart_total(self._lines.values())

    @property
    def item_count(self) -> int:
        return item_count(self._lines.values())

    def find_line(self, line_id: str) -> Optional[CartLine]:
        for line in self._lines.values():
            if line.line_id == str(line_id):
                return line
        return None

    # ---------------- session boundary ----------------

    def session_changed(self, principal: Optional[Principal]) -> Optional[MergeResult]:
        """
        Re-run the load sequence for a new session fact.

        Returns the merge result when the change was a login, None otherwise.
        Calling it again with the same principal does nothing.
        """
        if self._state != CartState.UNINITIALIZED and principal == self._principal:
            # same user, possibly a refreshed role
            self._principal = principal
            return None

        self._principal = principal
        self._state = CartState.LOADING

        if principal is None:
            self._lines = _index(self._read_guest())
            self._state = CartState.GUEST_READY
            logger.info("Guest cart loaded: %d line(s)", len(self._lines))
            return None

        self._lines = {}
        self._reload_logged()
        self._state = CartState.AUTH_READY
        return self.merge_on_login()

    def _reload_logged(self) -> None:
        # a failed load during login keeps the last known lines; reload() retries
        try:
            self.reload()
        except StorefrontError:
            logger.exception("Failed to load cart of user %s", self._principal.user_id)

    def _ensure_ready(self) -> None:
        if self._state == CartState.UNINITIALIZED:
            self.session_changed(None)

    # ---------------- operations ----------------

    def add(self, product: ProductRef, quantity: int = 1) -> None:
        quantity = require_positive_int(quantity, "quantity")
        if product is None or not product.product_id:
            raise ValidationError("product id is required")
        try:
            unit_price = float(product.unit_price)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"invalid price for product {product.product_id}") from e
        self._ensure_ready()

        if self._principal is not None:
            self.store.upsert_cart_row(
                self._principal.user_id,
                str(product.product_id),
                product.selected_size or None,
                quantity,
            )
            self.reload()
            return

        lines = dict(self._lines)
        key = (str(product.product_id), product.selected_size or None)
        existing = lines.get(key)
        if existing:
            lines[key] = replace(existing, quantity=existing.quantity + quantity)
        else:
            lines[key] = CartLine(
                line_id=_unique_line_id(lines, key),
                product_id=str(product.product_id),
                name=product.name,
                unit_price=unit_price,
                image_url=product.image_url,
                quantity=quantity,
                selected_size=product.selected_size or None,
                slug=product.slug,
            )
        self._save_guest(lines)

    def remove(self, line_id: str) -> None:
        self._ensure_ready()
        line_id = str(line_id)

        if self._principal is not None:
            if not self.store.delete_cart_row(line_id, self._principal.user_id):
                logger.info("Cart row %s not found for user %s, nothing to remove", line_id, self._principal.user_id)
            self.reload()
            return

        for key, line in self._lines.items():
            if line.line_id == line_id:
                lines = dict(self._lines)
                del lines[key]
                self._save_guest(lines)
                return
        logger.info("Guest cart line %s not found, nothing to remove", line_id)

    def update_quantity(self, line_id: str, new_quantity: int) -> None:
        """Set a line's quantity; values below 1 become 1, never a removal."""
        try:
            new_quantity = int(new_quantity)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"quantity must be an integer: {new_quantity!r}") from e
        new_quantity = max(1, new_quantity)
        self._ensure_ready()
        line_id = str(line_id)

        if self._principal is not None:
            if not self.store.update_cart_row(line_id, self._principal.user_id, new_quantity):
                logger.info("Cart row %s not found for user %s, nothing to update", line_id, self._principal.user_id)
            self.reload()
            return

        lines = dict(self._lines)
        for key, line in lines.items():
            if line.line_id == line_id:
                lines[key] = replace(line, quantity=new_quantity)
                self._save_guest(lines)
                return
        logger.info("Guest cart line %s not found, nothing to update", line_id)

    def clear(self) -> None:
        self._ensure_ready()
        if self._principal is not None:
            self.store.delete_all_cart_rows(self._principal.user_id)
            self.reload()
            return
        self._save_guest({})

    def reload(self) -> None:
        """Replace in-memory lines with the store's rows (authenticated only)."""
        if self._principal is None:
            return
        rows = self.store.list_cart_rows(self._principal.user_id)
        self._lines = _index(rows)

    def merge_on_login(self) -> MergeResult:
        """
        Fold the guest cart into the authenticated cart.

        Every guest line is replayed as an upsert in guest order; one failing
        line does not stop the others. Lines that failed stay in local storage
        for the next attempt, the key is removed once everything merged.
        """
        result = MergeResult()
        if self._principal is None:
            return result

        guest_lines = self._read_guest()
        if not guest_lines:
            return result

        user_id = self._principal.user_id
        logger.info("Merging %d guest cart line(s) into cart of user %s", len(guest_lines), user_id)
        for line in guest_lines:
            try:
                self.store.upsert_cart_row(user_id, line.product_id, line.selected_size, line.quantity)
            except StorefrontError as e:
                logger.warning("Error merging guest cart item %s: %s", line.line_id, e)
                result.failed.append(line)
            else:
                result.merged.append(line)

        if result.failed:
            self.local_storage.set_item(self.guest_cart_key, encode_snapshot([ln.to_dict() for ln in result.failed]))
        else:
            self.local_storage.remove_item(self.guest_cart_key)

        self._reload_logged()
        return result

    # ---------------- guest storage ----------------

    def _read_guest(self) -> List[CartLine]:
        try:
            raw = self.local_storage.get_item(self.guest_cart_key)
            return [CartLine.from_dict(d) for d in decode_snapshot(raw)]
        except ParseError as e:
            logger.error("Ignoring malformed guest cart: %s", e)
            return []

    def _save_guest(self, lines: Dict[LineKey, CartLine]) -> None:
        self.local_storage.set_item(self.guest_cart_key, encode_snapshot([ln.to_dict() for ln in lines.values()]))
        self._lines = lines


def _unique_line_id(lines: Dict[LineKey, CartLine], key: LineKey) -> str:
    """
    Derived guest id for ``key``, suffixed when another line already holds it.

    A sizeless "A-M" and "A" in size "M" both derive "A-M".
    """
    base = guest_line_id(*key)
    taken = {ln.line_id for k, ln in lines.items() if k != key}
    line_id, n = base, 1
    while line_id in taken:
        n += 1
        line_id = f"{base}~{n}"
    return line_id


def _index(lines: List[CartLine]) -> Dict[LineKey, CartLine]:
    out: Dict[LineKey, CartLine] = {}
    for line in lines:
        prev = out.get(line.key)
        if prev:
            # duplicates can only come from a hand-edited snapshot
            out[line.key] = replace(prev, quantity=prev.quantity + line.quantity)
        else:
            out[line.key] = line
    return out
