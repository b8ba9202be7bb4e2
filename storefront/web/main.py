from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from storefront.config import settings
from storefront.db.sqlite import (
    add_product,
    delete_product,
    delete_user,
    find_product_by_slug,
    get_user,
    init_db,
    list_all_cart_rows,
    list_products,
    list_users,
    update_product,
    update_user,
)
from storefront.errors import (
    AuthenticationError,
    Conflict,
    NotFound,
    PermissionDenied,
    StorefrontError,
    StoreUnavailable,
    ValidationError,
)
from storefront.services import auth
from storefront.services.cart_store import SqliteCartStore
from storefront.services.permissions import check_can_assign_role, check_can_manage, require_admin
from storefront.services.pricing import cart_total, item_count
from storefront.utils.formatters import money

app = FastAPI(title="Storefront API")

cart_store = SqliteCartStore()

_STATUS = (
    (ValidationError, 400),
    (AuthenticationError, 401),
    (PermissionDenied, 403),
    (NotFound, 404),
    (Conflict, 409),
    (StoreUnavailable, 500),
)


@app.on_event("startup")
def _startup() -> None:
    init_db()
    auth.ensure_super_admin()


@app.exception_handler(StorefrontError)
def _storefront_error(request: Request, exc: StorefrontError) -> JSONResponse:
    status = 500
    for cls, code in _STATUS:
        if isinstance(exc, cls):
            status = code
            break
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def _current_user(request: Request) -> Optional[Dict[str, Any]]:
    return auth.session_user(request.cookies.get(settings.session_cookie))


def _require_user(request: Request) -> Dict[str, Any]:
    user = _current_user(request)
    if not user:
        raise AuthenticationError("Unauthorized: Not logged in.")
    return user


def _require_admin(request: Request) -> Dict[str, Any]:
    user = _current_user(request)
    require_admin(user)
    return user


def _public_user(u: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": u["id"], "email": u["email"], "name": u["name"], "role": u["role"], "createdAt": u["created_at"]}


def _public_product(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": p["id"],
        "name": p["name"],
        "slug": p["slug"],
        "description": p.get("description"),
        "price": p["price"],
        "category": p.get("category"),
        "imageUrl": p["image_url"],
        "sizes": p.get("sizes") or [],
    }


@app.get("/")
def read_root():
    return {"message": "Storefront backend running"}


# ---------------- auth ----------------

class RegisterPayload(BaseModel):
    email: str = ""
    password: str = ""
    name: str = ""


class LoginPayload(BaseModel):
    email: str = ""
    password: str = ""


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterPayload):
    user = auth.register_user(payload.email.strip(), payload.password, payload.name.strip())
    return {"message": "User registered successfully!", "user": _public_user(user)}


@app.post("/api/auth/login")
def login(payload: LoginPayload, response: Response):
    user = auth.authenticate(payload.email.strip(), payload.password)
    token = auth.start_session(user["id"])
    response.set_cookie(
        settings.session_cookie,
        token,
        max_age=settings.session_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
    )
    return {"user": _public_user(user)}


@app.post("/api/auth/logout")
def logout(request: Request, response: Response):
    auth.end_session(request.cookies.get(settings.session_cookie))
    response.delete_cookie(settings.session_cookie)
    return {"message": "Logged out."}


@app.get("/api/auth/session")
def session(request: Request):
    user = _current_user(request)
    return {"user": _public_user(user) if user else None}


# ---------------- products ----------------

class ProductPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    slug: str
    price: float = Field(..., ge=0)
    description: Optional[str] = None
    category: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list, alias="imageUrls")
    sizes: List[str] = Field(default_factory=list)


@app.get("/api/products")
def products(category: Optional[str] = None):
    return [_public_product(p) for p in list_products(category)]


@app.get("/api/products/{slug}")
def product_detail(slug: str):
    p = find_product_by_slug(slug)
    if not p:
        raise NotFound("Product not found.")
    return _public_product(p)


@app.post("/api/products", status_code=201)
def products_add(payload: ProductPayload, request: Request):
    _require_admin(request)
    p = add_product(
        payload.name,
        payload.slug,
        payload.price,
        description=payload.description,
        category=payload.category,
        image_urls=payload.image_urls,
        sizes=payload.sizes,
    )
    return _public_product(p)


@app.put("/api/products/{product_id}")
def products_update(product_id: str, payload: ProductPayload, request: Request):
    _require_admin(request)
    p = update_product(
        product_id,
        payload.name,
        payload.slug,
        payload.price,
        description=payload.description,
        category=payload.category,
        image_urls=payload.image_urls,
        sizes=payload.sizes,
    )
    if not p:
        raise NotFound("Product not found.")
    return _public_product(p)


@app.delete("/api/products/{product_id}")
def products_delete(product_id: str, request: Request):
    _require_admin(request)
    if not delete_product(product_id):
        raise NotFound("Product not found.")
    return {"message": "Product deleted successfully."}


# ---------------- cart ----------------

class CartAddPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field("", alias="productId")
    quantity: int = 0
    selected_size: Optional[str] = Field(None, alias="selectedSize")


class CartQtyPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_id: str = Field("", alias="itemId")
    new_quantity: int = Field(0, alias="newQuantity")


@app.get("/api/cart")
def cart_get(request: Request):
    user = _require_user(request)
    return [ln.to_dict() for ln in cart_store.list_cart_rows(user["id"])]


@app.get("/api/cart/summary")
def cart_summary(request: Request):
    user = _require_user(request)
    lines = cart_store.list_cart_rows(user["id"])
    total = cart_total(lines)
    return {"total": total, "itemCount": item_count(lines), "totalDisplay": money(total)}


@app.post("/api/cart")
def cart_add(payload: CartAddPayload, request: Request):
    user = _require_user(request)
    if not payload.product_id or payload.quantity <= 0:
        raise ValidationError("Invalid request: productId and quantity are required.")
    line = cart_store.upsert_cart_row(user["id"], payload.product_id, payload.selected_size, payload.quantity)
    return line.to_dict()


@app.put("/api/cart")
def cart_update(payload: CartQtyPayload, request: Request):
    user = _require_user(request)
    if not payload.item_id or payload.new_quantity <= 0:
        raise ValidationError("Invalid request: itemId and newQuantity are required.")
    if not cart_store.update_cart_row(payload.item_id, user["id"], payload.new_quantity):
        raise NotFound("Cart item not found.")
    return {"id": payload.item_id, "quantity": payload.new_quantity}


@app.delete("/api/cart")
def cart_delete(request: Request, itemId: Optional[str] = None, clearAll: Optional[str] = None):
    user = _require_user(request)
    if itemId:
        if not cart_store.delete_cart_row(itemId, user["id"]):
            raise NotFound("Cart item not found.")
        return {"message": "Cart item deleted successfully."}
    if clearAll == "true":
        cart_store.delete_all_cart_rows(user["id"])
        return {"message": "Cart cleared successfully."}
    raise ValidationError("Invalid request: itemId or clearAll=true is required for DELETE.")


# ---------------- admin ----------------

def _iso(ts: str) -> str:
    return datetime.strptime(ts, "%Y-%m-%d %H:%M:%S").isoformat()


@app.get("/api/admin/carts")
def admin_carts(request: Request, userId: Optional[str] = None):
    _require_admin(request)
    rows = list_all_cart_rows(userId)
    return [
        {
            "id": str(r["id"]),
            "productId": r["product_id"],
            "productName": r["name"],
            "productPrice": r["price"],
            "productImageUrl": r["image_url"],
            "productSlug": r["slug"],
            "quantity": r["quantity"],
            "selectedSize": r["selected_size"],
            "userId": r["user_id"],
            "userName": r.get("user_name") or "N/A",
            "userEmail": r.get("user_email") or "N/A",
            "addedAt": _iso(r["created_at"]),
        }
        for r in rows
    ]


class UserUpdatePayload(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


@app.get("/api/admin/users")
def admin_users(request: Request):
    _require_admin(request)
    return [_public_user(u) for u in list_users()]


def _managed_target(request: Request, user_id: str):
    actor = _require_admin(request)
    target = get_user(user_id)
    if not target:
        raise NotFound("User not found.")
    check_can_manage(actor, target)
    return actor, target


@app.put("/api/admin/users/{user_id}")
def admin_user_update(user_id: str, payload: UserUpdatePayload, request: Request):
    actor, target = _managed_target(request, user_id)
    if not payload.email or not payload.role:
        raise ValidationError("Email and role are required.")
    check_can_assign_role(actor, target, payload.role)
    updated = update_user(user_id, payload.name, payload.email, payload.role)
    if not updated:
        raise NotFound("User not found.")
    return _public_user(updated)


@app.delete("/api/admin/users/{user_id}")
def admin_user_delete(user_id: str, request: Request):
    _managed_target(request, user_id)
    if not delete_user(user_id):
        raise NotFound("User not found.")
    return {"message": "User deleted successfully."}
