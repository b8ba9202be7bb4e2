"""
CartService driving the /api/cart endpoints through HttpCartStore.

The FastAPI TestClient is an httpx.Client, so the store talks to the real
app in-process; transport failures are simulated with httpx.MockTransport.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from storefront.errors import NotFound, PermissionDenied, StoreUnavailable, ValidationError
from storefront.services.cart import CartService, Principal, ProductRef
from storefront.services.cart_api import HttpCartStore
from storefront.web.main import app


def ref(product, size=None):
    return ProductRef(product["id"], product["name"], product["price"], product["image_url"], product["slug"], size)


@pytest.fixture
def http_cart(client, local_storage):
    return CartService(HttpCartStore(client), local_storage, guest_cart_key="myEcomGuestCart")


def test_guest_cart_merges_into_server_cart_on_login(http_cart, client, catalog, login_as, local_storage):
    shirt, cap = catalog["shirt"], catalog["cap"]
    http_cart.add(ref(shirt, "M"), 2)
    http_cart.add(ref(cap), 1)

    user = login_as(client, "siti@example.com")
    client.post("/api/cart", json={"productId": shirt["id"], "quantity": 1, "selectedSize": "M"})

    result = http_cart.session_changed(Principal(user["id"]))

    assert result.complete
    assert [(ln.product_id, ln.selected_size, ln.quantity) for ln in http_cart.lines] == [
        (shirt["id"], "M", 3),
        (cap["id"], None, 1),
    ]
    assert http_cart.total == 35000
    assert http_cart.item_count == 4
    assert not local_storage.has_item("myEcomGuestCart")


def test_authenticated_operations_round_trip(http_cart, client, catalog, login_as):
    user = login_as(client, "siti@example.com")
    http_cart.session_changed(Principal(user["id"]))

    http_cart.add(ref(catalog["cap"]), 2)
    http_cart.add(ref(catalog["shirt"], "L"), 1)
    cap_line, shirt_line = http_cart.lines

    http_cart.update_quantity(cap_line.line_id, -3)
    assert http_cart.find_line(cap_line.line_id).quantity == 1

    http_cart.remove(shirt_line.line_id)
    assert [ln.line_id for ln in http_cart.lines] == [cap_line.line_id]

    http_cart.remove("999999")
    http_cart.update_quantity("999999", 4)
    assert len(http_cart.lines) == 1

    http_cart.clear()
    assert http_cart.lines == []
    assert client.get("/api/cart").json() == []


def test_remove_never_reaches_another_users_row(catalog, login_as, local_storage, test_settings):
    ani, budi = TestClient(app), TestClient(app)
    ani_user = login_as(ani, "ani@example.com")
    login_as(budi, "budi@example.com")
    budi.post("/api/cart", json={"productId": catalog["cap"]["id"], "quantity": 5})
    budi_row = budi.get("/api/cart").json()[0]["id"]

    cart = CartService(HttpCartStore(ani), local_storage)
    cart.session_changed(Principal(ani_user["id"]))
    cart.remove(budi_row)

    assert budi.get("/api/cart").json()[0]["quantity"] == 5


def test_unknown_product_is_not_found(http_cart, client, login_as, catalog):
    user = login_as(client, "siti@example.com")
    http_cart.session_changed(Principal(user["id"]))

    with pytest.raises(NotFound):
        http_cart.add(ProductRef("nope", "Ghost", 1), 1)
    assert http_cart.lines == []


def test_anonymous_client_is_refused(client):
    store = HttpCartStore(client)

    with pytest.raises(PermissionDenied):
        store.list_cart_rows("anyone")


def test_server_side_validation_maps_to_validation_error(client, login_as, test_settings):
    login_as(client, "siti@example.com")

    with pytest.raises(ValidationError):
        HttpCartStore(client).update_cart_row("1", "me", 0)


class TestTransportFailures:
    def test_connection_error_is_store_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = HttpCartStore(httpx.Client(transport=httpx.MockTransport(handler), base_url="http://shop"))

        with pytest.raises(StoreUnavailable):
            store.upsert_cart_row("u", "p", None, 1)

    def test_server_error_is_store_unavailable(self):
        store = HttpCartStore(
            httpx.Client(
                transport=httpx.MockTransport(lambda request: httpx.Response(500, json={"detail": "db down"})),
                base_url="http://shop",
            )
        )

        with pytest.raises(StoreUnavailable, match="db down"):
            store.list_cart_rows("u")

    def test_failed_merge_keeps_guest_line(self, local_storage):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(503, json={"detail": "busy"})
            return httpx.Response(200, json=[])

        store = HttpCartStore(httpx.Client(transport=httpx.MockTransport(handler), base_url="http://shop"))
        cart = CartService(store, local_storage, guest_cart_key="myEcomGuestCart")
        cart.add(ProductRef("P1", "Kaos", 10000), 2)

        result = cart.session_changed(Principal("u1"))

        assert [ln.product_id for ln in result.failed] == ["P1"]
        assert cart.lines == []
        assert local_storage.has_item("myEcomGuestCart")
