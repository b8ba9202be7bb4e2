from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from storefront.config import settings
from storefront.errors import NotFound, PermissionDenied, StoreUnavailable, ValidationError
from storefront.services.cart import CartLine

logger = logging.getLogger(__name__)


class HttpCartStore:
    """
    Cart rows behind the storefront's ``/api/cart`` endpoint.

    The server scopes every request to the session carried by the client's
    cookie; ``user_id`` arguments are only used for logging here.
    """

    def __init__(self, client: httpx.Client, path: str = "/api/cart") -> None:
        self.client = client
        self.path = path

    @classmethod
    def connect(cls, session_token: str, base_url: Optional[str] = None) -> "HttpCartStore":
        client = httpx.Client(
            base_url=base_url or settings.api_base_url,
            cookies={settings.session_cookie: session_token},
            timeout=settings.api_timeout,
        )
        return cls(client)

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, **kwargs) -> httpx.Response:
        try:
            resp = self.client.request(method, self.path, **kwargs)
        except httpx.HTTPError as e:
            raise StoreUnavailable(f"{method} {self.path} failed: {e}") from e

        if resp.status_code in (401, 403):
            raise PermissionDenied(_detail(resp))
        if resp.status_code == 400:
            raise ValidationError(_detail(resp))
        if resp.status_code >= 500:
            raise StoreUnavailable(f"{method} {self.path}: {resp.status_code} {_detail(resp)}")
        return resp

    def list_cart_rows(self, user_id: str) -> List[CartLine]:
        resp = self._request("GET")
        if resp.status_code != 200:
            raise StoreUnavailable(f"GET {self.path}: {resp.status_code}")
        return [CartLine.from_dict(d) for d in resp.json()]

    def upsert_cart_row(self, user_id: str, product_id: str, selected_size: Optional[str], quantity_delta: int) -> None:
        body = {"productId": product_id, "quantity": quantity_delta}
        if selected_size:
            body["selectedSize"] = selected_size
        resp = self._request("POST", json=body)
        if resp.status_code == 404:
            raise NotFound(_detail(resp))

    def update_cart_row(self, row_id: str, user_id: str, new_quantity: int) -> bool:
        resp = self._request("PUT", json={"itemId": row_id, "newQuantity": new_quantity})
        return resp.status_code != 404

    def delete_cart_row(self, row_id: str, user_id: str) -> bool:
        resp = self._request("DELETE", params={"itemId": row_id})
        return resp.status_code != 404

    def delete_all_cart_rows(self, user_id: str) -> None:
        self._request("DELETE", params={"clearAll": "true"})


def _detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text
    if isinstance(data, dict) and "detail" in data:
        return str(data["detail"])
    return resp.text
