from __future__ import annotations


class StorefrontError(Exception):
    """Base class for errors surfaced to callers of the storefront services."""


class StoreUnavailable(StorefrontError):
    """The persistent store (database or cart API) failed to answer."""


class NotFound(StorefrontError):
    pass


class ValidationError(StorefrontError):
    """Input rejected before any store call was issued."""


class ParseError(StorefrontError):
    """Device-local storage held something that is not a cart snapshot."""


class PermissionDenied(StorefrontError):
    pass


class Conflict(StorefrontError):
    pass


class AuthenticationError(StorefrontError):
    pass
