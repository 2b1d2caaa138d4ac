"""Domain errors raised by the services and translated to HTTP by the routes."""


class TablesideError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or "Request failed")
        self.message = message or self.__class__.__doc__ or "Request failed"


class DuplicateGiftError(TablesideError):
    """You cannot gift the same item twice to the same person"""

    status_code = 409


class EmptyCartError(TablesideError):
    """Your cart is empty"""

    status_code = 400


class InvalidDiscountCodeError(TablesideError):
    """Invalid discount code"""

    status_code = 400


class MissingIdError(TablesideError):
    """Error: ID is missing. Please try again."""

    status_code = 422


class NameRequiredError(TablesideError):
    """A display name is required to create a new account"""

    status_code = 422


class NotFoundError(TablesideError):
    """Not found"""

    status_code = 404


class StoreError(TablesideError):
    """Database unavailable"""

    status_code = 503


class SelfGiftError(TablesideError):
    """You cannot gift an item to yourself"""

    status_code = 400


class InvalidQuantityError(TablesideError):
    """Quantity must be at least 1"""

    status_code = 400


class GiftLineError(TablesideError):
    """Gift items can only be added by sending a gift"""

    status_code = 400
