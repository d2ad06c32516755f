"""Exceptions raised by the storefront order layer."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class UnknownProductError(StorefrontError):
    """Raised when an item references a product that is neither in the catalog nor virtual."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Invalid item: unknown product '{product_id}'")


class RaceLossError(StorefrontError):
    """Raised when an insert collides with a concurrent writer of the same row."""

    def __init__(self, collection: str, key):
        self.collection = collection
        self.key = key
        super().__init__(f"Row {key!r} in '{collection}' was created concurrently")


class UserNotFoundError(StorefrontError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class InvalidAddressError(StorefrontError):
    """Raised when a checkout reuses an address that is missing or owned by someone else."""

    def __init__(self, address_id: str):
        self.address_id = address_id
        super().__init__(f"Invalid address: {address_id}")


class OrderNotFoundError(StorefrontError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class CustomOrderNotFoundError(StorefrontError):
    def __init__(self, custom_order_id: str):
        self.custom_order_id = custom_order_id
        super().__init__(f"Custom order not found: {custom_order_id}")


class StatusTransitionError(StorefrontError):
    """Raised when an order cannot move from its current status to the requested one."""

    def __init__(self, current: str, requested: str, reason: str):
        self.current = current
        self.requested = requested
        super().__init__(reason)
