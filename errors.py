"""Error taxonomy shared by the inventory core, the user service and the HTTP layer."""


class ShopError(Exception):
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class NotFound(ShopError):
    """Resource not found"""
    status_code = 404


class InsufficientStock(ShopError):
    """Insufficient stock"""
    status_code = 400


class InvalidInput(ShopError):
    """Invalid input"""
    status_code = 400


class Conflict(ShopError):
    """Conflicting resource already exists"""
    status_code = 409


class Unauthorized(ShopError):
    """Invalid credentials"""
    status_code = 401


class StorageFailure(ShopError):
    """Database error"""
    status_code = 500
