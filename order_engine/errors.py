"""Order engine errors."""


class OrderValidationError(ValueError):
    """Missing or inconsistent order data; raised before any external call."""


class MissingRequiredFieldError(OrderValidationError):
    """A required header or line field is absent."""

    def __init__(self, field_name: str, message: str = ""):
        super().__init__(message or f"Missing required field: {field_name}")
        self.field_name = field_name
