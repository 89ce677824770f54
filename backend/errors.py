class OrderError(Exception):
    """Base for order placement failures; carries the HTTP status the API answers with."""

    status_code = 400
    code = "invalid_order"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidOrder(OrderError):
    pass


class MissingField(OrderError):
    code = "missing_field"

    def __init__(self, field: str):
        super().__init__(f"{field} is required", field=field)


class InvalidType(OrderError):
    code = "invalid_type"

    def __init__(self, field: str):
        super().__init__(f"{field} must be a valid integer", field=field)


class StockInsufficient(OrderError):
    status_code = 409
    code = "stock_insufficient"

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}, available {available}",
            product_id=product_id,
            requested=requested,
            available=available,
        )


class TransactionFailure(OrderError):
    status_code = 500
    code = "transaction_failure"
