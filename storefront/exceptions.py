"""
Custom exceptions for the checkout service.
"""
from typing import List, Optional


class CheckoutError(Exception):
    """Base exception for checkout operations"""
    pass


class ValidationError(CheckoutError):
    """Raised when a request field fails validation"""
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)


class StockConflictError(CheckoutError):
    """Raised when requested quantities cannot be served from inventory"""
    def __init__(self, issues: List):
        self.issues = issues
        skus = ", ".join(issue.sku for issue in issues)
        super().__init__(f"Stock validation failed for: {skus}")


class PaymentGatewayError(CheckoutError):
    """Raised when the payment gateway cannot create an order"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AmountTooSmallError(ValidationError):
    """Raised when the payable amount is below the gateway minimum"""
    def __init__(self, amount_minor: int, minimum: int):
        self.amount_minor = amount_minor
        self.minimum = minimum
        super().__init__("Order amount is too small for payment processing", field="total_payable")


class StoreError(CheckoutError):
    """Raised when a store read or write fails"""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the Redis connection fails"""
    pass


class DuplicateOrderError(StoreError):
    """Raised when an order number is already taken"""
    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__(f"Order number already exists: {order_number}")


class MissingPaymentReferenceError(StoreError):
    """Raised when an order is written without a payment gateway order id"""
    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__(f"Order {order_number} has no payment gateway order id")
