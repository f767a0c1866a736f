class ServiceError(Exception):
    """Business rule violation reported back to the caller as a 400."""

    default_detail = "Request could not be processed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class CouponError(ServiceError):
    default_detail = "This coupon code is invalid or expired."


class CartError(ServiceError):
    default_detail = "Cart could not be updated"


class CheckoutError(ServiceError):
    default_detail = "Order could not be placed"


class OrderStatusError(ServiceError):
    default_detail = "Invalid order status"


class WithdrawError(ServiceError):
    default_detail = "Withdrawal could not be processed"


class ReviewError(ServiceError):
    default_detail = "Review could not be saved"


class WishlistError(ServiceError):
    default_detail = "Wishlist could not be updated"
