# orders/exceptions.py


class OrderError(Exception):
    """Base exception for order creation and status changes"""
    code = "order_error"
    status_code = 400


class InvalidOrder(OrderError):
    code = "invalid_order"


class InvalidTransition(OrderError):
    code = "invalid_transition"

    def __init__(self, current, target, reason=""):
        self.current = current
        self.target = target
        msg = f"Cannot move order from '{current}' to '{target}'"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class InvalidDiscountCode(OrderError):
    code = "invalid_discount_code"
