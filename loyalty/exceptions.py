# loyalty/exceptions.py


class LoyaltyError(Exception):
    """Base exception for loyalty ledger operations"""
    code = "loyalty_error"
    status_code = 400


class CardNotFound(LoyaltyError):
    code = "card_not_found"
    status_code = 404


class InsufficientBalance(LoyaltyError):
    """Raised when a redemption asks for more free cups than the card holds"""
    code = "insufficient_balance"
    status_code = 409

    def __init__(self, requested, available):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient free drinks: requested {requested}, available {available}"
        )


class InvalidRedemption(LoyaltyError):
    code = "invalid_redemption"


class InvalidAdjustment(LoyaltyError):
    code = "invalid_adjustment"


class CardInactive(LoyaltyError):
    """The customer's card was deactivated or suspended; only a reissue brings it back"""
    code = "card_inactive"
    status_code = 409
