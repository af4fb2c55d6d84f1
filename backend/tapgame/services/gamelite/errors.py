class RedemptionError(Exception):
    """Client-facing redemption failure; ``str(exc)`` is the reason shown to the caller."""
    message = 'Redemption failed'

    def __init__(self, message=None):
        super().__init__(message or self.message)


class InvalidRedemption(RedemptionError):
    message = 'Invalid redemption'


class ClusterNotRedeemable(RedemptionError):
    message = 'Cluster not redeemable'


class InvalidRedeemPoints(RedemptionError):
    message = 'Invalid redeem points'


class InsufficientPoints(RedemptionError):
    message = 'Insufficient points'
