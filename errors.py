class BalanceError(Exception):
    pass


class NotFoundError(BalanceError):
    pass


class UnauthorizedError(BalanceError):
    pass


class InvalidInputError(BalanceError, ValueError):
    pass


class UpstreamFailureError(BalanceError, RuntimeError):
    pass
