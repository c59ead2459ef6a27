class ValidationError(ValueError):
    """Malformed or missing input: date range, month token, amount, category."""


class NotFoundError(ValueError):
    pass


class AuthorizationError(ValueError):
    """The acting owner does not own the record."""


class StorageError(RuntimeError):
    pass
