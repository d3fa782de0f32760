"""Error taxonomy shared by the DataPlug services and HTTP layer."""


class DataPlugError(Exception):
  """Base exception for DataPlug services."""

  status_code = 500
  kind = "internal_error"

  def __init__(self, message: str | None = None):
    super().__init__(message or self.__class__.__doc__ or self.kind)
    self.message = message or self.__class__.__doc__ or self.kind


class ValidationError(DataPlugError):
  """Missing or malformed request fields."""

  status_code = 400
  kind = "validation_error"


class InvalidCounterError(ValidationError):
  """Unrecognized counter bucket."""

  kind = "invalid_type"


class UnauthorizedError(DataPlugError):
  """No session credential was presented."""

  status_code = 401
  kind = "unauthorized"


class ForbiddenError(DataPlugError):
  """Caller is not allowed to perform this action."""

  status_code = 403
  kind = "forbidden"


class AccessDeniedError(ForbiddenError):
  """Write acknowledged by the store but rejected by row-level policy."""

  kind = "access_denied"


class NotFoundError(DataPlugError):
  """Referenced stream does not exist."""

  status_code = 404
  kind = "not_found"


class CatalogError(DataPlugError):
  """Unexpected store or transport fault."""


class CounterConflictError(CatalogError):
  """Counter kept changing underneath every increment attempt."""


class ConfigurationError(DataPlugError):
  """A required credential or environment value is absent."""

  kind = "configuration_error"
