class PortalError(Exception):
    """Base error turned into a JSON ``{"detail": ...}`` response."""

    status_code = 400

    def __init__(self, detail, status_code=None, **extra):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_dict(self):
        body = {'detail': self.detail}
        body.update(self.extra)
        return body


class AuthenticationError(PortalError):
    status_code = 401


class PermissionDenied(PortalError):
    status_code = 403


class ValidationError(PortalError):
    status_code = 400


class ImmutableFieldError(ValidationError):
    pass


class IngestionRejected(PortalError):
    """A bulk upload was refused as a whole; ``report`` lists the failing rows."""

    status_code = 422

    def __init__(self, detail, report):
        super().__init__(detail, errors=[e.to_dict() for e in report.errors])
        self.report = report
