import importlib
import warnings

from clinic.core.errors import ConflictError, InternalError, NotFoundError, UnavailableError, ValidationError
from clinic.routes import errors as route_errors


def test_error_module_uses_current_status_names() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter('error', DeprecationWarning)
        importlib.reload(route_errors)


def test_scheduling_errors_map_to_status_codes() -> None:
    cases = [
        (ValidationError(), 400),
        (NotFoundError(), 404),
        (ConflictError(), 409),
        (UnavailableError(), 422),
        (InternalError(), 503),
    ]

    for error, status_code in cases:
        exception = route_errors.to_http_exception(error)

        assert exception.status_code == status_code
        assert exception.headers == {'X-Error-Code': error.code}
