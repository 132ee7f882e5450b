"""
Translation of PostgreSQL errors into the provider error taxonomy.

See https://www.postgresql.org/docs/current/errcodes-appendix.html
"""

from ..errors import ModelViolation, NotFound, ProvideError, UniqueViolation, UnhandledError

UNIQUE_VIOLATION = "23505"
INTEGRITY_CONSTRAINT_CLASS = "23"
NO_DATA_FOUND = "P0002"


def map_database_error(exc: BaseException) -> ProvideError:
    """
    Map a database driver exception to a ProvideError.

    Works on anything exposing psycopg2's ``pgcode`` and ``diag`` attributes.
    """
    if isinstance(exc, ProvideError):
        return exc

    code = getattr(exc, "pgcode", None)
    diag = getattr(exc, "diag", None)
    primary = getattr(diag, "message_primary", None) or str(exc).strip()

    if code == NO_DATA_FOUND:
        return NotFound(primary)
    if code == UNIQUE_VIOLATION:
        return UniqueViolation(getattr(diag, "message_detail", None) or primary)
    if code and code.startswith(INTEGRITY_CONSTRAINT_CLASS):
        return ModelViolation(primary)
    return UnhandledError(exc)
