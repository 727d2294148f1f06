# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Error classes that are used to signal repository failures.

The taxonomy is small:

    RepositoryArgumentError
        Invalid argument, e.g. a URI outside the repository namespace, a
        malformed alteration or a circular copy target.
    RepositoryStateError
        Precondition not met, e.g. access to a closed repository when
        auto-open is disabled, or a missing root URI at open time.
    ResourceIOError
        Generic backend failure, wrapping the original exception.
        Specialized by ResourceNotFoundError, ResourceForbiddenError and
        ResourceStateError.

Low-level exceptions are converted with :func:`as_resource_io_error`.
"""

__docformat__ = "reStructuredText"

# ========================================================================
# Status codes (borrowed from HTTP)
# ========================================================================
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_INTERNAL_ERROR = 500

ERROR_DESCRIPTIONS = {
    HTTP_FORBIDDEN: "403 Forbidden",
    HTTP_NOT_FOUND: "404 Not Found",
    HTTP_CONFLICT: "409 Conflict",
    HTTP_INTERNAL_ERROR: "500 Internal Server Error",
}

ERROR_RESPONSES = {
    HTTP_NOT_FOUND: "The specified resource was not found",
    HTTP_FORBIDDEN: "Access denied to the specified resource",
    HTTP_CONFLICT: "The resource is in a conflicting state",
    HTTP_INTERNAL_ERROR: "A repository I/O error occurred",
}


class RepositoryError(Exception):
    """Common base class of all repository errors."""


class RepositoryArgumentError(RepositoryError, ValueError):
    """An argument was invalid (never retried, never wrapped)."""


class RepositoryStateError(RepositoryError, RuntimeError):
    """A precondition for the requested operation was not met."""


# ========================================================================
# ResourceIOError
# ========================================================================


class ResourceIOError(RepositoryError):
    """General error class that is used to signal failed resource access."""

    status_code = HTTP_INTERNAL_ERROR

    def __init__(self, uri, context_info=None, src_exception=None):
        super().__init__(uri, context_info)
        self.uri = uri
        self.value = self.status_code
        self.context_info = context_info
        self.src_exception = src_exception

    def __repr__(self):
        return f"{self.__class__.__name__}({self.get_user_info()})"

    def __str__(self):
        return self.__repr__()

    def get_user_info(self):
        """Return readable string."""
        s = ERROR_DESCRIPTIONS.get(self.value, f"{self.value}")
        if self.uri:
            s += f" <{self.uri}>"

        if self.context_info:
            s += f": {self.context_info}"
        elif self.value in ERROR_RESPONSES:
            s += f": {ERROR_RESPONSES[self.value]}"

        if self.src_exception:
            s += f"\n    Source exception: {self.src_exception!r}"
        return s


class ResourceNotFoundError(ResourceIOError):
    status_code = HTTP_NOT_FOUND


class ResourceForbiddenError(ResourceIOError):
    status_code = HTTP_FORBIDDEN


class ResourceStateError(ResourceIOError):
    """The resource is in a state that conflicts with the request.

    Also used when a copy or move target exists and overwriting is not allowed.
    """

    status_code = HTTP_CONFLICT


def as_resource_io_error(uri, e):
    """Convert any exception to a repository error.

    Repository errors are returned unchanged, except precondition failures,
    which become :class:`ResourceStateError`. Other exceptions are wrapped
    into a generic :class:`ResourceIOError`.
    """
    if isinstance(e, RepositoryStateError):
        return ResourceStateError(uri, f"{e}", src_exception=e)
    elif isinstance(e, RepositoryError):
        return e
    elif isinstance(e, Exception):
        return ResourceIOError(uri, src_exception=e)
    return ResourceIOError(uri, f"{e}")
