# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Backend wrapper that publishes another backend read-only.

All modifying calls raise :class:`~davrepo.repo_error.ResourceForbiddenError`.
Copying resources *out of* a read-only repository is allowed.

Descriptions may be decorated with additional properties that only exist in
memory (e.g. a display name for a published archive)::

    backend = ReadOnlyBackend(FilesystemBackend("/srv/archive"))
    repo = Repository("http://example.com/archive/", backend)
    backend.set_resource_description(
        "http://example.com/archive/", Resource(properties=[(TITLE, "Archive")])
    )
"""
import threading

from davrepo import util
from davrepo.repo_backend import RepositoryBackend
from davrepo.repo_error import ResourceForbiddenError, ResourceNotFoundError

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)


class ReadOnlyBackend(RepositoryBackend):
    """Delegate read access to `backend`, deny all modifications."""

    def __init__(self, backend):
        super().__init__()
        self.backend = backend
        self._overlay_lock = threading.Lock()
        self._overlay = {}

    def __repr__(self):
        return f"ReadOnly({self.backend!r})"

    def is_readonly(self):
        return True

    def _forbidden(self, uri):
        _logger.debug(f"Denied write access to {uri} ({self})")
        return ResourceForbiddenError(uri, "Repository is read-only")

    def set_repository(self, repository):
        super().set_repository(repository)
        self.backend.set_repository(repository)

    def get_default_source_uri(self):
        return self.backend.get_default_source_uri()

    def open(self):
        self.backend.open()

    def close(self):
        self.backend.close()

    def translate_error(self, uri, e):
        return self.backend.translate_error(uri, e)

    def set_resource_description(self, uri, description):
        """Merge the properties of `description` into the description of `uri`
        whenever it is read. Pass None to remove the overlay.

        Live properties of `description` are ignored.
        """
        uri = util.normalize_uri(uri)
        with self._overlay_lock:
            overlay = dict(self._overlay)
            if description is None:
                overlay.pop(uri, None)
            else:
                overlay[uri] = description.copy(uri)
            self._overlay = overlay

    # --- Read access --------------------------------------------------------

    def exists(self, uri):
        return self.backend.exists(uri)

    def describe(self, uri):
        res = self.backend.describe(uri)
        overlay = self._overlay.get(uri)
        if overlay is not None:
            for prop_uri in self.get_stored_property_uris(overlay):
                res.set_property_values(prop_uri, overlay.get_property_values(prop_uri))
        return res

    def open_read(self, uri):
        return self.backend.open_read(uri)

    def has_children(self, uri):
        return self.backend.has_children(uri)

    def list_children(self, uri, resource_filter, depth):
        children = self.backend.list_children(uri, resource_filter, depth)
        overlay = self._overlay
        if not overlay:
            return children
        return [self.describe(c.uri) if c.uri in overlay else c for c in children]

    # --- Write access -------------------------------------------------------

    def open_write(self, uri, modified=None):
        if not self.backend.exists(uri):
            raise ResourceNotFoundError(uri)
        raise self._forbidden(uri)

    def create(self, uri, description):
        raise self._forbidden(uri)

    def create_with_bytes(self, uri, description, contents):
        raise self._forbidden(uri)

    def delete(self, uri):
        raise self._forbidden(uri)

    def alter_properties(self, uri, alteration):
        raise self._forbidden(uri)

    # --- Copy and move ------------------------------------------------------

    def copy_within(self, uri, dest_uri, overwrite, progress):
        raise self._forbidden(dest_uri)

    def move_within(self, uri, dest_uri, overwrite, progress):
        raise self._forbidden(uri)

    def move_to(self, uri, dest_repository, dest_uri, overwrite, progress):
        raise self._forbidden(uri)
