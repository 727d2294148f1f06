# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Implements an in-memory repository backend.

Resources are kept in two dictionaries, keyed by the path relative to the
repository root (collections end with '/', the root is '')::

    contents   = { "": b"", "docs/": b"", "docs/readme.txt": b"..." }
    properties = { "docs/readme.txt": {encoded_name1: text1,
                                       encoded_name2: text2,
                                       },
                   }

Like the dead property store of a WebDAV server, the property store only
holds one string per name. Property URIs are encoded as names and values are
encoded with :func:`~davrepo.description_codec.encode_properties_as_text`.
Legacy namespaced properties are converted when descriptions are read.

Data survives close() and open(); it is lost when the backend is garbage
collected.
"""
import io
import threading

from davrepo import description_codec, util
from davrepo.repo_backend import RepositoryBackend
from davrepo.repo_error import (
    RepositoryArgumentError,
    ResourceNotFoundError,
    ResourceStateError,
)
from davrepo.repository import INFINITE_DEPTH
from davrepo.resource import LENGTH_PROPERTY_URI, MODIFIED_PROPERTY_URI, Resource

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)


class _ContentWriter(io.BytesIO):
    """Buffer that stores its value as resource content when closed."""

    def __init__(self, backend, key):
        super().__init__()
        self._backend = backend
        self._key = key

    def close(self):
        if not self.closed:
            self._backend._set_content(self._key, self.getvalue())
        super().close()


# ========================================================================
# MemoryBackend
# ========================================================================
class MemoryBackend(RepositoryBackend):
    """An in-memory repository backend using dictionaries.

    Args:
        legacy_namespace_uris (dict): legacy -> canonical namespace map used
            when reading properties (defaults to
            :data:`~davrepo.description_codec.LEGACY_NAMESPACE_URIS`)
    """

    def __init__(self, *, legacy_namespace_uris=None):
        super().__init__()
        self.legacy_namespace_uris = legacy_namespace_uris
        self._lock = threading.RLock()
        self._contents = {"": b""}
        self._properties = {"": {}}

    def translate_error(self, uri, e):
        if isinstance(e, KeyError):
            return ResourceNotFoundError(uri, src_exception=e)
        return super().translate_error(uri, e)

    def _key(self, uri):
        return util.relativize_uri(self.repository.root_uri, uri)

    def _uri(self, key):
        return self.repository.root_uri + key

    def _child_keys(self, key, depth):
        """Return sorted keys below a collection key, limited by depth."""
        if key and not key.endswith("/"):
            return []
        res = []
        for k in sorted(self._contents.keys()):
            if k == key or not k.startswith(key):
                continue
            level = k[len(key) :].rstrip("/").count("/") + 1
            if depth == INFINITE_DEPTH or level <= depth:
                res.append(k)
        return res

    def _check_exists(self, uri):
        key = self._key(uri)
        if key not in self._contents:
            raise ResourceNotFoundError(uri)
        return key

    def _check_parent(self, uri):
        key = self._key(uri)
        if util.is_collection_uri(uri):
            parent_key = util.get_parent_level(key)
        else:
            parent_key = util.get_current_level(key)
        if parent_key not in self._contents:
            raise ResourceNotFoundError(uri, "Parent collection does not exist")

    def _set_content(self, key, data):
        with self._lock:
            self._contents[key] = bytes(data)

    # --- Flat property store ------------------------------------------------

    def _store_description(self, key, uri, description):
        props = {}
        for prop_uri in self.get_stored_property_uris(description):
            values = description.get_property_values(prop_uri)
            name = description_codec.encode_property_uri_name(prop_uri)
            props[name] = description_codec.encode_properties_as_text(
                uri, [(prop_uri, v) for v in values]
            )
        self._properties[key] = props

    def set_raw_property(self, uri, property_uri, text):
        """Store a string as it would be found in a flat property store."""
        with self._lock:
            key = self._check_exists(uri)
            name = description_codec.encode_property_uri_name(property_uri)
            self._properties[key][name] = text

    def get_raw_properties(self, uri):
        """Return a copy of the flat {property_uri: text} map of a resource."""
        with self._lock:
            key = self._check_exists(uri)
            return {
                description_codec.decode_property_uri_name(name): text
                for name, text in self._properties[key].items()
            }

    # --- Read access --------------------------------------------------------

    def exists(self, uri):
        return self._key(uri) in self._contents

    def describe(self, uri):
        prop_map = self.get_raw_properties(uri)
        with self._lock:
            length = len(self._contents[self._key(uri)])
        prop_map = description_codec.update_legacy_namespaced_properties(
            prop_map, self.legacy_namespace_uris
        )
        res = Resource(uri)
        for prop_uri, text in prop_map.items():
            description_codec.decode_properties_from_text(
                res, prop_uri, text, legacy_namespace_uris=self.legacy_namespace_uris
            )
        res.set_property_value(LENGTH_PROPERTY_URI, length)
        return res

    def open_read(self, uri):
        with self._lock:
            key = self._check_exists(uri)
            return io.BytesIO(self._contents[key])

    def has_children(self, uri):
        with self._lock:
            key = self._check_exists(uri)
            return bool(self._child_keys(key, 1))

    def list_children(self, uri, resource_filter, depth):
        with self._lock:
            key = self._check_exists(uri)
            child_uris = [self._uri(k) for k in self._child_keys(key, depth)]
        res = []
        for child_uri in child_uris:
            if resource_filter is None or resource_filter.is_pass_uri(child_uri):
                desc = self.describe(child_uri)
                if resource_filter is None or resource_filter.is_pass(desc):
                    res.append(desc)
        return res

    # --- Write access -------------------------------------------------------

    def open_write(self, uri, modified=None):
        desc = self.describe(uri)
        desc.set_property_value(MODIFIED_PROPERTY_URI, modified or util.utc_now())
        with self._lock:
            key = self._check_exists(uri)
            self._store_description(key, uri, desc)
        return _ContentWriter(self, key)

    def create(self, uri, description):
        with self._lock:
            self._check_parent(uri)
            key = self._key(uri)
            if not util.is_collection_uri(uri) and key + "/" in self._contents:
                raise ResourceStateError(uri, "A collection with this name exists")
            self._store_description(key, uri, description)
            self._contents[key] = b""
        return _ContentWriter(self, key)

    def delete(self, uri):
        with self._lock:
            key = self._check_exists(uri)
            keys = [key]
            if util.is_collection_uri(uri):
                keys.extend(self._child_keys(key, INFINITE_DEPTH))
            for k in keys:
                del self._contents[k]
                self._properties.pop(k, None)

    def alter_properties(self, uri, alteration):
        with self._lock:
            desc = self.describe(uri)
            desc.alter(alteration)
            self._store_description(self._key(uri), uri, desc)
        return self.describe(uri)

    # --- Copy and move ------------------------------------------------------

    def move_within(self, uri, dest_uri, overwrite, progress):
        if util.is_collection_uri(uri) != util.is_collection_uri(dest_uri):
            raise RepositoryArgumentError(
                f"Cannot move {uri!r} to {dest_uri!r}: collection mismatch"
            )
        if any(
            util.is_child_uri(uri, r.root_uri)
            for r in self.repository.get_path_repositories().values()
        ):
            return super().move_within(uri, dest_uri, overwrite, progress)
        with self._lock:
            key = self._check_exists(uri)
            if self.exists(dest_uri):
                if not overwrite:
                    raise ResourceStateError(dest_uri, "Destination exists")
                self.delete(dest_uri)
            self._check_parent(dest_uri)
            dest_key = self._key(dest_uri)
            keys = [key]
            if util.is_collection_uri(uri):
                keys.extend(self._child_keys(key, INFINITE_DEPTH))
            for k in keys:
                new_key = dest_key + k[len(key) :]
                self._contents[new_key] = self._contents.pop(k)
                self._properties[new_key] = self._properties.pop(k, {})
        _logger.debug(f"move_within({uri}, {dest_uri}): {len(keys)} resources")
