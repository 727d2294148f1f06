# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Implementation of the repository facade.

A :class:`Repository` presents one backend (see
:class:`~davrepo.repo_backend.RepositoryBackend`) in a URI namespace below its
root URI. Every public operation is processed in the same order:

    1. Normalize the URI and check that it is located inside the root URI.
    2. Delegate to a sub-repository, if one is mounted at (or above) the URI.
    3. Make sure the repository is open (auto-opening it, if enabled).
    4. Call the backend and translate its errors to repository errors.

Sub-repositories are mounted at relative collection paths::

    repo = Repository("http://example.com/repo/", FilesystemBackend("/data"))
    repo.register_path_repository("docs/", Repository(None, MemoryBackend()))
    # 'http://example.com/repo/docs/readme.txt' is now handled by the
    # memory backed repository

Copy and move choose between the backend's own (intra-repository)
implementation and the generic algorithms :func:`generic_copy` and
:func:`generic_move`, which only use the public API of both repositories.
"""
import threading
from contextlib import contextmanager
from urllib.parse import urlsplit

from davrepo import util
from davrepo.repo_error import (
    RepositoryArgumentError,
    RepositoryError,
    RepositoryStateError,
    ResourceForbiddenError,
    ResourceStateError,
)
from davrepo.resource import (
    CREATED_PROPERTY_URI,
    DEFAULT_LIVE_PROPERTY_URIS,
    LENGTH_PROPERTY_URI,
    MODIFIED_PROPERTY_URI,
    Resource,
    ResourceAlteration,
    filter_resources,
)
from davrepo.rw_lock import ReadWriteLock

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

#: `depth` argument for unlimited listings
INFINITE_DEPTH = -1

#: Name of the hidden resource that holds the content of a collection
COLLECTION_CONTENT_NAME = "@"


# ========================================================================
# Generic algorithms
# ========================================================================


def generic_copy(
    repository, uri, dest_repository, dest_uri, *, overwrite=True, progress=None
):
    """Copy a resource and its children using only the public repository API.

    Works between any two repositories. Resources without content are created
    directly, other content is transferred as a byte stream.
    """
    desc = repository.get_resource_description(uri)
    if not overwrite and dest_repository.resource_exists(dest_uri):
        raise ResourceStateError(dest_uri, "Destination exists")

    length = desc.get_property_value(LENGTH_PROPERTY_URI, 0)
    if not length:
        dest_repository.create_resource(dest_uri, b"", description=desc)
    else:
        src = repository.get_resource_input_stream(uri)
        try:
            dest = dest_repository.create_resource_stream(dest_uri, description=desc)
            try:
                util.copy_stream(src, dest, total=length, progress=progress)
            finally:
                dest.close()
        finally:
            src.close()

    if desc.is_collection():
        for child in repository.get_child_resource_descriptions(uri):
            generic_copy(
                repository,
                child.uri,
                dest_repository,
                dest_uri + util.relativize_uri(uri, child.uri),
                overwrite=overwrite,
                progress=progress,
            )


def generic_move(
    repository, uri, dest_repository, dest_uri, *, overwrite=True, progress=None
):
    """Move a resource by copying it and deleting the source afterwards."""
    generic_copy(
        repository,
        uri,
        dest_repository,
        dest_uri,
        overwrite=overwrite,
        progress=progress,
    )
    repository.delete_resource(uri)


# ========================================================================
# Repository
# ========================================================================
class Repository:
    """Repository facade that validates, routes and delegates to a backend.

    Args:
        root_uri (str): public root URI (a collection URI). May be None and set
            later, e.g. when the repository is mounted as sub-repository.
        backend (RepositoryBackend): storage implementation
        source_uri (str): root of the private URI namespace used by the
            backend. Defaults to the backend's default, or the root URI.
        auto_open (bool): open the repository on first access
        live_property_uris (iterable): additional live property URIs
    """

    def __init__(
        self,
        root_uri,
        backend,
        *,
        source_uri=None,
        auto_open=True,
        live_property_uris=None,
    ):
        self.backend = backend
        self.auto_open = auto_open
        self._root_uri = None
        self._source_uri = None
        self._parent_repository = None
        # Published as new objects on every change; readers don't lock
        self._path_repository_map = {}
        self._parent_path_repository_map = {}
        self._live_property_uris = DEFAULT_LIVE_PROPERTY_URIS.union(
            live_property_uris or ()
        )
        self._config_lock = threading.RLock()
        self._open = False
        self._lock = ReadWriteLock()

        backend.set_repository(self)
        if root_uri is not None:
            self.set_root_uri(root_uri)
        if source_uri is not None:
            self.set_source_uri(source_uri)

    def __repr__(self):
        return f"Repository({self._root_uri!r}, {self.backend!r})"

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.dispose()

    # --- Namespaces ---------------------------------------------------------

    @property
    def root_uri(self):
        return self._root_uri

    def set_root_uri(self, root_uri):
        """Set the public root URI and update all mounted sub-repositories."""
        root_uri = util.normalize_uri(root_uri)
        if not urlsplit(root_uri).scheme or not util.is_collection_uri(root_uri):
            raise RepositoryArgumentError(
                f"Root URI must be an absolute collection URI: {root_uri!r}"
            )
        with self._config_lock:
            self._root_uri = root_uri
            path_map = self._path_repository_map
        for path, repository in path_map.items():
            repository.set_root_uri(root_uri + path)

    @property
    def source_uri(self):
        if self._source_uri is not None:
            return self._source_uri
        default_uri = self.backend.get_default_source_uri()
        return default_uri if default_uri is not None else self._root_uri

    def set_source_uri(self, source_uri):
        source_uri = util.normalize_uri(source_uri)
        if not util.is_collection_uri(source_uri):
            raise RepositoryArgumentError(
                f"Source URI must be a collection URI: {source_uri!r}"
            )
        self._source_uri = source_uri

    def get_source_resource_uri(self, uri):
        """Translate a URI from the public to the private (source) namespace."""
        return util.change_uri_base(uri, self._root_uri, self.source_uri)

    def get_repository_resource_uri(self, source_uri):
        """Translate a URI from the private (source) to the public namespace."""
        return util.change_uri_base(source_uri, self.source_uri, self._root_uri)

    def check_resource_uri(self, uri):
        """Return the normalized URI, if it is located inside this repository.

        Raises:
            RepositoryArgumentError: if the URI is outside the root URI
            RepositoryStateError: if no root URI was set
        """
        if not isinstance(uri, str) or not uri:
            raise RepositoryArgumentError(f"Invalid resource URI: {uri!r}")
        root_uri = self._root_uri
        if root_uri is None:
            raise RepositoryStateError(f"{self} has no root URI")
        uri = util.normalize_uri(uri)
        if not util.is_equal_or_child_uri(root_uri, uri):
            raise RepositoryArgumentError(
                f"Resource URI {uri!r} is outside of repository {root_uri!r}"
            )
        if (
            not util.is_collection_uri(uri)
            and util.get_uri_name(uri) == COLLECTION_CONTENT_NAME
        ):
            raise RepositoryArgumentError(f"Reserved resource name: {uri!r}")
        return uri

    def get_collection_uri(self, uri):
        """Return the URI itself for collections, else its current level."""
        return util.get_current_level(self.check_resource_uri(uri))

    def get_parent_resource_uri(self, uri):
        """Return the URI of the parent collection, or None for the root."""
        uri = self.check_resource_uri(uri)
        if uri == self._root_uri:
            return None
        if util.is_collection_uri(uri):
            return util.get_parent_level(uri)
        return util.get_current_level(uri)

    # --- Sub-repositories ---------------------------------------------------

    @property
    def parent_repository(self):
        return self._parent_repository

    def set_parent_repository(self, repository):
        """Set the parent repository (None to detach).

        Raises:
            RepositoryStateError: if a different parent is already set
        """
        with self._config_lock:
            if (
                repository is not None
                and self._parent_repository is not None
                and self._parent_repository is not repository
            ):
                raise RepositoryStateError(f"{self} already has a parent repository")
            self._parent_repository = repository

    @staticmethod
    def _check_mount_path(path):
        if (
            not isinstance(path, str)
            or not path.endswith("/")
            or path.startswith("/")
            or urlsplit(path).scheme
            or util.remove_dot_segments(path) != path
            or ".." in path.split("/")
        ):
            raise RepositoryArgumentError(
                f"Mount path must be a relative collection path: {path!r}"
            )
        return util.canonicalize_uri(path)

    def register_path_repository(self, path, repository):
        """Mount `repository` at the relative collection `path` (e.g. 'a/b/').

        Return the repository that was registered at that path before (it is
        not detached automatically), or None.
        """
        path = self._check_mount_path(path)
        repository.set_parent_repository(self)
        with self._config_lock:
            old = self._path_repository_map.get(path)
            path_map = dict(self._path_repository_map)
            path_map[path] = repository
            parent_path = util.get_parent_level(path)
            parent_map = dict(self._parent_path_repository_map)
            children = set(parent_map.get(parent_path, ()))
            if old is not None:
                children.discard(old)
            children.add(repository)
            parent_map[parent_path] = frozenset(children)
            self._path_repository_map = path_map
            self._parent_path_repository_map = parent_map
            root_uri = self._root_uri
        if root_uri is not None:
            repository.set_root_uri(root_uri + path)
        _logger.debug(f"{self}: mounted {repository} at {path!r}")
        return old

    def unregister_path_repository(self, path):
        """Unmount and detach the repository at `path`; return it (or None)."""
        path = self._check_mount_path(path)
        with self._config_lock:
            path_map = dict(self._path_repository_map)
            repository = path_map.pop(path, None)
            if repository is None:
                return None
            parent_path = util.get_parent_level(path)
            parent_map = dict(self._parent_path_repository_map)
            children = set(parent_map.get(parent_path, ()))
            children.discard(repository)
            if children:
                parent_map[parent_path] = frozenset(children)
            else:
                parent_map.pop(parent_path, None)
            self._path_repository_map = path_map
            self._parent_path_repository_map = parent_map
        repository.set_parent_repository(None)
        return repository

    def get_path_repository(self, path):
        return self._path_repository_map.get(path)

    def get_path_repositories(self):
        """Return a dict of mount path -> sub-repository."""
        return dict(self._path_repository_map)

    def get_subrepository(self, uri):
        """Return the mounted repository owning the (normalized) URI, or self.

        The most specific mount wins.
        """
        path_map = self._path_repository_map
        if not path_map:
            return self
        level = util.get_current_level(util.relativize_uri(self._root_uri, uri))
        while level:
            repository = path_map.get(level)
            if repository is not None:
                return repository
            level = util.get_parent_level(level)
        return self

    def get_top_repository(self):
        """Return the outermost repository this one is mounted into (or self)."""
        repository = self
        while repository.parent_repository is not None:
            repository = repository.parent_repository
        return repository

    def get_owner_repository(self, uri):
        """Like :meth:`get_subrepository`, but resolves nested mounts as well."""
        repository = self
        while True:
            sub = repository.get_subrepository(uri)
            if sub is repository:
                return repository
            repository = sub

    def get_child_subrepositories(self, parent_uri):
        """Return the set of repositories mounted directly below a collection."""
        rel = util.relativize_uri(self._root_uri, parent_uri)
        return set(self._parent_path_repository_map.get(rel, ()))

    # --- Live properties ----------------------------------------------------

    @property
    def live_property_uris(self):
        return self._live_property_uris

    def add_live_property_uri(self, property_uri):
        with self._config_lock:
            self._live_property_uris = self._live_property_uris.union((property_uri,))

    def is_live_property_uri(self, property_uri):
        return property_uri in self._live_property_uris

    # --- Lifecycle ----------------------------------------------------------

    def is_open(self):
        self._lock.acquire_read()
        try:
            return self._open
        finally:
            self._lock.release()

    def open(self):
        """Open the repository (no-op if it is already open)."""
        if self.is_open():
            return
        self._lock.acquire_write()
        try:
            if not self._open:
                if self._root_uri is None:
                    raise RepositoryStateError(
                        f"{self}: cannot open repository without root URI"
                    )
                with self._translated_errors(self._root_uri):
                    self.backend.open()
                self._open = True
                _logger.debug(f"Opened {self}")
        finally:
            self._lock.release()

    def close(self):
        """Close the repository (no-op if it is not open)."""
        if not self.is_open():
            return
        self._lock.acquire_write()
        try:
            if self._open:
                with self._translated_errors(self._root_uri):
                    self.backend.close()
                self._open = False
                _logger.debug(f"Closed {self}")
        finally:
            self._lock.release()

    def check_open(self):
        """Make sure the repository is open.

        Raises:
            RepositoryStateError: if the repository is closed and auto-open
                is disabled
        """
        if not self.is_open():
            if not self.auto_open:
                raise RepositoryStateError(f"{self} is not open")
            self.open()

    def dispose(self):
        """Close this repository and all mounted sub-repositories.

        Errors are logged, not raised.
        """
        for repository in self._path_repository_map.values():
            repository.dispose()
        try:
            self.close()
        except RepositoryError:
            _logger.exception(f"Error closing {self}")

    # --- Errors -------------------------------------------------------------

    def translate_error(self, uri, e):
        """Return a repository error for any exception raised by the backend."""
        return self.backend.translate_error(uri, e)

    @contextmanager
    def _translated_errors(self, uri):
        try:
            yield
        except Exception as e:
            err = self.translate_error(uri, e)
            if err is e:
                raise
            raise err from e

    # --- Resource access ----------------------------------------------------

    def _prepare_description(self, description):
        """Return a description without live properties, or a default one."""
        res = Resource()
        if description is None:
            now = util.utc_now()
            res.set_property_value(CREATED_PROPERTY_URI, now)
            res.set_property_value(MODIFIED_PROPERTY_URI, now)
            return res
        for prop_uri, value in description.iter_properties():
            if not self.is_live_property_uri(prop_uri):
                res.add_property_value(prop_uri, value)
        return res

    def resource_exists(self, uri):
        uri = self.check_resource_uri(uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.resource_exists(uri)
        self.check_open()
        with self._translated_errors(uri):
            return self.backend.exists(uri)

    def get_resource_description(self, uri):
        """Return a :class:`Resource` including live properties."""
        uri = self.check_resource_uri(uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.get_resource_description(uri)
        self.check_open()
        with self._translated_errors(uri):
            return self.backend.describe(uri)

    def get_resource_input_stream(self, uri):
        """Return a readable binary file-like object; the caller must close it."""
        uri = self.check_resource_uri(uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.get_resource_input_stream(uri)
        self.check_open()
        with self._translated_errors(uri):
            return self.backend.open_read(uri)

    def get_resource_contents(self, uri):
        """Return the complete content of a resource as bytes."""
        stream = self.get_resource_input_stream(uri)
        try:
            with self._translated_errors(uri):
                return stream.read()
        finally:
            stream.close()

    def get_resource_output_stream(self, uri, modified=None):
        """Return a writable binary stream that replaces the content of an
        existing resource.

        `modified` (datetime) is stored as content modification time.
        """
        uri = self.check_resource_uri(uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.get_resource_output_stream(uri, modified)
        self.check_open()
        with self._translated_errors(uri):
            return self.backend.open_write(uri, modified)

    def has_child_resource(self, uri):
        uri = self.check_resource_uri(uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.has_child_resource(uri)
        self.check_open()
        if self.get_child_subrepositories(uri):
            return True
        with self._translated_errors(uri):
            return self.backend.has_children(uri)

    def get_child_resource_descriptions(self, uri, resource_filter=None, depth=1):
        """Return a list of child resource descriptions.

        Args:
            uri (str): collection URI
            resource_filter (ResourceFilter): optional filter
            depth (int): 0: none, 1: direct children, ..., INFINITE_DEPTH: all

        Mounted sub-repositories are listed with the description of their root.
        Hidden resources (collection content) are never listed.
        """
        uri = self.check_resource_uri(uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.get_child_resource_descriptions(
                uri, resource_filter, depth
            )
        if depth == 0 or not util.is_collection_uri(uri):
            return []
        self.check_open()
        with self._translated_errors(uri):
            children = self.backend.list_children(uri, resource_filter, depth)

        # Skip resources that are hidden by mounted sub-repositories
        res = [c for c in children if self.get_subrepository(c.uri) is self]

        # Mounts are looked up by path, so filtered-out parents don't hide them
        mounts = []
        for path, sub in self._path_repository_map.items():
            sub_uri = self._root_uri + path
            if not util.is_child_uri(uri, sub_uri):
                continue
            level = util.relativize_uri(uri, sub_uri).rstrip("/").count("/") + 1
            if depth != INFINITE_DEPTH and level > depth:
                continue
            parent_uri = self._root_uri + util.get_parent_level(path)
            if parent_uri != uri and not self.resource_exists(parent_uri):
                continue
            mounts.append((level, path, sub))
        mounts.sort(key=lambda m: m[:2])
        descriptions = [
            sub.get_resource_description(sub.root_uri) for _, _, sub in mounts
        ]
        res.extend(filter_resources(descriptions, resource_filter))
        return res

    def create_resource_stream(self, uri, description=None):
        """Create (or replace) a resource and return a writable binary stream
        for its content. The resource is complete when the stream is closed.
        """
        uri = self.check_resource_uri(uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.create_resource_stream(uri, description)
        self.check_open()
        description = self._prepare_description(description)
        with self._translated_errors(uri):
            return self.backend.create(uri, description)

    def create_resource(self, uri, contents=b"", description=None):
        """Create (or replace) a resource with the given content bytes.

        If no description is passed, creation and modification time are set to
        the current time. Return the new description.
        """
        uri = self.check_resource_uri(uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.create_resource(uri, contents, description)
        self.check_open()
        description = self._prepare_description(description)
        with self._translated_errors(uri):
            return self.backend.create_with_bytes(uri, description, contents)

    def create_collection_resource(self, uri, description=None):
        if not util.is_collection_uri(uri):
            raise RepositoryArgumentError(f"Not a collection URI: {uri!r}")
        return self.create_resource(uri, b"", description)

    def create_parent_resources(self, uri):
        """Create all missing parent collections of a resource.

        Return the description of the immediate parent, if it was created, or
        None if no resource had to be created.
        """
        parent_uri = self.get_parent_resource_uri(uri)
        if parent_uri is None or self.resource_exists(parent_uri):
            return None
        self.create_parent_resources(parent_uri)
        return self.create_collection_resource(parent_uri)

    def delete_resource(self, uri):
        """Delete a resource (collections are deleted recursively).

        Raises:
            ResourceForbiddenError: if `uri` is the repository root
        """
        uri = self.check_resource_uri(uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.delete_resource(uri)
        if uri == self._root_uri:
            raise ResourceForbiddenError(uri, "The repository root cannot be deleted")
        self.check_open()
        with self._translated_errors(uri):
            self.backend.delete(uri)

    # --- Properties ---------------------------------------------------------

    def alter_resource_properties(self, uri, alteration):
        """Apply a :class:`ResourceAlteration` and return the new description.

        Changes to live properties are ignored.
        """
        uri = self.check_resource_uri(uri)
        if not isinstance(alteration, ResourceAlteration):
            raise RepositoryArgumentError(f"Expected ResourceAlteration: {alteration!r}")
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.alter_resource_properties(uri, alteration)
        self.check_open()
        alteration = alteration.without_properties(self.is_live_property_uri)
        with self._translated_errors(uri):
            return self.backend.alter_properties(uri, alteration)

    def add_resource_properties(self, uri, properties):
        """Add (property_uri, value) pairs (or all properties of a Resource)."""
        return self.alter_resource_properties(
            uri, ResourceAlteration.create_add(properties)
        )

    def set_resource_properties(self, uri, properties):
        """Replace all values of the given properties."""
        return self.alter_resource_properties(
            uri, ResourceAlteration.create_set(properties)
        )

    def remove_resource_properties(self, uri, property_uris):
        """Remove all values of the given property URIs."""
        if isinstance(property_uris, str):
            property_uris = [property_uris]
        return self.alter_resource_properties(
            uri, ResourceAlteration.create_remove_uris(property_uris)
        )

    # --- Copy and move ------------------------------------------------------

    def _check_not_circular(self, uri, dest_repository, dest_uri):
        """Reject copying or moving a resource into itself.

        Independent repository trees may share URIs (e.g. mirrors), so the check
        only applies inside one tree.
        """
        if self.get_top_repository() is not dest_repository.get_top_repository():
            return
        if util.is_equal_or_child_uri(uri, dest_uri):
            raise RepositoryArgumentError(
                f"Cannot copy or move {uri!r} to itself or a descendant: {dest_uri!r}"
            )

    def copy_resource(self, uri, dest_uri, overwrite=True, progress=None):
        """Copy a resource (recursively) inside this repository tree."""
        self.copy_resource_to(
            uri, self, dest_uri, overwrite=overwrite, progress=progress
        )

    def copy_resource_to(
        self, uri, dest_repository, dest_uri, overwrite=True, progress=None
    ):
        """Copy a resource (recursively) to another repository.

        Args:
            overwrite (bool): replace an existing destination resource
            progress (callable): optional ``progress(transferred, total)``

        Raises:
            RepositoryArgumentError: destination equals the source or is located
                below it (inside the same repository tree)
            ResourceStateError: destination exists and `overwrite` is False
        """
        uri = self.check_resource_uri(uri)
        dest_uri = dest_repository.check_resource_uri(dest_uri)
        self._check_not_circular(uri, dest_repository, dest_uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.copy_resource_to(
                uri, dest_repository, dest_uri, overwrite=overwrite, progress=progress
            )
        dest_owner = dest_repository.get_owner_repository(dest_uri)
        self.check_open()
        with self._translated_errors(uri):
            if dest_owner is self:
                self.backend.copy_within(uri, dest_uri, overwrite, progress)
            else:
                self.backend.copy_to(uri, dest_owner, dest_uri, overwrite, progress)

    def move_resource(self, uri, dest_uri, overwrite=True, progress=None):
        """Move a resource (recursively) inside this repository tree."""
        self.move_resource_to(
            uri, self, dest_uri, overwrite=overwrite, progress=progress
        )

    def move_resource_to(
        self, uri, dest_repository, dest_uri, overwrite=True, progress=None
    ):
        """Move a resource (recursively) to another repository.

        Raises:
            RepositoryArgumentError: the source is the repository root, or the
                destination equals the source or is located below it
            ResourceStateError: destination exists and `overwrite` is False
        """
        uri = self.check_resource_uri(uri)
        dest_uri = dest_repository.check_resource_uri(dest_uri)
        self._check_not_circular(uri, dest_repository, dest_uri)
        repository = self.get_subrepository(uri)
        if repository is not self:
            return repository.move_resource_to(
                uri, dest_repository, dest_uri, overwrite=overwrite, progress=progress
            )
        if uri == self._root_uri:
            raise RepositoryArgumentError(f"Cannot move repository root {uri!r}")
        dest_owner = dest_repository.get_owner_repository(dest_uri)
        self.check_open()
        with self._translated_errors(uri):
            if dest_owner is self:
                self.backend.move_within(uri, dest_uri, overwrite, progress)
            else:
                self.backend.move_to(uri, dest_owner, dest_uri, overwrite, progress)
