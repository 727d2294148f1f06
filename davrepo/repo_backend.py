# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Abstract base class for repository backends.

A backend implements the storage primitives of one repository. It is only
called by :class:`~davrepo.repository.Repository`, after the URI was
normalized and checked, sub-repositories were resolved and the repository was
opened. All URIs passed to a backend are therefore normalized public URIs
inside the repository namespace.

Backends that need the private namespace of their storage call
``self.repository.get_source_resource_uri(uri)`` and
``self.repository.get_repository_resource_uri(source_uri)``.

Copy and move default to the generic algorithms of the repository module;
backends may override them with cheaper implementations.

Exceptions raised by a backend are converted by :meth:`translate_error`.
"""
from davrepo.repo_error import as_resource_io_error
from davrepo.repository import generic_copy, generic_move

__docformat__ = "reStructuredText"


class RepositoryBackend:
    """Abstract base class for repository backends.

    There is exactly one backend instance per repository.
    """

    def __init__(self):
        self.repository = None

    def __repr__(self):
        return self.__class__.__name__

    def is_readonly(self):
        return False

    def set_repository(self, repository):
        """Bind this backend to its repository (called by the Repository)."""
        if self.repository is not None and self.repository is not repository:
            raise RuntimeError(f"{self} is already bound to {self.repository}")
        self.repository = repository

    def get_default_source_uri(self):
        """Return the root of the private namespace, or None to use the root URI."""
        return None

    def get_stored_property_uris(self, description):
        """Return the property URIs of `description` that are not live."""
        is_live = self.repository.is_live_property_uri
        return [u for u in description.get_property_uris() if not is_live(u)]

    def open(self):
        """Acquire resources (called once when the repository is opened)."""
        pass

    def close(self):
        """Release resources (called once when the repository is closed)."""
        pass

    def translate_error(self, uri, e):
        """Return a repository error for `e`.

        Override to add mappings for backend specific exceptions and call the
        base implementation for everything else.
        """
        return as_resource_io_error(uri, e)

    # --- Read access --------------------------------------------------------

    def exists(self, uri):
        """Return True, if the resource exists.

        This method MUST be implemented.
        """
        raise NotImplementedError

    def describe(self, uri):
        """Return a :class:`~davrepo.resource.Resource` with all (live and
        stored) properties.

        Raise :class:`~davrepo.repo_error.ResourceNotFoundError` if the
        resource does not exist.

        This method MUST be implemented.
        """
        raise NotImplementedError

    def open_read(self, uri):
        """Return a readable binary stream of the resource content.

        This method MUST be implemented.
        """
        raise NotImplementedError

    def has_children(self, uri):
        """Return True, if the collection has children.

        This method SHOULD be overridden by a more efficient implementation.
        """
        return bool(self.list_children(uri, None, 1))

    def list_children(self, uri, resource_filter, depth):
        """Return a list of child descriptions in a stable order, with every
        collection listed before its children.

        `depth` is > 0, or INFINITE_DEPTH (-1). Hidden resources are skipped.
        Collections that do not pass the filter are still descended into.

        This method MUST be implemented.
        """
        raise NotImplementedError

    # --- Write access -------------------------------------------------------

    def open_write(self, uri, modified=None):
        """Return a writable binary stream that replaces the content of an
        existing resource.

        This method MUST be implemented.
        """
        raise NotImplementedError

    def create(self, uri, description):
        """Create or replace a resource with the stored properties of
        `description` and return a writable binary stream for its content.

        The parent collection must exist.

        This method MUST be implemented.
        """
        raise NotImplementedError

    def create_with_bytes(self, uri, description, contents):
        """Create or replace a resource and return its new description."""
        stream = self.create(uri, description)
        try:
            stream.write(contents)
        finally:
            stream.close()
        return self.describe(uri)

    def delete(self, uri):
        """Delete a resource (collections recursively).

        This method MUST be implemented.
        """
        raise NotImplementedError

    def alter_properties(self, uri, alteration):
        """Apply a ResourceAlteration (without live properties) and return the
        new description.

        This method MUST be implemented.
        """
        raise NotImplementedError

    # --- Copy and move ------------------------------------------------------

    def copy_within(self, uri, dest_uri, overwrite, progress):
        generic_copy(
            self.repository,
            uri,
            self.repository,
            dest_uri,
            overwrite=overwrite,
            progress=progress,
        )

    def copy_to(self, uri, dest_repository, dest_uri, overwrite, progress):
        generic_copy(
            self.repository,
            uri,
            dest_repository,
            dest_uri,
            overwrite=overwrite,
            progress=progress,
        )

    def move_within(self, uri, dest_uri, overwrite, progress):
        generic_move(
            self.repository,
            uri,
            self.repository,
            dest_uri,
            overwrite=overwrite,
            progress=progress,
        )

    def move_to(self, uri, dest_repository, dest_uri, overwrite, progress):
        generic_move(
            self.repository,
            uri,
            dest_repository,
            dest_uri,
            overwrite=overwrite,
            progress=progress,
        )
