# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Synchronization of resource trees between two repositories.

Differences are resolved on three levels, each with its own resolution:

resource
    A resource exists on one side only (an *orphan*).
content
    Both resources exist, but content length or modification time differ.
metadata
    Both resources exist, but their (stored) properties differ.

Resolutions:

``"backup"``
    The source overwrites the destination (default).
``"restore"``
    The destination overwrites the source.
``"synchronize"``
    The newer resource wins (orphans are handled like ``"backup"``).
``"ignore"``
    Nothing happens.

Example::

    synchronize(repo, "http://example.com/repo/", mirror, "http://example.com/repo/")
"""
from davrepo import util
from davrepo.repo_error import RepositoryArgumentError
from davrepo.resource import (
    CREATED_PROPERTY_URI,
    LENGTH_PROPERTY_URI,
    MODIFIED_PROPERTY_URI,
    ResourceAlteration,
)

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

BACKUP = "backup"
RESTORE = "restore"
SYNCHRONIZE = "synchronize"
IGNORE = "ignore"

RESOLUTIONS = (BACKUP, RESTORE, SYNCHRONIZE, IGNORE)


def _check_resolution(resolution):
    if resolution not in RESOLUTIONS:
        raise RepositoryArgumentError(f"Invalid resolution: {resolution!r}")
    return resolution


def _describe(repository, uri):
    """Return the description of `uri`, or None if it does not exist."""
    if not repository.resource_exists(uri):
        return None
    return repository.get_resource_description(uri)


def _resolve_by_date(resolution, src_desc, dest_desc):
    """Turn 'synchronize' into 'backup' or 'restore' (or None: nothing to do)."""
    if resolution != SYNCHRONIZE:
        return resolution
    src_date = src_desc.get_property_value(MODIFIED_PROPERTY_URI)
    dest_date = dest_desc.get_property_value(MODIFIED_PROPERTY_URI)
    if src_date is None or dest_date is None or src_date == dest_date:
        return None
    return BACKUP if src_date > dest_date else RESTORE


# ========================================================================
# RepositorySynchronizer
# ========================================================================
class RepositorySynchronizer:
    """Synchronize resources (recursively) between two repositories.

    Args:
        resource_resolution (str): how orphans are resolved
        content_resolution (str): how content differences are resolved
        metadata_resolution (str): how property differences are resolved
        dry_run (bool): only log what would be done
    """

    def __init__(
        self,
        *,
        resource_resolution=BACKUP,
        content_resolution=BACKUP,
        metadata_resolution=BACKUP,
        dry_run=False,
    ):
        self.resource_resolution = _check_resolution(resource_resolution)
        self.content_resolution = _check_resolution(content_resolution)
        self.metadata_resolution = _check_resolution(metadata_resolution)
        self.dry_run = dry_run

    def __repr__(self):
        return "{}(resource={}, content={}, metadata={}{})".format(
            self.__class__.__name__,
            self.resource_resolution,
            self.content_resolution,
            self.metadata_resolution,
            ", dry_run" if self.dry_run else "",
        )

    def set_resolution(self, resolution):
        """Use the same resolution for resources, content and metadata."""
        resolution = _check_resolution(resolution)
        self.resource_resolution = resolution
        self.content_resolution = resolution
        self.metadata_resolution = resolution

    def synchronize(self, src_repository, src_uri, dest_repository, dest_uri):
        """Synchronize `src_uri` with `dest_uri` (and all children).

        Raises:
            RepositoryArgumentError: if one URI is a collection and the other
                is not
        """
        src_uri = src_repository.check_resource_uri(src_uri)
        dest_uri = dest_repository.check_resource_uri(dest_uri)
        self._synchronize(
            src_repository,
            src_uri,
            _describe(src_repository, src_uri),
            dest_repository,
            dest_uri,
            _describe(dest_repository, dest_uri),
        )

    def _synchronize(
        self, src_repository, src_uri, src_desc, dest_repository, dest_uri, dest_desc
    ):
        is_collection = util.is_collection_uri(src_uri)
        if is_collection != util.is_collection_uri(dest_uri):
            raise RepositoryArgumentError(
                f"The resources are of different types: {src_uri}, {dest_uri}"
            )

        if src_desc is None and dest_desc is None:
            return
        elif src_desc is None or dest_desc is None:
            self._resolve_orphan(
                src_repository, src_uri, src_desc, dest_repository, dest_uri
            )
            # Orphans are either copied as a whole or deleted
            return

        # Decided before content is copied, which equalizes modification times
        metadata_resolution = _resolve_by_date(
            self.metadata_resolution, src_desc, dest_desc
        )
        if not self.is_content_synchronized(src_desc, dest_desc):
            if self._resolve_content(
                src_repository, src_desc, dest_repository, dest_desc
            ):
                src_desc = src_repository.get_resource_description(src_uri)
                dest_desc = dest_repository.get_resource_description(dest_uri)
        self._resolve_metadata(
            metadata_resolution, src_repository, src_desc, dest_repository, dest_desc
        )

        if not is_collection:
            return

        dest_children = {
            c.uri: c for c in dest_repository.get_child_resource_descriptions(dest_uri)
        }
        src_child_uris = set()
        for src_child in src_repository.get_child_resource_descriptions(src_uri):
            src_child_uris.add(src_child.uri)
            dest_child_uri = dest_uri + util.relativize_uri(src_uri, src_child.uri)
            self._synchronize(
                src_repository,
                src_child.uri,
                src_child,
                dest_repository,
                dest_child_uri,
                dest_children.get(dest_child_uri),
            )
        for dest_child_uri, dest_child in dest_children.items():
            src_child_uri = src_uri + util.relativize_uri(dest_uri, dest_child_uri)
            if src_child_uri not in src_child_uris:
                self._synchronize(
                    src_repository,
                    src_child_uri,
                    None,
                    dest_repository,
                    dest_child_uri,
                    dest_child,
                )

    def _resolve_orphan(
        self, src_repository, src_uri, src_desc, dest_repository, dest_uri
    ):
        resolution = self.resource_resolution
        if src_desc is not None:
            _logger.info(f"Resolve source orphan ({resolution}): {src_uri}")
            if self.dry_run:
                return
            if resolution in (BACKUP, SYNCHRONIZE):
                src_repository.copy_resource_to(src_uri, dest_repository, dest_uri)
            elif resolution == RESTORE:
                src_repository.delete_resource(src_uri)
        else:
            _logger.info(f"Resolve destination orphan ({resolution}): {dest_uri}")
            if self.dry_run:
                return
            if resolution in (BACKUP, SYNCHRONIZE):
                dest_repository.delete_resource(dest_uri)
            elif resolution == RESTORE:
                dest_repository.copy_resource_to(dest_uri, src_repository, src_uri)

    def is_content_synchronized(self, src_desc, dest_desc):
        """Guess from length and modification time if the content is equal.

        Collections without content are compared by length only.
        """
        is_collection = src_desc.is_collection()
        src_length = src_desc.get_property_value(LENGTH_PROPERTY_URI)
        dest_length = dest_desc.get_property_value(LENGTH_PROPERTY_URI)
        if not is_collection and (src_length is None or dest_length is None):
            return False
        if src_length != dest_length:
            return False
        if not is_collection or src_length:
            src_date = src_desc.get_property_value(MODIFIED_PROPERTY_URI)
            dest_date = dest_desc.get_property_value(MODIFIED_PROPERTY_URI)
            if src_date is None or src_date != dest_date:
                return False
        return True

    def _resolve_content(self, src_repository, src_desc, dest_repository, dest_desc):
        """Copy content according to the content resolution.

        Return True if content was written.
        """
        resolution = _resolve_by_date(self.content_resolution, src_desc, dest_desc)
        _logger.info(
            f"Resolve content ({self.content_resolution}): {src_desc.uri}, "
            f"{dest_desc.uri}"
        )
        if resolution == BACKUP:
            in_repository, in_desc, out_repository, out_desc = (
                src_repository,
                src_desc,
                dest_repository,
                dest_desc,
            )
        elif resolution == RESTORE:
            in_repository, in_desc, out_repository, out_desc = (
                dest_repository,
                dest_desc,
                src_repository,
                src_desc,
            )
        else:
            return False
        if self.dry_run:
            return False

        # Keep the modification time of the input resource
        modified = in_desc.get_property_value(MODIFIED_PROPERTY_URI)
        src = in_repository.get_resource_input_stream(in_desc.uri)
        try:
            dest = out_repository.get_resource_output_stream(out_desc.uri, modified)
            try:
                util.copy_stream(src, dest)
            finally:
                dest.close()
        finally:
            src.close()
        return True

    def _resolve_metadata(
        self, resolution, src_repository, src_desc, dest_repository, dest_desc
    ):
        if resolution == BACKUP:
            in_repository, in_desc, out_repository, out_desc = (
                src_repository,
                src_desc,
                dest_repository,
                dest_desc,
            )
        elif resolution == RESTORE:
            in_repository, in_desc, out_repository, out_desc = (
                dest_repository,
                dest_desc,
                src_repository,
                src_desc,
            )
        else:
            return

        # Creation and modification time of empty collections don't matter
        skip = set()
        if out_desc.is_collection() and not out_desc.get_property_value(
            LENGTH_PROPERTY_URI
        ):
            skip = {CREATED_PROPERTY_URI, MODIFIED_PROPERTY_URI}

        removals = set()
        additions = []
        for prop_uri in in_desc.get_property_uris():
            if in_repository.is_live_property_uri(prop_uri) or prop_uri in skip:
                continue
            values = in_desc.get_property_values(prop_uri)
            if values != out_desc.get_property_values(prop_uri):
                removals.add(prop_uri)
                additions.extend((prop_uri, v) for v in values)
        for prop_uri in out_desc.get_property_uris():
            if out_repository.is_live_property_uri(prop_uri) or prop_uri in skip:
                continue
            if not in_desc.has_property(prop_uri):
                removals.add(prop_uri)

        if not removals:
            return
        _logger.info(
            f"Resolve metadata ({self.metadata_resolution}): {out_desc.uri}, "
            f"update {sorted(removals)}"
        )
        if self.dry_run:
            return
        out_repository.alter_resource_properties(
            out_desc.uri,
            ResourceAlteration(
                property_uri_removals=removals, property_additions=additions
            ),
        )


def synchronize(src_repository, src_uri, dest_repository, dest_uri, **kwargs):
    """Synchronize two resource trees.

    `kwargs` are passed to :class:`RepositorySynchronizer`.
    """
    synchronizer = RepositorySynchronizer(**kwargs)
    synchronizer.synchronize(src_repository, src_uri, dest_repository, dest_uri)
    return synchronizer
