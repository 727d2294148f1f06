# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Implementation of a repository backend that stores resources in a file system.

:class:`~davrepo.fs_backend.FilesystemBackend` maps the private (source)
namespace of its repository, a ``file:`` URI of the root folder by default,
to local paths:

    ``<root>/a/b.txt``
        content of resource ``a/b.txt``
    ``<root>/a/.b.txt.davrepo-description``
        stored properties of ``a/b.txt``
    ``<root>/a/@``
        content of the collection ``a/``
    ``<root>/a/.@.davrepo-description``
        stored properties of the collection ``a/``

Content and description files of collections are never listed as children.
Live properties are computed from the file system and never written.
"""
import io
import os
import shutil
from urllib.parse import quote

from davrepo import description_codec, util
from davrepo.repo_backend import RepositoryBackend
from davrepo.repo_error import (
    RepositoryArgumentError,
    ResourceForbiddenError,
    ResourceIOError,
    ResourceNotFoundError,
    ResourceStateError,
)
from davrepo.repository import COLLECTION_CONTENT_NAME, INFINITE_DEPTH
from davrepo.resource import (
    ACCESSED_PROPERTY_URI,
    LENGTH_PROPERTY_URI,
    MODIFIED_PROPERTY_URI,
    Resource,
)

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

#: Suffix of the hidden files that hold resource descriptions
DESCRIPTION_FILE_SUFFIX = ".davrepo-description"


def is_hidden_name(name):
    """Return True for files that are used internally and never listed."""
    return name == COLLECTION_CONTENT_NAME or (
        name.startswith(".") and name.endswith(DESCRIPTION_FILE_SUFFIX)
    )


# ========================================================================
# FilesystemBackend
# ========================================================================
class FilesystemBackend(RepositoryBackend):
    """Repository backend that publishes a folder of the local file system.

    Args:
        root_folder (str): existing folder
        fs_opts (dict | None): defaults to `config.fs_backend`
    """

    def __init__(self, root_folder, *, fs_opts=None):
        # root_folder is typically already resolved relative to config file
        # and has user ~ expanded
        root_folder = os.path.abspath(os.path.expanduser(root_folder))
        if not root_folder or not os.path.isdir(root_folder):
            raise ValueError(f"Invalid root path: {root_folder}")

        super().__init__()

        self.root_folder_path = root_folder
        self.fs_opts = fs_opts or {}
        self.follow_symlinks = bool(self.fs_opts.get("follow_symlinks"))

    def __repr__(self):
        return f"{self.__class__.__name__} for path {self.root_folder_path!r}"

    def get_default_source_uri(self):
        return util.path_to_file_uri(self.root_folder_path)

    def open(self):
        if not os.path.isdir(self.root_folder_path):
            raise FileNotFoundError(f"Root folder is gone: {self.root_folder_path}")

    def translate_error(self, uri, e):
        if isinstance(e, FileNotFoundError):
            return ResourceNotFoundError(uri, src_exception=e)
        elif isinstance(e, PermissionError):
            return ResourceForbiddenError(uri, src_exception=e)
        elif isinstance(e, (FileExistsError, IsADirectoryError, NotADirectoryError)):
            return ResourceStateError(uri, src_exception=e)
        return super().translate_error(uri, e)

    # --- Paths --------------------------------------------------------------

    def _loc_to_file_path(self, uri):
        """Convert a public resource URI to an absolute file path."""
        source_uri = self.repository.get_source_resource_uri(uri)
        file_path = os.path.abspath(util.file_uri_to_path(source_uri))
        root_path = self.root_folder_path
        if file_path != root_path and not file_path.startswith(root_path + os.sep):
            raise RuntimeError(
                f"Security exception: tried to access file outside root: {file_path}"
            )
        return file_path

    def _content_path(self, uri):
        fp = self._loc_to_file_path(uri)
        if util.is_collection_uri(uri):
            return os.path.join(fp, COLLECTION_CONTENT_NAME)
        return fp

    def _description_path(self, uri):
        fp = self._loc_to_file_path(uri)
        if util.is_collection_uri(uri):
            return os.path.join(
                fp, "." + COLLECTION_CONTENT_NAME + DESCRIPTION_FILE_SUFFIX
            )
        folder, name = os.path.split(fp)
        return os.path.join(folder, "." + name + DESCRIPTION_FILE_SUFFIX)

    def _check_exists(self, uri):
        fp = self._loc_to_file_path(uri)
        if util.is_collection_uri(uri):
            found = os.path.isdir(fp)
        else:
            found = os.path.isfile(fp)
        if not found:
            raise ResourceNotFoundError(uri)
        if not self.follow_symlinks and os.path.islink(fp):
            raise ResourceForbiddenError(uri, f"Symlink support is disabled: {fp!r}")
        return fp

    def _has_mounts_below(self, uri):
        return any(
            util.is_child_uri(uri, r.root_uri)
            for r in self.repository.get_path_repositories().values()
        )

    # --- Descriptions -------------------------------------------------------

    def _load_description(self, uri):
        """Return the stored properties of a resource."""
        desc_path = self._description_path(uri)
        if not os.path.isfile(desc_path):
            return Resource(uri)
        with open(desc_path, encoding="utf-8") as fp:
            text = fp.read()
        try:
            res = description_codec.parse_description(text, uri)
        except RepositoryArgumentError as e:
            raise ResourceIOError(uri, f"Invalid description file {desc_path}", e) from e
        res.uri = uri
        return res

    def _save_description(self, uri, description):
        desc_path = self._description_path(uri)
        stored = Resource(uri)
        for prop_uri in self.get_stored_property_uris(description):
            stored.set_property_values(
                prop_uri, description.get_property_values(prop_uri)
            )
        if not stored.get_property_count():
            if os.path.isfile(desc_path):
                os.remove(desc_path)
            return
        text = description_codec.serialize_description(stored, uri)
        with open(desc_path, "w", encoding="utf-8") as fp:
            fp.write(text)

    # --- Read access --------------------------------------------------------

    def exists(self, uri):
        fp = self._loc_to_file_path(uri)
        if util.is_collection_uri(uri):
            return os.path.isdir(fp)
        return os.path.isfile(fp)

    def describe(self, uri):
        fp = self._check_exists(uri)
        res = self._load_description(uri)
        try:
            st = os.stat(self._content_path(uri))
            length = st.st_size
        except FileNotFoundError:
            # Collection without content
            st = os.stat(fp)
            length = 0
        res.set_property_value(LENGTH_PROPERTY_URI, length)
        res.set_property_value(ACCESSED_PROPERTY_URI, util.utc_from_timestamp(st.st_atime))
        if not res.has_property(MODIFIED_PROPERTY_URI):
            res.set_property_value(
                MODIFIED_PROPERTY_URI, util.utc_from_timestamp(st.st_mtime)
            )
        return res

    def open_read(self, uri):
        self._check_exists(uri)
        content_path = self._content_path(uri)
        if util.is_collection_uri(uri) and not os.path.isfile(content_path):
            return io.BytesIO(b"")
        return open(content_path, "rb")

    def has_children(self, uri):
        fp = self._check_exists(uri)
        with os.scandir(fp) as it:
            return any(not is_hidden_name(entry.name) for entry in it)

    def list_children(self, uri, resource_filter, depth):
        fp = self._check_exists(uri)
        source_uri = self.repository.get_source_resource_uri(uri)
        with os.scandir(fp) as it:
            entries = sorted(it, key=lambda entry: entry.name)

        res = []
        for entry in entries:
            name = entry.name
            if is_hidden_name(name):
                continue
            if not self.follow_symlinks and entry.is_symlink():
                _logger.info(f"Skipping symlink {entry.path!r}")
                continue
            is_dir = entry.is_dir()
            if not is_dir and not entry.is_file():
                _logger.info(f"Skipping non-file {entry.path!r}")
                continue
            child_source_uri = source_uri + quote(name) + ("/" if is_dir else "")
            child_uri = self.repository.get_repository_resource_uri(child_source_uri)

            if resource_filter is None or resource_filter.is_pass_uri(child_uri):
                desc = self.describe(child_uri)
                if resource_filter is None or resource_filter.is_pass(desc):
                    res.append(desc)
            if is_dir and depth != 1:
                next_depth = depth if depth == INFINITE_DEPTH else depth - 1
                res.extend(self.list_children(child_uri, resource_filter, next_depth))
        return res

    # --- Write access -------------------------------------------------------

    def open_write(self, uri, modified=None):
        self._check_exists(uri)
        desc = self._load_description(uri)
        desc.set_property_value(MODIFIED_PROPERTY_URI, modified or util.utc_now())
        self._save_description(uri, desc)
        return open(self._content_path(uri), "wb")

    def create(self, uri, description):
        fp = self._loc_to_file_path(uri)
        if util.is_collection_uri(uri):
            if not os.path.isdir(fp):
                # The parent folder must exist
                os.mkdir(fp)
        else:
            if os.path.isdir(fp):
                raise ResourceStateError(uri, "A collection with this name exists")
            if not os.path.isdir(os.path.dirname(fp)):
                raise ResourceNotFoundError(uri, "Parent collection does not exist")
        _logger.debug(f"create({uri}) -> {fp}")
        self._save_description(uri, description)
        return open(self._content_path(uri), "wb")

    def delete(self, uri):
        fp = self._check_exists(uri)
        _logger.debug(f"delete({uri}) -> {fp}")
        if util.is_collection_uri(uri):
            shutil.rmtree(fp, ignore_errors=False)
            return
        os.unlink(fp)
        desc_path = self._description_path(uri)
        if os.path.isfile(desc_path):
            os.unlink(desc_path)

    def alter_properties(self, uri, alteration):
        self._check_exists(uri)
        desc = self._load_description(uri)
        desc.alter(alteration)
        self._save_description(uri, desc)
        # Live properties may have changed as well
        return self.describe(uri)

    # --- Copy and move ------------------------------------------------------

    def _prepare_copy_move(self, uri, dest_uri, overwrite):
        if util.is_collection_uri(uri) != util.is_collection_uri(dest_uri):
            raise RepositoryArgumentError(
                f"Cannot copy or move {uri!r} to {dest_uri!r}: collection mismatch"
            )
        src_path = self._check_exists(uri)
        dest_path = self._loc_to_file_path(dest_uri)
        if self.exists(dest_uri):
            if not overwrite:
                raise ResourceStateError(dest_uri, "Destination exists")
            self.delete(dest_uri)
        return src_path, dest_path

    def copy_within(self, uri, dest_uri, overwrite, progress):
        if self._has_mounts_below(uri):
            return super().copy_within(uri, dest_uri, overwrite, progress)
        src_path, dest_path = self._prepare_copy_move(uri, dest_uri, overwrite)
        _logger.debug(f"copy_within({src_path}, {dest_path})")
        if util.is_collection_uri(uri):
            # Includes content and description files
            shutil.copytree(src_path, dest_path, symlinks=True)
            return
        shutil.copy2(src_path, dest_path)
        desc_path = self._description_path(uri)
        if os.path.isfile(desc_path):
            shutil.copy2(desc_path, self._description_path(dest_uri))

    def move_within(self, uri, dest_uri, overwrite, progress):
        if self._has_mounts_below(uri):
            return super().move_within(uri, dest_uri, overwrite, progress)
        src_path, dest_path = self._prepare_copy_move(uri, dest_uri, overwrite)
        _logger.debug(f"move_within({src_path}, {dest_path})")
        desc_path = self._description_path(uri)
        shutil.move(src_path, dest_path)
        if not util.is_collection_uri(uri) and os.path.isfile(desc_path):
            shutil.move(desc_path, self._description_path(dest_uri))
