# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""Unit tests for davrepo.fs_backend"""

import os
import shutil
import tempfile
import unittest
from datetime import datetime, timezone

from davrepo.fs_backend import DESCRIPTION_FILE_SUFFIX, FilesystemBackend
from davrepo.memory_backend import MemoryBackend
from davrepo.repo_error import (
    RepositoryArgumentError,
    ResourceForbiddenError,
    ResourceIOError,
    ResourceNotFoundError,
    ResourceStateError,
)
from davrepo.repository import INFINITE_DEPTH, Repository
from davrepo.resource import (
    ACCESSED_PROPERTY_URI,
    LENGTH_PROPERTY_URI,
    MODIFIED_PROPERTY_URI,
    Resource,
)
from davrepo.util import path_to_file_uri

ROOT = "http://example.com/repo/"
NS = "http://example.com/ns#"
KEYWORD = NS + "keyword"
TITLE = NS + "title"


def _walk(folder):
    """Return a sorted list of all relative paths below `folder`."""
    res = []
    for root, dirs, files in os.walk(folder):
        for name in dirs + files:
            res.append(os.path.relpath(os.path.join(root, name), folder))
    return sorted(res)


# ========================================================================
# FilesystemTest
# ========================================================================


class FilesystemTest(unittest.TestCase):
    def setUp(self):
        self.root_path = tempfile.mkdtemp(prefix="davrepo-test-")
        self.backend = FilesystemBackend(self.root_path)
        self.repo = Repository(ROOT, self.backend)

    def tearDown(self):
        self.repo.dispose()
        shutil.rmtree(self.root_path, ignore_errors=True)

    def _path(self, rel_path):
        return os.path.join(self.root_path, *rel_path.split("/"))

    def testSetup(self):
        assert self.repo.source_uri == path_to_file_uri(self.root_path)
        assert self.backend._loc_to_file_path(ROOT + "a/b.txt") == self._path("a/b.txt")
        self.assertRaises(
            ValueError, FilesystemBackend, os.path.join(self.root_path, "missing")
        )

    def testCreateReadDelete(self):
        """Create, describe, read and delete a resource."""
        repo = self.repo
        uri = ROOT + "test.bin"
        data = os.urandom(1025)
        repo.create_resource(uri, data)
        assert repo.resource_exists(uri)
        assert os.path.isfile(self._path("test.bin"))

        desc = repo.get_resource_description(uri)
        assert desc.uri == uri
        assert desc.get_property_value(LENGTH_PROPERTY_URI) == 1025
        assert isinstance(desc.get_property_value(ACCESSED_PROPERTY_URI), datetime)
        assert repo.get_resource_contents(uri) == data

        repo.delete_resource(uri)
        assert not repo.resource_exists(uri)
        assert _walk(self.root_path) == []

    def testCollections(self):
        """Deleting a collection removes its children."""
        repo = self.repo
        repo.create_collection_resource(ROOT + "test/")
        repo.create_resource(ROOT + "test/test.bin", os.urandom(10))
        assert repo.resource_exists(ROOT + "test/")
        assert repo.resource_exists(ROOT + "test/test.bin")
        assert not repo.resource_exists(ROOT + "test")
        desc = repo.get_resource_description(ROOT + "test/")
        assert desc.is_collection()
        assert desc.get_property_value(LENGTH_PROPERTY_URI) == 0
        assert repo.get_resource_contents(ROOT + "test/") == b""

        repo.delete_resource(ROOT + "test/")
        assert not repo.resource_exists(ROOT + "test/")
        assert not repo.resource_exists(ROOT + "test/test.bin")
        assert not os.path.exists(self._path("test"))

    def testCollectionContent(self):
        """Collections may have content and properties that are never listed."""
        repo = self.repo
        repo.create_resource(
            ROOT + "c/", b"collection", Resource(None, [(TITLE, "My collection")])
        )
        repo.create_resource(ROOT + "c/a.txt", b"a", Resource(None, [(TITLE, "A")]))
        repo.create_collection_resource(ROOT + "c/sub/")

        assert os.path.isfile(self._path("c/@"))
        assert os.path.isfile(self._path("c/.@" + DESCRIPTION_FILE_SUFFIX))
        assert os.path.isfile(self._path("c/.a.txt" + DESCRIPTION_FILE_SUFFIX))

        assert repo.get_resource_contents(ROOT + "c/") == b"collection"
        desc = repo.get_resource_description(ROOT + "c/")
        assert desc.get_property_value(LENGTH_PROPERTY_URI) == 10
        assert desc.get_property_value(TITLE) == "My collection"

        children = repo.get_child_resource_descriptions(ROOT + "c/")
        assert [c.uri for c in children] == [ROOT + "c/a.txt", ROOT + "c/sub/"]
        assert children[0].get_property_value(TITLE) == "A"
        assert repo.has_child_resource(ROOT + "c/")
        assert not repo.has_child_resource(ROOT + "c/sub/")

        self.assertRaises(RepositoryArgumentError, repo.resource_exists, ROOT + "c/@")

    def testListingDepth(self):
        repo = self.repo
        repo.create_collection_resource(ROOT + "a/")
        repo.create_collection_resource(ROOT + "a/b/")
        repo.create_resource(ROOT + "a/b/c.txt", b"c")
        repo.create_resource(ROOT + "a/b%20%C3%A4.txt", b"x")

        def names(depth):
            return [
                r.uri[len(ROOT) :]
                for r in repo.get_child_resource_descriptions(ROOT, depth=depth)
            ]

        assert names(1) == ["a/"]
        assert names(2) == ["a/", "a/b/", "a/b%20%C3%A4.txt"]
        assert names(INFINITE_DEPTH) == [
            "a/",
            "a/b/",
            "a/b/c.txt",
            "a/b%20%C3%A4.txt",
        ]
        assert os.path.isfile(self._path("a/b ä.txt"))

    def testProperties(self):
        repo = self.repo
        uri = ROOT + "a.txt"
        modified = datetime(2020, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
        repo.create_resource(uri, b"a", Resource(None, [(MODIFIED_PROPERTY_URI, modified)]))
        desc = repo.get_resource_description(uri)
        assert desc.get_property_value(MODIFIED_PROPERTY_URI) == modified

        desc = repo.add_resource_properties(uri, [(KEYWORD, "x"), (KEYWORD, 2)])
        assert desc.get_property_values(KEYWORD) == ["x", 2]
        desc = repo.remove_resource_properties(uri, [KEYWORD, MODIFIED_PROPERTY_URI])
        assert not desc.has_property(KEYWORD)
        # The file time is used if no modification time is stored
        assert desc.has_property(MODIFIED_PROPERTY_URI)
        # No stored properties left: the description file is removed
        assert not os.path.exists(self._path(".a.txt" + DESCRIPTION_FILE_SUFFIX))

        stream = repo.get_resource_output_stream(uri, modified)
        stream.write(b"new")
        stream.close()
        desc = repo.get_resource_description(uri)
        assert desc.get_property_value(MODIFIED_PROPERTY_URI) == modified
        assert desc.get_property_value(LENGTH_PROPERTY_URI) == 3

    def testInvalidDescription(self):
        repo = self.repo
        repo.create_resource(ROOT + "a.txt", b"a")
        with open(self._path(".a.txt" + DESCRIPTION_FILE_SUFFIX), "w") as fp:
            fp.write("garbage")
        self.assertRaises(
            ResourceIOError, repo.get_resource_description, ROOT + "a.txt"
        )

    def testErrors(self):
        repo = self.repo
        self.assertRaises(
            ResourceNotFoundError, repo.get_resource_description, ROOT + "x.txt"
        )
        self.assertRaises(
            ResourceNotFoundError, repo.create_resource, ROOT + "x/y.txt", b""
        )
        repo.create_collection_resource(ROOT + "d/")
        self.assertRaises(ResourceStateError, repo.create_resource, ROOT + "d", b"")
        # Escaping the root folder is caught by the backend
        self.assertRaises(
            ResourceIOError, repo.get_resource_description, ROOT + "%2E%2E/etc/passwd"
        )

        backend = self.backend
        uri = ROOT + "a"
        assert type(backend.translate_error(uri, FileNotFoundError())) is (
            ResourceNotFoundError
        )
        assert type(backend.translate_error(uri, PermissionError())) is (
            ResourceForbiddenError
        )
        assert type(backend.translate_error(uri, FileExistsError())) is (
            ResourceStateError
        )
        assert type(backend.translate_error(uri, OSError())) is ResourceIOError

    def testRootGone(self):
        folder = tempfile.mkdtemp(prefix="davrepo-test-")
        repo = Repository(ROOT, FilesystemBackend(folder))
        os.rmdir(folder)
        self.assertRaises(ResourceNotFoundError, repo.open)
        assert not repo.is_open()

    def testSymlinks(self):
        target = tempfile.mkdtemp(prefix="davrepo-test-")
        try:
            try:
                os.symlink(target, self._path("link"))
            except (OSError, NotImplementedError):
                self.skipTest("Symlinks are not supported")
            repo = self.repo
            assert repo.get_child_resource_descriptions(ROOT) == []
            self.assertRaises(
                ResourceForbiddenError, repo.get_resource_description, ROOT + "link/"
            )

            repo = Repository(
                "http://example.com/follow/",
                FilesystemBackend(self.root_path, fs_opts={"follow_symlinks": True}),
            )
            children = repo.get_child_resource_descriptions(
                "http://example.com/follow/"
            )
            assert [c.get_name() for c in children] == ["link"]
        finally:
            shutil.rmtree(target)


# ========================================================================
# CopyMoveTest
# ========================================================================


class CopyMoveTest(unittest.TestCase):
    def setUp(self):
        self.root_path = tempfile.mkdtemp(prefix="davrepo-test-")
        self.repo = Repository(ROOT, FilesystemBackend(self.root_path))
        repo = self.repo
        repo.create_collection_resource(ROOT + "parent/")
        repo.create_collection_resource(ROOT + "parent/child/")
        repo.create_resource(
            ROOT + "parent/child/a.txt", b"aaa", Resource(None, [(TITLE, "A")])
        )
        repo.create_resource(ROOT + "parent/b.txt", b"bb")

    def tearDown(self):
        self.repo.dispose()
        shutil.rmtree(self.root_path, ignore_errors=True)

    def testCircular(self):
        """Copy into itself fails and leaves the file system untouched."""
        before = _walk(self.root_path)
        self.assertRaises(
            RepositoryArgumentError,
            self.repo.copy_resource,
            ROOT + "parent/",
            ROOT + "parent/child/",
        )
        self.assertRaises(
            RepositoryArgumentError,
            self.repo.move_resource,
            ROOT + "parent/",
            ROOT + "parent/child/x/",
        )
        assert _walk(self.root_path) == before

    def testCopy(self):
        repo = self.repo
        repo.copy_resource(ROOT + "parent/", ROOT + "copy/")
        assert repo.get_resource_contents(ROOT + "copy/child/a.txt") == b"aaa"
        desc = repo.get_resource_description(ROOT + "copy/child/a.txt")
        assert desc.get_property_value(TITLE) == "A"
        assert repo.get_resource_contents(ROOT + "parent/b.txt") == b"bb"

        repo.copy_resource(ROOT + "parent/child/a.txt", ROOT + "copy/c.txt")
        desc = repo.get_resource_description(ROOT + "copy/c.txt")
        assert desc.get_property_value(TITLE) == "A"

        self.assertRaises(
            ResourceStateError,
            repo.copy_resource,
            ROOT + "parent/b.txt",
            ROOT + "copy/c.txt",
            overwrite=False,
        )
        repo.copy_resource(ROOT + "parent/b.txt", ROOT + "copy/c.txt")
        desc = repo.get_resource_description(ROOT + "copy/c.txt")
        assert not desc.has_property(TITLE)
        assert repo.get_resource_contents(ROOT + "copy/c.txt") == b"bb"

        self.assertRaises(
            RepositoryArgumentError,
            repo.copy_resource,
            ROOT + "parent/",
            ROOT + "copy.txt",
        )

    def testMove(self):
        repo = self.repo
        repo.move_resource(ROOT + "parent/child/a.txt", ROOT + "a.txt")
        assert not repo.resource_exists(ROOT + "parent/child/a.txt")
        assert not os.path.exists(
            os.path.join(self.root_path, "parent", "child", ".a.txt" + DESCRIPTION_FILE_SUFFIX)
        )
        desc = repo.get_resource_description(ROOT + "a.txt")
        assert desc.get_property_value(TITLE) == "A"

        repo.move_resource(ROOT + "parent/", ROOT + "moved/")
        assert not repo.resource_exists(ROOT + "parent/")
        assert repo.get_resource_contents(ROOT + "moved/b.txt") == b"bb"

        self.assertRaises(
            ResourceStateError,
            repo.move_resource,
            ROOT + "a.txt",
            ROOT + "moved/b.txt",
            overwrite=False,
        )

    def testMountedMemoryRepository(self):
        """Copy between a file system and a mounted memory repository."""
        repo = self.repo
        sub = Repository(None, MemoryBackend())
        repo.register_path_repository("parent/mem/", sub)
        repo.copy_resource(ROOT + "parent/child/", ROOT + "parent/mem/child/")
        assert sub.get_resource_contents(ROOT + "parent/mem/child/a.txt") == b"aaa"
        desc = sub.get_resource_description(ROOT + "parent/mem/child/a.txt")
        assert desc.get_property_value(TITLE) == "A"

        # The mount is copied using the generic algorithm
        repo.copy_resource(ROOT + "parent/", ROOT + "copy/")
        assert repo.get_resource_contents(ROOT + "copy/mem/child/a.txt") == b"aaa"
        assert os.path.isfile(
            os.path.join(self.root_path, "copy", "mem", "child", "a.txt")
        )


if __name__ == "__main__":
    unittest.main()
