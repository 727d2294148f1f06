# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""Unit tests for davrepo.repository (using the in-memory backend)"""

import threading
import time
import unittest

from davrepo import repository as repository_module
from davrepo.memory_backend import MemoryBackend
from davrepo.repo_error import (
    RepositoryArgumentError,
    RepositoryStateError,
    ResourceForbiddenError,
    ResourceIOError,
    ResourceNotFoundError,
    ResourceStateError,
)
from davrepo.repository import INFINITE_DEPTH, Repository
from davrepo.resource import (
    CREATED_PROPERTY_URI,
    LENGTH_PROPERTY_URI,
    MODIFIED_PROPERTY_URI,
    Resource,
    ResourceAlteration,
    ResourceFilter,
)

ROOT = "http://example.com/repo/"
NS = "http://example.com/ns#"
KEYWORD = NS + "keyword"
TITLE = NS + "title"


class CountingBackend(MemoryBackend):
    """Memory backend that counts open/close calls and records access."""

    def __init__(self):
        super().__init__()
        self.open_count = 0
        self.close_count = 0
        self.calls = []

    def open(self):
        # Widen the window for concurrent callers
        time.sleep(0.01)
        self.open_count += 1

    def close(self):
        self.close_count += 1

    def exists(self, uri):
        self.calls.append(("exists", uri))
        return super().exists(uri)

    def describe(self, uri):
        self.calls.append(("describe", uri))
        return super().describe(uri)

    def copy_within(self, uri, dest_uri, overwrite, progress):
        self.calls.append(("copy_within", uri))
        return super().copy_within(uri, dest_uri, overwrite, progress)

    def move_within(self, uri, dest_uri, overwrite, progress):
        self.calls.append(("move_within", uri))
        return super().move_within(uri, dest_uri, overwrite, progress)

    def copy_to(self, uri, dest_repository, dest_uri, overwrite, progress):
        self.calls.append(("copy_to", uri))
        return super().copy_to(uri, dest_repository, dest_uri, overwrite, progress)


class FailingBackend(MemoryBackend):
    """Memory backend that raises a given exception on every read."""

    def __init__(self, error):
        super().__init__()
        self.error = error

    def describe(self, uri):
        raise self.error

    def close(self):
        raise OSError("close failed")


def _make_repo(root_uri=ROOT, **kwargs):
    return Repository(root_uri, MemoryBackend(), **kwargs)


# ========================================================================
# NamespaceTest
# ========================================================================


class NamespaceTest(unittest.TestCase):
    def setUp(self):
        self.repo = _make_repo()

    def tearDown(self):
        self.repo.dispose()

    def testRootUri(self):
        assert self.repo.root_uri == ROOT
        repo = _make_repo("HTTP://example.com/a/../repo/./")
        assert repo.root_uri == ROOT
        self.assertRaises(RepositoryArgumentError, _make_repo, "http://example.com/a")
        self.assertRaises(RepositoryArgumentError, _make_repo, "relative/")
        # The source namespace defaults to the public namespace
        assert repo.source_uri == ROOT

    def testCheckResourceUri(self):
        check = self.repo.check_resource_uri
        assert check(ROOT) == ROOT
        assert check(ROOT + "a/b.txt") == ROOT + "a/b.txt"
        for uri in (
            ROOT + "x/../a/b%c3%a4.txt",
            ROOT + "./a/b%C3%a4.txt",
            "HTTP://example.com/repo/a/b%c3%A4.txt",
        ):
            norm = check(uri)
            assert norm == ROOT + "a/b%C3%A4.txt"
            assert check(norm) == norm

        for uri in (
            "http://example.com/other/a",
            "http://example.com/repo",
            "http://example.com/repository/a",
            ROOT + "../other/a",
            "http://other.com/repo/a",
        ):
            self.assertRaises(RepositoryArgumentError, check, uri)
        self.assertRaises(RepositoryArgumentError, check, None)
        self.assertRaises(RepositoryArgumentError, check, "")
        # Collection content is never addressable
        self.assertRaises(RepositoryArgumentError, check, ROOT + "a/@")

    def testNoRootUri(self):
        repo = Repository(None, MemoryBackend())
        self.assertRaises(RepositoryStateError, repo.check_resource_uri, ROOT)
        self.assertRaises(RepositoryStateError, repo.open)
        assert not repo.is_open()

    def testCollectionAndParent(self):
        repo = self.repo
        assert repo.get_collection_uri(ROOT + "a/b.txt") == ROOT + "a/"
        assert repo.get_collection_uri(ROOT + "a/b/") == ROOT + "a/b/"
        assert repo.get_parent_resource_uri(ROOT + "a/b.txt") == ROOT + "a/"
        assert repo.get_parent_resource_uri(ROOT + "a/b/") == ROOT + "a/"
        assert repo.get_parent_resource_uri(ROOT + "a/") == ROOT
        assert repo.get_parent_resource_uri(ROOT) is None

    def testSourceUri(self):
        repo = _make_repo(source_uri="urn:store:/base/")
        assert repo.get_source_resource_uri(ROOT + "a/b") == "urn:store:/base/a/b"
        assert repo.get_repository_resource_uri("urn:store:/base/a/") == ROOT + "a/"
        self.assertRaises(RepositoryArgumentError, repo.set_source_uri, "urn:x:/a")


# ========================================================================
# RouterTest
# ========================================================================


class RouterTest(unittest.TestCase):
    def setUp(self):
        self.repo = _make_repo()
        self.sub_a = _make_repo(None)
        self.sub_ab = _make_repo(None)

    def tearDown(self):
        self.repo.dispose()

    def testPrecedence(self):
        """The most specific mount wins."""
        repo = self.repo
        assert repo.register_path_repository("a/b/", self.sub_ab) is None
        assert repo.register_path_repository("a/", self.sub_a) is None
        assert self.sub_a.root_uri == ROOT + "a/"
        assert self.sub_ab.root_uri == ROOT + "a/b/"
        assert self.sub_ab.parent_repository is repo

        assert repo.get_subrepository(ROOT + "a/b/c") is self.sub_ab
        assert repo.get_subrepository(ROOT + "a/b/") is self.sub_ab
        assert repo.get_subrepository(ROOT + "a/bc") is self.sub_a
        assert repo.get_subrepository(ROOT + "a/") is self.sub_a
        assert repo.get_subrepository(ROOT + "x/a/b/c") is repo
        assert repo.get_subrepository(ROOT) is repo

        assert repo.get_path_repository("a/") is self.sub_a
        assert repo.get_path_repositories() == {"a/": self.sub_a, "a/b/": self.sub_ab}
        assert repo.get_child_subrepositories(ROOT) == {self.sub_a}
        assert repo.get_child_subrepositories(ROOT + "a/") == {self.sub_ab}

    def testNestedMounts(self):
        repo = self.repo
        nested = _make_repo(None)
        self.sub_a.register_path_repository("x/", nested)
        assert nested.root_uri is None
        repo.register_path_repository("a/", self.sub_a)
        assert nested.root_uri == ROOT + "a/x/"
        assert repo.get_subrepository(ROOT + "a/x/1") is self.sub_a
        assert repo.get_owner_repository(ROOT + "a/x/1") is nested

        # Root URI changes are pushed down
        repo.set_root_uri("http://other.com/r/")
        assert self.sub_a.root_uri == "http://other.com/r/a/"
        assert nested.root_uri == "http://other.com/r/a/x/"

    def testRegister(self):
        repo = self.repo
        other = _make_repo(None)
        repo.register_path_repository("a/", self.sub_a)
        assert repo.register_path_repository("a/", other) is self.sub_a
        assert repo.get_child_subrepositories(ROOT) == {other}
        # The old repository is not detached automatically
        assert self.sub_a.parent_repository is repo

        assert repo.unregister_path_repository("a/") is other
        assert other.parent_repository is None
        assert repo.unregister_path_repository("a/") is None
        assert repo.get_child_subrepositories(ROOT) == set()

    def testMountPath(self):
        repo = self.repo
        for path in ("/a/", "a", "../a/", "a/../b/", "http://x/a/", ""):
            self.assertRaises(
                RepositoryArgumentError, repo.register_path_repository, path, self.sub_a
            )

    def testParentConflict(self):
        self.repo.register_path_repository("a/", self.sub_a)
        other = _make_repo("http://other.com/")
        self.assertRaises(
            RepositoryStateError, other.register_path_repository, "a/", self.sub_a
        )
        # Same parent is fine
        self.sub_a.set_parent_repository(self.repo)

    def testDelegation(self):
        """Operations on mounted paths are transparently delegated."""
        repo = self.repo
        repo.register_path_repository("docs/", self.sub_a)
        repo.create_resource(ROOT + "docs/readme.txt", b"Read me")
        assert self.sub_a.resource_exists(ROOT + "docs/readme.txt")
        assert self.sub_a.backend.exists(ROOT + "docs/readme.txt")
        assert not repo.backend.exists(ROOT + "docs/readme.txt")
        assert repo.get_resource_contents(ROOT + "docs/readme.txt") == b"Read me"

        names = [
            r.get_name() for r in self.sub_a.get_child_resource_descriptions(ROOT + "docs/")
        ]
        assert names == ["readme.txt"]

        repo.delete_resource(ROOT + "docs/readme.txt")
        assert not self.sub_a.resource_exists(ROOT + "docs/readme.txt")

    def testListing(self):
        repo = self.repo
        repo.create_collection_resource(ROOT + "a/")
        repo.create_resource(ROOT + "a/1.txt", b"1")
        repo.create_resource(ROOT + "b.txt", b"b")
        # Hidden by the mount below
        repo.create_collection_resource(ROOT + "docs/")
        repo.create_resource(ROOT + "docs/hidden.txt", b"x")
        repo.register_path_repository("docs/", self.sub_a)
        repo.register_path_repository("a/sub/", self.sub_ab)
        self.sub_a.create_resource(ROOT + "docs/readme.txt", b"r")

        def uris(depth, resource_filter=None):
            return [
                r.uri
                for r in repo.get_child_resource_descriptions(
                    ROOT, resource_filter, depth
                )
            ]

        assert uris(0) == []
        assert uris(1) == [ROOT + "a/", ROOT + "b.txt", ROOT + "docs/"]
        assert uris(2) == [
            ROOT + "a/",
            ROOT + "a/1.txt",
            ROOT + "b.txt",
            ROOT + "docs/",
            ROOT + "a/sub/",
        ]
        # Mounted repositories are not descended into
        assert uris(INFINITE_DEPTH) == uris(2)
        assert uris(1, ResourceFilter(collection_pass=False)) == [ROOT + "b.txt"]
        # 'a/' does not pass, but the mount below it does
        assert uris(2, ResourceFilter(name_pattern="sub")) == [ROOT + "a/sub/"]
        assert uris(1, ResourceFilter(name_pattern="sub")) == []

        assert repo.has_child_resource(ROOT + "a/")
        assert not repo.has_child_resource(ROOT + "a/sub/")
        assert repo.get_child_resource_descriptions(ROOT + "b.txt") == []


# ========================================================================
# LifecycleTest
# ========================================================================


class LifecycleTest(unittest.TestCase):
    def testIdempotent(self):
        backend = CountingBackend()
        repo = Repository(ROOT, backend)
        assert not repo.is_open()
        repo.open()
        repo.open()
        assert repo.is_open()
        assert backend.open_count == 1
        repo.close()
        repo.close()
        assert not repo.is_open()
        assert backend.close_count == 1

    def testConcurrentOpen(self):
        backend = CountingBackend()
        repo = Repository(ROOT, backend)
        threads = [threading.Thread(target=repo.open) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert repo.is_open()
        assert backend.open_count == 1

    def testAutoOpen(self):
        backend = CountingBackend()
        repo = Repository(ROOT, backend)
        assert not repo.resource_exists(ROOT + "a.txt")
        assert repo.is_open()
        assert backend.open_count == 1

        backend = CountingBackend()
        repo = Repository(ROOT, backend, auto_open=False)
        self.assertRaises(RepositoryStateError, repo.resource_exists, ROOT + "a.txt")
        assert backend.open_count == 0
        repo.open()
        assert not repo.resource_exists(ROOT + "a.txt")

    def testDispose(self):
        backend = CountingBackend()
        sub_backend = CountingBackend()
        repo = Repository(ROOT, backend)
        sub = Repository(None, sub_backend)
        repo.register_path_repository("a/", sub)
        with repo:
            sub.open()
            assert repo.is_open()
        assert not repo.is_open()
        assert not sub.is_open()
        assert backend.close_count == 1
        assert sub_backend.close_count == 1

    def testDisposeLogsErrors(self):
        repo = Repository(ROOT, FailingBackend(OSError("x")))
        repo.open()
        with self.assertLogs(repository_module._logger, level="ERROR"):
            repo.dispose()
        self.assertRaises(ResourceIOError, repo.close)


# ========================================================================
# PropertyTest
# ========================================================================


class PropertyTest(unittest.TestCase):
    def setUp(self):
        self.repo = _make_repo()
        self.uri = ROOT + "a.txt"

    def tearDown(self):
        self.repo.dispose()

    def testCreateDefaults(self):
        desc = self.repo.create_resource(self.uri, b"12345")
        assert desc.get_property_value(LENGTH_PROPERTY_URI) == 5
        created = desc.get_property_value(CREATED_PROPERTY_URI)
        assert created is not None
        assert desc.get_property_value(MODIFIED_PROPERTY_URI) == created

        # Live properties of a passed description are not stored
        desc = self.repo.create_resource(
            ROOT + "b.txt",
            b"",
            Resource(None, [(LENGTH_PROPERTY_URI, 99), (TITLE, "B")]),
        )
        assert desc.get_property_value(LENGTH_PROPERTY_URI) == 0
        assert desc.get_property_value(TITLE) == "B"
        assert not desc.has_property(CREATED_PROPERTY_URI)

    def testAlter(self):
        repo = self.repo
        repo.create_resource(self.uri, b"x")
        desc = repo.add_resource_properties(self.uri, [(KEYWORD, "a"), (KEYWORD, "b")])
        assert desc.get_property_values(KEYWORD) == ["a", "b"]
        desc = repo.add_resource_properties(self.uri, [(KEYWORD, "c")])
        assert desc.get_property_values(KEYWORD) == ["a", "b", "c"]
        desc = repo.set_resource_properties(self.uri, [(TITLE, "T")])
        assert desc.get_property_values(TITLE) == ["T"]
        assert desc.get_property_values(KEYWORD) == ["a", "b", "c"]
        desc = repo.alter_resource_properties(
            self.uri, ResourceAlteration.create_remove_values([(KEYWORD, "b")])
        )
        assert desc.get_property_values(KEYWORD) == ["a", "c"]
        desc = repo.remove_resource_properties(self.uri, KEYWORD)
        assert not desc.has_property(KEYWORD)
        assert repo.get_resource_description(self.uri) == desc

        self.assertRaises(
            RepositoryArgumentError, repo.alter_resource_properties, self.uri, {}
        )
        self.assertRaises(
            ResourceNotFoundError,
            repo.add_resource_properties,
            ROOT + "missing.txt",
            [(TITLE, "x")],
        )

    def testLiveProperties(self):
        repo = self.repo
        repo.create_resource(self.uri, b"abc")
        before = repo.live_property_uris
        assert isinstance(before, frozenset)
        assert not repo.is_live_property_uri(TITLE)

        repo.add_live_property_uri(TITLE)
        assert repo.is_live_property_uri(TITLE)
        assert TITLE not in before
        assert repo.live_property_uris is not before

        desc = repo.get_resource_description(self.uri)
        for alteration in (
            ResourceAlteration.create_add([(TITLE, "x")]),
            ResourceAlteration.create_set([(TITLE, "x"), (LENGTH_PROPERTY_URI, 7)]),
            ResourceAlteration.create_remove_uris([LENGTH_PROPERTY_URI]),
        ):
            after = repo.alter_resource_properties(self.uri, alteration)
            assert after.get_property_values(TITLE) == desc.get_property_values(TITLE)
            assert after.get_property_value(LENGTH_PROPERTY_URI) == 3

        repo = _make_repo(live_property_uris=[KEYWORD])
        assert repo.is_live_property_uri(KEYWORD)
        assert repo.is_live_property_uri(LENGTH_PROPERTY_URI)


# ========================================================================
# ResourceTest
# ========================================================================


class ResourceAccessTest(unittest.TestCase):
    def setUp(self):
        self.repo = _make_repo()

    def tearDown(self):
        self.repo.dispose()

    def testStreams(self):
        repo = self.repo
        uri = ROOT + "a.bin"
        stream = repo.create_resource_stream(uri)
        stream.write(b"abc")
        stream.close()
        assert repo.get_resource_contents(uri) == b"abc"

        stream = repo.get_resource_output_stream(uri)
        stream.write(b"defg")
        stream.close()
        assert repo.get_resource_contents(uri) == b"defg"
        desc = repo.get_resource_description(uri)
        assert desc.get_property_value(LENGTH_PROPERTY_URI) == 4

        self.assertRaises(
            ResourceNotFoundError, repo.get_resource_output_stream, ROOT + "x.bin"
        )
        self.assertRaises(
            ResourceNotFoundError, repo.get_resource_input_stream, ROOT + "x.bin"
        )

    def testParents(self):
        repo = self.repo
        self.assertRaises(ResourceNotFoundError, repo.create_resource, ROOT + "a/b/c", b"")
        desc = repo.create_parent_resources(ROOT + "a/b/c")
        assert desc.uri == ROOT + "a/b/"
        assert repo.resource_exists(ROOT + "a/")
        assert repo.create_parent_resources(ROOT + "a/b/c") is None
        assert repo.create_parent_resources(ROOT) is None
        repo.create_resource(ROOT + "a/b/c", b"c")
        self.assertRaises(
            RepositoryArgumentError, repo.create_collection_resource, ROOT + "x"
        )

    def testDelete(self):
        repo = self.repo
        repo.create_collection_resource(ROOT + "a/")
        repo.create_resource(ROOT + "a/b.txt", b"b")
        repo.delete_resource(ROOT + "a/")
        assert not repo.resource_exists(ROOT + "a/")
        assert not repo.resource_exists(ROOT + "a/b.txt")
        self.assertRaises(ResourceNotFoundError, repo.delete_resource, ROOT + "a/")
        self.assertRaises(ResourceForbiddenError, repo.delete_resource, ROOT)
        # Also via the un-normalized form
        self.assertRaises(ResourceForbiddenError, repo.delete_resource, ROOT + "a/..")

    def testTranslateErrors(self):
        for error, expected in (
            (OSError("disk"), ResourceIOError),
            (RepositoryStateError("closed"), ResourceStateError),
            (KeyError("x"), ResourceNotFoundError),
        ):
            repo = Repository(ROOT, FailingBackend(error))
            with self.assertRaises(expected) as cm:
                repo.get_resource_description(ROOT + "a")
            assert type(cm.exception) is expected
            assert cm.exception.uri == ROOT + "a"
            assert cm.exception.__cause__ is error
            assert cm.exception.src_exception is error

        error = RepositoryArgumentError("bad")
        repo = Repository(ROOT, FailingBackend(error))
        with self.assertRaises(RepositoryArgumentError) as cm:
            repo.get_resource_description(ROOT + "a")
        assert cm.exception is error

        error = ResourceForbiddenError(ROOT + "a")
        repo = Repository(ROOT, FailingBackend(error))
        with self.assertRaises(ResourceForbiddenError) as cm:
            repo.get_resource_description(ROOT + "a")
        assert cm.exception is error
        assert "403 Forbidden" in cm.exception.get_user_info()


# ========================================================================
# CopyMoveTest
# ========================================================================


class CopyMoveTest(unittest.TestCase):
    def setUp(self):
        self.backend = CountingBackend()
        self.repo = Repository(ROOT, self.backend)
        repo = self.repo
        repo.create_collection_resource(ROOT + "parent/")
        repo.create_collection_resource(ROOT + "parent/child/")
        repo.create_resource(
            ROOT + "parent/child/a.txt", b"aaa", Resource(None, [(TITLE, "A")])
        )
        repo.create_resource(ROOT + "parent/b.txt", b"")
        self.other = _make_repo("http://other.com/r/")

    def tearDown(self):
        self.repo.dispose()
        self.other.dispose()

    def testCircular(self):
        """Copy and move into itself fail without any backend access."""
        repo = self.repo
        self.backend.calls = []
        for src, dest in (
            ("parent/", "parent/child/"),
            ("parent/", "parent/"),
            ("parent/", "parent/x/y/"),
            ("parent/b.txt", "parent/b.txt"),
        ):
            self.assertRaises(
                RepositoryArgumentError, repo.copy_resource, ROOT + src, ROOT + dest
            )
            self.assertRaises(
                RepositoryArgumentError, repo.move_resource, ROOT + src, ROOT + dest
            )
        self.assertRaises(
            RepositoryArgumentError,
            repo.copy_resource,
            ROOT + "parent/",
            ROOT + "parent/../parent/child/",
        )
        assert self.backend.calls == []

    def testRootMove(self):
        self.assertRaises(
            RepositoryArgumentError,
            self.repo.move_resource_to,
            ROOT,
            self.other,
            "http://other.com/r/x/",
        )
        self.assertRaises(
            RepositoryArgumentError,
            self.repo.copy_resource,
            ROOT + "parent/",
            "http://other.com/r/x/",
        )

    def testCopyWithin(self):
        repo = self.repo
        repo.copy_resource(ROOT + "parent/", ROOT + "copy/")
        assert ("copy_within", ROOT + "parent/") in self.backend.calls
        assert repo.get_resource_contents(ROOT + "copy/child/a.txt") == b"aaa"
        desc = repo.get_resource_description(ROOT + "copy/child/a.txt")
        assert desc.get_property_value(TITLE) == "A"
        assert repo.resource_exists(ROOT + "copy/b.txt")
        assert repo.resource_exists(ROOT + "parent/child/a.txt")

        self.assertRaises(
            ResourceStateError,
            repo.copy_resource,
            ROOT + "parent/b.txt",
            ROOT + "copy/b.txt",
            overwrite=False,
        )
        repo.copy_resource(ROOT + "parent/child/a.txt", ROOT + "copy/b.txt")
        assert repo.get_resource_contents(ROOT + "copy/b.txt") == b"aaa"

    def testMoveWithin(self):
        repo = self.repo
        repo.move_resource(ROOT + "parent/", ROOT + "moved/")
        assert not repo.resource_exists(ROOT + "parent/")
        assert not repo.resource_exists(ROOT + "parent/child/a.txt")
        assert repo.get_resource_contents(ROOT + "moved/child/a.txt") == b"aaa"
        desc = repo.get_resource_description(ROOT + "moved/child/a.txt")
        assert desc.get_property_value(TITLE) == "A"

    def testInterRepository(self):
        repo = self.repo
        other = self.other
        progress = []
        repo.copy_resource_to(
            ROOT + "parent/",
            other,
            "http://other.com/r/p/",
            progress=lambda done, total: progress.append((done, total)),
        )
        assert other.get_resource_contents("http://other.com/r/p/child/a.txt") == b"aaa"
        desc = other.get_resource_description("http://other.com/r/p/child/a.txt")
        assert desc.get_property_value(TITLE) == "A"
        assert other.resource_exists("http://other.com/r/p/b.txt")
        assert progress == [(3, 3)]

        self.assertRaises(
            ResourceStateError,
            repo.copy_resource_to,
            ROOT + "parent/b.txt",
            other,
            "http://other.com/r/p/b.txt",
            overwrite=False,
        )

        repo.move_resource_to(ROOT + "parent/child/", other, "http://other.com/r/c/")
        assert not repo.resource_exists(ROOT + "parent/child/")
        assert other.resource_exists("http://other.com/r/c/a.txt")

        # The destination URI is validated against the destination repository
        self.assertRaises(
            RepositoryArgumentError,
            repo.copy_resource_to,
            ROOT + "parent/b.txt",
            other,
            ROOT + "b.txt",
        )

    def testMirror(self):
        """Independent repositories may use the same URIs."""
        repo = self.repo
        mirror = _make_repo()
        repo.copy_resource_to(ROOT + "parent/", mirror, ROOT + "parent/")
        assert mirror.get_resource_contents(ROOT + "parent/child/a.txt") == b"aaa"
        repo.move_resource_to(ROOT + "parent/b.txt", mirror, ROOT + "parent/b.txt")
        assert not repo.resource_exists(ROOT + "parent/b.txt")
        assert mirror.resource_exists(ROOT + "parent/b.txt")
        mirror.dispose()

        # Inside one repository tree, sub-repositories are checked as well
        sub = _make_repo(None)
        repo.register_path_repository("docs/", sub)
        assert sub.get_top_repository() is repo
        self.assertRaises(
            RepositoryArgumentError,
            sub.copy_resource_to,
            ROOT + "docs/",
            repo,
            ROOT + "docs/x/",
        )

    def testCrossSubRepository(self):
        repo = self.repo
        sub = _make_repo(None)
        repo.register_path_repository("docs/", sub)

        repo.copy_resource(ROOT + "parent/child/a.txt", ROOT + "docs/a.txt")
        assert ("copy_to", ROOT + "parent/child/a.txt") in self.backend.calls
        assert sub.get_resource_contents(ROOT + "docs/a.txt") == b"aaa"

        # Source owned by the sub-repository: the call is delegated
        repo.move_resource(ROOT + "docs/a.txt", ROOT + "docs/b.txt")
        assert sub.resource_exists(ROOT + "docs/b.txt")
        assert not sub.resource_exists(ROOT + "docs/a.txt")

        repo.move_resource(ROOT + "docs/b.txt", ROOT + "parent/b2.txt")
        assert repo.get_resource_contents(ROOT + "parent/b2.txt") == b"aaa"
        assert not sub.resource_exists(ROOT + "docs/b.txt")

        # Mounts must not be moved as part of the parent
        repo.create_collection_resource(ROOT + "outer/")
        repo.register_path_repository("outer/inner/", _make_repo(None))
        repo.create_resource(ROOT + "outer/inner/x.txt", b"x")
        repo.copy_resource(ROOT + "outer/", ROOT + "outer2/")
        assert repo.get_resource_contents(ROOT + "outer2/inner/x.txt") == b"x"
        assert repo.get_owner_repository(ROOT + "outer2/inner/x.txt") is repo


if __name__ == "__main__":
    unittest.main()
