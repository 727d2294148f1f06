# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Registry that builds named repositories from a configuration.

Example YAML configuration::

    logging:
        enable: true
    repositories:
        main:
            root_uri: "http://example.com/repo/"
            backend:
                root: "./data"            # FilesystemBackend
            mounts:
                archive/: archive
        archive:
            backend: memory               # Alias for MemoryBackend
            readonly: true

The `backend` option accepts

    - a registered alias, e.g. ``"memory"``
    - a class path, e.g. ``"davrepo.memory_backend.MemoryBackend"``
    - ``{"class": <alias or class path>, "args": [...], "kwargs": {...}}``
    - ``{"root": <folder>}`` as shortcut for a FilesystemBackend
    - a :class:`~davrepo.repo_backend.RepositoryBackend` instance

Relative folder paths are evaluated relative to the configuration file.
There are no global registries: every registry instance has its own map of
backend aliases.
"""
import copy

from davrepo import util
from davrepo.default_conf import DEFAULT_CONFIG
from davrepo.fs_backend import FilesystemBackend
from davrepo.memory_backend import MemoryBackend
from davrepo.readonly_backend import ReadOnlyBackend
from davrepo.repo_backend import RepositoryBackend
from davrepo.repository import Repository

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

REPOSITORY_OPTIONS = {
    "root_uri",
    "source_uri",
    "backend",
    "readonly",
    "auto_open",
    "live_property_uris",
    "mounts",
}


# ========================================================================
# RepositoryRegistry
# ========================================================================
class RepositoryRegistry:
    """Build, mount and dispose named repositories.

    Args:
        config (dict): options that are merged into
            :data:`~davrepo.default_conf.DEFAULT_CONFIG`
    """

    def __init__(self, config=None):
        self.config = copy.deepcopy(DEFAULT_CONFIG)
        util.deep_update(self.config, config or {})
        config = self.config

        if config["logging"].get("enable"):
            util.init_logging(config)

        self.verbose = config.get("verbose", 3)
        self.backend_classes = {
            "fs": FilesystemBackend,
            "memory": MemoryBackend,
        }
        self.repository_map = {}

        repo_configs = config.get("repositories") or {}
        for name, repo_opts in repo_configs.items():
            self.add_repository(name, repo_opts)

        for name, repo_opts in repo_configs.items():
            if isinstance(repo_opts, Repository):
                continue
            for path, sub_name in (repo_opts.get("mounts") or {}).items():
                self.mount(name, path, sub_name)

        if self.verbose >= 3:
            for name in self.get_repository_names():
                _logger.info(f"  - {name!r}: {self.repository_map[name]}")

    def __repr__(self):
        return f"RepositoryRegistry({self.get_repository_names()})"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.dispose()

    @classmethod
    def from_config_file(cls, config_file, overrides=None):
        """Create a registry from a YAML or JSON file."""
        config = util.read_config_file(config_file)
        if overrides:
            util.deep_update(config, overrides)
        return cls(config)

    def register_backend_class(self, alias, backend_class):
        """Make `backend_class` available as `alias` in `backend` options."""
        if not (
            isinstance(backend_class, type)
            and issubclass(backend_class, RepositoryBackend)
        ):
            raise ValueError(f"Not a RepositoryBackend class: {backend_class!r}")
        self.backend_classes[alias] = backend_class

    def create_backend(self, backend_opts):
        """Return a new backend instance for a `backend` option value."""
        if isinstance(backend_opts, RepositoryBackend):
            return backend_opts

        if type(backend_opts) is str:
            backend_opts = {"class": backend_opts}
        elif type(backend_opts) is dict:
            backend_opts = dict(backend_opts)
        else:
            raise ValueError(f"Invalid backend option: {backend_opts!r}")

        if "root" in backend_opts:
            # Syntax:
            #   backend: {"root": <path>}
            util.check_tags(backend_opts, {"root"}, msg="Invalid backend option")
            backend_opts = {"class": "fs", "args": [backend_opts["root"]]}

        class_name = backend_opts.get("class")
        if class_name in self.backend_classes:
            backend_opts["class"] = self.backend_classes[class_name]

        if backend_opts["class"] is FilesystemBackend:
            args = list(backend_opts.get("args") or [])
            kwargs = dict(backend_opts.get("kwargs") or {})
            if args:
                args[0] = util.fix_path(args[0], self.config)
            elif "root_folder" in kwargs:
                kwargs["root_folder"] = util.fix_path(kwargs["root_folder"], self.config)
            kwargs.setdefault(
                "fs_opts", util.get_dict_value(self.config, "fs_backend", as_dict=True)
            )
            backend_opts["args"] = args
            backend_opts["kwargs"] = kwargs

        expand = {"${registry}": self}
        backend = util.dynamic_instantiate_class_from_opts(backend_opts, expand=expand)
        if not isinstance(backend, RepositoryBackend):
            raise ValueError(
                f"Invalid backend {backend} (not instance of RepositoryBackend)"
            )
        return backend

    def add_repository(self, name, repo_opts):
        """Create a repository from options (or add an instance) under `name`."""
        if name in self.repository_map:
            raise ValueError(f"Duplicate repository name: {name!r}")

        if isinstance(repo_opts, Repository):
            self.repository_map[name] = repo_opts
            return repo_opts

        util.check_tags(
            repo_opts,
            REPOSITORY_OPTIONS,
            required="backend",
            msg=f"Invalid options for repository {name!r}",
        )
        defaults = util.get_dict_value(self.config, "repository", as_dict=True)

        backend = self.create_backend(repo_opts["backend"])
        if repo_opts.get("readonly"):
            backend = ReadOnlyBackend(backend)

        live_property_uris = list(defaults.get("live_property_uris") or [])
        live_property_uris.extend(repo_opts.get("live_property_uris") or [])

        repository = Repository(
            repo_opts.get("root_uri"),
            backend,
            source_uri=repo_opts.get("source_uri"),
            auto_open=repo_opts.get("auto_open", defaults.get("auto_open", True)),
            live_property_uris=live_property_uris,
        )
        self.repository_map[name] = repository
        _logger.debug(f"Added repository {name!r}: {repository}")
        return repository

    def mount(self, name, path, sub_name):
        """Mount repository `sub_name` below repository `name` at `path`."""
        parent = self.get_repository(name)
        sub = self.get_repository(sub_name)
        if sub is parent:
            raise ValueError(f"Cannot mount repository {name!r} into itself")
        parent.register_path_repository(path, sub)

    def get_repository(self, name):
        try:
            return self.repository_map[name]
        except KeyError:
            raise ValueError(f"Unknown repository: {name!r}") from None

    def get_repository_names(self):
        return sorted(self.repository_map.keys())

    def get_root_repositories(self):
        """Return all repositories that are not mounted into another one."""
        return [r for r in self.repository_map.values() if r.parent_repository is None]

    def resolve_repository(self, uri):
        """Return the repository that owns `uri`, or None.

        The most specific root repository wins; mounts are resolved.
        """
        uri = util.normalize_uri(uri)
        best = None
        for repository in self.get_root_repositories():
            root_uri = repository.root_uri
            if root_uri and util.is_equal_or_child_uri(root_uri, uri):
                if best is None or len(root_uri) > len(best.root_uri):
                    best = repository
        if best is None:
            return None
        return best.get_owner_repository(uri)

    def dispose(self):
        """Dispose all repositories (mounted ones are disposed by their parent)."""
        for repository in self.get_root_repositories():
            repository.dispose()
