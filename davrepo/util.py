# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Miscellaneous support functions for davrepo.
"""

import collections.abc
import logging
import os
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit
from urllib.request import url2pathname

import yaml

try:
    # Try pyjson5 first because it's faster than json5
    from pyjson5 import load as json_load
except ImportError:
    from json5 import load as json_load

__docformat__ = "reStructuredText"

#: The base logger (silent by default)
BASE_LOGGER_NAME = "davrepo"
_logger = logging.getLogger(BASE_LOGGER_NAME)

#: Block size used when streams are copied
DEFAULT_BLOCK_SIZE = 8192


class NO_DEFAULT:
    """"""


# ========================================================================
# String tools
# ========================================================================


def is_basestring(s):
    """Return True for any string type (bytes or str)."""
    return isinstance(s, (str, bytes))


def to_set(val, *, or_none=False, raise_error=False) -> set:
    res = set()
    if type(val) is set:
        res = val
    elif type(val) is str:
        res = set(map(str.strip, val.split(",")))
    elif isinstance(val, (dict, list, tuple, frozenset)):
        res = set(map(str, val))
    elif val is None and or_none:
        res = None
    elif raise_error:
        raise TypeError(f"{val}, {type(val)}")
    return res


def get_dict_value(d, key_path, default=NO_DEFAULT, *, as_dict=False):
    """Return the value of a nested dict using dot-notation path.

    Args:
        d (dict):
        key_path (str):
        default  (any):
        as_dict (bool):
            Assume default is `{}` and also return `{}` if the key exists with
            a value of `None`. This covers the case where suboptions are
            supposed to be dicts, but are defined in a YAML file as entry
            without a value.

    Raises:
        KeyError:
        ValueError:
    """
    if as_dict:
        try:
            res = get_dict_value(d, key_path, default={})
            return res if res is not None else {}
        except (AttributeError, KeyError, ValueError, IndexError):
            return {}

    if default is not NO_DEFAULT:
        try:
            return get_dict_value(d, key_path)
        except (AttributeError, KeyError, ValueError, IndexError):
            return default

    seg_list = key_path.split(".")
    value = d[seg_list.pop(0)]
    while seg_list:
        seg = seg_list.pop(0)
        if not isinstance(value, dict):
            raise ValueError(f"Segment {seg!r} cannot be nested")
        value = value[seg]
    return value


def check_tags(tags, known, *, msg=None, raise_error=True, required=False):
    """Check if `tags` only contains known tags.

    If check fails and raise_error is true, a ValueError is raised.
    If check passes, None is returned.
    """
    assert known, "must not be empty"
    known = to_set(known)
    optional = known

    if required is True:
        required = known
        optional = set()
    elif required:
        required = to_set(required)
        known = known.union(required)
        optional = known.difference(required)

    tags = to_set(tags)

    res = []
    unknown = tags.difference(known)
    if unknown:
        res.append("Unknown: {!r}".format("', '".join(sorted(unknown))))

    if required:
        missing = required.difference(tags)
        if missing:
            res.append("Missing: {!r}".format("', '".join(sorted(missing))))

    if res:
        if msg:
            res.insert(0, msg)
        if optional:
            res.append("Optional: ({!r})".format("', '".join(sorted(optional))))
        res = "\n".join(res)
        if raise_error:
            raise ValueError(res)
        return res

    return None


# ========================================================================
# Time
# ========================================================================


def utc_now() -> datetime:
    """Return the current time as timezone aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_from_timestamp(secs) -> datetime:
    return datetime.fromtimestamp(secs, tz=timezone.utc)


# ========================================================================
# Logging
# ========================================================================


def init_logging(config):
    """Initialize base logger named 'davrepo'.

    The base logger is filtered by the `verbose` configuration option.
    Log entries will have a time stamp and the level name.

    **Note:** init_logging() is automatically called by the repository
    registry if the configuration contains ``"logging": { "enable": true }``.

    Module loggers
    ~~~~~~~~~~~~~~
    Module loggers (e.g 'davrepo.fs_backend') are named loggers, that can be
    independently switched to DEBUG mode.

    Except for verbosity, they will inherit settings from the base logger.

    They will suppress DEBUG level messages, unless they are enabled by passing
    their name to util.init_logging().

    Example initialize and use a module logger::

        _logger = util.get_module_logger(__name__)
        [..]
        _logger.debug(f"foo: {s!r}")

    This logger would be enabled by passing its name to init_logging()::

        config["logging"]["enable_loggers"] = ["repository", "fs_backend"]
        util.init_logging(config)


    Log Level Matrix
    ~~~~~~~~~~~~~~~~

    +---------+-------------+------------------------+------------------------+
    | Verbose | base logger | module logger(default) | module logger(enabled) |
    +=========+=============+========================+========================+
    |    0    | CRITICAL    | CRITICAL               | CRITICAL               |
    +---------+-------------+------------------------+------------------------+
    |    1    | ERROR       | ERROR                  | ERROR                  |
    +---------+-------------+------------------------+------------------------+
    |    2    | WARN        | WARN                   | WARN                   |
    +---------+-------------+------------------------+------------------------+
    |    3    | INFO        | INFO                   | **DEBUG**              |
    +---------+-------------+------------------------+------------------------+
    |    4    | DEBUG       | DEBUG                  | DEBUG                  |
    +---------+-------------+------------------------+------------------------+
    """
    from davrepo.default_conf import (
        DEFAULT_LOGGER_DATE_FORMAT,
        DEFAULT_LOGGER_FORMAT,
        DEFAULT_VERBOSE,
    )

    verbose = config.get("verbose", DEFAULT_VERBOSE)
    log_opts = config.get("logging") or {}

    enable_loggers = log_opts.get("enable_loggers") or []

    logger_date_format = log_opts.get("logger_date_format", DEFAULT_LOGGER_DATE_FORMAT)
    logger_format = log_opts.get("logger_format", DEFAULT_LOGGER_FORMAT)

    formatter = logging.Formatter(logger_format, logger_date_format)

    # Define handlers
    consoleHandler = logging.StreamHandler(sys.stdout)
    consoleHandler.setFormatter(formatter)

    # Add the handlers to the base logger
    logger = logging.getLogger(BASE_LOGGER_NAME)

    if verbose >= 4:
        logger.setLevel(logging.DEBUG)
    elif verbose == 3:
        logger.setLevel(logging.INFO)
    elif verbose == 2:
        logger.setLevel(logging.WARN)
    elif verbose == 1:
        logger.setLevel(logging.ERROR)
    else:
        logger.setLevel(logging.CRITICAL)

    # Don't call the root's handlers after our custom handlers
    logger.propagate = False

    # Remove previous handlers
    for hdlr in logger.handlers[:]:  # Must iterate an array copy
        try:
            hdlr.flush()
            hdlr.close()
        except Exception:
            pass
        logger.removeHandler(hdlr)

    logger.addHandler(consoleHandler)

    if verbose >= 3:
        for e in enable_loggers:
            if not e.startswith(BASE_LOGGER_NAME + "."):
                e = BASE_LOGGER_NAME + "." + e
            lg = logging.getLogger(e.strip())
            lg.setLevel(logging.DEBUG)
    return


def get_module_logger(moduleName):
    """Create a module logger, that can be en/disabled by configuration.

    @see: unit.init_logging
    """
    if not moduleName.startswith(BASE_LOGGER_NAME + "."):
        moduleName = BASE_LOGGER_NAME + "." + moduleName
    return logging.getLogger(moduleName)


# ========================================================================
# Configuration
# ========================================================================


def deep_update(d, u):
    for k, v in u.items():
        if isinstance(v, collections.abc.Mapping):
            prev_val = d.get(k)
            if prev_val is None or type(prev_val) in (bool, float, int, str):
                # Prev. values is a scalar: replace it with a copy of the new dict
                d[k] = dict(v)
            else:
                # Merge new values into prev. dict
                d[k] = deep_update(d.get(k, {}), v)
        else:
            d[k] = v
    return d


def read_config_file(config_file):
    """Read configuration file options (YAML or JSON) into a dictionary."""
    config_file = os.path.abspath(config_file)

    if not os.path.exists(config_file):
        raise RuntimeError(f"Couldn't open configuration file {config_file!r}.")

    if config_file.endswith(".json"):
        with open(config_file, encoding="utf-8-sig") as fp:
            conf = json_load(fp)

    elif config_file.endswith((".yaml", ".yml")):
        with open(config_file, encoding="utf-8-sig") as fp:
            conf = yaml.safe_load(fp)

    else:
        raise RuntimeError(
            f"Unsupported config file format (expected yaml or json): {config_file}"
        )

    conf = conf or {}
    conf["_config_file"] = config_file
    conf["_config_root"] = os.path.dirname(config_file)
    return conf


def fix_path(path, root, *, expand_vars=True, must_exist=True, allow_none=True):
    """Convert path to absolute, expand and check.

    Relative paths are evaluated relative to `root`, which may also be a
    configuration dict (the folder of its config file is used then).
    """
    if path in (None, ""):
        if allow_none:
            return None
        raise ValueError(f"Invalid path {path!r}")

    if expand_vars:
        path = os.path.expandvars(os.path.expanduser(path))

    if not os.path.isabs(path):
        if type(root) is dict:
            root = root.get("_config_root")
        if not root:
            root = os.getcwd()
        path = os.path.abspath(os.path.join(root, path))

    if must_exist and not os.path.exists(path):
        raise ValueError(f"Invalid path: {path!r}")

    return path


# ========================================================================
# Module Import
# ========================================================================


def dynamic_import_class(name):
    """Import a class from a module string, e.g. ``my.module.ClassName``."""
    import importlib

    if "." not in name:
        raise ValueError(f"Expected `path.to.ClassName` string: {name!r}")
    module_name, class_name = name.rsplit(".", 1)
    try:
        module = importlib.import_module(module_name)
    except Exception as e:
        _logger.error(f"Dynamic import of {name!r} failed: {e}")
        raise
    the_class = getattr(module, class_name)
    return the_class


def dynamic_instantiate_class(class_name, options, *, expand=None, raise_error=True):
    """Import a class and instantiate with custom args.

    Examples:
        # Equivalent of
        from davrepo.fs_backend import FilesystemBackend
        return FilesystemBackend("/tmp/repo")
        # would be
        dynamic_instantiate_class(
            "davrepo.fs_backend.FilesystemBackend", {"args": ["/tmp/repo"]}
        )
    """

    def _expand(v):
        """Replace some string templates with defined values."""
        if expand and is_basestring(v) and v.lower() in expand:
            return expand[v.lower()]
        return v

    check_tags(
        options,
        {"args", "kwargs"},
        msg=f"Invalid class instantiation options for {class_name}",
    )
    pos_args = options.get("args") or []
    if not isinstance(pos_args, (tuple, list)):
        raise ValueError(f"Expected list format for `args` option: {options}")

    kwargs = options.get("kwargs") or {}
    if not isinstance(kwargs, dict):
        raise ValueError(f"Expected dict format for `kwargs` option: {options}")

    inst = None
    try:
        the_class = (
            dynamic_import_class(class_name)
            if is_basestring(class_name)
            else class_name
        )
        pos_args = tuple(map(_expand, pos_args))
        kwargs = {k: _expand(v) for k, v in kwargs.items()}

        inst = the_class(*pos_args, **kwargs)

        disp_args = [f"{o}" for o in pos_args] + [
            f"{k}={v!r}" for k, v in kwargs.items()
        ]
        _logger.debug(
            "Instantiate {}({}) => {}".format(class_name, ", ".join(disp_args), inst)
        )
    except Exception:
        msg = f"Instantiate {class_name}({options}) failed"
        if raise_error:
            _logger.error(msg)
            raise
        _logger.exception(msg)

    return inst


def dynamic_instantiate_class_from_opts(options, *, expand=None):
    """Import a class and instantiate with custom args.

    Construct from class path, without constructor args:
    ```py
    dynamic_instantiate_class_from_opts("davrepo.memory_backend.MemoryBackend")
    ```
    Construct with constructor args:
    ```py
    opts = {
        "class": "davrepo.fs_backend.FilesystemBackend",
        "kwargs": {
            "root_folder": "~/repo",
        }
    }
    dynamic_instantiate_class_from_opts(opts, expand=...)
    ```
    """
    if type(options) is str:
        options = {"class": options}
    else:
        options = dict(options)

    check_tags(
        options,
        {"class", "args", "kwargs"},
        required="class",
        msg="Invalid class instantiation options",
    )
    class_name = options.pop("class")
    return dynamic_instantiate_class(class_name, options, expand=expand)


# ========================================================================
# URIs
# ========================================================================

_PERCENT_ESCAPE_RE = re.compile(r"%[0-9a-fA-F]{2}")


def canonicalize_uri(uri: str) -> str:
    """Return URI with all percent-escapes in upper case (``%c3`` -> ``%C3``)."""
    return _PERCENT_ESCAPE_RE.sub(lambda m: m.group(0).upper(), uri)


def remove_dot_segments(path: str) -> str:
    """Remove '.' and '..' segments from a URI path (RFC 3986, 5.2.4).

    Example: remove_dot_segments("/a/b/../c/./d") -> "/a/c/d"
    """
    if not path:
        return path
    segments = path.split("/")
    res = []
    for seg in segments:
        if seg == ".":
            continue
        elif seg == "..":
            # Never pop the empty segment of an absolute path
            if len(res) > 1 or (res and res[0] != ""):
                res.pop()
        else:
            res.append(seg)
    if segments[-1] in (".", ".."):
        res.append("")
    return "/".join(res)


def normalize_uri(uri: str) -> str:
    """Return a normalized and canonical form of a URI.

    Dot segments are removed, the scheme is lower-cased and percent-escapes are
    upper-cased. The operation is idempotent.
    """
    parts = urlsplit(uri)
    path = remove_dot_segments(parts.path)
    uri = urlunsplit(
        (parts.scheme.lower(), parts.netloc, path, parts.query, parts.fragment)
    )
    return canonicalize_uri(uri)


def is_collection_uri(uri: str) -> bool:
    """Return True, if the URI denotes a collection, i.e. its path ends with '/'."""
    return urlsplit(uri).path.endswith("/")


def get_uri_name(uri: str) -> str:
    """Return local name, i.e. last segment of URI."""
    return uri.rstrip("/").rsplit("/", 1)[-1]


def get_current_level(uri: str) -> str:
    """Return the collection URI of the level the resource lives in.

    Collections are their own current level:
    get_current_level("a/b/c") -> "a/b/", get_current_level("a/b/") -> "a/b/"
    """
    return uri[: uri.rfind("/") + 1]


def get_parent_level(uri: str) -> str:
    """Return the collection URI one level up from the current level.

    Example: get_parent_level("a/b/") -> "a/", get_parent_level("a/b/c") -> "a/"
    """
    level = get_current_level(uri)[:-1]
    return level[: level.rfind("/") + 1]


def is_child_uri(parent_uri: str, child_uri: str) -> bool:
    """Return True, if child_uri is a (direct or indirect) child of parent_uri.

    Note that '/a/b/cd' is NOT a child of '/a/b/c'.
    """
    if not parent_uri or not child_uri or parent_uri == child_uri:
        return False
    if not parent_uri.endswith("/"):
        parent_uri += "/"
    return child_uri.startswith(parent_uri) and child_uri != parent_uri


def is_equal_or_child_uri(parent_uri: str, child_uri: str) -> bool:
    """Return True, if child_uri is a child of parent_uri or the same resource."""
    return bool(parent_uri) and (
        parent_uri == child_uri or is_child_uri(parent_uri, child_uri)
    )


def relativize_uri(base_uri: str, uri: str) -> str:
    """Return the path of `uri` relative to the collection `base_uri`.

    Example: relativize_uri("http://x/r/", "http://x/r/a/b") -> "a/b"
    """
    if uri == base_uri:
        return ""
    if not base_uri.endswith("/") or not uri.startswith(base_uri):
        raise ValueError(f"{uri!r} is not located inside {base_uri!r}")
    return uri[len(base_uri) :]


def resolve_uri(base_uri: str, ref: str) -> str:
    """Resolve a relative reference against a base URI.

    An empty reference resolves to the base itself, absolute references are
    only normalized.
    """
    if not ref:
        return base_uri
    if urlsplit(ref).scheme:
        return normalize_uri(ref)
    return normalize_uri(get_current_level(base_uri) + ref)


def change_uri_base(uri: str, old_base_uri: str, new_base_uri: str) -> str:
    """Move `uri` from the namespace of `old_base_uri` to `new_base_uri`."""
    return new_base_uri + relativize_uri(old_base_uri, uri)


def path_to_file_uri(path: str, *, is_collection=True) -> str:
    """Return a canonical 'file:' URI for a local path."""
    uri = canonicalize_uri(Path(os.path.abspath(path)).as_uri())
    if is_collection and not uri.endswith("/"):
        uri += "/"
    return uri


def file_uri_to_path(uri: str) -> str:
    """Return the local path for a 'file:' URI (without trailing separator)."""
    parts = urlsplit(uri)
    if parts.scheme != "file":
        raise ValueError(f"Not a file URI: {uri!r}")
    path = url2pathname(parts.path)
    if len(path) > 1:
        path = path.rstrip("/\\")
    return path


# ========================================================================
# Streams
# ========================================================================


def copy_stream(
    src, dest, *, total: Optional[int] = None, progress=None, block_size=None
) -> int:
    """Copy all bytes from file-like `src` to `dest`.

    `progress` is an optional callable ``progress(transferred, total)``, called
    after every block. It is advisory only and cannot abort the transfer.
    Return the number of bytes copied.
    """
    block_size = block_size or DEFAULT_BLOCK_SIZE
    transferred = 0
    while True:
        buf = src.read(block_size)
        if not buf:
            break
        dest.write(buf)
        transferred += len(buf)
        if progress:
            progress(transferred, total)
    return transferred
