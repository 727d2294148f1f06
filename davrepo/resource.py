# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Resource descriptions and property alterations.

A :class:`Resource` is identified by its URI and holds a multimap of
property URIs to an ordered list of typed values::

    { "urn:davrepo:content#length": [1025],
      "http://example.com/ns#keyword": ["a", "b"],
      }

Supported value types are ``str``, ``int``, ``float``, ``bool``,
``datetime``, ``bytes`` and nested :class:`Resource` instances (a nested
resource without properties is a plain reference).
"""
import fnmatch
from datetime import datetime

from davrepo import util
from davrepo.repo_error import RepositoryArgumentError

__docformat__ = "reStructuredText"

#: Namespace of the standard content properties
CONTENT_NAMESPACE_URI = "urn:davrepo:content#"

ACCESSED_PROPERTY_URI = CONTENT_NAMESPACE_URI + "accessed"
CREATED_PROPERTY_URI = CONTENT_NAMESPACE_URI + "created"
LENGTH_PROPERTY_URI = CONTENT_NAMESPACE_URI + "length"
MODIFIED_PROPERTY_URI = CONTENT_NAMESPACE_URI + "modified"
TYPE_PROPERTY_URI = CONTENT_NAMESPACE_URI + "type"

#: Properties that are computed by the backend and never stored
DEFAULT_LIVE_PROPERTY_URIS = frozenset((ACCESSED_PROPERTY_URI, LENGTH_PROPERTY_URI))

VALUE_TYPES = (str, int, float, bool, datetime, bytes)


def check_property_uri(property_uri):
    if (
        not isinstance(property_uri, str)
        or not property_uri
        or any(c.isspace() or not c.isprintable() for c in property_uri)
    ):
        raise RepositoryArgumentError(f"Invalid property URI: {property_uri!r}")
    return property_uri


def check_property_value(value):
    if not isinstance(value, VALUE_TYPES + (Resource,)):
        raise RepositoryArgumentError(
            f"Unsupported property value type: {type(value).__name__}"
        )
    return value


# ========================================================================
# Resource
# ========================================================================
class Resource:
    """Description of a resource: URI plus property values."""

    def __init__(self, uri=None, properties=None):
        self.uri = uri
        self._props = {}
        if properties:
            for prop_uri, value in properties:
                self.add_property_value(prop_uri, value)

    def __repr__(self):
        return f"Resource({self.uri!r}, {len(self._props)} properties)"

    def __eq__(self, other):
        if not isinstance(other, Resource):
            return NotImplemented
        return self.uri == other.uri and self._props == other._props

    __hash__ = None

    def is_collection(self):
        return bool(self.uri) and util.is_collection_uri(self.uri)

    def get_name(self):
        return util.get_uri_name(self.uri) if self.uri else None

    def copy(self, uri=None):
        """Return a shallow copy, optionally with a new URI."""
        res = Resource(self.uri if uri is None else uri)
        res._props = {k: list(v) for k, v in self._props.items()}
        return res

    def get_property_uris(self):
        return list(self._props.keys())

    def has_property(self, property_uri):
        return property_uri in self._props

    def get_property_value(self, property_uri, default=None):
        """Return the first value of a property."""
        values = self._props.get(property_uri)
        return values[0] if values else default

    def get_property_values(self, property_uri):
        return list(self._props.get(property_uri, ()))

    def iter_properties(self):
        """Yield (property_uri, value) pairs."""
        for prop_uri, values in self._props.items():
            for value in values:
                yield prop_uri, value

    def get_property_count(self):
        return sum(len(v) for v in self._props.values())

    def add_property_value(self, property_uri, value):
        check_property_uri(property_uri)
        check_property_value(value)
        self._props.setdefault(property_uri, []).append(value)

    def set_property_value(self, property_uri, value):
        """Replace all values of a property with a single value."""
        self.set_property_values(property_uri, [value])

    def set_property_values(self, property_uri, values):
        check_property_uri(property_uri)
        values = [check_property_value(v) for v in values]
        if values:
            self._props[property_uri] = values
        else:
            self._props.pop(property_uri, None)

    def remove_property_values(self, property_uri):
        """Remove all values of a property and return the number removed."""
        return len(self._props.pop(property_uri, ()))

    def remove_property_value(self, property_uri, value):
        """Remove all instances of a value; return True if something was removed."""
        values = self._props.get(property_uri)
        if not values or value not in values:
            return False
        values = [v for v in values if v != value]
        if values:
            self._props[property_uri] = values
        else:
            del self._props[property_uri]
        return True

    def alter(self, alteration):
        """Apply a :class:`ResourceAlteration` in place and return self.

        Removals are applied before additions.
        """
        for prop_uri in alteration.property_uri_removals:
            self.remove_property_values(prop_uri)
        for prop_uri, value in alteration.property_removals:
            self.remove_property_value(prop_uri, value)
        for prop_uri, value in alteration.property_additions:
            self.add_property_value(prop_uri, value)
        return self


# ========================================================================
# ResourceAlteration
# ========================================================================
class ResourceAlteration:
    """Request to alter the properties of a resource.

    Attributes:
        property_uri_removals (frozenset): remove every value of these properties
        property_removals (tuple): (property_uri, value) pairs to remove
        property_additions (tuple): (property_uri, value) pairs to add

    Use the factory methods to create the common kinds (add, set, remove-values,
    remove-by-URI).
    """

    def __init__(
        self, *, property_uri_removals=(), property_removals=(), property_additions=()
    ):
        self.property_uri_removals = frozenset(
            check_property_uri(u) for u in property_uri_removals
        )
        self.property_removals = tuple(
            self._check_pair(p) for p in property_removals
        )
        self.property_additions = tuple(
            self._check_pair(p) for p in property_additions
        )

    def __repr__(self):
        return (
            "ResourceAlteration(remove_uris={}, remove={}, add={})".format(
                sorted(self.property_uri_removals),
                len(self.property_removals),
                len(self.property_additions),
            )
        )

    @staticmethod
    def _check_pair(pair):
        try:
            prop_uri, value = pair
        except (TypeError, ValueError):
            raise RepositoryArgumentError(
                f"Expected (property_uri, value) pair: {pair!r}"
            ) from None
        return check_property_uri(prop_uri), check_property_value(value)

    @staticmethod
    def _pairs(properties):
        if isinstance(properties, Resource):
            return list(properties.iter_properties())
        return list(properties)

    @classmethod
    def create_add(cls, properties):
        """Add values, keeping existing ones."""
        return cls(property_additions=cls._pairs(properties))

    @classmethod
    def create_set(cls, properties):
        """Replace all values of the named properties; leave others alone."""
        pairs = cls._pairs(properties)
        return cls(
            property_uri_removals={p[0] for p in pairs}, property_additions=pairs
        )

    @classmethod
    def create_remove_values(cls, properties):
        return cls(property_removals=cls._pairs(properties))

    @classmethod
    def create_remove_uris(cls, property_uris):
        return cls(property_uri_removals=property_uris)

    def is_empty(self):
        return not (
            self.property_uri_removals
            or self.property_removals
            or self.property_additions
        )

    def without_properties(self, predicate):
        """Return a copy that ignores all properties matching `predicate(uri)`."""
        return ResourceAlteration(
            property_uri_removals=[
                u for u in self.property_uri_removals if not predicate(u)
            ],
            property_removals=[
                p for p in self.property_removals if not predicate(p[0])
            ],
            property_additions=[
                p for p in self.property_additions if not predicate(p[0])
            ],
        )


# ========================================================================
# ResourceFilter
# ========================================================================
class ResourceFilter:
    """Filter resources when listing children.

    Args:
        collection_pass (bool): let collections pass
        non_collection_pass (bool): let non-collections pass
        name_pattern (str): optional fnmatch pattern for the resource name
    """

    def __init__(self, collection_pass=True, non_collection_pass=True, name_pattern=None):
        self.collection_pass = collection_pass
        self.non_collection_pass = non_collection_pass
        self.name_pattern = name_pattern

    def __repr__(self):
        return "ResourceFilter(collections={}, non_collections={}, name={!r})".format(
            self.collection_pass, self.non_collection_pass, self.name_pattern
        )

    def is_pass_uri(self, uri):
        if util.is_collection_uri(uri):
            if not self.collection_pass:
                return False
        elif not self.non_collection_pass:
            return False
        if self.name_pattern and not fnmatch.fnmatchcase(
            util.get_uri_name(uri), self.name_pattern
        ):
            return False
        return True

    def is_pass(self, resource):
        """Filter on the full description (passes everything by default)."""
        return True


def filter_resources(resources, resource_filter):
    if resource_filter is None:
        return list(resources)
    return [
        r
        for r in resources
        if resource_filter.is_pass_uri(r.uri) and resource_filter.is_pass(r)
    ]
