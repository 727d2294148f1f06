# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Serialization of resource descriptions.

Descriptions are stored as a small XML document, prefixed with
:data:`SIGNATURE`::

    <?davrepo-description?>
    <resource about="">
      <property uri="urn:davrepo:content#modified">
        <datetime>2024-01-02T03:04:05+00:00</datetime>
      </property>
      <property uri="http://example.com/ns#keyword"><string>a</string></property>
      <property uri="http://example.com/ns#keyword"><string>b</string></property>
    </resource>

The ``about`` attribute is relative to a base URI (usually the described
resource itself), so ``about=""`` means "this resource" and a description can
be moved together with its resource.

Backends that only support one flat string value per property name use
:func:`encode_properties_as_text` / :func:`decode_properties_from_text`:
a single plain string value is stored verbatim, everything else as a
signature-prefixed description.

Strings that cannot be represented as XML text (control characters, carriage
returns, lone surrogates) are stored base64 encoded::

    <string encoding="base64">YQE=</string>
"""
import base64
import re
from datetime import datetime
from urllib.parse import quote, unquote, urlsplit

from davrepo import util, xml_tools
from davrepo.repo_error import RepositoryArgumentError
from davrepo.resource import CONTENT_NAMESPACE_URI, Resource
from davrepo.xml_tools import etree, make_sub_element

__docformat__ = "reStructuredText"

_logger = util.get_module_logger(__name__)

#: Fixed prefix that identifies a serialized description
SIGNATURE = "<?davrepo-description?>"

#: Characters that do not survive as XML 1.0 text (CR is normalized by parsers)
_XML_UNSAFE_RE = re.compile("[^\t\n\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")

#: Deprecated namespace URIs, mapped to their canonical replacement
LEGACY_NAMESPACE_URIS = {
    "http://davrepo.org/content/": CONTENT_NAMESPACE_URI,
    "http://davrepo.org/2008/content#": CONTENT_NAMESPACE_URI,
}


# ========================================================================
# Description format
# ========================================================================


def _make_reference(base_uri, uri):
    """Return `uri` as reference relative to `base_uri` where possible."""
    if uri == base_uri:
        return ""
    level = util.get_current_level(base_uri or "")
    if level and uri.startswith(level) and uri != level:
        ref = uri[len(level) :]
        if urlsplit(ref).scheme:
            ref = "./" + ref
        return ref
    if level and uri == level:
        return "./"
    return uri


def _add_value_element(parent, value, base_uri):
    # bool is a subclass of int and must be checked first
    if isinstance(value, bool):
        make_sub_element(parent, "boolean", "true" if value else "false")
    elif isinstance(value, int):
        make_sub_element(parent, "integer", str(value))
    elif isinstance(value, float):
        make_sub_element(parent, "decimal", repr(value))
    elif isinstance(value, datetime):
        make_sub_element(parent, "datetime", value.isoformat())
    elif isinstance(value, bytes):
        make_sub_element(parent, "binary", base64.b64encode(value).decode("ascii"))
    elif isinstance(value, str):
        if _XML_UNSAFE_RE.search(value):
            data = value.encode("utf-8", "surrogatepass")
            text = base64.b64encode(data).decode("ascii")
            make_sub_element(parent, "string", text, encoding="base64")
        else:
            make_sub_element(parent, "string", value)
    elif isinstance(value, Resource):
        _add_resource_element(
            make_sub_element(parent, "resource"), value, base_uri, exclude=None
        )
    else:
        raise RepositoryArgumentError(f"Cannot serialize {type(value).__name__}")


def _add_resource_element(el, resource, base_uri, exclude):
    if resource.uri is not None:
        el.set("about", _make_reference(base_uri, resource.uri))
    for prop_uri, value in resource.iter_properties():
        if exclude and prop_uri in exclude:
            continue
        prop_el = make_sub_element(el, "property", uri=prop_uri)
        _add_value_element(prop_el, value, base_uri)
    return el


def serialize_description(resource, base_uri=None, *, exclude=None):
    """Return the signature-prefixed text of a resource description.

    Args:
        resource (Resource): the description
        base_uri (str): URI that references are made relative to
            (defaults to the resource URI)
        exclude (set): property URIs that are not written (e.g. live properties)
    """
    if base_uri is None:
        base_uri = resource.uri
    root = etree.Element("resource")
    _add_resource_element(root, resource, base_uri, exclude)
    return SIGNATURE + "\n" + xml_tools.xml_to_string(root, pretty_print=True)


def _parse_value_element(el, base_uri):
    tag = el.tag
    text = el.text or ""
    if tag == "string":
        encoding = el.get("encoding")
        if encoding == "base64":
            data = base64.b64decode(text.encode("ascii"), validate=True)
            return data.decode("utf-8", "surrogatepass")
        elif encoding is not None:
            raise ValueError(f"Unknown string encoding: {encoding!r}")
        return text
    elif tag == "integer":
        return int(text)
    elif tag == "decimal":
        return float(text)
    elif tag == "boolean":
        if text not in ("true", "false"):
            raise ValueError(f"Invalid boolean: {text!r}")
        return text == "true"
    elif tag == "datetime":
        return datetime.fromisoformat(text)
    elif tag == "binary":
        return base64.b64decode(text.encode("ascii"), validate=True)
    elif tag == "resource":
        return _parse_resource_element(el, base_uri)
    raise ValueError(f"Unknown value element: <{tag}>")


def _parse_resource_element(el, base_uri):
    about = el.get("about")
    uri = None if about is None else util.resolve_uri(base_uri or "", about)
    res = Resource(uri)
    for prop_el in el:
        if not isinstance(prop_el.tag, str):
            continue  # comments and processing instructions
        if prop_el.tag != "property" or not prop_el.get("uri"):
            raise ValueError(f"Expected <property uri=...>: <{prop_el.tag}>")
        value_els = [c for c in prop_el if isinstance(c.tag, str)]
        if len(value_els) != 1:
            raise ValueError(f"Expected exactly one value for {prop_el.get('uri')}")
        res.add_property_value(
            prop_el.get("uri"), _parse_value_element(value_els[0], base_uri)
        )
    return res


def parse_description(text, base_uri=None, *, legacy_namespace_uris=None):
    """Parse a signature-prefixed description and return a :class:`Resource`.

    Legacy namespaced properties are converted to their canonical form, using
    `legacy_namespace_uris` (default: :data:`LEGACY_NAMESPACE_URIS`).

    Raises:
        RepositoryArgumentError: if the text is not a valid description
    """
    if not text.startswith(SIGNATURE):
        raise RepositoryArgumentError("Missing description signature")
    try:
        root = xml_tools.string_to_xml(text)
        if root.tag != "resource":
            raise ValueError(f"Expected <resource> root element: <{root.tag}>")
        res = _parse_resource_element(root, base_uri)
    except RepositoryArgumentError:
        raise
    except Exception as e:
        raise RepositoryArgumentError(f"Invalid description: {e}") from e
    return update_legacy_namespaced_resource(res, legacy_namespace_uris)


# ========================================================================
# Flat text encoding of properties
# ========================================================================


def encode_properties_as_text(resource_uri, properties):
    """Encode values of one property into a single string.

    A single plain string that does not start with the signature is returned
    unchanged. Otherwise a description of `resource_uri` containing only the
    given values is serialized.

    Args:
        resource_uri (str): URI of the resource owning the values
        properties (iterable): (property_uri, value) pairs, all with the same
            property URI
    """
    properties = list(properties)
    if not properties:
        raise RepositoryArgumentError("No properties to encode")
    prop_uri = properties[0][0]
    if any(p[0] != prop_uri for p in properties):
        raise RepositoryArgumentError(
            "All encoded properties must have the same property URI"
        )
    if len(properties) == 1:
        value = properties[0][1]
        if isinstance(value, str) and not value.startswith(SIGNATURE):
            return value
    return serialize_description(Resource(resource_uri, properties), resource_uri)


def decode_properties_from_text(
    resource, property_uri, text, *, legacy_namespace_uris=None
):
    """Add the values encoded in `text` to `resource` and return the resource.

    Signature-prefixed text replaces all existing values of `property_uri`;
    plain text is added as one more string value. Pass the same
    `legacy_namespace_uris` that was used to convert `property_uri`.

    Raises:
        RepositoryArgumentError: if signature-prefixed text cannot be parsed
    """
    if text.startswith(SIGNATURE):
        desc = parse_description(
            text, resource.uri, legacy_namespace_uris=legacy_namespace_uris
        )
        values = desc.get_property_values(property_uri)
        resource.remove_property_values(property_uri)
        for value in values:
            resource.add_property_value(property_uri, value)
        if not values:
            _logger.warning(
                f"No values for {property_uri!r} found in encoded text of {resource.uri}"
            )
    else:
        resource.add_property_value(property_uri, text)
    return resource


# ========================================================================
# Legacy namespaces
# ========================================================================


def convert_legacy_namespaced_uri(property_uri, legacy_namespace_uris=None):
    """Return the canonical form of a property URI (unchanged if not legacy)."""
    if legacy_namespace_uris is None:
        legacy_namespace_uris = LEGACY_NAMESPACE_URIS
    for legacy_ns, canonical_ns in legacy_namespace_uris.items():
        if property_uri.startswith(legacy_ns):
            return canonical_ns + property_uri[len(legacy_ns) :]
    return property_uri


def update_legacy_namespaced_properties(property_map, legacy_namespace_uris=None):
    """Return a copy of `property_map` with legacy keys converted.

    If the canonical key already exists, it wins and the legacy entry is
    dropped. The passed map is not modified.
    """
    renames = []
    for prop_uri in list(property_map.keys()):
        canonical = convert_legacy_namespaced_uri(prop_uri, legacy_namespace_uris)
        if canonical != prop_uri:
            renames.append((prop_uri, canonical))

    res = dict(property_map)
    for legacy, canonical in renames:
        value = res.pop(legacy)
        if canonical not in property_map:
            res.setdefault(canonical, value)
    return res


def update_legacy_namespaced_resource(resource, legacy_namespace_uris=None):
    """Return `resource` (or a converted copy, if it has legacy properties)."""
    prop_map = {u: resource.get_property_values(u) for u in resource.get_property_uris()}
    updated = update_legacy_namespaced_properties(prop_map, legacy_namespace_uris)
    if updated.keys() == prop_map.keys():
        return resource
    res = Resource(resource.uri)
    for prop_uri, values in updated.items():
        res.set_property_values(prop_uri, values)
    return res


# ========================================================================
# Property URIs as names
# ========================================================================


def encode_property_uri_name(property_uri):
    """Encode a property URI as a name that only contains [A-Za-z0-9._-].

    The URI is percent-escaped and the escape character is replaced by '_'
    (which itself is escaped before).
    """
    name = quote(property_uri, safe="")
    name = name.replace("_", "%5F").replace("~", "%7E")
    return name.replace("%", "_")


def decode_property_uri_name(name):
    return unquote(name.replace("_", "%"))
