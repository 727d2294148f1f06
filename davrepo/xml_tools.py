# (c) 2009-2024 Martin Wendt and contributors; see WsgiDAV https://github.com/mar10/wsgidav
# Original PyFileServer (c) 2005 Ho Chun Wei.
# Licensed under the MIT license:
# http://www.opensource.org/licenses/mit-license.php
"""
Small wrapper for different etree packages.
"""
import logging

__docformat__ = "reStructuredText"

_logger = logging.getLogger("davrepo")

# Import XML support
use_lxml = False
try:
    # lxml with safe defaults
    from defusedxml.lxml import _etree as etree

    use_lxml = True
except ImportError:
    # Try xml module with safe defaults
    from defusedxml import ElementTree as etree

    # defusedxml doesn't define these non-parsing related objects
    from xml.etree.ElementTree import Element, SubElement, tostring

    etree.Element = Element
    etree.SubElement = SubElement
    etree.tostring = tostring


# ========================================================================
# XML
# ========================================================================


def string_to_xml(text):
    """Convert XML string into etree.Element."""
    try:
        return etree.XML(text)
    except Exception:
        _logger.error(f"Error parsing XML string: {text!r}")
        raise


def xml_to_string(element, pretty_print=False):
    """Wrapper for etree.tostring, that takes care of the unsupported
    pretty_print option and always returns a str without XML declaration."""
    if use_lxml:
        return etree.tostring(element, encoding="unicode", pretty_print=pretty_print)
    return etree.tostring(element, encoding="unicode")


def make_sub_element(parent, tag, text=None, **attrs):
    """Wrapper for etree.SubElement that also sets text content."""
    el = etree.SubElement(parent, tag)
    for k, v in attrs.items():
        el.set(k, v)
    if text is not None:
        el.text = text
    return el
