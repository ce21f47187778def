########################################################################
# File name: __init__.py
# This file is part of: xmppclient
#
# LICENSE
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful, but
# WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this program.  If not, see
# <http://www.gnu.org/licenses/>.
#
########################################################################
"""
:mod:`~xmppclient.xso` --- Working with XML stream contents
###########################################################

This subpackage deals with **X**\\ ML **S**\\ tream **O**\\ bjects. An XSO
class declares how an XML subtree maps onto Python attributes; the same
declaration drives both decoding (from SAX-ish events) and serialisation
(to a SAX content handler).

A message might be declared like this:

.. code:: python

    class Message(xso.XSO):
        TAG = (namespaces.client, "message")

        from_ = xso.Attr("from", default=None)
        type_ = xso.Attr("type", default=None)
        body = xso.ChildText((namespaces.client, "body"), default=None)

The :mod:`xmppclient.xso.model` module holds the descriptors and the parser
machinery, :mod:`xmppclient.xso.types` holds the character data types.

Descriptors
===========

.. autoclass:: Attr

.. autoclass:: Text

.. autoclass:: Child

.. autoclass:: ChildList

.. autoclass:: ChildMap

.. autoclass:: ChildText

.. autoclass:: ChildTag

.. autoclass:: ChildFlag

.. autoclass:: Collector

Parsing
=======

.. autoclass:: XSO

.. autoclass:: XSOParser

.. autoclass:: SAXDriver

.. autoclass:: UnknownTopLevelTag

Helpers
=======

.. autofunction:: tag_to_str

.. autofunction:: normalize_tag
"""


def tag_to_str(tag):
    """
    `tag` must be a tuple ``(namespace_uri, localname)``. Return a tag string
    conforming to the ElementTree specification. Example::

         tag_to_str(("jabber:client", "iq")) == "{jabber:client}iq"
    """
    return "{{{:s}}}{:s}".format(*tag) if tag[0] else tag[1]


def normalize_tag(tag):
    """
    Normalize an XML element tree `tag` into the tuple format. The following
    input formats are accepted:

    * ElementTree namespaced string, e.g. ``{uri:bar}foo``
    * Unnamespaced tags, e.g. ``foo``
    * Two-tuples consisting of `namespace_uri` and `localpart`; `namespace_uri`
      may be :data:`None` if the tag is supposed to be namespaceless.

    Return a two-tuple consisting the ``(namespace_uri, localpart)`` format.
    """
    if isinstance(tag, str):
        namespace_uri, sep, localname = tag.partition("}")
        if sep:
            if not namespace_uri.startswith("{"):
                raise ValueError("not a valid etree-format tag")
            namespace_uri = namespace_uri[1:]
        else:
            localname = namespace_uri
            namespace_uri = None
        return (namespace_uri, localname)
    elif len(tag) != 2:
        raise ValueError("not a valid tuple-format tag")
    if any(part is not None and not isinstance(part, str) for part in tag):
        raise TypeError("tuple-format tags must only contain str and None")
    if tag[1] is None:
        raise ValueError("tuple-format localname must not be None")
    return tuple(tag)


from .types import (  # NOQA: F401,E402
    AbstractCDataType,
    String,
    Integer,
    Base64Binary,
)

from .model import (  # NOQA: F401,E402
    UnknownChildPolicy,
    UnknownAttrPolicy,
    UnknownTopLevelTag,
    Attr,
    Text,
    Child,
    ChildList,
    ChildMap,
    ChildText,
    ChildTag,
    ChildFlag,
    Collector,
    XSO,
    XSOParser,
    SAXDriver,
)

from .model import _PropBase  # NOQA: E402
NO_DEFAULT = _PropBase.NO_DEFAULT
del _PropBase
