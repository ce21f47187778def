########################################################################
# File name: utils.py
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
:mod:`~xmppclient.utils` --- Internal utils
===========================================

Miscellaneous utilities used throughout the xmppclient codebase.

.. data:: namespaces

   Collects all the namespaces the client knows about. Each namespace is
   given a shortname and its value is the namespace string.

.. autoclass:: Namespaces

.. autofunction:: to_ascii

.. autofunction:: to_nmtoken

"""

import base64

import lxml.etree as etree

__all__ = [
    "etree",
    "namespaces",
]


class Namespaces:
    """
    Manage short-hands for XML namespaces.

    Instances of this class may be used to assign mnemonic short-hands
    to XML namespaces, for example:

    .. code-block:: python

        namespaces = Namespaces()
        namespaces.foo = "urn:example:foo"

    Each namespace can only be bound to one short-hand, short-hands cannot
    be rebound to a different namespace and deleting short-hands is
    prohibited. Violations raise :class:`ValueError` (or
    :class:`AttributeError` for deletion).

    The defined short-hands MUST NOT start with an underscore.
    """

    def __init__(self):
        self._all_namespaces = {}

    def __setattr__(self, attr, value):
        if not attr.startswith("_"):
            existing_attr = self._all_namespaces.get(value)
            if existing_attr is not None and existing_attr != attr:
                raise ValueError(
                    "namespace {} already defined as {}".format(
                        value,
                        existing_attr,
                    )
                )
            if getattr(self, attr, value) != value:
                raise ValueError("inconsistent namespace redefinition")
            self._all_namespaces[value] = attr
        super().__setattr__(attr, value)

    def __delattr__(self, attr):
        if not attr.startswith("_"):
            raise AttributeError("deleting short-hands is prohibited")
        super().__delattr__(attr)


namespaces = Namespaces()
namespaces.xmlstream = "http://etherx.jabber.org/streams"
namespaces.client = "jabber:client"
namespaces.starttls = "urn:ietf:params:xml:ns:xmpp-tls"
namespaces.sasl = "urn:ietf:params:xml:ns:xmpp-sasl"
namespaces.stanzas = "urn:ietf:params:xml:ns:xmpp-stanzas"
namespaces.streams = "urn:ietf:params:xml:ns:xmpp-streams"
namespaces.xml = "http://www.w3.org/XML/1998/namespace"


def to_ascii(s):
    """
    Return the IDNA-encoded ASCII form of the domain name `s`.
    """
    return s.encode("idna").decode("ascii")


def to_nmtoken(rand_token):
    """
    Convert a (random) token given as raw :class:`bytes` or
    :class:`int` to a valid NMTOKEN
    <https://www.w3.org/TR/xml/#NT-Nmtoken>.

    The encoding is injective, so two different inputs never yield the same
    token.
    """

    if isinstance(rand_token, int):
        rand_token = rand_token.to_bytes(
            (rand_token.bit_length() + 7) // 8,
            "little"
        )
        e = base64.urlsafe_b64encode(rand_token).rstrip(b"=").decode("ascii")
        return ":" + e

    if isinstance(rand_token, bytes):
        e = base64.urlsafe_b64encode(rand_token).rstrip(b"=").decode("ascii")
        if not e:
            e = "."
        return e

    raise TypeError("rand_token must be a bytes or int instance")
