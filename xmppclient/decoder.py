########################################################################
# File name: decoder.py
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
:mod:`~xmppclient.decoder` --- Classification of stream-level elements
######################################################################

Every element received below the stream header is looked up by its
``(namespace, localname)`` pair in :data:`REGISTRY` and decoded into a fresh
instance of the registered XSO class. The closed set of classes is:

============================================  ================================
Namespace                                     Local names
============================================  ================================
``http://etherx.jabber.org/streams``          ``features``, ``error``
``urn:ietf:params:xml:ns:xmpp-tls``           ``starttls``, ``proceed``,
                                              ``failure``
``urn:ietf:params:xml:ns:xmpp-sasl``          ``mechanisms``, ``challenge``,
                                              ``response``, ``abort``,
                                              ``success``, ``failure``
``urn:ietf:params:xml:ns:xmpp-bind``          ``bind``
``jabber:client``                             ``message``, ``presence``,
                                              ``iq``, ``error``
============================================  ================================

Any other element raises :class:`~.errors.DecodeError`.

.. data:: REGISTRY

   Read-only mapping from ``(namespace, localname)`` to XSO class.

.. autoclass:: Stanza

.. autofunction:: make_stanza_parser

.. autofunction:: wrap_exception

.. autofunction:: decode
"""
import collections
import types

import xml.sax as sax

from . import (  # NOQA: F401
    errors,
    xml,
    xso,
    nonza,
    stanza,
    rfc6120,
    rfc3921,
    im,
    muc,
    roster,
    disco,
    version,
)


REGISTRY = types.MappingProxyType({
    cls.TAG: cls
    for cls in [
        nonza.StreamFeatures,
        nonza.StreamError,
        nonza.StartTLSFeature,
        nonza.StartTLSProceed,
        nonza.StartTLSFailure,
        nonza.SASLMechanisms,
        nonza.SASLChallenge,
        nonza.SASLResponse,
        nonza.SASLAbort,
        nonza.SASLSuccess,
        nonza.SASLFailure,
        rfc6120.Bind,
        stanza.Message,
        stanza.Presence,
        stanza.IQ,
        stanza.Error,
    ]
})


class Stanza(collections.namedtuple("Stanza", ["name", "value"])):
    """
    A decoded stream-level element.

    .. attribute:: name

       The ``(namespace, localname)`` tuple of the element.

    .. attribute:: value

       The decoded XSO; its class is the one registered for :attr:`name`.
    """

    __slots__ = []


def make_stanza_parser(on_stanza):
    """
    Return an :class:`~.xso.XSOParser` which knows all classes of
    :data:`REGISTRY`. `on_stanza` is called with a :class:`Stanza` for each
    completely decoded element.
    """
    parser = xso.XSOParser()
    for tag, cls in REGISTRY.items():
        parser.add_class(
            cls,
            lambda obj, tag=tag: on_stanza(Stanza(tag, obj))
        )
    return parser


def wrap_exception(exc):
    """
    Convert an exception raised while decoding an element into a
    :class:`~.errors.DecodeError`.
    """
    if isinstance(exc, xso.UnknownTopLevelTag):
        tag = exc.ev_args[0], exc.ev_args[1]
        return errors.DecodeError(
            "unexpected XMPP message {} <{}/>".format(*tag),
            tag=tag,
        )
    return errors.DecodeError(str(exc))


def decode(src):
    """
    Decode a single element from the binary file-like `src` and return it as
    :class:`Stanza`.

    :raises errors.DecodeError: if the document is malformed or its root
        element is not registered.
    """
    result = []
    parser = xml.make_parser()
    parser.setContentHandler(xso.SAXDriver(make_stanza_parser(result.append)))
    try:
        parser.parse(src)
    except sax.SAXParseException as exc:
        raise errors.DecodeError(str(exc)) from None
    except (ValueError, TypeError) as exc:
        raise wrap_exception(exc) from None
    return result[0]
