########################################################################
# File name: stanza.py
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
:mod:`~xmppclient.stanza` --- XSOs for dealing with stanzas
###########################################################

This module provides the :class:`~.xso.XSO` subclasses which represent XMPP
stanzas.

Top-level classes
=================

.. autoclass:: StanzaBase

.. autoclass:: Message

.. autoclass:: Presence

.. autoclass:: IQ

Payload classes
===============

.. autoclass:: Error

.. autoclass:: Caps

The :attr:`IQ.payload` descriptor holds exactly one registered payload; new
payload classes are registered with :meth:`IQ.as_payload_class`. Payloads
which are not registered end up as :mod:`lxml` elements in :attr:`IQ.query`.
Extensions attach further descriptors to :class:`Message` and
:class:`Presence` by assigning them as class attributes, for example::

    stanza.Presence.xep0045_muc_user = xso.Child([UserExt])

"""
import random

from . import xso

from .utils import namespaces, to_nmtoken


namespaces.caps = "http://jabber.org/protocol/caps"


#: Number of bytes of random data used by :meth:`StanzaBase.autoset_id`.
RANDOM_ID_BYTES = 120 // 8


class Error(xso.XSO):
    """
    A stanza error, either as child of a stanza or as top-level element.

    .. attribute:: code

       The legacy numeric error code as string, or :data:`None`.

    .. attribute:: type_

       The error type (``"cancel"``, ``"auth"``, ...), or :data:`None`.

    .. attribute:: condition

       The defined condition as ``(namespace, localname)`` tuple, or
       :data:`None` if the error carries no known condition.

    .. attribute:: text

       Optional human-readable text.
    """

    TAG = (namespaces.client, "error")

    code = xso.Attr("code", default=None)
    type_ = xso.Attr("type", default=None)

    condition = xso.ChildTag(
        tags=[
            "bad-request",
            "conflict",
            "feature-not-implemented",
            "forbidden",
            "gone",
            "internal-server-error",
            "item-not-found",
            "jid-malformed",
            "not-acceptable",
            "not-allowed",
            "not-authorized",
            "policy-violation",
            "recipient-unavailable",
            "redirect",
            "registration-required",
            "remote-server-not-found",
            "remote-server-timeout",
            "resource-constraint",
            "service-unavailable",
            "subscription-required",
            "undefined-condition",
            "unexpected-request",
        ],
        default_ns=namespaces.stanzas,
        allow_none=True,
    )

    text = xso.ChildText(
        (namespaces.stanzas, "text"),
        attr_policy=xso.UnknownAttrPolicy.DROP,
        default=None,
    )

    def __init__(self, condition=None, type_=None, text=None, code=None):
        super().__init__()
        self.condition = condition
        self.type_ = type_
        self.text = text
        self.code = code

    def __str__(self):
        result = self.condition[1] if self.condition else "unknown-condition"
        if self.text:
            result += " ({!r})".format(self.text)
        return result


class StanzaBase(xso.XSO):
    """
    Base for all stanza classes. The attributes are kept as the strings
    found on the wire; :data:`None` means the attribute is absent.

    .. attribute:: from_

    .. attribute:: to

    .. attribute:: id_

    .. attribute:: type_

    .. attribute:: error

       An :class:`Error` or :data:`None`.
    """

    from_ = xso.Attr("from", default=None)
    to = xso.Attr("to", default=None)
    id_ = xso.Attr("id", default=None)
    type_ = xso.Attr("type", default=None)

    error = xso.Child([Error])

    def __init__(self, *, from_=None, to=None, id_=None, type_=None):
        super().__init__()
        self.from_ = from_
        self.to = to
        self.id_ = id_
        self.type_ = type_

    def autoset_id(self):
        """
        If :attr:`id_` is not set yet, fill it with :data:`RANDOM_ID_BYTES`
        of random data, encoded as NMTOKEN.
        """
        if self.id_:
            return
        self.id_ = to_nmtoken(random.getrandbits(8 * RANDOM_ID_BYTES))


class Message(StanzaBase):
    """
    A message stanza.

    .. attribute:: subject

    .. attribute:: body

    .. attribute:: thread

    Extension descriptors (chat states, conference invitations, MUC user
    data) are attached by :mod:`xmppclient.im` and :mod:`xmppclient.muc`.

    .. automethod:: is_composing
    """

    TAG = (namespaces.client, "message")

    subject = xso.ChildText((namespaces.client, "subject"), default=None)
    body = xso.ChildText((namespaces.client, "body"), default=None)
    thread = xso.ChildText((namespaces.client, "thread"), default=None)

    def __init__(self, type_="normal", *, body=None, subject=None,
                 **kwargs):
        super().__init__(type_=type_, **kwargs)
        self.body = body
        self.subject = subject

    def is_composing(self):
        """
        Return true if the message carries the ``composing`` chat state.
        """
        state = self.xep0085_chatstate
        return state is not None and state.value[1] == "composing"

    def __repr__(self):
        return "<message from={!r} to={!r} type={!r} id={!r}>".format(
            self.from_, self.to, self.type_, self.id_,
        )


class Caps(xso.XSO):
    """
    Entity capabilities (:xep:`115`) announced in a presence.
    """

    TAG = (namespaces.caps, "c")

    node = xso.Attr("node", default=None)
    ver = xso.Attr("ver", default=None)
    hash_ = xso.Attr("hash", default=None)


class Presence(StanzaBase):
    """
    A presence stanza.

    .. attribute:: lang

       The ``xml:lang`` attribute, or :data:`None`.

    .. attribute:: show

    .. attribute:: status

    .. attribute:: priority

       Integer priority; malformed values are treated as absent (``0``).

    .. attribute:: caps

       The :class:`Caps` child or :data:`None`.

    .. automethod:: is_online

    .. automethod:: is_unavailable

    .. automethod:: is_muc

    .. automethod:: has_caps_node
    """

    TAG = (namespaces.client, "presence")

    lang = xso.Attr((namespaces.xml, "lang"), default=None)

    show = xso.ChildText((namespaces.client, "show"), default=None)
    status = xso.ChildText((namespaces.client, "status"), default=None)
    priority = xso.ChildText(
        (namespaces.client, "priority"),
        type_=xso.Integer(),
        erroneous_as_absent=True,
        default=0,
    )

    caps = xso.Child([Caps])

    def __init__(self, type_=None, *, show=None, status=None, priority=0,
                 **kwargs):
        super().__init__(type_=type_, **kwargs)
        self.show = show
        self.status = status
        self.priority = priority

    def is_online(self):
        """
        Return true if the presence has no type, that is, announces
        availability.
        """
        return self.type_ is None

    def is_unavailable(self):
        return self.type_ == "unavailable"

    def is_muc(self):
        """
        Return true if the presence carries multi-user chat user data.
        """
        return self.xep0045_muc_user is not None

    def has_caps_node(self):
        return self.caps is not None and bool(self.caps.node)

    def __repr__(self):
        return "<presence from={!r} to={!r} type={!r} id={!r}>".format(
            self.from_, self.to, self.type_, self.id_,
        )


class IQ(StanzaBase):
    """
    An info/query stanza.

    .. attribute:: payload

       The registered payload XSO, or :data:`None`.

    .. attribute:: query

       :mod:`lxml` element collecting all children which are neither a
       registered payload nor the error.

    .. automethod:: as_payload_class
    """

    TAG = (namespaces.client, "iq")

    payload = xso.Child([])
    query = xso.Collector()

    def __init__(self, type_, *, payload=None, **kwargs):
        super().__init__(type_=type_, **kwargs)
        self.payload = payload

    @classmethod
    def as_payload_class(cls, other_cls):
        """
        Register `other_cls` as possible :attr:`payload`. Can be used as
        class decorator.
        """
        cls.register_child(cls.payload, other_cls)
        return other_cls

    def __repr__(self):
        return "<iq from={!r} to={!r} type={!r} id={!r} payload={!r}>".format(
            self.from_, self.to, self.type_, self.id_, self.payload,
        )
