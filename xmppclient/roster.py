########################################################################
# File name: roster.py
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
:mod:`~xmppclient.roster` --- Roster retrieval (:rfc:`6121`)
############################################################

.. autofunction:: retrieve_roster

.. autoclass:: Query

.. autoclass:: Item

.. autoclass:: Group
"""
from . import stanza, xso

from .utils import namespaces


namespaces.rfc6121_roster = "jabber:iq:roster"


class Group(xso.XSO):
    """
    A group declaration for a contact in a roster.

    .. attribute:: name

       The name of the group.
    """

    TAG = (namespaces.rfc6121_roster, "group")

    name = xso.Text(default=None)

    def __init__(self, *, name=None):
        super().__init__()
        self.name = name


class Item(xso.XSO):
    """
    A contact item in a roster.

    .. attribute:: jid

       The bare JID of the contact, as string.

    .. attribute:: name

       The optional display name of the contact.

    .. attribute:: subscription

       Subscription status, one of ``"none"`` (the default), ``"to"``,
       ``"from"`` and ``"both"``.

    .. attribute:: groups

       A list of :class:`Group` instances.
    """

    TAG = (namespaces.rfc6121_roster, "item")

    jid = xso.Attr("jid")
    subscription = xso.Attr("subscription", default="none")
    name = xso.Attr("name", default=None)

    groups = xso.ChildList([Group])

    def __init__(self, jid, *,
                 name=None,
                 groups=(),
                 subscription="none"):
        super().__init__()
        if jid is not None:
            self.jid = jid
        self.name = name
        self.groups.extend(groups)
        self.subscription = subscription


@stanza.IQ.as_payload_class
class Query(xso.XSO):
    """
    A query which fetches the roster.

    .. attribute:: ver

       The version of the roster, if any.

    .. attribute:: items

       The items in the roster query.
    """

    TAG = (namespaces.rfc6121_roster, "query")

    ver = xso.Attr("ver", default=None)

    items = xso.ChildList([Item])

    def __init__(self, *, ver=None, items=()):
        super().__init__()
        self.ver = ver
        self.items.extend(items)


def retrieve_roster(conn):
    """
    Request the roster of the account. The reply is an :class:`~.stanza.IQ`
    with a :class:`Query` payload; it is delivered by the read loop of the
    connection (:meth:`~.node.Connection.next`).

    :return: The id of the request.
    """
    iq = stanza.IQ("get", from_=conn.jid, payload=Query())
    iq.autoset_id()
    conn.send(iq)
    return iq.id_
