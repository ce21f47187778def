########################################################################
# File name: disco.py
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
:mod:`~xmppclient.disco` --- Service discovery (:xep:`30`)
##########################################################

Only the XSOs for info and items queries are provided, plus a helper to
list the rooms of a multi-user chat service.

.. autofunction:: discover_rooms

.. autoclass:: InfoQuery

.. autoclass:: Identity

.. autoclass:: Feature

.. autoclass:: ItemsQuery

.. autoclass:: Item
"""
from . import stanza, xso

from .utils import namespaces


namespaces.xep0030_info = "http://jabber.org/protocol/disco#info"
namespaces.xep0030_items = "http://jabber.org/protocol/disco#items"


class Identity(xso.XSO):
    """
    An identity declaration.

    .. attribute:: category

    .. attribute:: type_

    .. attribute:: name
    """

    TAG = (namespaces.xep0030_info, "identity")

    category = xso.Attr("category")
    type_ = xso.Attr("type")
    name = xso.Attr("name", default=None)

    def __init__(self, *, category="client", type_="bot", name=None):
        super().__init__()
        self.category = category
        self.type_ = type_
        self.name = name


class Feature(xso.XSO):
    TAG = (namespaces.xep0030_info, "feature")

    var = xso.Attr("var")

    def __init__(self, var):
        super().__init__()
        self.var = var


@stanza.IQ.as_payload_class
class InfoQuery(xso.XSO):
    """
    A query for features and identities of an entity.

    .. attribute:: node

    .. attribute:: identities

    .. attribute:: features

       List of :class:`Feature`; :meth:`get_features` returns their names.
    """

    TAG = (namespaces.xep0030_info, "query")

    node = xso.Attr("node", default=None)

    identities = xso.ChildList([Identity])
    features = xso.ChildList([Feature])

    def __init__(self, *, node=None, identities=(), features=()):
        super().__init__()
        self.node = node
        self.identities.extend(identities)
        self.features.extend(Feature(var) for var in features)

    def get_features(self):
        return {feature.var for feature in self.features}


class Item(xso.XSO):
    """
    An item of an entity, for example a room of a multi-user chat service.

    .. attribute:: jid

    .. attribute:: name

    .. attribute:: node
    """

    TAG = (namespaces.xep0030_items, "item")

    jid = xso.Attr("jid")
    name = xso.Attr("name", default=None)
    node = xso.Attr("node", default=None)

    def __init__(self, jid=None, name=None, node=None):
        super().__init__()
        if jid is not None:
            self.jid = jid
        self.name = name
        self.node = node


@stanza.IQ.as_payload_class
class ItemsQuery(xso.XSO):
    TAG = (namespaces.xep0030_items, "query")

    node = xso.Attr("node", default=None)

    items = xso.ChildList([Item])

    def __init__(self, *, node=None, items=()):
        super().__init__()
        self.node = node
        self.items.extend(items)


def discover_rooms(conn, service):
    """
    Ask the multi-user chat `service` for its rooms. The reply is an
    :class:`~.stanza.IQ` carrying an :class:`ItemsQuery`, delivered by the
    read loop of the connection.

    :return: The id of the request.
    """
    iq = stanza.IQ("get", to=service, from_=conn.jid, payload=ItemsQuery())
    iq.autoset_id()
    conn.send(iq)
    return iq.id_
