########################################################################
# File name: version.py
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
:mod:`~xmppclient.version` --- Software Version (:xep:`92`)
###########################################################

.. autoclass:: Query

.. autofunction:: request_version
"""
from . import stanza, xso

from .utils import namespaces


namespaces.xep0092_version = "jabber:iq:version"


@stanza.IQ.as_payload_class
class Query(xso.XSO):
    """
    Query and response for the software version of an entity. All attributes
    are :data:`None` in a request.

    .. attribute:: name

    .. attribute:: version

    .. attribute:: os
    """

    TAG = namespaces.xep0092_version, "query"

    name = xso.ChildText(
        (namespaces.xep0092_version, "name"),
        default=None,
    )

    version = xso.ChildText(
        (namespaces.xep0092_version, "version"),
        default=None,
    )

    os = xso.ChildText(
        (namespaces.xep0092_version, "os"),
        default=None,
    )


def request_version(conn, to):
    """
    Ask `to` for its software version.

    :return: The id of the request.
    """
    iq = stanza.IQ("get", to=to, from_=conn.jid, payload=Query())
    iq.autoset_id()
    conn.send(iq)
    return iq.id_
