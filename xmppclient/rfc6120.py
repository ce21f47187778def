########################################################################
# File name: rfc6120.py
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
:mod:`~xmppclient.rfc6120` -- Resource binding payloads
#######################################################

.. autoclass:: BindFeature

.. autoclass:: Bind

"""

from . import xso, stanza, nonza
from .utils import namespaces

namespaces.bind = "urn:ietf:params:xml:ns:xmpp-bind"


@nonza.StreamFeatures.as_feature_class
class BindFeature(xso.XSO):
    """
    A stream feature for use with :class:`.nonza.StreamFeatures` which
    indicates that the server allows resource binding.
    """
    TAG = (namespaces.bind, "bind")

    required = xso.ChildFlag((namespaces.bind, "required"))


@stanza.IQ.as_payload_class
class Bind(xso.XSO):
    """
    The :class:`.IQ` payload for binding to a resource.

    .. attribute:: jid

       The server-supplied JID as string. This must not be set by client
       code.

    .. attribute:: resource

       The client-supplied, optional resource.

    """

    TAG = (namespaces.bind, "bind")

    jid = xso.ChildText(
        (namespaces.bind, "jid"),
        default=None
    )
    resource = xso.ChildText(
        (namespaces.bind, "resource"),
        default=None
    )

    def __init__(self, jid=None, resource=None):
        super().__init__()
        self.jid = jid
        self.resource = resource
