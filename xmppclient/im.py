########################################################################
# File name: im.py
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
:mod:`~xmppclient.im` --- Instant messaging and presence
########################################################

Chat states (:xep:`85`) are attached to :class:`~.stanza.Message` as
:attr:`xep0085_chatstate`.

All helpers build an XSO and hand it to :meth:`.node.Connection.send`; the
``from`` attribute is set to the bound JID of the connection.

.. autoclass:: ChatState

.. autofunction:: send_message

.. autofunction:: send_groupchat

.. autofunction:: send_composing

.. autofunction:: send_active

.. autofunction:: send_direct_muc_invitation

.. autofunction:: signal_presence

.. autofunction:: silence_presence
"""
import enum

from . import muc, stanza, xso

from .utils import namespaces


namespaces.xep0085 = "http://jabber.org/protocol/chatstates"


class ChatState(enum.Enum):
    """
    Enumeration of the chat states defined by :xep:`0085`:

    .. attribute:: ACTIVE

    .. attribute:: COMPOSING

    .. attribute:: PAUSED

    .. attribute:: INACTIVE

    .. attribute:: GONE
    """
    ACTIVE = (namespaces.xep0085, "active")
    COMPOSING = (namespaces.xep0085, "composing")
    PAUSED = (namespaces.xep0085, "paused")
    INACTIVE = (namespaces.xep0085, "inactive")
    GONE = (namespaces.xep0085, "gone")


stanza.Message.xep0085_chatstate = xso.ChildTag(ChatState, allow_none=True)


def _make_message(conn, to, type_):
    return stanza.Message(type_=type_, to=to, from_=conn.jid)


def send_message(conn, to, body, type_="chat"):
    """
    Send `body` as message of type `type_` to `to`.
    """
    msg = _make_message(conn, to, type_)
    msg.body = body
    conn.send(msg)


def send_groupchat(conn, to, body):
    """
    Send `body` to the room `to`.
    """
    send_message(conn, to, body, type_="groupchat")


def _send_chatstate(conn, to, state):
    msg = _make_message(conn, to, "chat")
    msg.xep0085_chatstate = state
    conn.send(msg)


def send_composing(conn, to):
    _send_chatstate(conn, to, ChatState.COMPOSING)


def send_active(conn, to):
    _send_chatstate(conn, to, ChatState.ACTIVE)


def send_direct_muc_invitation(conn, to, room, reason):
    """
    Invite `to` into the multi-user chat at `room`.
    """
    msg = _make_message(conn, to, None)
    msg.xep0249_direct_invite = muc.DirectInvite(room, reason=reason)
    conn.send(msg)


def signal_presence(conn, show):
    """
    Announce availability with the given `show` value (``"away"``,
    ``"chat"``, ``"dnd"`` or ``"xa"``).
    """
    conn.send(stanza.Presence(show=show, from_=conn.jid))


def silence_presence(conn):
    """
    Send an available presence with priority ``-1``, so that no messages are
    routed to this resource.
    """
    conn.send(stanza.Presence(priority=-1, from_=conn.jid))
