########################################################################
# File name: muc.py
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
:mod:`~xmppclient.muc` --- Multi-User Chat support (:xep:`45`)
##############################################################

XSOs for the MUC protocol, the room role and affiliation enumerations and
helpers to join, leave, invite to and administer rooms.

Enumerations
============

.. autoclass:: Role

.. autoclass:: Affiliation

Helpers
=======

.. autofunction:: join

.. autofunction:: presence

.. autofunction:: send_mediated_invitation

.. autofunction:: destroy_room

.. autofunction:: set_role

.. autofunction:: set_affiliation

XSOs
====

.. autoclass:: GenericExt

.. autoclass:: UserExt

.. autoclass:: UserItem

.. autoclass:: Invite

.. autoclass:: AdminQuery

.. autoclass:: AdminItem

.. autoclass:: OwnerQuery

.. autoclass:: DestroyRequest

.. autoclass:: DirectInvite
"""
import enum

from . import stanza, structs, xso

from .utils import namespaces


namespaces.xep0045_muc = "http://jabber.org/protocol/muc"
namespaces.xep0045_muc_user = "http://jabber.org/protocol/muc#user"
namespaces.xep0045_muc_admin = "http://jabber.org/protocol/muc#admin"
namespaces.xep0045_muc_owner = "http://jabber.org/protocol/muc#owner"
namespaces.xep0249_conference = "jabber:x:conference"


class _FromStrMixin:
    @classmethod
    def from_str(cls, s):
        """
        Return the member whose value is `s`, or :attr:`INVALID` if there is
        none.
        """
        try:
            return cls(s)
        except ValueError:
            return cls.INVALID


class Role(_FromStrMixin, enum.Enum):
    """
    The role of an occupant within a room.

    .. attribute:: NONE

    .. attribute:: VISITOR

    .. attribute:: PARTICIPANT

    .. attribute:: MODERATOR

    .. attribute:: INVALID

       Stands in for any value not defined by :xep:`45`.
    """

    NONE = "none"
    VISITOR = "visitor"
    PARTICIPANT = "participant"
    MODERATOR = "moderator"
    INVALID = "invalid"


class Affiliation(_FromStrMixin, enum.Enum):
    """
    The long-lived affiliation of a user with a room.

    .. attribute:: NONE

    .. attribute:: OUTCAST

    .. attribute:: MEMBER

    .. attribute:: OWNER

    .. attribute:: ADMIN

    .. attribute:: INVALID
    """

    NONE = "none"
    OUTCAST = "outcast"
    MEMBER = "member"
    OWNER = "owner"
    ADMIN = "admin"
    INVALID = "invalid"


class GenericExt(xso.XSO):
    TAG = (namespaces.xep0045_muc, "x")

    password = xso.ChildText(
        (namespaces.xep0045_muc, "password"),
        default=None
    )


stanza.Presence.xep0045_muc = xso.Child([GenericExt])


class ItemBase(xso.XSO):
    affiliation = xso.Attr("affiliation", default=None)
    jid = xso.Attr("jid", default=None)
    nick = xso.Attr("nick", default=None)
    role = xso.Attr("role", default=None)

    def __init__(self,
                 affiliation=None,
                 jid=None,
                 nick=None,
                 role=None,
                 reason=None):
        super().__init__()
        self.affiliation = affiliation
        self.jid = jid
        self.nick = nick
        self.role = role
        self.reason = reason

    @property
    def bare_jid(self):
        """
        Return the bare jid of the item or :data:`None` if no JID is
        given.
        """
        if self.jid:
            return structs.bare_jid(self.jid)
        return None


class UserItem(ItemBase):
    TAG = (namespaces.xep0045_muc_user, "item")

    reason = xso.ChildText(
        (namespaces.xep0045_muc_user, "reason"),
        default=None
    )


class Invite(xso.XSO):
    TAG = (namespaces.xep0045_muc_user, "invite")

    from_ = xso.Attr("from", default=None)
    to = xso.Attr("to", default=None)

    reason = xso.ChildText(
        (namespaces.xep0045_muc_user, "reason"),
        default=None
    )

    def __init__(self, *, to=None, reason=None):
        super().__init__()
        self.to = to
        self.reason = reason


class UserExt(xso.XSO):
    """
    The ``muc#user`` extension of presences and messages.

    .. attribute:: items

       List of :class:`UserItem`, which describe the affiliation and role of
       occupants.

    .. attribute:: invites

       List of :class:`Invite` (mediated invitations).
    """

    TAG = (namespaces.xep0045_muc_user, "x")

    invites = xso.ChildList([Invite])
    items = xso.ChildList([UserItem])

    def __init__(self, *, items=[], invites=[]):
        super().__init__()
        self.items[:] = items
        self.invites[:] = invites


stanza.Presence.xep0045_muc_user = xso.Child([UserExt])
stanza.Message.xep0045_muc_user = xso.Child([UserExt])


class AdminItem(ItemBase):
    TAG = (namespaces.xep0045_muc_admin, "item")

    reason = xso.ChildText(
        (namespaces.xep0045_muc_admin, "reason"),
        default=None
    )


@stanza.IQ.as_payload_class
class AdminQuery(xso.XSO):
    TAG = (namespaces.xep0045_muc_admin, "query")

    items = xso.ChildList([AdminItem])

    def __init__(self, *, items=[]):
        super().__init__()
        self.items[:] = items


class DestroyRequest(xso.XSO):
    TAG = (namespaces.xep0045_muc_owner, "destroy")

    reason = xso.ChildText(
        (namespaces.xep0045_muc_owner, "reason"),
        default=None
    )

    jid = xso.Attr("jid", default=None)

    def __init__(self, *, jid=None, reason=None):
        super().__init__()
        self.jid = jid
        self.reason = reason


@stanza.IQ.as_payload_class
class OwnerQuery(xso.XSO):
    TAG = (namespaces.xep0045_muc_owner, "query")

    destroy = xso.Child([DestroyRequest])

    def __init__(self, *, destroy=None):
        super().__init__()
        self.destroy = destroy


class DirectInvite(xso.XSO):
    TAG = namespaces.xep0249_conference, "x"

    # some servers put the reason into the text of the element; ignored
    _ = xso.Text(default=None)

    jid = xso.Attr("jid")
    reason = xso.Attr("reason", default=None)

    def __init__(self, jid, *, reason=None):
        super().__init__()
        self.jid = jid
        self.reason = reason


stanza.Message.xep0249_direct_invite = xso.Child([DirectInvite])


def join(conn, room, nick):
    """
    Enter the room `room` (a bare JID) using `nick` as nickname.
    """
    occupant = structs.JID.fromstr(room)._replace(resource=nick)
    pres = stanza.Presence(to=str(occupant), from_=conn.jid)
    pres.xep0045_muc = GenericExt()
    conn.send(pres)


def presence(conn, to, joined):
    """
    Send presence to the occupant address `to`: if `joined` is true, a
    presence entering the room, otherwise an unavailable presence leaving it.
    """
    if joined:
        pres = stanza.Presence(to=to, from_=conn.jid)
        pres.xep0045_muc = GenericExt()
    else:
        pres = stanza.Presence(type_="unavailable", to=to, from_=conn.jid)
    conn.send(pres)


def send_mediated_invitation(conn, to, room, reason):
    """
    Ask the room `room` to invite `to`, giving `reason`.
    """
    msg = stanza.Message(type_=None, to=room, from_=conn.jid)
    msg.autoset_id()
    msg.xep0045_muc_user = UserExt(invites=[Invite(to=to, reason=reason)])
    conn.send(msg)


def _send_admin_item(conn, room, item):
    iq = stanza.IQ(
        "set",
        to=room,
        from_=conn.jid,
        payload=AdminQuery(items=[item]),
    )
    iq.autoset_id()
    conn.send(iq)


def destroy_room(conn, room, *, alternate=None, reason=None):
    """
    Ask the service to destroy `room`. `alternate` may name a room to which
    the occupants are pointed.
    """
    iq = stanza.IQ(
        "set",
        to=room,
        from_=conn.jid,
        payload=OwnerQuery(
            destroy=DestroyRequest(jid=alternate, reason=reason)
        ),
    )
    iq.autoset_id()
    conn.send(iq)


def set_role(conn, room, jid, role):
    """
    Set the :class:`Role` of the occupant `jid` in `room`.
    """
    _send_admin_item(conn, room, AdminItem(jid=jid, role=Role(role).value))


def set_affiliation(conn, room, jid, affiliation):
    """
    Set the :class:`Affiliation` of `jid` with `room`.
    """
    _send_admin_item(
        conn, room,
        AdminItem(affiliation=Affiliation(affiliation).value, jid=jid),
    )
