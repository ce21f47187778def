########################################################################
# File name: structs.py
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
:mod:`~xmppclient.structs` --- Addresses
########################################

Addresses are handled as plain strings throughout the library. The server
is the authority on their exact form; no stringprep or other normalisation
is applied, so a JID read from the wire is reproduced exactly when it is
sent back.

.. autoclass:: JID

.. autofunction:: split_jid

.. autofunction:: bare_jid

.. autofunction:: is_bare_jid

.. autofunction:: localpart
"""
import collections


def split_jid(jid):
    """
    Split `jid` at the first slash.

    :return: A pair ``(bare, resource)``. `resource` is the empty string if
        `jid` has no resource.

    >>> split_jid("user@domain/resource")
    ('user@domain', 'resource')
    >>> split_jid("user@domain")
    ('user@domain', '')
    """
    bare, _, resource = jid.partition("/")
    return bare, resource


def bare_jid(jid):
    """
    Return `jid` with its resource (if any) removed.
    """
    return split_jid(jid)[0]


def is_bare_jid(jid):
    return bare_jid(jid) == jid


def localpart(jid):
    """
    Return everything in front of the first ``@`` of `jid`, or the whole
    `jid` if it contains none.
    """
    return jid.partition("@")[0]


class JID(collections.namedtuple("JID", ["localpart", "domain", "resource"])):
    """
    Represent a :term:`Jabber ID (JID) <Jabber ID>` split into its parts.

    Missing parts are :data:`None`. Use :meth:`fromstr` to parse a string;
    :func:`str` turns the object back into the exact input.

    .. automethod:: fromstr

    .. automethod:: bare

    .. autoattribute:: is_bare
    """

    __slots__ = []

    @classmethod
    def fromstr(cls, s):
        bare, sep, resource = s.partition("/")
        local, at, domain = bare.partition("@")
        if not at:
            local, domain = None, bare
        if not domain:
            raise ValueError("domain must not be empty")
        return cls(local, domain, resource if sep else None)

    def __str__(self):
        result = self.domain
        if self.localpart is not None:
            result = self.localpart + "@" + result
        if self.resource is not None:
            result += "/" + self.resource
        return result

    def bare(self):
        return self._replace(resource=None)

    @property
    def is_bare(self):
        """
        :data:`True` if the JID has no resource part.
        """
        return self.resource is None
