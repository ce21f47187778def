########################################################################
# File name: errors.py
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
:mod:`~xmppclient.errors` --- Exception classes
###############################################

All exceptions raised while bootstrapping or running a connection derive
from :class:`ConnectionError`, except for :class:`DecodeError`, which is a
:class:`ValueError`. Plain transport failures surface as the
:class:`OSError` subclasses raised by :mod:`asyncio` and :mod:`aioopenssl`.

Exception classes mapping to XMPP stream errors
===============================================

.. autoclass:: StreamError

.. autoclass:: StreamErrorCondition

Stream negotiation exceptions
=============================

.. autoclass:: StreamNegotiationFailure

.. autoclass:: ProtocolViolation

.. autoclass:: SecurityNegotiationFailure

.. autoclass:: SASLUnavailable

.. autoclass:: AuthenticationFailure

.. autoclass:: TLSFailure

.. autoclass:: TLSUnavailable

Decoding
========

.. autoclass:: DecodeError

"""
import enum

from . import xso

from .utils import namespaces


def format_error_text(condition, text=None):
    error_tag = xso.tag_to_str(condition.value)
    if text:
        error_tag += " ({!r})".format(text)
    return error_tag


class StreamErrorCondition(enum.Enum):
    """
    Enumeration to represent a :rfc:`6120` stream error condition. Please
    see :rfc:`6120`, section 4.9.3, for the semantics of the individual
    conditions.
    """

    BAD_FORMAT = (namespaces.streams, "bad-format")
    BAD_NAMESPACE_PREFIX = (namespaces.streams, "bad-namespace-prefix")
    CONFLICT = (namespaces.streams, "conflict")
    CONNECTION_TIMEOUT = (namespaces.streams, "connection-timeout")
    HOST_GONE = (namespaces.streams, "host-gone")
    HOST_UNKNOWN = (namespaces.streams, "host-unknown")
    IMPROPER_ADDRESSING = (namespaces.streams, "improper-addressing")
    INTERNAL_SERVER_ERROR = (namespaces.streams, "internal-server-error")
    INVALID_FROM = (namespaces.streams, "invalid-from")
    INVALID_NAMESPACE = (namespaces.streams, "invalid-namespace")
    INVALID_XML = (namespaces.streams, "invalid-xml")
    NOT_AUTHORIZED = (namespaces.streams, "not-authorized")
    NOT_WELL_FORMED = (namespaces.streams, "not-well-formed")
    POLICY_VIOLATION = (namespaces.streams, "policy-violation")
    REMOTE_CONNECTION_FAILED = (namespaces.streams, "remote-connection-failed")
    RESET = (namespaces.streams, "reset")
    RESOURCE_CONSTRAINT = (namespaces.streams, "resource-constraint")
    RESTRICTED_XML = (namespaces.streams, "restricted-xml")
    SEE_OTHER_HOST = (namespaces.streams, "see-other-host")
    SYSTEM_SHUTDOWN = (namespaces.streams, "system-shutdown")
    UNDEFINED_CONDITION = (namespaces.streams, "undefined-condition")
    UNSUPPORTED_ENCODING = (namespaces.streams, "unsupported-encoding")
    UNSUPPORTED_FEATURE = (namespaces.streams, "unsupported-feature")
    UNSUPPORTED_STANZA_TYPE = (namespaces.streams, "unsupported-stanza-type")
    UNSUPPORTED_VERSION = (namespaces.streams, "unsupported-version")


class StreamError(ConnectionError):
    """
    A stream error sent by the peer.

    .. attribute:: condition

       The :class:`StreamErrorCondition` member naming the error.

    .. attribute:: text

       The optional human-readable text, or :data:`None`.
    """

    def __init__(self, condition, text=None):
        if not isinstance(condition, StreamErrorCondition):
            condition = StreamErrorCondition(condition)

        super().__init__("stream error: {}".format(
            format_error_text(condition, text))
        )
        self.condition = condition
        self.text = text


class StreamNegotiationFailure(ConnectionError):
    pass


class ProtocolViolation(StreamNegotiationFailure):
    """
    The peer sent an element whose namespace or local name does not match
    what the current negotiation step requires.
    """


class SecurityNegotiationFailure(StreamNegotiationFailure):
    def __init__(self, xmpp_error,
                 kind="Security negotiation failure",
                 text=None):
        msg = "{}: {}".format(kind, xmpp_error)
        if text:
            msg += " ('{}')".format(text)
        super().__init__(msg)
        self.xmpp_error = xmpp_error
        self.text = text


class SASLUnavailable(SecurityNegotiationFailure):
    # raised before anything is sent if the peer does not offer a mechanism we
    # implement
    pass


class AuthenticationFailure(SecurityNegotiationFailure):
    """
    The server rejected the credentials.

    .. attribute:: condition

       Local name of the diagnostic child of the SASL ``failure`` element,
       for example ``"not-authorized"``. Equal to :attr:`xmpp_error`.
    """

    def __init__(self, condition, text=None):
        super().__init__(condition, text=text,
                         kind="authentication failure")

    @property
    def condition(self):
        return self.xmpp_error


class TLSFailure(SecurityNegotiationFailure):
    def __init__(self, xmpp_error, text=None):
        super().__init__(xmpp_error, text=text, kind="TLS failure")


class TLSUnavailable(TLSFailure):
    pass


class DecodeError(ValueError):
    """
    An element could not be decoded: the XML was malformed, or the
    ``(namespace, localname)`` pair of a top-level element is unknown.

    .. attribute:: tag

       The offending tag as ``(namespace, localname)`` tuple, if known.
    """

    def __init__(self, msg, tag=None):
        super().__init__(msg)
        self.tag = tag
