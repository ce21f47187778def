########################################################################
# File name: node.py
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
:mod:`~xmppclient.node` --- Client connection
#############################################

This module ties the negotiation steps together. :func:`dial` runs the
whole bootstrap sequence and returns a ready :class:`Connection`::

    conn = await xmppclient.dial("example.com:5222", "alice", "example.com",
                                 "secret")
    conn.handler = xmppclient.BasicHandler()
    await conn.listen()

The phases run in a fixed order, each one a write followed by a read:

1. TCP connection, optionally upgraded with STARTTLS
   (:func:`~.connector.connect`)
2. stream features (:func:`~.protocol.reset_stream_and_get_features`)
3. SASL PLAIN (:func:`~.security_layer.negotiate_sasl`)
4. stream features, again
5. resource binding (:meth:`Connection.bind`)
6. legacy session, if the features announce it
   (:meth:`Connection.establish_session`)

The first failing phase raises; the transport is closed before the exception
propagates. Nothing is retried.

.. autofunction:: dial

.. autoclass:: Config

.. autoclass:: Connection

.. autofunction:: split_address
"""
import collections
import logging

from . import (
    connector,
    errors,
    protocol,
    rfc3921,
    rfc6120,
    security_layer,
    stanza,
)

logger = logging.getLogger(__name__)


#: Port used if the address passed to :func:`dial` has none.
DEFAULT_PORT = 5222


class Config(collections.namedtuple(
        "Config",
        [
            "tls_required",
            "in_log",
            "out_log",
            "log",
            "ssl_context_factory",
            "certificate_verifier_factory",
        ])):
    """
    Options for :func:`dial`. None of the sinks change protocol behaviour.

    .. attribute:: tls_required

       If true, STARTTLS is negotiated before anything else, and the
       connection fails if the server does not offer it. Defaults to
       :data:`False`.

    .. attribute:: in_log

       Binary file-like which receives every byte read, or :data:`None`.

    .. attribute:: out_log

       Binary file-like which receives every byte written, or :data:`None`.
       Credentials are never written to it.

    .. attribute:: log

       Text file-like which receives short progress lines, or :data:`None`.

    .. attribute:: ssl_context_factory

       Zero-argument callable returning the :class:`OpenSSL.SSL.Context` for
       STARTTLS.

    .. attribute:: certificate_verifier_factory

       Callable taking the domain and :attr:`log`, returning a
       :class:`~.security_layer.CertificateVerifier`.
    """

    def __new__(cls, tls_required=False, in_log=None, out_log=None,
                log=None,
                ssl_context_factory=security_layer.default_ssl_context,
                certificate_verifier_factory=(
                    security_layer.PKIXCertificateVerifier
                )):
        return super().__new__(
            cls,
            tls_required,
            in_log,
            out_log,
            log,
            ssl_context_factory,
            certificate_verifier_factory,
        )


class Connection:
    """
    An authenticated and bound client connection.

    :param stream: The negotiated :class:`~.protocol.XMLStream`.
    :param domain: The domain of the server.

    .. attribute:: domain

       The domain passed to :func:`dial`.

    .. autoattribute:: jid

    .. attribute:: online_roster

       List of the ``from`` addresses of all presences received by
       :meth:`listen`, in arrival order. Duplicates are kept.

    .. attribute:: handler

       The :class:`~.handler.Handler` which receives messages and presences
       in :meth:`listen`, or :data:`None`.

    .. automethod:: send

    .. automethod:: send_raw

    .. automethod:: listen

    .. automethod:: next

    .. automethod:: bind

    .. automethod:: establish_session

    .. automethod:: close
    """

    def __init__(self, stream, domain, *, handler=None):
        super().__init__()
        self._stream = stream
        self._jid = None
        self.domain = domain
        self.online_roster = []
        self.handler = handler

    @property
    def jid(self):
        """
        The full JID assigned by the server during resource binding, exactly
        as received, or :data:`None` before binding. Once set, it cannot be
        changed.
        """
        return self._jid

    @jid.setter
    def jid(self, value):
        if self._jid is not None:
            raise AttributeError("jid is already bound")
        self._jid = value

    @property
    def stream(self):
        return self._stream

    def send(self, st):
        """
        Serialise and send the stanza (or any other XSO) `st`.
        """
        self._stream.send_xso(st)

    def send_raw(self, text):
        """
        Send the markup `text` as is.
        """
        self._stream.send_raw(text)

    async def bind(self):
        """
        Bind a server-assigned resource and store the resulting JID as
        :attr:`jid`.

        :raises errors.ProtocolViolation: if the reply is not an ``iq``, is an
            error or does not carry a JID.
        """
        self.send(stanza.IQ("set", id_="bind_1", payload=rfc6120.Bind()))
        st = await self._stream.read_stanza()
        iq = st.value
        if not isinstance(iq, stanza.IQ):
            raise errors.ProtocolViolation(
                "unmarshal <iq>: expected <iq> but got <{}> in {}".format(
                    st.name[1], st.name[0],
                )
            )

        if iq.type_ == "error":
            raise errors.ProtocolViolation(
                "bind failed: {}".format(
                    iq.error if iq.error is not None else "unknown-condition"
                )
            )

        if not isinstance(iq.payload, rfc6120.Bind) or not iq.payload.jid:
            raise errors.ProtocolViolation("bind result missing")

        self.jid = iq.payload.jid
        logger.info("bound to JID %s", self.jid)

    async def establish_session(self):
        """
        Establish a legacy session (:rfc:`3921`).

        :raises errors.StreamNegotiationFailure: if the reply is not a result
            ``iq``.
        """
        self.send(stanza.IQ(
            "set",
            to=self.domain,
            id_="sess_1",
            payload=rfc3921.Session(),
        ))
        st = await self._stream.read_stanza()
        if not isinstance(st.value, stanza.IQ) or st.value.type_ != "result":
            raise errors.StreamNegotiationFailure(
                "session establishment failed"
            )

    async def listen(self):
        """
        Read stanzas until the stream fails and dispatch them.

        Presences are appended to :attr:`online_roster` and then passed to
        :meth:`~.handler.Handler.recv_presence`; messages are passed to
        :meth:`~.handler.Handler.recv_message`. Everything else is dropped.
        The first error is logged and ends the loop; no exception is raised.
        """
        while True:
            try:
                st = await self._stream.read_stanza()
            except (OSError, errors.DecodeError) as exc:
                logger.warning("listen loop terminated: %s", exc)
                return

            if isinstance(st.value, stanza.Presence):
                self.online_roster.append(st.value.from_)
                if self.handler is not None:
                    self.handler.recv_presence(st.value)
            elif isinstance(st.value, stanza.Message):
                if self.handler is not None:
                    self.handler.recv_message(st.value)

    async def next(self, queue):
        """
        Put every received :class:`~.decoder.Stanza` into the
        :class:`asyncio.Queue` `queue`, until the first error.
        """
        while True:
            try:
                st = await self._stream.read_stanza()
            except (OSError, errors.DecodeError) as exc:
                logger.debug("read loop terminated: %s", exc)
                return
            await queue.put(st)

    def close(self):
        """
        Send the stream footer and close the transport.
        """
        self._stream.close()


def split_address(address):
    """
    Split ``"host:port"`` into ``(host, port)``. Brackets around IPv6
    literals are removed; if no port is given, :data:`DEFAULT_PORT` is used.
    """
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    else:
        host, sep, port = address.rpartition(":")
        if not sep:
            host, port = address, ""
    return host, int(port) if port else DEFAULT_PORT


def _progress(config, line):
    logger.info("%s", line)
    if config.log is not None:
        print(line, file=config.log)


async def dial(address, user, domain, password, config=None, *,
               handler=None):
    """
    Connect to `address`, authenticate as `user` and bind a resource.

    :param address: ``"host:port"`` of the server.
    :param user: The authentication identity (usually the localpart).
    :param domain: The XMPP domain of the account.
    :param password: The password.
    :param config: A :class:`Config`, or :data:`None` for the defaults.
    :param handler: Initial :attr:`Connection.handler`.
    :return: The ready :class:`Connection`.
    """
    if config is None:
        config = Config()

    host, port = split_address(address)
    _progress(config, "Making TCP connection to {}".format(address))
    stream = await connector.connect(host, port, domain, config)

    conn = Connection(stream, domain, handler=handler)
    try:
        features = await protocol.reset_stream_and_get_features(stream)

        _progress(config, "Authenticating as {}".format(user))
        await security_layer.negotiate_sasl(stream, features, user, password)
        _progress(config, "Authentication successful")

        features = await protocol.reset_stream_and_get_features(stream)

        await conn.bind()
        _progress(config, "Bound to JID {}".format(conn.jid))

        if features.has_feature(rfc3921.SessionFeature):
            await conn.establish_session()
    except BaseException:
        stream.abort()
        raise

    return conn
