########################################################################
# File name: connector.py
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
:mod:`~xmppclient.connector` --- Ways to establish XML streams
##############################################################

This module opens the TCP connection for a client and, if the configuration
asks for it, upgrades it to TLS using STARTTLS before anything else is
exchanged.

.. autofunction:: connect

.. autofunction:: starttls

"""

import asyncio
import logging

import aioopenssl

from . import errors, nonza, protocol

from .utils import to_ascii


async def starttls(stream, features, domain, config, logger):
    """
    Upgrade `stream` to TLS. `features` must be the stream features
    received on the plaintext stream.

    :raises errors.TLSUnavailable: if the features do not offer STARTTLS.
    :raises errors.ProtocolViolation: if the server does not reply to
        ``starttls`` with ``proceed``.
    :raises errors.TLSFailure: if the certificate could not be verified.
    """
    if not features.has_feature(nonza.StartTLSFeature):
        raise errors.TLSUnavailable("server doesn't support TLS")

    stream.send_xso(nonza.StartTLS())
    st = await stream.read_stanza()
    if not isinstance(st.value, nonza.StartTLSProceed):
        raise errors.ProtocolViolation(
            "expected <proceed> after <starttls> but got <{}> in {}".format(
                st.name[1], st.name[0],
            )
        )

    logger.info("starting TLS handshake")
    if config.log is not None:
        print("Starting TLS handshake", file=config.log)

    verifier = config.certificate_verifier_factory(domain, config.log)
    ssl_context = config.ssl_context_factory()
    verifier.setup_context(ssl_context, stream.transport)

    await stream.starttls(
        ssl_context=ssl_context,
        post_handshake_callback=verifier.post_handshake,
    )


async def connect(host, port, domain, config, base_logger=None):
    """
    Open a TCP connection to `host` at `port` for the XMPP domain `domain`
    and return the :class:`~.protocol.XMLStream` on top of it.

    `config` is a :class:`~.node.Config`. If
    :attr:`~.node.Config.tls_required` is true, a plaintext stream is opened,
    the features are requested and STARTTLS is negotiated (see
    :func:`starttls`). The returned stream then needs a reset before use,
    which :func:`~.protocol.reset_stream_and_get_features` does.

    If anything fails, the transport is closed and the exception is
    re-raised.
    """
    if base_logger is not None:
        logger = base_logger.getChild("connector")
    else:
        logger = logging.getLogger(__name__)

    stream = protocol.XMLStream(
        to=domain,
        in_log=config.in_log,
        out_log=config.out_log,
        base_logger=base_logger or logging.getLogger("xmppclient"),
    )

    loop = asyncio.get_running_loop()
    logger.info("making TCP connection to %s:%s", host, port)
    transport, _ = await aioopenssl.create_starttls_connection(
        loop,
        lambda: stream,
        host=host,
        port=port,
        peer_hostname=host,
        server_hostname=to_ascii(domain),
        use_starttls=True,
    )

    if not config.tls_required:
        return stream

    try:
        features = await protocol.reset_stream_and_get_features(stream)
        await starttls(stream, features, domain, config, logger)
    except BaseException:
        transport.close()
        raise

    return stream
