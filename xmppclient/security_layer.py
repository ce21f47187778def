########################################################################
# File name: security_layer.py
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
:mod:`~xmppclient.security_layer` --- Implementations to negotiate stream security
##################################################################################

This module provides the certificate verification used after the STARTTLS
handshake and the SASL PLAIN authentication of the stream.

Certificate verifiers
=====================

.. autoclass:: CertificateVerifier

.. autoclass:: PKIXCertificateVerifier

.. autofunction:: default_ssl_context

.. autofunction:: describe_certificate

SASL
====

.. autoclass:: SASLXMPPInterface

.. autofunction:: negotiate_sasl

"""  # NOQA: E501
import abc
import logging

import aiosasl
import OpenSSL.SSL
import service_identity
import service_identity.pyopenssl

from . import errors, nonza

from .utils import namespaces

logger = logging.getLogger(__name__)


def describe_certificate(x509):
    """
    Return a short ``O=../OU=../CN=../`` description of the subject of the
    :class:`OpenSSL.crypto.X509` certificate `x509`.
    """
    components = [
        (key.decode("ascii"), value.decode("utf-8"))
        for key, value in x509.get_subject().get_components()
    ]
    result = []
    for wanted in ["O", "OU"]:
        result.extend(
            "{}={}/".format(key, value)
            for key, value in components
            if key == wanted
        )
    common_name = x509.get_subject().CN
    if common_name:
        result.append("CN={}/".format(common_name))
    return "".join(result)


class CertificateVerifier(metaclass=abc.ABCMeta):
    """
    A certificate verifier hooks into the two mechanisms provided by
    :class:`aioopenssl.STARTTLSTransport` for certificate verification.

    On the one hand, the verify callback provided by
    :class:`OpenSSL.SSL.Context` is used and forwarded to
    :meth:`verify_callback`. On the other hand, the post handshake coroutine
    is set to :meth:`post_handshake`. An exception raised from
    :meth:`post_handshake` aborts the connection.
    """

    def setup_context(self, ctx, transport):
        self.transport = transport
        ctx.set_verify(OpenSSL.SSL.VERIFY_PEER, self.verify_callback)

    @abc.abstractmethod
    def verify_callback(self, conn, x509, errno, errdepth, returncode):
        return returncode

    @abc.abstractmethod
    async def post_handshake(self, transport):
        pass


class PKIXCertificateVerifier(CertificateVerifier):
    """
    This verifier enables the default PKIX based verification of certificates
    as implemented by OpenSSL, using the system trust store.

    After the handshake, the verified chain must contain at least one
    certificate and the leaf certificate must match `domain` (:rfc:`6125`
    rules, via :mod:`service_identity`). Each certificate of the chain is
    written to the text file-like `log`, if given.
    """

    def __init__(self, domain, log=None):
        super().__init__()
        self.domain = domain
        self.log = log

    def verify_callback(self, conn, x509, errno, errdepth, returncode):
        if not returncode:
            logger.warning("certificate verification failed (by OpenSSL)")
        return returncode

    def setup_context(self, ctx, transport):
        super().setup_context(ctx, transport)
        ctx.set_default_verify_paths()

    async def post_handshake(self, transport):
        conn = transport.get_extra_info("conn")
        chain = conn.get_verified_chain()
        if not chain:
            raise errors.TLSFailure("failed to verify TLS certificate")

        for i, x509 in enumerate(chain):
            line = "  certificate {}: {}".format(i, describe_certificate(x509))
            logger.info("%s", line.strip())
            if self.log is not None:
                print(line, file=self.log)

        try:
            service_identity.pyopenssl.verify_hostname(conn, self.domain)
        except (service_identity.VerificationError,
                service_identity.CertificateError) as exc:
            raise errors.TLSFailure(
                "failed to match TLS certificate to name: {}".format(exc)
            ) from None


def default_ssl_context():
    """
    Return a sensibly configured :class:`OpenSSL.SSL.Context` context.

    The context has SSLv2 and SSLv3 disabled, and supports TLS 1.0+
    (depending on the version of the SSL library). Peer verification is
    enabled against the default trust store.
    """

    ctx = OpenSSL.SSL.Context(OpenSSL.SSL.SSLv23_METHOD)
    ctx.set_options(OpenSSL.SSL.OP_NO_SSLv2 | OpenSSL.SSL.OP_NO_SSLv3)
    ctx.set_verify(OpenSSL.SSL.VERIFY_PEER, default_verify_callback)
    ctx.set_default_verify_paths()
    return ctx


def default_verify_callback(conn, x509, errno, errdepth, returncode):
    return errno == 0


class SASLXMPPInterface(aiosasl.SASLInterface):
    """
    Adaptor between :mod:`aiosasl` and a :class:`~.protocol.XMLStream`.

    Everything written by :meth:`initiate` and :meth:`respond` is muted, so
    that credentials never reach the outbound capture or the debug log.
    """

    def __init__(self, xmlstream):
        super().__init__()
        self.xmlstream = xmlstream

    async def _send_sasl_node_and_wait_for(self, node):
        self.xmlstream.send_xso(node)
        st = await self.xmlstream.read_stanza()
        reply = st.value

        if isinstance(reply, nonza.SASLFailure):
            raise aiosasl.SASLFailure(reply.condition_name, text=reply.text)

        if not isinstance(reply, (nonza.SASLSuccess, nonza.SASLChallenge)):
            raise errors.ProtocolViolation(
                "expected <success> or <failure>, got <{}> in {}".format(
                    st.name[1], st.name[0],
                )
            )

        return reply.TAG[1], reply.payload

    async def initiate(self, mechanism, payload=None):
        with self.xmlstream.mute():
            return await self._send_sasl_node_and_wait_for(
                nonza.SASLAuth(mechanism=mechanism,
                               payload=payload))

    async def respond(self, payload):
        with self.xmlstream.mute():
            return await self._send_sasl_node_and_wait_for(
                nonza.SASLResponse(payload=payload)
            )

    async def abort(self):
        try:
            await self._send_sasl_node_and_wait_for(nonza.SASLAbort())
        except aiosasl.SASLFailure as err:
            if err.opaque_error != "aborted":
                raise
            return "failure", None
        else:
            raise aiosasl.SASLFailure(
                "aborted",
                text="unexpected non-failure after abort"
            )


async def negotiate_sasl(xmlstream, features, user, password):
    """
    Authenticate as `user` with `password` using SASL PLAIN over
    `xmlstream`.

    :param features: The current stream features.
    :type features: :class:`~.nonza.StreamFeatures`
    :raises errors.SASLUnavailable: if the server does not offer ``PLAIN``.
        Nothing is sent in that case.
    :raises errors.AuthenticationFailure: if the server replied with
        ``failure``.
    :raises errors.ProtocolViolation: if the server replied with anything
        else than ``success`` or ``failure``.
    """
    try:
        mechanisms = features[nonza.SASLMechanisms].get_mechanism_list()
    except KeyError:
        mechanisms = []

    token = aiosasl.PLAIN.any_supported(mechanisms)
    if token is None:
        logger.error("PLAIN not among offered mechanisms: %r", mechanisms)
        raise errors.SASLUnavailable("PLAIN authentication is not an option")

    async def credential_provider():
        return user, password

    mechanism = aiosasl.PLAIN(credential_provider)
    sm = aiosasl.SASLStateMachine(SASLXMPPInterface(xmlstream))
    try:
        await mechanism.authenticate(sm, token)
    except aiosasl.SASLFailure as err:
        if err.opaque_error is None:
            # PLAIN got a challenge instead of an outcome
            raise errors.ProtocolViolation(
                "expected <success> or <failure>, got <challenge> in "
                "{}".format(namespaces.sasl)
            ) from None
        raise errors.AuthenticationFailure(
            err.opaque_error,
            text=err.text,
        ) from None
