########################################################################
# File name: test_security_layer.py
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
import io
import unittest
import unittest.mock

import OpenSSL.SSL
import service_identity

import xmppclient.decoder as decoder
import xmppclient.errors as errors
import xmppclient.protocol as protocol
import xmppclient.security_layer as security_layer

from xmppclient.testutils import (
    TransportMock,
    run_coroutine,
    run_coroutine_with_peer,
)


STREAM_HEADER = (
    b'<?xml version="1.0"?>'
    b'<stream:stream xmlns="jabber:client" '
    b'xmlns:stream="http://etherx.jabber.org/streams" '
    b'to="example.com" version="1.0">'
)

PEER_STREAM_HEADER = (
    b"<stream:stream xmlns='jabber:client' "
    b"xmlns:stream='http://etherx.jabber.org/streams' "
    b"from='example.com' id='s1' version='1.0'>"
)

PLAIN_AUTH = (
    b'<auth xmlns="urn:ietf:params:xml:ns:xmpp-sasl" '
    b'mechanism="PLAIN">AGFsaWNlAHNlY3JldA==</auth>'
)


def make_features(*mechanisms):
    return decoder.decode(io.BytesIO(
        b"<features xmlns='http://etherx.jabber.org/streams'>"
        b"<mechanisms xmlns='urn:ietf:params:xml:ns:xmpp-sasl'>" +
        b"".join(
            b"<mechanism>" + name.encode("ascii") + b"</mechanism>"
            for name in mechanisms
        ) +
        b"</mechanisms>"
        b"</features>"
    )).value


def make_x509(components, common_name):
    x509 = unittest.mock.Mock()
    subject = x509.get_subject.return_value
    subject.get_components.return_value = components
    subject.CN = common_name
    return x509


class Testdescribe_certificate(unittest.TestCase):
    def test_orders_components(self):
        x509 = make_x509(
            [
                (b"C", b"DE"),
                (b"CN", b"example.com"),
                (b"OU", b"Operations"),
                (b"O", b"Example Org"),
            ],
            "example.com",
        )

        self.assertEqual(
            "O=Example Org/OU=Operations/CN=example.com/",
            security_layer.describe_certificate(x509),
        )

    def test_common_name_only(self):
        x509 = make_x509([(b"CN", b"example.com")], "example.com")
        self.assertEqual(
            "CN=example.com/",
            security_layer.describe_certificate(x509),
        )

    def test_empty_subject(self):
        x509 = make_x509([], None)
        self.assertEqual("", security_layer.describe_certificate(x509))


class TestPKIXCertificateVerifier(unittest.TestCase):
    def setUp(self):
        self.log = io.StringIO()
        self.verifier = security_layer.PKIXCertificateVerifier(
            "example.com",
            self.log,
        )
        self.conn = unittest.mock.Mock()
        self.transport = unittest.mock.Mock()
        self.transport.get_extra_info.return_value = self.conn

    def test_is_certificate_verifier(self):
        self.assertIsInstance(self.verifier,
                              security_layer.CertificateVerifier)

    def test_setup_context(self):
        ctx = unittest.mock.Mock()
        self.verifier.setup_context(ctx, self.transport)

        ctx.set_verify.assert_called_once_with(
            OpenSSL.SSL.VERIFY_PEER,
            self.verifier.verify_callback,
        )
        ctx.set_default_verify_paths.assert_called_once_with()
        self.assertIs(self.transport, self.verifier.transport)

    def test_verify_callback_passes_openssl_result(self):
        self.assertTrue(self.verifier.verify_callback(
            None, None, 0, 0, True))
        self.assertFalse(self.verifier.verify_callback(
            None, None, 20, 0, False))

    def test_empty_chain_fails(self):
        self.conn.get_verified_chain.return_value = []

        with unittest.mock.patch(
                "service_identity.pyopenssl.verify_hostname") as verify:
            with self.assertRaises(errors.TLSFailure) as ctx:
                run_coroutine(self.verifier.post_handshake(self.transport))

        self.assertIn("failed to verify TLS certificate",
                      str(ctx.exception))
        self.transport.get_extra_info.assert_called_once_with("conn")
        verify.assert_not_called()

    def test_chain_is_logged_and_hostname_checked(self):
        self.conn.get_verified_chain.return_value = [
            make_x509([(b"CN", b"example.com")], "example.com"),
            make_x509([(b"O", b"Example CA")], None),
        ]

        with unittest.mock.patch(
                "service_identity.pyopenssl.verify_hostname") as verify:
            run_coroutine(self.verifier.post_handshake(self.transport))

        verify.assert_called_once_with(self.conn, "example.com")
        self.assertEqual(
            "  certificate 0: CN=example.com/\n"
            "  certificate 1: O=Example CA/\n",
            self.log.getvalue(),
        )

    def test_hostname_mismatch_fails(self):
        self.conn.get_verified_chain.return_value = [
            make_x509([(b"CN", b"other.example")], "other.example"),
        ]

        with unittest.mock.patch(
                "service_identity.pyopenssl.verify_hostname") as verify:
            verify.side_effect = service_identity.VerificationError(
                errors=[]
            )
            with self.assertRaises(errors.TLSFailure) as ctx:
                run_coroutine(self.verifier.post_handshake(self.transport))

        self.assertIn("failed to match TLS certificate to name",
                      str(ctx.exception))

    def test_certificate_without_subject_alt_name_fails(self):
        self.conn.get_verified_chain.return_value = [
            make_x509([(b"CN", b"example.com")], "example.com"),
        ]

        with unittest.mock.patch(
                "service_identity.pyopenssl.verify_hostname") as verify:
            verify.side_effect = service_identity.CertificateError(
                "Certificate does not contain any subjectAltName's."
            )
            with self.assertRaises(errors.TLSFailure) as ctx:
                run_coroutine(self.verifier.post_handshake(self.transport))

        self.assertIn("failed to match TLS certificate to name",
                      str(ctx.exception))
        self.assertIn("subjectAltName", str(ctx.exception))


class Testdefault_ssl_context(unittest.TestCase):
    def test_configuration(self):
        with unittest.mock.patch("OpenSSL.SSL.Context") as Context:
            ctx = security_layer.default_ssl_context()

        Context.assert_called_once_with(OpenSSL.SSL.SSLv23_METHOD)
        self.assertIs(Context(), ctx)
        ctx.set_options.assert_called_once_with(
            OpenSSL.SSL.OP_NO_SSLv2 | OpenSSL.SSL.OP_NO_SSLv3
        )
        ctx.set_verify.assert_called_once_with(
            OpenSSL.SSL.VERIFY_PEER,
            security_layer.default_verify_callback,
        )
        ctx.set_default_verify_paths.assert_called_once_with()


class Testnegotiate_sasl(unittest.TestCase):
    def setUp(self):
        self.out_log = io.BytesIO()
        self.xmlstream = protocol.XMLStream(
            to="example.com",
            out_log=self.out_log,
        )
        self.transport = TransportMock(self, self.xmlstream)
        self.transport.connect()

    def _negotiate(self, features, actions):
        async def test():
            self.xmlstream.reset()
            await security_layer.negotiate_sasl(
                self.xmlstream, features, "alice", "secret",
            )

        return run_coroutine_with_peer(
            test(),
            self.transport.run_test(
                [
                    TransportMock.Write(
                        STREAM_HEADER,
                        response=TransportMock.Receive(PEER_STREAM_HEADER),
                    ),
                ] + actions
            )
        )

    def test_plain_success(self):
        self._negotiate(
            make_features("SCRAM-SHA-1", "PLAIN"),
            [
                TransportMock.Write(
                    PLAIN_AUTH,
                    response=TransportMock.Receive(
                        b"<success xmlns='urn:ietf:params:xml:ns:xmpp-sasl'/>"
                    )
                ),
            ]
        )

        # credentials never reach the capture
        self.assertEqual(STREAM_HEADER, self.out_log.getvalue())

    def test_plain_not_offered(self):
        with self.assertRaises(errors.SASLUnavailable) as ctx:
            self._negotiate(make_features("SCRAM-SHA-1"), [])

        self.assertIn("PLAIN authentication is not an option",
                      str(ctx.exception))

    def test_no_mechanisms_feature(self):
        features = decoder.decode(io.BytesIO(
            b"<features xmlns='http://etherx.jabber.org/streams'/>"
        )).value

        with self.assertRaises(errors.SASLUnavailable):
            self._negotiate(features, [])

    def test_failure(self):
        with self.assertRaises(errors.AuthenticationFailure) as ctx:
            self._negotiate(
                make_features("PLAIN"),
                [
                    TransportMock.Write(
                        PLAIN_AUTH,
                        response=TransportMock.Receive(
                            b"<failure xmlns='urn:ietf:params:xml:ns:"
                            b"xmpp-sasl'><not-authorized/>"
                            b"<text>wrong password</text></failure>"
                        )
                    ),
                ]
            )

        self.assertEqual("not-authorized", ctx.exception.condition)
        self.assertEqual("wrong password", ctx.exception.text)

    def test_failure_with_unlisted_condition(self):
        with self.assertRaises(errors.AuthenticationFailure) as ctx:
            self._negotiate(
                make_features("PLAIN"),
                [
                    TransportMock.Write(
                        PLAIN_AUTH,
                        response=TransportMock.Receive(
                            b"<failure xmlns='urn:ietf:params:xml:ns:"
                            b"xmpp-sasl'><bad-auth/></failure>"
                        )
                    ),
                ]
            )

        self.assertEqual("bad-auth", ctx.exception.condition)
        self.assertEqual("authentication failure: bad-auth",
                         str(ctx.exception))

    def test_failure_without_condition(self):
        with self.assertRaises(errors.AuthenticationFailure) as ctx:
            self._negotiate(
                make_features("PLAIN"),
                [
                    TransportMock.Write(
                        PLAIN_AUTH,
                        response=TransportMock.Receive(
                            b"<failure xmlns='urn:ietf:params:xml:ns:"
                            b"xmpp-sasl'/>"
                        )
                    ),
                ]
            )

        self.assertEqual("undefined-condition", ctx.exception.condition)
        self.assertIsNone(ctx.exception.text)

    def test_unexpected_reply(self):
        with self.assertRaises(errors.ProtocolViolation) as ctx:
            self._negotiate(
                make_features("PLAIN"),
                [
                    TransportMock.Write(
                        PLAIN_AUTH,
                        response=TransportMock.Receive(
                            b"<proceed xmlns='urn:ietf:params:xml:ns:"
                            b"xmpp-tls'/>"
                        )
                    ),
                ]
            )

        self.assertEqual(
            "expected <success> or <failure>, got <proceed> in "
            "urn:ietf:params:xml:ns:xmpp-tls",
            str(ctx.exception),
        )

    def test_challenge_is_protocol_violation(self):
        with self.assertRaises(errors.ProtocolViolation) as ctx:
            self._negotiate(
                make_features("PLAIN"),
                [
                    TransportMock.Write(
                        PLAIN_AUTH,
                        response=TransportMock.Receive(
                            b"<challenge xmlns='urn:ietf:params:xml:ns:"
                            b"xmpp-sasl'>=</challenge>"
                        )
                    ),
                ]
            )

        self.assertIn("got <challenge>", str(ctx.exception))
