########################################################################
# File name: test_protocol.py
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
import asyncio
import io
import unittest
import unittest.mock

import OpenSSL.SSL

import xmppclient.errors as errors
import xmppclient.nonza as nonza
import xmppclient.protocol as protocol
import xmppclient.stanza as stanza

from xmppclient.utils import namespaces
from xmppclient.testutils import (
    TransportMock,
    CoroutineMock,
    run_coroutine,
    run_coroutine_with_peer,
)


TEST_FROM = "example.com"

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

FEATURES = (
    b"<stream:features>"
    b"<mechanisms xmlns='urn:ietf:params:xml:ns:xmpp-sasl'>"
    b"<mechanism>PLAIN</mechanism>"
    b"</mechanisms>"
    b"</stream:features>"
)


class TestDebugWrapper(unittest.TestCase):
    def setUp(self):
        self.dest = io.BytesIO()
        self.capture = io.BytesIO()
        self.logger = unittest.mock.Mock()
        self.logger.isEnabledFor.return_value = True
        self.wrapper = protocol.DebugWrapper(self.dest, self.logger,
                                             capture=self.capture)

    def test_passes_through_and_captures(self):
        self.wrapper.write(b"foo")
        self.wrapper.write(b"bar")
        self.assertEqual(b"foobar", self.dest.getvalue())
        self.assertEqual(b"foobar", self.capture.getvalue())
        self.logger.debug.assert_not_called()

        self.wrapper.flush()
        self.logger.debug.assert_called_once_with("SENT %r", b"foobar")

    def test_mute_hides_from_capture_and_log(self):
        self.wrapper.write(b"foo")
        with self.wrapper.mute():
            self.wrapper.write(b"secret")
            self.wrapper.write(b"more secret")
        self.wrapper.write(b"bar")
        self.wrapper.flush()

        self.assertEqual(b"foosecretmore secretbar", self.dest.getvalue())
        self.assertEqual(b"foobar", self.capture.getvalue())
        self.logger.debug.assert_called_once_with(
            "SENT %r",
            b"foo<!-- some bytes omitted -->bar",
        )


class TestXMLStream(unittest.TestCase):
    def setUp(self):
        self.in_log = io.BytesIO()
        self.out_log = io.BytesIO()
        self.xmlstream = protocol.XMLStream(
            to=TEST_FROM,
            in_log=self.in_log,
            out_log=self.out_log,
        )
        self.transport = TransportMock(self, self.xmlstream)
        self.transport.connect()

    def tearDown(self):
        del self.transport
        del self.xmlstream

    def _run_test(self, coro, actions, **kwargs):
        return run_coroutine_with_peer(
            coro,
            self.transport.run_test(actions, **kwargs),
        )

    def test_send_xso_requires_connection(self):
        xmlstream = protocol.XMLStream(to=TEST_FROM)
        with self.assertRaises(ConnectionError):
            xmlstream.send_xso(nonza.StartTLS())
        with self.assertRaises(ConnectionError):
            xmlstream.reset()

    def test_reset_and_get_features(self):
        features = self._run_test(
            protocol.reset_stream_and_get_features(self.xmlstream),
            [
                TransportMock.Write(
                    STREAM_HEADER,
                    response=TransportMock.Receive(
                        PEER_STREAM_HEADER + FEATURES
                    )
                ),
            ]
        )

        self.assertIsInstance(features, nonza.StreamFeatures)
        self.assertSequenceEqual(
            ["PLAIN"],
            features[nonza.SASLMechanisms].get_mechanism_list(),
        )
        self.assertEqual(STREAM_HEADER, self.out_log.getvalue())
        self.assertEqual(PEER_STREAM_HEADER + FEATURES,
                         self.in_log.getvalue())

    def test_non_stream_root_is_protocol_violation(self):
        with self.assertRaises(errors.ProtocolViolation) as ctx:
            self._run_test(
                protocol.reset_stream_and_get_features(self.xmlstream),
                [
                    TransportMock.Write(
                        STREAM_HEADER,
                        response=TransportMock.Receive(
                            b"<foo xmlns='urn:example'>"
                        )
                    ),
                ]
            )

        self.assertEqual(
            "expected <stream> but got <foo> in urn:example",
            str(ctx.exception),
        )

    def test_stream_error_instead_of_features(self):
        with self.assertRaises(errors.StreamError) as ctx:
            self._run_test(
                protocol.reset_stream_and_get_features(self.xmlstream),
                [
                    TransportMock.Write(
                        STREAM_HEADER,
                        response=TransportMock.Receive(
                            PEER_STREAM_HEADER +
                            b"<stream:error>"
                            b"<host-unknown xmlns='urn:ietf:params:xml:ns:"
                            b"xmpp-streams'/>"
                            b"</stream:error>"
                        )
                    ),
                ]
            )

        self.assertEqual(
            errors.StreamErrorCondition.HOST_UNKNOWN,
            ctx.exception.condition,
        )

    def test_other_element_instead_of_features(self):
        with self.assertRaises(errors.ProtocolViolation) as ctx:
            self._run_test(
                protocol.reset_stream_and_get_features(self.xmlstream),
                [
                    TransportMock.Write(
                        STREAM_HEADER,
                        response=TransportMock.Receive(
                            PEER_STREAM_HEADER +
                            b"<message/>"
                        )
                    ),
                ]
            )

        self.assertEqual(
            "unmarshal <features>: expected <features> but got <message> in "
            "jabber:client",
            str(ctx.exception),
        )

    def test_malformed_xml_is_decode_error(self):
        with self.assertRaises(errors.DecodeError):
            self._run_test(
                protocol.reset_stream_and_get_features(self.xmlstream),
                [
                    TransportMock.Write(
                        STREAM_HEADER,
                        response=TransportMock.Receive(
                            PEER_STREAM_HEADER +
                            b"<stream:features></foo>"
                        )
                    ),
                ]
            )

    def test_unknown_element_does_not_kill_the_stream(self):
        async def test():
            self.xmlstream.reset()
            with self.assertRaises(errors.DecodeError) as ctx:
                await self.xmlstream.read_stanza()
            self.assertEqual(
                "unexpected XMPP message urn:example <foo/>",
                str(ctx.exception),
            )
            return await self.xmlstream.read_stanza()

        st = self._run_test(
            test(),
            [
                TransportMock.Write(
                    STREAM_HEADER,
                    response=TransportMock.Receive(
                        PEER_STREAM_HEADER +
                        b"<foo xmlns='urn:example'><bar/></foo>"
                        b"<message from='bob@example.com'><body>hi</body>"
                        b"</message>"
                    )
                ),
            ]
        )

        self.assertEqual((namespaces.client, "message"), st.name)
        self.assertEqual("hi", st.value.body)

    def test_muted_writes_are_not_captured(self):
        async def test():
            self.xmlstream.reset()
            with self.xmlstream.mute():
                self.xmlstream.send_xso(
                    nonza.SASLAuth("PLAIN", b"\0alice\0secret")
                )
            self.xmlstream.send_xso(nonza.SASLAbort())

        self._run_test(
            test(),
            [
                TransportMock.Write(STREAM_HEADER),
                TransportMock.Write(
                    b'<auth xmlns="urn:ietf:params:xml:ns:xmpp-sasl" '
                    b'mechanism="PLAIN">AGFsaWNlAHNlY3JldA==</auth>'
                ),
                TransportMock.Write(
                    b'<abort xmlns="urn:ietf:params:xml:ns:xmpp-sasl"/>'
                ),
            ]
        )

        self.assertEqual(
            STREAM_HEADER +
            b'<abort xmlns="urn:ietf:params:xml:ns:xmpp-sasl"/>',
            self.out_log.getvalue(),
        )

    def test_send_raw(self):
        async def test():
            self.xmlstream.reset()
            self.xmlstream.send_raw("<presence/>")

        self._run_test(
            test(),
            [
                TransportMock.Write(STREAM_HEADER),
                TransportMock.Write(b"<presence/>"),
            ]
        )

        self.assertEqual(STREAM_HEADER + b"<presence/>",
                         self.out_log.getvalue())

    def test_failed_serialisation_sends_nothing(self):
        async def test():
            self.xmlstream.reset()
            msg = stanza.Message(type_="chat", body="\x00")
            with self.assertRaises(ValueError):
                self.xmlstream.send_xso(msg)
            self.xmlstream.send_xso(stanza.Presence())

        self._run_test(
            test(),
            [
                TransportMock.Write(STREAM_HEADER),
                TransportMock.Write(b"<presence/>"),
            ]
        )

    def test_close_sends_footer(self):
        async def test():
            self.xmlstream.reset()
            self.xmlstream.close()

        self._run_test(
            test(),
            [
                TransportMock.Write(STREAM_HEADER),
                TransportMock.Write(b"</stream:stream>"),
                TransportMock.Close(),
            ]
        )

    def test_peer_footer_is_connection_error(self):
        async def test():
            self.xmlstream.reset()
            with self.assertRaises(ConnectionError):
                await self.xmlstream.read_stanza()
            # the stream stays dead
            with self.assertRaises(ConnectionError):
                await self.xmlstream.read_stanza()

        self._run_test(
            test(),
            [
                TransportMock.Write(
                    STREAM_HEADER,
                    response=TransportMock.Receive(
                        PEER_STREAM_HEADER + b"</stream:stream>"
                    )
                ),
                TransportMock.Close(),
            ]
        )

    def test_connection_lost_is_raised_from_read(self):
        exc = ConnectionResetError()

        async def test():
            self.xmlstream.reset()
            with self.assertRaises(ConnectionResetError):
                await self.xmlstream.read_stanza()

        self._run_test(
            test(),
            [
                TransportMock.Write(
                    STREAM_HEADER,
                    response=TransportMock.LoseConnection(exc)
                ),
            ]
        )

    def test_tls_error_on_connection_lost_is_wrapped(self):
        exc = OpenSSL.SSL.Error("decryption failed")

        async def test():
            self.xmlstream.reset()
            with self.assertRaises(ConnectionError) as ctx:
                await self.xmlstream.read_stanza()
            self.assertIs(exc, ctx.exception.__cause__)
            self.assertIn("decryption failed", str(ctx.exception))

        self._run_test(
            test(),
            [
                TransportMock.Write(
                    STREAM_HEADER,
                    response=TransportMock.LoseConnection(exc)
                ),
            ]
        )

    def test_starttls(self):
        self.transport = TransportMock(self, self.xmlstream,
                                       with_starttls=True)
        self.transport.connect()
        ssl_context = unittest.mock.sentinel.ssl_context
        post_handshake_callback = CoroutineMock()

        async def test():
            self.xmlstream.reset()
            self.assertTrue(self.xmlstream.can_starttls())
            await self.xmlstream.starttls(ssl_context,
                                          post_handshake_callback)
            self.xmlstream.reset()

        self._run_test(
            test(),
            [
                TransportMock.Write(STREAM_HEADER),
                TransportMock.STARTTLS(ssl_context, post_handshake_callback),
                TransportMock.Write(STREAM_HEADER),
            ]
        )

        post_handshake_callback.assert_called_once_with(self.transport)

    def test_starttls_unavailable(self):
        self.assertFalse(self.xmlstream.can_starttls())
        with self.assertRaises(RuntimeError):
            run_coroutine(self.xmlstream.starttls(
                unittest.mock.sentinel.ssl_context
            ))
