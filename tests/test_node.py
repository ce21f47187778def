########################################################################
# File name: test_node.py
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
import xmppclient.handler as handler
import xmppclient.node as node
import xmppclient.protocol as protocol
import xmppclient.security_layer as security_layer
import xmppclient.stanza as stanza

from xmppclient.testutils import (
    TransportMock,
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

BIND_REQUEST = (
    b'<iq id="bind_1" type="set">'
    b'<bind xmlns="urn:ietf:params:xml:ns:xmpp-bind"/>'
    b'</iq>'
)

SESSION_REQUEST = (
    b'<iq to="example.com" id="sess_1" type="set">'
    b'<session xmlns="urn:ietf:params:xml:ns:xmpp-session"/>'
    b'</iq>'
)


def bind_result(jid):
    return (
        b"<iq type='result' id='bind_1'>"
        b"<bind xmlns='urn:ietf:params:xml:ns:xmpp-bind'>"
        b"<jid>" + jid + b"</jid>"
        b"</bind>"
        b"</iq>"
    )


class Testsplit_address(unittest.TestCase):
    def test_host_and_port(self):
        self.assertEqual(
            ("xmpp.example.com", 5223),
            node.split_address("xmpp.example.com:5223"),
        )

    def test_default_port(self):
        self.assertEqual(
            ("xmpp.example.com", node.DEFAULT_PORT),
            node.split_address("xmpp.example.com"),
        )
        self.assertEqual(5222, node.DEFAULT_PORT)

    def test_ipv6_literal(self):
        self.assertEqual(("::1", 5222), node.split_address("[::1]:5222"))
        self.assertEqual(("::1", 5222), node.split_address("[::1]"))

    def test_malformed_port(self):
        with self.assertRaises(ValueError):
            node.split_address("xmpp.example.com:xmpp")


class TestConfig(unittest.TestCase):
    def test_defaults(self):
        config = node.Config()
        self.assertFalse(config.tls_required)
        self.assertIsNone(config.in_log)
        self.assertIsNone(config.out_log)
        self.assertIsNone(config.log)
        self.assertIs(security_layer.default_ssl_context,
                      config.ssl_context_factory)
        self.assertIs(security_layer.PKIXCertificateVerifier,
                      config.certificate_verifier_factory)

    def test_replace(self):
        config = node.Config()._replace(tls_required=True)
        self.assertTrue(config.tls_required)


class TestConnection(unittest.TestCase):
    def setUp(self):
        self.out_log = io.BytesIO()
        self.xmlstream = protocol.XMLStream(
            to="example.com",
            out_log=self.out_log,
        )
        self.transport = TransportMock(self, self.xmlstream)
        self.transport.connect()
        self.handler = unittest.mock.Mock(spec=handler.Handler)
        self.conn = node.Connection(self.xmlstream, "example.com",
                                    handler=self.handler)

    def _run(self, coro, stimulus, actions=[]):
        async def test():
            self.xmlstream.reset()
            return await coro

        return run_coroutine_with_peer(
            test(),
            self.transport.run_test(
                [
                    TransportMock.Write(
                        STREAM_HEADER,
                        response=TransportMock.Receive(
                            PEER_STREAM_HEADER + stimulus
                        ),
                    ),
                ] + actions
            )
        )

    def test_initial_state(self):
        self.assertIsNone(self.conn.jid)
        self.assertEqual("example.com", self.conn.domain)
        self.assertSequenceEqual([], self.conn.online_roster)
        self.assertIs(self.xmlstream, self.conn.stream)
        self.assertIs(self.handler, self.conn.handler)

    def test_jid_cannot_be_rebound(self):
        self.conn.jid = "alice@example.com/abc"
        with self.assertRaises(AttributeError):
            self.conn.jid = "alice@example.com/def"
        self.assertEqual("alice@example.com/abc", self.conn.jid)

    def test_send_and_send_raw_use_stream(self):
        stream = unittest.mock.Mock()
        conn = node.Connection(stream, "example.com")
        msg = stanza.Message()
        conn.send(msg)
        conn.send_raw("<presence/>")
        self.assertSequenceEqual(
            [
                unittest.mock.call.send_xso(msg),
                unittest.mock.call.send_raw("<presence/>"),
            ],
            stream.mock_calls,
        )

    def test_bind_stores_jid_as_received(self):
        self._run(
            self.conn.bind(),
            b"",
            [
                TransportMock.Write(
                    BIND_REQUEST,
                    response=TransportMock.Receive(
                        bind_result(b"Alice@Example.COM/abc123")
                    ),
                ),
            ]
        )

        self.assertEqual("Alice@Example.COM/abc123", self.conn.jid)

    def test_bind_without_jid(self):
        with self.assertRaises(errors.ProtocolViolation) as ctx:
            self._run(
                self.conn.bind(),
                b"",
                [
                    TransportMock.Write(
                        BIND_REQUEST,
                        response=TransportMock.Receive(bind_result(b"")),
                    ),
                ]
            )

        self.assertEqual("bind result missing", str(ctx.exception))
        self.assertIsNone(self.conn.jid)

    def test_bind_with_empty_result(self):
        with self.assertRaises(errors.ProtocolViolation) as ctx:
            self._run(
                self.conn.bind(),
                b"",
                [
                    TransportMock.Write(
                        BIND_REQUEST,
                        response=TransportMock.Receive(
                            b"<iq type='result' id='bind_1'/>"
                        ),
                    ),
                ]
            )

        self.assertEqual("bind result missing", str(ctx.exception))

    def test_bind_error(self):
        with self.assertRaises(errors.ProtocolViolation) as ctx:
            self._run(
                self.conn.bind(),
                b"",
                [
                    TransportMock.Write(
                        BIND_REQUEST,
                        response=TransportMock.Receive(
                            b"<iq type='error' id='bind_1'>"
                            b"<error type='cancel'>"
                            b"<conflict xmlns='urn:ietf:params:xml:ns:"
                            b"xmpp-stanzas'/>"
                            b"</error>"
                            b"</iq>"
                        ),
                    ),
                ]
            )

        self.assertEqual("bind failed: conflict", str(ctx.exception))

    def test_bind_reply_not_an_iq(self):
        with self.assertRaises(errors.ProtocolViolation) as ctx:
            self._run(
                self.conn.bind(),
                b"",
                [
                    TransportMock.Write(
                        BIND_REQUEST,
                        response=TransportMock.Receive(b"<message/>"),
                    ),
                ]
            )

        self.assertEqual(
            "unmarshal <iq>: expected <iq> but got <message> in "
            "jabber:client",
            str(ctx.exception),
        )

    def test_establish_session(self):
        self._run(
            self.conn.establish_session(),
            b"",
            [
                TransportMock.Write(
                    SESSION_REQUEST,
                    response=TransportMock.Receive(
                        b"<iq type='result' id='sess_1'/>"
                    ),
                ),
            ]
        )

    def test_establish_session_failure(self):
        with self.assertRaises(errors.StreamNegotiationFailure) as ctx:
            self._run(
                self.conn.establish_session(),
                b"",
                [
                    TransportMock.Write(
                        SESSION_REQUEST,
                        response=TransportMock.Receive(
                            b"<iq type='error' id='sess_1'/>"
                        ),
                    ),
                ]
            )

        self.assertEqual("session establishment failed", str(ctx.exception))

    def test_listen_dispatches_until_connection_lost(self):
        self._run(
            self.conn.listen(),
            b"<presence from='bob@example.com/a'/>"
            b"<presence from='carol@example.com/b' type='unavailable'/>"
            b"<message from='bob@example.com/a' type='chat'>"
            b"<body>hello</body>"
            b"</message>"
            b"<iq type='get' id='x'/>"
            b"<presence from='bob@example.com/a'/>"
        )

        self.assertSequenceEqual(
            [
                "bob@example.com/a",
                "carol@example.com/b",
                "bob@example.com/a",
            ],
            self.conn.online_roster,
        )

        names = [name for name, *_ in self.handler.mock_calls]
        self.assertSequenceEqual(
            [
                "recv_presence",
                "recv_presence",
                "recv_message",
                "recv_presence",
            ],
            names,
        )
        _, (msg, ), _ = self.handler.mock_calls[2]
        self.assertEqual("hello", msg.body)

    def test_listen_without_handler(self):
        self.conn.handler = None
        self._run(
            self.conn.listen(),
            b"<presence from='bob@example.com/a'/>"
            b"<message><body>hi</body></message>"
        )

        self.assertSequenceEqual(["bob@example.com/a"],
                                 self.conn.online_roster)

    def test_listen_stops_on_decode_error(self):
        self._run(
            self.conn.listen(),
            b"<foo xmlns='urn:example'/>"
            b"<presence from='bob@example.com/a'/>"
        )

        self.assertSequenceEqual([], self.conn.online_roster)
        self.handler.recv_presence.assert_not_called()

    def _run_until_connection_lost(self, coro, stimulus, exc):
        async def test():
            self.xmlstream.reset()
            return await coro

        return run_coroutine_with_peer(
            test(),
            self.transport.run_test(
                [
                    TransportMock.Write(
                        STREAM_HEADER,
                        response=[
                            TransportMock.Receive(
                                PEER_STREAM_HEADER + stimulus
                            ),
                            TransportMock.LoseConnection(exc),
                        ],
                    ),
                ]
            )
        )

    def test_listen_ends_on_tls_read_failure(self):
        self._run_until_connection_lost(
            self.conn.listen(),
            b"<presence from='bob@example.com/a'/>",
            OpenSSL.SSL.Error("decryption failed"),
        )

        self.assertSequenceEqual(["bob@example.com/a"],
                                 self.conn.online_roster)
        self.handler.recv_presence.assert_called_once_with(unittest.mock.ANY)

    def test_next_ends_on_tls_read_failure(self):
        async def test():
            queue = asyncio.Queue()
            await self.conn.next(queue)
            return queue.qsize()

        result = self._run_until_connection_lost(
            test(),
            b"<message><body>hi</body></message>",
            OpenSSL.SSL.Error("decryption failed"),
        )

        self.assertEqual(1, result)

    def test_next_forwards_all_stanzas(self):
        async def test():
            queue = asyncio.Queue()
            await self.conn.next(queue)
            result = []
            while not queue.empty():
                result.append(queue.get_nowait())
            return result

        result = self._run(
            test(),
            b"<presence from='bob@example.com/a'/>"
            b"<iq type='get' id='x'/>"
        )

        self.assertSequenceEqual(
            ["presence", "iq"],
            [st.name[1] for st in result],
        )
        self.assertIsInstance(result[0].value, stanza.Presence)

    def test_close(self):
        async def test():
            self.conn.close()

        self._run(
            test(),
            b"",
            [
                TransportMock.Write(b"</stream:stream>"),
                TransportMock.Close(),
            ]
        )


class Testdial(unittest.TestCase):
    def setUp(self):
        self.transport = TransportMock(self)
        self.connect_kwargs = []

        async def create_starttls_connection(loop, protocol_factory,
                                             **kwargs):
            self.connect_kwargs.append(kwargs)
            proto = protocol_factory()
            self.transport.connect(proto)
            return self.transport, proto

        patcher = unittest.mock.patch(
            "aioopenssl.create_starttls_connection",
            new=create_starttls_connection,
        )
        patcher.start()
        self.addCleanup(patcher.stop)

        self.out_log = io.BytesIO()
        self.log = io.StringIO()
        self.config = node.Config(out_log=self.out_log, log=self.log)

    def _features(self, *children):
        return (
            PEER_STREAM_HEADER +
            b"<stream:features>" + b"".join(children) + b"</stream:features>"
        )

    def _dial(self, actions):
        return run_coroutine_with_peer(
            node.dial("xmpp.example.com:5222", "alice", "example.com",
                      "secret", self.config),
            self.transport.run_test(actions),
        )

    def _actions_until_bind(self, *post_auth_features):
        return [
            TransportMock.Write(
                STREAM_HEADER,
                response=TransportMock.Receive(self._features(
                    b"<mechanisms xmlns='urn:ietf:params:xml:ns:xmpp-sasl'>"
                    b"<mechanism>PLAIN</mechanism>"
                    b"</mechanisms>"
                ))
            ),
            TransportMock.Write(
                PLAIN_AUTH,
                response=TransportMock.Receive(
                    b"<success xmlns='urn:ietf:params:xml:ns:xmpp-sasl'/>"
                )
            ),
            TransportMock.Write(
                STREAM_HEADER,
                response=TransportMock.Receive(self._features(
                    b"<bind xmlns='urn:ietf:params:xml:ns:xmpp-bind'/>",
                    *post_auth_features
                ))
            ),
            TransportMock.Write(
                BIND_REQUEST,
                response=TransportMock.Receive(
                    bind_result(b"alice@example.com/abc123")
                )
            ),
        ]

    def test_full_bootstrap(self):
        conn = self._dial(self._actions_until_bind())

        self.assertIsInstance(conn, node.Connection)
        self.assertEqual("alice@example.com/abc123", conn.jid)
        self.assertEqual("example.com", conn.domain)
        self.assertEqual(5222, self.connect_kwargs[0]["port"])
        self.assertEqual("xmpp.example.com",
                         self.connect_kwargs[0]["host"])

        # the credentials are muted, no session was requested
        self.assertEqual(
            STREAM_HEADER + STREAM_HEADER + BIND_REQUEST,
            self.out_log.getvalue(),
        )
        self.assertEqual(
            "Making TCP connection to xmpp.example.com:5222\n"
            "Authenticating as alice\n"
            "Authentication successful\n"
            "Bound to JID alice@example.com/abc123\n",
            self.log.getvalue(),
        )

    def test_session_when_announced(self):
        conn = self._dial(
            self._actions_until_bind(
                b"<session xmlns='urn:ietf:params:xml:ns:xmpp-session'/>"
            ) + [
                TransportMock.Write(
                    SESSION_REQUEST,
                    response=TransportMock.Receive(
                        b"<iq type='result' id='sess_1'/>"
                    )
                ),
            ]
        )

        self.assertEqual("alice@example.com/abc123", conn.jid)

    def test_authentication_failure_aborts(self):
        with self.assertRaises(errors.AuthenticationFailure) as ctx:
            self._dial([
                TransportMock.Write(
                    STREAM_HEADER,
                    response=TransportMock.Receive(self._features(
                        b"<mechanisms xmlns='urn:ietf:params:xml:ns:"
                        b"xmpp-sasl'>"
                        b"<mechanism>PLAIN</mechanism>"
                        b"</mechanisms>"
                    ))
                ),
                TransportMock.Write(
                    PLAIN_AUTH,
                    response=TransportMock.Receive(
                        b"<failure xmlns='urn:ietf:params:xml:ns:"
                        b"xmpp-sasl'><not-authorized/></failure>"
                    )
                ),
                TransportMock.Abort(),
            ])

        self.assertEqual("not-authorized", ctx.exception.condition)
        self.assertEqual(
            "Making TCP connection to xmpp.example.com:5222\n"
            "Authenticating as alice\n",
            self.log.getvalue(),
        )
