########################################################################
# File name: test_roster.py
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

import xmppclient.decoder as decoder
import xmppclient.roster as roster
import xmppclient.stanza as stanza

from xmppclient.testutils import serialize_in_stream


class Testretrieve_roster(unittest.TestCase):
    def setUp(self):
        self.conn = unittest.mock.Mock()
        self.conn.jid = "alice@example.com/r"

    def test_sends_query_and_returns_id(self):
        id_ = roster.retrieve_roster(self.conn)

        (iq, ), _ = self.conn.send.call_args
        self.assertIsInstance(iq, stanza.IQ)
        self.assertEqual(id_, iq.id_)
        self.assertTrue(id_)
        self.assertEqual(
            '<iq from="alice@example.com/r" id="{}" type="get">'
            '<query xmlns="jabber:iq:roster"/>'
            '</iq>'.format(id_).encode("utf-8"),
            serialize_in_stream(iq),
        )

    def test_ids_differ(self):
        first = roster.retrieve_roster(self.conn)
        second = roster.retrieve_roster(self.conn)
        self.assertNotEqual(first, second)


class TestQuery(unittest.TestCase):
    def test_decode_result(self):
        st = decoder.decode(io.BytesIO(
            b"<iq xmlns='jabber:client' type='result' id='r1'>"
            b"<query xmlns='jabber:iq:roster' ver='v7'>"
            b"<item jid='bob@example.com' name='Bob' subscription='both'>"
            b"<group>Friends</group><group>Work</group>"
            b"</item>"
            b"<item jid='carol@example.com'/>"
            b"</query>"
            b"</iq>"
        ))

        query = st.value.payload
        self.assertIsInstance(query, roster.Query)
        self.assertEqual("v7", query.ver)

        bob, carol = query.items
        self.assertEqual("bob@example.com", bob.jid)
        self.assertEqual("Bob", bob.name)
        self.assertEqual("both", bob.subscription)
        self.assertSequenceEqual(["Friends", "Work"],
                                 [group.name for group in bob.groups])

        self.assertEqual("carol@example.com", carol.jid)
        self.assertIsNone(carol.name)
        self.assertEqual("none", carol.subscription)
        self.assertSequenceEqual([], carol.groups)
