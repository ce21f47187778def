########################################################################
# File name: protocol.py
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
:mod:`~xmppclient.protocol` --- XML Stream implementation
#########################################################

This module contains the :class:`XMLStream` class, which implements the XML
stream protocol used by XMPP. It makes extensive use of the
:mod:`xmppclient.xml` module and the :mod:`xmppclient.xso` subpackage to parse
and serialize XSOs received and sent on the stream.

Received stream-level elements are classified by :mod:`xmppclient.decoder`
and queued; :meth:`XMLStream.read_stanza` hands them out one at a time. The
stream never reads ahead on its own behalf: every negotiation step is a send
followed by a read.

.. autoclass:: XMLStream

Utilities for XML streams
=========================

.. autofunction:: reset_stream_and_get_features

"""

import asyncio
import contextlib
import logging

import xml.sax as sax

from . import xml, errors, nonza, decoder

logger = logging.getLogger(__name__)


class DebugWrapper:
    """
    Write-through wrapper around the transport. All bytes written are copied
    to `capture` (if given) and logged in chunks as ``SENT``. While
    :meth:`mute` is active, neither happens; the log shows
    ``<!-- some bytes omitted -->`` instead.
    """

    def __init__(self, dest, logger, capture=None):
        self.dest = dest
        self.logger = logger
        self.capture = capture
        self._pieces = []
        self._total_len = 0
        self._muted = False
        self._written_mute_marker = False

    def _emit(self):
        if self._pieces and self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug("SENT %r", b"".join(self._pieces))
        self._pieces = []
        self._total_len = 0

    def write(self, data):
        if self._muted:
            if not self._written_mute_marker:
                self._pieces.append(b"<!-- some bytes omitted -->")
                self._written_mute_marker = True
        else:
            self._pieces.append(bytes(data))
            self._total_len += len(data)
            if self.capture is not None:
                self.capture.write(data)
        result = self.dest.write(data)
        if self._total_len >= 4096:
            self._emit()
        return result

    def flush(self):
        self._emit()

    @contextlib.contextmanager
    def mute(self):
        self._muted = True
        self._written_mute_marker = False
        try:
            yield
        finally:
            self._muted = False


class XMLStream(asyncio.Protocol):
    """
    XML stream implementation. This is a streaming :class:`asyncio.Protocol`
    which translates the received bytes into :class:`~.decoder.Stanza`
    objects.

    :param to: Domain of the server the stream connects to.
    :type to: :class:`str`
    :param in_log: Binary file-like which receives a copy of every byte read.
    :param out_log: Binary file-like which receives a copy of every byte
        written, except those written while :meth:`mute` is active.
    :param sorted_attributes: Sort attributes deterministically on output
        (debug option)
    :param base_logger: Parent logger for this stream.

    Connecting the stream to a transport does not send anything; the stream
    header is sent by :meth:`reset`, which is usually called via
    :func:`reset_stream_and_get_features`.

    Fatal errors (malformed XML, a non-``stream`` root element, a stream error
    received from the peer, the stream footer and the loss of the connection)
    are raised by the next :meth:`read_stanza` call and by every call after
    that. An element which cannot be decoded only raises
    :class:`~.errors.DecodeError` once; the stream stays usable.

    .. automethod:: read_stanza

    .. automethod:: send_xso

    .. automethod:: send_raw

    .. automethod:: mute

    .. automethod:: reset

    .. automethod:: starttls

    .. automethod:: close

    .. automethod:: abort
    """

    def __init__(self, to, *,
                 in_log=None,
                 out_log=None,
                 sorted_attributes=False,
                 base_logger=logging.getLogger("xmppclient")):
        self._to = to
        self._in_log = in_log
        self._out_log = out_log
        self._sorted_attributes = sorted_attributes
        self._logger = base_logger.getChild("XMLStream")
        self._transport = None
        self._exception = None
        self._queue = asyncio.Queue()
        self._writer = None
        self._debug_wrapper = None
        self._processor = None
        self._parser = None

        self.stanza_parser = decoder.make_stanza_parser(self._rx_stanza)

    def _fail(self, err):
        if self._exception is not None:
            return
        self._exception = err
        self._queue.put_nowait(err)

    def _require_connection(self):
        if self._exception is not None:
            raise self._exception
        if self._transport is None:
            raise ConnectionError("xmlstream not connected")

    def _rx_stanza(self, st):
        if isinstance(st.value, nonza.StreamError):
            self._fail(st.value.to_exception())
            return
        self._queue.put_nowait(st)

    def _rx_exception(self, exc):
        err = decoder.wrap_exception(exc)
        self._logger.debug("failed to decode element: %s", err)
        self._queue.put_nowait(err)

    def _rx_stream_header(self):
        self._logger.debug("peer stream header: from=%r id=%r version=%r",
                           self._processor.remote_from,
                           self._processor.remote_id,
                           self._processor.remote_version)

    def _rx_stream_footer(self):
        self._fail(ConnectionError("stream closed by peer"))
        if self._transport is not None:
            self._transport.close()

    def _rx_feed(self, blob):
        try:
            self._parser.feed(blob)
        except sax.SAXParseException as exc:
            raise errors.DecodeError(str(exc)) from None

    def connection_made(self, transport):
        self._transport = transport
        self._exception = None

    def connection_lost(self, exc):
        self._kill_state()
        self._transport = None
        if exc is None:
            exc = ConnectionError("connection closed")
        elif not isinstance(exc, ConnectionError):
            # aioopenssl reports TLS read failures as OpenSSL.SSL.Error
            err = ConnectionError(str(exc))
            err.__cause__ = exc
            exc = err
        self._fail(exc)

    def data_received(self, blob):
        self._logger.debug("RECV %r", blob)
        if self._in_log is not None:
            self._in_log.write(blob)
        if self._parser is None or self._exception is not None:
            return
        try:
            self._rx_feed(blob)
        except (ConnectionError, errors.DecodeError) as exc:
            self._parser = None
            self._fail(exc)
        except (ValueError, RuntimeError) as exc:
            self._parser = None
            self._fail(errors.DecodeError(str(exc)))

    def eof_received(self):
        self._fail(ConnectionError("connection closed by peer"))

    def _kill_state(self):
        if self._writer is not None:
            self._writer.abort()
            self._writer = None
        self._processor = None
        self._parser = None

    def _reset_state(self):
        self._kill_state()

        self._processor = xml.XMPPXMLProcessor()
        self._processor.stanza_parser = self.stanza_parser
        self._processor.on_stream_header = self._rx_stream_header
        self._processor.on_stream_footer = self._rx_stream_footer
        self._processor.on_exception = self._rx_exception
        self._parser = xml.make_parser()
        self._parser.setContentHandler(self._processor)

        self._debug_wrapper = DebugWrapper(
            self._transport,
            self._logger,
            capture=self._out_log,
        )
        self._writer = xml.XMLStreamWriter(
            self._debug_wrapper,
            self._to,
            sorted_attributes=self._sorted_attributes)

    def reset(self):
        """
        Reset the stream by discarding all parser and writer state and
        sending a fresh stream header.

        If the stream has failed, the exception which killed it is
        re-raised; if no transport is connected, :class:`ConnectionError` is
        raised.
        """
        self._require_connection()
        self._reset_state()
        self._writer.start()

    async def read_stanza(self):
        """
        Wait for the next stream-level element and return it as
        :class:`~.decoder.Stanza`.

        :raises errors.DecodeError: if the element could not be decoded.
        :raises ConnectionError: (or a subclass) if the stream has died.
        """
        if self._queue.empty() and self._exception is not None:
            raise self._exception
        item = await self._queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    def send_xso(self, obj):
        """
        Serialise `obj` and send it over the stream. If serialisation fails,
        nothing is sent and the exception is re-raised.
        """
        self._require_connection()
        if self._writer is None:
            raise ConnectionError("stream header has not been sent")
        self._writer.send(obj)

    def send_raw(self, text):
        """
        Write the pre-built markup `text` unchanged. The caller is
        responsible for it being well-formed.
        """
        self._require_connection()
        self._debug_wrapper.write(text.encode("utf-8"))
        self._debug_wrapper.flush()

    def can_starttls(self):
        """
        Return true if the transport supports STARTTLS and false otherwise.
        """
        return (hasattr(self._transport, "can_starttls") and
                self._transport.can_starttls())

    async def starttls(self, ssl_context, post_handshake_callback=None):
        """
        Start TLS on the transport and wait for it to complete.

        The arguments are forwarded to
        :meth:`aioopenssl.STARTTLSTransport.starttls`. Afterwards all parser
        and writer state is discarded; :meth:`reset` must be called before
        the stream can be used again.
        """
        self._require_connection()
        if not self.can_starttls():
            raise RuntimeError("starttls not available on transport")

        self._kill_state()
        await self._transport.starttls(ssl_context, post_handshake_callback)
        self._reset_state()

    @contextlib.contextmanager
    def mute(self):
        """
        A context-manager which keeps data sent over the stream out of the
        outbound capture and the debug log. Used for credentials.
        """
        if self._debug_wrapper is None:
            yield
        else:
            with self._debug_wrapper.mute():
                yield

    @property
    def transport(self):
        """
        The underlying :class:`asyncio.Transport`, or :data:`None` if not
        connected.
        """
        return self._transport

    def close(self):
        """
        Send the stream footer (if a header was sent) and close the
        transport. Closing a closed stream does nothing.
        """
        if self._transport is None:
            return
        if self._writer is not None and not self._writer.closed:
            self._writer.close()
            self._debug_wrapper.flush()
        self._transport.close()

    def abort(self):
        """
        Drop all state and abort the transport without sending a stream
        footer.
        """
        if self._transport is None:
            return
        self._kill_state()
        self._transport.abort()


async def reset_stream_and_get_features(xmlstream):
    """
    Reset `xmlstream` (which sends a new stream header) and wait for the
    stream features of the peer.

    :raises errors.ProtocolViolation: if the first element is not
        ``features``.
    :raises errors.StreamError: if the peer sent a stream error instead.
    :return: The :class:`~.nonza.StreamFeatures`.
    """
    xmlstream.reset()
    st = await xmlstream.read_stanza()
    if not isinstance(st.value, nonza.StreamFeatures):
        raise errors.ProtocolViolation(
            "unmarshal <features>: expected <features> but got <{}> in "
            "{}".format(st.name[1], st.name[0])
        )
    return st.value
