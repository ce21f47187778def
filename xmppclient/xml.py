########################################################################
# File name: xml.py
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
:mod:`~xmppclient.xml` --- XML utilities and interfaces for handling XMPP XML streams
######################################################################################

This module provides a few classes and functions which are useful when
generating and parsing XML streams for XMPP.

Generating XML streams
======================

Every text node and attribute value written by :class:`XMPPXMLGenerator` is
escaped through the :data:`xml_escape` table, so values supplied by callers
can never inject markup.

.. data:: xml_escape

   Immutable translation table (for :meth:`str.translate`) replacing ``&``,
   ``<``, ``>``, ``"`` and ``'`` with their predefined entities.

.. autofunction:: escape

.. autoclass:: XMPPXMLGenerator

.. autoclass:: XMLStreamWriter

Processing XML streams
======================

To convert streamed XML into objects, :mod:`xmppclient` uses the incremental
expat parser of :mod:`xml.sax`. The :class:`XMPPXMLProcessor` checks the
stream header and forwards the contents to an :class:`~.xso.XSOParser`.

.. autoclass:: XMPPXMLProcessor

.. autoclass:: XMPPLexicalHandler

.. autofunction:: make_parser

Utility functions
=================

.. autofunction:: serialize_single_xso

"""  # NOQA: E501

import contextlib
import io
import types

import xml.sax
import xml.sax.handler

from enum import Enum

from . import errors, xso
from .utils import namespaces


xml_escape = types.MappingProxyType({
    ord("&"): "&amp;",
    ord("<"): "&lt;",
    ord(">"): "&gt;",
    ord('"'): "&quot;",
    ord("'"): "&apos;",
})


def escape(s):
    """
    Escape `s` for use as XML character data or attribute value.
    """
    return s.translate(xml_escape)


def is_valid_cdata_str(s):
    for c in s:
        o = ord(c)
        if o >= 32:
            continue
        if o < 9 or 11 <= o <= 12 or 14 <= o <= 31:
            return False

    return True


class XMPPXMLGenerator:
    """
    Class to generate XMPP-conforming XML bytes.

    :param out: File-like object to which the bytes are written.
    :param short_empty_elements: Write empty elements as ``<foo/>`` instead of
        ``<foo></foo>``.
    :type short_empty_elements: :class:`bool`
    :param sorted_attributes: Sort the attributes in the output.
    :type sorted_attributes: :class:`bool`

    The generator only supports namespace-conforming documents. Namespaces
    are declared as default namespace (``xmlns="..."``) on the first element
    which uses them, unless a prefix has been announced for them with
    :meth:`startPrefixMapping`. Attributes in a namespace other than the
    ``xml`` namespace get an automatically chosen prefix.

    Output is always utf-8.

    .. automethod:: startDocument

    .. automethod:: startPrefixMapping

    .. automethod:: startElementNS

    .. automethod:: characters

    .. automethod:: endElementNS

    .. automethod:: endPrefixMapping

    .. automethod:: endDocument

    .. automethod:: flush

    .. automethod:: buffer
    """

    def __init__(self, out,
                 short_empty_elements=True,
                 sorted_attributes=False):
        self._write = out.write
        if hasattr(out, "flush"):
            self._flush = out.flush
        else:
            self._flush = None

        self._short_empty_elements = short_empty_elements
        self._sorted_attributes = sorted_attributes

        # each entry: (prefix map uri -> prefix, default namespace, counter)
        self._ns_stack = []
        self._curr_prefixes = {}
        self._curr_default_ns = None
        self._ns_counter = -1
        self._pending_prefixes = {}
        self._pending_start_element = False

        self._buf = None
        self._buf_in_use = False

    def _attr_qname(self, name, new_prefixes):
        ns, localname = name
        if not ns:
            return localname
        if ns == namespaces.xml:
            return "xml:" + localname

        try:
            prefix = new_prefixes[ns]
        except KeyError:
            prefix = None
        if prefix is None:
            prefix = self._curr_prefixes.get(ns)
        if prefix is None:
            self._ns_counter += 1
            prefix = "ns{}".format(self._ns_counter)
            new_prefixes[ns] = prefix
        return "{}:{}".format(prefix, localname)

    def _finish_pending_start_element(self):
        if not self._pending_start_element:
            return
        self._pending_start_element = False
        self._write(b">")

    def startDocument(self):
        """
        Start the document. This writes the XML declaration.
        """
        self._write(b'<?xml version="1.0"?>')

    def startPrefixMapping(self, prefix, uri):
        """
        Announce a namespace declaration for the next element. A `prefix` of
        :data:`None` declares the default namespace.

        The declaration is in scope until the matching :meth:`endElementNS`
        call.
        """
        if prefix in ("xml", "xmlns"):
            raise ValueError("not a valid prefix: {!r}".format(prefix))
        if prefix in self._pending_prefixes.values():
            raise ValueError("prefix already declared for next element")
        self._pending_prefixes[uri] = prefix

    def endPrefixMapping(self, prefix):
        """
        End a prefix mapping; the scope has already been closed by
        :meth:`endElementNS`, so this does nothing.
        """

    def startElementNS(self, name, qname, attributes=None):
        """
        Start a sub-element. `name` must be a tuple of ``(namespace_uri,
        localname)`` and `qname` is ignored. `attributes` must be a dictionary
        mapping attribute tag tuples (``(namespace_uri, attribute_name)``) to
        string values.

        Using an unnamespaced element while a default namespace is in effect
        raises :class:`ValueError`.
        """
        self._finish_pending_start_element()

        ns, localname = name
        new_prefixes = self._pending_prefixes
        self._pending_prefixes = {}

        default_ns = self._curr_default_ns
        new_default = None
        for uri, prefix in list(new_prefixes.items()):
            if prefix is None:
                new_default = uri
                default_ns = uri
                del new_prefixes[uri]

        if not ns:
            if default_ns:
                raise ValueError("cannot create unnamespaced element when "
                                 "prefixless namespace is bound")
            qname = localname
        else:
            prefix = new_prefixes.get(ns, self._curr_prefixes.get(ns))
            if prefix is not None:
                qname = "{}:{}".format(prefix, localname)
            else:
                if ns != default_ns:
                    new_default = ns
                    default_ns = ns
                qname = localname

        attrib = [
            (self._attr_qname(attrname, new_prefixes), value)
            for attrname, value in (attributes or {}).items()
        ]
        if self._sorted_attributes:
            attrib.sort()

        self._ns_stack.append(
            (self._curr_prefixes, self._curr_default_ns, self._ns_counter)
        )
        if new_prefixes:
            self._curr_prefixes = dict(self._curr_prefixes)
            self._curr_prefixes.update(new_prefixes)
        self._curr_default_ns = default_ns

        self._write(b"<")
        self._write(qname.encode("utf-8"))

        if new_default is not None:
            self._write(b' xmlns="')
            self._write(escape(new_default).encode("utf-8"))
            self._write(b'"')

        for uri, prefix in sorted(new_prefixes.items(),
                                  key=lambda x: x[1]):
            self._write(b" xmlns:")
            self._write(prefix.encode("utf-8"))
            self._write(b'="')
            self._write(escape(uri).encode("utf-8"))
            self._write(b'"')

        for attrqname, value in attrib:
            if not is_valid_cdata_str(value):
                raise ValueError("control characters are not allowed in "
                                 "well-formed XML")
            self._write(b" ")
            self._write(attrqname.encode("utf-8"))
            self._write(b'="')
            self._write(escape(value).encode("utf-8"))
            self._write(b'"')

        if self._short_empty_elements:
            self._pending_start_element = (name, qname)
        else:
            self._write(b">")

    def endElementNS(self, name, qname):
        """
        End a previously started element. `name` must be a ``(namespace_uri,
        localname)`` tuple and `qname` is ignored.
        """
        if self._pending_start_element and \
                self._pending_start_element[0] == name:
            self._pending_start_element = False
            self._write(b"/>")
        else:
            self._finish_pending_start_element()
            ns, localname = name
            prefix = self._curr_prefixes.get(ns) if ns else None
            self._write(b"</")
            if prefix is not None:
                self._write(prefix.encode("utf-8"))
                self._write(b":")
            self._write(localname.encode("utf-8"))
            self._write(b">")

        (self._curr_prefixes,
         self._curr_default_ns,
         self._ns_counter) = self._ns_stack.pop()

    def characters(self, chars):
        """
        Put character data in the currently open element. All characters of
        :data:`xml_escape` are replaced by entities.

        If `chars` contains any ASCII control character, :class:`ValueError` is
        raised.
        """
        self._finish_pending_start_element()
        if not is_valid_cdata_str(chars):
            raise ValueError("control characters are not allowed in "
                             "well-formed XML")
        self._write(escape(chars).encode("utf-8"))

    def processingInstruction(self, target, data):
        """
        Not supported; explicitly forbidden in XMPP. Raises
        :class:`ValueError`.
        """
        raise ValueError("restricted xml: processing instruction forbidden")

    def endDocument(self):
        """
        This must be called at the end of the document. Note that this does not
        call :meth:`flush`.
        """

    def flush(self):
        """
        Finish any unfinished opening tag and flush the output.
        """
        self._finish_pending_start_element()
        if self._flush:
            self._flush()

    @contextlib.contextmanager
    def _save_state(self):
        ns_stack = list(self._ns_stack)
        curr_prefixes = self._curr_prefixes
        curr_default_ns = self._curr_default_ns
        ns_counter = self._ns_counter
        pending_prefixes = dict(self._pending_prefixes)
        pending_start_element = self._pending_start_element
        try:
            yield
        except BaseException:
            self._ns_stack = ns_stack
            self._curr_prefixes = curr_prefixes
            self._curr_default_ns = curr_default_ns
            self._ns_counter = ns_counter
            self._pending_prefixes = pending_prefixes
            self._pending_start_element = pending_start_element
            raise

    @contextlib.contextmanager
    def buffer(self):
        """
        Context manager to temporarily buffer the output.

        If the context manager is left without exception, the buffered output
        is sent to the actual sink in a single write. Otherwise, it is
        discarded and the generator state is restored, so that a failed
        serialisation leaves the output untouched.

        :raise RuntimeError: If two :meth:`buffer` context managers are used
                             nestedly.
        """
        if self._buf_in_use:
            raise RuntimeError("nested use of buffer() is not supported")
        self._buf_in_use = True
        old_write = self._write
        old_flush = self._flush

        self._buf = io.BytesIO()
        self._write = self._buf.write
        self._flush = None
        try:
            with self._save_state():
                yield
                self._finish_pending_start_element()
            old_write(self._buf.getvalue())
            if old_flush:
                old_flush()
        finally:
            self._buf_in_use = False
            self._write = old_write
            self._flush = old_flush


class XMLStreamWriter:
    """
    Write the client side of an XMPP XML stream.

    :param f: File-like object to write to.
    :param to: Domain to which the stream is addressed.
    :type to: :class:`str`
    :param sorted_attributes: Passed to :class:`XMPPXMLGenerator`.

    The constructor does not send anything; call :meth:`start` to send the
    stream header::

        <?xml version="1.0"?><stream:stream xmlns="jabber:client"
            xmlns:stream="http://etherx.jabber.org/streams"
            to="DOMAIN" version="1.0">

    .. autoattribute:: closed

    .. automethod:: start

    .. automethod:: send

    .. automethod:: abort

    .. automethod:: close
    """

    def __init__(self, f, to, sorted_attributes=False):
        super().__init__()
        self._to = to
        self._writer = XMPPXMLGenerator(
            out=f,
            short_empty_elements=True,
            sorted_attributes=sorted_attributes)
        self._closed = False

    @property
    def closed(self):
        """
        True if the stream has been closed by :meth:`abort` or :meth:`close`.
        Read-only.
        """
        return self._closed

    def start(self):
        """
        Send the stream header.
        """
        self._writer.startDocument()
        self._writer.startPrefixMapping(None, namespaces.client)
        self._writer.startPrefixMapping("stream", namespaces.xmlstream)
        self._writer.startElementNS(
            (namespaces.xmlstream, "stream"),
            None,
            {
                (None, "to"): self._to,
                (None, "version"): "1.0",
            })
        self._writer.flush()

    def send(self, xso):
        """
        Serialise the `xso` and send it over the stream. If any serialisation
        error occurs, no data is sent and the exception is re-raised.
        """
        with self._writer.buffer():
            xso.xso_serialise_to_sax(self._writer)

    def abort(self):
        """
        Flush and clean up without sending a stream footer.
        """
        if self._closed:
            return
        self._closed = True
        self._writer.flush()
        del self._writer

    def close(self):
        """
        Send the stream footer and clean up.
        """
        if self._closed:
            return
        self._closed = True
        self._writer.endElementNS((namespaces.xmlstream, "stream"), None)
        self._writer.endDocument()
        self._writer.flush()
        del self._writer


class ProcessorState(Enum):
    CLEAN = 0
    STARTED = 1
    STREAM_HEADER_PROCESSED = 2
    STREAM_FOOTER_PROCESSED = 3
    EXCEPTION_BACKOFF = 4


class XMPPXMLProcessor:
    """
    This class is a :class:`xml.sax.handler.ContentHandler`. It
    can be used to parse an XMPP XML stream.

    The first element must be the stream header (``stream`` in the
    ``http://etherx.jabber.org/streams`` namespace); anything else raises
    :class:`~.errors.ProtocolViolation` out of the parser. Every element below
    the header is forwarded to :attr:`stanza_parser` via a
    :class:`~.xso.SAXDriver`.

    **Exception handling**: When an exception occurs while parsing a
    stream-level element, the exception is stored and all further SAX events
    are dropped until the stream-level element has been completely processed.
    Then :attr:`on_exception` is called with the stored exception. If
    :attr:`on_exception` is :data:`None`, the exception is re-raised instead.

    .. attribute:: on_exception

    .. attribute:: on_stream_header

    .. attribute:: on_stream_footer

    .. attribute:: remote_version

       The ``version`` attribute of the peer header, as tuple of ints.

    .. attribute:: remote_from

    .. attribute:: remote_id
    """

    def __init__(self):
        super().__init__()
        self._state = ProcessorState.CLEAN
        self._stanza_parser = None
        self._stored_exception = None
        self.on_stream_header = None
        self.on_stream_footer = None
        self.on_exception = None

        self.remote_version = None
        self.remote_from = None
        self.remote_id = None

    @property
    def stanza_parser(self):
        """
        A :class:`~.xso.XSOParser` which receives the events of all
        stream-level elements. It can only be set in the initial state.
        """
        return self._stanza_parser

    @stanza_parser.setter
    def stanza_parser(self, value):
        if self._state != ProcessorState.CLEAN:
            raise RuntimeError("invalid state: {}".format(self._state))
        self._stanza_parser = value

    def processingInstruction(self, target, foo):
        raise errors.StreamError(
            errors.StreamErrorCondition.RESTRICTED_XML,
            "processing instructions are not allowed in XMPP"
        )

    def characters(self, characters):
        if self._state == ProcessorState.EXCEPTION_BACKOFF:
            pass
        elif self._state == ProcessorState.STREAM_HEADER_PROCESSED:
            self._driver.characters(characters)
        elif characters.strip():
            raise RuntimeError("invalid state: {}".format(self._state))

    def ignorableWhitespace(self, whitespace):
        pass

    def setDocumentLocator(self, locator):
        pass

    def startDocument(self):
        if self._state != ProcessorState.CLEAN:
            raise RuntimeError("invalid state: {}".format(self._state))
        self._state = ProcessorState.STARTED
        self._depth = 0
        self._driver = xso.SAXDriver(self._stanza_parser)

    def endDocument(self):
        if self._state != ProcessorState.STREAM_FOOTER_PROCESSED:
            raise RuntimeError("invalid state: {}".format(self._state))
        self._state = ProcessorState.CLEAN
        self._driver = None

    def startPrefixMapping(self, prefix, uri):
        pass

    def endPrefixMapping(self, prefix):
        pass

    def startElementNS(self, name, qname, attributes):
        if self._state == ProcessorState.STREAM_HEADER_PROCESSED:
            try:
                self._driver.startElementNS(name, qname, attributes)
            except Exception as exc:
                self._stored_exception = exc
                self._state = ProcessorState.EXCEPTION_BACKOFF
            self._depth += 1
            return
        elif self._state == ProcessorState.EXCEPTION_BACKOFF:
            self._depth += 1
            return
        elif self._state != ProcessorState.STARTED:
            raise RuntimeError("invalid state: {}".format(self._state))

        if name != (namespaces.xmlstream, "stream"):
            raise errors.ProtocolViolation(
                "expected <stream> but got <{}> in {}".format(
                    name[1], name[0]
                )
            )

        attributes = dict(attributes)
        try:
            self.remote_version = tuple(
                map(int, attributes.get((None, "version"), "0.9").split("."))
            )
        except ValueError as exc:
            raise errors.StreamError(
                errors.StreamErrorCondition.UNSUPPORTED_VERSION,
                str(exc)
            )
        self.remote_from = attributes.get((None, "from"))
        self.remote_id = attributes.get((None, "id"))

        if self.on_stream_header:
            self.on_stream_header()

        self._state = ProcessorState.STREAM_HEADER_PROCESSED
        self._depth += 1

    def _end_element_exception_handling(self):
        self._state = ProcessorState.STREAM_HEADER_PROCESSED
        exc = self._stored_exception
        self._stored_exception = None
        self._driver.close()
        if self.on_exception:
            self.on_exception(exc)
        else:
            raise exc

    def endElementNS(self, name, qname):
        if self._state == ProcessorState.STREAM_HEADER_PROCESSED:
            self._depth -= 1
            if self._depth > 0:
                try:
                    return self._driver.endElementNS(name, qname)
                except Exception as exc:
                    self._stored_exception = exc
                    self._state = ProcessorState.EXCEPTION_BACKOFF
                    if self._depth == 1:
                        self._end_element_exception_handling()
            else:
                if self.on_stream_footer:
                    self.on_stream_footer()
                self._state = ProcessorState.STREAM_FOOTER_PROCESSED

        elif self._state == ProcessorState.EXCEPTION_BACKOFF:
            self._depth -= 1
            if self._depth == 1:
                self._end_element_exception_handling()
        else:
            raise RuntimeError("invalid state: {}".format(self._state))


class XMPPLexicalHandler:
    """
    A lexical handler which rejects comments, DTD declarations and
    non-predefined entities, none of which are allowed in an XMPP XML stream.

    All methods are stateless and can be used on the class directly.
    """
    PREDEFINED_ENTITIES = {"amp", "lt", "gt", "apos", "quot"}

    @classmethod
    def comment(cls, data):
        raise errors.StreamError(
            errors.StreamErrorCondition.RESTRICTED_XML,
            "comments are not allowed in XMPP"
        )

    @classmethod
    def startDTD(cls, name, publicId, systemId):
        raise errors.StreamError(
            errors.StreamErrorCondition.RESTRICTED_XML,
            "DTD declarations are not allowed in XMPP"
        )

    @classmethod
    def endDTD(cls):
        pass

    @classmethod
    def startCDATA(cls):
        pass

    @classmethod
    def endCDATA(cls):
        pass

    @classmethod
    def startEntity(cls, name):
        if name not in cls.PREDEFINED_ENTITIES:
            raise errors.StreamError(
                errors.StreamErrorCondition.RESTRICTED_XML,
                "non-predefined entities are not allowed in XMPP"
            )

    @classmethod
    def endEntity(cls, name):
        pass


def make_parser():
    """
    Create an incremental parser which is suitably configured for parsing an
    XMPP XML stream. It comes equipped with :class:`XMPPLexicalHandler`.
    """
    p = xml.sax.make_parser()
    p.setFeature(xml.sax.handler.feature_namespaces, True)
    p.setFeature(xml.sax.handler.feature_external_ges, False)
    p.setProperty(xml.sax.handler.property_lexical_handler,
                  XMPPLexicalHandler)
    return p


def serialize_single_xso(x):
    """
    Serialize a single XSO `x` to a string. This should only be used for
    debugging and tests; streams use :class:`XMLStreamWriter`.
    """
    buf = io.BytesIO()
    gen = XMPPXMLGenerator(buf,
                           short_empty_elements=True,
                           sorted_attributes=True)
    x.xso_serialise_to_sax(gen)
    gen.flush()
    return buf.getvalue().decode("utf8")

