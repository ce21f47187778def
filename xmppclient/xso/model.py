########################################################################
# File name: model.py
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
:mod:`xmppclient.xso.model` --- Declarative-style XSO definition
################################################################

See :mod:`xmppclient.xso` for documentation.

Parsing works on *suspendable functions*: generators which receive SAX-ish
event tuples via :meth:`generator.send` and return the parsed value via
:class:`StopIteration`. The events are

* ``("start", namespace_uri, localname, attributes)``
* ``("text", data)``
* ``("end",)``

where `attributes` is a dict mapping ``(namespace_uri, name)`` tuples to
strings.
"""
import abc
import enum
import logging
import xml.sax.handler

import lxml.sax

import sortedcollections

from enum import Enum

from xmppclient.utils import etree

from . import types as xso_types
from . import tag_to_str, normalize_tag


logger = logging.getLogger(__name__)


class UnknownChildPolicy(Enum):
    """
    Describe the event which shall take place whenever a child element is
    encountered for which no descriptor can be found to parse it.

    .. attribute:: FAIL

       Raise a :class:`ValueError`

    .. attribute:: DROP

       Drop and ignore the element and all of its children
    """

    FAIL = 0
    DROP = 1


class UnknownAttrPolicy(Enum):
    """
    Describe the event which shall take place whenever a XML attribute is
    encountered for which no descriptor can be found to parse it.

    .. attribute:: FAIL

       Raise a :class:`ValueError`

    .. attribute:: DROP

       Drop and ignore the attribute
    """

    FAIL = 0
    DROP = 1


class UnknownTopLevelTag(ValueError):
    """
    Subclass of :class:`ValueError`. `ev_args` must be the arguments of the
    ``"start"`` event and are stored as the :attr:`ev_args` attribute for
    analysis.

    .. attribute:: ev_args

       The `ev_args` passed to the constructor.
    """

    def __init__(self, msg, ev_args):
        super().__init__(msg + ": {}".format(
            tag_to_str((ev_args[0], ev_args[1]))
        ))
        self.ev_args = ev_args


class _PropBase:
    class NO_DEFAULT:
        def __repr__(self):
            return "<no default>"

        def __bool__(self):
            raise TypeError("cannot convert {!r} to bool".format(self))

    NO_DEFAULT = NO_DEFAULT()

    def __init__(self, default=NO_DEFAULT):
        super().__init__()
        self.default = default

    def _set(self, instance, value):
        instance._xso_contents[self] = value

    def __set__(self, instance, value):
        self._set(instance, value)

    def __get__(self, instance, type_):
        if instance is None:
            return self

        try:
            return instance._xso_contents[self]
        except KeyError:
            if self.default is self.NO_DEFAULT:
                raise AttributeError(
                    "attribute is unset ({} on instance of {})".format(
                        self, type_)
                ) from None
            return self.default

    def validate_contents(self, instance):
        try:
            self.__get__(instance, type(instance))
        except AttributeError as exc:
            raise ValueError(str(exc)) from None


class _TypedPropBase(_PropBase):
    def __init__(self, *,
                 type_=xso_types.String(),
                 erroneous_as_absent=False,
                 **kwargs):
        super().__init__(**kwargs)
        self.type_ = type_
        self.erroneous_as_absent = erroneous_as_absent

    def __set__(self, instance, value):
        if self.default is self.NO_DEFAULT or value != self.default:
            value = self.type_.coerce(value)
        super().__set__(instance, value)


class Text(_TypedPropBase):
    """
    Character data contents of an XSO.

    Elements in XMPP either have character data *or* child elements, so the
    relative ordering of text and children is not preserved.
    """

    def from_value(self, instance, value):
        """
        Convert the given value using the set `type_` and store it into
        `instance`’ attribute. Return false if the value was erroneous and
        `erroneous_as_absent` is set.
        """
        try:
            parsed = self.type_.parse(value)
        except (TypeError, ValueError):
            if self.erroneous_as_absent:
                return False
            raise
        self._set(instance, parsed)
        return True

    def to_sax(self, instance, dest):
        value = self.__get__(instance, type(instance))
        if value is None:
            return
        dest.characters(self.type_.format(value))


class Attr(Text):
    """
    A single XML attribute.

    :param tag: The tag identifying the attribute; a plain string for
        attributes without namespace.
    :param type_: A character data type to interpret the XML data.
    :param default: The value used if the attribute is absent. If omitted,
        the attribute is required and its absence is a parsing error.

    Attributes whose value equals the `default` are not emitted on
    serialisation.
    """

    def __init__(self, tag, *,
                 type_=xso_types.String(),
                 **kwargs):
        super().__init__(type_=type_, **kwargs)
        self.tag = normalize_tag(tag)

    def __delete__(self, instance):
        instance._xso_contents.pop(self, None)

    def handle_missing(self, instance):
        if self.default is _PropBase.NO_DEFAULT:
            raise ValueError("missing attribute {} on {}".format(
                tag_to_str(self.tag),
                tag_to_str(instance.TAG),
            ))

    def to_dict(self, instance, d):
        value = self.__get__(instance, type(instance))
        if value == self.default:
            return
        d[self.tag] = self.type_.format(value)


class ChildText(_TypedPropBase):
    """
    Character data of a single child element with the given `tag`.

    Children of the child are handled according to `child_policy`, its
    attributes according to `attr_policy`. Values equal to `default` are not
    emitted on serialisation.
    """

    def __init__(self, tag, *,
                 child_policy=UnknownChildPolicy.FAIL,
                 attr_policy=UnknownAttrPolicy.DROP,
                 **kwargs):
        super().__init__(**kwargs)
        self.tag = normalize_tag(tag)
        self.child_policy = child_policy
        self.attr_policy = attr_policy

    def get_tag_map(self):
        return {self.tag}

    def from_events(self, instance, ev_args):
        attrs = ev_args[2]
        if attrs and self.attr_policy == UnknownAttrPolicy.FAIL:
            raise ValueError("unexpected attribute (at text only node)")
        parts = []
        while True:
            ev_type, *ev_args = yield
            if ev_type == "text":
                parts.append(ev_args[0])
            elif ev_type == "start":
                yield from enforce_unknown_child_policy(
                    self.child_policy,
                    ev_args)
            elif ev_type == "end":
                break

        joined = "".join(parts)
        try:
            parsed = self.type_.parse(joined)
        except (ValueError, TypeError):
            if self.erroneous_as_absent:
                return
            raise
        self._set(instance, parsed)

    def to_sax(self, instance, dest):
        value = self.__get__(instance, type(instance))
        if value == self.default:
            return

        dest.startElementNS(self.tag, None, {})
        try:
            dest.characters(self.type_.format(value))
        finally:
            dest.endElementNS(self.tag, None)


class _ChildPropBase(_PropBase):
    """
    Base class for descriptors holding child :class:`XSO` instances.
    """

    def __init__(self, classes, default=None):
        super().__init__(default)
        self._classes = set()
        self._tag_map = {}
        for cls in classes:
            self._register(cls)

    def _process(self, instance, ev_args):
        cls = self._tag_map[ev_args[0], ev_args[1]]
        return (yield from cls.parse_events(ev_args))

    def get_tag_map(self):
        """
        Return a dictionary mapping the tags of the supported classes to the
        classes themselves.
        """
        return self._tag_map

    def _register(self, cls):
        if cls.TAG in self._tag_map:
            raise ValueError("ambiguous children: {} and {} share the same "
                             "TAG".format(
                                 self._tag_map[cls.TAG],
                                 cls))
        self._tag_map[cls.TAG] = cls
        self._classes.add(cls)


class Child(_ChildPropBase):
    """
    A single child element of any of the given XSO types.

    If `required` is false (the default), a missing child is tolerated and
    :data:`None` is a valid value. Otherwise, a missing child is a parsing
    error.
    """

    def __init__(self, classes, required=False):
        super().__init__(
            classes,
            default=_PropBase.NO_DEFAULT if required else None
        )

    @property
    def required(self):
        return self.default is _PropBase.NO_DEFAULT

    def __set__(self, instance, value):
        if value is None and self.required:
            raise ValueError("cannot set required member to None")
        super().__set__(instance, value)

    def from_events(self, instance, ev_args):
        obj = yield from self._process(instance, ev_args)
        self.__set__(instance, obj)
        return obj

    def validate_contents(self, instance):
        try:
            obj = self.__get__(instance, type(instance))
        except AttributeError:
            raise ValueError("missing required member")
        if obj is not None:
            obj.validate()

    def to_sax(self, instance, dest):
        obj = self.__get__(instance, type(instance))
        if obj is None:
            return
        obj.xso_serialise_to_sax(dest)


class ChildList(_ChildPropBase):
    """
    List of child elements of any of the given XSO classes, in document
    order. The default is an empty list.
    """

    def __get__(self, instance, type_):
        if instance is None:
            return self
        return instance._xso_contents.setdefault(self, [])

    def _set(self, instance, value):
        if not isinstance(value, list):
            raise TypeError("expected list, but found {}".format(type(value)))
        return super()._set(instance, value)

    def from_events(self, instance, ev_args):
        obj = yield from self._process(instance, ev_args)
        self.__get__(instance, type(instance)).append(obj)
        return obj

    def validate_contents(self, instance):
        for child in self.__get__(instance, type(instance)):
            child.validate()

    def to_sax(self, instance, dest):
        for obj in self.__get__(instance, type(instance)):
            obj.xso_serialise_to_sax(dest)


class ChildMap(_ChildPropBase):
    """
    Dictionary holding child elements of one or more XSO classes, keyed by
    the :attr:`XSO.TAG` of the class. Each value is a list of the children
    with that tag, in document order.
    """

    def __get__(self, instance, type_):
        if instance is None:
            return self
        return instance._xso_contents.setdefault(self, {})

    def _set(self, instance, value):
        raise AttributeError("ChildMap attribute cannot be assigned to")

    def from_events(self, instance, ev_args):
        obj = yield from self._process(instance, ev_args)
        self.__get__(instance, type(instance)).setdefault(
            obj.TAG, []
        ).append(obj)
        return obj

    def validate_contents(self, instance):
        for items in self.__get__(instance, type(instance)).values():
            for obj in items:
                obj.validate()

    def to_sax(self, instance, dest):
        for items in self.__get__(instance, type(instance)).values():
            for obj in items:
                obj.xso_serialise_to_sax(dest)


class Collector(_PropBase):
    """
    Catch-all descriptor collecting unhandled elements in an :mod:`lxml`
    element tree.

    All children which are not known to any other descriptor are appended
    to a root node, which has the tag of the XSO class it pertains to.
    """

    def __init__(self):
        super().__init__(default=None)

    def __get__(self, instance, type_):
        if instance is None:
            return self

        try:
            return instance._xso_contents[self]
        except KeyError:
            res = etree.Element(tag_to_str(instance.TAG))
            instance._xso_contents[self] = res
            return res

    def _set(self, instance, value):
        raise AttributeError("Collector attribute cannot be assigned to")

    def from_events(self, instance, ev_args):
        def make_from_args(ev_args, parent):
            el = etree.SubElement(parent,
                                  tag_to_str((ev_args[0], ev_args[1])))
            for key, value in ev_args[2].items():
                el.set(tag_to_str(key), value)
            return el

        root_el = make_from_args(ev_args,
                                 self.__get__(instance, type(instance)))
        stack = [root_el]
        while stack:
            ev_type, *ev_args = yield
            if ev_type == "start":
                stack.append(make_from_args(ev_args, stack[-1]))
            elif ev_type == "text":
                curr = stack[-1]
                if len(curr):
                    last = curr[-1]
                    last.tail = (last.tail or "") + ev_args[0]
                else:
                    curr.text = (curr.text or "") + ev_args[0]
            elif ev_type == "end":
                stack.pop()
            else:
                raise ValueError(ev_type)

    def to_sax(self, instance, dest):
        for node in self.__get__(instance, type(instance)):
            lxml.sax.saxify(node, _CollectorContentHandlerFilter(dest))


class ChildTag(_PropBase):
    """
    Tag of a single child element with one of the given tags.

    `tags` must be an iterable of valid arguments to :func:`normalize_tag`
    (tags without namespace get `default_ns`), or an :class:`enum.Enum`
    whose values are ``(namespace_uri, localname)`` tuples. In the latter
    case the attribute holds enumeration members, otherwise tag tuples.

    Text, children and attributes on the child are ignored. If `allow_none`
    is true, :data:`None` is the default and represents the absence of the
    child.
    """

    def __init__(self, tags, *,
                 default_ns=None,
                 allow_none=False):
        if isinstance(tags, type(enum.Enum)):
            self._enum = tags
            tags = {normalize_tag(member.value) for member in tags}
        else:
            self._enum = None
            tags = {
                (ns or default_ns, localname)
                for ns, localname in map(normalize_tag, tags)
            }

        super().__init__(
            default=None if allow_none else _PropBase.NO_DEFAULT
        )
        self.child_map = tags

    @property
    def allow_none(self):
        return self.default is not _PropBase.NO_DEFAULT

    def get_tag_map(self):
        return self.child_map

    def __set__(self, instance, value):
        if value is None:
            if not self.allow_none:
                raise ValueError("cannot set required member to None")
        elif self._enum is not None:
            value = self._enum(value)
        elif normalize_tag(value) not in self.child_map:
            raise ValueError("{!r} is not an allowed tag".format(value))
        else:
            value = normalize_tag(value)
        super().__set__(instance, value)

    def from_events(self, instance, ev_args):
        tag = ev_args[0], ev_args[1]
        yield from drop_handler(ev_args)
        self.__set__(instance, tag)

    def to_sax(self, instance, dest):
        value = self.__get__(instance, type(instance))
        if value is None:
            return

        if self._enum is not None:
            value = value.value
        dest.startElementNS(value, None, {})
        dest.endElementNS(value, None)


class ChildFlag(_PropBase):
    """
    Presence of a child element with the given tag, as boolean. The default
    is :data:`False`; contents of the child are ignored.
    """

    def __init__(self, tag):
        super().__init__(default=False)
        self.tag = normalize_tag(tag)

    def get_tag_map(self):
        return {self.tag}

    def from_events(self, instance, ev_args):
        yield from drop_handler(ev_args)
        self._set(instance, True)

    def to_sax(self, instance, dest):
        if not self.__get__(instance, type(instance)):
            return
        dest.startElementNS(self.tag, None, {})
        dest.endElementNS(self.tag, None)


class XMLStreamClass(abc.ABCMeta):
    """
    This metaclass collects the descriptors of an :class:`XSO` class into
    the bookkeeping attributes used by the parser and the serialiser:

    * ``ATTR_MAP`` maps attribute tags to :class:`Attr` descriptors,
    * ``CHILD_MAP`` maps child tags to child descriptors,
    * ``CHILD_PROPS`` is the ordered set of child descriptors (serialisation
      order),
    * ``TEXT_PROPERTY`` and ``COLLECTOR_PROPERTY`` hold the :class:`Text`
      and :class:`Collector` descriptor, if any.

    Descriptors are inherited from base classes. Two different descriptors
    claiming the same tag are a :class:`TypeError`.
    """

    def __new__(mcls, name, bases, namespace):
        text_property = None
        collector_property = None
        child_map = {}
        child_props = sortedcollections.OrderedSet()
        attr_map = {}

        for base in reversed(bases):
            if not isinstance(base, XMLStreamClass):
                continue

            if base.TEXT_PROPERTY is not None:
                text_property = base.TEXT_PROPERTY
            if base.COLLECTOR_PROPERTY is not None:
                collector_property = base.COLLECTOR_PROPERTY
            child_map.update(base.CHILD_MAP)
            child_props |= base.CHILD_PROPS
            attr_map.update(base.ATTR_MAP)

        for attrname, obj in namespace.items():
            if isinstance(obj, Attr):
                if obj.tag in attr_map:
                    raise TypeError("ambiguous Attr properties")
                attr_map[obj.tag] = obj
            elif isinstance(obj, Text):
                if text_property is not None:
                    raise TypeError("multiple Text properties on XSO class")
                text_property = obj
            elif isinstance(obj, (_ChildPropBase, ChildText, ChildTag,
                                  ChildFlag)):
                for key in obj.get_tag_map():
                    if key in child_map:
                        raise TypeError("ambiguous Child properties: {} and {}"
                                        " both use the same tag".format(
                                            child_map[key],
                                            obj))
                    child_map[key] = obj
                child_props.add(obj)
            elif isinstance(obj, Collector):
                if collector_property is not None:
                    raise TypeError("multiple Collector properties on XSO "
                                    "class")
                collector_property = obj

        namespace["TEXT_PROPERTY"] = text_property
        namespace["COLLECTOR_PROPERTY"] = collector_property
        namespace["CHILD_MAP"] = child_map
        namespace["CHILD_PROPS"] = child_props
        namespace["ATTR_MAP"] = attr_map

        if "TAG" in namespace:
            try:
                namespace["TAG"] = normalize_tag(namespace["TAG"])
            except (ValueError, TypeError):
                raise TypeError("TAG attribute has incorrect format")

        namespace.setdefault("__slots__", ())

        return super().__new__(mcls, name, bases, namespace)

    def __setattr__(cls, name, value):
        existing = getattr(cls, name, None)
        if isinstance(existing, _PropBase):
            raise AttributeError("cannot rebind XSO descriptors")

        if isinstance(value, _PropBase) and cls.__subclasses__():
            raise TypeError("adding descriptors is forbidden on classes with"
                            " subclasses (subclasses: {})".format(
                                ", ".join(map(str, cls.__subclasses__()))
                            ))

        if isinstance(value, Attr):
            if value.tag in cls.ATTR_MAP:
                raise TypeError("ambiguous Attr properties")
            cls.ATTR_MAP[value.tag] = value

        elif isinstance(value, Text):
            if cls.TEXT_PROPERTY is not None:
                raise TypeError("multiple Text properties on XSO class")
            super().__setattr__("TEXT_PROPERTY", value)

        elif isinstance(value, (_ChildPropBase, ChildText, ChildTag,
                                ChildFlag)):
            updates = {}
            for key in value.get_tag_map():
                if key in cls.CHILD_MAP:
                    raise TypeError("ambiguous Child properties: {} and {} "
                                    "both use the same tag".format(
                                        cls.CHILD_MAP[key],
                                        value))
                updates[key] = value
            cls.CHILD_MAP.update(updates)
            cls.CHILD_PROPS.add(value)

        elif isinstance(value, Collector):
            if cls.COLLECTOR_PROPERTY is not None:
                raise TypeError("multiple Collector properties on XSO class")
            super().__setattr__("COLLECTOR_PROPERTY", value)

        super().__setattr__(name, value)

    def parse_events(cls, ev_args):
        """
        Create an instance of this class, using the events sent into this
        function. `ev_args` must be the event arguments of the ``"start"``
        event.

        ``__init__`` is not called on the new instance. This method is
        suspendable.
        """
        obj = cls.__new__(cls)
        attr_map = cls.ATTR_MAP.copy()
        for key, value in ev_args[2].items():
            try:
                prop = attr_map.pop(key)
            except KeyError:
                if cls.UNKNOWN_ATTR_POLICY == UnknownAttrPolicy.DROP:
                    continue
                raise ValueError(
                    "unexpected attribute {!r} on {}".format(
                        key,
                        tag_to_str((ev_args[0], ev_args[1]))
                    )) from None

            if not prop.from_value(obj, value):
                # erroneous value, treat as absent
                attr_map[key] = prop

        for prop in attr_map.values():
            prop.handle_missing(obj)

        collected_text = []
        while True:
            ev_type, *ev_args = yield
            if ev_type == "end":
                break
            elif ev_type == "text":
                if cls.TEXT_PROPERTY is not None:
                    collected_text.append(ev_args[0])
                elif ev_args[0].strip():
                    raise ValueError("unexpected text")
            elif ev_type == "start":
                try:
                    handler = cls.CHILD_MAP[ev_args[0], ev_args[1]]
                except KeyError:
                    if cls.COLLECTOR_PROPERTY is not None:
                        handler = cls.COLLECTOR_PROPERTY
                    else:
                        yield from enforce_unknown_child_policy(
                            cls.UNKNOWN_CHILD_POLICY,
                            ev_args)
                        continue
                yield from guard(handler.from_events(obj, ev_args), ev_args)

        if collected_text:
            cls.TEXT_PROPERTY.from_value(obj, "".join(collected_text))

        obj.validate()
        obj.xso_after_load()

        return obj

    def register_child(cls, prop, child_cls):
        """
        Register a new :class:`XMLStreamClass` instance `child_cls` for a given
        child descriptor `prop` of this class.

        This must happen before any class derives from this class;
        otherwise, :class:`TypeError` is raised.
        """
        if cls.__subclasses__():
            raise TypeError(
                "register_child is forbidden on classes with subclasses"
                " (subclasses: {})".format(
                    ", ".join(map(str, cls.__subclasses__()))
                ))

        if child_cls.TAG in cls.CHILD_MAP:
            raise ValueError("ambiguous Child")

        prop._register(child_cls)
        cls.CHILD_MAP[child_cls.TAG] = prop


class XSO(metaclass=XMLStreamClass):
    """
    XSO is short for **X**\\ ML **S**\\ tream **O**\\ bject and means an object
    which represents a subtree of an XML stream.

    Subclasses declare their element with the ``TAG`` class attribute (a
    ``(namespace_uri, localname)`` tuple) and their contents with descriptors.
    Unknown children and attributes are dropped unless the class sets
    :attr:`UNKNOWN_CHILD_POLICY` or :attr:`UNKNOWN_ATTR_POLICY` to ``FAIL``.

    .. automethod:: validate

    .. automethod:: xso_after_load

    .. automethod:: xso_serialise_to_sax
    """

    UNKNOWN_CHILD_POLICY = UnknownChildPolicy.DROP
    UNKNOWN_ATTR_POLICY = UnknownAttrPolicy.DROP

    __slots__ = ("_xso_contents", "__weakref__")

    def __new__(cls, *args, **kwargs):
        result = super().__new__(cls)
        result._xso_contents = dict()
        return result

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

    def validate(self):
        """
        Validate the objects structure beyond the values of individual
        fields. Called by the parser after an object has been deserialised.
        """
        for descriptor in self.CHILD_PROPS:
            descriptor.validate_contents(self)

    def xso_after_load(self):
        """
        Hook called after an object has been successfully deserialised.
        """

    def xso_serialise_to_sax(self, dest):
        """
        Serialise the XSO to the SAX handler `dest`.
        """
        cls = type(self)
        attrib = {}
        for prop in cls.ATTR_MAP.values():
            prop.to_dict(self, attrib)
        dest.startElementNS(self.TAG, None, attrib)
        try:
            if cls.TEXT_PROPERTY is not None:
                cls.TEXT_PROPERTY.to_sax(self, dest)
            for prop in cls.CHILD_PROPS:
                prop.to_sax(self, dest)
            if cls.COLLECTOR_PROPERTY is not None:
                cls.COLLECTOR_PROPERTY.to_sax(self, dest)
        finally:
            dest.endElementNS(self.TAG, None)

    def __repr__(self):
        return "<{}.{} {} at 0x{:x}>".format(
            type(self).__module__,
            type(self).__qualname__,
            tag_to_str(self.TAG),
            id(self),
        )


class SAXDriver(xml.sax.handler.ContentHandler):
    """
    This is a :class:`xml.sax.handler.ContentHandler` subclass which *only*
    supports namespace-conforming SAX event sources.

    `dest_generator_factory` must be a function which returns a new
    suspendable function supporting the interface of :class:`XSOParser`. The
    SAX events are converted to the internal event format and sent to the
    suspendable function in order.

    `on_emit` may be a callable. Whenever a suspendable function returned by
    `dest_generator_factory` returns, it is called with the return value as
    sole argument.
    """

    def __init__(self, dest_generator_factory, on_emit=None):
        self._on_emit = on_emit
        self._dest_factory = dest_generator_factory
        self._dest = None

    def _emit(self, value):
        if self._on_emit:
            self._on_emit(value)

    def _send(self, value):
        if self._dest is None:
            self._dest = self._dest_factory()
            self._dest.send(None)
        try:
            self._dest.send(value)
        except StopIteration as err:
            self._emit(err.value)
            self._dest = None
        except BaseException:
            self._dest = None
            raise

    def startElementNS(self, name, qname, attributes):
        uri, localname = name
        self._send(("start", uri, localname, dict(attributes)))

    def characters(self, data):
        self._send(("text", data))

    def endElementNS(self, name, qname):
        self._send(("end",))

    def close(self):
        """
        Clean up all internal state.
        """
        if self._dest is not None:
            self._dest.close()
            self._dest = None


class XSOParser:
    """
    A generic XSO parser which supports a set of top-level XSO classes.
    Calling an :class:`XSOParser` returns a suspendable function which
    parses elements from SAX-ish events; use it with :class:`SAXDriver`.

    Elements whose tag is not registered raise :class:`UnknownTopLevelTag`.

    .. automethod:: add_class

    .. automethod:: get_tag_map
    """

    def __init__(self):
        self._tag_map = {}

    def add_class(self, cls, callback):
        """
        Add a class `cls` for parsing as root level element. When an object of
        `cls` type has been completely parsed, `callback` is called with the
        object as argument.
        """
        if cls.TAG in self._tag_map:
            raise ValueError(
                "duplicate tag: {!r} is already handled by {}".format(
                    cls.TAG,
                    self._tag_map[cls.TAG]))
        self._tag_map[cls.TAG] = (cls, callback)

    def get_tag_map(self):
        """
        Return the internal mapping which maps tags to tuples of ``(cls,
        callback)``. Do not modify the result.
        """
        return self._tag_map

    def __call__(self):
        while True:
            ev_type, *ev_args = yield
            if ev_type == "text" and not ev_args[0].strip():
                continue

            tag = ev_args[0], ev_args[1]
            try:
                cls, cb = self._tag_map[tag]
            except KeyError:
                raise UnknownTopLevelTag(
                    "unhandled top-level element",
                    ev_args)
            cb((yield from cls.parse_events(ev_args)))


def drop_handler(ev_args):
    depth = 1
    while depth:
        ev = yield
        if ev[0] == "start":
            depth += 1
        elif ev[0] == "end":
            depth -= 1


def enforce_unknown_child_policy(policy, ev_args):
    if policy == UnknownChildPolicy.DROP:
        yield from drop_handler(ev_args)
    else:
        raise ValueError("unexpected child {}".format(
            tag_to_str((ev_args[0], ev_args[1]))
        ))


def guard(dest, ev_args):
    # forward events to dest until its element ends; if dest fails, consume
    # the rest of the element before re-raising
    depth = 1
    try:
        next(dest)
        while True:
            ev = yield
            if ev[0] == "start":
                depth += 1
            elif ev[0] == "end":
                depth -= 1
            try:
                dest.send(ev)
            except StopIteration as exc:
                return exc.value
    finally:
        while depth > 0:
            ev_type, *_ = yield
            if ev_type == "end":
                depth -= 1
            elif ev_type == "start":
                depth += 1


class _CollectorContentHandlerFilter(xml.sax.handler.ContentHandler):
    # lxml.sax.saxify emits document and prefix mapping events which must not
    # reach a generator in the middle of a stream
    def __init__(self, receiver):
        super().__init__()
        self.__receiver = receiver

    def startElementNS(self, name, qname, attrs):
        self.__receiver.startElementNS(name, qname, dict(attrs.items()))

    def endElementNS(self, name, qname):
        self.__receiver.endElementNS(name, qname)

    def characters(self, content):
        self.__receiver.characters(content)
