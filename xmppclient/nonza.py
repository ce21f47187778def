########################################################################
# File name: nonza.py
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
:mod:`~xmppclient.nonza` --- Non-stanza stream-level XSOs (Nonzas)
##################################################################

This module contains XSO models for stream-level elements which are not
stanzas. Since :xep:`0360`, these are called "nonzas".

General XSOs
============

.. autoclass:: StreamError()

.. autoclass:: StreamFeatures()

StartTLS related XSOs
=====================

.. autoclass:: StartTLSFeature()

.. autoclass:: StartTLS()

.. autoclass:: StartTLSProceed()

.. autoclass:: StartTLSFailure()

SASL related XSOs
=================

.. autoclass:: SASLMechanisms

.. autoclass:: SASLAuth

.. autoclass:: SASLChallenge

.. autoclass:: SASLResponse

.. autoclass:: SASLFailure

.. autoclass:: SASLSuccess

.. autoclass:: SASLAbort

"""
import itertools

from . import xso, errors

from .utils import etree, namespaces


class StreamError(xso.XSO):
    """
    XSO representing a stream error.

    .. attribute:: text

       The text content of the stream error.

    .. attribute:: condition

       The :class:`~.errors.StreamErrorCondition`. Unknown conditions are
       decoded as
       :attr:`~.errors.StreamErrorCondition.UNDEFINED_CONDITION`.

    """

    TAG = (namespaces.xmlstream, "error")

    condition = xso.ChildTag(errors.StreamErrorCondition, allow_none=True)

    text = xso.ChildText(
        tag=(namespaces.streams, "text"),
        attr_policy=xso.UnknownAttrPolicy.DROP,
        default=None,
    )

    def __init__(self,
                 condition=errors.StreamErrorCondition.UNDEFINED_CONDITION,
                 text=None):
        super().__init__()
        self.condition = condition
        self.text = text

    @classmethod
    def from_exception(cls, exc):
        return cls(condition=exc.condition, text=exc.text)

    def to_exception(self):
        return errors.StreamError(
            condition=self.condition,
            text=self.text
        )

    def xso_after_load(self):
        # conditions we do not know are dropped by the parser
        if self.condition is None:
            self.condition = errors.StreamErrorCondition.UNDEFINED_CONDITION


class StreamFeatures(xso.XSO):
    """
    XSO for collecting the supported stream features the remote advertises.

    Feature XSO classes are registered with the :meth:`as_feature_class`
    decorator. Features which are not registered are dropped.

    .. method:: stream_features[FeatureClass]

       Obtain the first feature XSO which matches the `FeatureClass`. If no
       such XSO is contained in the :class:`StreamFeatures` instance
       `stream_features`, :class:`KeyError` is raised.

    .. automethod:: as_feature_class

    .. automethod:: get_feature

    .. automethod:: has_feature

    """

    TAG = (namespaces.xmlstream, "features")

    features = xso.ChildMap([])

    @classmethod
    def as_feature_class(cls, other_cls):
        cls.register_child(cls.features, other_cls)
        return other_cls

    def __getitem__(self, feature_cls):
        try:
            return self.features.get(feature_cls.TAG, [])[0]
        except IndexError:
            raise KeyError(feature_cls) from None

    def __contains__(self, other):
        raise TypeError("membership test not supported")

    def has_feature(self, feature_cls):
        """
        Return :data:`True` if the stream features contain a feature of the
        given `feature_cls` type. :data:`False` is returned otherwise.
        """
        return bool(self.features.get(feature_cls.TAG))

    def get_feature(self, feature_cls, default=None):
        """
        If a feature of the given `feature_cls` type is contained in the
        current stream features set, the first such instance is returned.

        Otherwise, `default` is returned.
        """
        try:
            return self[feature_cls]
        except KeyError:
            return default

    def __iter__(self):
        return itertools.chain(*self.features.values())


@StreamFeatures.as_feature_class
class StartTLSFeature(xso.XSO):
    """
    Start TLS capability stream feature.

    .. attribute:: required

       :data:`True` if the server announced that TLS is mandatory.
    """

    TAG = (namespaces.starttls, "starttls")

    required = xso.ChildFlag((namespaces.starttls, "required"))


class StartTLS(xso.XSO):
    """
    XSO indicating that the client wants to start TLS now.
    """

    TAG = (namespaces.starttls, "starttls")


class StartTLSFailure(xso.XSO):
    """
    Server refusing to start TLS.
    """
    TAG = (namespaces.starttls, "failure")


class StartTLSProceed(xso.XSO):
    """
    Server allows start TLS.
    """
    TAG = (namespaces.starttls, "proceed")


class SASLMechanism(xso.XSO):
    TAG = (namespaces.sasl, "mechanism")

    name = xso.Text(default="")

    def __init__(self, name=None):
        super().__init__()
        if name is not None:
            self.name = name


@StreamFeatures.as_feature_class
class SASLMechanisms(xso.XSO):
    """
    The SASL mechanisms offered by the server, in document order.

    .. automethod:: get_mechanism_list
    """

    TAG = (namespaces.sasl, "mechanisms")

    mechanisms = xso.ChildList([SASLMechanism])

    def get_mechanism_list(self):
        """
        Return a list of the mechanism names.
        """
        return [mechanism.name for mechanism in self.mechanisms]


class SASLAuth(xso.XSO):
    """
    Start SASL authentication.

    .. attribute:: mechanism

       The mechanism to authenticate with.

    .. attribute:: payload

       For mechanisms which use an initial client-supplied payload, this can be
       :class:`bytes`. It is automatically encoded as base64 according to the
       XMPP SASL specification.

    """

    TAG = (namespaces.sasl, "auth")

    mechanism = xso.Attr("mechanism")
    payload = xso.Text(
        type_=xso.Base64Binary(empty_as_equal=True),
        default=None
    )

    def __init__(self, mechanism, payload=None):
        super().__init__()
        self.mechanism = mechanism
        self.payload = payload


class SASLChallenge(xso.XSO):
    """
    A SASL challenge.

    .. attribute:: payload

       The (decoded) SASL payload as :class:`bytes`. Base64 en/decoding is
       handled by the XSO stack.

    """

    TAG = (namespaces.sasl, "challenge")

    payload = xso.Text(
        type_=xso.Base64Binary(empty_as_equal=True),
        default=b"",
    )

    def __init__(self, payload):
        super().__init__()
        self.payload = payload


class SASLResponse(xso.XSO):
    """
    A SASL response.

    .. attribute:: payload

       The (decoded) SASL payload as :class:`bytes`.

    """

    TAG = (namespaces.sasl, "response")

    payload = xso.Text(
        type_=xso.Base64Binary(empty_as_equal=True),
        default=b"",
    )

    def __init__(self, payload):
        super().__init__()
        self.payload = payload


class SASLFailure(xso.XSO):
    """
    Indication of SASL failure.

    .. attribute:: condition

       The condition which caused the authentication to fail, as
       ``(namespace, localname)`` tuple, or :data:`None` if it is not
       one of the conditions defined in :rfc:`6120`.

    .. attribute:: text

       Optional human-readable text.

    .. attribute:: other

       :mod:`lxml` element collecting unknown children, such as conditions
       not defined in :rfc:`6120`.

    .. autoattribute:: condition_name

    """

    TAG = (namespaces.sasl, "failure")

    condition = xso.ChildTag(
        tags=[
            "aborted",
            "account-disabled",
            "credentials-expired",
            "encryption-required",
            "incorrect-encoding",
            "invalid-authzid",
            "invalid-mechanism",
            "malformed-request",
            "mechanism-too-weak",
            "not-authorized",
            "temporary-auth-failure",
        ],
        default_ns=namespaces.sasl,
        allow_none=True,
    )

    text = xso.ChildText(
        (namespaces.sasl, "text"),
        attr_policy=xso.UnknownAttrPolicy.DROP,
        default=None,
    )

    other = xso.Collector()

    def __init__(self, condition=(namespaces.sasl, "temporary-auth-failure"),
                 text=None):
        super().__init__()
        self.condition = condition
        self.text = text

    @property
    def condition_name(self):
        """
        Local name of the condition element, including conditions which are
        not listed in :rfc:`6120`. ``"undefined-condition"`` if the failure
        has no condition element at all.
        """
        if self.condition is not None:
            return self.condition[1]
        for el in self.other:
            return etree.QName(el).localname
        return "undefined-condition"


class SASLSuccess(xso.XSO):
    """
    Indication of SASL success, with optional final payload supplied by the
    server.

    .. attribute:: payload

       The (decoded) SASL payload, or :data:`None`.

    """

    TAG = (namespaces.sasl, "success")

    payload = xso.Text(
        type_=xso.Base64Binary(empty_as_equal=True),
        default=None
    )


class SASLAbort(xso.XSO):
    """
    Request to abort the SASL authentication.
    """
    TAG = (namespaces.sasl, "abort")
