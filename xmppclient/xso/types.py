########################################################################
# File name: types.py
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
:mod:`xmppclient.xso.types` --- Types specifications for use with :mod:`xmppclient.xso.model`
#########################################################################################

Character data types convert between the strings found in XML attributes
and text nodes and the Python values exposed on XSO descriptors.

.. autoclass:: AbstractCDataType

.. autoclass:: String

.. autoclass:: Integer

.. autoclass:: Base64Binary
"""  # NOQA: E501
import abc
import base64
import numbers


class AbstractCDataType(metaclass=abc.ABCMeta):
    """
    Subclasses of this class describe character data types.

    :meth:`parse` converts a string received from XML into a Python value,
    :meth:`format` converts back and :meth:`coerce` is applied to values
    assigned by user code.

    :meth:`parse` raises :class:`ValueError` on malformed input; :meth:`coerce`
    raises :class:`TypeError` if the value cannot sensibly be converted.
    """

    def coerce(self, v):
        return v

    @abc.abstractmethod
    def parse(self, v):
        """
        Convert the given string `v` into a value of the appropriate type this
        class implements and return the result.
        """

    def format(self, v):
        return str(v)


class String(AbstractCDataType):
    """
    String :term:`Character Data Type`. This is the identity operation.
    """

    def coerce(self, v):
        if not isinstance(v, str):
            raise TypeError("must be a str object")
        return v

    def parse(self, v):
        return v


class Integer(AbstractCDataType):
    """
    Integer :term:`Character Data Type`, to the base 10.
    """

    def coerce(self, v):
        if not isinstance(v, numbers.Integral):
            raise TypeError("must be integral number")
        return int(v)

    def parse(self, v):
        return int(v)


class Base64Binary(AbstractCDataType):
    """
    :term:`Character Data Type` for :class:`bytes` encoded as base64.

    If `empty_as_equal` is :data:`True`, an empty value is represented using a
    single equal sign. This is used in the SASL protocol.
    """

    def __init__(self, *, empty_as_equal=False):
        super().__init__()
        self._empty_as_equal = empty_as_equal

    def coerce(self, v):
        if isinstance(v, (bytes, bytearray)):
            return bytes(v)
        raise TypeError("must be convertible to bytes")

    def parse(self, v):
        if self._empty_as_equal and v.strip() == "=":
            return b""
        return base64.b64decode(v)

    def format(self, v):
        if self._empty_as_equal and not v:
            return "="
        return base64.b64encode(v).decode("ascii")
