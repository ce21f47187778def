########################################################################
# File name: __init__.py
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
Version information
###################

There are two ways to obtain the imported version of the :mod:`xmppclient`
package:

.. autodata:: __version__

.. data:: version

   Alias of :data:`__version__`.

.. autodata:: version_info

Shorthands
##########

.. function:: dial

   Alias of :func:`xmppclient.node.dial`.

The classes :class:`~.node.Config`, :class:`~.node.Connection`,
:class:`~.handler.Handler`, :class:`~.handler.BasicHandler`, the stanza
classes and :class:`~.structs.JID` are re-exported as well.
"""
from ._version import version_info, __version__, version  # NOQA: F401

#: The imported :mod:`xmppclient` version as a tuple.
#:
#: The components of the tuple are, in order: `major version`, `minor
#: version`, `patch level`, and `pre-release identifier`.
version_info = version_info

#: The imported :mod:`xmppclient` version as a string.
__version__ = __version__

from .stanza import Presence, IQ, Message  # NOQA: F401,E402
from .structs import JID  # NOQA: F401,E402
from .decoder import Stanza  # NOQA: F401,E402
from .handler import Handler, BasicHandler  # NOQA: F401,E402
from .node import dial, Config, Connection  # NOQA: F401,E402
