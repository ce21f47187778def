########################################################################
# File name: handler.py
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
:mod:`~xmppclient.handler` --- Stanza callbacks
###############################################

.. autoclass:: Handler

.. autoclass:: BasicHandler
"""
import abc
import logging


class Handler(metaclass=abc.ABCMeta):
    """
    Receiver for the stanzas dispatched by
    :meth:`~.node.Connection.listen`. The callbacks run inside the listen
    task; a slow handler stalls the consumption of stanzas.
    """

    @abc.abstractmethod
    def recv_message(self, message):
        """
        Called with each received :class:`~.stanza.Message`.
        """

    @abc.abstractmethod
    def recv_presence(self, presence):
        """
        Called with each received :class:`~.stanza.Presence`, after its
        sender has been appended to the online roster.
        """


class BasicHandler(Handler):
    """
    Write everything received to the ``xmppclient.handler`` logger.
    """

    def __init__(self, logger=None):
        super().__init__()
        self.logger = logger or logging.getLogger(__name__)

    def recv_message(self, message):
        self.logger.info("%r: %s", message, message.body)

    def recv_presence(self, presence):
        self.logger.info("%r", presence)
