########################################################################
# File name: __main__.py
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
import argparse
import asyncio
import getpass
import logging
import sys

from . import dial, Config, BasicHandler
from .im import signal_presence


async def main(args, password):
    config = Config(
        tls_required=args.tls,
        log=sys.stderr if args.verbose else None,
    )
    conn = await dial(args.address, args.user, args.domain, password, config,
                      handler=BasicHandler())
    signal_presence(conn, args.show)
    try:
        await conn.listen()
    finally:
        conn.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="""
        Log into an XMPP account, announce presence and log all received
        messages and presences until the connection dies.
        """
    )

    parser.add_argument(
        "address",
        help="server address as host:port (port defaults to 5222)"
    )
    parser.add_argument(
        "user",
        help="account name to authenticate as"
    )
    parser.add_argument(
        "domain",
        help="domain of the account"
    )
    parser.add_argument(
        "--tls",
        action="store_true",
        default=False,
        help="require STARTTLS"
    )
    parser.add_argument(
        "--show",
        default="chat",
        help="presence show value to announce (default: chat)"
    )
    parser.add_argument(
        "-v",
        dest="verbose",
        action="count",
        default=0,
        help="increase verbosity"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level={
            0: logging.WARNING,
            1: logging.INFO,
        }.get(args.verbose, logging.DEBUG)
    )

    password = getpass.getpass("Password for {}@{}: ".format(args.user,
                                                            args.domain))

    try:
        asyncio.run(main(args, password))
    except KeyboardInterrupt:
        pass
