"""
Local port selection for the OAuth callback listener.

The server suggests alternative ports, ordered by preference, in case the
default callback port is taken. Probing is best effort: a port found free
here can still be grabbed by someone else before the callback server binds
it, the callback server's own bind is the authoritative check.
"""

import socket
from typing import Callable, Iterable, Union

from .constants import CALLBACK_HOST

MIN_PORT = 1
MAX_PORT = 65535


class NoPortAvailableError( Exception ):
    """None of the candidate ports is free."""

    def __init__( self, default_port: int, attempted: list ):
        self.default_port = default_port
        self.attempted = list( attempted )
        if self.attempted:
            msg = 'default port %s and alternative ports %s are all occupied' % (
                default_port, ', '.join( str( p ) for p in self.attempted ) )
        else:
            msg = 'default port %s is occupied and no usable alternative port was provided' % ( default_port, )
        super().__init__( msg )


def _is_valid_port( port ) -> bool:
    return isinstance( port, int ) and not isinstance( port, bool ) and MIN_PORT <= port <= MAX_PORT


def is_port_occupied( port: int, host: str = CALLBACK_HOST ) -> bool:
    """
    Check whether a local TCP port is already bound.

    Any bind failure, not just "address in use", reports the port as
    occupied. Invalid port numbers are occupied too.
    """
    if not _is_valid_port( port ):
        return True
    try:
        with socket.socket( socket.AF_INET, socket.SOCK_STREAM ) as s:
            s.bind( ( host, port ) )
    except OSError:
        return True
    return False


def parse_alternative_ports( alternatives: Union[str, Iterable, None] ) -> list:
    """
    Parse the server's alternative ports into an ordered list of ints.

    Accepts the comma separated form returned by the API ("9998, 10000") or
    any iterable. Entries that are not valid port numbers are skipped, the
    server order is kept and repeated ports only count once.
    """
    if alternatives is None:
        return []
    if isinstance( alternatives, str ):
        alternatives = alternatives.split( ',' )

    ports = []
    for entry in alternatives:
        try:
            port = int( str( entry ).strip() )
        except ValueError:
            continue
        if _is_valid_port( port ) and port not in ports:
            ports.append( port )
    return ports


def select_available_port( default_port: int, alternative_ports: Union[str, Iterable, None], probe: Callable[[int], bool] = is_port_occupied ) -> int:
    """
    Select the first free port among the server provided alternatives.

    Only meant to be called once default_port is known to be occupied.

    Args:
        default_port (int): the occupied default callback port.
        alternative_ports (str or list): server suggested ports, in preference order.
        probe (function(port)): returns True if the port is occupied.

    Returns:
        the selected port.

    Raises:
        NoPortAvailableError: if every candidate is occupied or there is none.
    """
    candidates = [ p for p in parse_alternative_ports( alternative_ports ) if p != default_port ]
    for port in candidates:
        if not probe( port ):
            return port
    raise NoPortAvailableError( default_port, candidates )
