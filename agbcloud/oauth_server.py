import html
import http.server
import queue
import socket
import socketserver
import threading
import time
import urllib.parse
from typing import Optional

from .constants import CALLBACK_HOST, CALLBACK_PATH
from .oauth_errors import CallbackFailedError, CallbackListenError, CallbackTimeoutError

# Server states.
IDLE = 'idle'
LISTENING = 'listening'
FULFILLED = 'fulfilled'
TIMED_OUT = 'timed_out'
BIND_FAILED = 'bind_failed'

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>AgbCloud - {title}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
            background: #0b1020;
            color: #ffffff;
            min-height: 100vh;
            margin: 0;
            display: flex;
            align-items: center;
            justify-content: center;
        }}
        .container {{
            text-align: center;
            padding: 48px 40px;
            background: rgba(255, 255, 255, 0.05);
            border: 1px solid rgba(255, 255, 255, 0.1);
            border-radius: 16px;
            max-width: 500px;
            width: 90%;
        }}
        .icon {{
            font-size: 40px;
            color: {color};
            margin-bottom: 24px;
        }}
        .detail {{
            font-family: 'Courier New', monospace;
            color: {color};
            margin-bottom: 16px;
        }}
        .message {{
            color: rgba(255, 255, 255, 0.7);
            line-height: 1.6;
        }}
    </style>
</head>
<body>
    <div class="container">
        <div class="icon">{icon}</div>
        <h1>{title}</h1>
        {detail}
        <p class="message">{message}</p>
        <p class="message">You can close this browser window and return to your terminal.</p>
    </div>
</body>
</html>
"""


class CallbackContext( object ):
    '''Deadline and cancellation signal governing one callback wait.'''

    def __init__( self, timeout: float ):
        '''
        Args:
            timeout (float): seconds from now until the deadline.
        '''
        self.timeout = timeout
        self._deadline = time.monotonic() + timeout
        self._cancelled = threading.Event()

    def cancel( self ):
        self._cancelled.set()

    @property
    def cancelled( self ) -> bool:
        return self._cancelled.is_set()

    def remaining( self ) -> float:
        return max( 0.0, self._deadline - time.monotonic() )

    def done( self ) -> bool:
        return self.cancelled or self.remaining() <= 0


class CallbackResult( object ):
    '''Outcome of the provider redirect: either a code or an error.'''

    def __init__( self, code: Optional[str] = None, error: Optional[str] = None ):
        self.code = code
        self.error = error

    @property
    def is_success( self ) -> bool:
        return self.error is None and bool( self.code )


class OAuthCallbackHandler( http.server.BaseHTTPRequestHandler ):
    """Handler for OAuth callback requests."""

    # Drop clients that connect but never send a request.
    timeout = 10

    def __init__( self, *args, callback_queue=None, callback_path=CALLBACK_PATH, **kwargs ):
        self.callback_queue = callback_queue
        self.callback_path = callback_path
        super().__init__( *args, **kwargs )

    def do_GET( self ):
        """Handle GET request from OAuth provider redirect."""
        parsed = urllib.parse.urlparse( self.path )
        if parsed.path != self.callback_path:
            # Browsers also ask for things like /favicon.ico, keep waiting.
            self.send_response( 404 )
            self.send_header( 'Content-type', 'text/plain' )
            self.end_headers()
            self.wfile.write( b"Not found" )
            return

        params = urllib.parse.parse_qs( parsed.query, keep_blank_values=True )

        # An error wins over a code if the provider sent both.
        if 'error' in params:
            error = params[ 'error' ][ 0 ] or 'unknown_error'
            description = params.get( 'error_description', [ '' ] )[ 0 ]
            if description:
                error = '%s: %s' % ( error, description )
            self._respond( CallbackResult( error = error ), 'Authentication Failed', 'The authentication process encountered an error, please try again.' )
        elif params.get( 'code', [ '' ] )[ 0 ]:
            self._respond( CallbackResult( code = params[ 'code' ][ 0 ] ), 'Authentication Successful', 'You have been successfully authenticated with the AgbCloud CLI.' )
        else:
            error = 'malformed OAuth callback: no code or error parameter'
            self._respond( CallbackResult( error = error ), 'Authentication Failed', 'The authentication response could not be understood, please try again.' )

    def _respond( self, result: CallbackResult, title: str, message: str ):
        # The page goes out before the result is delivered, once delivered the
        # server closes every connection still open.
        try:
            self.send_page( title, message, error = result.error )
        finally:
            self._deliver( result )

    def _deliver( self, result: CallbackResult ):
        if self.callback_queue is None:
            return
        try:
            self.callback_queue.put_nowait( result )
        except queue.Full:
            # A result was already delivered, the first one wins.
            pass

    def send_page( self, title: str, message: str, error: Optional[str] = None ):
        """Send the acknowledgement page shown in the browser."""
        if error is None:
            icon, color, detail = '&#10003;', '#4AE290', ''
        else:
            icon, color = '&#10005;', '#E24A4A'
            detail = '<div class="detail">%s</div>' % ( html.escape( error ), )
        page = _PAGE_TEMPLATE.format( title = html.escape( title ),
                                      message = html.escape( message ),
                                      icon = icon,
                                      color = color,
                                      detail = detail )

        self.send_response( 200 )
        self.send_header( 'Content-type', 'text/html; charset=utf-8' )
        self.end_headers()
        self.wfile.write( page.encode( 'utf-8' ) )
        self.wfile.flush()

    def log_message( self, format, *args ):
        """Suppress log messages."""
        pass


class _CallbackTCPServer( socketserver.ThreadingMixIn, socketserver.TCPServer ):
    # A previous login may have left the port in TIME_WAIT.
    allow_reuse_address = True

    # Each connection gets its own thread so a slow client never holds the
    # serving loop past its deadline.
    daemon_threads = True
    block_on_close = False

    def __init__( self, *args, **kwargs ):
        self._connections = set()
        self._connections_lock = threading.Lock()
        super().__init__( *args, **kwargs )

    def process_request( self, request, client_address ):
        with self._connections_lock:
            self._connections.add( request )
        super().process_request( request, client_address )

    def shutdown_request( self, request ):
        with self._connections_lock:
            self._connections.discard( request )
        super().shutdown_request( request )

    def close_connections( self ):
        '''Unblock the handlers still reading from their clients.'''
        with self._connections_lock:
            connections = list( self._connections )
        for request in connections:
            try:
                request.shutdown( socket.SHUT_RDWR )
            except OSError:
                # Already closed by its handler.
                pass

    def handle_error( self, request, client_address ):
        """Suppress errors of individual connections."""
        pass


class OAuthCallbackServer( object ):
    """Single-shot local HTTP listener receiving the OAuth redirect."""

    def __init__( self, port: int, host: str = CALLBACK_HOST, callback_path: str = CALLBACK_PATH, poll_interval: float = 0.2 ):
        """
        Initialize OAuth callback server.

        Args:
            port: local port to listen on, the one embedded in the redirect URL
            host: interface to bind
            callback_path: path the provider redirects to
            poll_interval: how often the deadline is checked (seconds)
        """
        self.port = port
        self.host = host
        self.callback_path = callback_path
        self.poll_interval = poll_interval
        self.state = IDLE
        self.listening = threading.Event()
        self._queue = queue.Queue( maxsize = 1 )

    def start( self, context: CallbackContext ) -> str:
        """
        Listen until a callback arrives or the context is done.

        The listener is closed before this returns, whatever the outcome.

        Returns:
            the authorization code.

        Raises:
            CallbackListenError: the port could not be bound.
            CallbackFailedError: the provider redirected with an error.
            CallbackTimeoutError: the context expired or was cancelled first.
        """
        if self.state != IDLE:
            raise RuntimeError( 'callback server can only be started once' )

        handler = lambda *args, **kwargs: OAuthCallbackHandler(
            *args,
            callback_queue = self._queue,
            callback_path = self.callback_path,
            **kwargs
        )

        try:
            server = _CallbackTCPServer( ( self.host, self.port ), handler )
        except OSError as e:
            self.state = BIND_FAILED
            raise CallbackListenError( 'failed to start callback server on %s:%s: %s' % ( self.host, self.port, e ), cause = e )

        self.state = LISTENING
        self.listening.set()
        try:
            result = self._serve( server, context )
        finally:
            server.server_close()
            server.close_connections()

        if result is None:
            self.state = TIMED_OUT
            if context.cancelled:
                raise CallbackTimeoutError( 'authentication cancelled before a callback was received' )
            raise CallbackTimeoutError( 'authentication timeout: no callback received within %s seconds, please try again' % ( context.timeout, ) )

        self.state = FULFILLED
        if not result.is_success:
            raise CallbackFailedError( 'authentication failed: %s' % ( result.error, ) )
        return result.code

    def _serve( self, server: socketserver.TCPServer, context: CallbackContext ) -> Optional[CallbackResult]:
        while True:
            try:
                return self._queue.get_nowait()
            except queue.Empty:
                pass

            if context.done():
                return None

            # Accept one connection, or time out to re-check the deadline.
            server.timeout = max( 0.01, min( self.poll_interval, context.remaining() ) )
            server.handle_request()
