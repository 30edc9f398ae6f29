"""
Browser based OAuth login for the AgbCloud CLI.

The flow is driven by the AgbCloud API, which hands out the provider URL
and later exchanges the authorization code for session tokens:

1. Request the login URL with a localhost redirect on the default port.
2. If that port is taken, pick one of the alternatives suggested by the
   server and request the URL again with that port.
3. Start a local callback server on the selected port and open the browser.
4. Wait for the redirect (or an error, or the deadline).
5. Exchange the code for tokens, bound to the same port, and save them.
"""

import os
import time
import urllib.parse
import webbrowser
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, Optional

from .client import ApiClient, OAuthURLResponse, TokenExchangeResponse
from .config import Config, ConfigError, TokenBundle
from .constants import (
    CALLBACK_PATH,
    CALLBACK_PORT_ENV_VAR,
    CALLBACK_STARTUP_GRACE,
    CALLBACK_STARTUP_MAX_WAIT,
    DEFAULT_CALLBACK_PORT,
    OAUTH_CALLBACK_TIMEOUT,
    OAUTH_CLIENT_TYPE,
    OAUTH_PROVIDER,
)
from .oauth_errors import (
    CallbackFailedError,
    CallbackListenError,
    CallbackTimeoutError,
    OAuthRequestFailedError,
    PersistenceWarning,
    PortUnavailableError,
    TokenExchangeFailedError,
)
from .oauth_ports import NoPortAvailableError, is_port_occupied, select_available_port
from .oauth_server import CallbackContext, OAuthCallbackServer
from .term_utils import mask_secret, print_error, print_info, print_success, print_warning, truncate_for_display
from .utils import AgbApiException

# How often we check on the callback server while it starts.
_STARTUP_POLL_INTERVAL = 0.05


def get_callback_port() -> int:
    """Default callback port, overridable with AGBCLOUD_CALLBACK_PORT."""
    value = os.environ.get( CALLBACK_PORT_ENV_VAR )
    if value:
        try:
            port = int( value )
            if 0 < port < 65536:
                return port
        except ValueError:
            pass
        print_warning( 'ignoring invalid %s=%r' % ( CALLBACK_PORT_ENV_VAR, value ) )
    return DEFAULT_CALLBACK_PORT


class OAuthRequest( object ):
    '''Parameters of one OAuth login URL request.'''

    def __init__( self, port: int, client_type: str = OAUTH_CLIENT_TYPE, provider: str = OAUTH_PROVIDER ):
        self._redirect_base = 'http://localhost:%s' % ( port, )
        self._client_type = client_type
        self._provider = provider

    @property
    def redirect_base( self ) -> str:
        return self._redirect_base

    @property
    def client_type( self ) -> str:
        return self._client_type

    @property
    def provider( self ) -> str:
        return self._provider

    @property
    def port( self ) -> int:
        return urllib.parse.urlparse( self._redirect_base ).port


class LoginResult( object ):
    '''Outcome of a successful login.'''

    def __init__( self, tokens: TokenBundle, port: int, saved: bool, persistence_warning: Optional[PersistenceWarning] = None, request_id: str = '', trace_id: str = '' ):
        self.tokens = tokens
        self.port = port
        self.saved = saved
        self.persistence_warning = persistence_warning
        self.request_id = request_id
        self.trace_id = trace_id


class OAuthLogin( object ):
    '''Drives one interactive OAuth login.'''

    def __init__( self,
                  api_client: ApiClient,
                  config: Config,
                  open_browser: Callable[[str], bool] = webbrowser.open,
                  port_probe: Callable[[int], bool] = is_port_occupied,
                  server_factory: Callable[[int], OAuthCallbackServer] = OAuthCallbackServer,
                  default_port: Optional[int] = None,
                  callback_timeout: float = OAUTH_CALLBACK_TIMEOUT,
                  startup_grace: float = CALLBACK_STARTUP_GRACE,
                  startup_max_wait: float = CALLBACK_STARTUP_MAX_WAIT ):
        '''
        Args:
            api_client (ApiClient): client for the AgbCloud API.
            config (Config): configuration handle the tokens are saved to.
            open_browser (function(url)): opens the system browser, returns False or raises on failure.
            port_probe (function(port)): returns True if a local port is occupied.
            server_factory (function(port)): builds the callback server for a port.
            default_port (int): default callback port, see get_callback_port().
            callback_timeout (float): seconds to wait for the browser redirect.
            startup_grace (float): minimum delay between starting the callback server and opening the browser.
            startup_max_wait (float): maximum time to wait for the callback server to listen.
        '''
        self._api = api_client
        self._config = config
        self._open_browser = open_browser
        self._probe = port_probe
        self._server_factory = server_factory
        self._default_port = default_port if default_port is not None else get_callback_port()
        self._callback_timeout = callback_timeout
        self._startup_grace = startup_grace
        self._startup_max_wait = startup_max_wait

    def login( self ) -> LoginResult:
        '''Run the login.

        Returns:
            a LoginResult, possibly carrying a PersistenceWarning.

        Raises:
            OAuthLoginError: a subclass naming the stage that failed.
        '''
        print_info( "Starting AgbCloud authentication..." )
        print_info( "Default callback port: %s" % ( self._default_port, ) )

        request = OAuthRequest( self._default_port )
        print_info( "Requesting OAuth login URL..." )
        response = self._request_oauth_url( request )

        request, response = self._negotiate_port( request, response )

        if not response.invoke_url:
            raise OAuthRequestFailedError( 'received empty OAuth URL from server', stage = 'url' )

        print_success( "Successfully retrieved OAuth URL!" )
        print_info( "Request ID: %s" % ( response.request_id, ) )
        print_info( "Trace ID: %s" % ( response.trace_id, ) )
        print_info( "Final callback port: %s" % ( request.port, ) )

        code = self._wait_for_code( request, response.invoke_url )
        print_success( "Authentication successful!" )
        print_info( "Received authorization code: %s" % ( truncate_for_display( code ), ) )

        exchange = self._exchange_code( request, code )
        return self._save_tokens( request, exchange )

    def _request_oauth_url( self, request: OAuthRequest, is_alternative: bool = False ) -> OAuthURLResponse:
        stage = 'second' if is_alternative else 'first'
        what = ' with alternative port %s' % ( request.port, ) if is_alternative else ''
        try:
            response = self._api.get_login_provider_url( request.redirect_base,
                                                         client_type = request.client_type,
                                                         provider = request.provider,
                                                         port = request.port if is_alternative else None )
        except AgbApiException as e:
            if e.code is not None:
                print_error( "Status Code: %s" % ( e.code, ) )
            raise OAuthRequestFailedError( 'failed to get OAuth URL%s: %s' % ( what, e ), stage = stage, cause = e )

        if not response.success:
            raise OAuthRequestFailedError( 'OAuth request%s failed: %s' % ( what, response.code or 'unknown error' ), stage = stage )
        return response

    def _negotiate_port( self, request: OAuthRequest, response: OAuthURLResponse ) -> tuple[OAuthRequest, OAuthURLResponse]:
        default_port = request.port
        if not self._probe( default_port ):
            print_success( "Default port %s is available" % ( default_port, ) )
            return request, response

        print_warning( "Default port %s is occupied, trying alternative ports..." % ( default_port, ) )
        if not response.alternative_ports:
            if response.alternative_ports_csv:
                raise PortUnavailableError( 'default port %s is occupied and no usable alternative ports were provided (got "%s")' % ( default_port, response.alternative_ports_csv ) )
            raise PortUnavailableError( 'default port %s is occupied and no alternative ports provided' % ( default_port, ) )

        try:
            port = select_available_port( default_port, response.alternative_ports, probe = self._probe )
        except NoPortAvailableError as e:
            print_error( "Port selection failed:" )
            print_error( "   Default port %s is occupied" % ( default_port, ) )
            print_error( "   Alternative ports provided: %s" % ( response.alternative_ports_csv, ) )
            print_info( "Please free up one of these ports and try again" )
            raise PortUnavailableError( 'failed to find available port: %s' % ( e, ), cause = e )

        print_info( "Using alternative port: %s" % ( port, ) )
        alternative = OAuthRequest( port, client_type = request.client_type, provider = request.provider )
        return alternative, self._request_oauth_url( alternative, is_alternative = True )

    def _wait_for_code( self, request: OAuthRequest, url: str ) -> str:
        server = self._server_factory( request.port )
        if server.port != request.port:
            raise CallbackFailedError( 'callback server port %s does not match redirect port %s' % ( server.port, request.port ) )

        print_info( "Starting local callback server on port %s..." % ( request.port, ) )
        context = CallbackContext( self._callback_timeout )
        executor = ThreadPoolExecutor( max_workers = 1 )
        try:
            future = executor.submit( server.start, context )
            self._await_listening( server, future )
            self._launch_browser( url )
            print_info( "Please complete the authentication process in your browser." )
            print_info( "Waiting for callback on http://localhost:%s%s..." % ( request.port, CALLBACK_PATH ) )

            # The server enforces the deadline itself, the extra margin only
            # covers a server that fails to notice it.
            try:
                return future.result( timeout = context.remaining() + self._startup_max_wait )
            except FutureTimeoutError:
                raise CallbackTimeoutError( 'authentication timeout: please try again' )
        finally:
            # Whatever happened, the listener is stopped and its port released
            # before we return or raise.
            context.cancel()
            executor.shutdown( wait = True )

    def _await_listening( self, server: OAuthCallbackServer, future ):
        time.sleep( self._startup_grace )
        deadline = time.monotonic() + self._startup_max_wait
        while not server.listening.wait( _STARTUP_POLL_INTERVAL ):
            if future.done():
                # Bind failure, raises the CallbackListenError.
                future.result()
            if time.monotonic() >= deadline:
                raise CallbackListenError( 'callback server did not start listening on port %s' % ( server.port, ) )

    def _launch_browser( self, url: str ):
        print_info( "OAuth URL:" )
        print_info( "  %s" % ( url, ) )
        print_info( "Opening the browser for authentication..." )
        print_info( "If the browser doesn't open automatically, please copy and paste the URL above." )

        try:
            opened = self._open_browser( url )
            error = None if opened is not False else 'no usable browser found'
        except ( webbrowser.Error, OSError ) as e:
            error = str( e )

        if error is None:
            print_success( "Browser opened successfully!" )
        else:
            print_warning( "Failed to open browser automatically: %s" % ( error, ) )
            print_info( "Please copy the URL above and paste it into your browser to complete authentication." )

    def _exchange_code( self, request: OAuthRequest, code: str ) -> TokenExchangeResponse:
        print_info( "Exchanging authorization code for access token..." )
        try:
            exchange = self._api.login_translate( code, request.port,
                                                  client_type = request.client_type,
                                                  provider = request.provider )
        except AgbApiException as e:
            if e.code is not None:
                print_error( "Status Code: %s" % ( e.code, ) )
            raise TokenExchangeFailedError( 'failed to exchange code for token: %s' % ( e, ), cause = e )

        print_info( "HTTP Status Code: %s" % ( exchange.http_status, ) )
        print_info( "Success: %s" % ( exchange.success, ) )
        print_info( "Code: %s" % ( exchange.code, ) )
        print_info( "Request ID: %s" % ( exchange.request_id, ) )
        print_info( "Trace ID: %s" % ( exchange.trace_id, ) )

        if not exchange.success:
            print_error( "Token exchange failed: %s" % ( exchange.code, ) )
            raise TokenExchangeFailedError( 'token exchange was not successful: %s' % ( exchange.code or 'unknown error', ),
                                            provider_code = exchange.code )
        return exchange

    def _save_tokens( self, request: OAuthRequest, exchange: TokenExchangeResponse ) -> LoginResult:
        tokens = exchange.tokens

        print_info( "Authentication Token Information:" )
        for label, field in ( ( 'Login Token', 'login_token' ),
                              ( 'Session ID', 'session_id' ),
                              ( 'Keep Alive Token', 'keep_alive_token' ) ):
            value = getattr( tokens, field )
            if value:
                print_info( "%s: %s" % ( label, mask_secret( value ) ) )
            else:
                print_warning( "%s: (empty)" % ( label, ) )
        if tokens.expires_at:
            print_info( "Expires At: %s" % ( tokens.expires_at, ) )
        else:
            print_warning( "Expires At: (empty)" )

        print_info( "Saving authentication tokens..." )
        try:
            saved = self._config.save_tokens( tokens.login_token,
                                              tokens.session_id,
                                              tokens.keep_alive_token,
                                              tokens.expires_at )
        except ConfigError as e:
            warning = PersistenceWarning( e )
            print_warning( str( warning ) )
            print_info( "You are logged in, but tokens were not saved to config file." )
            return LoginResult( tokens, request.port, False, persistence_warning = warning,
                                request_id = exchange.request_id, trace_id = exchange.trace_id )

        if saved:
            print_success( "Authentication tokens saved successfully!" )
        else:
            print_info( "Ephemeral credentials mode enabled - tokens were not persisted to disk." )
        print_success( "You are now logged in to AgbCloud!" )
        return LoginResult( tokens, request.port, saved,
                            request_id = exchange.request_id, trace_id = exchange.trace_id )


def perform_oauth_login( config: Optional[Config] = None, api_client: Optional[ApiClient] = None, **kwargs ) -> LoginResult:
    """
    Perform the OAuth login with the default collaborators.

    Args:
        config (Config): configuration handle, loaded from disk if not provided.
        api_client (ApiClient): API client, built from the config if not provided.
        kwargs: passed to OAuthLogin.

    Returns:
        the LoginResult.
    """
    if config is None:
        try:
            config = Config.load()
        except ConfigError as e:
            # We can still log in, saving the tokens will surface the error again.
            print_warning( "failed to load config: %s" % ( e, ) )
            config = Config( Config.default_path() )
    if api_client is None:
        api_client = ApiClient.from_config( config )
    return OAuthLogin( api_client, config, **kwargs ).login()
