"""
Thin client for the AgbCloud REST API, limited to the OAuth endpoints used
by "agbcloud login".
"""

import json
import urllib.parse
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import requests

from . import __version__
from .config import TokenBundle
from .constants import API_REQUEST_TIMEOUT, DEFAULT_ENDPOINT, OAUTH_CLIENT_TYPE, OAUTH_PROVIDER
from .oauth_ports import parse_alternative_ports
from .request_utils import getCurlCommandString
from .term_utils import mask_secret, truncate_for_display
from .user_agent_utils import build_user_agent
from .utils import AgbApiException, GET

LOGIN_PROVIDER_PATH = 'api/oauth/login_provider'
LOGIN_TRANSLATE_PATH = 'api/oauth/login_translate'

# Request parameters and response fields never shown in full in debug output.
SECRET_PARAMS = ( 'authCode', )
SECRET_RESPONSE_FIELDS = ( 'loginToken', 'sessionId', 'keepAliveToken' )

# Default function to call with debug messages.
DEFAULT_PRINT_DEBUG_FN: Optional[Callable[[str], None]] = None

def set_default_print_debug_fn( fn: Optional[Callable[[str], None]] = None ):
    """
    Set a default function to call with debug messages.

    Args:
        fn (function): the function to call with debug messages.
    """
    global DEFAULT_PRINT_DEBUG_FN
    DEFAULT_PRINT_DEBUG_FN = fn

def _build_user_agent():
    return build_user_agent( 'agbcloud-cli', __version__ )

def _scrub_secrets( text: str, secrets: list ) -> str:
    '''Replace every occurrence of the secrets, raw or URL encoded, with their display prefix.'''
    for secret in secrets:
        for form in { secret, urllib.parse.quote_plus( secret ), urllib.parse.quote( secret, safe = '' ) }:
            text = text.replace( form, truncate_for_display( secret ) )
    return text

def _mask_response_fields( value ):
    if isinstance( value, dict ):
        return { k: mask_secret( v ) if k in SECRET_RESPONSE_FIELDS and isinstance( v, str ) else _mask_response_fields( v )
                 for k, v in value.items() }
    if isinstance( value, list ):
        return [ _mask_response_fields( v ) for v in value ]
    return value

def _redact_body( text: str ) -> str:
    '''Response body with the session tokens masked, for debug output.'''
    try:
        payload = json.loads( text )
    except ValueError:
        return text
    return json.dumps( _mask_response_fields( payload ) )


def _response_data( payload: dict ) -> dict:
    data = payload.get( 'data' )
    if data is None:
        return {}
    if not isinstance( data, dict ):
        raise AgbApiException( 'unexpected "data" in API response: %r' % ( data, ) )
    return data

def _string_field( data: dict, key: str ) -> str:
    value = data.get( key )
    if value is None:
        return ''
    if not isinstance( value, str ):
        raise AgbApiException( 'unexpected "%s" in API response: expected a string, got %s' % ( key, type( value ).__name__ ) )
    return value

def _alternative_ports_field( data: dict ) -> str:
    value = data.get( 'alternativePorts' )
    if value is None:
        return ''
    if isinstance( value, list ):
        return ','.join( str( p ) for p in value )
    if not isinstance( value, ( str, int ) ) or isinstance( value, bool ):
        raise AgbApiException( 'unexpected "alternativePorts" in API response: %r' % ( value, ) )
    return str( value )


class OAuthURLResponse( object ):
    '''Response of the OAuth login URL endpoint.

    Raises:
        AgbApiException: if the payload is malformed.
    '''

    def __init__( self, payload: dict ):
        data = _response_data( payload )
        self.success: bool = bool( payload.get( 'success', False ) )
        self.code: str = str( payload.get( 'code' ) or '' )
        self.request_id: str = str( payload.get( 'requestId' ) or '' )
        self.trace_id: str = str( payload.get( 'traceId' ) or '' )
        self.invoke_url: str = _string_field( data, 'invokeUrl' )
        self.alternative_ports_csv: str = _alternative_ports_field( data )
        self.alternative_ports: list[int] = parse_alternative_ports( self.alternative_ports_csv )


class TokenExchangeResponse( object ):
    '''Response of the login translate (code for tokens) endpoint.

    Raises:
        AgbApiException: if the payload is malformed.
    '''

    def __init__( self, payload: dict, http_status: int ):
        data = _response_data( payload )
        self.success: bool = bool( payload.get( 'success', False ) )
        self.code: str = str( payload.get( 'code' ) or '' )
        self.request_id: str = str( payload.get( 'requestId' ) or '' )
        self.trace_id: str = str( payload.get( 'traceId' ) or '' )
        self.http_status: int = http_status
        self.http_status_code: Optional[int] = payload.get( 'httpStatusCode' )
        self.tokens = TokenBundle(
            login_token = _string_field( data, 'loginToken' ),
            session_id = _string_field( data, 'sessionId' ),
            keep_alive_token = _string_field( data, 'keepAliveToken' ),
            expires_at = _string_field( data, 'expiresAt' ),
        )


class ApiClient( object ):
    '''Request/response transport for the AgbCloud API.'''

    def __init__( self, endpoint: str = DEFAULT_ENDPOINT, timeout: int = API_REQUEST_TIMEOUT, print_debug_fn: Optional[Callable[[str], None]] = None, session: Optional[requests.Session] = None ):
        '''Create a client.

        Args:
            endpoint (str): root URL of the API.
            timeout (int): network timeout for each request, in seconds.
            print_debug_fn (function(message)): a callback function that will receive detailed debug messages.
            session (requests.Session): optional session to use, mostly for tests.
        '''
        self._endpoint = endpoint.rstrip( '/' )
        self._timeout = timeout
        self._debug = print_debug_fn or DEFAULT_PRINT_DEBUG_FN
        self._session = session or requests.Session()
        self._session.headers[ 'User-Agent' ] = _build_user_agent()

    @classmethod
    def from_config( cls, config, **kwargs ) -> 'ApiClient':
        return cls( endpoint = config.endpoint, **kwargs )

    def _printDebug( self, msg ):
        if self._debug is not None:
            time_string = datetime.now( timezone.utc ).strftime( "%Y-%m-%d %H:%M:%SZ" )
            self._debug( f"{time_string}: {msg}" )

    def invoke( self, path: str, params: dict[str, Any], verb: str = GET ) -> tuple[dict[str, Any], int]:
        '''Issue a request and decode the JSON response.

        Args:
            path (str): path relative to the endpoint.
            params (dict): query parameters, None values are dropped.
            verb (str): HTTP verb.

        Returns:
            a tuple of (decoded JSON payload, HTTP status code).

        Raises:
            AgbApiException: on transport errors, non 2xx status or undecodable payloads.
        '''
        url = '%s/%s' % ( self._endpoint, path )
        params = { k: v for k, v in params.items() if v is not None }
        request = self._session.prepare_request( requests.Request( verb, url, params = params ) )
        secrets = [ str( params[ k ] ) for k in SECRET_PARAMS if params.get( k ) ]

        self._printDebug( "Request information:" )
        self._printDebug( "cURL command:" )
        self._printDebug( _scrub_secrets( getCurlCommandString( request ), secrets ) )

        try:
            resp = self._session.send( request, timeout = self._timeout )
        except requests.exceptions.RequestException as e:
            # Transport errors can quote the full URL.
            error = _scrub_secrets( str( e ), secrets )
            self._printDebug( "%s %s failed: %s" % ( verb, path, error ) )
            raise AgbApiException( 'network error: %s' % ( error, ) )

        self._printDebug( "%s: %s ==> %s ( %s )" % ( verb, path, resp.status_code, _redact_body( resp.text ) ) )

        if not 200 <= resp.status_code < 300:
            raise AgbApiException( 'API returned HTTP %s: %s' % ( resp.status_code, _redact_body( resp.text ) or resp.reason ),
                                   code = resp.status_code,
                                   body = resp.text )
        try:
            payload = resp.json()
        except ValueError as e:
            raise AgbApiException( 'failed to decode data from API: %s' % ( e, ), code = resp.status_code, body = resp.text )
        if not isinstance( payload, dict ):
            raise AgbApiException( 'unexpected data from API: %r' % ( payload, ), code = resp.status_code, body = resp.text )

        return payload, resp.status_code

    def get_login_provider_url( self, redirect_base: str, client_type: str = OAUTH_CLIENT_TYPE, provider: str = OAUTH_PROVIDER, port: Optional[int] = None ) -> OAuthURLResponse:
        '''Request the provider login URL.

        Args:
            redirect_base (str): where the provider should redirect, e.g. "http://localhost:8080".
            client_type (str): login client type.
            provider (str): OAuth provider.
            port (int): explicit local port, only sent when an alternative port was negotiated.

        Returns:
            an OAuthURLResponse.
        '''
        payload, _ = self.invoke( LOGIN_PROVIDER_PATH, {
            'fromUrlPath': redirect_base,
            'loginClientType': client_type,
            'oauthProvider': provider,
            'localhostPort': str( port ) if port is not None else None,
        } )
        return OAuthURLResponse( payload )

    def login_translate( self, code: str, port: int, client_type: str = OAUTH_CLIENT_TYPE, provider: str = OAUTH_PROVIDER ) -> TokenExchangeResponse:
        '''Exchange an authorization code for session tokens.

        The provider correlates the exchange to the original redirect by port and code.
        '''
        payload, status = self.invoke( LOGIN_TRANSLATE_PATH, {
            'loginClientType': client_type,
            'oauthProvider': provider,
            'authCode': code,
            'localhostPort': str( port ),
        } )
        return TokenExchangeResponse( payload, status )
