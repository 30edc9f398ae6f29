"""
On-disk configuration for the AgbCloud CLI.

The configuration is a YAML file (~/.agbcloud by default) holding an
optional API endpoint override and the session tokens written by
"agbcloud login":

    endpoint: https://sdk-api.agb.cloud
    tokens:
      login_token: ...
      session_id: ...
      keep_alive_token: ...
      expires_at: '2025-01-01T00:00:00Z'

A Config object is an explicit handle on that file: it is loaded once with
Config.load() and every write goes through save_tokens() / clear_tokens(),
which rewrite the whole file atomically.
"""

import os
import shutil
import stat
import tempfile
from typing import Optional

import yaml

from .constants import CONFIG_FILE_PATH, DEFAULT_ENDPOINT, ENDPOINT_ENV_VAR, EPHEMERAL_CREDS_ENV_VAR
from .term_utils import mask_secret

TOKEN_FIELDS = ( 'login_token', 'session_id', 'keep_alive_token', 'expires_at' )


class ConfigError( Exception ):
    """Configuration file could not be read or written."""
    pass


class TokenBundle( object ):
    '''Session credentials obtained from the token exchange.'''

    def __init__( self, login_token: str = '', session_id: str = '', keep_alive_token: str = '', expires_at: str = '' ):
        self.login_token = login_token or ''
        self.session_id = session_id or ''
        self.keep_alive_token = keep_alive_token or ''
        self.expires_at = expires_at or ''

    @classmethod
    def from_dict( cls, data: Optional[dict] ) -> 'TokenBundle':
        data = data or {}
        return cls( **{ k: str( data[ k ] ) for k in TOKEN_FIELDS if data.get( k ) } )

    def to_dict( self ) -> dict:
        '''Only the fields that are set.'''
        return { k: getattr( self, k ) for k in TOKEN_FIELDS if getattr( self, k ) }

    def missing_fields( self ) -> list:
        return [ k for k in TOKEN_FIELDS if not getattr( self, k ) ]

    def is_empty( self ) -> bool:
        return 0 == len( self.to_dict() )

    def __eq__( self, other ):
        if not isinstance( other, TokenBundle ):
            return NotImplemented
        return all( getattr( self, k ) == getattr( other, k ) for k in TOKEN_FIELDS )

    def __repr__( self ):
        return 'TokenBundle(login_token=%s, session_id=%s, keep_alive_token=%s, expires_at=%s)' % (
            mask_secret( self.login_token ),
            mask_secret( self.session_id ),
            mask_secret( self.keep_alive_token ),
            self.expires_at or '(empty)',
        )


class Config( object ):
    '''Handle on the CLI configuration file.'''

    def __init__( self, path: str, data: Optional[dict] = None ):
        self.path = path
        self._data = data or {}

    @classmethod
    def load( cls, path: Optional[str] = None ) -> 'Config':
        '''Load the configuration file, a missing file is an empty configuration.

        Args:
            path (str): path of the file, defaults to CONFIG_FILE_PATH.

        Returns:
            a Config handle.
        '''
        path = path or cls.default_path()
        return cls( path, cls._read( path ) )

    @staticmethod
    def default_path() -> str:
        return CONFIG_FILE_PATH

    @staticmethod
    def _read( path: str ) -> dict:
        try:
            with open( path, 'rb' ) as f:
                data = yaml.safe_load( f.read() )
        except FileNotFoundError:
            return {}
        except ( OSError, yaml.YAMLError ) as e:
            raise ConfigError( 'failed to read config file %s: %s' % ( path, e ) )

        # Handle scenario where a file is empty
        data = data or {}
        if not isinstance( data, dict ):
            raise ConfigError( 'invalid config file %s: expected a mapping' % ( path, ) )
        return data

    @property
    def endpoint( self ) -> str:
        endpoint = os.environ.get( ENDPOINT_ENV_VAR ) or self._data.get( 'endpoint' ) or DEFAULT_ENDPOINT
        return endpoint.rstrip( '/' )

    @property
    def is_ephemeral( self ) -> bool:
        return bool( os.environ.get( EPHEMERAL_CREDS_ENV_VAR ) )

    def get_tokens( self ) -> TokenBundle:
        '''Get the stored session tokens.

        Raises:
            ConfigError: if no login token is stored.
        '''
        tokens = TokenBundle.from_dict( self._data.get( 'tokens' ) )
        if not tokens.login_token:
            raise ConfigError( 'no login token stored, please run "agbcloud login"' )
        return tokens

    def save_tokens( self, login_token: str, session_id: str, keep_alive_token: str, expires_at: str ) -> bool:
        '''Persist the session tokens, replacing any previously stored ones.

        Empty fields are not written. The file is written in a single atomic move.

        Returns:
            True if the tokens were written to disk, False in ephemeral mode.

        Raises:
            ConfigError: if the file could not be written.
        '''
        tokens = TokenBundle( login_token, session_id, keep_alive_token, expires_at )
        if self.is_ephemeral:
            self._data[ 'tokens' ] = tokens.to_dict()
            return False

        # Merge against the current content of the file, not the copy loaded
        # at startup, so concurrent edits to other keys are kept.
        conf = self._read( self.path )
        conf[ 'tokens' ] = tokens.to_dict()
        self._write( conf )
        self._data = conf
        return True

    def clear_tokens( self ) -> bool:
        '''Remove the stored session tokens.

        Returns:
            True if tokens were removed from disk.
        '''
        if self.is_ephemeral:
            self._data.pop( 'tokens', None )
            return False
        conf = self._read( self.path )
        if 'tokens' not in conf:
            self._data.pop( 'tokens', None )
            return False
        conf.pop( 'tokens' )
        self._write( conf )
        self._data = conf
        return True

    def _write( self, conf: dict ) -> None:
        content = yaml.safe_dump( conf, default_flow_style = False ).encode()

        # For security reasons we first write it to a temporary file in the same
        # directory, chmod it and then move it to the final location. Without doing
        # that, there is a potential race condition with the file being read by
        # another user before we chmod it, or a half written file on failure.
        directory = os.path.dirname( os.path.abspath( self.path ) )
        try:
            fd, tmp_path = tempfile.mkstemp( dir = directory )
        except OSError as e:
            raise ConfigError( 'failed to write config file %s: %s' % ( self.path, e ) )

        try:
            try:
                os.chmod( tmp_path, stat.S_IWUSR | stat.S_IRUSR )  # 0o600
                os.write( fd, content )
            finally:
                os.close( fd )
            shutil.move( tmp_path, self.path )
        except OSError as e:
            raise ConfigError( 'failed to write config file %s: %s' % ( self.path, e ) )
        finally:
            if os.path.isfile( tmp_path ):
                os.unlink( tmp_path )
