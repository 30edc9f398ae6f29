"""
Errors raised by the OAuth login flow.

Every error carries the stage of the flow it happened in and the underlying
cause, so the message can be shown to the user verbatim.
"""

from typing import Optional


class OAuthLoginError( Exception ):
    """Base class of all login failures."""

    stage = 'login'

    def __init__( self, message: str, stage: Optional[str] = None, cause: Optional[BaseException] = None ):
        super().__init__( message )
        if stage is not None:
            self.stage = stage
        self.cause = cause


class OAuthRequestFailedError( OAuthLoginError ):
    """The OAuth login URL could not be obtained."""

    stage = 'oauth-url'


class PortUnavailableError( OAuthLoginError ):
    """The default callback port is occupied and no alternative is usable."""

    stage = 'port-negotiation'


class CallbackFailedError( OAuthLoginError ):
    """The provider redirected with an error, or the callback was malformed."""

    stage = 'callback'


class CallbackListenError( CallbackFailedError ):
    """The callback listener could not bind its port."""

    stage = 'callback-listen'


class CallbackTimeoutError( OAuthLoginError ):
    """No callback was received before the deadline."""

    stage = 'callback'


class TokenExchangeFailedError( OAuthLoginError ):
    """The authorization code could not be exchanged for tokens."""

    stage = 'token-exchange'

    def __init__( self, message: str, provider_code: Optional[str] = None, **kwargs ):
        super().__init__( message, **kwargs )
        self.provider_code = provider_code


class PersistenceWarning( object ):
    """Login succeeded but the tokens could not be stored locally.

    This is never raised, it is attached to the LoginResult.
    """

    def __init__( self, cause: BaseException ):
        self.cause = cause

    def __str__( self ):
        return 'failed to save tokens: %s' % ( self.cause, )
