import os

# Path to the configuration file. Can be overriden for tests.
CONFIG_FILE_PATH = os.environ.get( 'AGBCLOUD_CONFIG', os.path.expanduser( '~/.agbcloud' ) )

# Root of the AgbCloud API, the "endpoint" key of the config file
# and the AGBCLOUD_ENDPOINT environment variable take precedence.
DEFAULT_ENDPOINT = 'https://sdk-api.agb.cloud'
ENDPOINT_ENV_VAR = 'AGBCLOUD_ENDPOINT'

# Network timeout applied to every API request (seconds).
API_REQUEST_TIMEOUT = 30

# OAuth-related constants
OAUTH_CLIENT_TYPE = 'CLI'
OAUTH_PROVIDER = 'GOOGLE_LOCALHOST'
DEFAULT_CALLBACK_PORT = 8080
CALLBACK_PORT_ENV_VAR = 'AGBCLOUD_CALLBACK_PORT'
CALLBACK_HOST = '127.0.0.1'
CALLBACK_PATH = '/callback'
OAUTH_CALLBACK_TIMEOUT = 300  # 5 minutes

# The browser is never opened before the callback listener is bound. We always
# give it at least CALLBACK_STARTUP_GRACE seconds and never wait for it longer
# than CALLBACK_STARTUP_MAX_WAIT seconds.
CALLBACK_STARTUP_GRACE = 0.1
CALLBACK_STARTUP_MAX_WAIT = 2.0

# Authorization codes are only ever displayed truncated to this length.
CODE_DISPLAY_LENGTH = 20

# Ephemeral credentials mode - when set, tokens obtained by "agbcloud login" are
# never written to disk. Targeted at throwaway CI environments.
EPHEMERAL_CREDS_ENV_VAR = 'AGBCLOUD_EPHEMERAL_CREDS'
