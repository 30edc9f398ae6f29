"""agbcloud command line client for agb.cloud"""

__version__ = "1.0.0"
__author__ = "AgbCloud CLI Contributors"
__license__ = "Apache v2"
__copyright__ = "Copyright (c) 2025 AgbCloud CLI Contributors"

from .utils import AgbApiException
from .config import Config, ConfigError, TokenBundle
from .client import ApiClient
from .oauth_errors import OAuthLoginError
from .oauth_login import OAuthLogin, perform_oauth_login
