"""
Constants for the Duo HMAC client library.
Values match what the Duo API verifier expects on the wire.
"""

# HTTP Headers
HEADER_AUTHORIZATION = "Authorization"
HEADER_DUO_DATE = "X-Duo-Date"
HEADER_DATE = "Date"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_USER_AGENT = "User-Agent"

# Prefix of the extension headers covered by signature v5
DUO_HEADER_PREFIX = "x-duo-"

CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"
CONTENT_TYPE_JSON = "application/json"

# Methods whose parameters travel in the request body instead of the query string
BODY_METHODS = ("POST", "PUT", "PATCH")

# Rate limiting and backoff (milliseconds)
RATE_LIMIT_HTTP_CODE = 429
INITIAL_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 32000
BACKOFF_FACTOR = 2
MAX_JITTER_MS = 1000

# Trusted root bundle
CA_CERTS_RESOURCE = "ca_certs.pem"
CERT_DELIMITER = "-----DUO_CERT-----"

DEFAULT_AGENT = "duo_hmac_client/1.0.0"
PRODUCTION_ENVIRONMENT = "production"

# Read when a client is created without an explicit environment
ENVIRONMENT_VARIABLE = "DUO_HMAC_CLIENT_ENV"
DEFAULT_ENVIRONMENT = "development"

# Default configuration values
DEFAULT_CONFIG = {
    'timeout': 30,              # HTTP timeout in seconds, None to wait forever
    'url_scheme': 'https',      # 'http' only for local test servers
    'user_agent': None,         # None selects format_user_agent(DEFAULT_AGENT)
    'environment': None,        # None reads ENVIRONMENT_VARIABLE at construction
}
