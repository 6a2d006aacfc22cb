"""High-value constants for the tokenchain package."""

# Package metadata
PACKAGE_VERSION = "0.3.0"
PACKAGE_NAME = "tokenchain"
USER_AGENT = f"{PACKAGE_NAME}/{PACKAGE_VERSION}"

# Scopes
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
USERINFO_EMAIL_SCOPE = "https://www.googleapis.com/auth/userinfo.email"
OPENID_SCOPE = "openid"
DEFAULT_SCOPES = frozenset({CLOUD_PLATFORM_SCOPE})
# ADC user credentials written by gcloud only ever carry these
ADC_USER_SCOPES = frozenset({CLOUD_PLATFORM_SCOPE, USERINFO_EMAIL_SCOPE, OPENID_SCOPE})

# External API contract consts
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_TOKEN_HOSTS = ("googleapis.com", "accounts.google.com", "google.com")

METADATA_HOST = "metadata.google.internal"
METADATA_IP = "169.254.169.254"
METADATA_HOST_ENV = "GCE_METADATA_HOST"
METADATA_FLAVOR = "Google"
METADATA_SERVICE_ACCOUNT_PATH = "/computeMetadata/v1/instance/service-accounts"
DEFAULT_SERVICE_ACCOUNT = "default"

# Application default credentials
ADC_PATH_ENV = "GOOGLE_APPLICATION_CREDENTIALS"
ADC_CONFIG_ROOT_ENV = "CLOUDSDK_CONFIG"
ADC_FILENAME = "application_default_credentials.json"
ALLOW_EXECUTABLES_ENV = "GOOGLE_EXTERNAL_ACCOUNT_ALLOW_EXECUTABLES"
WORKLOAD_POOL_AUDIENCE_PATTERN = (
    r"^//iam\.googleapis\.com/(?:locations/[^/]+/workforcePools/[^/]+"
    r"|projects/[^/]+/locations/[^/]+/workloadIdentityPools/[^/]+)"
    r"/providers/[^/]+$"
)
SUPPORTED_ENVIRONMENT_IDS = ("aws1",)

# Provider names, in default chain order
BYO_TOKEN = "byo_token"
SERVICE_ACCOUNT = "service_account"
EXTERNAL_ACCOUNT = "external_account"
APP_DEFAULT = "app_default"
COMPUTE_METADATA = "compute_metadata"
USER_OAUTH = "user_oauth"
DEFAULT_PROVIDER_ORDER = (
    BYO_TOKEN,
    SERVICE_ACCOUNT,
    EXTERNAL_ACCOUNT,
    APP_DEFAULT,
    COMPUTE_METADATA,
    USER_OAUTH,
)

# Business logic consts
START_NEW_LABEL = "Send me to the browser for a new auth process."
DEFAULT_GCE_TIMEOUT_SECONDS = 0.8
CACHE_HASH_LENGTH = 32
