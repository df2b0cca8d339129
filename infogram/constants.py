"""
Constants for the Infogram API client.
Values follow https://developers.infogr.am/rest/request-signing.html
"""

# Default API endpoint
DEFAULT_ENDPOINT = "https://infogr.am/service/v1"

# Reserved auth parameters
PARAM_API_KEY = "api_key"
PARAM_API_SIG = "api_sig"

# Methods whose parameters travel in the query string
QUERY_METHODS = frozenset({"GET", "DELETE"})
# Methods whose parameters travel in a form-encoded body
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

# Default configuration values
DEFAULT_TIMEOUT = 30  # HTTP timeout in seconds
DEFAULT_CHUNK_SIZE = 8192  # bytes copied per write into a raw sink

# Environment variables read by ClientConfig.from_env()
ENV_API_KEY = "INFOGRAM_API_KEY"
ENV_API_SECRET = "INFOGRAM_API_SECRET"
ENV_ENDPOINT = "INFOGRAM_ENDPOINT"
ENV_TIMEOUT = "INFOGRAM_TIMEOUT"

# Rendered formats served by GET /infographics/{id}?format=...
EXPORT_FORMATS = ("pdf", "png", "html")
