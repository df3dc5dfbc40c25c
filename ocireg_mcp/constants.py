"""Shared constants for ocireg-mcp."""

SERVER_NAME = "ocireg-mcp"
SERVER_VERSION = "0.1.0"

# Network defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
MIN_PORT = 0
MAX_PORT = 65535

# SSE transport paths
SSE_PATH = "/sse"
POST_MESSAGES_PATH = "/messages/"

# Logging defaults
DEFAULT_LOG_LEVEL = "INFO"

# Environment variables
PORT_ENV_VAR = "MCP_PORT"
TOKEN_ENV_VAR = "OCI_TOKEN"
USERNAME_ENV_VAR = "OCI_USERNAME"
PASSWORD_ENV_VAR = "OCI_PASSWORD"

# Registry call timeouts
REGISTRY_TIMEOUT = 30.0  # seconds per registry operation
SHUTDOWN_GRACE_PERIOD = 5  # seconds granted to in-flight requests on shutdown

# Platform picked out of multi-arch image indexes
DEFAULT_PLATFORM = "linux/amd64"
