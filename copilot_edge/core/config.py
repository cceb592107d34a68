"""Configuration settings for the CopilotEdge service."""

from pydantic_settings import BaseSettings
from typing import Optional, List
import os


class Settings(BaseSettings):
    """Application settings."""

    # API Configuration
    app_name: str = "CopilotEdge"
    app_version: str = "0.3.0"
    api_prefix: str = "/api/v1"
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1  # Pipeline state (rate buckets, breaker) is per-process

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:3001"]

    # Cloudflare Workers AI credentials
    api_key: Optional[str] = None
    account_id: Optional[str] = None

    # Models
    model: str = "@cf/meta/llama-3.1-8b-instruct"
    fallback_model: Optional[str] = None
    chat_completions_model_prefixes: List[str] = ["@cf/openai/"]
    temperature: float = 0.7
    max_tokens: int = 1000
    stream: bool = False  # Default when the request does not say

    # Regions
    regions: List[str] = [
        "https://api.cloudflare.com",
        "https://eu.api.cloudflare.com",
        "https://ap.api.cloudflare.com",
    ]
    region_probe_enabled: bool = True
    region_probe_timeout: float = 2.0
    region_recheck_interval: int = 300  # seconds

    # Caching
    cache_ttl: int = 60  # seconds, local and durable
    cache_max_entries: int = 100
    cache_key_prefix: str = "copilotedge:"
    cache_key_secret: Optional[str] = None  # HMAC the cache key when set
    redis_url: Optional[str] = None  # Durable tier; disabled when unset
    durable_encryption_key: Optional[str] = None  # Fernet passphrase for durable values

    # Retry / fallback
    max_attempts: int = 3  # Calls per model, first try included
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0
    retry_jitter: float = 0.5
    request_timeout: float = 30.0

    # Circuit breaker
    circuit_breaker_enabled: bool = True
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: float = 30.0  # seconds open before half-open

    # Rate Limiting
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 60  # per minute

    # Request validation
    max_request_size: int = 1024 * 1024  # bytes
    max_messages: int = 100
    max_message_size: int = 10000  # bytes
    max_object_depth: int = 10
    strict_operations: bool = False  # Reject unknown operation names

    # Request coalescing
    single_flight_enabled: bool = False

    # Conversation persistence
    persist_conversations: bool = False
    conversation_ttl: int = 86400  # 24 hours
    conversation_max_messages: int = 200

    # Request signing
    hmac_secret: Optional[str] = None  # Must be >= 32 chars when set
    signature_header: str = "X-Signature"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    class Config:
        env_file = ".env"
        env_prefix = "COPILOT_EDGE_"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields in .env file


# Create settings instance
settings = Settings()

# Override with environment variables
if os.getenv("CLOUDFLARE_API_TOKEN"):
    settings.api_key = os.getenv("CLOUDFLARE_API_TOKEN").strip()

if os.getenv("CLOUDFLARE_ACCOUNT_ID"):
    settings.account_id = os.getenv("CLOUDFLARE_ACCOUNT_ID").strip()

if os.getenv("REDIS_URL"):
    settings.redis_url = os.getenv("REDIS_URL")
