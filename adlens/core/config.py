"""
Configuration management for AdLens
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration"""

    # Supabase
    SUPABASE_URL: str = os.getenv('SUPABASE_URL', '')
    SUPABASE_SERVICE_KEY: str = os.getenv('SUPABASE_SERVICE_KEY', '')

    # Meta Graph API
    META_GRAPH_API_VERSION: str = os.getenv('META_GRAPH_API_VERSION', 'v21.0')
    META_GRAPH_API_BASE_URL: str = os.getenv('META_GRAPH_API_BASE_URL', 'https://graph.facebook.com')
    META_REQUEST_TIMEOUT: float = float(os.getenv('META_REQUEST_TIMEOUT', '30'))

    # Batching: the Graph API accepts at most 50 requests per batch call
    META_BATCH_SIZE: int = int(os.getenv('META_BATCH_SIZE', '50'))
    META_BATCH_PACING_SECONDS: float = float(os.getenv('META_BATCH_PACING_SECONDS', '0.2'))

    # Creative fetch lifecycle
    CREATIVE_MAX_FETCH_ATTEMPTS: int = int(os.getenv('CREATIVE_MAX_FETCH_ATTEMPTS', '3'))

    # Durable media cache (Supabase Storage)
    CREATIVE_CACHE_BUCKET: str = os.getenv('CREATIVE_CACHE_BUCKET', 'ad-media-cache')
    CREATIVE_CACHE_EXPIRY_DAYS: int = int(os.getenv('CREATIVE_CACHE_EXPIRY_DAYS', '30'))
    CREATIVE_CACHE_MAX_BYTES: int = int(os.getenv('CREATIVE_CACHE_MAX_BYTES', str(10 * 1024 * 1024)))
    VIDEO_CACHE_MAX_BYTES: int = int(os.getenv('VIDEO_CACHE_MAX_BYTES', str(100 * 1024 * 1024)))
    ASSET_DOWNLOAD_TIMEOUT: float = float(os.getenv('ASSET_DOWNLOAD_TIMEOUT', '30'))

    # API
    CORS_ORIGINS: str = os.getenv('CORS_ORIGINS', '*')
    RATE_LIMIT_PER_MINUTE: int = int(os.getenv('RATE_LIMIT_PER_MINUTE', '30'))

    @classmethod
    def validate(cls) -> bool:
        """Validate required configuration"""
        required = {
            'SUPABASE_URL': cls.SUPABASE_URL,
            'SUPABASE_SERVICE_KEY': cls.SUPABASE_SERVICE_KEY,
        }

        missing = [k for k, v in required.items() if not v]

        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

        return True

    @classmethod
    def get(cls, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get configuration value"""
        return getattr(cls, key, default)

    @classmethod
    def graph_api_url(cls) -> str:
        """Versioned Graph API root, without trailing slash."""
        return f"{cls.META_GRAPH_API_BASE_URL.rstrip('/')}/{cls.META_GRAPH_API_VERSION}"
