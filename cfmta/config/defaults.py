"""
Default settings for cfmta.

These are the default values used when no user configuration exists.
"""

DEFAULT_SETTINGS = {
    "version": "1.0.0",

    # Cloud Controller endpoint; the deploy-service URL is derived from it
    "api_url": "",

    # Explicit deploy-service URL, takes precedence over the derived one
    "deploy_url": "",

    # Job and operation polling
    "polling": {
        "interval": 2.0,  # seconds, fixed
    },

    # HTTP client
    "http": {
        "timeout": 60,
        "upload_timeout": 600,
        "verify_ssl": True,
    },

    # Inline extension descriptors are staged here before upload
    "extension_descriptors": {
        "temp_dir": None,  # None means the system temp dir
    },

    "logging": {
        "level": "INFO",
        "file": True,
    },
}
