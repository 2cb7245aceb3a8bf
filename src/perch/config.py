"""Application configuration.

AppConfig is a frozen dataclass: immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from dataclasses import dataclass
from pathlib import Path

# Maximum upload size accepted by ``rules.upload()`` when none is given, in KB.
DEFAULT_MAX_FILE_SIZE = 20 * 1024


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, secret_key="s3cr3t")

    Sessions (and therefore flash data and failure-handler error
    storage) are persisted only when ``secret_key`` is set.
    """

    # Debug: detailed error bodies and template auto-reload
    debug: bool = False

    # Sessions
    secret_key: str = ""
    session_cookie: str = "perch_session"
    session_max_age: int = 86400  # 24 hours
    flash_key: str = "_flash"

    # Domain resolution: honour X-Forwarded-Proto behind a TLS proxy
    trust_forwarded_proto: bool = False

    # Templates (views render only when kida is installed)
    template_dir: str | Path = "templates"
    autoescape: bool = True

    # Limits
    max_content_length: int = 16 * 1024 * 1024  # 16 MB
    default_max_file_size: int = DEFAULT_MAX_FILE_SIZE

    # Logging
    log_level: str = "info"
