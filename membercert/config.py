"""
Environment-driven settings.
"""
import os


def _env_bool(name, default):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Origin used to build verification URLs. When unset the web app falls back
# to the host the request came in on.
VERIFY_ORIGIN = os.environ.get('VERIFY_ORIGIN', '')

# Seconds to wait for each logo/signature/stamp before treating it as absent
IMAGE_FETCH_TIMEOUT = float(os.environ.get('IMAGE_FETCH_TIMEOUT', '10'))

BRAND_COLOR = os.environ.get('BRAND_COLOR', '#00B5A5')

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
LOG_JSON = _env_bool('LOG_JSON', False)

UPLOADS = os.environ.get('UPLOADS_DIR', 'uploads')
