from __future__ import annotations

# Settings keys persisted in the JSON settings file.
CONF_CLOUD_SYNC_ENABLED = "cloud_sync_enabled"
CONF_CLOUD_BASE_URL = "cloud_base_url"
CONF_CLOUD_API_KEY = "cloud_api_key"
CONF_CLOUD_SYNC_INTERVAL = "cloud_sync_interval"
CONF_CLOUD_ACCESS_TOKEN = "access_token"
CONF_CLOUD_REFRESH_TOKEN = "refresh_token"
CONF_CLOUD_TOKEN_EXPIRES_AT = "token_expires_at"
CONF_CLOUD_USER_ID = "user_id"
CONF_CLOUD_ACCOUNT_EMAIL = "account_email"
CONF_LAST_SYNC_AT = "last_sync_at"
CONF_DATABASE_PATH = "database_path"

DEFAULT_CLOUD_SYNC_INTERVAL = 300
MIN_CLOUD_SYNC_INTERVAL = 15
DEFAULT_DATABASE_PATH = "conference.db"
DEFAULT_SETTINGS_PATH = "conference_settings.json"

REQUEST_TIMEOUT_SECONDS = 30
