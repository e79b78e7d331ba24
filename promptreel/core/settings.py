from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

@dataclass(frozen=True)
class Settings:
    app_name: str = os.environ.get("APP_NAME", "promptreel")
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
    cors_origins: str = os.environ.get("CORS_ORIGINS", "*")

    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "")

    # Cognito
    cognito_user_pool_id: str = os.environ.get("COGNITO_USER_POOL_ID", "")
    cognito_region: str = os.environ.get("COGNITO_REGION", "")
    cognito_app_client_id: str = os.environ.get("COGNITO_APP_CLIENT_ID", "")
    cognito_expected_token_use: str = os.environ.get("COGNITO_EXPECTED_TOKEN_USE", "id")
    user_lookup_page_size: int = int(os.environ.get("USER_LOOKUP_PAGE_SIZE", "60"))

    # DynamoDB tables
    profiles_table_name: str = os.environ.get("PROFILES_TABLE_NAME", "profiles")
    videos_table_name: str = os.environ.get("VIDEOS_TABLE_NAME", "videos")
    comments_table_name: str = os.environ.get("COMMENTS_TABLE_NAME", "comments")
    comments_video_index: str = os.environ.get("COMMENTS_VIDEO_INDEX", "video_id-index")
    payments_table_name: str = os.environ.get("PAYMENTS_TABLE_NAME", "payments")
    payments_email_index: str = os.environ.get("PAYMENTS_EMAIL_INDEX", "email-index")
    webhook_log_table_name: str = os.environ.get("WEBHOOK_LOG_TABLE_NAME", "webhook_log")

    # Auth bootstrap
    auth_bootstrap_timeout_seconds: float = float(os.environ.get("AUTH_BOOTSTRAP_TIMEOUT_SECONDS", "5"))
    password_reset_redirect_url: str = os.environ.get("PASSWORD_RESET_REDIRECT_URL", "")

    # Content gating
    preview_video_limit: int = int(os.environ.get("PREVIEW_VIDEO_LIMIT", "3"))

    # Webhook
    webhook_echo_chars: int = int(os.environ.get("WEBHOOK_ECHO_CHARS", "200"))

    audit_log_enabled: bool = os.environ.get("AUDIT_LOG_ENABLED", "1") not in ("0", "false", "False")
    metrics_enabled: bool = os.environ.get("METRICS_ENABLED", "1") not in ("0", "false", "False")

    def missing_backend_settings(self) -> List[str]:
        required = {
            "AWS_REGION": self.aws_region or self.cognito_region,
            "COGNITO_USER_POOL_ID": self.cognito_user_pool_id,
            "COGNITO_APP_CLIENT_ID": self.cognito_app_client_id,
        }
        return [name for name, value in required.items() if not value]

S = Settings()
