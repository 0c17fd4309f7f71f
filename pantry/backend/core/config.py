# pantry/backend/core/config.py
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 기본 앱 설정
    app_env: str = Field("local", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_allow_origins: str = Field("http://localhost:3000", alias="CORS_ALLOW_ORIGINS")

    # Access Token (JWT)
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, gt=0, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Refresh Token / quota 주기: 기본값 없음 (미설정 시 기동 실패)
    refresh_token_expire_days: int = Field(..., gt=0, alias="REFRESH_TOKEN_EXPIRE_DAYS")
    quota_reset_interval_hours: int = Field(..., gt=0, alias="QUOTA_RESET_INTERVAL_HOURS")

    # 데모 배포용 인증 우회
    auth_bypass: bool = Field(False, alias="AUTH_BYPASS")
    demo_user_email: str = Field("demo@smart-pantry.local", alias="DEMO_USER_EMAIL")
    demo_user_name: str = Field("Demo User", alias="DEMO_USER_NAME")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    @field_validator("jwt_secret_key")
    @classmethod
    def _secret_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("JWT_SECRET_KEY must not be blank")
        return v

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


settings = Settings()
