from pydantic import field_validator
from pydantic_settings import BaseSettings

# DynamoDB BatchGetItem/BatchWriteItem accept at most 25 items per call
STORE_BATCH_CEILING = 25


class Settings(BaseSettings):
    app_env: str = "dev"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # DynamoDB connection
    aws_region: str = "us-east-1"
    dynamodb_mode: str = "aws"  # "local" or "aws"
    dynamodb_endpoint: str = "http://localhost:8002"
    aws_access_key_id: str = "local"
    aws_secret_access_key: str = "local"

    students_table_name: str = "ho-yu-students"
    teachers_table_name: str = "ho-yu-teachers"
    games_table_name: str = "ho-yu-games"

    # Store call bounds (botocore transport level)
    store_connect_timeout_seconds: float = 5.0
    store_read_timeout_seconds: float = 10.0
    store_max_attempts: int = 3

    # Import limits
    max_import_rows: int = 4000
    store_batch_size: int = STORE_BATCH_CEILING
    max_upload_bytes: int = 10 * 1024 * 1024  # 10MB
    import_conditional_writes: bool = False  # optimistic version check per record

    # Middleware configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    log_format: str = "json"  # json or text
    enable_request_logging: bool = True
    cors_origins: str = ""  # Comma-separated list of allowed origins

    model_config = {
        "env_file": "../.env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("store_batch_size")
    @classmethod
    def _cap_batch_size(cls, value: int) -> int:
        if value < 1 or value > STORE_BATCH_CEILING:
            raise ValueError(
                f"store_batch_size must be between 1 and {STORE_BATCH_CEILING}"
            )
        return value


settings = Settings()
