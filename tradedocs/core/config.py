
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("tradedocs", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Document understanding oracle (Anthropic Messages compatible endpoint)
    llm_base_url: str = Field("https://api.anthropic.com", alias="LLM_BASE_URL")
    llm_api_key: str | None = Field(default=None, alias="LLM_API_KEY")
    llm_api_version: str = Field("2023-06-01", alias="LLM_API_VERSION")
    llm_deployment: str = Field("claude-3-7-sonnet-20250219", alias="LLM_DEPLOYMENT")
    # Cheaper model for text-only classification; vision calls always use llm_deployment
    llm_classification_deployment: str | None = Field(default=None, alias="LLM_CLASSIFICATION_DEPLOYMENT")

    # Oracle call policy
    oracle_max_attempts: int = Field(3, alias="ORACLE_MAX_ATTEMPTS")
    oracle_backoff_base_seconds: float = Field(1.0, alias="ORACLE_BACKOFF_BASE_SECONDS")
    oracle_timeout_seconds: float = Field(120.0, alias="ORACLE_TIMEOUT_SECONDS")
    oracle_text_preview_chars: int = Field(500, alias="ORACLE_TEXT_PREVIEW_CHARS")
    oracle_log_preview_chars: int = Field(200, alias="ORACLE_LOG_PREVIEW_CHARS")

    # Token budgets per oracle operation
    classification_max_tokens: int = Field(100, alias="CLASSIFICATION_MAX_TOKENS")
    shipping_bill_max_tokens: int = Field(4000, alias="SHIPPING_BILL_MAX_TOKENS")
    invoice_max_tokens: int = Field(1000, alias="INVOICE_MAX_TOKENS")
    logistics_max_tokens: int = Field(1500, alias="LOGISTICS_MAX_TOKENS")
    remittance_max_tokens: int = Field(3000, alias="REMITTANCE_MAX_TOKENS")

    # Rasterization (tuned for oracle OCR quality, not for human viewing)
    rasterize_dpi: int = Field(300, alias="RASTERIZE_DPI")
    rasterize_max_edge: int = Field(2048, alias="RASTERIZE_MAX_EDGE")

    # Storage
    upload_dir: str = Field("uploads", alias="UPLOAD_DIR")
    max_upload_bytes: int = Field(10 * 1024 * 1024, alias="MAX_UPLOAD_BYTES")
    database_path: str = Field("tradedocs.db", alias="DATABASE_PATH")
    storage_backend: str = Field("sqlite", alias="STORAGE_BACKEND")  # sqlite | memory

    # Background processing
    pipeline_workers: int = Field(4, alias="PIPELINE_WORKERS")
    pipeline_queue_size: int = Field(100, alias="PIPELINE_QUEUE_SIZE")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    # Observability
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    audit_log_path: str | None = Field(default=None, alias="AUDIT_LOG_PATH")
    audit_trail_size: int = Field(200, alias="AUDIT_TRAIL_SIZE")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "populate_by_name": True}

    def extraction_max_tokens(self, category_value: str) -> int:
        """Token budget for an extraction call, keyed by category label."""
        budgets = {
            "Shipping Bill": self.shipping_bill_max_tokens,
            "Invoice": self.invoice_max_tokens,
            "Logistics Document": self.logistics_max_tokens,
            "Remittance Advice": self.remittance_max_tokens,
        }
        return budgets.get(category_value, self.invoice_max_tokens)

settings = Settings()
