from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Database
    database_url: str = "sqlite:///loanledger.db"

    # App
    debug: bool = False
    log_level: str = "INFO"

    # Settlement close-out must be confirmed with this exact (case-sensitive) token
    settlement_confirmation_token: str = "DELETE"

    # Upper bound on generated installments (50 years of monthly payments)
    max_schedule_periods: int = 600

    # Advisory only: clients debounce impact previews, the engine never rate-limits
    impact_debounce_ms: int = 300


settings = Settings()
