from pydantic_settings import BaseSettings, SettingsConfigDict
class Settings(BaseSettings):
    APP_ENV: str = "dev"
    APP_SECRET: str
    DB_URL: str
    JWT_ISS: str = "poscore"
    JWT_EXP_MIN: int = 12*60
    TZ: str = "UTC"
    LOG_LEVEL: str = "INFO"

    # cart / money
    MAX_EXTRA_QTY: int = 10
    MONEY_EPSILON: float = 0.01
    CURRENCY_SYMBOL: str = "$"

    # shift reconciliation buckets (see ReconciliationPolicy)
    INVOICE_TOLERANCE: float = 0.10
    RECON_TERMINAL_METHODS: list[str] = ["DEBIT", "CREDIT", "QR"]
    RECON_APP_TERMINAL_METHODS: list[str] = ["CARD_TERMINAL"]
    RECON_LOCAL_CASH_PLATFORMS: list[str] = ["PEDIDOS_YA"]
    RECON_PARTNER_CASH_PLATFORMS: list[str] = ["MAS_DELIVERY"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
