import os


def _bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        "postgresql+psycopg2://repricer:secret@db:5432/repricer",
    )

    JWT_SECRET = os.getenv("JWT_SECRET")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON = _bool("LOG_JSON", "false")

    # scheduler
    REPRICING_SCHEDULER_ENABLED = _bool("REPRICING_SCHEDULER_ENABLED", "true")
    REPRICING_TICK_SECONDS = float(os.getenv("REPRICING_TICK_SECONDS", "60"))
    BUYBOX_CHECK_TICK_SECONDS = float(os.getenv("BUYBOX_CHECK_TICK_SECONDS", "300"))

    # credits
    PRICE_UPDATE_CREDIT_COST = int(os.getenv("PRICE_UPDATE_CREDIT_COST", "1"))
    RULE_CREATION_CREDIT_COST = int(os.getenv("RULE_CREATION_CREDIT_COST", "5"))

    DEFAULT_MONITORING_FREQUENCY = int(os.getenv("DEFAULT_MONITORING_FREQUENCY", "60"))

    # only used when an inventory item has no cost price
    ASSUMED_COST_RATIO = float(os.getenv("ASSUMED_COST_RATIO", "0.7"))

    # marketplaces
    TAKEALOT_API_URL = os.getenv(
        "TAKEALOT_API_URL", "https://seller-api.takealot.com/v2"
    )
    TAKEALOT_API_KEY = os.getenv("TAKEALOT_API_KEY", "")
    TAKEALOT_SELLER_NAME = os.getenv("TAKEALOT_SELLER_NAME", "Your Store")

    AMAZON_SPAPI_URL = os.getenv(
        "AMAZON_SPAPI_URL", "https://sellingpartnerapi-na.amazon.com"
    )
    AMAZON_ACCESS_TOKEN = os.getenv("AMAZON_ACCESS_TOKEN", "")
    AMAZON_SELLER_ID = os.getenv("AMAZON_SELLER_ID", "")
    AMAZON_MARKETPLACE_ID = os.getenv("AMAZON_MARKETPLACE_ID", "ATVPDKIKX0DER")


settings = Settings()
