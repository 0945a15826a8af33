from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Optional

# Shipped defaults; a deployment must override them
PLACEHOLDER_SECRETS = ("your-secret-key", "gateway-secret")


class Settings(BaseSettings):
    # Database
    database_url: str = "duckdb://./data/mealstack.duckdb"

    # JWT (tokens are issued by the auth service, we only verify them)
    jwt_secret_key: str = "your-secret-key"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7

    # Capacity and ordering rules
    default_meal_capacity: int = 50
    order_window_days: int = 7
    breakfast_cutoff_hour: int = 6
    lunch_cutoff_hour: int = 10
    dinner_cutoff_hour: int = 16
    delivery_charge_cents: int = 500

    # Subscription packages: package type -> price (cents)
    subscription_packages: Dict[str, int] = {
        "breakfast_monthly": 90000,
        "lunch_monthly": 270000,
        "dinner_monthly": 225000,
        "all_meals_monthly": 540000,
    }

    # Payment gateway
    currency: str = "INR"
    gateway_key_id: Optional[str] = None
    gateway_key_secret: str = "gateway-secret"
    gateway_base_url: str = "https://api.razorpay.com/v1"
    gateway_timeout_seconds: float = 10.0
    use_fake_gateway: bool = False

    # API
    api_title: str = "MealStack API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Development mode
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MEALSTACK_",
        case_sensitive=False,
        extra="ignore",
    )

    def cutoff_hour(self, meal_type: str) -> int:
        """Latest same-day hour (exclusive) at which a meal slot can still be ordered or cancelled."""
        return {
            "breakfast": self.breakfast_cutoff_hour,
            "lunch": self.lunch_cutoff_hour,
            "dinner": self.dinner_cutoff_hour,
        }.get(getattr(meal_type, "value", meal_type), self.breakfast_cutoff_hour)

    def insecure_settings(self) -> List[str]:
        """Settings that are only acceptable in debug mode; startup refuses them otherwise."""
        problems = []
        if self.jwt_secret_key in PLACEHOLDER_SECRETS:
            problems.append("jwt_secret_key is the shipped placeholder")
        if self.gateway_key_secret in PLACEHOLDER_SECRETS:
            problems.append("gateway_key_secret is the shipped placeholder")
        if self.use_fake_gateway:
            problems.append("use_fake_gateway is enabled")
        elif not self.gateway_key_id:
            problems.append("gateway_key_id is not set")
        return problems


# Process-wide settings instance
settings = Settings()
