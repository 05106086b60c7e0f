from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- General ---
    PROJECT_NAME: str = "Delivery_Dashboard"
    LOG_LEVEL: str = "INFO"

    # --- Backing Store ---
    BACKEND_API_URL: str = "http://localhost:5000/api/v1"
    REQUEST_TIMEOUT_SECONDS: float = 15.0

    # Path templates, relative to BACKEND_API_URL
    ORDERS_PATH: str = "/payment/getorders"
    ORDERS_BY_EMAIL_PATH: str = "/payment/singleorderbyemail/{email}"
    ORDER_DETAIL_PATH: str = "/payment/singeorder/{order_id}"
    DELIVERY_STATUS_PATH: str = "/delivary/updatedelivarystatus/{order_id}"
    ACCEPT_PATH: str = "/delivary/accept-delivary/{order_id}"
    DELETE_PATH: str = "/orders/{order_id}"

    # --- Detail Map ---
    # Used when an order carries no geocoordinate (Dhaka city centre)
    DEFAULT_MAP_LATITUDE: float = 23.8103
    DEFAULT_MAP_LONGITUDE: float = 90.4125

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
