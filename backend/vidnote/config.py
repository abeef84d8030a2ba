from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Relay server
    WS_PATH: str = "/ws"
    HOST: str = "0.0.0.0"
    PORT: int = 5000

    # Relay client reconnection policy used by RelayClient when the caller
    # does not override it. RECONNECT_ATTEMPTS = -1 retries forever.
    RELAY_URL: str = "ws://localhost:5000/ws"
    RECONNECT_INTERVAL: float = 5.0  # seconds between attempts
    RECONNECT_ATTEMPTS: int = 10
    AUTO_RECONNECT: bool = True

    model_config = {"env_file": ".env"}


settings = Settings()
