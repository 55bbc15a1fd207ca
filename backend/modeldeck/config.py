from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ollama_base_url: str = "http://localhost:11434"
    request_timeout: float = 10.0
    status_timeout: float = 2.0  # bounded version probe
    pull_timeout: float | None = None  # pulls can stream for a long time
    poll_interval_seconds: float = 3.0
    load_keep_alive: str = "10m"
    host: str = "127.0.0.1"
    port: int = 0  # 0 = pick a free port
    log_level: str = "warning"

    model_config = {"env_prefix": "MODELDECK_"}


settings = Settings()
