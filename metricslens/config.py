from typing import Literal

from pydantic_settings import BaseSettings

LogFormat = Literal['text', 'json']


class Settings(BaseSettings):
    model_config = {
        'extra': 'ignore',
        'env_file': '.env',
        'env_file_encoding': 'utf-8',
    }

    API_HOST: str = '127.0.0.1'
    API_PORT: int = 8000
    API_RELOAD: bool = False

    SERVICE_NAME: str = 'metricslens'
    SERVICE_VERSION: str = '0.1.0'
    LOG_LEVEL: str = 'INFO'
    LOG_FORMAT: LogFormat = 'text'

    OFFLOAD_THRESHOLD_DATA_POINTS: int = 5000
    OFFLOAD_THRESHOLD_BYTES: int = 1024 * 1024
    OFFLOAD_MAX_WORKERS: int = 4

    MAX_STORED_DIFFS: int = 10
    CARDINALITY_ATTRIBUTE_THRESHOLD: int = 50
    CARDINALITY_DEPTH_LIMIT: int = 2
    EVENT_HISTORY_ENABLED: bool = False


settings = Settings()
