from collections.abc import Mapping
import logging
from pathlib import Path
import sys
from typing import Any

import orjson

LOG_CONFIG_PATH = Path(__file__).parent / 'log_config.json'


def load_log_config(path: Path = LOG_CONFIG_PATH) -> dict[str, Any]:
    try:
        data = orjson.loads(path.read_bytes())
    except FileNotFoundError as e:
        raise RuntimeError(f'Log config file not found: {path}') from e
    except orjson.JSONDecodeError as e:
        raise RuntimeError(f'Invalid JSON in log config file {path}: {e}') from e

    if not isinstance(data, dict):
        raise RuntimeError(
            f'Expected JSON object in {path}, got {type(data).__name__}'
        )
    data['standard_fields'] = frozenset(data.get('standard_fields', ()))
    data.setdefault('context_fields', [])
    data.setdefault('logger_levels', {})
    data.setdefault('quiet_loggers', [])
    return data


LOG_CONFIG: dict[str, Any] = load_log_config()


class ServiceFormatter(logging.Formatter):
    """Stamps records with the service identity and their ``extra`` context.

    Keys listed in ``context_fields`` (snapshot, request and file ids) lead
    the context in that order; any other extras follow as logged.
    """

    def __init__(self, service_name: str, version: str) -> None:
        super().__init__(datefmt=LOG_CONFIG['datefmt'])
        self.service_name = service_name
        self.version = version
        self.standard_fields: frozenset[str] = LOG_CONFIG['standard_fields']
        self.context_fields: list[str] = LOG_CONFIG['context_fields']

    def context(self, record: logging.LogRecord) -> dict[str, Any]:
        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.standard_fields and not key.startswith('_')
        }
        leading = {key: extra.pop(key) for key in self.context_fields if key in extra}
        return {**leading, **extra}


class JsonFormatter(ServiceFormatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            'timestamp': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'service': self.service_name,
            'version': self.version,
            'logger': record.name,
            'message': record.getMessage(),
            'context': self.context(record),
        }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode('utf-8')


class TextFormatter(ServiceFormatter):
    def format(self, record: logging.LogRecord) -> str:
        context = ' '.join(f'{k}={v}' for k, v in self.context(record).items())
        line = (
            f'{self.formatTime(record, self.datefmt)} '
            f'[{record.levelname:<8}] {record.name}: {record.getMessage()}'
        )
        if context:
            line += f' | {context}'
        if record.exc_info:
            line += f'\n{self.formatException(record.exc_info)}'
        return line


FORMATTERS: dict[str, type[ServiceFormatter]] = {
    'json': JsonFormatter,
    'text': TextFormatter,
}


def create_formatter(
    log_format: str, service_name: str, version: str
) -> ServiceFormatter:
    formatter_cls = FORMATTERS.get(log_format.lower(), TextFormatter)
    return formatter_cls(service_name=service_name, version=version)


def apply_logger_levels(levels: Mapping[str, str], quiet: list[str]) -> None:
    for logger_name, level in levels.items():
        logging.getLogger(logger_name).setLevel(level.upper())
    for logger_name in quiet:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def setup_logging(
    service_name: str,
    level: str,
    log_format: str,
    version: str,
) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(create_formatter(log_format, service_name, version))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    apply_logger_levels(LOG_CONFIG['logger_levels'], LOG_CONFIG['quiet_loggers'])
