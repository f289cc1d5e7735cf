import math

from metricslens.internal.schemas import DiffedSeries

_BYTE_UNITS = ('B', 'KB', 'MB', 'GB', 'TB', 'PB')
_CURRENCY_SYMBOLS = {'USD': '$', 'EUR': '€', 'GBP': '£'}


def _is_bytes_unit(unit: str) -> bool:
    return unit.lower() in ('bytes', 'by')


def _is_percent_unit(unit: str) -> bool:
    return unit.lower() in ('%', 'percent')


def format_number(value: int | float | None) -> str:
    if value is None:
        return '-'
    if abs(value) >= 1_000_000:
        return f'{value / 1_000_000:.1f}M'
    if abs(value) >= 1000:
        return f'{value / 1000:.1f}K'
    if isinstance(value, int) or float(value).is_integer():
        return str(int(value))
    return f'{value:.2f}'


def format_bytes(value: int | float | None) -> str:
    if value is None:
        return '-'
    if value == 0:
        return '0 B'
    exponent = 0
    size = abs(value)
    while size >= 1024 and exponent < len(_BYTE_UNITS) - 1:
        size /= 1024
        exponent += 1
    return f'{value / 1024**exponent:.1f} {_BYTE_UNITS[exponent]}'


def format_rate(rate: int | float | None, unit: str | None = None) -> str:
    if rate is None:
        return 'N/A'
    if unit:
        if _is_bytes_unit(unit):
            return f'{format_number(rate)}/s'
        if _is_percent_unit(unit):
            return f'{format_number(rate)}%/s'
        return f'{format_number(rate)} {unit}/s'
    return f'{format_number(rate)}/s'


def format_delta(delta: int | float | None, unit: str | None = None) -> str:
    if delta is None:
        return 'N/A'
    if unit:
        if _is_bytes_unit(unit):
            return format_bytes(delta)
        if _is_percent_unit(unit):
            return f'{format_number(delta)}%'
        return f'{format_number(delta)} {unit}'
    return format_number(delta)


def format_series_rate(series: DiffedSeries, unit: str | None = None) -> str:
    """Render the rate column of a diffed series.

    A reset counter shows the post-reset value as a delta instead of a rate.
    """
    if series.reset_detected:
        if series.value_with_reset is not None:
            return format_delta(series.value_with_reset, unit)
        return format_rate(0, unit)
    if series.rate is not None:
        return format_rate(series.rate, unit)
    return 'N/A'


def format_cost(value: float | None, currency: str = 'USD') -> str:
    if value is None:
        return '-'
    symbol = _CURRENCY_SYMBOLS.get(currency, '$')
    if value < 0.01:
        return f'< {symbol}0.01'
    return f'{symbol}{value:.2f}'


def format_percent(value: float | None) -> str:
    """Render a 0..1 fraction as a whole percentage."""
    if value is None:
        return '-'
    return f'{math.floor(value * 100 + 0.5)}%'


def format_duration(milliseconds: int | float | None) -> str:
    if milliseconds is None:
        return '-'
    if milliseconds < 1000:
        return f'{milliseconds:.0f}ms'

    seconds = milliseconds / 1000
    if seconds < 60:
        return f'{seconds:.1f}s'

    minutes = seconds / 60
    if minutes < 60:
        return f'{math.floor(minutes)}m {math.floor(seconds % 60)}s'

    return f'{math.floor(minutes / 60)}h {math.floor(minutes % 60)}m'


def format_time_span(ms: int | float) -> str:
    if ms < 1000:
        return f'{ms}ms'

    seconds = ms / 1000
    if seconds < 60:
        return f'{seconds:.1f}s'

    minutes = math.floor(seconds / 60)
    remaining_seconds = math.floor(seconds % 60)
    if minutes < 60:
        return f'{minutes}m {remaining_seconds}s'

    return f'{minutes // 60}h {minutes % 60}m'
