from collections.abc import Mapping
from typing import Any


def coerce_attribute_value(value: Any) -> str:
    """Render an attribute value the way OTLP JSON tooling prints it.

    Booleans become ``true``/``false`` and integral floats drop the
    fractional part, so ``1.0`` and ``1`` produce the same series key.
    """
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_series_key(metric_name: str, attributes: Mapping[str, Any] | None) -> str:
    if not isinstance(attributes, Mapping):
        attributes = {}
    kv = ','.join(
        f'{key}={coerce_attribute_value(value)}'
        for key, value in sorted(attributes.items(), key=lambda item: item[0])
    )
    return f'{metric_name}|{kv}'
