from hypothesis import given
from hypothesis import strategies as st

from metricslens.series_key import build_series_key, coerce_attribute_value


def test_series_key_sorts_attributes_by_key():
    attributes = {'state': 'user', 'process.pid': 1234, 'host.name': 'alpha'}

    key = build_series_key('process.cpu.time', attributes)

    assert key == 'process.cpu.time|host.name=alpha,process.pid=1234,state=user'


def test_series_key_without_attributes():
    assert build_series_key('up', {}) == 'up|'
    assert build_series_key('up', None) == 'up|'


def test_series_key_ignores_non_mapping_attributes():
    assert build_series_key('up', ['a', 'b']) == 'up|'  # type: ignore[arg-type]


def test_series_key_compares_keys_by_code_point():
    key = build_series_key('m', {'b': 1, 'B': 2, 'a': 3})

    assert key == 'm|B=2,a=3,b=1'


def test_coerce_attribute_value():
    assert coerce_attribute_value(True) == 'true'
    assert coerce_attribute_value(False) == 'false'
    assert coerce_attribute_value(1.0) == '1'
    assert coerce_attribute_value(1.5) == '1.5'
    assert coerce_attribute_value(42) == '42'
    assert coerce_attribute_value('x') == 'x'


attribute_values = st.one_of(
    st.text(max_size=8),
    st.integers(),
    st.booleans(),
    st.floats(allow_nan=False),
)


@given(st.dictionaries(st.text(min_size=1, max_size=8), attribute_values, max_size=6))
def test_series_key_is_independent_of_insertion_order(attributes):
    reversed_attributes = dict(reversed(list(attributes.items())))

    assert build_series_key('metric', attributes) == build_series_key(
        'metric', reversed_attributes
    )
