"""Property-based tests for mouth parameter normalization and smoothing"""

import pytest
from hypothesis import given, strategies as st, settings

from lipsync.control.lip_sync_controller import LipSyncController, lerp, normalize_params
from lipsync.models.results import MouthShape
from lipsync.models.settings import LipSyncConfig


any_float = st.floats(allow_nan=True, allow_infinity=True)
unit = st.floats(min_value=0.0, max_value=1.0)


# Property: normalized parameters always lie in their renderer ranges
@settings(max_examples=100, deadline=None)
@given(open_y=any_float, form=any_float, open_x=st.one_of(st.none(), any_float))
def test_normalized_shape_in_range(open_y, form, open_x):
    shape = normalize_params(MouthShape(open_y=open_y, form=form, open_x=open_x))

    assert 0.0 <= shape.open_y <= 1.0
    assert -1.0 <= shape.form <= 1.0
    if open_x is None:
        assert shape.open_x is None
    else:
        assert -1.0 <= shape.open_x <= 1.0


# Property: the smoothing factor yields an alpha in [0, 1] for any elapsed time
@settings(max_examples=100, deadline=None)
@given(
    smoothing=unit,
    delta_ms=st.floats(min_value=0.0, max_value=10000.0)
)
def test_smoothing_alpha_in_unit_range(smoothing, delta_ms):
    controller = LipSyncController(None, None, None, LipSyncConfig(smoothing_factor=smoothing))

    assert 0.0 <= controller.calculate_smoothing_alpha(delta_ms) <= 1.0


# Property: interpolation stays between the endpoints
@settings(max_examples=100, deadline=None)
@given(
    start=st.tuples(unit, unit),
    end=st.tuples(unit, unit),
    t=unit
)
def test_lerp_between_endpoints(start, end, t):
    shape = lerp(MouthShape(*start), MouthShape(*end), t)

    assert min(start[0], end[0]) - 1e-12 <= shape.open_y <= max(start[0], end[0]) + 1e-12
    assert min(start[1], end[1]) - 1e-12 <= shape.form <= max(start[1], end[1]) + 1e-12
    assert lerp(MouthShape(*start), MouthShape(*end), 0.0).open_y == pytest.approx(start[0])
