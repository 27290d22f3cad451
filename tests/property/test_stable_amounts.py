from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from pmtrade.domain.amounts import format_stable_amount, parse_stable_amount
from pmtrade.domain.errors import InvalidAmount
from pmtrade.domain.models import ExecutionMode, Quote

six_place_amounts = st.decimals(
    min_value="0.000001",
    max_value="1000000000",
    places=6,
    allow_nan=False,
    allow_infinity=False,
)


@given(amount=six_place_amounts)
def test_fixed_point_conversion_is_exact(amount):
    assert Decimal(format_stable_amount(parse_stable_amount(amount))) == amount
    assert Decimal(format_stable_amount(parse_stable_amount(str(amount)))) == amount


@given(amount=st.decimals(max_value="0", allow_nan=False, allow_infinity=False))
def test_non_positive_amounts_are_rejected(amount):
    with pytest.raises(InvalidAmount):
        parse_stable_amount(amount)


@given(
    mode=st.sampled_from(list(ExecutionMode)),
    order_id=st.one_of(st.none(), st.text(min_size=1, max_size=12)),
)
def test_order_id_present_iff_async(mode, order_id):
    def build():
        return Quote(
            transaction="AA==",
            last_valid_block_height=1,
            execution_mode=mode,
            in_amount=1,
            out_amount=1,
            price_impact_pct=Decimal(0),
            order_id=order_id,
        )

    if (mode is ExecutionMode.ASYNC) == (order_id is not None):
        assert build().is_async == (mode is ExecutionMode.ASYNC)
    else:
        with pytest.raises(ValueError):
            build()
