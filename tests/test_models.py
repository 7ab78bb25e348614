"""
Tests for mnee.models
"""

import pytest
from conftest import TOKEN_ID, make_config
from pydantic import ValidationError

from mnee.models import FeeTier, ProtocolConfig, TokenUtxo


def test_fee_tier_contains_bounds():
    tier = FeeTier(min=10, max=20, fee=1)
    assert tier.contains(10)
    assert tier.contains(20)
    assert not tier.contains(9)
    assert not tier.contains(21)


def test_fee_tier_min_above_max():
    with pytest.raises(ValidationError, match="exceeds max"):
        FeeTier(min=20, max=10, fee=1)


def test_fee_tier_negative_fee():
    with pytest.raises(ValidationError):
        FeeTier(min=0, max=10, fee=-1)


def test_config_accepts_wire_names(config):
    assert config.decimals == 5
    assert config.token_id == TOKEN_ID
    assert config.token_txid == TOKEN_ID.split("_")[0]
    assert config.cosigner == config.approver.lower()
    assert [tier.fee for tier in config.fees] == [100, 1_000]


@pytest.mark.parametrize(
    "fees",
    [
        # overlapping
        [{"min": 1, "max": 1_000, "fee": 10}, {"min": 1_000, "max": 5_000, "fee": 20}],
        [{"min": 1, "max": 1_000, "fee": 10}, {"min": 500, "max": 5_000, "fee": 20}],
        # descending
        [{"min": 1_001, "max": 5_000, "fee": 20}, {"min": 1, "max": 1_000, "fee": 10}],
    ],
)
def test_config_rejects_bad_tiers(fees):
    with pytest.raises(ValidationError, match="overlap or are not ascending"):
        make_config(fees=fees)


def test_config_adjacent_tiers():
    config = make_config(
        fees=[{"min": 1, "max": 1_000, "fee": 10}, {"min": 1_001, "max": 5_000, "fee": 20}]
    )
    assert len(config.fees) == 2


def test_config_rejects_tier_with_min_above_max():
    with pytest.raises(ValidationError, match="exceeds max"):
        make_config(fees=[{"min": 5_000, "max": 1, "fee": 10}])


def test_config_rejects_uncompressed_approver():
    with pytest.raises(ValidationError):
        make_config(approver="04" + "ab" * 64)


def test_config_is_frozen(config):
    with pytest.raises(ValidationError):
        config.decimals = 8


def test_config_from_field_names(config):
    rebuilt = ProtocolConfig(**config.model_dump())
    assert rebuilt == config


def test_token_utxo_from_api_shape():
    utxo = TokenUtxo.model_validate(
        {
            "txid": "ab" * 32,
            "vout": 1,
            "owners": ["1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"],
            "data": {"bsv21": {"amt": 42, "op": "TRANSFER", "id": TOKEN_ID}, "extra": {}},
            "unknown": True,
        }
    )
    assert utxo.amount == 42
    assert utxo.op == "transfer"
    assert utxo.owner == "1BgGZ9tcN4rm9KBzDn7KprQz87SZ26SAMH"
