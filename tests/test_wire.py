"""Tests for the JSON wire codec."""

import pytest

from smartwallet.errors import MalformedResponseError
from smartwallet.models import ProofInput, UTxO
from smartwallet.value import Value, asset_map, asset_map_to_wire
from smartwallet.wire import deserialize, serialize


def test_proof_input_survives_round_trip_at_256_bits():
    proof_input = ProofInput(
        pub_e=Value(65537),
        pub_n=Value(2**2047 + 12345),
        signature=Value(2**2046 + 99),
        token_name=Value(2**224 - 1),
    )
    text = serialize(proof_input)

    assert '"piPubN":' + str(2**2047 + 12345) in text
    assert ProofInput.from_dict(deserialize(text)) == proof_input


def test_asset_map_survives_round_trip_at_256_bits():
    assets = asset_map({"lovelace": 2**256 - 1, "ab.cd": 2**255})
    decoded = deserialize(serialize(asset_map_to_wire(assets)))
    assert decoded == {"lovelace": 2**256 - 1, "ab.cd": 2**255}


def test_serialize_uses_to_dict_and_compact_separators():
    utxo = UTxO.from_dict({"ref": "ab" * 32 + "#1", "address": "addr_test1x", "value": {"lovelace": 5}})
    assert serialize({"u": utxo}) == '{"u":{"ref":"' + "ab" * 32 + '#1","address":"addr_test1x","value":{"lovelace":5}}}'


def test_serialize_refuses_floats_anywhere():
    with pytest.raises(ValueError):
        serialize({"outs": [{"value": {"lovelace": 1.5}}]})


@pytest.mark.parametrize("text", ['{"amount": 1.0}', '{"amount": 1e3}', "[NaN]", "not json", b"\xff\xfe"])
def test_deserialize_rejects_floats_and_garbage(text):
    with pytest.raises(MalformedResponseError):
        deserialize(text)


def test_serialize_rejects_unknown_objects():
    with pytest.raises(TypeError):
        serialize({"x": object()})
