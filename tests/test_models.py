"""Tests for wire-facing data model decoding."""

import pytest

from fakes import PROOF_WIRE
from smartwallet.errors import MalformedResponseError
from smartwallet.models import (
    AddressType,
    BuildResponse,
    Output,
    Proof,
    ProverPublicKey,
    Reference,
    SubmitResult,
    TransactionRequest,
    TxDatum,
    UTxO,
)
from smartwallet.value import Value


TX_ID = "0f" * 32


class TestReference:
    def test_parse_and_render(self):
        ref = Reference.parse(f"{TX_ID.upper()}#3")
        assert ref.transaction_id == TX_ID
        assert ref.output_index == 3
        assert str(ref) == f"{TX_ID}#3"

    @pytest.mark.parametrize("text", ["", TX_ID, f"{TX_ID}#", f"{TX_ID}#-1", "abc#0", f"{TX_ID}#x"])
    def test_rejects_malformed(self, text):
        with pytest.raises(MalformedResponseError):
            Reference.parse(text)


class TestUTxO:
    def test_from_dict_keeps_big_amounts(self):
        utxo = UTxO.from_dict({
            "ref": f"{TX_ID}#0",
            "address": "addr_test1qxyz",
            "value": {"lovelace": 2**70, "ab.cd": "12"},
        })
        assert utxo.lovelace == 2**70
        assert utxo.value["ab.cd"] == 12
        assert utxo.to_dict()["value"] == {"lovelace": 2**70, "ab.cd": 12}

    def test_missing_lovelace_reads_as_zero(self):
        utxo = UTxO.from_dict({"ref": f"{TX_ID}#0", "address": "a", "value": {"ab.cd": 1}})
        assert utxo.lovelace == 0

    @pytest.mark.parametrize("raw", [
        None,
        {"address": "a", "value": {}},
        {"ref": f"{TX_ID}#0", "address": 5, "value": {}},
        {"ref": f"{TX_ID}#0", "address": "a", "value": {"lovelace": -1}},
        {"ref": f"{TX_ID}#0", "address": "a", "value": {"lovelace": True}},
        {"ref": f"{TX_ID}#0", "address": "a", "value": []},
    ])
    def test_rejects_malformed(self, raw):
        with pytest.raises(MalformedResponseError):
            UTxO.from_dict(raw)


def test_output_includes_datum_only_when_present():
    plain = Output(address="addr_test1", value={"lovelace": Value(5)})
    with_datum = Output(address="addr_test1", value={"lovelace": Value(5)}, datum=TxDatum({"int": 1}))
    assert "datum" not in plain.to_dict()
    assert with_datum.to_dict()["datum"] == {"datum": {"int": 1}, "is_inline": True}


class TestBackendResponses:
    def test_build_response(self):
        build = BuildResponse.from_dict({
            "transaction": "84a4",
            "transaction_fee": 171573,
            "transaction_id": TX_ID,
            "address": "addr_test1w",
        })
        assert build.transaction_fee == 171573
        assert build.address == "addr_test1w"

    def test_build_response_requires_transaction(self):
        with pytest.raises(MalformedResponseError):
            BuildResponse.from_dict({"transaction_fee": 1, "transaction_id": TX_ID})

    def test_submit_result_with_notifier_errors(self):
        result = SubmitResult.from_dict({
            "transaction_id": TX_ID,
            "notifier_errors": [{"email": "bob@example.com", "error": "bounced"}],
        })
        assert result.notifier_errors[0].email == "bob@example.com"
        assert result.to_dict()["notifier_errors"] == [{"email": "bob@example.com", "error": "bounced"}]

    def test_submit_result_tolerates_null_errors(self):
        assert SubmitResult.from_dict({"transaction_id": TX_ID, "notifier_errors": None}).notifier_errors == []


class TestProof:
    def test_round_trip_keeps_wire_keys(self):
        proof = Proof.from_dict(PROOF_WIRE)
        assert proof.evaluations["h1_xi'_int"] == PROOF_WIRE["h1_xi'_int"]
        assert proof.to_dict() == {k: PROOF_WIRE[k] for k in sorted(PROOF_WIRE)}

    def test_scalar_l_xi_becomes_list(self):
        raw = dict(PROOF_WIRE, l_xi=7)
        assert Proof.from_dict(raw).l_xi == [Value(7)]

    def test_missing_field_is_malformed(self):
        raw = dict(PROOF_WIRE)
        del raw["cmA_bytes"]
        with pytest.raises(MalformedResponseError):
            Proof.from_dict(raw)


def test_prover_public_key_from_dict():
    key = ProverPublicKey.from_dict({"id": "k1", "public": {"public_e": 65537, "public_n": 2**2047 + 1, "public_size": 256}})
    assert key.key_id == "k1"
    assert key.public.public_n == 2**2047 + 1


def test_transaction_request_constructors():
    by_email = TransactionRequest.to_email("bob@example.com", "5000000")
    by_address = TransactionRequest.to_address("addr_test1x", 7, asset="ab.cd")
    assert by_email.recipient_type == AddressType.EMAIL
    assert by_email.assets() == {"lovelace": Value(5_000_000)}
    assert by_address.assets() == {"ab.cd": Value(7)}
