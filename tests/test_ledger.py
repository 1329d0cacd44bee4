"""Tests for the pycardano-backed ledger toolkit."""

import pytest
from pycardano import Transaction, VerificationKeyWitness

from fakes import utxo
from smartwallet.errors import LedgerError
from smartwallet.ledger import ProtocolParameters, PyCardanoToolkit
from smartwallet.models import Output, TxDatum, UTxO
from smartwallet.value import asset_map


MNEMONIC = " ".join(["abandon"] * 23 + ["art"])
POLICY = "ab" * 28
TOKEN = "746f6b656e"


@pytest.fixture(scope="module")
def toolkit():
    return PyCardanoToolkit("testnet")


@pytest.fixture(scope="module")
def key(toolkit):
    return toolkit.generate_signing_key(MNEMONIC)


@pytest.fixture(scope="module")
def address(toolkit, key):
    return toolkit.address_from_key_hash(toolkit.public_key_hash(key))


def _unsigned(toolkit, address, tokens=None):
    source = UTxO.from_dict(utxo(address, 10_000_000))
    out = Output(address=address, value=asset_map({"lovelace": 2_000_000, **(tokens or {})}))
    return toolkit.build_transaction([source], [out], fee=200_000)


class TestKeys:
    def test_mnemonic_derivation_is_deterministic(self, toolkit, key):
        again = toolkit.generate_signing_key(MNEMONIC)
        assert toolkit.public_key_hash(again) == toolkit.public_key_hash(key)
        assert len(toolkit.public_key_hash(key)) == 56

    def test_random_keys_differ(self, toolkit):
        first = toolkit.generate_signing_key()
        second = toolkit.generate_signing_key()
        assert toolkit.public_key_hash(first) != toolkit.public_key_hash(second)

    def test_hex_round_trip(self, toolkit, key):
        restored = toolkit.signing_key_from_hex(toolkit.signing_key_to_hex(key))
        assert toolkit.public_key_hash(restored) == toolkit.public_key_hash(key)

    @pytest.mark.parametrize("text", ["zz", "00" * 10])
    def test_bad_key_hex(self, toolkit, text):
        with pytest.raises(LedgerError):
            toolkit.signing_key_from_hex(text)

    def test_invalid_mnemonic(self, toolkit):
        with pytest.raises(LedgerError):
            toolkit.generate_signing_key("not a real recovery phrase")


class TestAddresses:
    def test_key_address_is_valid_on_its_network(self, toolkit, address):
        assert address.startswith("addr_test1")
        assert toolkit.validate_address(address)

    def test_network_mismatch_and_garbage(self, address):
        mainnet = PyCardanoToolkit("mainnet")
        assert not mainnet.validate_address(address)
        assert not mainnet.validate_address("bob@example.com")

    def test_bad_key_hash(self, toolkit):
        with pytest.raises(LedgerError):
            toolkit.address_from_key_hash("xyz")

    def test_unknown_network(self):
        with pytest.raises(ValueError):
            PyCardanoToolkit("preview")


class TestTransactions:
    def test_sign_adds_witness_for_key_hash(self, toolkit, key, address):
        unsigned = _unsigned(toolkit, address)
        signed = toolkit.sign_transaction(unsigned, key)

        witnesses = Transaction.from_cbor(signed).transaction_witness_set.vkey_witnesses
        assert len(witnesses) == 1
        assert witnesses[0].vkey.hash().payload.hex() == toolkit.public_key_hash(key)
        assert toolkit.transaction_id(signed) == toolkit.transaction_id(unsigned)

    def test_signing_keeps_existing_witnesses(self, toolkit, key, address):
        other = toolkit.generate_signing_key()
        twice = toolkit.sign_transaction(toolkit.sign_transaction(_unsigned(toolkit, address), key), other)
        assert len(Transaction.from_cbor(twice).transaction_witness_set.vkey_witnesses) == 2

    def test_detached_witness(self, toolkit, key, address):
        witness = toolkit.vkey_witness(_unsigned(toolkit, address), key)
        decoded = VerificationKeyWitness.from_cbor(witness)
        assert decoded.vkey.hash().payload.hex() == toolkit.public_key_hash(key)

    def test_build_carries_inputs_fee_and_tokens(self, toolkit, address):
        unsigned = _unsigned(toolkit, address, tokens={f"{POLICY}.{TOKEN}": 5})
        body = Transaction.from_cbor(unsigned).transaction_body

        assert body.fee == 200_000
        assert len(body.inputs) == 1
        amount = body.outputs[0].amount
        assert amount.coin == 2_000_000
        assert amount.multi_asset.to_primitive() == {bytes.fromhex(POLICY): {bytes.fromhex(TOKEN): 5}}
        assert toolkit.transaction_size(unsigned) == len(unsigned) // 2

    def test_outputs_with_datum_are_refused(self, toolkit, address):
        source = UTxO.from_dict(utxo(address, 10_000_000))
        out = Output(address=address, value=asset_map({"lovelace": 2_000_000}), datum=TxDatum({"int": 1}))
        with pytest.raises(LedgerError):
            toolkit.build_transaction([source], [out], fee=200_000)

    def test_invalid_output_address(self, toolkit, address):
        source = UTxO.from_dict(utxo(address, 10_000_000))
        out = Output(address="not-an-address", value=asset_map({"lovelace": 1}))
        with pytest.raises(LedgerError):
            toolkit.build_transaction([source], [out], fee=1)

    def test_undecodable_transaction(self, toolkit, key):
        with pytest.raises(LedgerError):
            toolkit.sign_transaction("deadbeef", key)


def test_fee_for_size_counts_witness_overhead():
    params = ProtocolParameters()
    assert params.fee_for_size(300) == 44 * (300 + 128) + 155_381
