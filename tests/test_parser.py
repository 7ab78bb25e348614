"""
Tests for mnee.parser
"""

from decimal import Decimal

import pytest
from conftest import OTHER_KEY, make_token_tx

from mnee.constants import OP_BURN, OP_DEPLOY_MINT, TOKEN_CONTENT_TYPE
from mnee import parser
from mnee.cosign import create_p2pkh_script, create_token_script
from mnee.errors import ErrorKind, MneeError
from mnee.inscription import encode_inscription, encode_token_payload
from mnee.models import Environment, TokenPayload, TransferRequest, TxOperation
from mnee.parser import decode_token_output, parse_transaction
from mnee.transaction import Transaction, TxInput, TxOutput, deserialize_transaction
from mnee.tx_builder import build_transfer_tx


def _spend(source: Transaction, outputs: list[TxOutput]) -> Transaction:
    return Transaction(
        inputs=[
            TxInput(txid=source.txid, vout=i, source_output=out) for i, out in enumerate(source.outputs)
        ],
        outputs=outputs,
    )


class TestDecodeTokenOutput:
    def test_token_output(self, config, holder_address):
        out = make_token_tx([(holder_address, 42)], config).outputs[0]
        decoded = decode_token_output(out)
        assert decoded.ownership.address == holder_address
        assert decoded.ownership.cosigner == config.cosigner
        assert decoded.payload.amt == 42

    def test_plain_output(self, holder_address):
        assert decode_token_output(TxOutput(1000, create_p2pkh_script(holder_address))) is None


class TestParseTransaction:
    @pytest.mark.asyncio
    async def test_transfer(self, config, backend, holder_address, recipient_address):
        utxo = backend.fund(holder_address, 1_000_000)
        requests = [TransferRequest(address=recipient_address, amount=Decimal("5"))]
        unsigned = await build_transfer_tx(config, [utxo], requests, backend.get_transaction)

        parsed = parse_transaction(unsigned.tx, config)

        assert parsed.type == TxOperation.TRANSFER
        assert parsed.txid == unsigned.tx.txid
        assert parsed.is_valid
        assert parsed.input_total == "1000000"
        assert parsed.output_total == "1000000"
        assert [(o.address, o.amount) for o in parsed.outputs] == [
            (recipient_address, 500_000),
            (config.fee_address, 100),
            (holder_address, 499_900),
        ]
        assert parsed.inputs[0].address == holder_address
        assert parsed.raw is None

    @pytest.mark.asyncio
    async def test_unknown_inputs_are_skipped(self, config, backend, holder_address, recipient_address):
        utxo = backend.fund(holder_address, 1_000_000)
        requests = [TransferRequest(address=recipient_address, amount=Decimal("5"))]
        unsigned = await build_transfer_tx(config, [utxo], requests, backend.get_transaction)
        tx = deserialize_transaction(unsigned.tx.serialize())

        parsed = parse_transaction(tx, config)

        assert parsed.inputs == []
        assert parsed.input_total == "0"
        assert parsed.is_valid

    def test_source_outputs_mapping(self, config, holder_address, recipient_address):
        source = make_token_tx([(holder_address, 1000)], config, seed=9)
        tx = Transaction(
            inputs=[TxInput(txid=source.txid, vout=0)],
            outputs=make_token_tx([(recipient_address, 1000)], config).outputs,
        )

        parsed = parse_transaction(tx, config, source_outputs={(source.txid, 0): source.outputs[0]})

        assert parsed.input_total == "1000"
        assert parsed.is_valid

    def test_imbalance_strict(self, config, holder_address, recipient_address):
        source = make_token_tx([(holder_address, 1000)], config)
        tx = _spend(source, make_token_tx([(recipient_address, 900)], config).outputs)

        with pytest.raises(MneeError) as exc_info:
            parse_transaction(tx, config)
        assert exc_info.value.kind == ErrorKind.PROTOCOL_VIOLATION

    def test_imbalance_lenient(self, config, holder_address, recipient_address):
        source = make_token_tx([(holder_address, 1000)], config)
        tx = _spend(source, make_token_tx([(recipient_address, 900)], config).outputs)

        parsed = parse_transaction(tx, config, strict=False)

        assert not parsed.is_valid
        assert parsed.input_total == "1000"
        assert parsed.output_total == "900"

    def test_not_a_token_transaction(self, config, holder_address):
        tx = Transaction(
            inputs=[TxInput(txid="11" * 32, vout=0)],
            outputs=[TxOutput(5000, create_p2pkh_script(holder_address))],
        )
        with pytest.raises(MneeError) as exc_info:
            parse_transaction(tx, config)
        assert exc_info.value.kind == ErrorKind.PROTOCOL_VIOLATION

        parsed = parse_transaction(tx, config, strict=False)
        assert parsed.outputs == []

    def test_burn(self, config, holder_address):
        source = make_token_tx([(holder_address, 1000)], config)
        tx = _spend(source, make_token_tx([(config.burn_address, 1000)], config, op=OP_BURN).outputs)

        assert parse_transaction(tx, config).type == TxOperation.BURN

    def test_deploy(self, config, holder_address):
        payload = TokenPayload(p="bsv-20", op=OP_DEPLOY_MINT, id=config.token_id, amt=10**12)
        script = encode_inscription(
            TOKEN_CONTENT_TYPE, encode_token_payload(payload), create_p2pkh_script(config.mint_address)
        )
        funding = TxOutput(10_000, create_p2pkh_script(holder_address))
        tx = Transaction(
            inputs=[TxInput(txid="22" * 32, vout=0, source_output=funding)],
            outputs=[TxOutput(1, script)],
        )

        parsed = parse_transaction(tx, config)

        assert parsed.type == TxOperation.DEPLOY
        assert parsed.is_valid
        assert parsed.outputs[0].address == config.mint_address

    def test_mint(self, config, recipient_address):
        source = make_token_tx([(config.mint_address, 10_000)], config)
        tx = _spend(
            source,
            make_token_tx([(recipient_address, 2_500), (config.mint_address, 7_500)], config).outputs,
        )

        parsed = parse_transaction(tx, config)

        assert parsed.type == TxOperation.MINT
        assert parsed.is_valid

    def test_environment_and_raw(self, config, holder_address, recipient_address):
        source = make_token_tx([(holder_address, 1000)], config)
        tx = _spend(source, make_token_tx([(recipient_address, 1000)], config).outputs)

        parsed = parse_transaction(tx, config, environment=Environment.SANDBOX, include_raw=True)

        assert parsed.environment == Environment.SANDBOX
        assert parsed.raw == tx.hex()

    def test_mint_addresses_follow_environment(
        self, config, monkeypatch, other_address, recipient_address
    ):
        monkeypatch.setitem(parser.MINT_ADDRESSES, "sandbox", (other_address,))
        source = make_token_tx([(other_address, 1000)], config)
        tx = _spend(source, make_token_tx([(recipient_address, 1000)], config).outputs)

        assert parse_transaction(tx, config, environment=Environment.SANDBOX).type == TxOperation.MINT
        assert parse_transaction(tx, config).type == TxOperation.TRANSFER


class TestUntrustedOutputs:
    def test_foreign_cosigner_output_excluded(self, config, holder_address, recipient_address):
        foreign = OTHER_KEY.public_key.format(compressed=True)
        source = make_token_tx([(holder_address, 1000)], config)
        tx = _spend(source, make_token_tx([(recipient_address, 1000)], config).outputs)
        tx.outputs.append(
            TxOutput(1, create_token_script(holder_address, 777, config.token_id, foreign))
        )

        parsed = parse_transaction(tx, config)

        assert [(o.address, o.amount) for o in parsed.outputs] == [(recipient_address, 1000)]
        assert parsed.output_total == "1000"
        assert parsed.is_valid

    def test_plain_inscribed_transfer_excluded(self, config, holder_address):
        payload = TokenPayload(p="bsv-20", op="transfer", id=config.token_id, amt=500)
        forged = encode_inscription(
            TOKEN_CONTENT_TYPE, encode_token_payload(payload), create_p2pkh_script(holder_address)
        )
        tx = Transaction(inputs=[TxInput(txid="33" * 32, vout=0)], outputs=[TxOutput(1, forged)])

        with pytest.raises(MneeError) as exc_info:
            parse_transaction(tx, config)
        assert exc_info.value.kind == ErrorKind.PROTOCOL_VIOLATION

        assert parse_transaction(tx, config, strict=False).outputs == []

    def test_foreign_burn_excluded(self, config, holder_address, recipient_address):
        foreign = OTHER_KEY.public_key.format(compressed=True)
        source = make_token_tx([(holder_address, 1000)], config)
        tx = _spend(source, make_token_tx([(recipient_address, 1000)], config).outputs)
        tx.outputs.append(
            TxOutput(1, create_token_script(config.burn_address, 5, config.token_id, foreign, OP_BURN))
        )

        assert parse_transaction(tx, config).type == TxOperation.TRANSFER

    def test_foreign_cosigner_input_not_counted(self, config, holder_address, recipient_address):
        foreign = OTHER_KEY.public_key.format(compressed=True)
        source = Transaction(
            inputs=[TxInput(txid="44" * 32, vout=0)],
            outputs=[TxOutput(1, create_token_script(holder_address, 1000, config.token_id, foreign))],
        )
        tx = _spend(source, make_token_tx([(recipient_address, 1000)], config).outputs)

        parsed = parse_transaction(tx, config, strict=False)

        assert parsed.inputs == []
        assert not parsed.is_valid
