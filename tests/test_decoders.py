"""
Unit tests for the ERC-721 Transfer log decoder.

Tests:
- Raw JSON-RPC logs and web3-formatted logs decode to the same TransferEvent
- Decoding is deterministic for a fixed capture time
- Foreign events are NOT_TRANSFER, broken Transfer logs are MALFORMED
- Address topics with dirty high bytes are rejected, not masked
- uint256 token ids keep full precision
"""
from datetime import datetime, timezone

import pytest
from hexbytes import HexBytes
from web3 import Web3

from nft_monitor.config.monitor_config import TRANSFER_EVENT_SIGNATURE, TRANSFER_TOPIC
from nft_monitor.services.decoders import TransferEvent, TransferLogDecoder, decode_transfer_log
from nft_monitor.services.exceptions import DecodeError, DecodeErrorReason, MalformedTopic

from fakes import ALICE, BAYC, BOB, TX_HASH, ZERO, build_log, pad_topic, uint_topic

OBSERVED = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
APPROVAL_TOPIC = "0x8c5be1e5ebec7d5bd14f71427d1e84f3dd0314c0f7b2291e5b200ac8c7c3b925"


@pytest.fixture
def decoder():
    return TransferLogDecoder(clock=lambda: OBSERVED)


class TestTransferTopic:
    """The Transfer topic constant."""

    def test_topic_is_keccak_of_signature(self):
        """TRANSFER_TOPIC must be keccak256 of the canonical event signature."""
        expected = "0x" + Web3.keccak(text=TRANSFER_EVENT_SIGNATURE).hex().removeprefix("0x")
        assert TRANSFER_TOPIC == expected


class TestDecodeValidLogs:
    """Decoding well-formed ERC-721 Transfer logs."""

    def test_decodes_all_fields(self, decoder):
        """Every TransferEvent field comes from the log."""
        event = decoder.decode(build_log(token_id=42, block_number=17_000_001, log_index=7))

        assert event.contract_address == BAYC.lower()
        assert event.from_address == ALICE
        assert event.to_address == BOB
        assert event.token_id == 42
        assert event.block_number == 17_000_001
        assert event.transaction_hash == TX_HASH
        assert event.log_index == 7
        assert event.observed_at == OBSERVED

    def test_contract_address_is_lower_cased(self, decoder):
        """Checksummed log addresses are stored lower-case."""
        log = build_log()
        log["address"] = BAYC
        assert decoder.decode(log).contract_address == BAYC.lower()

    def test_decoding_is_deterministic(self, decoder):
        """Re-decoding the same raw log yields an equal event."""
        log = build_log(token_id=9001)
        assert decoder.decode(log) == decoder.decode(log)

    def test_explicit_observed_at_wins_over_clock(self, decoder):
        """A caller-supplied capture time is used as-is."""
        when = datetime(2025, 6, 1, tzinfo=timezone.utc)
        assert decoder.decode(build_log(), observed_at=when).observed_at == when

    def test_max_uint256_token_id_keeps_precision(self, decoder):
        """Token ids are not narrowed to a machine word."""
        token_id = 2 ** 256 - 1
        event = decoder.decode(build_log(token_id=token_id))
        assert event.token_id == token_id
        assert event.to_dict()["token_id"] == str(token_id)

    def test_mint_log_decodes_zero_address(self, decoder):
        """The zero address in topic 1 decodes to the canonical zero address."""
        event = decoder.decode(build_log(from_addr=ZERO))
        assert event.from_address == ZERO

    def test_web3_formatted_log_matches_raw_log(self, decoder):
        """AttributeDict-style logs with HexBytes and ints decode identically."""
        raw = build_log(token_id=5, block_number=123, log_index=3)
        formatted = {
            "address": Web3.to_checksum_address(raw["address"]),
            "topics": [HexBytes(t) for t in raw["topics"]],
            "data": HexBytes("0x"),
            "blockNumber": 123,
            "transactionHash": HexBytes(TX_HASH),
            "logIndex": 3,
            "removed": False,
        }
        assert decoder.decode(formatted) == decoder.decode(raw)

    def test_missing_log_index_is_allowed(self, decoder):
        """logIndex is optional."""
        log = build_log()
        del log["logIndex"]
        assert decoder.decode(log).log_index is None

    def test_event_is_immutable(self, decoder):
        """TransferEvent is a frozen value."""
        event = decoder.decode(build_log())
        with pytest.raises(AttributeError):
            event.token_id = 1

    def test_module_level_helper(self):
        """decode_transfer_log uses the default decoder."""
        event = decode_transfer_log(build_log(), observed_at=OBSERVED)
        assert isinstance(event, TransferEvent)
        assert event.observed_at == OBSERVED


class TestNotTransfer:
    """Logs that are not Transfer events at all."""

    @pytest.mark.parametrize("topics", [[], None])
    def test_no_topics(self, decoder, topics):
        """Anonymous / topic-less logs are NOT_TRANSFER."""
        log = build_log()
        log["topics"] = topics
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(log)
        assert exc_info.value.reason is DecodeErrorReason.NOT_TRANSFER
        assert not exc_info.value.is_transfer

    def test_other_event_topic(self, decoder):
        """An Approval log is NOT_TRANSFER even with four topics."""
        log = build_log(topics=[APPROVAL_TOPIC, pad_topic(ALICE), pad_topic(BOB), uint_topic(1)])
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(log)
        assert exc_info.value.reason is DecodeErrorReason.NOT_TRANSFER


class TestMalformedTransfer:
    """Transfer logs with a broken shape never produce a partial record."""

    def test_erc20_transfer_is_malformed(self, decoder):
        """Three topics (amount in data) is not an ERC-721 Transfer."""
        log = build_log(topics=[TRANSFER_TOPIC, pad_topic(ALICE), pad_topic(BOB)])
        log["data"] = uint_topic(10 ** 18)
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(log)
        assert exc_info.value.reason is DecodeErrorReason.MALFORMED
        assert "ERC-20" in str(exc_info.value)

    def test_too_many_topics(self, decoder):
        """Five topics is malformed."""
        log = build_log()
        log["topics"] = log["topics"] + [uint_topic(1)]
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(log)
        assert exc_info.value.reason is DecodeErrorReason.MALFORMED

    def test_dirty_address_padding(self, decoder):
        """Non-zero high bytes in an address topic raise MalformedTopic."""
        log = build_log()
        log["topics"][2] = "0x" + "ff" * 12 + BOB[2:]
        with pytest.raises(MalformedTopic) as exc_info:
            decoder.decode(log)
        assert exc_info.value.index == 2
        assert exc_info.value.reason is DecodeErrorReason.MALFORMED

    def test_short_topic(self, decoder):
        """A topic that is not 32 bytes raises MalformedTopic."""
        log = build_log()
        log["topics"][3] = "0x2a"
        with pytest.raises(MalformedTopic) as exc_info:
            decoder.decode(log)
        assert exc_info.value.index == 3

    def test_non_hex_topic(self, decoder):
        """Garbage in a topic slot is MalformedTopic."""
        log = build_log()
        log["topics"][1] = "0x" + "zz" * 32
        with pytest.raises(MalformedTopic):
            decoder.decode(log)

    def test_pending_log_without_block_number(self, decoder):
        """Logs without a block number are malformed."""
        log = build_log()
        log["blockNumber"] = None
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(log)
        assert exc_info.value.reason is DecodeErrorReason.MALFORMED

    def test_bad_transaction_hash(self, decoder):
        """A transaction hash must be 32 bytes."""
        log = build_log(tx_hash="0x1234")
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(log)
        assert exc_info.value.reason is DecodeErrorReason.MALFORMED

    def test_bad_contract_address(self, decoder):
        """A log address that is not 20 bytes is malformed."""
        log = build_log()
        log["address"] = "0x1234"
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(log)
        assert exc_info.value.reason is DecodeErrorReason.MALFORMED

    def test_non_mapping_payload(self, decoder):
        """A notification that is not a log object is malformed."""
        with pytest.raises(DecodeError) as exc_info:
            decoder.decode("not a log")
        assert exc_info.value.reason is DecodeErrorReason.MALFORMED
