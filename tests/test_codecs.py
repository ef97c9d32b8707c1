import pytest
import zstandard

from kafkaio.codecs import ZstdCodec
from kafkaio.records import CompressionCodec, Message, compress, encode_message


def test_code_is_zstd():
    assert ZstdCodec().code() == 4


def test_default_level():
    assert ZstdCodec().compression_level == 5


@pytest.mark.parametrize("level", [1, 5, 19])
@pytest.mark.parametrize("payload", [b"", b"Hello World!", b"abc" * 1000])
def test_round_trip(level, payload):
    codec = ZstdCodec(level)
    assert codec.decode(codec.encode(payload)) == payload


def test_repetitive_data_shrinks():
    payload = b"x" * 10000
    assert len(ZstdCodec().encode(payload)) < len(payload)


def test_decode_garbage_raises():
    with pytest.raises(zstandard.ZstdError):
        ZstdCodec().decode(b"not a zstd frame at all")


def test_usable_with_compress():
    codec = ZstdCodec()
    msgs = [Message(value=b"one"), Message(key=b"k", value=b"two")]
    [packed] = compress(codec, msgs)
    expected = encode_message(0, 0, None, None, b"one") + encode_message(1, 0, None, b"k", b"two")
    assert codec.decode(packed.value) == expected
    assert isinstance(codec, CompressionCodec)