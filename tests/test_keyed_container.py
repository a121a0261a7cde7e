"""Tests for the keyed-section container decoder."""

import base64
import struct
import zlib

import pytest
from decode_options import DecodeOptions
from keyed_container import (
    GameSettings,
    KeyedSectionContainerDecoder,
    decode_base64,
    inflate_raw,
)
from replay_errors import (
    DecompressionFailed,
    InvalidEncoding,
    SectionLengthOverflow,
    SectionNotFound,
)


def deflate_raw(data: bytes) -> bytes:
    compressor = zlib.compressobj(9, zlib.DEFLATED, -zlib.MAX_WBITS)
    return compressor.compress(data) + compressor.flush()


def section_bytes(key: str, body: bytes, type_byte: int = 0) -> bytes:
    return key.encode('ascii') + b'\x00' + bytes([type_byte]) + struct.pack('<I', len(body)) + body


@pytest.fixture
def game_messages_body():
    return bytes([0x03, 0x2A, 0xAA, 0xBB, 0xCC, 0x00])


@pytest.fixture
def replay_text(game_messages_body):
    """Base64 text of a small keyed container with settings and one section."""
    plain = (
        b'Region\x00' + struct.pack('<i', 2)
        + b'StartLP\x00' + struct.pack('<i', 8000)
        + b'\x11\x22\x33'
        + section_bytes('GameMessages', game_messages_body, type_byte=5)
    )
    return base64.b64encode(deflate_raw(plain)).decode('ascii')


class TestEnvelope:
    """Tests for base64 and raw deflate handling."""

    def test_decode_base64_ignores_whitespace(self):
        """Test line-wrapped base64 decodes."""
        assert decode_base64('aGVs\nbG8=\n') == b'hello'

    def test_decode_base64_unpadded(self):
        """Test base64 with its trailing padding stripped still decodes."""
        assert decode_base64('aGVsbG8') == b'hello'
        assert decode_base64('aGk') == b'hi'

    def test_malformed_base64(self):
        """Test malformed base64 raises InvalidEncoding."""
        with pytest.raises(InvalidEncoding):
            decode_base64('not base64!!')

    def test_non_ascii_base64(self):
        """Test non-ASCII text raises InvalidEncoding."""
        with pytest.raises(InvalidEncoding):
            decode_base64('aGVsbG8é')

    def test_inflate_raw(self):
        """Test raw deflate round trip through inflate_raw."""
        assert inflate_raw(deflate_raw(b'payload' * 10)) == b'payload' * 10

    def test_invalid_deflate(self):
        """Test an invalid deflate stream raises DecompressionFailed."""
        with pytest.raises(DecompressionFailed):
            inflate_raw(b'\xff\xff\xff\xff')

    def test_truncated_deflate(self):
        """Test a cut-off deflate stream raises DecompressionFailed."""
        compressed = deflate_raw(bytes(range(256)) * 64)
        with pytest.raises(DecompressionFailed):
            inflate_raw(compressed[:len(compressed) // 2])


class TestSectionScan:
    """Tests for locating named sections."""

    def test_example_section(self, game_messages_body):
        """Test the GameMessages example decodes to its exact body."""
        plain = section_bytes('GameMessages', game_messages_body)
        container = KeyedSectionContainerDecoder().decode(base64.b64encode(deflate_raw(plain)).decode())
        section = container.section('GameMessages')
        assert section.data == game_messages_body
        assert section.length == 6
        assert section.offset == len('GameMessages') + 1 + 1 + 4

    def test_body_is_subslice(self, replay_text, game_messages_body):
        """Test the section is an unmodified subslice of the decompressed buffer."""
        container = KeyedSectionContainerDecoder().decode(replay_text)
        section = container.section('GameMessages')
        assert container.buffer[section.offset:section.offset + section.length] == game_messages_body
        assert section.view() == game_messages_body
        assert section.type_byte == 5

    def test_raw_bytes_input(self, game_messages_body):
        """Test raw deflate bytes are accepted without base64."""
        compressed = deflate_raw(b'\x01' + section_bytes('GameMessages', game_messages_body))
        container = KeyedSectionContainerDecoder().decode(compressed)
        assert container.section('GameMessages').data == game_messages_body

    def test_unaligned_key(self, game_messages_body):
        """Test a key preceded by other letters is found one byte later."""
        buffer = b'x' + section_bytes('GameMessages', game_messages_body)
        container = KeyedSectionContainerDecoder().scan(buffer)
        assert container.section('GameMessages').offset == 1 + 12 + 1 + 1 + 4

    def test_multiple_sections(self):
        """Test scanning continues past a section to find further keys."""
        buffer = section_bytes('Snapshot', b'AAAA') + b'\x00\x07' + section_bytes('GameMessages', b'\x01\x02\x03')
        options = DecodeOptions().with_keys('Snapshot')
        container = KeyedSectionContainerDecoder(options).scan(buffer)
        assert list(container.sections) == ['Snapshot', 'GameMessages']
        assert container.section('Snapshot').data == b'AAAA'
        assert container.section('GameMessages').data == b'\x01\x02\x03'

    def test_key_inside_body_not_rescanned(self):
        """Test bytes inside a section body are not scanned for keys."""
        inner = section_bytes('Snapshot', b'ZZ')
        buffer = section_bytes('GameMessages', inner)
        options = DecodeOptions().with_keys('Snapshot')
        container = KeyedSectionContainerDecoder(options).scan(buffer)
        assert 'Snapshot' not in container
        assert container.section('GameMessages').data == inner

    def test_empty_section(self):
        """Test a zero-length section."""
        container = KeyedSectionContainerDecoder().scan(section_bytes('GameMessages', b''))
        assert container.section('GameMessages').data == b''

    def test_section_not_found(self):
        """Test a missing key raises SectionNotFound (also a KeyError)."""
        container = KeyedSectionContainerDecoder().scan(b'nothing to see here')
        with pytest.raises(SectionNotFound) as exc:
            container.section('GameMessages')
        assert exc.value.key == 'GameMessages'
        assert isinstance(exc.value, KeyError)
        assert 'GameMessages' in str(exc.value)

    def test_body_overflow(self):
        """Test a declared length past the end raises SectionLengthOverflow."""
        buffer = b'GameMessages\x00\x00' + struct.pack('<I', 100) + b'\x01\x02'
        with pytest.raises(SectionLengthOverflow) as exc:
            KeyedSectionContainerDecoder().scan(buffer)
        assert exc.value.expected == 100
        assert exc.value.actual == 2

    def test_header_overflow(self):
        """Test a length field cut off by the end of the buffer."""
        buffer = b'GameMessages\x00\x00\x01\x00'
        with pytest.raises(SectionLengthOverflow):
            KeyedSectionContainerDecoder().scan(buffer)

    def test_small_window_misses_long_key(self):
        """Test keys that do not fit the window with their NUL are not matched."""
        with pytest.raises(ValueError):
            DecodeOptions(key_window=12)
        options = DecodeOptions(section_keys=('Blob0',), message_section='Blob0', key_window=6)
        container = KeyedSectionContainerDecoder(options).scan(section_bytes('Blob0', b'\x09'))
        assert container.section('Blob0').data == b'\x09'


class TestScalarFields:
    """Tests for key-value settings lookups."""

    def test_scalar_int32(self, replay_text):
        """Test reading int32 settings that follow their key."""
        container = KeyedSectionContainerDecoder().decode(replay_text)
        assert container.scalar_int32('StartLP') == 8000
        assert container.scalar_int32('Region') == 2

    def test_scalar_missing(self, replay_text):
        """Test missing keys return the default."""
        container = KeyedSectionContainerDecoder().decode(replay_text)
        assert container.scalar_int32('Timer') is None
        assert container.scalar_int32('Timer', 180) == 180

    def test_scalar_truncated(self):
        """Test a value cut off by the end of the buffer returns the default."""
        container = KeyedSectionContainerDecoder().scan(b'Timer\x00\x01\x02')
        assert container.scalar_int32('Timer', -1) == -1
        assert container.scalar_byte('Timer') == 1

    def test_find_key(self):
        """Test find_key returns the key offset."""
        container = KeyedSectionContainerDecoder().scan(b'..IsPublic\x00\x01')
        assert container.find_key('IsPublic') == 2
        assert container.find_key('Player0') == -1


def deck_field(key: str, text: bytes) -> bytes:
    return key.encode('ascii') + b'\x00' + struct.pack('<I', len(text)) + text


class TestGameFields:
    """Tests for named settings, player ids and deck blobs."""

    def test_game_settings(self, replay_text):
        """Test present settings are read and absent ones take their defaults."""
        settings = KeyedSectionContainerDecoder().decode(replay_text).game_settings()
        assert settings.region == 2
        assert settings.start_lp == 8000
        assert settings.master_rule == 5
        assert settings.timer == 180
        assert settings.is_public is False
        assert settings.extra_rule is None

    def test_game_settings_defaults(self):
        """Test an empty buffer yields the default settings."""
        assert KeyedSectionContainerDecoder().scan(b'').game_settings() == GameSettings()

    def test_game_settings_overrides(self):
        """Test stored values replace the defaults."""
        buffer = (b'Timer\x00' + struct.pack('<i', 300) + b'IsPublic\x00\x01'
                  + b'Budget\x00' + struct.pack('<i', 100))
        settings = KeyedSectionContainerDecoder().scan(buffer).game_settings()
        assert settings.timer == 300
        assert settings.is_public is True
        assert settings.budget == 100

    def test_player_ids(self):
        """Test the 8 bytes after each PlayerN key come back as hex."""
        buffer = b'Player0\x00' + bytes(range(1, 9)) + b'Player1\x00' + b'\xab' * 3
        ids = KeyedSectionContainerDecoder().scan(buffer).player_ids()
        assert ids == {'Player0': '0102030405060708', 'Player1': None}

    def test_deck_blob(self):
        """Test Deck0 is read as a length-prefixed string with no type byte."""
        buffer = b'xx' + deck_field('Deck0', b'Q0FSRFM=') + deck_field('Deck1', b'')
        container = KeyedSectionContainerDecoder().scan(buffer)
        assert container.deck_blob('Deck0') == 'Q0FSRFM='
        assert container.deck_blob('Deck1') is None
        assert container.deck_blob('Deck2') is None

    def test_deck_blob_length_bounds(self):
        """Test oversized or overrunning deck lengths are ignored."""
        huge = b'Deck0\x00' + struct.pack('<I', 20000) + b'A' * 8
        overrun = b'Deck0\x00' + struct.pack('<I', 50) + b'A' * 8
        assert KeyedSectionContainerDecoder().scan(huge).deck_blob('Deck0') is None
        assert KeyedSectionContainerDecoder().scan(overrun).deck_blob('Deck0') is None
