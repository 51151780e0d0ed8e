from __future__ import annotations

from urllib.parse import unquote_to_bytes

from core.errors import CodecError

# Windows-31J is what the registry declares; Python's cp932 is the same table.
_ENCODING = "cp932"
_CHARSET_LABEL = "Windows-31J"


class LegacyTextCodec:
    """
    Byte-level round trip between str and the registry's legacy encoding.

    Percent-encoding works on the encoded bytes, so a double-byte character
    always yields two complete %XX escapes.
    """

    encoding = _ENCODING
    charset_label = _CHARSET_LABEL

    def encode(self, text: str) -> bytes:
        try:
            return text.encode(self.encoding)
        except UnicodeEncodeError as e:
            bad = text[e.start : e.end]
            raise CodecError(f"Cannot encode {bad!r} as {self.charset_label}") from e

    def encode_form_field(self, text: str) -> str:
        return "".join(f"%{b:02X}" for b in self.encode(text))

    def encode_body(self, form: str) -> bytes:
        return self.encode(form)

    def decode_body(self, data: bytes) -> str:
        return data.decode(self.encoding, errors="replace")

    @property
    def content_type(self) -> str:
        return f"application/x-www-form-urlencoded; charset={self.charset_label}"


def decode_percent_field(field: str, codec: LegacyTextCodec | None = None) -> str:
    """Inverse of encode_form_field; used to inspect captured form bodies."""
    codec = codec or LegacyTextCodec()
    return codec.decode_body(unquote_to_bytes(field))
