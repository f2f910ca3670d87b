# utils/mime.py
# Decodificación de cabeceras con encoded-words RFC 2047 (=?charset?B|Q?texto?=)
from __future__ import annotations
import base64
import binascii
import codecs
import logging

logger = logging.getLogger(__name__)

MARKER = "=?"
TERMINATOR = "?="
HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")


def decode_q(text: str) -> bytes:
    """
    Quoted-printable en su variante de cabecera: '_' es espacio y '=XX' un byte.
    Un '=' que no va seguido de dos hexadecimales se deja tal cual.
    """
    raw = text.encode("utf-8", errors="replace")
    out = bytearray()
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == 0x3D and i + 2 < len(raw):  # '='
            pair = raw[i + 1:i + 3]
            if all(c in HEX_DIGITS for c in pair):
                out.append(int(pair, 16))
                i += 3
                continue
        out.append(0x20 if ch == 0x5F else ch)  # '_' -> ' '
        i += 1
    return bytes(out)


def _decode_payload(charset: str, encoding: str, text: str) -> str | None:
    enc = encoding.upper()
    if enc == "B":
        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError):
            return None
    elif enc == "Q":
        data = decode_q(text)
    else:
        return None

    # RFC 2231: charset*idioma
    charset = charset.split("*", 1)[0].strip() or "utf-8"
    try:
        codecs.lookup(charset)
        return data.decode(charset)
    except (LookupError, UnicodeDecodeError):
        return None


def decode_header_value(raw: bytes | str | None) -> str:
    """
    Convierte una cabecera cruda en texto legible.

    Sin marcador '=?' se devuelve la decodificación UTF-8 (con reemplazo) sin más.
    Con marcadores se sustituye cada encoded-word, en orden, por su texto. Si un
    token está mal formado o no se puede decodificar se para ahí y se devuelve lo
    acumulado con el resto sin tocar: una cabecera corrupta no debe tumbar un fetch.
    """
    if raw is None:
        return ""
    result = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)
    if MARKER not in result:
        return result

    cursor = 0
    prev_end: int | None = None
    while True:
        start = result.find(MARKER, cursor)
        if start < 0:
            break
        cs_end = result.find("?", start + 2)
        enc_end = result.find("?", cs_end + 1) if cs_end >= 0 else -1
        end = result.find(TERMINATOR, enc_end + 1) if enc_end >= 0 else -1
        if cs_end < 0 or enc_end < 0 or end < 0:
            break

        charset = result[start + 2:cs_end]
        encoding = result[cs_end + 1:enc_end]
        text = result[enc_end + 1:end]
        decoded = _decode_payload(charset, encoding, text)
        if decoded is None:
            logger.debug("Encoded-word no decodificable, se deja en crudo: %r", result[start:end + 2])
            break

        # Espacios entre dos encoded-words adyacentes no forman parte del texto
        if prev_end is not None and prev_end < start and not result[prev_end:start].strip():
            result = result[:prev_end] + result[start:]
            shift = start - prev_end
            start -= shift
            end -= shift

        result = result[:start] + decoded + result[end + 2:]
        cursor = start + len(decoded)
        prev_end = cursor

    return result
