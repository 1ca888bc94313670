"""Armored payload extraction.

An armored encryptor output looks like::

    -----BEGIN PGP MESSAGE-----
    <optional header lines>

    hQEMA...payload...
    =AbCd
    -----END PGP MESSAGE-----

The payload is everything between the first blank line and the footer line.
XEP-0027 carries exactly that part, without header and footer.
"""

from .errors import ArmorEncodingError, ArmorNotFoundError, ArmorTooShortError

_HEADER_END = b"\n\n"
_FOOTER_START = b"\n-"


def extract_armored_payload(data: bytes) -> str:
    """Return the payload embedded in armored encryptor output.

    Args:
        data: Raw stdout of a successful encryptor run

    Raises:
        ArmorNotFoundError: no blank line after the header, or no footer line
        ArmorTooShortError: nothing follows the blank line
        ArmorEncodingError: payload is not valid UTF-8
    """
    header_end = data.find(_HEADER_END)
    if header_end == -1:
        raise ArmorNotFoundError("no blank line after armor header")

    start = header_end + len(_HEADER_END)
    if start >= len(data):
        raise ArmorTooShortError(f"armor ends at the header separator ({len(data)} bytes)")

    end = data.find(_FOOTER_START, start)
    if end == -1:
        raise ArmorNotFoundError("no armor footer line")

    try:
        return data[start:end].decode("utf-8")
    except UnicodeDecodeError as e:
        raise ArmorEncodingError(f"payload is not valid UTF-8: {e}") from e
