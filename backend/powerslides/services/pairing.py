"""
Pairing code codec

A pairing code packs the creation minute and 28 random bits into one integer
and writes it as 12 base-32 symbols (5 bits each, most significant first):

    value = (minutes_since_epoch << 28) | random_bits

Codes are valid for 5 minutes from the minute they were created. The code is
both the room name and the room password.
"""
import re
import secrets
import time
import uuid
from typing import Optional

from powerslides.core.exceptions import ExpiredCodeError, InvalidCodeError
from powerslides.models.pairing import PairingCredential, PairingSession

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
PAIRING_CODE_LENGTH = 12
PAIRING_CODE_TTL_MINUTES = 5
PAIRING_CODE_RANDOM_BITS = 28
PAIRING_CODE_GROUP_SIZE = 4

_SEPARATORS = re.compile(r"[-\s]")
_NON_ALPHABET = re.compile(r"[^A-Z2-7]")


def normalize_pairing_code(value: str) -> str:
    """Uppercase and strip dashes/whitespace"""
    return _SEPARATORS.sub("", value.upper())


def format_pairing_code(value: str) -> str:
    """Display form: normalized code with a dash every 4 characters"""
    normalized = _NON_ALPHABET.sub("", normalize_pairing_code(value))
    groups = [
        normalized[i:i + PAIRING_CODE_GROUP_SIZE]
        for i in range(0, len(normalized), PAIRING_CODE_GROUP_SIZE)
    ]
    return "-".join(groups)


def encode_base32(value: int, length: int) -> str:
    """Fixed-width positional encoding; bits above length*5 are dropped"""
    chars = []
    for i in range(length):
        shift = (length - 1 - i) * 5
        chars.append(BASE32_ALPHABET[(value >> shift) & 31])
    return "".join(chars)


def decode_base32(value: str) -> Optional[int]:
    """Inverse of encode_base32, None on a symbol outside the alphabet"""
    result = 0
    for char in value:
        index = BASE32_ALPHABET.find(char)
        if index == -1:
            return None
        result = (result << 5) | index
    return result


def _minutes_since_epoch(now: Optional[float] = None) -> int:
    if now is None:
        now = time.time()
    return int(now // 60)


def credential_from_code(normalized_code: str) -> PairingCredential:
    return PairingCredential(slide_id=normalized_code, password=normalized_code)


def create_pairing_session(now: Optional[float] = None) -> PairingSession:
    """
    Generate a new pairing code

    Args:
        now: epoch seconds (default: current time)

    Returns:
        PairingSession with the display code and its credential
    """
    random_bits = secrets.randbits(PAIRING_CODE_RANDOM_BITS)
    code_value = (_minutes_since_epoch(now) << PAIRING_CODE_RANDOM_BITS) | random_bits
    normalized = encode_base32(code_value, PAIRING_CODE_LENGTH)
    return PairingSession(
        code=format_pairing_code(normalized),
        credential=credential_from_code(normalized),
    )


def parse_pairing_code(value: str, now: Optional[float] = None) -> PairingCredential:
    """
    Validate a typed pairing code and derive its credential

    Raises:
        InvalidCodeError: wrong length or a symbol outside the alphabet
        ExpiredCodeError: well-formed but created more than TTL minutes ago (or in the future)
    """
    if not isinstance(value, str):
        raise InvalidCodeError()
    normalized = normalize_pairing_code(value)
    if len(normalized) != PAIRING_CODE_LENGTH:
        raise InvalidCodeError()

    decoded = decode_base32(normalized)
    if decoded is None:
        raise InvalidCodeError()

    created_minutes = decoded >> PAIRING_CODE_RANDOM_BITS
    age_minutes = _minutes_since_epoch(now) - created_minutes
    if age_minutes < 0 or age_minutes > PAIRING_CODE_TTL_MINUTES:
        raise ExpiredCodeError()

    return credential_from_code(normalized)


def create_command_id() -> str:
    return str(uuid.uuid4())
