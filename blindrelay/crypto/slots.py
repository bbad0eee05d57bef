"""Text <-> fixed-width code point vectors, padded with a 0 sentinel."""

from typing import List

from blindrelay.common.errors import CryptoError, PayloadTooLarge

SENTINEL = 0
MAX_CODE_POINT = 0x10FFFF


def text_to_slots(text: str, width: int) -> List[int]:
    """
    Map each character to its code point and pad to `width` with SENTINEL.

    :raises PayloadTooLarge: text longer than width (never truncated)
    :raises CryptoError: text contains NUL, which would read back as padding
    """
    if len(text) > width:
        raise PayloadTooLarge(len(text), width)
    if "\x00" in text:
        raise CryptoError("NUL characters cannot be encoded, they collide with slot padding")

    values = [ord(ch) for ch in text]
    values.extend([SENTINEL] * (width - len(values)))
    return values


def slots_to_text(values: List[int]) -> str:
    """
    Strip trailing SENTINEL padding and turn code points back into text.

    :raises CryptoError: a slot holds something that is not a code point
    """
    end = len(values)
    while end > 0 and values[end - 1] == SENTINEL:
        end -= 1

    chars = []
    for value in values[:end]:
        if not 0 < value <= MAX_CODE_POINT:
            raise CryptoError(f"slot value {value} is not a character")
        chars.append(chr(value))
    return "".join(chars)
