"""
Fixed-width column padding.

The downstream converter reads its input by fixed column offsets, so every
padded value must come out at exactly the configured width. Numeric values
always carry an explicit sign and are zero-padded; text values are
right-justified with spaces.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from .errors import PaddingError


# Written in place of empty numeric values
MISSING_VALUE = Decimal("-99.999")

_NUMBER = re.compile(r'[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?')


@dataclass(frozen=True)
class ColumnPaddingSpec:
    """
    Padding rule for a single output column.

    Attributes:
        required_length: Total width of the padded value, including the sign
            and the decimal point.
        precision: Digits after the decimal point. Zero means no decimal
            point is written at all.
    """
    required_length: int
    precision: int

    def __post_init__(self):
        if self.required_length <= 0:
            raise PaddingError("Required length must be greater than zero")
        if self.precision < 0:
            raise PaddingError("Precision must be 0 or positive")

        # The sign always needs a character, and there must be at least one
        # integer digit left over.
        if self.reserved_length >= self.required_length:
            raise PaddingError(
                f"Padding requirements exceed required length "
                f"(length={self.required_length}, precision={self.precision})"
            )

    @property
    def reserved_length(self) -> int:
        """Characters taken by the sign, decimal point and fraction digits"""
        return 1 + self.precision + (1 if self.precision > 0 else 0)

    @property
    def quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.precision)

    def pad(self, value: str, numeric: bool = True) -> str:
        """Pad *value* to the required length.

        Empty numeric values are written as MISSING_VALUE.

        Raises:
            PaddingError: If a numeric value cannot be parsed or does not fit,
                or a text value is longer than the required length.
        """
        if numeric:
            return self.pad_number(self._parse(value))
        return self.pad_string(value)

    def pad_number(self, value: Union[Decimal, int, float, str]) -> str:
        if not isinstance(value, Decimal):
            value = Decimal(str(value))

        try:
            rounded = value.quantize(self.quantum, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise PaddingError(f"Value {value} cannot be rounded to precision {self.precision}") from None

        # -0.0004 rounds to -0.000, which is written as positive zero
        sign = '-' if rounded < 0 else '+'
        digits = f"{abs(rounded):f}".zfill(self.required_length - 1)

        if len(digits) + 1 != self.required_length:
            raise PaddingError(
                f"Value {value} does not fit in {self.required_length} characters "
                f"with precision {self.precision}"
            )

        return sign + digits

    def pad_string(self, value: str) -> str:
        if len(value) > self.required_length:
            raise PaddingError(
                f"Value length is larger than available length "
                f"('{value}' > {self.required_length} characters)"
            )
        return value.rjust(self.required_length)

    @staticmethod
    def _parse(value: str) -> Decimal:
        text = value.strip()
        if not text:
            return MISSING_VALUE

        # Decimal() also takes underscores, non-ASCII digits, NaN and Infinity
        if not _NUMBER.fullmatch(text):
            raise PaddingError(f"Non-numeric value '{value}' in numeric field")
        return Decimal(text)
