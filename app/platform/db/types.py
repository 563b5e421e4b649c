from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


class FixedDecimal(TypeDecorator):
    """
    Decimal stored as a fixed-scale string, e.g. ``Decimal("12.5")`` -> ``"12.5000"``.

    Strings compare identically on every backend and platform, unlike binary floats
    or NUMERIC columns whose precision differs between databases.
    """

    impl = String(40)
    cache_ok = True

    def __init__(self, scale: int = 4, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.scale = scale
        self._quantum = Decimal(1).scaleb(-scale)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        try:
            decimal_value = Decimal(value) if not isinstance(value, Decimal) else value
            return format(decimal_value.quantize(self._quantum, rounding=ROUND_HALF_EVEN), "f")
        except InvalidOperation as exc:
            raise ValueError(f"Cannot store {value!r} as a fixed decimal") from exc

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)
