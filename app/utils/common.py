from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP


CENT = Decimal("0.01")


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
	# SQLite повертає naive datetime, вважаємо що це UTC
	if value is None:
		return None
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value


def to_money(value) -> Decimal:
	if value is None:
		return Decimal("0.00")
	if not isinstance(value, Decimal):
		value = Decimal(str(value))
	return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_half_up(value) -> int:
	# округлення half-up (round() у Python - банківське)
	return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

