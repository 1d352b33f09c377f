import enum
from decimal import Decimal


def _log_value(value):
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


# колонки моделі -> extra для ModelFormatter
def get_extra_data_log(obj: object) -> dict:
    return {
        column.name: _log_value(getattr(obj, column.name))
        for column in obj.__table__.columns
    }
