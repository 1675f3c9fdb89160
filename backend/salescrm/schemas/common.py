from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from salescrm.core.exceptions import ValidationError, errors_from_pydantic

CENT = Decimal("0.01")

# Денежные суммы: NUMERIC(12, 2), на входе строка или число, на выходе строка "700.00"
Money = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]
PositiveMoney = Annotated[Decimal, Field(gt=0, max_digits=12, decimal_places=2)]


class CamelModel(BaseModel):
    """Поля в snake_case внутри, camelCase в JSON; на входе принимаются оба варианта"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def quantize_money(value) -> Decimal:
    """Агрегаты из БД (Decimal, float, None) -> Decimal с двумя знаками"""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent(part, whole) -> int:
    """Целый процент с округлением half-up; 0 при нулевом знаменателе"""
    whole = Decimal(str(whole or 0))
    if whole == 0:
        return 0
    value = Decimal(str(part or 0)) / whole * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_day_bound(value, end_of_day: bool = False):
    """'2024-05-31' -> начало (или конец) дня; полные datetime не трогаем"""
    if isinstance(value, str) and len(value) == 10:
        value = date.fromisoformat(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.max if end_of_day else time.min)
    return value


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_model(model: Type[ModelT], data: dict) -> ModelT:
    """Валидирует параметры запроса, ошибки pydantic превращает в ValidationError со списком полей"""
    try:
        return model.model_validate({k: v for k, v in data.items() if v is not None})
    except PydanticValidationError as exc:
        raise ValidationError(fields=errors_from_pydantic(exc.errors()))
