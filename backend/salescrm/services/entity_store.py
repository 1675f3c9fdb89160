"""
Хранилище сущностей: пользователи, сделки, возвраты, планы.

Единственное бизнес-правило на этом уровне - инвариант сделки
remaining_amount = amount - paid_amount. Он пересчитывается одним
UPDATE-выражением на стороне БД, без чтения-изменения-записи в Python,
поэтому параллельные оплаты по одной сделке не теряют обновления.

Права доступа здесь не проверяются: это делают сервисы через core.permissions.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from sqlalchemy import func, literal, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager, joinedload

from salescrm.core.exceptions import NotFound, StorageFailure, ValidationError
from salescrm.models.deal import Deal
from salescrm.models.deal_return import DealReturn
from salescrm.models.plan import Plan
from salescrm.models.user import User, UserRole

logger = logging.getLogger(__name__)

MONEY_PLACES = Decimal("0.01")
MONEY_MAX = Decimal("9999999999.99")  # NUMERIC(12, 2)

USER_FIELDS = {"username", "hashed_password", "full_name", "email", "role", "project", "is_active"}
DEAL_FIELDS = {
    "client_name", "phone", "email", "project", "program", "manager_id", "status",
    "amount", "paid_amount", "source", "marketing_channel", "payment_method", "gender",
    "client_segment", "comments", "bank_order_number", "created_at",
}
RETURN_FIELDS = {"deal_id", "return_date", "return_amount", "return_reason", "status", "processed_by", "created_at"}
PLAN_FIELDS = {
    "project", "manager_id", "plan_type", "year", "month",
    "planned_amount", "planned_deals", "is_active",
}


@dataclass
class DealQuery:
    """
    Условия выборки сделок. owner_id - ограничение по владельцу от политики доступа,
    manager_id - фильтр вызывающего; оба накладываются через AND.
    """
    owner_id: Optional[str] = None
    manager_id: Optional[str] = None
    project: Optional[str] = None
    status: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None
    search_by: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class ReturnQuery:
    owner_id: Optional[str] = None
    deal_id: Optional[str] = None
    status: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class PlanQuery:
    owner_id: Optional[str] = None
    manager_id: Optional[str] = None
    project: Optional[str] = None
    plan_type: Optional[str] = None
    year: Optional[int] = None
    month: Optional[int] = None


def _enum_value(value):
    return getattr(value, "value", value)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def deal_conditions(q: DealQuery) -> list:
    """
    Условия WHERE для сделок. Ограничение владельца всегда идет первым,
    фильтры вызывающего только добавляются к нему.

    Поиск по менеджеру требует join с users (см. _deals_base).
    """
    conditions = []
    if q.owner_id:
        conditions.append(Deal.manager_id == q.owner_id)

    if q.manager_id:
        conditions.append(Deal.manager_id == q.manager_id)
    if q.project:
        conditions.append(Deal.project == _enum_value(q.project))
    if q.status:
        conditions.append(Deal.status == _enum_value(q.status))
    if q.date_from:
        conditions.append(Deal.created_at >= q.date_from)
    if q.date_to:
        conditions.append(Deal.created_at <= q.date_to)

    if q.search and q.search_by:
        search_by = _enum_value(q.search_by)
        pattern = _like_pattern(q.search)
        if search_by == "client":
            conditions.append(func.lower(Deal.client_name).like(pattern.lower(), escape="\\"))
        elif search_by == "phone":
            conditions.append(Deal.phone.like(pattern, escape="\\"))
        elif search_by == "manager":
            conditions.append(func.lower(User.full_name).like(pattern.lower(), escape="\\"))
    return conditions


def return_conditions(q: ReturnQuery) -> list:
    conditions = []
    if q.owner_id:
        conditions.append(Deal.manager_id == q.owner_id)
    if q.deal_id:
        conditions.append(DealReturn.deal_id == q.deal_id)
    if q.status:
        conditions.append(DealReturn.status == _enum_value(q.status))
    if q.date_from:
        conditions.append(DealReturn.return_date >= q.date_from)
    if q.date_to:
        conditions.append(DealReturn.return_date <= q.date_to)
    return conditions


def plan_conditions(q: PlanQuery) -> list:
    conditions = []
    if q.owner_id:
        conditions.append(Plan.manager_id == q.owner_id)
    if q.manager_id:
        conditions.append(Plan.manager_id == q.manager_id)
    if q.project:
        conditions.append(Plan.project == _enum_value(q.project))
    if q.plan_type:
        conditions.append(Plan.plan_type == _enum_value(q.plan_type))
    if q.year:
        conditions.append(Plan.year == q.year)
    if q.month:
        conditions.append(Plan.month == q.month)
    return conditions


def reject_nulls(model, values: dict) -> None:
    """NULL в обязательную колонку - ошибка валидации поля, а не ошибка БД"""
    for column in model.__table__.columns:
        if not column.nullable and column.name in values and values[column.name] is None:
            raise ValidationError.for_field(column.name, "Must not be empty")


def parse_money(field: str, value) -> Decimal:
    """Строка или число -> Decimal с двумя знаками; иначе ValidationError по полю"""
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError.for_field(field, "Must be a decimal amount")
    if not amount.is_finite():
        raise ValidationError.for_field(field, "Must be a decimal amount")
    if amount < 0:
        raise ValidationError.for_field(field, "Must not be negative")
    if amount != amount.quantize(MONEY_PLACES):
        raise ValidationError.for_field(field, "At most two decimal places allowed")
    if amount > MONEY_MAX:
        raise ValidationError.for_field(field, "Amount is too large")
    return amount.quantize(MONEY_PLACES)


class EntityStore:
    """CRUD над четырьмя сущностями поверх одной сессии SQLAlchemy"""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def guard(self, operation: str):
        """Любая ошибка БД -> откат и StorageFailure; прикладные ошибки пропускаем как есть"""
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Storage failure during %s", operation, exc_info=True)
            raise StorageFailure() from exc

    def _pick(self, data: dict, allowed: set) -> dict:
        return {key: _enum_value(value) for key, value in data.items() if key in allowed}

    def _require_user(self, field: str, user_id: Optional[str]) -> User:
        user = self.db.get(User, user_id) if user_id else None
        if not user:
            raise ValidationError.for_field(field, "User does not exist")
        return user

    def _require_manager(self, user_id: Optional[str], current: Optional[str] = None) -> User:
        """Владелец сделки или плана - только менеджер; неактивного нельзя назначить заново"""
        user = self._require_user("manager_id", user_id)
        if user.role != UserRole.MANAGER.value:
            raise ValidationError.for_field("manager_id", "User is not a manager")
        if not user.is_active and user_id != current:
            raise ValidationError.for_field("manager_id", "Manager is inactive")
        return user

    # ========== Пользователи ==========

    def get_user(self, user_id: str) -> User:
        with self.guard("get_user"):
            user = self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self.guard("get_user_by_username"):
            return self.db.query(User).filter(User.username == username).first()

    def list_users(self) -> List[User]:
        with self.guard("list_users"):
            return self.db.query(User).order_by(User.full_name.asc()).all()

    def create_user(self, data: dict) -> User:
        """data должен содержать уже захешированный hashed_password"""
        values = self._pick(data, USER_FIELDS)
        with self.guard("create_user"):
            if self.get_user_by_username(values.get("username")):
                raise ValidationError.for_field("username", "Username already exists")
            user = User(**values)
            self.db.add(user)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                raise ValidationError.for_field("username", "Username already exists")
            self.db.refresh(user)
        logger.info("User %s created (%s)", user.username, user.role)
        return user

    def update_user(self, user_id: str, partial: dict) -> User:
        """Если в partial есть пароль, он уже должен быть захеширован вызывающим"""
        values = self._pick(partial, USER_FIELDS)
        reject_nulls(User, values)
        user = self.get_user(user_id)
        with self.guard("update_user"):
            new_username = values.get("username")
            if new_username and new_username != user.username and self.get_user_by_username(new_username):
                raise ValidationError.for_field("username", "Username already exists")
            for field, value in values.items():
                setattr(user, field, value)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                raise ValidationError.for_field("username", "Username already exists")
            self.db.refresh(user)
        logger.info("User %s updated: %s", user.id, sorted(k for k in values if k != "hashed_password"))
        return user

    def deactivate_user(self, user_id: str) -> User:
        """Мягкое удаление"""
        return self.update_user(user_id, {"is_active": False})

    # ========== Сделки ==========

    def _deals_base(self):
        return (
            self.db.query(Deal)
            .outerjoin(User, Deal.manager_id == User.id)
            .options(contains_eager(Deal.manager))
        )

    def get_deal(self, deal_id: str) -> Deal:
        with self.guard("get_deal"):
            deal = self._deals_base().filter(Deal.id == deal_id).first()
        if not deal:
            raise NotFound("Deal not found")
        return deal

    def list_deals(self, q: DealQuery) -> List[Deal]:
        with self.guard("list_deals"):
            query = self._deals_base().filter(*deal_conditions(q))
            query = query.order_by(Deal.created_at.desc(), Deal.id.desc())
            if q.limit:
                query = query.limit(q.limit)
            if q.offset:
                query = query.offset(q.offset)
            return query.all()

    def count_deals(self, q: DealQuery) -> int:
        with self.guard("count_deals"):
            return (
                self.db.query(func.count(Deal.id))
                .select_from(Deal)
                .outerjoin(User, Deal.manager_id == User.id)
                .filter(*deal_conditions(q))
                .scalar()
            ) or 0

    def create_deal(self, data: dict) -> Deal:
        values = self._pick(data, DEAL_FIELDS)
        if values.get("amount") is None:
            raise ValidationError.for_field("amount", "Field required")
        amount = parse_money("amount", values["amount"])
        paid_amount = parse_money("paid_amount", values.get("paid_amount") or 0)
        if paid_amount > amount:
            raise ValidationError.for_field("paid_amount", "Paid amount must not exceed amount")

        values.update(amount=amount, paid_amount=paid_amount, remaining_amount=amount - paid_amount)
        with self.guard("create_deal"):
            self._require_manager(values.get("manager_id"))
            deal = Deal(**values)
            self.db.add(deal)
            self.db.commit()
        logger.info("Deal %s created for manager %s", deal.id, deal.manager_id)
        return self.get_deal(deal.id)

    def update_deal(self, deal_id: str, partial: dict) -> Deal:
        """
        Обновление сделки одним UPDATE. Если меняются суммы, остаток считается
        в том же выражении из новых значений или текущих колонок строки:

            remaining_amount = coalesce(:amount, amount) - coalesce(:paid, paid_amount)

        Условие paid <= amount тоже проверяется в WHERE того же запроса.
        """
        values = self._pick(partial, DEAL_FIELDS - {"created_at"})
        reject_nulls(Deal, values)
        for field in ("amount", "paid_amount"):
            if field in values:
                values[field] = parse_money(field, values[field])

        if not values:
            return self.get_deal(deal_id)

        conditions = [Deal.id == deal_id]
        touches_amounts = "amount" in values or "paid_amount" in values
        if touches_amounts:
            amount_expr = literal(values["amount"], Deal.amount.type) if "amount" in values else Deal.amount
            paid_expr = literal(values["paid_amount"], Deal.paid_amount.type) if "paid_amount" in values else Deal.paid_amount
            # SQLite хранит NUMERIC как REAL: сравниваем и считаем с округлением до копеек
            values["remaining_amount"] = func.round(amount_expr - paid_expr, 2)
            conditions.append(func.round(paid_expr - amount_expr, 2) <= 0)

        with self.guard("update_deal"):
            if "manager_id" in values:
                current = self.db.query(Deal.manager_id).filter(Deal.id == deal_id).scalar()
                self._require_manager(values["manager_id"], current)
            stmt = (
                update(Deal)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                self.get_deal(deal_id)  # NotFound, если сделки нет
                raise ValidationError.for_field("paid_amount", "Paid amount must not exceed amount")
            self.db.commit()
            self.db.expire_all()

        logger.info("Deal %s updated: %s", deal_id, sorted(values))
        return self.get_deal(deal_id)

    def record_payment(self, deal_id: str, amount) -> Deal:
        """Атомарно добавляет оплату: paid += x, remaining = amount - paid, при условии paid + x <= amount"""
        payment = parse_money("amount", amount)
        if payment <= 0:
            raise ValidationError.for_field("amount", "Payment must be greater than 0")

        payment_expr = literal(payment, Deal.paid_amount.type)
        new_paid = func.round(Deal.paid_amount + payment_expr, 2)
        with self.guard("record_payment"):
            stmt = (
                update(Deal)
                .where(Deal.id == deal_id, func.round(new_paid - Deal.amount, 2) <= 0)
                .values(
                    paid_amount=new_paid,
                    remaining_amount=func.round(Deal.amount - new_paid, 2),
                )
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                self.get_deal(deal_id)
                raise ValidationError.for_field("amount", "Payment exceeds remaining amount")
            self.db.commit()
            self.db.expire_all()

        logger.info("Payment %s recorded for deal %s", payment, deal_id)
        return self.get_deal(deal_id)

    def delete_deal(self, deal_id: str) -> None:
        deal = self.get_deal(deal_id)
        with self.guard("delete_deal"):
            self.db.delete(deal)
            self.db.commit()
        logger.info("Deal %s deleted", deal_id)

    # ========== Возвраты ==========

    def _returns_base(self):
        return (
            self.db.query(DealReturn)
            .join(Deal, DealReturn.deal_id == Deal.id)
            .options(contains_eager(DealReturn.deal), joinedload(DealReturn.processor))
        )

    def get_return(self, return_id: str) -> DealReturn:
        with self.guard("get_return"):
            record = self._returns_base().filter(DealReturn.id == return_id).first()
        if not record:
            raise NotFound("Return not found")
        return record

    def list_returns(self, q: ReturnQuery) -> List[DealReturn]:
        with self.guard("list_returns"):
            query = self._returns_base().filter(*return_conditions(q))
            query = query.order_by(DealReturn.created_at.desc(), DealReturn.id.desc())
            if q.limit:
                query = query.limit(q.limit)
            if q.offset:
                query = query.offset(q.offset)
            return query.all()

    def create_return(self, data: dict) -> DealReturn:
        values = self._pick(data, RETURN_FIELDS)
        values["return_amount"] = parse_money("return_amount", values.get("return_amount"))
        with self.guard("create_return"):
            if values.get("processed_by"):
                self._require_user("processed_by", values["processed_by"])
            record = DealReturn(**values)
            self.db.add(record)
            self.db.commit()
        logger.info("Return %s created for deal %s", record.id, record.deal_id)
        return self.get_return(record.id)

    def update_return(self, return_id: str, partial: dict) -> DealReturn:
        values = self._pick(partial, RETURN_FIELDS - {"deal_id", "created_at"})
        reject_nulls(DealReturn, values)
        if "return_amount" in values:
            values["return_amount"] = parse_money("return_amount", values["return_amount"])
        record = self.get_return(return_id)
        with self.guard("update_return"):
            if values.get("processed_by"):
                self._require_user("processed_by", values["processed_by"])
            for field, value in values.items():
                setattr(record, field, value)
            self.db.commit()
        logger.info("Return %s updated: %s", return_id, sorted(values))
        return self.get_return(return_id)

    # ========== Планы ==========

    def get_plan(self, plan_id: str) -> Plan:
        with self.guard("get_plan"):
            plan = self.db.query(Plan).options(joinedload(Plan.manager)).filter(Plan.id == plan_id).first()
        if not plan:
            raise NotFound("Plan not found")
        return plan

    def list_plans(self, q: PlanQuery) -> List[Plan]:
        with self.guard("list_plans"):
            return (
                self.db.query(Plan)
                .options(joinedload(Plan.manager))
                .filter(*plan_conditions(q))
                .order_by(Plan.year.desc(), Plan.month.desc(), Plan.plan_type.asc())
                .all()
            )

    def create_plan(self, data: dict) -> Plan:
        values = self._pick(data, PLAN_FIELDS)
        values["planned_amount"] = parse_money("planned_amount", values.get("planned_amount"))
        with self.guard("create_plan"):
            self._require_manager(values.get("manager_id"))
            plan = Plan(**values)
            self.db.add(plan)
            self.db.commit()
        logger.info("Plan %s created for manager %s (%s/%s)", plan.id, plan.manager_id, plan.year, plan.month)
        return self.get_plan(plan.id)

    def update_plan(self, plan_id: str, partial: dict) -> Plan:
        values = self._pick(partial, PLAN_FIELDS)
        reject_nulls(Plan, values)
        if "planned_amount" in values:
            values["planned_amount"] = parse_money("planned_amount", values["planned_amount"])
        plan = self.get_plan(plan_id)
        with self.guard("update_plan"):
            if "manager_id" in values:
                self._require_manager(values["manager_id"], plan.manager_id)
            for field, value in values.items():
                setattr(plan, field, value)
            self.db.commit()
        logger.info("Plan %s updated: %s", plan_id, sorted(values))
        return self.get_plan(plan_id)
