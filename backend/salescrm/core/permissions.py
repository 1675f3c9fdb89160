"""
Система разрешений (Permissions) для управления доступом.

Одна декларативная таблица: (ресурс, действие) -> {роль: область видимости}.
Роль, отсутствующая в таблице, доступа не имеет. Область OWN означает,
что роль работает только со своими записями (manager_id == user_id).

Все проверки прав проходят через authorize(); ни сервисы, ни роутеры
не сравнивают роли напрямую.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from salescrm.core.exceptions import Forbidden, Unauthorized
from salescrm.models.user import UserRole

logger = logging.getLogger(__name__)


class Scope(str, enum.Enum):
    ALL = "all"
    OWN = "own"


@dataclass(frozen=True)
class Identity:
    """Проверенная личность вызывающего: передается явно в каждый вызов сервиса"""
    user_id: str
    role: UserRole

    @property
    def is_manager(self) -> bool:
        return self.role == UserRole.MANAGER


ADMIN, MANAGER, FINANCIST = UserRole.ADMIN, UserRole.MANAGER, UserRole.FINANCIST

POLICY: Dict[Tuple[str, str], Dict[UserRole, Scope]] = {
    # Пользователи
    ("users", "read"): {ADMIN: Scope.ALL},
    ("users", "create"): {ADMIN: Scope.ALL},
    ("users", "update"): {ADMIN: Scope.ALL},
    ("users", "deactivate"): {ADMIN: Scope.ALL},

    # Сделки
    ("deals", "read"): {ADMIN: Scope.ALL, MANAGER: Scope.OWN, FINANCIST: Scope.ALL},
    ("deals", "create"): {ADMIN: Scope.ALL, MANAGER: Scope.OWN},
    ("deals", "update"): {ADMIN: Scope.ALL, MANAGER: Scope.OWN},
    ("deals", "delete"): {ADMIN: Scope.ALL},
    ("payments", "create"): {ADMIN: Scope.ALL, MANAGER: Scope.OWN},

    # Возвраты: менеджер может оформить возврат по своей сделке, но список не видит
    ("returns", "read"): {ADMIN: Scope.ALL, FINANCIST: Scope.ALL},
    ("returns", "create"): {ADMIN: Scope.ALL, MANAGER: Scope.OWN},
    ("returns", "update"): {ADMIN: Scope.ALL},

    # Планы
    ("plans", "read"): {ADMIN: Scope.ALL, MANAGER: Scope.OWN, FINANCIST: Scope.ALL},
    ("plans", "create"): {ADMIN: Scope.ALL},
    ("plans", "update"): {ADMIN: Scope.ALL},

    # Дашборд: менеджер видит метрики по своим сделкам
    ("dashboard", "read"): {ADMIN: Scope.ALL, MANAGER: Scope.OWN, FINANCIST: Scope.ALL},

    # Аналитика
    ("analytics", "read"): {ADMIN: Scope.ALL, FINANCIST: Scope.ALL},
}


def has_permission(user_role: UserRole, resource: str, action: str) -> bool:
    return user_role in POLICY.get((resource, action), {})


def authorize(identity: Optional[Identity], resource: str, action: str) -> Scope:
    """
    Проверяет доступ и возвращает область видимости для роли.

    Raises:
        Unauthorized: личность не передана
        Forbidden: у роли нет доступа к действию
    """
    if identity is None:
        raise Unauthorized()

    scope = POLICY.get((resource, action), {}).get(identity.role)
    if scope is None:
        logger.warning(
            "Denied %s.%s for user %s (%s)",
            resource, action, identity.user_id, identity.role.value
        )
        raise Forbidden("Insufficient permissions")
    return scope


def owner_filter(identity: Identity, scope: Scope) -> Optional[str]:
    """Ограничение по владельцу, которое нужно наложить на выборку (None - без ограничения)"""
    return identity.user_id if scope == Scope.OWN else None


def ensure_owner(identity: Identity, scope: Scope, owner_id: str) -> None:
    """Для области OWN запись должна принадлежать вызывающему"""
    if scope == Scope.OWN and owner_id != identity.user_id:
        logger.warning("Denied access to foreign record for user %s", identity.user_id)
        raise Forbidden()


def require_permission(resource: str, action: str):
    """
    Зависимость FastAPI: проверяет право и возвращает Identity.

    Пример:
        @router.delete("/{deal_id}")
        def delete_deal(identity: Identity = Depends(require_permission("deals", "delete"))):
            ...
    """
    from fastapi import Depends
    from salescrm.core.dependencies import get_current_identity

    def permission_checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        authorize(identity, resource, action)
        return identity

    return permission_checker
