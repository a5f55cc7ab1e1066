"""
Definición de permisos RBAC por rol.
Mapea qué acciones puede realizar cada rol.
"""

from app.models.user import UserRole

_STAFF = [UserRole.ADMIN, UserRole.DOCTOR, UserRole.RECEPTIONIST]

# ── Permisos por recurso ─────────────────────────────
# Formato: {recurso: {acción: [roles permitidos]}}
PERMISSIONS: dict[str, dict[str, list[UserRole]]] = {
    "user": {
        "create": [UserRole.ADMIN, UserRole.RECEPTIONIST],
        "read": _STAFF,
        "delete": [UserRole.ADMIN],
    },
    "appointment": {
        "create": _STAFF,
        "read": _STAFF,
        "update": _STAFF,
        "delete": _STAFF,
        "cancel": _STAFF,
        # Solo el doctor registra datos médicos
        "start": [UserRole.ADMIN, UserRole.DOCTOR],
        "complete": [UserRole.ADMIN, UserRole.DOCTOR],
    },
    "formula": {
        "read": [UserRole.ADMIN, UserRole.DOCTOR],
        "update": [UserRole.ADMIN, UserRole.DOCTOR],
        "rebuild": [UserRole.ADMIN],
    },
}

# ── Jerarquía de alta de usuarios ────────────────────
# Define qué roles puede crear cada rol.
ROLE_CAN_CREATE: dict[UserRole, set[UserRole]] = {
    UserRole.ADMIN: {
        UserRole.ADMIN, UserRole.DOCTOR, UserRole.RECEPTIONIST, UserRole.CLIENT,
    },
    UserRole.RECEPTIONIST: {UserRole.CLIENT},
}


def has_permission(role: UserRole, resource: str, action: str) -> bool:
    """Verifica si un rol tiene permiso para una acción en un recurso."""
    resource_perms = PERMISSIONS.get(resource, {})
    allowed_roles = resource_perms.get(action, [])
    return role in allowed_roles


def can_create_role(creator: UserRole, target: UserRole) -> bool:
    return target in ROLE_CAN_CREATE.get(creator, set())
