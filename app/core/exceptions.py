"""
Errores de dominio de la clínica expresados como respuestas HTTP.

Cada subclase fija su código y un mensaje por defecto; los servicios
las lanzan directamente y FastAPI las serializa como {"detail": ...}.
"""

from fastapi import HTTPException, status


class ClinicHTTPException(HTTPException):
    """Base: código HTTP y mensaje por defecto definidos en la subclase."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Error interno del servidor"
    headers: dict[str, str] | None = None

    def __init__(self, detail: str | None = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=self.headers,
        )


class CredentialsException(ClinicHTTPException):
    """Token ausente, inválido o expirado, o login fallido (401)."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Credenciales inválidas"
    headers = {"WWW-Authenticate": "Bearer"}


class ForbiddenException(ClinicHTTPException):
    """El rol del usuario no tiene el permiso requerido (403)."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "No tiene permisos para realizar esta acción"


class NotFoundException(ClinicHTTPException):
    """Paciente, cita, fórmula o entrada de catálogo inexistente (404)."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Recurso", detail: str | None = None):
        super().__init__(detail or f"{resource}: no existe")


class ConflictException(ClinicHTTPException):
    """
    Conflicto con el estado actual (409): email duplicado, transición
    inválida de la cita o escritura concurrente sobre el mismo registro.
    """

    status_code = status.HTTP_409_CONFLICT
    default_detail = "El recurso ya existe"


class ValidationException(ClinicHTTPException):
    """Datos de negocio fuera de rango o inconsistentes (400)."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Error de validación"


class PersistenceException(ClinicHTTPException):
    """Falla del almacenamiento subyacente (500). No se reintenta."""

    default_detail = "Error de persistencia"
