"""
Errores del motor de informes.

- ValidationError: definición inválida (módulo, campo, operador, valor, agrupación).
  Siempre lleva la lista completa de rutas afectadas.
- NotFoundError: el informe no existe para la empresa del usuario.
- ExecutionError: fallo de la fuente de datos tras agotar los reintentos.
- ExecutionTimeoutError: la ejecución superó el tiempo máximo o fue cancelada.
- PermissionDeniedError: modificación de un informe ajeno o de una plantilla.
"""

from typing import List, Optional, Sequence, Tuple


class InformeError(Exception):
    """Base de todos los errores del motor de informes"""


class ValidationError(InformeError):
    """Definición de informe inválida"""

    def __init__(self, errors: Sequence[Tuple[str, str]]):
        self.errors: List[Tuple[str, str]] = list(errors)
        detail = "; ".join(f"{path}: {message}" for path, message in self.errors)
        super().__init__(f"Definición de informe inválida: {detail}")

    @property
    def paths(self) -> List[str]:
        return [path for path, _ in self.errors]

    def as_list(self) -> List[dict]:
        return [{"path": path, "message": message} for path, message in self.errors]


class NotFoundError(InformeError):
    """Informe no encontrado para la empresa"""

    def __init__(self, informe_id=None, message: str = "Informe no encontrado"):
        self.informe_id = informe_id
        super().__init__(message)


class ExecutionError(InformeError):
    """Fallo de la fuente de datos"""

    def __init__(self, message: str, attempts: int = 1, cause: Optional[BaseException] = None):
        self.attempts = attempts
        self.cause = cause
        super().__init__(message)


class ExecutionTimeoutError(InformeError):
    """Tiempo de ejecución agotado o ejecución cancelada"""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        message = "La ejecución del informe superó el tiempo máximo"
        if timeout is not None:
            message = f"{message} ({timeout:g}s)"
        super().__init__(message)


class PermissionDeniedError(InformeError):
    """El usuario no es propietario del informe"""

    def __init__(self, message: str = "Solo el propietario puede modificar este informe"):
        super().__init__(message)
