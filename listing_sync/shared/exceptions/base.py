"""
Excepción base para todas las excepciones personalizadas del servicio de sincronización.
"""
from typing import Optional, Dict, Any


class AppException(Exception):
    """
    Excepción base de la aplicación.

    Todas las excepciones propias heredan de esta clase para que la capa HTTP
    las traduzca a una respuesta JSON uniforme (error, message, details).
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            message: Mensaje de error descriptivo
            status_code: Código de estado HTTP sugerido
            error_code: Código de error estable (para clientes)
            details: Datos adicionales (claves, tablas, etapa)
        """
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Representación serializable para respuestas y logs."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }
