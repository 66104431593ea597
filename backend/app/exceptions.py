"""
Erreurs métier levées par les services.
Les handlers de app.main les traduisent en réponses HTTP (400, 401, 403, 404, 409, 500).
"""

from typing import Optional


class DomainError(Exception):
    """Base de toutes les erreurs métier."""

    status_code = 500
    default_message = "Une erreur interne est survenue."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(DomainError):
    """Champ manquant, mal formé ou hors limites."""

    status_code = 400
    default_message = "Données invalides."

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidPostType(ValidationError):
    def __init__(self, value: object):
        from app.models.post import PostType

        allowed = ", ".join(t.value for t in PostType)
        super().__init__(
            f"Type de publication invalide : {value!r}. Valeurs acceptées : {allowed}",
            field="type",
        )


class ForbiddenError(DomainError):
    """Capacité ou visibilité refusée. Le message reste volontairement générique."""

    status_code = 403
    default_message = "Accès refusé."


class NotFoundError(DomainError):
    status_code = 404
    default_message = "Ressource introuvable."


class ConflictError(DomainError):
    status_code = 409
    default_message = "La ressource existe déjà."


class AuthenticationError(DomainError):
    status_code = 401
    default_message = "Authentification requise."


class InvalidToken(AuthenticationError):
    default_message = "Jeton invalide."


class TokenExpired(AuthenticationError):
    default_message = "Jeton expiré."


class InactiveAccount(AuthenticationError):
    default_message = "Compte désactivé."


class UploadError(DomainError):
    """Échec du stockage binaire des pièces jointes."""

    status_code = 500
    default_message = "L'envoi des fichiers a échoué."
