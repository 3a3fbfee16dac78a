import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from gymapp.core.config import get_settings
from gymapp.core.exceptions import AuthorizationError
from gymapp.core.tenant import get_tenant_context, get_tenant_db
from gymapp.db.tenant_registry import TenantContext
from gymapp.models.user import User, UserRole

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class UnauthenticatedException(HTTPException):
    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


def decode_token(token: str, secret_key: Optional[str] = None) -> dict:
    """
    Verifica firma y expiración del token. El secreto del tenant (si el panel
    SUPER-ADMIN lo provee) tiene prioridad sobre SECRET_KEY.
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            secret_key or settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedException("El token ha expirado. Iniciá sesión nuevamente.")
    except JWTError as e:
        logger.warning(f"Token inválido: {e}")
        raise UnauthenticatedException("Token inválido.")


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_tenant_db),
) -> User:
    """
    Usuario autenticado del tenant actual. El payload del token lleva el id
    del usuario en la clave ``id``.
    """
    if creds is None:
        raise UnauthenticatedException("No autorizado, no se encontró token.")

    payload = decode_token(creds.credentials, tenant.api_secret_key)
    try:
        user_id = int(payload["id"])
    except (KeyError, TypeError, ValueError):
        raise UnauthenticatedException("Token inválido.")

    user = db.get(User, user_id)
    if user is None:
        raise UnauthenticatedException("El usuario del token ya no existe.")
    if not user.is_active:
        raise AuthorizationError("Tu cuenta está desactivada.")
    return user


def require_roles(*roles: UserRole):
    """
    Dependencia que exige que el usuario actual tenga alguno de los roles indicados.
    """
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_role(*roles):
            logger.warning(
                f"Usuario {current_user.id} sin permisos; requiere alguno de {[r.value for r in roles]}"
            )
            raise AuthorizationError("No tenés permisos para realizar esta acción.")
        return current_user
    return dependency


require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(UserRole.ADMIN, UserRole.PROFESOR)
