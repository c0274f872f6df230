"""
=============================================================================
AUTH.PY — Enlaces de acceso y roles
=============================================================================
No hay cuentas de usuario: el mentee y el mentor tienen cada uno un enlace
privado con un token de acceso (MENTEE_TOKEN / MENTOR_TOKEN).

Flujo:
  1. La web envía el token del enlace a POST /auth/token
  2. Si coincide con uno de los tokens configurados, el servidor firma un JWT
     con el rol ("mentee" o "mentor")
  3. La web envía ese JWT como "Authorization: Bearer <jwt>"
  4. Los endpoints leen el rol de ahí; los que son solo del mentor rechazan al mentee
"""

import hmac
import logging
import os
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

logger = logging.getLogger("questline.auth")

# ─────────────────────────────────────────────────────────────────────────────
# CONFIGURACIÓN
# ─────────────────────────────────────────────────────────────────────────────

SECRET_KEY = os.getenv("SECRET_KEY", "questline-dev-secret-key-change-in-production")
# SECRET_KEY → firma los JWT. En producción: un valor largo y aleatorio.

ALGORITHM = "HS256"

ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "30"))

MENTEE_TOKEN = os.getenv("MENTEE_TOKEN", "")
MENTOR_TOKEN = os.getenv("MENTOR_TOKEN", "")
# Un token vacío desactiva ese enlace

ROLE_MENTEE = "mentee"
ROLE_MENTOR = "mentor"


# ─────────────────────────────────────────────────────────────────────────────
# TOKENS DE ACCESO
# ─────────────────────────────────────────────────────────────────────────────

def role_for_access_token(token: str, mentee_token: Optional[str] = None,
                          mentor_token: Optional[str] = None) -> Optional[str]:
    """
    Qué rol da un token de enlace, None si no coincide con ninguno.
    Comparación en tiempo constante, así el tiempo de respuesta no filtra nada.
    """
    mentee_token = MENTEE_TOKEN if mentee_token is None else mentee_token
    mentor_token = MENTOR_TOKEN if mentor_token is None else mentor_token

    if mentor_token and hmac.compare_digest(token.encode(), mentor_token.encode()):
        return ROLE_MENTOR
    if mentee_token and hmac.compare_digest(token.encode(), mentee_token.encode()):
        return ROLE_MENTEE
    return None


# ─────────────────────────────────────────────────────────────────────────────
# JWT
# ─────────────────────────────────────────────────────────────────────────────

def create_access_token(role: str) -> str:
    """
    JWT firmado con:
      - sub: el rol
      - exp: expiración (ACCESS_TOKEN_EXPIRE_DAYS)
    """
    expire = datetime.utcnow() + timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)
    return jwt.encode({"sub": role, "exp": expire}, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Payload de un token válido, None si es inválido o ha caducado"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


# ─────────────────────────────────────────────────────────────────────────────
# DEPENDENCIAS
# ─────────────────────────────────────────────────────────────────────────────

security = HTTPBearer()
# HTTPBearer → lee "Authorization: Bearer <token>"


def get_current_role(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    """
    Rol que lleva el JWT del header Bearer.

      @app.get("/stats")
      def stats(role: str = Depends(get_current_role)):
          ...
    """
    payload = decode_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    role = payload.get("sub")
    if role not in (ROLE_MENTEE, ROLE_MENTOR):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token without a valid role"
        )
    return role


def require_mentor(role: str = Depends(get_current_role)) -> str:
    """Solo el mentor revisa, edita el catálogo y resetea"""
    if role != ROLE_MENTOR:
        logger.warning("🚫 El mentee intentó usar un endpoint del mentor")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Mentor only")
    return role
