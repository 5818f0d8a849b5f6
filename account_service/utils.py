"""Funciones de utilidad para el servicio de cuentas: hash y verificación de contraseñas."""

import os
import logging

from passlib.context import CryptContext
from dotenv import load_dotenv

# Carga variables de entorno desde .env
load_dotenv()

# Configuración del logger
logger = logging.getLogger(__name__)

# --- Configuración de Seguridad ---
DEFAULT_BCRYPT_ROUNDS = 12

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS))
if BCRYPT_ROUNDS < DEFAULT_BCRYPT_ROUNDS:
    logger.warning(f"BCRYPT_ROUNDS={BCRYPT_ROUNDS} es menor que el valor recomendado ({DEFAULT_BCRYPT_ROUNDS}). Usar solo en pruebas.")

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifica una contraseña plana contra un hash almacenado."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Genera el hash de una contraseña plana usando bcrypt (sal aleatoria)."""
    return pwd_context.hash(password)


def dummy_verify() -> bool:
    """
    Consume el mismo tiempo que una verificación real.
    Se usa cuando el teléfono no existe, para no distinguirlo de una contraseña incorrecta.
    """
    pwd_context.dummy_verify()
    return False
