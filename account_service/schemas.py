"""Modelos Pydantic (schemas) para los datos de entrada/salida del servicio de cuentas."""

from typing import Optional

from pydantic import BaseModel, ConfigDict

# --- Schemas de entrada ---
# Los campos son opcionales: la ausencia se responde con un mensaje propio
# ({"success": false}) en lugar del 422 de FastAPI.


class SignupRequest(BaseModel):
    """Datos de registro. Texto opaco, sin validación de formato ni longitud."""
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None

    # Permite teléfonos enviados como número en el JSON
    model_config = ConfigDict(coerce_numbers_to_str=True)

    def is_complete(self) -> bool:
        return all([self.firstName, self.lastName, self.username, self.email, self.phone, self.password])


class LoginRequest(BaseModel):
    """Credenciales de login: el teléfono es el identificador."""
    phone: Optional[str] = None
    password: Optional[str] = None

    model_config = ConfigDict(coerce_numbers_to_str=True)


class BalanceAdjustment(BaseModel):
    """Delta con signo a sumar al saldo actual."""
    amount: Optional[int] = None


# --- Schemas de salida ---

class MessageResponse(BaseModel):
    success: bool = True
    message: str


class UserPublic(BaseModel):
    """Proyección pública del usuario (excluye el hash de la contraseña)."""
    id: int
    username: str
    balance: int
    email: str
    phone: str


class LoginResponse(BaseModel):
    success: bool = True
    user: UserPublic


class BalanceResponse(BaseModel):
    success: bool = True
    balance: int
