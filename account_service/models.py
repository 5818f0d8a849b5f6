"""Define el modelo de la tabla 'users' usando SQLAlchemy ORM."""

from sqlalchemy import Column, Integer, String

# Importación absoluta desde el módulo db.py del mismo paquete
from account_service.db import Base


class User(Base):
    """
    Modelo SQLAlchemy que representa la tabla 'users' en la base de datos.
    Almacena los datos de registro, el hash de la contraseña y el saldo del usuario.
    """
    __tablename__ = "users"

    # Clave primaria autoincremental
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Nombres de columna en camelCase; la clave Python es snake_case
    first_name = Column("firstName", String(100), key="first_name", nullable=False)
    last_name = Column("lastName", String(100), key="last_name", nullable=False)

    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False)

    # Número de celular, usado como identificador único para el login
    phone = Column(String(20), unique=True, nullable=False)

    # Hash bcrypt de la contraseña. Nunca se guarda en texto plano.
    password_hash = Column("password", String(255), key="password_hash", nullable=False)

    # Saldo en unidades enteras; solo cambia por actualización relativa
    balance = Column(Integer, nullable=False, default=0, server_default="0")


users = User.__table__
