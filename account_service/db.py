"""Configuración del almacén (store) relacional usando SQLAlchemy.

Un único `Store` con dos backends intercambiables: MySQL (PyMySQL) y
PostgreSQL (psycopg2). Cualquier otra URL de SQLAlchemy usa el `Store` genérico.
"""

import os
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, exc
from sqlalchemy.engine import URL, make_url
from sqlalchemy.orm import declarative_base
from fastapi.concurrency import run_in_threadpool
from dotenv import load_dotenv

# Configuración del logger
logger = logging.getLogger(__name__)

# Carga variables de entorno desde el archivo .env
load_dotenv()

# Tamaño fijo del pool de conexiones
POOL_SIZE = 10

# Crea una clase base (Base) para los modelos declarativos:
# el modelo User hereda de esta clase.
Base = declarative_base()


class StoreUnavailableError(RuntimeError):
    """El almacén no responde al arrancar el proceso."""


class Store:
    """
    Cliente del almacén relacional: un engine de SQLAlchemy con su pool de conexiones.

    Se construye explícitamente y se inyecta en los handlers (no hay singleton global).
    """

    backend = "sql"

    def __init__(self, url, **engine_kwargs):
        self.url = make_url(url)
        # pool_pre_ping=True ayuda a manejar conexiones inactivas en el pool.
        engine_kwargs.setdefault("pool_pre_ping", True)
        self.engine = create_engine(self.url, **engine_kwargs)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.url.render_as_string(hide_password=True)}>"

    def init_schema(self) -> None:
        """
        Verifica la conexión y crea la tabla 'users' si no existe.
        Lanza StoreUnavailableError si el almacén no es alcanzable.
        """
        # Importación local para registrar el modelo en Base.metadata
        from account_service import models  # noqa: F401

        try:
            with self.engine.connect():
                logger.info(f"Conexión al almacén establecida: {self.url.host or self.url.database} ({self.backend})")
            Base.metadata.create_all(bind=self.engine)
            logger.info("Tabla 'users' verificada/creada.")
        except exc.SQLAlchemyError as e:
            logger.error(f"Error al conectar con el almacén: {e}", exc_info=True)
            raise StoreUnavailableError(str(e)) from e

    def execute_blocking(self, statement, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Ejecuta una sentencia en su propia transacción y devuelve las filas como dicts."""
        with self.engine.begin() as connection:
            result = connection.execute(statement, params or {})
            if not result.returns_rows:
                return []
            return [dict(row) for row in result.mappings().all()]

    async def execute(self, statement, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Versión asíncrona de execute_blocking.

        El driver es bloqueante, así que la llamada corre en el threadpool de Starlette
        y el event loop puede atender otras peticiones mientras tanto.
        """
        return await run_in_threadpool(self.execute_blocking, statement, params)

    def dispose(self) -> None:
        """Libera las conexiones del pool."""
        self.engine.dispose()


class MySQLStore(Store):
    """Backend para motores compatibles con MySQL (driver PyMySQL)."""

    backend = "mysql"
    default_port = 3306

    def __init__(self, url, tls: bool = False, **engine_kwargs):
        engine_kwargs.setdefault("pool_size", POOL_SIZE)
        engine_kwargs.setdefault("max_overflow", 0)
        engine_kwargs.setdefault("connect_args", connect_args_for(self.backend, tls))
        super().__init__(url, **engine_kwargs)


class PostgresStore(Store):
    """Backend para PostgreSQL (driver psycopg2)."""

    backend = "postgresql"
    default_port = 5432

    def __init__(self, url, tls: bool = False, **engine_kwargs):
        engine_kwargs.setdefault("pool_size", POOL_SIZE)
        engine_kwargs.setdefault("max_overflow", 0)
        engine_kwargs.setdefault("connect_args", connect_args_for(self.backend, tls))
        super().__init__(normalize_postgres_url(url), **engine_kwargs)


BACKENDS = {
    MySQLStore.backend: MySQLStore,
    PostgresStore.backend: PostgresStore,
}


def connect_args_for(backend: str, tls: bool) -> Dict[str, Any]:
    """
    Argumentos de conexión del driver. Con TLS activo la conexión va cifrada
    pero sin verificar el certificado del servidor.
    """
    if not tls:
        return {}
    if backend == MySQLStore.backend:
        return {"ssl": {"check_hostname": False}}
    if backend == PostgresStore.backend:
        return {"sslmode": "require"}
    return {}


def normalize_postgres_url(url) -> URL:
    """Acepta 'postgres://' y 'postgresql://' y fuerza el driver psycopg2."""
    if isinstance(url, str) and url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return make_url(url).set(drivername="postgresql+psycopg2")


def build_url(backend: str, host: str, port: Optional[int], user: str, password: str, database: str) -> URL:
    """Construye la URL a partir de las partes, escapando caracteres como '@' en la contraseña."""
    drivername = "mysql+pymysql" if backend == MySQLStore.backend else "postgresql+psycopg2"
    return URL.create(
        drivername,
        username=user,
        password=password,
        host=host,
        port=port,
        database=database,
    )


def build_store() -> Store:
    """
    Construye el store a partir de las variables de entorno.

    DATABASE_URL tiene prioridad sobre DB_HOST/DB_USER/DB_PASSWORD/DB_NAME/DB_PORT.
    ENVIRONMENT=production activa TLS en la conexión.
    """
    tls = os.getenv("ENVIRONMENT", "development").lower() == "production"
    database_url = os.getenv("DATABASE_URL")

    if database_url:
        scheme = database_url.split(":", 1)[0].lower()
        if scheme.startswith("postgres"):
            return PostgresStore(database_url, tls=tls)
        if scheme.startswith("mysql"):
            url = make_url(database_url).set(drivername="mysql+pymysql")
            return MySQLStore(url, tls=tls)
        return Store(database_url)

    backend = os.getenv("DB_ENGINE", MySQLStore.backend).lower()
    if backend == "postgres":
        backend = PostgresStore.backend
    if backend not in BACKENDS:
        raise EnvironmentError(f"DB_ENGINE no soportado: {backend}. Use 'mysql' o 'postgresql'.")

    store_cls = BACKENDS[backend]
    port = os.getenv("DB_PORT")
    url = build_url(
        backend,
        host=os.getenv("DB_HOST", "localhost"),
        port=int(port) if port else store_cls.default_port,
        user=os.getenv("DB_USER", "casino"),
        password=os.getenv("DB_PASSWORD", os.getenv("DB_PASS", "")),
        database=os.getenv("DB_NAME", "casino"),
    )
    return store_cls(url, tls=tls)
