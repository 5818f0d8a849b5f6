import logging
import os
import time
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import ValidationError
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError

# Importaciones locales
from account_service import __version__, schemas
from account_service.db import Store, build_store
from account_service.errors import (
    AccountError,
    ErrorKind,
    account_error_handler,
    error_response,
    store_failure,
    validation_error_handler,
)
from account_service.models import users
from account_service.utils import dummy_verify, get_password_hash, verify_password

# Carga variables de entorno
load_dotenv()

# Configura logger
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

# --- Métricas Prometheus ---
# Se registran una sola vez por proceso, aunque create_app se llame varias veces.
REQUEST_COUNT = Counter(
    "casino_requests_total",
    "Total requests processed by Casino Account Service",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "casino_request_latency_seconds",
    "Request latency in seconds for Casino Account Service",
    ["endpoint"]
)


def get_store(request: Request) -> Store:
    """Dependencia de FastAPI: el store creado en el arranque de la app."""
    return request.app.state.store


def json_body(model):
    """
    Dependencia que lee el cuerpo JSON como `model`.

    Sin cuerpo, o con un Content-Type que no es JSON, devuelve el modelo vacío
    para que el handler responda con su propio mensaje de campos requeridos.
    """
    async def dependency(request: Request):
        raw = await request.body()
        if not raw or "json" not in request.headers.get("content-type", ""):
            return model()
        try:
            data = await request.json()
        except ValueError:
            logger.warning(f"Cuerpo JSON mal formado en {request.method} {request.url.path}")
            raise AccountError(ErrorKind.VALIDATION)
        if not isinstance(data, dict):
            return model()
        try:
            return model.model_validate(data)
        except ValidationError as e:
            fields = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
            logger.warning(f"Petición inválida en {request.method} {request.url.path}: {fields}")
            raise AccountError(ErrorKind.VALIDATION)
    return dependency


def create_app(store: Store = None) -> FastAPI:
    """
    Construye la aplicación. Si no se pasa un store, se crea desde el entorno al arrancar.
    El arranque falla (y el proceso termina) si el almacén no es alcanzable.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.store = store or build_store()
        try:
            await run_in_threadpool(app.state.store.init_schema)
        except Exception:
            logger.critical(f"No se pudo inicializar el almacén {app.state.store!r}. Abortando arranque.")
            raise
        logger.warning("Los endpoints de saldo no tienen autenticación: cualquier cliente puede leer o modificar cualquier saldo.")
        logger.info("Casino Account Service listo.")
        yield
        app.state.store.dispose()
        logger.info("Pool de conexiones liberado.")

    app = FastAPI(
        title="Casino Account Service",
        description="Handles user registration, phone/password login and balance adjustments.",
        version=__version__,
        lifespan=lifespan,
    )

    # --- Configuración de CORS (permisiva) ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AccountError, account_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # --- Middleware para Métricas ---
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start_time = time.time()
        response = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(f"Unhandled exception during request processing: {exc}", exc_info=True)
            response = error_response(ErrorKind.INTERNAL)
        finally:
            latency = time.time() - start_time
            # Plantilla de la ruta (p.ej. /api/user/{user_id}/balance), no la URL concreta
            route = request.scope.get("route")
            endpoint = getattr(route, "path", "unmatched")
            final_status_code = getattr(response, "status_code", 500)

            REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status_code=final_status_code
            ).inc()

        return response

    # --- Endpoints de Salud y Métricas ---
    @app.get("/", tags=["Monitoring"])
    def root():
        return {"status": "Server is running", "message": "Casino API is live"}

    @app.get("/api/health", tags=["Monitoring"])
    def health_check():
        """Performs a basic health check of the service."""
        return {"status": "ok"}

    @app.get("/metrics", tags=["Monitoring"])
    def metrics():
        """Exposes application metrics for Prometheus."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # --- Endpoints de API ---

    @app.post("/api/signup", response_model=schemas.MessageResponse, tags=["Authentication"])
    async def signup(
        payload: schemas.SignupRequest = Depends(json_body(schemas.SignupRequest)),
        store: Store = Depends(get_store),
    ):
        """
        Registers a new user. The password is stored only as a bcrypt hash
        and the balance starts at 0.
        """
        if not payload.is_complete():
            raise AccountError(ErrorKind.VALIDATION, "All fields required")

        logger.info(f"Signup attempt for username: {payload.username}")
        hashed_password = await run_in_threadpool(get_password_hash, payload.password)

        try:
            await store.execute(
                insert(users).values(
                    first_name=payload.firstName,
                    last_name=payload.lastName,
                    username=payload.username,
                    email=payload.email,
                    phone=payload.phone,
                    password_hash=hashed_password,
                    balance=0,
                )
            )
        except SQLAlchemyError as e:
            raise store_failure(e, "Signup")

        logger.info(f"User created for username: {payload.username}")
        return {"success": True, "message": "Account created successfully"}

    @app.post("/api/login", response_model=schemas.LoginResponse, tags=["Authentication"])
    async def login(
        payload: schemas.LoginRequest = Depends(json_body(schemas.LoginRequest)),
        store: Store = Depends(get_store),
    ):
        """
        Authenticates a user by phone and password.
        Unknown phone and wrong password produce the same message.
        """
        if not payload.phone or not payload.password:
            raise AccountError(ErrorKind.VALIDATION, "Phone and password required")

        try:
            rows = await store.execute(
                select(
                    users.c.id,
                    users.c.username,
                    users.c.balance,
                    users.c.email,
                    users.c.phone,
                    users.c.password_hash.label("password_hash"),
                ).where(users.c.phone == payload.phone)
            )
        except SQLAlchemyError as e:
            raise store_failure(e, "Login")

        if not rows:
            await run_in_threadpool(dummy_verify)
            logger.warning("Login failed: unknown phone.")
            raise AccountError(ErrorKind.CREDENTIALS)

        user = rows[0]
        match = await run_in_threadpool(verify_password, payload.password, user["password_hash"])
        if not match:
            logger.warning(f"Login failed for user_id: {user['id']}")
            raise AccountError(ErrorKind.CREDENTIALS)

        logger.info(f"Login successful for user_id: {user['id']}")
        public_user = {key: value for key, value in user.items() if key != "password_hash"}
        return {"success": True, "user": public_user}

    @app.get("/api/user/{user_id}/balance", response_model=schemas.BalanceResponse, tags=["Balance"])
    async def get_balance(user_id: int, store: Store = Depends(get_store)):
        """Returns the current balance of a user. No authentication is performed."""
        try:
            rows = await store.execute(select(users.c.balance).where(users.c.id == user_id))
        except SQLAlchemyError as e:
            raise store_failure(e, "Balance")

        if not rows:
            raise AccountError(ErrorKind.NOT_FOUND)
        return {"success": True, "balance": rows[0]["balance"]}

    @app.post("/api/user/{user_id}/balance", response_model=schemas.BalanceResponse, tags=["Balance"])
    async def adjust_balance(
        user_id: int,
        payload: schemas.BalanceAdjustment = Depends(json_body(schemas.BalanceAdjustment)),
        store: Store = Depends(get_store),
    ):
        """
        Adds a signed amount to the balance in a single UPDATE and returns the re-read value.
        There is no floor at zero and no authentication.
        """
        if payload.amount is None:
            raise AccountError(ErrorKind.VALIDATION, "Amount required")

        try:
            # Actualización relativa: la atomicidad la da el propio UPDATE del motor
            await store.execute(
                update(users)
                .where(users.c.id == user_id)
                .values(balance=users.c.balance + payload.amount)
            )
            rows = await store.execute(select(users.c.balance).where(users.c.id == user_id))
        except SQLAlchemyError as e:
            raise store_failure(e, "Update balance")

        if not rows:
            raise AccountError(ErrorKind.NOT_FOUND)

        logger.info(f"Balance of user_id {user_id} adjusted by {payload.amount}")
        return {"success": True, "balance": rows[0]["balance"]}

    return app


app = create_app()


def run():
    """Arranca el servidor HTTP (uvicorn) en HOST:PORT."""
    uvicorn.run(
        "account_service.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 3000)),
    )


if __name__ == "__main__":
    run()
