import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from app.config import cloudinary_config  # noqa: F401 (configura o Cloudinary)
from app.config.settings import LOG_LEVEL
from app.database import Base, engine
from app.exceptions import SigningBaseException, callable_error_body
# importação das rotas
from app.routers import envelopes
from app.routers import public_signing
from app.routers import maintenance
# importação dos modelos
from app.models.envelope import Envelope
from app.models.audit_record import AuditRecord

logging.basicConfig(level=LOG_LEVEL)

app = FastAPI(title="SafeHaul e-Sign")

app.include_router(envelopes.router)
app.include_router(public_signing.router)
app.include_router(maintenance.router)

# Erros das funções públicas saem no formato callable, sem detalhes internos
@app.exception_handler(SigningBaseException)
async def signing_exception_handler(request: Request, exc: SigningBaseException):
    return JSONResponse(status_code=exc.http_status, content=callable_error_body(exc))

# Criar tabelas (somente para fase inicial, depois migrar para Alembic)
Base.metadata.create_all(bind=engine)

@app.get("/")
def home():
    return {"message": "e-Sign API is running"}
