import logging
from logging.handlers import RotatingFileHandler

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hidrocontrole.api import comandos, controle_ec, dispositivos, leituras, regras, sessoes
from hidrocontrole.core.config import settings
from hidrocontrole.core.erros import ErroHidro
from hidrocontrole.db.init_db import init_db
from hidrocontrole.services.fonte_banco import FonteBanco
from hidrocontrole.services.mqtt_ingestor import start_mqtt_ingestor, stop_mqtt_ingestor
from hidrocontrole.services.reconciliacao import RegistroSessoes


def configurar_logging():
    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(name)s - %(message)s')

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.LOG_LEVEL.upper())

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.LOG_FILE:
        file_handler = RotatingFileHandler(settings.LOG_FILE, maxBytes=1024 * 1024, backupCount=3)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # paho é verboso demais em DEBUG
    logging.getLogger("paho").setLevel(logging.WARNING)


configurar_logging()
logger = logging.getLogger("hidrocontrole")

app = FastAPI(title="Hidrocontrole")

origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5500",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.sessoes = RegistroSessoes(FonteBanco)


@app.exception_handler(ErroHidro)
async def erro_hidro_handler(request: Request, exc: ErroHidro):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.mensagem} ({exc.codigo})")
    return JSONResponse(status_code=exc.status_code, content=exc.como_dict())


@app.exception_handler(RequestValidationError)
async def validacao_request_handler(request: Request, exc: RequestValidationError):
    erros = exc.errors()
    campo = ".".join(str(p) for p in erros[0]["loc"][1:]) if erros else None
    return JSONResponse(
        status_code=400,
        content={
            "error": "Requisição inválida",
            "codigo": "validacao",
            "campo": campo,
            "details": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in erros],
        },
    )


app.include_router(dispositivos.router)
app.include_router(comandos.router)
app.include_router(regras.router)
app.include_router(controle_ec.router)
app.include_router(leituras.router)
app.include_router(sessoes.router)


@app.on_event("startup")
def on_startup():
    init_db()
    if settings.MQTT_ENABLED:
        start_mqtt_ingestor()
    else:
        logger.info("MQTT desabilitado (MQTT_ENABLED=false)")


@app.on_event("shutdown")
async def on_shutdown():
    await app.state.sessoes.parar_todas()
    stop_mqtt_ingestor()
