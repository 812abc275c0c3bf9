from fastapi import Request

from hidrocontrole.db.session import SessionLocal
from hidrocontrole.services.reconciliacao import RegistroSessoes


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_registro_sessoes(request: Request) -> RegistroSessoes:
    return request.app.state.sessoes
