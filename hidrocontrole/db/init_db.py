from hidrocontrole.db.base import Base
from hidrocontrole.db.session import engine

# Importações obrigatórias para registro dos modelos no metadata
from hidrocontrole.models import comando, config_ec, dispositivo, estado_rele, leitura, nome_rele, regra  # noqa: F401


def init_db():
    Base.metadata.create_all(bind=engine)


def drop_db():
    Base.metadata.drop_all(bind=engine)
