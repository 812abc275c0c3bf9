from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

# Instância base usada pelos modelos
Base = declarative_base()

# JSONB no Postgres, JSON genérico nos demais bancos (SQLite nos testes)
JSONPortavel = JSON().with_variant(JSONB(), "postgresql")
