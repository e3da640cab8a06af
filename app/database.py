# app/database.py

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config.settings import DATABASE_URL

# SQLite precisa de check_same_thread=False para funcionar com o FastAPI
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# Criação do engine de conexão com o banco
engine = create_engine(DATABASE_URL, connect_args=connect_args)

# Criação da fábrica de sessões
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base para os modelos ORM
Base = declarative_base()

# Função utilitária para obter uma sessão do banco (para usar nas rotas/services)
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
