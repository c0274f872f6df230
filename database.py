"""
=============================================================================
DATABASE.PY — Configuración de la Base de Datos
=============================================================================
Conexión con el almacén de Questline.

En DESARROLLO: SQLite (un archivo .db local)
En PRODUCCIÓN: PostgreSQL (con el driver psycopg v3)

¿Cuál se usa?
→ Si existe la variable de entorno DATABASE_URL, manda ella.
→ Si no, se crea un archivo SQLite local junto a la app.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

# ─────────────────────────────────────────────────────────────────────────────
# CONEXIÓN
# ─────────────────────────────────────────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./questline.db")

# Los proveedores de hosting dan URLs "postgres://", SQLAlchemy quiere el
# driver explícito: "postgresql+psycopg://"
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)


def make_engine(url: str):
    """
    Crea un engine para la URL dada.

    SQLite necesita check_same_thread=False porque FastAPI sirve los
    endpoints síncronos desde un pool de hilos.
    """
    engine_args = {}
    if url.startswith("sqlite"):
        engine_args["connect_args"] = {"check_same_thread": False}
    return create_engine(url, echo=False, **engine_args)


# ─────────────────────────────────────────────────────────────────────────────
# ENGINE + SESIÓN
# ─────────────────────────────────────────────────────────────────────────────
# expire_on_commit=False → los objetos siguen legibles tras el commit, la
# aprobación devuelve valores justo después de confirmar.

engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)

# ─────────────────────────────────────────────────────────────────────────────
# BASE (clase padre de todos los modelos)
# ─────────────────────────────────────────────────────────────────────────────

Base = declarative_base()


def get_db():
    """
    Abre una sesión y la cierra al terminar.

    Se usa como dependencia de FastAPI:
      @app.get("/algo")
      def endpoint(db: Session = Depends(get_db)):
          ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """
    Crea todas las tablas que aún no existen.
    Se llama una vez al arrancar (y desde los fixtures de test con su propio engine).
    """
    # hay que importar models para que sus tablas queden en Base.metadata
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
