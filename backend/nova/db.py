import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./nova.db")
isSqlite = DATABASE_URL.startswith("sqlite")

# SQLite はテスト用。TestClient のスレッドから同じ接続を使えるようにする
connectArgs = {"check_same_thread": False} if isSqlite else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connectArgs)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

if isSqlite:
    @event.listens_for(engine, "connect")
    def _enableSqliteForeignKeys(dbapiConnection, connectionRecord):
        # ON DELETE CASCADE を SQLite でも効かせる
        cursor = dbapiConnection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

class Base(DeclarativeBase):
    pass


def getDb():
    """目的: リクエスト単位でDBセッションを払い出し、終了時に必ず閉じる。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
