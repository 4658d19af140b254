import sqlalchemy
from google.cloud.sql.connector import Connector
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings

# Cloud SQL Connector（INSTANCE_CONNECTION_NAME がある時だけ初期化）
connector = None


def getconnection():
    """
    Cloud SQL への接続を確立する関数.
    config.py (settings) の値を使用します。
    """
    global connector
    if connector is None:
        connector = Connector()

    conn = connector.connect(
        settings.DB_INSTANCE,
        "pymysql",
        user=settings.DB_USER,
        password=settings.DB_PASSWORD,
        db=settings.DB_NAME,
        charset="utf8mb4",
    )
    return conn


def create_db_engine():
    """設定に応じてエンジンを作成（Cloud SQL or DATABASE_URL）"""
    if settings.DB_INSTANCE:
        return sqlalchemy.create_engine(
            "mysql+pymysql://",
            creator=getconnection,
            pool_pre_ping=True,
        )

    kwargs = {"pool_pre_ping": True}
    if settings.DATABASE_URL.startswith("sqlite"):
        # FastAPI のスレッドプールから同じDBを触るため
        kwargs["connect_args"] = {"check_same_thread": False}
    return sqlalchemy.create_engine(settings.DATABASE_URL, **kwargs)


# エンジンの作成
# ローカル実行時など、接続情報がない場合にクラッシュしないよう保護
try:
    engine = create_db_engine()
except Exception as e:
    print(f"⚠️ Could not create database engine. {e}")
    engine = None

# セッション作成
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
