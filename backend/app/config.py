import os
import sys
from dotenv import load_dotenv

load_dotenv()

# アプリケーションバージョン
VERSION = "1.2.0"

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./rewards.db")
# 本番環境では必ず環境変数 DEBUG=false を設定すること
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
# 本番環境では環境変数 CORS_ORIGINS にドメインを指定すること（例: https://example.com）
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = _cors_env.split(",") if _cors_env else []

# JWT認証設定
_DEFAULT_SECRET_KEY = "change-this-secret-key-in-production-32chars"
SECRET_KEY = os.getenv("SECRET_KEY", _DEFAULT_SECRET_KEY)

# 本番環境でデフォルトキーのまま起動しようとした場合は起動を拒否
if not DEBUG and SECRET_KEY == _DEFAULT_SECRET_KEY:
    print(
        "[SECURITY ERROR] 本番環境 (DEBUG=false) でデフォルトの SECRET_KEY が使用されています。"
        "環境変数 SECRET_KEY に安全なランダム文字列を設定してください。",
        file=sys.stderr,
    )
    sys.exit(1)

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = 8

# 管理者アカウント（レコードストアには保存されない固定ID）
ADMIN_ID = os.getenv("ADMIN_ID", "admin")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Szabó Dávid")
ADMIN_ROLE = "Admin"
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "EsztergomiSavinko")

# 無操作による自動ログアウトまでの秒数（3分）
INACTIVITY_TIMEOUT_SECONDS = int(os.getenv("INACTIVITY_TIMEOUT_SECONDS", "180"))

# クライアント側セッションの保存先
SESSION_STORAGE_PATH = os.getenv("SESSION_STORAGE_PATH", os.path.expanduser("~/.reward-session.json"))

# レコードストア接続のリトライ回数
STORE_RETRY_ATTEMPTS = int(os.getenv("STORE_RETRY_ATTEMPTS", "3"))

# 監査ログをバックグラウンドスレッドで書き込むか
AUDIT_LOG_ASYNC = os.getenv("AUDIT_LOG_ASYNC", "true").lower() == "true"
