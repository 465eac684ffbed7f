#!/usr/bin/env python
"""キオスク端末用のセッションクライアント

バーコードスキャナー（キーボード入力）から1行ずつ読み込み、
マネージャーカードのスキャンでログインする。入力があるたびに
無操作タイマーをリセットし、3分間入力がなければ自動ログアウトする。

    python kiosk.py --api http://127.0.0.1:8000

コマンド: logout / status / quit
"""
import argparse
import logging
import sys

from app.config import SESSION_STORAGE_PATH
from app.exceptions import UpstreamUnavailable
from app.services.manager_directory import HttpManagerDirectory
from app.services.session_manager import ActivitySignal, SessionManager
from app.services.session_storage import FileSessionStorage
from app.utils import qr

logger = logging.getLogger("kiosk")


def build_session(api_url: str, storage_path: str) -> SessionManager:
    directory = HttpManagerDirectory(api_url)
    session = SessionManager(
        directory,
        storage=FileSessionStorage(storage_path),
        on_logout=lambda s: print("Kijelentkezve"),
    )
    session.restore()
    return session


def handle_line(session: SessionManager, line: str) -> bool:
    """1行分の入力を処理する。終了する場合は False"""
    line = line.strip()
    if not line:
        return True
    if line == "quit":
        return False
    if line == "status":
        print(session.snapshot())
        return True
    if line == "logout":
        session.logout()
        return True

    if session.logged_in:
        session.record_activity(ActivitySignal.KEY_DOWN)
        print(f"Beolvasva: {qr.decode_scanned(line)}")
        return True

    scanned = qr.parse_scanned(line)
    if not (scanned.get("name") and scanned.get("role")):
        # 新規作成直後のカードはIDのみ。氏名とロールはAPIから取得する
        try:
            identity = session.directory.lookup(scanned["id"])
        except UpstreamUnavailable:
            logger.warning("Could not look up manager card %s", scanned["id"])
            identity = None
        if identity is None:
            print("Érvénytelen vezetői kártya")
            return True
        scanned = {**scanned, **identity.to_dict()}

    if session.login_with_identity(scanned["id"], scanned["name"], scanned["role"], scanned.get("permissions")):
        print(f"Bejelentkezve: {session.identity.name} ({session.identity.role})")
    else:
        print("Érvénytelen vezetői azonosító")
    return True


def main(argv=None):
    parser = argparse.ArgumentParser(description="Reward card kiosk session client")
    parser.add_argument("--api", default="http://127.0.0.1:8000")
    parser.add_argument("--storage", default=SESSION_STORAGE_PATH)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    session = build_session(args.api, args.storage)
    session.start_ticker()
    if session.logged_in:
        print(f"Munkamenet visszaállítva: {session.identity.name}")
    try:
        for line in sys.stdin:
            if not handle_line(session, line):
                break
    finally:
        session.stop_ticker()


if __name__ == "__main__":
    main()
