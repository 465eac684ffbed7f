"""
ドメイン例外

サービス層が送出し、main.py の例外ハンドラーが {"detail": ...} 形式の
JSONレスポンスに変換する。detail はユーザー向けのハンガリー語メッセージ。
"""


class RewardError(Exception):
    """アプリケーション例外の基底クラス"""

    error_code = "REWARD_ERROR"
    status_code = 500
    default_message = "Váratlan hiba történt"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# --- NotFound -------------------------------------------------------------

class NotFound(RewardError):
    error_code = "NOT_FOUND"
    status_code = 404
    default_message = "Nem található"


class EmployeeNotFound(NotFound):
    default_message = "Alkalmazott nem található"


class CardNotFound(NotFound):
    default_message = "Kártya nem található"


class ManagerNotFound(NotFound):
    default_message = "Vezető nem található"


# --- Conflict -------------------------------------------------------------

class Conflict(RewardError):
    error_code = "CONFLICT"
    status_code = 409
    default_message = "Ütközés"


class CardIdInUse(Conflict):
    default_message = "A kártya azonosító már használatban van"


class AlreadyRedeemed(Conflict):
    default_message = "A kártya már be lett váltva"


# --- Forbidden ------------------------------------------------------------

class Forbidden(RewardError):
    error_code = "FORBIDDEN"
    status_code = 403
    default_message = "Nincs jogosultság"


class EmployeeLocked(Forbidden):
    default_message = "Ez az alkalmazott zárolva van, nem kaphat jutalmat"


class InsufficientApprovalRole(Forbidden):
    default_message = "Csak Műszakvezető vagy Admin hagyhatja jóvá a kártya beváltását"


class ApprovalRequired(Forbidden):
    default_message = "Vezetői jóváhagyás szükséges"


class PermissionDenied(Forbidden):
    default_message = "Nincs jogosultsága ehhez a művelethez"


# --- 認証 / 期限切れ / 上流障害 -------------------------------------------

class InvalidCredential(RewardError):
    error_code = "INVALID_CREDENTIAL"
    status_code = 401
    default_message = "Érvénytelen jelszó"


class InvalidIdentity(InvalidCredential):
    default_message = "Érvénytelen vezetői azonosító"


class Expired(RewardError):
    error_code = "EXPIRED"
    status_code = 410
    default_message = "A kártya lejárt"


class UpstreamUnavailable(RewardError):
    error_code = "UPSTREAM_UNAVAILABLE"
    status_code = 503
    default_message = "Az adattár jelenleg nem érhető el"
