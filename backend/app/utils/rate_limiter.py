import time
from collections import defaultdict, deque
import threading

class RateLimiter:
    """スライディングウィンドウ方式のレート制限（ブルートフォース対策）"""
    def __init__(self, max_attempts: int = 5, window_seconds: int = 300, clock=time.monotonic):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.clock = clock
        self.attempts = defaultdict(deque)
        self.lock = threading.Lock()

    def _prune(self, identifier: str, now: float):
        window = self.attempts[identifier]
        while window and window[0] <= now - self.window_seconds:
            window.popleft()
        return window

    def is_allowed(self, identifier: str) -> bool:
        """試行を記録し、上限内なら True"""
        now = self.clock()
        with self.lock:
            window = self._prune(identifier, now)
            if len(window) >= self.max_attempts:
                return False
            window.append(now)
            return True

    def get_remaining_time(self, identifier: str) -> int:
        """ブロックが解除されるまでの秒数"""
        now = self.clock()
        with self.lock:
            window = self._prune(identifier, now)
            if len(window) < self.max_attempts:
                return 0
            return max(0, int(window[0] + self.window_seconds - now))

    def reset(self, identifier: str = None):
        """記録を消去（identifier 省略時はすべて）"""
        with self.lock:
            if identifier is None:
                self.attempts.clear()
            else:
                self.attempts.pop(identifier, None)

# グローバルレート制限インスタンス
login_limiter = RateLimiter(max_attempts=5, window_seconds=300)  # 5分間に5回まで
api_limiter = RateLimiter(max_attempts=100, window_seconds=60)  # 1分間に100回まで
