"""
Inventory Service — エラー定義

各例外は HTTP ステータスを持ち、main.py のハンドラで
{"error": message} の JSON に変換される。
"""


class InventoryError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(InventoryError):
    """リクエストの必須項目が欠けている、または不正"""
    status_code = 400


class NotFound(InventoryError):
    """参照された在庫行が存在しない"""
    status_code = 404


class StoreUnavailable(InventoryError):
    """データベースに接続できない"""
    status_code = 500


class StoreQueryFailed(InventoryError):
    """データベースがクエリを拒否した"""
    status_code = 500
