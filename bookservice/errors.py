"""
Book Service — エラー分類

呼び出し側がエラーの種類を区別できるよう、すべての業務エラーは
BookstoreError のサブクラスとして送出する。HTTP 層はこれを
{"error": {"kind": ..., "message": ...}} 形式に変換する。

  kind                     HTTP   状態変更
  ───────────────────────  ─────  ──────────────
  InvalidRequest           400    なし
  NotFound                 404    なし
  Conflict                 400    なし
  InsufficientInventory    400    なし
  FulfillmentRaceDetected  500    ロールバック済み
  StoreUnavailable         503    ロールバック済み
  NotImplemented           501    なし
"""


class BookstoreError(Exception):
    kind = "BookstoreError"
    status_code = 500

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, **self.details}


class InvalidRequest(BookstoreError):
    """入力が不正（空の注文、0 以下の数量、ID 形式の誤りなど）"""
    kind = "InvalidRequest"
    status_code = 400


class NotFound(BookstoreError):
    kind = "NotFound"
    status_code = 404


class Conflict(BookstoreError):
    """注文が pending 状態でない（出荷済み）"""
    kind = "Conflict"
    status_code = 400


class InsufficientInventory(BookstoreError):
    """検証フェーズで在庫不足を検出した"""
    kind = "InsufficientInventory"
    status_code = 400


class FulfillmentRaceDetected(BookstoreError):
    """検証は通ったが、確定フェーズの減算で在庫不足になった（並行出荷との競合）"""
    kind = "FulfillmentRaceDetected"
    status_code = 500


class StoreUnavailable(BookstoreError):
    """データベースに到達できない、またはタイムアウトした"""
    kind = "StoreUnavailable"
    status_code = 503


class NotImplementedInBackend(BookstoreError):
    kind = "NotImplemented"
    status_code = 501
