"""
Book Service — 書店 EC バックエンド

カタログ検索、倉庫在庫管理、注文作成・出荷処理をひとつのサービスで提供する。
"""

__version__ = "0.1.0"
