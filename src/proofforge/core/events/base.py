"""イベント基底クラスとユーティリティ

BaseEvent, EventPayload, UnknownEvent, generate_event_id, compute_hash の定義。
"""

from __future__ import annotations

import hashlib
import json
import math
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from pathlib import PurePath
from typing import Annotated, Any

import jcs
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, computed_field, field_validator
from ulid import ULID

from .types import EventType

# UnknownEvent の original_data サイズ上限（バイト）
MAX_ORIGINAL_DATA_SIZE = 1024 * 1024  # 1MB


def generate_event_id() -> str:
    """イベントIDを生成 (ULID形式)

    チャレンジ・定義・保留定義のIDにも同じ形式を使う。
    """
    return str(ULID())


def utc_now() -> datetime:
    return datetime.now(UTC)


# JCSが直接扱えるプリミティブ型
_JCS_PRIMITIVES = (str, int, bool, type(None))


def serialize_value(value: Any) -> Any:
    """JCS/JSON シリアライズ用に値を変換

    サポート外の型が渡された場合はTypeErrorを送出し、
    ハッシュ整合性の破綻を未然に防ぐ。

    Raises:
        TypeError: JCS互換に変換できない型が含まれる場合
        ValueError: float('inf') / float('nan') が含まれる場合
    """
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, _JCS_PRIMITIVES):
        return value
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"JCS非互換の浮動小数点値: {value} (inf/nanはJSON仕様外です)")
        return value
    elif isinstance(value, (datetime, date)):
        return value.isoformat()
    elif isinstance(value, timedelta):
        return value.total_seconds()
    elif isinstance(value, PurePath):
        return str(value)
    elif isinstance(value, BaseModel):
        return serialize_value(value.model_dump())
    elif isinstance(value, dict):
        return {str(k): serialize_value(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    elif isinstance(value, (set, frozenset)):
        return sorted(serialize_value(v) for v in value)
    else:
        raise TypeError(
            f"JCS互換に変換できない型です: {type(value).__name__} (値: {value!r}). "
            "payloadにはJCS互換のプリミティブ型のみを使用してください。"
        )


def compute_hash(data: dict[str, Any]) -> str:
    """JCS正規化JSONのSHA-256ハッシュを計算"""
    data_for_hash = {k: v for k, v in data.items() if k != "hash"}
    data_for_hash = serialize_value(data_for_hash)
    canonical = jcs.canonicalize(data_for_hash)
    return hashlib.sha256(canonical).hexdigest()


def _ensure_utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# タイムゾーンなしの時刻はUTCとして扱う
UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class EventPayload(BaseModel):
    """イベントペイロード基底クラス

    新しいバージョンが追加したフィールドは無視する（前方互換性）。
    リプレイ時に「現在時刻」を参照しないよう、必要な時刻は全てペイロードに含める。
    """

    model_config = ConfigDict(frozen=True, extra="ignore")


class BaseEvent(BaseModel):
    """イベント基底クラス

    全てのイベントはイミュータブル。seq は台帳が追記時に採番し、
    呼び出し側が指定した値は使われない。
    """

    model_config = ConfigDict(frozen=True)

    seq: int = Field(default=0, ge=0, description="台帳が採番するシーケンス番号")
    id: str = Field(default_factory=generate_event_id, description="イベントID (ULID)")
    type: EventType | str = Field(..., description="イベント種別")
    timestamp: UtcDatetime = Field(default_factory=utc_now, description="イベント発生時刻 (UTC)")
    actor: str = Field(default="system", description="イベント発生者")
    payload: Any = Field(default_factory=dict, description="イベントペイロード")
    prev_hash: str | None = Field(default=None, description="前イベントのハッシュ（チェーン用）")

    @computed_field
    @property
    def hash(self) -> str:
        """イベントのハッシュ値を計算"""
        return compute_hash(self.model_dump(exclude={"hash"}))

    @property
    def type_value(self) -> str:
        return self.type.value if isinstance(self.type, EventType) else str(self.type)

    def payload_dict(self) -> dict[str, Any]:
        """台帳に書き込むペイロード（JSON互換の辞書）"""
        return serialize_value(self.payload)

    def to_jsonl(self) -> str:
        """JSONL形式（改行なし）でシリアライズ"""
        return self.model_dump_json()


class UnknownEvent(BaseEvent):
    """未知のイベントタイプを表すクラス（前方互換性）

    新しいバージョンのツールが書いたイベントはこのクラスとして読み込まれ、
    投影では読み飛ばされる。
    """

    type: str = Field(..., description="未知のイベントタイプ")
    payload: dict[str, Any] = Field(default_factory=dict)
    original_data: dict[str, Any] = Field(
        default_factory=dict,
        description="元のイベントデータ（全フィールドを保持、サイズ上限あり）",
    )

    @field_validator("original_data", mode="before")
    @classmethod
    def validate_original_data_size(cls, v: Any) -> Any:
        """original_dataのサイズを制限し、巨大payloadによるメモリ肥大化を防ぐ"""
        if isinstance(v, dict):
            try:
                size = len(json.dumps(v, default=str).encode("utf-8"))
            except (TypeError, ValueError):
                size = 0
            if size > MAX_ORIGINAL_DATA_SIZE:
                return {
                    "_truncated": True,
                    "_original_size": size,
                    "_max_size": MAX_ORIGINAL_DATA_SIZE,
                    "type": v.get("type", "unknown"),
                }
        return v
