"""証明木の基本型

NodeID と、ノード・推論・チャレンジに関する列挙型を定義。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, TypeVar

from pydantic import AfterValidator

from .errors import ErrorCode, InvalidInputError

ROOT_SEGMENT = 1

E = TypeVar("E", bound=Enum)


@dataclass(frozen=True, order=True)
class NodeID:
    """ドット区切りの正整数パス (例: ``1``, ``1.2``, ``1.2.3``)

    親は最後のセグメントを除いたパス、ルートは常に ``1``。
    比較はセグメントの数値順で行うため ``1.2 < 1.10`` となる。
    """

    parts: tuple[int, ...]

    def __post_init__(self) -> None:
        if not self.parts:
            raise InvalidInputError("node id must not be empty", code=ErrorCode.INVALID_NODE_ID)
        if any(p < 1 for p in self.parts):
            raise InvalidInputError(
                f"node id segments must be positive: {self}", code=ErrorCode.INVALID_NODE_ID
            )
        if self.parts[0] != ROOT_SEGMENT:
            raise InvalidInputError(
                f"node id must start at root {ROOT_SEGMENT}: {self}",
                code=ErrorCode.INVALID_NODE_ID,
            )

    @classmethod
    def parse(cls, value: str | NodeID) -> NodeID:
        """文字列からNodeIDを生成

        Raises:
            InvalidInputError: 空文字、非数字、0以下のセグメント、ルート以外で始まる場合
        """
        if isinstance(value, NodeID):
            return value
        text = (value or "").strip()
        if not text:
            raise InvalidInputError("node id must not be empty", code=ErrorCode.INVALID_NODE_ID)
        segments = text.split(".")
        if not all(s.isascii() and s.isdigit() for s in segments):
            raise InvalidInputError(
                f"invalid node id syntax: {text!r}", code=ErrorCode.INVALID_NODE_ID
            )
        return cls(tuple(int(s) for s in segments))

    @classmethod
    def root(cls) -> NodeID:
        return cls((ROOT_SEGMENT,))

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)

    @property
    def depth(self) -> int:
        """ルートの深さを1とする"""
        return len(self.parts)

    @property
    def is_root(self) -> bool:
        return len(self.parts) == 1

    @property
    def parent(self) -> NodeID | None:
        if self.is_root:
            return None
        return NodeID(self.parts[:-1])

    def child(self, index: int) -> NodeID:
        return NodeID((*self.parts, index))

    def is_ancestor_of(self, other: NodeID) -> bool:
        return len(self.parts) < len(other.parts) and other.parts[: len(self.parts)] == self.parts


def _validate_node_id(value: str) -> str:
    return str(NodeID.parse(value))


# ペイロード中のノードIDは正規化済み文字列として保持する
NodeIdStr = Annotated[str, AfterValidator(_validate_node_id)]


class NodeType(str, Enum):
    """ノード種別"""

    CLAIM = "claim"
    LOCAL_ASSUME = "local_assume"
    LOCAL_DISCHARGE = "local_discharge"
    CASE = "case"
    QED = "qed"


class InferenceType(str, Enum):
    """推論規則"""

    MODUS_PONENS = "modus_ponens"
    MODUS_TOLLENS = "modus_tollens"
    UNIVERSAL_INSTANTIATION = "universal_instantiation"
    EXISTENTIAL_INSTANTIATION = "existential_instantiation"
    UNIVERSAL_GENERALIZATION = "universal_generalization"
    EXISTENTIAL_GENERALIZATION = "existential_generalization"
    BY_DEFINITION = "by_definition"
    ASSUMPTION = "assumption"
    LOCAL_ASSUME = "local_assume"
    LOCAL_DISCHARGE = "local_discharge"
    CONTRADICTION = "contradiction"


class ChallengeTarget(str, Enum):
    """チャレンジが指摘するノードの側面"""

    STATEMENT = "statement"
    INFERENCE = "inference"
    CONTEXT = "context"
    DEPENDENCIES = "dependencies"
    SCOPE = "scope"
    GAP = "gap"
    TYPE_ERROR = "type_error"
    DOMAIN = "domain"
    COMPLETENESS = "completeness"


class ChallengeSeverity(str, Enum):
    """チャレンジの重大度"""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    NOTE = "note"

    @property
    def is_blocking(self) -> bool:
        """critical / major は受理をブロックする"""
        return self in (ChallengeSeverity.CRITICAL, ChallengeSeverity.MAJOR)


class ChallengeOutcome(str, Enum):
    """チャレンジ解決の結果"""

    ADMITTED = "admitted"
    REFUTED = "refuted"


def parse_enum(enum_cls: type[E], value: str | E, code: ErrorCode) -> E:
    """列挙値をパースし、失敗時は InvalidInputError を送出"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as e:
        valid = ", ".join(m.value for m in enum_cls)
        raise InvalidInputError(
            f"invalid {enum_cls.__name__} {value!r}; expected one of: {valid}", code=code
        ) from e
