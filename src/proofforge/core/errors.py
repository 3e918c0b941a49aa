"""ProofForge エラー体系

全ての操作エラーは ProofForgeError を基底とし、4つの系統に分かれる。

- InvalidInputError: 状態を読む前に弾かれる不正入力
- NotFoundError: 参照先のノード/チャレンジ/定義/保留定義が存在しない
- StateConflictError: エンティティの現在状態では許可されない操作
- StorageError: I/O失敗、ロックタイムアウト、台帳の構造破損

StorageError はローカルでは回復不能であり、呼び出し元にそのまま伝播する。
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """エラーコード"""

    # 入力不正
    EMPTY_INPUT = "EMPTY_INPUT"
    INVALID_NODE_ID = "INVALID_NODE_ID"
    INVALID_TYPE = "INVALID_TYPE"
    INVALID_INFERENCE = "INVALID_INFERENCE"
    INVALID_TARGET = "INVALID_TARGET"
    INVALID_SEVERITY = "INVALID_SEVERITY"
    INVALID_OUTCOME = "INVALID_OUTCOME"
    INVALID_TIMEOUT = "INVALID_TIMEOUT"
    INVALID_STATUS = "INVALID_STATUS"
    DEPTH_EXCEEDED = "DEPTH_EXCEEDED"
    CHILD_LIMIT_EXCEEDED = "CHILD_LIMIT_EXCEEDED"
    AMBIGUOUS_LOOKUP = "AMBIGUOUS_LOOKUP"
    TERM_MISMATCH = "TERM_MISMATCH"

    # 未検出
    NODE_NOT_FOUND = "NODE_NOT_FOUND"
    PARENT_NOT_FOUND = "PARENT_NOT_FOUND"
    CHALLENGE_NOT_FOUND = "CHALLENGE_NOT_FOUND"
    DEF_NOT_FOUND = "DEF_NOT_FOUND"
    PENDING_DEF_NOT_FOUND = "PENDING_DEF_NOT_FOUND"

    # 状態競合
    ALREADY_CLAIMED = "ALREADY_CLAIMED"
    NOT_CLAIM_HOLDER = "NOT_CLAIM_HOLDER"
    NODE_BLOCKED = "NODE_BLOCKED"
    LEASE_EXPIRED = "LEASE_EXPIRED"
    INVALID_STATE = "INVALID_STATE"
    CHALLENGE_ALREADY_OPEN = "CHALLENGE_ALREADY_OPEN"
    CHALLENGE_NOT_OPEN = "CHALLENGE_NOT_OPEN"
    PENDING_DEF_NOT_PENDING = "PENDING_DEF_NOT_PENDING"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    NOT_INITIALIZED = "NOT_INITIALIZED"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # ストレージ
    STORAGE_FAILURE = "STORAGE_FAILURE"
    LEDGER_CORRUPT = "LEDGER_CORRUPT"
    LEDGER_LOCK_TIMEOUT = "LEDGER_LOCK_TIMEOUT"
    SEQUENCE_MISMATCH = "SEQUENCE_MISMATCH"


class ProofForgeError(Exception):
    """ProofForge 基底例外

    Attributes:
        code: エラーコード
        context: エンティティID・現在状態などの付帯情報
    """

    default_code: ErrorCode = ErrorCode.STORAGE_FAILURE
    # 1: 競合 (再試行で解消し得る), 2: 状態不正, 3: 破損/ストレージ, 4: 入力不正/未検出
    exit_code: int = 1

    def __init__(self, message: str, *, code: ErrorCode | None = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """呼び出し元（CLI層など）向けの辞書表現"""
        return {
            "code": self.code.value,
            "message": self.message,
            "exit_code": self.exit_code,
            "context": {k: str(v) for k, v in self.context.items()},
        }


# ---------------------------------------------------------------------------
# 入力不正
# ---------------------------------------------------------------------------


class InvalidInputError(ProofForgeError, ValueError):
    """不正な入力

    ValueError を継承するため、Pydantic のバリデータ内で送出すると
    ValidationError に変換される。
    """

    default_code = ErrorCode.EMPTY_INPUT
    exit_code = 4


def require_text(value: str | None, field: str) -> str:
    """空白のみ・空文字を拒否し、前後の空白を除いた値を返す"""
    if value is None or not str(value).strip():
        raise InvalidInputError(f"{field} must not be empty", field=field)
    return str(value).strip()


# ---------------------------------------------------------------------------
# 未検出
# ---------------------------------------------------------------------------


class NotFoundError(ProofForgeError, LookupError):
    """参照先が存在しない"""

    default_code = ErrorCode.NODE_NOT_FOUND
    exit_code = 4

    def __init__(self, message: str, *, entity_id: str | None = None, **context: Any):
        super().__init__(message, entity_id=entity_id, **context)
        self.entity_id = entity_id


class NodeNotFoundError(NotFoundError):
    default_code = ErrorCode.NODE_NOT_FOUND

    def __init__(self, node_id: object):
        super().__init__(f"node {node_id} not found", entity_id=str(node_id))


class ParentNotFoundError(NotFoundError):
    default_code = ErrorCode.PARENT_NOT_FOUND

    def __init__(self, node_id: object, parent_id: object):
        super().__init__(
            f"parent {parent_id} of node {node_id} not found",
            entity_id=str(node_id),
            parent_id=str(parent_id),
        )


class ChallengeNotFoundError(NotFoundError):
    default_code = ErrorCode.CHALLENGE_NOT_FOUND

    def __init__(self, challenge_id: str):
        super().__init__(f"challenge {challenge_id} not found", entity_id=challenge_id)


class DefinitionNotFoundError(NotFoundError):
    default_code = ErrorCode.DEF_NOT_FOUND

    def __init__(self, lookup: str):
        super().__init__(f"definition {lookup!r} not found", entity_id=lookup)


class PendingDefNotFoundError(NotFoundError):
    default_code = ErrorCode.PENDING_DEF_NOT_FOUND

    def __init__(self, lookup: str):
        super().__init__(f"pending definition {lookup!r} not found", entity_id=lookup)


# ---------------------------------------------------------------------------
# 状態競合
# ---------------------------------------------------------------------------


class StateConflictError(ProofForgeError):
    """現在状態では許可されない操作

    Attributes:
        entity_id: 対象エンティティのID
        current_state: 実際の現在状態
        requested: 要求された操作（イベント種別など）
    """

    default_code = ErrorCode.INVALID_STATE
    exit_code = 2

    def __init__(
        self,
        message: str,
        *,
        entity_id: str | None = None,
        current_state: object = None,
        requested: object = None,
        code: ErrorCode | None = None,
        **context: Any,
    ):
        super().__init__(
            message,
            code=code,
            entity_id=entity_id,
            current_state=_plain(current_state),
            requested=_plain(requested),
            **context,
        )
        self.entity_id = entity_id
        self.current_state = _plain(current_state)
        self.requested = _plain(requested)


def _plain(value: object) -> object:
    """Enumは値に変換して保持する"""
    if isinstance(value, Enum):
        return value.value
    return value


class NodeAlreadyClaimedError(StateConflictError):
    """有効なリースを持つ他者が既にクレームしている"""

    default_code = ErrorCode.ALREADY_CLAIMED
    exit_code = 1

    def __init__(self, node_id: object, owner: str | None, expires_at: object = None):
        super().__init__(
            f"node {node_id} is already claimed by {owner}",
            entity_id=str(node_id),
            current_state="claimed",
            requested="claim",
            owner=owner,
            expires_at=expires_at,
        )
        self.owner = owner
        self.expires_at = expires_at


class NotClaimHolderError(StateConflictError):
    """操作者がリース保持者ではない"""

    default_code = ErrorCode.NOT_CLAIM_HOLDER
    exit_code = 1

    def __init__(self, node_id: object, owner: str | None, requested_by: str, requested: object):
        super().__init__(
            f"node {node_id} is claimed by {owner}, not {requested_by}",
            entity_id=str(node_id),
            current_state="claimed",
            requested=requested,
            owner=owner,
            requested_by=requested_by,
        )
        self.owner = owner


class LeaseExpiredError(StateConflictError):
    """リース保持者だが期限切れ"""

    default_code = ErrorCode.LEASE_EXPIRED
    exit_code = 1

    def __init__(self, node_id: object, owner: str, expires_at: object, requested: object):
        super().__init__(
            f"lease of {owner} on node {node_id} expired at {expires_at}",
            entity_id=str(node_id),
            current_state="unclaimed",
            requested=requested,
            owner=owner,
            expires_at=expires_at,
        )
        self.owner = owner


class NodeBlockedError(StateConflictError):
    """保留中の定義要求、または重大なチャレンジによりノードが塞がれている

    Attributes:
        pending_def_id: 塞いでいる保留定義のID
        challenge_ids: 受理を塞いでいるチャレンジのID
    """

    default_code = ErrorCode.NODE_BLOCKED

    def __init__(
        self,
        node_id: object,
        requested: object,
        *,
        pending_def_id: str | None = None,
        challenge_ids: list[str] | None = None,
    ):
        if pending_def_id is not None:
            cause = f"pending definition request {pending_def_id}"
        else:
            cause = f"blocking challenges {', '.join(challenge_ids or [])}"
        super().__init__(
            f"node {node_id} is blocked by {cause}",
            entity_id=str(node_id),
            current_state="blocked",
            requested=requested,
            pending_def_id=pending_def_id,
            challenge_ids=", ".join(challenge_ids) if challenge_ids else None,
        )
        self.pending_def_id = pending_def_id
        self.challenge_ids = list(challenge_ids or [])


class ChallengeAlreadyOpenError(StateConflictError):
    default_code = ErrorCode.CHALLENGE_ALREADY_OPEN

    def __init__(self, node_id: object, challenge_id: str):
        super().__init__(
            f"node {node_id} already has open challenge {challenge_id}",
            entity_id=str(node_id),
            current_state="challenged",
            requested="challenge",
            challenge_id=challenge_id,
        )
        self.challenge_id = challenge_id


class ChallengeNotOpenError(StateConflictError):
    default_code = ErrorCode.CHALLENGE_NOT_OPEN

    def __init__(self, challenge_id: str, current_state: object, requested: object):
        super().__init__(
            f"challenge {challenge_id} is {_plain(current_state)}, not open",
            entity_id=challenge_id,
            current_state=current_state,
            requested=requested,
        )


class PendingDefNotPendingError(StateConflictError):
    default_code = ErrorCode.PENDING_DEF_NOT_PENDING

    def __init__(self, pending_def_id: str, current_state: object, requested: object):
        super().__init__(
            f"pending definition {pending_def_id} is {_plain(current_state)}, no longer pending",
            entity_id=pending_def_id,
            current_state=current_state,
            requested=requested,
        )


class AlreadyExistsError(StateConflictError):
    default_code = ErrorCode.ALREADY_EXISTS


class ProofNotInitializedError(StateConflictError):
    default_code = ErrorCode.NOT_INITIALIZED

    def __init__(self, proof_dir: object = None):
        super().__init__(
            "proof is not initialized",
            current_state="uninitialized",
            proof_dir=str(proof_dir) if proof_dir is not None else None,
        )


class ConcurrentModificationError(StateConflictError):
    """再検証の上限まで他の書き込みに追い越された"""

    default_code = ErrorCode.CONCURRENT_MODIFICATION
    exit_code = 1


# ---------------------------------------------------------------------------
# ストレージ
# ---------------------------------------------------------------------------


class StorageError(ProofForgeError):
    """台帳ディレクトリのI/O失敗"""

    default_code = ErrorCode.STORAGE_FAILURE
    exit_code = 3


class LedgerCorruptionError(StorageError):
    """台帳の構造破損（末尾の書きかけレコードなど）

    自動修復は行わない。
    """

    default_code = ErrorCode.LEDGER_CORRUPT

    def __init__(self, message: str, *, seq: int | None = None, path: object = None):
        super().__init__(message, seq=seq, path=str(path) if path is not None else None)
        self.seq = seq


class LedgerLockTimeoutError(StorageError):
    default_code = ErrorCode.LEDGER_LOCK_TIMEOUT


class SequenceMismatchError(StorageError):
    """条件付き追記で期待したシーケンス番号と一致しなかった"""

    default_code = ErrorCode.SEQUENCE_MISMATCH

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"expected last sequence {expected}, found {actual}",
            expected=expected,
            actual=actual,
        )
        self.expected = expected
        self.actual = actual
