"""エンティティの検索

人間は不透明なIDを覚えていないため、保留定義は複数の戦略で検索する。
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

from ..core.errors import (
    ChallengeNotFoundError,
    DefinitionNotFoundError,
    ErrorCode,
    InvalidInputError,
    PendingDefNotFoundError,
    require_text,
)
from ..core.ledger.projections import (
    ChallengeProjection,
    DefinitionProjection,
    PendingDefProjection,
    ProofState,
)
from ..core.types import NodeID

T = TypeVar("T")


def _by_prefix(items: Sequence[T], lookup: str, get_id: Callable[[T], str]) -> list[T]:
    """IDの前方一致（大文字小文字を区別しない）"""
    prefix = lookup.lower()
    return [item for item in items if get_id(item).lower().startswith(prefix)]


def _unique(matches: list[T], lookup: str, kind: str) -> T | None:
    if len(matches) > 1:
        raise InvalidInputError(
            f"{kind} prefix {lookup!r} is ambiguous ({len(matches)} matches)",
            code=ErrorCode.AMBIGUOUS_LOOKUP,
            lookup=lookup,
        )
    return matches[0] if matches else None


def _prefer_pending(matches: list[PendingDefProjection]) -> PendingDefProjection | None:
    """保留中のものを優先し、その中で最新のものを返す"""
    if not matches:
        return None
    pending = [p for p in matches if p.is_pending]
    return (pending or matches)[-1]


def find_pending_def(state: ProofState, lookup: str) -> PendingDefProjection:
    """保留定義を検索

    優先順:
    1. 用語の完全一致
    2. 要求元ノードID
    3. IDの完全一致
    4. IDの前方一致（一意であること）
    5. 用語の大文字小文字を無視した一致

    Raises:
        InvalidInputError: 空の検索語、または前方一致が曖昧な場合
        PendingDefNotFoundError: 見つからない場合
    """
    lookup = require_text(lookup, "lookup")
    records = list(state.pending_defs.values())

    found = _prefer_pending([p for p in records if p.term == lookup])
    if found:
        return found

    try:
        node_id = NodeID.parse(lookup)
    except InvalidInputError:
        node_id = None
    if node_id is not None:
        found = _prefer_pending([p for p in records if p.node_id == node_id])
        if found:
            return found

    if lookup in state.pending_defs:
        return state.pending_defs[lookup]

    found = _unique(_by_prefix(records, lookup, lambda p: p.id), lookup, "pending definition")
    if found:
        return found

    folded = lookup.casefold()
    found = _prefer_pending([p for p in records if p.term.casefold() == folded])
    if found:
        return found

    raise PendingDefNotFoundError(lookup)


def find_challenge(state: ProofState, lookup: str) -> ChallengeProjection:
    """チャレンジをIDの完全一致、次に一意な前方一致で検索"""
    lookup = require_text(lookup, "challenge id")
    if lookup in state.challenges:
        return state.challenges[lookup]
    found = _unique(
        _by_prefix(list(state.challenges.values()), lookup, lambda c: c.id), lookup, "challenge"
    )
    if found is None:
        raise ChallengeNotFoundError(lookup)
    return found


def find_definition(state: ProofState, lookup: str) -> DefinitionProjection:
    """定義をIDの完全一致、名前の完全一致、IDの一意な前方一致の順で検索"""
    lookup = require_text(lookup, "definition")
    if lookup in state.definitions:
        return state.definitions[lookup]
    found = state.definition_by_name(lookup)
    if found:
        return found
    found = _unique(
        _by_prefix(list(state.definitions.values()), lookup, lambda d: d.id), lookup, "definition"
    )
    if found is None:
        raise DefinitionNotFoundError(lookup)
    return found
