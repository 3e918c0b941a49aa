"""証明サービス層

台帳・投影・状態機械を組み合わせた操作のファサード。
"""

from .lookup import find_challenge, find_definition, find_pending_def
from .proof_service import OperationResult, ProofService, content_hash

__all__ = [
    "ProofService",
    "OperationResult",
    "content_hash",
    "find_challenge",
    "find_definition",
    "find_pending_def",
]
