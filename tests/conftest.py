"""ProofForge テスト設定"""

import shutil
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from proofforge.core.config import LedgerConfig, ProofForgeSettings
from proofforge.service import ProofService


class FakeClock:
    """手動で進める時計"""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 1, 9, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


@pytest.fixture
def temp_proof_dir():
    """テスト用の一時証明ディレクトリ"""
    proof_path = Path(tempfile.mkdtemp())
    yield proof_path
    shutil.rmtree(proof_path, ignore_errors=True)


@pytest.fixture
def settings():
    """テスト用の設定（fsyncなし）"""
    return ProofForgeSettings(ledger=LedgerConfig(fsync=False))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(temp_proof_dir, settings, clock):
    """未初期化の証明サービス"""
    return ProofService(temp_proof_dir, settings=settings, clock=clock)


@pytest.fixture
def proof(service):
    """ルートノード 1 を持つ初期化済みの証明サービス"""
    service.init("Every finite group of prime order is cyclic", author="alice")
    return service


@pytest.fixture
def refined_node(proof, clock):
    """精緻化済みのノード 1.1 を持つ証明サービス"""
    proof.create_node("1.1", "claim", "Let g be a non-identity element", author="alice")
    proof.claim_node("1.1", "alice", 60)
    clock.advance(1)
    proof.refine_node("1.1", "alice")
    return proof
