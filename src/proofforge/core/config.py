"""ProofForge 設定管理モジュール

Pydantic Settingsを使用した型安全な設定管理。
proofforge.config.yaml と環境変数から設定を読み込む。
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProofConfig(BaseModel):
    """証明ディレクトリ設定"""

    path: str = Field(default="./proof", description="台帳を置く証明ディレクトリ")


class LedgerConfig(BaseModel):
    """台帳設定"""

    file_name: str = Field(default="ledger.jsonl", min_length=1, description="台帳ファイル名")
    lock_timeout_seconds: float = Field(
        default=10.0, gt=0, le=300, description="台帳ロック取得のタイムアウト秒"
    )
    fsync: bool = Field(default=True, description="追記ごとにfsyncするか")


class ClaimConfig(BaseModel):
    """クレーム（リース）設定"""

    default_lease_seconds: int = Field(
        default=300, ge=1, description="リース期間の既定値（秒）"
    )
    max_lease_seconds: int = Field(default=86400, ge=1, description="リース期間の上限（秒）")


class LimitsConfig(BaseModel):
    """証明木の形状制限"""

    max_depth: int = Field(default=20, ge=1, le=100, description="ノードの最大深さ")
    max_children: int = Field(default=10, ge=1, le=50, description="1ノードあたりの最大子数")
    warn_depth: int = Field(default=3, ge=1, description="この深さを超えたらINFOログ")


class DefinitionConfig(BaseModel):
    """定義設定"""

    allow_shadowing: bool = Field(
        default=False,
        description="同名の定義追加を許可するか（許可時は名前検索で最新を返す）",
    )


class ServiceConfig(BaseModel):
    """サービス層設定"""

    max_append_attempts: int = Field(
        default=5, ge=1, le=50, description="シーケンス不一致時の再検証回数上限"
    )


class ProofForgeSettings(BaseSettings):
    """ProofForge 全体設定"""

    model_config = SettingsConfigDict(
        env_prefix="PROOFFORGE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    proof: ProofConfig = Field(default_factory=ProofConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    claims: ClaimConfig = Field(default_factory=ClaimConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    definitions: DefinitionConfig = Field(default_factory=DefinitionConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)

    @classmethod
    def from_yaml(cls, config_path: Path | str | None = None) -> "ProofForgeSettings":
        """YAMLファイルから設定を読み込む

        Args:
            config_path: 設定ファイルパス。Noneの場合はデフォルトパスを探索

        Returns:
            ProofForgeSettings インスタンス
        """
        if config_path is None:
            search_paths = [
                Path.cwd() / "proofforge.config.yaml",
                Path.cwd() / "proofforge.config.yml",
                Path.home() / ".proofforge" / "config.yaml",
            ]
            for path in search_paths:
                if path.exists():
                    config_path = path
                    break

        if config_path and Path(config_path).exists():
            with open(config_path, encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
            return cls.model_validate(yaml_config)

        return cls()

    def get_proof_path(self) -> Path:
        """証明ディレクトリを絶対パスで取得"""
        proof = Path(self.proof.path)
        if not proof.is_absolute():
            proof = Path.cwd() / proof
        return proof.resolve()


# グローバル設定インスタンス（遅延初期化）
_settings: ProofForgeSettings | None = None


def get_settings() -> ProofForgeSettings:
    """設定シングルトンを取得"""
    global _settings
    if _settings is None:
        _settings = ProofForgeSettings.from_yaml()
    return _settings


def reload_settings(config_path: Path | str | None = None) -> ProofForgeSettings:
    """設定を再読み込み"""
    global _settings
    _settings = ProofForgeSettings.from_yaml(config_path)
    return _settings
