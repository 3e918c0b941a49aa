"""ProofForge: 複数の証明者が共有ディレクトリ上で証明木を協調構築・相互検証するためのエンジン"""

__version__ = "0.1.0"
