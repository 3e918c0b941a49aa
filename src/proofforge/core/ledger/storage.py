"""台帳 (Ledger) ストレージ層

証明の全ての状態変化を記録する追記専用ログ。
JSONLファイル + ファイルロックによる実装。

1行が1レコードで、シーケンス番号は行の位置（1始まり）と一致する。
台帳はレコードの中身を解釈しない。型付きの解釈は投影 (Projector) の責務。
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import portalocker

from ..errors import (
    LedgerCorruptionError,
    LedgerLockTimeoutError,
    SequenceMismatchError,
    StorageError,
)
from ..events import (
    BaseEvent,
    compute_hash,
    generate_event_id,
    parse_event,
    serialize_value,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "ledger.jsonl"
DEFAULT_LOCK_TIMEOUT = 10.0

_READ_CHUNK_SIZE = 64 * 1024


class ScanControl(Enum):
    """scan の訪問関数が返す継続指示"""

    CONTINUE = "continue"
    STOP = "stop"


@dataclass(frozen=True)
class ScanResult:
    """scan の結果

    Attributes:
        visited: 訪問したレコード数
        last_seq: 最後に訪問したシーケンス番号（0はレコードなし）
        stopped: 訪問関数が STOP を返して打ち切ったか
    """

    visited: int
    last_seq: int
    stopped: bool


# 訪問関数: (seq, 生の行) -> CONTINUE / STOP / None(継続)
ScanVisitor = Callable[[int, str], "ScanControl | None"]


class Ledger:
    """証明ディレクトリ内の追記専用イベントログ

    {directory}/ledger.jsonl に1行1レコードで追記する。
    追記は排他ロック下で「末尾確認 → 採番 → 書き込み」をアトミックに行うため、
    同じディレクトリを共有する複数プロセスが同じシーケンス番号を得ることはない。

    Attributes:
        directory: 証明ディレクトリ
        path: 台帳ファイルのパス
    """

    def __init__(
        self,
        directory: Path | str,
        file_name: str = DEFAULT_FILE_NAME,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        fsync: bool = True,
    ):
        """
        Args:
            directory: 証明ディレクトリ（存在しなければ作成）
            file_name: 台帳ファイル名
            lock_timeout: ロック取得のタイムアウト秒
            fsync: 追記ごとにfsyncするか
        """
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"cannot create proof directory {self.directory}: {e}", path=str(self.directory)
            ) from e
        if not self.directory.is_dir():
            raise StorageError(
                f"proof path is not a directory: {self.directory}", path=str(self.directory)
            )
        self.path = self.directory / file_name
        self.lock_timeout = lock_timeout
        self.fsync = fsync

    def exists(self) -> bool:
        """レコードが1件以上書かれているか"""
        return self.path.exists() and self.path.stat().st_size > 0

    # ------------------------------------------------------------------
    # ロック
    # ------------------------------------------------------------------

    def _lock(self, mode: str, shared: bool = False) -> portalocker.Lock:
        flags = portalocker.LockFlags.SHARED if shared else portalocker.LockFlags.EXCLUSIVE
        return portalocker.Lock(
            self.path,
            mode=mode,
            timeout=self.lock_timeout,
            fail_when_locked=False,
            flags=flags | portalocker.LockFlags.NON_BLOCKING,
        )

    def _acquire(self, lock: portalocker.Lock):
        try:
            return lock.acquire()
        except portalocker.LockException as e:
            raise LedgerLockTimeoutError(
                f"could not lock ledger {self.path} within {self.lock_timeout}s",
                path=str(self.path),
            ) from e
        except OSError as e:
            raise StorageError(f"cannot open ledger {self.path}: {e}", path=str(self.path)) from e

    # ------------------------------------------------------------------
    # 末尾の読み取り
    # ------------------------------------------------------------------

    @staticmethod
    def _decode_utf8_safe(data: bytes) -> str:
        """UTF-8バイト列を安全にデコード

        ファイルの途中からバイナリで読み込んだ場合、先頭がUTF-8マルチバイト文字の
        途中になっている可能性がある。その場合は先頭の不完全なバイトをスキップする。
        """
        start = 0
        while start < len(data) and 0x80 <= data[start] <= 0xBF:
            start += 1
        return data[start:].decode("utf-8", errors="replace")

    def _read_last_line(self, f, file_size: int, initial_chunk_size: int = 8192) -> str | None:
        """ファイル末尾から最後の完全な行を取得

        行頭（直前の改行）が見つかるまでチャンクサイズを拡張しながら読み込む。
        呼び出し側で末尾が改行で終わっていることを確認済みであること。
        """
        chunk_size = initial_chunk_size
        while True:
            start = max(0, file_size - chunk_size)
            f.seek(start)
            chunk = f.read(file_size - start)
            body = chunk[:-1]  # 末尾の改行を除く
            newline = body.rfind(b"\n")
            if newline >= 0:
                return self._decode_utf8_safe(body[newline + 1 :])
            if start == 0:
                return body.decode("utf-8", errors="replace")
            chunk_size *= 2

    def _count_lines(self, f, file_size: int) -> int:
        f.seek(0)
        remaining = file_size
        count = 0
        while remaining > 0:
            chunk = f.read(min(_READ_CHUNK_SIZE, remaining))
            if not chunk:
                break
            count += chunk.count(b"\n")
            remaining -= len(chunk)
        return count

    def _tail_state(self, f) -> tuple[int, str | None]:
        """ロック保持中に (最後のシーケンス番号, 最後のハッシュ) を取得

        Raises:
            LedgerCorruptionError: 末尾が書きかけのレコードで終わっている場合
        """
        f.seek(0, 2)
        file_size = f.tell()
        if file_size == 0:
            return 0, None

        f.seek(file_size - 1)
        if f.read(1) != b"\n":
            seq = self._count_lines(f, file_size) + 1
            logger.error("Ledger %s ends with a truncated record at seq %d", self.path, seq)
            raise LedgerCorruptionError(
                f"ledger ends with a truncated record at seq {seq}; refusing to append",
                seq=seq,
                path=self.path,
            )

        last_line = self._read_last_line(f, file_size)
        try:
            record = json.loads(last_line) if last_line else None
        except (json.JSONDecodeError, RecursionError):
            record = None

        if isinstance(record, dict) and isinstance(record.get("seq"), int):
            last_hash = record.get("hash")
            return record["seq"], last_hash if isinstance(last_hash, str) else None

        # 末尾レコードが解釈できない場合は行数から採番する
        return self._count_lines(f, file_size), None

    # ------------------------------------------------------------------
    # 追記
    # ------------------------------------------------------------------

    def append(
        self,
        event_type: str | Enum,
        payload: dict[str, Any],
        *,
        actor: str = "system",
        timestamp: datetime | None = None,
        event_id: str | None = None,
        expected_seq: int | None = None,
    ) -> int:
        """レコードを追記してシーケンス番号を返す

        Args:
            event_type: イベント種別
            payload: JSON互換のペイロード
            actor: イベント発生者
            timestamp: イベント時刻（省略時は追記時の現在時刻）
            event_id: イベントID（省略時はULIDを生成）
            expected_seq: 指定時、現在の最終シーケンス番号と一致する場合のみ追記する

        Returns:
            採番されたシーケンス番号

        Raises:
            SequenceMismatchError: expected_seq が最終シーケンス番号と一致しない場合
            LedgerCorruptionError: 末尾が書きかけのレコードで終わっている場合
            LedgerLockTimeoutError: ロックを取得できなかった場合
        """
        return self._append_record(
            event_type,
            payload,
            actor=actor,
            timestamp=timestamp,
            event_id=event_id,
            expected_seq=expected_seq,
        )["seq"]

    def append_event(self, event: BaseEvent, expected_seq: int | None = None) -> BaseEvent:
        """型付きイベントを追記

        seq と prev_hash は台帳が設定する。イベントの id・timestamp・actor は保持される。

        Returns:
            seq・prev_hash が設定されたイベント
        """
        record = self._append_record(
            event.type_value,
            event.payload_dict(),
            actor=event.actor,
            timestamp=event.timestamp,
            event_id=event.id,
            expected_seq=expected_seq,
        )
        return parse_event(record)

    def _append_record(
        self,
        event_type: str | Enum,
        payload: dict[str, Any],
        *,
        actor: str,
        timestamp: datetime | None,
        event_id: str | None,
        expected_seq: int | None,
    ) -> dict[str, Any]:
        kind = event_type.value if isinstance(event_type, Enum) else str(event_type)
        body = serialize_value(payload)

        # ファイルロック付きで「末尾確認 → 採番 → 追記」をアトミックに実行
        #
        # 注意: バイナリモード(a+b)で開く必要がある。テキストモードでseek()すると
        # UTF-8マルチバイト文字の途中にシークしてしまいUnicodeDecodeErrorが発生する。
        lock = self._lock("a+b")
        f = self._acquire(lock)
        try:
            last_seq, last_hash = self._tail_state(f)

            if expected_seq is not None and expected_seq != last_seq:
                raise SequenceMismatchError(expected_seq, last_seq)

            record: dict[str, Any] = {
                "seq": last_seq + 1,
                "id": event_id or generate_event_id(),
                "type": kind,
                "timestamp": serialize_value(timestamp or utc_now()),
                "actor": actor,
                "payload": body,
                "prev_hash": last_hash,
            }
            record["hash"] = compute_hash(record)
            line = json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n"

            f.seek(0, 2)
            f.write(line.encode("utf-8"))
            f.flush()
            if self.fsync:
                os.fsync(f.fileno())
        except OSError as e:
            raise StorageError(f"failed to append to ledger {self.path}: {e}") from e
        finally:
            lock.release()

        logger.debug("Appended %s as seq %d to %s", kind, record["seq"], self.path)
        return record

    # ------------------------------------------------------------------
    # 走査
    # ------------------------------------------------------------------

    def _committed_size(self) -> int:
        """共有ロック下で確定済みのファイルサイズを取得

        書き込み中のプロセスは排他ロックを保持しているため、
        ここで得たサイズに書き込み途中のバイトは含まれない。
        """
        if not self.path.exists():
            return 0
        lock = self._lock("rb", shared=True)
        f = self._acquire(lock)
        try:
            f.seek(0, 2)
            return f.tell()
        finally:
            lock.release()

    def records(self) -> Iterator[tuple[int, str]]:
        """(シーケンス番号, 生の行) を昇順に遅延生成

        呼び出しごとに先頭から読み直す。走査開始時点で確定済みの範囲のみを返し、
        走査中の追記は次回の走査で見える。

        Raises:
            LedgerCorruptionError: 末尾が改行で終わらない書きかけのレコードの場合
        """
        size = self._committed_size()
        if size == 0:
            return

        try:
            f = open(self.path, "rb")
        except OSError as e:
            raise StorageError(f"cannot open ledger {self.path}: {e}", path=str(self.path)) from e

        with f:
            seq = 0
            while f.tell() < size:
                line = f.readline(size - f.tell())
                seq += 1
                if not line.endswith(b"\n"):
                    logger.error("Ledger %s has a truncated record at seq %d", self.path, seq)
                    raise LedgerCorruptionError(
                        f"truncated trailing record at seq {seq}", seq=seq, path=self.path
                    )
                yield seq, line[:-1].decode("utf-8", errors="replace").rstrip("\r")

    def scan(self, visit: ScanVisitor) -> ScanResult:
        """全レコードを昇順に訪問

        Args:
            visit: 各レコードで呼ばれる関数。STOP を返すと走査を打ち切る。
                送出した例外はそのまま伝播する。

        Returns:
            走査結果
        """
        visited = 0
        last_seq = 0
        for seq, raw in self.records():
            visited += 1
            last_seq = seq
            if visit(seq, raw) is ScanControl.STOP:
                return ScanResult(visited=visited, last_seq=last_seq, stopped=True)
        return ScanResult(visited=visited, last_seq=last_seq, stopped=False)

    # ------------------------------------------------------------------
    # 付帯操作
    # ------------------------------------------------------------------

    def last_sequence(self) -> int:
        """最終シーケンス番号（レコードなしは0）"""
        if not self.path.exists():
            return 0
        lock = self._lock("rb", shared=True)
        f = self._acquire(lock)
        try:
            return self._tail_state(f)[0]
        finally:
            lock.release()

    def count(self) -> int:
        """レコード数"""
        return self.scan(lambda seq, raw: None).visited

    def verify_chain(self) -> tuple[bool, str | None]:
        """ハッシュチェーンの整合性を検証

        Returns:
            (整合性OK, エラーメッセージ) のタプル
        """
        prev_hash = None
        for seq, raw in self.records():
            try:
                record = json.loads(raw)
            except (json.JSONDecodeError, RecursionError):
                return False, f"Unparseable record at seq {seq}"
            if not isinstance(record, dict):
                return False, f"Unparseable record at seq {seq}"
            if record.get("seq") != seq:
                return False, f"Sequence mismatch at seq {seq}: recorded {record.get('seq')}"
            if record.get("prev_hash") != prev_hash:
                return False, f"Hash mismatch at seq {seq}"
            if record.get("hash") != compute_hash(record):
                return False, f"Content hash mismatch at seq {seq}"
            prev_hash = record["hash"]

        return True, None

    def repair_truncated_tail(self) -> int:
        """書きかけの末尾レコードを切り詰める（運用者が明示的に実行する）

        自動では呼ばれない。

        Returns:
            削除したバイト数（修復不要なら0）
        """
        if not self.path.exists():
            return 0
        lock = self._lock("r+b")
        f = self._acquire(lock)
        try:
            f.seek(0, 2)
            file_size = f.tell()
            if file_size == 0:
                return 0
            f.seek(file_size - 1)
            if f.read(1) == b"\n":
                return 0

            keep = 0
            position = file_size
            while position > 0:
                start = max(0, position - _READ_CHUNK_SIZE)
                f.seek(start)
                chunk = f.read(position - start)
                newline = chunk.rfind(b"\n")
                if newline >= 0:
                    keep = start + newline + 1
                    break
                position = start

            f.truncate(keep)
            f.flush()
            os.fsync(f.fileno())
        finally:
            lock.release()

        removed = file_size - keep
        logger.warning("Truncated %d bytes of torn record from %s", removed, self.path)
        return removed
