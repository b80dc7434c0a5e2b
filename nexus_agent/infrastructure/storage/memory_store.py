import json
import os
from pathlib import Path
from typing import Dict, Optional
from uuid import uuid4

from nexus_agent.config.settings import settings
from nexus_agent.domain.exceptions import BusinessError
from nexus_agent.domain.memory import MemoryStore


class InMemoryStore(MemoryStore):
    """进程内的记忆存储，主要用于测试与临时会话。"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def read_memory(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write_memory(self, key: str, value: str) -> None:
        self._data[key] = value

    def items(self) -> Dict[str, str]:
        return dict(self._data)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class JsonMemoryStore(MemoryStore):
    """以单个 JSON 对象文件持久化的记忆存储。

    每次读取都整体加载文件，每次写入都整体读-改-写，
    通过临时文件 + os.replace 保证文件本身不会写出半截内容。
    """

    def __init__(self, root: str | Path | None = None, filename: str = "agent_memory.json"):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._path = self._root / filename

    @property
    def path(self) -> Path:
        return self._path

    def read_memory(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def write_memory(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def items(self) -> Dict[str, str]:
        return self._load()

    def clear(self) -> None:
        if not self._path.exists():
            return
        try:
            self._path.unlink()
        except OSError as e:
            raise BusinessError(code="STORE_DELETE_ERROR", message=str(e))

    def __len__(self) -> int:
        return len(self._load())

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        if not isinstance(data, dict):
            raise BusinessError(code="STORE_READ_ERROR", message=f"{self._path} is not a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _dump(self, data: Dict[str, str]) -> None:
        tmp_path = self._root / f"{self._path.name}.{uuid4().hex}.tmp"
        try:
            tmp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
