from typing import Dict, Optional, Protocol


class MemoryStore(Protocol):
    """save_to_memory / read_from_memory 工具使用的键值存储。

    扁平的 str -> str 映射，没有事务保证：并发写入时后写者覆盖先写者。
    """

    def read_memory(self, key: str) -> Optional[str]:
        ...

    def write_memory(self, key: str, value: str) -> None:
        ...

    def items(self) -> Dict[str, str]:
        ...

    def clear(self) -> None:
        ...

    def __len__(self) -> int:
        ...
