import enum
from typing import Any


class BaseEnum(str, enum.Enum):
    @classmethod
    def has(cls, item: Any) -> bool:
        try:
            cls(item)
        except ValueError:
            return False
        else:
            return True

    def __str__(self) -> str:
        return str(self.value)

    @classmethod
    def list_all(cls) -> list[str]:
        return [e.value for e in cls]

    @classmethod
    def parse_csv(cls, raw: str | None) -> list['BaseEnum']:
        """
        Parses a comma separated query param like "claude_code,codex_cli"
        Raises ValueError on an unknown member
        """
        if not raw:
            return []
        return [cls(part.strip()) for part in raw.split(',') if part.strip()]
