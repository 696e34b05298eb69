from typing import Any, Dict

from humps import camelize  # type: ignore[attr-defined]
from pydantic import BaseModel, ConfigDict


def to_camel(string: str) -> str:
    return camelize(string)


BaseDomainConfig = ConfigDict(
    extra='forbid',
    use_enum_values=True,
    from_attributes=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


class BaseDomain(BaseModel):
    model_config = BaseDomainConfig

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()

    def get_provided_fields(self) -> Dict[str, Any]:
        """
        Return only fields that were explicitly provided in the input data.
        Fields explicitly set to None are included, defaults are not.
        """
        return self.model_dump(exclude_unset=True)

    def __repr_str__(self, join_str: str) -> str:  # type: ignore[override]
        tab = '\n    '
        return (
            tab
            + f'{join_str}{tab}'.join(repr(v) if a is None else f'{a}={v!r}' for a, v in self.__repr_args__())
            + '\n'
        )


class InboundDomain(BaseDomain):
    """
    Payloads sent by external clients (CLI uploader) may carry keys
    we do not know about yet, they are dropped rather than rejected
    """

    model_config = ConfigDict(**{**BaseDomainConfig, 'extra': 'ignore'})


class PaginatedResponse(BaseDomain):
    results: list[Any]
    count: int
    page: int
    page_count: int
    page_size: int
