from typing import TYPE_CHECKING, Any, Dict, Generic, Iterator, List, Optional, Sequence, Type, TypeVar, Union

from loguru import logger
from sqlalchemy import Insert, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, MultipleResultsFound, NoResultFound
from sqlalchemy.orm import Query, Session
from sqlalchemy.sql.elements import BinaryExpression, ColumnElement, UnaryExpression

from src.common.domain import BaseDomain
from src.network.database.repository.exceptions import (
    MultipleRepositoryObjectsFound,
    PreventingModelTruncation,
    RepositoryObjectNotFound,
    UnsupportedDialect,
)
from src.network.database.session import db

if TYPE_CHECKING:
    from src.common.model import BaseModel


class BaseQueryManager:
    def __init__(self, model: Type['BaseModel']) -> None:  # type: ignore[type-arg]
        self.model = model

    def get_query(self, *clauses: Any, **specification: Any) -> 'Query[BaseModel]':  # type: ignore[type-arg]
        query = self.model._get_session().query(self.model)
        for clause in clauses:
            query = query.where(clause)
        for key, value in specification.items():
            query = self.model._parse_specification(query, key, value)
        return query


ReadDomainType = TypeVar('ReadDomainType', bound=BaseDomain)
CreateDomainType = TypeVar('CreateDomainType', bound=BaseDomain)


class RepositoryMixin(Generic[ReadDomainType, CreateDomainType]):
    """
    Database access layer. All interaction with the database should be routed
    through this layer. all public interfaces accept domains subclasses from the
    pydantic base class with from_attributes for simple domain -> orm mapping
    """

    __create_domain__: Type[CreateDomainType] = NotImplemented
    __read_domain__: Type[ReadDomainType] = NotImplemented
    query_manager: Type[BaseQueryManager] = BaseQueryManager

    @classmethod
    def _get_session(cls) -> Session:
        return db.session

    @classmethod
    def get_query(cls, *clauses: Any, **specification: Any) -> 'Query[BaseModel]':  # type: ignore[type-arg]
        return cls.query_manager(cls).get_query(*clauses, **specification)  # type: ignore[arg-type]

    @classmethod
    def get(cls, *clauses: Union[BinaryExpression[Any], ColumnElement[bool]], **specification: Any) -> ReadDomainType:
        instance = cls._get(*clauses, **specification)

        return cls._to_domain(instance)

    @classmethod
    def get_or_none(cls, *clauses: Any, **specification: Any) -> ReadDomainType | None:
        try:
            instance = cls._get(*clauses, **specification)
        except RepositoryObjectNotFound:
            return None

        return cls._to_domain(instance)

    @classmethod
    def _get(cls, *clauses: Any, **specification: Any) -> 'BaseModel[Any, Any]':
        try:
            return cls.get_query(*clauses, **specification).one()
        except MultipleResultsFound:
            raise MultipleRepositoryObjectsFound(f'Multiple results found for {cls.__name__}: {specification}!')
        except NoResultFound:
            raise RepositoryObjectNotFound(f'{cls.__name__}: {specification} not found!')

    @classmethod
    def list(
        cls,
        *clauses: Any,
        ordering: Optional[List[Union[str, UnaryExpression]]] = None,
        **specification: Any,  # type: ignore[type-arg]
    ) -> List[ReadDomainType]:
        query = cls.get_query(*clauses, **specification)
        if ordering:
            query = query.order_by(*cls._parse_ordering(ordering))
        return [cls._to_domain(obj) for obj in query]

    @classmethod
    def list_attribute(cls, attribute: str, *clauses: Any, **specification: Any) -> List[Any]:
        query = cls.get_query(*clauses, **specification).with_entities(getattr(cls, attribute))
        return [values_list[0] for values_list in query]

    @classmethod
    def count(cls, *clauses: Any, **specification: Any) -> int:
        query = cls.get_query(*clauses, **specification)
        return int(query.count())

    @classmethod
    def create(cls, domain_obj: CreateDomainType) -> ReadDomainType:
        model_instance = cls._create(**domain_obj.to_dict())
        return cls._to_domain(model_instance)

    @classmethod
    def bulk_create(
        cls,
        domain_objs: Sequence[CreateDomainType],
        chunk_size: int = 1000,
    ) -> int:
        """
        Bulk create in chunks
        """
        # Ignore empty lists
        if len(domain_objs) == 0:
            return 0

        for chunk in cls._chunks(domain_objs, chunk_size):
            mappings = [domain_obj.to_dict() for domain_obj in chunk]
            statement = cls._dialect_insert().values(mappings)
            try:
                cls._get_session().execute(statement)
            except IntegrityError:
                cls._get_session().rollback()
                raise
        return len(domain_objs)

    @classmethod
    def upsert_statement(
        cls,
        mappings: Sequence[Dict[str, Any]],
        conflict_columns: Sequence[str],
        update_columns: Sequence[str],
        session: Session | None = None,
    ) -> Insert:
        """
        Single "insert or overwrite on conflict" statement. Columns outside of
        update_columns (id, created_at) keep their original values on conflict.
        """
        statement = cls._dialect_insert(session).values(list(mappings))
        excluded = statement.excluded
        set_ = {column: getattr(excluded, column) for column in update_columns}
        if hasattr(cls, 'modified_at'):
            set_['modified_at'] = func.now()
        return statement.on_conflict_do_update(index_elements=list(conflict_columns), set_=set_)

    @classmethod
    def bulk_upsert(
        cls,
        mappings: Sequence[Dict[str, Any]],
        conflict_columns: Sequence[str],
        update_columns: Sequence[str],
    ) -> int:
        if not mappings:
            return 0

        statement = cls.upsert_statement(mappings, conflict_columns, update_columns)
        try:
            cls._get_session().execute(statement)
        except IntegrityError:
            cls._get_session().rollback()
            raise
        return len(mappings)

    @classmethod
    def delete(cls, *clauses: Union[BinaryExpression[Any], ColumnElement[bool]]) -> int:
        if not clauses:
            raise PreventingModelTruncation(f'Must pass clauses to avoid truncating {cls.__name__}')

        # Ensure clauses like and_() or or_() that ultimately evaluate to nothing are checked as well
        if not any(str(clause.compile()) for clause in clauses):
            raise PreventingModelTruncation(f'Empty clauses would cause truncating {cls.__name__}!')

        try:
            return cls.get_query(*clauses).delete(synchronize_session=False)
        except IntegrityError:
            cls._get_session().rollback()
            raise

    @classmethod
    def update(cls, id: str, **updates: Any) -> ReadDomainType:
        model_instance = cls.get_query(id=id).one()
        for key, value in updates.items():
            if not hasattr(model_instance, key):
                raise ValueError(f"The key '{key}' is not a valid attribute for this model.")
            setattr(model_instance, key, value)

        try:
            cls._get_session().flush([model_instance])
        except IntegrityError:
            cls._get_session().rollback()
            raise

        return cls._to_domain(model_instance)

    @classmethod
    def _create(cls, **attributes: Any) -> 'BaseModel[Any, Any]':
        model_instance = cls(**attributes)
        cls._get_session().add(model_instance)
        try:
            cls._get_session().flush([model_instance])
        except IntegrityError:
            cls._get_session().rollback()
            raise

        return model_instance  # type: ignore[return-value]

    @classmethod
    def _dialect_insert(cls, session: Session | None = None) -> Insert:
        """
        ON CONFLICT support lives on the dialect specific insert constructs
        """
        dialect = (session or cls._get_session()).get_bind().dialect.name
        if dialect == 'postgresql':
            return postgresql.insert(cls)
        if dialect == 'sqlite':
            return sqlite.insert(cls)

        logger.error('no upsert support for dialect', dialect=dialect, model=cls.__name__)
        raise UnsupportedDialect(f'{dialect} does not support upserts', context={'model': cls.__name__})

    @classmethod
    def _parse_ordering(
        cls, ordering: List[Union[str, 'UnaryExpression[Any]']] | None = None
    ) -> List['UnaryExpression[Any]']:
        """
        Parses str references for a field like:
        ['-period_start', 'application']
        """
        order_expressions = []
        for order in ordering or []:
            if isinstance(order, str):
                if order[0] == '-':
                    order_expressions.append(getattr(cls, order[1:]).desc())
                else:
                    order_expressions.append(getattr(cls, order).asc())
            else:
                # Assume already an expression
                order_expressions.append(order)

        return order_expressions

    @classmethod
    def _parse_specification(cls, query: Any, key: Any, value: Any) -> Any:
        return query.where(getattr(cls, key) == value)

    @classmethod
    def _to_domain(cls, model_instance: 'BaseModel[Any, Any]') -> ReadDomainType:
        return cls.__read_domain__.model_validate(model_instance)  # type: ignore[no-any-return]

    @classmethod
    def _chunks(cls, lst: Sequence[Any], chunk_size: int) -> Iterator[Sequence[Any]]:
        """Yield successive n-sized chunks from lst."""
        for i in range(0, len(lst), chunk_size):
            yield lst[i : i + chunk_size]
