"""PostgreSQL Storage Adapters.

SQLAlchemy implementations of the resource and vocabulary ports.

Writes issued inside `SqlResourceStore.transaction()` share one session and
commit together; outside a transaction each call uses its own session.
"""

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, List, Optional

from sqlalchemy import Select, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from domain.ports import ResourceStore, Vocabulary, VocabularyStore
from domain.resource_models import (
    Annotation,
    AnnotationRefPayload,
    LiteralPayload,
    Resource,
    ResourceKind,
    ResourceRefPayload,
    UriPayload,
    Value,
)

from .models import CustomVocabRecord, ItemSetMembership, ResourceRecord, ValueRecord

logger = logging.getLogger(__name__)

_current_session: ContextVar[Optional[AsyncSession]] = ContextVar("resource_store_session", default=None)


def build_conflict_query(
    property_term: str,
    values: List[Value],
    exclude_resource_id: Optional[int] = None,
) -> Optional[Select]:
    """Build the uniqueness lookup of a property.

    Matches another resource holding one of the payloads (linked resource id,
    URI or exact literal text) under the same property. Returns None when the
    values carry no comparable payload.
    """
    resource_ids: List[int] = []
    uris: List[str] = []
    literals: List[str] = []
    for value in values:
        if value.linked_resource_id is not None:
            resource_ids.append(value.linked_resource_id)
        elif value.uri is not None:
            uris.append(value.uri)
        elif value.is_literal:
            literals.append(value.payload.text)

    clauses = []
    if resource_ids:
        clauses.append(ValueRecord.value_resource_id.in_(resource_ids))
    if uris:
        clauses.append(ValueRecord.uri.in_(uris))
    if literals:
        clauses.append(ValueRecord.value.in_(literals))
    if not clauses:
        return None

    query = select(ValueRecord.resource_id)
    if exclude_resource_id is not None:
        query = query.where(ValueRecord.resource_id != exclude_resource_id)
    return query.where(ValueRecord.property_term == property_term).where(or_(*clauses)).limit(1)


def value_to_record(value: Value, resource_id: int, position: int, annotation_id: Optional[int]) -> ValueRecord:
    record = ValueRecord(
        resource_id=resource_id,
        property_term=value.property_term,
        position=position,
        type=value.data_type,
        lang=value.language,
        is_public=value.is_public,
        value_annotation_id=annotation_id,
    )
    payload = value.payload
    if isinstance(payload, ResourceRefPayload):
        record.value_resource_id = payload.resource_id
    elif isinstance(payload, UriPayload):
        record.uri = payload.uri
        record.value = payload.label
    elif isinstance(payload, LiteralPayload):
        record.value = payload.text
    return record


def record_to_value(record: ValueRecord) -> Value:
    if record.value_resource_id is not None:
        payload = ResourceRefPayload(record.value_resource_id)
    elif record.uri is not None:
        payload = UriPayload(record.uri, record.value)
    elif record.value is None and record.value_annotation_id is not None:
        payload = AnnotationRefPayload(record.value_annotation_id)
    else:
        payload = LiteralPayload(record.value or "")
    return Value(
        property_term=record.property_term,
        payload=payload,
        data_type=record.type,
        is_public=record.is_public,
        language=record.lang,
    )


class SqlResourceStore(ResourceStore):
    """Resource store on the `resources` / `resource_values` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        session = _current_session.get()
        if session is not None:
            yield session
            return

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if _current_session.get() is not None:
            yield
            return

        async with self.session_factory() as session:
            token = _current_session.set(session)
            try:
                yield
                await session.commit()
            except Exception:
                await session.rollback()
                logger.debug("Transaction rolled back")
                raise
            finally:
                _current_session.reset(token)

    # ========================================
    # Reads
    # ========================================

    async def get_resource(self, resource_id: int) -> Optional[Resource]:
        async with self._session() as session:
            return await self._load(session, resource_id)

    async def _load(self, session: AsyncSession, resource_id: int) -> Optional[Resource]:
        record = await session.get(ResourceRecord, resource_id)
        if record is None:
            return None

        kind = ResourceKind.parse(record.resource_type)
        resource_class = Annotation if kind == ResourceKind.VALUE_ANNOTATION else Resource
        resource = resource_class(
            kind=kind,
            id=record.id,
            title=record.title,
            is_public=record.is_public,
            template_id=record.resource_template_id,
            class_id=record.resource_class_id,
        )

        result = await session.execute(
            select(ValueRecord).where(ValueRecord.resource_id == resource_id).order_by(ValueRecord.position)
        )
        for value_record in result.scalars().all():
            value = record_to_value(value_record)
            if value_record.value_annotation_id is not None and not isinstance(value.payload, AnnotationRefPayload):
                value.annotation = await self._load(session, value_record.value_annotation_id)
            resource.add_value(value)

        if kind == ResourceKind.ITEM:
            result = await session.execute(
                select(ItemSetMembership.item_set_id)
                .where(ItemSetMembership.item_id == resource_id)
                .order_by(ItemSetMembership.position)
            )
            resource.item_set_ids = list(result.scalars().all())

            result = await session.execute(
                select(ResourceRecord.id)
                .where(ResourceRecord.parent_id == resource_id)
                .order_by(ResourceRecord.position)
            )
            for media_id in result.scalars().all():
                media = await self._load(session, media_id)
                if media is not None:
                    resource.media.append(media)

        return resource

    async def resource_exists(self, resource_id: int) -> bool:
        async with self._session() as session:
            result = await session.execute(select(ResourceRecord.id).where(ResourceRecord.id == resource_id))
            return result.scalar_one_or_none() is not None

    async def existing_ids(self, resource_ids: List[int], kind: Optional[ResourceKind] = None) -> List[int]:
        if not resource_ids:
            return []
        query = select(ResourceRecord.id).where(ResourceRecord.id.in_(set(resource_ids)))
        if kind is not None:
            query = query.where(ResourceRecord.resource_type == kind.value)
        async with self._session() as session:
            result = await session.execute(query.order_by(ResourceRecord.id))
            return list(result.scalars().all())

    async def find_conflicting_resource(
        self,
        property_term: str,
        values: List[Value],
        exclude_resource_id: Optional[int] = None,
    ) -> Optional[int]:
        query = build_conflict_query(property_term, values, exclude_resource_id)
        if query is None:
            return None
        async with self._session() as session:
            result = await session.execute(query)
            return result.scalar_one_or_none()

    # ========================================
    # Writes
    # ========================================

    async def save(self, resource: Resource) -> Resource:
        async with self._session() as session:
            await self._save_record(session, resource)
            await session.flush()
        logger.debug(f"Saved {resource.kind.value} #{resource.id}")
        return resource

    async def _save_record(
        self,
        session: AsyncSession,
        resource: Resource,
        parent_id: Optional[int] = None,
        position: int = 0,
    ) -> None:
        record = await session.get(ResourceRecord, resource.id) if resource.id is not None else None
        if record is None:
            record = ResourceRecord(id=resource.id)
            session.add(record)

        record.resource_type = resource.kind.value
        record.title = resource.title
        record.is_public = resource.is_public
        record.resource_template_id = resource.template_id
        record.resource_class_id = resource.class_id
        record.parent_id = parent_id
        record.position = position
        await session.flush()
        resource.id = record.id

        await session.execute(delete(ValueRecord).where(ValueRecord.resource_id == record.id))
        for index, value in enumerate(resource.iter_values()):
            annotation_id = None
            if value.annotation is not None:
                await self._save_record(session, value.annotation)
                annotation_id = value.annotation.id
            elif isinstance(value.payload, AnnotationRefPayload):
                annotation_id = value.payload.annotation_id
            session.add(value_to_record(value, record.id, index, annotation_id))

        if resource.kind == ResourceKind.ITEM:
            await session.execute(delete(ItemSetMembership).where(ItemSetMembership.item_id == record.id))
            for index, item_set_id in enumerate(resource.item_set_ids):
                session.add(ItemSetMembership(item_id=record.id, item_set_id=item_set_id, position=index))
            for index, media in enumerate(resource.media):
                await self._save_record(session, media, parent_id=record.id, position=index)


class SqlVocabularyStore(VocabularyStore):
    """Vocabulary store on the `custom_vocabs` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def _to_vocabulary(record: CustomVocabRecord) -> Vocabulary:
        return Vocabulary(
            id=record.id,
            label=record.label,
            terms=list(record.terms or []),
            value_type=record.value_type,
        )

    async def list_vocabularies(self) -> List[Vocabulary]:
        async with self.session_factory() as session:
            result = await session.execute(select(CustomVocabRecord).order_by(CustomVocabRecord.id))
            return [self._to_vocabulary(r) for r in result.scalars().all()]

    async def append_terms(self, vocabulary_id: int, terms: List[str]) -> Vocabulary:
        async with self.session_factory() as session:
            try:
                record = await session.get(CustomVocabRecord, vocabulary_id)
                if record is None:
                    raise KeyError(f"Vocabulary #{vocabulary_id} not found")
                existing = list(record.terms or [])
                record.terms = existing + [t for t in terms if t not in existing]
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            return self._to_vocabulary(record)
