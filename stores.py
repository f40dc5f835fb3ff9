"""
Entity stores: one persistence-backed CRUD unit per collection.

Stores validate documents against the collection schemas in ``schemas.py``
and raise ``errors.ValidationError`` / ``errors.NotFoundError``; they never
know about HTTP.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

from bson import ObjectId
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.database import Database

import schemas
from database import create_document, get_documents, object_ids, serialize, to_object_id, utcnow
from errors import NotFoundError, StorageError, ValidationError
from uploads import ImageStorage

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10


def parse_model(model: Type[BaseModel], data: Dict[str, Any]) -> BaseModel:
    """Validate ``data`` against ``model``, mapping failures to ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
        raise ValidationError(
            f"Missing or invalid fields: {', '.join(fields)}",
            details={"fields": fields},
        ) from exc


def validate_fields(model: Type[BaseModel], data: Dict[str, Any]) -> Dict[str, Any]:
    return parse_model(model, data).model_dump()


def validate_id_list(ids: Any, resource: str) -> List[str]:
    if not isinstance(ids, (list, tuple)):
        raise ValidationError(f"No {resource.lower()} IDs provided", field="ids")
    if not all(isinstance(i, str) for i in ids):
        raise ValidationError("IDs must be strings", field="ids")
    cleaned = [i.strip() for i in ids if i.strip()]
    if not cleaned:
        raise ValidationError(f"No {resource.lower()} IDs provided", field="ids")
    return cleaned


@dataclass
class Page:
    records: List[Dict[str, Any]]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)


class DocumentStore:
    schema: Type[BaseModel]
    resource = "Record"

    def __init__(self, db: Database):
        self.db = db
        self.collection_name = schemas.collection_name(self.schema)
        self.collection = db[self.collection_name]

    def object_id(self, record_id: str) -> ObjectId:
        oid = to_object_id(record_id)
        if oid is None:
            raise ValidationError(f"Invalid {self.resource.lower()} id", field="id")
        return oid

    def list_all(self) -> List[Dict[str, Any]]:
        return [serialize(d) for d in get_documents(self.db, self.collection_name)]

    def paginate(self, page: int = DEFAULT_PAGE, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
        if page < 1 or page_size < 1:
            raise ValidationError("page and limit must be positive integers")
        docs = get_documents(self.db, self.collection_name, limit=page_size, skip=(page - 1) * page_size)
        total = self.collection.count_documents({})
        return Page([serialize(d) for d in docs], total, page, page_size)

    def get_by_id(self, record_id: str) -> Dict[str, Any]:
        doc = self.collection.find_one({"_id": self.object_id(record_id)})
        if doc is None:
            raise NotFoundError(self.resource, record_id)
        return serialize(doc)

    def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        doc = validate_fields(self.schema, fields)
        inserted_id = create_document(self.db, self.collection_name, doc)
        logger.info("Created %s %s", self.resource.lower(), inserted_id)
        return {**doc, "id": inserted_id}

    def update(self, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Overwrite only the supplied fields; the rest are left as stored."""
        oid = self.object_id(record_id)
        existing = self.collection.find_one({"_id": oid})
        if existing is None:
            raise NotFoundError(self.resource, record_id)
        if not fields:
            return serialize(existing)

        current = {k: v for k, v in existing.items() if k != "_id"}
        merged = validate_fields(self.schema, {**current, **fields})
        changes = {k: merged[k] for k in fields if k in merged}
        if not changes:
            return serialize(existing)
        updated = self.collection.find_one_and_update(
            {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
        if updated is None:
            raise NotFoundError(self.resource, record_id)
        self._after_update(existing, updated)
        return serialize(updated)

    def _after_update(self, before: Dict[str, Any], after: Dict[str, Any]) -> None:
        pass

    def delete_one(self, record_id: str) -> Dict[str, Any]:
        doc = self.collection.find_one_and_delete({"_id": self.object_id(record_id)})
        if doc is None:
            raise NotFoundError(self.resource, record_id)
        logger.info("Deleted %s %s", self.resource.lower(), record_id)
        return serialize(doc)

    def delete_many(self, ids: Any) -> int:
        """Delete every record in ``ids``; unknown identifiers are ignored."""
        ids = validate_id_list(ids, self.resource)
        oids = object_ids(ids)
        if not oids:
            return 0
        result = self.collection.delete_many({"_id": {"$in": oids}})
        logger.info("Bulk deleted %d of %d %s records", result.deleted_count, len(ids), self.collection_name)
        return result.deleted_count


class MediaStore(DocumentStore):
    """A store whose records own an uploaded image in the ``image`` field."""

    def __init__(self, db: Database, images: Optional[ImageStorage] = None):
        super().__init__(db)
        self.images = images

    def discard_images(self, urls: Iterable[Optional[str]]) -> None:
        if self.images is None:
            return
        for url in urls:
            if not url:
                continue
            try:
                self.images.discard(url)
            except StorageError:
                # Asset stays orphaned.
                logger.warning("Could not remove image %s", url, exc_info=True)

    def _after_update(self, before: Dict[str, Any], after: Dict[str, Any]) -> None:
        previous = before.get("image")
        if previous and previous != after.get("image"):
            self.discard_images([previous])

    def delete_one(self, record_id: str) -> Dict[str, Any]:
        record = super().delete_one(record_id)
        self.discard_images([record.get("image")])
        return record

    def delete_many(self, ids: Any) -> int:
        oids = object_ids(validate_id_list(ids, self.resource))
        images = [d.get("image") for d in self.collection.find({"_id": {"$in": oids}}, {"image": 1})]
        deleted = super().delete_many(ids)
        self.discard_images(images)
        return deleted


class AdvertisementStore(MediaStore):
    schema = schemas.Advertisement
    resource = "Advertisement"


class ServiceStore(MediaStore):
    schema = schemas.Service
    resource = "Service"


class EnquiryStore(DocumentStore):
    schema = schemas.Enquiry
    resource = "Enquiry"

    def upsert(self, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Insert an enquiry, or overwrite the one with the same name and email.

        Returns the stored record and whether it was newly created.
        """
        doc = validate_fields(self.schema, fields)
        key = {"name": doc["name"], "email": doc["email"]}
        now = utcnow()
        changes = {k: v for k, v in doc.items() if k not in key}
        changes["updatedAt"] = now
        result = self.collection.update_one(
            key, {"$set": changes, "$setOnInsert": {"createdAt": now}}, upsert=True
        )
        created = result.upserted_id is not None
        logger.info("%s enquiry from %s", "Created" if created else "Updated", doc["email"])
        return serialize(self.collection.find_one(key)), created

    def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self.upsert(fields)[0]


class VisitorStore(DocumentStore):
    schema = schemas.Visitor
    resource = "Visitor"

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow):
        super().__init__(db)
        self.clock = clock

    def record_visit(self, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Insert a visitor or refresh the location and visit time of a known address."""
        doc = validate_fields(self.schema, {**fields, "visitTime": None})
        key = {"ipAddress": doc["ipAddress"]}
        changes = {
            "city": doc["city"],
            "region": doc["region"],
            "country": doc["country"],
            "visitTime": self.clock(),
        }
        result = self.collection.update_one(key, {"$set": changes}, upsert=True)
        created = result.upserted_id is not None
        logger.debug("%s visitor %s", "New" if created else "Returning", doc["ipAddress"])
        return serialize(self.collection.find_one(key)), created

    def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return self.record_visit(fields)[0]
