from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any


class JsonSerializable(ABC):
    """
    Abstract base class for objects sent to the CRPT API as JSON.
    """

    @abstractmethod
    def to_json(self) -> str:
        """
        Returns:
            The JSON text for the object. Subclasses must implement this method.
        """


class JsonBuilder:
    """
    Builds a JSON object field by field, leaving out absent values.

    ``None`` values and empty sequences are skipped; strings only have embedded
    double quotes escaped.

    Raises:
        TypeError: If a value is not a string, a JsonSerializable, or a
            sequence of JsonSerializable objects
    """

    def __init__(self) -> None:
        self._parts: list[str] = []

    def add_field(self, name: str, value: Any) -> "JsonBuilder":
        if value is None:
            return self
        if isinstance(value, str):
            self._parts.append(f'"{name}":"{self._escape(value)}"')
        elif isinstance(value, JsonSerializable):
            self._parts.append(f'"{name}":{value.to_json()}')
        elif isinstance(value, Sequence):
            if not value:
                return self
            items = ",".join(self._item_json(name, item) for item in value)
            self._parts.append(f'"{name}":[{items}]')
        else:
            raise TypeError(
                f"Field {name!r} must be a str, JsonSerializable or sequence, "
                f"got {type(value).__name__}"
            )
        return self

    def build(self) -> str:
        return "{" + ",".join(self._parts) + "}"

    @staticmethod
    def _item_json(name: str, item: Any) -> str:
        if not isinstance(item, JsonSerializable):
            raise TypeError(
                f"Items of {name!r} must be JsonSerializable, got {type(item).__name__}"
            )
        return item.to_json()

    @staticmethod
    def _escape(value: str) -> str:
        return value.replace('"', '\\"')


@dataclass
class Description(JsonSerializable):
    participant_inn: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Description":
        return cls(participant_inn=data.get("participantInn"))

    def to_json(self) -> str:
        return JsonBuilder().add_field("participantInn", self.participant_inn).build()


@dataclass
class Product(JsonSerializable):
    certificate_document: str | None = None
    certificate_document_date: str | None = None
    certificate_document_number: str | None = None
    owner_inn: str | None = None
    producer_inn: str | None = None
    production_date: str | None = None
    tnved_code: str | None = None
    uit_code: str | None = None
    uitu_code: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Product":
        return cls(
            certificate_document=data.get("certificate_document"),
            certificate_document_date=data.get("certificate_document_date"),
            certificate_document_number=data.get("certificate_document_number"),
            owner_inn=data.get("owner_inn"),
            producer_inn=data.get("producer_inn"),
            production_date=data.get("production_date"),
            tnved_code=data.get("tnved_code"),
            uit_code=data.get("uit_code"),
            uitu_code=data.get("uitu_code"),
        )

    def to_json(self) -> str:
        return (
            JsonBuilder()
            .add_field("certificate_document", self.certificate_document)
            .add_field("certificate_document_date", self.certificate_document_date)
            .add_field("certificate_document_number", self.certificate_document_number)
            .add_field("owner_inn", self.owner_inn)
            .add_field("producer_inn", self.producer_inn)
            .add_field("production_date", self.production_date)
            .add_field("tnved_code", self.tnved_code)
            .add_field("uit_code", self.uit_code)
            .add_field("uitu_code", self.uitu_code)
            .build()
        )


@dataclass
class Document(JsonSerializable):
    """
    "Introduce into circulation" document for goods produced in the RF.

    Attribute names follow the API wire names, except ``import_request``
    (``importRequest``) and the nested ``description``.
    """

    description: Description | None = None
    doc_id: str | None = None
    doc_status: str | None = None
    doc_type: str | None = None
    import_request: str | None = None
    owner_inn: str | None = None
    participant_inn: str | None = None
    producer_inn: str | None = None
    production_date: str | None = None
    production_type: str | None = None
    products: list[Product] = field(default_factory=list)
    reg_date: str | None = None
    reg_number: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Document":
        """
        Create a Document from a mapping keyed by API wire names.
        Unknown keys are ignored.
        """
        description = data.get("description")
        return cls(
            description=(
                Description.from_dict(description) if description is not None else None
            ),
            doc_id=data.get("doc_id"),
            doc_status=data.get("doc_status"),
            doc_type=data.get("doc_type"),
            import_request=data.get("importRequest"),
            owner_inn=data.get("owner_inn"),
            participant_inn=data.get("participant_inn"),
            producer_inn=data.get("producer_inn"),
            production_date=data.get("production_date"),
            production_type=data.get("production_type"),
            products=[Product.from_dict(p) for p in data.get("products") or []],
            reg_date=data.get("reg_date"),
            reg_number=data.get("reg_number"),
        )

    def to_json(self) -> str:
        return (
            JsonBuilder()
            .add_field("description", self.description)
            .add_field("doc_id", self.doc_id)
            .add_field("doc_status", self.doc_status)
            .add_field("doc_type", self.doc_type)
            .add_field("importRequest", self.import_request)
            .add_field("owner_inn", self.owner_inn)
            .add_field("participant_inn", self.participant_inn)
            .add_field("producer_inn", self.producer_inn)
            .add_field("production_date", self.production_date)
            .add_field("production_type", self.production_type)
            .add_field("products", self.products)
            .add_field("reg_date", self.reg_date)
            .add_field("reg_number", self.reg_number)
            .build()
        )
