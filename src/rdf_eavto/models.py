"""
Data model for the EAVTO store.

Value tags classify the object of a triple:

    IRI, Blank                 -> object_type 'iri' / 'blank'
    Literal(value, dt, lang)   -> generic literal
    Integer, Number, Boolean,
    Instant                    -> fast-path typed literals

``TripleRow`` is one stored row of the triples log, ``ResultSet`` an ordered
list of rows, ``HistoryEntry`` one transaction of an entity's timeline.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Iterator, NamedTuple, Optional, Union

import polars as pl

from rdf_eavto.namespaces import expand
from rdf_eavto.storage.xsd import XsdType

LANG_STRING = "rdf:langString"


class ObjectType(str, Enum):
    """Discriminator stored in ``triples.object_type``."""
    IRI = "iri"
    BLANK = "blank"
    LITERAL = "literal"


class ObjectColumns(NamedTuple):
    """The object columns of one triples row."""
    object_type: str
    object: Optional[str] = None
    object_value: Optional[str] = None
    object_datatype: Optional[str] = None
    object_language: Optional[str] = None
    object_integer: Optional[int] = None
    object_number: Optional[float] = None
    object_datetime: Optional[int] = None
    object_boolean: Optional[int] = None

    def decode(self) -> "Value":
        """
        Decode into a value tag.

        A populated typed column wins over the lexical form, so an
        ``xsd:int`` literal reads back as ``Integer``.
        """
        if self.object_type == ObjectType.IRI.value:
            return IRI(self.object)
        if self.object_type == ObjectType.BLANK.value:
            return Blank(self.object)
        if self.object_integer is not None:
            return Integer(self.object_integer)
        if self.object_number is not None:
            return Number(self.object_number)
        if self.object_datetime is not None:
            return Instant(self.object_datetime)
        if self.object_boolean is not None:
            return Boolean(self.object_boolean != 0)
        return Literal(self.object_value, self.object_datatype, self.object_language)


# =============================================================================
# Value tags
# =============================================================================

class Value(ABC):
    """Base class of the object value tags."""

    __slots__ = ()

    object_type: ClassVar[ObjectType] = ObjectType.LITERAL

    @property
    def lexical(self) -> Optional[str]:
        """Lexical form for literals, None for IRIs and blank nodes."""
        return None

    @property
    def datatype(self) -> Optional[str]:
        """Datatype IRI (compressed) for literals."""
        return None

    @abstractmethod
    def columns(self) -> ObjectColumns:
        """Storage columns for this value, without literal parsing."""

    def map_iris(self, fn: Callable[[str], str]) -> "Value":
        """Apply ``fn`` to every IRI the value holds (object IRI, datatype)."""
        return self


@dataclass(frozen=True, slots=True)
class IRI(Value):
    """IRI reference, e.g. ``foundation:Computer``."""
    value: str

    object_type: ClassVar[ObjectType] = ObjectType.IRI

    def columns(self) -> ObjectColumns:
        return ObjectColumns(object_type=self.object_type.value, object=self.value)

    def map_iris(self, fn: Callable[[str], str]) -> "IRI":
        return IRI(fn(self.value))

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Blank(Value):
    """Blank node, labelled ``_:<id>`` by convention."""
    value: str

    object_type: ClassVar[ObjectType] = ObjectType.BLANK

    def columns(self) -> ObjectColumns:
        return ObjectColumns(object_type=self.object_type.value, object=self.value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Literal(Value):
    """
    Generic literal: lexical form, optional datatype and language tag.

    A language-tagged literal always has datatype ``rdf:langString``; when
    none is given the expanded IRI is filled in.
    """
    value: str
    datatype_iri: Optional[str] = None
    language: Optional[str] = None

    def __post_init__(self) -> None:
        if self.language is not None and self.datatype_iri is None:
            object.__setattr__(self, "datatype_iri", expand(LANG_STRING))

    @property
    def lexical(self) -> str:
        return self.value

    @property
    def datatype(self) -> Optional[str]:
        return self.datatype_iri

    def columns(self) -> ObjectColumns:
        return ObjectColumns(
            object_type=self.object_type.value,
            object_value=self.value,
            object_datatype=self.datatype_iri,
            object_language=self.language,
        )

    def map_iris(self, fn: Callable[[str], str]) -> "Literal":
        if self.datatype_iri is None:
            return self
        return Literal(self.value, fn(self.datatype_iri), self.language)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Integer(Value):
    value: int

    @property
    def lexical(self) -> str:
        return str(self.value)

    @property
    def datatype(self) -> str:
        return XsdType.INTEGER.iri

    def columns(self) -> ObjectColumns:
        return ObjectColumns(
            object_type=self.object_type.value,
            object_value=self.lexical,
            object_datatype=self.datatype,
            object_integer=self.value,
        )


@dataclass(frozen=True, slots=True)
class Number(Value):
    """
    IEEE-754 double.

    Equality is exact: two Numbers are equal only when their doubles are.
    Callers that want a tolerance use ``isclose``.
    """
    value: float

    @property
    def lexical(self) -> str:
        return repr(float(self.value))

    @property
    def datatype(self) -> str:
        return XsdType.DECIMAL.iri

    def columns(self) -> ObjectColumns:
        return ObjectColumns(
            object_type=self.object_type.value,
            object_value=self.lexical,
            object_datatype=self.datatype,
            object_number=float(self.value),
        )

    def isclose(self, other: "Number", rel_tol: float = 1e-9, abs_tol: float = 0.0) -> bool:
        return math.isclose(self.value, other.value, rel_tol=rel_tol, abs_tol=abs_tol)


@dataclass(frozen=True, slots=True)
class Boolean(Value):
    value: bool

    @property
    def lexical(self) -> str:
        return "true" if self.value else "false"

    @property
    def datatype(self) -> str:
        return XsdType.BOOLEAN.iri

    def columns(self) -> ObjectColumns:
        return ObjectColumns(
            object_type=self.object_type.value,
            object_value=self.lexical,
            object_datatype=self.datatype,
            object_boolean=1 if self.value else 0,
        )


@dataclass(frozen=True, slots=True)
class Instant(Value):
    """A point in time, held as Unix epoch seconds (UTC)."""
    seconds: int

    @classmethod
    def from_datetime(cls, value: datetime) -> "Instant":
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return cls(math.floor(value.timestamp()))

    def to_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.seconds, tz=timezone.utc)

    @property
    def lexical(self) -> str:
        return self.to_datetime().strftime("%Y-%m-%dT%H:%M:%SZ")

    @property
    def datatype(self) -> str:
        return XsdType.DATETIME.iri

    def columns(self) -> ObjectColumns:
        return ObjectColumns(
            object_type=self.object_type.value,
            object_value=self.lexical,
            object_datatype=self.datatype,
            object_datetime=self.seconds,
        )


ValueLike = Union[Value, str, int, float, bool, datetime]


def to_value(obj: ValueLike) -> Value:
    """
    Coerce a Python value into a value tag.

    Strings become ``xsd:string`` literals; IRIs must be passed as ``IRI``.
    """
    if isinstance(obj, Value):
        return obj
    if isinstance(obj, bool):
        return Boolean(obj)
    if isinstance(obj, int):
        return Integer(obj)
    if isinstance(obj, float):
        return Number(obj)
    if isinstance(obj, datetime):
        return Instant.from_datetime(obj)
    if isinstance(obj, str):
        return Literal(obj, XsdType.STRING.iri)
    raise TypeError(f"Cannot convert {type(obj).__name__} to an object value")


# =============================================================================
# Logical input
# =============================================================================

@dataclass(frozen=True, slots=True)
class Triple:
    """A triple to assert: subject, predicate and object value."""
    subject: str
    predicate: str
    object: Value

    @classmethod
    def of(cls, subject: str, predicate: str, obj: ValueLike) -> "Triple":
        return cls(subject, predicate, to_value(obj))

    def map_iris(self, fn: Callable[[str], str]) -> "Triple":
        return Triple(fn(self.subject), fn(self.predicate), self.object.map_iris(fn))


@dataclass(frozen=True, slots=True)
class RetractPattern:
    """
    Selects active rows to retract.

    Without ``value`` every active value of ``predicate`` on ``subject`` is
    retracted; with ``value`` only rows whose decoded value is equal.
    """
    subject: str
    predicate: str
    value: Optional[Value] = None

    def map_iris(self, fn: Callable[[str], str]) -> "RetractPattern":
        value = self.value.map_iris(fn) if self.value is not None else None
        return RetractPattern(fn(self.subject), fn(self.predicate), value)


# =============================================================================
# Stored rows
# =============================================================================

TRIPLE_COLUMNS: tuple[str, ...] = (
    "id",
    "subject",
    "predicate",
    "object_type",
    "object",
    "object_value",
    "object_datatype",
    "object_language",
    "object_integer",
    "object_number",
    "object_datetime",
    "object_boolean",
    "tx",
    "origin_id",
    "retracted",
    "created_at",
)


@dataclass(frozen=True, slots=True)
class TripleRow:
    """One row of the triples log."""
    id: int
    subject: str
    predicate: str
    object_type: str
    object: Optional[str]
    object_value: Optional[str]
    object_datatype: Optional[str]
    object_language: Optional[str]
    object_integer: Optional[int]
    object_number: Optional[float]
    object_datetime: Optional[int]
    object_boolean: Optional[int]
    tx: int
    origin_id: int
    retracted: bool
    created_at: int

    @classmethod
    def from_record(cls, record: tuple) -> "TripleRow":
        """Build from a tuple ordered like TRIPLE_COLUMNS."""
        values = dict(zip(TRIPLE_COLUMNS, record))
        values["retracted"] = bool(values["retracted"])
        return cls(**values)

    @property
    def columns(self) -> ObjectColumns:
        return ObjectColumns(
            object_type=self.object_type,
            object=self.object,
            object_value=self.object_value,
            object_datatype=self.object_datatype,
            object_language=self.object_language,
            object_integer=self.object_integer,
            object_number=self.object_number,
            object_datetime=self.object_datetime,
            object_boolean=self.object_boolean,
        )

    @property
    def value(self) -> Value:
        """Decoded object value, see ``ObjectColumns.decode``."""
        return self.columns.decode()

    @property
    def object_or_value(self) -> Optional[str]:
        if self.object_type == ObjectType.LITERAL.value:
            return self.object_value
        return self.object

    def map_iris(self, fn: Callable[[str], str]) -> "TripleRow":
        """Copy with subject, predicate, object IRI and datatype mapped by ``fn``."""
        return replace(
            self,
            subject=fn(self.subject),
            predicate=fn(self.predicate),
            object=(
                fn(self.object)
                if self.object is not None and self.object_type == ObjectType.IRI.value
                else self.object
            ),
            object_datatype=(
                fn(self.object_datatype) if self.object_datatype is not None else None
            ),
        )

    def to_wire(self) -> dict[str, Any]:
        """External wire shape of one triple."""
        return {
            "subject": self.subject,
            "predicate": self.predicate,
            "object": self.object_or_value,
            "object_type": self.object_type,
            "datatype": self.object_datatype,
            "language": self.object_language,
            "tx": self.tx,
            "origin_id": self.origin_id,
            "retracted": self.retracted,
        }


WIRE_SCHEMA = {
    "subject": pl.Utf8,
    "predicate": pl.Utf8,
    "object": pl.Utf8,
    "object_type": pl.Utf8,
    "datatype": pl.Utf8,
    "language": pl.Utf8,
    "tx": pl.Int64,
    "origin_id": pl.Int64,
    "retracted": pl.Boolean,
}


@dataclass
class ResultSet:
    """Ordered list of triple rows plus count."""
    triples: list[TripleRow] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.triples)

    def is_empty(self) -> bool:
        return not self.triples

    def first(self) -> Optional[TripleRow]:
        return self.triples[0] if self.triples else None

    def filter_by_predicate(self, predicate: str) -> list[TripleRow]:
        return [t for t in self.triples if t.predicate == predicate]

    def values(self) -> list[Value]:
        return [t.value for t in self.triples]

    def map_iris(self, fn: Callable[[str], str]) -> "ResultSet":
        return ResultSet([t.map_iris(fn) for t in self.triples])

    def to_wire(self) -> dict[str, Any]:
        return {
            "triples": [t.to_wire() for t in self.triples],
            "count": self.count,
        }

    def to_polars(self) -> pl.DataFrame:
        """Wire columns as a Polars DataFrame."""
        if not self.triples:
            return pl.DataFrame(schema=WIRE_SCHEMA)
        return pl.DataFrame([t.to_wire() for t in self.triples], schema=WIRE_SCHEMA)

    def __iter__(self) -> Iterator[TripleRow]:
        return iter(self.triples)

    def __len__(self) -> int:
        return len(self.triples)


@dataclass
class HistoryEntry:
    """
    One transaction on an entity's timeline.

    ``triples`` were asserted in ``tx`` (their ``retracted`` flag shows the
    current state); ``retracted`` lists the rows this transaction retracted.
    """
    tx: int
    triples: list[TripleRow] = field(default_factory=list)
    retracted: list[TripleRow] = field(default_factory=list)

    def map_iris(self, fn: Callable[[str], str]) -> "HistoryEntry":
        return HistoryEntry(
            self.tx,
            [t.map_iris(fn) for t in self.triples],
            [t.map_iris(fn) for t in self.retracted],
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "tx": self.tx,
            "triples": [t.to_wire() for t in self.triples],
            "retracted": [t.to_wire() for t in self.retracted],
        }


@dataclass(frozen=True)
class Origin:
    """Named provenance tag."""
    id: int
    name: str
    description: Optional[str] = None


@dataclass(frozen=True)
class TransactionRecord:
    """One row of the transactions log."""
    tx: int
    origin: str
    created_at: int


@dataclass(frozen=True)
class SearchHit:
    """A class or individual whose label matched a search term."""
    id: str
    label: str
    icon: Optional[str] = None
    is_class: bool = False

    def map_iris(self, fn: Callable[[str], str]) -> "SearchHit":
        return replace(self, id=fn(self.id))


@dataclass(frozen=True)
class ApplicableProperty:
    """
    A property whose ``rdfs:domain`` is a class or one of its superclasses.

    ``kind`` is ``"datatype"`` when the range is a literal datatype and
    ``"object"`` otherwise. ``inherited`` is set when ``source_class`` is a
    superclass rather than the class that was asked about.
    """
    id: str
    label: str
    kind: str
    source_class: str
    source_label: str
    inherited: bool = False
    range: Optional[str] = None
    range_label: Optional[str] = None
    description: Optional[str] = None
    functional: bool = False

    @property
    def cardinality(self) -> str:
        return "exactly one" if self.functional else "one or more"

    def map_iris(self, fn: Callable[[str], str]) -> "ApplicableProperty":
        return replace(
            self,
            id=fn(self.id),
            source_class=fn(self.source_class),
            range=fn(self.range) if self.range is not None else None,
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind,
            "range": self.range,
            "range_label": self.range_label,
            "description": self.description,
            "cardinality": self.cardinality,
            "source_class": self.source_class,
            "source_label": self.source_label,
            "inherited": self.inherited,
        }
