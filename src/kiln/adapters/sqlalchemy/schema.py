"""Row <-> declarative object translation.

Specs and statuses are stored as JSON documents. Their shape is the domain
dataclasses themselves, validated and dumped through pydantic ``TypeAdapter``s
so enums and timestamps survive the round trip with their proper types.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cache
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

from kiln.domain.model import ObjectMeta, OwnerReference, ResourceKind, kind_info

if TYPE_CHECKING:
    from sqlalchemy.engine import RowMapping

    from kiln.domain.ports.store import AnyObject

_OWNER_REFERENCES: TypeAdapter[list[OwnerReference]] = TypeAdapter(list[OwnerReference])


@dataclass(frozen=True, slots=True)
class KindCodec:
    kind: ResourceKind
    spec: TypeAdapter[Any]
    status: TypeAdapter[Any]

    def dump_spec(self, spec: object) -> dict[str, Any]:
        return self.spec.dump_python(spec, mode="json")

    def dump_status(self, status: object) -> dict[str, Any]:
        return self.status.dump_python(status, mode="json")


@cache
def codec_for(kind: ResourceKind) -> KindCodec:
    info = kind_info(kind)
    return KindCodec(
        kind=kind,
        spec=TypeAdapter(info.spec_type),
        status=TypeAdapter(info.status_type),
    )


def object_to_row(obj: AnyObject) -> dict[str, Any]:
    codec = codec_for(obj.kind)
    meta = obj.metadata
    return {
        "kind": str(obj.kind),
        "name": meta.name,
        "namespace": meta.namespace,
        "uid": meta.uid,
        "generation": meta.generation,
        "resource_version": meta.resource_version,
        "labels": dict(meta.labels),
        "annotations": dict(meta.annotations),
        "owner_references": _OWNER_REFERENCES.dump_python(meta.owner_references, mode="json"),
        "finalizers": list(meta.finalizers),
        "spec": codec.dump_spec(obj.spec),
        "status": codec.dump_status(obj.status),
        "created_at": meta.creation_timestamp,
        "updated_at": meta.updated_at,
        "deletion_timestamp": meta.deletion_timestamp,
    }


def row_to_object(row: RowMapping) -> AnyObject:
    kind = ResourceKind(row["kind"])
    codec = codec_for(kind)
    metadata = ObjectMeta(
        name=row["name"],
        namespace=row["namespace"],
        uid=row["uid"],
        labels=dict(row["labels"]),
        annotations=dict(row["annotations"]),
        generation=row["generation"],
        resource_version=row["resource_version"],
        creation_timestamp=row["created_at"],
        updated_at=row["updated_at"],
        deletion_timestamp=row["deletion_timestamp"],
        owner_references=_OWNER_REFERENCES.validate_python(row["owner_references"]),
        finalizers=list(row["finalizers"]),
    )
    return kind_info(kind).build(
        metadata,
        codec.spec.validate_python(row["spec"]),
        codec.status.validate_python(row["status"]),
    )
