"""
Batch labels -- the opaque record carried by a batch's QR code.

The kernel issues a label for a batch and later resolves a scanned payload
back to that batch.  Encoding the payload as an image is the label
collaborator's job; the kernel only produces and parses the JSON record.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from garment_kernel.exceptions import InvalidLabelError

LABEL_KIND = "production-batch"


@dataclass(frozen=True)
class BatchLabel:
    batch_id: UUID
    batch_sku: str
    issued_at: datetime
    kind: str = LABEL_KIND

    def to_payload(self) -> str:
        return json.dumps(
            {
                "id": str(self.batch_id),
                "sku": self.batch_sku,
                "type": self.kind,
                "issuedAt": self.issued_at.isoformat(),
            },
            sort_keys=True,
        )

    @classmethod
    def from_payload(cls, payload: str) -> "BatchLabel":
        """Parse a scanned payload.  Raises InvalidLabelError on any defect."""
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as exc:
            raise InvalidLabelError("payload is not JSON") from exc
        if not isinstance(data, dict):
            raise InvalidLabelError("payload is not an object")
        if data.get("type") != LABEL_KIND:
            raise InvalidLabelError(f"unexpected label type {data.get('type')!r}")
        try:
            batch_id = UUID(str(data["id"]))
            batch_sku = str(data["sku"])
            issued_at = datetime.fromisoformat(str(data["issuedAt"]))
        except KeyError as exc:
            raise InvalidLabelError(f"missing field {exc.args[0]}") from exc
        except ValueError as exc:
            raise InvalidLabelError(str(exc)) from exc
        return cls(batch_id=batch_id, batch_sku=batch_sku, issued_at=issued_at)
