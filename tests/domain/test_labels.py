"""Batch label payload: issue and parse."""

import json
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from garment_kernel.domain.labels import LABEL_KIND, BatchLabel
from garment_kernel.exceptions import InvalidLabelError, ValidationError

ISSUED = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestBatchLabel:
    def test_payload_carries_identity_fields(self):
        batch_id = uuid4()
        payload = json.loads(BatchLabel(batch_id, "PROD-20240101-001", ISSUED).to_payload())
        assert payload == {
            "id": str(batch_id),
            "sku": "PROD-20240101-001",
            "type": LABEL_KIND,
            "issuedAt": ISSUED.isoformat(),
        }

    def test_parse_issued_payload(self):
        label = BatchLabel(uuid4(), "PROD-20240101-007", ISSUED)
        assert BatchLabel.from_payload(label.to_payload()) == label


class TestMalformedPayloads:
    @pytest.mark.parametrize(
        "payload",
        [
            "not json",
            "[1, 2]",
            json.dumps({"id": str(uuid4()), "sku": "X", "type": "invoice", "issuedAt": ISSUED.isoformat()}),
            json.dumps({"sku": "X", "type": LABEL_KIND, "issuedAt": ISSUED.isoformat()}),
            json.dumps({"id": "not-a-uuid", "sku": "X", "type": LABEL_KIND, "issuedAt": ISSUED.isoformat()}),
            json.dumps({"id": str(uuid4()), "sku": "X", "type": LABEL_KIND, "issuedAt": "yesterday"}),
        ],
    )
    def test_rejected(self, payload):
        with pytest.raises(InvalidLabelError):
            BatchLabel.from_payload(payload)

    def test_invalid_label_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            BatchLabel.from_payload(None)
