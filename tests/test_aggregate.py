"""
Tests for failure aggregation
"""

import pytest

from sfbatch.core.aggregate import (
    parse_composite_outcomes,
    parse_record_outcomes,
    raise_for_batches,
    raise_for_outcomes,
)
from sfbatch.errors import BatchFailureError, RecordFailuresError, RemoteError


def collection_payload(successes, failures):
    payload = [{"id": rid, "success": True, "errors": []} for rid in successes]
    payload += [
        {
            "id": rid,
            "success": False,
            "errors": [{"statusCode": "500", "message": "example error", "fields": ["Name: bad name"]}],
        }
        for rid in failures
    ]
    return payload


class TestRecordOutcomes:
    """Test parsing collection responses"""

    def test_parse_outcomes(self):
        outcomes = parse_record_outcomes(collection_payload(["001"], ["12345"]))

        assert [o.success for o in outcomes] == [True, False]
        assert outcomes[1].errors[0].status_code == "500"
        assert outcomes[1].errors[0].fields == ["Name: bad name"]

    def test_offset_sets_index(self):
        outcomes = parse_record_outcomes(collection_payload(["001", "002"], []), offset=200)
        assert [o.index for o in outcomes] == [200, 201]

    def test_describe_failure(self):
        outcome = parse_record_outcomes(collection_payload([], ["12345"]))[0]
        assert outcome.describe() == "500: example error 12345 (fields: Name: bad name)"

    def test_failure_without_id_uses_position(self):
        outcomes = parse_record_outcomes([{"id": None, "success": False, "errors": []}], offset=3)
        assert outcomes[0].identifier == "record[3]"

    def test_no_failures_no_error(self):
        raise_for_outcomes(parse_record_outcomes(collection_payload(["001", "002"], [])))

    @pytest.mark.parametrize("failed", [1, 3, 5])
    def test_every_failure_reported(self, failed):
        """All k failing identifiers appear in the aggregate error"""
        failing = [f"bad{i}" for i in range(failed)]
        outcomes = parse_record_outcomes(collection_payload(["ok1", "ok2"], failing))

        with pytest.raises(RecordFailuresError) as exc:
            raise_for_outcomes(outcomes)

        error = exc.value
        assert error.failed_ids == failing
        assert error.failed_count == failed
        assert error.succeeded_count == 2
        for rid in failing:
            assert rid in str(error)
        assert "ok1" not in str(error)


class TestCompositeOutcomes:
    """Test parsing composite responses"""

    def test_success_and_failure(self):
        payload = {
            "compositeResponse": [
                {"body": {"id": "001", "success": True, "errors": []}, "httpStatusCode": 201, "referenceId": "ref_Account_0"},
                {
                    "body": [{"errorCode": "REQUIRED_FIELD_MISSING", "message": "Name missing", "fields": ["Name"]}],
                    "httpStatusCode": 400,
                    "referenceId": "ref_Account_1",
                },
            ]
        }
        references = {"ref_Account_0": None, "ref_Account_1": None}

        outcomes = parse_composite_outcomes(payload, references)

        assert outcomes[0].success and outcomes[0].id == "001"
        assert not outcomes[1].success
        assert outcomes[1].identifier == "record[1]"
        assert outcomes[1].errors[0].status_code == "REQUIRED_FIELD_MISSING"

    def test_update_keeps_record_id(self):
        payload = {
            "compositeResponse": [
                {"body": None, "httpStatusCode": 204, "referenceId": "ref_Account_0"},
                {"body": [{"errorCode": "ENTITY_IS_DELETED", "message": "deleted"}], "httpStatusCode": 404, "referenceId": "ref_Account_1"},
            ]
        }
        references = {"ref_Account_0": "001", "ref_Account_1": "002"}

        outcomes = parse_composite_outcomes(payload, references)

        with pytest.raises(RecordFailuresError) as exc:
            raise_for_outcomes(outcomes)
        assert exc.value.failed_ids == ["002"]


class TestBatchErrors:
    """Test folding per-batch errors"""

    def test_no_errors(self):
        raise_for_batches([], ["750A"])

    def test_errors_keep_job_ids(self):
        errors = [RemoteError("bad request", status_code=400)]

        with pytest.raises(BatchFailureError) as exc:
            raise_for_batches(errors, ["750A", "750B"])

        assert exc.value.job_ids == ["750A", "750B"]
        assert exc.value.errors == errors
        assert "400: bad request" in str(exc.value)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
